# Built-in libraries
import sys

# Author's libraries
from SimuNonlinear.utils.config import load_analysis_config
from SimuNonlinear.examples.softening_spring import run

# Run the softening spring example, optionally with a YAML configuration
if __name__ == "__main__":
    paths = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    parameters, simulation = load_analysis_config(paths[0]) if paths else (None, None)
    simulate = "--simulate" in sys.argv

    output = run(simulate, parameters, simulation)
    sys.exit(1 if output.stop else 0)
