# Built-in libraries
from pathlib import Path
from dataclasses import asdict, fields
from typing import Any, Dict, Optional, Tuple, Union

# Third-party libraries
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

# Local libraries
from SimuNonlinear.core.parameters import AnalysisParameters, NonlinearSolver, SimulationParameters

_INT_FIELDS = {"number_of_steps", "max_iterations", "min_iterations", "desired_iterations", "max_steps"}


def _yaml_handler() -> YAML:
    """YAML handler that keeps quotes and the project indentation."""
    yaml = YAML()
    yaml.preserve_quotes = True
    yaml.indent(mapping=2, sequence=4, offset=2)
    return yaml


def _convert(name: str, value: Any) -> Any:
    if name == "solver":
        return value if isinstance(value, NonlinearSolver) else NonlinearSolver.from_name(str(value))
    if value is None:
        return None
    return int(value) if name in _INT_FIELDS else float(value)


def _build(cls, data: Optional[Dict[str, Any]], section: str):
    data = dict(data or {})
    known = {f.name for f in fields(cls)}

    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {', '.join(sorted(unknown))}")

    return cls(**{name: _convert(name, value) for name, value in data.items()})


def parameters_from_dict(data: Dict[str, Any]) -> Tuple[AnalysisParameters, SimulationParameters]:
    """
    Build the analysis and simulation parameters from a mapping.

    Args:
        data: Mapping with an ``analysis`` and an optional ``simulation`` section.

    Returns:
        (AnalysisParameters, SimulationParameters); missing keys keep their defaults.
    """
    data = dict(data or {})
    unknown = set(data) - {"analysis", "simulation"}
    if unknown:
        raise ValueError(f"Unknown sections: {', '.join(sorted(unknown))}")

    parameters = _build(AnalysisParameters, data.get("analysis"), "analysis")
    simulation = _build(SimulationParameters, data.get("simulation"), "simulation")
    return parameters, simulation


def parameters_to_dict(parameters: AnalysisParameters,
                       simulation: Optional[SimulationParameters] = None) -> Dict[str, Any]:
    analysis = asdict(parameters)
    analysis["solver"] = parameters.solver.name

    data = {"analysis": analysis}
    if simulation is not None:
        data["simulation"] = asdict(simulation)
    return data


def load_analysis_config(path: Union[str, Path]) -> Tuple[AnalysisParameters, SimulationParameters]:
    """Read the parameters from a YAML file."""
    yaml = _yaml_handler()
    try:
        with open(path, "r", encoding="utf-8") as file:
            data = yaml.load(file)
    except YAMLError as e:
        raise ValueError(f"Error decoding YAML file {path}: {e}")

    return parameters_from_dict(data or {})


def dump_analysis_config(path: Union[str, Path], parameters: AnalysisParameters,
                         simulation: Optional[SimulationParameters] = None) -> None:
    """Write the parameters to a YAML file."""
    yaml = _yaml_handler()
    with open(path, "w", encoding="utf-8") as file:
        yaml.dump(parameters_to_dict(parameters, simulation), file)
