# Built-in libraries
from typing import List, Optional
from dataclasses import dataclass, field

# Third-party libraries
import numpy as np
import numpy.typing as npt
from tabulate import tabulate


@dataclass(frozen=True, order=True)
class MonitoredDisplacement:
    """Displacement of the monitored DOF at a converged load factor."""
    load_factor: float
    displacement: float


@dataclass
class AnalysisOutput:
    """Load-displacement curve and step history of an analysis."""
    monitored_displacements: List[MonitoredDisplacement] = field(default_factory=list)
    steps: list = field(default_factory=list)
    stop: bool = False
    stop_message: Optional[str] = None

    @property
    def load_factors(self) -> npt.NDArray[np.float64]:
        return np.array([m.load_factor for m in self.monitored_displacements])

    @property
    def displacements(self) -> npt.NDArray[np.float64]:
        return np.array([m.displacement for m in self.monitored_displacements])

    def table(self, decimals: int = 6) -> str:
        """Grid table of the load-displacement pairs."""
        data = [[m.load_factor, m.displacement] for m in self.monitored_displacements]
        return tabulate(data, headers=["Load factor", "Displacement"],
                        tablefmt="grid", floatfmt=f".{decimals}f")
