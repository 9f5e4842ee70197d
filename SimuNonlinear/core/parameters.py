# Built-in libraries
from enum import Enum
from typing import Optional
from dataclasses import dataclass


class NonlinearSolver(Enum):
    NEWTON_RAPHSON = "Newton-Raphson"
    MODIFIED_NEWTON_RAPHSON = "Modified Newton-Raphson"
    SECANT = "Secant"

    @classmethod
    def from_name(cls, name: str) -> "NonlinearSolver":
        """Resolve a solver from its member name or its display value."""
        for solver in cls:
            if name in (solver.name, solver.value):
                return solver
        raise ValueError(f"Unknown nonlinear solver: {name!r}")


@dataclass(frozen=True)
class AnalysisParameters:
    """
    Parameters of the equilibrium iterations.

    Args:
        solver: Stiffness update strategy used inside each load step.
        number_of_steps: Number of load steps (standard stepping).
        max_iterations: Iteration bound of a load step.
        min_iterations: Minimum iterations before a step may converge.
        force_tolerance: Bound on the normalized residual force measure.
        displacement_tolerance: Bound on the normalized displacement increment measure.
    """
    solver: NonlinearSolver = NonlinearSolver.NEWTON_RAPHSON
    number_of_steps: int = 50
    max_iterations: int = 1000
    min_iterations: int = 2
    force_tolerance: float = 1e-3
    displacement_tolerance: float = 1e-8

    def __post_init__(self):
        if not isinstance(self.solver, NonlinearSolver):
            raise ValueError(f"solver must be a NonlinearSolver, got {self.solver!r}")
        if self.number_of_steps <= 0:
            raise ValueError("number_of_steps must be positive")
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        if self.min_iterations < 1:
            raise ValueError("min_iterations must be at least 1")
        if self.force_tolerance <= 0 or self.displacement_tolerance <= 0:
            raise ValueError("tolerances must be positive")

    @property
    def step_increment(self) -> float:
        """Load factor increment of each standard load step."""
        return 1.0 / self.number_of_steps


@dataclass(frozen=True)
class SimulationParameters:
    """
    Arc-length (simulation) control parameters.

    The arc radius never drops below ``min_arc_length_ratio`` times the
    initial radius. ``max_arc_length_ratio`` caps it the same way when set;
    with None the radius may grow freely.
    """
    desired_iterations: int = 5
    max_steps: int = 100
    min_arc_length_ratio: float = 1 / 1024
    max_arc_length_ratio: Optional[float] = None
    max_load_factor: Optional[float] = None

    def __post_init__(self):
        if self.desired_iterations <= 0:
            raise ValueError("desired_iterations must be positive")
        if self.max_steps <= 0:
            raise ValueError("max_steps must be positive")
        if not self.min_arc_length_ratio > 0:
            raise ValueError("min_arc_length_ratio must be positive")
        if self.max_arc_length_ratio is not None and self.max_arc_length_ratio < self.min_arc_length_ratio:
            raise ValueError("max_arc_length_ratio must not be below min_arc_length_ratio")
