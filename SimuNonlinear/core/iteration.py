# Built-in libraries
import copy
from typing import Optional
from dataclasses import dataclass

# Third-party libraries
import numpy as np
import numpy.typing as npt

# Local libraries
from SimuNonlinear.core.parameters import AnalysisParameters
from SimuNonlinear.utils.helpers import convergence_measure, contains_nan_or_inf


def _vector(values: Optional[npt.ArrayLike], size: int, name: str) -> npt.NDArray[np.float64]:
    """Copy a vector, zero-filled when missing, checking its length."""
    if values is None:
        return np.zeros(size)
    vector = np.array(values, dtype=float, copy=True).reshape(-1)
    if vector.size != size:
        raise ValueError(f"{name} must have {size} entries, got {vector.size}")
    return vector


@dataclass(eq=False)
class Iteration:
    """
    One equilibrium iteration of a load step.

    Every vector has the model's number of DOFs and the stiffness matrix is
    square with the same size. Arrays are copied on construction and on
    ``clone``, so records of past iterations never share storage.
    """
    displacements: npt.NDArray[np.float64]
    stiffness: npt.NDArray[np.float64]
    internal_forces: Optional[npt.NDArray[np.float64]] = None
    residual_forces: Optional[npt.NDArray[np.float64]] = None
    displacement_increment: Optional[npt.NDArray[np.float64]] = None
    number: int = 0
    force_convergence: float = 0.0
    displacement_convergence: float = 0.0

    def __post_init__(self):
        self.displacements = np.array(self.displacements, dtype=float, copy=True).reshape(-1)
        n = self.displacements.size

        self.stiffness = np.array(self.stiffness, dtype=float, copy=True)
        if self.stiffness.shape != (n, n):
            raise ValueError(f"stiffness must be {n}x{n}, got {self.stiffness.shape}")

        self.internal_forces = _vector(self.internal_forces, n, "internal_forces")
        self.residual_forces = _vector(self.residual_forces, n, "residual_forces")
        self.displacement_increment = _vector(self.displacement_increment, n, "displacement_increment")

        if self.number < 0:
            raise ValueError("iteration number must be non-negative")

    @property
    def number_of_dofs(self) -> int:
        return self.displacements.size

    def update_forces(self, applied_forces: npt.ArrayLike, internal_forces: npt.ArrayLike) -> None:
        """Set the internal forces and the residual (internal - applied)."""
        applied = _vector(applied_forces, self.number_of_dofs, "applied_forces")
        self.internal_forces = _vector(internal_forces, self.number_of_dofs, "internal_forces")
        self.residual_forces = self.internal_forces - applied

    def increment_displacements(self, increment: npt.ArrayLike) -> None:
        self.displacement_increment = _vector(increment, self.number_of_dofs, "increment")
        self.displacements = self.displacements + self.displacement_increment

    def calculate_convergence(self, applied_forces: npt.ArrayLike,
                              initial_increment: npt.ArrayLike) -> None:
        """
        Update both convergence measures.

        Args:
            applied_forces: Applied forces of the load step.
            initial_increment: Displacement increment of the step's first iteration.
        """
        self.force_convergence = convergence_measure(self.residual_forces, applied_forces)
        self.displacement_convergence = convergence_measure(self.displacement_increment, initial_increment)

    def check_convergence(self, parameters: AnalysisParameters) -> bool:
        return (self.number >= parameters.min_iterations
                and self.force_convergence <= parameters.force_tolerance
                and self.displacement_convergence <= parameters.displacement_tolerance)

    def check_stop_condition(self, parameters: AnalysisParameters) -> bool:
        """Iteration bound reached or non-finite state."""
        return (self.number >= parameters.max_iterations
                or contains_nan_or_inf(self.residual_forces, self.displacements, self.stiffness))

    def clone(self) -> "Iteration":
        return copy.deepcopy(self)


@dataclass(eq=False)
class SimulationIteration(Iteration):
    """
    Arc-length iteration.

    The displacement increment is split into the part driven by the residual
    and the part driven by the full external force vector:
    Δu = increment_from_residual + load_factor_increment · increment_from_external.
    """
    load_factor_increment: float = 0.0
    increment_from_residual: Optional[npt.NDArray[np.float64]] = None
    increment_from_external: Optional[npt.NDArray[np.float64]] = None

    def __post_init__(self):
        super().__post_init__()
        n = self.number_of_dofs
        self.increment_from_residual = _vector(self.increment_from_residual, n, "increment_from_residual")
        self.increment_from_external = _vector(self.increment_from_external, n, "increment_from_external")

    def set_increments(self, from_residual: npt.ArrayLike, from_external: npt.ArrayLike) -> None:
        self.increment_from_residual = _vector(from_residual, self.number_of_dofs, "from_residual")
        self.increment_from_external = _vector(from_external, self.number_of_dofs, "from_external")

    @property
    def combined_increment(self) -> npt.NDArray[np.float64]:
        return self.increment_from_residual + self.load_factor_increment * self.increment_from_external
