# Built-in libraries
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Sequence

# Third-party libraries
import numpy as np
import numpy.typing as npt

# Local libraries
from SimuNonlinear.core.model import FEMInput


class SpringLaw(ABC):
    """Force-elongation law of an axial spring."""

    @abstractmethod
    def force(self, elongation: float) -> float:
        ...

    @abstractmethod
    def stiffness(self, elongation: float) -> float:
        ...


@dataclass(frozen=True)
class LinearLaw(SpringLaw):
    k: float

    def force(self, elongation: float) -> float:
        return self.k * elongation

    def stiffness(self, elongation: float) -> float:
        return self.k


@dataclass(frozen=True)
class BilinearSofteningLaw(SpringLaw):
    """
    Tension softening: linear up to the peak, then linear with the post-peak
    stiffness until the force vanishes. Compression stays linear.

    Args:
        k1: Initial stiffness.
        k2: Post-peak stiffness.
        peak_elongation: Elongation at the peak force.
    """
    k1: float
    k2: float
    peak_elongation: float

    def __post_init__(self):
        if self.peak_elongation <= 0:
            raise ValueError("peak elongation must be positive")

    @property
    def peak_force(self) -> float:
        return self.k1 * self.peak_elongation

    def force(self, elongation: float) -> float:
        if elongation <= self.peak_elongation:
            return self.k1 * elongation
        return max(self.peak_force + self.k2 * (elongation - self.peak_elongation), 0.0)

    def stiffness(self, elongation: float) -> float:
        if elongation <= self.peak_elongation:
            return self.k1
        return self.k2 if self.force(elongation) > 0.0 else 0.0


@dataclass
class Spring:
    """Axial spring between two DOFs."""
    dof_i: int
    dof_j: int
    law: SpringLaw
    elongation: float = 0.0
    force: float = 0.0
    tangent: float = 0.0

    def __post_init__(self):
        self.tangent = self.law.stiffness(0.0)

    def update(self, displacements: npt.NDArray[np.float64]) -> None:
        self.elongation = float(displacements[self.dof_j] - displacements[self.dof_i])

    def calculate_forces(self) -> None:
        self.force = float(self.law.force(self.elongation))
        self.tangent = float(self.law.stiffness(self.elongation))


class SpringModel(FEMInput):
    """
    Chain of axial springs.

    Args:
        number_of_dofs: Number of global DOFs.
        springs: Springs of the model.
        forces: Reference external force vector.
        constraints: Fixed DOFs.
    """

    def __init__(self, number_of_dofs: int, springs: Sequence[Spring],
                 forces: npt.ArrayLike, constraints: Sequence[int] = (0,)):
        self._number_of_dofs = number_of_dofs
        self.springs: List[Spring] = list(springs)
        self._forces = np.array(forces, dtype=float).reshape(-1)
        self._constraints = tuple(constraints)

        if self._forces.size != number_of_dofs:
            raise ValueError(f"force vector must have {number_of_dofs} entries")
        for spring in self.springs:
            if not (0 <= spring.dof_i < number_of_dofs and 0 <= spring.dof_j < number_of_dofs):
                raise ValueError(f"spring DOFs ({spring.dof_i}, {spring.dof_j}) out of range")
            if spring.dof_i == spring.dof_j:
                raise ValueError("a spring must connect two different DOFs")

        self.displacements = np.zeros(number_of_dofs)
        self.reactions = np.zeros(number_of_dofs)

    @classmethod
    def single(cls, law: SpringLaw, force: float) -> "SpringModel":
        """One spring fixed at DOF 0 and loaded at DOF 1."""
        return cls(2, [Spring(0, 1, law)], [0.0, force], constraints=(0,))

    @property
    def number_of_dofs(self) -> int:
        return self._number_of_dofs

    @property
    def constraint_index(self) -> Sequence[int]:
        return self._constraints

    @property
    def force_vector(self) -> npt.NDArray[np.float64]:
        return self._forces.copy()

    def assemble_stiffness(self) -> npt.NDArray[np.float64]:
        K = np.zeros((self.number_of_dofs, self.number_of_dofs))
        for spring in self.springs:
            dofs = np.array([spring.dof_i, spring.dof_j])
            K[np.ix_(dofs, dofs)] += spring.tangent * np.array([[1.0, -1.0], [-1.0, 1.0]])
        return K

    def assemble_internal_forces(self) -> npt.NDArray[np.float64]:
        f = np.zeros(self.number_of_dofs)
        for spring in self.springs:
            f[spring.dof_i] -= spring.force
            f[spring.dof_j] += spring.force
        return f

    def calculate_forces(self) -> None:
        for spring in self.springs:
            spring.calculate_forces()

    def update_displacements(self) -> None:
        for spring in self.springs:
            spring.update(self.displacements)

    def set_displacements(self, displacements: npt.NDArray[np.float64]) -> None:
        self.displacements = np.array(displacements, dtype=float, copy=True).reshape(-1)

    def set_reactions(self, reactions: npt.NDArray[np.float64]) -> None:
        self.reactions = np.array(reactions, dtype=float, copy=True)
