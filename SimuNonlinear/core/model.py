# Built-in libraries
from abc import ABC, abstractmethod
from typing import Sequence

# Third-party libraries
import numpy as np
import numpy.typing as npt


class FEMInput(ABC):
    """
    Assembled structural model driven by the nonlinear analysis.

    Element formulations and global assembly live behind this interface; the
    analysis only sees global vectors and matrices of size ``number_of_dofs``.
    """

    @property
    @abstractmethod
    def number_of_dofs(self) -> int:
        """Number of degrees of freedom of the model."""

    @property
    @abstractmethod
    def constraint_index(self) -> Sequence[int]:
        """Indices of the constrained (fixed) DOFs."""

    @property
    @abstractmethod
    def force_vector(self) -> npt.NDArray[np.float64]:
        """Full reference external force vector."""

    @abstractmethod
    def assemble_stiffness(self) -> npt.NDArray[np.float64]:
        """Assemble the global tangent stiffness at the current state."""

    @abstractmethod
    def assemble_internal_forces(self) -> npt.NDArray[np.float64]:
        """Assemble the global internal force vector at the current state."""

    @abstractmethod
    def calculate_forces(self) -> None:
        """Refresh element forces from the element displacements."""

    @abstractmethod
    def update_displacements(self) -> None:
        """Transfer the global displacements to the elements."""

    @abstractmethod
    def set_displacements(self, displacements: npt.NDArray[np.float64]) -> None:
        """Set the global displacement vector."""

    @abstractmethod
    def set_reactions(self, reactions: npt.NDArray[np.float64]) -> None:
        """Set the support reactions (nonzero only at constrained DOFs)."""
