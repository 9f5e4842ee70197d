# Built-in libraries
import logging
from typing import Iterable, Optional, Sequence

# Third-party libraries
import numpy as np
import numpy.typing as npt
from tabulate import tabulate
from scipy.linalg import LinAlgError, solve

_logger = logging.getLogger(__name__)


def simplified_stiffness(stiffness: npt.ArrayLike,
                         constraint_index: Iterable[int]) -> npt.NDArray[np.float64]:
    """
    Returns a copy of the stiffness matrix ready for the linear solve.

    Constrained rows and columns are cleared with a unit diagonal; rows or
    columns that are exactly zero (unconnected DOFs) get a unit diagonal too.

    Args:
        stiffness: Global stiffness matrix (nDOF x nDOF).
        constraint_index: Indices of the constrained DOFs.

    Returns:
        The simplified matrix.
    """
    K = np.array(stiffness, dtype=float, copy=True)
    index = np.asarray(sorted(set(constraint_index)), dtype=int)

    # Clear constrained rows and columns
    if index.size:
        K[index, :] = 0.0
        K[:, index] = 0.0
        K[index, index] = 1.0

    # Unconnected DOFs
    empty = np.all(K == 0.0, axis=1) | np.all(K == 0.0, axis=0)
    free = np.flatnonzero(empty)
    K[free, free] = 1.0

    return K


def simplified_forces(forces: npt.ArrayLike,
                      constraint_index: Iterable[int]) -> npt.NDArray[np.float64]:
    """Returns a copy of the force vector with constrained entries cleared."""
    f = np.array(forces, dtype=float, copy=True)
    index = np.asarray(sorted(set(constraint_index)), dtype=int)
    if index.size:
        f[index] = 0.0
    return f


def convergence_measure(numerator: npt.ArrayLike, reference: npt.ArrayLike) -> float:
    """Σ numerator² / (1 + Σ reference²)."""
    numerator = np.asarray(numerator, dtype=float)
    reference = np.asarray(reference, dtype=float)
    return float(np.sum(numerator ** 2) / (1.0 + np.sum(reference ** 2)))


def contains_nan_or_inf(*arrays: Optional[npt.ArrayLike]) -> bool:
    """Check whether any of the arrays holds NaN or infinite values."""
    return any(
        not np.all(np.isfinite(np.asarray(array, dtype=float)))
        for array in arrays if array is not None
    )


def solve_reduced(stiffness: npt.ArrayLike,
                  forces: npt.ArrayLike,
                  constraint_index: Iterable[int],
                  logger: Optional[logging.Logger] = None) -> npt.NDArray[np.float64]:
    """
    Solves K·x = f after simplifying both sides.

    A singular or non-finite system does not raise: the failure is logged and
    a NaN vector is returned, which the iteration stop condition detects.

    Args:
        stiffness: Global stiffness matrix.
        forces: Right-hand side vector.
        constraint_index: Indices of the constrained DOFs.
        logger: Logger used to report a failed solve.

    Returns:
        The solution vector, zero at constrained DOFs.
    """
    constraint_index = tuple(constraint_index)
    K = simplified_stiffness(stiffness, constraint_index)
    f = simplified_forces(forces, constraint_index)

    try:
        return solve(K, f)
    except (LinAlgError, ValueError) as error:
        (logger or _logger).warning("Linear solve failed: %s", error)
        return np.full_like(f, np.nan)


def determinant_sign(stiffness: npt.ArrayLike, constraint_index: Iterable[int]) -> float:
    """Sign of the determinant of the simplified stiffness (0.0 if undefined)."""
    if contains_nan_or_inf(stiffness):
        return 0.0
    sign, _ = np.linalg.slogdet(simplified_stiffness(stiffness, constraint_index))
    return float(sign)


def secant_increment(stiffness: npt.ArrayLike,
                     current_displacements: npt.ArrayLike,
                     last_displacements: npt.ArrayLike,
                     current_residual: npt.ArrayLike,
                     last_residual: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """
    Rank-one secant stiffness increment.

    ΔK = ((ΔR - K·ΔU) / ||ΔU||) ⊗ ΔU

    Args:
        stiffness: Stiffness matrix being corrected.
        current_displacements, last_displacements: Displacements of the two iterations.
        current_residual, last_residual: Residual forces of the two iterations.

    Returns:
        The increment matrix (zero when the displacements did not change).
    """
    K = np.asarray(stiffness, dtype=float)
    dU = np.asarray(current_displacements, dtype=float) - np.asarray(last_displacements, dtype=float)
    dR = np.asarray(current_residual, dtype=float) - np.asarray(last_residual, dtype=float)

    norm = np.linalg.norm(dU)
    if norm == 0.0:
        return np.zeros_like(K)

    return np.outer((dR - K @ dU) / norm, dU)


def steps_table(rows: Sequence[Sequence], decimals: int = 6) -> str:
    """Grid table of load step summaries."""
    header = ["Step", "Load factor", "Iterations", "Force conv.", "Displ. conv.", "Status"]
    return tabulate(rows, headers=header, tablefmt="grid", floatfmt=f".{decimals}g")
