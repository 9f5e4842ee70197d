# Built-in libraries
import logging
from typing import Optional, Tuple

# Third-party libraries
import numpy as np
import numpy.typing as npt

# Local libraries
from SimuNonlinear.core.parameters import NonlinearSolver
from SimuNonlinear.core.iteration import Iteration, SimulationIteration
from SimuNonlinear.utils.helpers import solve_reduced, secant_increment


class StandardStrategy:
    """
    Load-controlled iterations: the load factor is fixed inside the step and
    the increment solves K·Δu = -r.

    Args:
        solver: Stiffness update applied after each iteration.
        logger: Logger used for solve failures.
    """
    iteration_type = Iteration

    def __init__(self, solver: NonlinearSolver = NonlinearSolver.NEWTON_RAPHSON,
                 logger: Optional[logging.Logger] = None):
        self.solver = solver
        self.logger = logger

    def load_increment(self, step, iteration: Iteration) -> float:
        return 0.0

    def displacement_increment(self, step, iteration: Iteration) -> npt.NDArray[np.float64]:
        return solve_reduced(iteration.stiffness, -iteration.residual_forces,
                             step.constraint_index, self.logger)

    def update_stiffness(self, step, model) -> npt.NDArray[np.float64]:
        """
        Stiffness of the ongoing iteration, after the model was refreshed.

        Args:
            step: Load step holding the iteration history.
            model: Model collaborator (FEMInput).

        Returns:
            The new stiffness matrix.
        """
        ongoing = step.iterations.current()

        # Tangent at every iteration
        if self.solver is NonlinearSolver.NEWTON_RAPHSON:
            return model.assemble_stiffness()

        # Tangent only at the first iteration
        if self.solver is NonlinearSolver.MODIFIED_NEWTON_RAPHSON:
            if ongoing.number == 1:
                return model.assemble_stiffness()
            return ongoing.stiffness

        # Secant update from the two last solved iterations
        if len(step.iterations) < 3:
            return ongoing.stiffness

        current, last = step.iterations.previous(1), step.iterations.previous(2)
        return current.stiffness + secant_increment(
            current.stiffness,
            current.displacements, last.displacements,
            current.residual_forces, last.residual_forces
        )


def arc_length_roots(accumulated: npt.NDArray[np.float64],
                     from_residual: npt.NDArray[np.float64],
                     from_external: npt.NDArray[np.float64],
                     arc_length: float) -> Optional[Tuple[float, float, float, float]]:
    """
    Solve ||ΔU + δu_r + λ·δu_f||² = s² for λ.

    Args:
        accumulated: Displacement increment accumulated in the step (ΔU).
        from_residual: Increment driven by the residual (δu_r).
        from_external: Increment driven by the full external forces (δu_f).
        arc_length: Arc radius (s).

    Returns:
        (root_1, root_2, a2, a3), or None when the roots are complex.
    """
    base = accumulated + from_residual

    # Coefficients of a1·λ² + 2·a2·λ + a3 = 0
    a1 = float(from_external @ from_external)
    a2 = float(base @ from_external)
    a3 = float(base @ base) - arc_length ** 2

    discriminant = a2 ** 2 - a1 * a3
    if a1 == 0.0 or not discriminant >= 0.0:
        return None

    root = np.sqrt(discriminant)
    return (-a2 + root) / a1, (-a2 - root) / a1, a2, a3


def select_root(accumulated: npt.NDArray[np.float64],
                from_residual: npt.NDArray[np.float64],
                from_external: npt.NDArray[np.float64],
                arc_length: float) -> float:
    """
    Load factor increment of a corrector iteration.

    Keeps the root whose new accumulated increment points the same way as the
    current one; otherwise the root closest to the linear solution -a3/a2.
    Returns NaN when the constraint has no real root.
    """
    roots = arc_length_roots(accumulated, from_residual, from_external, arc_length)
    if roots is None:
        return np.nan

    d1, d2, a2, a3 = roots
    p1 = float(accumulated @ (accumulated + from_residual + d1 * from_external))
    p2 = float(accumulated @ (accumulated + from_residual + d2 * from_external))

    if p1 >= 0 > p2:
        return d1
    if p2 >= 0 > p1:
        return d2

    # Both or neither keep the direction
    if a2 == 0.0:
        return d1 if abs(d1) <= abs(d2) else d2
    linear = -a3 / a2
    return d1 if abs(linear - d1) <= abs(linear - d2) else d2


class ArcLengthStrategy(StandardStrategy):
    """
    Arc-length continuation: the load factor changes at every iteration so the
    step's accumulated displacement increment keeps the arc radius.
    """
    iteration_type = SimulationIteration

    def load_increment(self, step, iteration: SimulationIteration) -> float:
        """
        Solve both increment directions and pick the load factor increment.

        Both directions are stored on the iteration together with the chosen
        increment.
        """
        from_residual = solve_reduced(iteration.stiffness, -iteration.residual_forces,
                                      step.constraint_index, self.logger)
        from_external = solve_reduced(iteration.stiffness, step.full_forces,
                                      step.constraint_index, self.logger)
        iteration.set_increments(from_residual, from_external)

        if iteration.number == 1 and step.number > 1:
            # Predictor along the external force direction
            norm = np.linalg.norm(from_external)
            increment = step.sign * step.arc_length / norm if norm > 0 else np.nan
        else:
            # Corrector on the arc
            accumulated = iteration.displacements - step.initial_displacements
            increment = select_root(accumulated, from_residual, from_external, step.arc_length)

        if not np.isfinite(increment) and self.logger:
            self.logger.warning("Load step %d, iteration %d: arc-length constraint has no real root",
                                step.number, iteration.number)

        iteration.load_factor_increment = float(increment)
        return iteration.load_factor_increment

    def displacement_increment(self, step, iteration: SimulationIteration) -> npt.NDArray[np.float64]:
        return iteration.combined_increment
