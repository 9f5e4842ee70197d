# Built-in libraries
from typing import Optional, Sequence

# Third-party libraries
import numpy as np
import numpy.typing as npt

# Local libraries
from SimuNonlinear.core.iteration import SimulationIteration
from SimuNonlinear.core.load_step import LoadStep
from SimuNonlinear.core.parameters import AnalysisParameters, SimulationParameters
from SimuNonlinear.core.strategies import ArcLengthStrategy
from SimuNonlinear.utils.helpers import determinant_sign, solve_reduced


class SimulationStep(LoadStep):
    """
    Arc-length load step.

    The load factor is not prescribed: each iteration adds the increment that
    keeps the accumulated displacement increment of the step on a sphere of
    radius ``arc_length``.

    Args:
        arc_length: Arc radius of the step.
        desired_iterations: Target iteration count used to resize the arc.
        sign: Direction of the predictor (+1 or -1).
        (remaining arguments as in LoadStep)
    """

    def __init__(self,
                 number: int,
                 full_forces: npt.ArrayLike,
                 load_factor: float,
                 initial_displacements: npt.ArrayLike,
                 stiffness: npt.ArrayLike,
                 constraint_index: Sequence[int],
                 parameters: AnalysisParameters,
                 arc_length: float,
                 desired_iterations: int = 5,
                 sign: int = 1,
                 debug: bool = False):
        strategy = ArcLengthStrategy(parameters.solver, self._setup_logger(debug))
        super().__init__(number, full_forces, load_factor, initial_displacements, stiffness,
                         constraint_index, parameters, strategy=strategy, debug=debug)

        if not arc_length > 0:
            raise ValueError(f"arc length must be positive, got {arc_length}")
        if sign not in (1, -1):
            raise ValueError("sign must be +1 or -1")

        self.arc_length = float(arc_length)
        self.desired_iterations = desired_iterations
        self.sign = sign

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(number={self.number}, load_factor={self.load_factor:.6g}, "
                f"arc_length={self.arc_length:.6g}, sign={self.sign:+d})")

    @classmethod
    def initial_step(cls, model, full_forces: npt.ArrayLike, parameters: AnalysisParameters,
                     simulation: Optional[SimulationParameters] = None,
                     debug: bool = False) -> "SimulationStep":
        """
        First arc-length step from the elastic predictor at the first load
        increment; the arc radius is the norm of the predictor displacements.
        """
        simulation = simulation or SimulationParameters()
        stiffness = model.assemble_stiffness()
        constraint_index = tuple(model.constraint_index)
        zeros = np.zeros(model.number_of_dofs)

        # Elastic predictor
        load_factor = parameters.step_increment
        from_external = solve_reduced(stiffness, full_forces, constraint_index)
        arc_length = load_factor * float(np.linalg.norm(from_external))
        if not np.isfinite(arc_length) or arc_length <= 0:
            raise ValueError("the external forces produce no displacement at the free DOFs")

        step = cls(1, full_forces, 0.0, zeros, stiffness, constraint_index, parameters,
                   arc_length=arc_length, desired_iterations=simulation.desired_iterations,
                   debug=debug)
        step.increment_load(load_factor)

        seed = SimulationIteration(displacements=zeros, stiffness=stiffness,
                                   increment_from_external=from_external,
                                   load_factor_increment=load_factor)
        seed.increment_displacements(seed.combined_increment)
        step._seed(model, seed)

        return step

    @classmethod
    def from_last_step(cls, last_step: "SimulationStep",
                       simulation: Optional[SimulationParameters] = None,
                       initial_arc_length: Optional[float] = None,
                       debug: bool = False) -> "SimulationStep":
        """
        Next arc-length step.

        The arc radius is scaled by desired/required iterations of the last
        step and kept within the configured bounds relative to the initial
        radius (no upper bound unless ``max_arc_length_ratio`` is set). The
        direction flips when the stiffness determinant changed sign along the
        last step.
        """
        simulation = simulation or SimulationParameters()
        initial_arc_length = initial_arc_length or last_step.arc_length
        final = last_step.iterations.current()

        # Arc radius
        required = max(last_step.required_iterations, 1)
        arc_length = last_step.arc_length * simulation.desired_iterations / required
        arc_length = max(arc_length, simulation.min_arc_length_ratio * initial_arc_length)
        if simulation.max_arc_length_ratio is not None:
            arc_length = min(arc_length, simulation.max_arc_length_ratio * initial_arc_length)
        arc_length = float(arc_length)

        # Continuation direction
        sign = last_step.sign
        if last_step.stiffness_sign_changed():
            sign = -sign
            last_step.logger.info("Limit point passed at load step %d", last_step.number)

        step = cls(last_step.number + 1, last_step.full_forces, last_step.load_factor,
                   final.displacements, final.stiffness, last_step.constraint_index,
                   last_step.parameters, arc_length=arc_length,
                   desired_iterations=simulation.desired_iterations, sign=sign, debug=debug)

        seed = final.clone()
        seed.number = 0
        seed.load_factor_increment = 0.0
        seed.set_increments(np.zeros_like(seed.displacements), np.zeros_like(seed.displacements))
        seed.update_forces(step.applied_forces, seed.internal_forces)
        step.iterations.append(seed)

        return step

    def stiffness_sign_changed(self) -> bool:
        """Whether det(final stiffness) / det(initial stiffness) of the step is negative."""
        initial = determinant_sign(self.initial_stiffness, self.constraint_index)
        final = determinant_sign(self.stiffness, self.constraint_index)
        return initial * final < 0

    def accumulated_load_factor_increment(self) -> float:
        """Sum of the load factor increments of the step's iterations."""
        return float(sum(it.load_factor_increment for it in self.iterations))
