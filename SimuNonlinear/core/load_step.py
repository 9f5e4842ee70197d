# Built-in libraries
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Sequence

# Third-party libraries
import numpy as np
import numpy.typing as npt

# Local libraries
from SimuNonlinear.core.iteration import Iteration
from SimuNonlinear.core.output import MonitoredDisplacement
from SimuNonlinear.core.parameters import AnalysisParameters
from SimuNonlinear.core.strategies import StandardStrategy
from SimuNonlinear.utils.helpers import simplified_forces, solve_reduced
from SimuNonlinear.utils.logger_mixin import LoggerMixin


class StepStatus(Enum):
    ITERATING = "Iterating"
    CONVERGED = "Converged"
    STOPPED = "Stopped"


class IterationHistory:
    """Append-only record of the iterations of a load step."""

    def __init__(self, iterations: Optional[Iterable[Iteration]] = None):
        self._iterations: List[Iteration] = list(iterations or [])

    def __len__(self) -> int:
        return len(self._iterations)

    def __iter__(self) -> Iterator[Iteration]:
        return iter(self._iterations)

    def __getitem__(self, index: int) -> Iteration:
        return self._iterations[index]

    def append(self, iteration: Iteration) -> None:
        self._iterations.append(iteration)

    def first(self) -> Optional[Iteration]:
        """Iteration number 1 of the step, if already solved."""
        return next((it for it in self._iterations if it.number == 1), None)

    def current(self) -> Iteration:
        if not self._iterations:
            raise IndexError("the iteration history is empty")
        return self._iterations[-1]

    def previous(self, n: int = 1) -> Iteration:
        """The n-th iteration before the current one."""
        if n < 1 or n >= len(self._iterations):
            raise IndexError(f"no iteration {n} steps before the current one")
        return self._iterations[-1 - n]


class LoadStep(LoggerMixin):
    """
    Load increment solved by equilibrium iterations.

    Args:
        number: Step number (1-based).
        full_forces: Full reference external force vector.
        load_factor: Load factor at the start of the step.
        initial_displacements: Converged displacements of the previous step.
        stiffness: Stiffness carried from the previous step.
        constraint_index: Constrained DOFs of the model.
        parameters: Iteration parameters.
        strategy: Iteration strategy (standard stepping by default).
        debug: Enables debug logging.
    """

    def __init__(self,
                 number: int,
                 full_forces: npt.ArrayLike,
                 load_factor: float,
                 initial_displacements: npt.ArrayLike,
                 stiffness: npt.ArrayLike,
                 constraint_index: Sequence[int],
                 parameters: AnalysisParameters,
                 strategy: Optional[StandardStrategy] = None,
                 debug: bool = False):
        self._setup_logger(debug)

        if number < 1:
            raise ValueError("load step number must be at least 1")

        self.number = number
        self.full_forces = np.array(full_forces, dtype=float, copy=True).reshape(-1)
        self.initial_displacements = np.array(initial_displacements, dtype=float, copy=True).reshape(-1)
        self.initial_stiffness = np.array(stiffness, dtype=float, copy=True)
        self.constraint_index = tuple(sorted(set(constraint_index)))
        self.parameters = parameters
        self.strategy = strategy or StandardStrategy(parameters.solver, self.logger)

        n = self.full_forces.size
        if self.initial_displacements.size != n or self.initial_stiffness.shape != (n, n):
            raise ValueError("forces, displacements and stiffness sizes do not match")
        if any(i < 0 or i >= n for i in self.constraint_index):
            raise ValueError("constraint index out of range")

        self.initial_load_factor = float(load_factor)
        self.load_factor = float(load_factor)
        self.forces = self.load_factor * self.full_forces

        self.iterations = IterationHistory()
        self.converged = False
        self.stop = False
        self.monitored_displacement: Optional[MonitoredDisplacement] = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(number={self.number}, load_factor={self.load_factor:.6g})"

    # ---- Factories ----

    @classmethod
    def initial_step(cls, model, full_forces: npt.ArrayLike, parameters: AnalysisParameters,
                     debug: bool = False) -> "LoadStep":
        """
        First load step: elastic predictor at the first load increment.

        The predictor solution is stored as the step's seed iteration; the
        step still has to be iterated.
        """
        stiffness = model.assemble_stiffness()
        constraint_index = tuple(model.constraint_index)
        zeros = np.zeros(model.number_of_dofs)

        step = cls(1, full_forces, parameters.step_increment, zeros, stiffness,
                   constraint_index, parameters, debug=debug)

        # Elastic predictor
        predictor = solve_reduced(stiffness, step.forces, constraint_index, step.logger)
        seed = step.strategy.iteration_type(displacements=zeros, stiffness=stiffness)
        seed.increment_displacements(predictor)
        step._seed(model, seed)

        return step

    @classmethod
    def from_last_step(cls, last_step: "LoadStep", debug: bool = False) -> "LoadStep":
        """Next standard step, continuing from the final iteration of the last one."""
        final = last_step.iterations.current()
        step = cls(last_step.number + 1, last_step.full_forces,
                   last_step.load_factor + last_step.parameters.step_increment,
                   final.displacements, final.stiffness, last_step.constraint_index,
                   last_step.parameters, debug=debug)

        seed = final.clone()
        seed.number = 0
        seed.update_forces(step.applied_forces, seed.internal_forces)
        step.iterations.append(seed)

        return step

    def _seed(self, model, seed: Iteration) -> None:
        """Refresh the model at the seed displacements and store the seed."""
        model.set_displacements(seed.displacements)
        model.update_displacements()
        model.calculate_forces()
        internal = simplified_forces(model.assemble_internal_forces(), self.constraint_index)
        seed.update_forces(self.applied_forces, internal)
        self.iterations.append(seed)

    # ---- State ----

    @property
    def status(self) -> StepStatus:
        if self.stop:
            return StepStatus.STOPPED
        if self.converged:
            return StepStatus.CONVERGED
        return StepStatus.ITERATING

    @property
    def applied_forces(self) -> npt.NDArray[np.float64]:
        """Applied forces with constrained entries cleared."""
        return simplified_forces(self.forces, self.constraint_index)

    @property
    def first_iteration(self) -> Optional[Iteration]:
        return self.iterations.first()

    @property
    def current_iteration(self) -> Iteration:
        return self.iterations.current()

    def previous_iteration(self, n: int = 1) -> Iteration:
        return self.iterations.previous(n)

    @property
    def final_displacements(self) -> npt.NDArray[np.float64]:
        return self.iterations.current().displacements

    @property
    def stiffness(self) -> npt.NDArray[np.float64]:
        return self.iterations.current().stiffness

    @property
    def internal_forces(self) -> npt.NDArray[np.float64]:
        return self.iterations.current().internal_forces

    @property
    def required_iterations(self) -> int:
        """Number of iterations the step took."""
        return self.iterations.current().number

    def accumulated_displacement_increment(self, index: int = -1) -> npt.NDArray[np.float64]:
        """Displacement change from the start of the step up to the iteration at ``index``."""
        return self.iterations[index].displacements - self.initial_displacements

    def increment_load(self, load_factor_increment: float) -> None:
        self.load_factor += load_factor_increment
        self.forces = self.load_factor * self.full_forces

    # ---- Iterations ----

    def iterate(self, model) -> None:
        """
        Iterate until convergence or stop.

        Args:
            model: Model collaborator (FEMInput), refreshed at every iteration.
        """
        parameters = self.parameters

        # Renumber on re-entry
        for iteration in self.iterations:
            iteration.number = 0

        while True:
            # New iteration from the last one
            iteration = self.iterations.current().clone()
            iteration.number += 1
            self.iterations.append(iteration)

            # Load and displacement increments
            self.increment_load(self.strategy.load_increment(self, iteration))
            iteration.increment_displacements(self.strategy.displacement_increment(self, iteration))

            # Element refresh
            model.set_displacements(iteration.displacements)
            model.update_displacements()
            model.calculate_forces()

            # Stiffness update
            iteration.stiffness = np.array(self.strategy.update_stiffness(self, model), dtype=float)

            # Internal forces and residual
            internal = simplified_forces(model.assemble_internal_forces(), self.constraint_index)
            iteration.update_forces(self.applied_forces, internal)

            # Convergence
            first = self.iterations.first()
            iteration.calculate_convergence(self.applied_forces, first.displacement_increment)

            self.logger.debug(
                "Step %d, iteration %d: λ = %.6g, |R| = %.4e, force conv = %.4e, displ conv = %.4e",
                self.number, iteration.number, self.load_factor,
                np.linalg.norm(iteration.residual_forces),
                iteration.force_convergence, iteration.displacement_convergence
            )

            if iteration.check_convergence(parameters):
                self.converged = True
                self.logger.info("Load step %d converged in %d iterations (λ = %.6g)",
                                 self.number, iteration.number, self.load_factor)
                return

            if iteration.check_stop_condition(parameters):
                self.stop = True
                self.logger.warning("Load step %d stopped at iteration %d", self.number, iteration.number)
                return

    def set_results(self, monitored_index: Optional[int] = None) -> None:
        """Record the monitored displacement of the converged step."""
        if monitored_index is None:
            return
        self.monitored_displacement = MonitoredDisplacement(
            load_factor=self.load_factor,
            displacement=float(self.final_displacements[monitored_index])
        )
