# Built-in libraries
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

# Third-party libraries
import numpy as np
import numpy.typing as npt
from tqdm import tqdm

# Local libraries
from SimuNonlinear.core.model import FEMInput
from SimuNonlinear.core.load_step import LoadStep
from SimuNonlinear.core.output import AnalysisOutput
from SimuNonlinear.core.simulation import SimulationStep
from SimuNonlinear.core.parameters import AnalysisParameters, SimulationParameters
from SimuNonlinear.utils.logger_mixin import LoggerMixin
from SimuNonlinear.utils import helpers


class AnalysisEvent(Enum):
    STEP_CONVERGED = "Step converged"
    STEP_ABORTED = "Step aborted"
    ANALYSIS_COMPLETE = "Analysis complete"
    ANALYSIS_ABORTED = "Analysis aborted"


class NonlinearAnalysis(LoggerMixin):
    """
    Nonlinear static analysis by load stepping and equilibrium iterations.

    Standard stepping applies ``number_of_steps`` equal load increments.
    Simulation mode (arc-length continuation) keeps adding steps until
    ``max_steps`` or ``max_load_factor``, following the equilibrium path past
    limit points.

    Args:
        model: Structural model (FEMInput).
        parameters: Iteration parameters.
        simulation: Arc-length parameters, used when ``simulate=True``.
        debug: Enables debug logging of every iteration.
        show_progress: Shows a progress bar over the load steps.
    """

    def __init__(self,
                 model: FEMInput,
                 parameters: Optional[AnalysisParameters] = None,
                 simulation: Optional[SimulationParameters] = None,
                 debug: bool = False,
                 show_progress: bool = False):
        self._setup_logger(debug)

        if not isinstance(model, FEMInput):
            raise TypeError(f"model must implement FEMInput, got {type(model).__name__}")

        self.model = model
        self.parameters = parameters or AnalysisParameters()
        self.simulation = simulation or SimulationParameters()
        self.show_progress = show_progress

        self._observers: Dict[AnalysisEvent, List[Callable]] = {event: [] for event in AnalysisEvent}
        self._reset()

    def _reset(self):
        n = self.model.number_of_dofs
        self.steps: List[LoadStep] = []
        self.stop = False
        self.stop_message: Optional[str] = None
        self.monitored_index: Optional[int] = None
        self.initial_arc_length: Optional[float] = None
        self.displacements = np.zeros(n)
        self.internal_forces = np.zeros(n)
        self.reactions = np.zeros(n)
        self.stiffness: Optional[npt.NDArray[np.float64]] = None
        self._full_forces = np.zeros(n)

    # ---- Events ----

    def subscribe(self, event: AnalysisEvent, callback: Callable) -> None:
        """Register ``callback(analysis, step)`` for an event."""
        self._observers[event].append(callback)

    def unsubscribe(self, event: AnalysisEvent, callback: Callable) -> None:
        self._observers[event].remove(callback)

    def _notify(self, event: AnalysisEvent, step: Optional[LoadStep] = None) -> None:
        for callback in list(self._observers[event]):
            callback(self, step)

    # ---- Steps ----

    @property
    def current_step(self) -> Optional[LoadStep]:
        return self.steps[-1] if self.steps else None

    @property
    def last_converged_step(self) -> Optional[LoadStep]:
        return next((step for step in reversed(self.steps) if step.converged), None)

    @property
    def load_factor(self) -> float:
        last = self.last_converged_step
        return last.load_factor if last else 0.0

    def execute(self, load_factor: float = 1.0, monitored_index: Optional[int] = None,
                simulate: bool = False) -> AnalysisOutput:
        """
        Run the analysis to completion or abort.

        Args:
            load_factor: Multiplier of the model's reference force vector.
            monitored_index: DOF whose displacement is recorded at each step.
            simulate: Use arc-length continuation instead of load stepping.

        Returns:
            The analysis output (see ``generate_output``).
        """
        n = self.model.number_of_dofs
        if monitored_index is not None and not 0 <= monitored_index < n:
            raise ValueError(f"monitored index {monitored_index} out of range for {n} DOFs")

        full_forces = load_factor * np.asarray(self.model.force_vector, dtype=float).reshape(-1)
        if full_forces.size != n:
            raise ValueError(f"force vector must have {n} entries, got {full_forces.size}")

        self._reset()
        self.monitored_index = monitored_index
        self._full_forces = full_forces

        # Undeformed model
        self.model.set_displacements(np.zeros(n))
        self.model.update_displacements()
        self.model.calculate_forces()

        # Elastic predictor
        if simulate:
            step = SimulationStep.initial_step(self.model, full_forces, self.parameters,
                                               self.simulation, debug=self.debug)
            self.initial_arc_length = step.arc_length
            total = self.simulation.max_steps
        else:
            step = LoadStep.initial_step(self.model, full_forces, self.parameters, debug=self.debug)
            total = self.parameters.number_of_steps
        self.steps.append(step)

        self.logger.info("Starting %s analysis (%s)",
                         "arc-length" if simulate else "load-controlled", self.parameters.solver.value)

        with tqdm(total=total, desc="Load steps", leave=False, disable=not self.show_progress) as progress:
            while True:
                step.iterate(self.model)

                if step.stop:
                    self.correct_results()
                    break

                step.set_results(monitored_index)
                self._store_state(step)
                self._notify(AnalysisEvent.STEP_CONVERGED, step)
                progress.update(1)

                if self._finished(step, simulate):
                    break

                step = self._next_step(step, simulate)
                self.steps.append(step)

        self._set_reactions()

        if not self.stop:
            if self.logger.isEnabledFor(logging.INFO):
                self.logger.info("Analysis complete at λ = %.6g\n%s", self.load_factor, self.summary())
            self._notify(AnalysisEvent.ANALYSIS_COMPLETE, self.current_step)

        return self.generate_output()

    def _finished(self, step: LoadStep, simulate: bool) -> bool:
        if not simulate:
            return step.number >= self.parameters.number_of_steps

        max_load_factor = self.simulation.max_load_factor
        if max_load_factor is not None and step.load_factor >= max_load_factor:
            self.logger.info("Maximum load factor reached at load step %d", step.number)
            return True
        return step.number >= self.simulation.max_steps

    def _next_step(self, step: LoadStep, simulate: bool) -> LoadStep:
        if simulate:
            return SimulationStep.from_last_step(step, self.simulation, self.initial_arc_length,
                                                 debug=self.debug)
        return LoadStep.from_last_step(step, debug=self.debug)

    def _store_state(self, step: LoadStep) -> None:
        self.displacements = step.final_displacements.copy()
        self.stiffness = step.stiffness.copy()
        self.internal_forces = step.internal_forces.copy()

    def correct_results(self) -> None:
        """
        Abort after a stopped step.

        Records the stop message and rolls the analysis and the model back to
        the last converged step (or to the undeformed state).
        """
        failed = self.current_step
        self.stop = True
        self.stop_message = f"Convergence not reached at load step {failed.number}"
        self.logger.warning(self.stop_message)
        self._notify(AnalysisEvent.STEP_ABORTED, failed)

        last = self.last_converged_step
        if last is not None:
            self._store_state(last)
            displacements = self.displacements
        else:
            displacements = np.zeros(self.model.number_of_dofs)

        # Model back to the converged state
        self.model.set_displacements(displacements)
        self.model.update_displacements()
        self.model.calculate_forces()

        if last is None:
            self.displacements = displacements
            self.stiffness = np.asarray(self.model.assemble_stiffness(), dtype=float)
            self.internal_forces = helpers.simplified_forces(self.model.assemble_internal_forces(),
                                                             self.model.constraint_index)

        self._notify(AnalysisEvent.ANALYSIS_ABORTED, failed)

    def _set_reactions(self) -> None:
        """Reactions (internal - applied forces) at the constrained DOFs."""
        internal = np.asarray(self.model.assemble_internal_forces(), dtype=float)
        applied = self.load_factor * self._full_forces
        index = list(self.model.constraint_index)

        self.reactions = np.zeros(self.model.number_of_dofs)
        self.reactions[index] = internal[index] - applied[index]
        self.model.set_reactions(self.reactions)

    # ---- Output ----

    def generate_output(self) -> AnalysisOutput:
        """Monitored load-displacement pairs of the converged steps."""
        converged = [step for step in self.steps if step.converged]
        return AnalysisOutput(
            monitored_displacements=[s.monitored_displacement for s in converged
                                     if s.monitored_displacement is not None],
            steps=list(self.steps),
            stop=self.stop,
            stop_message=self.stop_message
        )

    def summary(self, decimals: int = 6) -> str:
        rows = [
            [step.number, step.load_factor, step.required_iterations,
             step.current_iteration.force_convergence,
             step.current_iteration.displacement_convergence,
             step.status.value]
            for step in self.steps
        ]
        return helpers.steps_table(rows, decimals)

    # ---- Static helpers ----

    @staticmethod
    def calculate_convergence(numerator: npt.ArrayLike, reference: npt.ArrayLike) -> float:
        """Σ numerator² / (1 + Σ reference²)."""
        return helpers.convergence_measure(numerator, reference)

    @staticmethod
    def secant_increment(stiffness, current_displacements, last_displacements,
                         current_residual, last_residual) -> npt.NDArray[np.float64]:
        return helpers.secant_increment(stiffness, current_displacements, last_displacements,
                                        current_residual, last_residual)
