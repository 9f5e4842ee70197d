from unittest import TestCase

import numpy as np
from numpy.testing import assert_allclose as numpy_allclose

from SimuNonlinear.core.analysis import AnalysisEvent, NonlinearAnalysis
from SimuNonlinear.core.parameters import AnalysisParameters, SimulationParameters
from SimuNonlinear.core.simulation import SimulationStep
from SimuNonlinear.core.strategies import ArcLengthStrategy, arc_length_roots, select_root
from SimuNonlinear.elements.spring import BilinearSofteningLaw, LinearLaw, Spring, SpringModel


def assert_allclose(actual, desired, err_msg=''):
    numpy_allclose(actual, desired, err_msg=err_msg, atol=1e-10, rtol=1e-7)


def softening_spring():
    return SpringModel.single(BilinearSofteningLaw(1000.0, -200.0, 1.0), 1500.0)


class TestRootSelection(TestCase):

    def test_direction_consistent_root(self):
        # Post-peak corrector: roots -0.04 and 0.0
        accumulated = np.array([0.0, 0.15])
        root = select_root(accumulated, np.array([0.0, -0.3]), np.array([0.0, -7.5]), 0.15)
        self.assertAlmostEqual(root, -0.04)

        # Pre-peak corrector: roots 0.0 and -0.2
        root = select_root(accumulated, np.zeros(2), np.array([0.0, 1.5]), 0.15)
        self.assertAlmostEqual(root, 0.0)

    def test_closest_to_linear_solution(self):
        # No accumulated increment: both roots keep the direction
        root = select_root(np.zeros(1), np.array([0.5]), np.array([1.0]), 1.0)
        self.assertAlmostEqual(root, 0.5)

        root = select_root(np.zeros(1), np.zeros(1), np.array([1.0]), 1.0)
        self.assertAlmostEqual(abs(root), 1.0)

    def test_complex_roots(self):
        base = np.array([2.0, 0.0])
        self.assertIsNone(arc_length_roots(base, np.zeros(2), np.array([0.0, 1.0]), 1.0))
        self.assertTrue(np.isnan(select_root(base, np.zeros(2), np.array([0.0, 1.0]), 1.0)))


class TestSimulationStep(TestCase):

    def test_initial_step(self):
        model = softening_spring()
        step = SimulationStep.initial_step(model, model.force_vector, AnalysisParameters(number_of_steps=10))

        self.assertAlmostEqual(step.arc_length, 0.15)
        self.assertAlmostEqual(step.load_factor, 0.1)
        self.assertEqual(step.sign, 1)
        self.assertIsInstance(step.strategy, ArcLengthStrategy)
        self.assertIs(step.strategy.logger, step.logger)
        seed = step.current_iteration
        self.assertAlmostEqual(seed.load_factor_increment, 0.1)
        assert_allclose(seed.increment_from_external, [0.0, 1.5])
        assert_allclose(seed.displacements, [0.0, 0.15])

    def test_no_free_displacement(self):
        model = SpringModel(2, SpringModel.single(LinearLaw(1.0), 0.0).springs, [0.0, 0.0])
        with self.assertRaises(ValueError):
            SimulationStep.initial_step(model, model.force_vector, AnalysisParameters())

    def test_invalid_arc_length(self):
        with self.assertRaises(ValueError):
            SimulationStep(1, np.zeros(2), 0.0, np.zeros(2), np.eye(2), (0,),
                           AnalysisParameters(), arc_length=0.0)


class TestArcLengthAnalysis(TestCase):

    def setUp(self):
        self.model = softening_spring()
        self.analysis = NonlinearAnalysis(
            self.model,
            AnalysisParameters(number_of_steps=10, max_iterations=50),
            SimulationParameters(max_steps=12, max_arc_length_ratio=1.0)
        )
        self.output = self.analysis.execute(monitored_index=1, simulate=True)

    def test_passes_the_peak(self):
        self.assertFalse(self.output.stop)
        self.assertIsNone(self.output.stop_message)
        self.assertTrue(all(step.converged for step in self.analysis.steps))
        self.assertEqual(len(self.output.monitored_displacements), 12)

        assert_allclose(
            self.output.load_factors,
            [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.66, 0.64, 0.62, 0.60, 0.58, 0.56],
            err_msg='The load factor must decrease after the peak.'
        )
        assert_allclose(
            self.output.displacements,
            [0.15, 0.3, 0.45, 0.6, 0.75, 0.9, 1.05, 1.2, 1.35, 1.5, 1.65, 1.8]
        )

        peak = int(np.argmax(self.output.load_factors))
        self.assertTrue(np.all(np.diff(self.output.load_factors[peak:]) < 0))

    def test_sign_flips_after_limit_point(self):
        signs = [step.sign for step in self.analysis.steps]
        self.assertEqual(signs, [1] * 7 + [-1] * 5)

    def test_arc_length_stays_at_the_bound(self):
        for step in self.analysis.steps:
            self.assertAlmostEqual(step.arc_length, 0.15)
            self.assertEqual(step.required_iterations, 2)

    def test_load_factor_budget(self):
        for step in self.analysis.steps:
            self.assertAlmostEqual(
                step.accumulated_load_factor_increment(),
                step.load_factor - step.initial_load_factor,
                msg=f'Load factor increments of step {step.number} must add up to its net change.'
            )

    def test_arc_radius_grows_by_default(self):
        analysis = NonlinearAnalysis(
            softening_spring(),
            AnalysisParameters(number_of_steps=10),
            SimulationParameters(max_steps=2)
        )
        output = analysis.execute(monitored_index=1, simulate=True)

        self.assertEqual(analysis.steps[0].required_iterations, 2)
        self.assertAlmostEqual(analysis.steps[1].arc_length, 0.15 * 5 / 2,
                               msg='The radius scales by desired/required iterations.')
        assert_allclose(output.load_factors, [0.1, 0.35])
        assert_allclose(output.displacements, [0.15, 0.525])

    def test_arc_radius_grows_up_to_the_bound(self):
        analysis = NonlinearAnalysis(
            softening_spring(),
            AnalysisParameters(number_of_steps=10),
            SimulationParameters(max_steps=2, max_arc_length_ratio=2.0)
        )
        output = analysis.execute(monitored_index=1, simulate=True)

        self.assertAlmostEqual(analysis.steps[1].arc_length, 0.3)
        assert_allclose(output.load_factors, [0.1, 0.3])
        assert_allclose(output.displacements, [0.15, 0.45])

    def test_max_load_factor(self):
        analysis = NonlinearAnalysis(
            softening_spring(),
            AnalysisParameters(number_of_steps=10),
            SimulationParameters(max_steps=50, max_load_factor=0.35, max_arc_length_ratio=1.0)
        )
        output = analysis.execute(monitored_index=1, simulate=True)

        self.assertFalse(output.stop)
        self.assertEqual(len(analysis.steps), 4)
        self.assertAlmostEqual(output.load_factors[-1], 0.4)


class LockedForceModel(SpringModel):
    """Two independent springs; DOF 1 carries an internal force no load can balance."""

    def __init__(self):
        super().__init__(3, [Spring(0, 1, LinearLaw(1000.0)), Spring(0, 2, LinearLaw(1000.0))],
                         [0.0, 0.0, 1000.0], constraints=(0,))

    def assemble_internal_forces(self):
        forces = super().assemble_internal_forces()
        forces[1] += 1000.0
        return forces


class TestArcWithoutRealRoot(TestCase):

    def setUp(self):
        self.model = LockedForceModel()
        self.analysis = NonlinearAnalysis(self.model, AnalysisParameters(number_of_steps=10))
        self.events = []
        for event in AnalysisEvent:
            self.analysis.subscribe(
                event, lambda analysis, step, event=event: self.events.append((event, step.number))
            )
        self.output = self.analysis.execute(monitored_index=2, simulate=True)

    def test_step_stops(self):
        step = self.analysis.steps[0]
        self.assertEqual(len(self.analysis.steps), 1)
        self.assertAlmostEqual(step.arc_length, 0.1)
        self.assertTrue(step.stop)
        self.assertFalse(step.converged)
        self.assertEqual(step.required_iterations, 1)
        self.assertTrue(np.isnan(step.current_iteration.load_factor_increment),
                        'The off-load residual puts the arc out of reach.')

    def test_analysis_rolls_back(self):
        self.assertTrue(self.output.stop)
        self.assertEqual(self.output.stop_message, "Convergence not reached at load step 1")
        self.assertEqual(self.output.monitored_displacements, [])
        assert_allclose(self.analysis.displacements, [0.0, 0.0, 0.0])
        assert_allclose(self.model.displacements, [0.0, 0.0, 0.0])
        self.assertEqual(self.events, [(AnalysisEvent.STEP_ABORTED, 1),
                                       (AnalysisEvent.ANALYSIS_ABORTED, 1)])
