from unittest import TestCase

import numpy as np
from numpy.testing import assert_allclose as numpy_allclose

from SimuNonlinear.core.iteration import Iteration
from SimuNonlinear.core.load_step import IterationHistory, LoadStep, StepStatus
from SimuNonlinear.core.parameters import AnalysisParameters, NonlinearSolver
from SimuNonlinear.elements.spring import BilinearSofteningLaw, LinearLaw, SpringModel
from SimuNonlinear.utils.helpers import secant_increment


def assert_allclose(actual, desired, err_msg=''):
    numpy_allclose(actual, desired, err_msg=err_msg, atol=1e-10, rtol=1e-7)


class CountingSpringModel(SpringModel):
    """Spring model counting the tangent assemblies."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.stiffness_calls = 0

    def assemble_stiffness(self):
        self.stiffness_calls += 1
        return super().assemble_stiffness()


def hardening_model(force=300.0, cls=SpringModel):
    # Peak at 100, then stiffness 500
    return cls(2, SpringModel.single(BilinearSofteningLaw(1000.0, 500.0, 0.1), 0.0).springs,
               [0.0, force], constraints=(0,))


class TestIterationHistory(TestCase):

    def test_accessors(self):
        history = IterationHistory()
        with self.assertRaises(IndexError):
            history.current()
        self.assertIsNone(history.first())

        for number in range(3):
            history.append(Iteration(displacements=[float(number)], stiffness=[[1.0]], number=number))

        self.assertEqual(len(history), 3)
        self.assertEqual(history.first().number, 1)
        self.assertEqual(history.current().number, 2)
        self.assertEqual(history.previous(1).number, 1)
        self.assertEqual(history.previous(2).number, 0)
        with self.assertRaises(IndexError):
            history.previous(3)


class TestLoadStep(TestCase):

    def test_linear_spring_single_iteration(self):
        model = SpringModel.single(LinearLaw(1000.0), 500.0)
        parameters = AnalysisParameters(number_of_steps=1, min_iterations=1)

        step = LoadStep.initial_step(model, model.force_vector, parameters)
        assert_allclose(step.current_iteration.displacements, [0.0, 0.5],
                        err_msg='The seed iteration holds the elastic predictor.')
        self.assertEqual(step.status, StepStatus.ITERATING)

        step.iterate(model)
        self.assertTrue(step.converged)
        self.assertFalse(step.stop)
        self.assertEqual(step.status, StepStatus.CONVERGED)
        self.assertEqual(step.required_iterations, 1)
        assert_allclose(step.final_displacements, [0.0, 0.5])
        assert_allclose(step.current_iteration.residual_forces, [0.0, 0.0])
        self.assertAlmostEqual(step.load_factor, 1.0)

    def test_constrained_dofs_stay_zero(self):
        model = SpringModel(2, SpringModel.single(LinearLaw(1000.0), 0.0).springs,
                            [123.0, 500.0], constraints=(0,))
        parameters = AnalysisParameters(number_of_steps=1, min_iterations=1)

        step = LoadStep.initial_step(model, model.force_vector, parameters)
        step.iterate(model)

        for iteration in step.iterations:
            self.assertEqual(iteration.displacements[0], 0.0)
            self.assertEqual(iteration.residual_forces[0], 0.0)
        assert_allclose(step.final_displacements, [0.0, 0.5])

    def test_next_step(self):
        model = SpringModel.single(LinearLaw(1000.0), 500.0)
        parameters = AnalysisParameters(number_of_steps=4)

        step = LoadStep.initial_step(model, model.force_vector, parameters)
        step.iterate(model)
        following = LoadStep.from_last_step(step)

        self.assertEqual(following.number, 2)
        self.assertAlmostEqual(following.load_factor, 0.5)
        assert_allclose(following.initial_displacements, step.final_displacements)
        assert_allclose(following.current_iteration.residual_forces, [0.0, -125.0],
                        err_msg='The seed residual uses the new applied forces.')
        self.assertEqual(following.current_iteration.number, 0)

        following.iterate(model)
        self.assertTrue(following.converged)
        assert_allclose(following.final_displacements, [0.0, 0.25])
        assert_allclose(following.accumulated_displacement_increment(), [0.0, 0.125])

    def test_hardening_spring(self):
        model = hardening_model()
        parameters = AnalysisParameters(number_of_steps=1)

        step = LoadStep.initial_step(model, model.force_vector, parameters)
        step.iterate(model)

        self.assertTrue(step.converged)
        assert_allclose(step.final_displacements, [0.0, 0.5])

    def test_modified_newton_raphson_assembles_once(self):
        model = hardening_model(cls=CountingSpringModel)
        parameters = AnalysisParameters(number_of_steps=1, solver=NonlinearSolver.MODIFIED_NEWTON_RAPHSON)

        step = LoadStep.initial_step(model, model.force_vector, parameters)
        model.stiffness_calls = 0
        step.iterate(model)

        self.assertTrue(step.converged)
        self.assertEqual(model.stiffness_calls, 1)
        for iteration in step.iterations[2:]:
            assert_allclose(iteration.stiffness, step.iterations[1].stiffness)

    def test_newton_raphson_assembles_every_iteration(self):
        model = hardening_model(cls=CountingSpringModel)
        parameters = AnalysisParameters(number_of_steps=1)

        step = LoadStep.initial_step(model, model.force_vector, parameters)
        model.stiffness_calls = 0
        step.iterate(model)

        self.assertEqual(model.stiffness_calls, step.required_iterations)

    def test_secant_update(self):
        model = hardening_model(cls=CountingSpringModel)
        parameters = AnalysisParameters(number_of_steps=1, max_iterations=5,
                                        solver=NonlinearSolver.SECANT)

        step = LoadStep.initial_step(model, model.force_vector, parameters)
        model.stiffness_calls = 0
        step.iterate(model)

        self.assertEqual(model.stiffness_calls, 0, 'The secant solver never assembles the tangent.')
        assert_allclose(step.iterations[1].stiffness, step.iterations[0].stiffness,
                        err_msg='The first iteration has no history for the secant update.')

        current, last = step.iterations[1], step.iterations[0]
        expected = current.stiffness + secant_increment(
            current.stiffness, current.displacements, last.displacements,
            current.residual_forces, last.residual_forces
        )
        assert_allclose(step.iterations[2].stiffness, expected)
        assert_allclose(step.iterations[2].stiffness,
                        np.array([[1000.0, -900.0], [-1000.0, 950.0]]))

    def test_tolerance_monotonicity(self):
        counts = []
        for tolerance in (1e-12, 1e-8, 1e-5, 1e-2):
            model = hardening_model()
            parameters = AnalysisParameters(number_of_steps=1, min_iterations=1,
                                            solver=NonlinearSolver.MODIFIED_NEWTON_RAPHSON,
                                            force_tolerance=tolerance,
                                            displacement_tolerance=tolerance)
            step = LoadStep.initial_step(model, model.force_vector, parameters)
            step.iterate(model)
            self.assertTrue(step.converged)
            counts.append(step.required_iterations)

        self.assertEqual(counts, sorted(counts, reverse=True),
                         'Looser tolerances must not need more iterations.')

    def test_stop_at_iteration_bound(self):
        model = SpringModel.single(BilinearSofteningLaw(1000.0, -200.0, 1.0), 1500.0)
        parameters = AnalysisParameters(number_of_steps=1, max_iterations=20)

        step = LoadStep.initial_step(model, model.force_vector, parameters)
        step.iterate(model)

        self.assertTrue(step.stop)
        self.assertFalse(step.converged)
        self.assertEqual(step.status, StepStatus.STOPPED)
        self.assertEqual(step.required_iterations, 20)

    def test_monitored_displacement(self):
        model = SpringModel.single(LinearLaw(1000.0), 500.0)
        step = LoadStep.initial_step(model, model.force_vector,
                                     AnalysisParameters(number_of_steps=1))
        step.iterate(model)

        step.set_results()
        self.assertIsNone(step.monitored_displacement)

        step.set_results(1)
        self.assertAlmostEqual(step.monitored_displacement.displacement, 0.5)
        self.assertAlmostEqual(step.monitored_displacement.load_factor, 1.0)

    def test_size_mismatch(self):
        with self.assertRaises(ValueError):
            LoadStep(1, np.zeros(2), 0.0, np.zeros(3), np.eye(2), (0,), AnalysisParameters())
        with self.assertRaises(ValueError):
            LoadStep(1, np.zeros(2), 0.0, np.zeros(2), np.eye(2), (5,), AnalysisParameters())
