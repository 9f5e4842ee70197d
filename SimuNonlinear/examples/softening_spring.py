from typing import Optional

from SimuNonlinear.core.analysis import NonlinearAnalysis
from SimuNonlinear.core.output import AnalysisOutput
from SimuNonlinear.core.parameters import AnalysisParameters, SimulationParameters
from SimuNonlinear.elements.spring import BilinearSofteningLaw, SpringModel


def create_softening_spring(k1: float = 1000.0, k2: float = -200.0,
                            peak_elongation: float = 1.0,
                            reference_force: float = 1500.0) -> SpringModel:
    """
    Single softening spring fixed at DOF 0 and loaded at DOF 1.

    Parameters
    ----------
    k1 : float
        Pre-peak stiffness.
    k2 : float
        Post-peak stiffness (negative for softening).
    peak_elongation : float
        Elongation at the peak force (k1 * peak_elongation).
    reference_force : float
        Reference load; above the peak force the load-controlled analysis fails.

    Returns
    -------
    SpringModel
    """
    return SpringModel.single(BilinearSofteningLaw(k1, k2, peak_elongation), reference_force)


def run(simulate: bool, parameters: Optional[AnalysisParameters] = None,
        simulation: Optional[SimulationParameters] = None,
        debug: bool = False) -> AnalysisOutput:
    parameters = parameters or AnalysisParameters(number_of_steps=10, max_iterations=50)
    simulation = simulation or SimulationParameters(max_steps=15, max_arc_length_ratio=1.0)

    analysis = NonlinearAnalysis(create_softening_spring(), parameters, simulation,
                                 debug=debug, show_progress=True)
    output = analysis.execute(monitored_index=1, simulate=simulate)

    print(analysis.summary())
    print(output.table())
    if output.stop:
        print(output.stop_message)

    return output


if __name__ == "__main__":
    print("Load control")
    run(simulate=False)

    print("\nArc length")
    run(simulate=True)
