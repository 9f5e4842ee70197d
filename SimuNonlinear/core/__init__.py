"""
SimuNonlinear.core - Nonlinear equilibrium iteration module.

Load stepping with Newton-Raphson, modified Newton-Raphson and secant
stiffness updates, plus arc-length continuation to follow the equilibrium
path past limit points.

Author: Alysson Barbosa
Created: 2026-01-10
Last Modified: 2026-02-02
"""

__version__ = "0.1.0"
__author__ = "Alysson Barbosa"
