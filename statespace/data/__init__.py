"""State-space model definitions and simulation utilities."""

from statespace.data.base import StateSpaceModel
from statespace.data.lgssm import LinearGaussianSSM
from statespace.data.nonlinear_ssm import NonlinearGaussianSSM, NonlinearSSM
from statespace.data.simulation import default_random_normal, iter_simulation, simulate

__all__ = [
    "LinearGaussianSSM",
    "NonlinearGaussianSSM",
    "NonlinearSSM",
    "StateSpaceModel",
    "default_random_normal",
    "iter_simulation",
    "simulate",
]
