"""State estimates, filters, smoothing and the filtering driver."""

from statespace.models import filters
from statespace.models.distributions import EnsembleState, GaussianState, ParticleState
from statespace.models.driver import (
    default_filter,
    filter_observations,
    observe,
    predict,
    run_filter,
    update,
    update_trajectory,
)
from statespace.models.smoothing import smooth
from statespace.models.trajectory import FilteredTrajectory, loglikelihood

__all__ = [
    "EnsembleState",
    "FilteredTrajectory",
    "GaussianState",
    "ParticleState",
    "default_filter",
    "filter_observations",
    "filters",
    "loglikelihood",
    "observe",
    "predict",
    "run_filter",
    "smooth",
    "update",
    "update_trajectory",
]
