"""Bayesian filtering and smoothing for state-space models."""

from statespace.data import (
    LinearGaussianSSM,
    NonlinearGaussianSSM,
    NonlinearSSM,
    StateSpaceModel,
    iter_simulation,
    simulate,
)
from statespace.errors import (
    FilterStepError,
    ModelConstructionError,
    NotPositiveDefiniteError,
    StateSpaceError,
    UnsupportedFilterError,
)
from statespace.models import (
    EnsembleState,
    FilteredTrajectory,
    GaussianState,
    ParticleState,
    filter_observations,
    loglikelihood,
    observe,
    predict,
    run_filter,
    smooth,
    update,
    update_trajectory,
)
from statespace.models.filters import (
    EKF,
    KF,
    PF,
    UKF,
    EnKF,
    EnsembleKalmanFilter,
    ExtendedKalmanFilter,
    FilterKind,
    KalmanFilter,
    ParticleFilter,
    PredictResult,
    UnscentedKalmanFilter,
    UpdateResult,
    get_filter,
)

__version__ = "0.1.0"

__all__ = [
    "EKF",
    "EnKF",
    "EnsembleKalmanFilter",
    "EnsembleState",
    "ExtendedKalmanFilter",
    "FilterKind",
    "FilterStepError",
    "FilteredTrajectory",
    "GaussianState",
    "KF",
    "KalmanFilter",
    "LinearGaussianSSM",
    "ModelConstructionError",
    "NonlinearGaussianSSM",
    "NonlinearSSM",
    "NotPositiveDefiniteError",
    "PF",
    "ParticleFilter",
    "ParticleState",
    "PredictResult",
    "StateSpaceError",
    "StateSpaceModel",
    "UKF",
    "UnscentedKalmanFilter",
    "UnsupportedFilterError",
    "UpdateResult",
    "filter_observations",
    "get_filter",
    "iter_simulation",
    "loglikelihood",
    "observe",
    "predict",
    "run_filter",
    "simulate",
    "smooth",
    "update",
    "update_trajectory",
]
