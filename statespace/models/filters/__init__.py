"""Bayesian filters for state-space models."""

from statespace.models.filters.base import (
    SUPPORTED_MODELS,
    BayesFilter,
    FilterKind,
    PredictResult,
    UpdateResult,
    get_filter,
    register_filter,
)
from statespace.models.filters.ekf import ExtendedKalmanFilter
from statespace.models.filters.enkf import EnsembleKalmanFilter
from statespace.models.filters.kalman import KalmanFilter
from statespace.models.filters.particle import ParticleFilter
from statespace.models.filters.ukf import UnscentedKalmanFilter

KF = KalmanFilter
EKF = ExtendedKalmanFilter
UKF = UnscentedKalmanFilter
EnKF = EnsembleKalmanFilter
PF = ParticleFilter

__all__ = [
    "BayesFilter",
    "EKF",
    "EnKF",
    "EnsembleKalmanFilter",
    "ExtendedKalmanFilter",
    "FilterKind",
    "KF",
    "KalmanFilter",
    "PF",
    "ParticleFilter",
    "PredictResult",
    "SUPPORTED_MODELS",
    "UKF",
    "UnscentedKalmanFilter",
    "UpdateResult",
    "get_filter",
    "register_filter",
]
