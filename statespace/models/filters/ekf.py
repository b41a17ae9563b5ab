"""Extended Kalman filter: first-order linearisation about the current mean."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import tensorflow as tf

from statespace.data.base import StateSpaceModel
from statespace.linalg import symmetrize
from statespace.models.distributions import GaussianState
from statespace.models.filters.base import (
    BayesFilter,
    FilterKind,
    PredictResult,
    UpdateResult,
    register_filter,
)
from statespace.models.filters.kalman import linear_gaussian_update


@register_filter(FilterKind.EXTENDED)
@dataclass
class ExtendedKalmanFilter(BayesFilter):
    """EKF for nonlinear Gaussian models.

    Means go through the nonlinear maps (``x' = f(x)``, ``y_hat = g(x')``);
    covariances through the Jacobians evaluated at the current mean, obtained
    by automatic differentiation unless the model supplies analytic ones. One
    linearisation per step, no relinearisation.
    """

    joseph: bool = True

    def _predict(
        self,
        model: StateSpaceModel,
        state: GaussianState,
        t: int,
        control: Optional[tf.Tensor],
    ) -> PredictResult:
        transition_jac = model.process_jacobian(state.mean, t)
        mean_pred = model.transition(state.mean, t) + model.control_input(control, t)
        cross_cov = state.cov @ tf.transpose(transition_jac)
        cov_pred = transition_jac @ cross_cov + model.process_noise_cov(t)
        return PredictResult(
            distribution=GaussianState(mean_pred, symmetrize(cov_pred)),
            cross_covariance=cross_cov,
        )

    def _update(
        self,
        model: StateSpaceModel,
        predicted: GaussianState,
        observation: tf.Tensor,
        t: int,
        predict_result: Optional[PredictResult],
    ) -> UpdateResult:
        observation_jac = model.observation_jacobian(predicted.mean, t)
        innovation = observation - model.observation(predicted.mean, t)
        return linear_gaussian_update(
            predicted.mean,
            predicted.cov,
            innovation,
            observation_jac,
            model.observation_noise_cov(t),
            joseph=self.joseph,
        )


__all__ = ["ExtendedKalmanFilter"]
