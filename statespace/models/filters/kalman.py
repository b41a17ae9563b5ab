"""Kalman filter for linear Gaussian state-space models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import tensorflow as tf

from statespace.data.lgssm import LinearGaussianSSM
from statespace.linalg import cho_solve, cholesky, symmetrize, tfd
from statespace.models.distributions import GaussianState
from statespace.models.filters.base import (
    BayesFilter,
    FilterKind,
    PredictResult,
    UpdateResult,
    register_filter,
)


def joseph_update(
    cov_pred: tf.Tensor, gain: tf.Tensor, obs_matrix: tf.Tensor, obs_cov: tf.Tensor
) -> tf.Tensor:
    """Joseph-stabilised covariance update ``(I-KH) P (I-KH)^T + K R K^T``."""
    identity = tf.eye(cov_pred.shape[0], dtype=cov_pred.dtype)
    joseph_factor = identity - gain @ obs_matrix
    return joseph_factor @ cov_pred @ tf.transpose(joseph_factor) + gain @ obs_cov @ tf.transpose(gain)


def standard_update(
    cov_pred: tf.Tensor, gain: tf.Tensor, obs_matrix: tf.Tensor
) -> tf.Tensor:
    """Covariance update ``(I - KH) P``."""
    identity = tf.eye(cov_pred.shape[0], dtype=cov_pred.dtype)
    return (identity - gain @ obs_matrix) @ cov_pred


def linear_gaussian_update(
    mean_pred: tf.Tensor,
    cov_pred: tf.Tensor,
    innovation: tf.Tensor,
    obs_matrix: tf.Tensor,
    obs_cov: tf.Tensor,
    joseph: bool = True,
) -> UpdateResult:
    """Kalman update given an innovation and the (linearised) observation matrix.

    The log-likelihood increment is the density of ``innovation`` under
    ``N(0, S)`` with ``S = H P H^T + R``.
    """
    innovation_cov = symmetrize(
        obs_matrix @ cov_pred @ tf.transpose(obs_matrix) + obs_cov
    )
    chol = cholesky(innovation_cov, "innovation covariance")
    # K = P H^T S^{-1}, solved as S K^T = H P
    gain = tf.transpose(cho_solve(chol, obs_matrix @ cov_pred))

    mean_filt = mean_pred + tf.linalg.matvec(gain, innovation)
    if joseph:
        cov_filt = joseph_update(cov_pred, gain, obs_matrix, obs_cov)
    else:
        cov_filt = standard_update(cov_pred, gain, obs_matrix)

    log_likelihood = tfd.MultivariateNormalTriL(
        loc=tf.zeros_like(innovation), scale_tril=chol
    ).log_prob(innovation)

    return UpdateResult(
        distribution=GaussianState(mean_filt, symmetrize(cov_filt)),
        log_likelihood=float(log_likelihood),
        innovation=innovation,
        innovation_cov=innovation_cov,
        gain=gain,
    )


@register_filter(FilterKind.KALMAN)
@dataclass
class KalmanFilter(BayesFilter):
    """Exact Gaussian filter for :class:`LinearGaussianSSM`.

    Attributes:
        joseph: Use the Joseph-stabilised covariance update instead of
            ``(I - KG) P``.
    """

    joseph: bool = True

    def _predict(
        self,
        model: LinearGaussianSSM,
        state: GaussianState,
        t: int,
        control: Optional[tf.Tensor],
    ) -> PredictResult:
        transition_matrix = model.process_jacobian(None, t)
        mean_pred = tf.linalg.matvec(transition_matrix, state.mean)
        mean_pred += model.control_input(control, t)
        cross_cov = state.cov @ tf.transpose(transition_matrix)
        cov_pred = transition_matrix @ cross_cov + model.process_noise_cov(t)
        return PredictResult(
            distribution=GaussianState(mean_pred, symmetrize(cov_pred)),
            cross_covariance=cross_cov,
        )

    def _update(
        self,
        model: LinearGaussianSSM,
        predicted: GaussianState,
        observation: tf.Tensor,
        t: int,
        predict_result: Optional[PredictResult],
    ) -> UpdateResult:
        observation_matrix = model.observation_jacobian(None, t)
        innovation = observation - tf.linalg.matvec(observation_matrix, predicted.mean)
        return linear_gaussian_update(
            predicted.mean,
            predicted.cov,
            innovation,
            observation_matrix,
            model.observation_noise_cov(t),
            joseph=self.joseph,
        )


__all__ = [
    "KalmanFilter",
    "joseph_update",
    "linear_gaussian_update",
    "standard_update",
]
