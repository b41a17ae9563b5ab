"""Unscented Kalman filter (UKF)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import tensorflow as tf

from statespace.constants import DEFAULT_UKF_ALPHA, DEFAULT_UKF_BETA, DEFAULT_UKF_KAPPA
from statespace.data.base import StateSpaceModel
from statespace.linalg import cho_solve, cholesky, gaussian_log_prob, psd_sqrt, symmetrize
from statespace.models.distributions import GaussianState
from statespace.models.filters.base import (
    BayesFilter,
    FilterKind,
    PredictResult,
    UpdateResult,
    register_filter,
)


@register_filter(FilterKind.UNSCENTED)
@dataclass
class UnscentedKalmanFilter(BayesFilter):
    """UKF with additive process and observation noise.

    Predict draws ``2n+1`` sigma points from ``N(m, P)``, pushes them through
    the transition and adds ``V`` to the reconstituted covariance. Update
    redraws ``2n+1`` points from the predicted Gaussian.

    With ``augment_process_noise=True`` predict instead draws ``4n+1`` points
    from the state stacked with the process noise. The propagated points then
    carry the full predicted covariance and :meth:`update` reuses them (via
    :attr:`PredictResult.sigma_points`) without a second factorisation.

    Attributes:
        alpha: Spread of the sigma points around the mean.
        beta: Prior-knowledge term added to the central covariance weight
            (2 is optimal for Gaussians).
        kappa: Secondary scaling parameter.
        augment_process_noise: Propagate the process noise through the sigma
            points and reuse them in the update.
    """

    alpha: float = DEFAULT_UKF_ALPHA
    beta: float = DEFAULT_UKF_BETA
    kappa: float = DEFAULT_UKF_KAPPA
    augment_process_noise: bool = False

    def __post_init__(self) -> None:
        if self.alpha <= 0.0:
            raise ValueError("alpha must be positive")

    def _predict(
        self,
        model: StateSpaceModel,
        state: GaussianState,
        t: int,
        control: Optional[tf.Tensor],
    ) -> PredictResult:
        n = model.state_dim
        dtype = state.mean.dtype
        state_scale = cholesky(state.cov, "state covariance")
        shift = model.control_input(control, t)[tf.newaxis, :]

        if self.augment_process_noise:
            zeros = tf.zeros((n, n), dtype=dtype)
            scale = tf.concat(
                [
                    tf.concat([state_scale, zeros], axis=1),
                    tf.concat([zeros, psd_sqrt(model.process_noise_cov(t))], axis=1),
                ],
                axis=0,
            )
            mean = tf.concat([state.mean, tf.zeros(n, dtype=dtype)], axis=0)
            weights_mean, weights_cov, spread = unscented_weights(
                2 * n, self.alpha, self.beta, self.kappa, dtype
            )
            points = sigma_points(mean, scale, spread)
            state_points, noise_points = tf.split(points, [n, n], axis=-1)
            propagated = model.transition_batch(state_points, t) + shift + noise_points
            mean_pred = weighted_mean(propagated, weights_mean)
            cov_pred = weighted_cov(weights_cov, propagated - mean_pred)
        else:
            weights_mean, weights_cov, spread = unscented_weights(
                n, self.alpha, self.beta, self.kappa, dtype
            )
            state_points = sigma_points(state.mean, state_scale, spread)
            propagated = model.transition_batch(state_points, t) + shift
            mean_pred = weighted_mean(propagated, weights_mean)
            cov_pred = weighted_cov(weights_cov, propagated - mean_pred)
            cov_pred = cov_pred + model.process_noise_cov(t)

        cross_cov = weighted_cov(
            weights_cov, state_points - state.mean, propagated - mean_pred
        )
        return PredictResult(
            distribution=GaussianState(mean_pred, symmetrize(cov_pred)),
            sigma_points=propagated,
            cross_covariance=cross_cov,
        )

    def _reusable_points(
        self,
        model: StateSpaceModel,
        predicted: GaussianState,
        predict_result: Optional[PredictResult],
    ) -> Optional[tf.Tensor]:
        if (
            not self.augment_process_noise
            or predict_result is None
            or predict_result.distribution is not predicted
            or predict_result.sigma_points is None
        ):
            return None
        points = predict_result.sigma_points
        if int(points.shape[0]) != 4 * model.state_dim + 1:
            return None
        return points

    def _update(
        self,
        model: StateSpaceModel,
        predicted: GaussianState,
        observation: tf.Tensor,
        t: int,
        predict_result: Optional[PredictResult],
    ) -> UpdateResult:
        dtype = predicted.mean.dtype
        points = self._reusable_points(model, predicted, predict_result)
        if points is not None:
            weights_mean, weights_cov, _ = unscented_weights(
                2 * model.state_dim, self.alpha, self.beta, self.kappa, dtype
            )
        else:
            weights_mean, weights_cov, spread = unscented_weights(
                model.state_dim, self.alpha, self.beta, self.kappa, dtype
            )
            points = sigma_points(
                predicted.mean, cholesky(predicted.cov, "predicted covariance"), spread
            )

        obs_points = model.observation_batch(points, t)
        obs_mean = weighted_mean(obs_points, weights_mean)
        obs_dev = obs_points - obs_mean
        obs_cov = symmetrize(
            weighted_cov(weights_cov, obs_dev) + model.observation_noise_cov(t)
        )
        cross_cov = weighted_cov(weights_cov, points - predicted.mean, obs_dev)

        chol = cholesky(obs_cov, "innovation covariance")
        gain = tf.transpose(cho_solve(chol, tf.transpose(cross_cov)))

        innovation = observation - obs_mean
        mean_filt = predicted.mean + tf.linalg.matvec(gain, innovation)
        cov_filt = predicted.cov - gain @ obs_cov @ tf.transpose(gain)

        return UpdateResult(
            distribution=GaussianState(mean_filt, symmetrize(cov_filt)),
            log_likelihood=float(
                gaussian_log_prob(observation, obs_mean, obs_cov, "innovation covariance")
            ),
            innovation=innovation,
            innovation_cov=obs_cov,
            gain=gain,
        )


def unscented_weights(
    dim: int,
    alpha: float,
    beta: float,
    kappa: float,
    dtype: tf.DType = tf.float64,
) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor]:
    """Mean weights, covariance weights and spread ``sqrt(dim + lambda)``.

    ``lambda = alpha^2 (dim + kappa) - dim``; the ``2*dim`` outer points share
    the weight ``1 / (2 (dim + lambda))``.
    """
    dim_f = tf.cast(dim, dtype)
    alpha_sq = tf.cast(alpha, dtype) ** 2
    scaled_dim = alpha_sq * (dim_f + tf.cast(kappa, dtype))
    lambda_val = scaled_dim - dim_f

    outer = tf.fill((2 * dim,), 0.5 / scaled_dim)
    w0_mean = lambda_val / scaled_dim
    w0_cov = w0_mean + 1.0 - alpha_sq + tf.cast(beta, dtype)
    weights_mean = tf.concat([[w0_mean], outer], axis=0)
    weights_cov = tf.concat([[w0_cov], outer], axis=0)
    return weights_mean, weights_cov, tf.sqrt(scaled_dim)


def sigma_points(mean: tf.Tensor, scale: tf.Tensor, spread: tf.Tensor) -> tf.Tensor:
    """``[mean, mean + spread * scale[:, i], mean - spread * scale[:, i]]`` as rows."""
    offsets = spread * tf.transpose(scale)
    return tf.concat(
        [mean[tf.newaxis, :], mean + offsets, mean - offsets], axis=0
    )


def weighted_mean(points: tf.Tensor, weights: tf.Tensor) -> tf.Tensor:
    return tf.tensordot(weights, points, axes=1)


def weighted_cov(
    weights: tf.Tensor, deviations: tf.Tensor, other: Optional[tf.Tensor] = None
) -> tf.Tensor:
    """``sum_i w_i d_i e_i^T``; ``other`` defaults to ``deviations``."""
    other = deviations if other is None else other
    return tf.einsum("i,ij,ik->jk", weights, deviations, other)


__all__ = [
    "UnscentedKalmanFilter",
    "sigma_points",
    "unscented_weights",
    "weighted_cov",
    "weighted_mean",
]
