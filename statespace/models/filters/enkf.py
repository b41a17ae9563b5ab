"""Ensemble Kalman filter (EnKF) with perturbed observations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import tensorflow as tf

from statespace.constants import DEFAULT_NUM_MEMBERS
from statespace.data.base import StateSpaceModel
from statespace.linalg import cho_solve, cholesky, gaussian_log_prob, psd_sqrt, symmetrize
from statespace.models.distributions import EnsembleState, GaussianState
from statespace.models.filters.base import (
    BayesFilter,
    FilterKind,
    PredictResult,
    UpdateResult,
    register_filter,
)

LOGGER = logging.getLogger(__name__)


@register_filter(FilterKind.ENSEMBLE)
@dataclass
class EnsembleKalmanFilter(BayesFilter):
    """Stochastic EnKF.

    Members are propagated individually through the process map with
    independently sampled process noise. The update perturbs each member's
    predicted observation with sampled observation noise, forms the gain from
    the ensemble sample covariances and shifts every member by its own
    innovation. No Jacobians are needed.

    Attributes:
        num_members: Ensemble size used when starting from a Gaussian prior.
        seed: Optional op-level seed for the initial draw.
    """

    num_members: int = DEFAULT_NUM_MEMBERS
    seed: Optional[int] = None

    state_type = EnsembleState

    def __post_init__(self) -> None:
        if self.num_members < 2:
            raise ValueError("num_members must be at least 2")

    def initialize(self, initial_state: Any) -> EnsembleState:
        if isinstance(initial_state, GaussianState):
            ensemble = EnsembleState.from_gaussian(
                initial_state, self.num_members, seed=self.seed
            )
        else:
            ensemble = super().initialize(initial_state)
        if ensemble.num_members <= ensemble.dim:
            LOGGER.warning(
                "Ensemble of %d members for a %d-D state; sample covariances "
                "will be rank deficient",
                ensemble.num_members,
                ensemble.dim,
            )
        return ensemble

    def _predict(
        self,
        model: StateSpaceModel,
        state: EnsembleState,
        t: int,
        control: Optional[tf.Tensor],
    ) -> PredictResult:
        members = state.members
        noise = tf.random.normal(
            (state.num_members, model.state_dim), dtype=members.dtype
        )
        noise = noise @ tf.transpose(psd_sqrt(model.process_noise_cov(t)))
        propagated = (
            model.transition_batch(members, t)
            + model.control_input(control, t)[tf.newaxis, :]
            + noise
        )
        return PredictResult(distribution=EnsembleState(propagated))

    def _update(
        self,
        model: StateSpaceModel,
        predicted: EnsembleState,
        observation: tf.Tensor,
        t: int,
        predict_result: Optional[PredictResult],
    ) -> UpdateResult:
        members = predicted.members
        num_members = predicted.num_members
        denom = tf.cast(num_members - 1, members.dtype)
        obs_cov = model.observation_noise_cov(t)

        predicted_obs = model.observation_batch(members, t)
        obs_noise = tf.random.normal(
            (num_members, model.observation_dim), dtype=members.dtype
        )
        perturbed_obs = predicted_obs + obs_noise @ tf.transpose(psd_sqrt(obs_cov))

        state_anomalies = predicted.anomalies
        obs_anomalies = perturbed_obs - tf.reduce_mean(perturbed_obs, axis=0)
        cross_cov = tf.transpose(state_anomalies) @ obs_anomalies / denom
        innovation_cov = symmetrize(tf.transpose(obs_anomalies) @ obs_anomalies / denom)

        chol = cholesky(innovation_cov, "ensemble innovation covariance")
        gain = tf.transpose(cho_solve(chol, tf.transpose(cross_cov)))

        innovations = observation[tf.newaxis, :] - perturbed_obs
        updated = members + innovations @ tf.transpose(gain)

        # Likelihood uses the noise-free predictions plus the exact observation noise.
        obs_mean = tf.reduce_mean(predicted_obs, axis=0)
        centred = predicted_obs - obs_mean
        marginal_cov = symmetrize(tf.transpose(centred) @ centred / denom + obs_cov)
        log_likelihood = gaussian_log_prob(
            observation, obs_mean, marginal_cov, "ensemble observation covariance"
        )

        return UpdateResult(
            distribution=EnsembleState(updated),
            log_likelihood=float(log_likelihood),
            innovation=observation - obs_mean,
            innovation_cov=innovation_cov,
            gain=gain,
        )


__all__ = ["EnsembleKalmanFilter"]
