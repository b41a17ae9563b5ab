"""Bootstrap (sequential importance resampling) particle filter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import tensorflow as tf

from statespace.constants import DEFAULT_NUM_PARTICLES, DEFAULT_RESAMPLE_THRESHOLD
from statespace.data.base import StateSpaceModel
from statespace.linalg import log_sum_exp, psd_sqrt, to_tensor
from statespace.models.distributions import GaussianState, ParticleState
from statespace.models.filters.base import (
    BayesFilter,
    FilterKind,
    PredictResult,
    UpdateResult,
    register_filter,
)

LOGGER = logging.getLogger(__name__)

LogLikelihoodFn = Callable[[tf.Tensor, tf.Tensor, int], tf.Tensor]

RESAMPLING_SCHEMES = ("systematic", "multinomial")


@register_filter(FilterKind.PARTICLE)
@dataclass
class ParticleFilter(BayesFilter):
    """SIR particle filter using the process model as proposal.

    Attributes:
        num_particles: Particle count used when starting from a Gaussian prior.
        resample_threshold: Resample when the effective sample size falls
            below this fraction of the particle count; 0 disables resampling.
        resampling: ``"systematic"`` or ``"multinomial"``.
        log_likelihood_fn: ``(observation, particles, t) -> [N]`` log-densities.
            Defaults to the model's :meth:`observation_log_prob`.
        seed: Optional op-level seed for the initial draw.
    """

    num_particles: int = DEFAULT_NUM_PARTICLES
    resample_threshold: float = DEFAULT_RESAMPLE_THRESHOLD
    resampling: str = "systematic"
    log_likelihood_fn: Optional[LogLikelihoodFn] = None
    seed: Optional[int] = None

    state_type = ParticleState

    def __post_init__(self) -> None:
        if self.num_particles <= 0:
            raise ValueError("num_particles must be positive")
        if not 0.0 <= self.resample_threshold <= 1.0:
            raise ValueError("resample_threshold must lie in [0, 1]")
        if self.resampling not in RESAMPLING_SCHEMES:
            raise ValueError(
                f"resampling must be one of {RESAMPLING_SCHEMES}, got {self.resampling!r}"
            )

    def initialize(self, initial_state: Any) -> ParticleState:
        if isinstance(initial_state, GaussianState):
            return ParticleState.from_gaussian(
                initial_state, self.num_particles, seed=self.seed
            )
        return super().initialize(initial_state)

    def _predict(
        self,
        model: StateSpaceModel,
        state: ParticleState,
        t: int,
        control: Optional[tf.Tensor],
    ) -> PredictResult:
        particles = state.particles
        noise = tf.random.normal(
            (state.num_particles, model.state_dim), dtype=particles.dtype
        )
        noise = noise @ tf.transpose(psd_sqrt(model.process_noise_cov(t)))
        propagated = (
            model.transition_batch(particles, t)
            + model.control_input(control, t)[tf.newaxis, :]
            + noise
        )
        return PredictResult(distribution=ParticleState(propagated, state.weights))

    def _update(
        self,
        model: StateSpaceModel,
        predicted: ParticleState,
        observation: tf.Tensor,
        t: int,
        predict_result: Optional[PredictResult],
    ) -> UpdateResult:
        particles = predicted.particles
        if self.log_likelihood_fn is None:
            loglik = model.observation_log_prob(observation, particles, t)
        else:
            loglik = to_tensor(self.log_likelihood_fn(observation, particles, t))

        log_weights = tf.math.log(predicted.weights) + loglik
        log_likelihood = log_sum_exp(log_weights)
        weights = tf.exp(log_weights - log_likelihood)
        ess = effective_sample_size(weights)
        LOGGER.debug("Step %d: effective sample size %.1f", t, float(ess))

        num_particles = predicted.num_particles
        if float(ess) < self.resample_threshold * num_particles:
            if self.resampling == "systematic":
                indices = systematic_resample(weights)
            else:
                indices = multinomial_resample(weights)
            LOGGER.debug("Step %d: resampling %d particles", t, num_particles)
            posterior = ParticleState(tf.gather(particles, indices))
        else:
            posterior = ParticleState(particles, weights)

        return UpdateResult(distribution=posterior, log_likelihood=float(log_likelihood))


def effective_sample_size(weights: tf.Tensor) -> tf.Tensor:
    return 1.0 / tf.reduce_sum(weights**2)


def systematic_resample(weights: tf.Tensor, seed: Optional[int] = None) -> tf.Tensor:
    """Ancestor indices from one uniform offset and ``N`` evenly spaced positions."""
    num_particles = int(weights.shape[0])
    step = 1.0 / num_particles
    base = tf.random.uniform((), maxval=step, dtype=weights.dtype, seed=seed)
    positions = base + step * tf.cast(tf.range(num_particles), weights.dtype)
    cumsum = tf.cumsum(weights)
    indices = tf.searchsorted(cumsum, positions, side="right")
    return tf.clip_by_value(indices, 0, num_particles - 1)


def multinomial_resample(weights: tf.Tensor, seed: Optional[int] = None) -> tf.Tensor:
    num_particles = int(weights.shape[0])
    logits = tf.math.log(weights)[tf.newaxis, :]
    return tf.random.categorical(logits, num_particles, dtype=tf.int32, seed=seed)[0]


__all__ = [
    "LogLikelihoodFn",
    "ParticleFilter",
    "RESAMPLING_SCHEMES",
    "effective_sample_size",
    "multinomial_resample",
    "systematic_resample",
]
