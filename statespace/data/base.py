"""Capability interface shared by every state-space model."""

from __future__ import annotations

import abc
from typing import Any, Callable, Optional

import tensorflow as tf

from statespace.data.simulation import NoiseSampler, default_random_normal, simulate
from statespace.errors import ModelConstructionError, UnsupportedFilterError
from statespace.linalg import is_positive_semidefinite, psd_sqrt, tfd, to_tensor

TimeFn = Callable[[int], tf.Tensor]


def as_time_function(value: Any) -> TimeFn:
    """Wrap a constant matrix or a ``t -> matrix`` callable as a callable."""
    if callable(value):
        return lambda t: to_tensor(value(t))
    matrix = to_tensor(value)
    return lambda t: matrix


def validate_covariance(
    matrix: tf.Tensor, name: str, dim: int, t: Optional[int] = None
) -> None:
    """Raise :class:`ModelConstructionError` unless ``matrix`` is a valid covariance."""
    where = "" if t is None else f" at t={t}"
    if tuple(matrix.shape) != (dim, dim):
        raise ModelConstructionError(
            f"{name}{where} must have shape {(dim, dim)}, got {tuple(matrix.shape)}"
        )
    if not is_positive_semidefinite(matrix):
        raise ModelConstructionError(
            f"{name}{where} must be symmetric positive semidefinite"
        )


class StateSpaceModel(abc.ABC):
    """Process dynamics plus observation mapping with associated noise.

    Subclasses provide the deterministic maps; noise covariances are stored as
    ``t -> matrix`` callables in ``_process_cov_fn`` and ``_observation_cov_fn``.
    """

    state_dim: int
    observation_dim: int
    control_dim: int
    check_covariances: bool = False

    _process_cov_fn: TimeFn
    _observation_cov_fn: Optional[TimeFn]

    @abc.abstractmethod
    def transition(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        """Noise-free next state (without control input)."""

    @abc.abstractmethod
    def observation(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        """Noise-free observation of ``state``."""

    @abc.abstractmethod
    def process_jacobian(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        """Transition matrix, or its Jacobian at ``state`` for nonlinear models."""

    @abc.abstractmethod
    def observation_jacobian(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        """Observation matrix, or its Jacobian at ``state`` for nonlinear models."""

    @abc.abstractmethod
    def control_input(self, control: Optional[tf.Tensor], t: int = 0) -> tf.Tensor:
        """Additive state perturbation produced by ``control``."""

    def transition_batch(self, states: tf.Tensor, t: int = 0) -> tf.Tensor:
        return tf.map_fn(
            lambda state: to_tensor(self.transition(state, t)),
            states,
            fn_output_signature=states.dtype,
        )

    def observation_batch(self, states: tf.Tensor, t: int = 0) -> tf.Tensor:
        return tf.map_fn(
            lambda state: to_tensor(self.observation(state, t)),
            states,
            fn_output_signature=states.dtype,
        )

    def process_noise_cov(self, t: int = 0) -> tf.Tensor:
        cov = self._process_cov_fn(t)
        if self.check_covariances:
            validate_covariance(cov, "process noise covariance", self.state_dim, t)
        return cov

    def observation_noise_cov(self, t: int = 0) -> tf.Tensor:
        if self._observation_cov_fn is None:
            raise UnsupportedFilterError(
                f"{type(self).__name__} has no Gaussian observation noise"
            )
        cov = self._observation_cov_fn(t)
        if self.check_covariances:
            validate_covariance(
                cov, "observation noise covariance", self.observation_dim, t
            )
        return cov

    def observation_log_prob(
        self, observation: tf.Tensor, states: tf.Tensor, t: int = 0
    ) -> tf.Tensor:
        """``log p(observation | state)`` for each row of ``states``."""
        expected = self.observation_batch(states, t)
        dist = tfd.MultivariateNormalTriL(
            loc=expected,
            scale_tril=psd_sqrt(self.observation_noise_cov(t)),
        )
        return dist.log_prob(observation)

    def sample_observation(
        self,
        state: tf.Tensor,
        t: int = 0,
        noise_sampler: NoiseSampler = default_random_normal,
        seed: Optional[int] = None,
    ) -> tf.Tensor:
        mean = to_tensor(self.observation(state, t))
        noise = noise_sampler((self.observation_dim,), seed)
        return mean + tf.linalg.matvec(psd_sqrt(self.observation_noise_cov(t)), noise)

    def sample_transition(
        self,
        state: tf.Tensor,
        t: int = 0,
        control: Optional[tf.Tensor] = None,
        noise_sampler: NoiseSampler = default_random_normal,
        seed: Optional[int] = None,
    ) -> tf.Tensor:
        mean = to_tensor(self.transition(state, t)) + self.control_input(control, t)
        noise = noise_sampler((self.state_dim,), seed)
        return mean + tf.linalg.matvec(psd_sqrt(self.process_noise_cov(t)), noise)

    def simulate(self, num_timesteps: int, initial_state, **kwargs):
        """Simulate latent states and observations; see :func:`simulate`."""
        return simulate(self, num_timesteps, initial_state, **kwargs)

    def describe(self) -> str:
        return (
            f"{type(self).__name__}, {self.state_dim}-D process x "
            f"{self.observation_dim}-D observations"
        )


__all__ = [
    "StateSpaceModel",
    "TimeFn",
    "as_time_function",
    "validate_covariance",
]
