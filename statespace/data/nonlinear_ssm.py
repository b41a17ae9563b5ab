"""Nonlinear state-space models (Gaussian and general observation noise)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

import tensorflow as tf

from statespace.data.base import StateSpaceModel, as_time_function, validate_covariance
from statespace.data.simulation import NoiseSampler, default_random_normal
from statespace.errors import ModelConstructionError, UnsupportedFilterError
from statespace.linalg import jacobian, to_tensor

TransitionFn = Callable[[tf.Tensor], tf.Tensor]
ObservationFn = Callable[[tf.Tensor], tf.Tensor]
ControlFn = Callable[[tf.Tensor], tf.Tensor]
JacobianFn = Callable[[tf.Tensor], tf.Tensor]
ObservationLogProbFn = Callable[[tf.Tensor, tf.Tensor], tf.Tensor]
ObservationSampler = Callable[[tf.Tensor], tf.Tensor]


class _NonlinearDynamics(StateSpaceModel):
    """Transition side shared by the nonlinear model classes."""

    transition_fn: TransitionFn
    transition_jacobian_fn: Optional[JacobianFn]
    control_fn: Optional[ControlFn]

    def _init_dynamics(self, transition_cov: Any, state_dim: Optional[int]) -> int:
        self._process_cov_fn = as_time_function(transition_cov)
        cov = self._process_cov_fn(0)
        if cov.shape.rank != 2:
            raise ModelConstructionError("transition_cov must be 2-D")
        inferred = int(cov.shape[0])
        if state_dim is not None and state_dim != inferred:
            raise ModelConstructionError(
                f"state_dim={state_dim} does not match transition_cov of size {inferred}"
            )
        if inferred <= 0:
            raise ModelConstructionError("state_dim must be positive")
        validate_covariance(cov, "transition_cov", inferred)
        if self.control_dim < 0:
            raise ModelConstructionError("control_dim must be non-negative")
        if self.control_dim > 0 and self.control_fn is None:
            raise ModelConstructionError("control_dim is set but control_fn is None")
        return inferred

    def transition(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        return to_tensor(self.transition_fn(to_tensor(state)))

    def process_jacobian(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        return jacobian(self.transition_fn, state, self.transition_jacobian_fn)

    def control_input(self, control: Optional[tf.Tensor], t: int = 0) -> tf.Tensor:
        if control is None:
            return tf.zeros((self.state_dim,), dtype=self._process_cov_fn(t).dtype)
        if self.control_fn is None:
            raise ValueError("control input provided but control_fn is None")
        return to_tensor(self.control_fn(to_tensor(control)))


@dataclass(repr=False)
class NonlinearGaussianSSM(_NonlinearDynamics):
    """Nonlinear state-space model with additive Gaussian noise.

    The dynamics follow::

        x_{t+1} = f(x_t) + b(u_t) + w_t,   w_t ~ N(0, V_t)
        y_t = g(x_t) + v_t,                v_t ~ N(0, W_t)

    ``f`` and ``g`` must be written with TensorFlow ops so their Jacobians can
    be taken with :class:`tf.GradientTape`; analytic Jacobians may be supplied
    through ``transition_jacobian_fn`` / ``observation_jacobian_fn`` instead.
    """

    transition_fn: TransitionFn
    observation_fn: ObservationFn
    transition_cov: Any
    observation_cov: Any
    state_dim: Optional[int] = None
    observation_dim: Optional[int] = None
    control_fn: Optional[ControlFn] = None
    control_dim: int = 0
    transition_jacobian_fn: Optional[JacobianFn] = None
    observation_jacobian_fn: Optional[JacobianFn] = None
    check_covariances: bool = False

    def __post_init__(self) -> None:
        self.state_dim = self._init_dynamics(self.transition_cov, self.state_dim)

        self._observation_cov_fn = as_time_function(self.observation_cov)
        cov = self._observation_cov_fn(0)
        if cov.shape.rank != 2:
            raise ModelConstructionError("observation_cov must be 2-D")
        inferred = int(cov.shape[0])
        if self.observation_dim is not None and self.observation_dim != inferred:
            raise ModelConstructionError(
                f"observation_dim={self.observation_dim} does not match "
                f"observation_cov of size {inferred}"
            )
        if inferred <= 0:
            raise ModelConstructionError("observation_dim must be positive")
        validate_covariance(cov, "observation_cov", inferred)
        self.observation_dim = inferred

    def observation(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        return to_tensor(self.observation_fn(to_tensor(state)))

    def observation_jacobian(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        return jacobian(self.observation_fn, state, self.observation_jacobian_fn)

    def __repr__(self) -> str:
        return (
            f"NonlinearGaussianSSM(state_dim={self.state_dim}, "
            f"observation_dim={self.observation_dim}, control_dim={self.control_dim})"
        )


@dataclass(repr=False)
class NonlinearSSM(_NonlinearDynamics):
    """Nonlinear dynamics with an arbitrary observation density.

    Only ``observation_log_prob_fn(observation, states) -> [num_states]`` is
    needed for filtering, so the particle filter is the only filter that
    accepts this model. ``observation_sampler(state) -> observation`` enables
    :meth:`simulate`.
    """

    transition_fn: TransitionFn
    observation_log_prob_fn: ObservationLogProbFn
    transition_cov: Any
    observation_dim: int
    observation_sampler: Optional[ObservationSampler] = None
    state_dim: Optional[int] = None
    control_fn: Optional[ControlFn] = None
    control_dim: int = 0
    transition_jacobian_fn: Optional[JacobianFn] = None
    check_covariances: bool = False

    def __post_init__(self) -> None:
        self.state_dim = self._init_dynamics(self.transition_cov, self.state_dim)
        if self.observation_dim <= 0:
            raise ModelConstructionError("observation_dim must be positive")
        self._observation_cov_fn = None

    def observation(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        raise UnsupportedFilterError(
            "NonlinearSSM has no Gaussian observation mean; use the particle filter"
        )

    def observation_jacobian(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        raise UnsupportedFilterError(
            "NonlinearSSM has no differentiable observation map; use the particle filter"
        )

    def observation_log_prob(
        self, observation: tf.Tensor, states: tf.Tensor, t: int = 0
    ) -> tf.Tensor:
        return to_tensor(self.observation_log_prob_fn(observation, states))

    def sample_observation(
        self,
        state: tf.Tensor,
        t: int = 0,
        noise_sampler: NoiseSampler = default_random_normal,
        seed: Optional[int] = None,
    ) -> tf.Tensor:
        if self.observation_sampler is None:
            raise ValueError("simulation requires an observation_sampler")
        return to_tensor(self.observation_sampler(state))

    def __repr__(self) -> str:
        return (
            f"NonlinearSSM(state_dim={self.state_dim}, "
            f"observation_dim={self.observation_dim}, control_dim={self.control_dim})"
        )


__all__ = ["NonlinearGaussianSSM", "NonlinearSSM"]
