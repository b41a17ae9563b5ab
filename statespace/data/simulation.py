"""Synthetic trajectories drawn from a state-space model."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterator, Optional, Union

import tensorflow as tf

from statespace.constants import DTYPE
from statespace.linalg import to_tensor

if TYPE_CHECKING:  # pragma: no cover
    from statespace.data.base import StateSpaceModel
    from statespace.models.distributions import GaussianState


def default_random_normal(
    shape: tuple[int, ...], seed: Optional[int] = None
) -> tf.Tensor:
    """Utility to sample from a standard normal distribution."""
    return tf.random.normal(
        shape,
        mean=0.0,
        stddev=1.0,
        seed=seed,
        dtype=DTYPE,
    )


NoiseSampler = Callable[[tuple[int, ...], Optional[int]], tf.Tensor]


def iter_simulation(
    model: "StateSpaceModel",
    num_timesteps: int,
    initial_state: Union["GaussianState", tf.Tensor],
    process_noise_sampler: NoiseSampler = default_random_normal,
    observation_noise_sampler: NoiseSampler = default_random_normal,
    controls: Optional[tf.Tensor] = None,
    seed: Optional[int] = None,
) -> Iterator[tuple[tf.Tensor, tf.Tensor]]:
    """Lazily yield ``(state_t, observation_t)`` for ``t = 0 .. num_timesteps-1``.

    ``initial_state`` is either a fixed state vector or a distribution with a
    ``sample`` method, in which case the starting state is drawn from it. The
    first yielded state is one transition past the starting state, matching
    the filters, which predict before their first update.
    """
    if num_timesteps <= 0:
        raise ValueError("num_timesteps must be positive")
    if hasattr(initial_state, "sample"):
        x_prev = initial_state.sample(seed=seed)
    else:
        x_prev = to_tensor(initial_state)
    if x_prev.shape[-1] != model.state_dim:
        raise ValueError("initial_state dimension mismatch")
    if controls is not None:
        controls = to_tensor(controls)
        expected_shape = (num_timesteps, model.control_dim)
        if tuple(controls.shape) != expected_shape:
            raise ValueError(
                f"controls must have shape {expected_shape}, got {tuple(controls.shape)}"
            )

    for t in range(num_timesteps):
        control_t = controls[t] if controls is not None else None
        x_t = model.sample_transition(
            x_prev, t, control_t, process_noise_sampler, seed
        )
        y_t = model.sample_observation(x_t, t, observation_noise_sampler, seed)
        yield x_t, y_t
        x_prev = x_t


def simulate(
    model: "StateSpaceModel",
    num_timesteps: int,
    initial_state: Union["GaussianState", tf.Tensor],
    process_noise_sampler: NoiseSampler = default_random_normal,
    observation_noise_sampler: NoiseSampler = default_random_normal,
    controls: Optional[tf.Tensor] = None,
    seed: Optional[int] = None,
) -> tuple[tf.Tensor, tf.Tensor]:
    """Simulate and stack states ``[T, state_dim]`` and observations ``[T, obs_dim]``."""
    states = []
    observations = []
    for x_t, y_t in iter_simulation(
        model,
        num_timesteps,
        initial_state,
        process_noise_sampler=process_noise_sampler,
        observation_noise_sampler=observation_noise_sampler,
        controls=controls,
        seed=seed,
    ):
        states.append(x_t)
        observations.append(y_t)
    return tf.stack(states, axis=0), tf.stack(observations, axis=0)


__all__ = [
    "NoiseSampler",
    "default_random_normal",
    "iter_simulation",
    "simulate",
]
