"""Top-level filtering entry points.

These functions pick a filter from the model and state types when none is
given, run the predict/update recursion over an observation sequence and
extend existing trajectories one step at a time for streaming use.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

import tensorflow as tf

from statespace.data.base import StateSpaceModel
from statespace.data.lgssm import LinearGaussianSSM
from statespace.data.nonlinear_ssm import NonlinearGaussianSSM
from statespace.data.simulation import iter_simulation, simulate
from statespace.errors import UnsupportedFilterError
from statespace.linalg import symmetrize, to_tensor
from statespace.models.distributions import EnsembleState, GaussianState, ParticleState
from statespace.models.filters import (
    BayesFilter,
    EnsembleKalmanFilter,
    ExtendedKalmanFilter,
    FilterKind,
    KalmanFilter,
    ParticleFilter,
    PredictResult,
    UpdateResult,
    get_filter,
)
from statespace.models.trajectory import FilteredTrajectory, loglikelihood

LOGGER = logging.getLogger(__name__)

FilterSpec = Union[BayesFilter, FilterKind, str, None]


def default_filter(model: StateSpaceModel, state: Any) -> BayesFilter:
    """Filter implied by the model and state-estimate types."""
    if isinstance(state, PredictResult):
        state = state.distribution
    if isinstance(state, EnsembleState):
        return EnsembleKalmanFilter(num_members=state.num_members)
    if isinstance(state, ParticleState):
        return ParticleFilter(num_particles=state.num_particles)
    if isinstance(state, GaussianState):
        if isinstance(model, LinearGaussianSSM):
            return KalmanFilter()
        if isinstance(model, NonlinearGaussianSSM):
            return ExtendedKalmanFilter()
        return ParticleFilter()
    raise UnsupportedFilterError(
        f"No default filter for {type(model).__name__} with {type(state).__name__}"
    )


def resolve_filter(
    filter: FilterSpec, model: StateSpaceModel, state: Any
) -> BayesFilter:
    bayes_filter = default_filter(model, state) if filter is None else get_filter(filter)
    bayes_filter.check_model(model)
    return bayes_filter


def predict(
    model: StateSpaceModel,
    state: Any,
    filter: FilterSpec = None,
    t: int = 0,
    control: Optional[tf.Tensor] = None,
) -> PredictResult:
    """One predict step; Gaussian priors are converted for Monte Carlo filters."""
    bayes_filter = resolve_filter(filter, model, state)
    return bayes_filter.predict(model, bayes_filter.initialize(state), t, control)


def update(
    model: StateSpaceModel,
    state: Any,
    observation: tf.Tensor,
    filter: FilterSpec = None,
    t: int = 0,
) -> UpdateResult:
    """One update step. ``state`` may be a :class:`PredictResult`."""
    bayes_filter = resolve_filter(filter, model, state)
    if not isinstance(state, PredictResult):
        state = bayes_filter.initialize(state)
    return bayes_filter.update(model, state, observation, t)


def observe(model: StateSpaceModel, state: Any, t: int = 0) -> GaussianState:
    """Predictive distribution of the observation at ``t`` given ``state``.

    Gaussian states are mapped through the observation matrix (or its
    Jacobian at the mean for nonlinear models); ensembles and particle sets
    are moment matched after mapping every member.
    """
    if isinstance(state, PredictResult):
        state = state.distribution
    if not isinstance(model, (LinearGaussianSSM, NonlinearGaussianSSM)):
        raise UnsupportedFilterError(
            f"{type(model).__name__} has no Gaussian observation model to observe"
        )
    obs_cov = model.observation_noise_cov(t)
    if isinstance(state, GaussianState):
        obs_matrix = model.observation_jacobian(state.mean, t)
        mean = model.observation(state.mean, t)
        cov = obs_matrix @ state.cov @ tf.transpose(obs_matrix) + obs_cov
        return GaussianState(mean, symmetrize(cov))
    if isinstance(state, EnsembleState):
        projected = EnsembleState(model.observation_batch(state.members, t))
        return GaussianState(projected.mean, symmetrize(projected.cov + obs_cov))
    if isinstance(state, ParticleState):
        projected = ParticleState(
            model.observation_batch(state.particles, t), state.weights
        )
        return GaussianState(projected.mean, symmetrize(projected.cov + obs_cov))
    raise UnsupportedFilterError(f"Cannot observe {type(state).__name__}")


def _step(
    bayes_filter: BayesFilter,
    model: StateSpaceModel,
    trajectory: FilteredTrajectory,
    state: Any,
    observation: tf.Tensor,
    t: int,
    control: Optional[tf.Tensor],
) -> None:
    predicted = bayes_filter.predict(model, state, t, control)
    result = bayes_filter.update(model, predicted, observation, t)
    trajectory.append(
        result.distribution,
        predicted.distribution,
        observation,
        log_likelihood=result.log_likelihood,
        cross_covariance=predicted.cross_covariance,
        control=control,
    )


def _check_controls(
    model: StateSpaceModel, controls: Optional[tf.Tensor], num_steps: int
) -> Optional[tf.Tensor]:
    if controls is None:
        return None
    controls = to_tensor(controls)
    expected_shape = (num_steps, model.control_dim)
    if tuple(controls.shape) != expected_shape:
        raise ValueError(
            f"controls must have shape {expected_shape}, got {tuple(controls.shape)}"
        )
    return controls


def run_filter(
    model: StateSpaceModel,
    observations: tf.Tensor,
    initial_state: Any,
    filter: FilterSpec = None,
    controls: Optional[tf.Tensor] = None,
) -> FilteredTrajectory:
    """Filter ``observations`` (``[T, obs_dim]``, NaN marks missing) from a prior.

    Each step predicts from the previous posterior (``initial_state`` for the
    first step) and then updates with that step's observation.
    """
    bayes_filter = resolve_filter(filter, model, initial_state)
    observations = to_tensor(observations)
    if observations.shape.rank != 2 or observations.shape[1] != model.observation_dim:
        raise ValueError(
            f"observations must have shape [T, {model.observation_dim}], "
            f"got {tuple(observations.shape)}"
        )
    num_steps = int(observations.shape[0])
    controls = _check_controls(model, controls, num_steps)

    state = bayes_filter.initialize(initial_state)
    trajectory = FilteredTrajectory(
        filter_kind=bayes_filter.kind.value, bayes_filter=bayes_filter
    )
    LOGGER.info(
        "Running %s filter on %s over %d steps",
        bayes_filter.kind.value,
        type(model).__name__,
        num_steps,
    )
    for t in range(num_steps):
        control_t = controls[t] if controls is not None else None
        _step(bayes_filter, model, trajectory, state, observations[t], t, control_t)
        state = trajectory.final_state
    LOGGER.info(
        "Finished %s filter: log-likelihood %.4f", bayes_filter.kind.value,
        trajectory.log_likelihood,
    )
    return trajectory


filter_observations = run_filter


def update_trajectory(
    model: StateSpaceModel,
    trajectory: FilteredTrajectory,
    observation: tf.Tensor,
    control: Optional[tf.Tensor] = None,
    filter: FilterSpec = None,
) -> FilteredTrajectory:
    """Extend ``trajectory`` in place by one step and return it.

    Earlier steps are not recomputed. Without an explicit ``filter`` the
    filter instance that produced the trajectory is reused, options included.
    """
    if trajectory.is_smoothed:
        raise ValueError("cannot extend a smoothed trajectory")
    if len(trajectory) == 0:
        raise ValueError("cannot extend an empty trajectory; use run_filter")
    state = trajectory.final_state
    if filter is None:
        filter = trajectory.bayes_filter
    bayes_filter = resolve_filter(filter, model, state)
    if control is not None:
        control = to_tensor(control)
    _step(
        bayes_filter,
        model,
        trajectory,
        state,
        to_tensor(observation),
        len(trajectory),
        control,
    )
    return trajectory


__all__ = [
    "default_filter",
    "filter_observations",
    "iter_simulation",
    "loglikelihood",
    "observe",
    "predict",
    "resolve_filter",
    "run_filter",
    "simulate",
    "update",
    "update_trajectory",
]
