"""Rauch-Tung-Striebel fixed-interval smoothing of Gaussian trajectories."""

from __future__ import annotations

import logging

import tensorflow as tf

from statespace.data.base import StateSpaceModel
from statespace.errors import FilterStepError, NotPositiveDefiniteError, UnsupportedFilterError
from statespace.linalg import cho_solve, cholesky, symmetrize
from statespace.models.distributions import GaussianState
from statespace.models.driver import observe
from statespace.models.trajectory import FilteredTrajectory

LOGGER = logging.getLogger(__name__)


def smoothing_step(
    filtered: GaussianState,
    predicted_next: GaussianState,
    smoothed_next: GaussianState,
    cross_covariance: tf.Tensor,
) -> GaussianState:
    """Combine a filtered estimate with the smoothed estimate one step ahead.

    ``cross_covariance`` is ``Cov(x_t, x_{t+1})`` from the predict step that
    produced ``predicted_next``; the gain is ``J = C P_{t+1|t}^{-1}``.
    """
    chol = cholesky(predicted_next.cov, "predicted covariance")
    gain = tf.transpose(cho_solve(chol, tf.transpose(cross_covariance)))
    mean = filtered.mean + tf.linalg.matvec(gain, smoothed_next.mean - predicted_next.mean)
    cov = filtered.cov + gain @ (smoothed_next.cov - predicted_next.cov) @ tf.transpose(gain)
    return GaussianState(mean, symmetrize(cov))


def smooth(model: StateSpaceModel, trajectory: FilteredTrajectory) -> FilteredTrajectory:
    """Backward pass over a filtered trajectory of :class:`GaussianState` s.

    The last smoothed estimate is the last filtered estimate itself. The
    returned trajectory shares observations and predictions with the input;
    its log-likelihood re-scores each observed step under
    ``N(G m_t^s, G P_t^s G^T + W)``.
    """
    if trajectory.is_smoothed:
        raise ValueError("trajectory is already smoothed")
    num_steps = len(trajectory)
    if num_steps == 0:
        raise ValueError("cannot smooth an empty trajectory")
    for state in trajectory.states:
        if not isinstance(state, GaussianState):
            raise UnsupportedFilterError(
                f"smoothing requires GaussianState estimates, got {type(state).__name__}"
            )
    if any(c is None for c in trajectory.cross_covariances[1:]):
        raise UnsupportedFilterError("trajectory carries no predict cross covariances")

    smoothed = [None] * num_steps
    smoothed[-1] = trajectory.states[-1]
    for t in range(num_steps - 2, -1, -1):
        try:
            smoothed[t] = smoothing_step(
                trajectory.states[t],
                trajectory.predicted_states[t + 1],
                smoothed[t + 1],
                trajectory.cross_covariances[t + 1],
            )
        except (NotPositiveDefiniteError, tf.errors.InvalidArgumentError) as exc:
            raise FilterStepError(
                str(exc).splitlines()[0],
                step=t,
                operation="smooth",
                filter_kind=trajectory.filter_kind,
            ) from exc

    increments = []
    for t, state in enumerate(smoothed):
        if trajectory.is_missing(t):
            increments.append(0.0)
            continue
        predictive = observe(model, state, t)
        increments.append(float(predictive.log_prob(trajectory.observation(t))))

    result = FilteredTrajectory(
        states=smoothed,
        predicted_states=list(trajectory.predicted_states),
        observations=list(trajectory.observations),
        log_likelihood=sum(increments),
        log_likelihood_increments=increments,
        cross_covariances=list(trajectory.cross_covariances),
        controls=list(trajectory.controls),
        filter_kind=trajectory.filter_kind,
        bayes_filter=trajectory.bayes_filter,
        is_smoothed=True,
    )
    LOGGER.info(
        "Smoothed %d steps: log-likelihood %.4f (filtered %.4f)",
        num_steps,
        result.log_likelihood,
        trajectory.log_likelihood,
    )
    return result


__all__ = ["smooth", "smoothing_step"]
