"""Container for filtered and smoothed state trajectories."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

import tensorflow as tf

from statespace.linalg import has_missing, to_tensor

StateEstimate = Any  # GaussianState | EnsembleState | ParticleState


@dataclass
class FilteredTrajectory:
    """Per-step posterior estimates paired with the observations that produced them.

    Attributes:
        states: Posterior estimate after each step (the predicted estimate when
            the observation was missing).
        predicted_states: One-step-ahead predictions preceding each update.
        observations: Observation vectors, one per step; NaN marks missing data.
        log_likelihood: Cumulative log-likelihood over all performed updates.
        log_likelihood_increments: Contribution of each step (0 when skipped).
        cross_covariances: ``Cov(x_{t-1}, x_t)`` from each predict step, used
            by the smoother. ``None`` entries for non-Gaussian filters.
        controls: Control vectors applied at each step (``None`` when absent).
        filter_kind: Name of the filter that produced the trajectory.
        bayes_filter: The configured filter instance, reused when the
            trajectory is extended one step at a time.
        is_smoothed: Whether the states are smoothed estimates.
    """

    states: List[StateEstimate] = field(default_factory=list)
    predicted_states: List[StateEstimate] = field(default_factory=list)
    observations: List[tf.Tensor] = field(default_factory=list)
    log_likelihood: float = 0.0
    log_likelihood_increments: List[float] = field(default_factory=list)
    cross_covariances: List[Optional[tf.Tensor]] = field(default_factory=list)
    controls: List[Optional[tf.Tensor]] = field(default_factory=list)
    filter_kind: Optional[str] = None
    bayes_filter: Optional[Any] = field(default=None, repr=False, compare=False)
    is_smoothed: bool = False

    def __len__(self) -> int:
        return len(self.states)

    def append(
        self,
        state: StateEstimate,
        predicted_state: StateEstimate,
        observation: tf.Tensor,
        log_likelihood: float = 0.0,
        cross_covariance: Optional[tf.Tensor] = None,
        control: Optional[tf.Tensor] = None,
    ) -> None:
        """Extend the trajectory in place by one step."""
        self.states.append(state)
        self.predicted_states.append(predicted_state)
        self.observations.append(to_tensor(observation))
        self.log_likelihood_increments.append(float(log_likelihood))
        self.log_likelihood += float(log_likelihood)
        self.cross_covariances.append(cross_covariance)
        self.controls.append(control)

    def copy(self) -> "FilteredTrajectory":
        """Independent copy; the per-step lists are not shared."""
        return FilteredTrajectory(
            states=list(self.states),
            predicted_states=list(self.predicted_states),
            observations=list(self.observations),
            log_likelihood=self.log_likelihood,
            log_likelihood_increments=list(self.log_likelihood_increments),
            cross_covariances=list(self.cross_covariances),
            controls=list(self.controls),
            filter_kind=self.filter_kind,
            bayes_filter=self.bayes_filter,
            is_smoothed=self.is_smoothed,
        )

    @property
    def final_state(self) -> StateEstimate:
        if not self.states:
            raise IndexError("trajectory is empty")
        return self.states[-1]

    def state(self, step: int) -> StateEstimate:
        return self.states[step]

    def observation(self, step: int) -> tf.Tensor:
        return self.observations[step]

    def is_missing(self, step: int) -> bool:
        return has_missing(self.observations[step])

    def mean(self, step: int) -> tf.Tensor:
        return self.states[step].mean

    def covariance(self, step: int) -> tf.Tensor:
        return self.states[step].cov

    def means(self) -> tf.Tensor:
        """Stacked posterior means, shape ``[T, state_dim]``."""
        return tf.stack([s.mean for s in self.states], axis=0)

    def covariances(self) -> tf.Tensor:
        """Stacked posterior covariances, shape ``[T, state_dim, state_dim]``."""
        return tf.stack([s.cov for s in self.states], axis=0)

    def observation_matrix(self) -> tf.Tensor:
        """Stacked observations, shape ``[T, obs_dim]``."""
        return tf.stack(self.observations, axis=0)

    def loglikelihood(self) -> float:
        return self.log_likelihood

    def __repr__(self) -> str:
        label = "SmoothedTrajectory" if self.is_smoothed else "FilteredTrajectory"
        return (
            f"{label}(steps={len(self)}, filter={self.filter_kind}, "
            f"log_likelihood={self.log_likelihood:.4f})"
        )


def loglikelihood(trajectory: FilteredTrajectory) -> float:
    """Cumulative log-likelihood of a filtered or smoothed trajectory."""
    return trajectory.log_likelihood


__all__ = ["FilteredTrajectory", "loglikelihood"]
