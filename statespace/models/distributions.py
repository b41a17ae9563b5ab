"""State-estimate representations used by the filters.

Three representations cover the filter family:

* :class:`GaussianState` – exact mean and covariance (Kalman, EKF, UKF).
* :class:`EnsembleState` – equally weighted ensemble members (EnKF).
* :class:`ParticleState` – weighted particle set (particle filter).

Each exposes ``mean`` and ``cov`` so trajectories can report moments without
knowing which filter produced them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import tensorflow as tf

from statespace.linalg import cholesky, psd_sqrt, tfd, to_tensor


@dataclass
class GaussianState:
    """Multivariate Gaussian ``N(mean, cov)``."""

    mean: tf.Tensor
    cov: tf.Tensor

    def __post_init__(self) -> None:
        self.mean = to_tensor(self.mean)
        self.cov = to_tensor(self.cov)
        if self.mean.shape.rank != 1:
            raise ValueError("mean must be a vector")
        dim = int(self.mean.shape[0])
        if tuple(self.cov.shape) != (dim, dim):
            raise ValueError(
                f"cov must have shape {(dim, dim)}, got {tuple(self.cov.shape)}"
            )

    @property
    def dim(self) -> int:
        return int(self.mean.shape[0])

    def distribution(self) -> tfd.MultivariateNormalTriL:
        """Equivalent ``tfp`` distribution (requires a positive-definite cov)."""
        return tfd.MultivariateNormalTriL(
            loc=self.mean,
            scale_tril=cholesky(self.cov, "state covariance"),
        )

    def log_prob(self, value: tf.Tensor) -> tf.Tensor:
        return self.distribution().log_prob(to_tensor(value))

    def sample(self, num_samples: Optional[int] = None, seed: Optional[int] = None) -> tf.Tensor:
        """Draw samples; semidefinite covariances are supported.

        Returns a vector when ``num_samples`` is None, otherwise a
        ``[num_samples, dim]`` matrix.
        """
        shape = (1 if num_samples is None else num_samples, self.dim)
        noise = tf.random.normal(shape, dtype=self.mean.dtype, seed=seed)
        draws = self.mean[tf.newaxis, :] + noise @ tf.transpose(psd_sqrt(self.cov))
        return draws[0] if num_samples is None else draws


@dataclass
class EnsembleState:
    """Ensemble of ``[num_members, state_dim]`` equally weighted members."""

    members: tf.Tensor

    def __post_init__(self) -> None:
        self.members = to_tensor(self.members)
        if self.members.shape.rank != 2:
            raise ValueError("members must have shape [num_members, state_dim]")
        if self.num_members < 2:
            raise ValueError("an ensemble needs at least two members")

    @classmethod
    def from_gaussian(
        cls, state: GaussianState, num_members: int, seed: Optional[int] = None
    ) -> "EnsembleState":
        return cls(state.sample(num_members, seed=seed))

    @property
    def num_members(self) -> int:
        return int(self.members.shape[0])

    @property
    def dim(self) -> int:
        return int(self.members.shape[1])

    @property
    def mean(self) -> tf.Tensor:
        return tf.reduce_mean(self.members, axis=0)

    @property
    def anomalies(self) -> tf.Tensor:
        return self.members - self.mean[tf.newaxis, :]

    @property
    def cov(self) -> tf.Tensor:
        anomalies = self.anomalies
        denom = tf.cast(self.num_members - 1, anomalies.dtype)
        return tf.transpose(anomalies) @ anomalies / denom


@dataclass
class ParticleState:
    """Weighted particle set; ``weights`` are normalised to sum to one."""

    particles: tf.Tensor
    weights: Optional[tf.Tensor] = None

    def __post_init__(self) -> None:
        self.particles = to_tensor(self.particles)
        if self.particles.shape.rank != 2:
            raise ValueError("particles must have shape [num_particles, state_dim]")
        if self.weights is None:
            self.weights = tf.fill(
                (self.num_particles,),
                tf.constant(1.0 / self.num_particles, dtype=self.particles.dtype),
            )
        else:
            self.weights = to_tensor(self.weights)
            if tuple(self.weights.shape) != (self.num_particles,):
                raise ValueError("weights must have shape [num_particles]")
            self.weights = self.weights / tf.reduce_sum(self.weights)

    @classmethod
    def from_gaussian(
        cls, state: GaussianState, num_particles: int, seed: Optional[int] = None
    ) -> "ParticleState":
        return cls(state.sample(num_particles, seed=seed))

    @property
    def num_particles(self) -> int:
        return int(self.particles.shape[0])

    @property
    def dim(self) -> int:
        return int(self.particles.shape[1])

    @property
    def mean(self) -> tf.Tensor:
        return tf.linalg.matvec(self.particles, self.weights, transpose_a=True)

    @property
    def cov(self) -> tf.Tensor:
        diff = self.particles - self.mean[tf.newaxis, :]
        return tf.einsum("i,ij,ik->jk", self.weights, diff, diff)

    @property
    def effective_sample_size(self) -> tf.Tensor:
        return 1.0 / tf.reduce_sum(self.weights**2)


__all__ = ["EnsembleState", "GaussianState", "ParticleState"]
