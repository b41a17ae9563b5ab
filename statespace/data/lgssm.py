"""Linear Gaussian state-space model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import tensorflow as tf

from statespace.data.base import StateSpaceModel, as_time_function, validate_covariance
from statespace.errors import ModelConstructionError
from statespace.linalg import to_tensor


@dataclass(repr=False)
class LinearGaussianSSM(StateSpaceModel):
    """Linear-Gaussian state-space model (LGSSM).

    The dynamics follow::

        x_{t+1} = F_t x_t + B_t u_t + w_t,   w_t ~ N(0, V_t)
        y_t = G_t x_t + v_t,                 v_t ~ N(0, W_t)

    Every matrix may be given as a constant or as a callable ``t -> matrix``
    for time-varying systems. Shapes and positive semidefiniteness of the
    noise covariances are checked at construction against ``t = 0``.
    """

    transition_matrix: Any
    observation_matrix: Any
    transition_cov: Any
    observation_cov: Any
    control_matrix: Any = None
    check_covariances: bool = False

    def __post_init__(self) -> None:
        self._transition_fn = as_time_function(self.transition_matrix)
        self._observation_fn = as_time_function(self.observation_matrix)
        self._process_cov_fn = as_time_function(self.transition_cov)
        self._observation_cov_fn = as_time_function(self.observation_cov)
        self._control_fn = (
            None if self.control_matrix is None else as_time_function(self.control_matrix)
        )

        F = self._transition_fn(0)
        G = self._observation_fn(0)
        if F.shape.rank != 2 or G.shape.rank != 2:
            raise ModelConstructionError(
                "transition_matrix and observation_matrix must be 2-D"
            )
        self.state_dim = int(F.shape[0])
        self.observation_dim = int(G.shape[0])

        if tuple(F.shape) != (self.state_dim, self.state_dim):
            raise ModelConstructionError(
                f"transition_matrix must be square, got {tuple(F.shape)}"
            )
        if tuple(G.shape) != (self.observation_dim, self.state_dim):
            raise ModelConstructionError(
                "observation_matrix must have shape "
                f"{(self.observation_dim, self.state_dim)}, got {tuple(G.shape)}"
            )
        validate_covariance(
            self._process_cov_fn(0), "transition_cov", self.state_dim
        )
        validate_covariance(
            self._observation_cov_fn(0), "observation_cov", self.observation_dim
        )

        if self._control_fn is None:
            self.control_dim = 0
        else:
            B = self._control_fn(0)
            if B.shape.rank != 2 or int(B.shape[0]) != self.state_dim:
                raise ModelConstructionError(
                    f"control_matrix must have {self.state_dim} rows, got {tuple(B.shape)}"
                )
            self.control_dim = int(B.shape[1])

    def process_jacobian(self, state: Optional[tf.Tensor] = None, t: int = 0) -> tf.Tensor:
        return self._transition_fn(t)

    def observation_jacobian(self, state: Optional[tf.Tensor] = None, t: int = 0) -> tf.Tensor:
        return self._observation_fn(t)

    def transition(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        return tf.linalg.matvec(self._transition_fn(t), to_tensor(state))

    def observation(self, state: tf.Tensor, t: int = 0) -> tf.Tensor:
        return tf.linalg.matvec(self._observation_fn(t), to_tensor(state))

    def transition_batch(self, states: tf.Tensor, t: int = 0) -> tf.Tensor:
        return to_tensor(states) @ tf.transpose(self._transition_fn(t))

    def observation_batch(self, states: tf.Tensor, t: int = 0) -> tf.Tensor:
        return to_tensor(states) @ tf.transpose(self._observation_fn(t))

    def control_input(self, control: Optional[tf.Tensor], t: int = 0) -> tf.Tensor:
        if control is None:
            return tf.zeros((self.state_dim,), dtype=self._transition_fn(t).dtype)
        if self._control_fn is None:
            raise ValueError("control input provided but control_matrix is None")
        return tf.linalg.matvec(self._control_fn(t), to_tensor(control))

    def describe(self) -> str:
        lines = [
            super().describe(),
            "Process evolution matrix F:",
            str(self._transition_fn(0).numpy()),
            "Control input matrix B:",
            str(None if self._control_fn is None else self._control_fn(0).numpy()),
            "Process error covariance V:",
            str(self._process_cov_fn(0).numpy()),
            "Observation matrix G:",
            str(self._observation_fn(0).numpy()),
            "Observation error covariance W:",
            str(self._observation_cov_fn(0).numpy()),
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"LinearGaussianSSM(state_dim={self.state_dim}, "
            f"observation_dim={self.observation_dim}, control_dim={self.control_dim})"
        )


__all__ = ["LinearGaussianSSM"]
