"""Linear-algebra helpers shared by models, filters and the smoother."""

from __future__ import annotations

from typing import Callable, Optional

import tensorflow as tf
import tensorflow_probability as tfp

from statespace.constants import COVARIANCE_ATOL, DTYPE
from statespace.errors import NotPositiveDefiniteError

tfd = tfp.distributions


def to_tensor(value) -> tf.Tensor:
    """Convert ``value`` to a tensor of the package dtype."""
    return tf.convert_to_tensor(value, dtype=DTYPE)


def symmetrize(matrix: tf.Tensor) -> tf.Tensor:
    return 0.5 * (matrix + tf.linalg.matrix_transpose(matrix))


def is_symmetric(matrix: tf.Tensor, atol: float = COVARIANCE_ATOL) -> bool:
    matrix = to_tensor(matrix)
    scale = max(1.0, float(tf.reduce_max(tf.abs(matrix))))
    asym = tf.reduce_max(tf.abs(matrix - tf.transpose(matrix)))
    return bool(asym <= atol * scale)


def is_positive_semidefinite(
    matrix: tf.Tensor, atol: float = COVARIANCE_ATOL
) -> bool:
    """Return True when ``matrix`` is symmetric with no negative eigenvalues."""
    matrix = to_tensor(matrix)
    if matrix.shape.rank != 2 or matrix.shape[0] != matrix.shape[1]:
        return False
    if not is_symmetric(matrix, atol):
        return False
    if matrix.shape[0] == 0:
        return True
    eigvals = tf.linalg.eigvalsh(symmetrize(matrix))
    scale = max(1.0, float(tf.reduce_max(tf.abs(eigvals))))
    return bool(tf.reduce_min(eigvals) >= -atol * scale)


def all_finite(*tensors: tf.Tensor) -> bool:
    return all(bool(tf.reduce_all(tf.math.is_finite(t))) for t in tensors)


def has_missing(observation: tf.Tensor) -> bool:
    """An observation with any NaN component is treated as missing."""
    return bool(tf.reduce_any(tf.math.is_nan(observation)))


def cholesky(matrix: tf.Tensor, name: str = "matrix") -> tf.Tensor:
    """Lower Cholesky factor, raising :class:`NotPositiveDefiniteError` on failure."""
    try:
        chol = tf.linalg.cholesky(symmetrize(matrix))
    except tf.errors.InvalidArgumentError as exc:
        raise NotPositiveDefiniteError(
            f"{name} is not positive definite"
        ) from exc
    if not all_finite(chol):
        raise NotPositiveDefiniteError(f"{name} is not positive definite")
    return chol


def psd_sqrt(matrix: tf.Tensor) -> tf.Tensor:
    """Square-root factor ``L`` with ``L L^T = matrix`` for semidefinite input.

    Uses the Cholesky factor when it exists and falls back to a clipped
    eigendecomposition for singular covariances (e.g. noise that only enters a
    subset of the state).
    """
    matrix = symmetrize(to_tensor(matrix))
    try:
        return cholesky(matrix)
    except NotPositiveDefiniteError:
        eigvals, eigvecs = tf.linalg.eigh(matrix)
        eigvals = tf.maximum(eigvals, tf.zeros_like(eigvals))
        return eigvecs * tf.sqrt(eigvals)[tf.newaxis, :]


def cho_solve(chol: tf.Tensor, rhs: tf.Tensor) -> tf.Tensor:
    """Solve ``A X = rhs`` given the lower Cholesky factor of ``A``."""
    return tf.linalg.cholesky_solve(chol, rhs)


def gaussian_log_prob(
    value: tf.Tensor, mean: tf.Tensor, cov: tf.Tensor, name: str = "covariance"
) -> tf.Tensor:
    """Log-density of ``value`` under ``N(mean, cov)`` (batched over ``value``)."""
    scale_tril = cholesky(cov, name)
    dist = tfd.MultivariateNormalTriL(loc=mean, scale_tril=scale_tril)
    return dist.log_prob(value)


def log_sum_exp(values: tf.Tensor) -> tf.Tensor:
    max_val = tf.reduce_max(values)
    if not bool(tf.math.is_finite(max_val)):
        return max_val
    stabilized = tf.exp(values - max_val)
    return tf.math.log(tf.reduce_sum(stabilized)) + max_val


def jacobian(
    fn: Callable[[tf.Tensor], tf.Tensor],
    point: tf.Tensor,
    jacobian_fn: Optional[Callable[[tf.Tensor], tf.Tensor]] = None,
) -> tf.Tensor:
    """Jacobian of ``fn`` at ``point`` via reverse-mode autodiff.

    An analytic ``jacobian_fn`` takes precedence when supplied.
    """
    if jacobian_fn is not None:
        return to_tensor(jacobian_fn(point))

    point = to_tensor(point)
    with tf.GradientTape() as tape:
        tape.watch(point)
        output = to_tensor(fn(point))
    jac = tape.jacobian(
        output,
        point,
        unconnected_gradients=tf.UnconnectedGradients.ZERO,
    )
    return to_tensor(jac)


__all__ = [
    "all_finite",
    "cho_solve",
    "cholesky",
    "gaussian_log_prob",
    "has_missing",
    "is_positive_semidefinite",
    "is_symmetric",
    "jacobian",
    "log_sum_exp",
    "psd_sqrt",
    "symmetrize",
    "tfd",
    "to_tensor",
]
