"""Package-wide numerical constants."""

from __future__ import annotations

import tensorflow as tf

# Filtering recursions run in double precision; float32 loses positive
# definiteness quickly for diffuse priors such as ``100 * I``.
DTYPE = tf.float64

# Relative tolerance used when checking symmetry / semidefiniteness.
COVARIANCE_ATOL = 1e-8

DEFAULT_UKF_ALPHA = 1.0
DEFAULT_UKF_BETA = 2.0
DEFAULT_UKF_KAPPA = 0.0

DEFAULT_NUM_MEMBERS = 100
DEFAULT_NUM_PARTICLES = 1000
DEFAULT_RESAMPLE_THRESHOLD = 0.5
