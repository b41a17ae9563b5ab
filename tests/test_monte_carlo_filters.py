"""Tests for the ensemble Kalman filter and the particle filter."""

from __future__ import annotations

import logging

import numpy as np
import pytest
import tensorflow as tf

from statespace.data import LinearGaussianSSM, NonlinearSSM
from statespace.errors import UnsupportedFilterError
from statespace.models import (
    EnsembleState,
    GaussianState,
    ParticleState,
    run_filter,
    update_trajectory,
)
from statespace.models.filters import EnsembleKalmanFilter, KalmanFilter, ParticleFilter
from statespace.models.filters.particle import (
    effective_sample_size,
    multinomial_resample,
    systematic_resample,
)

OBSERVATIONS = np.array(
    [
        [0.4],
        [0.7],
        [0.3],
        [-0.2],
        [0.1],
        [0.5],
    ]
)


def _build_linear_ssm() -> LinearGaussianSSM:
    return LinearGaussianSSM(
        transition_matrix=[[0.9, 0.1], [0.0, 0.95]],
        observation_matrix=[[1.0, 0.0]],
        transition_cov=[[0.05, 0.0], [0.0, 0.03]],
        observation_cov=[[0.2]],
    )


def _prior() -> GaussianState:
    return GaussianState(np.zeros(2), np.eye(2))


def test_enkf_approaches_kalman_with_large_ensemble() -> None:
    tf.random.set_seed(0)
    model = _build_linear_ssm()

    kf = run_filter(model, OBSERVATIONS, _prior(), filter=KalmanFilter())
    enkf = run_filter(
        model, OBSERVATIONS, _prior(), filter=EnsembleKalmanFilter(num_members=4000)
    )

    assert enkf.filter_kind == "ensemble"
    assert isinstance(enkf.final_state, EnsembleState)
    np.testing.assert_allclose(enkf.means().numpy(), kf.means().numpy(), atol=0.1)
    np.testing.assert_allclose(
        enkf.covariances().numpy(), kf.covariances().numpy(), atol=0.05
    )
    assert abs(enkf.log_likelihood - kf.log_likelihood) < 0.5


def test_enkf_starts_from_explicit_ensemble() -> None:
    tf.random.set_seed(1)
    model = _build_linear_ssm()
    members = np.random.default_rng(1).normal(size=(50, 2))

    trajectory = run_filter(model, OBSERVATIONS, EnsembleState(members))

    assert trajectory.filter_kind == "ensemble"
    assert trajectory.final_state.num_members == 50


def test_enkf_warns_for_small_ensembles(caplog: pytest.LogCaptureFixture) -> None:
    enkf = EnsembleKalmanFilter(num_members=3)
    with caplog.at_level(logging.WARNING, logger="statespace.models.filters.enkf"):
        ensemble = enkf.initialize(GaussianState(np.zeros(4), np.eye(4)))

    assert ensemble.num_members == 3
    assert "rank deficient" in caplog.text


def test_enkf_rejects_single_member() -> None:
    with pytest.raises(ValueError):
        EnsembleKalmanFilter(num_members=1)


def test_particle_filter_approaches_kalman() -> None:
    tf.random.set_seed(2)
    model = _build_linear_ssm()

    kf = run_filter(model, OBSERVATIONS, _prior(), filter=KalmanFilter())
    pf = run_filter(
        model, OBSERVATIONS, _prior(), filter=ParticleFilter(num_particles=4000)
    )

    assert pf.filter_kind == "particle"
    np.testing.assert_allclose(pf.means().numpy(), kf.means().numpy(), atol=0.1)
    assert abs(pf.log_likelihood - kf.log_likelihood) < 0.5


def test_particle_log_likelihood_increment() -> None:
    model = NonlinearSSM(
        transition_fn=lambda x: x,
        observation_log_prob_fn=lambda y, xs: -tf.reduce_sum((y - xs) ** 2, axis=-1),
        transition_cov=np.eye(1),
        observation_dim=1,
    )
    particles = np.array([[0.0], [1.0], [2.0]])
    weights = np.array([0.2, 0.3, 0.5])
    pf = ParticleFilter(resample_threshold=0.0)

    result = pf.update(model, ParticleState(particles, weights), [1.0])

    loglik = -((1.0 - particles[:, 0]) ** 2)
    expected = np.log(np.sum(weights * np.exp(loglik)))
    np.testing.assert_allclose(result.log_likelihood, expected, atol=1e-12)
    posterior_weights = weights * np.exp(loglik)
    np.testing.assert_allclose(
        result.distribution.weights.numpy(), posterior_weights / posterior_weights.sum()
    )
    np.testing.assert_allclose(result.distribution.particles.numpy(), particles)


def test_custom_log_likelihood_fn_is_used() -> None:
    model = _build_linear_ssm()
    calls = []

    def flat_likelihood(observation: tf.Tensor, particles: tf.Tensor, t: int) -> tf.Tensor:
        calls.append(t)
        return tf.zeros(particles.shape[0], dtype=particles.dtype)

    pf = ParticleFilter(log_likelihood_fn=flat_likelihood)
    state = ParticleState(np.zeros((10, 2)))
    result = pf.update(model, state, [3.0], t=4)

    assert calls == [4]
    np.testing.assert_allclose(result.log_likelihood, 0.0, atol=1e-12)


def test_streaming_update_keeps_particle_filter_options() -> None:
    tf.random.set_seed(6)
    model = _build_linear_ssm()
    calls = []

    def flat_likelihood(observation: tf.Tensor, particles: tf.Tensor, t: int) -> tf.Tensor:
        calls.append(t)
        return tf.zeros(particles.shape[0], dtype=particles.dtype)

    pf = ParticleFilter(
        num_particles=50, resampling="multinomial", log_likelihood_fn=flat_likelihood
    )
    trajectory = run_filter(model, OBSERVATIONS[:1], _prior(), filter=pf)
    update_trajectory(model, trajectory, [25.0])

    assert trajectory.bayes_filter is pf
    assert calls == [0, 1]
    np.testing.assert_allclose(trajectory.log_likelihood_increments, [0.0, 0.0], atol=1e-12)


def test_resampling_resets_weights() -> None:
    tf.random.set_seed(6)
    model = _build_linear_ssm()
    particles = np.linspace(-2.0, 2.0, 20)[:, None] * np.ones((1, 2))
    pf = ParticleFilter(resample_threshold=1.0)

    result = pf.update(model, ParticleState(particles), [1.5])

    np.testing.assert_allclose(result.distribution.weights.numpy(), np.full(20, 0.05))
    assert np.all(result.distribution.particles.numpy()[:, 0] > -1.0)


def test_systematic_resample_is_deterministic_in_counts() -> None:
    weights = tf.constant([0.5, 0.25, 0.25, 0.0], dtype=tf.float64)
    indices = systematic_resample(weights).numpy()

    np.testing.assert_array_equal(np.bincount(indices, minlength=4), [2, 1, 1, 0])

    degenerate = tf.constant([0.0, 0.0, 1.0, 0.0], dtype=tf.float64)
    np.testing.assert_array_equal(systematic_resample(degenerate).numpy(), [2, 2, 2, 2])


def test_multinomial_resample_respects_zero_weights() -> None:
    tf.random.set_seed(3)
    weights = tf.constant([0.0, 0.7, 0.3], dtype=tf.float64)
    indices = multinomial_resample(weights).numpy()

    assert indices.shape == (3,)
    assert np.all(indices != 0)


def test_effective_sample_size_bounds() -> None:
    uniform = tf.fill((8,), tf.constant(1.0 / 8.0, dtype=tf.float64))
    degenerate = tf.one_hot(3, 8, dtype=tf.float64)

    np.testing.assert_allclose(float(effective_sample_size(uniform)), 8.0)
    np.testing.assert_allclose(float(effective_sample_size(degenerate)), 1.0)


def test_particle_filter_runs_on_non_gaussian_model() -> None:
    tf.random.set_seed(4)
    model = NonlinearSSM(
        transition_fn=lambda x: 0.9 * x,
        observation_log_prob_fn=lambda y, xs: -tf.reduce_sum(tf.abs(y - xs), axis=-1)
        - tf.math.log(2.0 * tf.ones([], dtype=tf.float64)),
        transition_cov=0.1 * np.eye(1),
        observation_dim=1,
    )

    trajectory = run_filter(
        model,
        [[0.5], [0.2], [np.nan], [0.4]],
        GaussianState([0.0], [[1.0]]),
        filter=ParticleFilter(num_particles=500, resampling="multinomial"),
    )

    assert len(trajectory) == 4
    assert trajectory.log_likelihood_increments[2] == 0.0
    assert np.isfinite(trajectory.log_likelihood)
    assert isinstance(trajectory.final_state, ParticleState)

    with pytest.raises(UnsupportedFilterError):
        run_filter(model, [[0.5]], GaussianState([0.0], [[1.0]]), filter="ekf")


def test_particle_filter_validates_options() -> None:
    with pytest.raises(ValueError, match="resampling"):
        ParticleFilter(resampling="stratified")
    with pytest.raises(ValueError, match="resample_threshold"):
        ParticleFilter(resample_threshold=1.5)
