"""Tests for the Kalman filter and the filtering driver on linear models."""

from __future__ import annotations

import numpy as np
import pytest
import tensorflow as tf

from statespace.data import LinearGaussianSSM
from statespace.errors import FilterStepError
from statespace.models import (
    GaussianState,
    loglikelihood,
    predict,
    run_filter,
    update,
    update_trajectory,
)
from statespace.models.filters import KalmanFilter

OBSERVATIONS = np.array(
    [
        [1.0, 0.4],
        [0.7, 0.6],
        [0.2, -0.1],
        [0.1, 0.0],
        [-0.3, 0.2],
    ]
)


def build_lgssm() -> LinearGaussianSSM:
    return LinearGaussianSSM(
        transition_matrix=[[0.7, 0.2], [0.0, 0.9]],
        observation_matrix=[[1.0, 0.0], [0.5, 1.0]],
        transition_cov=[[0.1, 0.02], [0.02, 0.1]],
        observation_cov=[[0.2, 0.01], [0.01, 0.3]],
    )


def build_prior() -> GaussianState:
    return GaussianState(np.zeros(2), np.eye(2))


def numpy_kalman(
    model: LinearGaussianSSM, observations: np.ndarray
) -> dict[str, np.ndarray]:
    A = np.asarray(model.transition_matrix)
    C = np.asarray(model.observation_matrix)
    Q = np.asarray(model.transition_cov)
    R = np.asarray(model.observation_cov)

    mean = np.zeros(A.shape[0])
    cov = np.eye(A.shape[0])
    means, covs, increments = [], [], []
    for obs in observations:
        mean = A @ mean
        cov = A @ cov @ A.T + Q
        if not np.any(np.isnan(obs)):
            innovation = obs - C @ mean
            innovation_cov = C @ cov @ C.T + R
            gain = cov @ C.T @ np.linalg.inv(innovation_cov)
            mean = mean + gain @ innovation
            cov = cov - gain @ innovation_cov @ gain.T
            _, logdet = np.linalg.slogdet(2.0 * np.pi * innovation_cov)
            increments.append(
                -0.5 * (logdet + innovation @ np.linalg.solve(innovation_cov, innovation))
            )
        else:
            increments.append(0.0)
        means.append(mean)
        covs.append(cov)

    return {
        "means": np.stack(means),
        "covs": np.stack(covs),
        "increments": np.array(increments),
    }


def test_kalman_filter_matches_numpy_reference() -> None:
    model = build_lgssm()
    trajectory = run_filter(model, OBSERVATIONS, build_prior())
    reference = numpy_kalman(model, OBSERVATIONS)

    assert len(trajectory) == len(OBSERVATIONS)
    assert trajectory.filter_kind == "kalman"
    np.testing.assert_allclose(trajectory.means().numpy(), reference["means"], atol=1e-10)
    np.testing.assert_allclose(
        trajectory.covariances().numpy(), reference["covs"], atol=1e-10
    )
    np.testing.assert_allclose(
        trajectory.log_likelihood_increments, reference["increments"], atol=1e-10
    )
    np.testing.assert_allclose(
        loglikelihood(trajectory), reference["increments"].sum(), atol=1e-10
    )


def test_joseph_and_standard_updates_agree() -> None:
    model = build_lgssm()
    joseph = run_filter(model, OBSERVATIONS, build_prior(), filter=KalmanFilter(joseph=True))
    standard = run_filter(
        model, OBSERVATIONS, build_prior(), filter=KalmanFilter(joseph=False)
    )

    np.testing.assert_allclose(
        joseph.covariances().numpy(), standard.covariances().numpy(), atol=1e-10
    )
    for cov in joseph.covariances().numpy():
        np.testing.assert_allclose(cov, cov.T)


def test_informative_update_shrinks_covariance() -> None:
    model = build_lgssm()
    predicted = predict(model, build_prior())
    posterior = update(model, predicted, OBSERVATIONS[0]).distribution

    pred_cov = predicted.distribution.cov.numpy()
    post_cov = posterior.cov.numpy()
    assert np.trace(post_cov) < np.trace(pred_cov)
    assert np.linalg.det(post_cov) < np.linalg.det(pred_cov)


def test_missing_observation_keeps_prediction() -> None:
    model = build_lgssm()
    observations = OBSERVATIONS.copy()
    observations[2, 1] = np.nan

    trajectory = run_filter(model, observations, build_prior())
    reference = numpy_kalman(model, observations)

    assert trajectory.is_missing(2)
    assert trajectory.state(2) is trajectory.predicted_states[2]
    assert trajectory.log_likelihood_increments[2] == 0.0
    np.testing.assert_allclose(trajectory.means().numpy(), reference["means"], atol=1e-10)
    np.testing.assert_allclose(
        trajectory.log_likelihood, reference["increments"].sum(), atol=1e-10
    )


def test_missing_update_reports_skip() -> None:
    model = build_lgssm()
    predicted = predict(model, build_prior())
    result = update(model, predicted, [np.nan, 0.0])

    assert result.skipped
    assert result.log_likelihood == 0.0
    assert result.distribution is predicted.distribution


def test_streaming_update_matches_batch_run() -> None:
    model = build_lgssm()
    batch = run_filter(model, OBSERVATIONS, build_prior())

    streamed = run_filter(model, OBSERVATIONS[:3], build_prior())
    snapshot = streamed.copy()
    for obs in OBSERVATIONS[3:]:
        returned = update_trajectory(model, streamed, obs)
        assert returned is streamed

    assert len(streamed) == len(OBSERVATIONS)
    assert len(snapshot) == 3
    np.testing.assert_allclose(streamed.means().numpy(), batch.means().numpy(), atol=1e-12)
    np.testing.assert_allclose(streamed.log_likelihood, batch.log_likelihood, atol=1e-10)


def test_control_inputs_shift_the_prediction() -> None:
    model = LinearGaussianSSM(
        transition_matrix=np.eye(2),
        observation_matrix=np.eye(2),
        transition_cov=0.1 * np.eye(2),
        observation_cov=np.eye(2),
        control_matrix=[[1.0], [0.0]],
    )
    assert model.control_dim == 1

    predicted = predict(model, build_prior(), control=[2.0])
    np.testing.assert_allclose(predicted.distribution.mean.numpy(), [2.0, 0.0])

    controls = np.ones((3, 1))
    trajectory = run_filter(model, np.zeros((3, 2)), build_prior(), controls=controls)
    assert trajectory.controls[0] is not None
    with pytest.raises(ValueError, match="controls"):
        run_filter(model, np.zeros((3, 2)), build_prior(), controls=np.ones((2, 1)))


def test_observation_shape_is_checked() -> None:
    model = build_lgssm()
    with pytest.raises(ValueError, match="observations"):
        run_filter(model, np.zeros((4, 3)), build_prior())
    with pytest.raises(ValueError, match="observation"):
        update(model, build_prior(), [1.0, 2.0, 3.0])


def test_singular_innovation_raises_filter_step_error() -> None:
    model = LinearGaussianSSM(
        transition_matrix=np.eye(2),
        observation_matrix=np.zeros((1, 2)),
        transition_cov=np.zeros((2, 2)),
        observation_cov=np.zeros((1, 1)),
    )

    with pytest.raises(FilterStepError) as excinfo:
        run_filter(model, np.ones((3, 1)), build_prior())

    assert excinfo.value.step == 0
    assert excinfo.value.operation == "update"
    assert excinfo.value.filter_kind == "kalman"
    assert "[kalman update step 0]" in str(excinfo.value)


def test_time_varying_model_matches_constant_model() -> None:
    constant = build_lgssm()
    varying = LinearGaussianSSM(
        transition_matrix=lambda t: constant.process_jacobian(None, t),
        observation_matrix=lambda t: constant.observation_jacobian(None, t),
        transition_cov=lambda t: constant.process_noise_cov(t),
        observation_cov=lambda t: constant.observation_noise_cov(t),
    )

    expected = run_filter(constant, OBSERVATIONS, build_prior())
    result = run_filter(varying, OBSERVATIONS, build_prior())
    tf.debugging.assert_near(result.means(), expected.means())


def test_filtering_recovers_simulated_states_as_noise_shrinks() -> None:
    rmses = []
    for scale in (1.0, 0.1, 0.01):
        model = LinearGaussianSSM(
            transition_matrix=[[0.7, 0.2], [0.0, 0.9]],
            observation_matrix=np.eye(2),
            transition_cov=[[0.1, 0.02], [0.02, 0.1]],
            observation_cov=scale * np.eye(2),
        )
        tf.random.set_seed(21)
        states, observations = model.simulate(200, tf.zeros(2, dtype=tf.float64))

        trajectory = run_filter(model, observations, build_prior())
        error = trajectory.means().numpy() - states.numpy()
        rmse = float(np.sqrt(np.mean(error**2)))

        assert rmse < 2.0 * np.sqrt(scale)
        rmses.append(rmse)

    assert rmses[0] > rmses[1] > rmses[2]
