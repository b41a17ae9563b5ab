"""Run every filter and the smoother on a simulated constant-velocity model."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import tensorflow as tf

from statespace.data.lgssm import LinearGaussianSSM
from statespace.models.distributions import GaussianState
from statespace.models.driver import run_filter
from statespace.models.filters import (
    EnsembleKalmanFilter,
    ExtendedKalmanFilter,
    KalmanFilter,
    ParticleFilter,
    UnscentedKalmanFilter,
)
from statespace.models.smoothing import smooth
from statespace.models.trajectory import FilteredTrajectory
from statespace.utils import add_config_argument, parse_args_with_config, write_json

LOGGER = logging.getLogger(__name__)

OBSERVATION_MATRIX = [[1.0, 0.0, 0.5, 0.1], [0.0, 0.5, 1.0, 1.0]]


@dataclasses.dataclass
class MethodSummary:
    """Accuracy of one estimator against the simulated truth."""

    method: str
    rmse: float
    log_likelihood: float
    runtime_s: float


@dataclasses.dataclass
class ValidationSummary:
    num_steps: int
    seed: int
    missing_step: Optional[int]
    methods: list[MethodSummary]
    smoother_improves_likelihood: bool


def random_cov(dim: int, rng: np.random.Generator, jitter: float = 1e-1) -> np.ndarray:
    """Random well-conditioned covariance ``A A^T + jitter I``."""
    factor = rng.standard_normal((dim, dim))
    return factor @ factor.T + jitter * np.eye(dim)


def build_scenario(
    seed: int,
) -> tuple[LinearGaussianSSM, GaussianState]:
    """4-D state ``[x, vx, y, vy]`` decaying with ``F = 0.9 I``, two linear readings."""
    rng = np.random.default_rng(seed)
    model = LinearGaussianSSM(
        transition_matrix=0.9 * np.eye(4),
        observation_matrix=np.array(OBSERVATION_MATRIX),
        transition_cov=random_cov(4, rng),
        observation_cov=random_cov(2, rng),
    )
    prior = GaussianState(rng.standard_normal(4), 100.0 * np.eye(4))
    return model, prior


def _rmse(trajectory: FilteredTrajectory, states: tf.Tensor) -> float:
    diff = trajectory.means().numpy() - states.numpy()
    return float(np.sqrt(np.mean(diff**2)))


def validate_filters(
    num_steps: int = 100,
    seed: int = 0,
    num_members: int = 200,
    num_particles: int = 1000,
    missing_step: Optional[int] = 50,
) -> ValidationSummary:
    """Simulate the scenario and score every estimator on it."""
    tf.random.set_seed(seed)
    model, prior = build_scenario(seed)
    states, observations = model.simulate(num_steps, prior)

    observations = observations.numpy()
    if missing_step is not None and 0 <= missing_step < num_steps:
        observations[missing_step, 0] = np.nan
    else:
        missing_step = None

    filters = [
        KalmanFilter(),
        ExtendedKalmanFilter(),
        UnscentedKalmanFilter(),
        EnsembleKalmanFilter(num_members=num_members),
        ParticleFilter(num_particles=num_particles),
    ]

    methods = []
    kalman_trajectory = None
    for bayes_filter in filters:
        start = time.perf_counter()
        trajectory = run_filter(model, observations, prior, filter=bayes_filter)
        elapsed = time.perf_counter() - start
        if isinstance(bayes_filter, KalmanFilter):
            kalman_trajectory = trajectory
        methods.append(
            MethodSummary(
                method=bayes_filter.kind.value,
                rmse=_rmse(trajectory, states),
                log_likelihood=trajectory.log_likelihood,
                runtime_s=elapsed,
            )
        )
        LOGGER.info(
            "%s: RMSE %.4f, log-likelihood %.3f",
            bayes_filter.kind.value,
            methods[-1].rmse,
            trajectory.log_likelihood,
        )

    start = time.perf_counter()
    smoothed = smooth(model, kalman_trajectory)
    methods.append(
        MethodSummary(
            method="smoother",
            rmse=_rmse(smoothed, states),
            log_likelihood=smoothed.log_likelihood,
            runtime_s=time.perf_counter() - start,
        )
    )

    return ValidationSummary(
        num_steps=num_steps,
        seed=seed,
        missing_step=missing_step,
        methods=methods,
        smoother_improves_likelihood=(
            smoothed.log_likelihood > kalman_trajectory.log_likelihood
        ),
    )


def format_summary(summary: ValidationSummary) -> str:
    lines = [
        f"Filter validation ({summary.num_steps} steps, seed {summary.seed})",
        f"{'method':<10} {'RMSE':>10} {'log-lik':>12} {'time [s]':>10}",
    ]
    for entry in summary.methods:
        lines.append(
            f"{entry.method:<10} {entry.rmse:>10.4f} "
            f"{entry.log_likelihood:>12.3f} {entry.runtime_s:>10.2f}"
        )
    lines.append(
        f"Smoothed log-likelihood above filtered: {summary.smoother_improves_likelihood}"
    )
    return "\n".join(lines)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compare the filters and the smoother on a simulated linear model."
    )
    parser.add_argument("--num-steps", type=int, default=100)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--num-members", type=int, default=200)
    parser.add_argument("--num-particles", type=int, default=1000)
    parser.add_argument(
        "--missing-step",
        type=int,
        default=50,
        help="Step whose first observation component is marked missing (-1 for none)",
    )
    parser.add_argument("--output-json", type=Path, default=None)
    parser.add_argument("--log-level", default="INFO")
    add_config_argument(parser)
    return parse_args_with_config(parser, argv, path_options=("output_json",))


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    summary = validate_filters(
        num_steps=args.num_steps,
        seed=args.seed,
        num_members=args.num_members,
        num_particles=args.num_particles,
        missing_step=args.missing_step if args.missing_step >= 0 else None,
    )
    print(format_summary(summary))
    if args.output_json is not None:
        path = write_json(args.output_json, dataclasses.asdict(summary))
        LOGGER.info("Wrote summary to %s", path)


if __name__ == "__main__":
    main()
