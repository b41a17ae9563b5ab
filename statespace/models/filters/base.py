"""Filter interface, step results and the filter registry."""

from __future__ import annotations

import abc
import enum
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

import tensorflow as tf

from statespace.data.base import StateSpaceModel
from statespace.data.lgssm import LinearGaussianSSM
from statespace.data.nonlinear_ssm import NonlinearGaussianSSM
from statespace.errors import (
    FilterStepError,
    NotPositiveDefiniteError,
    UnsupportedFilterError,
)
from statespace.linalg import all_finite, has_missing, to_tensor
from statespace.models.distributions import GaussianState

LOGGER = logging.getLogger(__name__)


class FilterKind(str, enum.Enum):
    """Tag selecting one of the supported filter algorithms."""

    KALMAN = "kalman"
    EXTENDED = "extended"
    UNSCENTED = "unscented"
    ENSEMBLE = "ensemble"
    PARTICLE = "particle"

    @classmethod
    def parse(cls, value: Union["FilterKind", str]) -> "FilterKind":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return cls(key)
        except ValueError as exc:
            raise UnsupportedFilterError(f"Unknown filter kind: {value!r}") from exc


_ALIASES = {
    "kf": FilterKind.KALMAN,
    "ekf": FilterKind.EXTENDED,
    "ukf": FilterKind.UNSCENTED,
    "enkf": FilterKind.ENSEMBLE,
    "pf": FilterKind.PARTICLE,
}

SUPPORTED_MODELS: Dict[FilterKind, Tuple[Type[StateSpaceModel], ...]] = {
    FilterKind.KALMAN: (LinearGaussianSSM,),
    FilterKind.EXTENDED: (LinearGaussianSSM, NonlinearGaussianSSM),
    FilterKind.UNSCENTED: (LinearGaussianSSM, NonlinearGaussianSSM),
    FilterKind.ENSEMBLE: (LinearGaussianSSM, NonlinearGaussianSSM),
    FilterKind.PARTICLE: (StateSpaceModel,),
}


@dataclass
class PredictResult:
    """Outcome of a predict step.

    Attributes:
        distribution: Predicted state estimate.
        sigma_points: Propagated sigma points (unscented filter only); reused
            by the following update when they include the process noise.
        cross_covariance: ``Cov(x_t, x_{t+1})`` between the input and the
            predicted state; Gaussian filters only.
    """

    distribution: Any
    sigma_points: Optional[tf.Tensor] = None
    cross_covariance: Optional[tf.Tensor] = None


@dataclass
class UpdateResult:
    """Outcome of an update step."""

    distribution: Any
    log_likelihood: float = 0.0
    skipped: bool = False
    innovation: Optional[tf.Tensor] = None
    innovation_cov: Optional[tf.Tensor] = None
    gain: Optional[tf.Tensor] = None


class BayesFilter(abc.ABC):
    """Predict/update recursion over a :class:`StateSpaceModel`.

    Subclasses implement ``_predict`` and ``_update``; the public methods add
    model/state checks, the missing-observation skip and translation of
    numerical failures into :class:`FilterStepError`.
    """

    kind: FilterKind
    state_type: type = GaussianState

    def initialize(self, initial_state: Any) -> Any:
        """Convert a prior into the representation this filter propagates."""
        if isinstance(initial_state, self.state_type):
            return initial_state
        raise UnsupportedFilterError(
            f"{type(self).__name__} cannot start from {type(initial_state).__name__}"
        )

    def supports(self, model: StateSpaceModel) -> bool:
        return isinstance(model, SUPPORTED_MODELS[self.kind])

    def check_model(self, model: StateSpaceModel) -> None:
        if not self.supports(model):
            raise UnsupportedFilterError(
                f"{type(self).__name__} does not support {type(model).__name__}"
            )

    def check_state(self, state: Any) -> None:
        if not isinstance(state, self.state_type):
            raise UnsupportedFilterError(
                f"{type(self).__name__} expects {self.state_type.__name__}, "
                f"got {type(state).__name__}"
            )

    def predict(
        self,
        model: StateSpaceModel,
        state: Any,
        t: int = 0,
        control: Optional[tf.Tensor] = None,
    ) -> PredictResult:
        """Propagate ``state`` through the process model for step ``t``."""
        self.check_model(model)
        self.check_state(state)
        if control is not None:
            control = to_tensor(control)
        result = self._guard(
            "predict", t, lambda: self._predict(model, state, t, control)
        )
        self._check_finite(result.distribution, "predict", t)
        return result

    def update(
        self,
        model: StateSpaceModel,
        predicted: Any,
        observation: tf.Tensor,
        t: int = 0,
        predict_result: Optional[PredictResult] = None,
    ) -> UpdateResult:
        """Condition ``predicted`` on ``observation``.

        ``predicted`` may be a state estimate or the :class:`PredictResult`
        returned by :meth:`predict`. An observation containing NaN skips the
        update: the prediction is returned unchanged with zero log-likelihood.
        """
        if isinstance(predicted, PredictResult):
            predict_result = predicted
            predicted = predicted.distribution
        self.check_model(model)
        self.check_state(predicted)
        observation = to_tensor(observation)
        if tuple(observation.shape) != (model.observation_dim,):
            raise ValueError(
                f"observation must have shape {(model.observation_dim,)}, "
                f"got {tuple(observation.shape)}"
            )
        if has_missing(observation):
            LOGGER.debug("Missing observation at step %d; update skipped", t)
            return UpdateResult(distribution=predicted, skipped=True)

        result = self._guard(
            "update",
            t,
            lambda: self._update(model, predicted, observation, t, predict_result),
        )
        self._check_finite(result.distribution, "update", t)
        if not math.isfinite(float(result.log_likelihood)):
            raise FilterStepError(
                "log-likelihood increment is not finite",
                step=t,
                operation="update",
                filter_kind=self.kind.value,
            )
        return result

    @abc.abstractmethod
    def _predict(
        self,
        model: StateSpaceModel,
        state: Any,
        t: int,
        control: Optional[tf.Tensor],
    ) -> PredictResult:
        ...

    @abc.abstractmethod
    def _update(
        self,
        model: StateSpaceModel,
        predicted: Any,
        observation: tf.Tensor,
        t: int,
        predict_result: Optional[PredictResult],
    ) -> UpdateResult:
        ...

    def _guard(self, operation: str, t: int, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except (NotPositiveDefiniteError, tf.errors.InvalidArgumentError) as exc:
            raise FilterStepError(
                str(exc).splitlines()[0] if str(exc) else type(exc).__name__,
                step=t,
                operation=operation,
                filter_kind=self.kind.value,
            ) from exc

    def _check_finite(self, state: Any, operation: str, t: int) -> None:
        if not all_finite(state.mean, state.cov):
            raise FilterStepError(
                "produced non-finite state estimate",
                step=t,
                operation=operation,
                filter_kind=self.kind.value,
            )


_REGISTRY: Dict[FilterKind, Type[BayesFilter]] = {}


def register_filter(kind: FilterKind) -> Callable[[Type[BayesFilter]], Type[BayesFilter]]:
    def decorator(cls: Type[BayesFilter]) -> Type[BayesFilter]:
        cls.kind = kind
        _REGISTRY[kind] = cls
        return cls

    return decorator


def get_filter(kind: Union[FilterKind, str, BayesFilter], **options: Any) -> BayesFilter:
    """Instantiate the filter registered for ``kind`` with ``options``."""
    if isinstance(kind, BayesFilter):
        if options:
            raise ValueError("options cannot be combined with a filter instance")
        return kind
    parsed = FilterKind.parse(kind)
    try:
        cls = _REGISTRY[parsed]
    except KeyError as exc:  # pragma: no cover - all kinds register on import
        raise UnsupportedFilterError(f"No filter registered for {parsed.value}") from exc
    return cls(**options)


__all__ = [
    "BayesFilter",
    "FilterKind",
    "PredictResult",
    "SUPPORTED_MODELS",
    "UpdateResult",
    "get_filter",
    "register_filter",
]
