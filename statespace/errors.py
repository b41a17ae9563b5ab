"""Exception hierarchy for model construction and filtering failures."""

from __future__ import annotations

from typing import Optional


class StateSpaceError(Exception):
    """Base class for all errors raised by :mod:`statespace`."""


class ModelConstructionError(StateSpaceError, ValueError):
    """Raised when a model is built from inconsistent or invalid matrices."""


class NotPositiveDefiniteError(StateSpaceError, ArithmeticError):
    """Raised when a factorisation requires a positive-definite matrix."""


class UnsupportedFilterError(StateSpaceError, TypeError):
    """Raised for filter/model/state combinations that are not implemented."""


class FilterStepError(StateSpaceError, RuntimeError):
    """Numerical failure at a specific step of a filtering or smoothing run."""

    def __init__(
        self,
        message: str,
        *,
        step: Optional[int] = None,
        operation: Optional[str] = None,
        filter_kind: Optional[str] = None,
    ) -> None:
        self.step = step
        self.operation = operation
        self.filter_kind = filter_kind
        location = []
        if filter_kind is not None:
            location.append(filter_kind)
        if operation is not None:
            location.append(operation)
        if step is not None:
            location.append(f"step {step}")
        prefix = f"[{' '.join(location)}] " if location else ""
        super().__init__(prefix + message)


__all__ = [
    "FilterStepError",
    "ModelConstructionError",
    "NotPositiveDefiniteError",
    "StateSpaceError",
    "UnsupportedFilterError",
]
