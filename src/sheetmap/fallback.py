"""Fallback policy: what a member gets when its cell cannot supply a value.

Three failure kinds reach the policy:

* the column could not be resolved (recoverable only through ``optional``);
* the cell is empty (recoverable through an empty fallback, or the class-level
  :attr:`FallbackStrategy.SET_TO_DEFAULT_VALUE`);
* the cell text is unparsable (recoverable only through an invalid fallback).

Precedence is field-level fallback, then class-level strategy, then failure.
An explicit ``FixedValueFallback(None)`` is a real fallback and differs from
having no fallback at all.

Usage::

    from sheetmap.fallback import FallbackPolicy, FixedValueFallback, FailureKind

    policy = FallbackPolicy(empty=FixedValueFallback(1), invalid=FixedValueFallback(10))
    policy.decide(FailureKind.EMPTY_CELL).value       # -> 1
    policy.decide(FailureKind.UNPARSABLE_CELL).value  # -> 10
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

log = logging.getLogger(__name__)


class FallbackStrategy(enum.Enum):
    """Class-level handling of empty cells for members without a fallback."""

    THROW_IF_PRIMITIVE = "throw"
    SET_TO_DEFAULT_VALUE = "set_to_default_value"


class FailureKind(enum.Enum):
    MISSING_COLUMN = "missing_column"
    EMPTY_CELL = "empty_cell"
    UNPARSABLE_CELL = "unparsable_cell"
    CONSTRUCTION_ERROR = "construction_error"


# ─── Fallback items ──────────────────────────────────────────────────────────


class Fallback:
    """Produces the value used in place of an empty or unparsable cell."""

    def perform(self, value: Any, error: Exception | None) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class FixedValueFallback(Fallback):
    value: Any

    def perform(self, value: Any, error: Exception | None) -> Any:
        return self.value


class ThrowFallback(Fallback):
    """Explicitly fail, overriding any class-level default."""

    def __repr__(self) -> str:
        return "ThrowFallback()"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ThrowFallback)

    def __hash__(self) -> int:
        return hash(ThrowFallback)

    def perform(self, value: Any, error: Exception | None) -> Any:
        raise ValueError("ThrowFallback never produces a value")


def as_fallback(value: Any) -> Fallback:
    """Wrap a plain value in a :class:`FixedValueFallback`."""
    return value if isinstance(value, Fallback) else FixedValueFallback(value)


# ─── Outcomes ────────────────────────────────────────────────────────────────


class OutcomeKind(enum.Enum):
    VALUE = "value"
    DEFAULT = "default"
    FAIL = "fail"


@dataclass(frozen=True)
class FallbackOutcome:
    """Result of reading one leaf value.

    ``VALUE`` carries a converted or fallback value, ``DEFAULT`` a default
    chosen because nothing was read, and ``FAIL`` the failure kind and error.
    """

    kind: OutcomeKind
    value: Any = None
    failure: FailureKind | None = None
    error: Exception | None = None

    @classmethod
    def of(cls, value: Any) -> FallbackOutcome:
        return cls(OutcomeKind.VALUE, value)

    @classmethod
    def default(cls, value: Any) -> FallbackOutcome:
        return cls(OutcomeKind.DEFAULT, value)

    @classmethod
    def fail(cls, failure: FailureKind, error: Exception | None = None) -> FallbackOutcome:
        return cls(OutcomeKind.FAIL, None, failure, error)

    @property
    def failed(self) -> bool:
        return self.kind is OutcomeKind.FAIL


# ─── Policy ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FallbackPolicy:
    """Field-level fallbacks for one leaf value.

    Attributes:
        empty: Used when the cell is empty; None means no fallback.
        invalid: Used when the cell is unparsable; None means no fallback.
    """

    empty: Fallback | None = None
    invalid: Fallback | None = None

    def decide(
        self,
        failure: FailureKind,
        *,
        value: Any = None,
        error: Exception | None = None,
        strategy: FallbackStrategy = FallbackStrategy.THROW_IF_PRIMITIVE,
        type_default: Any = None,
        optional: bool = False,
        missing_default: Any = None,
    ) -> FallbackOutcome:
        """Decide the outcome for a value that could not be read directly.

        Args:
            failure: What went wrong.
            value: The raw cell value, handed to custom fallbacks.
            error: The conversion or resolution error.
            strategy: Class-level strategy, consulted for empty cells only.
            type_default: Default used by ``SET_TO_DEFAULT_VALUE``.
            optional: Whether a missing column is acceptable.
            missing_default: Value used for an acceptable missing column.
        """
        if failure is FailureKind.MISSING_COLUMN:
            if optional:
                return FallbackOutcome.default(missing_default)
            return FallbackOutcome.fail(failure, error)

        if failure is FailureKind.EMPTY_CELL:
            if self.empty is not None:
                return self._perform(self.empty, failure, value, error)
            if strategy is FallbackStrategy.SET_TO_DEFAULT_VALUE:
                log.debug("Empty cell set to type default %r", type_default)
                return FallbackOutcome.default(type_default)
            return FallbackOutcome.fail(failure, error)

        if failure is FailureKind.UNPARSABLE_CELL and self.invalid is not None:
            return self._perform(self.invalid, failure, value, error)
        return FallbackOutcome.fail(failure, error)

    @staticmethod
    def _perform(
        fallback: Fallback, failure: FailureKind, value: Any, error: Exception | None
    ) -> FallbackOutcome:
        if isinstance(fallback, ThrowFallback):
            return FallbackOutcome.fail(failure, error)
        return FallbackOutcome.of(fallback.perform(value, error))


# ─── Type defaults ───────────────────────────────────────────────────────────

_TYPE_DEFAULTS: dict[type, Any] = {
    int: 0,
    float: 0.0,
    Decimal: Decimal(0),
    bool: False,
    datetime: datetime.min,
    date: date.min,
    time: time.min,
    timedelta: timedelta(0),
    uuid.UUID: uuid.UUID(int=0),
}


def type_default(tp: Any) -> Any:
    """The zero value used for *tp* by ``SET_TO_DEFAULT_VALUE``.

    Enums default to their first member; anything without a natural zero
    (strings included) defaults to None.
    """
    if isinstance(tp, type):
        if issubclass(tp, enum.Enum):
            return next(iter(tp), None)
        if tp in _TYPE_DEFAULTS:
            return _TYPE_DEFAULTS[tp]
        for base, default in _TYPE_DEFAULTS.items():
            if base is not bool and issubclass(tp, base):
                return tp(default) if base is int else default
    return None
