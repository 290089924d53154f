"""Tests for sheetmap.fallback and sheetmap.pipeline: empty/invalid cell handling."""

import enum
from datetime import datetime
from decimal import Decimal

import pytest

from sheetmap.convert import IntConverter, StringConverter
from sheetmap.fallback import (
    FailureKind,
    Fallback,
    FallbackPolicy,
    FallbackStrategy,
    FixedValueFallback,
    OutcomeKind,
    ThrowFallback,
    as_fallback,
    type_default,
)
from sheetmap.pipeline import CellPipeline, trim
from sheetmap.sheet import Cell

THROW = FallbackStrategy.THROW_IF_PRIMITIVE
DEFAULTS = FallbackStrategy.SET_TO_DEFAULT_VALUE


class Color(enum.Enum):
    RED = 1
    GREEN = 2


# ─── FallbackPolicy ──────────────────────────────────────────────────────────


class TestFallbackPolicy:
    def test_no_fallback_fails(self):
        policy = FallbackPolicy()
        for failure in (FailureKind.EMPTY_CELL, FailureKind.UNPARSABLE_CELL, FailureKind.MISSING_COLUMN):
            assert policy.decide(failure).failed

    def test_empty_fallback(self):
        outcome = FallbackPolicy(empty=FixedValueFallback(1)).decide(FailureKind.EMPTY_CELL)
        assert outcome.kind is OutcomeKind.VALUE
        assert outcome.value == 1

    def test_invalid_fallback(self):
        policy = FallbackPolicy(invalid=FixedValueFallback(10))
        assert policy.decide(FailureKind.UNPARSABLE_CELL, value="abc").value == 10
        assert policy.decide(FailureKind.EMPTY_CELL).failed

    def test_null_fallback_differs_from_no_fallback(self):
        with_null = FallbackPolicy(empty=FixedValueFallback(None))
        outcome = with_null.decide(FailureKind.EMPTY_CELL, strategy=DEFAULTS, type_default=0)
        assert not outcome.failed
        assert outcome.value is None

        without = FallbackPolicy().decide(FailureKind.EMPTY_CELL, strategy=DEFAULTS, type_default=0)
        assert without.kind is OutcomeKind.DEFAULT
        assert without.value == 0

    def test_class_strategy_only_covers_empty_cells(self):
        outcome = FallbackPolicy().decide(
            FailureKind.UNPARSABLE_CELL, strategy=DEFAULTS, type_default=0
        )
        assert outcome.failed

    def test_explicit_throw_beats_class_strategy(self):
        policy = FallbackPolicy(empty=ThrowFallback())
        assert policy.decide(FailureKind.EMPTY_CELL, strategy=DEFAULTS, type_default=0).failed

    def test_optional_missing_column(self):
        outcome = FallbackPolicy().decide(
            FailureKind.MISSING_COLUMN, optional=True, missing_default="x"
        )
        assert outcome.kind is OutcomeKind.DEFAULT
        assert outcome.value == "x"

    def test_optional_does_not_cover_empty_cells(self):
        assert FallbackPolicy().decide(FailureKind.EMPTY_CELL, optional=True).failed

    def test_failure_carries_error(self):
        error = ValueError("boom")
        outcome = FallbackPolicy().decide(FailureKind.UNPARSABLE_CELL, error=error)
        assert outcome.failure is FailureKind.UNPARSABLE_CELL
        assert outcome.error is error

    def test_custom_fallback_sees_value(self):
        class Upper(Fallback):
            def perform(self, value, error):
                return value.upper()

        policy = FallbackPolicy(invalid=Upper())
        assert policy.decide(FailureKind.UNPARSABLE_CELL, value="abc").value == "ABC"


def test_as_fallback():
    assert as_fallback(3) == FixedValueFallback(3)
    assert as_fallback(None) == FixedValueFallback(None)
    throw = ThrowFallback()
    assert as_fallback(throw) is throw


# ─── type_default ────────────────────────────────────────────────────────────


class TestTypeDefault:
    @pytest.mark.parametrize("tp,expected", [
        (int, 0),
        (float, 0.0),
        (bool, False),
        (Decimal, Decimal(0)),
        (datetime, datetime.min),
        (str, None),
        (list, None),
    ])
    def test_values(self, tp, expected):
        assert type_default(tp) == expected

    def test_enum_first_member(self):
        assert type_default(Color) is Color.RED

    def test_bool_is_not_int_zero(self):
        assert type_default(bool) is False


# ─── CellPipeline ────────────────────────────────────────────────────────────


class TestCellPipeline:
    def _pipeline(self, **kwargs):
        return CellPipeline(
            target=int,
            converter=IntConverter(),
            policy=FallbackPolicy(FixedValueFallback(1), FixedValueFallback(10)),
            **kwargs,
        )

    def test_value(self):
        assert self._pipeline().read(Cell(0, "2")).value == 2

    def test_empty_and_none(self):
        assert self._pipeline().read(Cell(0, "")).value == 1
        assert self._pipeline().read(Cell(0, None)).value == 1

    def test_invalid(self):
        assert self._pipeline().read(Cell(0, "abc")).value == 10

    def test_whitespace_is_not_empty_without_trim(self):
        assert self._pipeline().read(Cell(0, "  ")).value == 10

    def test_trim_makes_whitespace_empty(self):
        assert self._pipeline(transformers=(trim,)).read(Cell(0, "  ")).value == 1

    def test_class_strategy_used_without_field_fallback(self):
        pipeline = CellPipeline(target=int, converter=IntConverter())
        assert pipeline.read(Cell(0, ""), DEFAULTS).value == 0
        assert pipeline.read(Cell(0, ""), THROW).failed

    def test_preserve_formatting(self):
        cell = Cell(0, 123, "00123")
        plain = CellPipeline(target=str, converter=StringConverter())
        keep = CellPipeline(target=str, converter=StringConverter(), preserve_formatting=True)
        assert plain.read(cell).value == "123"
        assert keep.read(cell).value == "00123"
