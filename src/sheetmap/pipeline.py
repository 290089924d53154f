"""Per-value pipeline: transform the cell, convert it, apply fallbacks.

A :class:`CellPipeline` is compiled once per member (or per collection
element) and reused for every row.  Reading a cell never raises for bad
data; it returns a :class:`~sheetmap.fallback.FallbackOutcome` and the
caller turns failures into errors that carry row context.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sheetmap.convert import Converter
from sheetmap.fallback import (
    FailureKind,
    FallbackOutcome,
    FallbackPolicy,
    FallbackStrategy,
    type_default,
)
from sheetmap.sheet import Cell


def trim(text: str) -> str:
    return text.strip()


@dataclass(frozen=True)
class CellPipeline:
    """Transformers, a converter and a fallback policy for one leaf value.

    Attributes:
        target: Declared leaf type, used for class-level defaults and messages.
        converter: Converts non-empty values.
        policy: Field-level fallbacks.
        transformers: Applied in order to text values before the empty check.
        preserve_formatting: Read the cell's display text instead of its value.
    """

    target: Any
    converter: Converter
    policy: FallbackPolicy = field(default_factory=FallbackPolicy)
    transformers: tuple[Callable[[str], str], ...] = ()
    preserve_formatting: bool = False

    def prepare(self, cell: Cell) -> Any:
        """The value the converter sees: formatted text or native value, transformed."""
        if self.preserve_formatting and cell.formatted is not None:
            value: Any = cell.formatted
        else:
            value = cell.value
        if isinstance(value, str):
            for transform in self.transformers:
                value = transform(value)
        return value

    def read(
        self,
        cell: Cell,
        strategy: FallbackStrategy = FallbackStrategy.THROW_IF_PRIMITIVE,
    ) -> FallbackOutcome:
        value = self.prepare(cell)
        if value is None or value == "":
            return self.policy.decide(
                FailureKind.EMPTY_CELL,
                value=value,
                strategy=strategy,
                type_default=type_default(self.target),
            )

        result = self.converter.convert(value)
        if result.succeeded:
            return FallbackOutcome.of(result.value)
        return self.policy.decide(
            FailureKind.UNPARSABLE_CELL,
            value=value,
            error=result.error,
            strategy=strategy,
        )
