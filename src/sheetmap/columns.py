"""Column selectors and their resolution against a sheet.

A selector describes *where* a member's value lives: a fixed position, a
list of candidate positions, a header name, a predicate over header names,
or the member's own name.  Resolution is a pure function of the selector and
the sheet's shape; nothing is cached, so resolving twice against the same
sheet always gives the same answer.

Two modes exist:

* single-column (:func:`resolve_column`): the first candidate that exists wins;
* multi-column (:func:`resolve_columns`): every candidate, in configured order,
  used for collections read one element per column.

Usage::

    from sheetmap.columns import ByIndices, ByName, matching_regex, resolve_column

    resolve_column(ByIndices([99, 1]), sheet)      # -> 1 on a 3-column sheet
    resolve_column(ByName("age"), sheet)            # case-insensitive header lookup
    resolve_columns(matching_regex(r"^Q\\d$"), sheet)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from sheetmap.sheet import Heading, RawCellSource

log = logging.getLogger(__name__)


class ResolutionFailure(Enum):
    OUT_OF_RANGE = "out_of_range"
    NONE_MATCHED = "none_matched"
    NO_HEADING = "no_heading"


class ResolutionError(Exception):
    """A selector did not resolve to a column of the sheet."""

    def __init__(self, reason: ResolutionFailure, message: str):
        super().__init__(message)
        self.reason = reason


def _require_heading(sheet: RawCellSource, selector: ColumnSelector) -> Heading:
    heading = sheet.heading
    if heading is None:
        raise ResolutionError(
            ResolutionFailure.NO_HEADING,
            f"{selector} needs a heading but sheet \"{sheet.name}\" has none (or it was not read)",
        )
    return heading


# ─── Selectors ───────────────────────────────────────────────────────────────


class ColumnSelector:
    """Base of all selectors.

    ``multi_column`` marks selectors that, on a collection member, populate
    one element per resolved column instead of splitting a single cell.
    """

    multi_column = False

    def resolve(self, sheet: RawCellSource) -> int:
        raise NotImplementedError

    def resolve_all(self, sheet: RawCellSource) -> tuple[int, ...]:
        return (self.resolve(sheet),)

    def header_name(self) -> str | None:
        """The header name this selector looks for, if it names one."""
        return None


@dataclass(frozen=True)
class ByIndex(ColumnSelector):
    index: int

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"Column index must be non-negative, got {self.index}")

    def __str__(self) -> str:
        return f"column index {self.index}"

    def resolve(self, sheet: RawCellSource) -> int:
        if self.index >= sheet.column_count:
            raise ResolutionError(
                ResolutionFailure.OUT_OF_RANGE,
                f"Column index {self.index} is out of range for {sheet.column_count} columns",
            )
        return self.index


@dataclass(frozen=True)
class ByIndices(ColumnSelector):
    """Candidate positions tried in order.

    Single-column mode picks the first in-range index; multi-column mode
    requires all of them to be in range.
    """

    indices: tuple[int, ...]
    multi_column = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "indices", tuple(self.indices))
        if not self.indices:
            raise ValueError("ByIndices needs at least one index")
        for idx in self.indices:
            if idx < 0:
                raise ValueError(f"Column index must be non-negative, got {idx}")

    def __str__(self) -> str:
        return f"column indices {list(self.indices)}"

    def resolve(self, sheet: RawCellSource) -> int:
        for idx in self.indices:
            if idx < sheet.column_count:
                return idx
        raise ResolutionError(
            ResolutionFailure.NONE_MATCHED,
            f"None of column indices {list(self.indices)} exist in a sheet of "
            f"{sheet.column_count} columns",
        )

    def resolve_all(self, sheet: RawCellSource) -> tuple[int, ...]:
        missing = [i for i in self.indices if i >= sheet.column_count]
        if missing:
            raise ResolutionError(
                ResolutionFailure.OUT_OF_RANGE,
                f"Column indices {missing} are out of range for {sheet.column_count} columns",
            )
        return self.indices


@dataclass(frozen=True)
class ByName(ColumnSelector):
    name: str
    ignore_case: bool = True

    def __str__(self) -> str:
        return f'column "{self.name}"'

    def header_name(self) -> str | None:
        return self.name

    def resolve(self, sheet: RawCellSource) -> int:
        heading = _require_heading(sheet, self)
        idx = heading.try_column_index(self.name)
        if idx is not None and (self.ignore_case or heading.key(idx) == self.name):
            return idx
        raise ResolutionError(
            ResolutionFailure.NONE_MATCHED,
            f'Column "{self.name}" does not exist in [{", ".join(heading.keys)}]',
        )


@dataclass(frozen=True)
class ByNames(ColumnSelector):
    """Candidate header names; the first that exists wins."""

    names: tuple[str, ...]
    ignore_case: bool = True
    multi_column = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "names", tuple(self.names))
        if not self.names:
            raise ValueError("ByNames needs at least one name")

    def __str__(self) -> str:
        return f"columns {list(self.names)}"

    def header_name(self) -> str | None:
        return self.names[0]

    def _lookup(self, sheet: RawCellSource) -> list[int | None]:
        return [_try_resolve(ByName(n, self.ignore_case), sheet) for n in self.names]

    def resolve(self, sheet: RawCellSource) -> int:
        _require_heading(sheet, self)
        for idx in self._lookup(sheet):
            if idx is not None:
                return idx
        raise ResolutionError(
            ResolutionFailure.NONE_MATCHED,
            f"None of columns {list(self.names)} exist",
        )

    def resolve_all(self, sheet: RawCellSource) -> tuple[int, ...]:
        _require_heading(sheet, self)
        found = self._lookup(sheet)
        missing = [n for n, idx in zip(self.names, found) if idx is None]
        if missing:
            raise ResolutionError(
                ResolutionFailure.NONE_MATCHED,
                f"Columns {missing} do not exist",
            )
        return tuple(idx for idx in found if idx is not None)


@dataclass(frozen=True)
class ByNamesMatching(ColumnSelector):
    """Columns accepted by ``predicate(sheet, column_index)``.

    Single-column mode picks the first match in column order; multi-column
    mode takes every match.  Zero matches fails in both modes.
    """

    predicate: Callable[[RawCellSource, int], bool]
    description: str = "matching predicate"
    needs_heading: bool = False
    multi_column = True

    def __str__(self) -> str:
        return f"columns {self.description}"

    def _matches(self, sheet: RawCellSource) -> list[int]:
        if self.needs_heading:
            _require_heading(sheet, self)
        matches = [i for i in range(sheet.column_count) if self.predicate(sheet, i)]
        if not matches:
            raise ResolutionError(ResolutionFailure.NONE_MATCHED, f"No {self} found")
        return matches

    def resolve(self, sheet: RawCellSource) -> int:
        return self._matches(sheet)[0]

    def resolve_all(self, sheet: RawCellSource) -> tuple[int, ...]:
        return tuple(self._matches(sheet))


@dataclass(frozen=True)
class Default(ColumnSelector):
    """The member's own name, looked up case-insensitively in the heading."""

    member_name: str

    def __str__(self) -> str:
        return f'column "{self.member_name}"'

    def header_name(self) -> str | None:
        return self.member_name

    def resolve(self, sheet: RawCellSource) -> int:
        return ByName(self.member_name).resolve(sheet)


@dataclass(frozen=True)
class FirstOf(ColumnSelector):
    """Several selectors tried in configured order."""

    selectors: tuple[ColumnSelector, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "selectors", tuple(self.selectors))
        if not self.selectors:
            raise ValueError("FirstOf needs at least one selector")

    def __str__(self) -> str:
        return " or ".join(str(s) for s in self.selectors)

    def header_name(self) -> str | None:
        return self.selectors[0].header_name()

    def resolve(self, sheet: RawCellSource) -> int:
        errors: list[str] = []
        for selector in self.selectors:
            try:
                return selector.resolve(sheet)
            except ResolutionError as e:
                errors.append(str(e))
        raise ResolutionError(ResolutionFailure.NONE_MATCHED, "; ".join(errors))

    def resolve_all(self, sheet: RawCellSource) -> tuple[int, ...]:
        found: list[int] = []
        for selector in self.selectors:
            idx = _try_resolve(selector, sheet)
            if idx is not None:
                found.append(idx)
        if not found:
            raise ResolutionError(ResolutionFailure.NONE_MATCHED, f"None of {self} exist")
        return tuple(found)


@dataclass(frozen=True)
class AllColumns(ColumnSelector):
    """Every column of the sheet, in order."""

    multi_column = True

    def __str__(self) -> str:
        return "all columns"

    def resolve(self, sheet: RawCellSource) -> int:
        if sheet.column_count == 0:
            raise ResolutionError(ResolutionFailure.OUT_OF_RANGE, "Sheet has no columns")
        return 0

    def resolve_all(self, sheet: RawCellSource) -> tuple[int, ...]:
        return tuple(range(sheet.column_count))


# ─── Selector helpers ────────────────────────────────────────────────────────


def matching_regex(pattern: str | re.Pattern, flags: int = 0) -> ByNamesMatching:
    """Select columns whose header name matches *pattern* (``re.search``)."""
    rx = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
    return ByNamesMatching(
        lambda sheet, i: bool(rx.search(sheet.heading.key(i))),
        description=f"matching /{rx.pattern}/",
        needs_heading=True,
    )


def matching_names(predicate: Callable[[str], bool]) -> ByNamesMatching:
    """Select columns whose header name satisfies *predicate*."""
    return ByNamesMatching(
        lambda sheet, i: bool(predicate(sheet.heading.key(i))),
        description="matching name predicate",
        needs_heading=True,
    )


def first_of(selectors: Iterable[ColumnSelector]) -> ColumnSelector:
    """Collapse several selectors into one, leaving a single selector as is."""
    selectors = tuple(selectors)
    if len(selectors) == 1:
        return selectors[0]
    return FirstOf(selectors)


# ─── Resolution ──────────────────────────────────────────────────────────────


def resolve_column(selector: ColumnSelector, sheet: RawCellSource) -> int:
    """Resolve *selector* to a single column index.

    Raises:
        ResolutionError: No candidate column exists.
    """
    idx = selector.resolve(sheet)
    log.debug("Resolved %s to column %d in sheet %r", selector, idx, sheet.name)
    return idx


def resolve_columns(selector: ColumnSelector, sheet: RawCellSource) -> tuple[int, ...]:
    """Resolve *selector* to every column it names, in configured order.

    Raises:
        ResolutionError: A required candidate is missing, or nothing matched.
    """
    indices = selector.resolve_all(sheet)
    log.debug("Resolved %s to columns %s in sheet %r", selector, list(indices), sheet.name)
    return indices


def _try_resolve(selector: ColumnSelector, sheet: RawCellSource) -> int | None:
    try:
        return selector.resolve(sheet)
    except ResolutionError:
        return None
