"""Sheet abstraction: raw cells, headings, and an in-memory row source.

The mapping pipeline never touches workbook files.  It reads cells through
the small :class:`RawCellSource` protocol, which :class:`Sheet` implements
over plain Python rows.  Adapters build a :class:`Sheet` from an already-open
openpyxl worksheet or from a pandas DataFrame.

Usage::

    from sheetmap import Sheet

    sheet = Sheet([["Name", "Age"], ["Ada", 36], ["Alan", 41]], name="People")
    heading = sheet.read_heading()
    heading.column_index("age")   # -> 1 (case-insensitive)

    import openpyxl
    wb = openpyxl.load_workbook("people.xlsx")
    sheet = Sheet.from_openpyxl(wb["People"])
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sheetmap.config import MapperSettings
from sheetmap.errors import HeadingError, SheetExhaustedError

if TYPE_CHECKING:
    import pandas as pd
    from openpyxl.worksheet.worksheet import Worksheet

    from sheetmap.mapper import RowMapper

log = logging.getLogger(__name__)


# ─── Cells ───────────────────────────────────────────────────────────────────


def render_value(value: Any) -> str | None:
    """Render a native cell value as the text a converter sees.

    Integral floats lose their trailing ``.0`` (``123.0`` -> ``"123"``) and
    temporal values use ISO format.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


@dataclass(frozen=True)
class Cell:
    """One raw cell of a row.

    Attributes:
        column_index: Zero-based column the cell was read from.
        value: Native cell value (str, int, float, bool, datetime, ... or None).
        formatted: Display text of the cell, when the source knows it.
    """

    column_index: int
    value: Any = None
    formatted: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.value is None or (isinstance(self.value, str) and self.value == "")

    def text(self, preserve_formatting: bool = False) -> str | None:
        """Return the cell as text, optionally keeping its display formatting."""
        if preserve_formatting and self.formatted is not None:
            return self.formatted
        return render_value(self.value)

    def with_text(self, text: str | None) -> Cell:
        """Return a copy whose value is replaced by *text*."""
        return Cell(self.column_index, text, None)


# ─── Heading ─────────────────────────────────────────────────────────────────


class Heading:
    """Column names of a sheet with case-insensitive lookup.

    Duplicate names keep their original text in :attr:`column_names` but are
    registered for lookup as ``name_2``, ``name_3``, ... in column order.
    """

    def __init__(self, names: Sequence[Any]):
        self.column_names: tuple[str, ...] = tuple(
            "" if n is None else render_value(n) or "" for n in names
        )
        self._keys: list[str] = []
        self._index: dict[str, int] = {}
        for idx, name in enumerate(self.column_names):
            key = name
            if key.casefold() in self._index:
                suffix = 2
                while f"{name}_{suffix}".casefold() in self._index:
                    suffix += 1
                key = f"{name}_{suffix}"
                log.warning("Duplicate column name %r at position %d renamed to %r", name, idx, key)
            self._keys.append(key)
            self._index[key.casefold()] = idx

    def __len__(self) -> int:
        return len(self.column_names)

    def __repr__(self) -> str:
        return f"Heading({list(self.column_names)!r})"

    @property
    def keys(self) -> tuple[str, ...]:
        """Lookup names in column order (duplicates carry their suffix)."""
        return tuple(self._keys)

    def column_name(self, column_index: int) -> str:
        if not 0 <= column_index < len(self.column_names):
            raise IndexError(f"Column index {column_index} is out of range")
        return self.column_names[column_index]

    def key(self, column_index: int) -> str:
        """Unique lookup name of the column at *column_index*."""
        if not 0 <= column_index < len(self._keys):
            raise IndexError(f"Column index {column_index} is out of range")
        return self._keys[column_index]

    def try_column_index(self, name: str) -> int | None:
        return self._index.get(name.casefold())

    def column_index(self, name: str) -> int:
        idx = self.try_column_index(name)
        if idx is None:
            found = ", ".join(f'"{k}"' for k in self._keys)
            raise HeadingError(f'Column "{name}" does not exist in [{found}]')
        return idx

    def matching_indices(self, predicate: Callable[[str], bool]) -> list[int]:
        """All column indices whose lookup name satisfies *predicate*."""
        return [i for i, k in enumerate(self._keys) if predicate(k)]

    def first_matching_index(self, predicate: Callable[[str], bool]) -> int:
        matches = self.matching_indices(predicate)
        if not matches:
            found = ", ".join(f'"{k}"' for k in self._keys)
            raise HeadingError(f"No columns found matching predicate from [{found}]")
        return matches[0]


# ─── Source protocol ─────────────────────────────────────────────────────────


@runtime_checkable
class RawCellSource(Protocol):
    """What the mapping pipeline needs from a sheet."""

    @property
    def name(self) -> str: ...

    @property
    def column_count(self) -> int: ...

    @property
    def heading(self) -> Heading | None: ...

    def get_cell(self, row_index: int, column_index: int) -> Cell: ...


# ─── In-memory sheet ─────────────────────────────────────────────────────────


class Sheet:
    """A sheet held in memory as a list of rows.

    Rows are indexed from zero starting at the first physical row, so the
    heading row (when present) is row ``heading_index`` and data starts after
    it.  A cursor tracks the last row handed out by :meth:`read_row`.

    Args:
        rows: Raw cell values, one sequence per row.  Rows may be ragged.
        name: Sheet name used in error messages.
        has_heading: Whether a heading row precedes the data.
        heading_index: Zero-based index of the heading row.
        formatted: Optional display text parallel to *rows*.
        settings: Reading limits and row-skipping behaviour.
    """

    def __init__(
        self,
        rows: Sequence[Sequence[Any]],
        *,
        name: str = "Sheet1",
        has_heading: bool = True,
        heading_index: int = 0,
        formatted: Sequence[Sequence[str | None]] | None = None,
        settings: MapperSettings | None = None,
    ):
        if heading_index < 0:
            raise ValueError("heading_index must be non-negative")
        self._rows = [list(r) for r in rows]
        self._formatted = [list(r) for r in formatted] if formatted is not None else None
        self.name = name
        self.has_heading = has_heading
        self.heading_index = heading_index
        self.settings = settings or MapperSettings()
        self.heading: Heading | None = None
        self.current_row_index = -1
        self._column_count = max((len(r) for r in self._rows), default=0)

    def __repr__(self) -> str:
        return f"Sheet(name={self.name!r}, rows={len(self._rows)}, columns={self._column_count})"

    # ── shape ────────────────────────────────────────────────────────────

    @property
    def column_count(self) -> int:
        return self._column_count

    @property
    def row_count(self) -> int:
        return len(self._rows)

    @property
    def first_data_row(self) -> int:
        return self.heading_index + 1 if self.has_heading else 0

    def has_row(self, row_index: int) -> bool:
        return 0 <= row_index < len(self._rows)

    def get_cell(self, row_index: int, column_index: int) -> Cell:
        if not self.has_row(row_index):
            raise SheetExhaustedError(
                f'Sheet "{self.name}" does not have row {row_index}',
                row_index=row_index,
            )
        row = self._rows[row_index]
        value = row[column_index] if 0 <= column_index < len(row) else None
        formatted = None
        if self._formatted is not None and row_index < len(self._formatted):
            frow = self._formatted[row_index]
            if 0 <= column_index < len(frow):
                formatted = frow[column_index]
        return Cell(column_index, value, formatted)

    def is_blank_row(self, row_index: int) -> bool:
        return all(v is None or v == "" for v in self._rows[row_index])

    # ── heading ──────────────────────────────────────────────────────────

    def read_heading(self) -> Heading:
        """Read the heading row, making header-based selectors usable.

        Raises:
            HeadingError: The sheet has no heading, the heading was already
                read, or the sheet is wider than the configured maximum.
        """
        if not self.has_heading:
            raise HeadingError(f'Sheet "{self.name}" has no heading.')
        if self.heading is not None:
            raise HeadingError(f'Already read heading in sheet "{self.name}".')
        limit = self.settings.max_columns_per_sheet
        if self._column_count > limit:
            raise HeadingError(
                f"Sheet has {self._column_count} columns which exceeds the maximum allowed "
                f"({limit}). Increase max_columns_per_sheet if this is a legitimate file."
            )
        if not self.has_row(self.heading_index):
            raise SheetExhaustedError(
                f'Sheet "{self.name}" does not have row {self.heading_index}',
                row_index=self.heading_index,
            )
        names = list(self._rows[self.heading_index])
        names += [None] * (self._column_count - len(names))
        self.heading = Heading(names)
        self.current_row_index = max(self.current_row_index, self.heading_index)
        log.debug("Read heading of sheet %r: %s", self.name, self.heading.column_names)
        return self.heading

    def ensure_heading(self) -> None:
        if self.has_heading and self.heading is None:
            self.read_heading()

    # ── cursor ───────────────────────────────────────────────────────────

    def next_row_index(self) -> int | None:
        """Advance the cursor to the next data row and return its index.

        Blank rows are skipped when ``settings.skip_blank_lines`` is set.
        Returns None once the sheet is exhausted.
        """
        idx = max(self.current_row_index + 1, self.first_data_row)
        while idx < len(self._rows):
            if not (self.settings.skip_blank_lines and self.is_blank_row(idx)):
                self.current_row_index = idx
                return idx
            idx += 1
        self.current_row_index = len(self._rows)
        return None

    def seek(self, row_index: int) -> None:
        """Position the cursor so the next read returns *row_index*."""
        if row_index < 0:
            raise ValueError("row_index must be non-negative")
        self.current_row_index = row_index - 1

    def read_row(self, target: Any, mapper: RowMapper | None = None) -> Any:
        """Map the next row onto *target*.  See :meth:`RowMapper.read_row`."""
        return _mapper(mapper).read_row(target, self)

    def try_read_row(self, target: Any, mapper: RowMapper | None = None) -> tuple[bool, Any]:
        return _mapper(mapper).try_read_row(target, self)

    def read_rows(
        self,
        target: Any,
        start: int | None = None,
        count: int | None = None,
        mapper: RowMapper | None = None,
    ) -> Iterator[Any]:
        """Map rows onto *target*.  See :meth:`RowMapper.read_rows`."""
        return _mapper(mapper).read_rows(target, self, start=start, count=count)

    # ── adapters ─────────────────────────────────────────────────────────

    @classmethod
    def from_openpyxl(
        cls,
        worksheet: Worksheet,
        *,
        has_heading: bool = True,
        heading_index: int = 0,
        settings: MapperSettings | None = None,
    ) -> Sheet:
        """Build a sheet from an already-open openpyxl worksheet.

        Zero-padded number formats (``"00000"``) are rendered into the
        formatted text so ``preserve_formatting`` members keep leading zeros.
        """
        rows: list[list[Any]] = []
        formatted: list[list[str | None]] = []
        for ws_row in worksheet.iter_rows():
            rows.append([c.value for c in ws_row])
            formatted.append(
                [_format_cell(c.value, getattr(c, "number_format", None)) for c in ws_row]
            )
        return cls(
            rows,
            name=worksheet.title,
            has_heading=has_heading,
            heading_index=heading_index,
            formatted=formatted,
            settings=settings,
        )

    @classmethod
    def from_dataframe(
        cls,
        frame: pd.DataFrame,
        *,
        name: str = "Sheet1",
        settings: MapperSettings | None = None,
    ) -> Sheet:
        """Build a sheet from a pandas DataFrame; its columns become the heading."""
        try:
            import pandas as pd
        except ImportError as e:
            raise ImportError(
                "pandas is required for DataFrame input. "
                "Install it with: pip install pandas "
                "or: pip install sheetmap[dataframes]"
            ) from e

        cleaned = frame.astype(object).where(pd.notna(frame), None)
        rows: list[list[Any]] = [[str(c) for c in frame.columns]]
        rows.extend(list(r) for r in cleaned.itertuples(index=False, name=None))
        return cls(rows, name=name, has_heading=True, heading_index=0, settings=settings)


def _format_cell(value: Any, number_format: str | None) -> str | None:
    """Render the display text of an openpyxl cell for the formats we support."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if (
        number_format
        and set(number_format) == {"0"}
        and isinstance(value, (int, float))
        and not isinstance(value, bool)
        and float(value).is_integer()
    ):
        return f"{int(value):0{len(number_format)}d}"
    return None


def _mapper(mapper: RowMapper | None) -> RowMapper:
    if mapper is not None:
        return mapper
    from sheetmap.mapper import default_mapper

    return default_mapper()

