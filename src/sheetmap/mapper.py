"""Row mapper: the entry point that turns sheet rows into target objects.

Usage::

    from sheetmap import RowMapper, Sheet

    sheet = Sheet([["Name", "Age"], ["Ada", 36], ["Alan", ""]])
    mapper = RowMapper()

    mapper.map_row(Person, sheet, 1)            # -> Person(name="Ada", age=36)
    for person in mapper.read_rows(Person, sheet):
        ...

    # Module-level helpers share one default registry.
    from sheetmap import map_row, register
    register(ClassMap.build(Person, {"name": "Full Name"}))
    map_row(Person, sheet, 1)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import Any

from sheetmap.classmap import ClassMap
from sheetmap.config import MapperSettings
from sheetmap.errors import HeadingError, SheetExhaustedError
from sheetmap.members import is_record_type
from sheetmap.registry import ClassMapRegistry
from sheetmap.sheet import RawCellSource, Sheet

log = logging.getLogger(__name__)


class RowMapper:
    """Map rows onto target types using class maps from a registry.

    Args:
        registry: Source of class maps; a private registry when omitted.
        settings: Model validation switch (sheet-level settings live on the sheet).
    """

    def __init__(
        self,
        registry: ClassMapRegistry | None = None,
        settings: MapperSettings | None = None,
    ):
        self.registry = registry if registry is not None else ClassMapRegistry()
        self.settings = settings or MapperSettings()

    def register(self, class_map: ClassMap) -> ClassMap:
        return self.registry.register(class_map)

    def class_map(self, target: Any, sheet: RawCellSource | None = None) -> ClassMap:
        """Return the class map of *target*, building it by convention if needed.

        Record types mapped by convention read members by header name, so
        they need a sheet with a heading.

        Raises:
            HeadingError: *target* would be auto-mapped by name but *sheet*
                has no heading.
        """
        class_map = self.registry.get(target)
        if class_map is not None:
            return class_map
        if sheet is not None and sheet.heading is None and is_record_type(target):
            raise HeadingError(
                f'Cannot auto-map type "{getattr(target, "__name__", target)}" '
                "as the sheet has no heading."
            )
        return self.registry.get_or_build(target)

    def map_row(self, target: Any, sheet: RawCellSource, row_index: int) -> Any:
        """Map row *row_index* of *sheet* onto *target*.

        A :class:`Sheet` whose heading has not been read yet has it read first.

        Raises:
            MappingError: The row cannot be mapped.  Only this row is affected.
        """
        if isinstance(sheet, Sheet):
            sheet.ensure_heading()
            if not sheet.has_row(row_index):
                raise SheetExhaustedError(
                    f'Sheet "{sheet.name}" does not have row {row_index}',
                    row_index=row_index,
                    sheet_name=sheet.name,
                )
        class_map = self.class_map(target, sheet)
        log.debug("Mapping row %d of sheet %r onto %r", row_index, sheet.name, target)
        return class_map.read(sheet, row_index, validate=self.settings.validate_models)

    def try_read_row(self, target: Any, sheet: Sheet) -> tuple[bool, Any]:
        """Map the next row of *sheet*; ``(False, None)`` once it is exhausted."""
        sheet.ensure_heading()
        row_index = sheet.next_row_index()
        if row_index is None:
            return False, None
        return True, self.map_row(target, sheet, row_index)

    def read_row(self, target: Any, sheet: Sheet) -> Any:
        """Map the next row of *sheet*.

        Raises:
            SheetExhaustedError: There are no more rows.
        """
        ok, value = self.try_read_row(target, sheet)
        if not ok:
            raise SheetExhaustedError(f'No more rows in sheet "{sheet.name}".', sheet_name=sheet.name)
        return value

    def read_rows(
        self,
        target: Any,
        sheet: Sheet,
        *,
        start: int | None = None,
        count: int | None = None,
    ) -> Iterator[Any]:
        """Map rows of *sheet* lazily.

        Arguments are validated and the heading read eagerly; rows are mapped
        as the iterator is consumed.

        Args:
            target: Type each row is mapped to.
            sheet: Sheet to read.
            start: Absolute index of the first row (heading included in the
                numbering); defaults to the row after the cursor.
            count: Number of rows to read; every remaining row when omitted.

        Raises:
            ValueError: *start* is negative or not after the heading, or
                *count* is negative.
            SheetExhaustedError: (while iterating) fewer than *count* rows remain.
        """
        if start is not None:
            if start < 0:
                raise ValueError("start must be non-negative")
            if sheet.has_heading and start <= sheet.heading_index:
                raise ValueError("start must come after the heading row")
        if count is not None and count < 0:
            raise ValueError("count must be non-negative")

        sheet.ensure_heading()
        if start is not None:
            sheet.seek(start)
        return self._iter_rows(target, sheet, start, count)

    def _iter_rows(
        self, target: Any, sheet: Sheet, start: int | None, count: int | None
    ) -> Iterator[Any]:
        if count is None:
            while True:
                ok, value = self.try_read_row(target, sheet)
                if not ok:
                    return
                yield value
        for i in range(count):
            ok, value = self.try_read_row(target, sheet)
            if not ok:
                first = start if start is not None else sheet.first_data_row
                raise SheetExhaustedError(
                    f'Sheet "{sheet.name}" does not have row {first + i}.',
                    sheet_name=sheet.name,
                )
            yield value


# ─── Default registry ────────────────────────────────────────────────────────

_default_lock = threading.Lock()
_default: RowMapper | None = None


def default_mapper() -> RowMapper:
    """The process-wide mapper used by the module-level helpers."""
    global _default
    if _default is None:
        with _default_lock:
            if _default is None:
                _default = RowMapper()
    return _default


def default_registry() -> ClassMapRegistry:
    return default_mapper().registry


def map_row(target: Any, sheet: RawCellSource, row_index: int) -> Any:
    """Map one row with the default mapper.  See :meth:`RowMapper.map_row`."""
    return default_mapper().map_row(target, sheet, row_index)


def register(class_map: ClassMap) -> ClassMap:
    """Register *class_map* in the default registry."""
    return default_mapper().register(class_map)
