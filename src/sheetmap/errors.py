"""Error taxonomy for row mapping.

Every failure raised while mapping a row derives from :class:`MappingError`
and carries the context needed to point a user at the offending cell: the
target member, the row index, the column and the sheet name.  Errors abort
the current row only; the registry and its class maps stay usable.

Usage::

    from sheetmap import map_row, EmptyValueError, MappingError

    try:
        record = map_row(Record, sheet, 3)
    except EmptyValueError as e:
        print(e.member, e.row_index, e.column_name)
    except MappingError as e:
        print(e)
"""

from __future__ import annotations


class MappingError(Exception):
    """Base class for all row-mapping failures.

    The rendered message names the member, the column (by header name when
    one is known, else by position), the row and the sheet, e.g.::

        Cannot assign "abc" to member "age" of type int in column "Age"
        on row 3 in sheet "Sheet1".
    """

    def __init__(
        self,
        message: str,
        *,
        member: str | None = None,
        row_index: int | None = None,
        column_index: int | None = None,
        column_name: str | None = None,
        sheet_name: str | None = None,
        original_error: BaseException | None = None,
    ):
        self.detail = message
        self.member = member
        self.row_index = row_index
        self.column_index = column_index
        self.column_name = column_name
        self.sheet_name = sheet_name
        self.original_error = original_error
        super().__init__(self._render())

    def _render(self) -> str:
        parts = [self.detail]
        if self.column_name is not None:
            parts.append(f'in column "{self.column_name}"')
        elif self.column_index is not None:
            parts.append(f'in position "{self.column_index}"')
        if self.row_index is not None:
            parts.append(f"on row {self.row_index}")
        if self.sheet_name is not None:
            parts.append(f'in sheet "{self.sheet_name}"')
        text = " ".join(parts)
        return text if text.endswith(".") else text + "."


class ColumnResolutionError(MappingError):
    """No column satisfies the member's selector."""


class EmptyValueError(MappingError):
    """The cell is empty and the member has no empty-value fallback."""


class UnparsableValueError(MappingError, ValueError):
    """The cell text cannot be converted to the member's declared type."""


class ConstructionError(MappingError):
    """The target object could not be constructed from the mapped values."""


class UnsupportedConstructionError(MappingError, TypeError):
    """The target collection type offers no supported way to be built."""


class RecursiveMappingError(MappingError, TypeError):
    """The target type graph refers back to a type that is still being built."""


class DuplicateClassMapError(MappingError):
    """A class map is already registered or built for the target type."""


class HeadingError(MappingError):
    """The sheet heading is missing, was already read, or is too wide."""


class SheetExhaustedError(MappingError, IndexError):
    """There are no more rows to read from the sheet."""
