"""Shared fixtures: small in-memory sheets and isolated mappers."""

from __future__ import annotations

import pytest

from sheetmap import ClassMapRegistry, RowMapper, Sheet


def make_sheet(*rows, **kwargs) -> Sheet:
    """Build a sheet whose first row is the heading."""
    return Sheet([list(r) for r in rows], **kwargs)


@pytest.fixture
def registry() -> ClassMapRegistry:
    return ClassMapRegistry()


@pytest.fixture
def mapper(registry: ClassMapRegistry) -> RowMapper:
    return RowMapper(registry)


@pytest.fixture
def three_columns() -> Sheet:
    sheet = make_sheet(["Column1", "Column2", "Column3"], [0, 1, 2])
    sheet.read_heading()
    return sheet
