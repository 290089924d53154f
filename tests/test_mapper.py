"""End-to-end tests for sheetmap.mapper: rows in, typed objects out."""

import enum
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Optional

import openpyxl
import pytest
from pydantic import BaseModel, Field

from sheetmap import (
    ByIndices,
    ClassMap,
    ClassMapRegistry,
    ColumnResolutionError,
    EmptyValueError,
    FallbackStrategy,
    FieldOptions,
    HeadingError,
    MapperSettings,
    MappingError,
    RowMapper,
    Sheet,
    SheetExhaustedError,
    UnparsableValueError,
    map_row,
    register,
)

MAX = sys.maxsize


class Color(enum.Enum):
    RED = "red"
    GREEN = "green"


# ─── Targets ─────────────────────────────────────────────────────────────────


@dataclass
class IntValue:
    value: int


@dataclass
class FallbackValue:
    value: Annotated[int, FieldOptions(empty_fallback=1, invalid_fallback=10)]


@dataclass
class StringList:
    values: list[str]


@dataclass
class StringArray:
    values: tuple[str, ...]


@dataclass
class OptionalIndices:
    value: Annotated[Optional[int], FieldOptions(column=ByIndices([MAX, MAX]), optional=True)]


@dataclass
class RequiredIndices:
    value: Annotated[Optional[int], FieldOptions(column=ByIndices([MAX, MAX]))]


@dataclass
class OptionalCount:
    name: str
    count: Annotated[int, FieldOptions(column=ByIndices([MAX, MAX]), optional=True)]
    limit: Annotated[int, FieldOptions(column="Limit", optional=True)] = 7


class OptionalCountModel(BaseModel):
    name: str
    count: Annotated[int, FieldOptions(column=ByIndices([MAX, MAX]), optional=True)]


@dataclass
class IntRecord:
    value: int


def parse_record(text: str) -> IntRecord:
    return IntRecord(int(text))


@dataclass
class RecordHolder:
    record: Annotated[IntRecord, FieldOptions(column="value", converter=parse_record)]


@dataclass
class DictHolder:
    values: Annotated[dict[str, int], FieldOptions(column=ByIndices([0, 1]))]


@dataclass
class Defaults:
    int_value: int
    str_value: str
    bool_value: bool
    enum_value: Color
    date_value: datetime
    array: Annotated[tuple[int, ...], FieldOptions(column=["A1", "A2"])]


@dataclass
class Code:
    raw: str
    code: Annotated[str, FieldOptions(column="raw", preserve_formatting=True)]


@dataclass
class Person:
    name: str
    age: int


class Price(BaseModel):
    amount: int = Field(ge=0)


def sheet_of(*rows, **kwargs) -> Sheet:
    return Sheet([list(r) for r in rows], **kwargs)


# ─── Core scenarios ──────────────────────────────────────────────────────────


class TestScenarios:
    def test_empty_cell_for_int_member(self, mapper):
        sheet = sheet_of(["value"], [""])
        with pytest.raises(EmptyValueError) as exc:
            mapper.map_row(IntValue, sheet, 1)
        err = exc.value
        assert err.member == "value"
        assert err.row_index == 1
        assert err.column_name == "value"
        assert err.sheet_name == "Sheet1"

    def test_member_fallbacks(self, mapper):
        sheet = sheet_of(["value"], ["2"], [""], ["abc"])
        assert mapper.map_row(FallbackValue, sheet, 1).value == 2
        assert mapper.map_row(FallbackValue, sheet, 2).value == 1
        assert mapper.map_row(FallbackValue, sheet, 3).value == 10

    def test_split_cell_keeps_empty_entries(self, mapper):
        sheet = sheet_of(["values"], ["1,,2"])
        assert mapper.map_row(StringList, sheet, 1).values == ["1", None, "2"]
        assert mapper.map_row(StringArray, sheet, 1).values == ("1", None, "2")

    def test_optional_out_of_range_indices(self, mapper):
        sheet = sheet_of(["a", "b", "c"], [1, 2, 3])
        assert mapper.map_row(OptionalIndices, sheet, 1).value is None

    def test_required_out_of_range_indices(self, mapper):
        sheet = sheet_of(["a", "b", "c"], [1, 2, 3])
        with pytest.raises(ColumnResolutionError):
            mapper.map_row(RequiredIndices, sheet, 1)

    def test_optional_missing_column_gets_type_default(self, mapper):
        sheet = sheet_of(["name"], ["Ada"])
        assert mapper.map_row(OptionalCount, sheet, 1) == OptionalCount("Ada", 0, 7)

    def test_optional_missing_column_on_model(self, mapper):
        sheet = sheet_of(["name"], ["Ada"])
        result = mapper.map_row(OptionalCountModel, sheet, 1)
        assert (result.name, result.count) == ("Ada", 0)

    def test_custom_converter_for_object(self, mapper):
        sheet = sheet_of(["value"], ["5"], [""], ["invalid"])
        assert mapper.map_row(RecordHolder, sheet, 1).record == IntRecord(5)
        assert mapper.map_row(RecordHolder, sheet, 2).record is None
        assert mapper.map_row(RecordHolder, sheet, 3).record is None

    def test_dictionary_from_indices(self, mapper):
        sheet = sheet_of(["Column1", "Column2"], [1, 2])
        assert mapper.map_row(DictHolder, sheet, 1).values == {"Column1": 1, "Column2": 2}


# ─── Class-level defaults ────────────────────────────────────────────────────


class TestSetToDefaultValue:
    def test_empty_row_gets_type_defaults(self):
        mapper = RowMapper(ClassMapRegistry(strategy=FallbackStrategy.SET_TO_DEFAULT_VALUE))
        heading = ["int_value", "str_value", "bool_value", "enum_value", "date_value", "A1", "A2"]
        sheet = sheet_of(heading, [None] * len(heading))
        result = mapper.map_row(Defaults, sheet, 1)
        assert result == Defaults(0, None, False, Color.RED, datetime.min, (0, 0))

    def test_strategy_does_not_cover_unparsable_cells(self):
        mapper = RowMapper(ClassMapRegistry(strategy=FallbackStrategy.SET_TO_DEFAULT_VALUE))
        sheet = sheet_of(["value"], ["abc"])
        with pytest.raises(UnparsableValueError):
            mapper.map_row(IntValue, sheet, 1)

    def test_explicit_map_strategy(self, mapper):
        mapper.register(
            ClassMap.build(
                IntValue, {"value": "value"}, strategy=FallbackStrategy.SET_TO_DEFAULT_VALUE
            )
        )
        assert mapper.map_row(IntValue, sheet_of(["value"], [None]), 1) == IntValue(0)


# ─── Errors ──────────────────────────────────────────────────────────────────


class TestErrors:
    def test_message_names_everything(self, mapper):
        sheet = sheet_of(["value"], ["abc"], name="Data")
        with pytest.raises(UnparsableValueError) as exc:
            mapper.map_row(IntValue, sheet, 1)
        assert str(exc.value) == (
            'Cannot assign "abc" to member "value" of type int '
            'in column "value" on row 1 in sheet "Data".'
        )
        assert isinstance(exc.value, ValueError)
        assert isinstance(exc.value.original_error, ValueError)

    def test_position_used_without_heading(self, mapper):
        sheet = sheet_of(["abc"], has_heading=False)
        with pytest.raises(UnparsableValueError, match='in position "0" on row 0'):
            mapper.map_row(int, sheet, 0)

    def test_failure_only_affects_its_row(self, mapper):
        sheet = sheet_of(["value"], ["x"], ["3"])
        with pytest.raises(MappingError):
            mapper.map_row(IntValue, sheet, 1)
        assert mapper.map_row(IntValue, sheet, 2) == IntValue(3)

    def test_auto_map_needs_heading(self, mapper):
        sheet = sheet_of([1, 2], has_heading=False)
        with pytest.raises(HeadingError, match='Cannot auto-map type "Person"'):
            mapper.map_row(Person, sheet, 0)

    def test_value_target_without_heading(self, mapper):
        sheet = sheet_of([7, 8], has_heading=False)
        assert mapper.map_row(int, sheet, 0) == 7
        assert mapper.map_row(list[int], sheet, 0) == [7, 8]

    def test_explicit_map_without_heading(self, mapper):
        mapper.register(ClassMap.build(Person, {"name": 0, "age": 1}))
        sheet = sheet_of(["Ada", 36], has_heading=False)
        assert mapper.map_row(Person, sheet, 0) == Person("Ada", 36)

    def test_missing_row(self, mapper):
        with pytest.raises(SheetExhaustedError):
            mapper.map_row(IntValue, sheet_of(["value"], [1]), 5)


# ─── Sequential reading ──────────────────────────────────────────────────────


class TestReadRows:
    def _sheet(self, **kwargs):
        return sheet_of(["name", "age"], ["Ada", 36], ["Alan", 41], ["Grace", 85], **kwargs)

    def test_read_row_sequence(self, mapper):
        sheet = self._sheet()
        assert mapper.read_row(Person, sheet) == Person("Ada", 36)
        assert mapper.read_row(Person, sheet).name == "Alan"
        assert mapper.try_read_row(Person, sheet) == (True, Person("Grace", 85))
        assert mapper.try_read_row(Person, sheet) == (False, None)
        with pytest.raises(SheetExhaustedError, match="No more rows"):
            mapper.read_row(Person, sheet)

    def test_all_rows(self, mapper):
        names = [p.name for p in mapper.read_rows(Person, self._sheet())]
        assert names == ["Ada", "Alan", "Grace"]

    def test_start_and_count(self, mapper):
        rows = list(mapper.read_rows(Person, self._sheet(), start=2, count=2))
        assert [p.name for p in rows] == ["Alan", "Grace"]

    def test_count_beyond_end(self, mapper):
        rows = mapper.read_rows(Person, self._sheet(), start=3, count=2)
        assert next(rows).name == "Grace"
        with pytest.raises(SheetExhaustedError):
            next(rows)

    def test_arguments_validated_eagerly(self, mapper):
        with pytest.raises(ValueError):
            mapper.read_rows(Person, self._sheet(), start=0)
        with pytest.raises(ValueError):
            mapper.read_rows(Person, self._sheet(), count=-1)

    def test_skip_blank_lines(self, mapper):
        sheet = sheet_of(
            ["name", "age"], ["Ada", 36], [None, None], ["Alan", 41],
            settings=MapperSettings(skip_blank_lines=True),
        )
        assert [p.name for p in mapper.read_rows(Person, sheet)] == ["Ada", "Alan"]

    def test_sheet_helpers_delegate(self, mapper):
        sheet = self._sheet()
        assert sheet.read_row(Person, mapper) == Person("Ada", 36)
        assert [p.name for p in sheet.read_rows(Person, mapper=mapper)] == ["Alan", "Grace"]


# ─── Workbooks ───────────────────────────────────────────────────────────────


def test_preserve_formatting_from_workbook(mapper):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["raw"])
    ws.append([123])
    ws["A2"].number_format = "00000"
    sheet = Sheet.from_openpyxl(ws)
    assert mapper.map_row(Code, sheet, 1) == Code("123", "00123")


def test_model_validation_can_be_disabled():
    sheet = sheet_of(["amount"], ["-5"])
    lenient = RowMapper(settings=MapperSettings(validate_models=False))
    assert lenient.map_row(Price, sheet, 1).amount == -5
    with pytest.raises(MappingError):
        RowMapper().map_row(Price, sheet, 1)


def test_module_level_helpers():
    @dataclass
    class Shipment:
        reference: str
        weight: float

    register(ClassMap.build(Shipment, {"reference": "Ref", "weight": "Kg"}))
    sheet = sheet_of(["Ref", "Kg"], ["S-1", "heavy"])
    with pytest.raises(UnparsableValueError):
        map_row(Shipment, sheet, 1)
    sheet = sheet_of(["Ref", "Kg"], ["S-1", "12.5"])
    assert map_row(Shipment, sheet, 1) == Shipment("S-1", 12.5)
