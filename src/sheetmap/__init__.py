"""sheetmap: Map spreadsheet rows onto dataclasses and pydantic models."""

from sheetmap.classmap import (
    ClassMap,
    CollectionField,
    DictionaryField,
    FieldMapping,
    FieldOptions,
    Ignore,
    ObjectField,
    ScalarField,
)
from sheetmap.columns import (
    AllColumns,
    ByIndex,
    ByIndices,
    ByName,
    ByNames,
    ByNamesMatching,
    ColumnSelector,
    Default,
    FirstOf,
    ResolutionError,
    ResolutionFailure,
    matching_names,
    matching_regex,
    resolve_column,
    resolve_columns,
)
from sheetmap.config import MapperSettings
from sheetmap.convert import (
    CallableConverter,
    ConversionResult,
    MappingConverter,
    NumberStyle,
    ScalarConverter,
    converter_for_type,
)
from sheetmap.errors import (
    ColumnResolutionError,
    ConstructionError,
    DuplicateClassMapError,
    EmptyValueError,
    HeadingError,
    MappingError,
    RecursiveMappingError,
    SheetExhaustedError,
    UnparsableValueError,
    UnsupportedConstructionError,
)
from sheetmap.fallback import (
    Fallback,
    FallbackPolicy,
    FallbackStrategy,
    FixedValueFallback,
    ThrowFallback,
)
from sheetmap.loader import class_map_from_dict, load_class_map
from sheetmap.mapper import RowMapper, default_mapper, default_registry, map_row, register
from sheetmap.materialize import CollectionKind, split_text
from sheetmap.registry import ClassMapRegistry
from sheetmap.sheet import Cell, Heading, RawCellSource, Sheet

__all__ = [
    # Mapping entry points
    "RowMapper",
    "map_row",
    "register",
    "default_mapper",
    "default_registry",
    "ClassMapRegistry",
    # Class maps
    "ClassMap",
    "FieldOptions",
    "Ignore",
    "FieldMapping",
    "ScalarField",
    "CollectionField",
    "DictionaryField",
    "ObjectField",
    "class_map_from_dict",
    "load_class_map",
    # Column selection
    "ColumnSelector",
    "ByIndex",
    "ByIndices",
    "ByName",
    "ByNames",
    "ByNamesMatching",
    "Default",
    "FirstOf",
    "AllColumns",
    "matching_names",
    "matching_regex",
    "resolve_column",
    "resolve_columns",
    "ResolutionError",
    "ResolutionFailure",
    # Conversion
    "ConversionResult",
    "CallableConverter",
    "MappingConverter",
    "ScalarConverter",
    "NumberStyle",
    "converter_for_type",
    # Fallbacks
    "Fallback",
    "FallbackPolicy",
    "FallbackStrategy",
    "FixedValueFallback",
    "ThrowFallback",
    # Collections
    "CollectionKind",
    "split_text",
    # Sheets
    "Cell",
    "Heading",
    "RawCellSource",
    "Sheet",
    "MapperSettings",
    # Errors
    "MappingError",
    "ColumnResolutionError",
    "EmptyValueError",
    "UnparsableValueError",
    "ConstructionError",
    "UnsupportedConstructionError",
    "RecursiveMappingError",
    "DuplicateClassMapError",
    "HeadingError",
    "SheetExhaustedError",
]
