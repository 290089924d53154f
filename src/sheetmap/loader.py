"""Declarative class maps: build a :class:`ClassMap` from JSON.

Usage::

    from sheetmap.loader import load_class_map

    class_map = load_class_map(Person, "maps/person.json")
    registry.register(class_map)

A map file looks like::

    {
      "strategy": "set_to_default_value",
      "fields": {
        "name": {"column": "Full Name", "trim": true},
        "age": {"column_indices": [7, 2], "empty_fallback": 0, "invalid_fallback": -1},
        "tags": {"column_names": ["Tag 1", "Tag 2"]},
        "scores": {"columns_matching": "^Q\\\\d$"},
        "status": {"mapping": {"Y": "active", "N": "inactive"}, "required": true},
        "notes": {"ignore": true}
      }
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from sheetmap.classmap import ClassMap, FieldOptions, to_selector
from sheetmap.columns import ByIndex, ByIndices, ByNames, matching_regex
from sheetmap.convert import NumberStyle
from sheetmap.fallback import FallbackStrategy

log = logging.getLogger(__name__)

# Keys copied straight onto FieldOptions.
_PLAIN_KEYS = {
    "optional",
    "required",
    "preserve_formatting",
    "trim",
    "trim_entries",
    "remove_empty_entries",
    "number_format",
    "ignore_case",
    "mapping",
    "ignore",
    "empty_fallback",
    "invalid_fallback",
}
_COLUMN_KEYS = {"column", "column_index", "column_indices", "column_names", "columns_matching"}
_SEQUENCE_KEYS = {"separators", "formats"}
_ALL_KEYS = _PLAIN_KEYS | _COLUMN_KEYS | _SEQUENCE_KEYS | {"number_style"}


def _selector(data: dict) -> Any:
    present = [k for k in _COLUMN_KEYS if k in data]
    if len(present) > 1:
        raise ValueError(f"Only one of {sorted(present)} may be given")
    if not present:
        return None
    key = present[0]
    value = data[key]
    if key == "column":
        return to_selector(value)
    if key == "column_index":
        return ByIndex(int(value))
    if key == "column_indices":
        return ByIndices(tuple(int(v) for v in value))
    if key == "column_names":
        return ByNames(tuple(value))
    return matching_regex(value)


def _number_style(value: str | list[str]) -> NumberStyle:
    names = [value] if isinstance(value, str) else value
    style = NumberStyle.NONE
    for name in names:
        try:
            style |= NumberStyle[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown number style: {name!r}") from None
    return style


def field_options_from_dict(data: dict) -> FieldOptions:
    """Parse one member's options.

    Raises:
        ValueError: Unknown keys, conflicting column keys, or bad values.
    """
    unknown = set(data) - _ALL_KEYS
    if unknown:
        raise ValueError(f"Unknown field option(s): {sorted(unknown)}")

    kwargs: dict[str, Any] = {k: data[k] for k in _PLAIN_KEYS if k in data}
    selector = _selector(data)
    if selector is not None:
        kwargs["column"] = selector
    for key in _SEQUENCE_KEYS:
        if key in data:
            value = data[key]
            kwargs[key] = value if isinstance(value, str) and key == "separators" else tuple(value)
    if "number_style" in data:
        kwargs["number_style"] = _number_style(data["number_style"])
    return FieldOptions(**kwargs)


def class_map_from_dict(target: type, data: dict, **kwargs: Any) -> ClassMap:
    """Build an explicit class map for *target* from a parsed map document.

    Extra keyword arguments are passed to :meth:`ClassMap.build`.
    """
    strategy = FallbackStrategy(data.get("strategy", FallbackStrategy.THROW_IF_PRIMITIVE.value))
    fields = {
        name: field_options_from_dict(spec) if isinstance(spec, dict) else spec
        for name, spec in data.get("fields", {}).items()
    }
    return ClassMap.build(target, fields, strategy=strategy, **kwargs)


def load_class_map(target: type, path: str | Path, **kwargs: Any) -> ClassMap:
    """Load a JSON map file and build the class map of *target*."""
    with open(path) as f:
        data = json.load(f)
    log.debug("Loaded class map for %r from %s", target, path)
    return class_map_from_dict(target, data, **kwargs)
