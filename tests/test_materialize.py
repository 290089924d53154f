"""Tests for sheetmap.materialize: collection construction and cell splitting."""

from collections import deque
from collections.abc import Iterator, Mapping, MutableSet, Sequence
from typing import Any

import pytest

from sheetmap import UnsupportedConstructionError
from sheetmap.materialize import (
    CollectionKind,
    collection_spec,
    is_collection_type,
    is_mapping_type,
    split_text,
)


class Bag:
    """Append-less collection that can only be built from an iterable."""

    def __init__(self, items):
        self.items = list(items)

    def __iter__(self):
        return iter(self.items)


# ─── Classification ──────────────────────────────────────────────────────────


class TestClassification:
    def test_strings_are_not_collections(self):
        assert not is_collection_type(str)
        assert not is_collection_type(bytes)

    def test_collections(self):
        assert is_collection_type(list[int])
        assert is_collection_type(tuple[int, ...])
        assert is_collection_type(Iterator[int])

    def test_mappings_are_separate(self):
        assert is_mapping_type(dict[str, int])
        assert is_mapping_type(Mapping[str, int])
        assert not is_collection_type(dict[str, int])


# ─── collection_spec ─────────────────────────────────────────────────────────


class TestCollectionSpec:
    @pytest.mark.parametrize("tp,kind,factory", [
        (list[int], CollectionKind.APPEND, list),
        (Sequence[int], CollectionKind.APPEND, list),
        (deque[int], CollectionKind.APPEND, deque),
        (tuple[int, ...], CollectionKind.ARRAY, tuple),
        (set[str], CollectionKind.ADD, set),
        (MutableSet[str], CollectionKind.ADD, set),
        (frozenset[int], CollectionKind.CONSTRUCT, frozenset),
        (dict[str, int], CollectionKind.DICT, dict),
        (Mapping[str, int], CollectionKind.DICT, dict),
    ])
    def test_kinds(self, tp, kind, factory):
        spec = collection_spec(tp)
        assert spec.kind is kind
        assert spec.factory is factory

    def test_element_types(self):
        assert collection_spec(list[int]).element_type is int
        assert collection_spec(list).element_type is Any

    def test_fixed_tuple(self):
        spec = collection_spec(tuple[int, str])
        assert spec.kind is CollectionKind.FIXED_TUPLE
        assert spec.arity == 2
        assert spec.element_types == (int, str)

    def test_dict_key_type(self):
        spec = collection_spec(dict[int, float])
        assert spec.key_type is int
        assert spec.element_type is float

    def test_bare_dict_defaults(self):
        spec = collection_spec(dict)
        assert spec.key_type is str
        assert spec.element_type is Any

    def test_iterable_constructor(self):
        spec = collection_spec(Bag)
        assert spec.kind is CollectionKind.CONSTRUCT
        assert spec.build([1, 2]).items == [1, 2]

    def test_iterator_unsupported(self):
        with pytest.raises(UnsupportedConstructionError):
            collection_spec(Iterator[int])

    def test_range_unsupported(self):
        with pytest.raises(UnsupportedConstructionError):
            collection_spec(range)


# ─── Building ────────────────────────────────────────────────────────────────


class TestBuild:
    def test_array(self):
        assert collection_spec(tuple[int, ...]).build([1, 2]) == (1, 2)

    def test_list(self):
        assert collection_spec(list[int]).build([1, 2]) == [1, 2]

    def test_set(self):
        assert collection_spec(set[int]).build([1, 1, 2]) == {1, 2}

    def test_frozenset(self):
        result = collection_spec(frozenset[int]).build([1, 2])
        assert isinstance(result, frozenset)

    def test_deque(self):
        result = collection_spec(deque[int]).build([1, 2])
        assert isinstance(result, deque)
        assert list(result) == [1, 2]

    def test_dict(self):
        assert collection_spec(dict[str, int]).build([("a", 1)]) == {"a": 1}

    def test_empty(self):
        assert collection_spec(list[int]).build([]) == []


# ─── split_text ──────────────────────────────────────────────────────────────


class TestSplitText:
    def test_keeps_empty_tokens(self):
        assert split_text("1,,2") == ["1", "", "2"]

    def test_several_separators(self):
        assert split_text("a;b|c", [";", "|"]) == ["a", "b", "c"]

    def test_longest_separator_first(self):
        assert split_text("a::b:c", ["::", ":"]) == ["a", "b", "c"]

    def test_trim_entries(self):
        assert split_text(" a , b ", trim_entries=True) == ["a", "b"]

    def test_remove_empty_entries(self):
        assert split_text("1,,2,", remove_empty_entries=True) == ["1", "2"]

    def test_trim_then_remove(self):
        assert split_text("1, ,2", trim_entries=True, remove_empty_entries=True) == ["1", "2"]

    def test_no_separators(self):
        with pytest.raises(ValueError):
            split_text("a", [])
