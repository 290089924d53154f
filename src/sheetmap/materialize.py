"""Collection materialization: build lists, tuples, sets and dicts from elements.

A collection member is filled in one of two modes:

* **split mode**: one cell is split on separators (``","`` by default) and
  each token becomes an element;
* **multi-column mode**: each resolved column supplies one element.

Either way elements are produced in order and handed to an
:class:`ElementSink` chosen from the declared type when the class map is
built.  Types that cannot be built from elements (iterators, generators)
are rejected at that point with :class:`UnsupportedConstructionError`.

Usage::

    from sheetmap.materialize import collection_spec, split_text

    spec = collection_spec(list[int])        # CollectionKind.APPEND
    split_text("1,,2", [","])                # -> ["1", "", "2"]
    spec.build([1, 2, 3])                    # -> [1, 2, 3]
"""

from __future__ import annotations

import collections.abc as cabc
import enum
import logging
import re
import typing
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from sheetmap.errors import UnsupportedConstructionError

log = logging.getLogger(__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = (",",)


class CollectionKind(enum.Enum):
    ARRAY = "array"                # collect, then allocate (tuple[X, ...])
    FIXED_TUPLE = "fixed_tuple"    # tuple[A, B], one type per position
    APPEND = "append"              # list, deque and other append() targets
    ADD = "add"                    # set and other add() targets
    CONSTRUCT = "construct"        # frozenset and other iterable constructors
    DICT = "dict"                  # keys from header names


# ─── Sinks ───────────────────────────────────────────────────────────────────


class ElementSink(Protocol):
    def add(self, element: Any) -> None: ...

    def finish(self) -> Any: ...


class _BufferSink:
    def __init__(self, build: Callable[[list], Any]):
        self._items: list = []
        self._build = build

    def add(self, element: Any) -> None:
        self._items.append(element)

    def finish(self) -> Any:
        return self._build(self._items)


class _MethodSink:
    def __init__(self, factory: Callable[[], Any], method: str):
        self._target = factory()
        self._add = getattr(self._target, method)

    def add(self, element: Any) -> None:
        self._add(element)

    def finish(self) -> Any:
        return self._target


class _DictSink:
    def __init__(self, factory: Callable[..., Any]):
        self._pairs: list[tuple[Any, Any]] = []
        self._factory = factory

    def add(self, element: tuple[Any, Any]) -> None:
        self._pairs.append(element)

    def finish(self) -> Any:
        return self._factory(self._pairs)


# ─── Specs ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CollectionSpec:
    """How to build one collection type.

    Attributes:
        kind: Construction route.
        factory: Type (or callable) that creates the collection.
        element_types: Element type, or one type per position for fixed tuples.
        key_type: Key type of dictionaries.
    """

    kind: CollectionKind
    factory: Callable[..., Any]
    element_types: tuple[Any, ...]
    key_type: Any = None

    @property
    def element_type(self) -> Any:
        return self.element_types[0]

    @property
    def arity(self) -> int | None:
        return len(self.element_types) if self.kind is CollectionKind.FIXED_TUPLE else None

    def new_sink(self) -> ElementSink:
        if self.kind in (CollectionKind.ARRAY, CollectionKind.FIXED_TUPLE, CollectionKind.CONSTRUCT):
            return _BufferSink(self.factory)
        if self.kind is CollectionKind.APPEND:
            return _MethodSink(self.factory, "append")
        if self.kind is CollectionKind.ADD:
            return _MethodSink(self.factory, "add")
        return _DictSink(self.factory)

    def build(self, elements: Iterable[Any]) -> Any:
        sink = self.new_sink()
        for element in elements:
            sink.add(element)
        return sink.finish()


# Abstract collection types and the concrete type built for them.
_ABSTRACT_SEQUENCES = {
    cabc.Sequence, cabc.MutableSequence, cabc.Collection, cabc.Iterable, list,
}
_ABSTRACT_SETS = {cabc.Set, frozenset}
_MUTABLE_SETS = {cabc.MutableSet, set}
_ABSTRACT_MAPPINGS = {cabc.Mapping, cabc.MutableMapping, dict}
_UNSUPPORTED = {
    cabc.Iterator, cabc.Generator, cabc.AsyncIterator, cabc.AsyncIterable,
    cabc.AsyncGenerator, cabc.Reversible, cabc.Container, cabc.Sized,
}


def _origin(tp: Any) -> Any:
    return typing.get_origin(tp) or tp


def is_collection_type(tp: Any) -> bool:
    """Whether *tp* is filled element-by-element (strings and bytes are not)."""
    origin = _origin(tp)
    if origin in _UNSUPPORTED:
        return True
    if not isinstance(origin, type) or origin in (str, bytes, bytearray):
        return False
    return issubclass(origin, (cabc.Iterable,)) and not issubclass(origin, cabc.Mapping)


def is_mapping_type(tp: Any) -> bool:
    origin = _origin(tp)
    return isinstance(origin, type) and issubclass(origin, cabc.Mapping)


def collection_spec(tp: Any) -> CollectionSpec:
    """Work out how to build collection type *tp*.

    Raises:
        UnsupportedConstructionError: *tp* offers no way to be built from
            elements (iterators, generators, immutable builders).
    """
    origin = _origin(tp)
    args = typing.get_args(tp)

    if origin in _UNSUPPORTED:
        raise UnsupportedConstructionError(
            f"Cannot construct collection of type {tp!r}: iterator-style types "
            "cannot be materialized"
        )

    if is_mapping_type(tp):
        key_type, value_type = args if len(args) == 2 else (str, Any)
        if origin in _ABSTRACT_MAPPINGS:
            factory: Callable[..., Any] = dict
        elif not _accepts_iterable(origin):
            raise UnsupportedConstructionError(
                f"Cannot construct dictionary of type {tp!r}"
            )
        else:
            factory = origin
        return CollectionSpec(CollectionKind.DICT, factory, (value_type,), key_type)

    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return CollectionSpec(CollectionKind.ARRAY, tuple, (args[0],))
        if not args:
            return CollectionSpec(CollectionKind.ARRAY, tuple, (Any,))
        return CollectionSpec(CollectionKind.FIXED_TUPLE, tuple, tuple(args))

    element = args[0] if args else Any
    if origin in _ABSTRACT_SEQUENCES:
        return CollectionSpec(CollectionKind.APPEND, list, (element,))
    if origin in _MUTABLE_SETS:
        return CollectionSpec(CollectionKind.ADD, set, (element,))
    if origin in _ABSTRACT_SETS:
        return CollectionSpec(CollectionKind.CONSTRUCT, frozenset, (element,))
    if isinstance(origin, type):
        if _no_arg_instance(origin, "append"):
            return CollectionSpec(CollectionKind.APPEND, origin, (element,))
        if _no_arg_instance(origin, "add"):
            return CollectionSpec(CollectionKind.ADD, origin, (element,))
        if _accepts_iterable(origin):
            return CollectionSpec(CollectionKind.CONSTRUCT, origin, (element,))
    raise UnsupportedConstructionError(
        f"Cannot construct collection of type {tp!r}: it has no append/add method "
        "and cannot be constructed from a sequence"
    )


def _no_arg_instance(cls: type, method: str) -> bool:
    if not callable(getattr(cls, method, None)):
        return False
    try:
        cls()
    except TypeError:
        return False
    return True


def _accepts_iterable(cls: type) -> bool:
    try:
        cls([])
    except (TypeError, ValueError):
        return False
    return True


# ─── Splitting ───────────────────────────────────────────────────────────────


def split_text(
    text: str,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
    *,
    trim_entries: bool = False,
    remove_empty_entries: bool = False,
) -> list[str]:
    """Split *text* on any of *separators*, keeping empty tokens by default."""
    if not separators:
        raise ValueError("At least one separator is required")
    pattern = "|".join(re.escape(s) for s in sorted(separators, key=len, reverse=True))
    tokens = re.split(pattern, text)
    if trim_entries:
        tokens = [t.strip() for t in tokens]
    if remove_empty_entries:
        tokens = [t for t in tokens if t]
    return tokens
