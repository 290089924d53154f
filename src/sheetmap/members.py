"""Target introspection: which members a record type has, and how to build it.

Three kinds of record type are supported:

* dataclasses (including frozen and slotted ones), built with keyword arguments;
* pydantic models, built through ``model_validate`` (or ``model_construct``
  when validation is disabled);
* plain classes with class-level annotations, instantiated without
  arguments and then populated attribute by attribute.

``typing.Annotated`` metadata on a member is kept separately so class maps
can read per-member options from it.
"""

from __future__ import annotations

import dataclasses
import inspect
import types
import typing
from dataclasses import dataclass
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ValidationError

from sheetmap.errors import ConstructionError


class _NoDefault:
    def __repr__(self) -> str:
        return "<no default>"


_NO_DEFAULT: Any = _NoDefault()


@dataclass(frozen=True)
class MemberInfo:
    """One settable member of a record type.

    Attributes:
        name: Attribute / constructor keyword name.
        annotation: Declared type with ``Annotated`` wrappers removed.
        metadata: ``Annotated`` extras, outermost first.
        default: Declared default, or the no-default sentinel.
        default_factory: Declared default factory, or the no-default sentinel.
    """

    name: str
    annotation: Any
    metadata: tuple[Any, ...] = ()
    default: Any = _NO_DEFAULT
    default_factory: Any = _NO_DEFAULT

    @property
    def has_default(self) -> bool:
        return self.default is not _NO_DEFAULT or self.default_factory is not _NO_DEFAULT

    def default_value(self) -> Any:
        """The member's declared default, or None when it has none."""
        if self.default_factory is not _NO_DEFAULT:
            return self.default_factory()
        if self.default is not _NO_DEFAULT:
            return self.default
        return None


# ─── Type helpers ────────────────────────────────────────────────────────────


def split_annotated(tp: Any) -> tuple[Any, tuple[Any, ...]]:
    """Strip ``Annotated`` layers, returning the bare type and their extras."""
    metadata: list[Any] = []
    while typing.get_origin(tp) is typing.Annotated:
        args = typing.get_args(tp)
        tp = args[0]
        metadata.extend(args[1:])
    return tp, tuple(metadata)


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """Return ``(inner, True)`` for ``X | None`` and ``(tp, False)`` otherwise.

    Unions of several non-None types keep their union (minus None) as inner type.
    """
    origin = typing.get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = typing.get_args(tp)
        rest = tuple(a for a in args if a is not type(None))
        if len(rest) < len(args):
            if len(rest) == 1:
                return rest[0], True
            return Union[rest], True
    return tp, False


def union_members(tp: Any) -> tuple[Any, ...]:
    """Members of a union type, or an empty tuple for anything else."""
    origin = typing.get_origin(tp)
    if origin is Union or origin is types.UnionType:
        return typing.get_args(tp)
    return ()


def _is_class(tp: Any) -> bool:
    return isinstance(tp, type) and typing.get_origin(tp) is None


def is_model_type(tp: Any) -> bool:
    return _is_class(tp) and issubclass(tp, BaseModel)


def is_record_type(tp: Any) -> bool:
    """Whether *tp* is a record type whose members can be mapped individually."""
    if not _is_class(tp):
        return False
    if dataclasses.is_dataclass(tp) or is_model_type(tp):
        return True
    return any(inspect.get_annotations(k) for k in tp.__mro__[:-1])


# ─── Member discovery ────────────────────────────────────────────────────────


def _hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls, include_extras=True)
    except NameError as e:
        raise TypeError(f"Cannot resolve the annotations of {cls!r}: {e}") from e


def _plain_annotations(cls: type) -> dict[str, Any]:
    hints = _hints(cls)
    return {
        name: tp
        for name, tp in hints.items()
        if not name.startswith("_") and typing.get_origin(tp) is not ClassVar and tp is not ClassVar
    }


def describe_members(cls: type) -> list[MemberInfo]:
    """List the mappable members of record type *cls* in declaration order.

    Raises:
        TypeError: *cls* is not a dataclass, pydantic model or annotated class.
    """
    members: list[MemberInfo] = []

    if dataclasses.is_dataclass(cls):
        hints = _hints(cls)
        for f in dataclasses.fields(cls):
            if not f.init or f.name.startswith("_"):
                continue
            annotation, metadata = split_annotated(hints.get(f.name, f.type))
            default = _NO_DEFAULT if f.default is dataclasses.MISSING else f.default
            factory = (
                _NO_DEFAULT if f.default_factory is dataclasses.MISSING else f.default_factory
            )
            members.append(MemberInfo(f.name, annotation, metadata, default, factory))
        return members

    if is_model_type(cls):
        for name, info in cls.model_fields.items():
            # pydantic strips Annotated and keeps the extras on FieldInfo.metadata.
            annotation, metadata = split_annotated(info.annotation)
            metadata = metadata + tuple(info.metadata)
            default = _NO_DEFAULT
            factory = _NO_DEFAULT
            if not info.is_required():
                if info.default_factory is not None:
                    factory = info.default_factory
                else:
                    default = info.default
            members.append(MemberInfo(name, annotation, metadata, default, factory))
        return members

    annotations = _plain_annotations(cls)
    if not annotations:
        raise TypeError(f"Cannot discover members of {cls!r}")
    for name, tp in annotations.items():
        annotation, metadata = split_annotated(tp)
        members.append(MemberInfo(name, annotation, metadata, getattr(cls, name, _NO_DEFAULT)))
    return members


# ─── Construction ────────────────────────────────────────────────────────────


def construct(cls: type, values: dict[str, Any], *, validate: bool = True) -> Any:
    """Build an instance of record type *cls* from member values.

    Members absent from *values* keep their declared defaults.

    Raises:
        ConstructionError: The constructor or model validation rejected the values.
    """
    if is_model_type(cls):
        try:
            if validate:
                return cls.model_validate(values)
            return cls.model_construct(**values)
        except ValidationError as e:
            raise ConstructionError(
                f"Validation failed for {cls.__name__}: {e.error_count()} error(s)",
                original_error=e,
            ) from e

    if dataclasses.is_dataclass(cls):
        try:
            return cls(**values)
        except (TypeError, ValueError) as e:
            raise ConstructionError(f"Cannot construct {cls.__name__}: {e}", original_error=e) from e

    try:
        instance = cls()
    except TypeError as e:
        raise ConstructionError(
            f"Cannot construct {cls.__name__}: it needs a no-argument constructor",
            original_error=e,
        ) from e
    for name, value in values.items():
        setattr(instance, name, value)
    return instance
