"""Class maps: the compiled description of how a row becomes a target object.

A :class:`ClassMap` is built once per target type, either by convention
(:meth:`ClassMap.auto`, every member mapped from the column named after it)
or explicitly (:meth:`ClassMap.build`, only the listed members are mapped).
Per-member configuration is a :class:`FieldOptions`, supplied in
``typing.Annotated`` metadata or passed to :meth:`ClassMap.build`.

Each member compiles into one field mapping:

* :class:`ScalarField`: one cell, one converted value;
* :class:`CollectionField`: split mode or multi-column mode, see
  :mod:`sheetmap.materialize`;
* :class:`DictionaryField`: header name -> converted value;
* :class:`ObjectField`: a nested record read from the same row.

Field mappings hold no sheet state and are reused for every row.

Usage::

    from typing import Annotated
    from dataclasses import dataclass
    from sheetmap import ClassMap, FieldOptions, ByIndices

    @dataclass
    class Reading:
        station: str
        value: Annotated[int, FieldOptions(empty_fallback=1, invalid_fallback=10)]
        tags: list[str]

    auto_map = ClassMap.auto(Reading)
    explicit = ClassMap.build(Reading, {"station": 0, "value": ByIndices([9, 1])})
"""

from __future__ import annotations

import logging
import threading
import typing
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sheetmap.columns import (
    AllColumns,
    ByIndex,
    ByIndices,
    ByName,
    ByNames,
    ColumnSelector,
    Default,
    FirstOf,
    ResolutionError,
    ResolutionFailure,
    resolve_column,
    resolve_columns,
)
from sheetmap.convert import (
    CallableConverter,
    Converter,
    MappingConverter,
    NumberStyle,
    PassthroughConverter,
    ScalarConverter,
    converter_for_type,
    is_leaf_type,
)
from sheetmap.errors import (
    ColumnResolutionError,
    ConstructionError,
    EmptyValueError,
    MappingError,
    RecursiveMappingError,
    UnparsableValueError,
    UnsupportedConstructionError,
)
from sheetmap.fallback import (
    FailureKind,
    FallbackPolicy,
    FallbackStrategy,
    FixedValueFallback,
    as_fallback,
    type_default,
)
from sheetmap.materialize import (
    DEFAULT_SEPARATORS,
    CollectionKind,
    CollectionSpec,
    collection_spec,
    is_collection_type,
    is_mapping_type,
    split_text,
)
from sheetmap.members import (
    MemberInfo,
    construct,
    describe_members,
    is_record_type,
    split_annotated,
    union_members,
    unwrap_optional,
)
from sheetmap.pipeline import CellPipeline, trim
from sheetmap.sheet import Cell, RawCellSource

if typing.TYPE_CHECKING:
    from sheetmap.registry import ClassMapRegistry

log = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


class _Omit:
    def __repr__(self) -> str:
        return "OMIT"


# Returned by a field read to leave the member at its declared default.
OMIT: Any = _Omit()


# ─── Options ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldOptions:
    """Configuration of one mapped member.

    Attributes:
        column: Where the value lives: a header name, a column index, a list
            of either (first existing wins), or a :class:`ColumnSelector`.
            Defaults to the member's own name.
        converter: ``str -> value`` callable or converter object replacing
            the built-in conversion.
        empty_fallback: Value (or :class:`Fallback`) used for empty cells.
        invalid_fallback: Value (or :class:`Fallback`) used for unparsable cells.
        optional: A missing column leaves the member at its default.
        required: Collections: an empty source cell fails instead of giving
            an empty collection.  Mappings: unmapped text is unparsable.
        preserve_formatting: Read the cell's display text (``"00123"``).
        trim: Strip surrounding whitespace before conversion.
        separators: Split-mode separators (default ``","``).
        trim_entries: Strip whitespace from split tokens.
        remove_empty_entries: Drop empty split tokens.
        formats: ``strptime`` formats tried in order for temporal members.
        number_format: Separator notation such as ``"#.###,##"``.
        number_style: Allowed number decorations, e.g. ``NumberStyle.HEX_NUMBER``.
        ignore_case: Case-insensitive enum and mapping lookups.
        mapping: Text -> value dictionary tried before the built-in converter.
        ignore: Skip the member entirely.
    """

    column: Any = None
    converter: Any = None
    empty_fallback: Any = UNSET
    invalid_fallback: Any = UNSET
    optional: bool = False
    required: bool = False
    preserve_formatting: bool = False
    trim: bool = False
    separators: str | Sequence[str] | None = None
    trim_entries: bool = False
    remove_empty_entries: bool = False
    formats: Sequence[str] | None = None
    number_format: str | None = None
    number_style: NumberStyle | None = None
    ignore_case: bool = False
    mapping: Mapping[str, Any] | None = None
    ignore: bool = False

    def selector(self) -> ColumnSelector | None:
        return to_selector(self.column)

    def separator_list(self) -> tuple[str, ...]:
        if self.separators is None:
            return DEFAULT_SEPARATORS
        if isinstance(self.separators, str):
            return (self.separators,)
        return tuple(self.separators)


Ignore = FieldOptions(ignore=True)


def to_selector(column: Any) -> ColumnSelector | None:
    """Normalize a column shorthand into a :class:`ColumnSelector`."""
    if column is None or isinstance(column, ColumnSelector):
        return column
    if isinstance(column, bool):
        raise TypeError("A column must be a name, an index or a selector, not a bool")
    if isinstance(column, int):
        return ByIndex(column)
    if isinstance(column, str):
        return ByName(column)
    if isinstance(column, (list, tuple)):
        if not column:
            raise ValueError("An empty column list selects nothing")
        if all(isinstance(c, int) and not isinstance(c, bool) for c in column):
            return ByIndices(tuple(column))
        if all(isinstance(c, str) for c in column):
            return ByNames(tuple(column))
        return FirstOf(tuple(to_selector(c) for c in column))
    raise TypeError(f"Unsupported column selector: {column!r}")


def _options_from_metadata(metadata: Sequence[Any]) -> FieldOptions | None:
    for item in metadata:
        if isinstance(item, FieldOptions):
            return item
    return None


# ─── Row context and errors ──────────────────────────────────────────────────


@dataclass(frozen=True)
class RowContext:
    sheet: RawCellSource
    row_index: int
    validate: bool = True


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


def _column_name(sheet: RawCellSource, column_index: int | None) -> str | None:
    heading = sheet.heading
    if heading is None or column_index is None or not 0 <= column_index < len(heading):
        return None
    return heading.column_name(column_index)


def _failure(
    failure: FailureKind,
    *,
    member: str | None,
    target: Any,
    ctx: RowContext,
    column_index: int | None,
    value: Any = None,
    error: Exception | None = None,
) -> MappingError:
    label = f'member "{member}"' if member else "value"
    context = dict(
        member=member,
        row_index=ctx.row_index,
        column_index=column_index,
        column_name=_column_name(ctx.sheet, column_index),
        sheet_name=ctx.sheet.name,
        original_error=error,
    )
    if failure is FailureKind.EMPTY_CELL:
        return EmptyValueError(
            f"Cannot assign an empty cell to {label} of type {_type_name(target)}", **context
        )
    if failure is FailureKind.UNPARSABLE_CELL:
        return UnparsableValueError(
            f'Cannot assign "{value}" to {label} of type {_type_name(target)}', **context
        )
    if failure is FailureKind.MISSING_COLUMN:
        return ColumnResolutionError(f"Could not find a column for {label}: {error}", **context)
    return ConstructionError(f"Cannot construct {label}: {error}", **context)


# ─── Field mappings ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldMapping:
    """Common parts of every field mapping.

    Attributes:
        member: Member name, or None for a value mapping of a whole row.
        selector: Where the value lives.
        target: Declared type of the member.
        optional: Whether an unresolvable column is acceptable.
        missing_value: What an acceptable missing column yields.
    """

    member: str | None
    selector: ColumnSelector
    target: Any
    optional: bool = False
    missing_value: Any = None

    def read(self, ctx: RowContext, strategy: FallbackStrategy) -> Any:
        raise NotImplementedError

    def _missing(self, ctx: RowContext, error: ResolutionError) -> Any:
        outcome = FallbackPolicy().decide(
            FailureKind.MISSING_COLUMN,
            error=error,
            optional=self.optional,
            missing_default=self.missing_value,
        )
        if outcome.failed:
            raise _failure(
                FailureKind.MISSING_COLUMN, member=self.member, target=self.target,
                ctx=ctx, column_index=None, error=error,
            ) from error
        log.debug("Optional member %r has no column: %s", self.member, error)
        return outcome.value

    def _read_cell(
        self,
        pipeline: CellPipeline,
        cell: Cell,
        ctx: RowContext,
        strategy: FallbackStrategy,
    ) -> Any:
        outcome = pipeline.read(cell, strategy)
        if outcome.failed:
            raise _failure(
                outcome.failure, member=self.member, target=pipeline.target, ctx=ctx,
                column_index=cell.column_index, value=pipeline.prepare(cell),
                error=outcome.error,
            ) from outcome.error
        return outcome.value


@dataclass(frozen=True)
class ScalarField(FieldMapping):
    pipeline: CellPipeline | None = None

    def read(self, ctx: RowContext, strategy: FallbackStrategy) -> Any:
        try:
            idx = resolve_column(self.selector, ctx.sheet)
        except ResolutionError as e:
            return self._missing(ctx, e)
        return self._read_cell(self.pipeline, ctx.sheet.get_cell(ctx.row_index, idx), ctx, strategy)


@dataclass(frozen=True)
class CollectionField(FieldMapping):
    """A collection filled by splitting one cell or reading several columns.

    Attributes:
        spec: How the collection is constructed.
        pipelines: Element pipeline (one per position for fixed tuples).
        multi_column: Read one element per resolved column.
        separators: Split-mode separators.
        trim_entries: Strip split tokens.
        remove_empty_entries: Drop empty split tokens.
        required: An empty source cell fails in split mode.
        preserve_formatting: Split the display text of the source cell.
    """

    spec: CollectionSpec | None = None
    pipelines: tuple[CellPipeline, ...] = ()
    multi_column: bool = False
    separators: tuple[str, ...] = DEFAULT_SEPARATORS
    trim_entries: bool = False
    remove_empty_entries: bool = False
    required: bool = False
    preserve_formatting: bool = False

    def read(self, ctx: RowContext, strategy: FallbackStrategy) -> Any:
        try:
            if self.multi_column:
                indices = resolve_columns(self.selector, ctx.sheet)
            else:
                indices = (resolve_column(self.selector, ctx.sheet),)
        except ResolutionError as e:
            return self._missing(ctx, e)

        if self.multi_column:
            cells = [ctx.sheet.get_cell(ctx.row_index, i) for i in indices]
        else:
            cells = self._split(ctx, ctx.sheet.get_cell(ctx.row_index, indices[0]))
            if cells is None:
                return self.spec.build([])

        arity = self.spec.arity
        if arity is not None and len(cells) != arity:
            raise _failure(
                FailureKind.CONSTRUCTION_ERROR, member=self.member, target=self.target, ctx=ctx,
                column_index=cells[0].column_index if cells else None,
                error=ValueError(f"expected {arity} elements, found {len(cells)}"),
            )

        fixed = self.spec.kind is CollectionKind.FIXED_TUPLE
        elements = [
            self._read_cell(self.pipelines[pos if fixed else 0], cell, ctx, strategy)
            for pos, cell in enumerate(cells)
        ]
        return self.spec.build(elements)

    def _split(self, ctx: RowContext, cell: Cell) -> list[Cell] | None:
        text = cell.text(self.preserve_formatting)
        if text is not None and self.pipelines[0].transformers:
            for transform in self.pipelines[0].transformers:
                text = transform(text)
        if text is None or text == "":
            if self.required:
                raise _failure(
                    FailureKind.EMPTY_CELL, member=self.member, target=self.target,
                    ctx=ctx, column_index=cell.column_index,
                )
            return None
        tokens = split_text(
            text,
            self.separators,
            trim_entries=self.trim_entries,
            remove_empty_entries=self.remove_empty_entries,
        )
        return [cell.with_text(token) for token in tokens]


@dataclass(frozen=True)
class DictionaryField(FieldMapping):
    """Header name -> value, over every resolved column.

    Attributes:
        spec: How the dictionary is constructed.
        key_converter: Converts header names when keys are not strings.
        value_pipeline: Converts each cell.
    """

    spec: CollectionSpec | None = None
    key_converter: Converter | None = None
    value_pipeline: CellPipeline | None = None

    def read(self, ctx: RowContext, strategy: FallbackStrategy) -> Any:
        heading = ctx.sheet.heading
        try:
            if heading is None:
                raise ResolutionError(
                    ResolutionFailure.NO_HEADING,
                    f'A dictionary needs a heading but sheet "{ctx.sheet.name}" has none',
                )
            indices = resolve_columns(self.selector, ctx.sheet)
        except ResolutionError as e:
            return self._missing(ctx, e)

        pairs = []
        for idx in indices:
            key: Any = heading.key(idx)
            if self.key_converter is not None:
                result = self.key_converter.convert(key)
                if not result.succeeded:
                    raise _failure(
                        FailureKind.UNPARSABLE_CELL, member=self.member,
                        target=self.spec.key_type, ctx=ctx, column_index=idx,
                        value=key, error=result.error,
                    ) from result.error
                key = result.value
            cell = ctx.sheet.get_cell(ctx.row_index, idx)
            pairs.append((key, self._read_cell(self.value_pipeline, cell, ctx, strategy)))
        return self.spec.build(pairs)


@dataclass(frozen=True)
class ObjectField(FieldMapping):
    """A nested record read from the same row."""

    nested: ClassMap | None = None

    def read(self, ctx: RowContext, strategy: FallbackStrategy) -> Any:
        try:
            return self.nested.read_row(ctx)
        except ColumnResolutionError as e:
            if not self.optional:
                raise
            log.debug("Optional nested member %r has no columns: %s", self.member, e)
            return self.missing_value


# ─── Compilation ─────────────────────────────────────────────────────────────


_local = threading.local()


def _building_stack() -> list[Any]:
    stack = getattr(_local, "stack", None)
    if stack is None:
        stack = _local.stack = []
    return stack


def _is_any(tp: Any) -> bool:
    return tp is Any or tp is object


def _value_converters(
    tp: Any, opts: FieldOptions, member: str | None
) -> tuple[list[Converter], bool]:
    """Converters that follow an optional value mapping, and whether *tp* is a custom object."""
    leaf_kwargs = dict(
        formats=opts.formats,
        number_format=opts.number_format,
        number_style=opts.number_style,
        ignore_case=opts.ignore_case,
    )
    members = union_members(tp)
    if opts.converter is not None:
        conv = opts.converter
        custom_object = not (is_leaf_type(tp) or _is_any(tp) or members)
        return [conv if hasattr(conv, "convert") else CallableConverter(conv)], custom_object
    if members and all(is_leaf_type(m) for m in members):
        return [converter_for_type(m, **leaf_kwargs) for m in members], False
    if _is_any(tp):
        return [PassthroughConverter()], False
    if is_leaf_type(tp):
        return [converter_for_type(tp, **leaf_kwargs)], False
    if opts.mapping is None:
        raise UnsupportedConstructionError(
            f"Cannot map {_describe(member)} of type {_type_name(tp)}: "
            "it is not a supported value type; supply a converter",
            member=member,
        )
    return [], False


def _leaf_pipeline(tp: Any, nullable: bool, opts: FieldOptions, member: str | None) -> CellPipeline:
    converters: list[Converter] = []
    custom_object = False
    if opts.mapping is not None:
        converters.append(MappingConverter(dict(opts.mapping), opts.ignore_case, opts.required))
    # A required mapping treats unmapped text as unparsable.
    if not (opts.mapping is not None and opts.required):
        extra, custom_object = _value_converters(tp, opts, member)
        converters.extend(extra)

    converter = converters[0] if len(converters) == 1 else ScalarConverter(converters)

    empty = invalid = None
    if nullable or tp is str or _is_any(tp):
        empty = FixedValueFallback(None)
    if custom_object:
        empty = invalid = FixedValueFallback(None)
    if opts.empty_fallback is not UNSET:
        empty = as_fallback(opts.empty_fallback)
    if opts.invalid_fallback is not UNSET:
        invalid = as_fallback(opts.invalid_fallback)

    return CellPipeline(
        target=tp,
        converter=converter,
        policy=FallbackPolicy(empty, invalid),
        transformers=(trim,) if opts.trim else (),
        preserve_formatting=opts.preserve_formatting,
    )


def _describe(member: str | None) -> str:
    return f'member "{member}"' if member else "value"


def _element_pipeline(tp: Any, opts: FieldOptions, member: str | None) -> CellPipeline:
    inner, nullable = unwrap_optional(split_annotated(tp)[0])
    if opts.converter is None and opts.mapping is None and not (
        is_leaf_type(inner) or _is_any(inner) or union_members(inner)
    ):
        raise UnsupportedConstructionError(
            f"Cannot map {_describe(member)}: collection elements of type "
            f"{_type_name(inner)} are not supported",
            member=member,
        )
    return _leaf_pipeline(inner, nullable, opts, member)


def _compile(
    member: str | None,
    tp: Any,
    opts: FieldOptions,
    *,
    missing_value: Any,
    default_selector: ColumnSelector,
    strategy: FallbackStrategy,
    registry: ClassMapRegistry | None,
) -> FieldMapping:
    tp, _ = split_annotated(tp)
    inner, nullable = unwrap_optional(tp)
    inner, _ = split_annotated(inner)
    explicit = opts.selector()
    selector = explicit or default_selector
    common = dict(member=member, target=inner, optional=opts.optional, missing_value=missing_value)

    value_like = (
        opts.converter is not None
        or opts.mapping is not None
        or is_leaf_type(inner)
        or _is_any(inner)
        or bool(union_members(inner))
    )
    if value_like:
        return ScalarField(selector=selector, pipeline=_leaf_pipeline(inner, nullable, opts, member), **common)

    if is_mapping_type(inner):
        spec = collection_spec(inner)
        key_converter = None
        if not (spec.key_type is str or _is_any(spec.key_type)):
            if not is_leaf_type(spec.key_type):
                raise UnsupportedConstructionError(
                    f"Cannot map {_describe(member)}: dictionary keys of type "
                    f"{_type_name(spec.key_type)} are not supported",
                    member=member,
                )
            key_converter = converter_for_type(spec.key_type, ignore_case=opts.ignore_case)
        return DictionaryField(
            selector=explicit or AllColumns(),
            spec=spec,
            key_converter=key_converter,
            value_pipeline=_element_pipeline(spec.element_type, opts, member),
            **common,
        )

    if is_collection_type(inner) and not is_record_type(inner):
        spec = collection_spec(inner)
        return CollectionField(
            selector=selector,
            spec=spec,
            pipelines=tuple(_element_pipeline(et, opts, member) for et in spec.element_types),
            multi_column=selector.multi_column,
            separators=opts.separator_list(),
            trim_entries=opts.trim_entries,
            remove_empty_entries=opts.remove_empty_entries,
            required=opts.required,
            preserve_formatting=opts.preserve_formatting,
            **common,
        )

    if is_record_type(inner):
        nested = registry.get(inner) if registry is not None else None
        if nested is None:
            nested = ClassMap.auto(inner, strategy, registry=registry)
        return ObjectField(selector=selector, nested=nested, **common)

    raise UnsupportedConstructionError(
        f"Cannot map {_describe(member)} of type {_type_name(inner)}: "
        "it is not a supported value, collection or record type",
        member=member,
    )


def _absent_value(info: MemberInfo) -> Any:
    """What a member gets when no cell supplies it: its declared default, else the type default."""
    if info.has_default:
        return OMIT
    inner, nullable = unwrap_optional(info.annotation)
    if nullable:
        return None
    return type_default(split_annotated(inner)[0])


def _compile_member(
    info: MemberInfo,
    opts: FieldOptions | None,
    strategy: FallbackStrategy,
    registry: ClassMapRegistry | None,
) -> FieldMapping | None:
    if opts is None:
        opts = _options_from_metadata(info.metadata)
    if opts is None:
        # Options may sit inside an Optional[Annotated[...]] wrapper.
        inner, _ = unwrap_optional(info.annotation)
        opts = _options_from_metadata(split_annotated(inner)[1])
    opts = opts or FieldOptions()
    if opts.ignore:
        return None
    return _compile(
        info.name,
        info.annotation,
        opts,
        missing_value=_absent_value(info),
        default_selector=Default(info.name),
        strategy=strategy,
        registry=registry,
    )


# ─── ClassMap ────────────────────────────────────────────────────────────────


class ClassMap:
    """Compiled mapping of one target type.

    A record target holds one field mapping per mapped member; a value target
    (``int``, ``list[str]``, ``dict[str, int]``, ...) holds a single value
    mapping that produces the row's value directly.

    Args:
        target: The type rows are mapped to.
        fields: Member mappings, in order.
        strategy: Class-level handling of empty cells.
        value_field: Mapping for value targets.
        unmapped: Members no column feeds, mapped to the value they are
            constructed with (:data:`OMIT` keeps the declared default).
    """

    def __init__(
        self,
        target: Any,
        fields: Sequence[FieldMapping] = (),
        *,
        strategy: FallbackStrategy = FallbackStrategy.THROW_IF_PRIMITIVE,
        value_field: FieldMapping | None = None,
        unmapped: Mapping[str, Any] | None = None,
    ):
        if fields and value_field is not None:
            raise ValueError("A class map has either member fields or a value field, not both")
        self.target = target
        self.fields: tuple[FieldMapping, ...] = tuple(fields)
        self.strategy = strategy
        self.value_field = value_field
        self.unmapped: dict[str, Any] = dict(unmapped or {})

    def __repr__(self) -> str:
        names = [f.member for f in self.fields]
        return f"ClassMap({_type_name(self.target)}, fields={names}, strategy={self.strategy.name})"

    @property
    def is_value_map(self) -> bool:
        return self.value_field is not None

    @property
    def is_empty(self) -> bool:
        return not self.fields and self.value_field is None

    @property
    def member_names(self) -> tuple[str, ...]:
        return tuple(f.member for f in self.fields if f.member is not None)

    def field(self, member: str) -> FieldMapping:
        for f in self.fields:
            if f.member == member:
                return f
        raise KeyError(member)

    # ── construction ─────────────────────────────────────────────────────

    @classmethod
    def auto(
        cls,
        target: Any,
        strategy: FallbackStrategy = FallbackStrategy.THROW_IF_PRIMITIVE,
        *,
        registry: ClassMapRegistry | None = None,
    ) -> ClassMap:
        """Build a class map by convention.

        Record members are read from the column named after them (or the
        column in their ``Annotated`` options).  Value targets read column 0,
        or every column for collections and dictionaries.

        Raises:
            RecursiveMappingError: *target* refers back to itself.
            UnsupportedConstructionError: A member type cannot be built.
        """
        with _building(target):
            if is_record_type(target):
                fields = []
                unmapped = {}
                for info in describe_members(target):
                    mapping = _compile_member(info, None, strategy, registry)
                    if mapping is None:
                        unmapped[info.name] = _absent_value(info)
                    else:
                        fields.append(mapping)
                class_map = cls(target, fields, strategy=strategy, unmapped=unmapped)
            else:
                class_map = cls(target, strategy=strategy, value_field=_value_field(target, strategy, registry))
        log.debug("Built class map for %s: %s", _type_name(target), class_map.member_names)
        return class_map

    @classmethod
    def build(
        cls,
        target: type,
        fields: Mapping[str, Any],
        *,
        strategy: FallbackStrategy = FallbackStrategy.THROW_IF_PRIMITIVE,
        registry: ClassMapRegistry | None = None,
    ) -> ClassMap:
        """Build an explicit, possibly partial, class map.

        Args:
            target: A record type.
            fields: Member name -> :class:`FieldOptions`, or a column shorthand
                (header name, index, list, or selector).  Members not listed
                keep their declared defaults, or get their type default.
            strategy: Class-level handling of empty cells.

        Raises:
            ValueError: A listed member does not exist on *target*.
        """
        if not is_record_type(target):
            raise TypeError(f"Explicit class maps need a record type, got {target!r}")
        with _building(target):
            infos = {info.name: info for info in describe_members(target)}
            unknown = [name for name in fields if name not in infos]
            if unknown:
                raise ValueError(f"{_type_name(target)} has no members {unknown}")
            mappings = []
            for name, spec in fields.items():
                opts = spec if isinstance(spec, FieldOptions) else FieldOptions(column=spec)
                mapping = _compile_member(infos[name], opts, strategy, registry)
                if mapping is not None:
                    mappings.append(mapping)
            mapped = {m.member for m in mappings}
            unmapped = {
                name: _absent_value(info) for name, info in infos.items() if name not in mapped
            }
            class_map = cls(target, mappings, strategy=strategy, unmapped=unmapped)
        log.debug("Built explicit class map for %s: %s", _type_name(target), class_map.member_names)
        return class_map

    # ── reading ──────────────────────────────────────────────────────────

    def read(self, sheet: RawCellSource, row_index: int, *, validate: bool = True) -> Any:
        """Map row *row_index* of *sheet* onto the target type.

        Raises:
            MappingError: Any member failed; the row is abandoned.
        """
        return self.read_row(RowContext(sheet, row_index, validate))

    def read_row(self, ctx: RowContext) -> Any:
        if self.value_field is not None:
            return self.value_field.read(ctx, self.strategy)
        values = {name: value for name, value in self.unmapped.items() if value is not OMIT}
        for mapping in self.fields:
            value = mapping.read(ctx, self.strategy)
            if value is not OMIT:
                values[mapping.member] = value
        try:
            return construct(self.target, values, validate=ctx.validate)
        except ConstructionError as e:
            raise ConstructionError(
                e.detail,
                row_index=ctx.row_index,
                sheet_name=ctx.sheet.name,
                original_error=e.original_error,
            ) from e.original_error


class _building:
    """Mark *target* as being built on this thread; detect recursion."""

    def __init__(self, target: Any):
        self.target = target

    def __enter__(self) -> None:
        stack = _building_stack()
        if self.target in stack:
            chain = " -> ".join(_type_name(t) for t in [*stack, self.target])
            raise RecursiveMappingError(
                f'Cannot map type "{_type_name(self.target)}" recursively ({chain})'
            )
        stack.append(self.target)

    def __exit__(self, *exc: object) -> None:
        _building_stack().pop()


def _value_field(target: Any, strategy: FallbackStrategy, registry: ClassMapRegistry | None) -> FieldMapping:
    inner, _ = unwrap_optional(split_annotated(target)[0])
    multi = is_mapping_type(inner) or (is_collection_type(inner) and not is_record_type(inner))
    return _compile(
        None,
        target,
        FieldOptions(column=AllColumns()) if multi else FieldOptions(),
        missing_value=None,
        default_selector=ByIndex(0),
        strategy=strategy,
        registry=registry,
    )
