"""Scalar conversion: one cell value in, one typed leaf value out.

Converters never raise for bad data.  Each returns a :class:`ConversionResult`
that is a success, an invalid result carrying the parse error, or an
*ignore* result meaning "not mine, try the next converter".  A
:class:`ScalarConverter` chains converters; the first success wins.

Converters accept either text (after transformers such as trimming) or a
native cell value (numbers, booleans, datetimes as produced by openpyxl).

Usage::

    from sheetmap.convert import IntConverter, NumberStyle, converter_for_type

    IntConverter().convert("1,234").value                    # -> 1234
    IntConverter(style=NumberStyle.HEX_NUMBER).convert("ff").value   # -> 255
    converter_for_type(date, formats=["%d/%m/%Y"]).convert("05/03/2024")

Number formats:
    ``number_format`` uses the same notation as output formats: ``#,###.##``
    (US, default), ``#.###,##`` (EU), ``#,##`` (comma decimal, no grouping),
    ``#,###`` (grouping only).
"""

from __future__ import annotations

import enum
import math
import re
import typing
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

from sheetmap.sheet import render_value


# ─── Results ─────────────────────────────────────────────────────────────────


class ConversionStatus(enum.Enum):
    SUCCESS = "success"
    INVALID = "invalid"
    IGNORE = "ignore"


@dataclass(frozen=True)
class ConversionResult:
    status: ConversionStatus
    value: Any = None
    error: Exception | None = None

    @classmethod
    def success(cls, value: Any) -> ConversionResult:
        return cls(ConversionStatus.SUCCESS, value)

    @classmethod
    def invalid(cls, error: Exception) -> ConversionResult:
        return cls(ConversionStatus.INVALID, None, error)

    @classmethod
    def ignore(cls) -> ConversionResult:
        return cls(ConversionStatus.IGNORE)

    @property
    def succeeded(self) -> bool:
        return self.status is ConversionStatus.SUCCESS


class Converter(Protocol):
    def convert(self, value: Any) -> ConversionResult: ...


# ─── Numbers ─────────────────────────────────────────────────────────────────


class NumberStyle(enum.Flag):
    """Which decorations a number's text may carry."""

    NONE = 0
    LEADING_WHITE = 1
    TRAILING_WHITE = 2
    LEADING_SIGN = 4
    TRAILING_SIGN = 8
    PARENTHESES = 16
    DECIMAL_POINT = 32
    THOUSANDS = 64
    EXPONENT = 128
    CURRENCY = 256
    PERCENT = 512
    HEX = 1024

    INTEGER = LEADING_WHITE | TRAILING_WHITE | LEADING_SIGN
    NUMBER = INTEGER | TRAILING_SIGN | DECIMAL_POINT | THOUSANDS
    FLOAT = INTEGER | DECIMAL_POINT | EXPONENT
    HEX_NUMBER = LEADING_WHITE | TRAILING_WHITE | HEX
    ANY = NUMBER | PARENTHESES | EXPONENT | CURRENCY | PERCENT


_CURRENCY_SYMBOLS = "$€£¥"
_HEX_RE = re.compile(r"[0-9A-Fa-f]+")
_DIGITS_RE = re.compile(r"(?:\d+(?:\.\d*)?|\.\d+)")
_DIGITS_EXP_RE = re.compile(r"(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_number_format(fmt: str | None) -> tuple[str, str]:
    """Parse a number format into ``(thousands_sep, decimal_sep)``.

    With both separators present the last one is the decimal separator.
    With only one, it is a thousands separator when exactly three ``#``
    follow it and a decimal separator otherwise.
    """
    if not fmt:
        return (",", ".")
    seps = [(i, ch) for i, ch in enumerate(fmt) if ch in ",."]
    if not seps:
        return ("", ".")
    if len({ch for _, ch in seps}) > 1:
        decimal = seps[-1][1]
        thousands = "," if decimal == "." else "."
        return (thousands, decimal)
    pos, sep = seps[-1]
    tail = fmt[pos + 1:]
    if len(tail) == 3 and set(tail) == {"#"}:
        return (sep, "")
    return ("", sep)


def parse_number(
    text: str,
    style: NumberStyle = NumberStyle.NUMBER,
    thousands: str = ",",
    decimal: str = ".",
) -> Decimal:
    """Parse *text* as an exact decimal according to *style*.

    Raises:
        ValueError: The text is not a number in the given style.
    """
    s = text
    if NumberStyle.LEADING_WHITE in style:
        s = s.lstrip()
    if NumberStyle.TRAILING_WHITE in style:
        s = s.rstrip()

    if NumberStyle.HEX in style:
        if not _HEX_RE.fullmatch(s):
            raise ValueError(f"{text!r} is not a hexadecimal number")
        return Decimal(int(s, 16))

    negative = False
    if NumberStyle.PARENTHESES in style and s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1].strip()
    if NumberStyle.CURRENCY in style:
        s = s.strip(_CURRENCY_SYMBOLS).strip()
    percent = False
    if NumberStyle.PERCENT in style and s.endswith("%"):
        percent = True
        s = s[:-1].rstrip()
    if NumberStyle.LEADING_SIGN in style and s[:1] in ("+", "-"):
        negative ^= s[0] == "-"
        s = s[1:]
    elif NumberStyle.TRAILING_SIGN in style and s[-1:] in ("+", "-"):
        negative ^= s[-1] == "-"
        s = s[:-1]

    if NumberStyle.THOUSANDS in style and thousands:
        s = s.replace(thousands, "")
    if NumberStyle.DECIMAL_POINT in style and decimal:
        if decimal != ".":
            if "." in s:
                raise ValueError(f"{text!r} is not a number")
            s = s.replace(decimal, ".")
    elif "." in s:
        raise ValueError(f"{text!r} is not a number")

    pattern = _DIGITS_EXP_RE if NumberStyle.EXPONENT in style else _DIGITS_RE
    if not pattern.fullmatch(s):
        raise ValueError(f"{text!r} is not a number")

    value = Decimal(s)
    if negative:
        value = -value
    if percent:
        value = value / 100
    return value


@dataclass(frozen=True)
class _NumberConverter:
    style: NumberStyle = NumberStyle.NUMBER
    number_format: str | None = None
    minimum: Any = None
    maximum: Any = None

    def _parse(self, value: Any) -> Decimal:
        if isinstance(value, bool):
            raise ValueError(f"{value!r} is not a number")
        if isinstance(value, (int, Decimal)):
            return Decimal(value)
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError(f"{value!r} is not a finite number")
            return Decimal(repr(value))
        if not isinstance(value, str):
            raise ValueError(f"Cannot read a number from {type(value).__name__}")
        thousands, decimal = parse_number_format(self.number_format)
        return parse_number(value, self.style, thousands, decimal)

    def _check_bounds(self, result: Any) -> Any:
        if self.minimum is not None and result < self.minimum:
            raise ValueError(f"{result} is below the minimum {self.minimum}")
        if self.maximum is not None and result > self.maximum:
            raise ValueError(f"{result} is above the maximum {self.maximum}")
        return result


@dataclass(frozen=True)
class IntConverter(_NumberConverter):
    style: NumberStyle = NumberStyle.INTEGER | NumberStyle.THOUSANDS
    target: type = int

    def convert(self, value: Any) -> ConversionResult:
        try:
            number = self._parse(value)
            if number != number.to_integral_value():
                raise ValueError(f"{render_value(value)!r} is not an integer")
            return ConversionResult.success(self.target(self._check_bounds(int(number))))
        except (ValueError, InvalidOperation, OverflowError) as e:
            return ConversionResult.invalid(e)


@dataclass(frozen=True)
class FloatConverter(_NumberConverter):
    style: NumberStyle = NumberStyle.FLOAT | NumberStyle.THOUSANDS

    def convert(self, value: Any) -> ConversionResult:
        try:
            number = float(self._parse(value))
            if not math.isfinite(number):
                raise ValueError(f"{render_value(value)!r} is out of range for a float")
            return ConversionResult.success(self._check_bounds(number))
        except (ValueError, InvalidOperation, OverflowError) as e:
            return ConversionResult.invalid(e)


@dataclass(frozen=True)
class DecimalConverter(_NumberConverter):
    def convert(self, value: Any) -> ConversionResult:
        try:
            return ConversionResult.success(self._check_bounds(self._parse(value)))
        except (ValueError, InvalidOperation) as e:
            return ConversionResult.invalid(e)


# ─── Booleans, enums, strings, identifiers ───────────────────────────────────


class BoolConverter:
    """``"1"``/``"0"`` or ``true``/``false`` in any case."""

    def convert(self, value: Any) -> ConversionResult:
        if isinstance(value, bool):
            return ConversionResult.success(value)
        if isinstance(value, (int, float)) and value in (0, 1):
            return ConversionResult.success(bool(value))
        text = render_value(value) or ""
        if text == "1" or text.lower() == "true":
            return ConversionResult.success(True)
        if text == "0" or text.lower() == "false":
            return ConversionResult.success(False)
        return ConversionResult.invalid(ValueError(f"{text!r} is not a valid boolean"))


@dataclass(frozen=True)
class EnumConverter:
    """Parse an enum member by name, then by value."""

    enum_type: type[enum.Enum]
    ignore_case: bool = False

    def convert(self, value: Any) -> ConversionResult:
        if isinstance(value, self.enum_type):
            return ConversionResult.success(value)
        text = render_value(value) or ""
        key = text.strip()
        fold = (lambda s: s.casefold()) if self.ignore_case else (lambda s: s)
        for name, member in self.enum_type.__members__.items():
            if fold(name) == fold(key):
                return ConversionResult.success(member)
        for member in self.enum_type:
            if fold(render_value(member.value) or "") == fold(key):
                return ConversionResult.success(member)
        return ConversionResult.invalid(
            ValueError(f"{text!r} is not a member of {self.enum_type.__name__}")
        )


class PassthroughConverter:
    """Hand the native cell value through unchanged (for ``Any`` members)."""

    def convert(self, value: Any) -> ConversionResult:
        return ConversionResult.success(value)


class StringConverter:
    def convert(self, value: Any) -> ConversionResult:
        return ConversionResult.success(render_value(value))


class UUIDConverter:
    def convert(self, value: Any) -> ConversionResult:
        if isinstance(value, uuid.UUID):
            return ConversionResult.success(value)
        try:
            return ConversionResult.success(uuid.UUID(render_value(value) or ""))
        except ValueError as e:
            return ConversionResult.invalid(e)


@dataclass(frozen=True)
class MappingConverter:
    """Look the cell text up in a dictionary.

    Unknown text is ignored (the next converter gets a chance) unless
    ``required`` is set, in which case it is invalid.
    """

    mapping: Mapping[str, Any]
    ignore_case: bool = False
    required: bool = False

    def convert(self, value: Any) -> ConversionResult:
        text = render_value(value) or ""
        if text in self.mapping:
            return ConversionResult.success(self.mapping[text])
        if self.ignore_case:
            folded = text.casefold()
            for key, mapped in self.mapping.items():
                if key.casefold() == folded:
                    return ConversionResult.success(mapped)
        if self.required:
            return ConversionResult.invalid(KeyError(f"{text!r} is not a mapped value"))
        return ConversionResult.ignore()


@dataclass(frozen=True)
class CallableConverter:
    """Wrap a caller-supplied ``str -> value`` function.

    Any exception raised by the function makes the cell unparsable.
    """

    func: Callable[[str], Any]

    def convert(self, value: Any) -> ConversionResult:
        try:
            return ConversionResult.success(self.func(render_value(value)))
        except Exception as e:
            return ConversionResult.invalid(e)


# ─── Dates and times ─────────────────────────────────────────────────────────

# Spreadsheet serial day numbers count from this date.
SERIAL_EPOCH = datetime(1899, 12, 30)

DEFAULT_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%H:%M:%S",
    "%H:%M",
)

_TIMEDELTA_RE = re.compile(
    r"(?P<sign>-)?(?:(?P<days>\d+)\.)?(?P<hours>\d{1,2}):(?P<minutes>\d{2})"
    r"(?::(?P<seconds>\d{2})(?:\.(?P<fraction>\d{1,7}))?)?"
)


def from_serial(days: float) -> datetime:
    """Convert a spreadsheet serial day number into a datetime."""
    if not math.isfinite(days):
        raise ValueError(f"{days!r} is not a valid date serial number")
    return SERIAL_EPOCH + timedelta(days=days)


def _serial_or_none(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _time_of_day(delta: timedelta) -> time:
    if delta < timedelta(0) or delta >= timedelta(days=1):
        raise ValueError(f"{delta} is outside the time-of-day range 00:00:00-23:59:59")
    return (datetime.min + delta).time()


@dataclass(frozen=True)
class DateTimeConverter:
    """Parse ``datetime``, ``date`` or ``time`` values.

    Native values are narrowed to the target kind, text is tried against each
    format in order (ISO first when no formats are configured), and numbers
    are read as spreadsheet serial days.  Times must fall within a single day.
    """

    target: type = datetime
    formats: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.target not in (datetime, date, time):
            raise TypeError(f"DateTimeConverter cannot produce {self.target!r}")
        object.__setattr__(self, "formats", tuple(self.formats))

    def convert(self, value: Any) -> ConversionResult:
        try:
            return ConversionResult.success(self._convert(value))
        except (ValueError, OverflowError) as e:
            return ConversionResult.invalid(e)

    def _convert(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return self._narrow(value)
        if isinstance(value, date):
            return self._narrow(datetime.combine(value, time()))
        if isinstance(value, time):
            if self.target is not time:
                raise ValueError(f"Cannot read a {self.target.__name__} from a time of day")
            return value
        if isinstance(value, timedelta):
            if self.target is not time:
                raise ValueError(f"Cannot read a {self.target.__name__} from a duration")
            return _time_of_day(value)
        if isinstance(value, str):
            parsed = self._parse_text(value.strip())
            if parsed is not None:
                return parsed
        serial = _serial_or_none(value)
        if serial is not None:
            if self.target is time:
                if not math.isfinite(serial):
                    raise ValueError(f"{serial!r} is not a valid time")
                return _time_of_day(timedelta(days=serial))
            return self._narrow(from_serial(serial))
        raise ValueError(
            f"{render_value(value)!r} is not a valid {self.target.__name__}"
        )

    def _parse_text(self, text: str) -> Any:
        if not self.formats:
            try:
                if self.target is time:
                    return time.fromisoformat(text)
                return self._narrow(datetime.fromisoformat(text))
            except ValueError:
                pass
        for fmt in self.formats or DEFAULT_DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
            except ValueError:
                continue
            return self._narrow(parsed)
        return None

    def _narrow(self, value: datetime) -> Any:
        if self.target is datetime:
            return value
        if self.target is date:
            return value.date()
        return value.time()


class TimedeltaConverter:
    """Parse ``[-][d.]hh:mm[:ss[.fffffff]]`` text or serial day numbers."""

    def convert(self, value: Any) -> ConversionResult:
        if isinstance(value, timedelta):
            return ConversionResult.success(value)
        if isinstance(value, time):
            return ConversionResult.success(
                timedelta(hours=value.hour, minutes=value.minute,
                          seconds=value.second, microseconds=value.microsecond)
            )
        text = (render_value(value) or "").strip()
        m = _TIMEDELTA_RE.fullmatch(text)
        if m:
            hours, minutes = int(m["hours"]), int(m["minutes"])
            seconds = int(m["seconds"] or 0)
            if hours > 23 or minutes > 59 or seconds > 59:
                return ConversionResult.invalid(ValueError(f"{text!r} is not a valid duration"))
            fraction = (m["fraction"] or "").ljust(6, "0")[:6]
            delta = timedelta(
                days=int(m["days"] or 0), hours=hours, minutes=minutes,
                seconds=seconds, microseconds=int(fraction),
            )
            return ConversionResult.success(-delta if m["sign"] else delta)
        serial = _serial_or_none(value)
        if serial is not None and math.isfinite(serial):
            try:
                return ConversionResult.success(timedelta(days=serial))
            except OverflowError as e:
                return ConversionResult.invalid(e)
        return ConversionResult.invalid(ValueError(f"{text!r} is not a valid duration"))


# ─── Chaining and dispatch ───────────────────────────────────────────────────


class ScalarConverter:
    """Try converters in order; the first success wins.

    When no converter succeeds the result is invalid and carries the last
    error seen (or a generic one when every converter ignored the value).
    """

    def __init__(self, converters: Sequence[Converter]):
        if not converters:
            raise ValueError("ScalarConverter needs at least one converter")
        self.converters = tuple(converters)

    def __repr__(self) -> str:
        return f"ScalarConverter({list(self.converters)!r})"

    def convert(self, value: Any) -> ConversionResult:
        last_error: Exception | None = None
        for converter in self.converters:
            result = converter.convert(value)
            if result.status is ConversionStatus.SUCCESS:
                return result
            if result.status is ConversionStatus.INVALID:
                last_error = result.error
        if last_error is None:
            last_error = ValueError(f"No converter accepted {render_value(value)!r}")
        return ConversionResult.invalid(last_error)


LEAF_TYPES: tuple[type, ...] = (
    str, int, float, Decimal, bool, datetime, date, time, timedelta, uuid.UUID,
)


def is_leaf_type(tp: Any) -> bool:
    """Whether values of *tp* come from a single cell with a built-in converter."""
    if not isinstance(tp, type) or typing.get_origin(tp) is not None:
        return False
    return issubclass(tp, enum.Enum) or issubclass(tp, LEAF_TYPES)


def converter_for_type(
    tp: type,
    *,
    formats: Sequence[str] | None = None,
    number_format: str | None = None,
    number_style: NumberStyle | None = None,
    ignore_case: bool = False,
) -> Converter:
    """Return the built-in converter for leaf type *tp*.

    Raises:
        TypeError: *tp* has no built-in converter.
    """
    number_kwargs: dict[str, Any] = {"number_format": number_format}
    if number_style is not None:
        number_kwargs["style"] = number_style

    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        return EnumConverter(tp, ignore_case=ignore_case)
    if tp is bool:
        return BoolConverter()
    if tp is str:
        return StringConverter()
    if isinstance(tp, type) and issubclass(tp, int):
        return IntConverter(target=tp, **number_kwargs)
    if tp is float:
        return FloatConverter(**number_kwargs)
    if tp is Decimal:
        return DecimalConverter(**number_kwargs)
    if tp in (datetime, date, time):
        return DateTimeConverter(tp, tuple(formats or ()))
    if tp is timedelta:
        return TimedeltaConverter()
    if tp is uuid.UUID:
        return UUIDConverter()
    raise TypeError(f"No built-in converter for {tp!r}")
