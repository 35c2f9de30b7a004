"""
Value sinks: the typed cells that receive a flag's parsed value.

Every sink satisfies the Value protocol:
- set(raw) parses one raw string and stores it, raising ValueError (or
  TypeError) when the string is rejected.
- boolean tells the parser whether presence alone means "true".
- str(sink) renders the current value (used for "(default: …)" in help).

Sinks are owned by the calling program; flags only hold a reference. The
parser calls set() once per occurrence, in command line order.

Concrete sinks are independent classes behind the protocol:
    BoolValue, IntValue, FloatValue, StringValue, DurationValue,
    StringsValue, BitFieldValue (over a shared BitField cell), FuncValue.
"""
import re
from datetime import timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class Value(Protocol):
    """
    Protocol implemented by every value sink.
    """
    boolean: bool

    def set(self, raw, /): ...

    def __str__(self): ...


_TRUTHS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSEHOODS = {"0", "f", "F", "FALSE", "false", "False"}


def parse_bool(raw, /):
    """
    Parse the boolean spellings accepted on the command line.

    Accepted: 1, t, T, TRUE, true, True and 0, f, F, FALSE, false, False.
    """
    if raw in _TRUTHS:
        return True
    if raw in _FALSEHOODS:
        return False
    raise ValueError(f"invalid boolean value: {raw!r}")


_UNITS = {
    # microseconds per unit
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60_000_000,
    "h": 3_600_000_000,
}

_DURATION = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(raw, /):
    """
    Parse a duration string such as "300ms", "-1.5h" or "2h45m".

    A duration is an optionally signed sequence of decimal numbers, each with
    an optional fraction and a unit suffix. Valid units are "ns", "us" (or
    "µs"), "ms", "s", "m", "h". The bare string "0" is also accepted.
    """
    if not isinstance(raw, str):
        raise TypeError("parse_duration() argument must be a string")
    sign, body = 1, raw
    if body[:1] in ("-", "+"):
        sign, body = -1 if body[0] == "-" else 1, body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f"invalid duration: {raw!r}")

    total = 0.0
    position = 0
    while position < len(body):
        match = _DURATION.match(body, position)
        if not match:
            raise ValueError(f"invalid duration: {raw!r}")
        total += _UNITS[match[2]] * float(match[1])
        position = match.end()
    return timedelta(microseconds=total * sign)


def format_duration(value, /):
    """
    Render a timedelta in the same compact notation parse_duration() accepts.
    """
    if not value:
        return "0s"
    sign = "-" if value < timedelta(0) else ""
    microseconds = abs(value) // timedelta(microseconds=1)
    hours, microseconds = divmod(microseconds, 3_600_000_000)
    minutes, microseconds = divmod(microseconds, 60_000_000)
    seconds = microseconds / 1_000_000
    if not hours and not minutes and seconds < 1:
        if microseconds % 1000:
            return f"{sign}{microseconds}µs"
        return f"{sign}{microseconds // 1000}ms"
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(("%f" % seconds).rstrip("0").rstrip(".") + "s")
    return sign + "".join(parts)


class BoolValue:
    """A boolean cell; presence alone on the command line stores True."""
    boolean = True

    def __init__(self, default=False, /):
        self.value = bool(default)

    def set(self, raw, /):
        self.value = parse_bool(raw)

    def __str__(self):
        return "true" if self.value else "false"

    def __repr__(self):
        return f"BoolValue({self.value!r})"


class IntValue:
    """A base-10 integer cell."""
    boolean = False

    def __init__(self, default=0, /):
        self.value = int(default)

    def set(self, raw, /):
        # int() alone would also accept "1_000" and surrounding whitespace.
        if not re.fullmatch(r"[+-]?\d+", raw):
            raise ValueError(f"invalid integer value: {raw!r}")
        self.value = int(raw)

    def __str__(self):
        return str(self.value)

    def __repr__(self):
        return f"IntValue({self.value!r})"


class FloatValue:
    """A floating point cell."""
    boolean = False

    def __init__(self, default=0.0, /):
        self.value = float(default)

    def set(self, raw, /):
        try:
            self.value = float(raw)
        except ValueError:
            raise ValueError(f"invalid number value: {raw!r}") from None

    def __str__(self):
        return repr(self.value)

    def __repr__(self):
        return f"FloatValue({self.value!r})"


class StringValue:
    """A string cell; any raw string is accepted as-is."""
    boolean = False

    def __init__(self, default="", /):
        self.value = str(default)

    def set(self, raw, /):
        self.value = raw

    def __str__(self):
        return self.value

    def __repr__(self):
        return f"StringValue({self.value!r})"


class DurationValue:
    """A datetime.timedelta cell parsed from strings such as "1m30s"."""
    boolean = False

    def __init__(self, default=timedelta(0), /):
        if not isinstance(default, timedelta):
            raise TypeError("DurationValue default must be a timedelta")
        self.value = default

    def set(self, raw, /):
        self.value = parse_duration(raw)

    def __str__(self):
        return format_duration(self.value)

    def __repr__(self):
        return f"DurationValue({self.value!r})"


class StringsValue:
    """
    A list-of-strings cell that appends one item per occurrence.

    The first occurrence replaces the default list, later ones append, so a
    default like ["localhost"] does not leak into user supplied lists. Call
    reset() to make the next set() replace the list again.
    """
    boolean = False

    def __init__(self, default=(), /):
        self.value = list(default)
        self._hot = False

    def set(self, raw, /):
        if not self._hot:
            self.value = []
            self._hot = True
        self.value.append(raw)

    def reset(self):
        self._hot = False

    def __str__(self):
        return "[%s]" % " ".join(self.value)

    def __repr__(self):
        return f"StringsValue({self.value!r})"


class BitField:
    """
    A shared integer cell toggled by one or more BitFieldValue sinks.
    """

    def __init__(self, value=0, /):
        self.value = int(value)

    def __int__(self):
        return self.value

    def __index__(self):
        return self.value

    def __repr__(self):
        return f"BitField(0x{self.value:x})"


class BitFieldValue:
    """
    A boolean sink that sets or clears the bits of `mask` in a BitField.

    Several sinks may share one BitField; each owns only its own bits.
    """
    boolean = True

    def __init__(self, field, mask, default=False, /):
        if not isinstance(field, BitField):
            raise TypeError("BitFieldValue field must be a BitField")
        if not isinstance(mask, int) or mask <= 0:
            raise ValueError("BitFieldValue mask must be a positive integer")
        self.field = field
        self.mask = mask
        self._apply(bool(default))

    def _apply(self, enabled):
        if enabled:
            self.field.value |= self.mask
        else:
            self.field.value &= ~self.mask

    @property
    def value(self):
        return self.field.value & self.mask == self.mask

    def set(self, raw, /):
        self._apply(parse_bool(raw))

    def __str__(self):
        return f"0x{self.field.value:x}"

    def __repr__(self):
        return f"BitFieldValue({self.field!r}, 0x{self.mask:x})"


class FuncValue:
    """
    A sink that forwards every raw value to a callable.

    The callable's return value is kept on .value; any exception it raises
    rejects the value.
    """
    boolean = False

    def __init__(self, callback, /):
        if not callable(callback):
            raise TypeError("FuncValue callback must be callable")
        self.callback = callback
        self.value = None

    def set(self, raw, /):
        self.value = self.callback(raw)

    def __str__(self):
        return "" if self.value is None else str(self.value)

    def __repr__(self):
        return f"FuncValue({self.callback!r})"


__all__ = (
    "Value",
    "BoolValue",
    "IntValue",
    "FloatValue",
    "StringValue",
    "DurationValue",
    "StringsValue",
    "BitField",
    "BitFieldValue",
    "FuncValue",
    "parse_bool",
    "parse_duration",
    "format_duration",
)
