r"""
Flagtree flag descriptors and factories.

Overview
- Flag: static metadata for one command line flag (long name, short name,
  positional, arity, environment variable, validator, choices) plus a
  reference to the value sink that receives its values.
- FlagGroup: a nominal grouping of flags that only affects help output.
- Factories: boolean, integer, number, string, duration, strings, bitfield,
  func and var build a Flag together with a fresh sink.

Arity
- nargs=(min, max) bounds how many times the flag may occur on the command
  line; max == 0 means unbounded. The default is (0, 1): optional, at most once.
- The sink's set() is called once per occurrence, in command line order.

Naming
- Long names are written without dashes ("verbose" is matched by --verbose).
- Short names are exactly one character ("v" is matched by -v).
- A one-character name with no explicit short name becomes the short name.
- Positional flags are matched by position; their name labels them in help.
- -h and --help are reserved for help requests.

Immutability
- Every public field is a read-only property (see mirror()); descriptors may be
  shared by concurrent parses. Occurrence counts live in the parser, never here.

Quick example:
    >>> verbose = boolean("verbose", short="v", usage="print more")
    >>> jobs = integer("jobs", 4, short="j", envvar="JOBS")
    >>> files = strings("file", positional=True, nargs=(1, 0))
"""
import re
from datetime import timedelta

from .faults import FaultCode, StructureError
from .utils import *
from .values import *

# Names matched by the reserved help request.
RESERVED = frozenset({"--help", "-h"})


def _sanitize_names(cls, metadata, /):
    """
    Internal: validate and normalize long/short names.

    Rules
    - name: Unset (or None) or a non-empty string of letters, digits, '-' and '_' that
      does not start with '-' (the dashes are added on the command line).
    - short: Unset or exactly one character other than '-' and '='.
    - a one-character name without a short name becomes the short name.
    - at least one of name/short is required.
    - -h/--help are reserved for named flags.
    """
    name, short = metadata["name"], metadata["short"]
    if name is None:
        name = Unset

    if not isinstance(name, str | Unset):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    if not isinstance(short, str | Unset):
        raise TypeError(f"{cls.__typename__} 'short' must be a string")

    if isinstance(name, str) and len(name) == 1 and short is Unset and not metadata["positional"]:
        name, short = Unset, name

    if isinstance(name, str) and not re.fullmatch(r"[^\W_][\w-]*", name):
        raise StructureError(
            f"{cls.__typename__} name {name!r} must start with a letter or digit and contain no spaces or '='",
            code=FaultCode.INVALID_NAME
        )
    if isinstance(short, str) and (len(short) != 1 or short in "-= "):
        raise StructureError(
            f"{cls.__typename__} short name {short!r} must be exactly one character",
            code=FaultCode.INVALID_SHORT_NAME
        )
    if not name and not short:
        raise StructureError(f"{cls.__typename__} must have a name or a short name", code=FaultCode.UNNAMED_FLAG)

    if metadata["positional"]:
        if not name:
            raise StructureError(f"positional {cls.__typename__} must have a name", code=FaultCode.UNNAMED_FLAG)
        if short:
            raise StructureError(
                f"positional {cls.__typename__} {name!r} cannot have a short name",
                code=FaultCode.INVALID_SHORT_NAME
            )
    else:
        keys = {"--" + name if name else Unset, "-" + short if short else Unset}
        if keys & RESERVED:
            raise StructureError(
                f"{cls.__typename__} names -h and --help are reserved for help requests",
                code=FaultCode.RESERVED_FLAG
            )

    metadata["name"], metadata["short"] = name, short


def _sanitize_arity(cls, metadata, /):
    """
    Internal: validate nargs=(min, max) where max == 0 means unbounded.
    """
    nargs = metadata["nargs"]
    try:
        minimum, maximum = nargs
    except (TypeError, ValueError):
        raise TypeError(f"{cls.__typename__} 'nargs' must be a (min, max) pair") from None
    if not isinstance(minimum, int) or not isinstance(maximum, int) or isinstance(minimum, bool) or isinstance(maximum, bool):
        raise TypeError(f"{cls.__typename__} 'nargs' must contain integers")
    if minimum < 0 or maximum < 0:
        raise StructureError(f"{cls.__typename__} 'nargs' cannot be negative", code=FaultCode.INVALID_ARITY)
    if maximum and minimum > maximum:
        raise StructureError(
            f"{cls.__typename__} 'nargs' minimum {minimum} exceeds maximum {maximum}",
            code=FaultCode.INVALID_ARITY
        )
    metadata["nargs"] = (minimum, maximum)


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: validate the remaining scalar fields.
    """
    if not isinstance(metadata["sink"], Value):
        raise TypeError(f"{cls.__typename__} sink must implement set() and boolean")

    if not isinstance(usage := metadata["usage"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'usage' must be a string")
    metadata["usage"] = coalesce(usage, "").strip()

    if not isinstance(envvar := metadata["envvar"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'envvar' must be a string")
    elif isinstance(envvar, str) and not (envvar := envvar.strip()):
        raise ValueError(f"{cls.__typename__} 'envvar' cannot be empty")
    metadata["envvar"] = coalesce(envvar)

    if not callable(metadata["validator"]) and metadata["validator"] is not Unset:
        raise TypeError(f"{cls.__typename__} 'validator' must be callable")
    metadata["validator"] = coalesce(metadata["validator"])

    choices = []
    for choice in metadata["choices"]:
        if not isinstance(choice, str):
            raise TypeError(f"{cls.__typename__} 'choices' must be strings")
        if choice in choices:
            raise ValueError(f"{cls.__typename__} 'choices' cannot contain duplicates")
        choices.append(choice)
    metadata["choices"] = tuple(choices)


class Flag(metaclass=DescriptorType):
    """
    Declaration of one command line flag.

    Parameters
    - name: str | None
      Long name, matched as --name (or by position when positional=True).
    - sink: Value
      The value sink that receives every occurrence.
    - short: str | Unset
      One-character short name, matched as -s.
    - usage: str
      Short description for help.
    - positional: bool
      Match by position instead of by name.
    - nargs: (min, max)
      Occurrence bounds; max == 0 means unbounded.
    - envvar: str | Unset
      Environment variable consulted when the flag does not occur at all.
    - validator: Callable[[str], Any] | Unset
      Called with each raw value before the sink; raising rejects the value.
    - choices: Iterable[str]
      When not empty, only these raw values are accepted.
    - hidden: bool
      Hide from help (the flag is still parsed).
    - showdefault: bool
      Show the sink's initial value in help.

    Raises
    - TypeError for wrongly typed arguments, StructureError for declarations
      that break an invariant (bad short name, min > max, reserved names...).
    """

    __introspectable__ = (
        "name",
        "short",
        "sink",
        "usage",
        "positional",
        "nargs",
        "envvar",
        "validator",
        "choices",
        "hidden",
        "showdefault",
        "default",
    )

    __displayable__ = (
        "name",
        "short",
        "positional",
        "nargs",
        "envvar",
        "sink",
    )

    def __init__(
            self,
            name,
            sink,
            /,
            *,
            short=Unset,
            usage=Unset,
            positional=False,
            nargs=(0, 1),
            envvar=Unset,
            validator=Unset,
            choices=(),
            hidden=False,
            showdefault=False
    ):
        metadata = {
            "name": name,
            "sink": sink,
            "short": short,
            "usage": usage,
            "positional": bool(positional),
            "nargs": nargs,
            "envvar": envvar,
            "validator": validator,
            "choices": choices,
            "hidden": bool(hidden),
            "showdefault": bool(showdefault),
        }
        _sanitize_names(type(self), metadata)
        _sanitize_arity(type(self), metadata)
        _sanitize_metadata(type(self), metadata)

        # Rendered once so help shows the initial value, not the last parsed one.
        metadata["default"] = str(sink)

        for name, object in metadata.items():
            setattr(self, "_" + name, coalesce(object))

    @property
    def keys(self):
        """
        Lookup keys on the command line ("--name", "-s"); empty for positionals.
        """
        if self.positional:
            return ()
        return tuple(key for key in (
            "--" + self.name if self.name else None,
            "-" + self.short if self.short else None,
        ) if key)

    @property
    def mincount(self):
        return self.nargs[0]

    @property
    def maxcount(self):
        return self.nargs[1]

    @property
    def bounded(self):
        return self.nargs[1] != 0

    @property
    def boolean(self):
        return bool(self.sink.boolean)

    @property
    def value(self):
        """
        Current value of the sink (shortcut for flag.sink.value).
        """
        return self.sink.value

    def set(self, raw, /):
        """
        Feed one raw value through choices, the validator and the sink.

        Any exception raised by the validator or the sink propagates; the
        parser wraps it into a ValueRejectedError scoped to this flag.
        """
        if self.choices and raw not in self.choices:
            raise ValueError("invalid choice %r (choose from %s)" % (raw, ", ".join(map(repr, self.choices))))
        if self.validator is not None:
            self.validator(raw)
        self.sink.set(raw)

    def __str__(self):
        if self.positional:
            return self.name.upper()
        if self.name:
            return "--" + self.name
        return "-" + self.short


class FlagGroup(metaclass=DescriptorType):
    """
    A nominal grouping of flags shown under a common heading in help.

    Parameters
    - name: str
      Identifier of the group (unique per command).
    - usage: str
      Heading shown in help (defaults to the capitalized name).
    - flags: Iterable[Flag]
    """

    __introspectable__ = (
        "name",
        "usage",
        "flags",
    )

    def __init__(self, name, /, usage=Unset, flags=()):
        if not isinstance(name, str):
            raise TypeError(f"{type(self).__typename__} 'name' must be a string")
        elif not (name := name.strip()):
            raise ValueError(f"{type(self).__typename__} 'name' cannot be empty")
        if not isinstance(usage, str | Unset):
            raise TypeError(f"{type(self).__typename__} 'usage' must be a string")
        flags = tuple(flags)
        if not all(isinstance(flag, Flag) for flag in flags):
            raise TypeError(f"{type(self).__typename__} 'flags' must contain only flags")
        self._name = name
        self._usage = coalesce(usage, name.capitalize())
        self._flags = flags


def var(sink, name, /, **options):
    """
    Build a flag around a custom value sink.
    """
    return Flag(name, sink, **options)


def boolean(name, default=False, /, **options):
    """
    Build a boolean flag; presence alone stores True, --name=false stores False.
    """
    return Flag(name, BoolValue(default), **options)


def integer(name, default=0, /, **options):
    """
    Build an integer flag.
    """
    return Flag(name, IntValue(default), **options)


def number(name, default=0.0, /, **options):
    """
    Build a floating point flag.
    """
    return Flag(name, FloatValue(default), **options)


def string(name, default="", /, **options):
    """
    Build a string flag.
    """
    return Flag(name, StringValue(default), **options)


def duration(name, default=timedelta(0), /, **options):
    """
    Build a duration flag (values like "1m30s"; stored as datetime.timedelta).
    """
    return Flag(name, DurationValue(default), **options)


def strings(name, default=(), /, **options):
    """
    Build a repeatable string flag; each occurrence appends to the list.

    Unbounded by default (nargs=(0, 0)).
    """
    options.setdefault("nargs", (0, 0))
    return Flag(name, StringsValue(default), **options)


def bitfield(field, mask, name, default=False, /, **options):
    """
    Build a boolean flag that toggles the bits of `mask` in a shared BitField.
    """
    return Flag(name, BitFieldValue(field, mask, default), **options)


def func(name, callback, /, **options):
    """
    Build a flag that calls `callback(raw)` for every occurrence.
    """
    return Flag(name, FuncValue(callback), **options)


__all__ = (
    "Flag",
    "FlagGroup",
    "RESERVED",
    "var",
    "boolean",
    "integer",
    "number",
    "string",
    "duration",
    "strings",
    "bitfield",
    "func",
)
