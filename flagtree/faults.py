"""
Flagtree faults (errors) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every classified issue.
  Codes are grouped by domain to keep copy consistent and make logs/searches
  predictable.
- StructureError: build-time error for command trees that break their
  invariants (raised from Flag/Command construction, never from parsing).
- ArgumentError and subclasses: parse-time errors that carry a message plus
  read-only options (command, flag, argument, code, title, hint, index) and
  know how to render themselves with rich.
- report(): print any fault to a rich console (stderr by default).

UX goals
- Position-first messages: parse errors include the ordinal position of the
  offending token so users can learn by trying (“at third position”, etc.).
- Short titles, one-sentence bodies, a single clear hint.

Integration
- The parser raises ArgumentError subclasses; callers catch them and decide
  what to print and which exit code to use (Command.run does both).
- Host applications may define __prog__, __styles__ and __codes__ in
  __main__ to relabel the program, restyle the output and remap codes.
"""
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.text import Text

from .utils import Unset


class FaultCode(IntEnum):
    """
    canonical fault codes used across the library (stable identifiers).

    grouping (by high-level domain)
    - structure (10xxx)
      • DUPLICATED_FLAG, POSITIONAL_WITH_SUBCOMMANDS, POSITIONAL_AFTER_UNBOUNDED,
        INVALID_ARITY, INVALID_SHORT_NAME, DUPLICATED_COMMAND, REATTACHED_COMMAND,
        RESERVED_FLAG, UNNAMED_FLAG, INVALID_NAME
    - routing (1110x)
      • UNRECOGNIZED_COMMAND, UNEXPECTED_POSITIONAL
    - flags (1111x)
      • UNRECOGNIZED_ARGUMENT, MISSING_VALUE
    - values (1112x)
      • VALUE_REJECTED
    - arity (1113x)
      • MISSING_ARGUMENT, TOO_MANY_ARGUMENTS
    """
    # --- structure errors (10xxx) ---
    DUPLICATED_FLAG             = 10101
    POSITIONAL_WITH_SUBCOMMANDS = 10102
    POSITIONAL_AFTER_UNBOUNDED  = 10103
    INVALID_ARITY               = 10104
    INVALID_SHORT_NAME          = 10105
    DUPLICATED_COMMAND          = 10106
    REATTACHED_COMMAND          = 10107
    RESERVED_FLAG               = 10108
    UNNAMED_FLAG                = 10109
    INVALID_NAME                = 10110

    # --- routing errors (1110x) ---
    UNRECOGNIZED_COMMAND        = 11101
    UNEXPECTED_POSITIONAL       = 11102

    # --- flag errors (1111x) ---
    UNRECOGNIZED_ARGUMENT       = 11111
    MISSING_VALUE               = 11112

    # --- value errors (1112x) ---
    VALUE_REJECTED              = 11121

    # --- arity errors (1113x) ---
    MISSING_ARGUMENT            = 11131
    TOO_MANY_ARGUMENTS          = 11132

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class StructureError(ValueError):
    """
    A flag or command declaration violates a structural invariant.

    Raised while the tree is being assembled so that a non-conforming tree can
    never reach the parser. The fault code is kept on .code.
    """

    def __init__(self, message, /, code):
        super().__init__(message)
        self.code = code


class ArgumentError(Exception):
    """
    Base type for every parse-time failure.

    Options (all read-only, available on .options and as attributes)
    - command: the Command scope active when the fault happened.
    - flag: the Flag involved, when there is one.
    - argument: the raw token or value involved ("" when not applicable).
    - code: FaultCode.
    - title: short lowercase title for the header.
    - hint: one actionable sentence.
    - index: 1-based position of the offending token (Unset for post-parse faults).
    """

    def __init__(self, message, /, **options):
        assert isinstance(message, str)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __getattr__(self, name):
        # Options double as attributes (e.g. error.flag, error.command).
        try:
            return self.__dict__["options"][name]
        except KeyError:
            raise AttributeError(name) from None

    def __str__(self):
        # Flag-scoped faults lead with the flag, e.g. "--ip: invalid IP: 256.0.0.1".
        if (flag := self.options.get("flag")) is not None:
            return f"{flag}: {self.message}"
        return self.message

    def __rich__(self):
        main = __import__("__main__")

        styles = defaultdict(str, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        } | getattr(main, "__styles__", {}))

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            return Text(str(fragment), styles[style])

        command = self.options.get("command")
        prog = getattr(main, "__prog__", None) or (" ".join(step.name for step in command.path) if command else "")

        header = Text.assemble(
            "[ ",
            text(prog, "prog-name"),
            " — ",
            text(self.options["code"].normalize(), "code"),
            " | ",
            text(self.options.get("title", "argument error").title(), "error-title"),
            " ]"
        )
        message = text(str(self), "error-message")
        if not self.options.get("hint"):
            return Group(header, message)
        hint = Text.assemble(text(" → ", "hint-arrow"), text(self.options["hint"], "hint"))
        return Group(header, message, hint)


class UnrecognizedArgumentError(ArgumentError): ...
class UnrecognizedCommandError(ArgumentError): ...
class UnexpectedPositionalError(ArgumentError): ...
class MissingValueError(ArgumentError): ...
class ValueRejectedError(ArgumentError): ...
class MissingArgumentError(ArgumentError): ...
class TooManyArgumentsError(ArgumentError): ...


def report(fault, /, *, console=Unset):
    """
    print a fault with rich.

    contract
    - fault must be renderable by rich (ArgumentError implements __rich__); any
      other exception is printed as a plain one-line message.
    - console defaults to a fresh stderr console so that colors follow the
      terminal the user is looking at.
    """
    if console is Unset:
        console = Console(stderr=True)
    if hasattr(fault, "__rich__"):
        console.print(fault)
    else:
        console.print(Text(f"error: {fault}"))


__all__ = (
    "FaultCode",
    "StructureError",
    "ArgumentError",
    "UnrecognizedArgumentError",
    "UnrecognizedCommandError",
    "UnexpectedPositionalError",
    "MissingValueError",
    "ValueRejectedError",
    "MissingArgumentError",
    "TooManyArgumentsError",
    "report",
)
