"""
Flagtree parser: token normalization, dispatch and reconciliation.

What this module provides
- normalize(tokens, terminator=False): split compound "-fx", "-f=x" and
  "--flag=x" tokens into a flag token followed by its value.
- parse(command, argv): walk the tokens against a command tree, splitting
  compound ones on the way, feed value sinks, descend into subcommands, then
  apply environment fallback and arity checks. Returns an Outcome or raises
  an ArgumentError.

Token classes
- flag-shaped: "-x..." (single dash followed by anything but a dash) or
  "--x..." (double dash followed by at least one character).
- positional-shaped: everything else, including "", "-" and "--".
- inline values: the value half of a split compound token. They are str
  instances (Inline) that always belong to the flag right before them, even
  when they look like a flag ("--offset=-1") or are empty ("--name=").

Phases
- setup: enter the root scope (flag table, positional queue, subcommand table
  built from that scope only).
- loop: one token at a time. Compound tokens are split as they are reached,
  so splitting stops exactly where the active scope terminates: "--" switches
  to pass-through only when that scope enables the terminator, and everything
  after it is kept verbatim. -h/--help short-circuits with Status.HELP.
- reconcile: for the resolved scope only, unset env-bound flags are read from
  the environment (one occurrence each), then every flag's occurrence count is
  checked against its (min, max) bounds.

Concurrency
- All per-parse state lives on a Parser instance created by parse(); command
  and flag descriptors are only read. Value sinks are owned by the caller.
"""
import difflib
import logging
import os
import shlex
from collections import deque
from collections.abc import Iterable
from enum import Enum
from types import MappingProxyType
from typing import NamedTuple

from .faults import *
from .flags import RESERVED
from .utils import *

logger = logging.getLogger(__name__)

# Ends flag/positional interpretation when the active scope enables it.
TERMINATOR = "--"


class Inline(str):
    """
    The value half of a compound token ("-x=1", "-x1", "--name=1").

    Compares and hashes like the plain string; the type only tells the
    dispatcher that the value was glued to the flag before it.
    """
    __slots__ = ()

    def __repr__(self):
        return f"Inline({str.__repr__(self)})"


def flagshaped(token, /):
    """
    Return True when token is spelled like a flag ("-x..." or "--x...").

    Inline values are never flag-shaped.
    """
    if isinstance(token, Inline):
        return False
    if len(token) >= 3 and token.startswith("--"):
        return True
    return len(token) >= 2 and token[0] == "-" and token[1] != "-"


def normalize(tokens, terminator=False, /):
    """
    Split compound flag-value tokens into two tokens.

    - "-xVAL" and "-x=VAL" → "-x", "VAL" (the '=' is dropped; "-x=" gives "").
    - "--flag=VAL" → "--flag", "VAL" at the first '=' after the first name
      character ("--=x" is not split).
    - once "--" is seen and terminator is True, it and every following token
      are copied through unchanged.
    - existing Inline tokens are copied through unchanged, so normalizing
      twice gives the same result.

    Pure function; order is preserved.
    """
    output = []
    tokens = list(tokens)
    for index, token in enumerate(tokens):
        if terminator and token == TERMINATOR:
            output.extend(tokens[index:])
            break
        if isinstance(token, Inline) or not flagshaped(token):
            output.append(token)
        elif token[1] != "-":
            output.append(token[:2])
            if rest := token[2:]:
                output.append(Inline(rest[1:] if rest.startswith("=") else rest))
        elif (split := token.find("=", 3)) != -1:
            output.append(token[:split])
            output.append(Inline(token[split + 1:]))
        else:
            output.append(token)
    return output


def _walk(command):
    stack = [command]
    while stack:
        yield (command := stack.pop())
        stack.extend(command.subcommands)


class Status(Enum):
    """
    How a successful parse ended.
    """
    RESOLVED = "resolved"
    HELP = "help"


class Outcome(NamedTuple):
    """
    Result of a parse.

    - status: Status.RESOLVED, or Status.HELP when -h/--help was requested.
    - command: the resolved (deepest) command scope.
    - args: trailing arguments after the terminator (possibly empty).
    - counts: read-only mapping Flag → occurrences seen during this parse.
    """
    status: Status
    command: object
    args: tuple
    counts: MappingProxyType

    @property
    def help(self):
        return self.status is Status.HELP

    def occurrences(self, flag, /):
        return self.counts.get(flag, 0)


class Parser:
    """
    Working state of a single parse (never shared between parses).

    State
    - command: current scope; changes only by descending into a subcommand.
    - flags: "--name"/"-s" → Flag for the current scope.
    - positionals: not yet satisfied positional flags, in declaration order.
    - subcommands: name → child command for the current scope.
    - counts: Flag → occurrences seen so far.
    - terminated / args: pass-through mode and the collected trailing args.
    """

    def __init__(self, command, tokens, /, *, environ=Unset):
        self._environ = coalesce(environ, os.environ)
        self._tokens = deque(tokens)
        self._index = 0
        self._counts = {}
        self._terminated = False
        self._args = []
        for step in _walk(command):
            for flag in step.flags:
                # accumulating sinks start a fresh list on their first value of this parse
                if callable(reset := getattr(flag.sink, "reset", None)):
                    reset()
        self._enter(command)

    @property
    def route(self):
        return " ".join(step.name for step in self._command.path)

    def _enter(self, command):
        """
        Rebuild the lookup tables for a new scope (ancestor flags are not visible).
        """
        self._command = command
        self._flags = {key: flag for flag in command.flags for key in flag.keys}
        self._positionals = deque(flag for flag in command.flags if flag.positional)
        self._subcommands = {child.name: child for child in command.subcommands}
        logger.debug("entered scope %r", self.route)

    def _next(self):
        token = self._tokens.popleft()
        if not self._terminated and flagshaped(token):
            token, *rest = normalize([token])
            self._tokens.extendleft(reversed(rest))
        self._index += 1
        return token

    def _observe(self, flag):
        self._counts[flag] = count = self._counts.get(flag, 0) + 1
        return count

    def _set(self, flag, raw, *, index=Unset, source=Unset):
        """
        Feed one raw value to a flag, wrapping any rejection as ValueRejectedError.
        """
        try:
            flag.set(raw)
        except Exception as exception:
            where = "from %s" % source if source else "at %s position" % ordinal(coalesce(index, self._index))
            raise ValueRejectedError(
                "%s (%r %s)" % (str(exception) or type(exception).__name__, str(raw), where),
                title="invalid value",
                code=FaultCode.VALUE_REJECTED,
                command=self._command,
                flag=flag,
                argument=str(raw),
                index=index,
                hint="run '%s --help' to see the accepted values" % self.route,
            ) from exception

    def parse(self):
        """
        Consume every token, then reconcile; see the module docstring.
        """
        while self._tokens:
            if self._dispatch(self._next()) is Status.HELP:
                logger.debug("help requested for %r", self.route)
                return self._outcome(Status.HELP)
        self._reconcile()
        return self._outcome(Status.RESOLVED)

    def _outcome(self, status):
        return Outcome(status, self._command, tuple(self._args), MappingProxyType(dict(self._counts)))

    def _dispatch(self, token):
        if self._terminated:
            self._args.append(str(token))
            return
        if token == TERMINATOR and not isinstance(token, Inline) and self._command.terminator:
            logger.debug("terminator at %s position", ordinal(self._index))
            self._terminated = True
            return
        if token in RESERVED and not isinstance(token, Inline):
            return Status.HELP
        if flagshaped(token):
            return self._dispatch_flag(token)
        return self._dispatch_positional(token)

    def _dispatch_positional(self, token):
        if self._positionals:
            flag = self._positionals[0]
            if self._observe(flag) == flag.maxcount:
                # all done with this positional
                self._positionals.popleft()
            return self._set(flag, token, index=self._index)

        if not self._subcommands:
            raise UnexpectedPositionalError(
                "unexpected positional argument %r at %s position" % (str(token), ordinal(self._index)),
                title="unexpected positional",
                code=FaultCode.UNEXPECTED_POSITIONAL,
                command=self._command,
                argument=str(token),
                index=self._index,
                hint="remove this extra value or run '%s --help' to see the expected usage" % self.route,
            )

        try:
            command = self._subcommands[token]
        except KeyError:
            suggestions = difflib.get_close_matches(token, self._subcommands.keys(), 5)
            type = "subcommand" if self._command.parent else "command"
            try:
                hint = "did you mean %r? you can also run '%s --help' to see available %ss" % (
                    suggestions[0], self.route, type
                )
            except IndexError:
                hint = "run '%s --help' to see available %ss" % (self.route, type)
            raise UnrecognizedCommandError(
                "unrecognized %s %r at %s position" % (type, str(token), ordinal(self._index)),
                title="unrecognized %s" % type,
                code=FaultCode.UNRECOGNIZED_COMMAND,
                command=self._command,
                argument=str(token),
                index=self._index,
                suggestions=tuple(suggestions),
                hint=hint,
            ) from None
        self._enter(command)

    def _dispatch_flag(self, token):
        try:
            flag = self._flags[token]
        except KeyError:
            suggestions = difflib.get_close_matches(token, self._flags.keys(), 5)
            try:
                hint = "did you mean %r? you can also run '%s --help' to see all flags" % (suggestions[0], self.route)
            except IndexError:
                hint = "run '%s --help' to see all available flags" % self.route
            raise UnrecognizedArgumentError(
                "unrecognized argument %r at %s position" % (token, ordinal(self._index)),
                title="unrecognized argument",
                code=FaultCode.UNRECOGNIZED_ARGUMENT,
                command=self._command,
                argument=token,
                index=self._index,
                suggestions=tuple(suggestions),
                hint=hint,
            ) from None

        self._observe(flag)
        start = self._index
        inline = bool(self._tokens) and isinstance(self._tokens[0], Inline)

        if flag.boolean:
            # Booleans never take a spaced value; only "--flag=false" style.
            return self._set(flag, self._next() if inline else "true", index=start)

        if not inline and (not self._tokens or flagshaped(self._tokens[0])):
            raise MissingValueError(
                "no value specified at %s position" % ordinal(start),
                title="missing value",
                code=FaultCode.MISSING_VALUE,
                command=self._command,
                flag=flag,
                argument=token,
                index=start,
                hint="pass a value after a space or with '=' (for example: %s=<value>)" % token,
            )
        return self._set(flag, self._next(), index=self._index)

    def _reconcile(self):
        """
        Environment fallback and arity checks for the resolved scope.
        """
        for flag in self._command.flags:
            if not flag.envvar or self._counts.get(flag, 0):
                continue
            try:
                raw = self._environ[flag.envvar]
            except KeyError:
                continue
            logger.debug("%s taken from environment variable %s", flag, flag.envvar)
            self._observe(flag)
            self._set(flag, raw, source="environment variable %s" % flag.envvar)

        for flag in self._command.flags:
            count = self._counts.get(flag, 0)
            if count < flag.mincount:
                if flag.mincount == 1:
                    message = "missing argument"
                else:
                    message = "missing argument (expected at least %d, got %d)" % (flag.mincount, count)
                raise MissingArgumentError(
                    message,
                    title="missing argument",
                    code=FaultCode.MISSING_ARGUMENT,
                    command=self._command,
                    flag=flag,
                    argument="",
                    hint="add %s%s or run '%s --help' to see the expected usage" % (
                        flag, " (or set %s)" % flag.envvar if flag.envvar else "", self.route
                    ),
                )
            if flag.bounded and count > flag.maxcount:
                raise TooManyArgumentsError(
                    "argument declared too many times (at most %d, got %d)" % (flag.maxcount, count),
                    title="argument declared too many times",
                    code=FaultCode.TOO_MANY_ARGUMENTS,
                    command=self._command,
                    flag=flag,
                    argument="",
                    hint="keep at most %d occurrence%s of %s" % (
                        flag.maxcount, "s" * (flag.maxcount != 1), flag
                    ),
                )


def parse(command, argv, /, *, environ=Unset):
    """
    Parse argv (program name excluded) against a command tree.

    Parameters
    - command: the root Command.
    - argv: Iterable[str], or a shell-like string split with shlex.
    - environ: mapping used for environment fallback (defaults to os.environ,
      read at parse time).

    Returns
    - Outcome(status, command, args, counts).

    Raises
    - ArgumentError subclasses for unrecognized tokens, missing values,
      rejected values and arity violations.
    - TypeError when argv is not a string or an iterable of strings.
    """
    if isinstance(argv, str):
        argv = shlex.split(argv)
    elif not isinstance(argv, Iterable):
        raise TypeError("parse() argument must be a string or an iterable of strings")
    tokens = list(argv)
    if not all(isinstance(token, str) for token in tokens):
        raise TypeError("parse() argument must be a string or an iterable of strings")
    return Parser(command, tokens, environ=environ).parse()


__all__ = (
    "TERMINATOR",
    "Inline",
    "Status",
    "Outcome",
    "Parser",
    "flagshaped",
    "normalize",
    "parse",
)
