"""
Flagtree command layer: declare, compose and run command trees.

What this module provides
- Command: a named scope holding flags, flag groups and subcommands, plus
  help metadata (usage, synopsis), terminator mode, a handler and an optional
  help formatter.
- run(command, argv): parse argv, call the resolved command's handler and map
  the outcome to a process exit code.

Structure rules (checked once, at construction; StructureError otherwise)
- flag keys ("--name", "-s") are unique within one command.
- a command with positional flags cannot have subcommands.
- no positional flag may follow an unbounded positional flag.
- subcommand names are unique within one command.
- a command can be attached under one parent only.

Tree wiring
- parents hold their children; children hold a weak reference back to the
  parent (see Command.parent), so dropping the root frees the whole tree.
- root/path walk the parent chain; formatter lookup does the same.

Quick start
    from flagtree import Command, boolean, strings, run

    def build(args):
        print("building", targets.value, "verbose" if verbose.value else "")
        return 0

    verbose = boolean("verbose", short="v", usage="print more")
    targets = strings("target", positional=True, nargs=(1, 0))

    tool = Command(
        "tool",
        [verbose],
        [Command("build", [targets], handler=build, usage="Build targets")],
    )

    if __name__ == "__main__":
        raise SystemExit(run(tool))
"""
import logging
import shlex
import sys
import weakref
from collections.abc import Iterable

from rich.console import Console

from .faults import *
from .flags import FlagGroup
from .formatting import format_help, format_usage
from .parser import Status, parse
from .utils import *

logger = logging.getLogger(__name__)


def _process_strings(cls, metadata):
    """
    Validate the name and normalize the help scalars (usage, synopsis).
    """
    if not isinstance(name := metadata["name"], str):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif not (name := name.strip()):
        raise ValueError(f"{cls.__typename__} 'name' cannot be empty")
    elif any(character.isspace() for character in name) or name.startswith("-"):
        raise ValueError(f"{cls.__typename__} name {name!r} cannot contain spaces or start with '-'")
    metadata["name"] = name

    for name in ("usage", "synopsis"):
        if not isinstance(object := metadata[name], str | Unset):
            raise TypeError(f"{cls.__typename__} {name!r} must be a string")
        metadata[name] = coalesce(object, "").strip()


def _process_callables(cls, metadata):
    """
    Validate handler and formatter (callables or Unset).
    """
    for name in ("handler", "formatter"):
        if not callable(object := metadata[name]) and object is not Unset:
            raise TypeError(f"{cls.__typename__} {name!r} must be callable")
        metadata[name] = coalesce(object)


def _process_flags(cls, metadata):
    """
    Gather flags into groups and enforce the per-command flag rules.

    Mutates
    - metadata["groups"]: tuple[FlagGroup]; the ungrouped flags form the leading
      "options" group.
    - metadata["flags"]: tuple[Flag] in declaration order across all groups.
    """
    if not isinstance(metadata["flags"], Iterable):
        raise TypeError(f"{cls.__typename__} 'flags' must be an iterable of flags")
    if not isinstance(metadata["groups"], Iterable):
        raise TypeError(f"{cls.__typename__} 'groups' must be an iterable of flag groups")

    groups = [FlagGroup("options", "Options", metadata["flags"])]
    for group in metadata["groups"]:
        if not isinstance(group, FlagGroup):
            raise TypeError(f"{cls.__typename__} 'groups' must be an iterable of flag groups")
        if any(group.name == other.name for other in groups):
            raise ValueError(f"{cls.__typename__} group name {group.name!r} is already in use")
        groups.append(group)

    flags = []
    keys = {}
    positional = {}
    unbounded = None
    for flag in (flag for group in groups for flag in group.flags):
        if any(flag is other for other in flags):
            raise StructureError(
                f"{cls.__typename__} {metadata['name']!r} declares flag {str(flag)!r} more than once",
                code=FaultCode.DUPLICATED_FLAG
            )
        for key in flag.keys:
            if key in keys:
                raise StructureError(
                    f"{cls.__typename__} {metadata['name']!r} flag name {key!r} is already in use",
                    code=FaultCode.DUPLICATED_FLAG
                )
            keys[key] = flag
        if flag.positional:
            if flag.name in positional:
                raise StructureError(
                    f"{cls.__typename__} {metadata['name']!r} positional name {flag.name!r} is already in use",
                    code=FaultCode.DUPLICATED_FLAG
                )
            if unbounded:
                raise StructureError(
                    f"{cls.__typename__} {metadata['name']!r} positional {str(flag)!r} "
                    f"cannot follow unbounded positional {str(unbounded)!r}",
                    code=FaultCode.POSITIONAL_AFTER_UNBOUNDED
                )
            positional[flag.name] = flag
            unbounded = flag if not flag.bounded else None
        flags.append(flag)

    metadata["flags"] = tuple(flags)
    metadata["groups"] = tuple(groups)
    metadata["positional"] = bool(positional)


def _process_subcommands(cls, metadata):
    """
    Validate subcommands: Command instances, unique names, not attached elsewhere.
    """
    if not isinstance(metadata["subcommands"], Iterable):
        raise TypeError(f"{cls.__typename__} 'subcommands' must be an iterable of commands")

    subcommands = {}
    for child in metadata["subcommands"]:
        if not isinstance(child, Command):
            raise TypeError(f"{cls.__typename__} 'subcommands' must be an iterable of commands")
        if child.name in subcommands:
            raise StructureError(
                f"{cls.__typename__} {metadata['name']!r} subcommand name {child.name!r} is already in use",
                code=FaultCode.DUPLICATED_COMMAND
            )
        if child.parent is not None:
            raise StructureError(
                f"{cls.__typename__} {child.name!r} is already a subcommand of {child.parent.name!r}",
                code=FaultCode.REATTACHED_COMMAND
            )
        subcommands[child.name] = child

    if subcommands and metadata["positional"]:
        raise StructureError(
            f"{cls.__typename__} {metadata['name']!r} cannot have both positional flags and subcommands",
            code=FaultCode.POSITIONAL_WITH_SUBCOMMANDS
        )
    metadata["subcommands"] = tuple(subcommands.values())


class Command(metaclass=DescriptorType):
    """
    Declaration of a command (or subcommand) and everything it accepts.

    Parameters
    - name: str
      Matched as a positional token by the parent; the root's name labels help.
    - flags: Iterable[Flag]
      Flags of the default "Options" group.
    - subcommands: Iterable[Command]
      Children; each must be unattached and uniquely named.
    - groups: Iterable[FlagGroup]
      Extra flag groups, shown under their own heading in help.
    - usage: str
      One-line description (shown in the parent's command list and in help).
    - synopsis: str
      Longer text shown at the end of help.
    - terminator: bool
      Treat "--" as the end of flags; everything after it is collected as args.
    - hidden: bool
      Hide from the parent's help (still parsed).
    - handler: Callable[[tuple[str, ...]], int | None]
      Called by run() with the trailing args when this command is resolved.
    - formatter: Callable[[Command, Console], None]
      Help renderer for this command and descendants without their own.

    Raises
    - TypeError/ValueError for wrongly typed or empty arguments.
    - StructureError when the tree would break a structure rule.
    """

    __introspectable__ = (
        "name",
        "flags",
        "groups",
        "subcommands",
        "usage",
        "synopsis",
        "terminator",
        "hidden",
        "handler",
        "formatter",
    )

    __displayable__ = (
        "name",
        "usage",
        "flags",
        "subcommands",
        "terminator",
    )

    def __init__(
            self,
            name,
            /,
            flags=(),
            subcommands=(),
            *,
            groups=(),
            usage=Unset,
            synopsis=Unset,
            terminator=False,
            hidden=False,
            handler=Unset,
            formatter=Unset
    ):
        metadata = {
            "name": name,
            "flags": flags,
            "groups": groups,
            "subcommands": subcommands,
            "usage": usage,
            "synopsis": synopsis,
            "terminator": bool(terminator),
            "hidden": bool(hidden),
            "handler": handler,
            "formatter": formatter,
        }
        _process_strings(type(self), metadata)
        _process_callables(type(self), metadata)
        _process_flags(type(self), metadata)
        _process_subcommands(type(self), metadata)
        del metadata["positional"]

        for name, object in metadata.items():
            setattr(self, "_" + name, coalesce(object))

        self._parent = None
        for child in self._subcommands:
            child._parent = weakref.ref(self)

    @property
    def parent(self):
        """
        The enclosing command, or None for a root (or once the parent is gone).
        """
        return self._parent() if self._parent is not None else None

    @property
    def root(self):
        """
        Return the topmost command in the current command hierarchy.
        """
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        Return the full ancestry from root to this command as a tuple.
        """
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    def subcommand(self, name, /):
        """
        Return the direct child called `name`, or None.
        """
        for child in self._subcommands:
            if child.name == name:
                return child
        return None

    def __str__(self):
        return self.name

    def parse(self, argv, /, *, environ=Unset):
        """
        Parse argv (program name excluded) against this command.

        Returns an Outcome; raises ArgumentError subclasses on invalid input.
        """
        return parse(self, argv, environ=environ)

    def format_help(self, *, console=Unset):
        """
        Print help with this command's formatter, the nearest ancestor's, or the default.
        """
        formatter = next((step.formatter for step in reversed(self.path) if step.formatter), Unset)
        if console is Unset:
            console = Console()
        if formatter is Unset:
            return format_help(self, console=console)
        return formatter(self, console)

    def run(self, argv=Unset, /, *, environ=Unset, stdout=Unset, stderr=Unset):
        """
        Parse argv and call the resolved command's handler.

        Parameters
        - argv:
          • Unset: read tokens from sys.argv[1:].
          • str: shell-like string; will be split via shlex.split.
          • Iterable[str]: pre-tokenized sequence.
        - stdout, stderr: rich consoles for help and errors (fresh consoles by default).

        Exit codes
        - help requested → help on stdout, 0.
        - ArgumentError → rendered on stderr, 1.
        - resolved command without handler → usage on stderr, 1.
        - otherwise the handler's return value (None → 0).
        """
        if argv is Unset:
            argv = sys.argv[1:]
        elif isinstance(argv, str):
            argv = shlex.split(argv)
        if stdout is Unset:
            stdout = Console()
        if stderr is Unset:
            stderr = Console(stderr=True)

        try:
            outcome = self.parse(argv, environ=environ)
        except ArgumentError as fault:
            logger.debug("parse failed: %s", fault)
            report(fault, console=stderr)
            return 1

        if outcome.status is Status.HELP:
            outcome.command.format_help(console=stdout)
            return 0
        if outcome.command.handler is None:
            format_usage(outcome.command, console=stderr)
            return 1
        return outcome.command.handler(outcome.args) or 0


def run(command, argv=Unset, /, **options):
    """
    Convenience runner: command.run(argv) with the same argument forms.

    Typical use
        raise SystemExit(run(tool))
    """
    if not isinstance(command, Command):
        raise TypeError("run() first argument must be a command")
    return command.run(argv, **options)


__all__ = (
    "Command",
    "run",
)
