"""
Flagtree help rendering (rich).

Layout (sections are skipped when empty)
    Usage: root sub [OPTIONS] COMMAND POS [OPT...]

    <command usage text>

    Positional arguments:
      POS      usage (default: …)

    <group heading>:
      -s, --long  usage (default: …)

    Commands:
      name     usage

    Environment variables:
      NAME     usage

    <command synopsis>

Customization
- Define a mapping named __styles__ in __main__ to override any palette entry
  (see format_help for the keys).
- Pass formatter=callable(command, console) to a Command to replace this
  renderer for that command and its descendants.
"""
from collections import defaultdict

from rich.console import Console, Group
from rich.padding import Padding
from rich.table import Table
from rich.text import Text

from .utils import Unset


def _styles():
    return defaultdict(str, {
        "usage-label": "bold #00E6FF",
        "program-name": "bold #FF4D94",
        "usage-section": "#36C5F0",
        "section-label": "bold #FFFFFF",
        "flag-name": "bold #22C55E",
        "metavar": "bold #FFD600",
        "children": "bold #36C5F0",
        "envvar": "bold #FFD600",
        "description": "#9CA3AF",
        "default": "italic #737373",
        "synopsis-section": "#737373",
    } | getattr(__import__("__main__"), "__styles__", {}))


def _visible(flags):
    return [flag for flag in flags if not flag.hidden]


def has_options(command, /):
    """
    Return True when the command has a visible named flag.

    Only the command's own flags count: after descending into a command the
    parser no longer matches its ancestors' flags.
    """
    return any(not flag.hidden and not flag.positional for flag in command.flags)


def environment(command, /):
    """
    Visible env-bound flags of the command, in declaration order.
    """
    return [flag for flag in command.flags if flag.envvar and not flag.hidden]


def synopsis(flag, /):
    """
    Usage token of a positional flag: [NAME], [NAME...], NAME or NAME....
    """
    name = str(flag)
    if flag.mincount == 0:
        return f"[{name}]" if flag.maxcount == 1 else f"[{name}...]"
    if flag.mincount == 1 and flag.maxcount == 1:
        return name
    return f"{name}..."


def format_usage(command, /, *, console=Unset):
    """
    Print the single "Usage: ..." line for a command.
    """
    if console is Unset:
        console = Console()
    console.print(_usage(command, _styles()), soft_wrap=True)


def _usage(command, styles):
    usage = Text()
    usage.append("Usage", styles["usage-label"]).append(": ")
    usage.append(" ".join(step.name for step in command.path), styles["program-name"])
    if has_options(command):
        usage.append(" [OPTIONS]", styles["usage-section"])
    if command.subcommands:
        usage.append(" COMMAND", styles["usage-section"])
    for flag in _visible(command.flags):
        if flag.positional:
            usage.append(" ").append(synopsis(flag), styles["metavar"])
    return usage


def _describe(flag, styles):
    description = Text(flag.usage, styles["description"])
    if flag.showdefault:
        description.append(f"{' ' if flag.usage else ''}(default: {flag.default})", styles["default"])
    return description


def _grid(rows):
    table = Table.grid(padding=(0, 2))
    for row in rows:
        table.add_row(*row)
    return Padding(table, (0, 0, 0, 2))


def format_help(command, /, *, console=Unset):
    """
    Print the help message of a command.

    Palette keys
    - usage-label, program-name, usage-section
    - section-label, flag-name, metavar, children, envvar
    - description, default, synopsis-section
    """
    if console is Unset:
        console = Console()
    styles = _styles()

    def section(label):
        return Text.assemble("\n", (label, styles["section-label"]), ":")

    renders = [_usage(command, styles)]

    if command.usage:
        renders.append(Text.assemble("\n", (command.usage, styles["description"])))

    if positionals := [flag for flag in _visible(command.flags) if flag.positional]:
        renders.append(section("Positional arguments"))
        renders.append(_grid(
            (Text(str(flag), styles["metavar"]), _describe(flag, styles)) for flag in positionals
        ))

    for group in command.groups:
        if not (flags := [flag for flag in _visible(group.flags) if not flag.positional]):
            continue
        renders.append(section(group.usage))
        rows = []
        for flag in flags:
            short = Text(f"-{flag.short}{',' if flag.name else ''}" if flag.short else "", styles["flag-name"])
            long = Text(f"--{flag.name}" if flag.name else "", styles["flag-name"])
            rows.append((short, long, _describe(flag, styles)))
        renders.append(_grid(rows))

    if children := [child for child in command.subcommands if not child.hidden]:
        renders.append(section("Commands"))
        renders.append(_grid(
            (Text(child.name, styles["children"]), Text(child.usage, styles["description"])) for child in children
        ))

    if flags := environment(command):
        renders.append(section("Environment variables"))
        renders.append(_grid(
            (Text(flag.envvar, styles["envvar"]), Text(flag.usage, styles["description"])) for flag in flags
        ))

    if command.synopsis:
        renders.append(Text.assemble("\n", (command.synopsis, styles["synopsis-section"])))

    console.print(Group(*renders))


__all__ = (
    "format_help",
    "format_usage",
    "has_options",
    "environment",
    "synopsis",
)
