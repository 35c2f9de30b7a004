"""
Parser behavioral tests (dispatch, descent, terminator, environment, arity).

Scope
- Positional queues, subcommand descent and scope-local flag lookup.
- Flag values: spaced, inline, boolean shorthand, missing values.
- Terminator pass-through scoped to the active command.
- Help short-circuit.
- Environment fallback and arity reconciliation.
- Fault types, positions and hints.

Conventions
- Test method names follow CamelCase per project convention.
- Tests use the public API (Command, factories, parse).
"""
import os
import unittest
from unittest import TestCase
from unittest.mock import patch

from flagtree import (
    Command,
    BitField,
    Status,
    parse,
    boolean,
    bitfield,
    integer,
    number,
    string,
    strings,
    func,
)
from flagtree.faults import (
    FaultCode,
    ArgumentError,
    UnrecognizedArgumentError,
    UnrecognizedCommandError,
    UnexpectedPositionalError,
    MissingValueError,
    ValueRejectedError,
    MissingArgumentError,
    TooManyArgumentsError,
)


class TestPositionals(TestCase):
    """Positional flags are satisfied strictly in declaration order."""

    def testUnboundedPositionalCollectsInOrder(self):
        files = strings("file", positional=True)
        outcome = Command("test", [files]).parse(["a", "b", "c"])
        self.assertEqual(files.value, ["a", "b", "c"])
        self.assertEqual(outcome.occurrences(files), 3)

    def testPositionalSequence(self):
        foo = string("foo", positional=True, nargs=(1, 1))
        bar = string("bar", positional=True, nargs=(1, 1))
        baz = strings("baz", positional=True, nargs=(2, 2))
        qux = strings("qux", positional=True, nargs=(0, 0))
        command = Command("test", [foo, bar, baz, qux])
        command.parse(["one", "two", "three", "four", "five", "six"])
        self.assertEqual(foo.value, "one")
        self.assertEqual(bar.value, "two")
        self.assertEqual(baz.value, ["three", "four"])
        self.assertEqual(qux.value, ["five", "six"])

    def testPositionalsAndFlagsInterleave(self):
        verbose = boolean("verbose", short="v")
        source = string("source", positional=True)
        target = string("target", positional=True)
        Command("copy", [verbose, source, target]).parse(["a", "-v", "b"])
        self.assertTrue(verbose.value)
        self.assertEqual((source.value, target.value), ("a", "b"))

    def testBooleanNeverConsumesBareToken(self):
        verbose = boolean("x")
        file = string("file", positional=True)
        Command("test", [verbose, file]).parse(["-x", "somefile"])
        self.assertTrue(verbose.value)
        self.assertEqual(file.value, "somefile")

    def testDashAndEmptyArePositional(self):
        files = strings("file", positional=True)
        Command("test", [files]).parse(["-", ""])
        self.assertEqual(files.value, ["-", ""])

    def testExtraPositionalRejected(self):
        file = string("file", positional=True)
        with self.assertRaises(UnexpectedPositionalError) as context:
            Command("test", [file]).parse(["a", "b"])
        self.assertEqual(context.exception.index, 2)
        self.assertEqual(context.exception.argument, "b")
        self.assertIn("second position", str(context.exception))

    def testPositionalWithoutDeclarationsRejected(self):
        with self.assertRaises(UnexpectedPositionalError):
            Command("test").parse(["stray"])


class TestFlagValues(TestCase):
    """Value-taking flags and boolean shorthand."""

    def setUp(self):
        self.foo = string("foo", nargs=(1, 1))
        self.bar = boolean("bar")
        self.command = Command("test", [self.foo, self.bar])

    def testRequiredAndBoolean(self):
        outcome = self.command.parse(["--foo", "x", "--bar"])
        self.assertIs(outcome.status, Status.RESOLVED)
        self.assertEqual(self.foo.value, "x")
        self.assertIs(self.bar.value, True)
        self.assertEqual(outcome.occurrences(self.foo), 1)
        self.assertEqual(outcome.occurrences(self.bar), 1)

    def testMissingRequiredFlag(self):
        with self.assertRaises(MissingArgumentError) as context:
            self.command.parse(["--bar"])
        self.assertIs(context.exception.flag, self.foo)
        self.assertIs(context.exception.code, FaultCode.MISSING_ARGUMENT)
        self.assertEqual(str(context.exception), "--foo: missing argument")

    def testInlineValue(self):
        self.command.parse(["--foo=x=y"])
        self.assertEqual(self.foo.value, "x=y")

    def testEmptyInlineValue(self):
        self.command.parse(["--foo="])
        self.assertEqual(self.foo.value, "")

    def testInlineBooleanValue(self):
        self.command.parse(["--foo", "x", "--bar=false"])
        self.assertIs(self.bar.value, False)

    def testInlineFlagShapedValue(self):
        offset = integer("offset")
        Command("test", [offset]).parse(["--offset=-1"])
        self.assertEqual(offset.value, -1)

    def testShortCompactValue(self):
        level = integer("l")
        Command("test", [level]).parse(["-l3"])
        self.assertEqual(level.value, 3)
        Command("test2", [level2 := integer("l")]).parse(["-l=-3"])
        self.assertEqual(level2.value, -3)

    def testSpacedNegativeNumberIsAFlag(self):
        ratio = number("ratio")
        with self.assertRaises(MissingValueError) as context:
            Command("test", [ratio]).parse(["--ratio", "-1"])
        self.assertIs(context.exception.flag, ratio)
        self.assertEqual(context.exception.index, 1)

    def testMissingValueAtEnd(self):
        with self.assertRaises(MissingValueError) as context:
            self.command.parse(["--foo"])
        self.assertIs(context.exception.code, FaultCode.MISSING_VALUE)
        self.assertIn("no value specified", str(context.exception))

    def testRepeatableFlag(self):
        tags = strings("tag", ["default"])
        outcome = Command("test", [tags]).parse(["--tag", "baz", "--tag", "qux"])
        self.assertEqual(tags.value, ["baz", "qux"])
        self.assertEqual(outcome.occurrences(tags), 2)

    def testTooManyOccurrences(self):
        with self.assertRaises(TooManyArgumentsError) as context:
            self.command.parse(["--foo", "a", "--foo", "b"])
        self.assertIs(context.exception.flag, self.foo)
        self.assertIn("too many times", str(context.exception))

    def testBitFields(self):
        field = BitField()
        command = Command("test", [
            bitfield(field, 0x01, "foo"),
            bitfield(field, 0x02, "bar"),
            bitfield(field, 0x04, "baz", True),
        ])
        command.parse(["--foo"])
        self.assertEqual(int(field), 0x05)


class TestValueRejection(TestCase):
    """Sink and validator errors become ValueRejectedError."""

    def testSinkErrorIsChained(self):
        count = integer("count")
        with self.assertRaises(ValueRejectedError) as context:
            Command("test", [count]).parse(["--count", "many"])
        fault = context.exception
        self.assertIs(fault.flag, count)
        self.assertEqual(fault.argument, "many")
        self.assertEqual(fault.index, 2)
        self.assertIsInstance(fault.__cause__, ValueError)
        self.assertTrue(str(fault).startswith("--count: "))

    def testValidatorErrorIsChained(self):
        def validator(raw):
            raise LookupError(f"unknown host: {raw}")

        host = string("host", validator=validator)
        with self.assertRaises(ValueRejectedError) as context:
            Command("test", [host]).parse(["--host=nowhere"])
        self.assertIsInstance(context.exception.__cause__, LookupError)
        self.assertIn("unknown host: nowhere", str(context.exception))

    def testChoices(self):
        mode = string("mode", choices=("bar", "baz"))
        command = Command("test", [mode])
        command.parse(["--mode=bar"])
        for raw in ("qux", "ba", "barr"):
            with self.assertRaises(ValueRejectedError):
                command.parse([f"--mode={raw}"])

    def testInvalidBooleanInline(self):
        with self.assertRaises(ValueRejectedError):
            Command("test", [boolean("bar")]).parse(["--bar=maybe"])

    def testFuncSinkErrors(self):
        def load(raw):
            raise ValueError("cannot load")

        with self.assertRaises(ValueRejectedError):
            Command("test", [func("load", load)]).parse(["--load", "x"])


class TestUnrecognized(TestCase):
    """Unknown flags and commands."""

    def setUp(self):
        self.verbose = boolean("verbose", short="v")
        self.command = Command("tool", [self.verbose], [Command("build"), Command("bundle")])

    def testUnknownFlag(self):
        with self.assertRaises(UnrecognizedArgumentError) as context:
            self.command.parse(["--verbos"])
        fault = context.exception
        self.assertEqual(fault.argument, "--verbos")
        self.assertEqual(fault.index, 1)
        self.assertIn("unrecognized argument", str(fault))
        self.assertIn("'--verbose'", fault.hint)

    def testUnknownFlagWithoutSuggestion(self):
        with self.assertRaises(UnrecognizedArgumentError) as context:
            self.command.parse(["--zzzzzz"])
        self.assertIn("--help", context.exception.hint)
        self.assertNotIn("did you mean", context.exception.hint)

    def testUnknownCommand(self):
        with self.assertRaises(UnrecognizedCommandError) as context:
            self.command.parse(["-v", "buidl"])
        fault = context.exception
        self.assertEqual(fault.index, 2)
        self.assertIn("unrecognized command 'buidl' at second position", str(fault))
        self.assertIn("'build'", fault.hint)

    def testAllFaultsAreArgumentErrors(self):
        with self.assertRaises(ArgumentError):
            self.command.parse(["nope"])

    def testDoubleDashWithoutTerminatorIsPositional(self):
        with self.assertRaises(UnrecognizedCommandError):
            self.command.parse(["--"])


class TestSubcommands(TestCase):
    """Descent into subcommands and scope-local lookup."""

    def testNestedDescent(self):
        flag_a, flag_b, flag_c = boolean("flagA"), boolean("flagB"), boolean("flagC")
        c = Command("c", [flag_c])
        b = Command("b", [flag_b], [c])
        a = Command("a", [flag_a], [b])
        outcome = a.parse(["b", "--flagB", "c", "--flagC"])
        self.assertIs(outcome.command, c)
        self.assertTrue(flag_b.value)
        self.assertTrue(flag_c.value)
        self.assertFalse(flag_a.value)

    def testAncestorFlagsAreNotVisibleAfterDescent(self):
        verbose = boolean("verbose")
        root = Command("root", [verbose], [Command("sub")])
        with self.assertRaises(UnrecognizedArgumentError):
            root.parse(["sub", "--verbose"])
        root.parse(["--verbose", "sub"])
        self.assertTrue(verbose.value)

    def testDeepChain(self):
        field = BitField()

        def build(n, depth):
            children = [build(n + 1, depth)] if n < depth else []
            return Command(f"command{n:02d}", [bitfield(field, 1 << (n - 1), f"x{n:02d}")], children)

        depth = 8
        root = Command("test", [], [build(1, depth)])
        for i in range(depth):
            field.value = 0
            argv = []
            for j in range(i + 1):
                argv += [f"command{j + 1:02d}", f"--x{j + 1:02d}"]
            outcome = root.parse(argv)
            self.assertEqual(outcome.command.name, f"command{i + 1:02d}")
            self.assertEqual(int(field), (1 << (i + 1)) - 1)


class TestTerminator(TestCase):
    """The "--" terminator."""

    def testTrailingArgsAreVerbatim(self):
        verbose = boolean("v")
        command = Command("echo", [verbose], terminator=True)
        outcome = command.parse(["-v", "--", "-x", "--y", ""])
        self.assertTrue(verbose.value)
        self.assertEqual(outcome.args, ("-x", "--y", ""))

    def testTrailingArgsAreNotSplit(self):
        outcome = Command("echo", terminator=True).parse(["--", "-xVal", "--a=b", "--", "-h"])
        self.assertIs(outcome.status, Status.RESOLVED)
        self.assertEqual(outcome.args, ("-xVal", "--a=b", "--", "-h"))

    def testTerminatorIsScopedToActiveCommand(self):
        sub = Command("exec", terminator=True)
        root = Command("tool", [], [sub])
        outcome = root.parse(["exec", "--", "-xVal"])
        self.assertIs(outcome.command, sub)
        self.assertEqual(outcome.args, ("-xVal",))
        with self.assertRaises(UnrecognizedCommandError):
            root.parse(["--", "exec"])

    def testSiblingTerminatorDoesNotStopSplitting(self):
        name = string("name")
        files = strings("file", positional=True)
        root = Command("tool", [], [
            Command("edit", [name, files]),
            Command("exec", terminator=True),
        ])
        outcome = root.parse(["edit", "--", "--name=x"])
        self.assertEqual(name.value, "x")
        self.assertEqual(files.value, ["--"])
        self.assertEqual(outcome.args, ())
        with self.assertRaises(UnrecognizedArgumentError) as context:
            root.parse(["edit", "--name=y", "-n"])
        self.assertEqual(context.exception.index, 4)

    def testSplittingStopsAtActiveTerminator(self):
        name = string("name")
        root = Command("tool", [], [
            Command("edit", [name]),
            Command("exec", terminator=True),
        ])
        outcome = root.parse(["exec", "--", "--name=x", "-xVal"])
        self.assertEqual(outcome.args, ("--name=x", "-xVal"))
        self.assertEqual(name.value, "")

    def testNoTerminatorMeansNoArgs(self):
        self.assertEqual(Command("tool").parse([]).args, ())


class TestHelp(TestCase):
    """-h and --help short-circuit parsing."""

    def testHelpIdentifiesScope(self):
        sub = Command("sub", [string("name", nargs=(1, 1))])
        root = Command("root", [], [sub])
        outcome = root.parse(["sub", "--help", "--unknown"])
        self.assertIs(outcome.status, Status.HELP)
        self.assertTrue(outcome.help)
        self.assertIs(outcome.command, sub)

    def testHelpSkipsArityChecks(self):
        outcome = Command("root", [string("name", nargs=(1, 1))]).parse(["-h"])
        self.assertIs(outcome.status, Status.HELP)

    def testHelpAsValueIsNotAHelpRequest(self):
        name = string("name")
        outcome = Command("root", [name]).parse(["--name=--help"])
        self.assertIs(outcome.status, Status.RESOLVED)
        self.assertEqual(name.value, "--help")


class TestEnvironment(TestCase):
    """Environment fallback for flags that did not occur."""

    def testEnvironmentFillsMissingFlag(self):
        token = string("token", nargs=(1, 1), envvar="APP_TOKEN")
        outcome = Command("app", [token]).parse([], environ={"APP_TOKEN": "secret"})
        self.assertEqual(token.value, "secret")
        self.assertEqual(outcome.occurrences(token), 1)

    def testCommandLineTakesPrecedence(self):
        seen = []
        token = func("token", seen.append, envvar="APP_TOKEN")
        Command("app", [token]).parse(["--token", "cli"], environ={"APP_TOKEN": "env"})
        self.assertEqual(seen, ["cli"])

    def testProcessEnvironmentIsReadAtParseTime(self):
        jobs = integer("jobs", 1, envvar="APP_JOBS")
        command = Command("app", [jobs])
        with patch.dict(os.environ, {"APP_JOBS": "8"}):
            command.parse([])
        self.assertEqual(jobs.value, 8)

    def testEnvironmentValueIsValidated(self):
        jobs = integer("jobs", envvar="APP_JOBS")
        with self.assertRaises(ValueRejectedError) as context:
            Command("app", [jobs]).parse([], environ={"APP_JOBS": "many"})
        self.assertIn("environment variable APP_JOBS", str(context.exception))

    def testEnvironmentIsScopedToResolvedCommand(self):
        token = string("token", envvar="APP_TOKEN")
        root = Command("app", [token], [Command("sub")])
        root.parse(["sub"], environ={"APP_TOKEN": "secret"})
        self.assertEqual(token.value, "")

    def testMissingEverywhere(self):
        token = string("token", nargs=(1, 1), envvar="APP_TOKEN")
        with self.assertRaises(MissingArgumentError) as context:
            Command("app", [token]).parse([], environ={})
        self.assertIn("APP_TOKEN", context.exception.hint)


class TestEntryPoint(TestCase):
    """parse() argument forms."""

    def testShellString(self):
        name = string("name")
        parse(Command("tool", [name]), "--name 'two words'")
        self.assertEqual(name.value, "two words")

    def testRejectsNonStrings(self):
        with self.assertRaises(TypeError):
            parse(Command("tool"), [1])
        with self.assertRaises(TypeError):
            parse(Command("tool"), 1)

    def testCountsAreReadOnly(self):
        outcome = Command("tool", [verbose := boolean("verbose")]).parse(["--verbose"])
        with self.assertRaises(TypeError):
            outcome.counts[verbose] = 2  # NOQA

    def testOutcomeKeepsTupleMethods(self):
        verbose = boolean("verbose")
        outcome = Command("tool", [verbose]).parse(["--verbose"])
        self.assertEqual(outcome.count(Status.RESOLVED), 1)
        self.assertEqual(outcome.index(Status.RESOLVED), 0)
        self.assertEqual(outcome.occurrences(verbose), 1)
        self.assertEqual(outcome.occurrences(boolean("quiet")), 0)

    def testDescriptorsCanBeParsedRepeatedly(self):
        jobs = integer("jobs", nargs=(1, 1))
        command = Command("tool", [jobs])
        first = command.parse(["--jobs", "1"])
        second = command.parse(["--jobs", "2"])
        self.assertEqual(first.occurrences(jobs), 1)
        self.assertEqual(second.occurrences(jobs), 1)
        self.assertEqual(jobs.value, 2)

    def testRepeatedParsesStartFreshLists(self):
        tags = strings("tag", ["default"])
        command = Command("tool", [tags])
        command.parse(["--tag", "a", "--tag", "b"])
        self.assertEqual(tags.value, ["a", "b"])
        command.parse(["--tag", "c"])
        self.assertEqual(tags.value, ["c"])


if __name__ == "__main__":
    unittest.main()
