"""
Discovery behavioral tests (scanning modules, globs and classes).

Scope
- Validate what is collected, and in which order.
- Validate construction-time faults raised while scanning.
- Validate name and description derivation of command methods.

Conventions
- Test method names follow CamelCase per project convention.
- Programs are declared as classes so every test owns its markers.
"""

import functools
import unittest
from typing import Annotated, Final
from unittest import TestCase

from programs import basic
from programs.parts import orders, users
from snapcli import Argument, Option, UsageError, command, option, root, startup
from snapcli.discovery import command_name, discover, peel


class TestCommandName(TestCase):
    """Command names derived from identifiers."""

    def testUnderscoreSeparatesSubcommands(self):
        self.assertEqual(command_name("list_orders"), "list orders")

    def testCamelBoundaries(self):
        self.assertEqual(command_name("exitCode"), "exit-code")
        self.assertEqual(command_name("testField"), "test-field")

    def testSurroundingUnderscores(self):
        self.assertEqual(command_name("_hidden__thing_"), "hidden thing")


class TestPeel(TestCase):
    """Annotation layers."""

    def testAnnotatedMetadata(self):
        marker = Option("v")
        annotation, metadata, final = peel(Annotated[int, marker])
        self.assertIs(annotation, int)
        self.assertEqual(metadata, [marker])
        self.assertFalse(final)

    def testFinal(self):
        annotation, _, final = peel(Final[int])
        self.assertIs(annotation, int)
        self.assertTrue(final)


class TestDiscovery(TestCase):
    """Collected members and their order."""

    def testDefinitionOrder(self):
        class Program:
            @command
            @staticmethod
            def second():
                pass

            @root
            @staticmethod
            def first():
                pass

            @command("third")
            @staticmethod
            def other():
                pass

        discovery = discover(Program)
        self.assertEqual([method.command_name for method in discovery.methods], ["second", "first", "third"])
        self.assertEqual(discovery.methods[1].handler, vars(Program)["first"].__func__)

    def testGlobalsCollected(self):
        class Program:
            level = Option(default=1)
            name: Annotated[str, Option("n")] = "x"

            @option("mode")
            @property
            def mode(cls):
                return "fast"

            @mode.setter
            def mode(cls, value):
                pass

            @command
            @staticmethod
            def run():
                pass

        members = discover(Program).globals
        self.assertEqual([member.name for member in members], ["level", "name", "mode"])
        self.assertEqual([member.storage for member in members], ["field", "field", "property"])
        self.assertIs(members[1].annotation, str)
        self.assertFalse(any(member.readonly for member in members))

    def testReadOnlyAndInstanceFlags(self):
        class Program:
            limit: Final[Annotated[int, Option()]] = 3
            bare: Annotated[int, Option()]

            @option()
            @property
            def getter(cls):
                return 1

            @option()
            @functools.cached_property
            def cached(self):
                return 1

        members = {member.name: member for member in discover(Program).globals}
        self.assertTrue(members["limit"].readonly)
        self.assertFalse(members["bare"].static)
        self.assertTrue(members["getter"].readonly)
        self.assertFalse(members["cached"].static)

    def testStartupsCollected(self):
        class Program:
            @startup
            @staticmethod
            def boot():
                pass

            @startup
            @staticmethod
            def configure(builder):
                pass

        discovery = discover(Program)
        self.assertEqual([hook.__name__ for hook in discovery.startups], ["boot", "configure"])
        self.assertTrue(discovery.empty)

    def testNestedClassesScanned(self):
        class Outer:
            class Inner:
                @command
                @staticmethod
                def deep():
                    pass

        self.assertEqual([method.command_name for method in discover(Outer).methods], ["deep"])

    def testClassDescriptors(self):
        @command("remote", description="Manage remotes")
        class Remote:
            @command("remote add")
            @staticmethod
            def add():
                pass

        discovery = discover(Remote)
        self.assertEqual([method.command_name for method in discovery.classes], ["remote"])
        self.assertIsNone(discovery.classes[0].handler)
        self.assertEqual(discovery.classes[0].description, "Manage remotes")

    def testCommandNameDerivedOnEveryRead(self):
        class Program:
            @command
            @staticmethod
            def list_orders():
                pass

        method, = discover(Program).methods
        self.assertEqual(method.command_name, "list orders")
        self.assertEqual(method.command_name, "list orders")
        self.assertEqual(repr(method).count("list orders"), 1)

    def testDocstringDescription(self):
        class Program:
            @command
            @staticmethod
            def documented():
                """
                Says hello.
                """

        method, = discover(Program).methods
        self.assertEqual(method.description, "Says hello.")

    def testImportedMembersSkipped(self):
        discovery = discover(users)
        self.assertEqual([method.command_name for method in discovery.methods], ["users"])
        self.assertEqual([hook.__name__ for hook in discovery.startups], ["quiet"])

    def testModuleGlob(self):
        discovery = discover("programs.parts.*")
        self.assertEqual(discovery.modules, [orders, users])
        self.assertEqual(
            [method.command_name for method in discovery.methods],
            ["orders list", "orders show", "users"],
        )

    def testModuleGlobWithoutMatch(self):
        with self.assertRaises(ModuleNotFoundError):
            discover("programs.parts.missing*")

    def testFunctionSources(self):
        @command("first")
        def first():
            pass

        @startup
        def boot():
            pass

        discovery = discover(first, boot, first)
        self.assertEqual([method.command_name for method in discovery.methods], ["first"])
        self.assertEqual(discovery.startups, [boot])

    def testModuleAttributesOfProgram(self):
        discovery = discover(basic)
        names = [member.name for member in discovery.globals]
        self.assertIn("globalOptionField", names)
        self.assertIn("verbose", names)
        self.assertIn("prop", names)


class TestDiscoveryFaults(TestCase):
    """Construction-time faults raised while scanning."""

    def testMultipleMarkersRejected(self):
        class Program:
            @command
            @command("other")
            @staticmethod
            def twice():
                pass

        with self.assertRaises(UsageError):
            discover(Program)

    def testNonStaticHandlerRejected(self):
        class Program:
            @command
            def method(self):
                pass

        with self.assertRaises(UsageError):
            discover(Program)

    def testClassMethodHandlerRejected(self):
        class Program:
            @command
            @classmethod
            def method(cls):
                pass

        with self.assertRaises(UsageError):
            discover(Program)

    def testStartupSignatureRejected(self):
        class Program:
            @startup
            @staticmethod
            def boot(first, second):
                pass

        with self.assertRaises(UsageError):
            discover(Program)

    def testArgumentOnFieldRejected(self):
        class Program:
            path = Argument()

        with self.assertRaises(UsageError):
            discover(Program)

    def testOptionOnFunctionRejected(self):
        class Program:
            @option("name")
            @staticmethod
            def handler():
                pass

        with self.assertRaises(UsageError):
            discover(Program)

    def testFieldWithTwoMarkersRejected(self):
        class Program:
            level: Annotated[int, Option()] = Option(default=1)

        with self.assertRaises(UsageError):
            discover(Program)

    def testUnsupportedSource(self):
        with self.assertRaises(TypeError):
            discover(42)


if __name__ == "__main__":
    unittest.main()
