"""
Utilities behavioral tests (sentinel, coalescing, naming, module globbing).

Scope
- Validate the Unset sentinel: singleton, falsey, sealed.
- Validate coalesce() only replaces Unset.
- Validate kebab() camel-boundary handling.
- Validate mirror() freezing and mglob() expansion.

Conventions
- Test method names follow CamelCase per project convention.
"""

import unittest
from unittest import TestCase

from snapcli.utils import Unset, UnsetType, coalesce, kebab, mglob, mirror, rename


class TestUnset(TestCase):
    """Behavioral tests for the Unset sentinel."""

    def testSingleton(self):
        self.assertIs(UnsetType(), Unset)

    def testFalseyAndPrintable(self):
        self.assertFalse(Unset)
        self.assertEqual(repr(Unset), "Unset")

    def testNotSubclassable(self):
        with self.assertRaises(TypeError):
            class Other(UnsetType):
                pass

    def testUnionWithType(self):
        self.assertIsInstance(Unset, str | Unset)


class TestCoalesce(TestCase):
    """Only Unset is replaced; falsey values survive."""

    def testUnsetReplaced(self):
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")

    def testFalseyPreserved(self):
        self.assertIsNone(coalesce(None, "fallback"))
        self.assertEqual(coalesce(0, 1), 0)
        self.assertEqual(coalesce("", "x"), "")


class TestKebab(TestCase):
    """Identifier to CLI word conversion."""

    def testCamelBoundaries(self):
        self.assertEqual(kebab("optionField"), "option-field")
        self.assertEqual(kebab("TestField"), "test-field")
        self.assertEqual(kebab("exitCodeAsync"), "exit-code-async")

    def testAcronymsKept(self):
        self.assertEqual(kebab("HTTPServer"), "httpserver")

    def testUnderscoresUntouched(self):
        self.assertEqual(kebab("dry_run"), "dry_run")

    def testNonStringRejected(self):
        with self.assertRaises(TypeError):
            kebab(1)


class TestMirror(TestCase):
    """Read-only properties over private attributes."""

    def testFrozenContainers(self):
        class Holder:
            items = mirror("items")
            verbatim = mirror("verbatim", frozen=False)

            def __init__(self):
                self._items = [1, 2]
                self._verbatim = [3]

        holder = Holder()
        self.assertEqual(holder.items, (1, 2))
        self.assertIs(holder.verbatim, holder._verbatim)
        with self.assertRaises(AttributeError):
            holder.items = ()

    def testRename(self):
        function = rename(lambda: None, "named")
        self.assertEqual(function.__name__, "named")
        self.assertEqual(function.__qualname__, "named")


class TestModuleGlob(TestCase):
    """Module glob expansion."""

    def testConcreteNameUnchanged(self):
        self.assertEqual(mglob("snapcli"), ["snapcli"])

    def testDirectChildren(self):
        self.assertEqual(mglob("programs.parts.*"), ["programs.parts.orders", "programs.parts.users"])

    def testRecursive(self):
        self.assertEqual(
            mglob("programs.**"),
            ["programs", "programs.basic", "programs.parts", "programs.parts.orders", "programs.parts.users"],
        )

    def testWildcardOnlyPrefixRejected(self):
        with self.assertRaises(ValueError):
            mglob("*.commands")

    def testMissingPackage(self):
        self.assertEqual(mglob("snapcli_missing_package.*"), [])


if __name__ == "__main__":
    unittest.main()
