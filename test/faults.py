"""
Faults behavioral tests (error types and rendering).

Scope
- Validate the error hierarchy and the options carried by errors.
- Validate rich rendering of usage errors and plain-text exception reports.

Conventions
- Test method names follow CamelCase per project convention.
"""

import io
import unittest
from unittest import TestCase

from rich.console import Console

from snapcli import ParseError, SnapCLIError, UsageError, report


def render(renderable):
    console = Console(file=io.StringIO(), width=200)
    console.print(renderable)
    return console.file.getvalue()


class TestErrors(TestCase):
    """Error types."""

    def testHierarchy(self):
        self.assertTrue(issubclass(UsageError, SnapCLIError))
        self.assertTrue(issubclass(ParseError, SnapCLIError))

    def testMessageAndOptions(self):
        error = UsageError("broken", hint="fix it")
        self.assertEqual(str(error), "broken")
        self.assertEqual(error.options["hint"], "fix it")

    def testOptionsReadOnly(self):
        with self.assertRaises(TypeError):
            UsageError("broken").options["hint"] = "x"

    def testParseErrorUsage(self):
        self.assertEqual(ParseError("bad", usage="usage: x").usage, "usage: x")


class TestRendering(TestCase):
    """Rich rendering and reports."""

    def testUsageErrorRendering(self):
        def handler():
            pass

        output = render(UsageError("two roots", member=handler, hint="keep one"))
        self.assertIn("usage error", output)
        self.assertIn("two roots", output)
        self.assertIn("handler", output)
        self.assertIn("keep one", output)

    def testReport(self):
        sink = io.StringIO()
        try:
            raise RuntimeError("reported [not markup]")
        except RuntimeError as exception:
            report(exception, sink)
        output = sink.getvalue()
        self.assertIn("Traceback", output)
        self.assertIn("RuntimeError: reported [not markup]", output)


if __name__ == "__main__":
    unittest.main()
