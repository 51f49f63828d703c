"""
Dispatch behavioral tests (handler registration, lifecycle hooks, exit codes).

Scope
- Validate return annotations accepted and rejected at registration.
- Validate exit code normalization: None, int, awaitables.
- Validate hook order, context state and exit code overwrite by after hooks.
- Validate exception handling: replacement handler, None, cancellation.

Conventions
- Test method names follow CamelCase per project convention.
"""

import asyncio
import concurrent.futures
import io
import unittest
from collections.abc import Awaitable
from unittest import TestCase

from snapcli import CLI, Handler, Option, UsageError, command
from snapcli.tree import CommandNode

events = []


async def _seven():
    return 7


class Program:
    level = Option(default="low")

    @command
    @staticmethod
    def plain():
        events.append("plain")

    @command
    @staticmethod
    def code(value: int = 3) -> int:
        events.append("code")
        return value

    @command
    @staticmethod
    async def coroutine() -> int:
        events.append("coroutine")
        return 4

    @command
    @staticmethod
    def awaitable() -> Awaitable[int]:
        return _seven()

    @command
    @staticmethod
    def future() -> concurrent.futures.Future[int]:
        future = concurrent.futures.Future()
        future.set_result(8)
        return future

    @command
    @staticmethod
    def failing():
        events.append("failing")
        raise RuntimeError("failing on purpose")

    @command
    @staticmethod
    def interrupted():
        raise KeyboardInterrupt

    @command
    @staticmethod
    def wrong():
        return "text"

    @command
    @staticmethod
    def truthy():
        return True

    @command
    @staticmethod
    def current():
        events.append(Program.level)


def run(cli, *args):
    output = io.StringIO()
    return cli.run(list(args), output=output, error=output), output.getvalue()


class TestRegistration(TestCase):
    """Return annotations checked when a handler is registered."""

    def register(self, function):
        return Handler(function, CommandNode("node"))

    def testAcceptedAnnotations(self):
        def none() -> None:
            pass

        def code() -> int:
            pass

        def optional() -> int | None:
            pass

        async def coroutine() -> int:
            pass

        def awaitable() -> Awaitable[int]:
            pass

        def task() -> asyncio.Task[int | None]:
            pass

        for function in (none, code, optional, coroutine, awaitable, task):
            self.assertIs(self.register(function).node.handler.function, function)

    def testRejectedAnnotations(self):
        def text() -> str:
            pass

        async def coroutine() -> str:
            pass

        def awaitable() -> Awaitable[str]:
            pass

        for function in (text, coroutine, awaitable):
            with self.assertRaises(UsageError):
                self.register(function)

    def testBindingsAddedToNode(self):
        def handler(count: int, *, name: str = "x"):
            pass

        node = self.register(handler).node
        self.assertEqual([binding.name for binding in node.options], ["--count", "--name"])
        self.assertEqual(node.arguments, [])

    def testRejectedByCLI(self):
        class Broken:
            @command
            @staticmethod
            def broken() -> str:
                return ""

        with self.assertRaises(UsageError):
            CLI(Broken)


class TestExitCodes(TestCase):
    """Handler results normalized into exit codes."""

    def setUp(self):
        events.clear()
        self.cli = CLI(Program, prog="dispatch")

    def testNoneIsZero(self):
        self.assertEqual(run(self.cli, "plain")[0], 0)

    def testIntegerReturned(self):
        self.assertEqual(run(self.cli, "code")[0], 3)
        self.assertEqual(run(self.cli, "code", "--value", "9")[0], 9)

    def testCoroutineFunction(self):
        self.assertEqual(run(self.cli, "coroutine")[0], 4)

    def testAwaitableResult(self):
        self.assertEqual(run(self.cli, "awaitable")[0], 7)

    def testFutureResult(self):
        self.assertEqual(run(self.cli, "future")[0], 8)

    def testAsyncRun(self):
        for name, expected in (("coroutine", 4), ("awaitable", 7), ("future", 8), ("code", 3)):
            output = io.StringIO()
            self.assertEqual(asyncio.run(self.cli.run_async([name], output, output)), expected)

    def testUnexpectedResult(self):
        self.cli.exception_handler = None
        with self.assertRaises(TypeError):
            self.cli.run(["wrong"])

    def testBooleanIsNotAnExitCode(self):
        self.cli.exception_handler = None
        with self.assertRaises(TypeError):
            self.cli.run(["truthy"])


class TestLifecycle(TestCase):
    """Hook order, context state and exit code overwrite."""

    def setUp(self):
        events.clear()
        self.cli = CLI(Program, prog="dispatch")
        Program.level = "low"

    def testHookOrder(self):
        self.cli.before_command.append(lambda context: events.append(("before", context.state)))
        self.cli.after_command.append(lambda context: events.append(("after", context.state, context.exit_code)))
        run(self.cli, "code")
        self.assertEqual(events, [("before", "before-hook"), "code", ("after", "after-hook", 3)])

    def testAfterHooksRunOnce(self):
        counted = []
        self.cli.after_command.append(counted.append)
        run(self.cli, "plain")
        self.assertEqual(len(counted), 1)
        self.assertEqual(counted[0].state, "done")

    def testAfterHookOverridesExitCode(self):
        self.cli.after_command.append(lambda context: setattr(context, "exit_code", 12))
        self.assertEqual(run(self.cli, "plain")[0], 12)

    def testAfterHookOverridesAsyncExitCode(self):
        self.cli.after_command.append(lambda context: setattr(context, "exit_code", context.exit_code + 1))
        self.assertEqual(asyncio.run(self.cli.run_async(["coroutine"])), 5)

    def testAfterHooksSkippedOnException(self):
        after = []
        self.cli.after_command.append(after.append)
        self.cli.before_command.append(lambda context: events.append("before"))
        code, output = run(self.cli, "failing")
        self.assertEqual(code, 1)
        self.assertEqual(events, ["before", "failing"])
        self.assertEqual(after, [])
        self.assertEqual(self.cli.current_context.state, "faulted")
        self.assertIn("failing on purpose", output)

    def testCurrentCommand(self):
        seen = []
        self.cli.before_command.append(lambda context: seen.append(context.cli.current_command))
        run(self.cli, "plain")
        self.assertIs(seen[0], self.cli.current_command)
        self.assertEqual(self.cli.current_command.name, "plain")
        self.assertEqual(self.cli.current_context.parse_result.tokens, ("plain",))

    def testGlobalsInitializedBeforeHooks(self):
        seen = []
        self.cli.before_command.append(lambda context: seen.append(Program.level))
        run(self.cli, "current", "--level", "high")
        self.assertEqual(seen, ["high"])
        self.assertEqual(events, ["high"])
        run(self.cli, "current")
        self.assertEqual(events, ["high", "high"])


class TestExceptionHandler(TestCase):
    """Replacement and removal of the exception handler."""

    def setUp(self):
        events.clear()
        self.cli = CLI(Program, prog="dispatch")

    def testReplacement(self):
        handled = []
        self.cli.exception_handler = lambda exception: handled.append(exception) or 42
        self.assertEqual(run(self.cli, "failing")[0], 42)
        self.assertIsInstance(handled[0], RuntimeError)

    def testRemoval(self):
        self.cli.exception_handler = None
        with self.assertRaises(RuntimeError):
            self.cli.run(["failing"])

    def testCancellationIsSilent(self):
        code, output = run(self.cli, "interrupted")
        self.assertEqual(code, 1)
        self.assertEqual(output, "")


if __name__ == "__main__":
    unittest.main()
