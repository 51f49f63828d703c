"""
SnapCLI dispatch: bridge typed handler calls to parsed values and back.

Lifecycle of one invocation (InvocationContext.state)
    idle → before-hook → invoking → after-hook → done
                             ↘ faulted

- before-hook: the CLI records the current command/context, global option
  initializers write parsed values into their storage, then every
  before_command hook runs.
- invoking: parameter values are extracted in declaration order and the
  handler is called. The return value becomes an exit code:
    None → 0, int → itself, awaitable → awaited, then int or None → 0.
- faulted: the handler raised; after hooks are skipped and the exception
  propagates to the caller.
- after-hook: context.exit_code is published first, every after_command hook
  runs (and may overwrite it), then it is read back.

Return annotations are checked when the handler is registered; only
unannotated handlers can produce an unexpected shape at run time, which
raises TypeError.
"""
import asyncio
import collections.abc
import concurrent.futures
import inspect
import logging
import types
import typing

from .bindings import parameters
from .discovery import annotations
from .faults import UsageError
from .markers import DescriptorKind
from .utils import *

logger = logging.getLogger(__name__)

_AWAITABLES = (
    collections.abc.Awaitable,
    collections.abc.Coroutine,
    asyncio.Future,
    asyncio.Task,
    concurrent.futures.Future,
)


class InvocationContext:
    """
    state of one command invocation.

    - cli: the CLI running the command
    - command: matched command node
    - result: the engine's ParseResult
    - exit_code: published right after the handler returns; after hooks may overwrite it
    - state: "idle", "before-hook", "invoking", "after-hook", "done" or "faulted"
    """

    def __init__(self, cli, command, result):
        self.cli = cli
        self.command = command
        self.result = result
        self.exit_code = 0
        self.state = "idle"

    @property
    def parse_result(self):
        return self.result

    def value(self, binding, /):
        return self.result.value(binding)

    def __repr__(self):
        return f"invocation-context({self.command!r}, state={self.state!r}, exit_code={self.exit_code!r})"

    def __rich_repr__(self):
        yield "command", self.command
        yield "state", self.state
        yield "exit_code", self.exit_code


def _exit_code(annotation, /):
    """
    True when annotation describes a synchronous exit code: None, int or int | None.
    """
    if annotation is None or annotation is type(None) or annotation is int:
        return True
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        return all(member is int or member is type(None) for member in typing.get_args(annotation))
    return False


def _supported(annotation, coroutine, /):
    if annotation is inspect.Signature.empty or isinstance(annotation, str):
        return True
    if coroutine:
        return _exit_code(annotation)
    if _exit_code(annotation):
        return True
    origin = typing.get_origin(annotation)
    if annotation in _AWAITABLES:
        return True
    if origin in _AWAITABLES:
        arguments = typing.get_args(annotation)
        return not arguments or _exit_code(arguments[-1])
    return False


class Handler:
    """
    a command handler registered on a node.

    Synthesizes the bindings of every parameter and validates the return
    annotation; both raise UsageError when unsupported.
    """

    def __init__(self, function, node, initializers=()):
        if not callable(function) or isinstance(function, staticmethod | classmethod):
            raise UsageError(f"handler of {node!r} must be a plain static function", member=function)
        self.function = function
        self.node = node
        self.initializers = tuple(initializers)
        self.coroutine = inspect.iscoroutinefunction(function)

        returns = annotations(function).get("return", inspect.Signature.empty)
        if not _supported(returns, self.coroutine):
            raise UsageError(
                f"handler {function.__qualname__} return type must be None, int, or an awaitable of those",
                member=function,
                hint="annotate it with -> int, -> None, or -> Awaitable[int]",
            )

        self.parameters = parameters(function)
        for parameter in self.parameters:
            binding = parameter.binding
            (node.options if binding.kind is DescriptorKind.OPTION else node.arguments).append(binding)
        node.handler = self
        logger.debug("registered %s on %r", function.__qualname__, node)

    @property
    def name(self):
        return self.function.__qualname__

    def arguments(self, context, /):
        """
        Extract parameter values in declaration order: (positional, keyword).
        """
        positional = []
        keyword = {}
        for parameter in self.parameters:
            value = context.value(parameter.binding)
            if parameter.keyword:
                keyword[parameter.name] = value
            else:
                positional.append(value)
        return positional, keyword

    def _before(self, context, /):
        cli = context.cli
        cli.current_command = context.command
        cli.current_context = context
        context.state = "before-hook"
        for initializer in self.initializers:
            initializer(context)
        for hook in tuple(cli.before_command):
            hook(context)
        context.state = "invoking"
        positional, keyword = self.arguments(context)
        logger.debug("invoking %s", self.name)
        return positional, keyword

    def _after(self, context, code, /):
        context.exit_code = code
        context.state = "after-hook"
        for hook in tuple(context.cli.after_command):
            hook(context)
        context.state = "done"
        logger.debug("%s finished with exit code %r", self.name, context.exit_code)
        return context.exit_code

    def normalize(self, result, /):
        """
        Turn a synchronous handler result into an exit code.
        """
        if result is None:
            return 0
        if isinstance(result, int) and not isinstance(result, bool):
            return int(result)
        raise TypeError(
            f"handler {self.name} returned {type(result).__name__}, expected int, None or an awaitable of those"
        )

    def __call__(self, context, /):
        """
        Run the invocation synchronously; awaitable results are driven by asyncio.run().
        """
        positional, keyword = self._before(context)
        try:
            result = self.function(*positional, **keyword)
            if inspect.isawaitable(result):
                result = asyncio.run(_await(result))
            elif isinstance(result, concurrent.futures.Future):
                result = result.result()
            code = self.normalize(result)
        except BaseException:
            context.state = "faulted"
            raise
        return self._after(context, code)

    async def invoke_async(self, context, /):
        """
        Run the invocation inside the running event loop.
        """
        positional, keyword = self._before(context)
        try:
            result = self.function(*positional, **keyword)
            if inspect.isawaitable(result):
                result = await result
            elif isinstance(result, concurrent.futures.Future):
                result = await asyncio.wrap_future(result)
            code = self.normalize(result)
        except BaseException:
            context.state = "faulted"
            raise
        return self._after(context, code)

    def __repr__(self):
        return f"handler({self.name})"


async def _await(awaitable, /):
    return await awaitable


__all__ = (
    "InvocationContext",
    "Handler",
)
