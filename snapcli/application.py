"""
SnapCLI application: assemble a program's command line and run it.

    import snapcli

    @snapcli.command
    def hello(name: str = "world"):
        print(f"hello {name}")

    if __name__ == "__main__":
        raise SystemExit(snapcli.run())

Construction (once per CLI)
    discover → resolve root → build tree → inject global options →
    register handlers → startup hooks → build the argparse engine.
    Any misuse of markers raises UsageError from the constructor.

Running
    run(args, output, error) parses args (sys.argv[1:] by default), invokes
    the matched handler and returns its exit code. Help and version return 0,
    reported parse errors return 2. Other exceptions go to exception_handler
    (default: report and return 1; cancellation is silent); with
    exception_handler set to None they propagate.

Host attributes read from the first source module
    __prog__, __description__, __version__
"""
import asyncio
import inspect
import logging
import os.path
import sys

from rich.console import Group
from rich.text import Text
from rich.tree import Tree

from . import faults
from .discovery import discover
from .dispatch import Handler, InvocationContext
from .engine import Builder, EngineExit
from .markers import DescriptorKind
from .shared import inject
from .tree import build
from .utils import *

logger = logging.getLogger(__name__)

_CANCELLATIONS = (KeyboardInterrupt, asyncio.CancelledError)


class CLI:
    """
    A program's command line, built from marked functions, fields and properties.

    Attributes
    - root: root CommandNode
    - before_command / after_command: hooks called with the InvocationContext
    - exception_handler: callable(exception) -> exit code, or None to re-raise
    - current_command / current_context: the last command dispatched and its context
    """

    def __init__(self, *sources, description=Unset, version=Unset, prog=Unset):
        if not sources:
            raise TypeError("CLI() requires at least one module, module name, class or function")

        self.before_command = []
        self.after_command = []
        self.exception_handler = self.report
        self.current_command = None
        self.current_context = None
        self._error = None

        self.discovery = discover(*sources)
        host = self.discovery.modules[0] if self.discovery.modules else None

        self.prog = coalesce(prog, None) or getattr(host, "__prog__", None) \
            or os.path.basename(sys.argv[0] or "") or getattr(host, "__name__", "cli")
        self.version = coalesce(version, None) or getattr(host, "__version__", None)
        fallback = coalesce(description, None) or getattr(host, "__description__", None) or Unset

        self.root, placements = build(self.discovery, self.prog, fallback)

        self.globals = inject(self.discovery.globals)
        shared = [option.binding for option in self.globals]
        for node in self.root.walk():
            node.shared = shared

        initializers = [option.initialize for option in self.globals]
        for node, method in placements:
            Handler(method.handler, node, initializers)

        self.builder = Builder(self.root, cli=self)
        defaults = True
        for hook in self.discovery.startups:
            if inspect.signature(hook).parameters:
                defaults = False
                hook(self.builder)
            else:
                hook()
        if defaults:
            self.builder.use_defaults()

        self.engine = self.builder.build(self.root, version=self.version)
        logger.debug("cli %r ready", self.prog)

    @property
    def description(self):
        return self.root.description

    def report(self, exception, /):
        """
        Default exception handler: print the formatted exception to the error
        sink and return 1. Cancellation-style exceptions are not printed.
        """
        if not isinstance(exception, _CANCELLATIONS):
            faults.report(exception, self._error if self._error is not None else self.builder.error)
        return 1

    def _handle(self, exception, /):
        if self.exception_handler is None:
            raise exception
        logger.debug("handling %r", exception)
        return self.exception_handler(exception)

    def _prepare(self, args, output, error, /):
        self._error = error
        self.current_command = None
        self.current_context = None
        result = self.engine.parse(sys.argv[1:] if args is None else args, output=output, error=error)
        return InvocationContext(self, result.command, result)

    def run(self, args=None, output=None, error=None):
        """
        Parse args and run the matched command. Returns the exit code.
        """
        try:
            with self.engine.terminating():
                context = self._prepare(args, output, error)
                return context.command.handler(context)
        except EngineExit as exit:
            return exit.status
        except (Exception, *_CANCELLATIONS) as exception:
            return self._handle(exception)

    async def run_async(self, args=None, output=None, error=None):
        """
        Asynchronous variant of run(): awaitable results are awaited in the running loop.
        """
        try:
            with self.engine.terminating():
                context = self._prepare(args, output, error)
                return await context.command.handler.invoke_async(context)
        except EngineExit as exit:
            return exit.status
        except (Exception, *_CANCELLATIONS) as exception:
            return self._handle(exception)

    def __rich__(self):
        def label(node):
            text = Text(node.name, "bold")
            if node.aliases:
                text.append(f" ({', '.join(node.aliases)})", "dim")
            if node.hidden:
                text.append(" [hidden]", "dim italic")
            if node.description:
                text.append(f"  {node.description.splitlines()[0]}", "italic")
            return text

        def grow(branch, node):
            for binding in (*node.options, *node.arguments):
                branch.add(Text(" ".join(binding.flags), "cyan" if binding.kind is DescriptorKind.OPTION else "green"))
            for child in node.children.values():
                grow(branch.add(label(child)), child)

        tree = Tree(label(self.root))
        grow(tree, self.root)
        if self.globals:
            return Group(tree, Text("global: " + ", ".join(option.binding.name for option in self.globals), "dim"))
        return tree

    def __repr__(self):
        return f"CLI({self.prog!r})"


_defaults = {}


def _host(depth, /):
    """
    module of the default CLI: __main__ when it declares commands, else the caller's module.
    """
    main = sys.modules.get("__main__")
    if main is not None and not discover(main).empty:
        return main
    frame = sys._getframe(depth + 1)
    return sys.modules[frame.f_globals["__name__"]]


def default(module=None, /):
    """
    Return the CLI cached for module (built on first use).
    """
    module = module if module is not None else _host(1)
    if (cli := _defaults.get(module.__name__)) is None:
        cli = _defaults[module.__name__] = CLI(module)
    return cli


def run(args=None, output=None, error=None):
    """
    Run the default CLI of the program (see default()).
    """
    return default(_host(1)).run(args, output, error)


def run_async(args=None, output=None, error=None):
    """
    Asynchronous variant of run(): returns the awaitable of the default CLI's run_async().
    """
    return default(_host(1)).run_async(args, output, error)


__all__ = (
    "CLI",
    "default",
    "run",
    "run_async",
)
