"""
SnapCLI parsing engine adapter (argparse).

The command tree is handed to argparse once, at construction time:
- every node becomes an ArgumentParser (subcommands through add_subparsers)
- every binding becomes an argparse action stored under its unique dest
- shared options are added to every parser
- the matched node is recorded with set_defaults()

Option values are stored with default=SUPPRESS, so "absent from the
namespace" means "not given" and the binding's lazy default supplier decides
the value at extraction time.

Builder
    Engine configuration. Startup hooks taking one parameter receive it; a
    hook doing so switches off use_defaults(), which enables:
      use_help()                       -?, -h, --help on every command
      use_version()                    --version on the root command
      use_typo_corrections()           "maybe you meant" on invalid commands/choices
      use_parse_error_reporting()      usage + message on the error sink, exit code 2
      cancel_on_process_termination()  SIGTERM raises KeyboardInterrupt during a run
    output / error select the default sinks (None means the process streams).
"""
import argparse
import contextlib
import copy
import difflib
import logging
import signal
import sys
import threading

from rich.console import Console

from .faults import ParseError, UsageError
from .markers import Arity, DescriptorKind
from .utils import *

logger = logging.getLogger(__name__)

NODE = "__snapcli_node__"

ABSENT = type("Absent", (), {"__repr__": lambda self: "ABSENT", "__slots__": ()})()
"""
default of positional arguments that may be omitted; never converted by argparse.
"""


class EngineExit(Exception):
    """
    raised instead of sys.exit() when argparse wants to terminate (help, version, errors).
    """

    def __init__(self, status=0):
        super().__init__(status)
        self.status = status


class Builder:
    """
    configuration of the parsing engine, built before the parser.
    """

    def __init__(self, root=None, /, cli=None):
        self.root = root
        self.cli = cli
        self.help = False
        self.version = False
        self.typo_corrections = False
        self.parse_error_reporting = False
        self.termination = False
        self.output = None
        self.error = None

    def use_defaults(self):
        return (
            self.use_help()
            .use_version()
            .use_typo_corrections()
            .use_parse_error_reporting()
            .cancel_on_process_termination()
        )

    def use_help(self, enabled=True, /):
        self.help = bool(enabled)
        return self

    def use_version(self, enabled=True, /):
        self.version = bool(enabled)
        return self

    def use_typo_corrections(self, enabled=True, /):
        self.typo_corrections = bool(enabled)
        return self

    def use_parse_error_reporting(self, enabled=True, /):
        self.parse_error_reporting = bool(enabled)
        return self

    def cancel_on_process_termination(self, enabled=True, /):
        self.termination = bool(enabled)
        return self

    def build(self, root, /, version=None):
        return Engine(root, self, version)

    def __rich_repr__(self):
        yield "help", self.help
        yield "version", self.version
        yield "typo_corrections", self.typo_corrections
        yield "parse_error_reporting", self.parse_error_reporting
        yield "cancel_on_process_termination", self.termination


def _escape(text, /):
    return text.replace("%", "%%")


def _show(value, /):
    if isinstance(value, list | tuple | set | frozenset):
        return " ".join(map(_show, value))
    return getattr(value, "name", None) if hasattr(value, "_value_") else str(value)


class HelpFormatter(argparse.RawDescriptionHelpFormatter):
    """
    help formatter appending "[default: X]" and "(REQUIRED)" to binding help.

    Defaults are read when help is rendered, so the text reflects the storage
    value at that moment.
    """

    def _format_action(self, action):
        if (binding := getattr(action, "binding", None)) is not None:
            suffixes = []
            if binding.required and binding.kind is DescriptorKind.OPTION:
                suffixes.append("(REQUIRED)")
            elif binding.has_default and (default := binding.supply()) is not None:
                suffixes.append(_escape(f"[default: {_show(default)}]"))
            if suffixes:
                action = copy.copy(action)
                action.help = " ".join(filter(None, (action.help, *suffixes)))
        return super()._format_action(action)


class BoundedAction(argparse.Action):
    """
    store action enforcing an arity argparse cannot express with nargs alone.
    """

    def __init__(self, option_strings, dest, arity=None, **options):
        super().__init__(option_strings, dest, **options)
        self.arity = arity

    def __call__(self, parser, namespace, values, option_string=None):
        if values is ABSENT:
            setattr(namespace, self.dest, values)
            return
        count = len(values)
        if count < self.arity.minimum or (self.arity.bounded and count > self.arity.maximum):
            raise argparse.ArgumentError(self, f"expected {self.arity} values, got {count}")
        setattr(namespace, self.dest, values)


class ArgumentParser(argparse.ArgumentParser):
    """
    argparse parser bound to an Engine: prints to the engine sinks and never exits the process.
    """

    def __init__(self, *args, engine, node, **options):
        options.setdefault("formatter_class", HelpFormatter)
        super().__init__(*args, add_help=False, allow_abbrev=False, **options)
        self.engine = engine
        self.node = node

    def _print_message(self, message, file=None):
        if not message:
            return
        sink = self.engine.error if file is sys.stderr else self.engine.output
        console = Console(file=sink or (sys.stderr if file is sys.stderr else sys.stdout), highlight=False, emoji=False)
        console.print(message, end="", markup=False, soft_wrap=True)

    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise EngineExit(status)

    def error(self, message):
        logger.debug("parse error in %s: %s", self.prog, message)
        if self.engine.builder.parse_error_reporting:
            self.print_usage(sys.stderr)
            self.exit(2, f"{self.prog}: error: {message}\n")
        raise ParseError(message, usage=self.format_usage(), member=self.prog)

    def _check_value(self, action, value):
        if value is ABSENT or value is argparse.SUPPRESS or action.choices is None or value in action.choices:
            return
        choices = [choice for choice in action.choices if choice not in getattr(action, "hidden", ())]
        message = f"invalid choice: {value!r} (choose from {', '.join(map(repr, choices))})"
        if self.engine.builder.typo_corrections and isinstance(value, str):
            if matches := difflib.get_close_matches(value, list(map(str, choices)), n=1):
                message = f"invalid choice: {value!r}, maybe you meant {matches[0]!r}? (choose from {', '.join(map(repr, choices))})"
        raise argparse.ArgumentError(action, message)


def nargs(arity, /):
    """
    Map an arity onto argparse keywords.
    """
    match arity:
        case Arity(0, 0):
            return {"action": "store_const", "const": True}
        case Arity(0, 1):
            return {"nargs": "?"}
        case Arity(1, 1):
            return {}
        case Arity(0, None):
            return {"nargs": "*"}
        case Arity(1, None):
            return {"nargs": "+"}
        case Arity(minimum, maximum) if minimum == maximum:
            return {"nargs": minimum}
        case Arity(0, _):
            return {"nargs": "*", "action": BoundedAction, "arity": arity}
        case _:
            return {"nargs": "+", "action": BoundedAction, "arity": arity}


class Engine:
    """
    runnable parser synthesized from a command tree.
    """

    def __init__(self, root, builder, version=None):
        self.root = root
        self.builder = builder
        self.version = version
        self.output = None
        self.error = None
        self.parsers = {}
        self.parser = self._parser(root)
        logger.debug("engine built with %d parsers", len(self.parsers))

    def _parser(self, node, subparsers=None, /):
        if subparsers is None:
            parser = ArgumentParser(prog=node.name, description=node.description or None, engine=self, node=node)
        else:
            options = {"aliases": node.aliases, "description": node.description or None, "engine": self, "node": node}
            if not node.hidden:
                options["help"] = _escape(node.description or "")
            parser = subparsers.add_parser(node.name, **options)
        self.parsers[id(node)] = parser

        if self.builder.help:
            parser.add_argument("-?", "-h", "--help", action="help", help="show help and usage information")
        if subparsers is None and self.builder.version and self.version:
            parser.add_argument("--version", action="version", version=str(self.version), help="show version information")

        for binding in (*node.options, *node.shared):
            self._add(parser, binding)
        for binding in node.arguments:
            self._add(parser, binding)
        parser.set_defaults(**{NODE: node})

        if node.children:
            visible = [child.name for child in node.children.values() if not child.hidden]
            commands = parser.add_subparsers(title="commands", metavar="{%s}" % ",".join(visible) if visible else "COMMAND")
            commands.required = node.handler is None
            commands.hidden = {
                name for child in node.children.values() if child.hidden for name in (child.name, *child.aliases)
            }
            for child in node.children.values():
                self._parser(child, commands)
        return parser

    def _add(self, parser, binding, /):
        value_type = binding.value_type
        options = {
            "help": argparse.SUPPRESS if binding.hidden else _escape(coalesce(binding.description, "")),
            "type": value_type.converter,
            "choices": value_type.choices,
        } | nargs(binding.arity)

        if binding.value_type.flag and options.get("nargs") == "?":
            options["const"] = True
        if options.get("action") == "store_const":
            del options["type"], options["choices"]

        metavar = coalesce(binding.help_name, None) or value_type.metavar
        try:
            if binding.kind is DescriptorKind.OPTION:
                if metavar is None and value_type.choices is None:
                    metavar = binding.name.lstrip("-").upper().replace("-", "_")
                action = parser.add_argument(
                    *binding.flags,
                    dest=binding.dest,
                    default=argparse.SUPPRESS,
                    **options,
                    **({"metavar": metavar} if metavar is not None and "type" in options else {}),
                )
            else:
                action = parser.add_argument(binding.dest, default=ABSENT, metavar=metavar or binding.name, **options)
        except argparse.ArgumentError as error:
            raise UsageError(
                f"{binding.name} clashes with another option of {parser.prog!r}: {error.message}",
                hint="rename the option or one of its aliases",
            ) from error
        action.binding = binding
        return action

    @contextlib.contextmanager
    def terminating(self):
        """
        map SIGTERM to KeyboardInterrupt while the block runs (main thread only).
        """
        if not self.builder.termination or not hasattr(signal, "SIGTERM") \
                or threading.current_thread() is not threading.main_thread():
            yield
            return

        def handler(signum, frame):
            raise KeyboardInterrupt(f"terminated by signal {signum}")

        previous = signal.signal(signal.SIGTERM, handler)
        try:
            yield
        finally:
            signal.signal(signal.SIGTERM, previous if previous is not None else signal.SIG_DFL)

    def parse(self, args, /, output=None, error=None):
        """
        Parse tokens into a ParseResult for the matched command.

        Raises EngineExit when argparse terminates (help, version, reported
        errors) and ParseError when error reporting is disabled.
        """
        self.output = output if output is not None else self.builder.output
        self.error = error if error is not None else self.builder.error
        namespace = self.parser.parse_args(list(args))
        node = getattr(namespace, NODE)
        parser = self.parsers[id(node)]
        if node.handler is None:
            parser.error("required command was not provided")
        missing = [
            "/".join(binding.flags) for binding in (*node.options, *node.shared)
            if binding.required and not hasattr(namespace, binding.dest)
        ]
        if missing:
            parser.error(f"the following arguments are required: {', '.join(missing)}")
        logger.debug("parsed %r as %r", args, node)
        return ParseResult(node, namespace, tuple(args))


class ParseResult:
    """
    parsed values of one command line, read through bindings.
    """

    def __init__(self, command, namespace, tokens=()):
        self.command = command
        self.namespace = namespace
        self.tokens = tokens

    def __contains__(self, binding):
        return getattr(self.namespace, binding.dest, ABSENT) is not ABSENT

    def value(self, binding, /):
        """
        parsed value of binding, else its lazy default.
        """
        if (value := getattr(self.namespace, binding.dest, ABSENT)) is ABSENT:
            return binding.supply()
        return binding.finalize(value)

    def get(self, name, /, default=None):
        """
        value of the binding named (or aliased) name on the matched command.
        """
        for binding in (*self.command.options, *self.command.arguments, *self.command.shared):
            if name in binding.flags or name == binding.identifier:
                return self.value(binding)
        return default

    def __repr__(self):
        return f"parse-result({self.command!r}, {list(self.tokens)!r})"


__all__ = (
    "EngineExit",
    "Builder",
    "HelpFormatter",
    "ArgumentParser",
    "Engine",
    "ParseResult",
)
