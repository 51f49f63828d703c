"""
SnapCLI faults (errors) and rendering.

Scope
- SnapCLIError: base type that carries message + options and knows how to render
  itself in a short, actionable way through rich.
- UsageError: the single construction-time error kind. Raised while markers are
  discovered and the command tree is assembled; the program must not start
  serving commands when one is raised.
- ParseError: raised by the parsing engine when parse-error reporting has been
  switched off, so malformed input reaches the exception handler instead of
  being printed as usage text.
- report(): default rendering of a runtime exception to an output sink.

Options understood by the renderers
- member: the offending declared element (function, field, property, parameter).
- hint: one sentence telling the developer what to change.
"""
import sys
import traceback
from collections import defaultdict
from types import MappingProxyType

from rich.console import Console, Group
from rich.text import Text


class SnapCLIError(Exception):
    """
    base error carrying a message and free-form rendering options.
    """
    __title__ = "error"

    def __init__(self, message, /, **options):
        assert isinstance(message, str)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return self.message

    def __rich__(self):
        main = __import__("__main__")

        styles = defaultdict(str, {
            "prog-name": "bold #E6E6F0",
            "error-title": "bold #FF4DA6",
            "error-message": "#C8C8D0",
            "member": "#00E5FF",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        } | getattr(main, "__styles__", {}))

        prog = Text(getattr(main, "__prog__", "snapcli"), styles["prog-name"])
        header = Text.assemble("[ ", prog, " | ", Text(type(self).__title__, styles["error-title"]), " ]")
        renders = [header, Text(self.message, styles["error-message"])]

        if member := self.options.get("member"):
            name = getattr(member, "__qualname__", None) or getattr(member, "__name__", None) or str(member)
            renders.append(Text.assemble(" at ", Text(name, styles["member"])))
        if hint := self.options.get("hint"):
            renders.append(Text.assemble(Text(" → ", styles["hint-arrow"]), Text(hint, styles["hint"])))

        return Group(*renders)


class UsageError(SnapCLIError):
    """
    incorrect usage of snapcli markers, detected while the command tree is built.

    every construction-time rule raises this type:
    - more than one root marker, or no command marker at all
    - more than one marker on the same element
    - two commands declared at the same path
    - a parent command with neither subcommands nor handler (and not hidden)
    - a global option whose storage is read-only or not static
    - an option/argument whose name cannot be derived
    - an unsupported handler return type, or a non-static handler
    """
    __title__ = "usage error"


class ParseError(SnapCLIError):
    """
    malformed command-line input, raised only when the engine does not report it itself.
    """
    __title__ = "parse error"

    def __init__(self, message, /, **options):
        super().__init__(message, **options)
        self.usage = options.get("usage")


def report(exception, file=None, /):
    """
    print a formatted exception (traceback included) to the given sink.

    the text is styled red when the sink is the process stderr attached to a
    terminal; any other sink receives plain text, unwrapped.
    """
    console = Console(file=file or sys.stderr, highlight=False)
    formatted = "".join(traceback.format_exception(exception)).rstrip()
    console.print(formatted, style="red" if file in (None, sys.stderr) else None, markup=False, soft_wrap=True)


__all__ = (
    "SnapCLIError",
    "UsageError",
    "ParseError",
    "report",
)
