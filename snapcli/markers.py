r"""
SnapCLI markers: declarative descriptors and the decorators that attach them.

Overview
- Descriptors
  • Root: designates the root command handler (or, on a class, the root description).
  • Command: declares a command handler; on a class, declares a parent command
    without handler. Names with spaces ("list orders") describe subcommands.
  • Option: named, value-bearing option. Used on handler parameters, module or
    class fields (global options) and class properties (global options).
  • Argument: positional argument. Used on handler parameters only.

- Attaching descriptors
  • Handler parameters, either form:
        def hello(name: Annotated[str, Option(description="person's name")] = "everyone"): ...
        def hello(name: str = Option(description="person's name", default="everyone")): ...
  • Functions and classes: @root, @command(...)
  • Global fields:
        verbose: Annotated[bool, Option("v")] = False
        config = Option(description="configuration file", default="config.ini")
  • Global properties: @option(...) stacked on a property.
  • Startup hooks: @startup

Metadata (sanitized on construction)
- name: Unset | str (non-empty once trimmed).
- help_name: Unset | str, shown as the value placeholder in help.
- aliases: Iterable[str] without duplicates.
- description: Unset | str.
- hidden / required: bool.
- arity: Unset | Arity | (minimum, maximum); maximum None means unbounded.
- default: any value, Unset when the marker does not carry one.

Descriptors are immutable: every field is exposed through a read-only property.

Public API
- Classes: DescriptorKind, Arity, Descriptor, Root, Command, Option, Argument
- Decorators: root, command, option, startup
"""
import functools
import operator
import re
from enum import IntEnum
from typing import NamedTuple

from .utils import *

MARKERS = "__snapcli_markers__"
STARTUP = "__snapcli_startup__"
FIELDS = "__snapcli_fields__"


class DescriptorKind(IntEnum):
    """
    role of a declared element on the command line.
    """
    ROOT = 1
    COMMAND = 2
    ARGUMENT = 3
    OPTION = 4


class Arity(NamedTuple):
    """
    bounds on the number of values an option or argument receives.

    maximum None stands for "no upper bound".
    """
    minimum: int
    maximum: int | None

    @classmethod
    def of(cls, object, /):
        """
        build an Arity from an Arity, a (minimum, maximum) pair, or a single count.
        """
        if isinstance(object, cls):
            arity = object
        elif isinstance(object, int) and not isinstance(object, bool):
            arity = cls(object, object)
        else:
            try:
                minimum, maximum = object
            except (TypeError, ValueError):
                raise TypeError("arity must be an integer or a (minimum, maximum) pair") from None
            arity = cls(minimum, maximum)

        if not isinstance(arity.minimum, int) or arity.minimum < 0:
            raise ValueError("arity minimum must be a non-negative integer")
        if arity.maximum is not None:
            if not isinstance(arity.maximum, int) or arity.maximum < arity.minimum:
                raise ValueError("arity maximum must be an integer not lower than the minimum")
        return arity

    @property
    def bounded(self):
        return self.maximum is not None

    def __str__(self):
        return f"{self.minimum}..{'*' if self.maximum is None else self.maximum}"


Arity.ZERO = Arity(0, 0)
Arity.ZERO_OR_ONE = Arity(0, 1)
Arity.EXACTLY_ONE = Arity(1, 1)
Arity.ZERO_OR_MORE = Arity(0, None)
Arity.ONE_OR_MORE = Arity(1, None)


class DescriptorType(type):
    """
    Metaclass that turns descriptor classes into immutable, introspectable records.

    Responsibilities
    - Expose selected fields as read-only properties using mirror() for all names
      listed in __introspectable__.
    - Provide stable, readable __repr__/__rich_repr__ for diagnostics.

    Conventions
    - __typename__ is derived from the class name (camel-case split with hyphens)
      for consistent labels in error messages.
    """
    __introspectable__ = ()

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name, frozen=name not in namespace.get("__verbatim__", ()))
                for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in type(self).__introspectable__:
                object = getattr(self, name)
                if not (object is Unset or object is None or object is False or object == ()):
                    yield name, object
        self.__rich_repr__ = __rich_repr__

        return self


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: normalize and validate descriptor metadata in place.

    - name/help_name/description: Unset or a non-empty string once trimmed.
    - aliases: iterable of non-empty strings, duplicates rejected, order kept.
    - arity: Unset or anything Arity.of() accepts.
    """
    for field in ("name", "help_name", "description"):
        if not isinstance(object := metadata[field], str | Unset):
            raise TypeError(f"{cls.__typename__} {field!r} must be a string")
        elif isinstance(object, str) and not (object := object.strip()):
            raise ValueError(f"{cls.__typename__} {field!r} cannot be empty")
        metadata[field] = object

    if isinstance(metadata["aliases"], str):
        raise TypeError(f"{cls.__typename__} 'aliases' must be an iterable of strings")
    aliases = []
    for alias in metadata["aliases"]:
        if not isinstance(alias, str):
            raise TypeError(f"{cls.__typename__} 'aliases' must be an iterable of strings")
        elif not (alias := alias.strip()):
            raise ValueError(f"{cls.__typename__} 'aliases' cannot contain empty strings")
        elif alias in aliases:
            raise ValueError(f"{cls.__typename__} 'aliases' cannot contain duplicates")
        aliases.append(alias)
    metadata["aliases"] = tuple(aliases)

    if metadata["arity"] is not Unset:
        metadata["arity"] = Arity.of(metadata["arity"])


class Descriptor(metaclass=DescriptorType):
    """
    Immutable description of one declared element.

    Use the concrete subclasses (Root, Command, Option, Argument); the base class
    only holds the shared fields and the sanitizer wiring.
    """
    __kind__ = None
    __verbatim__ = ("default",)
    __introspectable__ = (
        "kind",
        "name",
        "help_name",
        "aliases",
        "description",
        "hidden",
        "required",
        "arity",
        "default",
    )

    def __init__(
            self,
            name=Unset,
            help_name=Unset,
            aliases=(),
            description=Unset,
            hidden=False,
            required=False,
            arity=Unset,
            default=Unset,
    ):
        if type(self).__kind__ is None:
            raise TypeError("Descriptor cannot be instantiated directly, use Root, Command, Option or Argument")

        metadata = {
            "kind": type(self).__kind__,
            "name": name,
            "help_name": help_name,
            "aliases": aliases,
            "description": description,
            "hidden": bool(hidden),
            "required": bool(required),
            "arity": arity,
            "default": default,
        }
        _sanitize_metadata(type(self), metadata)

        for field, object in metadata.items():
            setattr(self, "_" + field, object)

    def __str__(self):
        return f"{self.kind.name.lower()}: name:{next(filter(None, (self.name, self.help_name, *self.aliases)), None)}, desc:{self.description}"


class Root(Descriptor):
    """
    Designates the root command, i.e. what runs when no subcommand is given.

    Only one Root may exist per program, counting functions and classes together.
    """
    __kind__ = DescriptorKind.ROOT

    def __init__(self, description=Unset):
        super().__init__(description=description)


class Command(Descriptor):
    """
    Declares a command handler (on a function) or a parent command (on a class).

    Name rules
    - Unset: derived from the identifier, '_' separating subcommands and camel
      boundaries becoming hyphens: list_orders → "list orders", exitCode → "exit-code".
    - With spaces: "list orders" is subcommand orders of command list.
    """
    __kind__ = DescriptorKind.COMMAND

    def __init__(self, name=Unset, aliases=(), description=Unset, hidden=False):
        super().__init__(name=name, aliases=aliases, description=description, hidden=hidden)


class Option(Descriptor):
    """
    Declares a named option on a handler parameter, or a global option on a
    field/property.

    - name: explicit option name; a leading '-' keeps it verbatim, otherwise one
      character gets '-' and longer names get '--'.
    - required: the option must be given even if a default exists.
    - default: the value used when the marker stands in for the parameter default
      (or the field value).
    """
    __kind__ = DescriptorKind.OPTION

    def __init__(
            self,
            name=Unset,
            /,
            help_name=Unset,
            aliases=(),
            description=Unset,
            hidden=False,
            required=False,
            arity=Unset,
            default=Unset,
    ):
        super().__init__(name, help_name, aliases, description, hidden, required, arity, default)


class Argument(Descriptor):
    """
    Declares a positional argument on a handler parameter.

    Arguments are never forced required: one without a default simply takes
    the engine's arity for its type.
    """
    __kind__ = DescriptorKind.ARGUMENT

    def __init__(
            self,
            name=Unset,
            /,
            help_name=Unset,
            description=Unset,
            hidden=False,
            arity=Unset,
            default=Unset,
    ):
        super().__init__(name, help_name, (), description, hidden, False, arity, default)


def unwrap(member, /):
    """
    Return the object a marker is stored on: the function behind static/class
    methods, the getter of a property, the member itself otherwise.
    """
    if isinstance(member, staticmethod | classmethod):
        return member.__func__
    if isinstance(member, property):
        return member.fget
    if isinstance(member, functools.cached_property):
        return member.func
    return member


def markers(member, /):
    """
    Return the descriptors attached to member (own attributes only, never inherited).
    """
    try:
        return tuple(vars(unwrap(member)).get(MARKERS, ()))
    except TypeError:
        return ()


def fields(owner, /):
    """
    Return the Option markers recorded on owner for fields whose marker value
    has been replaced by a plain value (see snapcli.shared).
    """
    return vars(owner).get(FIELDS, {})


def record(owner, name, descriptor, /):
    if FIELDS not in vars(owner):
        setattr(owner, FIELDS, {})
    getattr(owner, FIELDS)[name] = descriptor


def is_startup(member, /):
    try:
        return bool(vars(unwrap(member)).get(STARTUP, False))
    except TypeError:
        return False


def attach(member, descriptor, /):
    """
    Record descriptor on member and return member unchanged.

    Several markers can be stacked; discovery rejects members carrying more than one.
    """
    target = unwrap(member)
    if target is None or not hasattr(target, "__dict__"):
        raise TypeError(f"{type(descriptor).__typename__} marker cannot be applied to {member!r}")
    if MARKERS not in vars(target):
        setattr(target, MARKERS, [])
    getattr(target, MARKERS).append(descriptor)
    return member


def root(source=Unset, /, description=Unset):
    """
    Decorator declaring the root command handler (function) or root description (class).

    Forms
    - @root
    - @root("program description")
    - @root(description="program description")
    """
    if isinstance(source, str):
        source, description = Unset, source

    @rename("root")
    def wrapper(source, /):
        if not callable(source) and not isinstance(source, staticmethod):
            raise TypeError("@root() must be applied to a function or a class")
        return attach(source, Root(description))

    return wrapper(source) if source is not Unset else wrapper


def command(source=Unset, /, name=Unset, aliases=(), description=Unset, hidden=False):
    """
    Decorator declaring a command handler (function) or a parent command (class).

    Forms
    - @command
    - @command("list orders", description="...")
    - @command(name="list", aliases=["ls"], hidden=True)
    """
    if isinstance(source, str):
        source, name = Unset, source

    @rename("command")
    def wrapper(source, /):
        if not callable(source) and not isinstance(source, staticmethod | classmethod):
            raise TypeError("@command() must be applied to a function or a class")
        return attach(source, Command(name, aliases, description, hidden))

    return wrapper(source) if source is not Unset else wrapper


def option(name=Unset, /, **metadata):
    """
    Decorator declaring a global option backed by a class property.

        class Settings:
            @option("prop", help_name="VALUE", aliases=["propAlias"])
            @property
            def prop(cls): ...

    The property is read and written with its class in place of an instance,
    so the getter and setter both receive the class.
    """
    descriptor = Option(name, **metadata)

    @rename("option")
    def wrapper(source, /):
        return attach(source, descriptor)

    return wrapper


def startup(source, /):
    """
    Decorator declaring a startup hook.

    A hook takes no parameters, or one parameter receiving the engine Builder.
    Hooks run once, in discovery order, before the parser is built. Any hook
    taking the Builder switches off the default builder configuration.
    """
    target = unwrap(source)
    if not callable(target):
        raise TypeError("@startup must be applied to a function")
    setattr(target, STARTUP, True)
    return source


__all__ = (
    "DescriptorKind",
    "Arity",
    "Descriptor",
    "Root",
    "Command",
    "Option",
    "Argument",
    "root",
    "command",
    "option",
    "startup",
)

del DescriptorType
