"""
SnapCLI bindings: parser-facing options and positional arguments.

A binding is synthesized from a handler parameter (or a global field/property)
and its Option/Argument marker. It carries everything the parsing engine needs
and nothing it does not:

- name                options get "-x" or "--long" prefixes, arguments stay bare
- aliases             prefixed like the name
- value type          converter, optional container and choices, inferred from
                      the annotation, else from the default, else str
- arity               declared on the marker, else inferred from the value type
- default supplier    lazy: evaluated only when the engine parsed no value
- required            options: marker says so, or there is no default
                      arguments: never forced required
- dest                unique key under which the engine stores the parsed value

Name derivation
    optionField -> option-field
    dry_run     -> dry-run
    _internal   -> internal
"""
import collections.abc
import enum
import inspect
import itertools
import logging
import types
import typing

from .discovery import annotations, peel
from .faults import UsageError
from .markers import Arity, Descriptor, DescriptorKind, Option
from .utils import *

logger = logging.getLogger(__name__)

_destinations = itertools.count(1)

_CONTAINERS = {
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    collections.abc.Sequence: tuple,
    collections.abc.MutableSequence: list,
    collections.abc.Iterable: list,
    collections.abc.Collection: list,
    collections.abc.Set: frozenset,
    collections.abc.MutableSet: set,
}


def boolean(value, /):
    """
    convert a command-line token into a bool.
    """
    match value.strip().lower():
        case "true" | "t" | "yes" | "y" | "on" | "1":
            return True
        case "false" | "f" | "no" | "n" | "off" | "0":
            return False
    raise ValueError(value)


class EnumConverter:
    """
    convert a token into an Enum member by name (case-insensitive fallback).
    """

    def __init__(self, enumeration, /):
        self.enumeration = enumeration
        self.__name__ = enumeration.__name__

    @property
    def names(self):
        return tuple(self.enumeration.__members__)

    def __call__(self, value, /):
        try:
            return self.enumeration[value]
        except KeyError:
            for name, member in self.enumeration.__members__.items():
                if name.lower() == value.lower():
                    return member
        raise ValueError(value)

    def __repr__(self):
        return f"enum-converter({self.enumeration.__qualname__})"


class ValueType(typing.NamedTuple):
    """
    how parsed tokens become a handler value.
    """
    converter: typing.Callable = str
    container: type | None = None
    choices: tuple | None = None
    flag: bool = False
    arity: Arity = Arity.EXACTLY_ONE
    metavar: str | None = None


def _optional(annotation, /):
    """
    Optional[T] / T | None -> T. Unions of several types fall back to str.
    """
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        members = [member for member in typing.get_args(annotation) if member is not type(None)]
        return members[0] if len(members) == 1 else str
    return annotation


def _scalar(annotation, /):
    if annotation is bool:
        return ValueType(boolean, flag=True, arity=Arity.ZERO_OR_ONE)
    if typing.get_origin(annotation) is typing.Literal:
        values = typing.get_args(annotation)
        kinds = {type(value) for value in values}
        return ValueType(kinds.pop() if len(kinds) == 1 else str, choices=values)
    if isinstance(annotation, type) and issubclass(annotation, enum.Enum):
        converter = EnumConverter(annotation)
        return ValueType(converter, metavar="{%s}" % ",".join(converter.names))
    if isinstance(annotation, type) and annotation is not object:
        return ValueType(annotation)
    return ValueType(str)


def untyped(annotation, /):
    return annotation is Unset or annotation is inspect.Parameter.empty or annotation is typing.Any \
        or isinstance(annotation, str)


def infer(annotation, default=Unset, /):
    """
    Infer the value type of an option or argument.

    The annotation wins; an unannotated member is typed after its default value;
    with neither, values stay strings.
    """
    if untyped(annotation):
        if default is Unset or default is None:
            return ValueType()
        annotation = type(default)

    annotation = _optional(annotation)
    origin = typing.get_origin(annotation)

    if (container := _CONTAINERS.get(origin or annotation)) is not None:
        arguments = typing.get_args(annotation)
        arity = Arity.ONE_OR_MORE
        if container is tuple and arguments and arguments[-1] is not Ellipsis:
            arity = Arity(len(arguments), len(arguments))
            element = arguments[0] if len(set(arguments)) == 1 else str
        else:
            element = arguments[0] if arguments else str
        element = _scalar(_optional(element))
        return element._replace(container=container, flag=False, arity=arity)

    return _scalar(annotation)


def option_name(identifier, /):
    """
    Derive an option/argument name from a member identifier, without prefix.
    """
    return kebab(identifier.strip("_")).replace("_", "-")


def prefixed(name, /):
    """
    Add the option prefix: "-" for one character, "--" otherwise. Names that
    already start with "-" are kept as written.
    """
    if name.startswith("-"):
        return name
    return ("-" if len(name) == 1 else "--") + name


def _constant(value, /):
    def supplier():
        return value
    return rename(supplier, f"default<{value!r}>")


class Binding:
    """
    base of OptionBinding and ArgumentBinding.
    """
    __kind__ = None

    def __init__(
            self,
            name,
            /,
            aliases=(),
            help_name=Unset,
            description=Unset,
            hidden=False,
            required=False,
            arity=Unset,
            value_type=ValueType(),
            default=None,
            identifier=None,
    ):
        self.name = name
        self.aliases = tuple(aliases)
        self.help_name = help_name
        self.description = description
        self.hidden = hidden
        self.required = required
        self.value_type = value_type
        self.default = default
        self.identifier = identifier
        self.dest = f"__snapcli_{next(_destinations)}__"
        self._arity = arity

    @property
    def kind(self):
        return type(self).__kind__

    @property
    def has_default(self):
        return self.default is not None

    @property
    def arity(self):
        """
        declared arity, else the value type's own arity (relaxed to optional
        for arguments that have a default).
        """
        if self._arity is not Unset:
            return self._arity
        arity = self.value_type.arity
        if self.kind is DescriptorKind.ARGUMENT:
            if self.value_type.flag:
                arity = Arity.EXACTLY_ONE
            if self.has_default and arity.minimum:
                arity = Arity.ZERO_OR_ONE if arity.maximum == 1 else Arity.ZERO_OR_MORE
        return arity

    def supply(self):
        """
        The fallback value: the default supplier's result, an empty container for
        multi-value members without default, else None.
        """
        if self.default is not None:
            return self.default()
        if self.value_type.container is not None:
            return self.value_type.container()
        return None

    def finalize(self, value, /):
        """
        Shape a parsed value for the handler (container conversion).
        """
        if (container := self.value_type.container) is None:
            return value
        if not isinstance(value, list):
            value = [value]
        return container(value)

    def __repr__(self):
        return f"{self.kind.name.lower()}-binding({self.name!r})"

    def __rich_repr__(self):
        yield "name", self.name
        if self.aliases:
            yield "aliases", self.aliases
        yield "type", getattr(self.value_type.converter, "__name__", repr(self.value_type.converter))
        if self.value_type.container is not None:
            yield "container", self.value_type.container.__name__
        yield "arity", str(self.arity)
        if self.required:
            yield "required", True
        if self.hidden:
            yield "hidden", True


class OptionBinding(Binding):
    """
    a named option ("--name value").
    """
    __kind__ = DescriptorKind.OPTION

    @property
    def flags(self):
        return (self.name, *self.aliases)


class ArgumentBinding(Binding):
    """
    a positional argument.
    """
    __kind__ = DescriptorKind.ARGUMENT

    @property
    def flags(self):
        return (self.name,)


def synthesize(descriptor, identifier, annotation=Unset, default=Unset, /, member=None):
    """
    Build the binding described by descriptor for a member.

    - descriptor: Option/Argument marker, or None for an unmarked parameter
      (which becomes an option).
    - identifier: the parameter/field/property name used when the marker has no name.
    - default: Unset, a value, or a zero-argument supplier wrapped by supplier().
    """
    descriptor = descriptor if descriptor is not None else Option()
    if descriptor.name is not Unset:
        name = descriptor.name
    elif identifier:
        name = option_name(identifier)
    else:
        name = ""
    if not name.strip("-"):
        raise UsageError(
            f"{type(descriptor).__typename__} name cannot be derived for {descriptor!r}",
            member=member,
            hint="pass an explicit name to the marker",
        )

    supplier = default if isinstance(default, Supplier) else None
    if supplier is None and default is not Unset:
        supplier = Supplier(_constant(default))
    sample = supplier.peek() if supplier is not None and untyped(annotation) else Unset
    value_type = infer(annotation, sample)

    options = dict(
        help_name=descriptor.help_name,
        description=descriptor.description,
        hidden=descriptor.hidden,
        arity=descriptor.arity,
        value_type=value_type,
        default=supplier,
        identifier=identifier,
    )

    if descriptor.kind is DescriptorKind.OPTION:
        required = descriptor.required or supplier is None
        binding = OptionBinding(
            prefixed(name),
            aliases=map(prefixed, descriptor.aliases),
            required=required,
            **options,
        )
    elif descriptor.kind is DescriptorKind.ARGUMENT:
        binding = ArgumentBinding(name, **options)
    else:
        raise UsageError(
            f"{type(descriptor).__typename__} marker cannot be used on {identifier!r}",
            member=member,
            hint="parameters, fields and properties accept Option or Argument markers only",
        )

    if binding.kind is DescriptorKind.ARGUMENT and binding.arity == Arity.ZERO:
        raise UsageError(f"argument {name!r} cannot take zero values", member=member)

    logger.debug("synthesized %r (arity %s, required %s)", binding, binding.arity, binding.required)
    return binding


class Supplier:
    """
    lazy default: wraps a zero-argument callable evaluated on fallback only.

    peek() reads the current value for type inference without caching it.
    """
    __slots__ = ("function",)

    def __init__(self, function, /):
        self.function = function

    def peek(self):
        try:
            return self.function()
        except Exception as exception:
            logger.debug("default of %r is not readable yet: %r", self, exception)
            return Unset

    def __call__(self):
        return self.function()

    def __repr__(self):
        return f"supplier({getattr(self.function, '__name__', self.function)!r})"


def parameter_marker(parameter, annotation, /, member=None):
    """
    Return (descriptor, default) for a handler parameter.

    The marker comes from Annotated metadata or from the parameter default; a
    marker used as default carries the real default in its own default= field.
    """
    _, metadata, _ = peel(annotation)
    annotated = [object for object in metadata if isinstance(object, Descriptor)]
    defaulted = isinstance(parameter.default, Descriptor)

    if len(annotated) > 1 or (annotated and defaulted):
        raise UsageError(
            f"parameter {parameter.name!r} carries more than one marker",
            member=member,
            hint="declare the marker either in Annotated[...] or as the default, not both",
        )

    if defaulted:
        return parameter.default, parameter.default.default
    if annotated:
        descriptor, = annotated
        default = parameter.default if parameter.default is not inspect.Parameter.empty else descriptor.default
        return descriptor, default
    return None, parameter.default if parameter.default is not inspect.Parameter.empty else Unset


class Parameter(typing.NamedTuple):
    """
    a handler parameter and the binding that feeds it.
    """
    name: str
    keyword: bool
    binding: Binding


def parameters(function, /):
    """
    Synthesize the bindings of every parameter of a handler, in declaration order.
    """
    hints = annotations(function)
    result = []
    for parameter in inspect.signature(function).parameters.values():
        if parameter.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise UsageError(
                f"handler {function.__qualname__} cannot declare variadic parameter {parameter.name!r}",
                member=function,
                hint="declare a list-typed option or argument instead",
            )
        annotation = hints.get(parameter.name, Unset)
        descriptor, default = parameter_marker(parameter, annotation, member=function)
        value, _, _ = peel(annotation)
        binding = synthesize(descriptor, parameter.name, value, default, member=function)
        result.append(Parameter(parameter.name, parameter.kind is inspect.Parameter.KEYWORD_ONLY, binding))
    return result


__all__ = (
    "boolean",
    "EnumConverter",
    "ValueType",
    "infer",
    "option_name",
    "prefixed",
    "Supplier",
    "Binding",
    "OptionBinding",
    "ArgumentBinding",
    "synthesize",
    "parameter_marker",
    "Parameter",
    "parameters",
)
