"""
SnapCLI discovery: find every marked member of the program.

Sources
- module objects, module names and module glob patterns ("app.commands.*", "app.**")
- classes (only the class body is scanned, nested classes included)
- functions, registered directly with the markers their decorators recorded

What is collected, in definition order
- command methods: functions and staticmethods carrying Root/Command
- class descriptors: classes carrying Root/Command (parent commands, root description)
- global members: fields and properties carrying an Option
- startup hooks: functions and staticmethods marked with @startup

Only members defined in the scanned module are considered; imported names are
skipped. Discovery never changes program state; it only reads markers.
"""
import dataclasses
import functools
import importlib
import inspect
import logging
import types
import typing

from .faults import UsageError
from .markers import Descriptor, DescriptorKind, Option, fields, markers, is_startup, unwrap
from .utils import *

logger = logging.getLogger(__name__)


def _qualname(owner, name=None, /):
    qualname = getattr(owner, "__qualname__", None) or getattr(owner, "__name__", None) or repr(owner)
    return qualname if name is None else f"{qualname}.{name}"


def command_name(identifier, /):
    """
    Derive a command name from an identifier: '_' separates subcommands, camel
    boundaries become hyphens.

        command_name("list_orders") -> "list orders"
        command_name("exitCode")    -> "exit-code"
    """
    return " ".join(kebab(identifier.replace("_", " ")).split())


class CommandMethod:
    """
    a Root/Command descriptor paired with the member it decorates.

    For function-level markers the member is the handler. For class-level
    markers the member is the class and there is no handler.
    """
    __slots__ = ("_descriptor", "_handler", "_owner")

    def __init__(self, descriptor, handler=None, owner=None):
        self._descriptor = descriptor
        self._handler = handler
        self._owner = owner

    descriptor = mirror("descriptor")
    handler = mirror("handler")
    owner = mirror("owner")

    @property
    def kind(self):
        return self._descriptor.kind

    @property
    def member(self):
        return self._handler if self._handler is not None else self._owner

    @property
    def command_name(self):
        if (name := self._descriptor.name) is not Unset:
            return name
        return command_name(self.member.__name__)

    @property
    def description(self):
        """
        explicit description, else the member's own docstring, else Unset.
        """
        if (description := self._descriptor.description) is not Unset:
            return description
        member = self.member
        doc = vars(member).get("__doc__") if isinstance(member, type) else member.__doc__
        if doc and (doc := inspect.cleandoc(doc)):
            return doc
        return Unset

    def __repr__(self):
        return f"command-method({self.kind.name.lower()}, {self.command_name!r}, {_qualname(self.member)})"

    def __rich_repr__(self):
        yield "kind", self.kind.name.lower()
        yield "name", self.command_name
        yield "member", _qualname(self.member)


class GlobalMember:
    """
    a field or property carrying an Option marker.

    Storage flags are recorded as found; whether they are acceptable is decided
    when the option is injected.
    - storage: "field", "property" or "cached-property"
    - annotation: the declared value type (Annotated/Final/ClassVar layers peeled), or Unset
    - readonly: annotated Final, or a property without setter
    - static: False for dataclass instance fields, annotated class fields
      without a class value, and cached properties
    """
    __slots__ = ("descriptor", "owner", "name", "storage", "annotation", "readonly", "static")

    def __init__(self, descriptor, owner, name, storage, annotation=Unset, readonly=False, static=True):
        self.descriptor = descriptor
        self.owner = owner
        self.name = name
        self.storage = storage
        self.annotation = annotation
        self.readonly = readonly
        self.static = static

    @property
    def qualname(self):
        return _qualname(self.owner, self.name)

    def __repr__(self):
        return f"global-member({self.storage}, {self.qualname})"


class Discovery:
    """
    result of scanning the program sources.
    """

    def __init__(self):
        self.modules = []
        self.methods = []
        self.classes = []
        self.globals = []
        self.startups = []

    @property
    def empty(self):
        return not self.methods and not self.classes

    def __rich_repr__(self):
        yield "modules", [module.__name__ for module in self.modules]
        yield "methods", self.methods
        yield "classes", self.classes
        yield "globals", self.globals
        yield "startups", [_qualname(function) for function in self.startups]


def peel(annotation, /):
    """
    Strip Annotated, Final and ClassVar layers from an annotation.

    Returns (annotation, metadata, final) where metadata collects every
    Annotated extra in order.
    """
    metadata = []
    final = False
    while True:
        origin = typing.get_origin(annotation)
        if origin is typing.Annotated:
            metadata.extend(annotation.__metadata__)
            annotation = annotation.__origin__
        elif annotation is typing.Final or annotation is typing.ClassVar:
            final = final or annotation is typing.Final
            annotation = Unset
        elif origin is typing.Final or origin is typing.ClassVar:
            final = final or origin is typing.Final
            annotation, = typing.get_args(annotation)
        else:
            return annotation, metadata, final


def annotations(owner, /):
    """
    Own annotations of a module, class or function, resolved when possible.

    Annotations that cannot be evaluated (forward references to names that do
    not exist yet) are returned as written.
    """
    try:
        return inspect.get_annotations(owner, eval_str=True)
    except (NameError, SyntaxError, TypeError, AttributeError):
        return inspect.get_annotations(owner)


def _single(member, descriptors, qualname, /):
    if len(descriptors) > 1:
        raise UsageError(
            f"{qualname} carries {len(descriptors)} markers, only one is allowed",
            member=member,
            hint="keep a single @root, @command or Option marker on each element",
        )
    return descriptors[0] if descriptors else None


def _is_local(object, module_name, /):
    return getattr(object, "__module__", None) == module_name


class _Scanner:

    def __init__(self, discovery):
        self.discovery = discovery
        self.seen = set()

    def module(self, module):
        if id(module) in self.seen:
            return
        self.seen.add(id(module))
        if module not in self.discovery.modules:
            self.discovery.modules.append(module)
        logger.debug("scanning module %s", module.__name__)

        namespace = vars(module)
        hints = annotations(module)
        for name, value in list(namespace.items()):
            if isinstance(value, types.FunctionType):
                if _is_local(value, module.__name__):
                    self.function(value, value, module)
            elif isinstance(value, type):
                if _is_local(value, module.__name__):
                    self.klass(value)
            elif not (name.startswith("__") and name.endswith("__")):
                self.field(module, name, value, hints.get(name, Unset))

        for name, annotation in hints.items():
            if name not in namespace:
                self.field(module, name, Unset, annotation)

    def function(self, function, member, owner, /):
        qualname = _qualname(function)
        if (descriptor := _single(member, markers(member), qualname)) is not None:
            if descriptor.kind in (DescriptorKind.ROOT, DescriptorKind.COMMAND):
                self.discovery.methods.append(CommandMethod(descriptor, function, owner if isinstance(owner, type) else None))
            else:
                raise UsageError(
                    f"{type(descriptor).__typename__} marker cannot be applied to function {qualname}",
                    member=function,
                    hint="Option and Argument markers belong on handler parameters, fields and properties",
                )
        if is_startup(member):
            self.startup(function)

    def startup(self, function, /):
        parameters = inspect.signature(function).parameters.values()
        positional = [
            parameter for parameter in parameters
            if parameter.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        ]
        if len(positional) > 1 or len(positional) != len(parameters):
            raise UsageError(
                f"startup hook {_qualname(function)} must take no parameters or a single Builder parameter",
                member=function,
                hint="declare it as def hook(): ... or def hook(builder): ...",
            )
        self.discovery.startups.append(function)

    def klass(self, cls, /):
        if id(cls) in self.seen:
            return
        self.seen.add(id(cls))
        logger.debug("scanning class %s", cls.__qualname__)
        qualname = _qualname(cls)
        if (descriptor := _single(cls, markers(cls), qualname)) is not None:
            if descriptor.kind in (DescriptorKind.ROOT, DescriptorKind.COMMAND):
                self.discovery.classes.append(CommandMethod(descriptor, owner=cls))
            else:
                raise UsageError(
                    f"{type(descriptor).__typename__} marker cannot be applied to class {qualname}",
                    member=cls,
                )

        namespace = vars(cls)
        hints = annotations(cls)
        instance_fields = set()
        if dataclasses.is_dataclass(cls):
            instance_fields = {field.name for field in dataclasses.fields(cls)}

        for name, value in namespace.items():
            if isinstance(value, staticmethod):
                self.function(value.__func__, value, cls)
            elif isinstance(value, types.FunctionType | classmethod):
                function = unwrap(value)
                if markers(value) or is_startup(value):
                    raise UsageError(
                        f"{_qualname(function)} must be static to be used as a command or startup hook",
                        member=function,
                        hint="decorate it with @staticmethod or move it to module level",
                    )
            elif isinstance(value, property | functools.cached_property):
                self.property(cls, name, value, hints.get(name, Unset))
            elif isinstance(value, type):
                if value.__qualname__ == f"{cls.__qualname__}.{name}":
                    self.klass(value)
            elif not (name.startswith("__") and name.endswith("__")):
                self.field(cls, name, value, hints.get(name, Unset), instance=name in instance_fields)

        for name, annotation in hints.items():
            if name not in namespace:
                self.field(cls, name, Unset, annotation, instance=True)

    def property(self, cls, name, value, annotation, /):
        qualname = _qualname(cls, name)
        if (descriptor := _single(value, markers(value), qualname)) is None:
            return
        if descriptor.kind is not DescriptorKind.OPTION:
            raise UsageError(
                f"{type(descriptor).__typename__} marker cannot be applied to property {qualname}",
                member=unwrap(value),
            )
        if annotation is Unset:
            annotation = inspect.signature(unwrap(value)).return_annotation
            if annotation is inspect.Signature.empty:
                annotation = Unset
        annotation, _, final = peel(annotation)
        cached = isinstance(value, functools.cached_property)
        self.discovery.globals.append(GlobalMember(
            descriptor,
            cls,
            name,
            "cached-property" if cached else "property",
            annotation,
            readonly=final or (not cached and value.fset is None),
            static=not cached,
        ))

    def field(self, owner, name, value, annotation, /, instance=False):
        annotation, metadata, final = peel(annotation)
        descriptors = [object for object in metadata if isinstance(object, Descriptor)]
        if isinstance(value, Descriptor):
            descriptors.append(value)
        elif (recorded := fields(owner).get(name)) is not None:
            descriptors.append(recorded)
        qualname = _qualname(owner, name)
        if (descriptor := _single(value, descriptors, qualname)) is None:
            return
        if not isinstance(descriptor, Option):
            raise UsageError(
                f"{type(descriptor).__typename__} marker cannot be applied to field {qualname}",
                hint="fields and properties can only declare global options",
            )
        self.discovery.globals.append(GlobalMember(
            descriptor,
            owner,
            name,
            "field",
            annotation,
            readonly=final,
            static=not instance,
        ))


def sources(*sources):
    """
    Expand discovery sources into module and class objects, in order.
    """
    for source in sources:
        if isinstance(source, types.ModuleType | type | types.FunctionType):
            yield source
        elif isinstance(source, str):
            names = mglob(source)
            if not names:
                raise ModuleNotFoundError(f"no module matches {source!r}")
            for name in names:
                yield importlib.import_module(name)
        else:
            raise TypeError(f"discovery source must be a module, a module name, a class or a function, not {type(source).__name__}")


def discover(*targets):
    """
    Scan modules, module names/globs and classes for markers.

    Raises UsageError as soon as an element carries more than one marker, a
    marker sits on a member that cannot hold it, a command or startup hook is
    not static, or a startup hook has an unsupported signature.
    """
    discovery = Discovery()
    scanner = _Scanner(discovery)
    for source in sources(*targets):
        if isinstance(source, type | types.FunctionType):
            if (module := inspect.getmodule(source)) is not None and module not in discovery.modules:
                discovery.modules.append(module)
            if isinstance(source, type):
                scanner.klass(source)
            elif id(source) not in scanner.seen:
                scanner.seen.add(id(source))
                scanner.function(source, source, None)
        else:
            scanner.module(source)
    logger.debug(
        "discovered %d command methods, %d class descriptors, %d global options, %d startup hooks",
        len(discovery.methods),
        len(discovery.classes),
        len(discovery.globals),
        len(discovery.startups),
    )
    return discovery


__all__ = (
    "command_name",
    "CommandMethod",
    "GlobalMember",
    "Discovery",
    "discover",
)
