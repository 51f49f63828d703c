"""
SnapCLI shared (global) options.

A global option is backed by static storage: a module attribute, a class
attribute, or a property defined on a class (read and written with the class
in place of an instance). Every command node references it, and before each
handler runs its initializer writes the parsed value, or the storage's own
value when nothing was parsed, back into the storage.

Rejected storage (UsageError)
- read-only: annotated Final, or a property without setter
- non-static: a dataclass instance field, an annotated class field without a
  class-level value, a functools.cached_property
"""
import logging

from .bindings import Supplier, synthesize
from .faults import UsageError
from .markers import Option, record
from .utils import *

logger = logging.getLogger(__name__)


class Storage:
    """
    read/write accessor for one static member.
    """
    __slots__ = ("owner", "name", "descriptor")

    def __init__(self, owner, name, descriptor=None):
        self.owner = owner
        self.name = name
        self.descriptor = descriptor

    def get(self):
        if self.descriptor is not None:
            return self.descriptor.fget(self.owner)
        return getattr(self.owner, self.name)

    def set(self, value, /):
        if self.descriptor is not None:
            self.descriptor.fset(self.owner, value)
        else:
            setattr(self.owner, self.name, value)

    def __repr__(self):
        owner = getattr(self.owner, "__qualname__", None) or self.owner.__name__
        return f"storage({owner}.{self.name})"


class GlobalOption:
    """
    an option binding plus the static storage behind it.
    """
    __slots__ = ("binding", "storage", "member")

    def __init__(self, binding, storage, member=None):
        self.binding = binding
        self.storage = storage
        self.member = member

    def initialize(self, context, /):
        """
        write the parsed value (or the current storage value) into the storage.
        """
        value = context.value(self.binding)
        logger.debug("initializing %r with %r", self.storage, value)
        self.storage.set(value)

    def __repr__(self):
        return f"global-option({self.binding.name!r}, {self.storage!r})"

    def __rich_repr__(self):
        yield "binding", self.binding
        yield "storage", self.storage


def _check(member, /):
    if member.readonly:
        raise UsageError(
            f"{member.storage} {member.qualname} declared as global option must be writable",
            hint="drop the Final annotation" if member.storage == "field" else "add a setter to the property",
        )
    if not member.static:
        raise UsageError(
            f"{member.storage} {member.qualname} declared as global option must be static",
            hint="assign a class-level value, or move the option to module level",
        )


def inject(members, /):
    """
    Create the GlobalOption of every discovered global member, in declaration order.

    A field whose value is the Option marker itself is replaced by the marker's
    default (None when it has none) so that the storage always holds a plain value;
    the marker is recorded on the owner so later scans still find it.
    """
    options = []
    for member in members:
        _check(member)
        descriptor = None
        if member.storage == "property":
            descriptor = vars(member.owner)[member.name]
        storage = Storage(member.owner, member.name, descriptor)

        if member.storage == "field":
            current = getattr(member.owner, member.name, Unset)
            if isinstance(current, Option) or current is Unset:
                replacement = member.descriptor.default if isinstance(current, Option) else Unset
                storage.set(coalesce(replacement, None))
                record(member.owner, member.name, member.descriptor)

        binding = synthesize(member.descriptor, member.name, member.annotation, Supplier(storage.get), member=member.qualname)
        options.append(option := GlobalOption(binding, storage, member))
        logger.debug("injected %r", option)
    return options


__all__ = (
    "Storage",
    "GlobalOption",
    "inject",
)
