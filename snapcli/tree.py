"""
SnapCLI command tree: root resolution and command placement.

resolve_root(discovery, fallback)
    Pick the root handler (if any) and the root description.
    - more than one Root marker (classes and functions together): UsageError
    - no Root/Command marker at all: UsageError
    - a Root marker wins; otherwise a single command method without declared
      name is promoted to root
    - description: root handler → class-level Root → fallback → ""

build(discovery, prog, fallback)
    Create the root node and place every other command. Commands are placed in
    ascending order of full-name length, so "a" exists before "a b" extends it.
    Only the last segment of a path receives the command's description,
    aliases and hidden flag. Placing a command on a node that was not newly
    created is a "multiple definitions" error. Parent commands left with
    neither subcommand nor handler, and not hidden, are rejected last.
"""
import logging

from .faults import UsageError
from .markers import DescriptorKind
from .utils import *

logger = logging.getLogger(__name__)


class CommandNode:
    """
    one command of the hierarchy.

    Children are looked up by exact name or alias (case-sensitive). The parent
    link is a back reference only. Options and arguments are owned by the node;
    shared (global) options are referenced by every node.
    """

    def __init__(self, name, description=Unset, parent=None):
        self.name = name
        self.description = description
        self.parent = parent
        self.aliases = []
        self.hidden = False
        self.children = {}
        self.handler = None
        self.options = []
        self.arguments = []
        self.shared = []
        self.declared = False

    @property
    def root(self):
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def path(self):
        """
        names from the root's first child down to this node (the root itself has an empty path).
        """
        names = []
        node = self
        while node.parent is not None:
            names.append(node.name)
            node = node.parent
        return tuple(reversed(names))

    @property
    def full_name(self):
        return " ".join(self.path)

    @property
    def bindings(self):
        return (*self.options, *self.arguments)

    def find(self, segment, /):
        """
        Return the child named or aliased segment, or None.
        """
        if (child := self.children.get(segment)) is not None:
            return child
        for child in self.children.values():
            if segment in child.aliases:
                return child
        return None

    def add(self, child, /):
        if self.find(child.name) is not None:
            raise UsageError(f"command {child.name!r} is declared twice under {self.full_name or 'the root'!r}")
        child.parent = self
        self.children[child.name] = child
        return child

    def alias(self, alias, /):
        if alias == self.name or alias in self.aliases:
            return
        if self.parent is not None and (other := self.parent.find(alias)) is not None and other is not self:
            raise UsageError(
                f"alias {alias!r} of command {self.full_name!r} collides with command {other.full_name!r}",
                hint="pick aliases that no sibling command uses as name or alias",
            )
        self.aliases.append(alias)

    def walk(self):
        """
        yield this node and its descendants, depth first, in insertion order.
        """
        yield self
        for child in self.children.values():
            yield from child.walk()

    def __repr__(self):
        return f"command-node({self.full_name or '<root>'!r})"

    def __rich_repr__(self):
        yield "name", self.name
        if self.aliases:
            yield "aliases", tuple(self.aliases)
        if self.description:
            yield "description", self.description
        if self.hidden:
            yield "hidden", True
        if self.handler is not None:
            yield "handler", self.handler
        if self.children:
            yield "children", tuple(self.children)


def resolve_root(discovery, fallback=Unset, /):
    """
    Return (root method or None, root description).
    """
    root_classes = [method for method in discovery.classes if method.kind is DescriptorKind.ROOT]
    root_methods = [method for method in discovery.methods if method.kind is DescriptorKind.ROOT]

    if (count := len(root_classes) + len(root_methods)) > 1:
        raise UsageError(
            f"only one root marker may be declared, found {count}",
            member=(root_classes + root_methods)[1].member,
            hint="keep @root on a single function or class",
        )
    if discovery.empty:
        raise UsageError(
            "the program must declare at least one function with @command or @root",
            hint="decorate a handler function with @command",
        )

    root_method = None
    root_class = None
    if root_classes:
        root_class, = root_classes
    elif root_methods:
        root_method, = root_methods
    elif len(discovery.methods) == 1 and discovery.methods[0].descriptor.name is Unset:
        root_method, = discovery.methods
        logger.debug("promoting %r to root", root_method)

    for candidate in (root_method, root_class):
        if candidate is not None and (description := candidate.description) is not Unset:
            return root_method, description
    return root_method, coalesce(fallback, None) or ""


def place(root, method, /):
    """
    Create the node of a command method and return it.
    """
    segments = method.command_name.split()
    if not segments:
        raise UsageError("a valid command name is required", member=method.member)

    parent = root
    node = None
    created = False
    for index, segment in enumerate(segments):
        if (node := parent.find(segment)) is None:
            last = index == len(segments) - 1
            node = parent.add(CommandNode(segment, method.description if last else Unset))
            created = True
        parent = node

    if not created:
        raise UsageError(
            f"command {method.command_name!r} has multiple definitions",
            member=method.member,
            hint="give each @command a distinct full name",
        )

    for alias in method.descriptor.aliases:
        node.alias(alias)
    node.hidden = method.descriptor.hidden
    node.declared = True
    logger.debug("placed %r", node)
    return node


def build(discovery, prog, fallback=Unset, /):
    """
    Build the command tree.

    Returns (root, placements) where placements lists (node, command method)
    pairs for every command method with a handler, root method first.
    """
    root_method, description = resolve_root(discovery, fallback)
    root = CommandNode(prog, description)
    root.declared = True
    placements = [(root, root_method)] if root_method is not None else []

    commands = [
        method for method in (*discovery.classes, *discovery.methods)
        if method.kind is DescriptorKind.COMMAND and method is not root_method
    ]
    for method in sorted(commands, key=lambda method: len(method.command_name)):
        node = place(root, method)
        if method.handler is not None:
            placements.append((node, method))
    validate(root, placements)
    return root, placements


def validate(root, placements, /):
    """
    Reject commands that can never run: no handler, no subcommand, not hidden.
    """
    handled = {id(node) for node, _ in placements}
    for node in root.walk():
        if node is root:
            continue
        if id(node) not in handled and not node.children and not node.hidden:
            raise UsageError(
                f"command {node.full_name!r} has no subcommands nor handler",
                hint="add a subcommand, bind a handler, or mark it hidden",
            )


__all__ = (
    "CommandNode",
    "resolve_root",
    "place",
    "build",
    "validate",
)
