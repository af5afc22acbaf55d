"""atomica Attribute Engine — memoized attributes over an immutable tree.

An attribute is a pure function of a tree node. Because the tree never
changes, the value of an attribute at a node is computed at most once per run
and cached under ``(attribute name, node id)``. Node ids are stable integers
assigned in pre-order when the tree is indexed.

Some attributes are mutually dependent (the expected type of one side of an
equality is the type of the other side, whose type may depend on the expected
type of the first). Re-entrant evaluation of the same attribute at the same
node is detected and raised as ``AttributeCycleError``; callers that can cycle
catch it and fall back to the error-absorbing unknown value.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
from typing import Any, Callable, Iterator, Optional, TypeVar

from atomica.ast_nodes import Node, Program

logger = logging.getLogger(__name__)

N = TypeVar("N", bound=Node)


class AttributeCycleError(Exception):
    """Raised when an attribute depends on its own value at the same node."""

    def __init__(self, attribute: str, node: Node):
        self.attribute = attribute
        self.node = node
        super().__init__(f"Cycle detected in attribute '{attribute}' at {type(node).__name__}")


def iter_children(node: Node) -> Iterator[Node]:
    """Yield the direct children of a node in declaration (document) order."""
    for f in dataclasses.fields(node):
        if f.name == "location":
            continue
        value = getattr(node, f.name)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, Node):
                    yield item


class Tree:
    """Structural index over a program tree: node ids and parent links."""

    def __init__(self, root: Program):
        self.root = root
        self._ids: dict[int, int] = {}
        self._nodes: list[Node] = []
        self._parent: dict[int, Node] = {}
        self._index(root, None)

    def _index(self, root: Node, parent: Optional[Node]) -> None:
        stack: list[tuple[Node, Optional[Node]]] = [(root, parent)]
        while stack:
            current, up = stack.pop()
            key = id(current)
            if key in self._ids:
                continue
            self._ids[key] = len(self._nodes)
            self._nodes.append(current)
            if up is not None:
                self._parent[key] = up
            children = list(iter_children(current))
            for child in reversed(children):
                stack.append((child, current))

    def node_id(self, node: Node) -> int:
        try:
            return self._ids[id(node)]
        except KeyError:
            raise KeyError(f"{type(node).__name__} is not part of this tree") from None

    def contains(self, node: Node) -> bool:
        return id(node) in self._ids

    def parent(self, node: Node) -> Optional[Node]:
        return self._parent.get(id(node))

    def ancestors(self, node: Node) -> Iterator[Node]:
        """Yield the strict ancestors of a node, innermost first."""
        current = self.parent(node)
        while current is not None:
            yield current
            current = self.parent(current)

    def enclosing(self, node: Node, kind: type[N] | tuple[type, ...]) -> Optional[N]:
        for ancestor in self.ancestors(node):
            if isinstance(ancestor, kind):
                return ancestor  # type: ignore[return-value]
        return None

    def descendants(self, node: Node) -> Iterator[Node]:
        """Yield node and all of its descendants in document order."""
        yield node
        for child in iter_children(node):
            yield from self.descendants(child)

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes)


def attribute(method: Callable[[Any, N], Any]) -> Callable[[Any, N], Any]:
    """Turn a method of an ``Attribution`` subclass into a cached attribute."""
    name = method.__name__

    @functools.wraps(method)
    def wrapper(self: Attribution, node: N) -> Any:
        return self._evaluate(name, method, node)

    return wrapper


class Attribution:
    """Base class for attribute definitions over one tree.

    One instance serves exactly one run; the memo table is never shared.
    """

    def __init__(self, tree: Tree):
        self.tree = tree
        self._memo: dict[tuple[str, int], Any] = {}
        self._active: set[tuple[str, int]] = set()

    def _evaluate(self, name: str, method: Callable[[Any, N], Any], node: N) -> Any:
        key = (name, self.tree.node_id(node))
        if key in self._memo:
            return self._memo[key]
        if key in self._active:
            raise AttributeCycleError(name, node)
        self._active.add(key)
        try:
            value = method(self, node)
        finally:
            self._active.discard(key)
        self._memo[key] = value
        return value

    @property
    def cache_size(self) -> int:
        return len(self._memo)
