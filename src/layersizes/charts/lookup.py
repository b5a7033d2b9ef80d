"""Locate the node of one chart that corresponds to a node of another chart."""

from __future__ import annotations

import logging
from typing import Any, List, Protocol, Sequence

from layersizes.models import ComparisonNode

LOGGER = logging.getLogger(__name__)


class TreePosition(Protocol):
    """A node of a rendered chart that knows its parent and children."""

    data: Any

    def name(self) -> str: ...

    def parent(self) -> "TreePosition | None": ...

    def children(self) -> Sequence["TreePosition"]: ...


class ChartNode:
    """Wraps a :class:`ComparisonNode` with a back-reference to its parent."""

    __slots__ = ("data", "_parent", "_children")

    def __init__(self, data: ComparisonNode, parent: "ChartNode | None" = None) -> None:
        self.data = data
        self._parent = parent
        self._children: List[ChartNode] = []

    def name(self) -> str:
        return self.data.name

    def parent(self) -> "ChartNode | None":
        return self._parent

    def children(self) -> Sequence["ChartNode"]:
        return self._children

    def __repr__(self) -> str:
        return f"ChartNode({self.data.name!r})"


def hierarchy(root: ComparisonNode) -> ChartNode:
    """Wrap a whole comparison tree into :class:`ChartNode` objects."""
    top = ChartNode(root)
    pending = [top]
    while pending:
        node = pending.pop()
        for child in node.data.children:
            wrapped = ChartNode(child, node)
            node._children.append(wrapped)
            pending.append(wrapped)
    return top


def path_from_root(selected: TreePosition) -> List[str]:
    """Names leading from the root down to ``selected``.

    The root's own name is not part of the path: both charts share an
    implicit common root.
    """
    names: List[str] = []
    node: TreePosition | None = selected
    while node is not None and node.parent() is not None:
        names.append(node.name())
        node = node.parent()
    names.reverse()
    return names


def find_corresponding(selected: TreePosition, other_root: TreePosition | None) -> Any | None:
    """Return the data of the node at ``selected``'s path below ``other_root``.

    ``None`` is returned when any path segment has no match; entries that
    were renamed or moved cannot be found this way.
    """
    path = path_from_root(selected)
    current = other_root
    for segment in path:
        if current is None:
            break
        current = next((child for child in current.children() if child.name() == segment), None)

    if current is None:
        LOGGER.debug("No corresponding node for /%s", "/".join(path))
        return None
    return current.data
