"""Structural comparison of two directory trees."""

from __future__ import annotations

import logging
from typing import List, Mapping, Tuple

from layersizes.models import Color, ComparisonNode, DirectoryNode

LOGGER = logging.getLogger(__name__)

_EMPTY: Mapping = {}


def size_color(size: float, other_size: float | None) -> Color:
    """Classify ``size`` against the counterpart's size (``None`` if absent)."""
    if other_size is None:
        return Color.BLUE
    if size == other_size:
        return Color.YELLOW
    if size > other_size:
        return Color.RED
    return Color.GREEN


def _build(node: DirectoryNode, counterpart: DirectoryNode | None) -> ComparisonNode:
    """Build the comparison tree of ``node`` colored against ``counterpart``.

    Only entries of ``node`` appear in the result; ``counterpart`` is
    consulted by name at the same position.
    """
    root = ComparisonNode(
        name=node.name,
        value=0,
        color=size_color(node.total_size, None if counterpart is None else counterpart.total_size),
    )
    pending: List[Tuple[DirectoryNode, DirectoryNode | None, ComparisonNode]] = [
        (node, counterpart, root)
    ]
    while pending:
        current, other, out = pending.pop()
        other_files = other.files if other is not None else _EMPTY
        other_dirs = other.subdirectories if other is not None else _EMPTY

        for fname, size in current.files.items():
            out.children.append(
                ComparisonNode(name=fname, value=size, color=size_color(size, other_files.get(fname)))
            )

        for dirname, subdir in current.subdirectories.items():
            other_subdir = other_dirs.get(dirname)
            child = ComparisonNode(
                name=dirname,
                value=0,
                color=size_color(
                    subdir.total_size,
                    None if other_subdir is None else other_subdir.total_size,
                ),
            )
            out.children.append(child)
            pending.append((subdir, other_subdir, child))

    return root


def compare(
    left: DirectoryNode | None, right: DirectoryNode | None
) -> Tuple[ComparisonNode | None, ComparisonNode | None]:
    """Compare two trees and return the annotated left and right views.

    A side that is ``None`` yields ``None``; the other side is then built
    entirely in ``blue``.
    """
    left_view = _build(left, right) if left is not None else None
    right_view = _build(right, left) if right is not None else None
    LOGGER.debug(
        "Compared trees (left present: %s, right present: %s)",
        left is not None,
        right is not None,
    )
    return left_view, right_view
