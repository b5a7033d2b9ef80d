"""Flatten a directory tree into sunburst chart sequences."""

from __future__ import annotations

import logging
from typing import Iterator, List, Tuple

from layersizes.models import DirectoryNode, FlatChart

LOGGER = logging.getLogger(__name__)


def flatten(root: DirectoryNode, max_depth: int = -1) -> FlatChart:
    """Convert ``root`` into the labels/values/ids/parents of a sunburst chart.

    The root itself gets no row. At every level the files come first, then
    each subdirectory followed directly by its own contents (pre-order).
    ``max_depth <= 0`` disables the limit; otherwise the contents of a
    directory deeper than ``max_depth`` are left out, while the directory
    row itself is kept.
    """
    labels: List[str] = []
    values: List[int] = []
    ids: List[str] = []
    parents: List[str] = []

    def expand(node: DirectoryNode, prefix: str, depth: int) -> Iterator[Tuple[str, DirectoryNode]] | None:
        if max_depth > 0 and depth > max_depth:
            return None
        for fname, size in node.files.items():
            labels.append(fname)
            values.append(size)
            parents.append(prefix)
            ids.append(f"{prefix}/{fname}")
        return iter(node.subdirectories.items())

    stack: List[Tuple[Iterator[Tuple[str, DirectoryNode]], str, int]] = []
    entries = expand(root, "", 0)
    if entries is not None:
        stack.append((entries, "", 0))

    while stack:
        entries, prefix, depth = stack[-1]
        entry = next(entries, None)
        if entry is None:
            stack.pop()
            continue

        dirname, subdir = entry
        entry_id = f"{prefix}/{dirname}"
        labels.append(dirname)
        values.append(subdir.total_size)
        parents.append(prefix)
        ids.append(entry_id)

        children = expand(subdir, entry_id, depth + 1)
        if children is not None:
            stack.append((children, entry_id, depth + 1))

    LOGGER.debug("Flattened %s into %d entries (max_depth=%d)", root.name or "/", len(ids), max_depth)
    return FlatChart(
        labels=tuple(labels),
        values=tuple(values),
        ids=tuple(ids),
        parents=tuple(parents),
    )
