"""Core layersizes data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import numpy as np


@dataclass(frozen=True, slots=True)
class DirectoryNode:
    """Sizes of a directory, its files and all of its subdirectories.

    ``total_size`` is taken as reported by the producer and never
    recomputed from the children.
    """

    name: str
    total_size: int = 0
    files: Mapping[str, int] = field(default_factory=dict)
    subdirectories: Mapping[str, "DirectoryNode"] = field(default_factory=dict)

    # Mapping fields cannot be hashed.
    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DirectoryNode":
        """Build a tree from its JSON shape.

        Absent ``files`` or ``directories`` become empty mappings. The
        conversion walks the input with an explicit stack so arbitrarily
        deep trees are accepted.
        """
        root_files: Dict[str, int] = {}
        root_dirs: Dict[str, DirectoryNode] = {}
        pending: List[Tuple[Mapping[str, Any], Dict[str, int], Dict[str, DirectoryNode]]] = [
            (data, root_files, root_dirs)
        ]
        # Children are constructed before their parents: collect in pre-order
        # and build in reverse.
        order: List[Tuple[Mapping[str, Any], Dict[str, int], Dict[str, DirectoryNode], Dict[str, Any]]] = []
        while pending:
            raw, files, dirs = pending.pop()
            files.update(raw.get("files") or {})
            children: Dict[str, Any] = {}
            for name, sub in (raw.get("directories") or {}).items():
                sub_files: Dict[str, int] = {}
                sub_dirs: Dict[str, DirectoryNode] = {}
                children[name] = (sub, sub_files, sub_dirs)
                pending.append((sub, sub_files, sub_dirs))
            order.append((raw, files, dirs, children))

        built: Dict[int, DirectoryNode] = {}
        for raw, files, dirs, children in reversed(order):
            for name, (sub, _, _) in children.items():
                dirs[name] = built[id(sub)]
            built[id(raw)] = cls(
                name=raw.get("dirname", ""),
                total_size=raw.get("total_size", 0),
                files=files,
                subdirectories=dirs,
            )
        return built[id(data)]

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON shape consumed by :meth:`from_dict`."""
        result: Dict[str, Any] = {}
        pending: List[Tuple[DirectoryNode, Dict[str, Any]]] = [(self, result)]
        while pending:
            node, out = pending.pop()
            out["dirname"] = node.name
            out["total_size"] = node.total_size
            out["files"] = dict(node.files)
            out["directories"] = {}
            for name, sub in node.subdirectories.items():
                child: Dict[str, Any] = {}
                out["directories"][name] = child
                pending.append((sub, child))
        return result

    def to_rows(self) -> List[Dict[str, Any]]:
        """Return the tree as a flat pre-order list of directory rows.

        Each row holds its own files and the index of its parent row (-1 for
        the root) together with the key it has in the parent's mapping.
        """
        rows: List[Dict[str, Any]] = []
        pending: List[Tuple[DirectoryNode, str, int]] = [(self, self.name, -1)]
        while pending:
            node, key, parent = pending.pop()
            index = len(rows)
            rows.append(
                {
                    "key": key,
                    "parent": parent,
                    "dirname": node.name,
                    "total_size": node.total_size,
                    "files": dict(node.files),
                }
            )
            for name, sub in reversed(list(node.subdirectories.items())):
                pending.append((sub, name, index))
        return rows

    @classmethod
    def from_rows(cls, rows: Sequence[Mapping[str, Any]]) -> "DirectoryNode":
        """Rebuild a tree from the output of :meth:`to_rows`."""
        if not rows:
            raise ValueError("Cannot rebuild a tree from zero rows")

        children: List[List[int]] = [[] for _ in rows]
        for index, row in enumerate(rows):
            if row["parent"] >= 0:
                children[row["parent"]].append(index)

        built: List[DirectoryNode | None] = [None] * len(rows)
        for index in range(len(rows) - 1, -1, -1):
            row = rows[index]
            built[index] = cls(
                name=row.get("dirname", ""),
                total_size=row.get("total_size", 0),
                files=dict(row.get("files") or {}),
                subdirectories={rows[child]["key"]: built[child] for child in children[index]},
            )
        return built[0]  # type: ignore[return-value]


def layers_from_dict(data: Mapping[str, Any]) -> Dict[str, DirectoryNode]:
    """Convert a ``{layer_digest: tree}`` reply into directory trees."""
    return {digest: DirectoryNode.from_dict(tree) for digest, tree in data.items()}


@dataclass(frozen=True, slots=True)
class FlatChart:
    """Parallel sequences describing one sunburst chart.

    ``ids`` are path-like (``/etc/passwd``) and ``parents`` hold the id of the
    containing entry, ``""`` for top-level entries.
    """

    labels: Tuple[str, ...] = ()
    values: Tuple[int, ...] = ()
    ids: Tuple[str, ...] = ()
    parents: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.ids)

    def largest(self, top_k: int = 10) -> List[Tuple[str, int]]:
        """Return the ``top_k`` largest entries as ``(id, size)``, biggest first."""
        if not self.ids or top_k <= 0:
            return []

        sizes = np.asarray(self.values, dtype="float64")
        if top_k < len(sizes):
            top_indices = np.argpartition(sizes, -top_k)[-top_k:]
            top_indices = top_indices[np.argsort(sizes[top_indices], kind="stable")[::-1]]
        else:
            top_indices = np.argsort(sizes, kind="stable")[::-1]

        return [(self.ids[idx], self.values[idx]) for idx in top_indices]


class Color(str, Enum):
    """Outcome of comparing one entry against its counterpart."""

    RED = "red"
    GREEN = "green"
    BLUE = "blue"
    YELLOW = "yellow"


@dataclass(slots=True)
class ComparisonNode:
    """Node of a color-annotated comparison tree."""

    name: str
    value: int
    color: Color
    children: List["ComparisonNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        pending: List[Tuple[ComparisonNode, Dict[str, Any]]] = [(self, result)]
        while pending:
            node, out = pending.pop()
            out.update(name=node.name, value=node.value, color=node.color.value, children=[])
            for child in node.children:
                child_out: Dict[str, Any] = {}
                out["children"].append(child_out)
                pending.append((child, child_out))
        return result


@dataclass(slots=True)
class ImageHistoryEntry:
    """Analysis results of one image digest."""

    tags: List[str]
    contents: Dict[str, DirectoryNode]
    inspect_info: Dict[str, Any] = field(default_factory=dict)
    id: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImageHistoryEntry":
        return cls(
            tags=list(data.get("Tags") or []),
            contents=layers_from_dict(data.get("Contents") or {}),
            inspect_info=dict(data.get("InspectInfo") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Tags": list(self.tags),
            "Contents": {digest: tree.to_dict() for digest, tree in self.contents.items()},
            "InspectInfo": dict(self.inspect_info),
        }


@dataclass(slots=True)
class ImageHistory:
    """All analysed digests of one image name."""

    name: str
    history: Dict[str, ImageHistoryEntry] = field(default_factory=dict)
    id: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImageHistory":
        return cls(
            name=data.get("Name", ""),
            history={
                digest: ImageHistoryEntry.from_dict(entry)
                for digest, entry in (data.get("History") or {}).items()
            },
            id=data.get("ID"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "Name": self.name,
            "History": {digest: entry.to_dict() for digest, entry in self.history.items()},
        }
        if self.id is not None:
            result["ID"] = self.id
        return result
