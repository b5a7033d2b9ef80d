"""Compute directory size trees from container image layers."""

from __future__ import annotations

import json
import logging
import tarfile
from pathlib import Path
from typing import IO, Any, Dict, List

from layersizes.models import DirectoryNode
from layersizes.utils.files import blob_path, compute_sha256, split_digest

LOGGER = logging.getLogger(__name__)

LAYER_MEDIA_TYPES = frozenset(
    {
        "application/vnd.oci.image.layer.v1.tar+gzip",
        "application/vnd.oci.image.layer.v1.tar",
        "application/vnd.docker.image.rootfs.diff.tar.gzip",
    }
)
CONFIG_MEDIA_TYPE = "application/vnd.oci.image.config.v1+json"


def make_dir(dirname: str) -> Dict[str, Any]:
    """An empty directory in its JSON shape."""
    return {"dirname": dirname, "total_size": 0, "files": {}, "directories": {}}


def insert_file(tree: Dict[str, Any], path: str, size: int) -> None:
    """Insert the file at ``path`` into ``tree``, updating every ``total_size``.

    Missing intermediate directories are created. ``tree`` is modified in
    place.
    """
    parts = [part for part in path.split("/") if part and part != "."]
    if not parts:
        return

    node = tree
    node["total_size"] += size
    for dirname in parts[:-1]:
        directories = node["directories"]
        if dirname not in directories:
            directories[dirname] = make_dir(dirname)
        node = directories[dirname]
        node["total_size"] += size
    node["files"][parts[-1]] = size


def tree_from_tar(source: Path | str | IO[bytes]) -> DirectoryNode:
    """Directory tree of a (possibly compressed) layer tarball.

    Directory members are skipped; every other member counts with its size.
    """
    tree = make_dir("/")
    if isinstance(source, (str, Path)):
        archive = tarfile.open(source, mode="r:*")
    else:
        archive = tarfile.open(fileobj=source, mode="r:*")

    with archive:
        for member in archive:
            if member.isdir():
                continue
            insert_file(tree, member.name, member.size)

    return DirectoryNode.from_dict(tree)


def _read_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def manifest_digest(layout_dir: Path) -> str:
    """Digest of the image manifest listed in the layout's ``index.json``."""
    index_path = Path(layout_dir) / "index.json"
    if not index_path.exists():
        raise ValueError(f"Not an OCI image layout (missing index.json): {layout_dir}")

    manifests = _read_json(index_path).get("manifests") or []
    if not manifests:
        raise ValueError(f"No manifest found in {index_path}")
    if len(manifests) > 1:
        LOGGER.warning("%s lists %d manifests, using the first one", index_path, len(manifests))
    return manifests[0]["digest"]


def read_manifest(layout_dir: Path) -> Dict[str, Any]:
    """Load the image manifest referenced by the layout's ``index.json``."""
    return _read_json(blob_path(layout_dir, manifest_digest(layout_dir)))


def read_image_config(layout_dir: Path) -> Dict[str, Any]:
    """Load the image configuration blob of an OCI image layout."""
    config = read_manifest(layout_dir).get("config") or {}
    media_type = config.get("mediaType")
    if media_type != CONFIG_MEDIA_TYPE:
        raise ValueError(f"Invalid media type: {media_type}")
    return _read_json(blob_path(layout_dir, config["digest"]))


def analyze_oci_layout(layout_dir: Path, *, verify: bool = False) -> Dict[str, DirectoryNode]:
    """Directory trees of all layers of an OCI image layout, keyed by hex digest."""
    layout_dir = Path(layout_dir)
    manifest = read_manifest(layout_dir)

    layers: Dict[str, DirectoryNode] = {}
    descriptors: List[Dict[str, Any]] = manifest.get("layers") or []
    for descriptor in descriptors:
        media_type = descriptor.get("mediaType")
        if media_type not in LAYER_MEDIA_TYPES:
            raise ValueError(f"Invalid media type: {media_type}")

        digest = descriptor.get("digest", "")
        _, hex_digest = split_digest(digest)
        path = blob_path(layout_dir, digest)
        if verify and compute_sha256(path) != hex_digest:
            raise ValueError(f"Digest mismatch for layer {digest}")

        LOGGER.info("Analyzing layer %s", digest)
        layers[hex_digest] = tree_from_tar(path)

    return layers
