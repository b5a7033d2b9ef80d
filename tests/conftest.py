"""Shared fixtures for the layersizes test suite."""

from __future__ import annotations

import hashlib
import io
import json
import tarfile
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

from layersizes.models import DirectoryNode


@pytest.fixture
def etc_tree_dict() -> Dict[str, Any]:
    """Root with two files and an ``etc`` directory."""
    return {
        "dirname": "/",
        "total_size": 1000,
        "files": {"file_1": 1, "file_2": 2},
        "directories": {
            "etc": {
                "dirname": "etc",
                "total_size": 100,
                "files": {"os-release": 3, "passwd": 4},
                "directories": {},
            }
        },
    }


@pytest.fixture
def etc_tree(etc_tree_dict: Dict[str, Any]) -> DirectoryNode:
    return DirectoryNode.from_dict(etc_tree_dict)


@pytest.fixture
def left_tree() -> DirectoryNode:
    return DirectoryNode.from_dict(
        {
            "dirname": "/",
            "total_size": 100,
            "files": {"secret": 10, "foobar": 20},
            "directories": {
                "etc": {
                    "dirname": "etc",
                    "total_size": 10,
                    "files": {"os-release": 10},
                    "directories": {},
                },
                "tmp": {"dirname": "tmp", "total_size": 0, "files": {}, "directories": {}},
            },
        }
    )


@pytest.fixture
def right_tree() -> DirectoryNode:
    return DirectoryNode.from_dict(
        {
            "dirname": "/",
            "total_size": 101,
            "files": {"asdf": 15, "foobar": 15, "iAmOnlyInD2": 3},
            "directories": {
                "etc": {
                    "dirname": "etc",
                    "total_size": 10,
                    "files": {"os-release": 10, "product": 1},
                    "directories": {},
                }
            },
        }
    )


@pytest.fixture
def chain_tree_dict() -> Callable[[int], Dict[str, Any]]:
    """Factory for a tree with one file and one subdirectory per level."""

    def build(depth: int) -> Dict[str, Any]:
        root: Dict[str, Any] = {"dirname": "/", "total_size": depth + 1, "files": {"f": 1}, "directories": {}}
        current = root
        for level in range(depth):
            child = {"dirname": "d", "total_size": depth - level, "files": {"f": 1}, "directories": {}}
            current["directories"]["d"] = child
            current = child
        return root

    return build

def _write_blob(layout: Path, content: bytes) -> str:
    digest = hashlib.sha256(content).hexdigest()
    path = layout / "blobs" / "sha256" / digest
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return f"sha256:{digest}"


def _gzipped_layer(files: Dict[str, int]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, size in files.items():
            info = tarfile.TarInfo(name)
            info.size = size
            archive.addfile(info, io.BytesIO(b"\0" * size))
    return buffer.getvalue()


@pytest.fixture
def oci_layout(tmp_path: Path) -> Path:
    """OCI image layout with two layers (``etc/passwd``, then ``usr/bin/app`` and ``etc/hosts``)."""
    layout = tmp_path / "layout"
    layout.mkdir()
    config_digest = _write_blob(layout, json.dumps({"architecture": "amd64", "os": "linux"}).encode())
    layers = [_gzipped_layer({"etc/passwd": 10}), _gzipped_layer({"usr/bin/app": 20, "etc/hosts": 1})]
    manifest = {
        "schemaVersion": 2,
        "config": {"mediaType": "application/vnd.oci.image.config.v1+json", "digest": config_digest},
        "layers": [
            {
                "mediaType": "application/vnd.oci.image.layer.v1.tar+gzip",
                "digest": _write_blob(layout, layer),
                "size": len(layer),
            }
            for layer in layers
        ],
    }
    manifest_digest = _write_blob(layout, json.dumps(manifest).encode())
    (layout / "index.json").write_text(
        json.dumps({"schemaVersion": 2, "manifests": [{"digest": manifest_digest}]})
    )
    return layout
