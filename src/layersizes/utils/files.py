"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
from pathlib import Path


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()


def split_digest(digest: str) -> tuple[str, str]:
    """Split ``sha256:<hex>`` into its algorithm and hex parts."""
    parts = digest.split(":")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid digest: {digest}")
    return parts[0], parts[1]


def blob_path(layout_dir: Path, digest: str) -> Path:
    """Location of a blob inside an OCI image layout."""
    algorithm, hex_digest = split_digest(digest)
    return Path(layout_dir) / "blobs" / algorithm / hex_digest
