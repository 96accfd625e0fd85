"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Iterator


def iter_document_paths(root: Path, extension: str = ".typ") -> Iterator[Path]:
    """Yield document paths under ``root`` in sorted walk order.

    Directories are visited lazily so large trees are never collected upfront.
    Hidden directories are skipped.
    """
    root = Path(root)
    if root.is_file():
        if root.suffix.lower() == extension.lower():
            yield root
        return
    if not root.is_dir():
        return

    suffix = extension.lower()
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
        for name in sorted(filenames):
            if name.lower().endswith(suffix):
                yield Path(dirpath) / name


def fingerprint(content: bytes) -> str:
    """Return the change-detection signature of ``content``."""
    return hashlib.sha256(content).hexdigest()


def compute_fingerprint(path: Path) -> str:
    """Compute the fingerprint of a file without loading it whole."""
    sha = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()
