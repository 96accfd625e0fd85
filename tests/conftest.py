"""Shared fixtures: a fake metadata extractor and a notes tree builder."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Dict

import pytest

from typstindex.errors import MetadataExtractionError
from typstindex.index.storage import DocumentStore


def fake_extract_metadata(path: Path) -> Dict[str, object]:
    """Read ``// key: value`` header lines instead of running typst."""
    metadata: Dict[str, object] = {}
    text = Path(path).read_text(encoding="utf-8")
    for line in text.splitlines():
        if not line.startswith("// "):
            break
        key, _, value = line[3:].partition(":")
        key, value = key.strip(), value.strip()
        if key in ("topics", "entities"):
            metadata[key] = [item.strip() for item in value.split(",") if item.strip()]
        else:
            metadata[key] = value
    if not metadata:
        raise MetadataExtractionError(f"No metadata in {path}")
    return metadata


def make_note(
    root: Path,
    name: str,
    *,
    title: str | None = None,
    status: str | None = None,
    doc_type: str | None = None,
    topics: list[str] | None = None,
    body: str = "Body text.",
    mtime: int | None = None,
) -> Path:
    header = []
    if title is not None:
        header.append(f"// title: {title}")
    if status is not None:
        header.append(f"// status: {status}")
    if doc_type is not None:
        header.append(f"// type: {doc_type}")
    if topics is not None:
        header.append(f"// topics: {', '.join(topics)}")
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(header + ["", body]) + "\n", encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def extractor() -> Callable[[Path], Dict[str, object]]:
    return fake_extract_metadata


@pytest.fixture
def notes_dir(tmp_path: Path) -> Path:
    root = tmp_path / "notes"
    root.mkdir()
    return root


@pytest.fixture
def store(tmp_path: Path):
    db = DocumentStore(tmp_path / "database" / "test.db")
    yield db
    db.close()
