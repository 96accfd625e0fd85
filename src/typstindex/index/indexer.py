"""Incremental document indexing pipeline."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from typstindex.errors import (
    FileUnavailableError,
    MetadataExtractionError,
    StoreDisabledError,
)
from typstindex.index.storage import DocumentStore
from typstindex.ingestion.metadata import extract_metadata
from typstindex.models import Document
from typstindex.utils.files import compute_fingerprint, fingerprint, iter_document_paths
from typstindex.utils.text import as_string_list, build_preview

LOGGER = logging.getLogger(__name__)

MetadataExtractor = Callable[[Path], Mapping[str, Any]]


@dataclass(slots=True)
class IndexStats:
    indexed: int = 0
    unchanged: int = 0
    failed: int = 0
    removed: int = 0
    cancelled: bool = False
    processed_files: list[Path] = field(default_factory=list)
    errors: Dict[Path, str] = field(default_factory=dict)

    def increment(self, changed: bool, path: Path) -> None:
        if changed:
            self.indexed += 1
        else:
            self.unchanged += 1
        self.processed_files.append(path)

    def record_failure(self, path: Path, error: Exception) -> None:
        self.failed += 1
        self.errors[path] = str(error)
        self.processed_files.append(path)

    @property
    def success_count(self) -> int:
        return self.indexed + self.unchanged

    @property
    def failure_count(self) -> int:
        return self.failed

    def as_tuple(self) -> tuple[int, int]:
        return self.success_count, self.failure_count


def _metadata_text(metadata: Mapping[str, Any], key: str, default: str) -> str:
    value = metadata.get(key)
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def build_document(
    path: Path,
    content: str,
    metadata: Mapping[str, Any],
    *,
    mtime: int,
    preview_chars: int = 2000,
    store_full_content: bool = True,
) -> Document:
    """Derive the Document for ``path`` from its content and metadata."""
    topics = metadata.get("topics")
    if topics is None:
        topics = metadata.get("tags")
    return Document(
        filepath=str(path),
        title=_metadata_text(metadata, "title", path.stem),
        doc_type=_metadata_text(metadata, "type", "document"),
        status=_metadata_text(metadata, "status", "draft"),
        date=_metadata_text(metadata, "date", date.today().isoformat()),
        modified_time=mtime,
        content_hash=fingerprint(content.encode("utf-8")),
        content_preview=build_preview(content, max_chars=preview_chars),
        full_content=content if store_full_content else None,
        topics=as_string_list(topics),
        entities=as_string_list(metadata.get("entities")),
    )


def read_document_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise FileUnavailableError(path, f"Cannot read file ({exc.strerror or exc})") from exc


def decode_document(path: Path, raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FileUnavailableError(path, "File is not valid UTF-8") from exc


def file_mtime(path: Path) -> int:
    try:
        stat = path.stat()
    except OSError as exc:
        raise FileUnavailableError(path, "File not readable") from exc
    if not path.is_file():
        raise FileUnavailableError(path, "Not a regular file")
    return int(stat.st_mtime)


def load_metadata(extractor: Optional[MetadataExtractor], path: Path) -> Dict[str, Any]:
    """Call the metadata collaborator, degrading to an empty mapping on failure."""
    if extractor is None:
        return {}
    try:
        metadata = extractor(path)
    except MetadataExtractionError as exc:
        LOGGER.debug("No metadata for %s, using defaults: %s", path, exc)
        return {}
    except Exception as exc:
        LOGGER.warning("Metadata extraction failed for %s, using defaults: %s", path, exc)
        return {}
    if not isinstance(metadata, Mapping):
        LOGGER.debug("Metadata for %s is not a mapping, using defaults", path)
        return {}
    return dict(metadata)


class Indexer:
    """Keeps the document store in step with the files on disk."""

    def __init__(
        self,
        store: Optional[DocumentStore],
        *,
        extractor: Optional[MetadataExtractor] = extract_metadata,
        preview_chars: int = 2000,
        store_full_content: bool = True,
        extension: str = ".typ",
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.preview_chars = preview_chars
        self.store_full_content = store_full_content
        self.extension = extension

    @property
    def enabled(self) -> bool:
        return self.store is not None

    def _require_store(self) -> DocumentStore:
        if self.store is None:
            raise StoreDisabledError()
        return self.store

    def needs_reindex(self, path: Path) -> bool:
        """Return True when the stored record for ``path`` is missing or stale."""
        path = Path(path).resolve()
        return self._is_stale(path, file_mtime(path))

    def _is_stale(self, path: Path, current_mtime: int) -> bool:
        store = self._require_store()
        record = store.get_record(str(path))
        if record is None or record.get("modified_time") is None:
            return True
        if current_mtime > int(record["modified_time"]):
            return True

        # Same-second writes and coarse clocks leave mtime unchanged
        try:
            current_hash = compute_fingerprint(path)
        except OSError as exc:
            raise FileUnavailableError(path, f"Cannot read file ({exc.strerror or exc})") from exc
        return current_hash != record.get("content_hash")

    def index_document(self, path: Path, *, force: bool = False) -> bool:
        """Index a single document. Returns True when the stored row changed."""
        store = self._require_store()
        path = Path(path).resolve()
        mtime = file_mtime(path)

        if not force and not self._is_stale(path, mtime):
            LOGGER.debug("Document is up to date: %s", path)
            return False

        content = decode_document(path, read_document_bytes(path))
        metadata = load_metadata(self.extractor, path)
        document = build_document(
            path,
            content,
            metadata,
            mtime=mtime,
            preview_chars=self.preview_chars,
            store_full_content=self.store_full_content,
        )
        store.upsert_document(document)
        LOGGER.debug("Indexed document: %s", path.name)
        return True

    def _walk(
        self,
        root: Path,
        *,
        force: bool,
        cancel: Optional[threading.Event],
    ) -> IndexStats:
        stats = IndexStats()
        for path in iter_document_paths(root, self.extension):
            if cancel is not None and cancel.is_set():
                LOGGER.warning("Indexing cancelled after %d files", len(stats.processed_files))
                stats.cancelled = True
                break
            try:
                changed = self.index_document(path, force=force)
            except StoreDisabledError:
                raise
            except Exception as exc:
                LOGGER.warning("Failed to index %s: %s", path, exc)
                stats.record_failure(path, exc)
            else:
                stats.increment(changed, path)
        return stats

    def _check_root(self, root: Path) -> bool:
        if not self.enabled:
            LOGGER.warning("Database not enabled")
            return False
        if not Path(root).is_dir():
            LOGGER.warning("Notes directory not found: %s", root)
            return False
        return True

    def rebuild_index(self, root: Path, *, cancel: Optional[threading.Event] = None) -> IndexStats:
        """Re-extract every document under ``root`` and drop rows for deleted files."""
        root = Path(root).resolve()
        if not self._check_root(root):
            return IndexStats()

        LOGGER.info("Rebuilding document index under %s", root)
        stats = self._walk(root, force=True, cancel=cancel)
        if not stats.cancelled:
            stats.removed = self._require_store().remove_missing_files(root)
        LOGGER.info(
            "Index rebuild complete: %d successful, %d failed",
            stats.success_count,
            stats.failure_count,
        )
        return stats

    def sync_filesystem(
        self,
        root: Path,
        *,
        cancel: Optional[threading.Event] = None,
        prune: bool = False,
    ) -> IndexStats:
        """Incrementally index ``root``; unchanged files are no-ops."""
        root = Path(root).resolve()
        if not self._check_root(root):
            return IndexStats()

        stats = self._walk(root, force=False, cancel=cancel)
        if prune and not stats.cancelled:
            stats.removed = self._require_store().remove_missing_files(root)
        if stats.indexed or stats.failed or stats.removed:
            LOGGER.info(
                "Filesystem sync: %d updates, %d failures, %d removed",
                stats.indexed,
                stats.failed,
                stats.removed,
            )
        return stats

    def remove_document(self, path: Path) -> bool:
        return self._require_store().remove_document(str(Path(path).resolve()))

    def prune(self, root: Optional[Path] = None) -> int:
        return self._require_store().remove_missing_files(root)


def scan_documents(
    root: Path,
    *,
    extractor: Optional[MetadataExtractor] = extract_metadata,
    extension: str = ".typ",
    preview_chars: int = 2000,
) -> Iterator[Document]:
    """Derive documents straight from the filesystem, without any store.

    Unreadable files are skipped with a warning.
    """
    root = Path(root).resolve()
    if not root.is_dir():
        LOGGER.warning("Notes directory does not exist: %s", root)
        return
    for path in iter_document_paths(root, extension):
        path = path.resolve()
        try:
            mtime = file_mtime(path)
            content = decode_document(path, read_document_bytes(path))
        except FileUnavailableError as exc:
            LOGGER.warning("Skipping %s", exc)
            continue
        yield build_document(
            path,
            content,
            load_metadata(extractor, path),
            mtime=mtime,
            preview_chars=preview_chars,
            store_full_content=False,
        )
