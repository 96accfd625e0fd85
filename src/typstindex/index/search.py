"""Filtered document search over the store, with a filesystem fallback."""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from typstindex.errors import (
    MalformedQueryResultError,
    StoreDisabledError,
    StoreUnavailableError,
)
from typstindex.index.indexer import Indexer, MetadataExtractor, scan_documents
from typstindex.index.query import parse_query
from typstindex.index.storage import DocumentStore
from typstindex.ingestion.metadata import extract_metadata
from typstindex.models import Document, SearchFilter, SearchOptions

LOGGER = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
RECENT_DAYS = 7


def _utcnow() -> datetime:
    # Store timestamps are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(slots=True)
class DocumentStats:
    total_count: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)
    recent_count: int = 0


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a store timestamp (UTC, with or without fractional seconds)."""
    if not value:
        return None
    for fmt in (TIMESTAMP_FORMAT, "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def matches_filter(document: Document, search_filter: SearchFilter) -> bool:
    if search_filter.is_empty:
        return True
    if search_filter.tag and search_filter.tag not in document.topics:
        return False
    if search_filter.status and document.status != search_filter.status:
        return False
    if search_filter.doc_type and document.doc_type != search_filter.doc_type:
        return False
    if search_filter.free_text:
        needle = search_filter.free_text.lower()
        haystacks = [document.title, document.content_preview, document.filepath, *document.topics]
        if not any(needle in (text or "").lower() for text in haystacks):
            return False
    return True


def sort_documents(documents: Iterable[Document], options: SearchOptions) -> List[Document]:
    # Stable sorts: filepath order breaks ties
    ordered = sorted(documents, key=lambda doc: doc.filepath)

    def key(doc: Document):
        value = getattr(doc, options.sort_field)
        if options.sort_field == "modified_time":
            return value or 0
        return value or ""

    ordered.sort(key=key, reverse=options.descending)
    if options.limit is not None:
        ordered = ordered[: options.limit]
    return ordered


class Searcher:
    """High-level API to query indexed documents."""

    def __init__(
        self,
        store: Optional[DocumentStore],
        indexer: Optional[Indexer] = None,
        *,
        root: Path,
        extractor: Optional[MetadataExtractor] = extract_metadata,
        extension: str = ".typ",
    ) -> None:
        self.store = store
        self.indexer = indexer if indexer is not None else Indexer(
            store, extractor=extractor, extension=extension
        )
        self.root = Path(root)
        self.extractor = extractor
        self.extension = extension

    def _documents_from_store(self) -> List[Document]:
        if self.store is None:
            raise StoreDisabledError()
        if self.store.count_documents() == 0:
            LOGGER.info("No documents in database, running auto-index...")
            stats = self.indexer.sync_filesystem(self.root)
            if stats.indexed:
                LOGGER.info("Auto-indexed %d documents", stats.indexed)
        return self.store.list_documents()

    def _documents_from_filesystem(self) -> List[Document]:
        return list(
            scan_documents(
                self.root,
                extractor=self.extractor,
                extension=self.extension,
                preview_chars=self.indexer.preview_chars,
            )
        )

    def _candidates(self) -> List[Document]:
        try:
            return self._documents_from_store()
        except StoreDisabledError:
            LOGGER.debug("Database not enabled, scanning %s", self.root)
        except (StoreUnavailableError, sqlite3.Error) as exc:
            LOGGER.warning("Database unavailable (%s), falling back to filesystem scan", exc)
        return self._documents_from_filesystem()

    def search(self, query: str = "", options: Optional[SearchOptions] = None) -> List[Document]:
        options = options or SearchOptions()
        search_filter = parse_query(query)
        try:
            candidates = self._candidates()
        except MalformedQueryResultError as exc:
            LOGGER.error("Malformed result from database: %s", exc)
            return []
        results = [doc for doc in candidates if matches_filter(doc, search_filter)]
        return sort_documents(results, options)

    def list_documents(self, options: Optional[SearchOptions] = None) -> List[Document]:
        return self.search("", options)

    def get_document_by_path(self, filepath: Path | str) -> Optional[Document]:
        target = str(Path(filepath).resolve())
        if self.store is not None:
            try:
                return self.store.get_document(target)
            except (StoreUnavailableError, MalformedQueryResultError) as exc:
                LOGGER.warning("Lookup of %s in database failed: %s", target, exc)
        for doc in self.list_documents():
            if doc.filepath == target:
                return doc
        return None

    def get_document_by_title(self, title: str) -> Optional[Document]:
        """Find a document by exact title, then title substring, then filename."""
        documents = self.list_documents()
        wanted = title.lower()
        for doc in documents:
            if doc.title.lower() == wanted:
                return doc
        for doc in documents:
            if wanted in doc.title.lower():
                return doc
        for doc in documents:
            if wanted in doc.basename.lower():
                return doc
        return None

    def recent(self, days: int = RECENT_DAYS, *, now: Optional[datetime] = None) -> List[Document]:
        cutoff = (now or _utcnow()) - timedelta(days=days)
        documents = self.list_documents(SearchOptions(sort_field="updated_at"))
        recent_docs = []
        for doc in documents:
            updated = parse_timestamp(doc.updated_at)
            if updated is not None and updated >= cutoff:
                recent_docs.append(doc)
        return recent_docs

    def document_stats(self, *, now: Optional[datetime] = None) -> DocumentStats:
        documents = self.list_documents()
        cutoff = (now or _utcnow()) - timedelta(days=RECENT_DAYS)
        recent_count = 0
        for doc in documents:
            updated = parse_timestamp(doc.updated_at)
            if updated is not None and updated >= cutoff:
                recent_count += 1
        return DocumentStats(
            total_count=len(documents),
            by_type=dict(Counter(doc.doc_type for doc in documents)),
            by_status=dict(Counter(doc.status for doc in documents)),
            recent_count=recent_count,
        )


def format_document_display(doc: Document, *, now: Optional[datetime] = None) -> str:
    """Render a one-line summary of ``doc`` for pickers and tables."""
    parts = [doc.title or doc.basename]
    if doc.status and doc.status != "draft":
        parts.append(f"[{doc.status.upper()}]")
    if doc.topics:
        parts.append(" ".join(f"#{topic}" for topic in doc.topics))
    if doc.doc_type and doc.doc_type != "document":
        parts.append(f"({doc.doc_type})")

    updated = parse_timestamp(doc.updated_at)
    if updated is not None:
        days_ago = ((now or _utcnow()) - updated).days
        if days_ago <= 0:
            parts.append("(today)")
        elif days_ago <= RECENT_DAYS:
            parts.append(f"({days_ago}d)")
    return " ".join(parts)
