"""FastAPI application exposing the document index over HTTP."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from typstindex.config import AppConfig
from typstindex.errors import StoreUnavailableError
from typstindex.index.indexer import Indexer
from typstindex.index.search import Searcher
from typstindex.index.storage import DocumentStore
from typstindex.models import SearchOptions

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="typstindex", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class StorePayload(BaseModel):
    notes_dir: Path | None = None
    db_dir: Path | None = None


class SearchPayload(StorePayload):
    query: str = ""
    sort: str = "updated_at"
    descending: bool = True
    limit: int | None = None
    use_db: bool = True


class SyncPayload(StorePayload):
    prune: bool = False


class DeleteDocumentRequest(StorePayload):
    path: str


def _config(payload: StorePayload, *, use_db: bool = True) -> AppConfig:
    return AppConfig(
        notes_dir=payload.notes_dir,
        database_dir=payload.db_dir,
        database_enabled=use_db,
    )


def _open_store(config: AppConfig) -> Optional[DocumentStore]:
    try:
        return config.open_store(Path.cwd())
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def _make_indexer(config: AppConfig, store: Optional[DocumentStore]) -> Indexer:
    return Indexer(
        store,
        extractor=config.make_extractor(),
        preview_chars=config.preview_chars,
        store_full_content=config.store_full_content,
        extension=config.extension,
    )


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


def _open_searcher(config: AppConfig) -> tuple[Searcher, Optional[DocumentStore]]:
    try:
        store = config.open_store(Path.cwd())
    except StoreUnavailableError as exc:
        LOGGER.warning("Database unavailable, searching the filesystem: %s", exc)
        store = None
    searcher = Searcher(
        store,
        _make_indexer(config, store),
        root=config.resolve_notes_dir(Path.cwd()),
        extractor=config.make_extractor(),
        extension=config.extension,
    )
    return searcher, store


def _run_search(payload: SearchPayload, options: SearchOptions) -> List[dict[str, Any]]:
    searcher, store = _open_searcher(_config(payload, use_db=payload.use_db))
    try:
        results = searcher.search(payload.query, options)
    finally:
        if store is not None:
            store.close()
    return [doc.to_dict() for doc in results]


@app.post("/search")
async def search_documents(payload: SearchPayload) -> dict[str, Any]:
    limit = None if payload.limit is None else max(1, min(payload.limit, 500))
    try:
        options = SearchOptions(sort_field=payload.sort, descending=payload.descending, limit=limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    results = await asyncio.to_thread(_run_search, payload, options)
    return {"results": results}


def _run_index_job(config: AppConfig, *, rebuild: bool, prune: bool) -> dict[str, Any]:
    store = _open_store(config)
    indexer = _make_indexer(config, store)
    root = config.resolve_notes_dir(Path.cwd())
    try:
        if rebuild:
            stats = indexer.rebuild_index(root)
        else:
            stats = indexer.sync_filesystem(root, prune=prune)
    finally:
        if store is not None:
            store.close()

    return {
        "success_count": stats.success_count,
        "failure_count": stats.failure_count,
        "indexed": stats.indexed,
        "unchanged": stats.unchanged,
        "removed": stats.removed,
        "errors": {str(path): message for path, message in stats.errors.items()},
    }


def _check_notes_dir(config: AppConfig) -> None:
    root = config.resolve_notes_dir(Path.cwd())
    if not root.is_dir():
        raise HTTPException(status_code=404, detail=f"Notes directory not found: {root}")


@app.post("/sync")
async def sync_documents(payload: SyncPayload) -> dict[str, Any]:
    config = _config(payload)
    _check_notes_dir(config)
    stats = await asyncio.to_thread(_run_index_job, config, rebuild=False, prune=payload.prune)
    return {"status": "ok", "stats": stats}


@app.post("/rebuild")
async def rebuild_documents(payload: StorePayload) -> dict[str, Any]:
    config = _config(payload)
    _check_notes_dir(config)
    stats = await asyncio.to_thread(_run_index_job, config, rebuild=True, prune=True)
    return {"status": "ok", "stats": stats}


@app.get("/documents")
async def list_documents(notes_dir: Path | None = None, db_dir: Path | None = None) -> dict[str, Any]:
    """List all indexed documents in the database."""
    config = _config(StorePayload(notes_dir=notes_dir, db_dir=db_dir))
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        return {"documents": [], "stats": {"document_count": 0, "file_size": 0, "schema_version": 0}}

    store = _open_store(config)
    try:
        documents = [doc.to_dict() for doc in store.list_documents()]
        stats = store.stats()
    finally:
        store.close()
    return {"documents": documents, "stats": stats}


def _run_stats(config: AppConfig) -> dict[str, Any]:
    searcher, store = _open_searcher(config)
    try:
        stats = searcher.document_stats()
    finally:
        if store is not None:
            store.close()
    return {
        "total_count": stats.total_count,
        "by_type": stats.by_type,
        "by_status": stats.by_status,
        "recent_count": stats.recent_count,
    }


@app.get("/stats")
async def document_stats(notes_dir: Path | None = None, db_dir: Path | None = None) -> dict[str, Any]:
    config = _config(StorePayload(notes_dir=notes_dir, db_dir=db_dir))
    return await asyncio.to_thread(_run_stats, config)


@app.post("/documents/delete")
async def delete_document(payload: DeleteDocumentRequest) -> dict[str, Any]:
    """Delete a document record by path."""
    config = _config(payload)
    if not config.resolve_db_path(Path.cwd()).exists():
        raise HTTPException(status_code=404, detail="Database not found")

    store = _open_store(config)
    try:
        deleted = store.remove_document(str(Path(payload.path).resolve()))
    finally:
        store.close()

    if not deleted:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"status": "ok"}


@app.delete("/documents/cleanup")
async def cleanup_missing_files(notes_dir: Path | None = None, db_dir: Path | None = None) -> dict[str, Any]:
    """Remove documents whose files no longer exist on disk."""
    config = _config(StorePayload(notes_dir=notes_dir, db_dir=db_dir))
    if not config.resolve_db_path(Path.cwd()).exists():
        raise HTTPException(status_code=404, detail="Database not found")

    store = _open_store(config)
    try:
        removed_count = store.remove_missing_files()
    finally:
        store.close()
    return {"status": "ok", "removed_count": removed_count}
