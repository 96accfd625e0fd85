"""Command line interface for typstindex."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from typstindex.config import AppConfig
from typstindex.errors import StoreUnavailableError, TypstIndexError
from typstindex.index.indexer import IndexStats, Indexer
from typstindex.index.search import Searcher, format_document_display
from typstindex.index.storage import DocumentStore
from typstindex.models import Document, SearchOptions, SORT_FIELDS
from typstindex.web.app import app as web_app


console = Console()
app = typer.Typer(help="typstindex - local metadata index and search for Typst notes")

NOTES_OPTION = typer.Option(None, "--notes-dir", "-n", help="Notes directory to scan")
DB_DIR_OPTION = typer.Option(None, "--db-dir", help="Directory holding the SQLite database")
NO_DB_OPTION = typer.Option(False, "--no-db", help="Disable the database (filesystem scan only)")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose logging")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _build_config(
    notes_dir: Optional[Path],
    db_dir: Optional[Path],
    *,
    no_db: bool = False,
) -> AppConfig:
    return AppConfig(notes_dir=notes_dir, database_dir=db_dir, database_enabled=not no_db)


def _open_store(config: AppConfig) -> Optional[DocumentStore]:
    try:
        return config.open_store(Path.cwd())
    except StoreUnavailableError as exc:
        console.print(f"[red]Database unavailable:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc


def _make_indexer(config: AppConfig, store: Optional[DocumentStore]) -> Indexer:
    return Indexer(
        store,
        extractor=config.make_extractor(),
        preview_chars=config.preview_chars,
        store_full_content=config.store_full_content,
        extension=config.extension,
    )


def _print_stats(label: str, stats: IndexStats) -> None:
    console.print(
        f"{label}: {stats.success_count} successful, {stats.failure_count} failed "
        f"(indexed: {stats.indexed}, unchanged: {stats.unchanged}, removed: {stats.removed})"
    )
    for path, message in stats.errors.items():
        console.print(f"[yellow]  {escape(str(path))}: {escape(message)}[/yellow]")
    if stats.cancelled:
        console.print("[yellow]Cancelled before completion.[/yellow]")


def _print_documents(documents: List[Document]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Document")
    table.add_column("Status")
    table.add_column("Type")
    table.add_column("Date")
    table.add_column("Path")

    for doc in documents:
        table.add_row(format_document_display(doc), doc.status, doc.doc_type, doc.date, doc.filepath)
    console.print(table)


@app.command()
def index(
    inputs: List[Path] = typer.Argument(..., help="Typst files to index.", resolve_path=True),
    notes_dir: Optional[Path] = NOTES_OPTION,
    db_dir: Optional[Path] = DB_DIR_OPTION,
    force: bool = typer.Option(False, "--force", "-f", help="Re-extract even if unchanged"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Index one or more documents."""
    _setup_logging(verbose)
    config = _build_config(notes_dir, db_dir)
    store = _open_store(config)
    indexer = _make_indexer(config, store)

    failed = 0
    try:
        for path in inputs:
            try:
                changed = indexer.index_document(path, force=force)
            except TypstIndexError as exc:
                failed += 1
                console.print(f"[red]Failed:[/red] {escape(str(exc))}")
                continue
            state = "indexed" if changed else "up to date"
            console.print(f"{path.name}: {state}")
    finally:
        if store is not None:
            store.close()
    if failed:
        raise typer.Exit(code=1)


@app.command()
def sync(
    notes_dir: Optional[Path] = NOTES_OPTION,
    db_dir: Optional[Path] = DB_DIR_OPTION,
    prune: bool = typer.Option(False, "--prune", help="Also drop documents deleted from disk"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Incrementally index new and changed documents."""
    _setup_logging(verbose)
    config = _build_config(notes_dir, db_dir)
    store = _open_store(config)
    indexer = _make_indexer(config, store)
    try:
        stats = indexer.sync_filesystem(config.resolve_notes_dir(Path.cwd()), prune=prune)
    finally:
        if store is not None:
            store.close()

    if stats.indexed or stats.failed or stats.removed:
        _print_stats("Index refresh", stats)
    else:
        console.print("Index is up to date")


@app.command()
def rebuild(
    notes_dir: Optional[Path] = NOTES_OPTION,
    db_dir: Optional[Path] = DB_DIR_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Rebuild the entire document index."""
    _setup_logging(verbose)
    if not yes and not typer.confirm("Rebuild entire document index?", default=False):
        raise typer.Abort()

    config = _build_config(notes_dir, db_dir)
    store = _open_store(config)
    indexer = _make_indexer(config, store)
    try:
        stats = indexer.rebuild_index(config.resolve_notes_dir(Path.cwd()))
    finally:
        if store is not None:
            store.close()
    _print_stats("Index rebuild", stats)


@app.command()
def search(
    query: List[str] = typer.Argument(None, help="Query: @tag status:value type:value text"),
    notes_dir: Optional[Path] = NOTES_OPTION,
    db_dir: Optional[Path] = DB_DIR_OPTION,
    no_db: bool = NO_DB_OPTION,
    sort: str = typer.Option("updated_at", help=f"Sort field ({', '.join(SORT_FIELDS)})"),
    ascending: bool = typer.Option(False, "--asc", help="Sort ascending"),
    limit: Optional[int] = typer.Option(None, help="Maximum number of results"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Search documents by content, tags or metadata."""
    _setup_logging(verbose)
    raw_query = " ".join(query or [])
    try:
        options = SearchOptions(sort_field=sort, descending=not ascending, limit=limit)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    config = _build_config(notes_dir, db_dir, no_db=no_db)
    try:
        store = config.open_store(Path.cwd())
    except StoreUnavailableError as exc:
        # Searching degrades to a filesystem scan instead of failing
        logging.getLogger(__name__).warning("Database unavailable: %s", exc)
        store = None
    searcher = Searcher(
        store,
        _make_indexer(config, store),
        root=config.resolve_notes_dir(Path.cwd()),
        extractor=config.make_extractor(),
        extension=config.extension,
    )
    try:
        results = searcher.search(raw_query, options)
    finally:
        if store is not None:
            store.close()

    if not results:
        console.print(f"[yellow]No documents found for query: {escape(raw_query)}[/yellow]")
        return
    _print_documents(results)


@app.command()
def recent(
    days: int = typer.Argument(7, help="Number of days to look back"),
    notes_dir: Optional[Path] = NOTES_OPTION,
    db_dir: Optional[Path] = DB_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show recently updated documents."""
    _setup_logging(verbose)
    config = _build_config(notes_dir, db_dir)
    store = _open_store(config)
    searcher = Searcher(
        store,
        _make_indexer(config, store),
        root=config.resolve_notes_dir(Path.cwd()),
        extractor=config.make_extractor(),
        extension=config.extension,
    )
    try:
        documents = searcher.recent(days)
    finally:
        if store is not None:
            store.close()

    if not documents:
        console.print("[yellow]No documents to show.[/yellow]")
        return
    _print_documents(documents)


@app.command()
def stats(
    notes_dir: Optional[Path] = NOTES_OPTION,
    db_dir: Optional[Path] = DB_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show document statistics."""
    _setup_logging(verbose)
    config = _build_config(notes_dir, db_dir)
    store = _open_store(config)
    searcher = Searcher(
        store,
        _make_indexer(config, store),
        root=config.resolve_notes_dir(Path.cwd()),
        extractor=config.make_extractor(),
        extension=config.extension,
    )
    try:
        document_stats = searcher.document_stats()
    finally:
        if store is not None:
            store.close()

    console.print(f"Total documents: {document_stats.total_count}")
    console.print(f"Recent documents (7 days): {document_stats.recent_count}")

    for title, counts in (("By Type", document_stats.by_type), ("By Status", document_stats.by_status)):
        table = Table(title=title, show_header=False)
        table.add_column("Value")
        table.add_column("Count", justify="right")
        for name, count in sorted(counts.items()):
            table.add_row(name, str(count))
        console.print(table)


@app.command()
def prune(
    notes_dir: Optional[Path] = NOTES_OPTION,
    db_dir: Optional[Path] = DB_DIR_OPTION,
) -> None:
    """Remove documents that no longer exist on disk."""
    config = _build_config(notes_dir, db_dir)
    resolved_db = config.resolve_db_path(Path.cwd())

    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to prune.[/yellow]")
        return

    store = _open_store(config)
    try:
        removed = store.remove_missing_files()
    finally:
        store.close()
    console.print(f"Removed {removed} orphaned documents.")


@app.command()
def info(
    notes_dir: Optional[Path] = NOTES_OPTION,
    db_dir: Optional[Path] = DB_DIR_OPTION,
) -> None:
    """Show database location, size and schema version."""
    config = _build_config(notes_dir, db_dir)
    resolved_db = config.resolve_db_path(Path.cwd())
    console.print(f"Notes directory: {config.resolve_notes_dir(Path.cwd())}")
    console.print(f"Database: {resolved_db}")

    if not resolved_db.exists():
        console.print("[yellow]Database not created yet.[/yellow]")
        return

    store = _open_store(config)
    try:
        store_stats = store.stats()
    finally:
        store.close()
    console.print(f"Documents: {store_stats['document_count']}")
    console.print(f"File size: {store_stats['file_size']} bytes")
    console.print(f"Schema version: {store_stats['schema_version']}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    console.print(f"Starting HTTP API on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":  # pragma: no cover
    app()
