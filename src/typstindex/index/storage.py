"""SQLite document store."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

from typstindex.errors import MalformedQueryResultError, StoreUnavailableError
from typstindex.index.schema import ensure_schema, get_schema_version
from typstindex.models import Document

LOGGER = logging.getLogger(__name__)

_DOCUMENT_COLUMNS = """
    id, filepath, title, type, status, date, modified_time, content_hash,
    content_preview, full_content, topics, entities, created_at, updated_at
"""


def _decode_list(value: Any, column: str, filepath: str) -> List[str]:
    if value is None or value == "":
        return []
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError) as exc:
        raise MalformedQueryResultError(
            f"Column {column!r} of {filepath} is not valid JSON: {exc}"
        ) from exc
    if not isinstance(decoded, list):
        raise MalformedQueryResultError(f"Column {column!r} of {filepath} is not a JSON array")
    return [str(item) for item in decoded]


def row_to_document(row: sqlite3.Row | dict) -> Document:
    """Decode a ``documents`` row, raising MalformedQueryResultError on bad data."""
    try:
        filepath = row["filepath"]
        if not filepath:
            raise MalformedQueryResultError("Row without filepath")
        return Document(
            id=row["id"],
            filepath=filepath,
            title=row["title"] or Path(filepath).stem,
            doc_type=row["type"] or "document",
            status=row["status"] or "draft",
            date=row["date"] or "",
            modified_time=int(row["modified_time"] or 0),
            content_hash=row["content_hash"] or "",
            content_preview=row["content_preview"] or "",
            full_content=row["full_content"],
            topics=_decode_list(row["topics"], "topics", filepath),
            entities=_decode_list(row["entities"], "entities", filepath),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise MalformedQueryResultError(f"Cannot decode document row: {exc}") from exc


class DocumentStore:
    """Persistence layer for indexed documents."""

    def __init__(self, db_path: Path, *, busy_timeout: float = 30.0) -> None:
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, timeout=busy_timeout)
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailableError(f"Failed to open database {self.db_path}: {exc}") from exc

        self._conn.row_factory = sqlite3.Row
        try:
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn.execute("PRAGMA foreign_keys=ON;")
            self._conn.execute(f"PRAGMA busy_timeout={int(busy_timeout * 1000)};")
            self.schema_version = ensure_schema(self._conn)
        except sqlite3.Error as exc:
            self._conn.close()
            raise StoreUnavailableError(f"Failed to initialize database {self.db_path}: {exc}") from exc
        except StoreUnavailableError:
            self._conn.close()
            raise
        LOGGER.debug("Database initialized: %s", self.db_path)

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a statement that returns no rows and commit it. Returns the rowcount."""
        try:
            with self.transaction() as conn:
                return conn.execute(sql, params).rowcount
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Statement failed: {exc}") from exc

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[dict]:
        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Query failed: {exc}") from exc
        return [dict(row) for row in rows]

    def test_connection(self) -> bool:
        try:
            return self._conn.execute("SELECT 1").fetchone()[0] == 1
        except sqlite3.Error:
            return False

    def get_record(self, filepath: str) -> Optional[dict]:
        """Return only the change-detection fields for ``filepath``."""
        rows = self.query(
            "SELECT modified_time, content_hash FROM documents WHERE filepath = ?",
            (filepath,),
        )
        return rows[0] if rows else None

    def get_document(self, filepath: str) -> Optional[Document]:
        rows = self.query(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE filepath = ?",
            (filepath,),
        )
        return row_to_document(rows[0]) if rows else None

    def list_documents(self) -> List[Document]:
        rows = self.query(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY updated_at DESC, filepath"
        )
        return [row_to_document(row) for row in rows]

    def count_documents(self) -> int:
        return int(self.query("SELECT COUNT(*) AS count FROM documents")[0]["count"])

    def upsert_document(self, document: Document) -> None:
        """Insert or update by filepath, keeping ``id`` and ``created_at``."""
        self.execute(
            """
            INSERT INTO documents (
                filepath, title, type, status, date, modified_time,
                content_hash, content_preview, full_content, topics, entities
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(filepath) DO UPDATE SET
                title = excluded.title,
                type = excluded.type,
                status = excluded.status,
                date = excluded.date,
                modified_time = excluded.modified_time,
                content_hash = excluded.content_hash,
                content_preview = excluded.content_preview,
                full_content = excluded.full_content,
                topics = excluded.topics,
                entities = excluded.entities,
                updated_at = strftime('%Y-%m-%d %H:%M:%f', 'now')
            """,
            (
                document.filepath,
                document.title,
                document.doc_type,
                document.status,
                document.date,
                document.modified_time,
                document.content_hash,
                document.content_preview,
                document.full_content,
                json.dumps(document.topics, ensure_ascii=False),
                json.dumps(document.entities, ensure_ascii=False),
            ),
        )

    def remove_document(self, filepath: str) -> bool:
        return self.execute("DELETE FROM documents WHERE filepath = ?", (filepath,)) > 0

    def remove_missing_files(self, root: Path | None = None) -> int:
        """Remove documents whose files no longer exist, optionally only under ``root``."""
        rows = self.query("SELECT filepath FROM documents")
        prefix = None
        if root is not None:
            prefix = Path(root).resolve()
        missing = []
        for row in rows:
            path = Path(row["filepath"])
            if prefix is not None and not path.is_relative_to(prefix):
                continue
            if not path.exists():
                missing.append(row["filepath"])

        if missing:
            try:
                with self.transaction() as conn:
                    conn.executemany(
                        "DELETE FROM documents WHERE filepath = ?",
                        [(filepath,) for filepath in missing],
                    )
            except sqlite3.Error as exc:
                raise StoreUnavailableError(f"Failed to remove missing files: {exc}") from exc
            LOGGER.info("Removed %d documents missing from disk", len(missing))
        return len(missing)

    def stats(self) -> dict:
        return {
            "document_count": self.count_documents(),
            "file_size": self.db_path.stat().st_size if self.db_path.exists() else 0,
            "schema_version": get_schema_version(self._conn),
        }
