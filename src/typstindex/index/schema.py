"""Database schema creation and versioned migrations."""

from __future__ import annotations

import logging
import sqlite3
from typing import Callable, Dict

from typstindex.errors import StoreUnavailableError

LOGGER = logging.getLogger(__name__)

CURRENT_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_info (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY,
    filepath TEXT NOT NULL UNIQUE,
    title TEXT,
    type TEXT,
    status TEXT,
    date TEXT,
    modified_time INTEGER NOT NULL DEFAULT 0,
    content_hash TEXT,
    content_preview TEXT,
    full_content TEXT,
    topics TEXT,
    entities TEXT,
    created_at TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
    updated_at TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_documents_type ON documents(type);
CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);
CREATE INDEX IF NOT EXISTS idx_documents_modified ON documents(modified_time);
CREATE INDEX IF NOT EXISTS idx_documents_title ON documents(title);
CREATE INDEX IF NOT EXISTS idx_documents_updated ON documents(updated_at);
"""

# Target version -> step that upgrades a store from ``version - 1``.
MIGRATIONS: Dict[int, Callable[[sqlite3.Connection], None]] = {}


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the stored schema version, or 0 for a fresh store."""
    try:
        row = conn.execute("SELECT value FROM schema_info WHERE key = 'version'").fetchone()
    except sqlite3.OperationalError:
        # schema_info does not exist yet
        return 0
    if row is None:
        return 0
    try:
        return int(row[0])
    except (TypeError, ValueError):
        return 0


def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO schema_info (key, value) VALUES ('version', ?)",
        (str(version),),
    )


def migrate_schema(conn: sqlite3.Connection, from_version: int, to_version: int) -> None:
    """Run one migration step per version gap, then record ``to_version``."""
    LOGGER.info("Migrating database schema from v%d to v%d", from_version, to_version)
    for version in range(from_version + 1, to_version + 1):
        step = MIGRATIONS.get(version)
        if step is not None:
            LOGGER.debug("Applying migration to v%d", version)
            step(conn)
    set_schema_version(conn, to_version)


def ensure_schema(conn: sqlite3.Connection) -> int:
    """Create or upgrade the schema and return the resulting version.

    Safe to call repeatedly: every statement is ``IF NOT EXISTS`` and an
    up-to-date store is left untouched.
    """
    try:
        version = get_schema_version(conn)
        if version > CURRENT_VERSION:
            raise StoreUnavailableError(
                f"Database schema v{version} is newer than supported v{CURRENT_VERSION}"
            )
        if version == CURRENT_VERSION:
            return version

        with conn:
            if version == 0:
                conn.executescript(SCHEMA)
                set_schema_version(conn, CURRENT_VERSION)
                LOGGER.debug("Database schema created at v%d", CURRENT_VERSION)
            else:
                migrate_schema(conn, version, CURRENT_VERSION)
    except sqlite3.Error as exc:
        raise StoreUnavailableError(f"Failed to create database schema: {exc}") from exc
    return CURRENT_VERSION
