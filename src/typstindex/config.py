"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from typstindex.index.storage import DocumentStore
from typstindex.ingestion.metadata import DEFAULT_TIMEOUT, extract_metadata

DEFAULT_DB_FILENAME = "typstindex.db"
DEFAULT_EXTENSION = ".typ"
DEFAULT_PREVIEW_CHARS = 2000


def _get_default_notes_dir() -> Path:
    return Path.home() / "Documents" / "notes"


@dataclass(slots=True)
class AppConfig:
    notes_dir: Path | None = None
    database_dir: Path | None = None
    db_filename: str = DEFAULT_DB_FILENAME
    database_enabled: bool = True
    extension: str = DEFAULT_EXTENSION
    preview_chars: int = DEFAULT_PREVIEW_CHARS
    store_full_content: bool = True
    typst_binary: str = "typst"
    metadata_timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if self.notes_dir is None:
            self.notes_dir = _get_default_notes_dir()
        self.notes_dir = Path(self.notes_dir).expanduser()
        if self.database_dir is None:
            # Database lives next to the notes unless configured otherwise
            self.database_dir = self.notes_dir / "database"
        self.database_dir = Path(self.database_dir).expanduser()
        if not self.extension.startswith("."):
            self.extension = f".{self.extension}"

    @property
    def db_path(self) -> Path:
        return Path(self.database_dir) / self.db_filename

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path.is_absolute() or base_dir is None:
            return self.db_path
        return base_dir / self.db_path

    def resolve_notes_dir(self, base_dir: Path | None = None) -> Path:
        notes_dir = Path(self.notes_dir)
        if not notes_dir.is_absolute() and base_dir is not None:
            notes_dir = base_dir / notes_dir
        return notes_dir.resolve()

    def open_store(self, base_dir: Path | None = None) -> Optional[DocumentStore]:
        """Open the configured store, or return None when the database is disabled."""
        if not self.database_enabled:
            return None
        return DocumentStore(self.resolve_db_path(base_dir))

    def make_extractor(self) -> Callable[[Path], dict]:
        return partial(
            extract_metadata,
            typst_binary=self.typst_binary,
            timeout=self.metadata_timeout,
        )
