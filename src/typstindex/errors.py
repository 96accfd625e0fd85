"""Error taxonomy shared by the store, indexer and search layers."""

from __future__ import annotations

from pathlib import Path


class TypstIndexError(Exception):
    """Base class for all typstindex errors."""


class StoreDisabledError(TypstIndexError):
    """The document database is turned off in the configuration."""

    def __init__(self, message: str = "Database not enabled") -> None:
        super().__init__(message)


class StoreUnavailableError(TypstIndexError):
    """The backing store could not be opened, read or written."""


class FileUnavailableError(TypstIndexError):
    """A source document is missing, unreadable or not valid text."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class MetadataExtractionError(TypstIndexError):
    """The metadata collaborator failed for a document."""


class MalformedQueryResultError(TypstIndexError):
    """The store returned a row that cannot be decoded into a Document."""
