"""Core typstindex data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

SORT_FIELDS = (
    "updated_at",
    "created_at",
    "modified_time",
    "title",
    "date",
    "status",
    "doc_type",
    "filepath",
)


@dataclass(slots=True)
class Document:
    """One indexed source file plus its derived metadata."""

    filepath: str
    title: str
    doc_type: str = "document"
    status: str = "draft"
    date: str = ""
    modified_time: int = 0
    content_hash: str = ""
    content_preview: str = ""
    full_content: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    entities: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    id: Optional[int] = None

    @property
    def filename(self) -> str:
        return Path(self.filepath).name

    @property
    def basename(self) -> str:
        return Path(self.filepath).stem

    @property
    def tags(self) -> List[str]:
        """Alias kept for callers that think in tags rather than topics."""
        return self.topics

    def to_dict(self, *, include_content: bool = False) -> dict:
        data = {
            "id": self.id,
            "filepath": self.filepath,
            "title": self.title,
            "type": self.doc_type,
            "status": self.status,
            "date": self.date,
            "modified_time": self.modified_time,
            "content_hash": self.content_hash,
            "content_preview": self.content_preview,
            "topics": list(self.topics),
            "entities": list(self.entities),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if include_content:
            data["full_content"] = self.full_content
        return data


@dataclass(slots=True)
class SearchFilter:
    """Structured form of a search mini-language query."""

    tag: Optional[str] = None
    status: Optional[str] = None
    doc_type: Optional[str] = None
    free_text: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.tag or self.status or self.doc_type or self.free_text)


@dataclass(slots=True)
class SearchOptions:
    sort_field: str = "updated_at"
    descending: bool = True
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.sort_field not in SORT_FIELDS:
            raise ValueError(
                f"Unknown sort field {self.sort_field!r}; expected one of {', '.join(SORT_FIELDS)}"
            )
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative")
