"""Text helpers for previews and metadata values."""

from __future__ import annotations

from typing import Any, Iterable, List

ELLIPSIS = "..."


def build_preview(content: str, *, max_chars: int = 2000) -> str:
    """Return a bounded prefix of ``content``, trimmed at a word boundary.

    Content that already fits is returned unchanged. Otherwise the prefix is
    cut at its last space (when there is one) and an ellipsis is appended.
    """
    if len(content) <= max_chars:
        return content

    preview = content[:max_chars]
    last_space = preview.rfind(" ")
    if last_space > 0:
        preview = preview[:last_space]
    return preview + ELLIPSIS


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def as_string_list(value: Any) -> List[str]:
    """Coerce a metadata value into an ordered, de-duplicated list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        items: Iterable[Any] = [value]
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        items = [value]

    seen: dict[str, None] = {}
    for item in items:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            seen.setdefault(text, None)
    return list(seen)
