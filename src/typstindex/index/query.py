"""Parser for the search mini-language.

``@tag`` filters on topics, ``status:value`` and ``type:value`` filter on the
matching metadata fields, and whatever is left becomes free text. Tokens are
single words; there is no quoting.
"""

from __future__ import annotations

import re

from typstindex.models import SearchFilter
from typstindex.utils.text import collapse_whitespace

_WORD = r"[\w-]+"
_TAG_RE = re.compile(rf"(?<!\S)@({_WORD})")
_STATUS_RE = re.compile(rf"(?<!\S)status:({_WORD})")
_TYPE_RE = re.compile(rf"(?<!\S)type:({_WORD})")


def _last_match(pattern: re.Pattern[str], text: str) -> str | None:
    matches = pattern.findall(text)
    return matches[-1] if matches else None


def parse_query(raw: str) -> SearchFilter:
    raw = raw or ""
    search_filter = SearchFilter(
        tag=_last_match(_TAG_RE, raw),
        status=_last_match(_STATUS_RE, raw),
        doc_type=_last_match(_TYPE_RE, raw),
    )

    remaining = raw
    for pattern in (_TAG_RE, _STATUS_RE, _TYPE_RE):
        remaining = pattern.sub("", remaining)
    search_filter.free_text = collapse_whitespace(remaining)
    return search_filter
