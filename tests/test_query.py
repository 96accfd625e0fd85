"""Tests for the search mini-language parser."""

from __future__ import annotations

from typstindex.index.query import parse_query
from typstindex.models import SearchFilter


class TestParseQuery:
    """Test extraction of tag/status/type tokens and free text."""

    def test_combined_query(self) -> None:
        result = parse_query("@meeting status:draft planning notes")

        assert result.tag == "meeting"
        assert result.status == "draft"
        assert result.doc_type is None
        assert result.free_text == "planning notes"

    def test_empty_query(self) -> None:
        result = parse_query("")

        assert result == SearchFilter()
        assert result.is_empty

    def test_none_query(self) -> None:
        assert parse_query(None) == SearchFilter()  # type: ignore[arg-type]

    def test_tokens_in_any_order(self) -> None:
        result = parse_query("budget type:report  @finance   q3 status:done")

        assert result.tag == "finance"
        assert result.status == "done"
        assert result.doc_type == "report"
        assert result.free_text == "budget q3"

    def test_last_occurrence_wins(self) -> None:
        result = parse_query("@first @second status:a status:b type:x type:y")

        assert result.tag == "second"
        assert result.status == "b"
        assert result.doc_type == "y"
        assert result.free_text == ""

    def test_only_free_text(self) -> None:
        result = parse_query("   sqlite   schema design ")

        assert result.tag is None
        assert result.status is None
        assert result.free_text == "sqlite schema design"

    def test_hyphenated_values(self) -> None:
        result = parse_query("@project-x status:in-review")

        assert result.tag == "project-x"
        assert result.status == "in-review"

    def test_tokens_must_start_a_word(self) -> None:
        result = parse_query("mail me@example.com mystatus:open")

        assert result.tag is None
        assert result.status is None
        assert result.free_text == "mail me@example.com mystatus:open"

    def test_bare_prefix_is_free_text(self) -> None:
        result = parse_query("@ status: type:")

        assert result.tag is None
        assert result.status is None
        assert result.doc_type is None
        assert result.free_text == "@ status: type:"
