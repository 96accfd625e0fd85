"""Tests for the search service."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import make_note
from typstindex.errors import MalformedQueryResultError, StoreUnavailableError
from typstindex.index.indexer import Indexer
from typstindex.index.search import (
    Searcher,
    format_document_display,
    matches_filter,
    parse_timestamp,
    sort_documents,
)
from typstindex.index.storage import DocumentStore
from typstindex.models import Document, SearchFilter, SearchOptions


@pytest.fixture
def corpus(notes_dir: Path) -> Path:
    make_note(notes_dir, "a.typ", title="Alpha", status="draft", topics=["x"], body="planning notes")
    make_note(notes_dir, "b.typ", title="Beta", status="done", topics=["x"], doc_type="meeting")
    make_note(notes_dir, "c.typ", title="Gamma", status="draft", topics=["y"], body="Schema design")
    return notes_dir


@pytest.fixture
def searcher(store: DocumentStore, corpus: Path, extractor) -> Searcher:
    return Searcher(store, Indexer(store, extractor=extractor), root=corpus, extractor=extractor)


def _titles(documents) -> set[str]:
    return {doc.title for doc in documents}


class TestMatchesFilter:
    """Test individual predicates."""

    doc = Document(
        filepath="/notes/Planning.typ",
        title="Weekly Sync",
        doc_type="meeting",
        status="draft",
        content_preview="Discussed the SQLite schema",
        topics=["team", "db"],
    )

    def test_empty_filter_matches(self) -> None:
        assert matches_filter(self.doc, SearchFilter())

    def test_tag_membership(self) -> None:
        assert matches_filter(self.doc, SearchFilter(tag="db"))
        assert not matches_filter(self.doc, SearchFilter(tag="d"))

    def test_exact_status_and_type(self) -> None:
        assert matches_filter(self.doc, SearchFilter(status="draft", doc_type="meeting"))
        assert not matches_filter(self.doc, SearchFilter(status="Draft"))
        assert not matches_filter(self.doc, SearchFilter(doc_type="note"))

    @pytest.mark.parametrize("text", ["weekly", "sqlite SCHEMA", "planning", "TEAM"])
    def test_free_text_fields(self, text: str) -> None:
        assert matches_filter(self.doc, SearchFilter(free_text=text))

    def test_free_text_miss(self) -> None:
        assert not matches_filter(self.doc, SearchFilter(free_text="postgres"))


class TestSortDocuments:
    """Test sorting and limits."""

    docs = [
        Document(filepath="/n/b.typ", title="beta", modified_time=2, updated_at="2026-01-02 00:00:00.000"),
        Document(filepath="/n/a.typ", title="alpha", modified_time=3, updated_at=None),
        Document(filepath="/n/c.typ", title="gamma", modified_time=1, updated_at="2026-01-03 00:00:00.000"),
    ]

    def test_default_is_updated_desc(self) -> None:
        ordered = sort_documents(self.docs, SearchOptions())
        assert [doc.title for doc in ordered] == ["gamma", "beta", "alpha"]

    def test_ascending_title(self) -> None:
        ordered = sort_documents(self.docs, SearchOptions(sort_field="title", descending=False))
        assert [doc.title for doc in ordered] == ["alpha", "beta", "gamma"]

    def test_numeric_field_and_limit(self) -> None:
        ordered = sort_documents(self.docs, SearchOptions(sort_field="modified_time", limit=2))
        assert [doc.title for doc in ordered] == ["alpha", "beta"]

    def test_unknown_sort_field(self) -> None:
        with pytest.raises(ValueError):
            SearchOptions(sort_field="score")


class TestSearcher:
    """Test store-backed search."""

    def test_auto_sync_on_empty_store(self, searcher: Searcher, store: DocumentStore) -> None:
        assert store.count_documents() == 0

        results = searcher.search("")

        assert store.count_documents() == 3
        assert _titles(results) == {"Alpha", "Beta", "Gamma"}

    def test_filter_combination(self, searcher: Searcher) -> None:
        assert _titles(searcher.search("@x status:draft")) == {"Alpha"}

    def test_type_filter(self, searcher: Searcher) -> None:
        assert _titles(searcher.search("type:meeting")) == {"Beta"}

    def test_free_text_over_preview(self, searcher: Searcher) -> None:
        assert _titles(searcher.search("schema")) == {"Gamma"}
        assert _titles(searcher.search("@x planning")) == {"Alpha"}

    def test_no_match_returns_empty(self, searcher: Searcher) -> None:
        assert searcher.search("@nothing") == []

    def test_sorted_by_title(self, searcher: Searcher) -> None:
        results = searcher.search("", SearchOptions(sort_field="title", descending=False))
        assert [doc.title for doc in results] == ["Alpha", "Beta", "Gamma"]

    def test_does_not_resync_populated_store(self, store: DocumentStore, corpus: Path, extractor) -> None:
        indexer = Indexer(store, extractor=extractor)
        indexer.sync_filesystem(corpus)
        spy = MagicMock(wraps=indexer)
        searcher = Searcher(store, spy, root=corpus, extractor=extractor)

        searcher.search("")

        spy.sync_filesystem.assert_not_called()

    def test_malformed_rows_yield_empty(self, searcher: Searcher, store: DocumentStore) -> None:
        searcher.search("")
        store.execute("UPDATE documents SET topics = '{broken' WHERE title = 'Alpha'")

        assert searcher.search("") == []

    def test_lookups(self, searcher: Searcher, corpus: Path) -> None:
        searcher.search("")

        assert searcher.get_document_by_path(corpus / "b.typ").title == "Beta"
        assert searcher.get_document_by_path(corpus / "zzz.typ") is None
        assert searcher.get_document_by_title("gamma").filepath == str(corpus / "c.typ")
        assert searcher.get_document_by_title("alp").title == "Alpha"
        assert searcher.get_document_by_title("nothing") is None

    def test_lookup_by_aliased_path(self, searcher: Searcher, corpus: Path) -> None:
        searcher.search("")

        assert searcher.get_document_by_path(corpus / ".." / corpus.name / "a.typ").title == "Alpha"

    def test_recent_and_stats(self, searcher: Searcher, store: DocumentStore) -> None:
        searcher.search("")
        store.execute(
            "UPDATE documents SET updated_at = '2000-01-01 00:00:00.000' WHERE title = 'Gamma'"
        )

        assert _titles(searcher.recent(7)) == {"Alpha", "Beta"}

        stats = searcher.document_stats()
        assert stats.total_count == 3
        assert stats.by_status == {"draft": 2, "done": 1}
        assert stats.by_type == {"document": 2, "meeting": 1}
        assert stats.recent_count == 2


class TestFallback:
    """Test the live filesystem scan used when the store is off or broken."""

    def test_store_disabled_scans_filesystem(self, corpus: Path, extractor) -> None:
        searcher = Searcher(None, root=corpus, extractor=extractor)

        results = searcher.search("@x status:draft")

        assert _titles(results) == {"Alpha"}
        assert results[0].id is None

    def test_store_failure_falls_back(self, corpus: Path, extractor) -> None:
        broken = MagicMock(spec=DocumentStore)
        broken.count_documents.side_effect = StoreUnavailableError("database is locked")
        searcher = Searcher(broken, root=corpus, extractor=extractor)

        assert _titles(searcher.search("@x")) == {"Alpha", "Beta"}

    def test_malformed_error_not_treated_as_fallback(self, corpus: Path, extractor) -> None:
        broken = MagicMock(spec=DocumentStore)
        broken.count_documents.return_value = 3
        broken.list_documents.side_effect = MalformedQueryResultError("bad row")
        searcher = Searcher(broken, root=corpus, extractor=extractor)

        assert searcher.search("") == []

    @pytest.mark.parametrize(
        "query",
        ["", "@x", "status:draft", "type:meeting", "@x status:draft", "planning", "@y schema"],
    )
    def test_fallback_parity(self, query: str, store: DocumentStore, corpus: Path, extractor) -> None:
        indexer = Indexer(store, extractor=extractor)
        indexer.rebuild_index(corpus)
        with_store = Searcher(store, indexer, root=corpus, extractor=extractor)
        without_store = Searcher(None, root=corpus, extractor=extractor)

        expected = {doc.filepath for doc in with_store.search(query)}
        actual = {doc.filepath for doc in without_store.search(query)}

        assert actual == expected

    def test_fallback_parity_with_small_preview(self, store: DocumentStore, notes_dir: Path, extractor) -> None:
        make_note(notes_dir, "a.typ", title="Alpha", body="lorem ipsum " * 6 + "needleword")
        indexer = Indexer(store, extractor=extractor, preview_chars=40)
        indexer.rebuild_index(notes_dir)
        with_store = Searcher(store, indexer, root=notes_dir, extractor=extractor)
        without_store = Searcher(
            None, Indexer(None, extractor=extractor, preview_chars=40), root=notes_dir, extractor=extractor
        )

        assert with_store.search("needleword") == []
        assert without_store.search("needleword") == []
        assert _titles(without_store.search("lorem")) == _titles(with_store.search("lorem")) == {"Alpha"}

    def test_fallback_missing_root(self, tmp_path: Path, extractor) -> None:
        assert Searcher(None, root=tmp_path / "nope", extractor=extractor).search("") == []


class TestDisplay:
    """Test one-line document rendering."""

    now = datetime(2026, 1, 10, 12, 0, 0)

    def test_full_display(self) -> None:
        doc = Document(
            filepath="/n/p.typ",
            title="Plan",
            doc_type="meeting",
            status="done",
            topics=["a", "b"],
            updated_at="2026-01-08 09:00:00.000",
        )
        assert format_document_display(doc, now=self.now) == "Plan [DONE] #a #b (meeting) (2d)"

    def test_minimal_display(self) -> None:
        doc = Document(filepath="/n/p.typ", title="Plan", updated_at="2026-01-10 08:00:00.000")
        assert format_document_display(doc, now=self.now) == "Plan (today)"

    def test_old_document_has_no_marker(self) -> None:
        doc = Document(filepath="/n/p.typ", title="Plan", updated_at="2025-01-01 00:00:00")
        assert format_document_display(doc, now=self.now) == "Plan"

    def test_parse_timestamp(self) -> None:
        assert parse_timestamp("2026-01-08 09:00:00.123") == datetime(2026, 1, 8, 9, 0, 0, 123000)
        assert parse_timestamp("garbage") is None
        assert parse_timestamp(None) is None
