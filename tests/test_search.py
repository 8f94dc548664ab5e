"""
Memo AI — Similarity search tests
Full-scan ranking, thresholds, self/deleted exclusion, index path and fallback.
"""

import sqlite3

import pytest
from conftest import DIMS, at_distance, insert_note

from memo_ai import vector_index
from memo_ai.database import get_connection
from memo_ai.errors import SearchError
from memo_ai.repository import SimilaritySearchEngine, soft_delete_note
from memo_ai.vector_index import IndexProbe, cosine_distance

QUERY = [1.0, 0.0, 0.0, 0.0]


@pytest.fixture
def engine():
    return SimilaritySearchEngine()


@pytest.fixture
def corpus():
    """Notes at known cosine distances from QUERY."""
    return {
        d: insert_note(f"note at {d}", vector=at_distance(d))
        for d in (0.05, 0.1, 0.25, 0.45, 0.55, 0.9, 1.4)
    }


def _distances(rows):
    return [r["distance"] for r in rows]


class TestFullScan:
    def test_three_note_corpus_threshold_and_order(self, engine):
        ids = {d: insert_note(f"n{d}", vector=at_distance(d)) for d in (0.1, 0.45, 0.9)}
        rows = engine.find_by_query(QUERY, top_k=10, max_distance=0.5)
        assert [r["id"] for r in rows] == [ids[0.1], ids[0.45]]
        assert _distances(rows) == pytest.approx([0.1, 0.45], abs=1e-5)

    def test_row_shape(self, engine):
        insert_note("shape", vector=QUERY, created_at="2025-05-01T08:00:00+00:00")
        (row,) = engine.find_by_query(QUERY, top_k=5, max_distance=0.5)
        assert set(row) == {"id", "content", "created_at", "updated_at", "distance"}
        assert row["content"] == "shape"
        assert row["distance"] == pytest.approx(0.0, abs=1e-6)

    def test_stricter_threshold_gives_subset(self, engine, corpus):
        loose = engine.find_by_query(QUERY, top_k=30, max_distance=0.6)
        strict = engine.find_by_query(QUERY, top_k=30, max_distance=0.3)
        assert {r["id"] for r in strict} <= {r["id"] for r in loose}
        assert all(d < 0.3 for d in _distances(strict))
        assert all(d < 0.6 for d in _distances(loose))

    def test_results_ascending_and_capped(self, engine, corpus):
        rows = engine.find_by_query(QUERY, top_k=3, max_distance=2.0)
        assert len(rows) == 3
        assert _distances(rows) == sorted(_distances(rows))

    def test_self_excluded_even_at_distance_zero(self, engine):
        me = insert_note("me", vector=QUERY)
        other = insert_note("other", vector=at_distance(0.2))
        rows = engine.find_related(me, QUERY, top_k=10, max_distance=0.5)
        assert [r["id"] for r in rows] == [other]

    def test_deleted_notes_excluded(self, engine):
        keep = insert_note("keep", vector=at_distance(0.1))
        gone = insert_note("gone", vector=QUERY)
        soft_delete_note(gone)
        assert [r["id"] for r in engine.find_by_query(QUERY, 10, 0.5)] == [keep]

    def test_null_and_malformed_embeddings_skipped(self, engine):
        good = insert_note("good", vector=at_distance(0.1))
        insert_note("no vector")
        insert_note("short vector", vector=[1.0, 0.0])
        insert_note("zero vector", vector=[0.0, 0.0, 0.0, 0.0])
        assert [r["id"] for r in engine.find_by_query(QUERY, 10, 0.5)] == [good]

    def test_ties_broken_by_id(self, engine):
        insert_note("b", vector=at_distance(0.2), note_id="bbb")
        insert_note("a", vector=at_distance(0.2), note_id="aaa")
        assert [r["id"] for r in engine.find_by_query(QUERY, 10, 0.5)] == ["aaa", "bbb"]

    def test_no_match_is_empty_list(self, engine):
        insert_note("far", vector=at_distance(1.5))
        assert engine.find_by_query(QUERY, 10, 0.4) == []

    def test_non_positive_top_k(self, engine, corpus):
        assert engine.find_by_query(QUERY, top_k=0, max_distance=2.0) == []

    def test_full_scan_failure_is_search_error(self, engine, monkeypatch):
        def broken(*args):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(engine, "_full_scan", broken)
        with pytest.raises(SearchError) as exc:
            engine.find_by_query(QUERY, 10, 0.5)
        assert exc.value.code == "SEARCH_FAILED"


class TestIndexFallback:
    def test_probe_reports_absent_index(self, engine):
        assert engine.probe_index() == IndexProbe(present=False)

    def test_index_failure_falls_back_to_full_scan(self, engine, monkeypatch, caplog):
        near = insert_note("near", vector=at_distance(0.1))
        monkeypatch.setattr(engine, "probe_index", lambda: IndexProbe(True, "vec_notes_embedding"))

        def broken(*args):
            raise sqlite3.OperationalError("no such module: vec0")

        monkeypatch.setattr(engine, "_index_search", broken)
        with caplog.at_level("WARNING", logger="memo_ai.repository.search"):
            rows = engine.find_by_query(QUERY, 10, 0.5)
        assert [r["id"] for r in rows] == [near]
        assert "falling back to full scan" in caplog.text

    def test_empty_index_result_falls_back_to_full_scan(self, engine, monkeypatch):
        near = insert_note("near", vector=at_distance(0.1))
        monkeypatch.setattr(engine, "probe_index", lambda: IndexProbe(True, "vec_notes_embedding"))
        monkeypatch.setattr(engine, "_index_search", lambda *args: [])
        assert [r["id"] for r in engine.find_by_query(QUERY, 10, 0.5)] == [near]


@pytest.mark.skipif(not vector_index.vec_available(), reason="sqlite-vec not loadable")
class TestIndexPath:
    def _index(self, note_ids):
        with get_connection() as conn:
            assert vector_index.create_index(conn, DIMS)
            indexed = vector_index.rebuild(conn, DIMS)
        assert indexed == len(note_ids)

    def test_probe_and_search_through_index(self, engine, monkeypatch):
        ids = {d: insert_note(f"n{d}", vector=at_distance(d)) for d in (0.1, 0.45, 0.9)}
        self._index(ids)
        assert engine.probe_index() == IndexProbe(True, "vec_notes_embedding")

        def no_scan(*args):
            raise AssertionError("full scan must not run when the index answers")

        monkeypatch.setattr(engine, "_full_scan", no_scan)
        rows = engine.find_by_query(QUERY, top_k=10, max_distance=0.5)
        assert [r["id"] for r in rows] == [ids[0.1], ids[0.45]]
        assert _distances(rows) == pytest.approx([0.1, 0.45], abs=1e-4)

    def test_index_excludes_self_and_deleted(self, engine):
        me = insert_note("me", vector=QUERY)
        gone = insert_note("gone", vector=at_distance(0.05))
        other = insert_note("other", vector=at_distance(0.2))
        self._index([me, gone, other])
        soft_delete_note(gone)
        rows = engine.find_related(me, QUERY, top_k=10, max_distance=0.5)
        assert [r["id"] for r in rows] == [other]

    def test_soft_delete_drops_index_row(self, engine):
        gone_a = insert_note("gone a", vector=at_distance(0.02))
        gone_b = insert_note("gone b", vector=at_distance(0.03))
        near = insert_note("near", vector=at_distance(0.05))
        next_ = insert_note("next", vector=at_distance(0.1))
        self._index([gone_a, gone_b, near, next_])

        soft_delete_note(gone_a)
        soft_delete_note(gone_b)

        with get_connection() as conn:
            (count,) = conn.execute("SELECT count(*) FROM vec_notes_embedding").fetchone()
        assert count == 2
        rows = engine.find_by_query(QUERY, top_k=2, max_distance=0.5)
        assert [r["id"] for r in rows] == [near, next_]


class TestCosineDistance:
    def test_identical_and_opposite(self):
        from memo_ai.codec import encode

        a = encode([1.0, 2.0, 3.0])
        assert cosine_distance(a, a) == pytest.approx(0.0, abs=1e-7)
        assert cosine_distance(a, encode([-1.0, -2.0, -3.0])) == pytest.approx(2.0)

    def test_invalid_inputs_are_null(self):
        from memo_ai.codec import encode

        assert cosine_distance(None, encode([1.0])) is None
        assert cosine_distance(encode([1.0, 0.0]), encode([1.0])) is None
        assert cosine_distance(encode([0.0, 0.0]), encode([1.0, 0.0])) is None
