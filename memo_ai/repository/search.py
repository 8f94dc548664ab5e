"""
Memo AI — Repository: Similarity search.
Nearest-neighbour queries over note embeddings: sqlite-vec index when the
store reports one, full scan with vector_distance_cos() otherwise.

Distances are cosine distances (1 - cosine similarity), nominally [0, 2],
lower is more similar. Results are always ascending by distance.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from typing import Any

from .. import config, vector_index
from ..codec import encode
from ..database import get_connection
from ..errors import SearchError

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class SimilaritySearchEngine:
    def __init__(self, index_table: str = config.VECTOR_INDEX_TABLE) -> None:
        self._index_table = index_table

    def probe_index(self) -> vector_index.IndexProbe:
        with get_connection() as conn:
            return vector_index.probe(conn, self._index_table)

    def find_related(
        self,
        note_id: str,
        query_vector: Sequence[float],
        top_k: int = config.RELATED_TOP_K,
        max_distance: float = config.RELATED_MAX_DISTANCE,
    ) -> list[Row]:
        """Notes closest to query_vector, never including note_id itself."""
        return self._search(query_vector, top_k, max_distance, exclude_id=note_id)

    def find_by_query(
        self,
        query_vector: Sequence[float],
        top_k: int = config.SEARCH_TOP_K,
        max_distance: float = config.SEARCH_MAX_DISTANCE,
    ) -> list[Row]:
        """Notes closest to a free-text query vector."""
        return self._search(query_vector, top_k, max_distance, exclude_id=None)

    def _search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        max_distance: float,
        exclude_id: str | None,
    ) -> list[Row]:
        if top_k <= 0:
            return []
        blob = encode(query_vector)

        probe = self.probe_index()
        if probe.present:
            try:
                rows = self._index_search(probe.name, blob, top_k, max_distance, exclude_id)
            except Exception as exc:
                logger.warning("Vector index search via %s failed, falling back to full scan: %s", probe.name, exc)
            else:
                if rows:
                    logger.debug("Index search via %s returned %d rows", probe.name, len(rows))
                    return rows
                logger.info("Vector index %s returned no usable rows, falling back to full scan", probe.name)

        try:
            rows = self._full_scan(blob, top_k, max_distance, exclude_id)
        except sqlite3.Error as exc:
            raise SearchError(f"Similarity search failed: {exc}") from exc
        logger.debug("Full scan returned %d rows", len(rows))
        return rows

    def _index_search(
        self,
        index_name: str,
        blob: bytes,
        top_k: int,
        max_distance: float,
        exclude_id: str | None,
    ) -> list[Row]:
        """KNN through the vec0 table: top_k + 1 candidates to leave room for the self match."""
        sql = f"""
            WITH knn AS (
                SELECT rowid, distance
                FROM {index_name}
                WHERE embedding MATCH :query
                  AND k = :k
            )
            SELECT n.id, n.content, n.created_at, n.updated_at, knn.distance
            FROM knn
            JOIN notes AS n ON n.rowid = knn.rowid
            WHERE n.deleted_at IS NULL
              AND (:exclude_id IS NULL OR n.id != :exclude_id)
              AND knn.distance < :max_distance
            ORDER BY knn.distance ASC, n.id ASC
            LIMIT :limit
        """
        params = {
            "query": blob,
            "k": top_k + 1,
            "exclude_id": exclude_id,
            "max_distance": max_distance,
            "limit": top_k,
        }
        with get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_dict(r) for r in rows]

    def _full_scan(self, blob: bytes, top_k: int, max_distance: float, exclude_id: str | None) -> list[Row]:
        """Brute-force cosine distance against every live note embedding."""
        sql = """
            SELECT id, content, created_at, updated_at, distance
            FROM (
                SELECT id, content, created_at, updated_at,
                       vector_distance_cos(embedding, :query) AS distance
                FROM notes
                WHERE deleted_at IS NULL
                  AND embedding IS NOT NULL
                  AND (:exclude_id IS NULL OR id != :exclude_id)
            )
            WHERE distance IS NOT NULL
              AND distance < :max_distance
            ORDER BY distance ASC, id ASC
            LIMIT :limit
        """
        params = {"query": blob, "exclude_id": exclude_id, "max_distance": max_distance, "limit": top_k}
        with get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_dict(r) for r in rows]


def _row_to_dict(row) -> Row:
    return {
        "id": row["id"],
        "content": row["content"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "distance": row["distance"],
    }
