"""
Memo AI — Vector index with sqlite-vec native search.

Strategy:
  - Optional sqlite-vec vec0 virtual table keyed by notes.rowid
  - Existence is probed from sqlite_master, never assumed
  - distance_metric=cosine, same scale as vector_distance_cos()
  - vector_distance_cos() is registered on every connection so the
    full-scan path can rank rows inside SQL when the index is absent
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from functools import lru_cache

import numpy as np

from . import config
from .codec import decode

logger = logging.getLogger(__name__)

# --- sqlite-vec availability ---
try:
    import sqlite_vec

    _HAS_SQLITE_VEC = True
except ImportError:
    _HAS_SQLITE_VEC = False


def load_extension(conn: sqlite3.Connection) -> bool:
    """Load sqlite-vec on a connection. Returns False when it cannot be loaded."""
    if not _HAS_SQLITE_VEC:
        return False
    try:
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
    except (AttributeError, sqlite3.Error) as exc:
        logger.debug("sqlite-vec not loadable: %s", exc)
        return False
    return True


@lru_cache(maxsize=1)
def vec_available() -> bool:
    """True when sqlite-vec can actually be loaded by this Python build."""
    conn = sqlite3.connect(":memory:")
    try:
        return load_extension(conn)
    finally:
        conn.close()


# ── Cosine distance SQL function ─────────────────────────────────────────────


def cosine_distance(a: bytes | None, b: bytes | None) -> float | None:
    """
    1 - cosine similarity of two float32 blobs.
    NULL for missing blobs, mismatched lengths, zero vectors or non-finite results.
    """
    if not a or not b or len(a) != len(b) or len(a) % 4:
        return None
    va = np.frombuffer(a, dtype="<f4").astype(np.float64)
    vb = np.frombuffer(b, dtype="<f4").astype(np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0 or not np.isfinite(norm):
        return None
    distance = 1.0 - float(np.dot(va, vb)) / norm
    if not np.isfinite(distance):
        return None
    return distance


def register_functions(conn: sqlite3.Connection) -> None:
    """Expose vector_distance_cos(blob, blob) to SQL on this connection."""
    conn.create_function("vector_distance_cos", 2, cosine_distance, deterministic=True)


# ── Index capability probe ───────────────────────────────────────────────────


@dataclass(frozen=True)
class IndexProbe:
    present: bool
    name: str | None = None


def probe(conn: sqlite3.Connection, table: str = config.VECTOR_INDEX_TABLE) -> IndexProbe:
    """Metadata-only lookup for the vector index table."""
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
        (table,),
    ).fetchone()
    if row is None:
        return IndexProbe(present=False)
    return IndexProbe(present=True, name=row[0])


# ── Index lifecycle ──────────────────────────────────────────────────────────


def create_index(
    conn: sqlite3.Connection,
    dimensions: int = config.EMBED_DIMENSIONS,
    table: str = config.VECTOR_INDEX_TABLE,
) -> bool:
    """Create the vec0 table if sqlite-vec is loadable. Returns True if the index exists afterwards."""
    if not load_extension(conn):
        logger.info("sqlite-vec unavailable, vector search will use full scans")
        return False
    conn.execute(f"""
        CREATE VIRTUAL TABLE IF NOT EXISTS {table} USING vec0(
            embedding float[{int(dimensions)}] distance_metric=cosine
        )
    """)
    return True


def upsert(conn: sqlite3.Connection, rowid: int, blob: bytes, table: str = config.VECTOR_INDEX_TABLE) -> None:
    """Insert or replace one note vector in the index."""
    conn.execute(f"DELETE FROM {table} WHERE rowid = ?", (rowid,))
    conn.execute(f"INSERT INTO {table}(rowid, embedding) VALUES (?, ?)", (rowid, blob))


def remove(conn: sqlite3.Connection, rowid: int, table: str = config.VECTOR_INDEX_TABLE) -> None:
    conn.execute(f"DELETE FROM {table} WHERE rowid = ?", (rowid,))


def rebuild(
    conn: sqlite3.Connection,
    dimensions: int = config.EMBED_DIMENSIONS,
    table: str = config.VECTOR_INDEX_TABLE,
) -> int:
    """Refill the index from notes.embedding (valid-length vectors only). Returns rows indexed."""
    if not probe(conn, table).present and not create_index(conn, dimensions, table):
        return 0

    conn.execute(f"DELETE FROM {table}")
    rows = conn.execute(
        """
        SELECT rowid, embedding FROM notes
        WHERE embedding IS NOT NULL
          AND deleted_at IS NULL
          AND length(embedding) = ?
        """,
        (dimensions * 4,),
    ).fetchall()

    indexed = 0
    for row in rows:
        try:
            decode(row["embedding"])
            upsert(conn, row["rowid"], row["embedding"], table)
            indexed += 1
        except Exception:
            logger.warning("Skipping unindexable embedding for rowid %s", row["rowid"], exc_info=True)

    logger.info("Synced %d vectors to sqlite-vec index %s", indexed, table)
    return indexed
