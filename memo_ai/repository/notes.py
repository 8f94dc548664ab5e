"""
Memo AI — Repository: Note store operations.
Create, get, update, soft-delete, recent listing. The retrieval core only
reads content and writes back embeddings; everything else lives here.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import UTC, datetime

from .. import vector_index
from ..database import get_connection
from ..models import NoteRecord

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def create_note(content: str, note_id: str | None = None, created_at: str | None = None) -> NoteRecord:
    """Persist a new note without an embedding (generated lazily on first search)."""
    now = created_at or _now()
    note_id = note_id or uuid.uuid4().hex
    with get_connection() as conn:
        conn.execute(
            "INSERT INTO notes (id, content, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (note_id, content, now, now),
        )
    return NoteRecord(id=note_id, content=content, created_at=now, updated_at=now, has_embedding=False)


def get_note(note_id: str) -> NoteRecord | None:
    """Single non-deleted note by id. None if missing or soft-deleted."""
    with get_connection() as conn:
        row = conn.execute(
            """SELECT id, content, created_at, updated_at, embedding IS NOT NULL AS has_embedding
               FROM notes
               WHERE id = ? AND deleted_at IS NULL""",
            (note_id,),
        ).fetchone()
    if not row:
        return None
    return _row_to_note(row)


def update_note(note_id: str, content: str) -> bool:
    """
    Replace the content of a note. The stored embedding no longer describes
    the text, so it is cleared and regenerated on the next similarity read.
    Returns False if not found.
    """
    with get_connection() as conn:
        cursor = conn.execute(
            """UPDATE notes SET content = ?, updated_at = ?, embedding = NULL
               WHERE id = ? AND deleted_at IS NULL""",
            (content, _now(), note_id),
        )
        if cursor.rowcount == 0:
            return False
        _drop_index_row(conn, note_id)
    return True


def _drop_index_row(conn: sqlite3.Connection, note_id: str) -> None:
    index = vector_index.probe(conn)
    if not index.present:
        return
    row = conn.execute("SELECT rowid FROM notes WHERE id = ?", (note_id,)).fetchone()
    try:
        vector_index.remove(conn, row["rowid"], index.name)
    except sqlite3.Error:
        logger.warning("Could not drop stale index row for note %s", note_id, exc_info=True)


def soft_delete_note(note_id: str) -> bool:
    """
    Mark a note deleted. notes.embedding is kept and searches filter on
    deleted_at; the index row goes so it cannot take a nearest-neighbour slot.
    """
    with get_connection() as conn:
        cursor = conn.execute(
            "UPDATE notes SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
            (_now(), note_id),
        )
        if cursor.rowcount == 0:
            return False
        _drop_index_row(conn, note_id)
    return True


def list_recent_notes(limit: int = 30, start: str | None = None, end: str | None = None) -> list[NoteRecord]:
    """Newest non-deleted notes, optionally bounded by created_at."""
    sql = """
        SELECT id, content, created_at, updated_at, embedding IS NOT NULL AS has_embedding
        FROM notes
        WHERE deleted_at IS NULL
    """
    params: list = []
    if start:
        sql += " AND created_at >= ?"
        params.append(start)
    if end:
        sql += " AND created_at <= ?"
        params.append(end)
    sql += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit)

    with get_connection() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_row_to_note(r) for r in rows]


def _row_to_note(row) -> NoteRecord:
    return NoteRecord(
        id=row["id"],
        content=row["content"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        has_embedding=bool(row["has_embedding"]),
    )
