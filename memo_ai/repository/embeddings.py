"""
Memo AI — Repository: Embedding lifecycle.
Fetch-or-generate per note, fire-and-forget persistence, repair sweep.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait

from .. import config, vector_index
from ..codec import decode, encode
from ..database import get_connection
from ..embedder import EmbeddingGenerator
from ..errors import ConversionError, EmptyContentError, MemoAIError, NoteNotFoundError

logger = logging.getLogger(__name__)

# Characters stripped by SQLite trim() when skipping blank notes, matching str.strip() on ASCII
_BLANK_CHARS = " \t\n\r\v\f"


class EmbeddingRepository:
    """
    Per-note embedding accessor.

    A stored vector is trusted only if it decodes to exactly ``dimensions``
    floats. Anything else is regenerated and written back off the caller's
    path; the next read regenerates again if that write never landed.
    """

    def __init__(
        self,
        generator: EmbeddingGenerator,
        dimensions: int = config.EMBED_DIMENSIONS,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._generator = generator
        self._dimensions = dimensions
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="embedding-persist")
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def get_or_create(self, note_id: str) -> list[float]:
        """Return a valid embedding for the note, generating one if needed."""
        with get_connection() as conn:
            row = conn.execute(
                "SELECT content, embedding FROM notes WHERE id = ? AND deleted_at IS NULL",
                (note_id,),
            ).fetchone()

        if row is None:
            raise NoteNotFoundError(f"Note {note_id} not found or deleted", details={"note_id": note_id})

        stored = row["embedding"]
        if stored:
            try:
                vector = decode(stored)
            except ConversionError as exc:
                logger.warning("Stored embedding for note %s is unreadable (%s), regenerating", note_id, exc)
            else:
                if len(vector) == self._dimensions:
                    return vector
                logger.warning(
                    "Stored embedding for note %s has length %d (expected %d), regenerating",
                    note_id,
                    len(vector),
                    self._dimensions,
                )

        content = row["content"]
        if not content or not content.strip():
            raise EmptyContentError(
                f"Note {note_id} has no content, cannot generate embedding", details={"note_id": note_id}
            )

        logger.info("Generating new embedding for note %s", note_id)
        vector = self._generator.generate(content)
        self._schedule(lambda: self._persist(note_id, vector, content), note_id)
        return vector

    def repair(self, limit: int = config.REPAIR_BATCH_LIMIT) -> dict[str, int]:
        """
        Regenerate embeddings that are missing or of the wrong length.
        Runs synchronously; per-note failures are logged and counted.
        Returns {"scanned", "repaired", "failed"}.
        """
        with get_connection() as conn:
            rows = conn.execute(
                """
                SELECT id, content FROM notes
                WHERE deleted_at IS NULL
                  AND (embedding IS NULL OR length(embedding) != ?)
                  AND trim(content, ?) != ''
                ORDER BY updated_at DESC
                LIMIT ?
                """,
                (self._dimensions * 4, _BLANK_CHARS, limit),
            ).fetchall()

        repaired = failed = 0
        for row in rows:
            try:
                vector = self._generator.generate(row["content"])
                self._persist(row["id"], vector, row["content"])
            except MemoAIError as exc:
                failed += 1
                logger.warning("Embedding repair failed for note %s: [%s] %s", row["id"], exc.code, exc)
                continue
            except sqlite3.Error as exc:
                failed += 1
                logger.warning("Embedding repair could not save note %s: %s", row["id"], exc)
                continue
            repaired += 1

        logger.info("Embedding repair: scanned=%d repaired=%d failed=%d", len(rows), repaired, failed)
        return {"scanned": len(rows), "repaired": repaired, "failed": failed}

    def flush(self, timeout: float | None = None) -> None:
        """Wait for background writes scheduled so far."""
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # ── Private helpers ──────────────────────────────────────────────────────

    def _schedule(self, task: Callable[[], None], note_id: str) -> None:
        """Run task in the background. Failures are logged, never raised to the caller."""

        def _run() -> None:
            try:
                task()
            except Exception as exc:
                logger.warning("Failed to save new embedding for note %s in background: %s", note_id, exc)

        def _done(future: Future) -> None:
            with self._pending_lock:
                self._pending.discard(future)

        try:
            future = self._executor.submit(_run)
        except RuntimeError:
            logger.warning("Embedding persist for note %s skipped: executor shut down", note_id)
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(_done)

    def _persist(self, note_id: str, vector: list[float], content: str) -> None:
        """
        Write the vector to notes.embedding and mirror it into the index if present.
        The write only lands while the note still holds the content that was embedded.
        """
        blob = encode(vector)
        with get_connection() as conn:
            cursor = conn.execute(
                "UPDATE notes SET embedding = ? WHERE id = ? AND content = ? AND deleted_at IS NULL",
                (blob, note_id, content),
            )
            if cursor.rowcount == 0:
                logger.debug("Note %s changed or vanished before its embedding was saved", note_id)
                return
            row = conn.execute("SELECT rowid FROM notes WHERE id = ?", (note_id,)).fetchone()

        if len(vector) != self._dimensions:
            return
        with get_connection() as conn:
            index = vector_index.probe(conn)
            if index.present:
                try:
                    vector_index.upsert(conn, row["rowid"], blob, index.name)
                except Exception:
                    logger.warning("Vector index upsert failed for note %s", note_id, exc_info=True)
