"""
Memo AI - Database layer
Handles SQLite connection pool and schema initialization.
"""

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from queue import Empty, Full, Queue

from . import config
from .vector_index import create_index, load_extension, register_functions

logger = logging.getLogger(__name__)

_POOL_SIZE = 4


def _get_db_path() -> Path:
    """Resolve the DB path at runtime (MEMO_DB_PATH may change between tests)."""
    return Path(os.getenv("MEMO_DB_PATH", config.DEFAULT_DB_PATH))


# ── Connection Pool ─────────────────────────────────────────────────────────


class _ConnectionPool:
    """Simple thread-safe SQLite connection pool."""

    def __init__(self) -> None:
        self._pools: dict[str, Queue] = {}
        self._lock = threading.Lock()

    def _get_pool(self, db_path: str) -> Queue:
        with self._lock:
            if db_path not in self._pools:
                self._pools[db_path] = Queue(maxsize=_POOL_SIZE)
            return self._pools[db_path]

    def acquire(self, db_path: str) -> sqlite3.Connection:
        pool = self._get_pool(db_path)
        try:
            conn = pool.get_nowait()
            conn.execute("SELECT 1")
            return conn
        except Empty:
            pass
        except sqlite3.Error:
            # Broken connection: close it to avoid an fd leak
            try:
                conn.close()
            except sqlite3.Error:
                pass
        conn = sqlite3.connect(db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        register_functions(conn)
        load_extension(conn)
        return conn

    def release(self, db_path: str, conn: sqlite3.Connection) -> None:
        pool = self._get_pool(db_path)
        try:
            pool.put_nowait(conn)
        except Full:
            conn.close()

    def clear(self) -> None:
        """Close every pooled connection (shutdown and test cleanup)."""
        with self._lock:
            for pool in self._pools.values():
                while not pool.empty():
                    try:
                        conn = pool.get_nowait()
                        conn.close()
                    except Empty:
                        break
            self._pools.clear()


_pool = _ConnectionPool()


def init_db(vector_index: bool | None = None, dimensions: int | None = None) -> None:
    """Initialize the database and create tables if they don't exist."""
    if vector_index is None:
        vector_index = config.VECTOR_INDEX
    db_path = _get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db_path.touch(exist_ok=True)
    db_path.chmod(0o600)  # owner only: notes are personal data

    with get_connection() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS notes (
                id          TEXT PRIMARY KEY,
                content     TEXT NOT NULL,
                created_at  TEXT NOT NULL,
                updated_at  TEXT NOT NULL,
                deleted_at  TEXT DEFAULT NULL,
                embedding   BLOB DEFAULT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_notes_active_created ON notes (deleted_at, created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_notes_active_updated ON notes (deleted_at, updated_at DESC);
            CREATE INDEX IF NOT EXISTS idx_notes_deleted ON notes (deleted_at);
        """)

        if vector_index:
            create_index(conn, dimensions or config.EMBED_DIMENSIONS)


@contextmanager
def get_connection():
    """Yield a pooled thread-safe SQLite connection with WAL mode enabled."""
    db_path = str(_get_db_path())
    conn = _pool.acquire(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pool.release(db_path, conn)
