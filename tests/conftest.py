import json
import os
import sqlite3
import tempfile

# Shared temp DB for all tests, set BEFORE any memo_ai import
_TEST_DB = tempfile.mktemp(suffix=".db")
os.environ["MEMO_DB_PATH"] = _TEST_DB
os.environ["MEMO_VECTOR_INDEX"] = "0"
os.environ["MEMO_CACHE_SWEEP_INTERVAL"] = "0"

import httpx  # noqa: E402
import pytest  # noqa: E402

from memo_ai.cache import get_cache  # noqa: E402
from memo_ai.codec import encode  # noqa: E402
from memo_ai.database import get_connection, init_db  # noqa: E402
from memo_ai.embedder import EmbeddingGenerator  # noqa: E402
from memo_ai.llm import ChatClient  # noqa: E402
from memo_ai.repository import create_note  # noqa: E402

# Initialize schema once
init_db()

# Verify tables were created (fail fast if something went wrong)
_verify_conn = sqlite3.connect(_TEST_DB)
_tables = {r[0] for r in _verify_conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()}
_verify_conn.close()
assert "notes" in _tables, f"init_db() did not create notes table in {_TEST_DB}. Found: {_tables}"

DIMS = 4


@pytest.fixture(autouse=True)
def _clean_state():
    """Empty note table, vector index and response cache between tests."""
    with get_connection() as conn:
        conn.execute("DELETE FROM notes")
        conn.execute("DROP TABLE IF EXISTS vec_notes_embedding")
    get_cache().clear()
    yield
    get_cache().clear()


# ── Fake upstream models (httpx.MockTransport, no network) ───────────────────


class FakeEmbeddingAPI:
    """
    /embeddings stand-in. Returns vectors[text] for known texts, ``default``
    otherwise. Every request is recorded in ``calls``.
    """

    def __init__(self, vectors=None, default=None, status=200, body=None):
        self.vectors = dict(vectors or {})
        self.default = default if default is not None else [0.0, 0.0, 0.0, 1.0]
        self.status = status
        self.body = body
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.calls.append(payload["input"])
        if self.body is not None or self.status != 200:
            return httpx.Response(self.status, json=self.body)
        vector = self.vectors.get(payload["input"], self.default)
        return httpx.Response(200, json={"object": "list", "data": [{"index": 0, "embedding": vector}]})

    def generator(self, dimensions: int = DIMS) -> EmbeddingGenerator:
        client = httpx.Client(base_url="http://embed.test/v1", transport=httpx.MockTransport(self))
        return EmbeddingGenerator(model="test-embed", dimensions=dimensions, http_client=client)


class FakeChatAPI:
    """/chat/completions stand-in answering every request with ``content``."""

    def __init__(self, content='{"answer": "From your notes: yes.", "citedIds": []}', status=200, body=None):
        self.content = content
        self.status = status
        self.body = body
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.body is not None or self.status != 200:
            return httpx.Response(self.status, json=self.body)
        return httpx.Response(
            200,
            json={
                "choices": [{"index": 0, "message": {"role": "assistant", "content": self.content}}],
                "usage": {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150},
            },
        )

    def client(self) -> ChatClient:
        http = httpx.Client(base_url="http://chat.test/v1", transport=httpx.MockTransport(self))
        return ChatClient(model="test-chat", http_client=http)


@pytest.fixture
def embed_api():
    return FakeEmbeddingAPI()


@pytest.fixture
def chat_api():
    return FakeChatAPI()


# ── Data helpers ─────────────────────────────────────────────────────────────


def insert_note(content: str, vector=None, note_id=None, created_at=None, raw_embedding=None) -> str:
    """Create a note and optionally store an embedding (vector or raw bytes)."""
    note = create_note(content, note_id=note_id, created_at=created_at)
    blob = raw_embedding if raw_embedding is not None else (encode(vector) if vector is not None else None)
    if blob is not None:
        with get_connection() as conn:
            conn.execute("UPDATE notes SET embedding = ? WHERE id = ?", (blob, note.id))
    return note.id


def stored_embedding(note_id: str):
    with get_connection() as conn:
        row = conn.execute("SELECT embedding FROM notes WHERE id = ?", (note_id,)).fetchone()
    return row["embedding"] if row else None


def at_distance(d: float) -> list[float]:
    """4-dim unit vector at cosine distance d from [1, 0, 0, 0]."""
    c = 1.0 - d
    return [c, (1.0 - c * c) ** 0.5, 0.0, 0.0]
