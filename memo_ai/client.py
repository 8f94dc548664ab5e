"""
Memo AI — Python SDK Client
Typed client for the Memo AI server over HTTP.

Usage:
    from memo_ai import MemoClient

    with MemoClient("http://localhost:8766") as memo:
        note = memo.create_note("Finished the book on distributed consensus")
        related = memo.related(note.id)
        answer = memo.search("what did I read about consensus?")
"""

from __future__ import annotations

from typing import Any

import httpx

from .models import (
    CacheStatsResponse,
    InsightsResponse,
    NoteRecord,
    PolishResponse,
    RelatedResponse,
    SearchResponse,
    TagsResponse,
)

# ── Exceptions ───────────────────────────────────────────────────────────────


class MemoError(Exception):
    """Base error class for the Memo AI client."""

    def __init__(self, message: str, status_code: int | None = None, detail: Any = None, code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.code = code


class MemoNotFoundError(MemoError):
    """Resource not found (404)."""


class MemoValidationError(MemoError):
    """Request rejected (400/422)."""


class MemoServerError(MemoError):
    """Server-side error (5xx). ``code`` carries the failure kind, e.g. NOT_FOUND or API_ERROR."""


# ── Helpers ──────────────────────────────────────────────────────────────────


def _raise_for_status(response: httpx.Response) -> None:
    """Converts HTTP errors into typed Memo AI exceptions."""
    if response.is_success:
        return

    status = response.status_code
    code = None
    try:
        body = response.json()
        detail = body.get("error", body.get("detail", body)) if isinstance(body, dict) else body
        code = body.get("code") if isinstance(body, dict) else None
    except ValueError:
        detail = response.text

    if status == 404:
        raise MemoNotFoundError("Resource not found", status, detail, code)
    if status in (400, 422):
        raise MemoValidationError("Validation error", status, detail, code)
    if status >= 500:
        raise MemoServerError(f"Server error: {detail}", status, detail, code)

    raise MemoError(f"HTTP {status}", status, detail, code)


# ── Synchronous client ───────────────────────────────────────────────────────


class MemoClient:
    """
    Synchronous client for the Memo AI API.

    Args:
        base_url: server URL (default: http://localhost:8766)
        timeout: request timeout in seconds; AI calls can take a while (default: 60.0)
        http_client: preconfigured httpx.Client, e.g. a FastAPI TestClient
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8766",
        timeout: float = 60.0,
        http_client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def __enter__(self) -> MemoClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Closes the HTTP client."""
        self._client.close()

    # ── AI ───────────────────────────────────────────────────────────────

    def search(self, query: str) -> SearchResponse:
        """Asks a question answered from the most relevant notes."""
        r = self._client.post("/api/ai/search", json={"query": query})
        _raise_for_status(r)
        return SearchResponse.model_validate(r.json())

    def related(self, memo_id: str) -> RelatedResponse:
        """Returns notes similar to the given note."""
        r = self._client.post("/api/ai/related", json={"memoId": memo_id})
        _raise_for_status(r)
        return RelatedResponse.model_validate(r.json())

    def insights(
        self,
        max_memos: int = 30,
        start: str | None = None,
        end: str | None = None,
    ) -> InsightsResponse:
        """Analyses recent notes for patterns."""
        payload: dict[str, Any] = {"maxMemos": max_memos}
        if start and end:
            payload["timeRange"] = {"start": start, "end": end}
        r = self._client.post("/api/ai/insights", json=payload)
        _raise_for_status(r)
        return InsightsResponse.model_validate(r.json())

    def polish(self, content: str) -> PolishResponse:
        """Alternative rewordings of a draft."""
        r = self._client.post("/api/ai/polish", json={"content": content})
        _raise_for_status(r)
        return PolishResponse.model_validate(r.json())

    def tags(self, content: str, existing_tags: list[str] | None = None) -> TagsResponse:
        r = self._client.post("/api/ai/tags", json={"content": content, "existingTags": existing_tags or []})
        _raise_for_status(r)
        return TagsResponse.model_validate(r.json())

    def cache_stats(self) -> CacheStatsResponse:
        r = self._client.get("/api/ai/cache/stats")
        _raise_for_status(r)
        return CacheStatsResponse.model_validate(r.json())

    # ── Notes ────────────────────────────────────────────────────────────

    def create_note(self, content: str) -> NoteRecord:
        r = self._client.post("/api/memos", json={"content": content})
        _raise_for_status(r)
        return NoteRecord.model_validate(r.json())

    def get_note(self, memo_id: str) -> NoteRecord:
        r = self._client.get(f"/api/memos/{memo_id}")
        _raise_for_status(r)
        return NoteRecord.model_validate(r.json())

    def delete_note(self, memo_id: str) -> bool:
        """Soft-deletes a note. Returns True if deleted."""
        r = self._client.delete(f"/api/memos/{memo_id}")
        if r.status_code == 404:
            return False
        _raise_for_status(r)
        return True

    # ── Utility ──────────────────────────────────────────────────────────

    def health(self) -> dict[str, Any]:
        r = self._client.get("/health")
        _raise_for_status(r)
        return r.json()
