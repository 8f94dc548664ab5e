"""
Memo AI — Embedder
Remote text embeddings through an OpenAI-compatible /embeddings endpoint.
Default: Qwen/Qwen3-Embedding-4B (2560 dim).

The generator validates shape only. A vector whose length differs from the
configured dimension is returned with a warning; readers treat it as absent.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Any

import httpx

from . import config
from .errors import InvalidInputError, InvalidResponseError, UnknownError, UpstreamApiError

logger = logging.getLogger(__name__)


def _truncate(text: str, max_chars: int = config.MAX_EMBED_CHARS) -> str:
    """Truncate text to max chars to keep requests bounded."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars]


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _upstream_error(response: httpx.Response) -> UpstreamApiError:
    """Build an UpstreamApiError from an OpenAI-style error body."""
    status = response.status_code
    upstream_code = None
    message = response.reason_phrase or f"HTTP {status}"
    try:
        body = response.json()
        err = body.get("error", body) if isinstance(body, dict) else {}
        if isinstance(err, dict):
            message = err.get("message") or message
            upstream_code = err.get("code") or err.get("type")
        elif isinstance(err, str):
            message = err
    except ValueError:
        pass
    return UpstreamApiError(
        f"Embedding API error: {message}",
        status=status,
        upstream_code=str(upstream_code) if upstream_code is not None else None,
        details={"status": status, "code": upstream_code},
    )


class EmbeddingGenerator:
    """
    Embedding client for a single remote model.

    Args:
        base_url: API root, e.g. https://api.siliconflow.cn/v1
        api_key: bearer token (optional for local gateways)
        model: embedding model name
        dimensions: expected vector length D
        http_client: preconfigured httpx.Client (tests inject a MockTransport)
    """

    def __init__(
        self,
        base_url: str = config.EMBED_API_URL,
        api_key: str | None = config.EMBED_API_KEY,
        model: str = config.EMBED_MODEL,
        dimensions: int = config.EMBED_DIMENSIONS,
        timeout: float = config.EMBED_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        if http_client is None:
            headers = {"Content-Type": "application/json"}
            if api_key:
                headers["Authorization"] = f"Bearer {api_key}"
            http_client = httpx.Client(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)
        self._client = http_client

    def close(self) -> None:
        self._client.close()

    def generate(self, text: str) -> list[float]:
        """Return the embedding vector for one text."""
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Text content must not be empty")

        payload = {"model": self.model, "input": _truncate(text.strip())}
        try:
            response = self._client.post("/embeddings", json=payload)
        except Exception as exc:
            raise UnknownError(
                f"Unexpected error while generating embedding: {exc}",
                details={"original_error": repr(exc)},
            ) from exc

        if not response.is_success:
            raise _upstream_error(response)

        try:
            body = response.json()
        except ValueError as exc:
            raise InvalidResponseError("Embedding API returned a non-JSON body") from exc

        embedding = None
        if isinstance(body, dict):
            data = body.get("data")
            if isinstance(data, list) and data and isinstance(data[0], dict):
                embedding = data[0].get("embedding")

        if not isinstance(embedding, list) or not embedding or not all(_is_finite_number(v) for v in embedding):
            raise InvalidResponseError("Embedding API returned an invalid vector", details={"response": body})

        if len(embedding) != self.dimensions:
            logger.warning(
                "Embedding dimension mismatch: expected %d, got %d (model %s)",
                self.dimensions,
                len(embedding),
                self.model,
            )

        return [float(v) for v in embedding]


@lru_cache(maxsize=1)
def get_generator() -> EmbeddingGenerator:
    """Build the process-wide generator once and keep it cached."""
    logger.info("Embedding model %s (dim=%d) at %s", config.EMBED_MODEL, config.EMBED_DIMENSIONS, config.EMBED_API_URL)
    return EmbeddingGenerator()
