"""
Memo AI — Error taxonomy
Typed failures with a machine-readable ``code`` for programmatic matching.
"""

from __future__ import annotations

from typing import Any


class MemoAIError(Exception):
    """Base error class for the retrieval core."""

    code = "MEMO_AI_ERROR"

    def __init__(self, message: str, code: str | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


# ── Embedding service ────────────────────────────────────────────────────────


class EmbeddingServiceError(MemoAIError):
    """Any failure while producing or converting an embedding."""

    code = "EMBEDDING_ERROR"


class InvalidInputError(EmbeddingServiceError):
    """Empty text or malformed vector handed to the embedding layer."""

    code = "INVALID_INPUT"


class InvalidResponseError(EmbeddingServiceError):
    """The embedding model answered without a usable vector."""

    code = "INVALID_RESPONSE"


class UpstreamApiError(EmbeddingServiceError):
    """The embedding API returned an error status."""

    code = "API_ERROR"

    def __init__(self, message: str, status: int | None = None, upstream_code: str | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.status = status
        self.upstream_code = upstream_code


class UnknownError(EmbeddingServiceError):
    """Unexpected exception while calling the embedding model."""

    code = "UNKNOWN_ERROR"


class ConversionError(EmbeddingServiceError):
    """A stored buffer cannot be decoded into a float32 vector."""

    code = "CONVERSION_ERROR"


# ── Chat model ───────────────────────────────────────────────────────────────


class AIServiceError(MemoAIError):
    """Chat completion failure. ``code`` is one of NO_RESPONSE, EMPTY_RESPONSE, API_ERROR, UNKNOWN_ERROR."""

    code = "AI_SERVICE_ERROR"


# ── Notes / search ───────────────────────────────────────────────────────────


class NoteNotFoundError(MemoAIError):
    """Note does not exist or is soft-deleted."""

    code = "NOT_FOUND"


class EmptyContentError(MemoAIError):
    """Note has no content to embed."""

    code = "EMPTY_CONTENT"


class SearchError(MemoAIError):
    """Full-scan similarity query failed."""

    code = "SEARCH_FAILED"


class InsufficientDataError(MemoAIError):
    """Not enough notes to run an analysis."""

    code = "NO_DATA"
