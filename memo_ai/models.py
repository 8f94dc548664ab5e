"""
Memo AI — Pydantic models
Request/response schemas with validation. Wire format is camelCase.
"""

from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("must be a non-empty string")
    return v.strip()


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


# ── Notes ─────────────────────────────────────────────────────────────────────


class NoteRecord(WireModel):
    id: str
    content: str
    created_at: str | None = None
    updated_at: str | None = None
    has_embedding: bool = False


class NoteWriteRequest(WireModel):
    content: NonBlankStr = Field(..., min_length=1, max_length=20000)


# ── Search results ────────────────────────────────────────────────────────────


class SearchResult(WireModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "id": "3f2a9c0e",
                    "content": "Reading notes on distributed consensus",
                    "distance": 0.21,
                    "similarity": 0.79,
                    "preview": "Reading notes on distributed consensus",
                    "createdAt": "2025-03-02T09:14:00+00:00",
                    "updatedAt": "2025-03-02T09:14:00+00:00",
                    "displayDate": "2025-03-02 09:14",
                }
            ]
        },
    )

    id: str
    content: str
    distance: float | None = None
    similarity: float | None = None
    preview: str
    created_at: str | None = None
    updated_at: str | None = None
    display_date: str


class CacheInfo(WireModel):
    status: Literal["hit", "miss"]
    key: str
    age_sec: int
    expires_at: str


# ── AI search ─────────────────────────────────────────────────────────────────


class SearchRequest(WireModel):
    query: NonBlankStr = Field(..., max_length=2000)


class SearchResponse(WireModel):
    answer: str
    results_count: int
    processing_time: float
    sources: list[SearchResult] = []
    cited_ids: list[str] = []
    usage: dict[str, Any] | None = None
    cache: CacheInfo | None = None


class SynthesizedAnswer(WireModel):
    """Strict schema expected from the chat model for search answers."""

    answer: str = Field(..., min_length=1)
    cited_ids: list[str] = []


# ── Related notes ─────────────────────────────────────────────────────────────


class RelatedRequest(WireModel):
    memo_id: NonBlankStr = Field(..., max_length=128)


class RelatedResponse(WireModel):
    related_memos: list[SearchResult]
    count: int
    processing_time: float
    cache: CacheInfo | None = None


# ── Insights ──────────────────────────────────────────────────────────────────


class TimeRange(WireModel):
    start: str
    end: str


class InsightsRequest(WireModel):
    max_memos: int = Field(30, ge=1, le=200)
    time_range: TimeRange | None = None


class Insight(WireModel):
    type: str = ""
    title: str = ""
    content: str = ""
    evidence: str = ""
    suggestion: str = ""
    confidence: str = ""


class InsightPatterns(BaseModel):
    time_patterns: str = "Time pattern analysis complete"
    topic_frequency: str = "Topic frequency analysis complete"
    emotional_trends: str = "Emotional trend analysis complete"
    writing_style: str = "Writing style analysis complete"


class InsightsResponse(WireModel):
    overview: str
    insights: list[Insight] = []
    patterns: InsightPatterns = Field(default_factory=InsightPatterns)
    questions_to_ponder: list[str] = []
    processing_time: float
    analyzed_memos_count: int
    cache: CacheInfo | None = None


# ── Writing helpers ───────────────────────────────────────────────────────────


class PolishRequest(WireModel):
    content: NonBlankStr = Field(..., max_length=20000)


class PolishVersion(WireModel):
    style: str = ""
    text: str


class PolishResponse(WireModel):
    versions: list[PolishVersion]
    processing_time: float
    usage: dict[str, Any] | None = None
    cache: CacheInfo | None = None


class TagsRequest(WireModel):
    content: NonBlankStr = Field(..., max_length=20000)
    existing_tags: list[str] = Field(default_factory=list, max_length=500)


class TagsResponse(WireModel):
    tags: list[str]
    source: Literal["hashtag", "model"]
    processing_time: float
    cache: CacheInfo | None = None


# ── Service ───────────────────────────────────────────────────────────────────


class ErrorResponse(WireModel):
    error: str
    code: str | None = None
    processing_time: float = 0.0


class CacheStatsResponse(WireModel):
    total_entries: int
    valid_entries: int
    expired_entries: int


class CacheSweepResponse(WireModel):
    removed: int
    message: str = "Expired cache entries removed"
