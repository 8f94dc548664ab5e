"""
Memo AI — FastAPI application
Related notes, question answering and insights over a personal note store.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from . import config
from .cache import get_cache
from .database import get_connection, init_db
from .errors import InsufficientDataError, MemoAIError
from .models import (
    CacheStatsResponse,
    CacheSweepResponse,
    ErrorResponse,
    InsightsRequest,
    InsightsResponse,
    NoteRecord,
    NoteWriteRequest,
    PolishRequest,
    PolishResponse,
    RelatedRequest,
    RelatedResponse,
    SearchRequest,
    SearchResponse,
    TagsRequest,
    TagsResponse,
)
from .repository import create_note, get_note, list_recent_notes, soft_delete_note, update_note
from .service import AIService, get_service

logger = logging.getLogger(__name__)


def _processing_time(request: Request) -> float:
    started = getattr(request.state, "started", None)
    if started is None:
        return 0.0
    return round(time.perf_counter() - started, 3)


def _error_response(status: int, message: str, code: str | None, request: Request) -> JSONResponse:
    body = ErrorResponse(error=message, code=code, processing_time=_processing_time(request))
    return JSONResponse(status_code=status, content=body.model_dump(by_alias=True, exclude_none=True))


# ── Request timing middleware ────────────────────────────────────────────────


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Process-Time"] = f"{_processing_time(request):.3f}"
        return response


# ── App factory ──────────────────────────────────────────────────────────────


async def _sweep_cache_periodically(interval: int) -> None:
    cache = get_cache()
    while True:
        await asyncio.sleep(interval)
        removed = cache.sweep()
        if removed:
            logger.info("Periodic cache sweep removed %d expired entries", removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    sweeper = None
    if config.CACHE_SWEEP_INTERVAL > 0:
        sweeper = asyncio.create_task(_sweep_cache_periodically(config.CACHE_SWEEP_INTERVAL))
    yield
    if sweeper is not None:
        sweeper.cancel()
    # Let pending embedding writes land before the pool goes away
    if get_service.cache_info().currsize:
        get_service().close()
    from .database import _pool

    _pool.clear()


app = FastAPI(
    title="Memo AI",
    description="Semantic retrieval over personal notes: related notes, answers grounded in your notes, insights.",
    version=config.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
)

app.add_middleware(RequestTimingMiddleware)


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "body"
    message = f"Invalid request: {field}: {first.get('msg', 'invalid value')}"
    return _error_response(400, message, None, request)


# Unhandled exceptions: no stack trace exposed to the client
@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error: %s", exc, exc_info=True)
    return _error_response(500, "Internal server error", "INTERNAL_ERROR", request)


_Service = Depends(get_service)


def _run_cached(request: Request, operation: str, params: dict[str, Any], compute: Callable[[], dict]) -> JSONResponse:
    """Run a flow through the response cache and map its failures to the error body."""
    try:
        result = get_cache().with_cache(operation, params, compute)
    except MemoAIError as exc:
        status = 400 if isinstance(exc, InsufficientDataError) else 500
        log = logger.warning if status == 400 else logger.error
        log("AI %s failed: [%s] %s", operation, exc.code, exc.message, exc_info=status == 500)
        return _error_response(status, exc.message, exc.code, request)
    body = dict(result.value)
    body["cache"] = {
        "status": result.info["status"],
        "key": result.info["key"],
        "ageSec": result.info["age_sec"],
        "expiresAt": result.info["expires_at"],
    }
    return JSONResponse(content=body)


# ── AI endpoints ─────────────────────────────────────────────────────────────


@app.post("/api/ai/search", response_model=SearchResponse)
def ai_search(request: Request, body: SearchRequest, service: AIService = _Service) -> JSONResponse:
    """Answer a question from the notes most similar to it."""
    return _run_cached(request, "search", body.model_dump(by_alias=True), lambda: service.search(body.query))


@app.post("/api/ai/related", response_model=RelatedResponse)
def ai_related(request: Request, body: RelatedRequest, service: AIService = _Service) -> JSONResponse:
    """Notes semantically close to the given one (never itself)."""
    return _run_cached(request, "related", body.model_dump(by_alias=True), lambda: service.related_notes(body.memo_id))


@app.post("/api/ai/insights", response_model=InsightsResponse)
def ai_insights(request: Request, body: InsightsRequest, service: AIService = _Service) -> JSONResponse:
    """Patterns and reflections across recent notes."""
    start = body.time_range.start if body.time_range else None
    end = body.time_range.end if body.time_range else None
    return _run_cached(
        request,
        "insights",
        body.model_dump(by_alias=True),
        lambda: service.insights(max_notes=body.max_memos, start=start, end=end),
    )


@app.post("/api/ai/polish", response_model=PolishResponse)
def ai_polish(request: Request, body: PolishRequest, service: AIService = _Service) -> JSONResponse:
    """Alternative rewordings of a draft note."""
    return _run_cached(request, "polish", body.model_dump(by_alias=True), lambda: service.polish(body.content))


@app.post("/api/ai/tags", response_model=TagsResponse)
def ai_tags(request: Request, body: TagsRequest, service: AIService = _Service) -> JSONResponse:
    """Up to two tags for a note, preferring #hashtags and existing tags."""
    return _run_cached(
        request,
        "tags",
        body.model_dump(by_alias=True),
        lambda: service.generate_tags(body.content, body.existing_tags),
    )


@app.get("/api/ai/cache/stats", response_model=CacheStatsResponse)
def cache_stats() -> CacheStatsResponse:
    return CacheStatsResponse(**get_cache().stats())


@app.post("/api/ai/cache/sweep", response_model=CacheSweepResponse)
def cache_sweep() -> CacheSweepResponse:
    return CacheSweepResponse(removed=get_cache().sweep())


# ── Notes ────────────────────────────────────────────────────────────────────


@app.post("/api/memos", response_model=NoteRecord, status_code=201)
def create_memo(req: NoteWriteRequest) -> NoteRecord:
    """Save a note. Its embedding is generated on first use."""
    return create_note(req.content)


@app.get("/api/memos", response_model=list[NoteRecord])
def list_memos(limit: int = Query(20, ge=1, le=200)) -> list[NoteRecord]:
    return list_recent_notes(limit=limit)


@app.get("/api/memos/{memo_id}", response_model=NoteRecord)
def get_memo(memo_id: str) -> NoteRecord:
    note = get_note(memo_id)
    if not note:
        raise HTTPException(status_code=404, detail="Note not found")
    return note


@app.put("/api/memos/{memo_id}", response_model=NoteRecord)
def update_memo(memo_id: str, req: NoteWriteRequest) -> NoteRecord:
    """Replace a note's content. The old embedding is dropped."""
    if not update_note(memo_id, req.content):
        raise HTTPException(status_code=404, detail="Note not found")
    return get_note(memo_id)


@app.delete("/api/memos/{memo_id}", status_code=204)
def delete_memo(memo_id: str) -> None:
    if not soft_delete_note(memo_id):
        raise HTTPException(status_code=404, detail="Note not found")


# ── Utility ──────────────────────────────────────────────────────────────────


@app.get("/health")
def health() -> JSONResponse:
    from . import vector_index

    db_ok = True
    index_present = False
    try:
        with get_connection() as conn:
            conn.execute("SELECT 1").fetchone()
            index_present = vector_index.probe(conn).present
    except Exception:
        db_ok = False
    status = "ok" if db_ok else "degraded"
    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={
            "status": status,
            "version": config.VERSION,
            "database": "connected" if db_ok else "unavailable",
            "vector_index": "sqlite-vec" if index_present else "full-scan",
            "embedding_model": config.EMBED_MODEL,
            "chat_model": config.CHAT_MODEL,
        },
    )
