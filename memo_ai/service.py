"""
Memo AI — AI flows
Related notes, question answering over notes, and note insights.

Each flow returns a JSON-ready dict in wire format (camelCase) so the API
layer can cache it as-is.
"""

from __future__ import annotations

import logging
import re
import time
from functools import lru_cache
from typing import Any

from . import config
from .embedder import EmbeddingGenerator, get_generator
from .errors import InsufficientDataError
from .formatter import format_results
from .llm import ChatClient, DecodedAnswer, decode_answer, decode_json_object, get_chat_client
from .models import (
    Insight,
    InsightPatterns,
    InsightsResponse,
    NoteRecord,
    PolishResponse,
    PolishVersion,
    RelatedResponse,
    SearchResponse,
    SearchResult,
    TagsResponse,
)
from .repository import EmbeddingRepository, SimilaritySearchEngine, list_recent_notes

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"

NO_RESULTS_ANSWER = (
    "Sorry, I couldn't find anything in your notes related to this question. "
    "Try rephrasing it, or write a note about it first."
)

SEARCH_SYSTEM_PROMPT = """You are a helpful assistant that answers questions using the user's personal notes.
Answer only from the notes provided. If they do not contain enough information,
say clearly that the answer is not in the notes. Keep the answer concise and quote
specific notes where possible.

Reply with a JSON object: {"answer": "<your answer>", "citedIds": ["<note id>", ...]}"""

INSIGHTS_SYSTEM_PROMPT = """You combine the skills of a psychologist, a data analyst and a mentor.
From the user's notes, find thinking patterns, emotional rhythms, hidden links
between topics, blind spots and signs of growth the user may not have noticed.
Base every insight on concrete evidence from the notes.

Reply with JSON only, in exactly this shape:
{
  "overview": "short summary of the user's overall thinking patterns",
  "insights": [
    {"type": "thinking|emotion|connection|blind_spot|growth", "title": "...", "content": "...",
     "evidence": "...", "suggestion": "...", "confidence": "high|medium|low"}
  ],
  "patterns": {"time_patterns": "...", "topic_frequency": "...", "emotional_trends": "...", "writing_style": "..."},
  "questions_to_ponder": ["...", "..."]
}"""

DEFAULT_OVERVIEW = "Analysis complete, but no overview was generated."

POLISH_SYSTEM_PROMPT = """You are a careful editor who improves the wording and flow of short personal notes.
Keep the meaning and every key fact. Fix grammar and awkward phrasing, keep a natural
written tone, keep special markup such as #tags, and never more than double the length.
Give several alternative versions, one per line, each prefixed with its style in brackets:
[More concise] ...
[More formal] ...
[Slightly expanded] ...
Return only the versions, no explanations."""

TAGS_SYSTEM_PROMPT = """You pick precise topic tags for a personal note.
Existing tags: {existing}
Prefer existing tags; create a new short tag only when none fits the core topic.
Avoid vague or overlapping tags. At most two tags.
Reply with JSON only: {{"tags": ["tag1", "tag2"]}}"""

_HASHTAG_RE = re.compile(r"(?:^|(?<=\s))#([^\s#]+)")
_POLISH_LINE_RE = re.compile(r"^\s*(?:[-*]\s*)?\[([^\]]+)\]\s*(.+)$")


def _elapsed(started: float) -> float:
    return round(time.perf_counter() - started, 3)


def build_context(contents: list[str], max_chars: int = config.CONTEXT_MAX_CHARS) -> str:
    """Join note contents with a separator, stopping before max_chars is exceeded."""
    parts: list[str] = []
    total = 0
    for content in contents:
        extra = len(content) + (len(CONTEXT_SEPARATOR) if parts else 0)
        if total + extra > max_chars:
            if not parts:
                parts.append(content[:max_chars])
            break
        parts.append(content)
        total += extra
    return CONTEXT_SEPARATOR.join(parts)


def extract_hashtags(content: str, limit: int = config.MAX_TAGS) -> list[str]:
    """#tags written in the note, in order of appearance, without the leading #."""
    tags: list[str] = []
    for match in _HASHTAG_RE.finditer(content):
        tag = match.group(1).rstrip(".,;:!?")
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:limit]


def parse_polish_versions(text: str) -> list[PolishVersion]:
    """Split "[style] text" lines into versions. Unlabelled replies become one version."""
    versions = []
    for line in text.splitlines():
        match = _POLISH_LINE_RE.match(line)
        if match:
            versions.append(PolishVersion(style=match.group(1).strip(), text=match.group(2).strip()))
    if not versions and text.strip():
        versions.append(PolishVersion(text=text.strip()))
    return versions


def _format_notes_for_insights(notes: list[NoteRecord]) -> str:
    return "\n\n".join(f"[{i}] {note.created_at}\nContent: {note.content}\n---" for i, note in enumerate(notes, 1))


class AIService:
    def __init__(
        self,
        generator: EmbeddingGenerator,
        chat: ChatClient,
        embeddings: EmbeddingRepository | None = None,
        search_engine: SimilaritySearchEngine | None = None,
    ) -> None:
        self.generator = generator
        self.chat = chat
        self.embeddings = embeddings or EmbeddingRepository(generator, dimensions=generator.dimensions)
        self.search_engine = search_engine or SimilaritySearchEngine()

    # ── Related notes ────────────────────────────────────────────────────────

    def related_notes(self, memo_id: str) -> dict[str, Any]:
        started = time.perf_counter()
        vector = self.embeddings.get_or_create(memo_id)
        rows = self.search_engine.find_related(
            memo_id, vector, top_k=config.RELATED_TOP_K, max_distance=config.RELATED_MAX_DISTANCE
        )
        related = format_results(rows)
        logger.info("Related notes for %s: %d found", memo_id, len(related))
        response = RelatedResponse(related_memos=related, count=len(related), processing_time=_elapsed(started))
        return response.model_dump(by_alias=True, exclude={"cache"})

    # ── Search ───────────────────────────────────────────────────────────────

    def search(self, query: str) -> dict[str, Any]:
        started = time.perf_counter()
        query = query.strip()
        vector = self.generator.generate(query)
        rows = self.search_engine.find_by_query(
            vector, top_k=config.SEARCH_TOP_K, max_distance=config.SEARCH_MAX_DISTANCE
        )
        sources = format_results(rows)

        if not sources:
            logger.info("Search found no relevant notes for query (%d chars)", len(query))
            response = SearchResponse(
                answer=NO_RESULTS_ANSWER, results_count=0, processing_time=_elapsed(started), sources=[], usage=None
            )
            return response.model_dump(by_alias=True, exclude={"cache"})

        decoded, usage = self._synthesize(query, sources)
        # Only ids of notes actually shown to the model count as citations
        source_ids = {s.id for s in sources}
        cited = [i for i in dict.fromkeys(decoded.cited_ids) if i in source_ids]
        response = SearchResponse(
            answer=decoded.answer,
            results_count=len(sources),
            processing_time=_elapsed(started),
            sources=sources,
            cited_ids=cited,
            usage=usage,
        )
        return response.model_dump(by_alias=True, exclude={"cache"})

    def _synthesize(self, query: str, sources: list[SearchResult]) -> tuple[DecodedAnswer, dict[str, int] | None]:
        context = build_context([f"[{s.id}] {s.content}" for s in sources])
        logger.debug("Search context: %d notes, %d chars", len(sources), len(context))
        messages = [
            {"role": "system", "content": SEARCH_SYSTEM_PROMPT},
            {"role": "user", "content": f'Question: "{query}"\n\nMost relevant notes:\n---\n{context}\n---'},
        ]
        completion = self.chat.complete(
            messages,
            temperature=config.SEARCH_TEMPERATURE,
            max_tokens=config.SEARCH_MAX_TOKENS,
            json_mode=True,
        )
        decoded = decode_answer(completion.content)
        if not decoded.structured:
            logger.warning("Search answer for %d sources came back as raw text, no citations", len(sources))
        return decoded, completion.usage

    # ── Insights ─────────────────────────────────────────────────────────────

    def insights(
        self,
        max_notes: int = config.INSIGHTS_MAX_NOTES,
        start: str | None = None,
        end: str | None = None,
    ) -> dict[str, Any]:
        started = time.perf_counter()
        notes = [n for n in list_recent_notes(limit=max_notes, start=start, end=end) if n.content.strip()]
        if not notes:
            raise InsufficientDataError("No notes available for analysis")

        newest, oldest = notes[0].created_at, notes[-1].created_at
        user_prompt = (
            f"Time range: {start or oldest} to {end or newest}\n"
            f"Total notes: {len(notes)}\n\n"
            f"Notes (newest first):\n{_format_notes_for_insights(notes)}"
        )
        completion = self.chat.complete(
            [
                {"role": "system", "content": INSIGHTS_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=config.INSIGHTS_TEMPERATURE,
            max_tokens=config.INSIGHTS_MAX_TOKENS,
            json_mode=True,
        )

        parsed = decode_json_object(completion.content)
        if parsed is None:
            logger.warning("Insights reply is not a JSON object, returning raw text as overview")
            parsed = {"overview": completion.content}

        response = InsightsResponse(
            overview=str(parsed.get("overview") or DEFAULT_OVERVIEW),
            insights=_coerce_insights(parsed.get("insights")),
            patterns=_coerce_patterns(parsed.get("patterns")),
            questions_to_ponder=_coerce_questions(parsed.get("questions_to_ponder")),
            processing_time=_elapsed(started),
            analyzed_memos_count=len(notes),
        )
        logger.info("Insights generated from %d notes (%d insights)", len(notes), len(response.insights))
        return response.model_dump(by_alias=True, exclude={"cache"})

    # ── Writing helpers ──────────────────────────────────────────────────────

    def polish(self, content: str) -> dict[str, Any]:
        started = time.perf_counter()
        content = content.strip()
        completion = self.chat.complete(
            [
                {"role": "system", "content": POLISH_SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            temperature=config.POLISH_TEMPERATURE,
            max_tokens=config.POLISH_MAX_TOKENS,
        )
        versions = parse_polish_versions(completion.content)
        logger.info("Polished %d chars into %d versions", len(content), len(versions))
        response = PolishResponse(versions=versions, processing_time=_elapsed(started), usage=completion.usage)
        return response.model_dump(by_alias=True, exclude={"cache"})

    def generate_tags(self, content: str, existing_tags: list[str] | None = None) -> dict[str, Any]:
        """Hashtags written in the note win; the model is asked only when there are none."""
        started = time.perf_counter()
        hashtags = extract_hashtags(content)
        if hashtags:
            response = TagsResponse(tags=hashtags, source="hashtag", processing_time=_elapsed(started))
            return response.model_dump(by_alias=True, exclude={"cache"})

        known = [t.strip() for t in existing_tags or [] if t and t.strip()]
        completion = self.chat.complete(
            [
                {"role": "system", "content": TAGS_SYSTEM_PROMPT.format(existing=", ".join(known) or "(none)")},
                {"role": "user", "content": content.strip()},
            ],
            temperature=config.TAGS_TEMPERATURE,
            max_tokens=config.TAGS_MAX_TOKENS,
            json_mode=True,
        )
        parsed = decode_json_object(completion.content)
        if parsed is None:
            logger.warning("Tag reply is not a JSON object, no tags suggested")
        tags = _clean_tags(parsed.get("tags") if parsed else None)
        response = TagsResponse(tags=tags, source="model", processing_time=_elapsed(started))
        return response.model_dump(by_alias=True, exclude={"cache"})

    # ── Maintenance ──────────────────────────────────────────────────────────

    def repair(self, limit: int = config.REPAIR_BATCH_LIMIT) -> dict[str, int]:
        return self.embeddings.repair(limit)

    def close(self) -> None:
        self.embeddings.flush()
        self.embeddings.close()


def _coerce_insights(raw: Any) -> list[Insight]:
    if not isinstance(raw, list):
        return []
    insights = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        insights.append(Insight(**{k: str(v) for k, v in item.items() if k in Insight.model_fields and v is not None}))
    return insights


def _coerce_questions(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [str(q) for q in raw if q]


def _clean_tags(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    tags: list[str] = []
    for item in raw:
        tag = str(item).strip().lstrip("#").strip() if item is not None else ""
        if tag and tag not in tags:
            tags.append(tag)
    return tags[: config.MAX_TAGS]


def _coerce_patterns(raw: Any) -> InsightPatterns:
    if not isinstance(raw, dict):
        return InsightPatterns()
    return InsightPatterns(**{k: str(v) for k, v in raw.items() if k in InsightPatterns.model_fields and v})


@lru_cache(maxsize=1)
def get_service() -> AIService:
    """Process-wide service. FastAPI dependency; tests override it."""
    return AIService(generator=get_generator(), chat=get_chat_client())
