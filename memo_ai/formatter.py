"""
Memo AI — Result formatter
Turns raw similarity rows into display-ready SearchResult objects.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from . import config
from .models import SearchResult


def similarity_from_distance(distance: float | None) -> float | None:
    # Not clamped: a distance above 1 shows as a negative similarity.
    if distance is None:
        return None
    return 1.0 - distance


def make_preview(content: str, length: int = config.PREVIEW_LENGTH) -> str:
    if len(content) <= length:
        return content
    return content[:length] + "..."


def display_date(timestamp: Any, fmt: str = config.DISPLAY_DATE_FORMAT) -> str:
    """Format an ISO timestamp for display, or a fixed placeholder when absent or unparseable."""
    if isinstance(timestamp, datetime):
        return timestamp.strftime(fmt)
    if not timestamp or not isinstance(timestamp, str):
        return config.UNKNOWN_DATE
    try:
        return datetime.fromisoformat(timestamp).strftime(fmt)
    except ValueError:
        return config.UNKNOWN_DATE


def format_results(rows: list[dict[str, Any]]) -> list[SearchResult]:
    """Map raw rows to SearchResult, preserving order."""
    results = []
    for row in rows:
        content = row.get("content") or ""
        distance = row.get("distance")
        results.append(
            SearchResult(
                id=row["id"],
                content=content,
                distance=distance,
                similarity=similarity_from_distance(distance),
                preview=make_preview(content),
                created_at=row.get("created_at"),
                updated_at=row.get("updated_at"),
                display_date=display_date(row.get("created_at")),
            )
        )
    return results
