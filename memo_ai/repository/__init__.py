"""
Memo AI — Repository package.

- notes.py      — note store seam (create, get, update, soft-delete, recent)
- embeddings.py — per-note embedding fetch-or-generate, background persist, repair
- search.py     — nearest-neighbour search (vector index or full scan)
"""

# ruff: noqa: F401 (re-exports)
from .embeddings import EmbeddingRepository
from .notes import create_note, get_note, list_recent_notes, soft_delete_note, update_note
from .search import SimilaritySearchEngine

__all__ = [
    # Notes
    "create_note",
    "get_note",
    "update_note",
    "soft_delete_note",
    "list_recent_notes",
    # Embeddings
    "EmbeddingRepository",
    # Search
    "SimilaritySearchEngine",
]
