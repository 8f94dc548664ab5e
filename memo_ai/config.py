"""
Memo AI — Centralized configuration
All environment variables and constants in a single place.
"""

import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = _PROJECT_ROOT / "data"

# Database
DEFAULT_DB_PATH = str(DATA_DIR / "memos.db")
DB_PATH = os.getenv("MEMO_DB_PATH", DEFAULT_DB_PATH)

# ── Server ────────────────────────────────────────────────────────────────────

HOST = os.getenv("MEMO_HOST", "127.0.0.1")
PORT = int(os.getenv("MEMO_PORT", "8766"))

# ── CORS ──────────────────────────────────────────────────────────────────────

CORS_ORIGINS = [o.strip() for o in os.getenv("MEMO_CORS_ORIGINS", "").split(",") if o.strip()]

# ── Embedding model (OpenAI-compatible /embeddings endpoint) ──────────────────

EMBED_API_URL = os.getenv("MEMO_EMBED_API_URL", "https://api.siliconflow.cn/v1")
EMBED_API_KEY = os.getenv("MEMO_EMBED_API_KEY", "")
EMBED_MODEL = os.getenv("MEMO_EMBED_MODEL", "Qwen/Qwen3-Embedding-4B")
EMBED_DIMENSIONS = int(os.getenv("MEMO_EMBED_DIMENSIONS", "2560"))
EMBED_TIMEOUT = float(os.getenv("MEMO_EMBED_TIMEOUT", "10"))
MAX_EMBED_CHARS = int(os.getenv("MEMO_MAX_EMBED_CHARS", "32000"))

# ── Chat model (answer synthesis, insights) ───────────────────────────────────

CHAT_API_URL = os.getenv("MEMO_CHAT_API_URL", EMBED_API_URL)
CHAT_API_KEY = os.getenv("MEMO_CHAT_API_KEY", EMBED_API_KEY)
CHAT_MODEL = os.getenv("MEMO_CHAT_MODEL", "Qwen/Qwen3-30B-A3B-Instruct-2507")
CHAT_TIMEOUT = float(os.getenv("MEMO_CHAT_TIMEOUT", "60"))
SEARCH_TEMPERATURE = 0.7
SEARCH_MAX_TOKENS = 1000
INSIGHTS_TEMPERATURE = 0.6
INSIGHTS_MAX_TOKENS = 2000
POLISH_TEMPERATURE = 0.7
POLISH_MAX_TOKENS = 1500
TAGS_TEMPERATURE = 0.3
TAGS_MAX_TOKENS = 200

# ── Vector search ─────────────────────────────────────────────────────────────

# Cosine distance thresholds: lower = stricter relevance
RELATED_TOP_K = int(os.getenv("MEMO_RELATED_TOP_K", "10"))
RELATED_MAX_DISTANCE = float(os.getenv("MEMO_RELATED_MAX_DISTANCE", "0.5"))
SEARCH_TOP_K = int(os.getenv("MEMO_SEARCH_TOP_K", "30"))
SEARCH_MAX_DISTANCE = float(os.getenv("MEMO_SEARCH_MAX_DISTANCE", "0.4"))

# Create the sqlite-vec index table on init_db (when the extension loads)
VECTOR_INDEX = os.getenv("MEMO_VECTOR_INDEX", "1") == "1"
VECTOR_INDEX_TABLE = "vec_notes_embedding"

# ── AI flows ──────────────────────────────────────────────────────────────────

CONTEXT_MAX_CHARS = int(os.getenv("MEMO_CONTEXT_MAX_CHARS", "12000"))
INSIGHTS_MAX_NOTES = 30
REPAIR_BATCH_LIMIT = int(os.getenv("MEMO_REPAIR_BATCH_LIMIT", "100"))
MAX_TAGS = 2

# ── Response cache ────────────────────────────────────────────────────────────

CACHE_TTL_SECONDS: dict[str, int] = {
    "insights": int(os.getenv("MEMO_CACHE_TTL_INSIGHTS", "86400")),
    "search": int(os.getenv("MEMO_CACHE_TTL_SEARCH", "86400")),
    "related": int(os.getenv("MEMO_CACHE_TTL_RELATED", "86400")),
    "polish": int(os.getenv("MEMO_CACHE_TTL_POLISH", "86400")),
    "tags": int(os.getenv("MEMO_CACHE_TTL_TAGS", "86400")),
}
CACHE_VERSION = "v1"
CACHE_SWEEP_INTERVAL = int(os.getenv("MEMO_CACHE_SWEEP_INTERVAL", "600"))  # 0 = disabled

# ── Formatting ────────────────────────────────────────────────────────────────

PREVIEW_LENGTH = 150
DISPLAY_DATE_FORMAT = os.getenv("MEMO_DISPLAY_DATE_FORMAT", "%Y-%m-%d %H:%M")
UNKNOWN_DATE = "Unknown date"

# ── Version ───────────────────────────────────────────────────────────────────

VERSION = "1.0.0"
