"""
Memo AI — Response cache
Process-wide memo of expensive AI responses, keyed by a normalized hash of
(operation, params) with a TTL per operation.

No lock is taken: dict get/set/pop are atomic, a write is an idempotent
overwrite, and two concurrent misses on one key just both compute (last
writer wins). Entries are process-local; there is no cross-process coherence.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from . import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachePolicy:
    ttl: int
    version: str = config.CACHE_VERSION


POLICIES: dict[str, CachePolicy] = {name: CachePolicy(ttl=ttl) for name, ttl in config.CACHE_TTL_SECONDS.items()}


@dataclass
class CacheEntry:
    payload: str  # JSON text; every read decodes a fresh copy
    created_at: float
    expires_at: float


@dataclass(frozen=True)
class CachedResult:
    value: Any
    info: dict[str, Any]


def normalize_params(params: Any) -> Any:
    """
    Canonical form of request params: None dropped from dicts, keys sorted,
    lists and nested dicts normalized recursively. Top-level None becomes {}.
    """
    if params is None:
        return {}
    return _normalize(params)


def _normalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _normalize(value[k]) for k in sorted(value) if value[k] is not None}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) if v is not None else {} for v in value]
    return value


def cache_key(operation: str, params: Any, version: str | None = None) -> str:
    """ai:{operation}:{md5 of normalized params}:{version}"""
    if version is None:
        version = _policy(operation).version
    canonical = json.dumps(normalize_params(params), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    digest = hashlib.md5(canonical.encode("utf-8")).hexdigest()
    return f"ai:{operation}:{digest}:{version}"


def _policy(operation: str) -> CachePolicy:
    try:
        return POLICIES[operation]
    except KeyError:
        raise ValueError(f"Unknown cache operation: {operation}") from None


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, UTC).isoformat().replace("+00:00", "Z")


class ResponseCache:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock

    def get(self, key: str) -> tuple[Any, CacheEntry] | None:
        """Live payload for key, or None. An expired entry is evicted on the way."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            self._entries.pop(key, None)
            return None
        return json.loads(entry.payload), entry

    def set(self, key: str, value: Any, ttl: int) -> CacheEntry:
        """Store value under key. Raises TypeError/ValueError if value is not JSON-serializable."""
        payload = json.dumps(value, ensure_ascii=False, allow_nan=False)
        now = self._clock()
        entry = CacheEntry(payload=payload, created_at=now, expires_at=now + ttl)
        self._entries[key] = entry
        return entry

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in list(self._entries.items()) if now > e.expires_at]
        for k in expired:
            self._entries.pop(k, None)
        if expired:
            logger.debug("Cache sweep removed %d entries", len(expired))
        return len(expired)

    def stats(self) -> dict[str, int]:
        now = self._clock()
        entries = list(self._entries.values())
        expired = sum(1 for e in entries if now > e.expires_at)
        return {"total_entries": len(entries), "valid_entries": len(entries) - expired, "expired_entries": expired}

    def clear(self) -> None:
        self._entries.clear()

    def with_cache(self, operation: str, params: Any, compute: Callable[[], Any]) -> CachedResult:
        """
        Return the cached response for (operation, params) or compute and store it.

        Failures of compute propagate and nothing is stored. A result that cannot
        be serialized is returned uncached.
        """
        policy = _policy(operation)
        key = cache_key(operation, params, policy.version)

        hit = self.get(key)
        if hit is not None:
            value, entry = hit
            age = max(0, int(self._clock() - entry.created_at))
            logger.info("Cache HIT for %s (age %ds) - key %s", operation, age, key)
            return CachedResult(value, {"status": "hit", "key": key, "age_sec": age, "expires_at": _iso(entry.expires_at)})

        logger.info("Cache MISS for %s - key %s", operation, key)
        started = self._clock()
        value = compute()

        try:
            entry = self.set(key, value, policy.ttl)
            expires_at = entry.expires_at
            logger.info("Cached result for %s (%.2fs) - key %s", operation, self._clock() - started, key)
        except (TypeError, ValueError) as exc:
            logger.warning("Failed to cache %s result, returning it uncached: %s", operation, exc)
            expires_at = self._clock() + policy.ttl

        return CachedResult(value, {"status": "miss", "key": key, "age_sec": 0, "expires_at": _iso(expires_at)})


_cache = ResponseCache()


def get_cache() -> ResponseCache:
    """Module-scoped singleton used by the API."""
    return _cache
