"""
Memo AI — Response cache tests
Key normalization, TTL expiry with an injected clock, hit/miss metadata.
"""

import pytest

from memo_ai.cache import ResponseCache, cache_key, normalize_params


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResponseCache(clock=clock)


# ── Keys ─────────────────────────────────────────────────────────────────────


class TestKeys:
    def test_key_ignores_order_and_none(self):
        k1 = cache_key("search", {"a": 1, "b": 2})
        k2 = cache_key("search", {"b": 2, "a": 1})
        k3 = cache_key("search", {"a": 1, "b": 2, "c": None})
        assert k1 == k2 == k3

    def test_key_format(self):
        key = cache_key("related", {"memoId": "n1"})
        prefix, op, digest, version = key.split(":")
        assert (prefix, op, version) == ("ai", "related", "v1")
        assert len(digest) == 32

    def test_different_params_different_keys(self):
        assert cache_key("search", {"query": "a"}) != cache_key("search", {"query": "b"})

    def test_operation_is_part_of_key(self):
        assert cache_key("search", {"x": 1}) != cache_key("related", {"x": 1})

    def test_nested_dicts_normalized(self):
        a = {"timeRange": {"start": "2025-01-01", "end": "2025-02-01"}, "maxMemos": 30}
        b = {"maxMemos": 30, "timeRange": {"end": "2025-02-01", "start": "2025-01-01"}}
        assert cache_key("insights", a) == cache_key("insights", b)

    def test_none_params_treated_as_empty(self):
        assert normalize_params(None) == {}
        assert cache_key("insights", None) == cache_key("insights", {})

    def test_unknown_operation(self):
        with pytest.raises(ValueError):
            cache_key("summaries", {})


# ── Storage and expiry ───────────────────────────────────────────────────────


class TestExpiry:
    def test_hit_just_before_ttl_miss_just_after(self, cache, clock):
        cache.set("k", {"v": 1}, ttl=100)
        clock.now += 99.9
        assert cache.get("k") is not None
        clock.now += 0.2
        assert cache.get("k") is None
        assert cache.stats()["total_entries"] == 0  # evicted on read

    def test_sweep_removes_only_expired(self, cache, clock):
        cache.set("old", 1, ttl=10)
        cache.set("new", 2, ttl=1000)
        clock.now += 50
        assert cache.stats() == {"total_entries": 2, "valid_entries": 1, "expired_entries": 1}
        assert cache.sweep() == 1
        assert cache.stats() == {"total_entries": 1, "valid_entries": 1, "expired_entries": 0}

    def test_reads_return_independent_copies(self, cache):
        cache.set("k", {"items": [1, 2]}, ttl=100)
        first, _ = cache.get("k")
        first["items"].append(3)
        second, _ = cache.get("k")
        assert second == {"items": [1, 2]}


# ── with_cache ───────────────────────────────────────────────────────────────


class TestWithCache:
    def test_miss_then_hit(self, cache, clock):
        calls = []

        def compute():
            calls.append(1)
            return {"answer": "42"}

        first = cache.with_cache("search", {"query": "q"}, compute)
        clock.now += 5
        second = cache.with_cache("search", {"query": "q"}, compute)

        assert len(calls) == 1
        assert first.info["status"] == "miss"
        assert first.info["age_sec"] == 0
        assert second.info["status"] == "hit"
        assert second.info["age_sec"] == 5
        assert second.info["key"] == first.info["key"]
        assert second.value == first.value
        assert second.info["expires_at"].endswith("Z")

    def test_expired_entry_recomputes(self, cache, clock):
        calls = []
        cache.with_cache("related", {"memoId": "a"}, lambda: calls.append(1) or {"n": len(calls)})
        clock.now += 86400 + 1
        result = cache.with_cache("related", {"memoId": "a"}, lambda: calls.append(1) or {"n": len(calls)})
        assert result.info["status"] == "miss"
        assert len(calls) == 2

    def test_compute_failure_propagates_and_is_not_cached(self, cache):
        def boom():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            cache.with_cache("search", {"query": "q"}, boom)
        assert cache.stats()["total_entries"] == 0

    def test_unserializable_result_returned_uncached(self, cache, caplog):
        value = {"when": object()}
        with caplog.at_level("WARNING", logger="memo_ai.cache"):
            result = cache.with_cache("search", {"query": "q"}, lambda: value)
        assert result.value is value
        assert result.info["status"] == "miss"
        assert cache.stats()["total_entries"] == 0
        assert "Failed to cache" in caplog.text

    def test_unknown_operation_rejected_before_compute(self, cache):
        calls = []
        with pytest.raises(ValueError):
            cache.with_cache("nope", {}, lambda: calls.append(1))
        assert calls == []
