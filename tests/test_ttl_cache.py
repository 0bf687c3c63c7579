"""
Tests for the TTL Cache
=======================
"""

import asyncio

import pytest

from conftest import FakeClock
from pageproof_bridge.cache import TTLCache, memoize


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(max_size=10, default_ttl=60, clock=clock.monotonic)


class TestBasicOperations:
    """set / get / delete / exists."""

    def test_set_then_get(self, cache):
        """Should return what was stored."""
        assert cache.set("proof-1", {"status": "approved"}) is True
        assert cache.get("proof-1") == {"status": "approved"}

    def test_missing_key_returns_default(self, cache):
        assert cache.get("nope") is None
        assert cache.get("nope", default="fallback") == "fallback"

    def test_namespaces_are_isolated(self, cache):
        """Same key in different namespaces should not collide."""
        cache.set("k", 1, namespace="proofs")
        cache.set("k", 2, namespace="collections")

        assert cache.get("k", namespace="proofs") == 1
        assert cache.get("k", namespace="collections") == 2
        assert cache.get("k") is None

    def test_values_are_copied(self, cache):
        """Mutating the original or a returned value should not change the cache."""
        original = {"tags": ["a"]}
        cache.set("k", original)
        original["tags"].append("b")

        returned = cache.get("k")
        returned["tags"].append("c")

        assert cache.get("k") == {"tags": ["a"]}

    def test_uncopyable_value_is_not_stored(self, cache):
        """set should report failure instead of raising."""
        gen = (i for i in range(3))

        assert cache.set("gen", gen) is False
        assert cache.exists("gen") is False

    def test_delete(self, cache):
        cache.set("k", 1)

        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.get("k") is None

    def test_exists_does_not_touch_stats(self, cache):
        cache.set("k", 1)
        cache.exists("k")
        cache.exists("missing")

        stats = cache.stats()
        assert stats.hits == 0
        assert stats.misses == 0


class TestExpiry:
    """Per-entry TTL behaviour."""

    def test_entry_alive_at_exact_ttl(self, cache, clock):
        """Expiry requires age strictly greater than the TTL."""
        cache.set("k", "v", ttl=10)
        clock.advance(10)

        assert cache.get("k") == "v"

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(10.001)

        assert cache.get("k") is None
        assert len(cache) == 0
        assert cache.stats().expired == 1

    def test_zero_ttl_never_expires(self, cache, clock):
        cache.set("k", "v", ttl=0)
        clock.advance(10_000)

        assert cache.get("k") == "v"
        assert cache.ttl("k") == -1

    def test_default_ttl_applies(self, cache, clock):
        cache.set("k", "v")
        clock.advance(61)

        assert cache.get("k") is None

    def test_ttl_reports_remaining_seconds(self, cache, clock):
        cache.set("k", "v", ttl=30)
        clock.advance(10.5)

        assert cache.ttl("k") == 19
        assert cache.ttl("missing") == -2

    def test_expire_resets_age(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(8)

        assert cache.expire("k", 10) is True
        clock.advance(8)
        assert cache.get("k") == "v"

    def test_expire_missing_key(self, cache):
        assert cache.expire("missing", 10) is False

    def test_setting_again_resets_age(self, cache, clock):
        cache.set("k", "v1", ttl=10)
        clock.advance(8)
        cache.set("k", "v2", ttl=10)
        clock.advance(8)

        assert cache.get("k") == "v2"

    def test_sweep_removes_only_expired(self, cache, clock):
        cache.set("short", 1, ttl=5)
        cache.set("long", 2, ttl=50)
        clock.advance(6)

        assert cache.sweep() == 1
        assert cache.exists("long")
        assert len(cache) == 1


class TestEviction:
    """Capacity-bounded batch eviction."""

    def test_oldest_entry_evicted_when_full(self, cache, clock):
        """A set on a full cache should evict the oldest entry first."""
        for i in range(10):
            cache.set(f"k{i}", i)
            clock.advance(1)

        cache.set("k10", 10)

        assert len(cache) == 10
        assert cache.exists("k0") is False
        assert cache.exists("k1") is True
        assert cache.exists("k10") is True
        assert cache.stats().evictions == 1

    def test_evicts_ten_percent_batch(self, clock):
        cache = TTLCache(max_size=100, default_ttl=60, clock=clock.monotonic)
        for i in range(100):
            cache.set(f"k{i}", i)
            clock.advance(0.01)

        cache.set("new", True)

        assert len(cache) == 91
        assert all(not cache.exists(f"k{i}") for i in range(10))
        assert cache.exists("k10")

    def test_refreshed_entry_survives_eviction(self, cache, clock):
        for i in range(10):
            cache.set(f"k{i}", i)
            clock.advance(1)
        cache.set("k0", "refreshed")
        clock.advance(1)

        cache.set("extra", 1)

        assert cache.get("k0") == "refreshed"
        assert cache.exists("k1") is False


class TestCounters:
    """increment and bulk helpers."""

    def test_increment_from_missing(self, cache):
        assert cache.increment("attempts") == 1
        assert cache.increment("attempts", 4) == 5
        assert cache.get("attempts") == 5

    def test_increment_non_numeric(self, cache):
        cache.set("k", "text")

        assert cache.increment("k") is None
        assert cache.get("k") == "text"

    def test_mset_mget(self, cache):
        assert cache.mset({"a": 1, "b": 2}, namespace="ns") is True

        assert cache.mget(["a", "b", "c"], namespace="ns") == [1, 2, None]

    def test_clear(self, cache):
        cache.mset({"a": 1, "b": 2})
        cache.clear()

        assert len(cache) == 0

    def test_clear_namespace(self, cache):
        cache.mset({"a": 1, "b": 2}, namespace="session")
        cache.set("a", 3, namespace="proofs")

        assert cache.clear(namespace="session") == 2
        assert cache.get("a", namespace="session") is None
        assert cache.get("a", namespace="proofs") == 3


class TestStats:
    """Hit/miss accounting."""

    def test_hit_rate(self, cache):
        cache.set("k", 1)
        cache.get("k")
        cache.get("k")
        cache.get("missing")

        stats = cache.stats()
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.key_count == 1
        assert stats.approx_memory_bytes > 0
        assert stats.to_dict()["hit_rate"] == round(2 / 3, 4)

    def test_empty_hit_rate(self, cache):
        assert cache.stats().hit_rate == 0.0


class TestSweepLifecycle:
    """Background sweep task."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        cache = TTLCache(sweep_interval=0.01)
        cache.start()
        assert cache.running is True

        await asyncio.sleep(0.02)
        await cache.stop(clear=True)

        assert cache.running is False

    @pytest.mark.asyncio
    async def test_background_sweep_removes_expired(self):
        cache = TTLCache(sweep_interval=0.01)
        cache.set("k", 1, ttl=0.001)
        cache.start()
        try:
            await asyncio.sleep(0.05)
            assert len(cache) == 0
        finally:
            await cache.stop()


class TestMemoize:
    """Async memoization decorator."""

    @pytest.mark.asyncio
    async def test_results_are_cached(self, cache):
        calls = []

        @memoize(cache, namespace="collections", ttl=30)
        async def find_collection(name):
            calls.append(name)
            return {"name": name, "id": "col-1"}

        first = await find_collection("Spring")
        second = await find_collection("Spring")

        assert first == second
        assert calls == ["Spring"]

    @pytest.mark.asyncio
    async def test_none_is_not_cached(self, cache):
        calls = []

        @memoize(cache, namespace="collections")
        async def find_collection(name):
            calls.append(name)
            return None

        await find_collection("Missing")
        await find_collection("Missing")

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_different_arguments_are_separate_entries(self, cache):
        @memoize(cache, namespace="proofs")
        async def load_proof(proof_id):
            return {"id": proof_id}

        assert await load_proof("p1") == {"id": "p1"}
        assert await load_proof("p2") == {"id": "p2"}
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, cache):
        calls = []

        @memoize(cache, namespace="session")
        async def current_user():
            calls.append(1)
            return f"user-{len(calls)}@example.com"

        assert await current_user() == "user-1@example.com"
        current_user.invalidate()

        assert await current_user() == "user-2@example.com"
