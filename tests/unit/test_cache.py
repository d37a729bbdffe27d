"""
Unit Tests for the Response Cache

These tests verify that ResponseCache:
- Returns values before their TTL and misses after it
- Keeps keys isolated from each other
- Tracks hit/miss statistics
- Degrades storage faults to misses

Run with:
    pytest tests/unit/test_cache.py -v
"""

import asyncio

import pytest

from core.schemas import CacheStats
from storage.cache import ResponseCache


class TestTTL:
    """Tests for expiry behaviour"""

    @pytest.mark.parametrize("ttl", [1, 5, 60, 300])
    def test_get_before_and_after_ttl(self, cache, clock, ttl):
        """A get right after set hits; a get once ttl elapsed misses"""
        cache.set("topCoins_10", ["btc"], ttl=ttl)
        assert cache.get("topCoins_10") == ["btc"]

        clock.advance(ttl - 0.001)
        assert cache.get("topCoins_10") == ["btc"]

        clock.advance(0.01)
        assert cache.get("topCoins_10") is None

    def test_default_ttl_applies(self, cache, clock):
        cache.set("k", 1)
        clock.advance(59)
        assert cache.has("k")
        clock.advance(1)
        assert not cache.has("k")

    def test_zero_ttl_never_expires(self, cache, clock):
        cache.set("k", 1, ttl=0)
        clock.advance(10 ** 6)
        assert cache.get("k") == 1

    def test_negative_ttl_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.set("k", 1, ttl=-1)

    def test_overwrite_resets_expiry(self, cache, clock):
        cache.set("k", "old", ttl=10)
        clock.advance(8)
        cache.set("k", "new", ttl=10)
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_expired_entry_removed_on_read(self, cache, clock):
        cache.set("k", 1, ttl=1)
        clock.advance(2)
        cache.get("k")
        assert "k" not in cache._store

    def test_purge_expired(self, cache, clock):
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)
        clock.advance(5)
        assert cache.purge_expired() == 1
        assert cache.keys() == ["long"]


class TestIsolation:
    """Tests for key isolation and lifecycle operations"""

    def test_set_does_not_affect_other_keys(self, cache):
        cache.set("coinHistory_bitcoin_1", "a")
        cache.set("coinHistory_ethereum_1", "b")
        cache.set("coinHistory_bitcoin_1", "c")
        assert cache.get("coinHistory_ethereum_1") == "b"
        assert cache.get("coinHistory_bitcoin_7") is None

    def test_delete(self, cache):
        cache.set("k", 1)
        assert cache.delete("k") == 1
        assert cache.delete("k") == 0
        assert cache.get("k") is None

    def test_flush_all_keeps_values_already_read(self, cache):
        cache.set("k", [1, 2, 3])
        held = cache.get("k")
        cache.flush_all()
        assert cache.get("k") is None
        assert held == [1, 2, 3]
        assert cache.get_stats().keys == 0

    def test_get_many(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.get_many(["a", "b", "c"]) == {"a": 1, "b": 2}

    @pytest.mark.parametrize("key", ["", None, 42])
    def test_invalid_keys_rejected(self, cache, key):
        with pytest.raises(ValueError):
            cache.set(key, 1)

    def test_use_clones_detaches_values(self, clock):
        cache = ResponseCache(use_clones=True, clock=clock)
        value = {"prices": [1, 2]}
        cache.set("k", value)
        value["prices"].append(3)
        read = cache.get("k")
        read["prices"].append(4)
        assert cache.get("k") == {"prices": [1, 2]}


class TestStats:

    def test_hits_misses_keys(self, cache):
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("missing")
        assert cache.get_stats() == CacheStats(hits=2, misses=1, keys=1)

    def test_has_does_not_count(self, cache):
        cache.set("a", 1)
        cache.has("a")
        cache.has("b")
        assert cache.get_stats() == CacheStats(hits=0, misses=0, keys=1)


class TestStorageFaults:
    """Storage faults must not reach the caller"""

    class BrokenStore(dict):
        def get(self, key, default=None):
            raise MemoryError("store unavailable")

        def __setitem__(self, key, value):
            raise MemoryError("store unavailable")

    def test_get_fault_is_a_miss(self, cache):
        cache._store = self.BrokenStore()
        assert cache.get("k") is None
        assert cache.get("k", default="fallback") == "fallback"
        assert cache.get_stats().misses == 2

    def test_set_fault_is_swallowed(self, cache):
        cache._store = self.BrokenStore()
        cache.set("k", 1)
        assert cache.has("k") is False


class TestSweeper:

    @pytest.mark.asyncio
    async def test_start_and_stop(self, clock):
        cache = ResponseCache(check_period=0.01, clock=clock)
        cache.set("k", 1, ttl=1)
        clock.advance(5)

        await cache.start()
        await asyncio.sleep(0.05)
        await cache.stop()

        assert "k" not in cache._store
        assert cache._sweeper is None
