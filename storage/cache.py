"""
In-Memory Response Cache

Key/value store with a per-entry time-to-live, used to answer repeated
price-data requests without touching the rate-limited upstream.

Expiry:
    - Lazy: every read checks the entry's deadline and drops it when passed
    - Periodic: start() runs a background sweep every check_period seconds

A read never returns an expired value. Storage faults are logged and treated
as a miss so they cannot fail the caller's request.

Usage:
    cache = ResponseCache(default_ttl=60, check_period=120)
    await cache.start()

    cache.set("topCoins_10", coins, ttl=300)
    coins = cache.get("topCoins_10")   # None on miss

    await cache.stop()
"""

import asyncio
import copy
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from core.logging import get_logger
from core.schemas import CacheStats


class CacheEntry:
    """Stored value plus its monotonic expiry deadline (None = never)."""

    __slots__ = ("key", "value", "expires_at")

    def __init__(self, key: str, value: Any, expires_at: Optional[float]):
        self.key = key
        self.value = value
        self.expires_at = expires_at

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class ResponseCache:
    """
    TTL cache for upstream responses.

    Attributes:
        default_ttl: TTL in seconds used when set() receives none
        check_period: Seconds between background sweeps
        use_clones: Deep-copy values on set and get

    Example:
        >>> cache = ResponseCache(default_ttl=30)
        >>> cache.set("k", [1, 2, 3])
        >>> cache.get("k")
        [1, 2, 3]
        >>> cache.get_stats()
        CacheStats(hits=1, misses=0, keys=1)
    """

    def __init__(
        self,
        default_ttl: int = 60,
        check_period: int = 120,
        use_clones: bool = False,
        clock: Callable[[], float] = time.monotonic
    ):
        self.default_ttl = default_ttl
        self.check_period = check_period
        self.use_clones = use_clones
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sweeper: Optional[asyncio.Task] = None
        self.logger = get_logger(__name__)

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        """Start the periodic expiry sweep (idempotent)."""
        if self._sweeper and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop())
        self.logger.info(f"Cache sweeper started (every {self.check_period}s)")

    async def stop(self) -> None:
        """Cancel the expiry sweep."""
        if self._sweeper:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
            self.logger.info("Cache sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            removed = self.purge_expired()
            if removed:
                self.logger.debug(f"Cache sweep removed {removed} expired entries")

    # ============================================
    # Core Operations
    # ============================================

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Store value under key, expiring ttl seconds from now.

        Args:
            key: Non-empty string key
            value: Value to store (overwrites any existing entry)
            ttl: Seconds to live; None uses default_ttl, 0 never expires

        Raises:
            ValueError: If the key is invalid or ttl is negative
        """
        if not self.validate_key(key):
            raise ValueError(f"Invalid cache key: {key!r}")

        if ttl is None:
            ttl = self.default_ttl
        if ttl < 0:
            raise ValueError(f"TTL cannot be negative: {ttl}")

        try:
            stored = copy.deepcopy(value) if self.use_clones else value
            expires_at = self._clock() + ttl if ttl > 0 else None
            self._store[key] = CacheEntry(key, stored, expires_at)
            self.logger.debug(f"Cache set: {key} (ttl={ttl}s)")
        except Exception as e:
            self.logger.error(f"Cache storage fault on set({key}): {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Return the value for key, or default if absent or expired.

        Expired entries are removed as a side effect.
        """
        try:
            entry = self._lookup(key)
            if entry is None:
                self._misses += 1
                self.logger.debug(f"Cache miss: {key}")
                return default

            self._hits += 1
            self.logger.debug(f"Cache hit: {key}")
            return copy.deepcopy(entry.value) if self.use_clones else entry.value
        except Exception as e:
            self._misses += 1
            self.logger.error(f"Cache storage fault on get({key}): {e}")
            return default

    def has(self, key: str) -> bool:
        """Check whether key holds an unexpired value (does not touch stats)."""
        try:
            return self._lookup(key) is not None
        except Exception as e:
            self.logger.error(f"Cache storage fault on has({key}): {e}")
            return False

    def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return {key: value} for every key that is a hit."""
        result = {}
        for key in keys:
            value = self.get(key)
            if value is not None:
                result[key] = value
        return result

    def delete(self, key: str) -> int:
        """Remove key; returns the number of entries deleted (0 or 1)."""
        return 1 if self._store.pop(key, None) is not None else 0

    def flush_all(self) -> None:
        """
        Remove every entry and reset the counters.

        The store is replaced rather than mutated so values already handed
        out stay valid for whoever holds them.
        """
        self._store = {}
        self._hits = 0
        self._misses = 0
        self.logger.info("Cache flushed")

    def purge_expired(self) -> int:
        """Drop all expired entries; returns how many were removed."""
        now = self._clock()
        expired = [k for k, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            self._store.pop(key, None)
        return len(expired)

    def keys(self) -> List[str]:
        """Keys of all unexpired entries."""
        self.purge_expired()
        return list(self._store.keys())

    def get_stats(self) -> CacheStats:
        """Hit/miss counters and the number of live keys."""
        self.purge_expired()
        return CacheStats(hits=self._hits, misses=self._misses, keys=len(self._store))

    @staticmethod
    def validate_key(key: Any) -> bool:
        """Cache keys must be non-empty strings."""
        return isinstance(key, str) and len(key) > 0

    # ============================================
    # Internals
    # ============================================

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._store.pop(key, None)
            return None
        return entry
