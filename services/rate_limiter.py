"""
Upstream Rate Limiter

Protects the shared upstream quota across every cache miss, whichever route
triggered it. Each limiter key tracks one fixed window per rule (e.g. 5 per
second and 50 per minute); a window starts with its first admitted request
and resets once its duration has elapsed.

States per key:
    Open      - every window below its ceiling; the request is admitted after
                the minimum inter-request spacing has passed
    Throttled - some window is full; retry_after = window end - now

Policies when throttled:
    reject - raise RateLimitExceeded(retry_after) so the route can answer 429
    wait   - suspend the caller until the window resets, then re-check

The check -> admit -> increment sequence runs under a per-key asyncio.Lock
with no suspension point between the check and the increment, so concurrent
callers cannot both observe "under ceiling" and overshoot it together.

Usage:
    limiter = RateLimiter.from_settings(settings)
    await limiter.acquire()          # key "global"
"""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from core.errors import RateLimitExceeded
from core.logging import get_logger
from core.schemas import RateWindow


class RateLimitPolicy(str, Enum):
    """What acquire() does when a window is exhausted."""

    REJECT = "reject"
    WAIT = "wait"


class RateLimiter:
    """
    Fixed-window rate limiter with minimum request spacing.

    Attributes:
        rules: (limit, window_seconds) pairs applied to every key
        min_interval: Minimum seconds between admitted requests of a key
        policy: RateLimitPolicy applied when throttled

    Example:
        >>> limiter = RateLimiter(rules=[(2, 60.0)], min_interval=0)
        >>> await limiter.acquire()
        >>> await limiter.acquire()
        >>> await limiter.acquire()
        Traceback (most recent call last):
        RateLimitExceeded: Rate limit exceeded for 'global': retry after 60s
    """

    DEFAULT_KEY = "global"

    def __init__(
        self,
        rules: Iterable[Tuple[int, float]] = ((5, 1.0), (50, 60.0)),
        min_interval: float = 0.0,
        policy: RateLimitPolicy = RateLimitPolicy.REJECT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.rules = [(int(limit), float(window)) for limit, window in rules]
        if not self.rules:
            raise ValueError("RateLimiter needs at least one (limit, window) rule")
        self.min_interval = min_interval
        self.policy = RateLimitPolicy(policy)
        self._clock = clock
        self._sleep = sleep
        self._windows: Dict[str, List[RateWindow]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.logger = get_logger(__name__)

        rules_str = ", ".join(f"{limit}/{window:g}s" for limit, window in self.rules)
        self.logger.info(
            f"RateLimiter initialized: {rules_str}, min interval {min_interval}s, policy={self.policy.value}"
        )

    @classmethod
    def from_settings(cls, config, **kwargs) -> "RateLimiter":
        """Build the limiter from the per-second/per-minute ceilings in Settings."""
        return cls(
            rules=[
                (config.max_requests_per_second, 1.0),
                (config.max_requests_per_minute, 60.0),
            ],
            min_interval=config.min_request_interval,
            policy=RateLimitPolicy(config.rate_limit_policy),
            **kwargs
        )

    # ============================================
    # Admission
    # ============================================

    async def acquire(self, key: str = DEFAULT_KEY) -> None:
        """
        Wait for (or refuse) admission of one upstream request.

        Raises:
            RateLimitExceeded: Quota exhausted and the policy is REJECT
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            while True:
                now = self._clock()
                windows = self._get_windows(key)
                self._reset_elapsed(windows, now)

                retry_after = self._throttle_remaining(windows, now)
                if retry_after > 0:
                    if self.policy is RateLimitPolicy.REJECT:
                        self.logger.warning(f"Rate limit reached for '{key}'. Rejecting, retry after {retry_after:.2f}s")
                        raise RateLimitExceeded(retry_after, key)
                    self.logger.warning(f"Rate limit reached for '{key}'. Waiting {retry_after:.2f}s")
                    await self._sleep(retry_after)
                    continue

                spacing = self._spacing_remaining(windows, now)
                if spacing > 0:
                    self.logger.debug(f"Spacing requests for '{key}': waiting {spacing:.2f}s")
                    await self._sleep(spacing)
                    continue

                # No await from the ceiling check above to here
                for window in windows:
                    if window.window_start is None:
                        window.window_start = now
                    window.count += 1
                    window.last_request_at = now
                self.logger.debug(f"Rate limit permission granted for '{key}' ({self._shortest(windows).count} in window)")
                return

    def check(self, key: str = DEFAULT_KEY) -> float:
        """
        Seconds until acquire() could admit a request for key (0 = now).

        Does not change any counter.
        """
        now = self._clock()
        windows = self._get_windows(key)
        self._reset_elapsed(windows, now)
        return max(
            self._throttle_remaining(windows, now, mark_blocked=False),
            self._spacing_remaining(windows, now)
        )

    # ============================================
    # Introspection
    # ============================================

    def get_request_count(self, key: str = DEFAULT_KEY) -> int:
        """Requests admitted in the current shortest window for key."""
        windows = self._get_windows(key)
        self._reset_elapsed(windows, self._clock())
        return self._shortest(windows).count

    def status(self, key: str = DEFAULT_KEY) -> List[RateWindow]:
        """Snapshot copies of every window for key."""
        windows = self._get_windows(key)
        self._reset_elapsed(windows, self._clock())
        return [w.model_copy() for w in windows]

    def reset(self, key: Optional[str] = None) -> None:
        """Forget window state for key, or for every key when None."""
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    # ============================================
    # Internals
    # ============================================

    def _get_windows(self, key: str) -> List[RateWindow]:
        if key not in self._windows:
            self._windows[key] = [
                RateWindow(limit=limit, window_seconds=window) for limit, window in self.rules
            ]
        return self._windows[key]

    @staticmethod
    def _shortest(windows: List[RateWindow]) -> RateWindow:
        return min(windows, key=lambda w: w.window_seconds)

    @staticmethod
    def _reset_elapsed(windows: List[RateWindow], now: float) -> None:
        for window in windows:
            end = window.window_end()
            if end is not None and now >= end:
                window.count = 0
                window.window_start = None
                window.blocked_until = None

    @staticmethod
    def _throttle_remaining(windows: List[RateWindow], now: float, mark_blocked: bool = True) -> float:
        remaining = 0.0
        for window in windows:
            if window.blocked_until is not None and window.blocked_until > now:
                remaining = max(remaining, window.blocked_until - now)
            elif window.count >= window.limit:
                end = window.window_end()
                if mark_blocked:
                    window.blocked_until = end
                remaining = max(remaining, end - now)
        return remaining

    def _spacing_remaining(self, windows: List[RateWindow], now: float) -> float:
        if self.min_interval <= 0:
            return 0.0
        stamps = [w.last_request_at for w in windows if w.last_request_at is not None]
        if not stamps:
            return 0.0
        return max(0.0, max(stamps) + self.min_interval - now)
