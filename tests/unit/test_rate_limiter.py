"""
Unit Tests for the Rate Limiter

These tests verify that RateLimiter:
- Admits requests up to the ceiling and throttles the next one
- Resets a window once its duration has elapsed
- Spaces consecutive requests by the minimum interval
- Rejects or waits depending on the policy
- Never overshoots the ceiling under concurrent callers

Run with:
    pytest tests/unit/test_rate_limiter.py -v
"""

import asyncio

import pytest

from core.config import Settings
from core.errors import RateLimitExceeded
from services.rate_limiter import RateLimiter, RateLimitPolicy


def make_limiter(clock, rules=((2, 60.0),), min_interval=0.0, policy=RateLimitPolicy.REJECT):
    return RateLimiter(rules=rules, min_interval=min_interval, policy=policy, clock=clock, sleep=clock.sleep)


class TestCeiling:
    """Tests for the per-window ceiling"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ceiling", [1, 2, 5, 10])
    async def test_request_after_ceiling_is_throttled(self, clock, ceiling):
        """N admitted requests fill the window; the N+1th gets retry_after > 0"""
        limiter = make_limiter(clock, rules=[(ceiling, 60.0)])

        for _ in range(ceiling):
            await limiter.acquire()

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.acquire()

        assert exc_info.value.retry_after_seconds > 0
        assert exc_info.value.key == "global"
        assert limiter.get_request_count() == ceiling

    @pytest.mark.asyncio
    async def test_retry_after_counts_down_to_window_end(self, clock):
        limiter = make_limiter(clock)
        await limiter.acquire()
        clock.advance(15)
        await limiter.acquire()
        clock.advance(10)

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.acquire()

        # Window started at the first request: 60 - 25 = 35s left
        assert exc_info.value.retry_after_seconds == 35

    @pytest.mark.asyncio
    async def test_window_resets_after_duration(self, clock):
        limiter = make_limiter(clock)
        await limiter.acquire()
        await limiter.acquire()

        with pytest.raises(RateLimitExceeded):
            await limiter.acquire()

        clock.advance(60)
        await limiter.acquire()

        windows = limiter.status()
        assert windows[0].count == 1
        assert windows[0].blocked_until is None

    @pytest.mark.asyncio
    async def test_keys_have_independent_quotas(self, clock):
        limiter = make_limiter(clock, rules=[(1, 60.0)])
        await limiter.acquire("markets")
        await limiter.acquire("history")

        with pytest.raises(RateLimitExceeded):
            await limiter.acquire("markets")

    @pytest.mark.asyncio
    async def test_dual_windows(self, clock):
        """Per-second and per-minute ceilings are enforced together"""
        limiter = make_limiter(clock, rules=[(2, 1.0), (3, 60.0)])
        await limiter.acquire()
        await limiter.acquire()

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.acquire()
        assert exc_info.value.retry_after_seconds == 1

        clock.advance(1)
        await limiter.acquire()

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.acquire()
        assert exc_info.value.retry_after_seconds == 59


class TestWaitPolicy:

    @pytest.mark.asyncio
    async def test_wait_policy_suspends_until_window_end(self, clock):
        limiter = make_limiter(clock, policy=RateLimitPolicy.WAIT)
        await limiter.acquire()
        clock.advance(20)
        await limiter.acquire()

        await limiter.acquire()

        assert clock.sleeps == [40.0]
        assert limiter.get_request_count() == 1


class TestSpacing:

    @pytest.mark.asyncio
    async def test_min_interval_between_requests(self, clock):
        limiter = make_limiter(clock, rules=[(10, 60.0)], min_interval=2.0)
        await limiter.acquire()
        clock.advance(0.5)
        await limiter.acquire()

        assert clock.sleeps == [1.5]

    @pytest.mark.asyncio
    async def test_no_wait_when_spaced_enough(self, clock):
        limiter = make_limiter(clock, rules=[(10, 60.0)], min_interval=2.0)
        await limiter.acquire()
        clock.advance(3)
        await limiter.acquire()

        assert clock.sleeps == []


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_callers_never_exceed_ceiling(self, clock):
        """Admit-then-increment is atomic across concurrently suspended callers"""
        limiter = make_limiter(clock, rules=[(3, 60.0)])

        results = await asyncio.gather(
            *(limiter.acquire() for _ in range(10)),
            return_exceptions=True
        )

        admitted = [r for r in results if r is None]
        rejected = [r for r in results if isinstance(r, RateLimitExceeded)]
        assert len(admitted) == 3
        assert len(rejected) == 7
        assert limiter.get_request_count() == 3


class TestIntrospection:

    @pytest.mark.asyncio
    async def test_check_has_no_side_effects(self, clock):
        limiter = make_limiter(clock, rules=[(1, 60.0)])
        assert limiter.check() == 0
        await limiter.acquire()
        assert limiter.check() == pytest.approx(60.0)
        assert limiter.get_request_count() == 1

    @pytest.mark.asyncio
    async def test_reset(self, clock):
        limiter = make_limiter(clock, rules=[(1, 60.0)])
        await limiter.acquire()
        limiter.reset()
        await limiter.acquire()
        assert limiter.get_request_count() == 1

    def test_from_settings(self):
        config = Settings(
            _env_file=None,
            max_requests_per_second=3,
            max_requests_per_minute=30,
            min_request_interval=1.5,
            rate_limit_policy="wait",
        )
        limiter = RateLimiter.from_settings(config)

        assert limiter.rules == [(3, 1.0), (30, 60.0)]
        assert limiter.min_interval == 1.5
        assert limiter.policy is RateLimitPolicy.WAIT

    def test_requires_rules(self):
        with pytest.raises(ValueError):
            RateLimiter(rules=[])
