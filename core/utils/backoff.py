"""
Sleep and Backoff Helpers

Delay primitives shared by the rate limiter and the retrying HTTP client.
All durations here are in milliseconds.

Backoff formula (attempt counting starts at 0):

    delay = min(2 ** attempt * min_delay + jitter, max_delay)

where jitter is drawn uniformly from [0, jitter_ms) so concurrent callers
hitting the same upstream do not retry in lockstep.
"""

import asyncio
import random
from typing import Optional

from core.schemas import RetryPolicy


# Statuses worth retrying: throttled or temporarily unavailable upstream
RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


async def sleep(ms: float) -> None:
    """Suspend the caller for ms milliseconds without blocking the loop."""
    await asyncio.sleep(max(0.0, ms) / 1000.0)


def base_backoff_delay(attempt: int, min_delay_ms: float, max_delay_ms: float) -> float:
    """Exponential delay for attempt without jitter, saturating at max_delay_ms."""
    if attempt < 0:
        raise ValueError(f"Attempt cannot be negative: {attempt}")
    # 2 ** attempt overflows float conversion long after it saturates
    if attempt > 64:
        return float(max_delay_ms)
    return float(min(2 ** attempt * min_delay_ms, max_delay_ms))


def backoff_delay(
    attempt: int,
    min_delay_ms: float = 1000,
    max_delay_ms: float = 30000,
    jitter_ms: Optional[float] = None
) -> float:
    """
    Jittered exponential delay for a retry attempt.

    Args:
        attempt: Zero-based attempt number that just failed
        min_delay_ms: Base delay
        max_delay_ms: Upper bound; the result never exceeds it
        jitter_ms: Width of the random jitter (defaults to min_delay_ms)

    Returns:
        Delay in milliseconds

    Example:
        >>> backoff_delay(0, 1000, 30000)   # between 1000 and 2000
        1423.7
        >>> backoff_delay(10, 1000, 30000)
        30000.0
    """
    if jitter_ms is None:
        jitter_ms = min_delay_ms
    jitter = random.uniform(0, jitter_ms) if jitter_ms > 0 else 0.0
    return float(min(base_backoff_delay(attempt, min_delay_ms, max_delay_ms) + jitter, max_delay_ms))


def retry_delay(attempt: int, policy: RetryPolicy, retry_after_ms: Optional[float] = None) -> float:
    """
    Delay before the next attempt.

    An upstream Retry-After value wins over the computed backoff when larger.
    """
    delay = backoff_delay(attempt, policy.min_delay_ms, policy.max_delay_ms)
    if retry_after_ms is not None and retry_after_ms > delay:
        return float(retry_after_ms)
    return delay


def is_retryable_status(status: int) -> bool:
    """Check whether an HTTP status is a transient upstream failure."""
    return status in RETRYABLE_STATUS_CODES
