"""
Price Feed Errors

Typed errors raised by the price-data access layer. Route handlers translate
them into HTTP responses:

    InvalidParameter     -> 400
    RateLimitExceeded    -> 429 with a retryAfter field
    PriceFeedUnavailable -> 502

UpstreamHTTPError never leaves the retrying client; it classifies a non-2xx
response and is chained as the cause of PriceFeedUnavailable.
"""

import math
from typing import Optional


class PriceFeedError(Exception):
    """Base class for errors surfaced by the price feed core."""


class InvalidParameter(PriceFeedError, ValueError):
    """Caller-supplied argument out of range (count, days, coin id)."""


class RateLimitExceeded(PriceFeedError):
    """
    Local quota exhausted; raised before any network call is made.

    Attributes:
        retry_after_seconds: Whole seconds the caller should wait (>= 1)
        key: Rate limiter key that was throttled
    """

    def __init__(self, retry_after: float, key: str = "global"):
        self.retry_after_seconds = max(1, math.ceil(retry_after))
        self.key = key
        super().__init__(f"Rate limit exceeded for '{key}': retry after {self.retry_after_seconds}s")


class PriceFeedUnavailable(PriceFeedError):
    """
    Upstream market data could not be obtained.

    Attributes:
        status: Last upstream HTTP status, if a response was received
        attempts: Number of attempts made before giving up
    """

    def __init__(self, message: str, status: Optional[int] = None, attempts: int = 1):
        self.status = status
        self.attempts = attempts
        super().__init__(message)


class UpstreamHTTPError(Exception):
    """Non-2xx response from the upstream API."""

    def __init__(
        self,
        status: int,
        body: str = "",
        retry_after: Optional[float] = None,
        retryable: bool = False
    ):
        self.status = status
        self.body = body
        self.retry_after = retry_after
        self.retryable = retryable
        super().__init__(f"HTTP {status}: {body}" if body else f"HTTP {status}")
