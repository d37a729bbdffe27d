"""
Normalized Data Schemas

This module defines Pydantic models for the price-data access layer.

Key Principle:
    Whatever shape the upstream market-data API returns, it gets normalized
    into these schemas before it is cached or handed to a route handler, so
    callers are insulated from upstream schema changes.

Models:
    - PricePoint: One (timestamp, price) sample of a coin's history
    - CoinSnapshot: Normalized market record for a single coin
    - CacheStats: Hit/miss counters of the response cache
    - RateWindow: Per-key state of one rate limiter window
    - RetryPolicy: Immutable retry configuration of the HTTP client
    - RequestSpec: Description of one outbound request
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict


# ============================================
# Market Data
# ============================================

class PricePoint(BaseModel):
    """
    A single price sample.

    Attributes:
        timestamp: Sample time in UTC
        price: Price in the configured quote currency
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Sample time in UTC")
    price: float = Field(..., description="Price in the quote currency")


class CoinSnapshot(BaseModel):
    """
    Normalized Coin Market Record

    Produced from upstream payloads and regenerated wholesale on every fetch.
    Instances are frozen: consumers can share them without copying.

    Attributes:
        id: Upstream coin identifier (e.g., "bitcoin")
        symbol: Ticker symbol in uppercase (e.g., "BTC")
        name: Display name
        current_price: Latest price in the quote currency, None when unquoted
        change_24h_pct: Price change over 24h in percent
        market_cap: Market capitalization
        volume_24h: Traded volume over 24h
        image: Logo URL
        price_history: Price samples, oldest first (empty unless requested)

    Example:
        >>> coin = CoinSnapshot(
        ...     id="bitcoin",
        ...     symbol="btc",
        ...     name="Bitcoin",
        ...     current_price=64000.0,
        ... )
        >>> coin.symbol
        'BTC'
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Upstream coin identifier")
    symbol: str = Field(..., min_length=1, description="Ticker symbol in uppercase")
    name: str = Field(..., description="Display name")
    current_price: Optional[float] = Field(None, description="Latest price (None when upstream has no quote)")
    change_24h_pct: Optional[float] = Field(None, description="24h price change in percent")
    market_cap: Optional[float] = Field(None, description="Market capitalization")
    volume_24h: Optional[float] = Field(None, description="24h traded volume")
    image: Optional[str] = Field(None, description="Logo URL")
    market_cap_rank: Optional[int] = Field(None, description="Rank by market cap")
    high_24h: Optional[float] = Field(None, description="24h high")
    low_24h: Optional[float] = Field(None, description="24h low")
    last_updated: Optional[datetime] = Field(None, description="Upstream update time")
    price_history: List[PricePoint] = Field(default_factory=list, description="Price samples, oldest first")

    @field_validator('symbol')
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Ensure symbol is uppercase"""
        return v.upper()


# ============================================
# Infrastructure State
# ============================================

class CacheStats(BaseModel):
    """Counters exposed by the response cache."""

    hits: int = 0
    misses: int = 0
    keys: int = 0


class RateWindow(BaseModel):
    """
    State of one rate limiter window for one key.

    Timestamps are monotonic clock readings in seconds. The window starts
    with the first admitted request and resets once window_seconds elapse.
    """

    limit: int = Field(..., ge=1)
    window_seconds: float = Field(..., gt=0)
    count: int = 0
    window_start: Optional[float] = None
    last_request_at: Optional[float] = None
    blocked_until: Optional[float] = None

    def window_end(self) -> Optional[float]:
        if self.window_start is None:
            return None
        return self.window_start + self.window_seconds


class RetryPolicy(BaseModel):
    """
    Retry configuration; immutable per client instance.

    A Retry-After longer than max_retry_after_ms is not slept through: the
    request fails instead.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(3, ge=1)
    min_delay_ms: int = Field(1000, ge=0)
    max_delay_ms: int = Field(30000, ge=0)
    max_retry_after_ms: int = Field(60000, ge=0, description="Longest upstream Retry-After honoured")

    @model_validator(mode="after")
    def check_bounds(self) -> "RetryPolicy":
        if self.min_delay_ms > self.max_delay_ms:
            raise ValueError("min_delay_ms cannot exceed max_delay_ms")
        return self


class RequestSpec(BaseModel):
    """
    One outbound request for the retrying HTTP client.

    Attributes:
        method: HTTP method
        path: Path appended to the client's base URL
        params: Query parameters
        headers: Extra headers merged over the client defaults
        cache_key: When set, the parsed result is written through to the cache
        cache_ttl: TTL for the write-through entry (None = cache default)
        limiter_key: Rate limiter key charged for every attempt
        transform: Applied to the decoded JSON body before caching/returning
    """

    method: str = "GET"
    path: str
    params: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    cache_key: Optional[str] = None
    cache_ttl: Optional[int] = None
    limiter_key: str = "global"
    transform: Optional[Callable[[Any], Any]] = None
