"""
Price Feed Service

Domain-level facade over the price-data access layer. Route handlers call
this service and get back normalized CoinSnapshot / PricePoint lists or a
typed error.

Request flow:
    cache.get(key) -> hit: return (no upstream call, no rate limiter)
                   -> miss: CoinGecko client -> RetryingHTTPClient
                            (rate limiter, retries) -> normalized result
                            written through to the cache with the
                            endpoint's TTL

Cache keys are deterministic in the request parameters:
    topCoins_{count}
    coins_{id,id,...}
    coinHistory_{coinId}_{days}
    priceData_{selection}_{history|nohistory}

Errors are never turned into empty data: RateLimitExceeded and
PriceFeedUnavailable propagate to the caller.
"""

from typing import List, Sequence

from core.config import Settings
from core.errors import InvalidParameter, PriceFeedError
from core.logging import get_logger
from core.schemas import CacheStats, CoinSnapshot, PricePoint
from providers.coingecko.api_client import CoinGeckoAPIClient, MAX_PER_PAGE
from storage.cache import ResponseCache


class PriceFeedService:
    """
    Cache-first access to coin listings and price history.

    Constructed once at startup with explicitly shared components; tests
    build isolated instances with their own cache and client.

    Attributes:
        client: CoinGecko endpoint client
        cache: Response cache shared with the HTTP client
        settings: TTLs and coin selection policy

    Example:
        >>> service = PriceFeedService(coingecko, cache, settings)
        >>> coins = await service.get_top_coins(10)
        >>> history = await service.get_coin_history("bitcoin", days=7)
    """

    def __init__(self, client: CoinGeckoAPIClient, cache: ResponseCache, settings: Settings):
        self.client = client
        self.cache = cache
        self.settings = settings
        self.logger = get_logger(__name__)

    # ============================================
    # Cache Keys
    # ============================================

    @staticmethod
    def top_coins_key(count: int) -> str:
        return f"topCoins_{count}"

    @staticmethod
    def coins_by_ids_key(ids: Sequence[str]) -> str:
        return f"coins_{','.join(ids)}"

    @staticmethod
    def coin_history_key(coin_id: str, days: int) -> str:
        return f"coinHistory_{coin_id}_{days}"

    # ============================================
    # Public API
    # ============================================

    async def get_top_coins(self, count: int = 10) -> List[CoinSnapshot]:
        """
        Top coins by market cap.

        Args:
            count: Number of coins (1-250)

        Raises:
            InvalidParameter: If count is out of range
            RateLimitExceeded: Local quota exhausted on a cache miss
            PriceFeedUnavailable: Upstream failed after retries
        """
        if not 1 <= count <= MAX_PER_PAGE:
            raise InvalidParameter(f"count must be between 1 and {MAX_PER_PAGE}, got {count}")

        key = self.top_coins_key(count)
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        try:
            coins = await self.client.get_coin_markets(
                count=count,
                cache_key=key,
                cache_ttl=self.settings.cache_top_coins_ttl,
            )
        except PriceFeedError as e:
            self.logger.error(f"Error fetching top coins: {e}")
            raise
        return list(coins)

    async def get_coins_by_ids(self, ids: Sequence[str]) -> List[CoinSnapshot]:
        """
        Market data for an explicit list of coin ids.

        Ids are lower-cased, de-duplicated and sorted so the cache key does
        not depend on the caller's ordering.
        """
        normalized = sorted({i.strip().lower() for i in ids if i and i.strip()})
        if not normalized:
            raise InvalidParameter("At least one coin id is required")
        if len(normalized) > MAX_PER_PAGE:
            raise InvalidParameter(f"At most {MAX_PER_PAGE} coin ids can be requested at once")

        key = self.coins_by_ids_key(normalized)
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        try:
            coins = await self.client.get_coin_markets(
                ids=normalized,
                cache_key=key,
                cache_ttl=self.settings.cache_top_coins_ttl,
            )
        except PriceFeedError as e:
            self.logger.error(f"Error fetching coins {normalized}: {e}")
            raise
        return list(coins)

    async def get_coin_history(self, coin_id: str, days: int = 1) -> List[PricePoint]:
        """
        Price history of one coin over the last days.

        Raises:
            InvalidParameter: If coin_id is empty or days < 1
            RateLimitExceeded: Local quota exhausted on a cache miss
            PriceFeedUnavailable: Upstream failed after retries
        """
        coin_id = (coin_id or "").strip().lower()
        if not coin_id:
            raise InvalidParameter("coin_id is required")
        if days < 1:
            raise InvalidParameter(f"days must be at least 1, got {days}")

        key = self.coin_history_key(coin_id, days)
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        try:
            points = await self.client.get_market_chart(
                coin_id,
                days=days,
                cache_key=key,
                cache_ttl=self.settings.cache_coin_history_ttl,
            )
        except PriceFeedError as e:
            self.logger.error(f"Error fetching coin history for {coin_id}: {e}")
            raise
        return list(points)

    async def get_price_data(self, include_history: bool = False) -> List[CoinSnapshot]:
        """
        Default price feed for the dashboard.

        Coins are picked by the configured selection policy ("top" N by
        market cap, or the "allowlist" of major coin ids). With
        include_history each snapshot carries its 1-day price history.
        """
        selection = self.settings.coin_selection
        key = f"priceData_{selection}_{'history' if include_history else 'nohistory'}"
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        if selection == "allowlist":
            coins = await self.get_coins_by_ids(self.settings.major_coin_ids_list)
        else:
            coins = await self.get_top_coins(self.settings.price_data_count)

        if include_history:
            enriched = []
            # Sequential: every history miss is charged to the shared limiter key
            for coin in coins:
                history = await self.get_coin_history(coin.id, days=1)
                enriched.append(coin.model_copy(update={"price_history": history}))
            coins = enriched

        self.cache.set(key, coins, self.settings.cache_default_ttl)
        return list(coins)

    # ============================================
    # Cache Management
    # ============================================

    def clear_cache(self) -> None:
        """Drop every cached response."""
        self.cache.flush_all()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.get_stats()
