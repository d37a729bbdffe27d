"""
CoinGecko REST API Client

Builds CoinGecko requests for the retrying HTTP client and normalizes the
responses into our schemas. Rate limiting, retries and cache write-through
are handled by RetryingHTTPClient; this module only knows CoinGecko's
endpoints and payload shapes.

API Documentation:
    https://docs.coingecko.com/reference/introduction

Usage:
    coingecko = CoinGeckoAPIClient(http_client, vs_currency="usd")
    coins = await coingecko.get_coin_markets(count=10)
    history = await coingecko.get_market_chart("bitcoin", days=1)
"""

from typing import Any, List, Optional, Sequence

from core.logging import get_logger
from core.schemas import CoinSnapshot, PricePoint, RequestSpec
from core.utils.time import parse_iso_datetime, to_utc_datetime
from providers.http_client import RetryingHTTPClient


# CoinGecko caps /coins/markets at 250 results per page
MAX_PER_PAGE = 250


# ============================================
# Normalization
# ============================================

def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def normalize_coin_markets(payload: Any) -> List[CoinSnapshot]:
    """
    Convert a /coins/markets response into CoinSnapshot records.

    Raises:
        ValueError: If the payload is not a list of coin objects
    """
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of coins, got {type(payload).__name__}")

    coins = []
    for item in payload:
        if not isinstance(item, dict):
            raise ValueError(f"Expected a coin object, got {type(item).__name__}")
        try:
            coins.append(
                CoinSnapshot(
                    id=item["id"],
                    symbol=item["symbol"],
                    name=item.get("name") or item["id"],
                    current_price=_optional_float(item.get("current_price")),
                    change_24h_pct=_optional_float(item.get("price_change_percentage_24h")),
                    market_cap=_optional_float(item.get("market_cap")),
                    volume_24h=_optional_float(item.get("total_volume")),
                    image=item.get("image"),
                    market_cap_rank=item.get("market_cap_rank"),
                    high_24h=_optional_float(item.get("high_24h")),
                    low_24h=_optional_float(item.get("low_24h")),
                    last_updated=parse_iso_datetime(item.get("last_updated")),
                )
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed coin object: missing or invalid {e}") from e
    return coins


def normalize_market_chart(payload: Any) -> List[PricePoint]:
    """
    Convert a /coins/{id}/market_chart response into PricePoints.

    Response Format:
        {
          "prices": [[1711929600000, 69702.3], ...],
          "market_caps": [...],
          "total_volumes": [...]
        }

    Raises:
        ValueError: If "prices" is missing or malformed
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("prices"), list):
        raise ValueError("Expected an object with a 'prices' list")

    points = []
    for sample in payload["prices"]:
        if not isinstance(sample, (list, tuple)) or len(sample) < 2:
            raise ValueError(f"Malformed price sample: {sample!r}")
        timestamp, price = sample[0], sample[1]
        if price is None:
            continue
        try:
            points.append(PricePoint(timestamp=to_utc_datetime(timestamp), price=float(price)))
        except TypeError as e:
            raise ValueError(f"Malformed price sample: {sample!r}") from e
    return points


# ============================================
# API Client
# ============================================

class CoinGeckoAPIClient:
    """
    CoinGecko endpoints on top of a RetryingHTTPClient.

    Attributes:
        http: Shared retrying client (owns the session, limiter and cache)
        vs_currency: Quote currency for prices
        limiter_key: Rate limiter key charged by every CoinGecko request
    """

    def __init__(self, http: RetryingHTTPClient, vs_currency: str = "usd", limiter_key: str = "global"):
        self.http = http
        self.vs_currency = vs_currency.lower()
        self.limiter_key = limiter_key
        self.logger = get_logger(__name__)

    async def get_coin_markets(
        self,
        count: Optional[int] = None,
        ids: Optional[Sequence[str]] = None,
        cache_key: Optional[str] = None,
        cache_ttl: Optional[int] = None
    ) -> List[CoinSnapshot]:
        """
        Fetch market data for the top coins or for specific ids.

        Args:
            count: Number of coins by market cap (capped at 250)
            ids: CoinGecko ids to restrict the listing to
            cache_key: Write-through cache key for the normalized result
            cache_ttl: TTL of the write-through entry

        Returns:
            CoinSnapshot list ordered by market cap (descending)

        CoinGecko Endpoint:
            GET /coins/markets
        """
        per_page = min(count or (len(ids) if ids else 10), MAX_PER_PAGE)
        params = {
            "vs_currency": self.vs_currency,
            "order": "market_cap_desc",
            "per_page": per_page,
            "page": 1,
            "sparkline": "false",
        }
        if ids:
            params["ids"] = ",".join(ids)

        self.logger.info(f"Fetching coin markets (per_page={per_page}{', ids=' + params['ids'] if ids else ''})")

        coins = await self.http.request_with_retry(
            RequestSpec(
                path="/coins/markets",
                params=params,
                cache_key=cache_key,
                cache_ttl=cache_ttl,
                limiter_key=self.limiter_key,
                transform=normalize_coin_markets,
            )
        )

        self.logger.info(f"Fetched {len(coins)} coins")
        return coins

    async def get_market_chart(
        self,
        coin_id: str,
        days: int = 1,
        cache_key: Optional[str] = None,
        cache_ttl: Optional[int] = None
    ) -> List[PricePoint]:
        """
        Fetch the price history of a coin.

        Args:
            coin_id: CoinGecko id (e.g., "bitcoin")
            days: Look-back window in days

        Returns:
            PricePoint list, oldest first

        CoinGecko Endpoint:
            GET /coins/{id}/market_chart
        """
        coin_id = coin_id.strip().lower()
        self.logger.info(f"Fetching market chart: {coin_id} (days={days})")

        points = await self.http.request_with_retry(
            RequestSpec(
                path=f"/coins/{coin_id}/market_chart",
                params={"vs_currency": self.vs_currency, "days": str(days)},
                cache_key=cache_key,
                cache_ttl=cache_ttl,
                limiter_key=self.limiter_key,
                transform=normalize_market_chart,
            )
        )

        self.logger.info(f"Fetched {len(points)} price points for {coin_id}")
        return points
