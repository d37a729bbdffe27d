"""
CoinGecko Provider

Endpoint definitions and payload normalization for the CoinGecko API.
"""

from providers.coingecko.api_client import (
    CoinGeckoAPIClient,
    normalize_coin_markets,
    normalize_market_chart,
)

__all__ = ["CoinGeckoAPIClient", "normalize_coin_markets", "normalize_market_chart"]
