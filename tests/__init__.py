"""
Test Suite

Contains unit tests for the price feed backend.

Structure:
- tests/conftest.py: Shared test doubles (fake clock, mock aiohttp session)
- tests/unit/: Tests for individual components (backoff, cache, rate limiter,
  HTTP client, CoinGecko normalization, service, routes, config)

Uses pytest with pytest-asyncio for testing async functionality. No test
touches the network.
"""
