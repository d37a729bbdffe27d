"""
Unit Tests for the Price Feed API Routes

Routes are exercised with FastAPI's TestClient against a stub service, so
no lifespan startup and no upstream calls happen.

Run with:
    pytest tests/unit/test_api_routes.py -v
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.main import app
from core.errors import InvalidParameter, PriceFeedUnavailable, RateLimitExceeded
from core.schemas import CacheStats, CoinSnapshot, PricePoint
from services.rate_limiter import RateLimiter


BITCOIN = CoinSnapshot(id="bitcoin", symbol="btc", name="Bitcoin", current_price=64000.0)


class StubPriceFeed:
    """Records calls and returns (or raises) a canned result."""

    def __init__(self, result=None):
        self.result = result
        self.calls = []
        self.cleared = False

    def _answer(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result

    async def get_price_data(self, include_history=False):
        return self._answer("get_price_data", include_history=include_history)

    async def get_top_coins(self, count=10):
        return self._answer("get_top_coins", count)

    async def get_coin_history(self, coin_id, days=1):
        return self._answer("get_coin_history", coin_id, days=days)

    def clear_cache(self):
        self.cleared = True

    def get_cache_stats(self):
        return CacheStats(hits=3, misses=1, keys=2)


@pytest.fixture
def api():
    """TestClient with stub components installed on app.state"""
    stub = StubPriceFeed([BITCOIN])
    app.state.price_feed = stub
    app.state.rate_limiter = RateLimiter(rules=[(5, 1.0), (50, 60.0)])
    client = TestClient(app)
    yield client, stub
    del app.state.price_feed
    del app.state.rate_limiter


class TestSuccessPaths:

    def test_price_feed(self, api):
        client, stub = api
        response = client.get("/api/price-feed", params={"include_history": "true"})

        assert response.status_code == 200
        body = response.json()
        assert body[0]["id"] == "bitcoin"
        assert body[0]["symbol"] == "BTC"
        assert stub.calls == [("get_price_data", (), {"include_history": True})]

    def test_top_coins(self, api):
        client, stub = api
        response = client.get("/api/price-feed/top", params={"count": 5})

        assert response.status_code == 200
        assert stub.calls[0] == ("get_top_coins", (5,), {})

    def test_coin_history(self, api):
        client, stub = api
        stub.result = [PricePoint(timestamp=datetime(2024, 4, 1, tzinfo=timezone.utc), price=1.5)]

        response = client.get("/api/price-feed/bitcoin/history", params={"days": 7})

        assert response.status_code == 200
        assert response.json()[0]["price"] == 1.5
        assert stub.calls[0] == ("get_coin_history", ("bitcoin",), {"days": 7})

    def test_cache_stats_and_clear(self, api):
        client, stub = api
        assert client.get("/api/price-feed/cache/stats").json() == {"hits": 3, "misses": 1, "keys": 2}

        response = client.delete("/api/price-feed/cache")
        assert response.status_code == 200
        assert stub.cleared is True

    def test_rate_limit_status(self, api):
        client, _ = api
        windows = client.get("/api/price-feed/rate-limit").json()
        assert [(w["limit"], w["window_seconds"]) for w in windows] == [(5, 1.0), (50, 60.0)]

    def test_health(self, api):
        client, _ = api
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["cache"]["keys"] == 2


class TestErrorMapping:

    def test_rate_limit_exceeded_is_429(self, api):
        client, stub = api
        stub.result = RateLimitExceeded(34.2)

        response = client.get("/api/price-feed/top")

        assert response.status_code == 429
        body = response.json()
        assert body["status"] == "error"
        assert body["message"] == "Rate limit exceeded"
        assert body["retryAfter"] == 35
        assert response.headers["Retry-After"] == "35"

    def test_unavailable_is_502(self, api):
        client, stub = api
        stub.result = PriceFeedUnavailable("upstream down", status=503, attempts=3)

        response = client.get("/api/price-feed/bitcoin/history")

        assert response.status_code == 502
        assert response.json()["upstreamStatus"] == 503

    def test_invalid_parameter_is_400(self, api):
        client, stub = api
        stub.result = InvalidParameter("coin_id is required")

        response = client.get("/api/price-feed/top")

        assert response.status_code == 400
        assert response.json()["message"] == "coin_id is required"

    def test_internal_decode_error_is_not_a_client_error(self, api):
        """A stray ValueError subclass is a server failure, never a 400"""
        _, stub = api
        stub.result = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        response = TestClient(app, raise_server_exceptions=False).get("/api/price-feed/top")

        assert response.status_code == 500

    @pytest.mark.parametrize("params", [{"count": 0}, {"count": 251}, {"count": "ten"}])
    def test_query_validation(self, api, params):
        client, stub = api
        assert client.get("/api/price-feed/top", params=params).status_code == 422
        assert stub.calls == []

    def test_uninitialized_service_is_503(self):
        client = TestClient(app)
        assert client.get("/api/price-feed/top").status_code == 503
