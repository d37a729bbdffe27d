"""
Shared test doubles.

- FakeClock: monotonic clock whose sleeps advance time instantly
- MockResponse / MockSession: stand-ins for aiohttp's response and session
"""

import pytest

from core.config import Settings
from core.schemas import RetryPolicy
from providers.http_client import RetryingHTTPClient
from services.rate_limiter import RateLimiter, RateLimitPolicy
from storage.cache import ResponseCache


class FakeClock:
    """Callable clock; sleep() and sleep_ms() record the delay and advance time."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []
        self.sleeps_ms = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    async def sleep_ms(self, ms: float) -> None:
        self.sleeps_ms.append(ms)
        self.now += ms / 1000.0


class MockResponse:
    def __init__(self, status, json_data=None, headers=None, text=""):
        self.status = status
        self._json_data = json_data
        self.headers = headers or {}
        self._text = text

    async def json(self, content_type=None):
        if isinstance(self._json_data, Exception):
            raise self._json_data
        return self._json_data

    async def text(self, errors="strict"):
        # Byte bodies are decoded like aiohttp does, honouring errors=
        if isinstance(self._text, bytes):
            return self._text.decode("utf-8", errors)
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


class MockSession:
    """Returns queued responses in order; queued exceptions are raised."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def request(self, method, url, params=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params, "headers": headers})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_response():
    """MockResponse factory: mock_response(status, json_data=None, headers=None, text="")."""
    return MockResponse


@pytest.fixture
def test_settings():
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        min_request_interval=0.0,
        cache_top_coins_ttl=300,
        cache_coin_history_ttl=120,
        cache_default_ttl=60,
    )


@pytest.fixture
def make_http_client(clock):
    """Build a RetryingHTTPClient wired to a MockSession and the fake clock."""

    def _make(responses, limiter=None, cache=None, policy=None):
        limiter = limiter or RateLimiter(
            rules=[(100, 1.0), (1000, 60.0)],
            min_interval=0.0,
            policy=RateLimitPolicy.REJECT,
            clock=clock,
            sleep=clock.sleep,
        )
        client = RetryingHTTPClient(
            "https://api.example.com/api/v3",
            rate_limiter=limiter,
            cache=cache,
            retry_policy=policy or RetryPolicy(max_attempts=3, min_delay_ms=1000, max_delay_ms=30000),
            provider="coingecko",
            sleep=clock.sleep_ms,
        )
        client.session = MockSession(responses)
        return client

    return _make


@pytest.fixture
def cache(clock):
    return ResponseCache(default_ttl=60, check_period=120, clock=clock)
