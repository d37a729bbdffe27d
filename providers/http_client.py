"""
Retrying HTTP Client

Async HTTP client that fronts the rate-limited market-data API. Every
attempt goes through the shared rate limiter, and transient failures are
retried with jittered exponential backoff.

Per attempt:
    1. Acquire admission from the RateLimiter (may wait or raise RateLimitExceeded)
    2. Send the request with a fixed total timeout
    3. 2xx   -> decode JSON, apply the request's transform, write through to the
                cache when a cache key is given, return
    4. 429/502/503/504, timeout, connection error
             -> sleep retry_delay(attempt) (Retry-After wins when larger), retry
             -> Retry-After above the policy ceiling fails immediately
    5. other status -> PriceFeedUnavailable immediately

When attempts run out, PriceFeedUnavailable is raised from the last error.

Usage:
    async with RetryingHTTPClient(base_url, rate_limiter, cache=cache) as http:
        data = await http.request_with_retry(RequestSpec(path="/ping"))
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from core.errors import PriceFeedUnavailable, UpstreamHTTPError
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import RequestSpec, RetryPolicy
from core.utils import backoff
from core.utils.time import parse_retry_after
from services.rate_limiter import RateLimiter
from storage.cache import ResponseCache


class RetryingHTTPClient:
    """
    Rate-limited, retrying JSON client for one upstream base URL.

    Attributes:
        base_url: Upstream base URL (path of each RequestSpec is appended)
        rate_limiter: Shared limiter charged once per attempt
        cache: Optional cache for write-through of successful responses
        retry_policy: Immutable attempt/backoff bounds
        timeout: Total timeout per attempt in seconds
        session: aiohttp ClientSession (created by start() / async with)

    Example:
        >>> async with RetryingHTTPClient("https://api.coingecko.com/api/v3", limiter) as http:
        ...     pong = await http.request_with_retry(RequestSpec(path="/ping"))
    """

    def __init__(
        self,
        base_url: str,
        rate_limiter: RateLimiter,
        cache: Optional[ResponseCache] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        provider: str = "upstream",
        sleep: Callable[[float], Awaitable[None]] = backoff.sleep
    ):
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.headers = headers or {}
        self.provider = provider
        self._sleep = sleep
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = get_logger(__name__)

    @classmethod
    def from_settings(
        cls,
        config,
        rate_limiter: RateLimiter,
        cache: Optional[ResponseCache] = None,
        **kwargs
    ) -> "RetryingHTTPClient":
        """Build a CoinGecko-facing client from Settings."""
        return cls(
            base_url=config.coingecko_base_url,
            rate_limiter=rate_limiter,
            cache=cache,
            retry_policy=config.retry_policy,
            timeout=config.request_timeout,
            headers=config.get_coingecko_headers(),
            provider="coingecko",
            **kwargs
        )

    # ============================================
    # Session Management
    # ============================================

    async def start(self) -> None:
        """Create the HTTP session if it does not exist yet."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self.logger.debug(f"{self.provider} HTTP session created")

    async def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug(f"{self.provider} HTTP session closed")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ============================================
    # Request Handling
    # ============================================

    async def request_with_retry(self, spec: RequestSpec) -> Any:
        """
        Execute spec with rate limiting and retries.

        Args:
            spec: Method, path, params and optional cache/transform hints

        Returns:
            Decoded JSON body, passed through spec.transform when given

        Raises:
            RuntimeError: If the session was never started
            RateLimitExceeded: Local quota exhausted (no request was sent)
            PriceFeedUnavailable: Non-retryable failure or attempts exhausted
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' or start().")

        policy = self.retry_policy
        last_error: Optional[Exception] = None
        last_status: Optional[int] = None

        for attempt in range(policy.max_attempts):
            await self.rate_limiter.acquire(spec.limiter_key)

            retry_after_ms = None
            try:
                data = await self._send(spec, attempt)
            except UpstreamHTTPError as e:
                last_error = e
                last_status = e.status
                if not e.retryable:
                    self.logger.error(f"HTTP {e.status} on {spec.path}: {e.body}")
                    raise PriceFeedUnavailable(
                        f"{self.provider} returned HTTP {e.status} for {spec.path}",
                        status=e.status,
                        attempts=attempt + 1
                    ) from e
                if e.retry_after is not None:
                    retry_after_ms = e.retry_after * 1000.0
                    if retry_after_ms > policy.max_retry_after_ms:
                        self.logger.error(
                            f"HTTP {e.status} on {spec.path}: Retry-After {e.retry_after:g}s exceeds "
                            f"the {policy.max_retry_after_ms / 1000:g}s ceiling"
                        )
                        raise PriceFeedUnavailable(
                            f"{self.provider} asked to retry {spec.path} after {e.retry_after:g}s",
                            status=e.status,
                            attempts=attempt + 1
                        ) from e
            except asyncio.TimeoutError as e:
                last_error = e
                self.logger.warning(f"Timeout on {spec.path} (attempt {attempt + 1}/{policy.max_attempts})")
            except aiohttp.ClientError as e:
                last_error = e
                self.logger.warning(f"Request failed on {spec.path}: {e} (attempt {attempt + 1}/{policy.max_attempts})")
            else:
                return self._finish(spec, data)

            if attempt + 1 >= policy.max_attempts:
                break

            delay_ms = backoff.retry_delay(attempt, policy, retry_after_ms)
            self.logger.warning(
                f"Retrying {spec.path} in {delay_ms / 1000:.2f}s "
                f"(attempt {attempt + 1}/{policy.max_attempts}, cause: {last_error})"
            )
            await self._sleep(delay_ms)

        self.logger.error(f"Failed to fetch {spec.path} after {policy.max_attempts} attempts: {last_error}")
        raise PriceFeedUnavailable(
            f"Failed to fetch {spec.path} from {self.provider} after {policy.max_attempts} attempts",
            status=last_status,
            attempts=policy.max_attempts
        ) from last_error

    async def _send(self, spec: RequestSpec, attempt: int) -> Any:
        """Single attempt; returns decoded JSON or raises UpstreamHTTPError."""
        url = f"{self.base_url}{spec.path}"
        headers = {**self.headers, **spec.headers}

        log_api_request(self.provider, spec.path, spec.params, attempt)
        started = time.perf_counter()

        async with self.session.request(
            spec.method,
            url,
            params=spec.params or None,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as resp:
            log_api_response(self.provider, spec.path, resp.status, time.perf_counter() - started)

            if 200 <= resp.status < 300:
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise UpstreamHTTPError(resp.status, f"Invalid JSON body: {e}") from e

            # Only logged; undecodable bytes are replaced
            text = await resp.text(errors="replace")
            raise UpstreamHTTPError(
                resp.status,
                text[:500],
                retry_after=parse_retry_after(resp.headers.get("Retry-After")),
                retryable=backoff.is_retryable_status(resp.status)
            )

    def _finish(self, spec: RequestSpec, data: Any) -> Any:
        """Apply the transform and write through to the cache."""
        if spec.transform is not None:
            try:
                data = spec.transform(data)
            except ValueError as e:
                self.logger.error(f"Unexpected response shape from {spec.path}: {e}")
                raise PriceFeedUnavailable(
                    f"Unexpected response shape from {self.provider} {spec.path}"
                ) from e

        if spec.cache_key and self.cache is not None:
            self.cache.set(spec.cache_key, data, spec.cache_ttl)

        return data
