"""
FastAPI Application - Crypto Price Feed API

Serves cached, rate-limited market data from CoinGecko to the dashboard.

Features:
    - Top coins by market cap (or a configured allow-list of major coins)
    - Coin price history
    - Cache statistics and flush
    - Rate limiter status

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import List
from contextlib import asynccontextmanager

from core.config import settings, validate_configuration
from core.errors import InvalidParameter, PriceFeedUnavailable, RateLimitExceeded
from core.logging import logger
from core.schemas import CacheStats, CoinSnapshot, PricePoint, RateWindow
from core.utils.time import current_utc_datetime
from providers.coingecko.api_client import CoinGeckoAPIClient
from providers.http_client import RetryingHTTPClient
from services.price_feed import PriceFeedService
from services.rate_limiter import RateLimiter
from storage.cache import ResponseCache


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the process-wide price feed components and tear them down on exit."""
    logger.info("=== Application Starting ===")
    try:
        validate_configuration()

        cache = ResponseCache(
            default_ttl=settings.cache_default_ttl,
            check_period=settings.cache_check_period,
        )
        rate_limiter = RateLimiter.from_settings(settings)
        http_client = RetryingHTTPClient.from_settings(settings, rate_limiter=rate_limiter, cache=cache)

        await cache.start()
        await http_client.start()

        app.state.cache = cache
        app.state.rate_limiter = rate_limiter
        app.state.http_client = http_client
        app.state.price_feed = PriceFeedService(
            CoinGeckoAPIClient(http_client, vs_currency=settings.vs_currency),
            cache,
            settings,
        )
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("=== Shutting Down ===")
    try:
        await app.state.http_client.close()
        await app.state.cache.stop()
        logger.info("=== Shutdown Complete ===")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Crypto Price Feed API",
    description=(
        "Cached, rate-limited cryptocurrency market data.\n\n"
        "## REST Endpoints\n"
        "- `GET /api/price-feed` - Default price feed (optional ?include_history=true)\n"
        "- `GET /api/price-feed/top` - Top coins by market cap (?count=10)\n"
        "- `GET /api/price-feed/{coin_id}/history` - Price history (?days=1)\n"
        "- `GET /api/price-feed/cache/stats` - Cache hit/miss counters\n"
        "- `DELETE /api/price-feed/cache` - Flush the response cache\n"
        "- `GET /api/price-feed/rate-limit` - Upstream quota windows\n"
        "- `GET /health` - Health check\n\n"
        "## Errors\n"
        "- `429` with `retryAfter` (seconds) when the upstream quota is exhausted\n"
        "- `502` when the upstream market-data API is unavailable"
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


def get_price_feed(request: Request) -> PriceFeedService:
    """Dependency returning the process-wide PriceFeedService."""
    service = getattr(request.app.state, "price_feed", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Price feed not initialized")
    return service


def get_rate_limiter(request: Request) -> RateLimiter:
    """Dependency returning the process-wide RateLimiter."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise HTTPException(status_code=503, detail="Rate limiter not initialized")
    return limiter


# ============================================
# System Endpoints
# ============================================

@app.get("/", tags=["System"])
async def root():
    """API information."""
    return {
        "name": "Crypto Price Feed API",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "provider": "coingecko",
    }


@app.get("/health", tags=["System"])
async def health_check(
    service: PriceFeedService = Depends(get_price_feed),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """Health check - cache counters and time until the next upstream slot."""
    wait = limiter.check()
    return {
        "status": "healthy" if wait == 0 else "throttled",
        "cache": service.get_cache_stats(),
        "next_request_in": round(wait, 3),
    }


# ============================================
# Price Feed Endpoints
# ============================================

@app.get("/api/price-feed", response_model=List[CoinSnapshot], tags=["Price Feed"])
async def get_price_feed_data(
    include_history: bool = Query(False, description="Attach 1-day price history to each coin"),
    service: PriceFeedService = Depends(get_price_feed)
):
    """Default price feed (coin selection follows COIN_SELECTION)."""
    return await service.get_price_data(include_history=include_history)


@app.get("/api/price-feed/top", response_model=List[CoinSnapshot], tags=["Price Feed"])
async def get_top_coins(
    count: int = Query(10, ge=1, le=250, description="Number of coins"),
    service: PriceFeedService = Depends(get_price_feed)
):
    """
    Top coins by market cap.

    Example:
        GET /api/price-feed/top?count=10
    """
    return await service.get_top_coins(count)


@app.get("/api/price-feed/cache/stats", response_model=CacheStats, tags=["Cache"])
async def get_cache_stats(service: PriceFeedService = Depends(get_price_feed)):
    """Cache hit/miss counters and live key count."""
    return service.get_cache_stats()


@app.delete("/api/price-feed/cache", tags=["Cache"])
async def clear_cache(service: PriceFeedService = Depends(get_price_feed)):
    """Flush every cached response."""
    service.clear_cache()
    return {"status": "ok", "message": "Cache cleared"}


@app.get("/api/price-feed/rate-limit", response_model=List[RateWindow], tags=["Price Feed"])
async def get_rate_limit_status(limiter: RateLimiter = Depends(get_rate_limiter)):
    """Current windows of the shared upstream quota."""
    return limiter.status()


@app.get("/api/price-feed/{coin_id}/history", response_model=List[PricePoint], tags=["Price Feed"])
async def get_coin_history(
    coin_id: str,
    days: int = Query(1, ge=1, le=365, description="Look-back window in days"),
    service: PriceFeedService = Depends(get_price_feed)
):
    """
    Price history of a coin.

    Example:
        GET /api/price-feed/bitcoin/history?days=7
    """
    return await service.get_coin_history(coin_id, days=days)


# ============================================
# Error Handlers
# ============================================

def _error_body(message: str, **extra) -> dict:
    return {
        "status": "error",
        "message": message,
        **extra,
        "timestamp": current_utc_datetime().isoformat(),
    }


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Local quota exhausted -> 429 with retryAfter seconds."""
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=429,
        content=_error_body("Rate limit exceeded", retryAfter=exc.retry_after_seconds),
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


@app.exception_handler(PriceFeedUnavailable)
async def price_feed_unavailable_handler(request: Request, exc: PriceFeedUnavailable):
    """Upstream failed after retries -> 502."""
    logger.error(f"{request.method} {request.url.path}: {exc} (cause: {exc.__cause__})")
    return JSONResponse(
        status_code=502,
        content=_error_body("Price feed unavailable", upstreamStatus=exc.status),
    )


@app.exception_handler(InvalidParameter)
async def invalid_parameter_handler(request: Request, exc: InvalidParameter):
    """Invalid request parameters -> 400."""
    return JSONResponse(status_code=400, content=_error_body(str(exc)))


@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Handle 404 errors."""
    return JSONResponse(status_code=404, content={"detail": "Not found", "path": str(request.url)})
