"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Validates all required settings
- Provides type-safe access to configuration values
- Converts comma-separated strings to lists (coin ids, CORS origins)
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    # Access configuration values
    print(settings.coingecko_base_url)
    print(settings.major_coin_ids_list)  # Returns a list of strings
"""

from typing import List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from core.schemas import RetryPolicy


class Settings(BaseSettings):
    """
    Application Settings

    This class defines all configuration parameters for the application.
    Values are automatically loaded from environment variables or .env file.

    Attributes:
        coingecko_base_url: Base URL for the CoinGecko market-data API
        coingecko_api_key: Demo/pro API key (optional for the public tier)
        vs_currency: Quote currency for all prices (e.g., "usd")
        request_timeout: Timeout for outbound HTTP requests in seconds
        max_requests_per_second: Upstream requests admitted per one-second window
        max_requests_per_minute: Upstream requests admitted per one-minute window
        min_request_interval: Minimum spacing between admitted requests in seconds
        rate_limit_policy: "reject" raises RateLimitExceeded, "wait" suspends the caller
        max_retry_attempts: Total attempts per upstream request
        min_retry_delay_ms: Base delay of the exponential backoff
        max_retry_delay_ms: Ceiling of the exponential backoff
        max_retry_after_ms: Longest upstream Retry-After the client will sleep through
        cache_default_ttl: Default cache time-to-live in seconds
        cache_check_period: Interval of the expired-entry sweep in seconds
        cache_top_coins_ttl: TTL for coin market listings
        cache_coin_history_ttl: TTL for coin price history
        coin_selection: "top" (by market cap) or "allowlist" (major_coin_ids)
        major_coin_ids: Comma-separated CoinGecko ids used by the allowlist policy
        price_data_count: Number of coins returned by the default price feed
        app_host: Host address for FastAPI server
        app_port: Port number for FastAPI server
        environment: Current environment (development, production)
        debug: Enable debug mode with verbose logging
    """

    # ============================================
    # CoinGecko API Configuration
    # ============================================

    coingecko_base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="CoinGecko API base URL"
    )

    coingecko_api_key: str = Field(
        default="",
        description="CoinGecko API key (optional for the public tier)"
    )

    vs_currency: str = Field(
        default="usd",
        description="Quote currency for prices and market caps"
    )

    request_timeout: float = Field(
        default=10.0,
        description="HTTP request timeout in seconds"
    )

    # ============================================
    # Rate Limiting
    # ============================================

    max_requests_per_second: int = Field(
        default=5,
        description="Maximum upstream requests per second"
    )

    max_requests_per_minute: int = Field(
        default=50,
        description="Maximum upstream requests per minute"
    )

    min_request_interval: float = Field(
        default=2.0,
        description="Minimum spacing between consecutive upstream requests (seconds)"
    )

    rate_limit_policy: Literal["reject", "wait"] = Field(
        default="reject",
        description="Behaviour when the quota is exhausted: reject with 429 or wait"
    )

    # ============================================
    # Retry Configuration
    # ============================================

    max_retry_attempts: int = Field(
        default=3,
        description="Total attempts per upstream request (first try included)"
    )

    min_retry_delay_ms: int = Field(
        default=1000,
        description="Base backoff delay in milliseconds"
    )

    max_retry_delay_ms: int = Field(
        default=30000,
        description="Maximum backoff delay in milliseconds"
    )

    max_retry_after_ms: int = Field(
        default=60000,
        description="Longest upstream Retry-After honoured; longer waits fail the request"
    )

    # ============================================
    # Caching Configuration
    # ============================================

    cache_default_ttl: int = Field(
        default=60,
        description="Default cache TTL in seconds"
    )

    cache_check_period: int = Field(
        default=120,
        description="Seconds between sweeps of expired cache entries"
    )

    cache_top_coins_ttl: int = Field(
        default=300,
        description="Cache TTL for coin market listings (seconds)"
    )

    cache_coin_history_ttl: int = Field(
        default=300,
        description="Cache TTL for coin price history (seconds)"
    )

    # ============================================
    # Coin Selection
    # ============================================

    coin_selection: Literal["top", "allowlist"] = Field(
        default="top",
        description="How the default price feed picks coins"
    )

    major_coin_ids: str = Field(
        default="bitcoin,ethereum,binancecoin,solana,ripple",
        description="Comma-separated CoinGecko ids for the allowlist policy"
    )

    price_data_count: int = Field(
        default=10,
        description="Number of coins in the default price feed (top policy)"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # Look for .env file in the project root
        env_file=".env",
        # Ignore extra fields in .env that aren't defined here
        extra="ignore",
        # Case-insensitive environment variable matching
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def major_coin_ids_list(self) -> List[str]:
        """
        Convert comma-separated coin ids string to a list.

        Example:
            >>> settings.major_coin_ids_list
            ['bitcoin', 'ethereum', 'binancecoin', 'solana', 'ripple']
        """
        return [c.strip().lower() for c in self.major_coin_ids.split(",") if c.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert comma-separated CORS origins string to a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def retry_policy(self) -> RetryPolicy:
        """Immutable retry policy built from the retry settings."""
        return RetryPolicy(
            max_attempts=self.max_retry_attempts,
            min_delay_ms=self.min_retry_delay_ms,
            max_delay_ms=self.max_retry_delay_ms,
            max_retry_after_ms=self.max_retry_after_ms,
        )

    def get_coingecko_headers(self) -> dict:
        """
        Get HTTP headers for CoinGecko API requests.

        Returns:
            Dictionary of headers including the API key if configured
        """
        headers = {
            "Accept": "application/json",
        }

        if self.coingecko_api_key:
            headers["x-cg-demo-api-key"] = self.coingecko_api_key

        return headers


# ============================================
# Global Settings Instance
# ============================================

# Loaded once at import; components receive it explicitly at construction
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Args:
        config: Settings to validate (defaults to the global instance)

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # logging.py imports config.py, so we can't import at module level
    from core.logging import logger

    config = config or settings

    if not config.coingecko_base_url.startswith("http"):
        raise ValueError(f"Invalid COINGECKO_BASE_URL: '{config.coingecko_base_url}'")

    if config.coin_selection == "allowlist" and not config.major_coin_ids_list:
        raise ValueError("MAJOR_COIN_IDS must contain at least one id when COIN_SELECTION=allowlist")

    if config.max_requests_per_second < 1 or config.max_requests_per_minute < 1:
        raise ValueError("Rate limit ceilings must be at least 1 request per window")

    if config.min_request_interval < 0:
        raise ValueError("MIN_REQUEST_INTERVAL cannot be negative")

    if config.max_retry_attempts < 1:
        raise ValueError("MAX_RETRY_ATTEMPTS must be at least 1")

    if config.max_retry_after_ms < 0:
        raise ValueError("MAX_RETRY_AFTER_MS cannot be negative")

    if config.min_retry_delay_ms > config.max_retry_delay_ms:
        raise ValueError(
            f"MIN_RETRY_DELAY_MS ({config.min_retry_delay_ms}) cannot exceed "
            f"MAX_RETRY_DELAY_MS ({config.max_retry_delay_ms})"
        )

    for name in ("cache_default_ttl", "cache_check_period", "cache_top_coins_ttl", "cache_coin_history_ttl"):
        if getattr(config, name) <= 0:
            raise ValueError(f"{name.upper()} must be positive")

    if not (1 <= config.app_port <= 65535):
        raise ValueError(f"Invalid port number: {config.app_port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"CoinGecko API: {config.coingecko_base_url} ({config.vs_currency})")
    logger.info(
        f"Rate limits: {config.max_requests_per_second}/s, {config.max_requests_per_minute}/min, "
        f"min interval {config.min_request_interval}s, policy={config.rate_limit_policy}"
    )
    logger.info(
        f"Retries: {config.max_retry_attempts} attempts, "
        f"{config.min_retry_delay_ms}-{config.max_retry_delay_ms}ms backoff"
    )
    logger.info(f"Coin selection: {config.coin_selection}")
    logger.info(f"Server: {config.app_host}:{config.app_port}")
    logger.info(f"Log level: {config.log_level.upper()}")
