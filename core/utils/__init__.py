"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Timestamp conversion and Retry-After parsing
    - backoff: Async sleep and jittered exponential backoff
"""

from core.utils.time import to_utc_datetime, parse_retry_after
from core.utils.backoff import sleep, backoff_delay, retry_delay, is_retryable_status

__all__ = [
    "to_utc_datetime",
    "parse_retry_after",
    "sleep",
    "backoff_delay",
    "retry_delay",
    "is_retryable_status",
]
