"""
Storage Package

Handles caching of upstream market data.

Current implementation:
- In-memory TTL cache (process-local, rebuilt cold on restart)

Staleness is bounded by each entry's TTL; nothing is persisted.
"""

from storage.cache import ResponseCache

__all__ = ["ResponseCache"]
