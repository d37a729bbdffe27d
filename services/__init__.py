"""
Services Package

- rate_limiter: Shared upstream quota (fixed windows + request spacing)
- price_feed: Cache-first facade used by the route handlers
"""
