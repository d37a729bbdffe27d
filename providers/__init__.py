"""
Market-Data Providers Package

Outbound access to third-party market-data APIs:
- http_client.py: Rate-limited, retrying JSON client shared by all providers
- coingecko/: CoinGecko endpoints and response normalization

Adding a provider means adding a subpackage that builds RequestSpecs and
normalizes payloads; transport concerns stay in the shared client.
"""
