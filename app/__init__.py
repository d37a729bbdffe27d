"""
FastAPI Application Package

This package contains the main FastAPI application and routing logic.
It is the entry point for the price feed API and wires the cache, rate
limiter, HTTP client and price feed service together at startup.
"""
