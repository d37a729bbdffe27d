"""
Core Package

Contains the provider-agnostic foundation of the price feed backend:
- Settings: Environment-driven configuration (pydantic-settings)
- Logging: Centralized application logger
- Schemas: Pydantic models for normalized market data and component state
- Errors: Typed errors translated into HTTP statuses by the route layer
"""
