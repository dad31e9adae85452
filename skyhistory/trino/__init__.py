"""
Client for the OpenSky Network historical database (Trino).

This module provides:
- Filter sets and a query builder producing parameterized SQL
- OAuth2 token management with single-flight refresh
- An execution driver for the Trino statement protocol
- A content-addressed Parquet cache of query results

Quick start:
    import asyncio
    from skyhistory.trino import Trino, FilterSet

    async def main():
        async with Trino() as trino:
            filters = FilterSet().with_icao24("485a32").with_time_range("2025-01-01")
            data = await trino.history(filters)
            print(data.head())

    asyncio.run(main())

Configuration (environment variables):
    OPENSKY_USERNAME/PASSWORD: OpenSky account credentials
    TRINO_STATEMENT_URL: Trino statement endpoint
    CACHE_DIRECTORY: Result cache directory (default: ~/.cache/opensky)
    LOG_LEVEL: Log level (default: INFO)
"""

from skyhistory.trino.config import settings, get_settings
from skyhistory.trino.components import (
    Bounds,
    FilterSet,
    FlightData,
    QueryBuilder,
    RenderedQuery,
    Token,
    Authenticator,
    ExecutionDriver,
    QueryState,
    QueryStatus,
    ResultCache,
    CacheStats,
    fingerprint,
)
from skyhistory.trino.client import Trino, create_client

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Components
    "Bounds",
    "FilterSet",
    "FlightData",
    "QueryBuilder",
    "RenderedQuery",
    "Token",
    "Authenticator",
    "ExecutionDriver",
    "QueryState",
    "QueryStatus",
    "ResultCache",
    "CacheStats",
    "fingerprint",
    # Client
    "Trino",
    "create_client",
]
