"""
High-level client for the OpenSky historical database.

Usage:
    async with Trino() as trino:
        filters = FilterSet().with_icao24("485a32").with_time_range("2025-01-01 10:00", "2025-01-01 12:00")
        data = await trino.history(filters)

Each call renders the filters, looks the query up in the local result cache
and only goes to the network on a miss. Fresh results are written back to
the cache; a failure to read or write the cache is logged and never fails
the query.
"""

import asyncio
from datetime import timedelta

import httpx

from skyhistory.utils import logger
from skyhistory.utils.exceptions import CacheError
from skyhistory.trino.config import Settings, get_settings
from skyhistory.trino.config.credentials import CredentialProvider
from skyhistory.trino.components.auth import Authenticator
from skyhistory.trino.components.cache import CacheStats, ResultCache, fingerprint, parse_age
from skyhistory.trino.components.codec import FlightData
from skyhistory.trino.components.executor import (
    ExecutionDriver,
    ProgressCallback,
    QueryState,
    QueryStatus,
)
from skyhistory.trino.components.filters import FilterSet
from skyhistory.trino.components.query import QueryBuilder, RenderedQuery


class Trino:
    """
    Facade over query building, authentication, execution and caching.

    All collaborators can be injected; by default they are created from
    settings and share one HTTP client.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        credentials: CredentialProvider | None = None,
        authenticator: Authenticator | None = None,
        cache: ResultCache | None = None,
        builder: QueryBuilder | None = None,
        driver: ExecutionDriver | None = None,
    ):
        """
        Initialize the client.

        Args:
            settings: Client settings (defaults to global settings)
            http: Shared async HTTP client
            credentials: Credential provider for the default authenticator
            authenticator: Token source
            cache: Result cache (defaults to the configured cache directory)
            builder: Query builder
            driver: Execution driver
        """
        self.settings = settings or get_settings()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=httpx.Timeout(self.settings.trino.timeout_seconds))

        self.authenticator = authenticator or Authenticator(
            credentials=credentials,
            http=self.http,
            auth=self.settings.auth,
        )
        self.cache = cache or ResultCache(self.settings.cache.path)
        self.builder = builder or QueryBuilder()
        self.driver = driver or ExecutionDriver(
            self.http,
            self.authenticator,
            trino=self.settings.trino,
            user=self.settings.auth.username,
        )

    async def __aenter__(self) -> "Trino":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def history(
        self,
        filters: FilterSet,
        use_cache: bool = True,
        on_progress: ProgressCallback | None = None,
    ) -> FlightData:
        """
        Fetch historical data matching the filters.

        Airport filters join the state vectors to the flight list so only
        positions flown between takeoff and landing are returned.

        Raises:
            BuildError: If the filters are invalid
            AuthError: If no token can be obtained
            ExecError: If the query fails
        """
        return await self.query(self.builder.render_history(filters), use_cache=use_cache, on_progress=on_progress)

    async def history_cached(self, filters: FilterSet, use_cache: bool = True) -> FlightData:
        return await self.history(filters, use_cache=use_cache)

    async def history_with_progress(
        self,
        filters: FilterSet,
        callback: ProgressCallback,
        use_cache: bool = True,
    ) -> FlightData:
        return await self.history(filters, use_cache=use_cache, on_progress=callback)

    async def flightlist(
        self,
        filters: FilterSet,
        use_cache: bool = True,
        on_progress: ProgressCallback | None = None,
    ) -> FlightData:
        """Fetch flights by airport, icao24 or callsign."""
        return await self.query(self.builder.render_flightlist(filters), use_cache=use_cache, on_progress=on_progress)

    async def query(
        self,
        rendered: RenderedQuery,
        use_cache: bool = True,
        on_progress: ProgressCallback | None = None,
    ) -> FlightData:
        """
        Run an already rendered query through the cache and the engine.

        Args:
            rendered: Query to run
            use_cache: Look the result up in the cache first; the fresh
                result is stored either way
            on_progress: Progress callback
        """
        key = fingerprint(rendered)

        if use_cache:
            cached = await self._cache_get(key)
            if cached is not None:
                logger.info(f"Using cached result {key[:12]} ({len(cached)} rows)")
                if on_progress is not None:
                    on_progress(QueryStatus(
                        state=QueryState.SUCCEEDED,
                        progress=1.0,
                        row_count=len(cached),
                        cached=True,
                    ))
                return cached

        token = await self.authenticator.token()
        data = await self.driver.execute(rendered, token, on_progress=on_progress)
        await self._cache_put(key, data)
        return data

    async def cancel(self, query_id: str) -> None:
        """Cancel a running query by its engine id."""
        token = await self.authenticator.token()
        await self.driver.cancel(query_id, token)

    # -------------------------------------------------------------------------
    # Cache management
    # -------------------------------------------------------------------------

    async def cache_stats(self) -> CacheStats:
        return await asyncio.to_thread(self.cache.stats)

    async def purge_cache(self, older_than: timedelta | str | None = None) -> int:
        """
        Delete cached results.

        Args:
            older_than: Age threshold ("90 days" style strings accepted);
                None removes everything
        """
        if isinstance(older_than, str):
            older_than = parse_age(older_than)
        return await asyncio.to_thread(self.cache.purge, older_than)

    async def _cache_get(self, key: str) -> FlightData | None:
        try:
            return await asyncio.to_thread(self.cache.get, key)
        except CacheError as e:
            logger.warning(f"Ignoring unreadable cache entry {key[:12]}: {e.message}")
            return None

    async def _cache_put(self, key: str, data: FlightData) -> None:
        try:
            await asyncio.to_thread(self.cache.put, key, data)
        except CacheError as e:
            logger.warning(f"Failed to cache result {key[:12]}: {e.message}")


def create_client(settings: Settings | None = None, **kwargs) -> Trino:
    """Factory function to create a Trino client."""
    return Trino(settings, **kwargs)


__all__ = ["Trino", "create_client"]
