"""Components of the Trino client."""

from skyhistory.trino.components.filters import (
    Bounds,
    FilterSet,
    parse_duration,
    to_datetime,
)
from skyhistory.trino.components.codec import (
    FlightData,
    ParquetCodec,
    CsvCodec,
    write_output,
    STATE_VECTOR_SCHEMA,
    FLIGHTLIST_SCHEMA,
)
from skyhistory.trino.components.query import (
    QueryBuilder,
    RenderedQuery,
    Template,
)
from skyhistory.trino.components.auth import Token, Authenticator
from skyhistory.trino.components.executor import (
    ExecutionDriver,
    QueryState,
    QueryStatus,
    ProgressCallback,
)
from skyhistory.trino.components.cache import (
    ResultCache,
    CacheEntry,
    CacheStats,
    fingerprint,
    parse_age,
)

__all__ = [
    # Filters
    "Bounds",
    "FilterSet",
    "parse_duration",
    "to_datetime",
    # Results
    "FlightData",
    "ParquetCodec",
    "CsvCodec",
    "write_output",
    "STATE_VECTOR_SCHEMA",
    "FLIGHTLIST_SCHEMA",
    # Query building
    "QueryBuilder",
    "RenderedQuery",
    "Template",
    # Authentication
    "Token",
    "Authenticator",
    # Execution
    "ExecutionDriver",
    "QueryState",
    "QueryStatus",
    "ProgressCallback",
    # Cache
    "ResultCache",
    "CacheEntry",
    "CacheStats",
    "fingerprint",
    "parse_age",
]
