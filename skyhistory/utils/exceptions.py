"""
Custom exceptions for skyhistory.

Provides a hierarchy of exceptions for different error scenarios:
- Build errors (invalid or insufficient filters)
- Authentication errors (credentials, token exchange)
- Execution errors (remote engine, network, cancellation)
- Cache errors (reading or writing cached results)

Every error carries a ``kind`` so callers can branch on it, and a
``retryable`` flag telling whether trying again later may succeed.
"""

from enum import Enum


class SkyHistoryError(Exception):
    """Base exception for all skyhistory errors."""

    def __init__(self, message: str, *args, **kwargs):
        self.message = message
        super().__init__(message, *args, **kwargs)

    @property
    def retryable(self) -> bool:
        return False


# =============================================================================
# Query building
# =============================================================================

class BuildErrorKind(str, Enum):
    """Why a filter set could not be turned into a query."""
    NO_FILTER_DIMENSION = "no_filter_dimension"
    INVALID_BOUNDS = "invalid_bounds"
    DURATION_TOO_LONG = "duration_too_long"
    MISSING_TIME_RANGE = "missing_time_range"
    INVALID_TIME = "invalid_time"
    INVALID_LIMIT = "invalid_limit"
    CONFLICTING_FILTERS = "conflicting_filters"
    UNSUPPORTED_FILTER = "unsupported_filter"


class BuildError(SkyHistoryError):
    """The caller supplied bad or insufficient filters. Never retried."""

    def __init__(self, kind: BuildErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


# =============================================================================
# Authentication
# =============================================================================

class AuthErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    NETWORK = "network"
    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_RESPONSE = "invalid_response"


class AuthError(SkyHistoryError):
    """Error when exchanging credentials for a bearer token."""

    def __init__(self, kind: AuthErrorKind, message: str, status_code: int | None = None):
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind == AuthErrorKind.NETWORK


# =============================================================================
# Execution
# =============================================================================

class ExecErrorKind(str, Enum):
    REMOTE_FAILURE = "remote_failure"
    CANCELLED = "cancelled"
    NETWORK = "network"
    PROTOCOL = "protocol"


class ExecError(SkyHistoryError):
    """Error while running a query on the remote engine."""

    def __init__(
        self,
        kind: ExecErrorKind,
        message: str,
        query_id: str | None = None,
        error_name: str | None = None,
        status_code: int | None = None,
    ):
        self.kind = kind
        self.query_id = query_id
        self.error_name = error_name
        self.status_code = status_code
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind == ExecErrorKind.NETWORK


# =============================================================================
# Cache
# =============================================================================

class CacheErrorKind(str, Enum):
    IO = "io"
    CORRUPT = "corrupt"


class CacheError(SkyHistoryError):
    """Error when reading or writing the local result cache."""

    def __init__(self, kind: CacheErrorKind, message: str, path: str | None = None):
        self.kind = kind
        self.path = path
        super().__init__(message)


# =============================================================================
# Configuration
# =============================================================================

class ConfigurationError(SkyHistoryError):
    """Error with client configuration."""
    pass


class MissingConfigError(ConfigurationError):
    """Error when required configuration is missing."""

    def __init__(self, config_key: str):
        self.config_key = config_key
        super().__init__(f"Missing required configuration: {config_key}")


# Export all exceptions
__all__ = [
    # Base
    "SkyHistoryError",
    # Build
    "BuildErrorKind",
    "BuildError",
    # Auth
    "AuthErrorKind",
    "AuthError",
    # Execution
    "ExecErrorKind",
    "ExecError",
    # Cache
    "CacheErrorKind",
    "CacheError",
    # Configuration
    "ConfigurationError",
    "MissingConfigError",
]
