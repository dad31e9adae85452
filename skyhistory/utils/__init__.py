"""
Utility modules for skyhistory.

Provides:
    - logger: Loguru-based logging with console and file output
    - exceptions: Structured exception classes for error handling
"""

from skyhistory.utils.logger import logger, setup_logger
from skyhistory.utils.exceptions import (
    # Base
    SkyHistoryError,
    # Build
    BuildErrorKind,
    BuildError,
    # Auth
    AuthErrorKind,
    AuthError,
    # Execution
    ExecErrorKind,
    ExecError,
    # Cache
    CacheErrorKind,
    CacheError,
    # Configuration
    ConfigurationError,
    MissingConfigError,
)

__all__ = [
    # Logger
    "logger",
    "setup_logger",
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
