"""
Configuration management for the Trino client.

Loads settings from environment variables (and a .env file).
"""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before settings are initialized
load_dotenv()


class AuthSettings(BaseSettings):
    """OpenSky authentication configuration."""

    username: str | None = Field(default=None)
    password: str | None = Field(default=None)
    token_url: str = Field(
        default=(
            "https://auth.opensky-network.org/auth/realms/"
            "opensky-network/protocol/openid-connect/token"
        )
    )
    client_id: str = Field(default="trino-client")
    # Refresh this many seconds before the token actually expires
    skew_seconds: float = Field(default=60.0)
    timeout_seconds: float = Field(default=30.0)

    model_config = SettingsConfigDict(env_prefix="OPENSKY_")

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)


class TrinoSettings(BaseSettings):
    """Trino statement API configuration."""

    statement_url: str = Field(default="https://trino.opensky-network.org/v1/statement")
    query_url: str = Field(default="https://trino.opensky-network.org/v1/query")
    catalog: str = Field(default="minio")
    catalog_schema: str = Field(default="osky")
    source: str = Field(default="skyhistory")
    # Per-request timeout; exceeding it counts as a network error
    timeout_seconds: float = Field(default=60.0)
    max_attempts: int = Field(default=5)
    backoff_base_seconds: float = Field(default=0.5)
    backoff_cap_seconds: float = Field(default=8.0)
    poll_interval_seconds: float = Field(default=0.1)

    model_config = SettingsConfigDict(env_prefix="TRINO_")


class CacheSettings(BaseSettings):
    """Local result cache configuration."""

    directory: str = Field(default="~/.cache/opensky")
    # Default age for `cache purge`, e.g. "90 days"
    purge: str = Field(default="90 days")

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    @property
    def path(self) -> Path:
        """Get the cache directory with the user home expanded."""
        return Path(self.directory).expanduser()


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    log_dir: str = Field(default="logs")
    log_file: str = Field(default="skyhistory.log")
    rotation: str = Field(default="10 MB")
    retention: str = Field(default="7 days")
    to_file: bool = Field(default=False)

    model_config = SettingsConfigDict(env_prefix="LOG_")


class Settings(BaseSettings):
    """Main settings aggregating all configuration."""

    auth: AuthSettings = Field(default_factory=AuthSettings)
    trino: TrinoSettings = Field(default_factory=TrinoSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: The client settings
    """
    return Settings()


# Export for easy access
settings = get_settings()

__all__ = [
    "Settings",
    "AuthSettings",
    "TrinoSettings",
    "CacheSettings",
    "LoggingSettings",
    "get_settings",
    "settings",
]
