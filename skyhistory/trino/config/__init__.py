"""Configuration module for the Trino client."""

from skyhistory.trino.config.config import (
    Settings,
    AuthSettings,
    TrinoSettings,
    CacheSettings,
    LoggingSettings,
    get_settings,
    settings,
)
from skyhistory.trino.config.credentials import (
    Credentials,
    CredentialProvider,
    SettingsCredentialProvider,
    ConfigFileCredentialProvider,
    default_config_path,
)

__all__ = [
    "Settings",
    "AuthSettings",
    "TrinoSettings",
    "CacheSettings",
    "LoggingSettings",
    "get_settings",
    "settings",
    "Credentials",
    "CredentialProvider",
    "SettingsCredentialProvider",
    "ConfigFileCredentialProvider",
    "default_config_path",
]
