"""
Credential providers consulted by the authenticator.

Two sources are supported:
- the environment / .env file (``OPENSKY_USERNAME`` and ``OPENSKY_PASSWORD``)
- the OpenSky ``settings.conf`` INI file shared with other OpenSky tools::

    [default]
    username = your_username
    password = your_password

    [cache]
    purge = 90 days
"""

import configparser
import os
import sys
from pathlib import Path
from typing import NamedTuple, Protocol

from skyhistory.utils import logger
from skyhistory.utils.exceptions import ConfigurationError, MissingConfigError
from skyhistory.trino.config.config import AuthSettings, settings


class Credentials(NamedTuple):
    """Username and password for the OpenSky token endpoint."""
    username: str
    password: str


class CredentialProvider(Protocol):
    def load(self) -> Credentials: ...


class SettingsCredentialProvider:
    """Reads credentials from AuthSettings (environment variables)."""

    def __init__(self, auth: AuthSettings | None = None):
        self.auth = auth or settings.auth

    def load(self) -> Credentials:
        if not self.auth.username:
            raise MissingConfigError("OPENSKY_USERNAME")
        if not self.auth.password:
            raise MissingConfigError("OPENSKY_PASSWORD")
        return Credentials(self.auth.username, self.auth.password)


def default_config_path() -> Path:
    """Get the platform-specific location of settings.conf."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "opensky" / "settings.conf"


class ConfigFileCredentialProvider:
    """Reads credentials from an OpenSky settings.conf file."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else default_config_path()

    def _read(self) -> configparser.ConfigParser:
        if not self.path.exists():
            raise ConfigurationError(f"Config file not found: {self.path}")

        parser = configparser.ConfigParser()
        try:
            parser.read(self.path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Failed to parse {self.path}: {e}")
        return parser

    def load(self) -> Credentials:
        parser = self._read()
        username = parser.get("default", "username", fallback="").strip()
        password = parser.get("default", "password", fallback="").strip()

        # Empty values are treated as missing
        if not username:
            raise MissingConfigError("default.username")
        if not password:
            raise MissingConfigError("default.password")

        logger.debug(f"Loaded credentials for {username} from {self.path}")
        return Credentials(username, password)

    def cache_purge(self) -> str | None:
        """Get the [cache] purge value, e.g. "90 days", if configured."""
        value = self._read().get("cache", "purge", fallback="").strip()
        return value or None


__all__ = [
    "Credentials",
    "CredentialProvider",
    "SettingsCredentialProvider",
    "ConfigFileCredentialProvider",
    "default_config_path",
]
