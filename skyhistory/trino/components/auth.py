"""
OAuth2 authentication against the OpenSky identity provider.

The Authenticator owns the bearer token. Callers borrow a valid token per
request through ``await authenticator.token()``; the token is refreshed
before it expires (with a configurable skew margin). Refreshes are
single-flight: when several tasks need a new token at once, the first one
performs the exchange and the others reuse its result.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

import httpx

from skyhistory.utils import logger
from skyhistory.utils.exceptions import (
    AuthError,
    AuthErrorKind,
    ConfigurationError,
)
from skyhistory.trino.config import settings
from skyhistory.trino.config.config import AuthSettings
from skyhistory.trino.config.credentials import (
    CredentialProvider,
    SettingsCredentialProvider,
)


@dataclass(frozen=True)
class Token:
    """Bearer token with its validity window (epoch seconds)."""
    access_token: str
    issued_at: float
    expires_at: float

    def is_fresh(self, now: float, skew_seconds: float) -> bool:
        return now < self.expires_at - skew_seconds

    def __repr__(self) -> str:
        # Never log the token itself
        return f"Token(issued_at={self.issued_at}, expires_at={self.expires_at})"


class Authenticator:
    """
    Exchanges username/password for a bearer token and keeps it fresh.

    Uses the OAuth2 password grant against the OpenSky Keycloak realm with
    the public ``trino-client`` client id.
    """

    def __init__(
        self,
        credentials: CredentialProvider | None = None,
        http: httpx.AsyncClient | None = None,
        auth: AuthSettings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the authenticator.

        Args:
            credentials: Credential provider (environment settings by default)
            http: Shared async HTTP client (a private one is created if not provided)
            auth: Authentication settings (defaults to global settings)
            clock: Returns the current epoch time; injectable for tests
        """
        self.auth = auth or settings.auth
        self.credentials = credentials or SettingsCredentialProvider(self.auth)
        self._http = http
        self._owns_http = http is None
        self._clock = clock

        self._token: Token | None = None
        self._lock = asyncio.Lock()
        self.exchange_count = 0

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.auth.timeout_seconds)
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    @property
    def current(self) -> Token | None:
        """The cached token, fresh or not."""
        return self._token

    def set_token(self, token: Token) -> None:
        """Use an existing bearer token until it needs refreshing."""
        self._token = token

    async def token(self, force_refresh: bool = False) -> Token:
        """
        Get a valid bearer token, refreshing it when needed.

        Args:
            force_refresh: Exchange credentials even if the cached token
                still looks valid (e.g. after the engine answered 401)

        Raises:
            AuthError: On bad credentials, transport failure or a malformed
                token response
        """
        seen = self._token
        if not force_refresh and seen is not None and seen.is_fresh(self._clock(), self.auth.skew_seconds):
            return seen

        async with self._lock:
            current = self._token
            # Another task replaced the token while we waited for the lock
            if current is not None and current is not seen and current.is_fresh(
                self._clock(), self.auth.skew_seconds
            ):
                logger.debug("Reusing token refreshed by a concurrent caller")
                return current

            if not force_refresh and current is not None and current.is_fresh(
                self._clock(), self.auth.skew_seconds
            ):
                return current

            self._token = await self._exchange()
            return self._token

    async def _exchange(self) -> Token:
        """Perform the OAuth2 token request."""
        try:
            credentials = self.credentials.load()
        except ConfigurationError as e:
            raise AuthError(AuthErrorKind.MISSING_CREDENTIALS, str(e))

        logger.info("Requesting authentication token")
        self.exchange_count += 1
        issued_at = self._clock()

        try:
            response = await self.http.post(
                self.auth.token_url,
                data={
                    "client_id": self.auth.client_id,
                    "grant_type": "password",
                    "username": credentials.username,
                    "password": credentials.password,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.auth.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise AuthError(AuthErrorKind.NETWORK, f"Token request timed out: {e}")
        except httpx.TransportError as e:
            raise AuthError(AuthErrorKind.NETWORK, f"Failed to reach the token endpoint: {e}")

        if response.status_code in (400, 401):
            logger.warning("Authentication failed on OpenSky")
            raise AuthError(
                AuthErrorKind.UNAUTHORIZED,
                "Authentication failed. Check your username and password.",
                status_code=response.status_code,
            )

        if response.status_code >= 500:
            raise AuthError(
                AuthErrorKind.NETWORK,
                f"Token endpoint unavailable: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if response.status_code != 200:
            raise AuthError(
                AuthErrorKind.UNAUTHORIZED,
                f"Token request rejected: HTTP {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
            access_token = payload["access_token"]
            expires_in = float(payload.get("expires_in", 300))
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError(AuthErrorKind.INVALID_RESPONSE, f"Malformed token response: {e}")

        token = Token(
            access_token=access_token,
            issued_at=issued_at,
            expires_at=issued_at + expires_in,
        )
        logger.info(f"Token obtained, expires in {expires_in:.0f}s")
        return token


__all__ = ["Token", "Authenticator"]
