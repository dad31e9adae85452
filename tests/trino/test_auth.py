"""Tests for token exchange and refresh."""

import asyncio
from unittest.mock import Mock

import httpx
import pytest

from skyhistory.utils.exceptions import AuthError, AuthErrorKind, MissingConfigError
from skyhistory.trino.components.auth import Authenticator, Token
from skyhistory.trino.config.credentials import Credentials
from tests.trino.fakes import TOKEN_URL


class Clock:
    """Settable clock."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def token_server(status: int = 200, expires_in: int = 300, calls: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        assert str(request.url) == TOKEN_URL
        if status != 200:
            return httpx.Response(status, json={"error": "invalid_grant"})
        return httpx.Response(200, json={"access_token": f"token-{len(calls or [])}", "expires_in": expires_in})
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_authenticator(settings, http, clock=None, credentials=None) -> Authenticator:
    return Authenticator(
        credentials=credentials,
        http=http,
        auth=settings.auth,
        clock=clock or Clock(),
    )


@pytest.mark.asyncio
async def test_password_grant_form(settings):
    """Test the token request uses the password grant with the trino client id."""
    calls = []
    auth = make_authenticator(settings, token_server(calls=calls))

    token = await auth.token()

    assert token.access_token == "token-1"
    body = calls[0].content.decode()
    assert "grant_type=password" in body
    assert "client_id=trino-client" in body
    assert "username=alice" in body


@pytest.mark.asyncio
async def test_fresh_token_is_reused(settings):
    calls = []
    clock = Clock()
    auth = make_authenticator(settings, token_server(calls=calls), clock=clock)

    first = await auth.token()
    clock.now += 60
    second = await auth.token()

    assert first is second
    assert auth.exchange_count == 1


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed(settings):
    """Test that a token inside the skew margin is replaced before use."""
    calls = []
    clock = Clock()
    auth = make_authenticator(settings, token_server(calls=calls), clock=clock)
    # Expires in 10 seconds; the margin is 30 seconds
    auth.set_token(Token("old", issued_at=clock.now - 290, expires_at=clock.now + 10))

    token = await auth.token()

    assert token.access_token != "old"
    assert auth.exchange_count == 1


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(settings):
    """Test that callers arriving while a slow exchange is in flight wait for it instead of starting their own."""
    calls = []
    clock = Clock()

    async def slow_token_endpoint(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        # Yield so every other caller reaches the lock while this exchange is pending
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"access_token": f"token-{len(calls)}", "expires_in": 300})

    http = httpx.AsyncClient(transport=httpx.MockTransport(slow_token_endpoint))
    auth = make_authenticator(settings, http, clock=clock)
    auth.set_token(Token("old", issued_at=clock.now - 290, expires_at=clock.now + 10))

    tokens = await asyncio.gather(*(auth.token() for _ in range(5)))

    assert len(calls) == 1
    assert auth.exchange_count == 1
    assert {token.access_token for token in tokens} == {"token-1"}
    assert all(token is tokens[0] for token in tokens)


@pytest.mark.asyncio
async def test_force_refresh(settings):
    calls = []
    auth = make_authenticator(settings, token_server(calls=calls))

    first = await auth.token()
    second = await auth.token(force_refresh=True)

    assert first.access_token != second.access_token
    assert auth.exchange_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401])
async def test_bad_credentials(settings, status):
    auth = make_authenticator(settings, token_server(status=status))

    with pytest.raises(AuthError) as exc:
        await auth.token()

    assert exc.value.kind == AuthErrorKind.UNAUTHORIZED
    assert not exc.value.retryable


@pytest.mark.asyncio
async def test_server_error_is_network(settings):
    auth = make_authenticator(settings, token_server(status=503))

    with pytest.raises(AuthError) as exc:
        await auth.token()

    assert exc.value.kind == AuthErrorKind.NETWORK
    assert exc.value.retryable


@pytest.mark.asyncio
async def test_transport_error(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    auth = make_authenticator(settings, httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    with pytest.raises(AuthError) as exc:
        await auth.token()
    assert exc.value.kind == AuthErrorKind.NETWORK


@pytest.mark.asyncio
async def test_malformed_response(settings):
    def handler(request):
        return httpx.Response(200, json={"token_type": "bearer"})

    auth = make_authenticator(settings, httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    with pytest.raises(AuthError) as exc:
        await auth.token()
    assert exc.value.kind == AuthErrorKind.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_missing_credentials(settings):
    """Test that the provider is consulted and its failure is reported."""
    provider = Mock()
    provider.load.side_effect = MissingConfigError("OPENSKY_USERNAME")
    auth = make_authenticator(settings, token_server(), credentials=provider)

    with pytest.raises(AuthError) as exc:
        await auth.token()

    assert exc.value.kind == AuthErrorKind.MISSING_CREDENTIALS
    provider.load.assert_called_once()


@pytest.mark.asyncio
async def test_custom_provider(settings):
    calls = []
    provider = Mock()
    provider.load.return_value = Credentials("bob", "hunter2")
    auth = make_authenticator(settings, token_server(calls=calls), credentials=provider)

    await auth.token()
    assert "username=bob" in calls[0].content.decode()


def test_token_repr_hides_secret():
    token = Token("super-secret", issued_at=0.0, expires_at=300.0)
    assert "super-secret" not in repr(token)
