"""
Execution driver for the Trino statement protocol.

A query is submitted with ``POST /v1/statement``. Every response carries the
query state and, until the query is complete, a ``nextUri`` to poll. Result
rows arrive page by page in the ``data`` field of those responses:

    POST /v1/statement   -> {id, nextUri, stats: {state: QUEUED}}
    GET  nextUri         -> {id, nextUri, stats: {state: RUNNING}, columns, data}
    GET  nextUri         -> {id, stats: {state: FINISHED}, data}

Filter values are sent as prepared-statement parameters: the SQL text goes
in the ``X-Trino-Prepared-Statement`` header and the body is
``EXECUTE <name> USING <values>``.

Polling is strictly sequential. Transport errors, timeouts and overload
responses are retried with exponential backoff; a 401 triggers one forced
token refresh. Reaching the row limit, or the caller cancelling the task,
cancels the remote query.
"""

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable
from urllib.parse import quote_plus

import httpx

from skyhistory.utils import logger
from skyhistory.utils.exceptions import (
    AuthError,
    AuthErrorKind,
    ExecError,
    ExecErrorKind,
)
from skyhistory.trino.config import settings
from skyhistory.trino.config.config import TrinoSettings
from skyhistory.trino.components.auth import Authenticator, Token
from skyhistory.trino.components.codec import FlightData
from skyhistory.trino.components.query import RenderedQuery

# HTTP statuses that mean "try again later" rather than "this query is wrong"
RETRYABLE_STATUS = {429, 502, 503, 504}

QUEUE_FULL_MESSAGE = (
    "You have hit the limit of your available queries "
    "(2 concurrent queries + 2 queued queries). "
    "Kill irrelevant queries on https://trino.opensky-network.org/ui/ and try again."
)


class QueryState(str, Enum):
    """Lifecycle state of a remote query."""
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self in (QueryState.SUCCEEDED, QueryState.FAILED, QueryState.CANCELLED)


# Trino reports finer-grained states than we expose
_TRINO_STATES = {
    "QUEUED": QueryState.QUEUED,
    "WAITING_FOR_PREREQUISITES": QueryState.QUEUED,
    "WAITING_FOR_RESOURCES": QueryState.QUEUED,
    "DISPATCHING": QueryState.QUEUED,
    "PLANNING": QueryState.QUEUED,
    "STARTING": QueryState.QUEUED,
    "RUNNING": QueryState.RUNNING,
    "BLOCKED": QueryState.RUNNING,
    "FINISHING": QueryState.RUNNING,
    "FINISHED": QueryState.SUCCEEDED,
    "SUCCEEDED": QueryState.SUCCEEDED,
    "FAILED": QueryState.FAILED,
    "CANCELED": QueryState.CANCELLED,
    "CANCELLED": QueryState.CANCELLED,
}

_CANCELLED_ERRORS = {"USER_CANCELED", "USER_CANCELLED"}


@dataclass(frozen=True)
class QueryStatus:
    """Snapshot of a query, reported to progress callbacks."""
    state: QueryState
    progress: float
    row_count: int
    next_uri: str | None = None
    query_id: str | None = None
    # True when the result came from the local cache
    cached: bool = False
    error_message: str | None = None
    error_name: str | None = None


ProgressCallback = Callable[[QueryStatus], None]


def decode_status(payload: dict[str, Any], row_count: int) -> QueryStatus:
    """
    Decode one statement response into a QueryStatus.

    A response without ``nextUri`` ends the protocol; unless it reports a
    failure it is treated as SUCCEEDED.
    """
    stats = payload.get("stats") or {}
    raw_state = str(stats.get("state") or payload.get("state") or "RUNNING").upper()
    state = _TRINO_STATES.get(raw_state, QueryState.RUNNING)

    error = payload.get("error") or None
    error_message = error_name = None
    if error:
        error_message = error.get("message") or "Query failed"
        error_name = error.get("errorName")
        state = QueryState.FAILED
    if state is QueryState.FAILED and error_name in _CANCELLED_ERRORS:
        state = QueryState.CANCELLED

    next_uri = payload.get("nextUri")
    if next_uri is None and not state.terminal:
        state = QueryState.SUCCEEDED

    percentage = stats.get("progressPercentage")
    progress = min(max(float(percentage) / 100.0, 0.0), 1.0) if percentage is not None else 0.0
    if state is QueryState.SUCCEEDED and next_uri is None:
        progress = 1.0

    return QueryStatus(
        state=state,
        progress=progress,
        row_count=row_count,
        next_uri=next_uri,
        query_id=payload.get("id"),
        error_message=error_message,
        error_name=error_name,
    )


def format_literal(value: Any) -> str:
    """Render a bound value as a Trino literal for EXECUTE ... USING."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return f"DOUBLE '{value!r}'"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    raise TypeError(f"Unsupported parameter type: {type(value).__name__}")


def encode_statement(query: RenderedQuery, name: str) -> tuple[dict[str, str], str]:
    """
    Encode a rendered query as a prepared statement.

    Returns:
        Tuple of (extra headers, request body)
    """
    headers = {"X-Trino-Prepared-Statement": f"{name}={quote_plus(query.sql)}"}
    if query.params:
        body = f"EXECUTE {name} USING " + ", ".join(format_literal(v) for v in query.values)
    else:
        body = f"EXECUTE {name}"
    return headers, body


@dataclass
class _Execution:
    """Mutable state of one query run."""
    token: Token
    query_id: str | None = None
    next_uri: str | None = None


class ExecutionDriver:
    """
    Runs rendered queries to completion on the Trino statement API.

    The driver never persists tokens; it borrows the one it is given and,
    on a 401, asks the authenticator for a fresh one exactly once.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        authenticator: Authenticator | None = None,
        trino: TrinoSettings | None = None,
        user: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the driver.

        Args:
            http: Async HTTP client used for all engine requests
            authenticator: Used to refresh the token after a 401
            trino: Trino settings (defaults to global settings)
            user: Value of the X-Trino-User header
            sleep: Coroutine used for backoff and poll delays
        """
        self.http = http
        self.authenticator = authenticator
        self.trino = trino or settings.trino
        self.user = user or settings.auth.username or "opensky"
        self._sleep = sleep

    def _headers(self, token: Token) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token.access_token}",
            "X-Trino-User": self.user,
            "X-Trino-Source": self.trino.source,
            "X-Trino-Catalog": self.trino.catalog,
            "X-Trino-Schema": self.trino.catalog_schema,
        }

    def _backoff(self, attempt: int) -> float:
        return min(self.trino.backoff_cap_seconds, self.trino.backoff_base_seconds * 2 ** (attempt - 1))

    async def execute(
        self,
        query: RenderedQuery,
        token: Token,
        on_progress: ProgressCallback | None = None,
    ) -> FlightData:
        """
        Submit a query and collect every page of its result.

        Args:
            query: Rendered query to run
            token: Bearer token to start with
            on_progress: Called with a QueryStatus after every response

        Returns:
            The assembled result, truncated to the query's row limit

        Raises:
            ExecError: REMOTE_FAILURE, CANCELLED, NETWORK or PROTOCOL
            AuthError: If the engine keeps rejecting the token
        """
        run = _Execution(token=token)
        name = f"st_{uuid.uuid4().hex}"
        headers, body = encode_statement(query, name)

        columns: list[str] = []
        rows: list[list[Any]] = []

        logger.info(f"Submitting {query.template} query on {query.table}")

        try:
            payload = await self._request("POST", self.trino.statement_url, run, content=body, headers=headers)

            while True:
                run.query_id = payload.get("id") or run.query_id
                if not columns and payload.get("columns"):
                    columns = [column["name"] for column in payload["columns"]]
                rows.extend(payload.get("data") or [])

                status = decode_status(payload, row_count=len(rows))
                run.next_uri = status.next_uri
                log = logger.bind(query_id=run.query_id or "-")
                log.debug(f"{status.state.value} {status.progress:.0%} ({status.row_count} rows)")

                if status.state is QueryState.FAILED:
                    self._notify(on_progress, status)
                    if status.error_name == "QUERY_QUEUE_FULL":
                        log.error(QUEUE_FULL_MESSAGE)
                    raise ExecError(
                        ExecErrorKind.REMOTE_FAILURE,
                        status.error_message or "Query failed",
                        query_id=run.query_id,
                        error_name=status.error_name,
                    )

                if status.state is QueryState.CANCELLED:
                    self._notify(on_progress, status)
                    raise ExecError(
                        ExecErrorKind.CANCELLED,
                        f"Query {run.query_id} was cancelled",
                        query_id=run.query_id,
                        error_name=status.error_name,
                    )

                if query.limit is not None and len(rows) >= query.limit:
                    del rows[query.limit:]
                    if status.next_uri is not None:
                        log.info(f"Row limit {query.limit} reached, cancelling query")
                        await self._cancel_remote(run)
                        run.next_uri = None
                    self._notify(on_progress, QueryStatus(
                        state=QueryState.SUCCEEDED,
                        progress=1.0,
                        row_count=len(rows),
                        query_id=run.query_id,
                    ))
                    break

                self._notify(on_progress, status)
                if status.next_uri is None:
                    break

                await self._sleep(self.trino.poll_interval_seconds)
                payload = await self._request("GET", status.next_uri, run)

        except asyncio.CancelledError:
            logger.warning(f"Query {run.query_id} cancelled by caller")
            await self._cancel_remote(run)
            raise

        logger.info(f"Query {run.query_id} finished with {len(rows)} rows")
        return FlightData.from_rows(columns, rows, query.schema)

    async def cancel(self, query_id: str, token: Token) -> None:
        """
        Cancel a running query by id.

        Raises:
            ExecError: If the engine refuses the cancellation
        """
        url = f"{self.trino.query_url}/{query_id}"
        try:
            response = await self.http.delete(url, headers=self._headers(token), timeout=self.trino.timeout_seconds)
        except httpx.TransportError as e:
            raise ExecError(ExecErrorKind.NETWORK, f"Failed to cancel query {query_id}: {e}", query_id=query_id)

        if response.status_code not in (200, 204):
            raise ExecError(
                ExecErrorKind.REMOTE_FAILURE,
                f"Failed to cancel query: HTTP {response.status_code}",
                query_id=query_id,
                status_code=response.status_code,
            )
        logger.info(f"Cancelled query {query_id}")

    def _notify(self, on_progress: ProgressCallback | None, status: QueryStatus) -> None:
        if on_progress is not None:
            on_progress(status)

    async def _cancel_remote(self, run: _Execution) -> None:
        """Best-effort cancellation; failures are logged, not raised."""
        if run.next_uri is not None:
            url = run.next_uri
        elif run.query_id is not None:
            url = f"{self.trino.query_url}/{run.query_id}"
        else:
            return

        try:
            response = await self.http.delete(url, headers=self._headers(run.token), timeout=self.trino.timeout_seconds)
            logger.info(f"Cancellation of query {run.query_id} sent (HTTP {response.status_code})")
        except httpx.HTTPError as e:
            logger.warning(f"Failed to cancel query {run.query_id}: {e}")

    async def _request(
        self,
        method: str,
        url: str,
        run: _Execution,
        content: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Send one protocol request with retries.

        Raises:
            ExecError: NETWORK once retries are exhausted, REMOTE_FAILURE on
                other HTTP errors, PROTOCOL on an undecodable body
            AuthError: If the token is rejected after one refresh
        """
        refreshed = False
        attempt = 0

        while True:
            attempt += 1
            try:
                response = await self.http.request(
                    method,
                    url,
                    content=content,
                    headers={**self._headers(run.token), **(headers or {})},
                    timeout=self.trino.timeout_seconds,
                )
            except httpx.TransportError as e:
                if attempt >= self.trino.max_attempts:
                    raise ExecError(
                        ExecErrorKind.NETWORK,
                        f"{method} {url} failed after {attempt} attempts: {e}",
                        query_id=run.query_id,
                    )
                delay = self._backoff(attempt)
                logger.warning(f"{method} {url} failed ({e}), retrying in {delay:.1f}s")
                await self._sleep(delay)
                continue

            if response.status_code == 401:
                if refreshed or self.authenticator is None:
                    raise AuthError(
                        AuthErrorKind.UNAUTHORIZED,
                        "Trino rejected the bearer token",
                        status_code=401,
                    )
                logger.warning("Token rejected by Trino, refreshing")
                run.token = await self.authenticator.token(force_refresh=True)
                refreshed = True
                continue

            if response.status_code in RETRYABLE_STATUS:
                if attempt >= self.trino.max_attempts:
                    raise ExecError(
                        ExecErrorKind.NETWORK,
                        f"{method} {url} still unavailable after {attempt} attempts "
                        f"(HTTP {response.status_code})",
                        query_id=run.query_id,
                        status_code=response.status_code,
                    )
                delay = self._backoff(attempt)
                logger.warning(f"Trino answered HTTP {response.status_code}, retrying in {delay:.1f}s")
                await self._sleep(delay)
                continue

            if response.status_code >= 400:
                raise ExecError(
                    ExecErrorKind.REMOTE_FAILURE,
                    f"Trino request failed: HTTP {response.status_code} - {response.text[:500]}",
                    query_id=run.query_id,
                    status_code=response.status_code,
                )

            try:
                payload = response.json()
            except ValueError as e:
                raise ExecError(
                    ExecErrorKind.PROTOCOL,
                    f"Undecodable response from {url}: {e}",
                    query_id=run.query_id,
                )
            if not isinstance(payload, dict):
                raise ExecError(
                    ExecErrorKind.PROTOCOL,
                    f"Expected a JSON object from {url}, got {type(payload).__name__}",
                    query_id=run.query_id,
                )
            return payload


__all__ = [
    "ExecutionDriver",
    "QueryState",
    "QueryStatus",
    "ProgressCallback",
    "decode_status",
    "encode_statement",
    "format_literal",
    "RETRYABLE_STATUS",
]
