"""
SQL query builder for the OpenSky Trino database.

Turns a FilterSet into a RenderedQuery: a fixed SQL template with ``?``
placeholders plus the ordered values bound to them. User input never ends
up inside the SQL text; the execution driver sends the values separately as
prepared-statement parameters.

Table routing (``QueryBuilder.render``), in priority order:
1. departure / arrival / either-airport set -> flight list table
2. icao24 / callsign / bounding box set     -> state vectors table
3. nothing identifying                      -> BuildError(NO_FILTER_DIMENSION)

Note: OpenSky stores time, hour and day as Unix epoch integers, not SQL
TIMESTAMP values, so all time predicates bind integers.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from skyhistory.utils import logger
from skyhistory.utils.exceptions import BuildError, BuildErrorKind
from skyhistory.trino.components.codec import (
    FLIGHT_COLUMNS,
    FLIGHTLIST_COLUMNS,
    SCHEMAS,
)
from skyhistory.trino.components.filters import FilterSet

# The main table for state vector data, partitioned by `hour`
STATE_VECTORS_TABLE = "minio.osky.state_vectors_data4"

# The flights table for airport filtering, partitioned by `day`
FLIGHTS_TABLE = "minio.osky.flights_data4"


class Template(str, Enum):
    """Known query templates."""
    STATE_VECTORS = "state_vectors"
    STATE_VECTORS_AIRPORT = "state_vectors_airport"
    FLIGHTLIST = "flightlist"


@dataclass(frozen=True)
class RenderedQuery:
    """A parameterized query ready for execution."""
    table: str
    template: str
    sql: str
    params: tuple[tuple[str, Any], ...]
    # Key into SCHEMAS describing the result columns
    result: str
    limit: int | None = None

    @property
    def values(self) -> tuple[Any, ...]:
        """Bound values in placeholder order."""
        return tuple(value for _, value in self.params)

    @property
    def schema(self) -> dict[str, Any]:
        return SCHEMAS[self.result]

    def preview(self) -> str:
        """Human-readable SQL with the bound values listed below it."""
        lines = [self.sql, "-- parameters:"]
        lines.extend(f"--   {name} = {value!r}" for name, value in self.params)
        if self.limit is not None:
            lines.append(f"-- row limit: {self.limit}")
        return "\n".join(lines)


def is_wildcard(value: str) -> bool:
    """SQL LIKE wildcards: % for any sequence, _ for any character."""
    return "%" in value or "_" in value


def _epoch(dt: datetime) -> int:
    return int(dt.timestamp())


def hour_bounds(start: datetime, stop: datetime) -> tuple[int, int]:
    """
    Partition bounds on the `hour` column.

    Returns (start floored to the hour, stop floored to the hour + 1h).
    """
    start_hour = start.replace(minute=0, second=0, microsecond=0)
    stop_hour = stop.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return _epoch(start_hour), _epoch(stop_hour)


def day_bounds(start: datetime, stop: datetime) -> tuple[int, int]:
    """Partition bounds on the `day` column: [start day, day after stop)."""
    start_day = datetime(start.year, start.month, start.day, tzinfo=timezone.utc)
    stop_day = datetime(stop.year, stop.month, stop.day, tzinfo=timezone.utc) + timedelta(days=1)
    return _epoch(start_day), _epoch(stop_day)


class _Where:
    """Accumulates predicates and the values bound to them, in order."""

    def __init__(self):
        self.clauses: list[str] = []
        self.params: list[tuple[str, Any]] = []

    def add(self, clause: str, *params: tuple[str, Any]) -> None:
        self.clauses.append(clause)
        self.params.extend(params)

    def match(self, column: str, name: str, value: str | None) -> None:
        """Equality, or LIKE when the value contains a wildcard."""
        if value is None:
            return
        operator = "LIKE" if is_wildcard(value) else "="
        self.add(f"{column} {operator} ?", (name, value))

    def render(self, indent: str = "  ") -> str:
        return f"\n{indent}AND ".join(self.clauses)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _normalize(filters: FilterSet) -> FilterSet:
    """Strip strings, lower-case icao24, upper-case airport codes."""
    icao24 = _clean(filters.icao24)
    departure = _clean(filters.departure_airport)
    arrival = _clean(filters.arrival_airport)
    airport = _clean(filters.airport)
    return replace(
        filters,
        icao24=icao24.lower() if icao24 else None,
        callsign=_clean(filters.callsign),
        departure_airport=departure.upper() if departure else None,
        arrival_airport=arrival.upper() if arrival else None,
        airport=airport.upper() if airport else None,
    )


class QueryBuilder:
    """
    Renders FilterSets into RenderedQuery values.

    The builder is stateless; one instance can be shared freely.
    """

    def render(self, filters: FilterSet) -> RenderedQuery:
        """
        Render filters against the table chosen by the routing policy.

        Raises:
            BuildError: If the filters are insufficient or invalid
        """
        filters = _normalize(filters)
        self._require_dimension(filters)

        if filters.has_airport:
            return self.render_flightlist(filters)
        return self.render_history(filters)

    def render_history(self, filters: FilterSet) -> RenderedQuery:
        """
        Render a state vector query.

        With airport filters the state vectors are joined to the flights
        table so only positions between takeoff and landing are returned.
        """
        filters = _normalize(filters)
        self._require_dimension(filters)
        start, stop = self._validate(filters)

        if filters.has_airport:
            query = self._state_vectors_airport(filters, start, stop)
        else:
            query = self._state_vectors(filters, start, stop)

        logger.debug(f"Rendered {query.template} query with {len(query.params)} parameters")
        return query

    def render_flightlist(self, filters: FilterSet) -> RenderedQuery:
        """Render a flight list query."""
        filters = _normalize(filters)
        if not (filters.has_airport or filters.icao24 or filters.callsign):
            raise BuildError(
                BuildErrorKind.NO_FILTER_DIMENSION,
                "A flight list needs an airport, icao24 or callsign filter",
            )
        if filters.bounds is not None:
            raise BuildError(
                BuildErrorKind.UNSUPPORTED_FILTER,
                "The flights table has no positions; bounds cannot be applied",
            )
        start, stop = self._validate(filters)

        query = self._flightlist(filters, start, stop)
        logger.debug(f"Rendered {query.template} query with {len(query.params)} parameters")
        return query

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _require_dimension(self, filters: FilterSet) -> None:
        if not (filters.has_airport or filters.has_point_filter):
            raise BuildError(
                BuildErrorKind.NO_FILTER_DIMENSION,
                "Set at least one of icao24, callsign, bounds or an airport",
            )

    def _validate(self, filters: FilterSet) -> tuple[datetime, datetime]:
        if filters.limit is not None and filters.limit <= 0:
            raise BuildError(BuildErrorKind.INVALID_LIMIT, f"limit must be positive, got {filters.limit}")

        if filters.bounds is not None:
            filters.bounds.validate()

        if filters.airport and (filters.departure_airport or filters.arrival_airport):
            raise BuildError(
                BuildErrorKind.CONFLICTING_FILTERS,
                "airport may not be combined with departure_airport or arrival_airport",
            )

        return filters.time_window()

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def _point_filters(self, where: _Where, filters: FilterSet, prefix: str = "") -> None:
        where.match(f"{prefix}icao24", "icao24", filters.icao24)
        where.match(f"{prefix}callsign", "callsign", filters.callsign)

        if filters.bounds is not None:
            b = filters.bounds
            where.add(f"{prefix}lon >= ?", ("west", float(b.west)))
            where.add(f"{prefix}lon <= ?", ("east", float(b.east)))
            where.add(f"{prefix}lat >= ?", ("south", float(b.south)))
            where.add(f"{prefix}lat <= ?", ("north", float(b.north)))

    def _time_filters(self, where: _Where, start: datetime, stop: datetime, prefix: str = "") -> None:
        start_hour, stop_hour = hour_bounds(start, stop)
        where.add(f"{prefix}time >= ?", ("time_start", _epoch(start)))
        where.add(f"{prefix}time <= ?", ("time_stop", _epoch(stop)))
        # Partition pruning; without it the engine scans the whole table
        where.add(f"{prefix}hour >= ?", ("hour_start", start_hour))
        where.add(f"{prefix}hour < ?", ("hour_stop", stop_hour))

    def _airport_filters(self, where: _Where, filters: FilterSet) -> None:
        where.match("estdepartureairport", "departure_airport", filters.departure_airport)
        where.match("estarrivalairport", "arrival_airport", filters.arrival_airport)
        if filters.airport:
            where.add(
                "(estdepartureairport = ? OR estarrivalairport = ?)",
                ("airport_departure", filters.airport),
                ("airport_arrival", filters.airport),
            )

    def _state_vectors(self, filters: FilterSet, start: datetime, stop: datetime) -> RenderedQuery:
        where = _Where()
        self._time_filters(where, start, stop)
        self._point_filters(where, filters)

        sql = (
            f"SELECT {', '.join(FLIGHT_COLUMNS)}\n"
            f"FROM {STATE_VECTORS_TABLE}\n"
            f"WHERE {where.render()}\n"
            f"ORDER BY time"
        )
        return RenderedQuery(
            table=STATE_VECTORS_TABLE,
            template=Template.STATE_VECTORS.value,
            sql=sql,
            params=tuple(where.params),
            result="state_vectors",
            limit=filters.limit,
        )

    def _state_vectors_airport(self, filters: FilterSet, start: datetime, stop: datetime) -> RenderedQuery:
        day_start, day_stop = day_bounds(start, stop)

        flights = _Where()
        flights.add("day >= ?", ("day_start", day_start))
        flights.add("day < ?", ("day_stop", day_stop))
        flights.match("icao24", "icao24", filters.icao24)
        flights.match("callsign", "callsign", filters.callsign)
        self._airport_filters(flights, filters)

        outer = _Where()
        outer.add("sv.time >= fl.firstseen")
        outer.add("sv.time <= fl.lastseen")
        self._time_filters(outer, start, stop, prefix="sv.")
        if filters.bounds is not None:
            self._point_filters(outer, replace(filters, icao24=None, callsign=None), prefix="sv.")

        columns = ", ".join(f"sv.{c}" for c in FLIGHT_COLUMNS)
        sql = (
            f"SELECT {columns}\n"
            f"FROM {STATE_VECTORS_TABLE} sv\n"
            f"JOIN (\n"
            f"  SELECT icao24, callsign, firstseen, lastseen\n"
            f"  FROM {FLIGHTS_TABLE}\n"
            f"  WHERE {flights.render('    ')}\n"
            f") fl\n"
            f"  ON sv.icao24 = fl.icao24 AND sv.callsign = fl.callsign\n"
            f"WHERE {outer.render()}\n"
            f"ORDER BY sv.time"
        )
        return RenderedQuery(
            table=STATE_VECTORS_TABLE,
            template=Template.STATE_VECTORS_AIRPORT.value,
            sql=sql,
            params=tuple(flights.params + outer.params),
            result="state_vectors",
            limit=filters.limit,
        )

    def _flightlist(self, filters: FilterSet, start: datetime, stop: datetime) -> RenderedQuery:
        day_start, day_stop = day_bounds(start, stop)

        where = _Where()
        where.add("day >= ?", ("day_start", day_start))
        where.add("day < ?", ("day_stop", day_stop))
        # Departures are matched on takeoff time, everything else on landing time
        seen = "firstseen" if filters.departure_airport else "lastseen"
        where.add(f"{seen} >= ?", ("seen_start", _epoch(start)))
        where.add(f"{seen} <= ?", ("seen_stop", _epoch(stop)))
        where.match("icao24", "icao24", filters.icao24)
        where.match("callsign", "callsign", filters.callsign)
        self._airport_filters(where, filters)

        sql = (
            f"SELECT {', '.join(FLIGHTLIST_COLUMNS)}\n"
            f"FROM {FLIGHTS_TABLE}\n"
            f"WHERE {where.render()}\n"
            f"ORDER BY {seen}"
        )
        return RenderedQuery(
            table=FLIGHTS_TABLE,
            template=Template.FLIGHTLIST.value,
            sql=sql,
            params=tuple(where.params),
            result="flightlist",
            limit=filters.limit,
        )


__all__ = [
    "QueryBuilder",
    "RenderedQuery",
    "Template",
    "STATE_VECTORS_TABLE",
    "FLIGHTS_TABLE",
    "is_wildcard",
    "hour_bounds",
    "day_bounds",
]
