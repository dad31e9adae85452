"""Tests for query rendering and table routing."""

import pytest

from skyhistory.utils.exceptions import BuildError, BuildErrorKind
from skyhistory.trino.components.cache import fingerprint
from skyhistory.trino.components.filters import FilterSet, to_datetime
from skyhistory.trino.components.query import (
    FLIGHTS_TABLE,
    STATE_VECTORS_TABLE,
    QueryBuilder,
    Template,
    hour_bounds,
)

builder = QueryBuilder()


def test_no_filter_dimension():
    """Test that a time range alone is not enough to query."""
    with pytest.raises(BuildError) as exc:
        builder.render(FilterSet().with_time_range("2025-01-01 10:00:00", "2025-01-01 12:00:00"))
    assert exc.value.kind == BuildErrorKind.NO_FILTER_DIMENSION


def test_no_filter_dimension_checked_before_time():
    with pytest.raises(BuildError) as exc:
        builder.render(FilterSet())
    assert exc.value.kind == BuildErrorKind.NO_FILTER_DIMENSION


def test_icao24_two_hour_window():
    """Test the icao24 scenario renders a state vector query over two hours."""
    filters = FilterSet().with_icao24("485a32").with_time_range("2025-01-01T10:00:00Z", "2025-01-01T12:00:00Z")
    query = builder.render(filters)

    assert query.table == STATE_VECTORS_TABLE
    assert query.template == Template.STATE_VECTORS.value
    params = dict(query.params)
    assert params["time_start"] == 1735725600
    assert params["time_stop"] == 1735732800
    assert params["icao24"] == "485a32"
    assert "estdepartureairport" not in query.sql
    assert "estarrivalairport" not in query.sql
    assert "hour >= ?" in query.sql and "hour < ?" in query.sql


def test_departure_arrival_routes_to_flightlist():
    """Test the EHAM/EGLL scenario renders a flight list query."""
    filters = (
        FilterSet()
        .with_departure("EHAM")
        .with_arrival("EGLL")
        .with_time_range("2025-01-01T00:00:00Z", "2025-01-01T23:59:59Z")
    )
    query = builder.render(filters)

    assert query.table == FLIGHTS_TABLE
    assert query.template == Template.FLIGHTLIST.value
    assert "estdepartureairport = ?" in query.sql
    assert "estarrivalairport = ?" in query.sql
    params = dict(query.params)
    assert params["departure_airport"] == "EHAM"
    assert params["arrival_airport"] == "EGLL"
    # Departures are matched on takeoff time
    assert "firstseen >= ?" in query.sql
    assert query.sql.rstrip().endswith("ORDER BY firstseen")


def test_arrival_only_uses_lastseen():
    filters = FilterSet().with_arrival("egll").with_time_range("2025-01-01")
    query = builder.render_flightlist(filters)

    assert "lastseen >= ?" in query.sql
    assert dict(query.params)["arrival_airport"] == "EGLL"


def test_either_airport():
    filters = FilterSet().with_airport("EHAM").with_time_range("2025-01-01")
    query = builder.render(filters)

    assert "(estdepartureairport = ? OR estarrivalairport = ?)" in query.sql
    assert dict(query.params)["airport_departure"] == "EHAM"


def test_airport_conflicts_with_departure():
    filters = FilterSet().with_airport("EHAM").with_departure("EGLL").with_time_range("2025-01-01")
    with pytest.raises(BuildError) as exc:
        builder.render(filters)
    assert exc.value.kind == BuildErrorKind.CONFLICTING_FILTERS


def test_flightlist_rejects_bounds():
    filters = FilterSet().with_departure("EHAM").with_bounds(4.0, 50.0, 5.0, 53.0).with_time_range("2025-01-01")
    with pytest.raises(BuildError) as exc:
        builder.render(filters)
    assert exc.value.kind == BuildErrorKind.UNSUPPORTED_FILTER


def test_history_with_airport_uses_join():
    filters = FilterSet().with_departure("EHAM").with_time_range("2025-01-01")
    query = builder.render_history(filters)

    assert query.table == STATE_VECTORS_TABLE
    assert query.template == Template.STATE_VECTORS_AIRPORT.value
    assert FLIGHTS_TABLE in query.sql
    assert "sv.time >= fl.firstseen" in query.sql
    assert query.sql.count("?") == len(query.params)


def test_wildcard_uses_like():
    """Test that % and _ switch the predicate to LIKE."""
    query = builder.render(FilterSet().with_icao24("485%").with_time_range("2025-01-01"))
    assert "icao24 LIKE ?" in query.sql
    assert "icao24 = ?" not in query.sql

    query = builder.render(FilterSet().with_callsign("KLM_234").with_time_range("2025-01-01"))
    assert "callsign LIKE ?" in query.sql


def test_injection_safety():
    """Test that user values never appear in the SQL text."""
    hostile = "x'; DROP TABLE flights_data4; --"
    filters = (
        FilterSet()
        .with_callsign(hostile)
        .with_icao24("abc123")
        .with_time_range("2025-01-01 10:00:00", "2025-01-01 12:00:00")
    )
    query = builder.render(filters)

    assert hostile not in query.sql
    assert "abc123" not in query.sql
    assert "DROP" not in query.sql
    assert hostile in query.values
    assert query.sql.count("?") == len(query.params)


def test_limit_is_not_rendered():
    query = builder.render(FilterSet().with_icao24("485a32").with_time_range("2025-01-01").with_limit(10))
    assert "LIMIT" not in query.sql.upper()
    assert query.limit == 10


def test_invalid_limit():
    with pytest.raises(BuildError) as exc:
        builder.render(FilterSet().with_icao24("485a32").with_time_range("2025-01-01").with_limit(0))
    assert exc.value.kind == BuildErrorKind.INVALID_LIMIT


def test_normalization():
    query = builder.render(FilterSet().with_icao24("  485A32 ").with_time_range("2025-01-01"))
    assert dict(query.params)["icao24"] == "485a32"


def test_hour_bounds():
    """Test that the partition range covers the whole window."""
    start = to_datetime("2025-01-01 10:30:00")
    stop = to_datetime("2025-01-01 12:45:00")
    assert hour_bounds(start, stop) == (1735725600, 1735736400)


def test_bounds_render_as_doubles():
    filters = FilterSet().with_bounds(4, 50, 5, 53).with_time_range("2025-01-01")
    params = dict(builder.render(filters).params)
    assert params["west"] == 4.0 and isinstance(params["west"], float)
    assert params["north"] == 53.0


def test_fingerprint_is_order_independent():
    """Test that the order filters were set in does not change the key."""
    first = FilterSet().with_icao24("485a32").with_callsign("KLM1234").with_time_range("2025-01-01")
    second = FilterSet().with_time_range("2025-01-01").with_callsign("KLM1234").with_icao24("485a32")

    assert fingerprint(builder.render(first)) == fingerprint(builder.render(second))


def test_fingerprint_changes_with_values():
    base = FilterSet().with_icao24("485a32").with_time_range("2025-01-01")
    assert fingerprint(builder.render(base)) != fingerprint(builder.render(base.with_icao24("485a33")))
    assert fingerprint(builder.render(base)) != fingerprint(builder.render(base.with_limit(5)))


def test_preview_lists_parameters():
    query = builder.render(FilterSet().with_icao24("485a32").with_time_range("2025-01-01"))
    preview = query.preview()
    assert query.sql in preview
    assert "icao24 = '485a32'" in preview
