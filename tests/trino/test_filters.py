"""Tests for filter sets, durations and time parsing."""

from datetime import date, datetime, timedelta, timezone

import pytest

from skyhistory.utils.exceptions import BuildError, BuildErrorKind
from skyhistory.trino.components.filters import (
    Bounds,
    FilterSet,
    parse_duration,
    to_datetime,
)


def test_with_methods_return_new_instances():
    """Test that building filters never mutates the original."""
    base = FilterSet()
    filters = base.with_icao24("485a32").with_callsign("KLM1234")

    assert base.icao24 is None
    assert filters.icao24 == "485a32"
    assert filters.callsign == "KLM1234"


def test_parse_duration_units():
    """Test the supported duration suffixes."""
    assert parse_duration("30m") == timedelta(minutes=30)
    assert parse_duration("2h") == timedelta(hours=2)
    assert parse_duration("1d") == timedelta(days=1)
    assert parse_duration("1w") == timedelta(weeks=1)


@pytest.mark.parametrize("value", ["", "h", "2x", "abch", "0h", "-1d"])
def test_parse_duration_rejects_malformed(value):
    with pytest.raises(BuildError) as exc:
        parse_duration(value)
    assert exc.value.kind == BuildErrorKind.INVALID_TIME


def test_parse_duration_caps_at_one_week():
    with pytest.raises(BuildError) as exc:
        parse_duration("8d")
    assert exc.value.kind == BuildErrorKind.DURATION_TOO_LONG


def test_to_datetime_accepts_common_forms():
    """Test that strings, dates, datetimes and epochs all resolve to UTC."""
    expected = datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)

    assert to_datetime("2025-01-01 10:00:00") == expected
    assert to_datetime("2025-01-01T10:00:00Z") == expected
    assert to_datetime(datetime(2025, 1, 1, 10, 0)) == expected
    assert to_datetime(1735725600) == expected
    assert to_datetime("1735725600") == expected
    assert to_datetime(" 1735725600 ") == expected
    assert to_datetime(date(2025, 1, 1)) == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert to_datetime("2025-01-01", end_of_day=True) == datetime(2025, 1, 1, 23, 59, 59, tzinfo=timezone.utc)


def test_to_datetime_rejects_garbage():
    with pytest.raises(BuildError) as exc:
        to_datetime("yesterday-ish")
    assert exc.value.kind == BuildErrorKind.INVALID_TIME


def test_time_window_defaults_to_one_day():
    filters = FilterSet().with_time_range("2025-01-01 10:00:00")
    start, stop = filters.time_window()
    assert stop - start == timedelta(days=1)


def test_time_window_uses_duration():
    filters = FilterSet().with_time_range("2025-01-01 10:00:00").with_duration("2h")
    start, stop = filters.time_window()
    assert stop == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_time_window_date_only_stop_is_end_of_day():
    filters = FilterSet().with_time_range("2025-01-01", "2025-01-01")
    start, stop = filters.time_window()
    assert start == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert stop == datetime(2025, 1, 1, 23, 59, 59, tzinfo=timezone.utc)


def test_time_window_accepts_epoch_strings():
    """Test that epoch seconds given as text, as on the command line, are times and not dates."""
    filters = FilterSet().with_time_range("1735725600", "1735732800")
    start, stop = filters.time_window()
    assert start == datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert stop == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_time_window_errors():
    """Test missing start, reversed ranges and over-long windows."""
    with pytest.raises(BuildError) as exc:
        FilterSet().with_icao24("485a32").time_window()
    assert exc.value.kind == BuildErrorKind.MISSING_TIME_RANGE

    with pytest.raises(BuildError) as exc:
        FilterSet().with_time_range("2025-01-02", "2025-01-01 10:00:00").time_window()
    assert exc.value.kind == BuildErrorKind.INVALID_BOUNDS

    with pytest.raises(BuildError) as exc:
        FilterSet().with_time_range("2025-01-01", "2025-01-09").time_window()
    assert exc.value.kind == BuildErrorKind.DURATION_TOO_LONG


@pytest.mark.parametrize("bounds", [
    Bounds(5.0, 50.0, 4.0, 53.0),
    Bounds(4.0, 53.0, 5.0, 50.0),
    Bounds(-181.0, 50.0, 5.0, 53.0),
    Bounds(4.0, -91.0, 5.0, 53.0),
])
def test_invalid_bounds(bounds):
    with pytest.raises(BuildError) as exc:
        bounds.validate()
    assert exc.value.kind == BuildErrorKind.INVALID_BOUNDS


def test_filter_dimensions():
    assert FilterSet().is_empty()
    assert FilterSet().with_bounds(4.0, 50.0, 5.0, 53.0).has_point_filter
    assert FilterSet().with_airport("EHAM").has_airport
    assert not FilterSet().with_time_range("2025-01-01").has_point_filter
