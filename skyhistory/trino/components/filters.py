"""
Filter sets for historical queries.

A FilterSet is an immutable value object. Build it incrementally; every
``with_*`` call returns a new instance:

    filters = (
        FilterSet()
        .with_icao24("485a32")
        .with_time_range("2025-01-01 10:00:00", "2025-01-01 12:00:00")
    )

Validation happens when the query builder renders the filters, so an
incomplete FilterSet can be passed around freely.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone

from skyhistory.utils.exceptions import BuildError, BuildErrorKind

# Longest time window a single query may cover
MAX_DURATION = timedelta(weeks=1)

# Window used when neither stop nor duration is given
DEFAULT_DURATION = timedelta(days=1)

# Anything accepted as a point in time
TimeLike = datetime | date | str | int | float

_DURATION_UNITS = {
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration such as "30m", "2h", "1d" or "1w".

    Raises:
        BuildError: If the value is malformed or exceeds one week
    """
    text = value.strip().lower()
    if len(text) < 2 or text[-1] not in _DURATION_UNITS:
        raise BuildError(
            BuildErrorKind.INVALID_TIME,
            f"Invalid duration '{value}'. Use a number followed by m, h, d or w",
        )

    try:
        amount = int(text[:-1])
    except ValueError:
        raise BuildError(BuildErrorKind.INVALID_TIME, f"Invalid duration '{value}'")

    if amount <= 0:
        raise BuildError(BuildErrorKind.INVALID_TIME, "Duration must be positive")

    duration = timedelta(**{_DURATION_UNITS[text[-1]]: amount})
    if duration > MAX_DURATION:
        raise BuildError(BuildErrorKind.DURATION_TOO_LONG, "Duration cannot exceed 1 week")
    return duration


def to_datetime(value: TimeLike, end_of_day: bool = False) -> datetime:
    """
    Convert a time-like value into an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), dates, epoch seconds
    (as numbers or digit strings), and strings in "YYYY-MM-DD",
    "YYYY-MM-DD HH:MM:SS" or ISO-8601 form.
    With ``end_of_day``, a bare date resolves to 23:59:59 of that day.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time(23, 59, 59) if end_of_day else time())
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return to_datetime(int(text))
        try:
            if len(text) == 10:
                parsed = date.fromisoformat(text)
                return to_datetime(parsed, end_of_day=end_of_day)
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise BuildError(BuildErrorKind.INVALID_TIME, f"Invalid time '{value}'")
    else:
        raise BuildError(BuildErrorKind.INVALID_TIME, f"Unsupported time value: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class Bounds:
    """Geographic bounding box in degrees (west, south, east, north)."""
    west: float
    south: float
    east: float
    north: float

    def validate(self) -> None:
        """Raise BuildError unless the box is a valid, non-empty area."""
        if not (-180.0 <= self.west <= 180.0 and -180.0 <= self.east <= 180.0):
            raise BuildError(BuildErrorKind.INVALID_BOUNDS, f"Longitude out of range in {self}")
        if not (-90.0 <= self.south <= 90.0 and -90.0 <= self.north <= 90.0):
            raise BuildError(BuildErrorKind.INVALID_BOUNDS, f"Latitude out of range in {self}")
        if self.west >= self.east:
            raise BuildError(BuildErrorKind.INVALID_BOUNDS, "west must be smaller than east")
        if self.south >= self.north:
            raise BuildError(BuildErrorKind.INVALID_BOUNDS, "south must be smaller than north")


@dataclass(frozen=True)
class FilterSet:
    """Filters for one history or flight-list query."""
    icao24: str | None = None
    callsign: str | None = None
    start: TimeLike | None = None
    stop: TimeLike | None = None
    duration: timedelta | None = None
    bounds: Bounds | None = None
    departure_airport: str | None = None
    arrival_airport: str | None = None
    # Matches either the departure or the arrival airport
    airport: str | None = None
    limit: int | None = None

    def with_icao24(self, icao24: str) -> "FilterSet":
        return replace(self, icao24=icao24)

    def with_callsign(self, callsign: str) -> "FilterSet":
        return replace(self, callsign=callsign)

    def with_time_range(self, start: TimeLike, stop: TimeLike | None = None) -> "FilterSet":
        return replace(self, start=start, stop=stop)

    def with_duration(self, duration: timedelta | str) -> "FilterSet":
        if isinstance(duration, str):
            duration = parse_duration(duration)
        return replace(self, duration=duration)

    def with_bounds(self, west: float, south: float, east: float, north: float) -> "FilterSet":
        return replace(self, bounds=Bounds(west, south, east, north))

    def with_departure(self, airport: str) -> "FilterSet":
        return replace(self, departure_airport=airport)

    def with_arrival(self, airport: str) -> "FilterSet":
        return replace(self, arrival_airport=airport)

    def with_airport(self, airport: str) -> "FilterSet":
        return replace(self, airport=airport)

    def with_limit(self, limit: int) -> "FilterSet":
        return replace(self, limit=limit)

    @property
    def has_airport(self) -> bool:
        return any((self.departure_airport, self.arrival_airport, self.airport))

    @property
    def has_point_filter(self) -> bool:
        return any((self.icao24, self.callsign, self.bounds is not None))

    def is_empty(self) -> bool:
        """Check whether no filter at all is set."""
        return not (self.has_airport or self.has_point_filter or self.start is not None)

    def time_window(self) -> tuple[datetime, datetime]:
        """
        Resolve the (start, stop) window in UTC.

        Raises:
            BuildError: If start is missing, stop is not after start, or the
                window is longer than one week
        """
        if self.start is None:
            raise BuildError(BuildErrorKind.MISSING_TIME_RANGE, "A start time is required")

        start = to_datetime(self.start)
        if self.stop is not None:
            stop = to_datetime(self.stop, end_of_day=True)
        else:
            duration = self.duration or DEFAULT_DURATION
            if duration > MAX_DURATION:
                raise BuildError(BuildErrorKind.DURATION_TOO_LONG, "Duration cannot exceed 1 week")
            stop = start + duration

        if stop <= start:
            raise BuildError(BuildErrorKind.INVALID_BOUNDS, f"stop ({stop}) must be after start ({start})")
        if stop - start > MAX_DURATION:
            raise BuildError(
                BuildErrorKind.DURATION_TOO_LONG,
                f"Time window of {stop - start} exceeds the 1 week maximum",
            )
        return start, stop


__all__ = [
    "Bounds",
    "FilterSet",
    "TimeLike",
    "MAX_DURATION",
    "DEFAULT_DURATION",
    "parse_duration",
    "to_datetime",
]
