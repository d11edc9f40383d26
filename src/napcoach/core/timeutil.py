"""Calendar and time helpers.

Instants are normalised to aware UTC datetimes. Local calendar questions
(day keys, hours, wall-clock times) are answered by converting through
``zoneinfo``, so DST transitions come from the zone database instead of
offset arithmetic. Durations are always computed on the UTC values: Python
subtracts two datetimes sharing a tzinfo as wall-clock times, which would
report a 2 hour session across spring-forward as 3 hours.
"""

from datetime import UTC, date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tzlocal import get_localzone

from napcoach.core.config import settings

Instant = str | datetime
Zone = str | tzinfo | None

SECONDS_PER_DAY = 86400


class InvalidTimestampError(ValueError):
    """Raised when a timestamp cannot be parsed."""

    def __init__(self, value: object) -> None:
        super().__init__("Invalid date format")
        self.value = value


class InvertedRangeError(ValueError):
    """Raised when a range does not end strictly after it starts."""

    def __init__(self, start: datetime, end: datetime) -> None:
        super().__init__("End time must be after start time")
        self.start = start
        self.end = end


def get_zone(tz: Zone = None) -> tzinfo:
    """Resolve a zone name (or tzinfo) to a tzinfo.

    Args:
        tz: IANA name, tzinfo, or None for the configured default

    Returns:
        The zone; the host's IANA zone when nothing is configured

    Raises:
        ValueError: If the zone name is unknown
    """
    if isinstance(tz, tzinfo):
        return tz
    name = tz or settings.timezone
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {name}") from e
    # Host IANA zone, honouring TZ
    return get_localzone()


def parse_instant(value: Instant, tz: Zone = None) -> datetime:
    """Parse an ISO-8601 string or datetime into an aware UTC instant.

    Naive values are read as wall-clock time in ``tz``.

    Raises:
        InvalidTimestampError: If the value is not a valid timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise InvalidTimestampError(value) from e
    else:
        raise InvalidTimestampError(value)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=get_zone(tz))
    return parsed.astimezone(UTC)


def to_local(value: Instant, tz: Zone = None) -> datetime:
    """Convert an instant to wall-clock time in ``tz``."""
    zone = get_zone(tz)
    return parse_instant(value, zone).astimezone(zone)


def local_date(value: Instant, tz: Zone = None) -> date:
    """Local calendar date an instant falls on."""
    return to_local(value, tz).date()


def day_key(value: Instant, tz: Zone = None) -> str:
    """Local calendar day of an instant as ``YYYY-MM-DD``."""
    return local_date(value, tz).isoformat()


def local_hour(value: Instant, tz: Zone = None) -> int:
    """Local wall-clock hour (0-23) of an instant."""
    return to_local(value, tz).hour


def minutes_of_day(value: Instant, tz: Zone = None) -> int:
    """Minutes since local midnight, by wall clock."""
    local = to_local(value, tz)
    return local.hour * 60 + local.minute


def duration_minutes(start: Instant, end: Instant) -> float:
    """Elapsed minutes between two absolute instants."""
    return (parse_instant(end) - parse_instant(start)).total_seconds() / 60


def is_cross_midnight(start: Instant, end: Instant, tz: Zone = None) -> bool:
    """Whether a range starts and ends on different local days."""
    return day_key(start, tz) != day_key(end, tz)


def validate_range(start: Instant, end: Instant) -> tuple[datetime, datetime]:
    """Parse and check a time range.

    Returns:
        The parsed (start, end) pair in UTC

    Raises:
        InvalidTimestampError: If either side is unparseable
        InvertedRangeError: If end is not strictly after start
    """
    parsed_start = parse_instant(start)
    parsed_end = parse_instant(end)
    if parsed_end <= parsed_start:
        raise InvertedRangeError(parsed_start, parsed_end)
    return parsed_start, parsed_end


def at_local_time(day: date, hour: int, minute: int = 0, tz: Zone = None) -> datetime:
    """Absolute instant of a wall-clock time on a local date."""
    local = datetime.combine(day, time(hour, minute), tzinfo=get_zone(tz))
    return local.astimezone(UTC)


def start_of_day(day: date, tz: Zone = None) -> datetime:
    """Instant of local midnight starting ``day``."""
    return at_local_time(day, 0, 0, tz)


def end_of_day(day: date, tz: Zone = None) -> datetime:
    """Last representable instant of the local day."""
    return datetime.combine(day, time.max, tzinfo=get_zone(tz)).astimezone(UTC)


def days_ago(now: Instant, value: Instant) -> int:
    """Whole days elapsed from ``value`` to ``now``, truncated toward zero."""
    elapsed = (parse_instant(now) - parse_instant(value)).total_seconds()
    return int(elapsed / SECONDS_PER_DAY)


def format_duration(minutes: float) -> str:
    """Render minutes as ``2h 05m`` or ``45m``."""
    hours, mins = divmod(round(minutes), 60)
    if hours:
        return f"{hours}h {mins:02d}m"
    return f"{mins}m"


def format_clock(value: Instant, tz: Zone = None) -> str:
    """Render the local wall-clock time as ``7:30 PM``."""
    return to_local(value, tz).strftime("%I:%M %p").lstrip("0")


class Clock:
    """Source of the current instant and the local zone."""

    def __init__(self, tz: Zone = None) -> None:
        self.zone = get_zone(tz)

    def now(self) -> datetime:
        return datetime.now(UTC)

    def today(self) -> date:
        return self.now().astimezone(self.zone).date()


class FixedClock(Clock):
    """Clock pinned to a given instant, for reproducible runs."""

    def __init__(self, now: Instant, tz: Zone = None) -> None:
        super().__init__(tz)
        self._now = parse_instant(now, self.zone)

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta: float) -> None:
        """Move the pinned instant forward by ``timedelta(**delta)``."""
        self._now += timedelta(**delta)
