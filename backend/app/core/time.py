"""Time utilities for timezone-aware UTC datetimes and studio-local calendar math.

Timestamps are persisted as naive UTC values so that equality (and the
uniqueness index on lesson start) never depends on how a driver handles
offsets. Calendar questions (which day, which month, business hours) are
answered in the studio's local zone.
"""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from backend.app.core.settings import get_settings


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime for defaults and onupdate hooks."""
    return datetime.now(UTC)


def storage_now() -> datetime:
    """Naive UTC "now" for column defaults."""
    return to_storage(utc_now())


def studio_zone() -> ZoneInfo:
    return ZoneInfo(get_settings().studio_timezone)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as studio-local wall time."""
    if value.tzinfo is None:
        return value.replace(tzinfo=studio_zone())
    return value


def to_storage(value: datetime) -> datetime:
    return ensure_aware(value).astimezone(UTC).replace(tzinfo=None)


def from_storage(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(UTC)
    return value.replace(tzinfo=UTC)


def to_local(value: datetime) -> datetime:
    """Convert a stored or aware timestamp to the studio zone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(studio_zone())


def local_datetime(day: date, clock: time) -> datetime:
    return datetime.combine(day, clock, tzinfo=studio_zone())


def local_day_bounds(day: date) -> tuple[datetime, datetime]:
    start = local_datetime(day, time(0, 0))
    end = local_datetime(day + timedelta(days=1), time(0, 0))
    return start, end


def local_month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    start = local_datetime(date(year, month, 1), time(0, 0))
    if month == 12:
        next_first = date(year + 1, 1, 1)
    else:
        next_first = date(year, month + 1, 1)
    return start, local_datetime(next_first, time(0, 0))


def parse_clock(value: str) -> time:
    """Parse an HH:MM (or HH:MM:SS) wall-clock string."""
    return time.fromisoformat(value)


def first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)
