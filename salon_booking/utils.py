"""Shared date and time helpers used across the booking core."""

from datetime import date, datetime, time
from typing import Union
from zoneinfo import ZoneInfo

TIME_FORMATS = ("%H:%M:%S", "%H:%M")


def parse_time_of_day(value: Union[str, time]) -> time:
    """Parse a time-of-day from ``HH:MM`` or ``HH:MM:SS``.

    Examples:
        >>> parse_time_of_day("09:30")
        datetime.time(9, 30)
        >>> parse_time_of_day("14:00:00")
        datetime.time(14, 0)
    """
    if isinstance(value, time):
        return value
    cleaned = value.strip()
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid time of day: {value!r}")


def format_time(value: time) -> str:
    """Render a time-of-day as ``HH:MM``."""
    return value.strftime("%H:%M")


def parse_date(value: Union[str, date]) -> date:
    """Parse a calendar date from ``YYYY-MM-DD``; datetimes keep only their date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except (ValueError, AttributeError):
        raise ValueError(f"Invalid date: {value!r}") from None


def day_of_week(value: date) -> int:
    """Weekday index with Sunday = 0 and Saturday = 6."""
    return value.isoweekday() % 7


def to_local_naive(value: datetime, tz_name: str) -> datetime:
    """Convert an aware datetime into naive wall-clock time in ``tz_name``.

    Naive datetimes are assumed to already be local and pass through.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)
