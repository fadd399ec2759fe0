"""Collect the intervals that can collide with candidate slots on one day."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from salon_booking.logging_context import get_slot_logger
from salon_booking.schemas.booking_schema import BlackoutPeriod, Booking
from salon_booking.utils import to_local_naive

logger = get_slot_logger(__name__)

Interval = tuple[datetime, datetime]


def day_bounds(target_date: date) -> Interval:
    """The 24-hour span ``[midnight, next midnight)`` of a date."""
    start = datetime.combine(target_date, time.min)
    return start, start + timedelta(days=1)


def intersects(interval: Interval, window: Interval) -> bool:
    """Half-open overlap: ``[a, b)`` and ``[c, d)`` overlap iff a < d and b > c."""
    return interval[0] < window[1] and interval[1] > window[0]


def booking_intervals(
    bookings: Iterable[Booking], technician_id: str, target_date: date
) -> list[Interval]:
    """Absolute intervals of the technician's blocking bookings touching the day."""
    window = day_bounds(target_date)
    intervals = []
    for booking in bookings:
        if booking.technician_id != technician_id or not booking.is_blocking:
            continue
        interval = booking.interval()
        if intersects(interval, window):
            intervals.append(interval)
    return intervals


def blackout_intervals(
    periods: Iterable[BlackoutPeriod],
    technician_id: str,
    target_date: date,
    tz_name: str,
) -> list[Interval]:
    """Blackout periods intersecting the day, as naive local intervals.

    Periods without a technician apply to every technician.
    """
    window = day_bounds(target_date)
    intervals = []
    for period in periods:
        if period.technician_id and period.technician_id != technician_id:
            continue
        interval = (
            to_local_naive(period.start_datetime, tz_name),
            to_local_naive(period.end_datetime, tz_name),
        )
        if intersects(interval, window):
            intervals.append(interval)
    return intervals


@dataclass(frozen=True)
class DayConflicts:
    """Everything that can make a slot unavailable on one day."""

    bookings: tuple[Interval, ...] = ()
    blackouts: tuple[Interval, ...] = ()

    @classmethod
    def collect(
        cls,
        technician_id: str,
        target_date: date,
        bookings: Iterable[Booking],
        periods: Iterable[BlackoutPeriod],
        tz_name: Optional[str] = "UTC",
    ) -> "DayConflicts":
        conflicts = cls(
            bookings=tuple(booking_intervals(bookings, technician_id, target_date)),
            blackouts=tuple(
                blackout_intervals(periods, technician_id, target_date, tz_name or "UTC")
            ),
        )
        logger.debug(
            "Conflicts for %s on %s: %d booking(s), %d blackout(s)",
            technician_id, target_date, len(conflicts.bookings), len(conflicts.blackouts),
        )
        return conflicts
