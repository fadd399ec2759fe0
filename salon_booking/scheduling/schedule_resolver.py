"""
Working-hours resolution for a technician on a calendar day.

A day with no active working-hours row is simply closed. At most one
active row may exist per technician and weekday; more than one is a
data error and is reported instead of silently picking a row.
"""

from datetime import date
from typing import Iterable, Optional

from salon_booking.errors import DuplicateScheduleError
from salon_booking.logging_context import get_slot_logger
from salon_booking.schemas.booking_schema import WorkingHours
from salon_booking.utils import day_of_week

logger = get_slot_logger(__name__)


def select_active_hours(
    rows: Iterable[WorkingHours], weekday: int
) -> Optional[WorkingHours]:
    """
    Pick the single active row for ``weekday`` from a list of rows.

    Returns:
        The matching row, or None when the day is closed.

    Raises:
        DuplicateScheduleError: If more than one active row matches.
    """
    matches = [r for r in rows if r.is_active and r.day_of_week == weekday]
    if len(matches) > 1:
        technicians = sorted({r.technician_id or "?" for r in matches})
        raise DuplicateScheduleError(
            f"{len(matches)} active working-hours rows for weekday {weekday} "
            f"(technician {', '.join(technicians)})"
        )
    return matches[0] if matches else None


def resolve_working_hours(
    technician_id: Optional[str],
    target_date: date,
    hours: Optional[WorkingHours],
) -> Optional[WorkingHours]:
    """
    Validate the row a data source returned for ``target_date``.

    A missing technician, a missing row, an inactive row or a row for a
    different weekday all resolve to None ("closed").
    """
    if not technician_id:
        logger.debug("No technician configured; treating %s as closed", target_date)
        return None
    if hours is None or not hours.is_active:
        logger.debug("Technician %s has no hours on %s", technician_id, target_date)
        return None

    weekday = day_of_week(target_date)
    if hours.day_of_week != weekday:
        logger.warning(
            "Working hours for weekday %d returned for %s (weekday %d); ignoring",
            hours.day_of_week, target_date, weekday,
        )
        return None
    return hours
