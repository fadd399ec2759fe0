"""Candidate start-time grid inside a working-hours window."""

from datetime import date, datetime, time, timedelta

DEFAULT_SLOT_INTERVAL_MINUTES = 30

# Any fixed date works; only the time-of-day is kept.
_ANCHOR = date(2000, 1, 1)


def generate_slots(
    start: time, end: time, interval_minutes: int = DEFAULT_SLOT_INTERVAL_MINUTES
) -> list[time]:
    """
    Every ``start + k * interval`` strictly before ``end``, ascending.

    A trailing period shorter than the interval yields no extra slot.

    Raises:
        ValueError: If the interval is not positive.
    """
    if interval_minutes <= 0:
        raise ValueError(f"Slot interval must be positive, got {interval_minutes}")

    step = timedelta(minutes=interval_minutes)
    current = datetime.combine(_ANCHOR, start)
    limit = datetime.combine(_ANCHOR, end)

    slots = []
    while current < limit:
        slots.append(current.time())
        current += step
    return slots
