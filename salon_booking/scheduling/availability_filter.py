"""
Availability filter: decides which candidate start times can be booked.

All comparisons happen on absolute datetimes (target date + time-of-day),
so blackout periods that span midnight are handled like any other
interval. Overlap is half-open: an appointment may start exactly when
another one ends.

Checks run in a fixed order and the first failure becomes the reason:
    1. past           the slot starts before "now" (today or earlier only)
    2. outside_hours  the service would not finish by closing time
    3. booked         it overlaps a blocking booking
    4. blocked        it overlaps a blackout period
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from salon_booking.logging_context import get_slot_logger
from salon_booking.scheduling.conflicts import DayConflicts, Interval, intersects
from salon_booking.schemas.availability_schema import SlotEvaluation, SlotReason

logger = get_slot_logger(__name__)


@dataclass(frozen=True)
class SlotContext:
    """Inputs shared by every candidate slot of one evaluation."""

    target_date: date
    working_start: time
    working_end: time
    duration_minutes: int
    now: datetime
    conflicts: DayConflicts = DayConflicts()

    def __post_init__(self) -> None:
        if self.duration_minutes <= 0:
            raise ValueError(
                f"Service duration must be positive, got {self.duration_minutes}"
            )

    @property
    def opening(self) -> datetime:
        return datetime.combine(self.target_date, self.working_start)

    @property
    def closing(self) -> datetime:
        return datetime.combine(self.target_date, self.working_end)

    def occupied(self, slot: time) -> Interval:
        start = datetime.combine(self.target_date, slot)
        return start, start + timedelta(minutes=self.duration_minutes)


def rejection_reason(slot: time, ctx: SlotContext) -> Optional[SlotReason]:
    """Return why ``slot`` cannot be booked, or None if it can."""
    start, end = ctx.occupied(slot)

    if ctx.target_date <= ctx.now.date() and start < ctx.now:
        return SlotReason.PAST
    if start < ctx.opening or end > ctx.closing:
        return SlotReason.OUTSIDE_HOURS
    if any(intersects((start, end), booked) for booked in ctx.conflicts.bookings):
        return SlotReason.BOOKED
    if any(intersects((start, end), blocked) for blocked in ctx.conflicts.blackouts):
        return SlotReason.BLOCKED
    return None


def evaluate_slots(slots: Iterable[time], ctx: SlotContext) -> list[SlotEvaluation]:
    """Tag every candidate with availability and, when rejected, a reason."""
    results = []
    for slot in slots:
        reason = rejection_reason(slot, ctx)
        results.append(
            SlotEvaluation(time_slot=slot, is_available=reason is None, reason=reason)
        )
    return results


def filter_available_slots(slots: Iterable[time], ctx: SlotContext) -> list[time]:
    """The ordered subsequence of ``slots`` that pass every check."""
    available = [slot for slot in slots if rejection_reason(slot, ctx) is None]
    logger.debug(
        "%d slot(s) available on %s for %d minutes",
        len(available), ctx.target_date, ctx.duration_minutes,
    )
    return available
