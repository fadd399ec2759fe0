from salon_booking.scheduling.availability_filter import (
    SlotContext,
    evaluate_slots,
    filter_available_slots,
)
from salon_booking.scheduling.conflicts import DayConflicts
from salon_booking.scheduling.schedule_resolver import (
    DuplicateScheduleError,
    resolve_working_hours,
    select_active_hours,
)
from salon_booking.scheduling.slot_generator import generate_slots

__all__ = [
    "SlotContext",
    "evaluate_slots",
    "filter_available_slots",
    "DayConflicts",
    "DuplicateScheduleError",
    "resolve_working_hours",
    "select_active_hours",
    "generate_slots",
]
