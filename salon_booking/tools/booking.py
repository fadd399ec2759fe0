"""
Booking creation and status changes.

Every change to a booking invalidates the cached slot lists for that
technician and day, so a slot that was just taken is not offered again.
"""

import asyncio
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import AsyncIterator, Iterable, Optional, TypedDict, Union

from salon_booking.logging_context import get_slot_logger
from salon_booking.schemas.booking_schema import Booking, BookingStatus
from salon_booking.schemas.catalog_schema import AddOn, Service
from salon_booking.tools.availability import AvailabilityService
from salon_booking.tools.data_source import InMemoryDataSource
from salon_booking.tools.services import total_duration, total_price
from salon_booking.utils import format_time, parse_date, parse_time_of_day

logger = get_slot_logger(__name__)


class BookingResult(TypedDict, total=False):
    """Result from create_booking or update_status."""

    success: bool
    message: str
    appointment_number: str
    quoted_price: float
    booking: Booking


class BookingLedger:
    """Writes bookings to the store and keeps the slot cache honest."""

    def __init__(self, store: InMemoryDataSource, availability: AvailabilityService) -> None:
        self._store = store
        self._availability = availability
        self._locks: dict[tuple[str, date], asyncio.Lock] = {}

    def _day_lock(self, technician_id: str, day: date) -> asyncio.Lock:
        return self._locks.setdefault((technician_id, day), asyncio.Lock())

    @asynccontextmanager
    async def _hold_days(self, technician_id: str, days: list[date]) -> AsyncIterator[None]:
        """Serialize check-then-write for every day an appointment touches."""
        async with AsyncExitStack() as stack:
            for day in sorted(set(days)):
                await stack.enter_async_context(self._day_lock(technician_id, day))
            yield

    async def create_booking(
        self,
        client_name: str,
        client_phone: str,
        appointment_date: Union[str, date],
        start_time: Union[str, time],
        service: Service,
        addons: Iterable[AddOn] = (),
        technician_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """Create a pending booking if the requested start is still free."""
        missing = [
            field_name
            for field_name, value in [
                ("client_name", client_name),
                ("client_phone", client_phone),
            ]
            if not value or not value.strip()
        ]
        if missing:
            return {
                "success": False,
                "message": f"Cannot create booking - missing required fields: {', '.join(missing)}.",
            }

        try:
            day = parse_date(appointment_date)
            start = parse_time_of_day(start_time)
        except ValueError as exc:
            return {"success": False, "message": f"Cannot create booking - {exc}."}

        addons = list(addons)
        duration = total_duration(service, addons)
        technician_id = technician_id or await self._availability.default_technician()
        if not technician_id:
            return {"success": False, "message": "Cannot create booking - no technician configured."}

        ends_at = datetime.combine(day, start) + timedelta(minutes=duration)
        async with self._hold_days(technician_id, [day, ends_at.date()]):
            evaluations = await self._availability.evaluate_slots(
                technician_id, day, duration, now=now
            )
            match = next((e for e in evaluations if e.time_slot == start), None)
            if match is None or not match.is_available:
                reason = match.reason.value if match and match.reason else "not_offered"
                logger.info(
                    "Rejected booking at %s %s for %s: %s",
                    day, format_time(start), technician_id, reason,
                )
                return {
                    "success": False,
                    "message": f"{format_time(start)} on {day.isoformat()} is no longer available ({reason}).",
                }

            number = f"APT-{uuid.uuid4().hex[:6].upper()}"
            booking = self._store.add_booking(Booking(
                appointment_number=number,
                technician_id=technician_id,
                appointment_date=day,
                start_time=start,
                end_time=ends_at.time(),
                duration_minutes=duration,
                status=BookingStatus.PENDING,
                client_name=client_name.strip(),
                service_id=service.id,
            ))
            self._availability.invalidate(technician_id, day)
            if ends_at.date() != day:
                self._availability.invalidate(technician_id, ends_at.date())
        logger.info("Booking created: %s for %s on %s at %s", number, client_name, day, format_time(start))

        return {
            "success": True,
            "appointment_number": number,
            "quoted_price": total_price(service, addons),
            "message": f"Booking received. Reference number: {number}. "
                       f"{service.name} on {day.isoformat()} at {format_time(start)}.",
            "booking": booking,
        }

    def update_status(self, appointment_number: str, status: BookingStatus) -> BookingResult:
        """Move a booking to a new status, freeing or reserving its time."""
        booking = self._store.find_booking(appointment_number)
        if booking is None:
            return {"success": False, "message": f"Booking {appointment_number} not found."}

        updated = self._store.update_booking_status(booking.id, status)
        self._availability.invalidate(booking.technician_id, booking.appointment_date)
        ends_on = booking.interval()[1].date()
        if ends_on != booking.appointment_date:
            self._availability.invalidate(booking.technician_id, ends_on)
        logger.info("Booking %s status: %s -> %s", appointment_number, booking.status.value, status.value)
        return {
            "success": True,
            "appointment_number": appointment_number,
            "message": f"Booking {appointment_number} is now {status.value}.",
            "booking": updated,
        }

    def cancel_booking(self, appointment_number: str) -> BookingResult:
        return self.update_status(appointment_number, BookingStatus.CANCELLED)

    def get_booking(self, appointment_number: str) -> Optional[Booking]:
        return self._store.find_booking(appointment_number)
