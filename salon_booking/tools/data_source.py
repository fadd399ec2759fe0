"""
Data-access contract for availability, plus an in-memory implementation.

In production, the contract is implemented over the hosted Postgres tables
(availability_schedules, appointments, unavailable_periods,
business_settings). The in-memory store backs the CLI demo and tests.
"""

import asyncio
import uuid
from datetime import date, datetime, time, timedelta
from typing import Optional, Protocol

from salon_booking.config import settings
from salon_booking.errors import DuplicateScheduleError
from salon_booking.logging_context import get_slot_logger
from salon_booking.scheduling.schedule_resolver import select_active_hours
from salon_booking.schemas.booking_schema import (
    BlackoutPeriod,
    Booking,
    BookingStatus,
    BusinessSettings,
    WorkingHours,
)
from salon_booking.utils import to_local_naive

logger = get_slot_logger(__name__)


class AvailabilityDataSource(Protocol):
    """Reads the availability inputs. Every method is a single bounded request."""

    async def get_working_hours(
        self, technician_id: str, weekday: int
    ) -> Optional[WorkingHours]:
        """The active row for ``weekday`` (0 = Sunday), or None when closed."""
        ...

    async def get_blocking_bookings(
        self, technician_id: str, target_date: date
    ) -> list[Booking]:
        """
        Bookings whose status reserves time, dated ``target_date`` or the
        day before (an evening appointment can run past midnight).
        """
        ...

    async def get_blackout_periods(
        self, technician_id: str, range_start: datetime, range_end: datetime
    ) -> list[BlackoutPeriod]:
        """Blackout periods that start before ``range_end`` and end after ``range_start``."""
        ...

    async def get_business_settings(self) -> Optional[BusinessSettings]:
        """The business settings row, or None if it has not been created yet."""
        ...


class DataSourceError(Exception):
    """Raised by the in-memory store when a fetch is made to fail."""


class InMemoryDataSource:
    """
    Dict-backed store implementing AvailabilityDataSource.

    ``fail_on`` names fetches that should raise DataSourceError and
    ``latency`` adds a delay to every fetch, both for exercising the
    error and concurrency paths.
    """

    def __init__(
        self,
        business_settings: Optional[BusinessSettings] = None,
        tz_name: str = settings.scheduling.business_timezone,
        latency: float = 0.0,
    ) -> None:
        self.business_settings = business_settings
        self.tz_name = tz_name
        self.latency = latency
        self.fail_on: set[str] = set()
        self.call_counts: dict[str, int] = {}
        self._hours: list[WorkingHours] = []
        self._bookings: dict[str, Booking] = {}
        self._blackouts: list[BlackoutPeriod] = []

    # --- writes ---

    def add_working_hours(self, hours: WorkingHours) -> WorkingHours:
        """Register a working-hours row; one active row per technician and weekday."""
        if hours.is_active:
            existing = [
                r for r in self._hours
                if r.technician_id == hours.technician_id
            ]
            if select_active_hours(existing, hours.day_of_week) is not None:
                raise DuplicateScheduleError(
                    f"Technician {hours.technician_id} already has active hours "
                    f"for weekday {hours.day_of_week}"
                )
        self._hours.append(hours)
        return hours

    def add_booking(self, booking: Booking) -> Booking:
        if booking.id is None:
            booking = booking.model_copy(update={"id": uuid.uuid4().hex})
        self._bookings[booking.id] = booking
        return booking

    def update_booking_status(self, booking_id: str, status: BookingStatus) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        if booking is None:
            return None
        updated = booking.model_copy(update={"status": status})
        self._bookings[booking_id] = updated
        return updated

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    def find_booking(self, appointment_number: str) -> Optional[Booking]:
        for booking in self._bookings.values():
            if booking.appointment_number == appointment_number:
                return booking
        return None

    def add_blackout(self, period: BlackoutPeriod) -> BlackoutPeriod:
        """Store a blackout period as naive local time."""
        local = period.model_copy(update={
            "start_datetime": to_local_naive(period.start_datetime, self.tz_name),
            "end_datetime": to_local_naive(period.end_datetime, self.tz_name),
        })
        self._blackouts.append(local)
        return local

    def reset(self) -> None:
        """Clear all rows. Used by test fixtures for isolation."""
        self._hours.clear()
        self._bookings.clear()
        self._blackouts.clear()
        self.fail_on.clear()
        self.call_counts.clear()

    # --- reads ---

    async def _simulate(self, name: str) -> None:
        self.call_counts[name] = self.call_counts.get(name, 0) + 1
        if self.latency:
            await asyncio.sleep(self.latency)
        if name in self.fail_on:
            raise DataSourceError(f"Simulated failure fetching {name}")

    async def get_working_hours(
        self, technician_id: str, weekday: int
    ) -> Optional[WorkingHours]:
        await self._simulate("working_hours")
        rows = [r for r in self._hours if r.technician_id == technician_id]
        return select_active_hours(rows, weekday)

    async def get_blocking_bookings(
        self, technician_id: str, target_date: date
    ) -> list[Booking]:
        await self._simulate("bookings")
        return [
            b for b in self._bookings.values()
            if b.technician_id == technician_id
            and b.appointment_date in (target_date - timedelta(days=1), target_date)
            and b.is_blocking
        ]

    async def get_blackout_periods(
        self, technician_id: str, range_start: datetime, range_end: datetime
    ) -> list[BlackoutPeriod]:
        await self._simulate("blackouts")
        return [
            p for p in self._blackouts
            if (p.technician_id is None or p.technician_id == technician_id)
            and p.start_datetime < range_end
            and p.end_datetime > range_start
        ]

    async def get_business_settings(self) -> Optional[BusinessSettings]:
        await self._simulate("business_settings")
        return self.business_settings


def build_demo_source(technician_id: str = "tech-demo") -> InMemoryDataSource:
    """A small seeded store: Tuesday to Saturday, 09:00 to 17:00 (Saturday to 14:00)."""
    source = InMemoryDataSource(
        business_settings=BusinessSettings(
            technician_id=technician_id,
            business_name="Demo Nail Studio",
            slot_duration=30,
            advance_booking_days=60,
        )
    )
    for weekday in (2, 3, 4, 5):
        source.add_working_hours(WorkingHours(
            technician_id=technician_id,
            day_of_week=weekday,
            start_time=time(9, 0),
            end_time=time(17, 0),
        ))
    source.add_working_hours(WorkingHours(
        technician_id=technician_id,
        day_of_week=6,
        start_time=time(9, 0),
        end_time=time(14, 0),
    ))
    return source
