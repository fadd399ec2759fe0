"""Shared test fixtures and helpers."""

from datetime import date, datetime, time
from typing import Optional, Union

import pytest

from salon_booking.schemas.booking_schema import (
    BlackoutPeriod,
    Booking,
    BusinessSettings,
    WorkingHours,
)
from salon_booking.tools.availability import AvailabilityService
from salon_booking.tools.booking import BookingLedger
from salon_booking.tools.cache import SlotCache
from salon_booking.tools.data_source import InMemoryDataSource

TECH = "tech-1"
NOW = datetime(2024, 5, 31, 8, 0)


def t(value: str) -> time:
    """Shorthand for a time-of-day literal."""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def make_hours(
    day_of_week: int,
    start: str = "09:00",
    end: str = "17:00",
    technician_id: str = TECH,
    is_active: bool = True,
) -> WorkingHours:
    return WorkingHours(
        technician_id=technician_id,
        day_of_week=day_of_week,
        start_time=start,
        end_time=end,
        is_active=is_active,
    )


def make_booking(
    day: Union[str, date],
    start: str,
    end: Optional[str] = None,
    duration: Optional[int] = None,
    status: str = "confirmed",
    technician_id: str = TECH,
) -> Booking:
    return Booking(
        technician_id=technician_id,
        appointment_date=day,
        start_time=start,
        end_time=end,
        duration_minutes=duration,
        status=status,
    )


def make_blackout(
    start: datetime, end: datetime, technician_id: Optional[str] = TECH
) -> BlackoutPeriod:
    return BlackoutPeriod(
        start_datetime=start,
        end_datetime=end,
        technician_id=technician_id,
        title="Blocked",
    )


def make_source(**settings_overrides) -> InMemoryDataSource:
    """A store open 09:00 to 17:00 every day of the week."""
    business = BusinessSettings(
        technician_id=TECH,
        slot_duration=30,
        advance_booking_days=60,
        **settings_overrides,
    )
    source = InMemoryDataSource(business_settings=business, tz_name="UTC")
    for weekday in range(7):
        source.add_working_hours(make_hours(weekday))
    return source


@pytest.fixture
def source():
    return make_source()


@pytest.fixture
def service(source):
    return AvailabilityService(source, cache=SlotCache(ttl_seconds=60), clock=lambda: NOW)


@pytest.fixture
def ledger(source, service):
    return BookingLedger(source, service)
