"""Working hours, booking and blackout data models."""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class BookingStatus(str, Enum):
    """Lifecycle status of an appointment."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that reserve calendar time
BLOCKING_STATUSES: frozenset[BookingStatus] = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
})


class WorkingHours(BaseModel):
    """One technician's active hours for one weekday (0 = Sunday)."""
    technician_id: Optional[str] = None
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    is_active: bool = True

    @field_validator("is_active", mode="before")
    @classmethod
    def _null_means_inactive(cls, value):
        return False if value is None else value

    @model_validator(mode="after")
    def _check_window(self) -> "WorkingHours":
        if self.end_time <= self.start_time:
            raise ValueError(
                f"end_time {self.end_time} must be after start_time {self.start_time}"
            )
        return self


class Booking(BaseModel):
    """
    An appointment occupying part of a technician's day.

    Either ``end_time`` or ``duration_minutes`` describes the end of the
    appointment; the two representations are interchangeable.
    """
    id: Optional[str] = None
    appointment_number: Optional[str] = None
    technician_id: str
    appointment_date: date
    start_time: time
    end_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    status: BookingStatus = BookingStatus.PENDING
    client_name: Optional[str] = None
    service_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _null_status_is_pending(cls, value):
        return BookingStatus.PENDING if value is None else value

    @model_validator(mode="after")
    def _check_end(self) -> "Booking":
        has_end = self.end_time is not None and self.end_time > self.start_time
        if not has_end and self.duration_minutes is None:
            raise ValueError(
                "Booking needs an end_time after start_time or a duration_minutes"
            )
        return self

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES

    def interval(self) -> tuple[datetime, datetime]:
        """Absolute ``[start, end)`` of the appointment."""
        start = datetime.combine(self.appointment_date, self.start_time)
        if self.end_time is not None and self.end_time > self.start_time:
            end = datetime.combine(self.appointment_date, self.end_time)
        else:
            end = start + timedelta(minutes=self.duration_minutes)
        return start, end


class BlackoutPeriod(BaseModel):
    """A manually blocked interval, e.g. vacation. May span several days."""
    start_datetime: datetime
    end_datetime: datetime
    technician_id: Optional[str] = None
    title: str = ""
    period_type: Optional[str] = None

    @model_validator(mode="after")
    def _check_order(self) -> "BlackoutPeriod":
        if self.end_datetime <= self.start_datetime:
            raise ValueError("end_datetime must be after start_datetime")
        return self


class BusinessSettings(BaseModel):
    """Singleton business configuration row."""
    technician_id: Optional[str] = None
    business_name: Optional[str] = None
    slot_duration: Optional[int] = Field(default=None, gt=0)
    advance_booking_days: Optional[int] = Field(default=None, ge=0)
    is_accepting_bookings: Optional[bool] = True
