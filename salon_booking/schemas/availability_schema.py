"""Slot evaluation and availability response models."""

from datetime import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SlotReason(str, Enum):
    """Why a candidate slot was rejected."""
    PAST = "past"
    OUTSIDE_HOURS = "outside_hours"
    BOOKED = "booked"
    BLOCKED = "blocked"


class SlotEvaluation(BaseModel):
    """A candidate start time tagged available or not."""
    time_slot: time
    is_available: bool
    reason: Optional[SlotReason] = None


class AvailabilityStatus(str, Enum):
    """Outcome of an availability lookup as shown to a client."""
    OK = "ok"
    CLOSED = "closed"
    FULLY_BOOKED = "fully_booked"
    ERROR = "error"


class AvailabilityResponse(BaseModel):
    """Availability check result."""
    status: AvailabilityStatus
    date: str
    technician_id: Optional[str] = None
    duration_minutes: int = 0
    slots: list[str] = Field(default_factory=list)
    next_available: Optional[str] = None
    message: str = ""

    @property
    def available(self) -> bool:
        return self.status == AvailabilityStatus.OK
