"""Exceptions raised while computing availability."""


class AvailabilityError(Exception):
    """Base class for availability failures."""


class AvailabilityFetchError(AvailabilityError):
    """A data-source read failed or timed out; no slots were computed."""


class InvalidAvailabilityRequest(AvailabilityError, ValueError):
    """The request was rejected before any data was loaded."""


class DuplicateScheduleError(AvailabilityError):
    """Raised when a technician has several active rows for one weekday."""
