"""Structured logging context for slot evaluations.

Every log record emitted while one availability evaluation runs carries
the technician, date and duration being evaluated, so the fetches,
schedule resolution, filtering and caching for a single request can be
followed across modules.

Usage:
    from salon_booking.logging_context import evaluation_scope, get_slot_logger

    logger = get_slot_logger(__name__)
    with evaluation_scope("tech-1", date(2024, 6, 1), 60):
        logger.info("Computing slots")  # record.slot_key == "tech-1:2024-06-01:60"
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional


@dataclass(frozen=True)
class EvaluationKey:
    """What one availability evaluation is computing."""

    technician_id: Optional[str]
    target_date: date
    duration_minutes: int

    def __str__(self) -> str:
        return f"{self.technician_id or '-'}:{self.target_date.isoformat()}:{self.duration_minutes}"


_evaluation: ContextVar[Optional[EvaluationKey]] = ContextVar("slot_evaluation", default=None)


@contextmanager
def evaluation_scope(
    technician_id: Optional[str], target_date: date, duration_minutes: int
) -> Iterator[EvaluationKey]:
    """Tag log records with the evaluation key until the block exits."""
    key = EvaluationKey(technician_id, target_date, duration_minutes)
    token = _evaluation.set(key)
    try:
        yield key
    finally:
        _evaluation.reset(token)


def current_evaluation() -> Optional[EvaluationKey]:
    return _evaluation.get()


class SlotContextFilter(logging.Filter):
    """Copies the current evaluation key onto each record as separate fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        key = _evaluation.get()
        record.slot_key = str(key) if key else "-"  # type: ignore[attr-defined]
        record.technician_id = key.technician_id if key else None  # type: ignore[attr-defined]
        record.slot_date = key.target_date.isoformat() if key else None  # type: ignore[attr-defined]
        record.duration_minutes = key.duration_minutes if key else None  # type: ignore[attr-defined]
        return True


def get_slot_logger(name: str) -> logging.Logger:
    """Return a logger whose records carry the evaluation fields.

    Formatters can use ``%(slot_key)s`` or the individual
    ``technician_id``, ``slot_date`` and ``duration_minutes`` fields.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, SlotContextFilter) for f in logger.filters):
        logger.addFilter(SlotContextFilter())
    return logger
