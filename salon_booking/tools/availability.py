"""
Appointment slot availability.

Resolves a technician's working hours for a day, loads that day's
bookings and blackout periods concurrently, and filters the slot grid
down to bookable start times. Any failed fetch aborts the computation:
a slot is never offered on incomplete conflict data.

Usage:
    service = AvailabilityService(source)
    slots = await service.compute_available_slots("tech-1", "2024-06-01", 60)
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Awaitable, Callable, Optional, TypeVar, Union
from zoneinfo import ZoneInfo

from salon_booking.config import AppConfig, settings
from salon_booking.errors import (
    AvailabilityError,
    AvailabilityFetchError,
    DuplicateScheduleError,
    InvalidAvailabilityRequest,
)
from salon_booking.logging_context import evaluation_scope, get_slot_logger
from salon_booking.scheduling.availability_filter import (
    SlotContext,
    evaluate_slots,
    filter_available_slots,
)
from salon_booking.scheduling.conflicts import DayConflicts, day_bounds
from salon_booking.scheduling.schedule_resolver import resolve_working_hours
from salon_booking.scheduling.slot_generator import generate_slots
from salon_booking.schemas.availability_schema import (
    AvailabilityResponse,
    AvailabilityStatus,
    SlotEvaluation,
)
from salon_booking.schemas.booking_schema import BusinessSettings
from salon_booking.tools.cache import SlotCache
from salon_booking.tools.data_source import AvailabilityDataSource
from salon_booking.utils import day_of_week, format_time, parse_date, to_local_naive

logger = get_slot_logger(__name__)

T = TypeVar("T")

ERROR_MESSAGE = "Unable to load availability, please retry."


@dataclass(frozen=True)
class _Evaluation:
    """A prepared evaluation: the shared context plus the raw slot grid."""

    ctx: SlotContext
    grid: list[time]


class AvailabilityService:
    """
    Computes bookable start times for a technician on a date.

    The default technician and business settings are read from the
    data source once and reused until ``refresh_settings`` is called.
    """

    def __init__(
        self,
        source: AvailabilityDataSource,
        config: AppConfig = settings,
        cache: Optional[SlotCache] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._source = source
        self._config = config
        self._cache = cache if cache is not None else SlotCache()
        self._clock = clock or self._local_now
        self._business: Optional[BusinessSettings] = None

    @property
    def cache(self) -> SlotCache:
        return self._cache

    def _local_now(self) -> datetime:
        tz = ZoneInfo(self._config.scheduling.business_timezone)
        return datetime.now(tz).replace(tzinfo=None)

    # --- settings ---

    async def business_settings(self) -> BusinessSettings:
        """Business settings, fetched once; a missing row means defaults."""
        if self._business is None:
            row = await self._fetch("business settings", self._source.get_business_settings())
            self._business = row or BusinessSettings()
        return self._business

    async def default_technician(self) -> Optional[str]:
        return (await self.business_settings()).technician_id

    def refresh_settings(self) -> None:
        self._business = None
        self._cache.clear()

    def invalidate(
        self, technician_id: Optional[str] = None, target_date: Optional[date] = None
    ) -> int:
        """Forget cached slots after a booking change."""
        return self._cache.invalidate(technician_id, target_date)

    # --- public operations ---

    async def compute_available_slots(
        self,
        technician_id: Optional[str],
        target_date: Union[str, date],
        duration_minutes: int,
        now: Optional[datetime] = None,
        interval_minutes: Optional[int] = None,
        use_cache: bool = True,
    ) -> list[time]:
        """
        Bookable start times, ascending.

        Returns an empty list when the technician is not configured, the
        day is closed, bookings are paused, or the date is past the
        booking horizon.

        Raises:
            InvalidAvailabilityRequest: On a bad date, duration or interval.
            AvailabilityFetchError: If any data-source read fails.
        """
        day, moment = self._validate(target_date, duration_minutes, interval_minutes, now)
        technician_id = technician_id or await self.default_technician()
        interval = await self._interval(interval_minutes)

        with evaluation_scope(technician_id, day, duration_minutes):
            key = (technician_id or "", day, duration_minutes, interval)
            if use_cache:
                cached = self._cache.get(key)
                if cached is not None:
                    logger.debug("Slot cache hit for %s", key)
                    return self._drop_past(cached, day, moment)

            generation = self._cache.generation(key[0], day)
            prepared = await self._prepare(technician_id, day, duration_minutes, moment, interval)
            slots = [] if prepared is None else filter_available_slots(prepared.grid, prepared.ctx)
            if use_cache:
                self._cache.set(key, slots, generation=generation)
            logger.info(
                "%d available slot(s) for technician %s on %s",
                len(slots), technician_id, day,
            )
            return slots

    async def evaluate_slots(
        self,
        technician_id: Optional[str],
        target_date: Union[str, date],
        duration_minutes: int,
        now: Optional[datetime] = None,
        interval_minutes: Optional[int] = None,
    ) -> list[SlotEvaluation]:
        """Every grid slot tagged available or not, with a rejection reason."""
        day, moment = self._validate(target_date, duration_minutes, interval_minutes, now)
        technician_id = technician_id or await self.default_technician()
        interval = await self._interval(interval_minutes)

        with evaluation_scope(technician_id, day, duration_minutes):
            prepared = await self._prepare(technician_id, day, duration_minutes, moment, interval)
            if prepared is None:
                return []
            return evaluate_slots(prepared.grid, prepared.ctx)

    async def check_availability(
        self,
        target_date: Union[str, date],
        duration_minutes: int,
        technician_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AvailabilityResponse:
        """
        Caller-facing availability lookup.

        A failed load is reported as ``error`` so it is never mistaken
        for a fully booked day.
        """
        day, moment = self._validate(target_date, duration_minutes, None, now)
        date_str = day.isoformat()
        try:
            technician_id = technician_id or await self.default_technician()
            slots = await self.compute_available_slots(
                technician_id, day, duration_minutes, now=moment
            )
            is_open = bool(slots) or await self._is_open(technician_id, day, moment)
        except AvailabilityFetchError:
            logger.warning("Availability load failed for %s", date_str, exc_info=True)
            return AvailabilityResponse(
                status=AvailabilityStatus.ERROR,
                date=date_str,
                technician_id=technician_id,
                duration_minutes=duration_minutes,
                message=ERROR_MESSAGE,
            )

        if slots:
            return AvailabilityResponse(
                status=AvailabilityStatus.OK,
                date=date_str,
                technician_id=technician_id,
                duration_minutes=duration_minutes,
                slots=[format_time(s) for s in slots],
                message=f"{len(slots)} time slots available on {date_str}.",
            )

        next_available = await self._next_available_label(
            technician_id, day + timedelta(days=1), duration_minutes, moment
        )
        if is_open:
            return AvailabilityResponse(
                status=AvailabilityStatus.FULLY_BOOKED,
                date=date_str,
                technician_id=technician_id,
                duration_minutes=duration_minutes,
                next_available=next_available,
                message=f"No slots available on {date_str}.",
            )
        return AvailabilityResponse(
            status=AvailabilityStatus.CLOSED,
            date=date_str,
            technician_id=technician_id,
            duration_minutes=duration_minutes,
            next_available=next_available,
            message=f"Not taking bookings on {date_str}.",
        )

    async def find_next_available(
        self,
        duration_minutes: int,
        technician_id: Optional[str] = None,
        start_date: Optional[Union[str, date]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[tuple[date, time]]:
        """First bookable (date, time) from ``start_date`` up to the booking horizon."""
        moment = self._coerce_now(now)
        day, _ = self._validate(start_date or moment.date(), duration_minutes, None, moment)
        horizon = await self._horizon(moment)
        while day <= horizon:
            slots = await self.compute_available_slots(
                technician_id, day, duration_minutes, now=moment
            )
            if slots:
                return day, slots[0]
            day += timedelta(days=1)
        return None

    # --- pipeline ---

    async def _prepare(
        self,
        technician_id: Optional[str],
        day: date,
        duration_minutes: int,
        moment: datetime,
        interval: int,
    ) -> Optional[_Evaluation]:
        """Load inputs and build the context; None means no slots at all."""
        if not await self._bookable_day(day, moment):
            return None
        if not technician_id:
            logger.info("No technician configured yet; no slots for %s", day)
            return None

        range_start, range_end = day_bounds(day)
        tasks = [
            asyncio.ensure_future(self._fetch(
                "working hours",
                self._source.get_working_hours(technician_id, day_of_week(day)),
            )),
            asyncio.ensure_future(self._fetch(
                "bookings",
                self._source.get_blocking_bookings(technician_id, day),
            )),
            asyncio.ensure_future(self._fetch(
                "blackout periods",
                self._source.get_blackout_periods(technician_id, range_start, range_end),
            )),
        ]
        try:
            hours, bookings, periods = await asyncio.gather(*tasks)
        except BaseException:
            # One failure aborts the evaluation; stop the other reads too.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        hours = resolve_working_hours(technician_id, day, hours)
        if hours is None:
            return None

        conflicts = DayConflicts.collect(
            technician_id, day, bookings, periods, self._config.scheduling.business_timezone
        )
        ctx = SlotContext(
            target_date=day,
            working_start=hours.start_time,
            working_end=hours.end_time,
            duration_minutes=duration_minutes,
            now=moment,
            conflicts=conflicts,
        )
        return _Evaluation(ctx=ctx, grid=generate_slots(hours.start_time, hours.end_time, interval))

    async def _fetch(self, what: str, call: Awaitable[T]) -> T:
        timeout = self._config.data_source.fetch_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except DuplicateScheduleError:
            raise
        except asyncio.TimeoutError as exc:
            raise AvailabilityFetchError(
                f"Timed out after {timeout}s loading {what}"
            ) from exc
        except Exception as exc:
            raise AvailabilityFetchError(f"Failed to load {what}: {exc}") from exc

    async def _bookable_day(self, day: date, moment: datetime) -> bool:
        business = await self.business_settings()
        if business.is_accepting_bookings is False:
            logger.info("Bookings are paused; no slots for %s", day)
            return False
        if day > await self._horizon(moment):
            logger.debug("%s is beyond the booking horizon", day)
            return False
        return True

    async def _is_open(self, technician_id: Optional[str], day: date, moment: datetime) -> bool:
        if not technician_id or not await self._bookable_day(day, moment):
            return False
        hours = await self._fetch(
            "working hours", self._source.get_working_hours(technician_id, day_of_week(day))
        )
        return resolve_working_hours(technician_id, day, hours) is not None

    async def _next_available_label(
        self, technician_id: Optional[str], start: date, duration_minutes: int, moment: datetime
    ) -> Optional[str]:
        try:
            found = await self.find_next_available(
                duration_minutes, technician_id, start_date=start, now=moment
            )
        except AvailabilityFetchError:
            logger.warning("Could not look ahead for the next free slot", exc_info=True)
            return None
        if found is None:
            return None
        return f"{found[0].isoformat()} {format_time(found[1])}"

    async def _horizon(self, moment: datetime) -> date:
        business = await self.business_settings()
        days = business.advance_booking_days
        if days is None:
            days = self._config.scheduling.advance_booking_days
        return moment.date() + timedelta(days=days)

    async def _interval(self, interval_minutes: Optional[int]) -> int:
        if interval_minutes is not None:
            return interval_minutes
        business = await self.business_settings()
        return business.slot_duration or self._config.scheduling.slot_interval_minutes

    # --- validation ---

    def _coerce_now(self, now: Optional[datetime]) -> datetime:
        if now is None:
            return self._clock()
        if not isinstance(now, datetime):
            raise InvalidAvailabilityRequest(f"now must be a datetime, got {now!r}")
        return to_local_naive(now, self._config.scheduling.business_timezone)

    def _validate(
        self,
        target_date: Union[str, date],
        duration_minutes: int,
        interval_minutes: Optional[int],
        now: Optional[datetime],
    ) -> tuple[date, datetime]:
        try:
            day = parse_date(target_date)
        except (ValueError, TypeError) as exc:
            raise InvalidAvailabilityRequest(str(exc)) from None
        if not isinstance(duration_minutes, int) or duration_minutes <= 0:
            raise InvalidAvailabilityRequest(
                f"Service duration must be a positive number of minutes, got {duration_minutes!r}"
            )
        if interval_minutes is not None and (
            not isinstance(interval_minutes, int) or interval_minutes <= 0
        ):
            raise InvalidAvailabilityRequest(
                f"Slot interval must be a positive number of minutes, got {interval_minutes!r}"
            )
        return day, self._coerce_now(now)

    @staticmethod
    def _drop_past(slots: list[time], day: date, moment: datetime) -> list[time]:
        if day > moment.date():
            return slots
        return [s for s in slots if datetime.combine(day, s) >= moment]


class AvailabilityLoader:
    """
    Holds the slot list shown for the current booking selection.

    Only the most recent request may update ``slots``; a response that
    arrives after the technician, date or duration changed is dropped.
    """

    def __init__(self, service: AvailabilityService) -> None:
        self._service = service
        self.current_key: Optional[tuple] = None
        self.slots: list[time] = []
        self.error: Optional[AvailabilityError] = None

    async def load(
        self,
        technician_id: Optional[str],
        target_date: Union[str, date],
        duration_minutes: int,
        now: Optional[datetime] = None,
    ) -> Optional[list[time]]:
        """
        Load slots for a selection.

        Returns:
            The slots, or None if a newer request superseded this one.

        Raises:
            AvailabilityError: If the current request fails.
        """
        key = (technician_id, str(target_date), duration_minutes)
        self.current_key = key
        try:
            slots = await self._service.compute_available_slots(
                technician_id, target_date, duration_minutes, now=now
            )
        except AvailabilityError as exc:
            if self.current_key != key:
                logger.debug("Ignoring failure of superseded request %s: %s", key, exc)
                return None
            self.slots = []
            self.error = exc
            raise

        if self.current_key != key:
            logger.debug("Discarding result of superseded request %s", key)
            return None
        self.slots = slots
        self.error = None
        return slots
