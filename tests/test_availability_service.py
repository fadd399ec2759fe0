"""Tests for AvailabilityService: data loading, errors, settings and caching."""

import asyncio
import logging
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from salon_booking.config import AppConfig, DataSourceConfig, SchedulingConfig
from salon_booking.errors import DuplicateScheduleError
from salon_booking.scheduling.schedule_resolver import select_active_hours
from salon_booking.schemas.availability_schema import AvailabilityStatus, SlotReason
from salon_booking.schemas.booking_schema import BusinessSettings
from salon_booking.tools.availability import (
    AvailabilityError,
    AvailabilityFetchError,
    AvailabilityLoader,
    AvailabilityService,
    InvalidAvailabilityRequest,
)
from salon_booking.tools.cache import SlotCache
from salon_booking.tools.data_source import DataSourceError, InMemoryDataSource
from tests.conftest import NOW, TECH, make_blackout, make_booking, make_hours, make_source, t

MONDAY = date(2024, 6, 3)
FULL_DAY = [t(x) for x in ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
                           "12:00", "12:30", "13:00", "13:30", "14:00", "14:30",
                           "15:00", "15:30", "16:00"]]


class _AllAtOnceSource(InMemoryDataSource):
    """Each day fetch waits until all three have started."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = 0
        self.all_entered = asyncio.Event()

    async def _simulate(self, name):
        await super()._simulate(name)
        if name == "business_settings":
            return
        self.entered += 1
        if self.entered == 3:
            self.all_entered.set()
        await self.all_entered.wait()


class _GatedBookingsSource(InMemoryDataSource):
    """Holds booking fetches for selected dates until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gates: dict[date, asyncio.Event] = {}

    async def get_blocking_bookings(self, technician_id, target_date):
        gate = self.gates.get(target_date)
        if gate is not None:
            await gate.wait()
        return await super().get_blocking_bookings(technician_id, target_date)


class _BookingsReadThenHeldSource(InMemoryDataSource):
    """Reads bookings, then holds the rows until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.read = asyncio.Event()
        self.release = asyncio.Event()

    async def get_blocking_bookings(self, technician_id, target_date):
        rows = await super().get_blocking_bookings(technician_id, target_date)
        self.read.set()
        await self.release.wait()
        return rows


class _StalledBlackoutsSource(InMemoryDataSource):
    """Blackout reads never finish on their own."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.blackouts_cancelled = False

    async def get_blackout_periods(self, technician_id, range_start, range_end):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.blackouts_cancelled = True
            raise
        return []


class _DuplicateSaturdaySource(InMemoryDataSource):
    """Saturday has two active rows; the read waits for ``gate`` first."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gate = asyncio.Event()

    async def get_working_hours(self, technician_id, weekday):
        if weekday != 6:
            return await super().get_working_hours(technician_id, weekday)
        await self.gate.wait()
        return select_active_hours([make_hours(6), make_hours(6, "10:00", "18:00")], 6)


def _seeded(source_cls, **kwargs):
    source = source_cls(
        business_settings=BusinessSettings(
            technician_id=TECH, slot_duration=30, advance_booking_days=60
        ),
        tz_name="UTC",
        **kwargs,
    )
    for weekday in range(7):
        source.add_working_hours(make_hours(weekday))
    return source


class TestComputeAvailableSlots:
    @pytest.mark.asyncio
    async def test_open_day_without_conflicts(self, service):
        slots = await service.compute_available_slots(TECH, MONDAY, 60)
        assert slots == FULL_DAY

    @pytest.mark.asyncio
    async def test_concrete_booking_scenario(self, source, service):
        source.add_booking(make_booking(MONDAY, "11:00", "12:00"))
        slots = await service.compute_available_slots(TECH, "2024-06-03", 60)
        assert t("10:30") not in slots
        assert t("16:30") not in slots
        assert slots[:4] == [t("09:00"), t("09:30"), t("10:00"), t("12:00")]
        assert slots[-1] == t("16:00")

    @pytest.mark.asyncio
    async def test_abutting_booking_keeps_slot(self, source, service):
        source.add_booking(make_booking(MONDAY, "09:00", duration=60))
        slots = await service.compute_available_slots(TECH, MONDAY, 60)
        assert slots[0] == t("10:00")

    @pytest.mark.asyncio
    async def test_cancelled_booking_does_not_block(self, source, service):
        source.add_booking(make_booking(MONDAY, "09:00", "17:00", status="cancelled"))
        assert await service.compute_available_slots(TECH, MONDAY, 60) == FULL_DAY

    @pytest.mark.asyncio
    async def test_full_day_blackout(self, source, service):
        source.add_blackout(make_blackout(datetime(2024, 6, 1), datetime(2024, 6, 2)))
        assert await service.compute_available_slots(TECH, "2024-06-01", 60) == []
        assert await service.compute_available_slots(TECH, "2024-06-02", 60) == FULL_DAY

    @pytest.mark.asyncio
    async def test_aware_blackout_converted_to_local_time(self, source, service):
        paris = ZoneInfo("Europe/Paris")
        source.add_blackout(make_blackout(
            datetime(2024, 6, 3, 11, 0, tzinfo=paris),
            datetime(2024, 6, 3, 13, 0, tzinfo=paris),
        ))
        slots = await service.compute_available_slots(TECH, MONDAY, 30)
        # 11:00-13:00 Paris is 09:00-11:00 UTC
        assert slots[0] == t("11:00")

    @pytest.mark.asyncio
    async def test_no_hours_for_weekday_is_empty(self):
        source = InMemoryDataSource(
            business_settings=BusinessSettings(technician_id=TECH), tz_name="UTC"
        )
        service = AvailabilityService(source, clock=lambda: NOW)
        assert await service.compute_available_slots(TECH, MONDAY, 60) == []

    @pytest.mark.asyncio
    async def test_bounds_respected(self, source, service):
        source.reset()
        source.add_working_hours(make_hours(1, "10:15", "13:40"))
        slots = await service.compute_available_slots(TECH, MONDAY, 45, use_cache=False)
        assert slots
        for slot in slots:
            start = datetime.combine(MONDAY, slot)
            assert slot >= t("10:15")
            assert (start.hour * 60 + start.minute + 45) <= 13 * 60 + 40

    @pytest.mark.asyncio
    async def test_idempotent(self, source, service):
        source.add_booking(make_booking(MONDAY, "13:00", "14:15"))
        first = await service.compute_available_slots(TECH, MONDAY, 45, use_cache=False)
        second = await service.compute_available_slots(TECH, MONDAY, 45, use_cache=False)
        assert first == second

    @pytest.mark.asyncio
    async def test_same_day_cutoff_uses_now(self, service):
        now = datetime(2024, 6, 3, 10, 0)
        slots = await service.compute_available_slots(TECH, MONDAY, 60, now=now)
        assert slots[0] == t("10:00")

    @pytest.mark.asyncio
    async def test_aware_now_converted(self, service):
        now = datetime(2024, 6, 3, 12, 0, tzinfo=ZoneInfo("Europe/Paris"))
        slots = await service.compute_available_slots(TECH, MONDAY, 60, now=now)
        assert slots[0] == t("10:00")

    @pytest.mark.asyncio
    async def test_fetches_run_concurrently(self):
        source = _AllAtOnceSource(
            business_settings=BusinessSettings(technician_id=TECH), tz_name="UTC"
        )
        source.add_working_hours(make_hours(1))
        service = AvailabilityService(source, clock=lambda: NOW)
        slots = await asyncio.wait_for(
            service.compute_available_slots(TECH, MONDAY, 60), timeout=2.0
        )
        assert slots == FULL_DAY


class TestSettings:
    @pytest.mark.asyncio
    async def test_default_technician_from_settings(self, service):
        assert await service.compute_available_slots(None, MONDAY, 60) == FULL_DAY

    @pytest.mark.asyncio
    async def test_default_technician_fetched_once(self, source, service):
        await service.compute_available_slots(None, MONDAY, 60)
        await service.compute_available_slots(None, date(2024, 6, 4), 60)
        assert source.call_counts["business_settings"] == 1

    @pytest.mark.asyncio
    async def test_unconfigured_technician_is_empty_not_error(self, source, service):
        source.business_settings = None
        assert await service.compute_available_slots(None, MONDAY, 60) == []
        assert "bookings" not in source.call_counts

    @pytest.mark.asyncio
    async def test_paused_bookings(self):
        source = make_source(is_accepting_bookings=False)
        service = AvailabilityService(source, clock=lambda: NOW)
        assert await service.compute_available_slots(TECH, MONDAY, 60) == []

    @pytest.mark.asyncio
    async def test_beyond_booking_horizon(self):
        source = make_source()
        source.business_settings = BusinessSettings(technician_id=TECH, advance_booking_days=2)
        service = AvailabilityService(source, clock=lambda: NOW)
        assert await service.compute_available_slots(TECH, date(2024, 6, 2), 60) == FULL_DAY
        assert await service.compute_available_slots(TECH, MONDAY, 60) == []

    @pytest.mark.asyncio
    async def test_slot_interval_from_settings(self):
        source = make_source()
        source.business_settings = BusinessSettings(
            technician_id=TECH, slot_duration=15, advance_booking_days=60
        )
        service = AvailabilityService(source, clock=lambda: NOW)
        slots = await service.compute_available_slots(TECH, MONDAY, 60)
        assert slots[:3] == [t("09:00"), t("09:15"), t("09:30")]
        assert slots[-1] == t("16:00")

    @pytest.mark.asyncio
    async def test_explicit_interval_wins(self, service):
        slots = await service.compute_available_slots(TECH, MONDAY, 60, interval_minutes=60)
        assert slots == [t(f"{h:02d}:00") for h in range(9, 17)]

    @pytest.mark.asyncio
    async def test_previous_evening_booking_past_midnight_blocks(self):
        source = InMemoryDataSource(
            business_settings=BusinessSettings(
                technician_id=TECH, slot_duration=30, advance_booking_days=60
            ),
            tz_name="UTC",
        )
        source.add_working_hours(make_hours(6, "00:00", "03:00"))
        source.add_booking(make_booking(date(2024, 5, 31), "23:00", duration=120))
        service = AvailabilityService(source, clock=lambda: NOW)

        slots = await service.compute_available_slots(TECH, date(2024, 6, 1), 60)
        assert slots == [t("01:00"), t("01:30"), t("02:00")]


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("fetch", ["working_hours", "bookings", "blackouts"])
    async def test_any_failed_fetch_aborts(self, source, service, fetch):
        source.fail_on.add(fetch)
        with pytest.raises(AvailabilityFetchError) as exc_info:
            await service.compute_available_slots(TECH, MONDAY, 60)
        assert isinstance(exc_info.value.__cause__, DataSourceError)

    @pytest.mark.asyncio
    async def test_failed_settings_fetch_aborts(self, source, service):
        source.fail_on.add("business_settings")
        with pytest.raises(AvailabilityFetchError):
            await service.compute_available_slots(None, MONDAY, 60)

    @pytest.mark.asyncio
    async def test_timeout_is_a_fetch_error(self):
        source = make_source()
        source.latency = 0.5
        config = AppConfig(data_source=DataSourceConfig(fetch_timeout_seconds=0.05))
        service = AvailabilityService(source, config=config, clock=lambda: NOW)
        with pytest.raises(AvailabilityFetchError, match="Timed out"):
            await service.compute_available_slots(TECH, MONDAY, 60)

    @pytest.mark.asyncio
    async def test_failed_fetch_cancels_the_others(self):
        source = _seeded(_StalledBlackoutsSource)
        source.fail_on.add("bookings")
        config = AppConfig(data_source=DataSourceConfig(fetch_timeout_seconds=30.0))
        service = AvailabilityService(source, config=config, clock=lambda: NOW)
        with pytest.raises(AvailabilityFetchError):
            await service.compute_available_slots(TECH, MONDAY, 60)
        assert source.blackouts_cancelled

    @pytest.mark.asyncio
    async def test_duplicate_hours_is_an_availability_error(self):
        source = _seeded(_DuplicateSaturdaySource)
        source.gate.set()
        service = AvailabilityService(source, clock=lambda: NOW)
        with pytest.raises(DuplicateScheduleError) as exc_info:
            await service.compute_available_slots(TECH, date(2024, 6, 1), 60)
        assert isinstance(exc_info.value, AvailabilityError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration", [0, -30, "60"])
    async def test_invalid_duration_rejected_before_fetch(self, source, service, duration):
        with pytest.raises(InvalidAvailabilityRequest):
            await service.compute_available_slots(TECH, MONDAY, duration)
        assert source.call_counts == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_date", ["2024-13-45", "tomorrow", ""])
    async def test_malformed_date_rejected(self, service, bad_date):
        with pytest.raises(InvalidAvailabilityRequest):
            await service.compute_available_slots(TECH, bad_date, 60)

    @pytest.mark.asyncio
    async def test_invalid_interval_rejected(self, service):
        with pytest.raises(InvalidAvailabilityRequest):
            await service.compute_available_slots(TECH, MONDAY, 60, interval_minutes=0)

    @pytest.mark.asyncio
    async def test_invalid_request_is_a_value_error(self, service):
        with pytest.raises(ValueError):
            await service.compute_available_slots(TECH, MONDAY, 0)


class TestEvaluateSlots:
    @pytest.mark.asyncio
    async def test_reasons_tagged(self, source, service):
        source.add_booking(make_booking(MONDAY, "11:00", "12:00"))
        source.add_blackout(make_blackout(datetime(2024, 6, 3, 14, 0), datetime(2024, 6, 3, 15, 0)))
        now = datetime(2024, 6, 3, 9, 45)

        results = await service.evaluate_slots(TECH, MONDAY, 60, now=now)
        reasons = {r.time_slot: r.reason for r in results}

        assert len(results) == 16
        assert reasons[t("09:00")] == SlotReason.PAST
        assert reasons[t("11:00")] == SlotReason.BOOKED
        assert reasons[t("14:00")] == SlotReason.BLOCKED
        assert reasons[t("16:30")] == SlotReason.OUTSIDE_HOURS
        assert reasons[t("12:00")] is None

    @pytest.mark.asyncio
    async def test_closed_day_has_no_evaluations(self):
        source = InMemoryDataSource(
            business_settings=BusinessSettings(technician_id=TECH), tz_name="UTC"
        )
        service = AvailabilityService(source, clock=lambda: NOW)
        assert await service.evaluate_slots(TECH, MONDAY, 60) == []


class TestCheckAvailability:
    @pytest.mark.asyncio
    async def test_ok_response(self, service):
        response = await service.check_availability(MONDAY, 60)
        assert response.status == AvailabilityStatus.OK
        assert response.available
        assert response.slots[0] == "09:00"
        assert response.technician_id == TECH

    @pytest.mark.asyncio
    async def test_fully_booked_points_to_next_day(self, source, service):
        source.add_booking(make_booking(MONDAY, "09:00", "17:00"))
        response = await service.check_availability(MONDAY, 60)
        assert response.status == AvailabilityStatus.FULLY_BOOKED
        assert response.next_available == "2024-06-04 09:00"

    @pytest.mark.asyncio
    async def test_closed_day(self):
        source = InMemoryDataSource(
            business_settings=BusinessSettings(technician_id=TECH, advance_booking_days=7),
            tz_name="UTC",
        )
        source.add_working_hours(make_hours(2))
        service = AvailabilityService(source, clock=lambda: NOW)
        response = await service.check_availability(MONDAY, 60)
        assert response.status == AvailabilityStatus.CLOSED
        assert response.next_available == "2024-06-04 09:00"

    @pytest.mark.asyncio
    async def test_load_failure_is_distinguishable(self, source, service):
        source.fail_on.add("bookings")
        response = await service.check_availability(MONDAY, 60)
        assert response.status == AvailabilityStatus.ERROR
        assert response.status != AvailabilityStatus.FULLY_BOOKED
        assert "retry" in response.message
        assert response.slots == []


class TestFindNextAvailable:
    @pytest.mark.asyncio
    async def test_skips_blacked_out_days(self, source, service):
        source.add_blackout(make_blackout(datetime(2024, 6, 3), datetime(2024, 6, 5, 12, 0)))
        found = await service.find_next_available(60, TECH, start_date=MONDAY)
        assert found == (date(2024, 6, 5), t("12:00"))

    @pytest.mark.asyncio
    async def test_none_within_horizon(self):
        source = make_source()
        source.business_settings = BusinessSettings(technician_id=TECH, advance_booking_days=1)
        source.add_blackout(make_blackout(datetime(2024, 5, 31), datetime(2024, 6, 2)))
        service = AvailabilityService(source, clock=lambda: NOW)
        assert await service.find_next_available(60) is None


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, source, service):
        await service.compute_available_slots(TECH, MONDAY, 60)
        await service.compute_available_slots(TECH, MONDAY, 60)
        assert source.call_counts["bookings"] == 1

    @pytest.mark.asyncio
    async def test_different_duration_is_a_different_entry(self, source, service):
        await service.compute_available_slots(TECH, MONDAY, 60)
        await service.compute_available_slots(TECH, MONDAY, 90)
        assert source.call_counts["bookings"] == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, source, service):
        await service.compute_available_slots(TECH, MONDAY, 60)
        source.add_booking(make_booking(MONDAY, "09:00", "10:00"))
        assert service.invalidate(TECH, MONDAY) == 1
        slots = await service.compute_available_slots(TECH, MONDAY, 60)
        assert t("09:00") not in slots

    @pytest.mark.asyncio
    async def test_cached_same_day_slots_still_respect_now(self, service):
        early = datetime(2024, 6, 3, 8, 0)
        later = datetime(2024, 6, 3, 12, 0)
        await service.compute_available_slots(TECH, MONDAY, 60, now=early)
        slots = await service.compute_available_slots(TECH, MONDAY, 60, now=later)
        assert slots[0] == t("12:00")

    @pytest.mark.asyncio
    async def test_expired_entry_refetched(self, source):
        ticks = iter([0.0, 100.0, 100.0])
        cache = SlotCache(ttl_seconds=60, clock=lambda: next(ticks))
        service = AvailabilityService(source, cache=cache, clock=lambda: NOW)
        await service.compute_available_slots(TECH, MONDAY, 60)
        await service.compute_available_slots(TECH, MONDAY, 60)
        assert source.call_counts["bookings"] == 2

    @pytest.mark.asyncio
    async def test_result_loaded_before_invalidation_not_cached(self):
        source = _seeded(_BookingsReadThenHeldSource)
        service = AvailabilityService(source, cache=SlotCache(ttl_seconds=60), clock=lambda: NOW)

        pending = asyncio.create_task(service.compute_available_slots(TECH, MONDAY, 60))
        await source.read.wait()
        source.add_booking(make_booking(MONDAY, "10:00", "11:00"))
        service.invalidate(TECH, MONDAY)
        source.release.set()

        assert t("10:00") in await pending
        assert len(service.cache) == 0
        fresh = await service.compute_available_slots(TECH, MONDAY, 60)
        assert t("10:00") not in fresh


class TestAvailabilityLoader:
    @pytest.mark.asyncio
    async def test_keeps_latest_result(self, service):
        loader = AvailabilityLoader(service)
        slots = await loader.load(TECH, "2024-06-03", 60)
        assert loader.slots == slots == FULL_DAY
        assert loader.error is None

    @pytest.mark.asyncio
    async def test_superseded_result_discarded(self):
        source = _GatedBookingsSource(
            business_settings=BusinessSettings(technician_id=TECH, advance_booking_days=60),
            tz_name="UTC",
        )
        for weekday in range(7):
            source.add_working_hours(make_hours(weekday))
        source.add_booking(make_booking(date(2024, 6, 4), "09:00", "17:00"))
        gate = asyncio.Event()
        source.gates[MONDAY] = gate
        loader = AvailabilityLoader(AvailabilityService(source, clock=lambda: NOW))

        first = asyncio.create_task(loader.load(TECH, "2024-06-03", 60))
        await asyncio.sleep(0)
        second = await loader.load(TECH, "2024-06-04", 60)
        gate.set()

        assert await first is None
        assert second == []
        assert loader.slots == []
        assert loader.current_key == (TECH, "2024-06-04", 60)

    @pytest.mark.asyncio
    async def test_current_failure_recorded(self, source, service):
        source.fail_on.add("blackouts")
        loader = AvailabilityLoader(service)
        with pytest.raises(AvailabilityFetchError):
            await loader.load(TECH, MONDAY, 60)
        assert isinstance(loader.error, AvailabilityFetchError)
        assert loader.slots == []

    @pytest.mark.asyncio
    async def test_superseded_duplicate_hours_failure_dropped(self):
        source = _seeded(_DuplicateSaturdaySource)
        loader = AvailabilityLoader(AvailabilityService(source, clock=lambda: NOW))

        first = asyncio.create_task(loader.load(TECH, "2024-06-01", 60))
        await asyncio.sleep(0)
        second = await loader.load(TECH, "2024-06-03", 60)
        source.gate.set()

        assert await first is None
        assert second == FULL_DAY
        assert loader.error is None

    @pytest.mark.asyncio
    async def test_current_duplicate_hours_failure_recorded(self):
        source = _seeded(_DuplicateSaturdaySource)
        source.gate.set()
        loader = AvailabilityLoader(AvailabilityService(source, clock=lambda: NOW))
        with pytest.raises(DuplicateScheduleError):
            await loader.load(TECH, "2024-06-01", 60)
        assert isinstance(loader.error, DuplicateScheduleError)


class TestEvaluationLogging:
    @pytest.mark.asyncio
    async def test_scheduling_records_carry_evaluation_key(self, caplog):
        source = InMemoryDataSource(
            business_settings=BusinessSettings(technician_id=TECH, advance_booking_days=60),
            tz_name="UTC",
        )
        service = AvailabilityService(source, clock=lambda: NOW)
        with caplog.at_level(logging.DEBUG, logger="salon_booking"):
            assert await service.compute_available_slots(TECH, MONDAY, 60) == []

        resolver = [
            r for r in caplog.records
            if r.name == "salon_booking.scheduling.schedule_resolver"
        ]
        assert resolver
        assert resolver[0].slot_key == f"{TECH}:2024-06-03:60"
        assert resolver[0].slot_date == "2024-06-03"
        assert resolver[0].duration_minutes == 60


class TestDefaultClock:
    def test_local_now_is_naive_business_time(self):
        config = AppConfig(scheduling=SchedulingConfig(business_timezone="UTC"))
        service = AvailabilityService(make_source(), config=config)
        now = service._clock()
        assert now.tzinfo is None
        assert abs((datetime.now(timezone.utc).replace(tzinfo=None) - now).total_seconds()) < 5
