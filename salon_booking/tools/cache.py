"""Short-lived cache of computed slot lists."""

import time as _time
from collections import OrderedDict
from datetime import date, time
from typing import Callable, Optional

from salon_booking.config import settings
from salon_booking.logging_context import get_slot_logger

logger = get_slot_logger(__name__)

# (technician_id, date, duration_minutes, interval_minutes)
CacheKey = tuple[str, date, int, int]


# (epoch, per technician/day counter) at the moment a computation started
Generation = tuple[int, int]


class SlotCache:
    """
    TTL cache keyed by technician, date, duration and slot interval.

    Entries expire after ``ttl_seconds``; the oldest entry is evicted
    once ``max_entries`` is reached. Booking changes must call
    ``invalidate`` so a freshly booked slot is never offered again.

    A computation that overlaps an invalidation must not repopulate the
    cache with its result: callers take ``generation()`` before loading
    and pass it to ``set``, which drops the write if the technician's
    day was invalidated in between.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = _time.monotonic,
    ) -> None:
        self.ttl_seconds = (
            settings.cache.slot_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self.max_entries = max_entries or settings.cache.slot_cache_max_entries
        self._clock = clock
        self._entries: OrderedDict[CacheKey, tuple[float, tuple[time, ...]]] = OrderedDict()
        self._epoch = 0
        self._generations: dict[tuple[str, date], int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def generation(self, technician_id: str, target_date: date) -> Generation:
        return self._epoch, self._generations.get((technician_id, target_date), 0)

    def get(self, key: CacheKey) -> Optional[list[time]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, slots = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return list(slots)

    def set(
        self, key: CacheKey, slots: list[time], generation: Optional[Generation] = None
    ) -> bool:
        """Store ``slots``; returns False if ``generation`` is stale and nothing was stored."""
        if generation is not None and generation != self.generation(key[0], key[1]):
            logger.debug("Not caching %s: invalidated while it was computed", key)
            return False
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[key] = (self._clock(), tuple(slots))
        return True

    def invalidate(
        self, technician_id: Optional[str] = None, target_date: Optional[date] = None
    ) -> int:
        """Drop entries matching the technician and/or date (all entries if neither)."""
        if technician_id is not None and target_date is not None:
            pair = (technician_id, target_date)
            self._generations[pair] = self._generations.get(pair, 0) + 1
        else:
            self._bump_epoch()
        stale = [
            key for key in self._entries
            if (technician_id is None or key[0] == technician_id)
            and (target_date is None or key[1] == target_date)
        ]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cached slot list(s)", len(stale))
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
        self._bump_epoch()

    def _bump_epoch(self) -> None:
        # Older per-day counters are meaningless once the epoch moves on.
        self._epoch += 1
        self._generations.clear()
