# backend/slotbook/services/slots/redis_store.py
"""
Redis cache of open start times per vendor day, using Sorted Sets.

Key format: slots:day:{vendor_id}:{date}
Value: Sorted Set where member = "HH:MM", score = expire_ts
       (unix timestamp when the slot stops being bookable).

Query: ZRANGEBYSCORE key {now_ts} +inf → only live slots.
Sentinel: "__empty__" with score=0 marks "calculated, zero slots".

The cache is a read-path accelerator only; reservations always go to the
database. Every mutation of a vendor day invalidates its key.
"""

import time
from datetime import date, datetime
from redis import Redis

from .config import BookingConfig, get_booking_config


EMPTY_SENTINEL = "__empty__"


class SlotsRedisStore:
    """Redis storage wrapper using Sorted Sets for open-slot data."""

    KEY_PREFIX = "slots:day"

    def __init__(self, redis: Redis, config: BookingConfig | None = None):
        self.redis = redis
        self.config = config or get_booking_config()

    def _key(self, vendor_id: int, dt: date) -> str:
        return f"{self.KEY_PREFIX}:{vendor_id}:{dt.isoformat()}"

    def _expire_at(self, dt: date, slots: list[tuple[str, float]]) -> int:
        if slots:
            # Key lives until the last slot expires + 1 minute buffer
            expire_at = int(max(expire_ts for _, expire_ts in slots)) + 60
        else:
            end_of_day = datetime.combine(dt, datetime.max.time())
            expire_at = int(end_of_day.timestamp()) + 60
        return min(expire_at, int(time.time()) + self.config.cache_ttl_seconds)

    def _queue_store(self, pipe, vendor_id: int, dt: date, slots: list[tuple[str, float]]) -> None:
        key = self._key(vendor_id, dt)
        pipe.delete(key)
        if slots:
            pipe.zadd(key, {time_str: expire_ts for time_str, expire_ts in slots})
        else:
            # Empty day: sentinel so EXISTS returns True
            pipe.zadd(key, {EMPTY_SENTINEL: 0})
        pipe.expireat(key, self._expire_at(dt, slots))

    # ── Write ────────────────────────────────────────────────────────────

    def store_day_slots(
        self,
        vendor_id: int,
        dt: date,
        slots: list[tuple[str, float]],
    ) -> None:
        """
        Store calculated open times for a day.

        Args:
            vendor_id: Vendor ID
            dt: Target date
            slots: List of (time_str, expire_ts) pairs.
                   Empty list → sentinel is stored.
        """
        pipe = self.redis.pipeline()
        self._queue_store(pipe, vendor_id, dt, slots)
        pipe.execute()

    def store_multiple_days(
        self,
        vendor_id: int,
        days_slots: dict[date, list[tuple[str, float]]],
    ) -> None:
        """Batch store open times for multiple days via pipeline."""
        if not days_slots:
            return

        pipe = self.redis.pipeline()
        for dt, slots in days_slots.items():
            self._queue_store(pipe, vendor_id, dt, slots)
        pipe.execute()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_available_slots(
        self,
        vendor_id: int,
        dt: date,
        now: datetime,
    ) -> list[str] | None:
        """
        Get live open times for a day.

        Returns:
            Sorted list of "HH:MM" strings, or None on cache miss.
        """
        key = self._key(vendor_id, dt)
        if not self.redis.exists(key):
            return None

        members = self.redis.zrangebyscore(key, now.timestamp(), "+inf")
        times = [m.decode() if isinstance(m, bytes) else m for m in members]
        return [t for t in times if t != EMPTY_SENTINEL]

    def mget_counts(
        self,
        vendor_id: int,
        dates: list[date],
        now: datetime,
    ) -> dict[date, int | None]:
        """
        Batch get open-slot counts for multiple dates.

        Returns:
            Dict mapping date → count (or None on cache miss).
        """
        if not dates:
            return {}

        now_ts = now.timestamp()
        keys = [self._key(vendor_id, dt) for dt in dates]

        # First pass: check existence
        pipe = self.redis.pipeline()
        for key in keys:
            pipe.exists(key)
        exists_results = pipe.execute()

        # Second pass: count live members of existing keys
        pipe = self.redis.pipeline()
        for key, exists in zip(keys, exists_results):
            if exists:
                pipe.zcount(key, now_ts, "+inf")
        count_results = pipe.execute()

        result = {}
        count_idx = 0
        for dt, exists in zip(dates, exists_results):
            if exists:
                result[dt] = count_results[count_idx]
                count_idx += 1
            else:
                result[dt] = None

        return result

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_day_slots(
        self,
        vendor_id: int,
        dates: list[date] | None = None,
    ) -> int:
        """
        Delete cached days.

        Args:
            vendor_id: Vendor ID
            dates: Specific dates, or None to delete everything for the vendor.

        Returns:
            Number of deleted keys.
        """
        if dates:
            keys = [self._key(vendor_id, dt) for dt in dates]
        else:
            keys = list(self.redis.scan_iter(match=f"{self.KEY_PREFIX}:{vendor_id}:*"))

        if not keys:
            return 0

        return self.redis.delete(*keys)
