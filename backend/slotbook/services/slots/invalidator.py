# backend/slotbook/services/slots/invalidator.py
"""
Cache invalidation for vendor day slots.

Triggers:
✓ Slots (re)materialized for a date → invalidate that date
✓ Reservation taken or released → invalidate the slot's date
✓ Slot status changed by the vendor → invalidate the slot dates
✓ Calendar override created/deleted → invalidate covered dates

Invalidation runs after commit and never fails the request: Redis being down
only costs a cache miss later.
"""

import logging
from datetime import date, timedelta
from redis import Redis
from redis.exceptions import RedisError

from .redis_store import SlotsRedisStore

logger = logging.getLogger(__name__)


def invalidate_vendor_cache(
    redis: Redis | None,
    vendor_id: int,
    dates: list[date] | None = None,
) -> int:
    """
    Invalidate cached days for a vendor.

    Args:
        redis: Redis client (None = caching disabled)
        vendor_id: Vendor ID
        dates: Specific dates to invalidate, or None for all cached dates

    Returns:
        Number of deleted cache keys
    """
    if redis is None:
        return 0

    store = SlotsRedisStore(redis)
    try:
        return store.delete_day_slots(vendor_id, sorted(set(dates)) if dates else None)
    except RedisError:
        logger.exception(f"Slot cache invalidation failed for vendor={vendor_id}")
        return 0


def get_affected_dates(
    date_start: date,
    date_end: date,
) -> list[date]:
    """
    Get list of dates in range [date_start, date_end].

    Args:
        date_start: Start date (inclusive)
        date_end: End date (inclusive)

    Returns:
        List of dates
    """
    if date_start > date_end:
        date_start, date_end = date_end, date_start

    dates = []
    current = date_start
    while current <= date_end:
        dates.append(current)
        current += timedelta(days=1)

    return dates


def get_affected_dates_from_override(override) -> list[date]:
    """Dates covered by a calendar override (date_start..date_end)."""
    return get_affected_dates(override.date_start, override.date_end)


def invalidate_days(
    redis: Redis | None,
    days: list[tuple[int, date]],
) -> int:
    """Invalidate (vendor_id, date) pairs, grouped per vendor."""
    by_vendor: dict[int, set[date]] = {}
    for vendor_id, dt in days:
        by_vendor.setdefault(vendor_id, set()).add(dt)

    deleted = 0
    for vendor_id, dates in by_vendor.items():
        deleted += invalidate_vendor_cache(redis, vendor_id, list(dates))
    return deleted
