# backend/slotbook/services/slots/__init__.py
"""
Slot generation and materialization.

generator   - pure rule + date → slots
resolver    - which rule / override applies to a vendor day
store       - persisted slot instances (materialize, regenerate, list, status)
redis_store - cached open times per vendor day
"""

from .config import BookingConfig, get_booking_config
from .generator import GeneratedSlot, generate_slots, merge_breaks
from .resolver import override_for_date, resolve_for_date
from .store import (
    MaterializationResult,
    bulk_set_status,
    extend_horizon,
    list_active,
    materialize_dates,
    materialize_day,
    open_times,
    regenerate_rule,
)
from .redis_store import SlotsRedisStore
from .invalidator import invalidate_days, invalidate_vendor_cache

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "GeneratedSlot",
    "generate_slots",
    "merge_breaks",
    "override_for_date",
    "resolve_for_date",
    "MaterializationResult",
    "bulk_set_status",
    "extend_horizon",
    "list_active",
    "materialize_dates",
    "materialize_day",
    "open_times",
    "regenerate_rule",
    "SlotsRedisStore",
    "invalidate_days",
    "invalidate_vendor_cache",
]
