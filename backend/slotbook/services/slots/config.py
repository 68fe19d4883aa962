# backend/slotbook/services/slots/config.py
"""
Booking configuration and "HH:MM" time helpers for slot calculation.
"""

from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the availability/slots system.

    Attributes:
        horizon_days: How many days ahead slots are materialized and shown
        min_advance_hours: Minimum hours before a slot can be booked
        cache_ttl_seconds: Upper bound for Redis day cache lifetime
        extend_interval_seconds: Pause between horizon extension runs
        min_duration / max_duration: Bounds for slot duration, minutes
        max_buffer: Upper bound for buffer time between slots, minutes
    """
    horizon_days: int = 60
    min_advance_hours: int = 2
    cache_ttl_seconds: int = 86400  # 24 hours
    extend_interval_seconds: int = 3600
    min_duration: int = 15
    max_duration: int = 480
    max_buffer: int = 120

    def __post_init__(self):
        """Validate configuration."""
        if self.horizon_days < 1:
            raise ValueError(f"horizon_days must be positive, got {self.horizon_days}")
        if self.min_duration > self.max_duration:
            raise ValueError("min_duration must not exceed max_duration")


@lru_cache
def get_booking_config() -> BookingConfig:
    """
    Get booking configuration (singleton).

    In the future, this can read from environment or database.
    """
    return BookingConfig()


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" (or "HH:MM:SS") to minutes since midnight."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 24 and 0 <= minute < 60) or (hour == 24 and minute):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return hour * 60 + minute


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
