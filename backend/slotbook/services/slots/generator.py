# backend/slotbook/services/slots/generator.py
"""
Slot generator: recurring rule + calendar date → ordered candidate slots.

Pure and deterministic. Persistence lives in store.py.

Algorithm:
  t = start_time, step = duration + buffer
  candidate [t, t + duration) is skipped when it intersects a break
  generation stops once t + duration > end_time

Breaks are normalized (sorted, overlapping/touching merged) first, so the
result never depends on the order breaks were entered in.
"""

from dataclasses import dataclass
from datetime import date

from .config import minutes_to_time_str, time_str_to_minutes
from ...models.tables import DAY_NAMES


@dataclass(frozen=True)
class GeneratedSlot:
    slot_date: date
    day_of_week: int  # 0 = Monday
    start_time: str   # "HH:MM"
    end_time: str
    max_bookings: int = 1

    @property
    def start_minutes(self) -> int:
        return time_str_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_str_to_minutes(self.end_time)


def day_index(day_name: str) -> int:
    """"mon" → 0 … "sun" → 6."""
    return DAY_NAMES.index(day_name)


def merge_breaks(break_times: list[dict] | None) -> list[tuple[int, int]]:
    """
    Normalize break intervals to sorted, non-overlapping minute ranges.

    Raises:
        ValueError: on malformed entries (missing keys, end <= start).
    """
    intervals: list[tuple[int, int]] = []
    for item in break_times or []:
        start = time_str_to_minutes(item["start"])
        end = time_str_to_minutes(item["end"])
        if end <= start:
            raise ValueError(f"Break {item['start']}-{item['end']} ends before it starts")
        intervals.append((start, end))

    intervals.sort()
    merged: list[tuple[int, int]] = []
    for start, end in intervals:
        if merged and start <= merged[-1][1]:
            prev_start, prev_end = merged[-1]
            merged[-1] = (prev_start, max(prev_end, end))
        else:
            merged.append((start, end))
    return merged


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval intersection: [a) ∩ [b) ≠ ∅."""
    return start_a < end_b and end_a > start_b


def generate_slots(
    rule,
    target_date: date,
    window: tuple[str, str] | None = None,
) -> list[GeneratedSlot]:
    """
    Generate the ordered slot list of `rule` for `target_date`.

    Args:
        rule: Anything shaped like RecurringAvailabilities
              (day_of_week, start_time, end_time, break_times,
              default_duration, buffer_time, max_bookings)
        target_date: Calendar date; a weekday other than the rule's yields []
        window: Optional ("HH:MM", "HH:MM") replacing the working hours,
                e.g. from a custom_hours override. Breaks still apply.

    Returns:
        Slots in ascending start order. Empty list = no room for a slot.
    """
    weekday = day_index(rule.day_of_week)
    if target_date.weekday() != weekday:
        return []

    start_str, end_str = window if window else (rule.start_time, rule.end_time)
    start_min = time_str_to_minutes(start_str)
    end_min = time_str_to_minutes(end_str)

    duration = rule.default_duration
    buffer = rule.buffer_time or 0
    if duration <= 0:
        raise ValueError(f"Slot duration must be positive, got {duration}")
    if buffer < 0:
        raise ValueError(f"Buffer time must not be negative, got {buffer}")

    breaks = merge_breaks(rule.break_times)
    capacity = rule.max_bookings or 1
    step = duration + buffer

    slots: list[GeneratedSlot] = []
    t = start_min
    while t + duration <= end_min:
        slot_end = t + duration
        if not any(overlaps(t, slot_end, b_start, b_end) for b_start, b_end in breaks):
            slots.append(GeneratedSlot(
                slot_date=target_date,
                day_of_week=weekday,
                start_time=minutes_to_time_str(t),
                end_time=minutes_to_time_str(slot_end),
                max_bookings=capacity,
            ))
        t += step

    return slots
