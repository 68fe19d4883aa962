# backend/slotbook/schemas/availability.py
"""
Pydantic schemas for recurring availability.

Only shape and format are checked here; business rules (ranges, ordering,
breaks inside working hours) are validated by services.availability so that
non-HTTP callers get the same field-level errors.
"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .common import GenerationWarningRead, check_time_format

FULL_DAY_NAMES = {
    "monday": "mon",
    "tuesday": "tue",
    "wednesday": "wed",
    "thursday": "thu",
    "friday": "fri",
    "saturday": "sat",
    "sunday": "sun",
}


def normalize_day(value: str) -> str:
    """"Monday" / "monday" / "mon" → "mon". Unknown names pass through."""
    value = value.strip().lower()
    return FULL_DAY_NAMES.get(value, value)


class BreakTime(BaseModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return check_time_format(v)


class WorkingHours(BaseModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return check_time_format(v)


class DateRange(BaseModel):
    start: date
    end: date


class ScheduleCreate(BaseModel):
    """Set a vendor schedule for one or more weekdays."""
    working_days: list[str] = Field(min_length=1)
    working_hours: WorkingHours
    break_times: Optional[list[BreakTime]] = None
    default_duration: int = 60
    buffer_time: int = 15
    max_bookings: int = 1
    apply_to: Literal["ongoing", "dateRange"] = "ongoing"
    date_range: Optional[DateRange] = None

    @field_validator("working_days")
    @classmethod
    def normalize_days(cls, v: list[str]) -> list[str]:
        return [normalize_day(d) for d in v]


class RuleUpdate(BaseModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    break_times: Optional[list[BreakTime]] = None
    default_duration: Optional[int] = None
    buffer_time: Optional[int] = None
    max_bookings: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return check_time_format(v) if v is not None else v


class RuleRead(BaseModel):
    id: int
    vendor_id: int
    day_of_week: str
    start_time: str
    end_time: str
    break_times: list[BreakTime] = []
    default_duration: int
    buffer_time: int
    max_bookings: int
    effective_from: Optional[date] = None
    effective_until: Optional[date] = None
    is_active: bool
    generated_until: Optional[date] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ScheduleResult(BaseModel):
    availabilities: list[RuleRead]
    slots_count: int
    warnings: list[GenerationWarningRead] = []


class RuleUpdateResult(BaseModel):
    availability: RuleRead
    regenerated: bool
    slots_count: int = 0
    warnings: list[GenerationWarningRead] = []


class RegenerateResult(BaseModel):
    rule_id: int
    dates_count: int
    slots_count: int
    removed_count: int
    warnings: list[GenerationWarningRead] = []


class BulkRuleAction(BaseModel):
    availability_ids: list[int] = Field(min_length=1)
    action: Literal["activate", "deactivate", "delete"]
    regenerate_slots: bool = True


class BulkRuleResult(BaseModel):
    affected_count: int
    action: str
    warnings: list[GenerationWarningRead] = []


class CalendarEvent(BaseModel):
    id: int
    title: str = "Available"
    date: date
    start: str  # ISO "YYYY-MM-DDTHH:MM"
    end: str
    type: str = "availability"


class WeeklyOverviewResponse(BaseModel):
    week_start: date
    week_end: date
    events: list[CalendarEvent]
