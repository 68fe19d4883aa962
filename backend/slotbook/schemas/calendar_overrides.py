# backend/slotbook/schemas/calendar_overrides.py

from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, field_validator

from .common import GenerationWarningRead, check_time_format


class CalendarOverrideCreate(BaseModel):
    date_start: date
    date_end: date

    override_kind: Literal["day_off", "custom_hours"]
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    reason: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return check_time_format(v) if v is not None else v


class CalendarOverrideRead(BaseModel):
    id: int
    vendor_id: int

    date_start: date
    date_end: date

    override_kind: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    reason: Optional[str] = None

    created_at: datetime

    model_config = {"from_attributes": True}


class CalendarOverrideResult(BaseModel):
    override: CalendarOverrideRead
    slots_count: int = 0
    warnings: list[GenerationWarningRead] = []
