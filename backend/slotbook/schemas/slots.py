# backend/slotbook/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field


class SlotRead(BaseModel):
    id: int
    vendor_id: int
    service_id: Optional[int] = None
    slot_date: date
    day_of_week: int
    start_time: str
    end_time: str
    is_available: bool
    max_bookings: int
    reservation_count: int

    model_config = {"from_attributes": True}


class SlotBulkStatus(BaseModel):
    slot_ids: list[int] = Field(min_length=1)
    status: Literal["active", "inactive", "deleted"]


class SlotBulkStatusResult(BaseModel):
    affected_count: int
    status: str


class SlotPurge(BaseModel):
    """Administrative force delete, including reserved slots."""
    vendor_id: int
    slot_ids: list[int] = Field(min_length=1)


class SlotsDayStatus(BaseModel):
    """Status of a single day in calendar."""
    date: date
    has_slots: bool
    open_slots_count: int = 0

    model_config = {"from_attributes": True}


class SlotsCalendarResponse(BaseModel):
    """Response with calendar of available days."""
    vendor_id: int
    start_date: date
    end_date: date
    days: list[SlotsDayStatus]

    # Metadata
    horizon_days: int
    min_advance_hours: int


class SlotsDayResponse(BaseModel):
    """Open start times of a vendor day."""
    vendor_id: int
    date: date
    available_times: list[str]
    cached: bool = False


class GeneratedSlotRead(BaseModel):
    start_time: str
    end_time: str
    max_bookings: int

    model_config = {"from_attributes": True}


class SlotsPreviewResponse(BaseModel):
    """Slots the active rule would generate for a date (nothing persisted)."""
    vendor_id: int
    date: date
    rule_id: Optional[int] = None
    override_kind: Optional[str] = None
    slots: list[GeneratedSlotRead]


class HorizonExtendResult(BaseModel):
    slots_count: int
    days_count: int
    warnings_count: int
