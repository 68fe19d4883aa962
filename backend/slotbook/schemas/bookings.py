# backend/slotbook/schemas/bookings.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class BookingCreate(BaseModel):
    vendor_id: int
    service_id: Optional[int] = None

    scheduled_at: datetime
    duration_minutes: int

    notes: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class BookingReschedule(BaseModel):
    scheduled_at: datetime


class BookingRead(BaseModel):
    id: int

    vendor_id: int
    customer_id: int
    service_id: Optional[int] = None
    slot_id: Optional[int] = None

    scheduled_at: datetime
    duration_minutes: int

    status: str
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[int] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
