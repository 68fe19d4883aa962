# backend/slotbook/routers/slots.py
"""
Slots API endpoints.

Vendor:
  GET  /slots              - materialized slots of the vendor
  POST /slots/bulk-status  - activate / deactivate / delete slots

Public:
  GET /slots/calendar - open slot counts per day within the horizon
  GET /slots/day      - open start times of one day (Redis cached)
  GET /slots/preview  - what the active rule would generate for a date
"""

import logging
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, Query
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_redis, get_vendor_id
from ..errors import ValidationError
from ..schemas.slots import (
    GeneratedSlotRead,
    SlotBulkStatus,
    SlotBulkStatusResult,
    SlotRead,
    SlotsCalendarResponse,
    SlotsDayResponse,
    SlotsDayStatus,
    SlotsPreviewResponse,
)
from ..services.slots import (
    SlotsRedisStore,
    bulk_set_status,
    generate_slots,
    get_booking_config,
    invalidate_days,
    list_active,
    open_times,
    override_for_date,
    resolve_for_date,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["slots"])


# ──────────────────────────────────────────────────────────────────────────────
# Vendor
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/", response_model=list[SlotRead])
def list_slots(
    target_date: date | None = Query(None, alias="date"),
    day_of_week: int | None = Query(None, ge=0, le=6),
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
):
    return list_active(db, vendor_id, target_date, day_of_week)


@router.post("/bulk-status", response_model=SlotBulkStatusResult)
def bulk_slot_status(
    data: SlotBulkStatus,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    affected = bulk_set_status(db, data.slot_ids, vendor_id, data.status)
    db.commit()
    invalidate_days(redis, affected)

    return SlotBulkStatusResult(affected_count=len(set(data.slot_ids)), status=data.status)


# ──────────────────────────────────────────────────────────────────────────────
# Public read path
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/calendar", response_model=SlotsCalendarResponse)
def get_slots_calendar(
    vendor_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """Get calendar of bookable days for a vendor."""
    config = get_booking_config()
    now = datetime.now()

    today = date.today()
    if start_date is None:
        start_date = today
    if end_date is None:
        end_date = start_date + timedelta(days=config.horizon_days)

    if start_date < today:
        start_date = today
    if end_date > today + timedelta(days=config.horizon_days):
        end_date = today + timedelta(days=config.horizon_days)
    if end_date < start_date:
        end_date = start_date

    dates = []
    current = start_date
    while current <= end_date:
        dates.append(current)
        current += timedelta(days=1)

    store = SlotsRedisStore(redis, config) if redis is not None else None
    cached_counts: dict[date, int | None] = {}
    if store is not None:
        try:
            cached_counts = store.mget_counts(vendor_id, dates, now)
        except RedisError:
            logger.exception(f"Slot cache read failed for vendor={vendor_id}")

    days_to_store: dict[date, list[tuple[str, float]]] = {}
    days = []
    for dt in dates:
        count = cached_counts.get(dt)

        if count is None:
            # Cache miss: calculate
            slots = open_times(db, vendor_id, dt, config, now)
            days_to_store[dt] = slots
            count = len(slots)

        days.append(SlotsDayStatus(
            date=dt,
            has_slots=count > 0,
            open_slots_count=count,
        ))

    if store is not None and days_to_store:
        try:
            store.store_multiple_days(vendor_id, days_to_store)
        except RedisError:
            logger.exception(f"Slot cache write failed for vendor={vendor_id}")

    return SlotsCalendarResponse(
        vendor_id=vendor_id,
        start_date=start_date,
        end_date=end_date,
        days=days,
        horizon_days=config.horizon_days,
        min_advance_hours=config.min_advance_hours,
    )


@router.get("/day", response_model=SlotsDayResponse)
def get_slots_day(
    vendor_id: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """Get open start times of a vendor for a specific day."""
    config = get_booking_config()
    now = datetime.now()

    today = date.today()
    max_date = today + timedelta(days=config.horizon_days)

    if target_date < today:
        raise ValidationError({"date": ["Date cannot be in the past"]})
    if target_date > max_date:
        raise ValidationError({"date": [f"Date cannot be more than {config.horizon_days} days ahead"]})

    store = SlotsRedisStore(redis, config) if redis is not None else None
    if store is not None:
        try:
            cached = store.get_available_slots(vendor_id, target_date, now)
        except RedisError:
            logger.exception(f"Slot cache read failed for vendor={vendor_id}")
            cached = None
        if cached is not None:
            return SlotsDayResponse(
                vendor_id=vendor_id,
                date=target_date,
                available_times=cached,
                cached=True,
            )

    slots = open_times(db, vendor_id, target_date, config, now)
    if store is not None:
        try:
            store.store_day_slots(vendor_id, target_date, slots)
        except RedisError:
            logger.exception(f"Slot cache write failed for vendor={vendor_id}")

    return SlotsDayResponse(
        vendor_id=vendor_id,
        date=target_date,
        available_times=[time_str for time_str, _ in slots],
        cached=False,
    )


@router.get("/preview", response_model=SlotsPreviewResponse)
def preview_slots(
    vendor_id: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
):
    """Slots the winning rule would generate for a date. Nothing is persisted."""
    rule = resolve_for_date(db, vendor_id, target_date)
    if rule is None:
        return SlotsPreviewResponse(vendor_id=vendor_id, date=target_date, slots=[])

    override = override_for_date(db, vendor_id, target_date)
    if override is not None and override.override_kind == "day_off":
        generated = []
    else:
        window = (override.start_time, override.end_time) if override is not None else None
        generated = generate_slots(rule, target_date, window)

    return SlotsPreviewResponse(
        vendor_id=vendor_id,
        date=target_date,
        rule_id=rule.id,
        override_kind=override.override_kind if override is not None else None,
        slots=[GeneratedSlotRead.model_validate(s) for s in generated],
    )
