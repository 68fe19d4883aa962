# backend/slotbook/routers/internal.py
"""
Internal API endpoints for trusted consumers.

These endpoints are NOT exposed through the gateway. They are called by
operators and schedulers on the private network.
"""

import logging

from fastapi import APIRouter, Depends
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_redis
from ..schemas.slots import HorizonExtendResult, SlotBulkStatusResult, SlotPurge
from ..services.slots import bulk_set_status, extend_horizon, get_booking_config, invalidate_days

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])


@router.post("/slots/purge", response_model=SlotBulkStatusResult)
def purge_slots(
    data: SlotPurge,
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """
    Force-delete slots, including ones holding live reservations.

    Bookings on purged slots keep their status but lose the slot link.
    """
    affected = bulk_set_status(db, data.slot_ids, data.vendor_id, "deleted", force=True)
    db.commit()
    invalidate_days(redis, affected)

    logger.warning(f"Purged slots {sorted(set(data.slot_ids))} of vendor={data.vendor_id}")
    return SlotBulkStatusResult(affected_count=len(set(data.slot_ids)), status="deleted")


@router.post("/horizon/extend", response_model=HorizonExtendResult)
def extend_slot_horizon(
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """Run the horizon extension now instead of waiting for the background loop."""
    result = extend_horizon(db, config=get_booking_config())
    db.commit()
    invalidate_days(redis, result.days)

    return HorizonExtendResult(
        slots_count=result.created,
        days_count=len(result.days),
        warnings_count=len(result.warnings),
    )
