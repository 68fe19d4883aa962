# backend/slotbook/routers/calendar_overrides.py
# PATCH = 405, DELETE = ALLOWED (hard)

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Response, status
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_redis, get_vendor_id
from ..schemas.calendar_overrides import (
    CalendarOverrideCreate,
    CalendarOverrideRead,
    CalendarOverrideResult,
)
from ..services import calendar_overrides as override_service
from ..services.slots import invalidate_days, invalidate_vendor_cache
from ..services.slots.invalidator import get_affected_dates_from_override

router = APIRouter(prefix="/calendar_overrides", tags=["calendar_overrides"])


@router.get("/", response_model=list[CalendarOverrideRead])
def list_calendar_overrides(
    from_date: date | None = None,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
):
    return override_service.list_overrides(db, vendor_id, from_date)


@router.post(
    "/", response_model=CalendarOverrideResult, status_code=status.HTTP_201_CREATED
)
def create_calendar_override(
    data: CalendarOverrideCreate,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    override, result = override_service.create_override(db, vendor_id, data)
    db.commit()
    db.refresh(override)

    # Covered dates beyond the horizon may still be cached as "empty"
    invalidate_vendor_cache(redis, vendor_id, get_affected_dates_from_override(override))

    return CalendarOverrideResult(
        override=CalendarOverrideRead.model_validate(override),
        slots_count=result.created,
        warnings=[w.to_dict() for w in result.warnings],
    )


@router.patch("/{id}")
def patch_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_calendar_override(
    id: int,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    result = override_service.delete_override(db, id, vendor_id)
    db.commit()
    invalidate_days(redis, result.days)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
