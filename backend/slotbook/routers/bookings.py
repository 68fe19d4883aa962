# backend/slotbook/routers/bookings.py
# PATCH = 405, DELETE = 405; status changes go through explicit actions

from fastapi import APIRouter, Depends, HTTPException, status
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_actor_ids, get_customer_id, get_redis, get_vendor_id
from ..models.tables import Bookings as DBBookings
from ..schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingRead,
    BookingReschedule,
)
from ..services import bookings as booking_service
from ..services.events import booking_payload, emit_event
from ..services.slots import invalidate_vendor_cache

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _after_commit(redis: Redis | None, booking: DBBookings, event_type: str, *extra_dates) -> None:
    """Drop cached days whose open times changed and notify consumers."""
    dates = [booking.scheduled_at.date(), *extra_dates]
    invalidate_vendor_cache(redis, booking.vendor_id, dates)
    emit_event(redis, event_type, booking_payload(booking))


@router.post("/", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    customer_id: int = Depends(get_customer_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    obj = booking_service.create_booking(db, customer_id, data)
    db.commit()
    db.refresh(obj)
    _after_commit(redis, obj, "booking_created")
    return obj


@router.get("/{id}", response_model=BookingRead)
def get_booking(
    id: int,
    actor: tuple[int | None, int | None] = Depends(get_actor_ids),
    db: Session = Depends(get_db),
):
    vendor_id, customer_id = actor
    return booking_service.get_booking(db, id, vendor_id=vendor_id, customer_id=customer_id)


def _vendor_transition(id: int, new_status: str, vendor_id: int, db: Session, redis: Redis | None):
    obj = booking_service.get_booking(db, id, vendor_id=vendor_id)
    booking_service.transition(db, obj, new_status)
    db.commit()
    db.refresh(obj)
    emit_event(redis, f"booking_{new_status}", booking_payload(obj))
    return obj


@router.post("/{id}/confirm", response_model=BookingRead)
def confirm_booking(
    id: int,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    return _vendor_transition(id, booking_service.CONFIRMED, vendor_id, db, redis)


@router.post("/{id}/start", response_model=BookingRead)
def start_booking(
    id: int,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    return _vendor_transition(id, booking_service.IN_PROGRESS, vendor_id, db, redis)


@router.post("/{id}/complete", response_model=BookingRead)
def complete_booking(
    id: int,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    return _vendor_transition(id, booking_service.COMPLETED, vendor_id, db, redis)


@router.post("/{id}/cancel", response_model=BookingRead)
def cancel_booking(
    id: int,
    data: BookingCancel,
    actor: tuple[int | None, int | None] = Depends(get_actor_ids),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    vendor_id, customer_id = actor
    obj = booking_service.get_booking(db, id, vendor_id=vendor_id, customer_id=customer_id)
    cancelled_by = vendor_id if vendor_id == obj.vendor_id else customer_id

    booking_service.cancel_booking(db, obj, cancelled_by, data.reason)
    db.commit()
    db.refresh(obj)
    _after_commit(redis, obj, "booking_cancelled")
    return obj


@router.post("/{id}/reschedule", response_model=BookingRead)
def reschedule_booking(
    id: int,
    data: BookingReschedule,
    actor: tuple[int | None, int | None] = Depends(get_actor_ids),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    vendor_id, customer_id = actor
    obj = booking_service.get_booking(db, id, vendor_id=vendor_id, customer_id=customer_id)
    old_date = obj.scheduled_at.date()

    booking_service.reschedule_booking(db, obj, data.scheduled_at)
    db.commit()
    db.refresh(obj)
    _after_commit(redis, obj, "booking_rescheduled", old_date)
    return obj


@router.patch("/{id}")
def patch_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
