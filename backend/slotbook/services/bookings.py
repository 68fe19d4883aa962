# backend/slotbook/services/bookings.py
"""
Booking lifecycle.

    pending → confirmed → in_progress → completed
                  └──────────────────────→ completed
    pending | confirmed | in_progress → cancelled

Every status change that touches capacity (create, cancel, reschedule) runs
inside a savepoint, so the booking row and the slot counter move together or
not at all. Commit is left to the caller.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from .reservations import release, reserve
from .slots.config import BookingConfig, get_booking_config
from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..models.tables import Bookings
from ..schemas.bookings import BookingCreate

logger = logging.getLogger(__name__)

PENDING = "pending"
CONFIRMED = "confirmed"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

ALLOWED_TRANSITIONS = {
    PENDING: {CONFIRMED, CANCELLED},
    CONFIRMED: {IN_PROGRESS, COMPLETED, CANCELLED},
    IN_PROGRESS: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}

# Statuses from which the booking can still be moved to another time
RESCHEDULABLE = (PENDING, CONFIRMED)


def _check_transition(booking: Bookings, new_status: str) -> None:
    if new_status not in ALLOWED_TRANSITIONS.get(booking.status, set()):
        raise InvalidTransitionError(
            f"Cannot change booking {booking.id} from {booking.status} to {new_status}"
        )


def _check_lead_time(scheduled_at: datetime, now: datetime, config: BookingConfig) -> None:
    earliest = now + timedelta(hours=config.min_advance_hours)
    if scheduled_at < earliest:
        raise ValidationError({
            "scheduled_at": [f"Booking must be at least {config.min_advance_hours} hours in advance"]
        })


def get_booking(
    db: Session,
    booking_id: int,
    vendor_id: int | None = None,
    customer_id: int | None = None,
) -> Bookings:
    """Booking visible to the vendor or the customer it belongs to."""
    booking = db.get(Bookings, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")

    owns = (vendor_id is not None and booking.vendor_id == vendor_id) or (
        customer_id is not None and booking.customer_id == customer_id
    )
    if not owns:
        raise NotFoundError("Booking not found")
    return booking


def create_booking(
    db: Session,
    customer_id: int,
    data: BookingCreate,
    now: datetime | None = None,
    config: BookingConfig | None = None,
) -> Bookings:
    """
    Reserve the slot at data.scheduled_at and insert a pending booking.

    Raises:
        ValidationError: too soon, or non-positive duration
        NoAvailabilityError / CapacityExceededError: from reserve()
    """
    config = config or get_booking_config()
    now = now or datetime.now()

    if data.duration_minutes <= 0:
        raise ValidationError({"duration_minutes": ["Duration must be positive"]})
    scheduled_at = data.scheduled_at.replace(second=0, microsecond=0, tzinfo=None)
    _check_lead_time(scheduled_at, now, config)

    with db.begin_nested():
        booking = Bookings(
            vendor_id=data.vendor_id,
            customer_id=customer_id,
            service_id=data.service_id,
            scheduled_at=scheduled_at,
            duration_minutes=data.duration_minutes,
            status=PENDING,
            notes=data.notes,
        )
        db.add(booking)
        db.flush()

        slot = reserve(
            db,
            vendor_id=data.vendor_id,
            slot_date=scheduled_at.date(),
            start_time=scheduled_at.strftime("%H:%M"),
            duration_minutes=data.duration_minutes,
            booking_id=booking.id,
            service_id=data.service_id,
        )
        booking.slot_id = slot.id
        db.flush()

    logger.info(
        f"Booking {booking.id} created: vendor={booking.vendor_id} customer={customer_id} "
        f"at {scheduled_at.isoformat()} slot={slot.id}"
    )
    return booking


def transition(db: Session, booking: Bookings, new_status: str) -> Bookings:
    """Status change that does not touch capacity (confirm, start, complete)."""
    if new_status == CANCELLED:
        raise ValueError("Use cancel_booking() to cancel")

    _check_transition(booking, new_status)
    old_status = booking.status
    booking.status = new_status
    db.flush()

    logger.info(f"Booking {booking.id}: {old_status} → {new_status}")
    return booking


def cancel_booking(
    db: Session,
    booking: Bookings,
    cancelled_by: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> Bookings:
    """Release the booking's seat and mark it cancelled, atomically."""
    _check_transition(booking, CANCELLED)
    now = now or datetime.now()

    with db.begin_nested():
        if booking.slot_id is not None:
            released = release(db, booking.slot_id, booking.id)
            if not released:
                logger.warning(f"Booking {booking.id} had no live reservation on slot={booking.slot_id}")
        booking.status = CANCELLED
        booking.cancelled_at = now
        booking.cancellation_reason = reason
        booking.cancelled_by = cancelled_by
        db.flush()

    logger.info(f"Booking {booking.id} cancelled by {cancelled_by}")
    return booking


def reschedule_booking(
    db: Session,
    booking: Bookings,
    scheduled_at: datetime,
    now: datetime | None = None,
    config: BookingConfig | None = None,
) -> Bookings:
    """
    Move a booking to another start time of the same vendor.

    The new seat is reserved before the old one is released. If reserving
    fails the savepoint is rolled back and the booking keeps its original
    slot and time.
    """
    config = config or get_booking_config()
    now = now or datetime.now()

    if booking.status not in RESCHEDULABLE:
        raise InvalidTransitionError(f"Cannot reschedule a {booking.status} booking")
    scheduled_at = scheduled_at.replace(second=0, microsecond=0, tzinfo=None)
    _check_lead_time(scheduled_at, now, config)
    if scheduled_at == booking.scheduled_at:
        raise ValidationError({"scheduled_at": ["Booking is already at this time"]})

    old_slot_id = booking.slot_id
    with db.begin_nested():
        slot = reserve(
            db,
            vendor_id=booking.vendor_id,
            slot_date=scheduled_at.date(),
            start_time=scheduled_at.strftime("%H:%M"),
            duration_minutes=booking.duration_minutes,
            booking_id=booking.id,
            service_id=booking.service_id,
        )
        if old_slot_id is not None:
            release(db, old_slot_id, booking.id)
        booking.slot_id = slot.id
        booking.scheduled_at = scheduled_at
        db.flush()

    logger.info(
        f"Booking {booking.id} rescheduled to {scheduled_at.isoformat()} "
        f"(slot {old_slot_id} → {slot.id})"
    )
    return booking
