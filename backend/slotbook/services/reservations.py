# backend/slotbook/services/reservations.py
"""
Booking reservation engine.

The only code path that changes SlotInstances.reservation_count.

reserve() increments with a single conditional UPDATE:

    UPDATE slot_instances
       SET reservation_count = reservation_count + 1
     WHERE id = :id AND is_available AND reservation_count < max_bookings

rowcount 0 means another transaction took the last seat (or the vendor
closed the slot) between our read and the update. The database row lock
(PostgreSQL) or write lock (SQLite, BEGIN IMMEDIATE) serializes the
competing updates, so capacity can never be exceeded.

Each reservation also gets a ledger row in slot_reservations; release()
flips its released_at, which makes a second release a no-op.
"""

import logging
from datetime import date, datetime

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from .slots.config import time_str_to_minutes
from .slots.resolver import override_for_date, resolve_for_date
from ..errors import CapacityExceededError, NoAvailabilityError
from ..models.tables import SlotInstances, SlotReservations

logger = logging.getLogger(__name__)


def find_slot(
    db: Session,
    vendor_id: int,
    slot_date: date,
    start_time: str,
    service_id: int | None = None,
) -> SlotInstances | None:
    """Slot starting at start_time; a service-specific slot beats a general one."""
    query = db.query(SlotInstances).filter(
        SlotInstances.vendor_id == vendor_id,
        SlotInstances.slot_date == slot_date,
        SlotInstances.start_time == start_time,
    )
    if service_id is not None:
        query = query.filter(
            or_(SlotInstances.service_id.is_(None), SlotInstances.service_id == service_id)
        )
    else:
        query = query.filter(SlotInstances.service_id.is_(None))

    slots = query.order_by(SlotInstances.id).all()
    if not slots:
        return None
    # Prefer the service-specific slot, then the one with room left
    slots.sort(key=lambda s: (s.service_id is None, s.reservation_count >= s.max_bookings, s.id))
    return slots[0]


def reserve(
    db: Session,
    vendor_id: int,
    slot_date: date,
    start_time: str,
    duration_minutes: int,
    booking_id: int | None = None,
    service_id: int | None = None,
) -> SlotInstances:
    """
    Take one seat of the slot at (vendor, date, start_time).

    Runs in the caller's transaction; the increment is visible to others
    only after commit.

    Raises:
        NoAvailabilityError: no such slot, slot closed, no active rule for
            the date, a day_off override, or duration longer than the slot
        CapacityExceededError: every seat is taken
    """
    slot = find_slot(db, vendor_id, slot_date, start_time, service_id)
    if slot is None:
        raise NoAvailabilityError(f"No slot at {start_time} on {slot_date.isoformat()}")
    if not slot.is_available:
        raise NoAvailabilityError(f"Slot at {start_time} on {slot_date.isoformat()} is not available")

    if resolve_for_date(db, vendor_id, slot_date) is None:
        raise NoAvailabilityError(f"Vendor has no active availability on {slot_date.isoformat()}")
    override = override_for_date(db, vendor_id, slot_date)
    if override is not None and override.override_kind == "day_off":
        raise NoAvailabilityError(f"Vendor is off on {slot_date.isoformat()}")

    slot_length = time_str_to_minutes(slot.end_time) - time_str_to_minutes(slot.start_time)
    if duration_minutes > slot_length:
        raise NoAvailabilityError(
            f"Requested {duration_minutes} min does not fit the {slot_length} min slot"
        )

    result = db.execute(
        update(SlotInstances)
        .where(
            SlotInstances.id == slot.id,
            SlotInstances.is_available.is_(True),
            SlotInstances.reservation_count < SlotInstances.max_bookings,
        )
        .values(reservation_count=SlotInstances.reservation_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise CapacityExceededError(f"Slot at {start_time} on {slot_date.isoformat()} is fully booked")

    db.add(SlotReservations(slot_id=slot.id, booking_id=booking_id))
    db.flush()
    db.refresh(slot)

    logger.info(
        f"Reserved slot={slot.id} vendor={vendor_id} {slot_date} {start_time} "
        f"booking={booking_id} ({slot.reservation_count}/{slot.max_bookings})"
    )
    return slot


def release(
    db: Session,
    slot_id: int,
    booking_id: int | None = None,
) -> bool:
    """
    Give back one seat of the slot.

    With booking_id only that booking's reservation is released; without it
    the oldest live reservation of the slot is.

    Returns:
        True if a live reservation was released, False if there was none
        (already released, or the slot is gone).
    """
    query = db.query(SlotReservations.id).filter(
        SlotReservations.slot_id == slot_id,
        SlotReservations.released_at.is_(None),
    )
    if booking_id is not None:
        query = query.filter(SlotReservations.booking_id == booking_id)
    reservation_id = query.order_by(SlotReservations.id).limit(1).scalar()
    if reservation_id is None:
        logger.info(f"Nothing to release on slot={slot_id} booking={booking_id}")
        return False

    marked = db.execute(
        update(SlotReservations)
        .where(
            SlotReservations.id == reservation_id,
            SlotReservations.released_at.is_(None),
        )
        .values(released_at=datetime.now())
        .execution_options(synchronize_session=False)
    )
    if marked.rowcount != 1:
        # Released concurrently by another transaction
        return False

    db.execute(
        update(SlotInstances)
        .where(
            SlotInstances.id == slot_id,
            SlotInstances.reservation_count > 0,
        )
        .values(reservation_count=SlotInstances.reservation_count - 1)
        .execution_options(synchronize_session=False)
    )
    db.flush()

    slot = db.get(SlotInstances, slot_id)
    if slot is not None:
        db.refresh(slot)

    logger.info(f"Released slot={slot_id} booking={booking_id}")
    return True
