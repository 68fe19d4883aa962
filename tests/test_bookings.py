from datetime import datetime, timedelta

import pytest

from slotbook.errors import (
    CapacityExceededError,
    InvalidTransitionError,
    NoAvailabilityError,
    NotFoundError,
    ValidationError,
)
from slotbook.models import Bookings, SlotInstances, SlotReservations
from slotbook.schemas.availability import ScheduleCreate
from slotbook.schemas.bookings import BookingCreate
from slotbook.services import availability as availability_service
from slotbook.services import bookings as booking_service

from conftest import CUSTOMER_ID, OTHER_VENDOR_ID, TODAY, VENDOR_ID

NOW = datetime(2029, 1, 1, 8, 0)
MONDAY_9 = datetime(2029, 1, 8, 9, 0)
MONDAY_10_15 = datetime(2029, 1, 8, 10, 15)


@pytest.fixture(autouse=True)
def schedule(db, config):
    data = ScheduleCreate(
        working_days=["mon"],
        working_hours={"start": "09:00", "end": "17:00"},
        break_times=[{"start": "12:00", "end": "13:00"}],
    )
    availability_service.set_schedule(db, VENDOR_ID, data, today=TODAY, config=config)


def _book(db, config, scheduled_at=MONDAY_9, customer_id=CUSTOMER_ID, **extra):
    data = BookingCreate(vendor_id=VENDOR_ID, scheduled_at=scheduled_at, duration_minutes=60, **extra)
    return booking_service.create_booking(db, customer_id, data, now=NOW, config=config)


def _slot(db, scheduled_at):
    return (
        db.query(SlotInstances)
        .filter(
            SlotInstances.slot_date == scheduled_at.date(),
            SlotInstances.start_time == scheduled_at.strftime("%H:%M"),
        )
        .one()
    )


def test_create_booking_reserves_slot(db, config):
    booking = _book(db, config, notes="first visit")

    assert booking.status == "pending"
    slot = _slot(db, MONDAY_9)
    assert booking.slot_id == slot.id
    assert slot.reservation_count == 1
    ledger = db.query(SlotReservations).one()
    assert ledger.booking_id == booking.id


def test_create_booking_too_soon_is_rejected(db, config):
    data = BookingCreate(vendor_id=VENDOR_ID, scheduled_at=MONDAY_9, duration_minutes=60)
    with pytest.raises(ValidationError) as exc_info:
        booking_service.create_booking(db, CUSTOMER_ID, data, now=MONDAY_9 - timedelta(hours=1), config=config)

    assert "scheduled_at" in exc_info.value.errors
    assert db.query(Bookings).count() == 0


def test_create_booking_on_full_slot_leaves_nothing(db, config):
    _book(db, config)

    with pytest.raises(CapacityExceededError):
        _book(db, config, customer_id=CUSTOMER_ID + 1)

    assert db.query(Bookings).count() == 1
    assert _slot(db, MONDAY_9).reservation_count == 1


def test_create_booking_outside_schedule(db, config):
    with pytest.raises(NoAvailabilityError):
        _book(db, config, scheduled_at=datetime(2029, 1, 9, 9, 0))
    assert db.query(Bookings).count() == 0


def test_lifecycle_to_completion(db, config):
    booking = _book(db, config)

    booking_service.transition(db, booking, booking_service.CONFIRMED)
    booking_service.transition(db, booking, booking_service.IN_PROGRESS)
    booking_service.transition(db, booking, booking_service.COMPLETED)

    assert booking.status == "completed"
    with pytest.raises(InvalidTransitionError):
        booking_service.cancel_booking(db, booking, cancelled_by=VENDOR_ID)


def test_confirmed_booking_can_complete_directly(db, config):
    booking = _book(db, config)
    booking_service.transition(db, booking, booking_service.CONFIRMED)
    booking_service.transition(db, booking, booking_service.COMPLETED)
    assert booking.status == "completed"


@pytest.mark.parametrize("new_status", ["in_progress", "completed"])
def test_pending_cannot_skip_confirmation(db, config, new_status):
    booking = _book(db, config)
    with pytest.raises(InvalidTransitionError):
        booking_service.transition(db, booking, new_status)
    assert booking.status == "pending"


def test_cancel_releases_slot(db, config):
    booking = _book(db, config)

    booking_service.cancel_booking(db, booking, cancelled_by=CUSTOMER_ID, reason="sick", now=NOW)

    assert booking.status == "cancelled"
    assert booking.cancelled_by == CUSTOMER_ID
    assert booking.cancellation_reason == "sick"
    assert booking.cancelled_at == NOW
    assert _slot(db, MONDAY_9).reservation_count == 0

    with pytest.raises(InvalidTransitionError):
        booking_service.cancel_booking(db, booking, cancelled_by=CUSTOMER_ID)

    # The freed seat can be booked by someone else
    assert _book(db, config, customer_id=CUSTOMER_ID + 1).slot_id == booking.slot_id


def test_reschedule_moves_reservation(db, config):
    booking = _book(db, config)
    old_slot_id = booking.slot_id

    booking_service.reschedule_booking(db, booking, MONDAY_10_15, now=NOW, config=config)

    assert booking.scheduled_at == MONDAY_10_15
    new_slot = _slot(db, MONDAY_10_15)
    assert booking.slot_id == new_slot.id
    assert new_slot.reservation_count == 1
    assert db.get(SlotInstances, old_slot_id).reservation_count == 0


def test_failed_reschedule_keeps_original_booking(db, config):
    booking = _book(db, config)
    _book(db, config, scheduled_at=MONDAY_10_15, customer_id=CUSTOMER_ID + 1)

    with pytest.raises(CapacityExceededError):
        booking_service.reschedule_booking(db, booking, MONDAY_10_15, now=NOW, config=config)

    db.refresh(booking)
    assert booking.scheduled_at == MONDAY_9
    assert booking.slot_id == _slot(db, MONDAY_9).id
    assert _slot(db, MONDAY_9).reservation_count == 1
    assert _slot(db, MONDAY_10_15).reservation_count == 1


def test_reschedule_of_completed_booking_is_rejected(db, config):
    booking = _book(db, config)
    booking_service.transition(db, booking, booking_service.CONFIRMED)
    booking_service.transition(db, booking, booking_service.COMPLETED)

    with pytest.raises(InvalidTransitionError):
        booking_service.reschedule_booking(db, booking, MONDAY_10_15, now=NOW, config=config)


def test_get_booking_checks_ownership(db, config):
    booking = _book(db, config)

    assert booking_service.get_booking(db, booking.id, vendor_id=VENDOR_ID) is booking
    assert booking_service.get_booking(db, booking.id, customer_id=CUSTOMER_ID) is booking
    with pytest.raises(NotFoundError):
        booking_service.get_booking(db, booking.id, vendor_id=OTHER_VENDOR_ID)
    with pytest.raises(NotFoundError):
        booking_service.get_booking(db, booking.id + 100, vendor_id=VENDOR_ID)
