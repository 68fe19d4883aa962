from datetime import datetime, timedelta

import pytest

from slotbook.errors import (
    CapacityExceededError,
    ConflictError,
    NoAvailabilityError,
    NotFoundError,
    ValidationError,
)
from slotbook.models import Bookings, SlotInstances
from slotbook.schemas.availability import ScheduleCreate
from slotbook.schemas.calendar_overrides import CalendarOverrideCreate
from slotbook.services import availability as availability_service
from slotbook.services import calendar_overrides as override_service
from slotbook.services.reservations import reserve
from slotbook.services.slots.store import (
    bulk_set_status,
    extend_horizon,
    list_active,
    open_times,
    regenerate_rule,
)

from conftest import OTHER_VENDOR_ID, TODAY, VENDOR_ID

WEEK_TWO = TODAY + timedelta(days=7)


@pytest.fixture
def rule(db, config):
    data = ScheduleCreate(
        working_days=["mon"],
        working_hours={"start": "09:00", "end": "17:00"},
        break_times=[{"start": "12:00", "end": "13:00"}],
        default_duration=60,
        buffer_time=15,
    )
    return availability_service.set_schedule(db, VENDOR_ID, data, today=TODAY, config=config).rules[0]


def _starts(db, slot_date):
    return [s.start_time for s in list_active(db, VENDOR_ID, slot_date)]


def test_regenerate_keeps_reserved_slot_and_warns(db, config, rule):
    reserve(db, VENDOR_ID, WEEK_TWO, "10:15", 60)

    availability_service.update_rule(db, rule.id, VENDOR_ID, {"buffer_time": 0}, config=config)
    result = regenerate_rule(db, rule, TODAY, config)

    assert _starts(db, WEEK_TWO) == ["09:00", "13:00", "14:00", "15:00", "16:00"]
    assert _starts(db, TODAY) == ["09:00", "10:00", "11:00", "13:00", "14:00", "15:00", "16:00"]

    assert result.kept_reserved == 1
    assert {w.date for w in result.warnings} == {WEEK_TWO}
    messages = [w.message for w in result.warnings]
    assert sum("overlaps reserved slot 10:15-11:15" in m for m in messages) == 2
    assert any("no longer match" in m for m in messages)

    orphan = db.query(SlotInstances).filter(SlotInstances.slot_date == WEEK_TWO, SlotInstances.start_time == "10:15").one()
    assert orphan.reservation_count == 1
    assert orphan.is_available is False


def test_slot_outside_moved_hours_takes_no_new_bookings(db, config):
    data = ScheduleCreate(
        working_days=["mon"],
        working_hours={"start": "09:00", "end": "17:00"},
        break_times=[{"start": "12:00", "end": "13:00"}],
        default_duration=60,
        buffer_time=15,
        max_bookings=2,
    )
    rule = availability_service.set_schedule(db, VENDOR_ID, data, today=TODAY, config=config).rules[0]
    reserve(db, VENDOR_ID, WEEK_TWO, "09:00", 60)

    availability_service.update_rule(
        db, rule.id, VENDOR_ID, {"start_time": "13:00", "break_times": []}, config=config
    )
    regenerate_rule(db, rule, TODAY, config)

    now = datetime.combine(TODAY, datetime.min.time())
    assert [t for t, _ in open_times(db, VENDOR_ID, WEEK_TWO, config, now)] == ["13:00", "14:15", "15:30"]
    with pytest.raises(NoAvailabilityError):
        reserve(db, VENDOR_ID, WEEK_TWO, "09:00", 60)


def test_lowered_capacity_applies_to_reserved_slot(db, config, rule):
    availability_service.update_rule(db, rule.id, VENDOR_ID, {"max_bookings": 3}, config=config)
    regenerate_rule(db, rule, TODAY, config)
    reserve(db, VENDOR_ID, WEEK_TWO, "09:00", 60)

    availability_service.update_rule(db, rule.id, VENDOR_ID, {"max_bookings": 1}, config=config)
    regenerate_rule(db, rule, TODAY, config)

    slot = db.query(SlotInstances).filter(SlotInstances.slot_date == WEEK_TWO, SlotInstances.start_time == "09:00").one()
    assert (slot.reservation_count, slot.max_bookings) == (1, 1)
    with pytest.raises(CapacityExceededError):
        reserve(db, VENDOR_ID, WEEK_TWO, "09:00", 60)


def test_raised_capacity_reopens_full_reserved_slot(db, config, rule):
    reserve(db, VENDOR_ID, WEEK_TWO, "09:00", 60)

    availability_service.update_rule(db, rule.id, VENDOR_ID, {"max_bookings": 2}, config=config)
    regenerate_rule(db, rule, TODAY, config)

    assert reserve(db, VENDOR_ID, WEEK_TWO, "09:00", 60).reservation_count == 2


def test_regenerate_never_deletes_reserved_slot(db, config, rule):
    slot = reserve(db, VENDOR_ID, WEEK_TWO, "14:00", 60)

    result = regenerate_rule(db, rule, TODAY, config)

    assert result.kept_reserved == 1
    db.expire_all()
    kept = db.get(SlotInstances, slot.id)
    assert kept is not None
    assert kept.is_available is True
    assert _starts(db, WEEK_TWO) == ["09:00", "10:15", "14:00", "15:15"]


def test_regenerate_is_idempotent(db, config, rule):
    before = _starts(db, WEEK_TWO)
    result = regenerate_rule(db, rule, TODAY, config)

    assert _starts(db, WEEK_TWO) == before
    assert result.created == result.removed == 16


def test_deactivated_rule_keeps_reserved_slots(db, config, rule):
    reserve(db, VENDOR_ID, WEEK_TWO, "09:00", 60)

    outcome = availability_service.bulk_action(db, [rule.id], VENDOR_ID, "deactivate", today=TODAY, config=config)

    remaining = db.query(SlotInstances).all()
    assert [(s.slot_date, s.start_time) for s in remaining] == [(WEEK_TWO, "09:00")]
    assert any("No active availability" in w.message for w in outcome.materialization.warnings)


def test_extend_horizon_materializes_new_days_once(db, config, rule):
    assert rule.generated_until == TODAY + timedelta(days=21)

    later = TODAY + timedelta(days=7)
    result = extend_horizon(db, later, config)
    assert result.created == 4
    assert result.days == [(VENDOR_ID, TODAY + timedelta(days=28))]
    assert rule.generated_until == later + timedelta(days=21)

    assert extend_horizon(db, later, config).created == 0


# ── bulk_set_status ──────────────────────────────────────────────────────


def test_bulk_status_deactivates_and_reactivates(db, rule):
    ids = [s.id for s in list_active(db, VENDOR_ID, WEEK_TWO)][:2]

    affected = bulk_set_status(db, ids, VENDOR_ID, "inactive")
    assert affected == [(VENDOR_ID, WEEK_TWO)]
    assert _starts(db, WEEK_TWO) == ["14:00", "15:15"]

    bulk_set_status(db, ids, VENDOR_ID, "active")
    assert len(_starts(db, WEEK_TWO)) == 4


def test_bulk_status_rejects_foreign_slots(db, rule):
    ids = [s.id for s in list_active(db, VENDOR_ID, WEEK_TWO)]
    with pytest.raises(NotFoundError):
        bulk_set_status(db, ids, OTHER_VENDOR_ID, "inactive")
    assert len(_starts(db, WEEK_TWO)) == 4


def test_deleting_reserved_slot_requires_force(db, rule):
    slot = reserve(db, VENDOR_ID, WEEK_TWO, "09:00", 60)
    booking = Bookings(
        vendor_id=VENDOR_ID,
        customer_id=1,
        scheduled_at=datetime.combine(WEEK_TWO, datetime.min.time()).replace(hour=9),
        duration_minutes=60,
        status="pending",
        slot_id=slot.id,
    )
    db.add(booking)
    db.flush()

    with pytest.raises(ConflictError):
        bulk_set_status(db, [slot.id], VENDOR_ID, "deleted")

    bulk_set_status(db, [slot.id], VENDOR_ID, "deleted", force=True)
    db.expire_all()
    assert db.get(SlotInstances, slot.id) is None
    assert db.get(Bookings, booking.id).slot_id is None


# ── Overrides ────────────────────────────────────────────────────────────


def test_day_off_override_blocks_and_delete_restores(db, config, rule):
    data = CalendarOverrideCreate(date_start=WEEK_TWO, date_end=WEEK_TWO, override_kind="day_off", reason="holiday")
    override, result = override_service.create_override(db, VENDOR_ID, data, today=TODAY, config=config)

    assert result.removed == 4
    assert _starts(db, WEEK_TWO) == []
    assert len(_starts(db, TODAY)) == 4

    override_service.delete_override(db, override.id, VENDOR_ID, today=TODAY, config=config)
    assert _starts(db, WEEK_TWO) == ["09:00", "10:15", "14:00", "15:15"]


def test_custom_hours_override_replaces_window(db, config, rule):
    data = CalendarOverrideCreate(
        date_start=WEEK_TWO,
        date_end=WEEK_TWO + timedelta(days=3),
        override_kind="custom_hours",
        start_time="13:00",
        end_time="16:00",
    )
    override_service.create_override(db, VENDOR_ID, data, today=TODAY, config=config)

    assert _starts(db, WEEK_TWO) == ["13:00", "14:15"]


def test_custom_hours_without_times_is_rejected(db, config, rule):
    data = CalendarOverrideCreate(date_start=WEEK_TWO, date_end=WEEK_TWO, override_kind="custom_hours")
    with pytest.raises(ValidationError) as exc_info:
        override_service.create_override(db, VENDOR_ID, data, today=TODAY, config=config)
    assert set(exc_info.value.errors) == {"start_time", "end_time"}


def test_delete_foreign_override_is_not_found(db, config, rule):
    data = CalendarOverrideCreate(date_start=WEEK_TWO, date_end=WEEK_TWO, override_kind="day_off")
    override, _ = override_service.create_override(db, VENDOR_ID, data, today=TODAY, config=config)

    with pytest.raises(NotFoundError):
        override_service.delete_override(db, override.id, OTHER_VENDOR_ID, today=TODAY, config=config)


# ── open_times ───────────────────────────────────────────────────────────


def test_open_times_respect_lead_time_and_capacity(db, config, rule):
    now = datetime.combine(WEEK_TWO, datetime.min.time()).replace(hour=8)
    reserve(db, VENDOR_ID, WEEK_TWO, "14:00", 60)

    times = [t for t, _ in open_times(db, VENDOR_ID, WEEK_TWO, config, now)]

    # 09:00 closes at 07:00 (two hours ahead); 14:00 is full
    assert times == ["10:15", "15:15"]


def test_open_times_empty_on_day_off(db, config, rule):
    data = CalendarOverrideCreate(date_start=WEEK_TWO, date_end=WEEK_TWO, override_kind="day_off")
    override_service.create_override(db, VENDOR_ID, data, today=TODAY, config=config)

    now = datetime.combine(TODAY, datetime.min.time())
    assert open_times(db, VENDOR_ID, WEEK_TWO, config, now) == []
