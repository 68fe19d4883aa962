# backend/slotbook/services/slots/store.py
"""
Slot materialization store.

Slot instances are date-bound copies of what the generator produced. They are
not foreign-keyed to the rule: editing or deleting a rule leaves existing rows
alone until regeneration is invoked for the affected dates.

Materializing a (vendor, date):
  1. unreserved slots of that day are deleted
  2. the winning rule is resolved (date-range rule beats the ongoing one)
  3. overrides apply: day_off → nothing, custom_hours → replaced window
  4. generated slots are inserted, skipping any that collide with a slot that
     still holds a live reservation
  5. reserved slots matching a generated slot take its capacity (never below
     their reservation count); reserved slots outside the schedule are closed
     to new bookings and kept for the bookings they hold
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import BookingConfig, get_booking_config, time_str_to_minutes
from .generator import day_index, generate_slots, overlaps
from .resolver import override_for_date, resolve_for_date
from ...errors import ConflictError, GenerationWarning, NotFoundError
from ...models.tables import Bookings, RecurringAvailabilities, SlotInstances

logger = logging.getLogger(__name__)

SLOT_STATUSES = ("active", "inactive", "deleted")


@dataclass
class MaterializationResult:
    created: int = 0
    removed: int = 0
    kept_reserved: int = 0
    days: list[tuple[int, date]] = field(default_factory=list)  # (vendor_id, date) touched
    warnings: list[GenerationWarning] = field(default_factory=list)

    def merge(self, other: "MaterializationResult") -> None:
        self.created += other.created
        self.removed += other.removed
        self.kept_reserved += other.kept_reserved
        self.days.extend(other.days)
        self.warnings.extend(other.warnings)


# ── Date helpers ─────────────────────────────────────────────────────────


def horizon_end(today: date, config: BookingConfig | None = None) -> date:
    config = config or get_booking_config()
    return today + timedelta(days=config.horizon_days)


def rule_dates(
    rule: RecurringAvailabilities,
    first: date,
    last: date,
) -> list[date]:
    """Dates in [first, last] ∩ effective window that fall on the rule's weekday."""
    start = max(first, rule.effective_from) if rule.effective_from else first
    end = min(last, rule.effective_until) if rule.effective_until else last
    if start > end:
        return []

    offset = (day_index(rule.day_of_week) - start.weekday()) % 7
    current = start + timedelta(days=offset)
    dates = []
    while current <= end:
        dates.append(current)
        current += timedelta(days=7)
    return dates


# ── Materialization ──────────────────────────────────────────────────────


def _day_slots(db: Session, vendor_id: int, target_date: date, lock: bool = False):
    query = db.query(SlotInstances).filter(
        SlotInstances.vendor_id == vendor_id,
        SlotInstances.slot_date == target_date,
    )
    if lock:
        query = query.with_for_update()
    return query.populate_existing().order_by(SlotInstances.id).all()


def _close_orphans(slots: list[SlotInstances]) -> None:
    for slot in slots:
        slot.is_available = False


def materialize_day(
    db: Session,
    vendor_id: int,
    target_date: date,
) -> MaterializationResult:
    """Replace-or-merge the slot instances of one vendor day."""
    result = MaterializationResult(days=[(vendor_id, target_date)])

    # Row locks keep reserve() from taking a seat on a slot about to be deleted
    existing = _day_slots(db, vendor_id, target_date, lock=True)
    stale_ids = [s.id for s in existing if s.reservation_count == 0]

    reserved = [s for s in existing if s.reservation_count > 0]
    if stale_ids:
        deleted = db.execute(
            delete(SlotInstances).where(
                SlotInstances.id.in_(stale_ids),
                SlotInstances.reservation_count == 0,
            )
        )
        result.removed = deleted.rowcount
        if result.removed != len(stale_ids):
            reserved = _day_slots(db, vendor_id, target_date)
    result.kept_reserved = len(reserved)

    rule = resolve_for_date(db, vendor_id, target_date)
    if rule is None:
        if reserved:
            _close_orphans(reserved)
            result.warnings.append(GenerationWarning(
                rule_id=None,
                date=target_date,
                message=f"No active availability; kept {len(reserved)} reserved slot(s)",
            ))
        db.flush()
        return result

    window = None
    override = override_for_date(db, vendor_id, target_date)
    if override is not None and override.override_kind == "day_off":
        generated = []
    else:
        if override is not None:
            window = (override.start_time, override.end_time)
        generated = generate_slots(rule, target_date, window)

    reserved_keys = {(s.start_time, s.end_time) for s in reserved}
    matched: set[tuple[str, str]] = set()

    for slot in generated:
        key = (slot.start_time, slot.end_time)
        if key in reserved_keys:
            matched.add(key)
            for kept in reserved:
                if (kept.start_time, kept.end_time) == key:
                    kept.max_bookings = max(kept.reservation_count, slot.max_bookings)
                    kept.is_available = True
            continue

        clash = next(
            (
                s for s in reserved
                if overlaps(
                    slot.start_minutes, slot.end_minutes,
                    time_str_to_minutes(s.start_time), time_str_to_minutes(s.end_time),
                )
            ),
            None,
        )
        if clash is not None:
            result.warnings.append(GenerationWarning(
                rule_id=rule.id,
                date=target_date,
                message=(
                    f"Slot {slot.start_time}-{slot.end_time} skipped: overlaps reserved "
                    f"slot {clash.start_time}-{clash.end_time}"
                ),
            ))
            continue

        db.add(SlotInstances(
            vendor_id=vendor_id,
            service_id=None,
            slot_date=target_date,
            day_of_week=slot.day_of_week,
            start_time=slot.start_time,
            end_time=slot.end_time,
            is_available=True,
            max_bookings=slot.max_bookings,
            reservation_count=0,
        ))
        result.created += 1

    orphans = [s for s in reserved if (s.start_time, s.end_time) not in matched]
    _close_orphans(orphans)
    orphaned = len(orphans)
    if orphaned:
        result.warnings.append(GenerationWarning(
            rule_id=rule.id,
            date=target_date,
            message=f"Kept {orphaned} reserved slot(s) that no longer match the schedule",
        ))

    db.flush()
    return result


def materialize_dates(
    db: Session,
    vendor_id: int,
    dates: list[date],
    rule_id: int | None = None,
) -> MaterializationResult:
    """
    Materialize several days. A failing day is rolled back to its savepoint
    and reported as a warning; the other days and the caller's transaction
    are unaffected.
    """
    result = MaterializationResult()

    for target_date in dates:
        try:
            with db.begin_nested():
                day = materialize_day(db, vendor_id, target_date)
        except (SQLAlchemyError, ValueError, KeyError, TypeError) as e:
            result.warnings.append(GenerationWarning(
                rule_id=rule_id,
                date=target_date,
                message=f"Slot generation failed: {e}",
            ))
            continue
        result.merge(day)

    for warning in result.warnings:
        logger.warning(
            f"Generation warning vendor={vendor_id} rule={warning.rule_id} "
            f"date={warning.date}: {warning.message}"
        )
    return result


def regenerate_rule(
    db: Session,
    rule: RecurringAvailabilities,
    today: date | None = None,
    config: BookingConfig | None = None,
) -> MaterializationResult:
    """
    (Re)materialize every future date of the rule inside the horizon.

    Used on rule creation, on scheduling-field updates and after
    (de)activation. Inactive rules are handled too: their dates fall back to
    whichever rule now wins, or to no slots at all.
    """
    config = config or get_booking_config()
    today = today or date.today()
    last = horizon_end(today, config)

    dates = rule_dates(rule, today, last)
    result = materialize_dates(db, rule.vendor_id, dates, rule_id=rule.id)

    if rule.is_active:
        rule.generated_until = min(rule.effective_until, last) if rule.effective_until else last
    db.flush()

    logger.info(
        f"Regenerated rule={rule.id} vendor={rule.vendor_id} day={rule.day_of_week}: "
        f"{len(dates)} date(s), +{result.created} / -{result.removed} slots, "
        f"{len(result.warnings)} warning(s)"
    )
    return result


def extend_horizon(
    db: Session,
    today: date | None = None,
    config: BookingConfig | None = None,
) -> MaterializationResult:
    """Materialize the days that entered the horizon since the last run."""
    config = config or get_booking_config()
    today = today or date.today()
    last = horizon_end(today, config)

    rules = (
        db.query(RecurringAvailabilities)
        .filter(RecurringAvailabilities.is_active.is_(True))
        .order_by(RecurringAvailabilities.id)
        .all()
    )

    result = MaterializationResult()
    for rule in rules:
        if rule.effective_until and rule.effective_until < today:
            continue
        if rule.generated_until and rule.generated_until >= last:
            continue

        first = today
        if rule.generated_until and rule.generated_until >= today:
            first = rule.generated_until + timedelta(days=1)

        dates = rule_dates(rule, first, last)
        result.merge(materialize_dates(db, rule.vendor_id, dates, rule_id=rule.id))
        rule.generated_until = min(rule.effective_until, last) if rule.effective_until else last

    db.flush()
    return result


# ── Queries and vendor operations ────────────────────────────────────────


def list_active(
    db: Session,
    vendor_id: int,
    slot_date: date | None = None,
    day_of_week: int | None = None,
) -> list[SlotInstances]:
    query = db.query(SlotInstances).filter(
        SlotInstances.vendor_id == vendor_id,
        SlotInstances.is_available.is_(True),
    )
    if slot_date is not None:
        query = query.filter(SlotInstances.slot_date == slot_date)
    if day_of_week is not None:
        query = query.filter(SlotInstances.day_of_week == day_of_week)

    return query.order_by(SlotInstances.slot_date, SlotInstances.start_time).all()


def bulk_set_status(
    db: Session,
    slot_ids: list[int],
    vendor_id: int,
    status: str,
    force: bool = False,
) -> list[tuple[int, date]]:
    """
    Activate, deactivate or delete slots owned by the vendor.

    All ids are checked for ownership before anything changes. Deleting a slot
    with a live reservation is refused unless `force` (administrative path),
    which drops the reservation ledger and detaches bookings.

    Returns:
        Affected (vendor_id, slot_date) pairs, for cache invalidation.
    """
    if status not in SLOT_STATUSES:
        raise ValueError(f"Unknown slot status {status!r}")

    wanted = sorted(set(slot_ids))
    slots = (
        db.query(SlotInstances)
        .filter(
            SlotInstances.id.in_(wanted),
            SlotInstances.vendor_id == vendor_id,
        )
        .all()
    )
    if len(slots) != len(wanted):
        raise NotFoundError("Some slots not found or do not belong to you")

    affected = sorted({(s.vendor_id, s.slot_date) for s in slots})

    if status == "deleted":
        live = [s.id for s in slots if s.reservation_count > 0]
        if live and not force:
            raise ConflictError(f"Slots {live} hold live reservations and cannot be deleted")
        if live:
            logger.warning(f"Force-deleting reserved slots {live} for vendor={vendor_id}")
            db.execute(
                update(Bookings)
                .where(Bookings.slot_id.in_(live))
                .values(slot_id=None)
                .execution_options(synchronize_session=False)
            )
        db.execute(delete(SlotInstances).where(SlotInstances.id.in_(wanted)))
    else:
        for slot in slots:
            slot.is_available = status == "active"

    db.flush()
    return affected


def open_times(
    db: Session,
    vendor_id: int,
    target_date: date,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> list[tuple[str, float]]:
    """
    Open start times of a vendor day with their expiry timestamps.

    expire_ts = (slot start − min_advance_hours).timestamp(); the Redis cache
    uses it as the sorted-set score so past slots drop out on their own.

    Returns:
        List of (time_str, expire_ts) pairs. Empty list = nothing bookable.
    """
    config = config or get_booking_config()
    now = now or datetime.now()
    now_ts = now.timestamp()

    if resolve_for_date(db, vendor_id, target_date) is None:
        return []
    override = override_for_date(db, vendor_id, target_date)
    if override is not None and override.override_kind == "day_off":
        return []

    slots = (
        db.query(SlotInstances)
        .filter(
            SlotInstances.vendor_id == vendor_id,
            SlotInstances.slot_date == target_date,
            SlotInstances.is_available.is_(True),
            SlotInstances.reservation_count < SlotInstances.max_bookings,
        )
        .order_by(SlotInstances.start_time)
        .all()
    )

    result: list[tuple[str, float]] = []
    seen: set[str] = set()
    for slot in slots:
        if slot.start_time in seen:
            continue
        slot_dt = datetime.combine(target_date, datetime.min.time()) + timedelta(
            minutes=time_str_to_minutes(slot.start_time)
        )
        expire_ts = (slot_dt - timedelta(hours=config.min_advance_hours)).timestamp()
        if expire_ts > now_ts:
            seen.add(slot.start_time)
            result.append((slot.start_time, expire_ts))

    return result
