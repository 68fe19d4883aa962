# backend/slotbook/services/availability.py
"""
Recurring availability store.

A rule is a vendor's template schedule for one weekday. Rules are never
materialized here; every mutation hands the affected dates to
services.slots.store, inside the caller's transaction.

Invariant: at most one active rule applies to a vendor day. Two active
ongoing rules for the same weekday conflict, and so do two active date-range
rules with overlapping ranges. A date-range rule on top of the ongoing rule
is allowed: it is more specific and wins for the dates it covers.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .slots.config import BookingConfig, get_booking_config, time_str_to_minutes
from .slots.resolver import resolve_for_date, windows_overlap
from .slots.store import (
    MaterializationResult,
    horizon_end,
    materialize_dates,
    regenerate_rule,
    rule_dates,
)
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.tables import DAY_NAMES, RecurringAvailabilities
from ..schemas.availability import ScheduleCreate

logger = logging.getLogger(__name__)

# Fields whose change requires slot regeneration
SCHEDULING_FIELDS = (
    "start_time",
    "end_time",
    "break_times",
    "default_duration",
    "buffer_time",
    "max_bookings",
    "is_active",
)

BULK_ACTIONS = ("activate", "deactivate", "delete")


@dataclass
class ScheduleOutcome:
    rules: list[RecurringAvailabilities]
    superseded_ids: list[int]
    materialization: MaterializationResult


@dataclass
class RuleUpdateOutcome:
    rule: RecurringAvailabilities
    scheduling_changed: bool
    changed_fields: list[str] = field(default_factory=list)


@dataclass
class BulkOutcome:
    action: str
    affected_count: int
    materialization: MaterializationResult


# ──────────────────────────────────────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────────────────────────────────────

def validate_rule_fields(
    start_time: str,
    end_time: str,
    break_times: list[dict] | None,
    default_duration: int,
    buffer_time: int,
    max_bookings: int,
    config: BookingConfig | None = None,
    start_field: str = "start_time",
    end_field: str = "end_time",
) -> dict[str, list[str]]:
    """
    Check one rule's scheduling fields.

    Returns:
        Field name → messages. Empty dict = valid.
    """
    config = config or get_booking_config()
    errors: dict[str, list[str]] = defaultdict(list)

    start_min = end_min = None
    try:
        start_min = time_str_to_minutes(start_time)
    except ValueError as e:
        errors[start_field].append(str(e))
    try:
        end_min = time_str_to_minutes(end_time)
    except ValueError as e:
        errors[end_field].append(str(e))

    if start_min is not None and end_min is not None and end_min <= start_min:
        errors[end_field].append("End time must be after start time")

    for i, item in enumerate(break_times or []):
        try:
            b_start = time_str_to_minutes(item["start"])
            b_end = time_str_to_minutes(item["end"])
        except (KeyError, ValueError) as e:
            errors[f"break_times.{i}"].append(f"Invalid break: {e}")
            continue
        if b_end <= b_start:
            errors[f"break_times.{i}.end"].append("Break end must be after break start")
        elif start_min is not None and end_min is not None and (b_start < start_min or b_end > end_min):
            errors[f"break_times.{i}"].append("Break must be within working hours")

    if not (config.min_duration <= default_duration <= config.max_duration):
        errors["default_duration"].append(
            f"Duration must be between {config.min_duration} and {config.max_duration} minutes"
        )
    if not (0 <= buffer_time <= config.max_buffer):
        errors["buffer_time"].append(f"Buffer time must be between 0 and {config.max_buffer} minutes")
    if max_bookings < 1:
        errors["max_bookings"].append("Capacity must be at least 1")

    return dict(errors)


def _find_conflict(
    db: Session,
    vendor_id: int,
    day_of_week: str,
    effective_from: date | None,
    effective_until: date | None,
    exclude_id: int | None = None,
) -> RecurringAvailabilities | None:
    """Active rule that may not coexist with the given window, if any."""
    query = db.query(RecurringAvailabilities).filter(
        RecurringAvailabilities.vendor_id == vendor_id,
        RecurringAvailabilities.day_of_week == day_of_week,
        RecurringAvailabilities.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(RecurringAvailabilities.id != exclude_id)

    for rule in query.order_by(RecurringAvailabilities.id):
        # Ongoing and date-range rules layer; only same-kind rules collide
        if (rule.effective_until is None) != (effective_until is None):
            continue
        if windows_overlap(rule.effective_from, rule.effective_until, effective_from, effective_until):
            return rule
    return None


def _active_ongoing_ids(db: Session, vendor_id: int, days: list[str]) -> list[int]:
    return [
        r.id for r in db.query(RecurringAvailabilities).filter(
            RecurringAvailabilities.vendor_id == vendor_id,
            RecurringAvailabilities.day_of_week.in_(days),
            RecurringAvailabilities.effective_until.is_(None),
            RecurringAvailabilities.is_active.is_(True),
        )
    ]


def _horizon_dates(
    rule: RecurringAvailabilities,
    today: date,
    config: BookingConfig,
) -> list[date]:
    return rule_dates(rule, today, horizon_end(today, config))


# ──────────────────────────────────────────────────────────────────────────────
# Operations
# ──────────────────────────────────────────────────────────────────────────────

def get_rule(db: Session, rule_id: int, vendor_id: int) -> RecurringAvailabilities:
    """Rule owned by vendor. Someone else's rule is reported as missing."""
    rule = (
        db.query(RecurringAvailabilities)
        .filter(
            RecurringAvailabilities.id == rule_id,
            RecurringAvailabilities.vendor_id == vendor_id,
        )
        .first()
    )
    if not rule:
        raise NotFoundError("Availability not found")
    return rule


def list_rules(
    db: Session,
    vendor_id: int,
    target_date: date | None = None,
    day_of_week: str | None = None,
) -> list[RecurringAvailabilities]:
    """Active rules of a vendor, ordered by weekday then start time."""
    query = db.query(RecurringAvailabilities).filter(
        RecurringAvailabilities.vendor_id == vendor_id,
        RecurringAvailabilities.is_active.is_(True),
    )
    if day_of_week is not None:
        query = query.filter(RecurringAvailabilities.day_of_week == day_of_week)

    rules = query.all()
    if target_date is not None:
        rules = [
            r for r in rules
            if (r.effective_from is None or r.effective_from <= target_date)
            and (r.effective_until is None or r.effective_until >= target_date)
        ]
    return sorted(rules, key=lambda r: (DAY_NAMES.index(r.day_of_week), r.start_time, r.id))


def set_schedule(
    db: Session,
    vendor_id: int,
    data: ScheduleCreate,
    today: date | None = None,
    config: BookingConfig | None = None,
) -> ScheduleOutcome:
    """
    Create one rule per working day and materialize its slots.

    apply_to="ongoing" supersedes (deactivates) the vendor's current ongoing
    rule for each day; apply_to="dateRange" scopes the rule to the range and
    leaves ongoing rules alone.

    Everything happens in the caller's transaction: supersede, insert and
    materialization commit together. Per-day generation failures come back as
    warnings and do not undo the created rules.

    Raises:
        ValidationError: bad input, nothing touched
        ConflictError: date range overlaps another active date-range rule
    """
    config = config or get_booking_config()
    today = today or date.today()

    errors: dict[str, list[str]] = defaultdict(list)

    days = list(dict.fromkeys(data.working_days))
    for i, day in enumerate(days):
        if day not in DAY_NAMES:
            errors[f"working_days.{i}"].append(f"Unknown day {day!r}")
    if not days:
        errors["working_days"].append("At least one working day is required")

    break_times = [b.model_dump() for b in data.break_times] if data.break_times else []
    for name, messages in validate_rule_fields(
        data.working_hours.start,
        data.working_hours.end,
        break_times,
        data.default_duration,
        data.buffer_time,
        data.max_bookings,
        config,
        start_field="working_hours.start",
        end_field="working_hours.end",
    ).items():
        errors[name].extend(messages)

    effective_from = effective_until = None
    if data.apply_to == "dateRange":
        if data.date_range is None:
            errors["date_range"].append("Date range is required when applying to a date range")
        else:
            if data.date_range.start < today:
                errors["date_range.start"].append("Start date cannot be in the past")
            if data.date_range.end <= data.date_range.start:
                errors["date_range.end"].append("End date must be after start date")
            effective_from = data.date_range.start
            effective_until = data.date_range.end

    if errors:
        raise ValidationError(dict(errors))

    superseded_ids: list[int] = []
    if data.apply_to == "ongoing":
        superseded_ids = _active_ongoing_ids(db, vendor_id, days)
        if superseded_ids:
            db.execute(
                update(RecurringAvailabilities)
                .where(RecurringAvailabilities.id.in_(superseded_ids))
                .values(is_active=False)
                .execution_options(synchronize_session="fetch")
            )
            logger.info(f"Superseded ongoing rules {superseded_ids} for vendor={vendor_id}")
    else:
        for day in days:
            conflict = _find_conflict(db, vendor_id, day, effective_from, effective_until)
            if conflict is not None:
                raise ConflictError(
                    f"Date range overlaps availability {conflict.id} for {day}"
                )
            duplicate = (
                db.query(RecurringAvailabilities)
                .filter(
                    RecurringAvailabilities.vendor_id == vendor_id,
                    RecurringAvailabilities.day_of_week == day,
                    RecurringAvailabilities.effective_from == effective_from,
                    RecurringAvailabilities.effective_until == effective_until,
                )
                .first()
            )
            if duplicate is not None:
                raise ConflictError(
                    f"Availability {duplicate.id} already covers {day} for this date range; "
                    f"activate or update it instead"
                )

    rules = []
    try:
        with db.begin_nested():
            for day in days:
                rule = RecurringAvailabilities(
                    vendor_id=vendor_id,
                    day_of_week=day,
                    start_time=data.working_hours.start,
                    end_time=data.working_hours.end,
                    break_times=break_times,
                    default_duration=data.default_duration,
                    buffer_time=data.buffer_time,
                    max_bookings=data.max_bookings,
                    effective_from=effective_from,
                    effective_until=effective_until,
                    is_active=True,
                )
                db.add(rule)
                rules.append(rule)
            db.flush()
    except IntegrityError as e:
        # uq_recurring_one_ongoing: another request set the same days first
        logger.warning(f"Concurrent schedule change for vendor={vendor_id} days={days}: {e.orig}")
        raise ConflictError("Availability for these days was changed concurrently, retry") from e

    materialization = MaterializationResult()
    for rule in rules:
        materialization.merge(regenerate_rule(db, rule, today, config))

    logger.info(
        f"Schedule set for vendor={vendor_id} days={days} mode={data.apply_to}: "
        f"{len(rules)} rule(s), {materialization.created} slot(s)"
    )
    return ScheduleOutcome(rules, superseded_ids, materialization)


def update_rule(
    db: Session,
    rule_id: int,
    vendor_id: int,
    fields: dict,
    config: BookingConfig | None = None,
) -> RuleUpdateOutcome:
    """
    Apply a partial update to a vendor's rule.

    Does not regenerate: when `scheduling_changed` is set the caller must
    call regenerate_rule() for the rule.

    Raises:
        NotFoundError: rule missing or owned by another vendor
        ValidationError: merged rule invalid
        ConflictError: re-activation would violate the one-active-rule invariant
    """
    config = config or get_booking_config()
    rule = get_rule(db, rule_id, vendor_id)

    merged = {
        "start_time": rule.start_time,
        "end_time": rule.end_time,
        "break_times": rule.break_times or [],
        "default_duration": rule.default_duration,
        "buffer_time": rule.buffer_time,
        "max_bookings": rule.max_bookings,
    }
    for name, value in fields.items():
        if name in merged and value is not None:
            merged[name] = value

    errors = validate_rule_fields(**merged, config=config)
    if errors:
        raise ValidationError(errors)

    if fields.get("is_active") and not rule.is_active:
        conflict = _find_conflict(
            db, vendor_id, rule.day_of_week, rule.effective_from, rule.effective_until, exclude_id=rule.id
        )
        if conflict is not None:
            raise ConflictError(f"Availability {conflict.id} is already active for {rule.day_of_week}")

    changed = []
    for name, value in fields.items():
        if value is None or not hasattr(rule, name):
            continue
        if getattr(rule, name) != value:
            setattr(rule, name, value)
            changed.append(name)
    try:
        db.flush()
    except IntegrityError as e:
        raise ConflictError(f"Availability {rule.id} conflicts with another active rule") from e

    scheduling_changed = any(name in SCHEDULING_FIELDS for name in changed)
    logger.info(f"Updated rule={rule.id} vendor={vendor_id} fields={changed}")
    return RuleUpdateOutcome(rule, scheduling_changed, changed)


def bulk_action(
    db: Session,
    rule_ids: list[int],
    vendor_id: int,
    action: str,
    regenerate_slots: bool = True,
    today: date | None = None,
    config: BookingConfig | None = None,
) -> BulkOutcome:
    """
    Activate, deactivate or delete several rules of one vendor.

    Ownership of every id is checked before anything changes. With
    `regenerate_slots` the affected horizon dates are rematerialized, so
    deactivated or deleted rules lose their unbooked slots (or fall back to
    another rule) and activated rules get theirs.
    """
    if action not in BULK_ACTIONS:
        raise ValidationError({"action": [f"Unknown action {action!r}"]})

    config = config or get_booking_config()
    today = today or date.today()

    wanted = sorted(set(rule_ids))
    rules = (
        db.query(RecurringAvailabilities)
        .filter(
            RecurringAvailabilities.id.in_(wanted),
            RecurringAvailabilities.vendor_id == vendor_id,
        )
        .order_by(RecurringAvailabilities.id)
        .all()
    )
    if len(rules) != len(wanted):
        raise NotFoundError("Some availabilities not found or do not belong to you")

    # Captured before mutation: deleted rules can't be asked afterwards
    affected = [(rule.id, _horizon_dates(rule, today, config)) for rule in rules]

    if action == "activate":
        for rule in rules:
            if rule.is_active:
                continue
            conflict = _find_conflict(
                db, vendor_id, rule.day_of_week, rule.effective_from, rule.effective_until, exclude_id=rule.id
            )
            if conflict is not None:
                raise ConflictError(f"Availability {conflict.id} is already active for {rule.day_of_week}")
            rule.is_active = True
            try:
                db.flush()
            except IntegrityError as e:
                raise ConflictError(f"Availability {rule.id} conflicts with another active rule") from e
    elif action == "deactivate":
        for rule in rules:
            rule.is_active = False
    else:
        for rule in rules:
            db.delete(rule)
    db.flush()

    materialization = MaterializationResult()
    if regenerate_slots:
        if action == "activate":
            for rule in rules:
                materialization.merge(regenerate_rule(db, rule, today, config))
        else:
            for rule_id, dates in affected:
                materialization.merge(materialize_dates(db, vendor_id, dates, rule_id=rule_id))

    logger.info(f"Bulk {action} vendor={vendor_id} rules={wanted}")
    return BulkOutcome(action, len(rules), materialization)


def weekly_overview(
    db: Session,
    vendor_id: int,
    start_date: date | None = None,
) -> tuple[date, date, list[dict]]:
    """
    Calendar events for the week (Monday..Sunday) containing start_date.

    Returns:
        (week_start, week_end, events) where each event describes the rule
        that resolves for that date.
    """
    start_date = start_date or date.today()
    week_start = start_date - timedelta(days=start_date.weekday())
    week_end = week_start + timedelta(days=6)

    events = []
    for offset in range(7):
        current = week_start + timedelta(days=offset)
        rule = resolve_for_date(db, vendor_id, current)
        if rule is None:
            continue
        events.append({
            "id": rule.id,
            "title": "Available",
            "date": current,
            "start": f"{current.isoformat()}T{rule.start_time}",
            "end": f"{current.isoformat()}T{rule.end_time}",
            "type": "availability",
        })

    return week_start, week_end, events
