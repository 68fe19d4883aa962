# backend/slotbook/services/calendar_overrides.py
"""
Calendar overrides: ad-hoc exceptions to a vendor's recurring schedule.

day_off      - no slots on the covered dates
custom_hours - start_time/end_time replace the rule's working hours

Create and delete rematerialize the covered dates that fall inside the
booking horizon; dates further out pick the override up when the horizon
extender reaches them.
"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from .slots.config import BookingConfig, get_booking_config, time_str_to_minutes
from .slots.invalidator import get_affected_dates_from_override
from .slots.store import MaterializationResult, horizon_end, materialize_dates
from ..errors import NotFoundError, ValidationError
from ..models.tables import CalendarOverrides
from ..schemas.calendar_overrides import CalendarOverrideCreate

logger = logging.getLogger(__name__)


def _horizon_dates(override: CalendarOverrides, today: date, config: BookingConfig) -> list[date]:
    last = horizon_end(today, config)
    return [d for d in get_affected_dates_from_override(override) if today <= d <= last]


def list_overrides(
    db: Session,
    vendor_id: int,
    from_date: date | None = None,
) -> list[CalendarOverrides]:
    query = db.query(CalendarOverrides).filter(CalendarOverrides.vendor_id == vendor_id)
    if from_date is not None:
        query = query.filter(CalendarOverrides.date_end >= from_date)
    return query.order_by(CalendarOverrides.date_start, CalendarOverrides.id).all()


def create_override(
    db: Session,
    vendor_id: int,
    data: CalendarOverrideCreate,
    today: date | None = None,
    config: BookingConfig | None = None,
) -> tuple[CalendarOverrides, MaterializationResult]:
    """
    Insert an override and rematerialize the dates it covers.

    Raises:
        ValidationError: end before start, or custom_hours without a valid window
    """
    config = config or get_booking_config()
    today = today or date.today()

    errors: dict[str, list[str]] = {}
    if data.date_end < data.date_start:
        errors["date_end"] = ["End date must not be before start date"]

    if data.override_kind == "custom_hours":
        if not data.start_time:
            errors["start_time"] = ["Start time is required for custom hours"]
        if not data.end_time:
            errors["end_time"] = ["End time is required for custom hours"]
        if data.start_time and data.end_time:
            if time_str_to_minutes(data.end_time) <= time_str_to_minutes(data.start_time):
                errors["end_time"] = ["End time must be after start time"]
    if errors:
        raise ValidationError(errors)

    override = CalendarOverrides(
        vendor_id=vendor_id,
        date_start=data.date_start,
        date_end=data.date_end,
        override_kind=data.override_kind,
        start_time=data.start_time if data.override_kind == "custom_hours" else None,
        end_time=data.end_time if data.override_kind == "custom_hours" else None,
        reason=data.reason,
    )
    db.add(override)
    db.flush()

    result = materialize_dates(db, vendor_id, _horizon_dates(override, today, config))
    logger.info(
        f"Override {override.id} ({override.override_kind}) for vendor={vendor_id} "
        f"{override.date_start}..{override.date_end}: +{result.created} / -{result.removed} slots"
    )
    return override, result


def delete_override(
    db: Session,
    override_id: int,
    vendor_id: int,
    today: date | None = None,
    config: BookingConfig | None = None,
) -> MaterializationResult:
    """Remove an override and restore the regular schedule on its dates."""
    config = config or get_booking_config()
    today = today or date.today()

    override = (
        db.query(CalendarOverrides)
        .filter(
            CalendarOverrides.id == override_id,
            CalendarOverrides.vendor_id == vendor_id,
        )
        .first()
    )
    if not override:
        raise NotFoundError("Calendar override not found")

    dates = _horizon_dates(override, today, config)
    db.delete(override)
    db.flush()

    result = materialize_dates(db, vendor_id, dates)
    logger.info(f"Override {override_id} deleted for vendor={vendor_id}, {len(dates)} date(s) rematerialized")
    return result
