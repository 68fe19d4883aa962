# backend/slotbook/services/slots/resolver.py
"""
Which rule and which override apply to a vendor on a calendar date.
"""

import logging
from datetime import date

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models.tables import DAY_NAMES, CalendarOverrides, RecurringAvailabilities

logger = logging.getLogger(__name__)


def rule_applies_on(rule: RecurringAvailabilities, target_date: date) -> bool:
    """Weekday matches and target_date is inside the effective window."""
    if DAY_NAMES[target_date.weekday()] != rule.day_of_week:
        return False
    if rule.effective_from and target_date < rule.effective_from:
        return False
    if rule.effective_until and target_date > rule.effective_until:
        return False
    return True


def window_span(rule: RecurringAvailabilities) -> int:
    """Width of the effective window in days; open ends count as unbounded."""
    start = rule.effective_from or date.min
    end = rule.effective_until or date.max
    return (end - start).days


def windows_overlap(
    from_a: date | None,
    until_a: date | None,
    from_b: date | None,
    until_b: date | None,
) -> bool:
    return (from_a or date.min) <= (until_b or date.max) and (from_b or date.min) <= (until_a or date.max)


def resolve_for_date(
    db: Session,
    vendor_id: int,
    target_date: date,
) -> RecurringAvailabilities | None:
    """
    Return the single active rule for vendor + weekday covering target_date.

    Several candidates should not exist except for a date-range rule on top of
    the ongoing one; the narrower window wins. Equal widths are a data
    integrity fault: logged, then the earliest created rule is used.
    """
    day_name = DAY_NAMES[target_date.weekday()]

    candidates = (
        db.query(RecurringAvailabilities)
        .filter(
            RecurringAvailabilities.vendor_id == vendor_id,
            RecurringAvailabilities.day_of_week == day_name,
            RecurringAvailabilities.is_active.is_(True),
            or_(
                RecurringAvailabilities.effective_from.is_(None),
                RecurringAvailabilities.effective_from <= target_date,
            ),
            or_(
                RecurringAvailabilities.effective_until.is_(None),
                RecurringAvailabilities.effective_until >= target_date,
            ),
        )
        .order_by(RecurringAvailabilities.id)
        .all()
    )

    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]

    candidates.sort(key=lambda r: (window_span(r), r.id))
    if window_span(candidates[0]) == window_span(candidates[1]):
        logger.error(
            f"Ambiguous availability for vendor={vendor_id} on {target_date}: "
            f"rules {[r.id for r in candidates]} are equally specific, using {candidates[0].id}"
        )
    return candidates[0]


def override_for_date(
    db: Session,
    vendor_id: int,
    target_date: date,
) -> CalendarOverrides | None:
    """
    Return the override governing target_date, if any.

    day_off beats custom_hours; among custom_hours the latest created wins.
    """
    overrides = (
        db.query(CalendarOverrides)
        .filter(
            CalendarOverrides.vendor_id == vendor_id,
            CalendarOverrides.date_start <= target_date,
            CalendarOverrides.date_end >= target_date,
        )
        .order_by(CalendarOverrides.id.desc())
        .all()
    )
    if not overrides:
        return None

    for ovr in overrides:
        if ovr.override_kind == "day_off":
            return ovr
    return overrides[0]
