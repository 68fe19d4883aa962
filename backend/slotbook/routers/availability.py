# backend/slotbook/routers/availability.py
"""
Vendor recurring availability.

Every mutation commits the rule change and the slot (re)materialization in one
transaction, then drops the cached days it touched.
"""

from datetime import date

from fastapi import APIRouter, Depends, Response, status
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_redis, get_vendor_id
from ..schemas.availability import (
    BulkRuleAction,
    BulkRuleResult,
    RegenerateResult,
    RuleRead,
    RuleUpdate,
    RuleUpdateResult,
    ScheduleCreate,
    ScheduleResult,
    WeeklyOverviewResponse,
    normalize_day,
)
from ..services import availability as availability_service
from ..services.slots import MaterializationResult, invalidate_days, regenerate_rule

router = APIRouter(prefix="/availability", tags=["availability"])


def _warnings(result: MaterializationResult) -> list[dict]:
    return [w.to_dict() for w in result.warnings]


@router.get("/", response_model=list[RuleRead])
def list_availability(
    target_date: date | None = None,
    day_of_week: str | None = None,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
):
    day = normalize_day(day_of_week) if day_of_week else None
    return availability_service.list_rules(db, vendor_id, target_date, day)


@router.post("/", response_model=ScheduleResult, status_code=status.HTTP_201_CREATED)
def set_schedule(
    data: ScheduleCreate,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    outcome = availability_service.set_schedule(db, vendor_id, data)
    db.commit()
    invalidate_days(redis, outcome.materialization.days)

    return ScheduleResult(
        availabilities=[RuleRead.model_validate(r) for r in outcome.rules],
        slots_count=outcome.materialization.created,
        warnings=_warnings(outcome.materialization),
    )


@router.get("/weekly", response_model=WeeklyOverviewResponse)
def weekly_overview(
    start_date: date | None = None,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
):
    week_start, week_end, events = availability_service.weekly_overview(db, vendor_id, start_date)
    return WeeklyOverviewResponse(week_start=week_start, week_end=week_end, events=events)


@router.post("/bulk", response_model=BulkRuleResult)
def bulk_availability_action(
    data: BulkRuleAction,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    outcome = availability_service.bulk_action(
        db,
        data.availability_ids,
        vendor_id,
        data.action,
        regenerate_slots=data.regenerate_slots,
    )
    db.commit()
    invalidate_days(redis, outcome.materialization.days)

    return BulkRuleResult(
        affected_count=outcome.affected_count,
        action=outcome.action,
        warnings=_warnings(outcome.materialization),
    )


@router.get("/{id}", response_model=RuleRead)
def get_availability(
    id: int,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
):
    return availability_service.get_rule(db, id, vendor_id)


@router.patch("/{id}", response_model=RuleUpdateResult)
def update_availability(
    id: int,
    data: RuleUpdate,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    outcome = availability_service.update_rule(db, id, vendor_id, data.model_dump(exclude_unset=True))

    result = MaterializationResult()
    if outcome.scheduling_changed:
        result = regenerate_rule(db, outcome.rule)

    db.commit()
    invalidate_days(redis, result.days)

    return RuleUpdateResult(
        availability=RuleRead.model_validate(outcome.rule),
        regenerated=outcome.scheduling_changed,
        slots_count=result.created,
        warnings=_warnings(result),
    )


@router.post("/{id}/regenerate", response_model=RegenerateResult)
def regenerate_availability(
    id: int,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    rule = availability_service.get_rule(db, id, vendor_id)
    result = regenerate_rule(db, rule)
    db.commit()
    invalidate_days(redis, result.days)

    return RegenerateResult(
        rule_id=id,
        dates_count=len(result.days),
        slots_count=result.created,
        removed_count=result.removed,
        warnings=_warnings(result),
    )


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_availability(
    id: int,
    vendor_id: int = Depends(get_vendor_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """Delete one rule; its unbooked future slots go with it."""
    outcome = availability_service.bulk_action(db, [id], vendor_id, "delete")
    db.commit()
    invalidate_days(redis, outcome.materialization.days)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
