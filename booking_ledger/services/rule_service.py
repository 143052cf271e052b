import logging

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_ledger.core.exceptions import InvalidWindow
from booking_ledger.db.models import AvailabilityRule

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
RULE_NOT_FOUND_DETAIL = "Availability rule not found"


def parse_time_of_day(value: str) -> int:
    """Turn ``"HH:MM"`` into minutes after midnight."""
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(part.isdigit() and len(part) == 2 for part in parts):
        raise InvalidWindow("Time must use the HH:MM format")
    hours, minutes = int(parts[0]), int(parts[1])
    if hours > 23 or minutes > 59:
        raise InvalidWindow("Time of day is out of range")
    return hours * 60 + minutes


def validate_window(weekday: int, start_minutes: int, end_minutes: int) -> None:
    if not 0 <= weekday <= 6:
        raise InvalidWindow("Weekday must be between 0 (Monday) and 6 (Sunday)")
    for value in (start_minutes, end_minutes):
        if not 0 <= value < MINUTES_PER_DAY:
            raise InvalidWindow(f"Minutes must be between 0 and {MINUTES_PER_DAY - 1}")
    if start_minutes >= end_minutes:
        raise InvalidWindow("Window end must be after its start")


def list_rules(db: Session, provider_id: int) -> list[AvailabilityRule]:
    return list(
        db.scalars(
            select(AvailabilityRule)
            .where(AvailabilityRule.provider_id == provider_id)
            .order_by(AvailabilityRule.weekday, AvailabilityRule.start_minutes, AvailabilityRule.id)
        ).all()
    )


def _get_provider_rule(db: Session, provider_id: int, rule_id: int) -> AvailabilityRule:
    rule = db.scalar(
        select(AvailabilityRule).where(
            AvailabilityRule.id == rule_id,
            AvailabilityRule.provider_id == provider_id,
        )
    )
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=RULE_NOT_FOUND_DETAIL)
    return rule


def create_rule(db: Session, provider_id: int, weekday: int, start_minutes: int, end_minutes: int) -> AvailabilityRule:
    validate_window(weekday, start_minutes, end_minutes)
    rule = AvailabilityRule(
        provider_id=provider_id,
        weekday=weekday,
        start_minutes=start_minutes,
        end_minutes=end_minutes,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    logger.info(
        "rule_created rule_id=%s weekday=%s start=%s end=%s",
        rule.id,
        weekday,
        start_minutes,
        end_minutes,
    )
    return rule


def update_rule(
    db: Session,
    provider_id: int,
    rule_id: int,
    weekday: int | None = None,
    start_minutes: int | None = None,
    end_minutes: int | None = None,
) -> AvailabilityRule:
    rule = _get_provider_rule(db, provider_id, rule_id)
    next_weekday = rule.weekday if weekday is None else weekday
    next_start = rule.start_minutes if start_minutes is None else start_minutes
    next_end = rule.end_minutes if end_minutes is None else end_minutes
    validate_window(next_weekday, next_start, next_end)

    rule.weekday = next_weekday
    rule.start_minutes = next_start
    rule.end_minutes = next_end
    db.commit()
    db.refresh(rule)
    return rule


def delete_rule(db: Session, provider_id: int, rule_id: int) -> None:
    # Slots already expanded from the rule are a snapshot and stay published.
    rule = _get_provider_rule(db, provider_id, rule_id)
    db.delete(rule)
    db.commit()
    logger.info("rule_deleted rule_id=%s", rule_id)
