"""Expansion of weekly rules into dated availability slots."""

import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_ledger.core.config import settings
from booking_ledger.core.exceptions import InvalidWindow
from booking_ledger.core.metrics import SLOTS_CREATED
from booking_ledger.core.timeutils import ensure_utc, utc_now
from booking_ledger.db.models import AvailabilityRule, AvailabilitySlot, ProviderProfile, SlotSource
from booking_ledger.services.slot_carver import TimeRange

logger = logging.getLogger(__name__)

APPLY_MAX_ATTEMPTS = 3


def clamp_days_ahead(days_ahead: int | None) -> int:
    if days_ahead is None:
        return settings.rule_apply_default_days
    return max(1, min(days_ahead, settings.rule_apply_max_days))


def _provider_zone(provider: ProviderProfile) -> ZoneInfo:
    try:
        return ZoneInfo(provider.timezone or "UTC")
    except (ValueError, KeyError) as exc:
        raise InvalidWindow(f"Unknown provider timezone: {provider.timezone}") from exc


def expand_rule_windows(
    rules: list[AvailabilityRule],
    start_date: date,
    days_ahead: int,
    zone: ZoneInfo,
    now: datetime,
) -> list[TimeRange]:
    """Concrete UTC windows for ``[start_date, start_date + days_ahead]``.

    Windows that already ended are dropped and duplicates from overlapping rules
    collapse into one.
    """
    windows: set[TimeRange] = set()
    for offset in range(days_ahead + 1):
        target_date = start_date + timedelta(days=offset)
        local_midnight = datetime.combine(target_date, time.min, tzinfo=zone)
        for rule in rules:
            if rule.weekday != target_date.weekday():
                continue
            start_at = local_midnight + timedelta(minutes=rule.start_minutes)
            end_at = local_midnight + timedelta(minutes=rule.end_minutes)
            window = TimeRange.of(start_at, end_at)
            if window.end_at <= now or window.end_at <= window.start_at:
                continue
            windows.add(window)
    return sorted(windows)


def _existing_windows(db: Session, provider_id: int, candidates: list[TimeRange]) -> set[TimeRange]:
    rows = db.execute(
        select(AvailabilitySlot.start_at, AvailabilitySlot.end_at).where(
            AvailabilitySlot.provider_id == provider_id,
            AvailabilitySlot.start_at.in_([window.start_at for window in candidates]),
        )
    ).all()
    return {TimeRange.of(start_at, end_at) for start_at, end_at in rows}


def apply_rules(
    db: Session,
    provider: ProviderProfile,
    days_ahead: int | None = None,
    start_date: date | None = None,
    now: datetime | None = None,
) -> int:
    """Insert the slots the provider's rules describe; return how many were new.

    Safe to run repeatedly and concurrently: existing ``(start_at, end_at)`` pairs
    are skipped, and losing the unique constraint to a concurrent apply re-reads
    the stored windows and inserts only what is still missing.
    """
    current_time = ensure_utc(now) if now else utc_now()
    zone = _provider_zone(provider)
    horizon = clamp_days_ahead(days_ahead)
    first_day = start_date or current_time.astimezone(zone).date()
    provider_id = provider.id

    rules = list(db.scalars(select(AvailabilityRule).where(AvailabilityRule.provider_id == provider_id)).all())
    if not rules:
        return 0

    candidates = expand_rule_windows(rules, first_day, horizon, zone, current_time)
    if not candidates:
        return 0

    for attempt in range(1, APPLY_MAX_ATTEMPTS + 1):
        existing = _existing_windows(db, provider_id, candidates)
        missing = [window for window in candidates if window not in existing]
        db.add_all(
            AvailabilitySlot(
                provider_id=provider_id,
                start_at=window.start_at,
                end_at=window.end_at,
                source=SlotSource.RULE.value,
            )
            for window in missing
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if attempt >= APPLY_MAX_ATTEMPTS:
                raise
            logger.info("rules_apply_raced provider_id=%s attempt=%s", provider_id, attempt)
            continue
        break

    created_count = len(missing)
    SLOTS_CREATED.inc(created_count)
    logger.info(
        "rules_applied provider_id=%s days_ahead=%s start_date=%s created=%s",
        provider_id,
        horizon,
        first_day.isoformat(),
        created_count,
    )
    return created_count
