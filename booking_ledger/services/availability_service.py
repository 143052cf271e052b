import logging
from datetime import UTC, date, datetime, time, timedelta

from fastapi import HTTPException, status
from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_ledger.core.config import settings
from booking_ledger.core.exceptions import InvalidWindow
from booking_ledger.core.timeutils import ensure_utc, utc_now
from booking_ledger.db.models import BLOCKING_STATUSES, AvailabilitySlot, Booking, ProviderProfile, SlotSource
from booking_ledger.services.slot_carver import TimeRange, carve_open_units

logger = logging.getLogger(__name__)

SLOT_NOT_FOUND_DETAIL = "Slot not found"
SLOT_OVERLAP_DETAIL = "Time slot overlaps with existing slot"


def booking_unit() -> timedelta:
    return timedelta(minutes=settings.booking_unit_minutes)


def clamp_listing_days(days: int | None) -> int:
    if days is None:
        return settings.open_slots_default_days
    return max(1, min(days, settings.open_slots_max_days))


def load_windows(db: Session, provider_id: int, range_start: datetime, range_end: datetime) -> list[TimeRange]:
    rows = db.execute(
        select(AvailabilitySlot.start_at, AvailabilitySlot.end_at).where(
            AvailabilitySlot.provider_id == provider_id,
            AvailabilitySlot.start_at < range_end,
            AvailabilitySlot.end_at > range_start,
        )
    ).all()
    return [TimeRange.of(start_at, end_at) for start_at, end_at in rows]


def load_booked_ranges(db: Session, provider_id: int, range_start: datetime, range_end: datetime) -> list[TimeRange]:
    rows = db.execute(
        select(Booking.start_at, Booking.end_at).where(
            Booking.provider_id == provider_id,
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.start_at < range_end,
            Booking.end_at > range_start,
        )
    ).all()
    return [TimeRange.of(start_at, end_at) for start_at, end_at in rows]


def list_open_slots(
    db: Session,
    provider: ProviderProfile,
    date_from: date | None = None,
    days: int | None = None,
    now: datetime | None = None,
) -> list[TimeRange]:
    """Bookable units starting within ``days`` UTC calendar days from ``date_from``."""
    current_time = ensure_utc(now) if now else utc_now()
    start_date = date_from or current_time.date()
    range_start = datetime.combine(start_date, time.min, tzinfo=UTC)
    range_end = range_start + timedelta(days=clamp_listing_days(days))

    windows = load_windows(db, provider.id, range_start, range_end)
    booked = load_booked_ranges(db, provider.id, range_start, range_end)
    units = carve_open_units(windows, booked, booking_unit(), not_before=current_time)
    return [unit for unit in units if range_start <= unit.start_at < range_end]


def list_slots(
    db: Session,
    provider_id: int,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[AvailabilitySlot]:
    query = select(AvailabilitySlot).where(AvailabilitySlot.provider_id == provider_id)
    if date_from:
        start_dt = datetime.combine(date_from, time.min, tzinfo=UTC)
        query = query.where(AvailabilitySlot.start_at >= start_dt)
    if date_to:
        end_dt = datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=UTC)
        query = query.where(AvailabilitySlot.start_at < end_dt)
    return list(
        db.scalars(query.order_by(AvailabilitySlot.start_at, AvailabilitySlot.id).limit(limit).offset(offset)).all()
    )


def _get_provider_slot(db: Session, provider_id: int, slot_id: int) -> AvailabilitySlot:
    slot = db.scalar(
        select(AvailabilitySlot).where(
            AvailabilitySlot.id == slot_id,
            AvailabilitySlot.provider_id == provider_id,
        )
    )
    if not slot:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=SLOT_NOT_FOUND_DETAIL)
    return slot


def _ensure_no_overlap(db: Session, provider_id: int, window: TimeRange, exclude_slot_id: int | None = None) -> None:
    query = select(AvailabilitySlot.id).where(
        and_(
            AvailabilitySlot.provider_id == provider_id,
            AvailabilitySlot.start_at < window.end_at,
            AvailabilitySlot.end_at > window.start_at,
        )
    )
    if exclude_slot_id is not None:
        query = query.where(AvailabilitySlot.id != exclude_slot_id)
    if db.scalar(query.limit(1)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_OVERLAP_DETAIL)


def _validated_range(start_at: datetime, end_at: datetime) -> TimeRange:
    window = TimeRange.of(start_at, end_at)
    if window.end_at <= window.start_at:
        raise InvalidWindow("Window end must be after its start")
    return window


def create_slot(db: Session, provider_id: int, start_at: datetime, end_at: datetime) -> AvailabilitySlot:
    window = _validated_range(start_at, end_at)
    _ensure_no_overlap(db, provider_id, window)

    slot = AvailabilitySlot(
        provider_id=provider_id,
        start_at=window.start_at,
        end_at=window.end_at,
        source=SlotSource.MANUAL.value,
    )
    db.add(slot)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_OVERLAP_DETAIL) from None
    db.refresh(slot)
    logger.info("slot_created slot_id=%s start_at=%s end_at=%s", slot.id, window.start_at, window.end_at)
    return slot


def update_slot(
    db: Session,
    provider_id: int,
    slot_id: int,
    start_at: datetime | None = None,
    end_at: datetime | None = None,
) -> AvailabilitySlot:
    """Move or resize a published window; bookings already made keep their ranges."""
    slot = _get_provider_slot(db, provider_id, slot_id)
    window = _validated_range(start_at or slot.start_at, end_at or slot.end_at)
    _ensure_no_overlap(db, provider_id, window, exclude_slot_id=slot.id)

    slot.start_at = window.start_at
    slot.end_at = window.end_at
    slot.source = SlotSource.MANUAL.value
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_OVERLAP_DETAIL) from None
    db.refresh(slot)
    return slot


def delete_slot(db: Session, provider_id: int, slot_id: int) -> None:
    slot = _get_provider_slot(db, provider_id, slot_id)
    db.delete(slot)
    db.commit()
    logger.info("slot_deleted slot_id=%s", slot_id)
