"""Booking lifecycle: PENDING on creation, then CONFIRMED or REFUSED for good.

Creation serializes on the provider's schedule lock and re-carves availability
inside the same transaction, so the range check and the insert cannot be split
by a competing request. Transitions are conditional UPDATEs on the PENDING
status, which lets exactly one of two racing transitions win.
"""

import logging
from datetime import UTC, date, datetime, time, timedelta

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_ledger.core.config import settings
from booking_ledger.core.exceptions import InsufficientCredit, InvalidTransition, InvalidWindow, SlotUnavailable
from booking_ledger.core.metrics import BOOKING_EVENTS
from booking_ledger.core.timeutils import ensure_utc, utc_now
from booking_ledger.db.models import Booking, BookingStatus, Payment, PaymentStatus, User, UserRole
from booking_ledger.db.transaction import run_in_transaction
from booking_ledger.services.availability_service import booking_unit, load_booked_ranges, load_windows
from booking_ledger.services.credit_ledger import find_bookable_pack, get_client_pack, release_credit, reserve_credit
from booking_ledger.services.payment_gateway import PaymentGateway, get_payment_gateway
from booking_ledger.services.payment_service import refund_linked_payment
from booking_ledger.services.provider_service import get_active_provider, lock_provider_schedule
from booking_ledger.services.slot_carver import TimeRange, is_open_unit

logger = logging.getLogger(__name__)

BOOKING_NOT_FOUND_DETAIL = "Booking not found"
IDEMPOTENCY_KEY_REUSE_DETAIL = "Idempotency key already used with another time range"
BOOKING_CONFLICT_DETAIL = "Booking conflicts with a concurrent request. Retry the request."
PAYMENT_ALREADY_LINKED_DETAIL = "Payment is already linked to a booking"
PACK_PAYMENT_DETAIL = "Payment bought a pack and cannot back a booking"


def _get_booking_by_idempotency_key(db: Session, client_id: int, idempotency_key: str) -> Booking | None:
    return db.scalar(
        select(Booking).where(
            Booking.client_id == client_id,
            Booking.idempotency_key == idempotency_key,
        )
    )


def _replay(existing: Booking, requested: TimeRange) -> Booking:
    if TimeRange.of(existing.start_at, existing.end_at) != requested:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=IDEMPOTENCY_KEY_REUSE_DETAIL)
    return existing


def _validate_payment_link(db: Session, payment_id: int, client_id: int) -> None:
    payment = db.get(Payment, payment_id)
    if not payment or payment.client_id != client_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    if payment.grants_pack:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=PACK_PAYMENT_DETAIL)
    if payment.status in (PaymentStatus.FAILED.value, PaymentStatus.REFUNDED.value):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Payment is {payment.status}")
    if db.scalar(select(Booking.id).where(Booking.payment_id == payment_id)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=PAYMENT_ALREADY_LINKED_DETAIL)


def create_booking(
    db: Session,
    client_id: int,
    start_at: datetime,
    end_at: datetime,
    pack_id: int | None = None,
    payment_id: int | None = None,
    member_notes: str | None = None,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> Booking:
    requested = TimeRange.of(start_at, end_at)
    if requested.end_at <= requested.start_at:
        raise InvalidWindow("Booking end must be after its start")
    current_time = ensure_utc(now) if now else utc_now()

    def operation() -> tuple[Booking, bool]:
        if idempotency_key:
            existing = _get_booking_by_idempotency_key(db, client_id, idempotency_key)
            if existing:
                return _replay(existing, requested), False

        provider = get_active_provider(db)
        if pack_id is not None:
            pack = get_client_pack(db, pack_id, client_id)
        else:
            pack = find_bookable_pack(db, client_id)
        if payment_id is not None:
            _validate_payment_link(db, payment_id, client_id)

        lock_provider_schedule(db, provider.id)
        windows = load_windows(db, provider.id, requested.start_at, requested.end_at)
        booked = load_booked_ranges(db, provider.id, requested.start_at, requested.end_at)
        if not is_open_unit(requested, windows, booked, booking_unit(), not_before=current_time):
            raise SlotUnavailable()

        reserve_credit(db, pack.id)
        booking = Booking(
            provider_id=provider.id,
            client_id=client_id,
            pack_id=pack.id,
            payment_id=payment_id,
            start_at=requested.start_at,
            end_at=requested.end_at,
            status=BookingStatus.PENDING.value,
            member_notes=member_notes,
            idempotency_key=idempotency_key,
        )
        db.add(booking)
        db.flush()
        return booking, True

    try:
        booking, created = run_in_transaction(db, operation)
    except SlotUnavailable:
        BOOKING_EVENTS.labels(event="conflict").inc()
        logger.info("booking_conflict client_id=%s start_at=%s", client_id, requested.start_at.isoformat())
        raise
    except InsufficientCredit:
        BOOKING_EVENTS.labels(event="insufficient_credit").inc()
        logger.info("booking_insufficient_credit client_id=%s pack_id=%s", client_id, pack_id)
        raise
    except IntegrityError:
        # A concurrent request with the same key, or linking the same payment, won.
        if idempotency_key:
            existing = _get_booking_by_idempotency_key(db, client_id, idempotency_key)
            if existing:
                return _replay(existing, requested)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=BOOKING_CONFLICT_DETAIL) from None

    db.refresh(booking)
    if created:
        BOOKING_EVENTS.labels(event="created").inc()
        logger.info(
            "booking_created booking_id=%s client_id=%s pack_id=%s start_at=%s",
            booking.id,
            client_id,
            booking.pack_id,
            booking.start_at.isoformat(),
        )
    else:
        logger.info("booking_replayed booking_id=%s client_id=%s", booking.id, client_id)
    return booking


def _leave_pending(db: Session, booking_id: int, target: BookingStatus, client_id: int | None = None, **values) -> Booking:
    query = update(Booking).where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING.value)
    if client_id is not None:
        query = query.where(Booking.client_id == client_id)
    result = db.execute(
        query.values(status=target.value, **values).execution_options(synchronize_session=False)
    )
    booking = db.get(Booking, booking_id, populate_existing=True)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=BOOKING_NOT_FOUND_DETAIL)
    if result.rowcount != 1:
        if client_id is not None and booking.client_id != client_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
        raise InvalidTransition(f"Booking is already {booking.status}")
    return booking


def confirm_booking(db: Session, booking_id: int, coach_notes: str | None = None) -> Booking:
    values: dict[str, object] = {"confirmed_at": utc_now()}
    if coach_notes is not None:
        values["coach_notes"] = coach_notes

    booking = run_in_transaction(
        db,
        lambda: _leave_pending(db, booking_id, BookingStatus.CONFIRMED, **values),
    )
    db.refresh(booking)
    BOOKING_EVENTS.labels(event="confirmed").inc()
    logger.info("booking_confirmed booking_id=%s", booking_id)
    return booking


def _release_booking(
    db: Session,
    booking_id: int,
    event: str,
    coach_notes: str | None = None,
    client_id: int | None = None,
    gateway: PaymentGateway | None = None,
) -> Booking:
    values: dict[str, object] = {"cancelled_at": utc_now()}
    if coach_notes is not None:
        values["coach_notes"] = coach_notes

    def operation() -> tuple[Booking, Payment | None]:
        booking = _leave_pending(db, booking_id, BookingStatus.REFUSED, client_id=client_id, **values)
        release_credit(db, booking.pack_id)
        refund = refund_linked_payment(db, booking.payment_id) if booking.payment_id else None
        return booking, refund

    booking, refund = run_in_transaction(db, operation)
    db.refresh(booking)
    BOOKING_EVENTS.labels(event=event).inc()
    logger.info("booking_%s booking_id=%s pack_id=%s", event, booking_id, booking.pack_id)

    if refund is not None:
        # The refusal is committed; a failing gateway call must not undo it.
        try:
            (gateway or get_payment_gateway()).request_refund(refund, reason=f"booking_{event}")
        except Exception:
            logger.exception("refund_intent_failed payment_id=%s booking_id=%s", refund.id, booking_id)
    return booking


def refuse_booking(
    db: Session,
    booking_id: int,
    coach_notes: str | None = None,
    gateway: PaymentGateway | None = None,
) -> Booking:
    return _release_booking(db, booking_id, event="refused", coach_notes=coach_notes, gateway=gateway)


def cancel_by_client(
    db: Session,
    booking_id: int,
    client_id: int,
    gateway: PaymentGateway | None = None,
) -> Booking:
    if not settings.allow_client_cancellation:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Client cancellation is disabled")
    return _release_booking(db, booking_id, event="cancelled", client_id=client_id, gateway=gateway)


def get_booking(db: Session, booking_id: int, user: User) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=BOOKING_NOT_FOUND_DETAIL)
    is_staff = user.role in (UserRole.PROVIDER.value, UserRole.ADMIN.value)
    if not (is_staff or booking.client_id == user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
    return booking


def list_bookings(
    db: Session,
    client_id: int | None = None,
    status_filter: BookingStatus | None = None,
    pack_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Booking]:
    query = select(Booking)
    if client_id is not None:
        query = query.where(Booking.client_id == client_id)
    if status_filter:
        query = query.where(Booking.status == status_filter.value)
    if pack_id is not None:
        query = query.where(Booking.pack_id == pack_id)
    if date_from:
        start_dt = datetime.combine(date_from, time.min, tzinfo=UTC)
        query = query.where(Booking.start_at >= start_dt)
    if date_to:
        end_dt = datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=UTC)
        query = query.where(Booking.start_at < end_dt)
    return list(db.scalars(query.order_by(Booking.start_at, Booking.id).limit(limit).offset(offset)).all())
