"""Local bookkeeping of the payment lifecycle.

The gateway is the source of truth for external payments; the provider is the
source of truth for cash. This module only records what they report and keeps
the transition table honest.
"""

import logging

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from booking_ledger.core.config import settings
from booking_ledger.core.exceptions import InvalidTransition
from booking_ledger.core.timeutils import utc_now
from booking_ledger.db.models import Payment, PaymentMethod, PaymentStatus, User, UserRole
from booking_ledger.db.transaction import run_in_transaction
from booking_ledger.services.credit_ledger import activate_pack_from_payment

logger = logging.getLogger(__name__)

PAYMENT_NOT_FOUND_DETAIL = "Payment not found"

ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.REFUNDED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}
CASH_SETTLEMENT_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.FAILED})


def can_transition(current: PaymentStatus | str, target: PaymentStatus | str) -> bool:
    return PaymentStatus(target) in ALLOWED_TRANSITIONS[PaymentStatus(current)]


def get_payment(db: Session, payment_id: int) -> Payment:
    payment = db.get(Payment, payment_id)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PAYMENT_NOT_FOUND_DETAIL)
    return payment


def create_payment(
    db: Session,
    client_id: int,
    amount_cents: int,
    currency: str | None = None,
    method: PaymentMethod | str = PaymentMethod.EXTERNAL_GATEWAY,
    provider_ref: str | None = None,
    grants_pack: bool = False,
    pack_credits: int | None = None,
    notes: str | None = None,
) -> Payment:
    if amount_cents < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Amount must not be negative")
    if pack_credits is not None and pack_credits <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Pack must hold at least one credit")

    client = db.get(User, client_id)
    if not client or client.role != UserRole.CLIENT.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")

    payment = Payment(
        client_id=client_id,
        amount_cents=amount_cents,
        currency=(currency or settings.default_currency).upper(),
        method=PaymentMethod(method).value,
        status=PaymentStatus.PENDING.value,
        provider_ref=provider_ref,
        grants_pack=grants_pack,
        pack_credits=pack_credits if grants_pack else None,
        notes=notes,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    logger.info(
        "payment_created payment_id=%s client_id=%s method=%s amount_cents=%s",
        payment.id,
        client_id,
        payment.method,
        amount_cents,
    )
    return payment


def create_cash_payment(
    db: Session,
    client_id: int,
    amount_cents: int,
    currency: str | None = None,
    grants_pack: bool = False,
    pack_credits: int | None = None,
    notes: str | None = None,
) -> Payment:
    return create_payment(
        db=db,
        client_id=client_id,
        amount_cents=amount_cents,
        currency=currency,
        method=PaymentMethod.CASH,
        grants_pack=grants_pack,
        pack_credits=pack_credits,
        notes=notes,
    )


def list_payments(
    db: Session,
    client_id: int | None = None,
    status_filter: PaymentStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Payment]:
    query = select(Payment)
    if client_id is not None:
        query = query.where(Payment.client_id == client_id)
    if status_filter:
        query = query.where(Payment.status == status_filter.value)
    return list(db.scalars(query.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(limit).offset(offset)).all())


def transition_payment(db: Session, payment: Payment, target: PaymentStatus | str) -> bool:
    """Move ``payment`` to ``target`` without committing; return False on a no-op.

    The write is a compare-and-set on the current status, so a concurrent writer
    that got there first turns this call into either a no-op or a rejection.
    """
    target_status = PaymentStatus(target)
    current_status = PaymentStatus(payment.status)
    if current_status == target_status:
        return False
    if not can_transition(current_status, target_status):
        raise InvalidTransition(f"Payment cannot move from {current_status.value} to {target_status.value}")

    values: dict[str, object] = {"status": target_status.value}
    if target_status == PaymentStatus.PAID:
        values["paid_at"] = utc_now()
    elif target_status == PaymentStatus.REFUNDED:
        values["refunded_at"] = utc_now()

    result = db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == current_status.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.refresh(payment)
    if result.rowcount != 1:
        if payment.status == target_status.value:
            return False
        raise InvalidTransition(f"Payment cannot move from {payment.status} to {target_status.value}")

    if target_status == PaymentStatus.PAID:
        activate_pack_from_payment(db, payment)
    logger.info(
        "payment_transition payment_id=%s from=%s to=%s",
        payment.id,
        current_status.value,
        target_status.value,
    )
    return True


def settle_cash_payment(db: Session, payment_id: int, target: PaymentStatus) -> Payment:
    """Provider action: record a cash payment as received or as not received."""
    target = PaymentStatus(target)
    if target not in CASH_SETTLEMENT_STATUSES:
        raise InvalidTransition("Cash payments can only be marked paid or failed")

    def operation() -> Payment:
        payment = get_payment(db, payment_id)
        if payment.method != PaymentMethod.CASH.value:
            raise InvalidTransition("Gateway payments are settled by the gateway callback")
        transition_payment(db, payment, target)
        return payment

    payment = run_in_transaction(db, operation)
    db.refresh(payment)
    return payment


def apply_gateway_event(
    db: Session,
    target: PaymentStatus,
    payment_id: int | None = None,
    provider_ref: str | None = None,
) -> Payment:
    """Record a gateway callback; redelivered callbacks are accepted as no-ops."""
    target = PaymentStatus(target)
    if payment_id is None and not provider_ref:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="payment_id or provider_ref is required")
    if target == PaymentStatus.PENDING:
        raise InvalidTransition("Gateway events cannot reopen a payment")

    def operation() -> Payment:
        if payment_id is not None:
            payment = get_payment(db, payment_id)
        else:
            payment = db.scalar(select(Payment).where(Payment.provider_ref == provider_ref))
            if not payment:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PAYMENT_NOT_FOUND_DETAIL)
        if payment.method != PaymentMethod.EXTERNAL_GATEWAY.value:
            raise InvalidTransition("Cash payments are settled by the provider")
        changed = transition_payment(db, payment, target)
        if not changed:
            logger.info("gateway_event_duplicate payment_id=%s status=%s", payment.id, target.value)
        return payment

    payment = run_in_transaction(db, operation)
    db.refresh(payment)
    return payment


def refund_linked_payment(db: Session, payment_id: int) -> Payment | None:
    """Refund the payment behind a refused booking, without committing.

    Returns the payment when a refund intent has to reach the gateway, that is
    when captured gateway money must go back. PENDING payments are closed as
    REFUNDED locally; FAILED and REFUNDED payments are left untouched.
    """
    payment = get_payment(db, payment_id)
    previous_status = payment.status
    if previous_status in (PaymentStatus.FAILED.value, PaymentStatus.REFUNDED.value):
        return None

    transition_payment(db, payment, PaymentStatus.REFUNDED)
    if previous_status == PaymentStatus.PAID.value and payment.method == PaymentMethod.EXTERNAL_GATEWAY.value:
        return payment
    return None
