"""Prepaid credit packs and their atomic debit/credit operations.

Both credit mutations are single conditional UPDATE statements, so the
precondition is evaluated by the database at write time and two callers racing
on the same pack can never both pass it. Neither function commits: callers run
them inside their own transaction.
"""

import logging

from fastapi import HTTPException, status
from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.orm import Session

from booking_ledger.core.exceptions import InsufficientCredit, InvalidTransition
from booking_ledger.core.timeutils import utc_now
from booking_ledger.db.models import MemberPack, PackStatus, Payment, User, UserRole

logger = logging.getLogger(__name__)

PACK_NOT_FOUND_DETAIL = "Pack not found"


def _get_pack(db: Session, pack_id: int) -> MemberPack:
    pack = db.get(MemberPack, pack_id, populate_existing=True)
    if not pack:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PACK_NOT_FOUND_DETAIL)
    return pack


def get_client_pack(db: Session, pack_id: int, client_id: int) -> MemberPack:
    pack = db.scalar(select(MemberPack).where(MemberPack.id == pack_id, MemberPack.client_id == client_id))
    if not pack:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PACK_NOT_FOUND_DETAIL)
    return pack


def list_packs(db: Session, client_id: int | None = None, limit: int = 20, offset: int = 0) -> list[MemberPack]:
    query = select(MemberPack)
    if client_id is not None:
        query = query.where(MemberPack.client_id == client_id)
    return list(db.scalars(query.order_by(MemberPack.activated_at, MemberPack.id).limit(limit).offset(offset)).all())


def find_bookable_pack(db: Session, client_id: int) -> MemberPack:
    """Oldest active pack that still has credit."""
    pack = db.scalar(
        select(MemberPack)
        .where(
            MemberPack.client_id == client_id,
            MemberPack.status == PackStatus.ACTIVE.value,
            or_(MemberPack.total_credits.is_(None), MemberPack.credits_remaining > 0),
        )
        .order_by(MemberPack.activated_at, MemberPack.id)
        .limit(1)
    )
    if not pack:
        raise InsufficientCredit("No active pack with remaining credit")
    return pack


def grant_pack(
    db: Session,
    client_id: int,
    total_credits: int | None,
    label: str | None = None,
    payment_id: int | None = None,
    commit: bool = True,
) -> MemberPack:
    if total_credits is not None and total_credits <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Pack must hold at least one credit")

    client = db.get(User, client_id)
    if not client or client.role != UserRole.CLIENT.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")

    pack = MemberPack(
        client_id=client_id,
        payment_id=payment_id,
        label=label,
        total_credits=total_credits,
        credits_remaining=total_credits,
        status=PackStatus.ACTIVE.value,
        activated_at=utc_now(),
    )
    db.add(pack)
    if commit:
        db.commit()
        db.refresh(pack)
    else:
        db.flush()
    logger.info("pack_granted pack_id=%s client_id=%s total=%s", pack.id, client_id, total_credits)
    return pack


def activate_pack_from_payment(db: Session, payment: Payment) -> MemberPack | None:
    """Create the pack a settled payment bought; a second call returns the same pack."""
    if not payment.grants_pack:
        return None
    existing = db.scalar(select(MemberPack).where(MemberPack.payment_id == payment.id))
    if existing:
        return existing
    return grant_pack(
        db,
        client_id=payment.client_id,
        total_credits=payment.pack_credits,
        label=payment.notes,
        payment_id=payment.id,
        commit=False,
    )


def reserve_credit(db: Session, pack_id: int) -> MemberPack:
    """Debit one credit; an exhausted finite pack flips to USED in the same write."""
    # SET expressions read the pre-update row on every supported backend.
    result = db.execute(
        update(MemberPack)
        .where(
            MemberPack.id == pack_id,
            MemberPack.status == PackStatus.ACTIVE.value,
            or_(MemberPack.total_credits.is_(None), MemberPack.credits_remaining > 0),
        )
        .values(
            credits_remaining=case(
                (MemberPack.total_credits.is_(None), MemberPack.credits_remaining),
                else_=MemberPack.credits_remaining - 1,
            ),
            status=case(
                (
                    and_(MemberPack.total_credits.is_not(None), MemberPack.credits_remaining <= 1),
                    PackStatus.USED.value,
                ),
                else_=MemberPack.status,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    pack = _get_pack(db, pack_id)
    if result.rowcount != 1:
        raise InsufficientCredit(
            "Pack is not active" if pack.status == PackStatus.PAUSED.value else None
        )
    logger.info("credit_reserved pack_id=%s remaining=%s status=%s", pack_id, pack.credits_remaining, pack.status)
    return pack


def release_credit(db: Session, pack_id: int) -> MemberPack:
    """Give one credit back, capped at the pack total; USED becomes ACTIVE again.

    The ledger does not track which booking a credit belongs to: callers release
    at most once per booking.
    """
    db.execute(
        update(MemberPack)
        .where(MemberPack.id == pack_id, MemberPack.total_credits.is_not(None))
        .values(
            credits_remaining=case(
                (MemberPack.credits_remaining >= MemberPack.total_credits, MemberPack.total_credits),
                else_=MemberPack.credits_remaining + 1,
            ),
            status=case(
                (MemberPack.status == PackStatus.USED.value, PackStatus.ACTIVE.value),
                else_=MemberPack.status,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    pack = _get_pack(db, pack_id)
    logger.info("credit_released pack_id=%s remaining=%s status=%s", pack_id, pack.credits_remaining, pack.status)
    return pack


def pause_pack(db: Session, pack_id: int) -> MemberPack:
    result = db.execute(
        update(MemberPack)
        .where(MemberPack.id == pack_id, MemberPack.status == PackStatus.ACTIVE.value)
        .values(status=PackStatus.PAUSED.value)
        .execution_options(synchronize_session=False)
    )
    pack = _get_pack(db, pack_id)
    if result.rowcount != 1:
        db.rollback()
        raise InvalidTransition(f"Cannot pause a {pack.status} pack")
    db.commit()
    db.refresh(pack)
    return pack


def resume_pack(db: Session, pack_id: int) -> MemberPack:
    exhausted = and_(MemberPack.total_credits.is_not(None), MemberPack.credits_remaining <= 0)
    result = db.execute(
        update(MemberPack)
        .where(MemberPack.id == pack_id, MemberPack.status == PackStatus.PAUSED.value)
        .values(status=case((exhausted, PackStatus.USED.value), else_=PackStatus.ACTIVE.value))
        .execution_options(synchronize_session=False)
    )
    pack = _get_pack(db, pack_id)
    if result.rowcount != 1:
        db.rollback()
        raise InvalidTransition(f"Cannot resume a {pack.status} pack")
    db.commit()
    db.refresh(pack)
    return pack
