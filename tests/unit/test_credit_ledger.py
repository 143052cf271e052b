import pytest
from fastapi import HTTPException

from booking_ledger.core.exceptions import InsufficientCredit, InvalidTransition
from booking_ledger.db.models import MemberPack, PackStatus, Payment, PaymentMethod, PaymentStatus
from booking_ledger.services.credit_ledger import (
    activate_pack_from_payment,
    find_bookable_pack,
    grant_pack,
    pause_pack,
    release_credit,
    reserve_credit,
    resume_pack,
)


def test_reserve_decrements_and_flips_to_used_at_zero(db_session, client_user):
    pack = grant_pack(db_session, client_id=client_user.id, total_credits=2)

    reserve_credit(db_session, pack.id)
    db_session.commit()
    after_first = db_session.get(MemberPack, pack.id)
    assert after_first.credits_remaining == 1
    assert after_first.status == PackStatus.ACTIVE.value

    reserve_credit(db_session, pack.id)
    db_session.commit()
    after_second = db_session.get(MemberPack, pack.id)
    assert after_second.credits_remaining == 0
    assert after_second.status == PackStatus.USED.value


def test_reserve_on_exhausted_pack_raises_and_changes_nothing(db_session, client_user):
    pack = grant_pack(db_session, client_id=client_user.id, total_credits=1)
    reserve_credit(db_session, pack.id)
    db_session.commit()

    with pytest.raises(InsufficientCredit) as exc_info:
        reserve_credit(db_session, pack.id)
    db_session.rollback()

    assert exc_info.value.status_code == 402
    stored = db_session.get(MemberPack, pack.id)
    assert stored.credits_remaining == 0
    assert stored.status == PackStatus.USED.value


def test_unlimited_pack_never_runs_out(db_session, client_user):
    pack = grant_pack(db_session, client_id=client_user.id, total_credits=None)

    for _ in range(5):
        reserve_credit(db_session, pack.id)
    db_session.commit()

    stored = db_session.get(MemberPack, pack.id)
    assert stored.is_unlimited
    assert stored.credits_remaining is None
    assert stored.status == PackStatus.ACTIVE.value


def test_release_restores_credit_and_reactivates(db_session, client_user):
    pack = grant_pack(db_session, client_id=client_user.id, total_credits=1)
    reserve_credit(db_session, pack.id)
    db_session.commit()

    release_credit(db_session, pack.id)
    db_session.commit()

    stored = db_session.get(MemberPack, pack.id)
    assert stored.credits_remaining == 1
    assert stored.status == PackStatus.ACTIVE.value


def test_release_is_capped_at_total(db_session, client_user):
    pack = grant_pack(db_session, client_id=client_user.id, total_credits=3)

    release_credit(db_session, pack.id)
    db_session.commit()

    assert db_session.get(MemberPack, pack.id).credits_remaining == 3


def test_paused_pack_cannot_be_debited(db_session, client_user):
    pack = grant_pack(db_session, client_id=client_user.id, total_credits=3)
    pause_pack(db_session, pack.id)

    with pytest.raises(InsufficientCredit):
        reserve_credit(db_session, pack.id)
    db_session.rollback()

    assert db_session.get(MemberPack, pack.id).credits_remaining == 3


def test_resume_of_exhausted_pack_yields_used(db_session, client_user):
    pack = grant_pack(db_session, client_id=client_user.id, total_credits=1)
    reserve_credit(db_session, pack.id)
    db_session.commit()
    db_session.query(MemberPack).filter(MemberPack.id == pack.id).update({"status": PackStatus.PAUSED.value})
    db_session.commit()

    resumed = resume_pack(db_session, pack.id)

    assert resumed.status == PackStatus.USED.value


def test_pause_requires_an_active_pack(db_session, client_user):
    pack = grant_pack(db_session, client_id=client_user.id, total_credits=2)
    pause_pack(db_session, pack.id)

    with pytest.raises(InvalidTransition):
        pause_pack(db_session, pack.id)

    assert resume_pack(db_session, pack.id).status == PackStatus.ACTIVE.value


def test_reserve_unknown_pack_is_not_found(db_session):
    with pytest.raises(HTTPException) as exc_info:
        reserve_credit(db_session, 999)

    assert exc_info.value.status_code == 404


def test_find_bookable_pack_prefers_oldest_pack_with_credit(db_session, client_user):
    exhausted = grant_pack(db_session, client_id=client_user.id, total_credits=1)
    reserve_credit(db_session, exhausted.id)
    db_session.commit()
    older = grant_pack(db_session, client_id=client_user.id, total_credits=5)
    grant_pack(db_session, client_id=client_user.id, total_credits=5)

    assert find_bookable_pack(db_session, client_user.id).id == older.id


def test_find_bookable_pack_without_credit_raises(db_session, client_user):
    with pytest.raises(InsufficientCredit):
        find_bookable_pack(db_session, client_user.id)


def test_pack_activation_from_payment_is_idempotent(db_session, client_user):
    payment = Payment(
        client_id=client_user.id,
        amount_cents=5000,
        currency="EUR",
        method=PaymentMethod.CASH.value,
        status=PaymentStatus.PAID.value,
        grants_pack=True,
        pack_credits=10,
    )
    db_session.add(payment)
    db_session.commit()

    first = activate_pack_from_payment(db_session, payment)
    db_session.commit()
    second = activate_pack_from_payment(db_session, payment)

    assert first.id == second.id
    assert first.total_credits == 10
    assert db_session.query(MemberPack).filter(MemberPack.payment_id == payment.id).count() == 1
