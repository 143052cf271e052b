import pytest

from booking_ledger.core.exceptions import InvalidTransition
from booking_ledger.db.models import MemberPack, PaymentMethod, PaymentStatus
from booking_ledger.services.payment_service import (
    apply_gateway_event,
    can_transition,
    create_cash_payment,
    create_payment,
    refund_linked_payment,
    settle_cash_payment,
    transition_payment,
)


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (PaymentStatus.PENDING, PaymentStatus.PAID, True),
        (PaymentStatus.PENDING, PaymentStatus.FAILED, True),
        (PaymentStatus.PENDING, PaymentStatus.REFUNDED, True),
        (PaymentStatus.PAID, PaymentStatus.REFUNDED, True),
        (PaymentStatus.PAID, PaymentStatus.FAILED, False),
        (PaymentStatus.PAID, PaymentStatus.PENDING, False),
        (PaymentStatus.FAILED, PaymentStatus.PAID, False),
        (PaymentStatus.REFUNDED, PaymentStatus.PAID, False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_paid_sets_timestamp_and_reapplying_is_a_noop(db_session, client_user):
    payment = create_payment(db_session, client_id=client_user.id, amount_cents=2500)

    assert transition_payment(db_session, payment, PaymentStatus.PAID) is True
    db_session.commit()
    paid_at = payment.paid_at

    assert transition_payment(db_session, payment, PaymentStatus.PAID) is False
    assert payment.status == PaymentStatus.PAID.value
    assert payment.paid_at == paid_at


def test_failed_payment_cannot_be_paid(db_session, client_user):
    payment = create_payment(db_session, client_id=client_user.id, amount_cents=2500)
    transition_payment(db_session, payment, PaymentStatus.FAILED)
    db_session.commit()

    with pytest.raises(InvalidTransition):
        transition_payment(db_session, payment, PaymentStatus.PAID)


def test_cash_settlement_rejects_gateway_payments(db_session, client_user):
    payment = create_payment(db_session, client_id=client_user.id, amount_cents=2500)

    with pytest.raises(InvalidTransition):
        settle_cash_payment(db_session, payment.id, PaymentStatus.PAID)


def test_gateway_events_reject_cash_payments(db_session, client_user):
    payment = create_cash_payment(db_session, client_id=client_user.id, amount_cents=2500)

    with pytest.raises(InvalidTransition):
        apply_gateway_event(db_session, PaymentStatus.PAID, payment_id=payment.id)


def test_paid_cash_payment_activates_its_pack(db_session, client_user):
    payment = create_cash_payment(
        db_session,
        client_id=client_user.id,
        amount_cents=9000,
        grants_pack=True,
        pack_credits=10,
        notes="10-session pack",
    )

    settled = settle_cash_payment(db_session, payment.id, PaymentStatus.PAID)

    pack = db_session.query(MemberPack).filter(MemberPack.payment_id == payment.id).one()
    assert settled.status == PaymentStatus.PAID.value
    assert settled.paid_at is not None
    assert pack.total_credits == 10
    assert pack.credits_remaining == 10
    assert pack.label == "10-session pack"


def test_redelivered_gateway_event_is_accepted(db_session, client_user):
    payment = create_payment(db_session, client_id=client_user.id, amount_cents=2500, provider_ref="ch_123")

    apply_gateway_event(db_session, PaymentStatus.PAID, provider_ref="ch_123")
    again = apply_gateway_event(db_session, PaymentStatus.PAID, provider_ref="ch_123")

    assert again.id == payment.id
    assert again.status == PaymentStatus.PAID.value


def test_refund_of_captured_gateway_payment_requests_gateway_refund(db_session, client_user):
    payment = create_payment(db_session, client_id=client_user.id, amount_cents=2500)
    transition_payment(db_session, payment, PaymentStatus.PAID)
    db_session.commit()

    refund = refund_linked_payment(db_session, payment.id)
    db_session.commit()

    assert refund is not None
    assert refund.status == PaymentStatus.REFUNDED.value
    assert refund.refunded_at is not None


def test_refund_of_pending_or_cash_payment_stays_local(db_session, client_user):
    pending = create_payment(db_session, client_id=client_user.id, amount_cents=2500)
    cash = create_cash_payment(db_session, client_id=client_user.id, amount_cents=2500)
    settle_cash_payment(db_session, cash.id, PaymentStatus.PAID)

    assert refund_linked_payment(db_session, pending.id) is None
    assert refund_linked_payment(db_session, cash.id) is None
    db_session.commit()

    assert pending.status == PaymentStatus.REFUNDED.value
    assert cash.status == PaymentStatus.REFUNDED.value


def test_refund_leaves_failed_payment_untouched(db_session, client_user):
    payment = create_payment(db_session, client_id=client_user.id, amount_cents=2500)
    transition_payment(db_session, payment, PaymentStatus.FAILED)
    db_session.commit()

    assert refund_linked_payment(db_session, payment.id) is None
    assert payment.status == PaymentStatus.FAILED.value
    assert payment.method == PaymentMethod.EXTERNAL_GATEWAY.value
