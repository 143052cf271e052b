"""Outbound side of the payment provider integration.

The engine never moves money itself: it records local payment state and hands
refund intents to a gateway client after the owning transaction has committed.
"""

import logging
from abc import ABC, abstractmethod

from booking_ledger.db.models import Payment

logger = logging.getLogger(__name__)


class PaymentGateway(ABC):
    @abstractmethod
    def request_refund(self, payment: Payment, reason: str | None = None) -> None:
        raise NotImplementedError


class LoggingPaymentGateway(PaymentGateway):
    def request_refund(self, payment: Payment, reason: str | None = None) -> None:
        logger.info(
            "refund_intent payment_id=%s provider_ref=%s amount_cents=%s currency=%s reason=%s",
            payment.id,
            payment.provider_ref,
            payment.amount_cents,
            payment.currency,
            reason,
        )


payment_gateway: PaymentGateway = LoggingPaymentGateway()


def get_payment_gateway() -> PaymentGateway:
    return payment_gateway
