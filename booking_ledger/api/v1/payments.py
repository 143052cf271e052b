import hmac
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from booking_ledger.api.deps import get_current_user, require_roles
from booking_ledger.api.pagination import LimitParam, OffsetParam
from booking_ledger.core.config import settings
from booking_ledger.db.models import PaymentStatus, User, UserRole
from booking_ledger.db.session import get_db
from booking_ledger.schemas.payment import (
    CashPaymentCreateRequest,
    PaymentCreateRequest,
    PaymentResponse,
    PaymentWebhookEvent,
)
from booking_ledger.services import payment_service

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def create_payment(
    payload: PaymentCreateRequest,
    current_user: User = Depends(require_roles(UserRole.CLIENT)),
    db: Session = Depends(get_db),
) -> PaymentResponse:
    payment = payment_service.create_payment(
        db=db,
        client_id=current_user.id,
        amount_cents=payload.amount_cents,
        currency=payload.currency,
        provider_ref=payload.provider_ref,
        grants_pack=payload.grants_pack,
        pack_credits=payload.pack_credits,
        notes=payload.notes,
    )
    return PaymentResponse.model_validate(payment)


@router.post("/cash", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def create_cash_payment(
    payload: CashPaymentCreateRequest,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> PaymentResponse:
    payment = payment_service.create_cash_payment(
        db=db,
        client_id=payload.client_id,
        amount_cents=payload.amount_cents,
        currency=payload.currency,
        grants_pack=payload.grants_pack,
        pack_credits=payload.pack_credits,
        notes=payload.notes,
    )
    return PaymentResponse.model_validate(payment)


@router.get("/me", response_model=list[PaymentResponse], status_code=status.HTTP_200_OK)
def list_my_payments(
    status_filter: PaymentStatus | None = Query(default=None, alias="status"),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[PaymentResponse]:
    payments = payment_service.list_payments(
        db=db,
        client_id=current_user.id,
        status_filter=status_filter,
        limit=limit,
        offset=offset,
    )
    return [PaymentResponse.model_validate(payment) for payment in payments]


@router.get("", response_model=list[PaymentResponse], status_code=status.HTTP_200_OK)
def list_payments(
    client_id: int | None = Query(default=None),
    status_filter: PaymentStatus | None = Query(default=None, alias="status"),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> list[PaymentResponse]:
    payments = payment_service.list_payments(
        db=db,
        client_id=client_id,
        status_filter=status_filter,
        limit=limit,
        offset=offset,
    )
    return [PaymentResponse.model_validate(payment) for payment in payments]


@router.patch("/{payment_id}/mark-paid", response_model=PaymentResponse, status_code=status.HTTP_200_OK)
def mark_cash_payment_paid(
    payment_id: int,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> PaymentResponse:
    payment = payment_service.settle_cash_payment(db=db, payment_id=payment_id, target=PaymentStatus.PAID)
    return PaymentResponse.model_validate(payment)


@router.patch("/{payment_id}/mark-failed", response_model=PaymentResponse, status_code=status.HTTP_200_OK)
def mark_cash_payment_failed(
    payment_id: int,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> PaymentResponse:
    payment = payment_service.settle_cash_payment(db=db, payment_id=payment_id, target=PaymentStatus.FAILED)
    return PaymentResponse.model_validate(payment)


@router.post("/webhook", response_model=PaymentResponse, status_code=status.HTTP_200_OK)
def receive_gateway_event(
    payload: PaymentWebhookEvent,
    webhook_secret: Annotated[str | None, Header(alias="X-Webhook-Secret")] = None,
    db: Session = Depends(get_db),
) -> PaymentResponse:
    if webhook_secret is None or not hmac.compare_digest(
        webhook_secret.encode(), settings.payment_webhook_secret.encode()
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

    payment = payment_service.apply_gateway_event(
        db=db,
        target=payload.status,
        payment_id=payload.payment_id,
        provider_ref=payload.provider_ref,
    )
    return PaymentResponse.model_validate(payment)
