from datetime import datetime

from pydantic import BaseModel, Field

from booking_ledger.db.models import PaymentStatus


class PaymentCreateRequest(BaseModel):
    amount_cents: int = Field(ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    provider_ref: str | None = Field(default=None, max_length=255)
    grants_pack: bool = False
    pack_credits: int | None = Field(default=None, ge=1)
    notes: str | None = Field(default=None, max_length=1000)


class CashPaymentCreateRequest(BaseModel):
    client_id: int
    amount_cents: int = Field(ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    grants_pack: bool = False
    pack_credits: int | None = Field(default=None, ge=1)
    notes: str | None = Field(default=None, max_length=1000)


class PaymentWebhookEvent(BaseModel):
    payment_id: int | None = None
    provider_ref: str | None = None
    status: PaymentStatus


class PaymentResponse(BaseModel):
    id: int
    client_id: int
    amount_cents: int
    currency: str
    method: str
    status: str
    provider_ref: str | None
    grants_pack: bool
    pack_credits: int | None
    notes: str | None
    created_at: datetime
    paid_at: datetime | None
    refunded_at: datetime | None

    model_config = {"from_attributes": True}
