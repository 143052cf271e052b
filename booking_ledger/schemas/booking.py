from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from booking_ledger.schemas.common import UtcDatetime


class BookingCreateRequest(BaseModel):
    start_at: UtcDatetime
    end_at: UtcDatetime
    pack_id: int | None = None
    payment_id: int | None = None
    member_notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_interval(self) -> "BookingCreateRequest":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be greater than start_at")
        return self


class BookingDecisionRequest(BaseModel):
    coach_notes: str | None = Field(default=None, max_length=1000)


class BookingResponse(BaseModel):
    id: int
    provider_id: int
    client_id: int
    pack_id: int
    payment_id: int | None
    start_at: UtcDatetime
    end_at: UtcDatetime
    status: str
    member_notes: str | None
    coach_notes: str | None
    created_at: datetime
    confirmed_at: datetime | None
    cancelled_at: datetime | None

    model_config = {"from_attributes": True}
