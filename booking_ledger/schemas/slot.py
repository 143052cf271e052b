from datetime import datetime

from pydantic import BaseModel, model_validator

from booking_ledger.schemas.common import UtcDatetime


class SlotCreateRequest(BaseModel):
    start_at: UtcDatetime
    end_at: UtcDatetime

    @model_validator(mode="after")
    def validate_interval(self) -> "SlotCreateRequest":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be greater than start_at")
        return self


class SlotUpdateRequest(BaseModel):
    start_at: UtcDatetime | None = None
    end_at: UtcDatetime | None = None


class SlotResponse(BaseModel):
    id: int
    provider_id: int
    start_at: UtcDatetime
    end_at: UtcDatetime
    source: str
    created_at: datetime

    model_config = {"from_attributes": True}


class OpenSlotResponse(BaseModel):
    start_at: UtcDatetime
    end_at: UtcDatetime

    model_config = {"from_attributes": True}
