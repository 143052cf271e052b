from datetime import datetime

from pydantic import BaseModel, Field


class PackGrantRequest(BaseModel):
    client_id: int
    total_credits: int | None = Field(default=None, ge=1, description="Omit for an unlimited pack")
    label: str | None = Field(default=None, max_length=120)


class PackResponse(BaseModel):
    id: int
    client_id: int
    payment_id: int | None
    label: str | None
    total_credits: int | None
    credits_remaining: int | None
    status: str
    activated_at: datetime

    model_config = {"from_attributes": True}
