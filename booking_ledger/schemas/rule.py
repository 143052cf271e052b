from datetime import date, datetime

from pydantic import BaseModel, Field


class RuleCreateRequest(BaseModel):
    weekday: int
    start_minutes: int | None = None
    end_minutes: int | None = None
    start_time: str | None = Field(default=None, description="HH:MM, alternative to start_minutes")
    end_time: str | None = Field(default=None, description="HH:MM, alternative to end_minutes")


class RuleUpdateRequest(BaseModel):
    weekday: int | None = None
    start_minutes: int | None = None
    end_minutes: int | None = None
    start_time: str | None = None
    end_time: str | None = None


class RuleResponse(BaseModel):
    id: int
    provider_id: int
    weekday: int
    start_minutes: int
    end_minutes: int
    created_at: datetime

    model_config = {"from_attributes": True}


class RuleApplyRequest(BaseModel):
    days_ahead: int | None = Field(default=None, ge=1)
    start_date: date | None = None


class RuleApplyResponse(BaseModel):
    created_count: int
