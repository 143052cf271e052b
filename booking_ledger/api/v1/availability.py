from datetime import date

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from booking_ledger.api.deps import get_current_provider, get_current_user
from booking_ledger.api.pagination import HorizonDaysParam, LimitParam, OffsetParam
from booking_ledger.core.exceptions import InvalidWindow
from booking_ledger.db.models import ProviderProfile, User
from booking_ledger.db.session import get_db
from booking_ledger.schemas.rule import (
    RuleApplyRequest,
    RuleApplyResponse,
    RuleCreateRequest,
    RuleResponse,
    RuleUpdateRequest,
)
from booking_ledger.schemas.slot import OpenSlotResponse, SlotCreateRequest, SlotResponse, SlotUpdateRequest
from booking_ledger.services import availability_service, rule_service
from booking_ledger.services.provider_service import get_active_provider
from booking_ledger.services.slot_expander import apply_rules

router = APIRouter(prefix="/availability", tags=["availability"])


def _resolve_minutes(minutes: int | None, time_of_day: str | None) -> int | None:
    if minutes is not None:
        return minutes
    if time_of_day is not None:
        return rule_service.parse_time_of_day(time_of_day)
    return None


@router.post("/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    payload: RuleCreateRequest,
    provider: ProviderProfile = Depends(get_current_provider),
    db: Session = Depends(get_db),
) -> RuleResponse:
    start_minutes = _resolve_minutes(payload.start_minutes, payload.start_time)
    end_minutes = _resolve_minutes(payload.end_minutes, payload.end_time)
    if start_minutes is None or end_minutes is None:
        raise InvalidWindow("Both window bounds are required")

    rule = rule_service.create_rule(
        db=db,
        provider_id=provider.id,
        weekday=payload.weekday,
        start_minutes=start_minutes,
        end_minutes=end_minutes,
    )
    return RuleResponse.model_validate(rule)


@router.get("/rules", response_model=list[RuleResponse], status_code=status.HTTP_200_OK)
def list_rules(
    provider: ProviderProfile = Depends(get_current_provider),
    db: Session = Depends(get_db),
) -> list[RuleResponse]:
    return [RuleResponse.model_validate(rule) for rule in rule_service.list_rules(db=db, provider_id=provider.id)]


@router.post("/rules/apply", response_model=RuleApplyResponse, status_code=status.HTTP_200_OK)
def apply_availability_rules(
    payload: RuleApplyRequest | None = None,
    provider: ProviderProfile = Depends(get_current_provider),
    db: Session = Depends(get_db),
) -> RuleApplyResponse:
    request = payload or RuleApplyRequest()
    created_count = apply_rules(
        db=db,
        provider=provider,
        days_ahead=request.days_ahead,
        start_date=request.start_date,
    )
    return RuleApplyResponse(created_count=created_count)


@router.patch("/rules/{rule_id}", response_model=RuleResponse, status_code=status.HTTP_200_OK)
def update_rule(
    rule_id: int,
    payload: RuleUpdateRequest,
    provider: ProviderProfile = Depends(get_current_provider),
    db: Session = Depends(get_db),
) -> RuleResponse:
    rule = rule_service.update_rule(
        db=db,
        provider_id=provider.id,
        rule_id=rule_id,
        weekday=payload.weekday,
        start_minutes=_resolve_minutes(payload.start_minutes, payload.start_time),
        end_minutes=_resolve_minutes(payload.end_minutes, payload.end_time),
    )
    return RuleResponse.model_validate(rule)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: int,
    provider: ProviderProfile = Depends(get_current_provider),
    db: Session = Depends(get_db),
) -> Response:
    rule_service.delete_rule(db=db, provider_id=provider.id, rule_id=rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/slots", response_model=list[SlotResponse], status_code=status.HTTP_200_OK)
def list_slots(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    provider: ProviderProfile = Depends(get_current_provider),
    db: Session = Depends(get_db),
) -> list[SlotResponse]:
    slots = availability_service.list_slots(
        db=db,
        provider_id=provider.id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [SlotResponse.model_validate(slot) for slot in slots]


@router.post("/slots", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    payload: SlotCreateRequest,
    provider: ProviderProfile = Depends(get_current_provider),
    db: Session = Depends(get_db),
) -> SlotResponse:
    slot = availability_service.create_slot(
        db=db,
        provider_id=provider.id,
        start_at=payload.start_at,
        end_at=payload.end_at,
    )
    return SlotResponse.model_validate(slot)


@router.patch("/slots/{slot_id}", response_model=SlotResponse, status_code=status.HTTP_200_OK)
def update_slot(
    slot_id: int,
    payload: SlotUpdateRequest,
    provider: ProviderProfile = Depends(get_current_provider),
    db: Session = Depends(get_db),
) -> SlotResponse:
    slot = availability_service.update_slot(
        db=db,
        provider_id=provider.id,
        slot_id=slot_id,
        start_at=payload.start_at,
        end_at=payload.end_at,
    )
    return SlotResponse.model_validate(slot)


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(
    slot_id: int,
    provider: ProviderProfile = Depends(get_current_provider),
    db: Session = Depends(get_db),
) -> Response:
    availability_service.delete_slot(db=db, provider_id=provider.id, slot_id=slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/open-slots", response_model=list[OpenSlotResponse], status_code=status.HTTP_200_OK)
def list_open_slots(
    date_from: date | None = Query(default=None),
    days: HorizonDaysParam = None,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[OpenSlotResponse]:
    provider = get_active_provider(db)
    units = availability_service.list_open_slots(db=db, provider=provider, date_from=date_from, days=days)
    return [OpenSlotResponse(start_at=unit.start_at, end_at=unit.end_at) for unit in units]
