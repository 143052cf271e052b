from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from booking_ledger.api.deps import get_current_user, require_roles
from booking_ledger.api.pagination import LimitParam, OffsetParam
from booking_ledger.core.config import settings
from booking_ledger.core.rate_limiter import attempt_limiter
from booking_ledger.db.models import BookingStatus, User, UserRole
from booking_ledger.db.session import get_db
from booking_ledger.schemas.booking import BookingCreateRequest, BookingDecisionRequest, BookingResponse
from booking_ledger.services import booking_service

router = APIRouter(prefix="/bookings", tags=["bookings"])

IDEMPOTENCY_KEY_MAX_LENGTH = 128


def _rate_limit_or_raise(client_id: int, response: Response) -> None:
    allowed, retry_after = attempt_limiter.hit(
        key=f"booking_create:{client_id}",
        limit=settings.booking_create_max_attempts,
        window_seconds=settings.booking_rate_limit_window_seconds,
    )
    if not allowed:
        response.headers["Retry-After"] = str(retry_after)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many booking attempts. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )


def _normalize_idempotency_key(idempotency_key: str | None) -> str | None:
    if idempotency_key is None:
        return None
    normalized = idempotency_key.strip()
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Idempotency-Key header must not be empty",
        )
    if len(normalized) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Idempotency-Key header is too long (max {IDEMPOTENCY_KEY_MAX_LENGTH} characters)",
        )
    return normalized


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreateRequest,
    response: Response,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
    current_user: User = Depends(require_roles(UserRole.CLIENT)),
    db: Session = Depends(get_db),
) -> BookingResponse:
    normalized_key = _normalize_idempotency_key(idempotency_key)
    _rate_limit_or_raise(client_id=current_user.id, response=response)

    booking = booking_service.create_booking(
        db=db,
        client_id=current_user.id,
        start_at=payload.start_at,
        end_at=payload.end_at,
        pack_id=payload.pack_id,
        payment_id=payload.payment_id,
        member_notes=payload.member_notes,
        idempotency_key=normalized_key,
    )
    return BookingResponse.model_validate(booking)


@router.get("/me", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
def list_my_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    pack_id: int | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[BookingResponse]:
    bookings = booking_service.list_bookings(
        db=db,
        client_id=current_user.id,
        status_filter=status_filter,
        pack_id=pack_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.get("/provider", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
def list_provider_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    pack_id: int | None = Query(default=None),
    client_id: int | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> list[BookingResponse]:
    bookings = booking_service.list_bookings(
        db=db,
        client_id=client_id,
        status_filter=status_filter,
        pack_id=pack_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.get("/{booking_id}", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def get_booking_by_id(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.get_booking(db=db, booking_id=booking_id, user=current_user)
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}/confirm", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def confirm_booking(
    booking_id: int,
    payload: BookingDecisionRequest | None = None,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.confirm_booking(
        db=db,
        booking_id=booking_id,
        coach_notes=payload.coach_notes if payload else None,
    )
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}/refuse", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def refuse_booking(
    booking_id: int,
    payload: BookingDecisionRequest | None = None,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.refuse_booking(
        db=db,
        booking_id=booking_id,
        coach_notes=payload.coach_notes if payload else None,
    )
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}/cancel", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def cancel_booking(
    booking_id: int,
    current_user: User = Depends(require_roles(UserRole.CLIENT)),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.cancel_by_client(db=db, booking_id=booking_id, client_id=current_user.id)
    return BookingResponse.model_validate(booking)
