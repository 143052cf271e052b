from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from booking_ledger.api.deps import get_current_user, require_roles
from booking_ledger.api.pagination import LimitParam, OffsetParam
from booking_ledger.db.models import User, UserRole
from booking_ledger.db.session import get_db
from booking_ledger.schemas.pack import PackGrantRequest, PackResponse
from booking_ledger.services import credit_ledger

router = APIRouter(prefix="/packs", tags=["packs"])


@router.post("", response_model=PackResponse, status_code=status.HTTP_201_CREATED)
def grant_pack(
    payload: PackGrantRequest,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> PackResponse:
    pack = credit_ledger.grant_pack(
        db=db,
        client_id=payload.client_id,
        total_credits=payload.total_credits,
        label=payload.label,
    )
    return PackResponse.model_validate(pack)


@router.get("", response_model=list[PackResponse], status_code=status.HTTP_200_OK)
def list_packs(
    client_id: int | None = None,
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> list[PackResponse]:
    packs = credit_ledger.list_packs(db=db, client_id=client_id, limit=limit, offset=offset)
    return [PackResponse.model_validate(pack) for pack in packs]


@router.get("/me", response_model=list[PackResponse], status_code=status.HTTP_200_OK)
def list_my_packs(
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[PackResponse]:
    packs = credit_ledger.list_packs(db=db, client_id=current_user.id, limit=limit, offset=offset)
    return [PackResponse.model_validate(pack) for pack in packs]


@router.patch("/{pack_id}/pause", response_model=PackResponse, status_code=status.HTTP_200_OK)
def pause_pack(
    pack_id: int,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> PackResponse:
    return PackResponse.model_validate(credit_ledger.pause_pack(db=db, pack_id=pack_id))


@router.patch("/{pack_id}/resume", response_model=PackResponse, status_code=status.HTTP_200_OK)
def resume_pack(
    pack_id: int,
    _: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> PackResponse:
    return PackResponse.model_validate(credit_ledger.resume_pack(db=db, pack_id=pack_id))
