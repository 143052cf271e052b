import logging
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_ledger.core.security import decode_access_token
from booking_ledger.db.models import ProviderProfile, User, UserRole
from booking_ledger.db.session import get_db
from booking_ledger.services.provider_service import (
    find_active_provider,
    get_active_provider,
    get_or_create_provider_profile,
)

logger = logging.getLogger(__name__)

NOT_SCHEDULED_PROVIDER_DETAIL = "Only the scheduled provider can manage availability"

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    unauthorized_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized_exc
    try:
        payload = decode_access_token(credentials.credentials)
        user_id = int(payload.get("sub", ""))
    except (ValueError, TypeError):
        raise unauthorized_exc

    user = db.scalar(select(User).where(User.id == user_id))
    if not user or not user.is_active:
        raise unauthorized_exc
    return user


def require_roles(*roles: UserRole | str) -> Callable[[User], User]:
    allowed_roles = {role.value if isinstance(role, UserRole) else role for role in roles}

    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
            )
        return current_user

    return checker


def get_current_provider(
    current_user: User = Depends(require_roles(UserRole.PROVIDER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> ProviderProfile:
    """Schedule the caller manages: the active provider's.

    A provider user gets a profile on first use only while no provider exists;
    any other provider account cannot publish availability.
    """
    if current_user.role == UserRole.ADMIN.value:
        return get_active_provider(db)
    active = find_active_provider(db)
    if active is None:
        profile = get_or_create_provider_profile(db=db, user=current_user)
        db.commit()
        db.refresh(profile)
        return profile
    if active.user_id != current_user.id:
        logger.warning("provider_not_scheduled user_id=%s active_provider_id=%s", current_user.id, active.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_SCHEDULED_PROVIDER_DETAIL)
    return active
