from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from booking_ledger.core.config import settings
from booking_ledger.db.models import ProviderProfile, User
from booking_ledger.db.transaction import is_postgresql_session

NO_PROVIDER_DETAIL = "No provider configured"


def get_or_create_provider_profile(db: Session, user: User) -> ProviderProfile:
    profile = db.scalar(select(ProviderProfile).where(ProviderProfile.user_id == user.id))
    if profile:
        return profile

    profile = ProviderProfile(
        user_id=user.id,
        display_name=user.email.split("@")[0],
        timezone=settings.default_provider_timezone,
    )
    db.add(profile)
    db.flush()
    return profile


def find_active_provider(db: Session) -> ProviderProfile | None:
    """The engine schedules a single provider: the earliest registered profile."""
    return db.scalar(select(ProviderProfile).order_by(ProviderProfile.id).limit(1))


def get_active_provider(db: Session) -> ProviderProfile:
    profile = find_active_provider(db)
    if not profile:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=NO_PROVIDER_DETAIL)
    return profile


def lock_provider_schedule(db: Session, provider_id: int) -> None:
    """Serialize booking writers for one provider until the transaction ends.

    PostgreSQL takes the row lock without waiting so contention surfaces as a
    retryable lock error; other backends get the write lock from the version bump.
    """
    if is_postgresql_session(db):
        db.scalar(
            select(ProviderProfile.id).where(ProviderProfile.id == provider_id).with_for_update(nowait=True)
        )
    db.execute(
        update(ProviderProfile)
        .where(ProviderProfile.id == provider_id)
        .values(lock_version=ProviderProfile.lock_version + 1)
        .execution_options(synchronize_session=False)
    )
