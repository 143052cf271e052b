import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_ledger.core.exceptions import InvalidWindow
from booking_ledger.core.timeutils import utc_now
from booking_ledger.db.models import ProviderProfile
from booking_ledger.db.session import SessionLocal
from booking_ledger.services.slot_expander import apply_rules
from booking_ledger.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def apply_rules_for_all_providers(db: Session, now: datetime | None = None, days_ahead: int | None = None) -> int:
    """Roll every provider's published horizon forward; return the slots created."""
    current_time = now or utc_now()
    provider_ids = list(db.scalars(select(ProviderProfile.id).order_by(ProviderProfile.id)).all())

    created_total = 0
    for provider_id in provider_ids:
        provider = db.get(ProviderProfile, provider_id)
        if provider is None:
            continue
        try:
            created_total += apply_rules(db=db, provider=provider, days_ahead=days_ahead, now=current_time)
        except InvalidWindow as exc:
            logger.warning("rules_apply_skipped provider_id=%s reason=%s", provider_id, exc.detail)
    return created_total


@celery_app.task(name="availability.apply_rules")
def apply_rules_task() -> dict[str, int]:
    db = SessionLocal()
    try:
        created_count = apply_rules_for_all_providers(db=db)
        logger.info("scheduled_rule_apply created=%s", created_count)
        return {"created": created_count}
    finally:
        db.close()
