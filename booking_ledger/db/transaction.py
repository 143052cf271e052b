"""Bounded retry of whole storage transactions on lock contention."""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from booking_ledger.core.config import settings
from booking_ledger.core.exceptions import TransientStorageError
from booking_ledger.core.metrics import TRANSACTION_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")

PG_LOCK_NOT_AVAILABLE_SQLSTATE = "55P03"
PG_SERIALIZATION_FAILURE_SQLSTATE = "40001"
PG_DEADLOCK_DETECTED_SQLSTATE = "40P01"
PG_RETRYABLE_SQLSTATES = {
    PG_LOCK_NOT_AVAILABLE_SQLSTATE,
    PG_SERIALIZATION_FAILURE_SQLSTATE,
    PG_DEADLOCK_DETECTED_SQLSTATE,
}
SQLITE_BUSY = 5
SQLITE_LOCKED = 6


def is_postgresql_session(db: Session) -> bool:
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def is_transient_storage_error(exc: OperationalError) -> bool:
    original_error = getattr(exc, "orig", None)
    if original_error is None:
        return False

    sqlstate = getattr(original_error, "sqlstate", None)
    if sqlstate is None:
        sqlstate = getattr(original_error, "pgcode", None)
    if sqlstate in PG_RETRYABLE_SQLSTATES:
        return True

    sqlite_code = getattr(original_error, "sqlite_errorcode", None)
    if sqlite_code in {SQLITE_BUSY, SQLITE_LOCKED}:
        return True
    return "database is locked" in str(original_error)


def run_in_transaction(db: Session, operation: Callable[[], T], max_attempts: int | None = None) -> T:
    """Run ``operation`` and commit, retrying the whole unit on lock contention.

    ``operation`` must re-read everything it relies on: a retry starts from a rolled
    back session. Any other exception rolls back and propagates unchanged.
    """
    attempts = max_attempts or settings.transaction_max_attempts
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except OperationalError as exc:
            db.rollback()
            if not is_transient_storage_error(exc):
                raise
            if attempt >= attempts:
                TRANSACTION_RETRIES.labels(outcome="exhausted").inc()
                logger.warning("transaction_gave_up attempts=%s", attempt)
                raise TransientStorageError() from None
            TRANSACTION_RETRIES.labels(outcome="retried").inc()
            logger.info("transaction_retry attempt=%s", attempt)
            time.sleep(settings.transaction_retry_backoff_seconds * attempt)
        except Exception:
            db.rollback()
            raise

    raise TransientStorageError()
