from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC instant.

    SQLite hands back naive datetimes for ``DateTime(timezone=True)`` columns; every
    value the engine stores is UTC, so naive values are read as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
