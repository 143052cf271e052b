"""Read-time carving of open windows into fixed-length bookable units.

Nothing here touches storage: callers pass the windows and the booked ranges they
loaded, so a confirmation or refusal is reflected on the very next read.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from booking_ledger.core.timeutils import ensure_utc


@dataclass(frozen=True, order=True)
class TimeRange:
    """Half-open ``[start_at, end_at)`` interval in UTC."""

    start_at: datetime
    end_at: datetime

    @classmethod
    def of(cls, start_at: datetime, end_at: datetime) -> "TimeRange":
        return cls(start_at=ensure_utc(start_at), end_at=ensure_utc(end_at))

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start_at < other.end_at and other.start_at < self.end_at

    def contains(self, other: "TimeRange") -> bool:
        return self.start_at <= other.start_at and other.end_at <= self.end_at


def split_window(window: TimeRange, unit: timedelta) -> list[TimeRange]:
    units: list[TimeRange] = []
    cursor = window.start_at
    while cursor + unit <= window.end_at:
        units.append(TimeRange(start_at=cursor, end_at=cursor + unit))
        cursor += unit
    return units


def carve_open_units(
    windows: Iterable[TimeRange],
    booked: Iterable[TimeRange],
    unit: timedelta,
    not_before: datetime | None = None,
) -> list[TimeRange]:
    """Return the sorted units of ``windows`` that overlap no ``booked`` range.

    Each window is walked from its own start; a trailing remainder shorter than
    ``unit`` is dropped. Overlapping windows yielding the same unit yield it once.
    """
    if unit <= timedelta(0):
        raise ValueError("unit must be positive")

    booked_ranges = sorted(TimeRange.of(item.start_at, item.end_at) for item in booked)
    earliest = ensure_utc(not_before) if not_before is not None else None

    open_units: set[TimeRange] = set()
    for window in windows:
        normalized = TimeRange.of(window.start_at, window.end_at)
        for candidate in split_window(normalized, unit):
            if earliest is not None and candidate.start_at < earliest:
                continue
            if any(candidate.overlaps(taken) for taken in booked_ranges):
                continue
            open_units.add(candidate)

    return sorted(open_units)


def is_open_unit(
    requested: TimeRange,
    windows: Iterable[TimeRange],
    booked: Iterable[TimeRange],
    unit: timedelta,
    not_before: datetime | None = None,
) -> bool:
    return requested in carve_open_units(windows, booked, unit, not_before=not_before)
