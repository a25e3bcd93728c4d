"""Time source for the queue engine.

Services never call ``datetime.now()`` directly; they receive a ``Clock``
so tests can pin and advance time deterministically.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = as_utc(start) if start else datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self._now = self._now + timedelta(minutes=minutes, seconds=seconds)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = as_utc(value)


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def whole_minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes elapsed from *start* to *end*, never negative."""
    elapsed = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0, int(elapsed // 60))
