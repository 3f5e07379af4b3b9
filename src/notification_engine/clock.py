"""Time sources. The engine never reads the wall clock directly."""

from datetime import datetime, timedelta
from typing import Optional


class SystemClock:
    """Local wall-clock time."""

    def now(self) -> datetime:
        return datetime.now()


class FakeClock:
    """Manually advanced clock for deterministic runs and tests."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 6, 9, 0)

    def now(self) -> datetime:
        return self._now

    def set(self, when: datetime) -> None:
        self._now = when

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now


def to_local_naive(when: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if when.tzinfo is None:
        return when
    return when.astimezone().replace(tzinfo=None)
