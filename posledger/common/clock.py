"""
Injectable clock. Services receive a ``Clock`` instead of calling
``datetime.now()`` so ``created_at`` ordering is reproducible in tests.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Returns the current UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Test clock with controlled time.

    ``tick`` is added after every read so consecutive events get distinct,
    increasing timestamps; pass ``tick=timedelta(0)`` to exercise the
    ``(created_at, id)`` tie-break.
    """

    def __init__(self, start: Optional[datetime] = None, tick: timedelta = timedelta(seconds=1)):
        self._current = start or datetime(2024, 1, 1, 8, 0, 0, tzinfo=timezone.utc)
        self._tick = tick

    def now(self) -> datetime:
        current = self._current
        self._current = current + self._tick
        return current

    def advance(self, delta: timedelta) -> None:
        self._current = self._current + delta

    def set(self, value: datetime) -> None:
        self._current = value


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a FixedClock."""
    return SystemClock()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive values (SQLite reads) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
