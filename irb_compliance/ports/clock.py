"""Injected time source."""

from datetime import UTC, date, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """A clock that only moves when told to, for deterministic deadline math."""

    def __init__(self, current: datetime):
        if current.tzinfo is None:
            current = current.replace(tzinfo=UTC)
        self._current = current

    def now(self) -> datetime:
        return self._current

    def today(self) -> date:
        return self._current.date()

    def set(self, current: datetime) -> None:
        """Jump to an absolute time."""
        if current.tzinfo is None:
            current = current.replace(tzinfo=UTC)
        self._current = current

    def advance(self, days: int = 0, hours: int = 0) -> None:
        """Move the clock forward."""
        self._current += timedelta(days=days, hours=hours)
