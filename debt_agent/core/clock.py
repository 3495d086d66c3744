"""
Injectable time source.

Services receive a Clock instead of calling ``datetime.now()`` so reminder
and escalation decisions can be replayed against a fixed instant in tests.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock(Clock):
    """Production clock returning actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Test clock that only moves when told to."""

    def __init__(self, current: datetime):
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current

    def now(self) -> datetime:
        return self._current

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by ``timedelta(**kwargs)``."""
        self._current = self._current + timedelta(**kwargs)
        return self._current

    def set(self, current: datetime) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current
