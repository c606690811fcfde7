"""
Clock abstraction

All "now" reads in the holds domain go through a Clock so that expiry
boundaries can be tested to the second.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Single source of the current time"""

    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware current instant"""


class SystemClock(Clock):
    """Wall-clock time in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    A clock that only moves when told to

    Used by tests and by replays that must evaluate rules at a recorded
    instant.
    """

    def __init__(self, at: datetime):
        if at.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._now = at

    def now(self) -> datetime:
        return self._now

    def set(self, at: datetime):
        if at.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._now = at

    def advance(self, **kwargs) -> datetime:
        """Move forward by ``timedelta(**kwargs)`` and return the new time"""
        self._now = self._now + timedelta(**kwargs)
        return self._now


system_clock = SystemClock()
