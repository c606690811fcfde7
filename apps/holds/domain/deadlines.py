"""
Deadline derivation

Pure functions of (deadline, now). Nothing here caches or schedules: a
countdown is recomputed from stored timestamps on every poll, so the UI
tick and the authoritative deadline can never drift apart.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union


class _Expired:
    """Sentinel returned instead of a negative duration"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'EXPIRED'

    def __str__(self):
        return 'Expired'


EXPIRED = _Expired()


@dataclass(frozen=True)
class Remaining:
    """Time left until a deadline, truncated to whole seconds"""
    seconds: int

    @property
    def timedelta(self) -> timedelta:
        return timedelta(seconds=self.seconds)

    @property
    def hours(self) -> int:
        return self.seconds // 3600

    @property
    def minutes(self) -> int:
        """Minutes past the whole hours"""
        return (self.seconds % 3600) // 60

    @property
    def total_minutes(self) -> int:
        return self.seconds // 60

    def __str__(self):
        return f"{self.hours}h {self.minutes}m"


TimeRemaining = Union[Remaining, _Expired]


def _require_aware(*values: datetime):
    for value in values:
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed in deadline arithmetic: {value!r}")


def time_remaining(deadline: datetime, now: datetime) -> TimeRemaining:
    """
    Remaining time until ``deadline``

    Returns EXPIRED (never a negative or zero duration) once
    ``now >= deadline``. Sub-second remainders are truncated, so one
    second before the deadline still reports ``Remaining(1)`` and half a
    second before reports ``Remaining(0)``.
    """
    _require_aware(deadline, now)
    if now >= deadline:
        return EXPIRED
    return Remaining(int((deadline - now).total_seconds()))


def is_past(deadline: datetime, now: datetime) -> bool:
    """True once ``now`` is strictly after ``deadline``"""
    _require_aware(deadline, now)
    return now > deadline


def is_before(now: datetime, moment: datetime) -> bool:
    """True while ``now`` is strictly before ``moment`` (e.g. departure)"""
    _require_aware(now, moment)
    return now < moment


def format_remaining(deadline: datetime, now: datetime) -> str:
    """Countdown text for hold cards: ``23h 59m`` or ``Expired``"""
    return str(time_remaining(deadline, now))


def format_quote_expiry(expires_at: Optional[datetime], now: datetime) -> str:
    """
    Validity text for change/cancellation quotes

    Whole minutes are floored, and a quote with less than a minute left is
    shown as expired, matching what the checkout screens display.
    """
    if expires_at is None:
        return 'No expiry'
    remaining = time_remaining(expires_at, now)
    if remaining is EXPIRED or remaining.total_minutes == 0:
        return 'Expired'
    return f"{remaining.total_minutes} minutes remaining"
