"""
Hold, cancellation and change policies

Plain configuration values the evaluator and the state machine consult.
They are built from Django settings in ``apps.holds.conf``; the domain
never reads settings itself.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class RefundMethod(Enum):
    ORIGINAL_PAYMENT = 'original_payment'
    AIRLINE_CREDITS = 'airline_credits'
    VOUCHER = 'voucher'
    BALANCE = 'balance'


class FreeCancellationScope(Enum):
    ALL_FARES = 'all_fares'
    REFUNDABLE_ONLY = 'refundable_only'


@dataclass(frozen=True)
class HoldPolicy:
    """
    How long a hold lasts and when payment is due

    ``payment_window_hours`` is an independent knob: when it is shorter than
    the hold duration the payment deadline comes first, otherwise both
    deadlines coincide.
    """
    supported: bool = True
    hold_duration_hours: int = 24
    payment_window_hours: Optional[int] = None
    auto_cancel_on_expiry: bool = True

    def __post_init__(self):
        if self.hold_duration_hours <= 0:
            raise ValueError("hold_duration_hours must be positive")
        if self.payment_window_hours is not None and self.payment_window_hours <= 0:
            raise ValueError("payment_window_hours must be positive")

    def deadlines(self, created_at: datetime, hold_duration_hours: Optional[int] = None):
        """Return ``(hold_expires_at, payment_required_by)`` for a new hold"""
        hours = hold_duration_hours or self.hold_duration_hours
        if hours <= 0:
            raise ValueError("hold duration must be positive")
        hold_expires_at = created_at + timedelta(hours=hours)
        payment_required_by = hold_expires_at
        if self.payment_window_hours is not None and self.payment_window_hours < hours:
            payment_required_by = created_at + timedelta(hours=self.payment_window_hours)
        return hold_expires_at, payment_required_by


@dataclass(frozen=True)
class CancellationPolicy:
    refund_method: RefundMethod = RefundMethod.ORIGINAL_PAYMENT
    processing_time_days: int = 7
    free_cancellation_hours: int = 24
    free_cancellation_scope: FreeCancellationScope = FreeCancellationScope.REFUNDABLE_ONLY

    def within_free_window(self, booked_at: datetime, now: datetime) -> bool:
        if self.free_cancellation_hours <= 0:
            return False
        return now - booked_at < timedelta(hours=self.free_cancellation_hours)


@dataclass(frozen=True)
class ChangePolicy:
    cutoff_hours_before_departure: int = 0


@dataclass(frozen=True)
class Policies:
    hold: HoldPolicy = field(default_factory=HoldPolicy)
    cancellation: CancellationPolicy = field(default_factory=CancellationPolicy)
    change: ChangePolicy = field(default_factory=ChangePolicy)
