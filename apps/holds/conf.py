"""
Settings access for the holds app

``settings.HOLD_ORDERS`` overrides ``DEFAULTS`` key by key. Views, tasks
and handlers obtain their collaborators through the ``get_*`` functions
here, which is also where tests patch them.
"""

from __future__ import annotations

from typing import Any, Dict

from django.conf import settings  # type: ignore

from apps.holds.domain.clock import Clock, system_clock
from apps.holds.domain.policies import (
    CancellationPolicy,
    ChangePolicy,
    FreeCancellationScope,
    HoldPolicy,
    Policies,
    RefundMethod,
)

DEFAULTS: Dict[str, Any] = {
    "SUPPORTED": True,
    "HOLD_DURATION_HOURS": 24,
    "PAYMENT_WINDOW_HOURS": None,
    "AUTO_CANCEL_ON_EXPIRY": True,
    "REFUND_METHOD": RefundMethod.ORIGINAL_PAYMENT.value,
    "REFUND_PROCESSING_DAYS": 7,
    "FREE_CANCELLATION_HOURS": 24,
    "FREE_CANCELLATION_APPLIES_TO": FreeCancellationScope.REFUNDABLE_ONLY.value,
    "CHANGE_CUTOFF_HOURS": 0,
    "RETENTION_DAYS": 30,
}


def hold_settings() -> Dict[str, Any]:
    configured = getattr(settings, "HOLD_ORDERS", None) or {}
    unknown = set(configured) - set(DEFAULTS)
    if unknown:
        raise ValueError(f"Unknown HOLD_ORDERS settings: {', '.join(sorted(unknown))}")
    return {**DEFAULTS, **configured}


def get_policies() -> Policies:
    values = hold_settings()
    return Policies(
        hold=HoldPolicy(
            supported=values["SUPPORTED"],
            hold_duration_hours=values["HOLD_DURATION_HOURS"],
            payment_window_hours=values["PAYMENT_WINDOW_HOURS"],
            auto_cancel_on_expiry=values["AUTO_CANCEL_ON_EXPIRY"],
        ),
        cancellation=CancellationPolicy(
            refund_method=RefundMethod(values["REFUND_METHOD"]),
            processing_time_days=values["REFUND_PROCESSING_DAYS"],
            free_cancellation_hours=values["FREE_CANCELLATION_HOURS"],
            free_cancellation_scope=FreeCancellationScope(values["FREE_CANCELLATION_APPLIES_TO"]),
        ),
        change=ChangePolicy(cutoff_hours_before_departure=values["CHANGE_CUTOFF_HOURS"]),
    )


def get_clock() -> Clock:
    return system_clock


def get_repository():
    from apps.holds.repositories import HoldOrderRepository

    return HoldOrderRepository()


def get_booking_api():
    """The provider client; implements both BookingApi and QuoteApi"""
    from apps.holds.infrastructure.duffel import DuffelClient

    return DuffelClient.from_settings()
