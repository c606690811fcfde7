"""
Hold order event handlers

Subscribed to the global message bus when the app is ready. They run
after commit, so they only record what happened; notification channels
hook in here.
"""

import logging

from shared.application.message_bus import message_bus
from apps.holds.domain.events import (
    HoldOrderCancelled,
    HoldOrderCreated,
    HoldOrderExpired,
    HoldOrderPaid,
    HoldPaymentDeclined,
)

logger = logging.getLogger(__name__)


@message_bus.subscribe(HoldOrderCreated)
def on_hold_created(event: HoldOrderCreated):
    logger.info(
        f"Hold {event.booking_reference} placed for {event.total_amount}, "
        f"payment required by {event.payment_required_by.isoformat()}"
    )


@message_bus.subscribe(HoldOrderPaid)
def on_hold_paid(event: HoldOrderPaid):
    logger.info(
        f"Hold {event.booking_reference} paid with reference {event.payment_reference}; "
        f"confirmed booking {event.confirmed_booking_reference}"
    )


@message_bus.subscribe(HoldPaymentDeclined)
def on_payment_declined(event: HoldPaymentDeclined):
    logger.warning(
        f"Payment {event.payment_reference} for hold {event.booking_reference} declined: {event.reason}"
    )


@message_bus.subscribe(HoldOrderCancelled, HoldOrderExpired)
def on_hold_released(event):
    reason = "expired" if isinstance(event, HoldOrderExpired) else "cancelled"
    logger.info(f"Hold {event.booking_reference} {reason}; seats released")
