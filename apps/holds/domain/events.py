"""
Hold Order Domain Events

Published on the message bus after the transaction that produced them
commits.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from shared.domain.base import DomainEvent
from shared.domain.value_objects import Money


@dataclass
class HoldOrderCreated(DomainEvent):
    """
    Event: A hold was placed on an offer

    Triggers:
    - Show the countdown on the hold confirmation page
    - Remind the traveller before the payment deadline
    """
    booking_reference: str = ''
    total_amount: Optional[Money] = None
    payment_required_by: Optional[datetime] = None


@dataclass
class HoldOrderPaid(DomainEvent):
    """
    Event: Payment was confirmed (ACTIVE -> PAID)

    Triggers:
    - Send the e-ticket / booking confirmation
    """
    booking_reference: str = ''
    confirmed_booking_reference: str = ''
    payment_reference: str = ''


@dataclass
class HoldOrderCancelled(DomainEvent):
    """Event: The traveller released the hold (ACTIVE -> CANCELLED)"""
    booking_reference: str = ''


@dataclass
class HoldOrderExpired(DomainEvent):
    """
    Event: The payment deadline passed without payment (ACTIVE -> EXPIRED)

    Raised lazily by whichever read or action first noticed the deadline.
    """
    booking_reference: str = ''
    payment_required_by: Optional[datetime] = None


@dataclass
class HoldPaymentDeclined(DomainEvent):
    """
    Event: A payment attempt failed; the hold stays ACTIVE

    Triggers:
    - Tell the traveller they can retry before the deadline
    """
    booking_reference: str = ''
    payment_reference: str = ''
    reason: str = ''
