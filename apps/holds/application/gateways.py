"""
Booking provider ports

The command handlers talk to the airline/aggregator only through these
interfaces. ``apps.holds.infrastructure.duffel`` implements both against
the Duffel API; tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from apps.holds.domain.conditions import ExternalCancellationQuote, ExternalChangeQuote
from apps.holds.domain.entities import HoldOrder, Offer, Passenger


@dataclass(frozen=True)
class ProviderHold:
    """What the provider returns after placing a hold"""
    provider_order_id: str
    booking_reference: str
    payment_required_by: Optional[datetime] = None
    price_guarantee_expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProviderPayment:
    payment_id: str
    booking_reference: str


class BookingApi(ABC):

    @abstractmethod
    def get_offer(self, offer_id: str) -> Offer:
        """Fetch the current priced offer. Raises InvalidOfferError if gone."""

    @abstractmethod
    def create_hold(self, offer: Offer, passengers: List[Passenger]) -> ProviderHold:
        """Place a hold (an order of type ``hold``) on ``offer``"""

    @abstractmethod
    def confirm_payment(self, order: HoldOrder, payment_reference: str) -> ProviderPayment:
        """
        Pay for a held order

        ``payment_reference`` doubles as the idempotency key, so retrying
        the same reference never charges twice. Raises PaymentDeclinedError
        or BookingApiError.
        """

    @abstractmethod
    def cancel_hold(self, order: HoldOrder) -> None:
        """Release the hold with the provider"""


class QuoteApi(ABC):

    @abstractmethod
    def get_change_quote(self, order: HoldOrder, slice_id: str) -> ExternalChangeQuote:
        ...

    @abstractmethod
    def get_cancellation_quote(self, order: HoldOrder) -> ExternalCancellationQuote:
        ...
