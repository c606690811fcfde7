"""
Hold Order Domain Entities

- HoldOrder: aggregate root for a reserve-now/pay-later booking
- HoldState: the lifecycle states
- Passenger, Slice, Segment, Stop: itinerary data owned by the order
- Offer: what the booking provider offered before the hold was placed
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple

from shared.domain.base import Aggregate
from shared.domain.exceptions import CurrencyMismatchError
from shared.domain.value_objects import IsoDuration, Money
from apps.holds.domain.conditions import Conditions, SliceConditions
from apps.holds.domain.deadlines import TimeRemaining, is_past, time_remaining
from apps.holds.domain.exceptions import (
    AlreadyTerminalError,
    HoldExpiredError,
    InvalidOfferError,
    InvalidPassengerDataError,
    UnknownSliceError,
)
from apps.holds.domain.policies import HoldPolicy


class HoldState(Enum):
    """
    Hold Order Finite State Machine

    State transitions:
    - ACTIVE -> PAID (payment confirmed before payment_required_by)
    - ACTIVE -> CANCELLED (traveller released the hold)
    - ACTIVE -> EXPIRED (now > payment_required_by; derived lazily)

    PAID, CANCELLED and EXPIRED are terminal.
    """
    ACTIVE = 'active'
    PAID = 'paid'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'

    @property
    def is_terminal(self) -> bool:
        return self is not HoldState.ACTIVE


class HoldAction(Enum):
    PAY = 'pay'
    CANCEL = 'cancel'


NO_ACTIONS: FrozenSet[HoldAction] = frozenset()
ACTIVE_ACTIONS: FrozenSet[HoldAction] = frozenset({HoldAction.PAY, HoldAction.CANCEL})


# ===== Itinerary =====

@dataclass(frozen=True)
class LoyaltyAccount:
    """Reference to a frequent flyer account; the airline owns it"""
    airline_iata_code: str
    account_number: str


@dataclass(frozen=True)
class Passenger:
    id: str
    given_name: str
    family_name: str
    born_on: date
    title: str = ''
    email: Optional[str] = None
    phone_number: Optional[str] = None
    loyalty_accounts: Tuple[LoyaltyAccount, ...] = ()

    @property
    def full_name(self) -> str:
        parts = [self.title.capitalize() if self.title else '', self.given_name, self.family_name]
        return ' '.join(p for p in parts if p)


REQUIRED_PASSENGER_FIELDS = ('given_name', 'family_name', 'born_on')
LOYALTY_ACCOUNT_FIELDS = ('airline_iata_code', 'account_number')


def validate_passengers(passengers: Iterable[dict]) -> List[dict]:
    """
    Check the fields every airline requires before a hold is attempted

    Raises InvalidPassengerDataError naming the first missing field.
    """
    passengers = list(passengers or [])
    if not passengers:
        raise InvalidPassengerDataError(message="At least one passenger is required")
    for index, data in enumerate(passengers):
        for name in REQUIRED_PASSENGER_FIELDS:
            value = data.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise InvalidPassengerDataError(index, name)
        born_on = data['born_on']
        if isinstance(born_on, str):
            try:
                date.fromisoformat(born_on)
            except ValueError:
                raise InvalidPassengerDataError(index, 'born_on', f"Passenger {index + 1} has an invalid birth date")
        for account in data.get('loyalty_programme_accounts') or ():
            if not isinstance(account, dict) or not all(
                str(account.get(name) or '').strip() for name in LOYALTY_ACCOUNT_FIELDS
            ):
                raise InvalidPassengerDataError(
                    index,
                    'loyalty_programme_accounts',
                    f"Passenger {index + 1} has a loyalty account without an airline or account number",
                )
    return passengers


@dataclass(frozen=True)
class Place:
    iata_code: str
    name: str
    city_name: Optional[str] = None
    terminal: Optional[str] = None


@dataclass(frozen=True)
class Carrier:
    iata_code: str
    name: str
    logo_url: Optional[str] = None


@dataclass(frozen=True)
class Stop:
    """Technical stop inside a segment (no change of aircraft)"""
    airport: Place
    duration: IsoDuration
    arriving_at: Optional[datetime] = None
    departing_at: Optional[datetime] = None


@dataclass(frozen=True)
class Segment:
    id: str
    origin: Place
    destination: Place
    departing_at: datetime
    arriving_at: datetime
    duration: IsoDuration
    marketing_carrier: Carrier
    operating_carrier: Carrier
    flight_number: str
    aircraft: Optional[str] = None
    distance: Optional[str] = None
    stops: Tuple[Stop, ...] = ()

    @property
    def flight_designator(self) -> str:
        return f"{self.marketing_carrier.iata_code}{self.flight_number}"

    @property
    def is_codeshare(self) -> bool:
        return self.marketing_carrier.iata_code != self.operating_carrier.iata_code


@dataclass(frozen=True)
class Slice:
    id: str
    origin: Place
    destination: Place
    segments: Tuple[Segment, ...]
    duration: Optional[IsoDuration] = None
    fare_brand_name: Optional[str] = None
    conditions: SliceConditions = field(default_factory=SliceConditions)

    def __post_init__(self):
        if not self.segments:
            raise ValueError(f"Slice {self.id} has no segments")

    @property
    def departing_at(self) -> datetime:
        return self.segments[0].departing_at

    @property
    def arriving_at(self) -> datetime:
        return self.segments[-1].arriving_at


@dataclass(frozen=True)
class Offer:
    """A priced itinerary from the booking provider"""
    id: str
    base_amount: Money
    tax_amount: Money
    total_amount: Money
    slices: Tuple[Slice, ...] = ()
    conditions: Conditions = field(default_factory=Conditions)
    expires_at: Optional[datetime] = None
    requires_instant_payment: bool = False


def check_offer(offer: Offer, now: datetime, policy: HoldPolicy):
    """Raise InvalidOfferError if ``offer`` cannot be held right now"""
    if not policy.supported:
        raise InvalidOfferError("Hold orders are not supported")
    if offer.requires_instant_payment:
        raise InvalidOfferError(f"Offer {offer.id} requires instant payment", offer_id=offer.id)
    if offer.expires_at is not None and now >= offer.expires_at:
        raise InvalidOfferError(f"Offer {offer.id} is no longer available", offer_id=offer.id)
    for amount in (offer.base_amount, offer.tax_amount):
        if amount.currency != offer.total_amount.currency:
            raise InvalidOfferError(
                f"Offer {offer.id} mixes {amount.currency} and {offer.total_amount.currency}", offer_id=offer.id
            )
    if offer.base_amount + offer.tax_amount != offer.total_amount:
        raise InvalidOfferError(
            f"Offer {offer.id} total {offer.total_amount} does not equal base {offer.base_amount} "
            f"plus tax {offer.tax_amount}",
            offer_id=offer.id,
        )


@dataclass(frozen=True)
class PaymentResult:
    booking_reference: str
    already_processed: bool = False


# ===== Aggregate =====

@dataclass(eq=False, kw_only=True)
class HoldOrder(Aggregate):
    """
    Hold Order Aggregate Root

    Key invariants:
    - total_amount == base_amount + tax_amount, all in one currency
    - expiry is derived from payment_required_by on every read and action,
      never from a timer
    - once terminal, the state never changes again
    - available actions are computed, not stored
    """

    booking_reference: str
    offer_id: str
    hold_expires_at: datetime
    payment_required_by: datetime
    base_amount: Money
    tax_amount: Money
    total_amount: Money
    state: HoldState = HoldState.ACTIVE
    passengers: List[Passenger] = field(default_factory=list)
    slices: List[Slice] = field(default_factory=list)
    conditions: Conditions = field(default_factory=Conditions)
    provider_order_id: Optional[str] = None
    payment_reference: Optional[str] = None
    confirmed_booking_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    def __post_init__(self):
        for amount in (self.base_amount, self.tax_amount):
            if amount.currency != self.total_amount.currency:
                raise CurrencyMismatchError(self.total_amount.currency, amount.currency)
        if self.base_amount + self.tax_amount != self.total_amount:
            raise ValueError(
                f"Total {self.total_amount} does not equal base {self.base_amount} "
                f"plus tax {self.tax_amount}"
            )
        for moment in (self.hold_expires_at, self.payment_required_by):
            if moment.tzinfo is None:
                raise ValueError("Hold deadlines must be timezone-aware")

    @classmethod
    def create(
        cls,
        offer: Offer,
        passengers: List[Passenger],
        *,
        now: datetime,
        booking_reference: str,
        policy: HoldPolicy = HoldPolicy(),
        hold_duration_hours: Optional[int] = None,
        provider_order_id: Optional[str] = None,
        provider_payment_required_by: Optional[datetime] = None,
        provider_price_guarantee_expires_at: Optional[datetime] = None,
    ) -> 'HoldOrder':
        """
        Place a hold (-> ACTIVE)

        Both deadlines come from the policy. If the provider imposes an
        earlier payment deadline or price guarantee, the earlier one wins.
        """
        check_offer(offer, now, policy)
        if not passengers:
            raise InvalidPassengerDataError(message="At least one passenger is required")

        hold_expires_at, payment_required_by = policy.deadlines(now, hold_duration_hours)
        if provider_payment_required_by is not None and provider_payment_required_by < payment_required_by:
            payment_required_by = provider_payment_required_by
        if (
            provider_price_guarantee_expires_at is not None
            and provider_price_guarantee_expires_at < hold_expires_at
        ):
            hold_expires_at = provider_price_guarantee_expires_at

        from apps.holds.domain.events import HoldOrderCreated

        order = cls(
            created_at=now,
            updated_at=now,
            booking_reference=booking_reference,
            offer_id=offer.id,
            hold_expires_at=hold_expires_at,
            payment_required_by=payment_required_by,
            base_amount=offer.base_amount,
            tax_amount=offer.tax_amount,
            total_amount=offer.total_amount,
            passengers=list(passengers),
            slices=list(offer.slices),
            conditions=offer.conditions,
            provider_order_id=provider_order_id,
        )
        order.add_event(HoldOrderCreated(
            aggregate_id=order.id,
            occurred_at=now,
            booking_reference=booking_reference,
            total_amount=order.total_amount,
            payment_required_by=payment_required_by,
        ))
        return order

    # ----- derived state -----

    @property
    def currency(self) -> str:
        return self.total_amount.currency

    @property
    def first_departure(self) -> datetime:
        if not self.slices:
            raise ValueError(f"Hold order {self.booking_reference} has no slices")
        return min(s.departing_at for s in self.slices)

    def get_slice(self, slice_id: str) -> Slice:
        for itinerary_slice in self.slices:
            if itinerary_slice.id == slice_id:
                return itinerary_slice
        raise UnknownSliceError(f"Slice {slice_id} is not part of order {self.booking_reference}", slice_id=slice_id)

    def is_expired(self, now: datetime) -> bool:
        """True once an ACTIVE hold is past its payment deadline (or already EXPIRED)"""
        if self.state is HoldState.EXPIRED:
            return True
        return self.state is HoldState.ACTIVE and is_past(self.payment_required_by, now)

    def effective_state(self, now: datetime) -> HoldState:
        """State as of ``now`` without mutating the aggregate"""
        if self.is_expired(now):
            return HoldState.EXPIRED
        return self.state

    def available_actions(self, now: datetime) -> FrozenSet[HoldAction]:
        if self.effective_state(now) is HoldState.ACTIVE:
            return ACTIVE_ACTIONS
        return NO_ACTIONS

    def time_remaining(self, now: datetime) -> TimeRemaining:
        """Time left to pay"""
        return time_remaining(self.payment_required_by, now)

    def price_guarantee_remaining(self, now: datetime) -> TimeRemaining:
        return time_remaining(self.hold_expires_at, now)

    # ----- transitions -----

    def refresh(self, now: datetime) -> bool:
        """
        Apply the lazy ACTIVE -> EXPIRED transition if the deadline passed

        Returns True if the state changed. Every action calls this first.
        """
        if self.state is not HoldState.ACTIVE or not is_past(self.payment_required_by, now):
            return False

        from apps.holds.domain.events import HoldOrderExpired

        self.state = HoldState.EXPIRED
        self.expired_at = now
        self.touch(now)
        self.add_event(HoldOrderExpired(
            aggregate_id=self.id,
            occurred_at=now,
            booking_reference=self.booking_reference,
            payment_required_by=self.payment_required_by,
        ))
        return True

    def check_payable(self, payment_reference: str, now: datetime) -> Optional[PaymentResult]:
        """
        Validate a payment attempt before the provider is charged

        Returns a replay result when this exact payment already went
        through, None when payment may proceed, and raises otherwise.
        """
        self.refresh(now)
        if self.state is HoldState.PAID:
            if payment_reference == self.payment_reference:
                return PaymentResult(self.confirmed_booking_reference, already_processed=True)
            raise AlreadyTerminalError(
                f"Hold order {self.booking_reference} is already paid", state=self.state
            )
        if self.state is HoldState.EXPIRED:
            raise HoldExpiredError(
                f"Payment for {self.booking_reference} was required by "
                f"{self.payment_required_by.isoformat()}"
            )
        if self.state is HoldState.CANCELLED:
            raise AlreadyTerminalError(
                f"Hold order {self.booking_reference} was cancelled", state=self.state
            )
        return None

    def mark_paid(self, payment_reference: str, confirmed_booking_reference: str, now: datetime) -> PaymentResult:
        """
        Record a confirmed payment (ACTIVE -> PAID)

        Events: HoldOrderPaid
        """
        replay = self.check_payable(payment_reference, now)
        if replay is not None:
            return replay

        from apps.holds.domain.events import HoldOrderPaid

        self.state = HoldState.PAID
        self.payment_reference = payment_reference
        self.confirmed_booking_reference = confirmed_booking_reference
        self.paid_at = now
        self.touch(now)
        self.add_event(HoldOrderPaid(
            aggregate_id=self.id,
            occurred_at=now,
            booking_reference=self.booking_reference,
            confirmed_booking_reference=confirmed_booking_reference,
            payment_reference=payment_reference,
        ))
        return PaymentResult(confirmed_booking_reference)

    def record_payment_declined(self, payment_reference: str, reason: str, now: datetime):
        """The hold stays ACTIVE; only an event is recorded"""
        from apps.holds.domain.events import HoldPaymentDeclined

        self.add_event(HoldPaymentDeclined(
            aggregate_id=self.id,
            occurred_at=now,
            booking_reference=self.booking_reference,
            payment_reference=payment_reference,
            reason=reason,
        ))

    def needs_cancellation(self, now: datetime) -> bool:
        """
        Whether a cancel request has anything left to do

        False for CANCELLED and EXPIRED holds (idempotent success); raises
        for PAID ones, which are governed by refund rules instead.
        """
        self.refresh(now)
        if self.state is HoldState.PAID:
            raise AlreadyTerminalError(
                f"Hold order {self.booking_reference} is paid; cancel the booking instead",
                state=self.state,
            )
        return self.state is HoldState.ACTIVE

    def cancel(self, now: datetime) -> bool:
        """
        Release the hold (ACTIVE -> CANCELLED)

        No penalty applies to a hold. Returns False when there was nothing
        to cancel. Events: HoldOrderCancelled
        """
        if not self.needs_cancellation(now):
            return False

        from apps.holds.domain.events import HoldOrderCancelled

        self.state = HoldState.CANCELLED
        self.cancelled_at = now
        self.touch(now)
        self.add_event(HoldOrderCancelled(
            aggregate_id=self.id,
            occurred_at=now,
            booking_reference=self.booking_reference,
        ))
        return True

    def __str__(self):
        return f"HoldOrder {self.booking_reference} ({self.state.value})"

    def __repr__(self):
        return (
            f"HoldOrder(id={self.id}, booking_reference={self.booking_reference}, "
            f"state={self.state.value}, payment_required_by={self.payment_required_by.isoformat()})"
        )


def available_actions(order: HoldOrder, now: datetime) -> FrozenSet[HoldAction]:
    """Legal actions for ``order`` at ``now``; pure and safe to call on every render"""
    return order.available_actions(now)
