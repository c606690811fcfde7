"""
Hold Order Command Handlers

These are the use cases for the hold order domain. They load the order
under a row lock, let the aggregate decide, call the booking provider,
and save inside one DjangoUnitOfWork.

Commands:
- CreateHoldCommand: Place a hold on an offer
- PayHoldCommand: Pay for a held order
- CancelHoldCommand: Release a hold
- QuoteChangeCommand: Fee for changing one slice
- QuoteCancellationCommand: Penalty and refund for cancelling
- ExpireStaleHoldsCommand: Persist lazily derived expiry
- PurgeTerminalHoldsCommand: Delete old terminal orders
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional
from uuid import UUID
import functools
import logging

from shared.application.uow import DjangoUnitOfWork
from apps.holds.application.gateways import BookingApi, QuoteApi
from apps.holds.domain.clock import Clock, system_clock
from apps.holds.domain.conditions import (
    CancellationQuote,
    ChangeQuote,
    compute_cancellation_quote,
    compute_change_quote,
)
from apps.holds.domain.entities import HoldOrder, PaymentResult, check_offer, validate_passengers
from apps.holds.domain.exceptions import (
    ConcurrentModificationError,
    HoldExpiredError,
    HoldOrderNotFound,
    PaymentDeclinedError,
)
from apps.holds.domain.policies import Policies
from apps.holds.infrastructure.mappers import passenger_from_dict

logger = logging.getLogger(__name__)


# ===== Commands =====

@dataclass
class CreateHoldCommand:
    offer_id: str
    passengers: List[dict]
    hold_duration_hours: Optional[int] = None


@dataclass
class PayHoldCommand:
    """``payment_reference`` is the caller's idempotency token"""
    hold_order_id: UUID
    payment_reference: str


@dataclass
class CancelHoldCommand:
    hold_order_id: UUID


@dataclass
class QuoteChangeCommand:
    hold_order_id: UUID
    slice_id: str


@dataclass
class QuoteCancellationCommand:
    hold_order_id: UUID


@dataclass
class ExpireStaleHoldsCommand:
    limit: int = 500


@dataclass
class PurgeTerminalHoldsCommand:
    retention_days: int = 30


def reports_conflicts(handle):
    """
    Log lost compare-and-set races for operators before re-raising

    Two writers both believing they won a terminal transition is the one
    failure that is never resolved automatically.
    """
    @functools.wraps(handle)
    def wrapper(self, command):
        try:
            return handle(self, command)
        except ConcurrentModificationError as exc:
            logger.critical(
                f"Concurrent modification while handling {type(command).__name__}: {exc}"
            )
            raise
    return wrapper


# ===== Command Handlers =====

class HoldHandler:
    """Shared wiring: repository, clock and policies"""

    def __init__(self, repository, clock: Clock = system_clock, policies: Optional[Policies] = None):
        self.repository = repository
        self.clock = clock
        if policies is None:
            from apps.holds.conf import get_policies
            policies = get_policies()
        self.policies = policies

    def unit_of_work(self) -> DjangoUnitOfWork:
        return DjangoUnitOfWork(holds=self.repository)


class CreateHoldHandler(HoldHandler):
    """
    Handler for CreateHold command

    Passenger data and the offer are checked locally before the provider
    is asked to hold anything, so a bad request never leaves a stray hold
    with the airline.
    """

    def __init__(self, repository, booking_api: BookingApi, **kwargs):
        super().__init__(repository, **kwargs)
        self.booking_api = booking_api

    @reports_conflicts
    def handle(self, command: CreateHoldCommand) -> HoldOrder:
        raw_passengers = validate_passengers(command.passengers)
        passengers = [passenger_from_dict(data, index) for index, data in enumerate(raw_passengers)]

        offer = self.booking_api.get_offer(command.offer_id)
        now = self.clock.now()
        check_offer(offer, now, self.policies.hold)

        logger.info(f"Placing hold on offer {offer.id} for {len(passengers)} passenger(s)")
        provider_hold = self.booking_api.create_hold(offer, passengers)

        order = HoldOrder.create(
            offer,
            passengers,
            now=now,
            booking_reference=provider_hold.booking_reference,
            policy=self.policies.hold,
            hold_duration_hours=command.hold_duration_hours,
            provider_order_id=provider_hold.provider_order_id,
            provider_payment_required_by=provider_hold.payment_required_by,
            provider_price_guarantee_expires_at=provider_hold.price_guarantee_expires_at,
        )

        with self.unit_of_work() as uow:
            uow.add(order)

        logger.info(
            f"Hold order created: {order.booking_reference} (ID: {order.id}), "
            f"payment required by {order.payment_required_by.isoformat()}"
        )
        return order


class PayHoldHandler(HoldHandler):
    """
    Handler for PayHold command

    - An expired hold is persisted as EXPIRED, then HoldExpiredError is raised
    - A declined payment leaves the hold ACTIVE, then PaymentDeclinedError
      is raised
    - A transport failure (BookingApiError) rolls back; the hold stays ACTIVE
    - Replaying the reference that already paid returns already_processed
    """

    def __init__(self, repository, booking_api: BookingApi, **kwargs):
        super().__init__(repository, **kwargs)
        self.booking_api = booking_api

    @reports_conflicts
    def handle(self, command: PayHoldCommand) -> PaymentResult:
        failure = None
        result = None

        with self.unit_of_work() as uow:
            order = uow.holds.get_by_id(command.hold_order_id, lock=True)
            now = self.clock.now()

            if order.refresh(now):
                uow.add(order)
            try:
                result = order.check_payable(command.payment_reference, now)
            except HoldExpiredError as exc:
                failure = exc
            else:
                if result is None:
                    try:
                        payment = self.booking_api.confirm_payment(order, command.payment_reference)
                    except PaymentDeclinedError as exc:
                        order.record_payment_declined(command.payment_reference, str(exc), now)
                        uow.add(order)
                        failure = exc
                    else:
                        result = order.mark_paid(command.payment_reference, payment.booking_reference, now)
                        uow.add(order)

        if failure is not None:
            logger.info(f"Payment for {order.booking_reference} refused: {failure.code}")
            raise failure

        if result.already_processed:
            logger.info(f"Payment {command.payment_reference} for {order.booking_reference} already processed")
        else:
            logger.info(f"Hold order {order.booking_reference} paid: {result.booking_reference}")
        return result


class CancelHoldHandler(HoldHandler):
    """
    Handler for CancelHold command

    Cancelling a CANCELLED or EXPIRED hold succeeds without touching the
    stored order; a PAID one raises AlreadyTerminalError.
    """

    def __init__(self, repository, booking_api: BookingApi, **kwargs):
        super().__init__(repository, **kwargs)
        self.booking_api = booking_api

    @reports_conflicts
    def handle(self, command: CancelHoldCommand) -> HoldOrder:
        with self.unit_of_work() as uow:
            order = uow.holds.get_by_id(command.hold_order_id, lock=True)
            now = self.clock.now()

            if order.refresh(now):
                uow.add(order)
            if order.needs_cancellation(now):
                self.booking_api.cancel_hold(order)
                order.cancel(now)
                uow.add(order)
                logger.info(f"Hold order {order.booking_reference} cancelled")
            else:
                logger.debug(f"Hold order {order.booking_reference} already {order.state.value}")
        return order


class QuoteChangeHandler(HoldHandler):
    """
    Handler for QuoteChange command

    The fare rules decide whether a change is possible at all. The
    provider is asked for a priced quote only when they allow it.
    """

    def __init__(self, repository, quote_api: Optional[QuoteApi] = None, **kwargs):
        super().__init__(repository, **kwargs)
        self.quote_api = quote_api

    def handle(self, command: QuoteChangeCommand) -> ChangeQuote:
        order = self.repository.get_by_id(command.hold_order_id)
        now = self.clock.now()
        policy = self.policies.change

        quote = compute_change_quote(order, command.slice_id, now=now, policy=policy)
        if not quote.permitted or self.quote_api is None:
            return quote

        external = self.quote_api.get_change_quote(order, command.slice_id)
        return compute_change_quote(
            order, command.slice_id, now=self.clock.now(), policy=policy, external=external
        )


class QuoteCancellationHandler(HoldHandler):
    """Handler for QuoteCancellation command"""

    def __init__(self, repository, quote_api: Optional[QuoteApi] = None, **kwargs):
        super().__init__(repository, **kwargs)
        self.quote_api = quote_api

    def handle(self, command: QuoteCancellationCommand) -> CancellationQuote:
        order = self.repository.get_by_id(command.hold_order_id)
        policy = self.policies.cancellation

        external = None
        if self.quote_api is not None:
            external = self.quote_api.get_cancellation_quote(order)
        return compute_cancellation_quote(order, self.clock.now(), policy=policy, external=external)


class ExpireStaleHoldsHandler(HoldHandler):
    """
    Persist the EXPIRED state for ACTIVE rows past their payment deadline

    Reads already treat such rows as expired; this only brings storage in
    line and emits HoldOrderExpired. Each order gets its own transaction.
    """

    def handle(self, command: ExpireStaleHoldsCommand) -> int:
        now = self.clock.now()
        expired = 0
        for order_id in self.repository.find_overdue_ids(now, limit=command.limit):
            try:
                with self.unit_of_work() as uow:
                    order = uow.holds.get_by_id(order_id, lock=True)
                    changed = order.refresh(now)
                    if changed:
                        uow.add(order)
            except ConcurrentModificationError as exc:
                logger.critical(f"Concurrent modification while expiring hold {order_id}: {exc}")
                continue
            except HoldOrderNotFound:
                logger.debug(f"Hold order {order_id} was deleted before it could be expired")
                continue
            if changed:
                expired += 1
        if expired:
            logger.info(f"Expired {expired} stale hold orders")
        return expired


class PurgeTerminalHoldsHandler(HoldHandler):

    def handle(self, command: PurgeTerminalHoldsCommand) -> int:
        cutoff = self.clock.now() - timedelta(days=command.retention_days)
        deleted = self.repository.delete_terminal_before(cutoff)
        if deleted:
            logger.info(f"Purged {deleted} terminal hold orders last updated before {cutoff.isoformat()}")
        return deleted
