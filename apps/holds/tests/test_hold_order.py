"""Hold order state machine."""

from __future__ import annotations

from datetime import timedelta

import pytest

from shared.domain.value_objects import Money
from apps.holds.domain.deadlines import EXPIRED
from apps.holds.domain.entities import (
    HoldAction,
    HoldOrder,
    HoldState,
    available_actions,
    validate_passengers,
)
from apps.holds.domain.events import (
    HoldOrderCancelled,
    HoldOrderCreated,
    HoldOrderExpired,
    HoldOrderPaid,
    HoldPaymentDeclined,
)
from apps.holds.domain.exceptions import (
    AlreadyTerminalError,
    HoldExpiredError,
    InvalidOfferError,
    InvalidPassengerDataError,
    UnknownSliceError,
)
from apps.holds.domain.policies import HoldPolicy
from apps.holds.tests.factories import NOW, make_offer, make_order, passenger_data

DEADLINE = NOW + timedelta(hours=24)


def test_create_copies_offer_prices() -> None:
    order = make_order()

    assert order.state is HoldState.ACTIVE
    assert order.base_amount == Money("248.50", "GBP")
    assert order.tax_amount == Money("69.70", "GBP")
    assert order.total_amount == Money("318.20", "GBP")
    assert order.base_amount + order.tax_amount == order.total_amount
    assert order.hold_expires_at == DEADLINE
    assert order.payment_required_by == DEADLINE
    assert [type(e) for e in order.events] == [HoldOrderCreated]


def test_total_must_equal_base_plus_tax() -> None:
    with pytest.raises(ValueError):
        HoldOrder(
            booking_reference="RZPNX8",
            offer_id="off_0000A",
            hold_expires_at=DEADLINE,
            payment_required_by=DEADLINE,
            base_amount=Money("248.50", "GBP"),
            tax_amount=Money("69.70", "GBP"),
            total_amount=Money("318.00", "GBP"),
        )


def test_requested_duration_overrides_default() -> None:
    order = make_order(hold_duration_hours=2)

    assert order.payment_required_by == NOW + timedelta(hours=2)


def test_payment_window_shorter_than_hold() -> None:
    order = make_order(policy=HoldPolicy(hold_duration_hours=24, payment_window_hours=6))

    assert order.hold_expires_at == DEADLINE
    assert order.payment_required_by == NOW + timedelta(hours=6)


def test_earlier_provider_deadline_wins() -> None:
    provider_deadline = NOW + timedelta(hours=3)

    order = make_order(provider_payment_required_by=provider_deadline)
    assert order.payment_required_by == provider_deadline

    later_deadline = make_order(provider_payment_required_by=NOW + timedelta(hours=30))
    assert later_deadline.payment_required_by == DEADLINE


def test_earlier_provider_price_guarantee_wins() -> None:
    order = make_order(provider_price_guarantee_expires_at=NOW + timedelta(hours=6))

    assert order.hold_expires_at == NOW + timedelta(hours=6)
    assert order.payment_required_by == DEADLINE


def test_offer_amounts_must_add_up() -> None:
    with pytest.raises(InvalidOfferError):
        make_order(offer=make_offer(total_amount="318.21"))


def test_offer_amounts_must_share_a_currency() -> None:
    with pytest.raises(InvalidOfferError):
        make_order(offer=make_offer(tax_currency="EUR"))


def test_offer_requiring_instant_payment_cannot_be_held() -> None:
    with pytest.raises(InvalidOfferError):
        make_order(offer=make_offer(payment_requirements={"requires_instant_payment": True}))


def test_expired_offer_cannot_be_held() -> None:
    with pytest.raises(InvalidOfferError):
        make_order(now=NOW + timedelta(hours=2))


def test_unsupported_holds() -> None:
    with pytest.raises(InvalidOfferError):
        make_order(policy=HoldPolicy(supported=False))


def test_actions_around_the_deadline() -> None:
    order = make_order()

    assert order.available_actions(DEADLINE - timedelta(seconds=1)) == {HoldAction.PAY, HoldAction.CANCEL}
    assert order.time_remaining(DEADLINE - timedelta(seconds=1)).seconds == 1

    assert available_actions(order, DEADLINE + timedelta(seconds=1)) == frozenset()
    assert order.effective_state(DEADLINE + timedelta(seconds=1)) is HoldState.EXPIRED
    assert order.time_remaining(DEADLINE + timedelta(seconds=1)) is EXPIRED
    # reads never mutate
    assert order.state is HoldState.ACTIVE


def test_pay_just_before_the_deadline() -> None:
    order = make_order()
    paid_at = NOW + timedelta(hours=23, minutes=59)

    result = order.mark_paid("pay_ref_1", "CONF00", paid_at)

    assert result.booking_reference == "CONF00"
    assert result.already_processed is False
    assert order.state is HoldState.PAID
    assert order.paid_at == paid_at
    assert order.available_actions(paid_at) == frozenset()
    assert isinstance(order.events[-1], HoldOrderPaid)

    with pytest.raises(AlreadyTerminalError):
        order.cancel(paid_at)


def test_payment_replay_is_idempotent() -> None:
    order = make_order()
    order.mark_paid("pay_ref_1", "CONF00", NOW)
    events = len(order.events)

    replay = order.mark_paid("pay_ref_1", "CONF00", NOW + timedelta(minutes=5))

    assert replay.already_processed is True
    assert replay.booking_reference == "CONF00"
    assert len(order.events) == events

    with pytest.raises(AlreadyTerminalError) as excinfo:
        order.mark_paid("pay_ref_2", "CONF01", NOW)
    assert excinfo.value.state is HoldState.PAID


def test_paying_after_deadline_expires_the_hold() -> None:
    order = make_order()
    after = DEADLINE + timedelta(seconds=1)

    with pytest.raises(HoldExpiredError):
        order.mark_paid("pay_ref_1", "CONF00", after)

    assert order.state is HoldState.EXPIRED
    assert order.expired_at == after
    assert isinstance(order.events[-1], HoldOrderExpired)


def test_refresh_applies_once() -> None:
    order = make_order()
    after = DEADLINE + timedelta(minutes=1)

    assert order.refresh(DEADLINE) is False
    assert order.refresh(after) is True
    assert order.refresh(after + timedelta(hours=1)) is False
    assert order.expired_at == after


def test_cancel_is_idempotent() -> None:
    order = make_order()
    cancelled_at = NOW + timedelta(hours=1)

    assert order.cancel(cancelled_at) is True
    assert order.state is HoldState.CANCELLED
    assert order.cancelled_at == cancelled_at

    assert order.cancel(cancelled_at + timedelta(hours=1)) is False
    assert order.cancelled_at == cancelled_at
    assert [type(e) for e in order.events] == [HoldOrderCreated, HoldOrderCancelled]


def test_cancelling_an_expired_hold_is_a_noop() -> None:
    order = make_order()

    assert order.cancel(DEADLINE + timedelta(seconds=1)) is False
    assert order.state is HoldState.EXPIRED


def test_paying_a_cancelled_hold() -> None:
    order = make_order()
    order.cancel(NOW)

    with pytest.raises(AlreadyTerminalError):
        order.mark_paid("pay_ref_1", "CONF00", NOW)


def test_declined_payment_keeps_hold_active() -> None:
    order = make_order()

    order.record_payment_declined("pay_ref_1", "Card declined", NOW)

    assert order.state is HoldState.ACTIVE
    assert isinstance(order.events[-1], HoldPaymentDeclined)
    assert order.events[-1].reason == "Card declined"


def test_slices_and_departure() -> None:
    order = make_order()

    assert order.first_departure.isoformat() == "2026-03-20T09:00:00+00:00"
    assert order.get_slice("sli_ret").origin.iata_code == "JFK"
    with pytest.raises(UnknownSliceError):
        order.get_slice("sli_missing")


def test_passenger_validation_names_missing_field() -> None:
    passengers = [passenger_data(), passenger_data(id="pas_1", family_name="  ")]

    with pytest.raises(InvalidPassengerDataError) as excinfo:
        validate_passengers(passengers)

    assert excinfo.value.index == 1
    assert excinfo.value.field == "family_name"
    assert "Passenger 2" in str(excinfo.value)


@pytest.mark.parametrize("passengers", [[], None])
def test_at_least_one_passenger(passengers) -> None:
    with pytest.raises(InvalidPassengerDataError):
        validate_passengers(passengers)


def test_loyalty_account_needs_airline_and_number() -> None:
    passenger = passenger_data(loyalty_programme_accounts=[{"airline_iata_code": "BA", "account_number": " "}])

    with pytest.raises(InvalidPassengerDataError) as excinfo:
        validate_passengers([passenger])

    assert excinfo.value.index == 0
    assert excinfo.value.field == "loyalty_programme_accounts"


def test_invalid_birth_date() -> None:
    with pytest.raises(InvalidPassengerDataError) as excinfo:
        validate_passengers([passenger_data(born_on="24/07/1987")])

    assert excinfo.value.field == "born_on"
