"""Fare condition classification and change/cancellation quotes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from shared.domain.value_objects import Money
from apps.holds.domain.conditions import (
    Classification,
    ConditionAction,
    ExternalCancellationQuote,
    ExternalChangeQuote,
    FareCondition,
    RefundTimelineEntry,
    RefundType,
    classify,
    classify_refund,
    compute_cancellation_quote,
    compute_change_quote,
    refund_at,
)
from apps.holds.domain.entities import HoldState
from apps.holds.domain.exceptions import QuoteExpiredError, UnknownSliceError
from apps.holds.domain.policies import (
    CancellationPolicy,
    ChangePolicy,
    FreeCancellationScope,
    RefundMethod,
)
from apps.holds.tests.factories import NOW, OUTBOUND_DEPARTURE, make_offer, make_order

NO_FREE_WINDOW = CancellationPolicy(free_cancellation_hours=0)


# ----- classify -----

def test_zero_penalty_is_included() -> None:
    status = classify(FareCondition.from_dict({"allowed": True, "penalty_amount": "0.00", "penalty_currency": "GBP"}))

    assert status.classification is Classification.INCLUDED
    assert status.label == "Fully Changeable"
    assert status.fee is None


def test_smallest_positive_penalty_is_a_fee() -> None:
    status = classify(
        FareCondition.from_dict({"allowed": True, "penalty_amount": "0.01", "penalty_currency": "GBP"})
    )

    assert status.classification is Classification.FEE_APPLIES
    assert status.fee == Money("0.01", "GBP")
    assert status.label == "Changeable (GBP0.01 fee)"


def test_absent_penalty_is_included() -> None:
    status = classify(FareCondition.from_dict({"allowed": True}), ConditionAction.REFUND)

    assert status.classification is Classification.INCLUDED
    assert status.label == "Fully Refundable"


def test_disallowed_and_absent_rules_are_both_unavailable_with_different_labels() -> None:
    disallowed = classify(FareCondition.from_dict({"allowed": False}), ConditionAction.REFUND)
    absent = classify(None, ConditionAction.REFUND)

    assert disallowed.classification is Classification.NOT_AVAILABLE
    assert absent.classification is Classification.NOT_AVAILABLE
    assert disallowed.label == "Not refundable"
    assert absent.label == "Not available"


def test_disallowed_rule_drops_any_penalty() -> None:
    condition = FareCondition.from_dict({"allowed": False, "penalty_amount": "50.00", "penalty_currency": "GBP"})

    assert condition.penalty is None
    assert condition.to_dict() == {"allowed": False}


def test_status_payload() -> None:
    status = classify(FareCondition(allowed=True, penalty=Money("75", "GBP")))

    assert status.to_dict() == {
        "status": "fee_applies",
        "label": "Changeable (GBP75.00 fee)",
        "fee_amount": "75.00",
        "fee_currency": "GBP",
    }


# ----- change quotes -----

def test_slice_rule_overrides_more_permissive_order_rule() -> None:
    order = make_order()

    outbound = compute_change_quote(order, "sli_out", now=NOW)
    inbound = compute_change_quote(order, "sli_ret", now=NOW)

    assert outbound.permitted
    assert outbound.source == "order"
    assert outbound.fee == Money("75.00", "GBP")
    assert not inbound.permitted
    assert inbound.source == "slice"
    assert inbound.status.label == "Not changeable"


def test_unknown_slice() -> None:
    with pytest.raises(UnknownSliceError):
        compute_change_quote(make_order(), "sli_missing")


def test_change_refused_inside_cutoff_and_after_departure() -> None:
    order = make_order()
    policy = ChangePolicy(cutoff_hours_before_departure=24)

    inside = compute_change_quote(order, "sli_out", now=OUTBOUND_DEPARTURE - timedelta(hours=23), policy=policy)
    departed = compute_change_quote(order, "sli_out", now=OUTBOUND_DEPARTURE + timedelta(minutes=1))

    assert not inside.permitted
    assert inside.reason == "inside change cut-off"
    assert not departed.permitted
    assert departed.reason == "departed"


def test_external_change_quote_penalty_wins_until_it_expires() -> None:
    order = make_order()
    external = ExternalChangeQuote(
        id="ocr_0001",
        change_total=Money("120.00", "GBP"),
        new_total=Money("438.20", "GBP"),
        expires_at=NOW + timedelta(minutes=28),
        penalty_total=Money("80.00", "GBP"),
    )

    quote = compute_change_quote(order, "sli_out", now=NOW, external=external)
    assert quote.fee == Money("80.00", "GBP")
    assert quote.expires_at == NOW + timedelta(minutes=28)

    with pytest.raises(QuoteExpiredError):
        compute_change_quote(order, "sli_out", now=NOW + timedelta(minutes=29), external=external)


# ----- cancellation quotes -----

def test_refund_before_departure_deducts_penalty() -> None:
    order = make_order()

    quote = compute_cancellation_quote(order, NOW + timedelta(days=2), policy=NO_FREE_WINDOW)

    assert quote.permitted
    assert quote.before_departure
    assert quote.penalty == Money("100.00", "GBP")
    assert quote.refund_amount == Money("218.20", "GBP")
    assert quote.refund_method is RefundMethod.ORIGINAL_PAYMENT


def test_refund_after_departure_uses_the_after_rule() -> None:
    order = make_order()

    quote = compute_cancellation_quote(order, OUTBOUND_DEPARTURE + timedelta(hours=1), policy=NO_FREE_WINDOW)

    assert not quote.permitted
    assert not quote.before_departure
    assert quote.reason == "Not refundable"


def test_departure_time_can_be_given_explicitly() -> None:
    order = make_order()
    departure = NOW + timedelta(days=3)

    quote = compute_cancellation_quote(order, departure, departure, policy=NO_FREE_WINDOW)

    assert not quote.before_departure


def test_refund_method_comes_from_configuration() -> None:
    order = make_order()
    policy = CancellationPolicy(
        refund_method=RefundMethod.AIRLINE_CREDITS, processing_time_days=14, free_cancellation_hours=0
    )

    quote = compute_cancellation_quote(order, NOW + timedelta(days=2), policy=policy)

    assert quote.refund_method is RefundMethod.AIRLINE_CREDITS
    assert quote.processing_time_days == 14


def test_free_cancellation_window_waives_the_penalty() -> None:
    order = make_order()

    quote = compute_cancellation_quote(order, NOW + timedelta(hours=2), policy=CancellationPolicy())

    assert quote.free_cancellation
    assert quote.penalty.is_zero
    assert quote.refund_amount == Money("318.20", "GBP")


def test_free_window_for_refundable_fares_only_does_not_cover_non_refundable() -> None:
    order = make_order(offer=make_offer(conditions={"refund_before_departure": {"allowed": False}}))

    refundable_only = compute_cancellation_quote(order, NOW + timedelta(hours=2), policy=CancellationPolicy())
    all_fares = compute_cancellation_quote(
        order,
        NOW + timedelta(hours=2),
        policy=CancellationPolicy(free_cancellation_scope=FreeCancellationScope.ALL_FARES),
    )

    assert not refundable_only.permitted
    assert all_fares.permitted
    assert all_fares.free_cancellation


def test_expired_cancellation_quote_is_refused_while_order_is_active() -> None:
    order = make_order()
    external = ExternalCancellationQuote(
        id="ore_0001",
        refund_amount=Money("218.20", "GBP"),
        refund_method=RefundMethod.ORIGINAL_PAYMENT,
        expires_at=NOW + timedelta(minutes=28),
    )
    later = NOW + timedelta(minutes=29)

    assert order.effective_state(later) is HoldState.ACTIVE
    with pytest.raises(QuoteExpiredError):
        compute_cancellation_quote(order, later, policy=NO_FREE_WINDOW, external=external)


def test_external_refund_amount_is_authoritative_while_valid() -> None:
    order = make_order()
    external = ExternalCancellationQuote(
        id="ore_0002",
        refund_amount=Money("200.00", "GBP"),
        refund_method=RefundMethod.VOUCHER,
        expires_at=NOW + timedelta(days=3),
    )

    quote = compute_cancellation_quote(order, NOW + timedelta(days=2), policy=NO_FREE_WINDOW, external=external)

    assert quote.refund_amount == Money("200.00", "GBP")
    assert quote.refund_method is RefundMethod.VOUCHER
    assert quote.external is external


# ----- refund timelines -----

def test_refund_timeline_picks_earliest_deadline_not_yet_passed() -> None:
    total = Money("300.00", "EUR")
    check_in = datetime(2026, 5, 10, 14, 0, tzinfo=timezone.utc)
    timeline = [
        RefundTimelineEntry(before=check_in - timedelta(days=1), refund=Money("150.00", "EUR")),
        RefundTimelineEntry(before=check_in - timedelta(days=7), refund=total),
    ]

    assert refund_at(timeline, check_in - timedelta(days=10)) == total
    assert refund_at(timeline, check_in - timedelta(days=3)) == Money("150.00", "EUR")
    assert refund_at(timeline, check_in) is None


def test_classify_refund() -> None:
    total = Money("300.00", "EUR")

    assert classify_refund(total, total) is RefundType.FULL
    assert classify_refund(Money("150.00", "EUR"), total) is RefundType.PARTIAL
    assert classify_refund(Money("0.00", "EUR"), total) is RefundType.NONE
    assert classify_refund(None, total) is RefundType.NONE
