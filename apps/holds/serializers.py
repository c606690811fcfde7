"""Serializers for the hold order API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from shared.domain.value_objects import Money
from apps.holds.domain.ancillaries import AncillaryService, ServiceType
from apps.holds.domain.conditions import ConditionAction, classify
from apps.holds.domain.deadlines import EXPIRED, format_quote_expiry
from apps.holds.infrastructure.mappers import format_timestamp, passenger_to_dict, slice_to_dict


def money_fields(money, prefix: str) -> dict:
    return {
        f"{prefix}_amount": money.to_string() if money is not None else None,
        f"{prefix}_currency": money.currency if money is not None else None,
    }


def remaining_payload(remaining) -> dict:
    if remaining is EXPIRED:
        return {"seconds": 0, "display": str(EXPIRED), "expired": True}
    return {"seconds": remaining.seconds, "display": str(remaining), "expired": False}


class LoyaltyAccountSerializer(serializers.Serializer):
    airline_iata_code = serializers.RegexField(r"^[A-Za-z0-9]{2}$")
    account_number = serializers.CharField(max_length=64)


class PassengerInputSerializer(serializers.Serializer):
    """Passenger details as entered at checkout; completeness is checked by the domain."""

    id = serializers.CharField(required=False, allow_blank=True)
    title = serializers.CharField(required=False, allow_blank=True)
    given_name = serializers.CharField(required=False, allow_blank=True)
    family_name = serializers.CharField(required=False, allow_blank=True)
    born_on = serializers.CharField(required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone_number = serializers.CharField(required=False, allow_blank=True)
    loyalty_programme_accounts = LoyaltyAccountSerializer(many=True, required=False)


class HoldCreateSerializer(serializers.Serializer):
    """Размещение hold на предложении."""

    offer_id = serializers.CharField(max_length=64)
    passengers = PassengerInputSerializer(many=True, allow_empty=True)
    hold_duration_hours = serializers.IntegerField(min_value=1, max_value=72, required=False)


class PaySerializer(serializers.Serializer):
    payment_reference = serializers.CharField(max_length=128)


class ChangeQuoteRequestSerializer(serializers.Serializer):
    slice_id = serializers.CharField(max_length=64)


class AncillarySelectionSerializer(serializers.Serializer):
    service_id = serializers.CharField(required=False, allow_blank=True)
    type = serializers.ChoiceField(choices=[t.value for t in ServiceType], default=ServiceType.CHECKED.value)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=0, coerce_to_string=False)
    currency = serializers.RegexField(r"^[A-Za-z]{3}$")
    quantity = serializers.IntegerField(min_value=0)
    maximum_quantity = serializers.IntegerField(min_value=0, required=False)

    def to_service(self, data: dict, index: int) -> AncillaryService:
        service_id = data.get("service_id") or f"{data['type']}_{data['currency'].upper()}_{index}"
        return AncillaryService(
            id=service_id,
            service_type=ServiceType(data["type"]),
            price=Money(data["unit_price"], data["currency"]),
            maximum_quantity=data.get("maximum_quantity", data["quantity"]),
        )


class AncillaryTotalSerializer(serializers.Serializer):
    """Сумма выбранных дополнительных услуг (багаж, места)."""

    settlement_currency = serializers.RegexField(r"^[A-Za-z]{3}$", required=False)
    selections = AncillarySelectionSerializer(many=True, allow_empty=False)

    def validate_selections(self, selections):  # type: ignore
        service_ids = [s["service_id"] for s in selections if s.get("service_id")]
        if len(service_ids) != len(set(service_ids)):
            raise serializers.ValidationError("Each service can be selected only once.")
        return selections


class HoldOrderSerializer(serializers.Serializer):
    """
    Read model for a hold order

    Expects ``now`` in the context. State, actions and countdowns are
    derived from it on every render and never read from storage.
    """

    def to_representation(self, order):  # type: ignore
        now = self.context["now"]
        remaining = order.time_remaining(now)
        data = {
            "id": str(order.id),
            "booking_reference": order.booking_reference,
            "confirmed_booking_reference": order.confirmed_booking_reference,
            "offer_id": order.offer_id,
            "state": order.effective_state(now).value,
            "available_actions": sorted(action.value for action in order.available_actions(now)),
            "hold_expires_at": format_timestamp(order.hold_expires_at),
            "payment_required_by": format_timestamp(order.payment_required_by),
            "time_remaining": remaining_payload(remaining),
            "price_guarantee_remaining": remaining_payload(order.price_guarantee_remaining(now)),
            **money_fields(order.base_amount, "base"),
            **money_fields(order.tax_amount, "tax"),
            **money_fields(order.total_amount, "total"),
            "total_display": order.total_amount.format(),
            "passengers": [passenger_to_dict(p) for p in order.passengers],
            "slices": [slice_to_dict(s) for s in order.slices],
            "conditions": ConditionsSerializer(order).data,
            "paid_at": format_timestamp(order.paid_at),
            "cancelled_at": format_timestamp(order.cancelled_at),
            "expired_at": format_timestamp(order.expired_at),
            "created_at": format_timestamp(order.created_at),
            "updated_at": format_timestamp(order.updated_at),
        }
        return data


class HoldStatusSerializer(serializers.Serializer):
    """Light payload for countdown polling."""

    def to_representation(self, order):  # type: ignore
        now = self.context["now"]
        return {
            "id": str(order.id),
            "booking_reference": order.booking_reference,
            "state": order.effective_state(now).value,
            "available_actions": sorted(action.value for action in order.available_actions(now)),
            "payment_required_by": format_timestamp(order.payment_required_by),
            "time_remaining": remaining_payload(order.time_remaining(now)),
        }


class ConditionsSerializer(serializers.Serializer):
    """Order-level refund/change classifications plus per-slice change rules."""

    def to_representation(self, order):  # type: ignore
        conditions = order.conditions
        return {
            "change_before_departure": classify(
                conditions.change_before_departure, ConditionAction.CHANGE
            ).to_dict(),
            "refund_before_departure": classify(
                conditions.refund_before_departure, ConditionAction.REFUND
            ).to_dict(),
            "refund_after_departure": classify(
                conditions.refund_after_departure, ConditionAction.REFUND
            ).to_dict(),
            "slices": [
                {
                    "slice_id": itinerary_slice.id,
                    "change_before_departure": classify(
                        itinerary_slice.conditions.change_before_departure
                        or conditions.change_before_departure,
                        ConditionAction.CHANGE,
                    ).to_dict(),
                }
                for itinerary_slice in order.slices
            ],
        }


class ChangeQuoteSerializer(serializers.Serializer):

    def to_representation(self, quote):  # type: ignore
        now = self.context["now"]
        data = {
            "slice_id": quote.slice_id,
            "permitted": quote.permitted,
            "status": quote.status.to_dict(),
            "source": quote.source,
            "reason": quote.reason,
            **money_fields(quote.fee, "fee"),
            "expires_at": format_timestamp(quote.expires_at),
            "expiry_display": format_quote_expiry(quote.expires_at, now),
        }
        if quote.external is not None:
            data["quote_id"] = quote.external.id
            data.update(money_fields(quote.external.change_total, "change_total"))
            data.update(money_fields(quote.external.new_total, "new_total"))
        return data


class CancellationQuoteSerializer(serializers.Serializer):

    def to_representation(self, quote):  # type: ignore
        now = self.context["now"]
        data = {
            "permitted": quote.permitted,
            "before_departure": quote.before_departure,
            "free_cancellation": quote.free_cancellation,
            "reason": quote.reason,
            **money_fields(quote.penalty, "penalty"),
            **money_fields(quote.refund_amount, "refund"),
            "refund_method": quote.refund_method.value if quote.refund_method else None,
            "processing_time_days": quote.processing_time_days,
            "expires_at": format_timestamp(quote.expires_at),
            "expiry_display": format_quote_expiry(quote.expires_at, now),
        }
        if quote.external is not None:
            data["quote_id"] = quote.external.id
        return data

