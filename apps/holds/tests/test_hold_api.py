"""Integration tests for hold order API endpoints."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.holds.domain.clock import FixedClock
from apps.holds.models import HoldOrderModel
from apps.holds.tests.factories import NOW, FakeBookingApi, passenger_data

DEADLINE = NOW + timedelta(hours=24)


class HoldOrderAPITests(APITestCase):
    """Covers размещение, оплату, отмену и котировки hold-заказов."""

    def setUp(self) -> None:
        self.clock = FixedClock(NOW)
        self.api = FakeBookingApi()
        for target, value in (
            ("apps.holds.conf.get_clock", self.clock),
            ("apps.holds.conf.get_booking_api", self.api),
        ):
            patcher = patch(target, return_value=value)
            patcher.start()
            self.addCleanup(patcher.stop)

        self.agent = get_user_model().objects.create_user(username="agent", password="AgentPass123")
        self.client.force_authenticate(self.agent)
        self.list_url = reverse("hold-list")

    def _payload(self, **overrides) -> dict:
        payload = {"offer_id": "off_0000A", "passengers": [passenger_data()]}
        payload.update(overrides)
        return payload

    def _create(self) -> str:
        response = self.client.post(self.list_url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        return response.data["id"]

    def _pay(self, hold_id: str, reference: str = "pay_ref_1"):
        return self.client.post(
            reverse("hold-pay", args=[hold_id]), {"payment_reference": reference}, format="json"
        )

    # ----- create -----

    def test_agent_can_place_hold(self) -> None:
        response = self.client.post(self.list_url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        data = response.data
        self.assertEqual(data["state"], "active")
        self.assertEqual(data["booking_reference"], "HOLD00")
        self.assertEqual(data["available_actions"], ["cancel", "pay"])
        self.assertEqual(data["base_amount"], "248.50")
        self.assertEqual(data["tax_amount"], "69.70")
        self.assertEqual(data["total_amount"], "318.20")
        self.assertEqual(data["total_display"], "£318.20")
        self.assertEqual(data["payment_required_by"], "2026-03-02T12:00:00+00:00")
        self.assertEqual(data["time_remaining"], {"seconds": 86400, "display": "24h 0m", "expired": False})
        self.assertEqual(HoldOrderModel.objects.count(), 1)

    def test_anonymous_cannot_place_hold(self) -> None:
        self.client.force_authenticate(None)

        response = self.client.post(self.list_url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_missing_passenger_field(self) -> None:
        response = self.client.post(
            self.list_url, self._payload(passengers=[passenger_data(given_name="")]), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["code"], "invalid_passenger_data")
        self.assertEqual(response.data["passenger_index"], 0)
        self.assertEqual(response.data["field"], "given_name")
        self.assertEqual(self.api.holds, [])

    def test_incomplete_loyalty_account(self) -> None:
        passenger = passenger_data(loyalty_programme_accounts=[{"airline_iata_code": "BA"}])

        response = self.client.post(self.list_url, self._payload(passengers=[passenger]), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertIn("passengers", response.data)
        self.assertEqual(self.api.holds, [])

    def test_unavailable_offer(self) -> None:
        response = self.client.post(self.list_url, self._payload(offer_id="off_gone"), format="json")

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY, response.data)
        self.assertEqual(response.data["code"], "invalid_offer")

    def test_provider_unreachable(self) -> None:
        self.api.unreachable = True

        response = self.client.post(self.list_url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY, response.data)
        self.assertEqual(response.data["code"], "booking_api_error")

    # ----- read -----

    def test_detail_derives_expiry_without_writing(self) -> None:
        hold_id = self._create()
        self.clock.set(DEADLINE + timedelta(seconds=1))

        response = self.client.get(reverse("hold-detail", args=[hold_id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["state"], "expired")
        self.assertEqual(response.data["available_actions"], [])
        self.assertTrue(response.data["time_remaining"]["expired"])
        self.assertEqual(HoldOrderModel.objects.get(pk=hold_id).state, HoldOrderModel.State.ACTIVE)

    def test_status_countdown(self) -> None:
        hold_id = self._create()
        self.clock.advance(hours=23, minutes=15)

        response = self.client.get(reverse("hold-status", args=[hold_id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["time_remaining"]["display"], "0h 45m")
        self.assertEqual(response.data["time_remaining"]["seconds"], 2700)

    def test_unknown_hold(self) -> None:
        response = self.client.get(reverse("hold-detail", args=["not-a-uuid"]))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "not_found")

    def test_list_filters_on_effective_state(self) -> None:
        stale = self._create()
        self.clock.advance(hours=1)
        fresh = self._create()
        self.clock.set(DEADLINE + timedelta(minutes=1))

        expired = self.client.get(self.list_url, {"state": "expired"})
        active = self.client.get(self.list_url, {"state": "active"})

        self.assertEqual([h["id"] for h in expired.data["results"]], [stale])
        self.assertEqual([h["id"] for h in active.data["results"]], [fresh])

    def test_conditions(self) -> None:
        hold_id = self._create()

        response = self.client.get(reverse("hold-conditions", args=[hold_id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["change_before_departure"]["status"], "fee_applies")
        self.assertEqual(response.data["change_before_departure"]["fee_amount"], "75.00")
        self.assertEqual(response.data["refund_after_departure"]["status"], "not_available")
        slices = {s["slice_id"]: s["change_before_departure"]["status"] for s in response.data["slices"]}
        self.assertEqual(slices, {"sli_out": "fee_applies", "sli_ret": "not_available"})

    # ----- pay -----

    def test_pay_and_replay(self) -> None:
        hold_id = self._create()
        self.clock.advance(hours=23, minutes=59)

        first = self._pay(hold_id)
        replay = self._pay(hold_id)

        self.assertEqual(first.status_code, status.HTTP_200_OK, first.data)
        self.assertEqual(first.data["booking_reference"], "CONF00")
        self.assertFalse(first.data["already_processed"])
        self.assertEqual(first.data["hold"]["state"], "paid")
        self.assertEqual(first.data["hold"]["available_actions"], [])
        self.assertEqual(replay.status_code, status.HTTP_200_OK, replay.data)
        self.assertTrue(replay.data["already_processed"])
        self.assertEqual(replay.data["booking_reference"], "CONF00")

    def test_second_payment_reference_conflicts(self) -> None:
        hold_id = self._create()
        self._pay(hold_id)

        response = self._pay(hold_id, reference="pay_ref_2")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.assertEqual(response.data["code"], "already_terminal")
        self.assertEqual(response.data["state"], "paid")

    def test_pay_after_deadline(self) -> None:
        hold_id = self._create()
        self.clock.set(DEADLINE + timedelta(seconds=1))

        response = self._pay(hold_id)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.assertEqual(response.data["code"], "hold_expired")
        self.assertEqual(response.data["state"], "expired")
        self.assertEqual(HoldOrderModel.objects.get(pk=hold_id).state, HoldOrderModel.State.EXPIRED)

    def test_declined_payment(self) -> None:
        hold_id = self._create()
        self.api.declined_references.add("pay_ref_1")

        response = self._pay(hold_id)

        self.assertEqual(response.status_code, status.HTTP_402_PAYMENT_REQUIRED, response.data)
        self.assertEqual(response.data["code"], "payment_declined")
        self.assertEqual(HoldOrderModel.objects.get(pk=hold_id).state, HoldOrderModel.State.ACTIVE)

    # ----- cancel -----

    def test_cancel_is_idempotent(self) -> None:
        hold_id = self._create()
        url = reverse("hold-cancel", args=[hold_id])

        first = self.client.post(url)
        second = self.client.post(url)

        self.assertEqual(first.status_code, status.HTTP_200_OK, first.data)
        self.assertEqual(first.data["state"], "cancelled")
        self.assertEqual(second.status_code, status.HTTP_200_OK, second.data)
        self.assertEqual(len(self.api.cancelled), 1)

    def test_cancel_paid_hold(self) -> None:
        hold_id = self._create()
        self._pay(hold_id)

        response = self.client.post(reverse("hold-cancel", args=[hold_id]))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)

    # ----- quotes -----

    def test_change_quote(self) -> None:
        hold_id = self._create()
        url = reverse("hold-change-quote", args=[hold_id])

        outbound = self.client.post(url, {"slice_id": "sli_out"}, format="json")
        inbound = self.client.post(url, {"slice_id": "sli_ret"}, format="json")
        unknown = self.client.post(url, {"slice_id": "sli_missing"}, format="json")

        self.assertEqual(outbound.status_code, status.HTTP_200_OK, outbound.data)
        self.assertTrue(outbound.data["permitted"])
        self.assertEqual(outbound.data["fee_amount"], "75.00")
        self.assertFalse(inbound.data["permitted"])
        self.assertEqual(inbound.data["source"], "slice")
        self.assertEqual(unknown.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(unknown.data["code"], "unknown_slice")

    def test_cancellation_quote_inside_free_window(self) -> None:
        hold_id = self._create()

        response = self.client.post(reverse("hold-cancellation-quote", args=[hold_id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["free_cancellation"])
        self.assertEqual(response.data["refund_amount"], "318.20")
        self.assertEqual(response.data["refund_method"], "original_payment")
        self.assertEqual(response.data["processing_time_days"], 7)

    # ----- ancillaries -----

    def test_ancillary_total(self) -> None:
        self.client.force_authenticate(None)
        payload = {"selections": [{"unit_price": "35.00", "currency": "GBP", "quantity": 2}]}

        response = self.client.post(reverse("hold-ancillaries-total"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["total_amount"], "70.00")
        self.assertEqual(response.data["total_currency"], "GBP")
        self.assertEqual(response.data["total_display"], "£70.00")
        self.assertEqual(response.data["lines"][0]["description"], "2 bags × £35.00 = £70.00")

    def test_ancillary_selections_without_ids_are_all_counted(self) -> None:
        payload = {
            "selections": [
                {"unit_price": "35.00", "currency": "GBP", "quantity": 2},
                {"unit_price": "35.00", "currency": "GBP", "quantity": 1},
            ]
        }

        response = self.client.post(reverse("hold-ancillaries-total"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["total_amount"], "105.00")
        self.assertEqual(response.data["quantity"], 3)
        self.assertEqual(len(response.data["lines"]), 2)

    def test_ancillary_service_selected_twice(self) -> None:
        selection = {"service_id": "ase_checked", "unit_price": "35.00", "currency": "GBP", "quantity": 1}

        response = self.client.post(
            reverse("hold-ancillaries-total"), {"selections": [selection, selection]}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertIn("selections", response.data)

    def test_ancillary_currency_mismatch(self) -> None:
        payload = {
            "selections": [
                {"unit_price": "35.00", "currency": "GBP", "quantity": 2},
                {"type": "seat", "unit_price": "20.00", "currency": "EUR", "quantity": 1},
            ]
        }

        response = self.client.post(reverse("hold-ancillaries-total"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["code"], "currency_mismatch")

    def test_ancillary_quantity_over_maximum(self) -> None:
        payload = {
            "selections": [{"unit_price": "35.00", "currency": "GBP", "quantity": 3, "maximum_quantity": 2}]
        }

        response = self.client.post(reverse("hold-ancillaries-total"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["code"], "invalid_quantity")
