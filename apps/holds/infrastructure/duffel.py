"""
Duffel API integration

Implements BookingApi and QuoteApi over Duffel's REST API:

- GET  /air/offers/{id}                    current price of an offer
- POST /air/orders (type=hold)             place a hold
- POST /air/payments                       pay for a held order
- POST /air/order_cancellations (+confirm) release a hold / quote a refund
- POST /air/order_change_requests          quote a slice change

Every payment carries the caller's payment reference as the
``Idempotency-Key`` header.
"""

import logging
from typing import List, Optional

import requests
from django.conf import settings

from apps.holds.application.gateways import BookingApi, ProviderHold, ProviderPayment, QuoteApi
from apps.holds.domain.conditions import ExternalCancellationQuote, ExternalChangeQuote
from apps.holds.domain.entities import HoldOrder, Offer, Passenger
from apps.holds.domain.exceptions import BookingApiError, InvalidOfferError, PaymentDeclinedError
from apps.holds.infrastructure.mappers import (
    cancellation_quote_from_dict,
    change_quote_from_dict,
    offer_from_dict,
    parse_timestamp,
    passenger_to_dict,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.duffel.com"
DEFAULT_API_VERSION = "v2"

# Error codes Duffel uses for an offer that can no longer be booked
OFFER_ERROR_CODES = {
    'offer_no_longer_available',
    'offer_request_already_booked',
    'price_changed',
    'not_found',
}
PAYMENT_ERROR_CODES = {
    'insufficient_balance',
    'payment_declined',
    'card_declined',
}


class DuffelClient(BookingApi, QuoteApi):
    """Thin, synchronous Duffel client on a shared ``requests.Session``"""

    def __init__(
        self,
        access_token: str,
        base_url: str = DEFAULT_API_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        if not access_token:
            raise BookingApiError("Duffel access token is not configured")
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {access_token}",
            "Duffel-Version": api_version,
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    @classmethod
    def from_settings(cls) -> 'DuffelClient':
        return cls(
            access_token=getattr(settings, 'DUFFEL_ACCESS_TOKEN', ''),
            base_url=getattr(settings, 'DUFFEL_API_URL', DEFAULT_API_URL),
            api_version=getattr(settings, 'DUFFEL_API_VERSION', DEFAULT_API_VERSION),
            timeout=getattr(settings, 'DUFFEL_TIMEOUT_SECONDS', 30),
        )

    # ----- transport -----

    def _request(self, method: str, path: str, payload: Optional[dict] = None,
                 idempotency_key: Optional[str] = None) -> dict:
        headers = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json={"data": payload} if payload is not None else None,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error calling Duffel {method} {path}: {e}")
            raise BookingApiError(f"Booking provider unreachable: {e}") from e

        if response.ok:
            try:
                return response.json().get("data") or {}
            except ValueError as e:
                raise BookingApiError(f"Booking provider sent an invalid response for {path}") from e

        code, message = self._error_details(response)
        logger.warning(f"Duffel {method} {path} failed with HTTP {response.status_code}: {code} {message}")
        raise self._error_for(path, response.status_code, code, message)

    @staticmethod
    def _error_details(response: requests.Response):
        try:
            errors = response.json().get("errors") or []
        except ValueError:
            errors = []
        first = errors[0] if errors else {}
        return first.get("code", ''), first.get("message") or f"HTTP {response.status_code}"

    @staticmethod
    def _error_for(path: str, status_code: int, code: str, message: str) -> Exception:
        if path.startswith("/air/payments") and (status_code == 402 or code in PAYMENT_ERROR_CODES):
            return PaymentDeclinedError(message, provider_code=code)
        if code in OFFER_ERROR_CODES or (path.startswith("/air/offers") and status_code in (404, 410, 422)):
            return InvalidOfferError(message, provider_code=code)
        return BookingApiError(f"Booking provider error: {message}", status=status_code, provider_code=code)

    # ----- BookingApi -----

    def get_offer(self, offer_id: str) -> Offer:
        data = self._request("GET", f"/air/offers/{offer_id}")
        return offer_from_dict(data)

    def create_hold(self, offer: Offer, passengers: List[Passenger]) -> ProviderHold:
        payload = {
            "type": "hold",
            "selected_offers": [offer.id],
            "passengers": [
                {k: v for k, v in passenger_to_dict(p).items() if v not in (None, '')}
                for p in passengers
            ],
        }
        data = self._request("POST", "/air/orders", payload)
        payment_status = data.get("payment_status") or {}
        logger.info(f"Duffel hold order {data['id']} created ({data.get('booking_reference')})")
        return ProviderHold(
            provider_order_id=data["id"],
            booking_reference=data["booking_reference"],
            payment_required_by=parse_timestamp(payment_status.get("payment_required_by")),
            price_guarantee_expires_at=parse_timestamp(payment_status.get("price_guarantee_expires_at")),
        )

    def confirm_payment(self, order: HoldOrder, payment_reference: str) -> ProviderPayment:
        payload = {
            "order_id": order.provider_order_id,
            "payment": {
                "type": "balance",
                "amount": order.total_amount.to_string(),
                "currency": order.currency,
            },
        }
        data = self._request("POST", "/air/payments", payload, idempotency_key=payment_reference)
        return ProviderPayment(payment_id=data["id"], booking_reference=order.booking_reference)

    def cancel_hold(self, order: HoldOrder) -> None:
        cancellation = self._request("POST", "/air/order_cancellations", {"order_id": order.provider_order_id})
        self._request("POST", f"/air/order_cancellations/{cancellation['id']}/actions/confirm")
        logger.info(f"Duffel hold order {order.provider_order_id} released")

    # ----- QuoteApi -----

    def get_change_quote(self, order: HoldOrder, slice_id: str) -> ExternalChangeQuote:
        payload = {
            "order_id": order.provider_order_id,
            "slices": {"remove": [{"slice_id": slice_id}], "add": []},
        }
        data = self._request("POST", "/air/order_change_requests", payload)
        offers = data.get("order_change_offers") or []
        if not offers:
            raise BookingApiError(f"No change offers returned for slice {slice_id}")
        return change_quote_from_dict(offers[0])

    def get_cancellation_quote(self, order: HoldOrder) -> ExternalCancellationQuote:
        data = self._request("POST", "/air/order_cancellations", {"order_id": order.provider_order_id})
        return cancellation_quote_from_dict(data)
