"""
Dict <-> domain mapping

The same JSON shapes are used for the provider's payloads and for the
JSON columns of HoldOrderModel, so one set of functions serves both.
Amounts travel as decimal strings with a separate currency code.
"""

from datetime import date, datetime, timezone
from typing import Optional

from django.utils.dateparse import parse_datetime

from shared.domain.value_objects import IsoDuration, Money
from apps.holds.domain.conditions import (
    Conditions,
    ExternalCancellationQuote,
    ExternalChangeQuote,
    SliceConditions,
)
from apps.holds.domain.entities import (
    Carrier,
    LoyaltyAccount,
    Offer,
    Passenger,
    Place,
    Segment,
    Slice,
    Stop,
)
from apps.holds.domain.policies import RefundMethod


def parse_timestamp(value) -> Optional[datetime]:
    """
    ISO 8601 string to an aware datetime

    The offset in the string is kept. Values without one are taken as UTC.
    """
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def money_from(data: dict, amount_key: str, currency_key: str) -> Optional[Money]:
    amount = data.get(amount_key)
    if amount in (None, ''):
        return None
    return Money(amount, data[currency_key])


# ===== Passengers =====

def passenger_from_dict(data: dict, index: int = 0) -> Passenger:
    born_on = data['born_on']
    if isinstance(born_on, str):
        born_on = date.fromisoformat(born_on)
    accounts = tuple(
        LoyaltyAccount(
            airline_iata_code=account['airline_iata_code'],
            account_number=account['account_number'],
        )
        for account in data.get('loyalty_programme_accounts') or ()
    )
    return Passenger(
        id=data.get('id') or f"pas_{index}",
        given_name=data['given_name'].strip(),
        family_name=data['family_name'].strip(),
        born_on=born_on,
        title=data.get('title') or '',
        email=data.get('email') or None,
        phone_number=data.get('phone_number') or None,
        loyalty_accounts=accounts,
    )


def passenger_to_dict(passenger: Passenger) -> dict:
    data = {
        'id': passenger.id,
        'title': passenger.title,
        'given_name': passenger.given_name,
        'family_name': passenger.family_name,
        'born_on': passenger.born_on.isoformat(),
        'email': passenger.email,
        'phone_number': passenger.phone_number,
    }
    if passenger.loyalty_accounts:
        data['loyalty_programme_accounts'] = [
            {'airline_iata_code': a.airline_iata_code, 'account_number': a.account_number}
            for a in passenger.loyalty_accounts
        ]
    return data


# ===== Itinerary =====

def place_from_dict(data: dict, terminal: Optional[str] = None) -> Place:
    return Place(
        iata_code=data['iata_code'],
        name=data.get('name') or data['iata_code'],
        city_name=data.get('city_name'),
        terminal=terminal,
    )


def place_to_dict(place: Place) -> dict:
    return {'iata_code': place.iata_code, 'name': place.name, 'city_name': place.city_name}


def carrier_from_dict(data: dict) -> Carrier:
    return Carrier(iata_code=data['iata_code'], name=data.get('name') or data['iata_code'],
                   logo_url=data.get('logo_symbol_url'))


def carrier_to_dict(carrier: Carrier) -> dict:
    return {'iata_code': carrier.iata_code, 'name': carrier.name, 'logo_symbol_url': carrier.logo_url}


def segment_from_dict(data: dict) -> Segment:
    marketing = carrier_from_dict(data['marketing_carrier'])
    operating = carrier_from_dict(data['operating_carrier']) if data.get('operating_carrier') else marketing
    aircraft = data.get('aircraft')
    return Segment(
        id=data['id'],
        origin=place_from_dict(data['origin'], data.get('origin_terminal')),
        destination=place_from_dict(data['destination'], data.get('destination_terminal')),
        departing_at=parse_timestamp(data['departing_at']),
        arriving_at=parse_timestamp(data['arriving_at']),
        duration=IsoDuration(data['duration']),
        marketing_carrier=marketing,
        operating_carrier=operating,
        flight_number=data.get('marketing_carrier_flight_number') or data.get('flight_number', ''),
        aircraft=aircraft.get('name') if isinstance(aircraft, dict) else aircraft,
        distance=data.get('distance'),
        stops=tuple(
            Stop(
                airport=place_from_dict(stop['airport']),
                duration=IsoDuration(stop['duration']),
                arriving_at=parse_timestamp(stop.get('arriving_at')),
                departing_at=parse_timestamp(stop.get('departing_at')),
            )
            for stop in data.get('stops') or ()
        ),
    )


def segment_to_dict(segment: Segment) -> dict:
    return {
        'id': segment.id,
        'origin': place_to_dict(segment.origin),
        'origin_terminal': segment.origin.terminal,
        'destination': place_to_dict(segment.destination),
        'destination_terminal': segment.destination.terminal,
        'departing_at': format_timestamp(segment.departing_at),
        'arriving_at': format_timestamp(segment.arriving_at),
        'duration': str(segment.duration),
        'marketing_carrier': carrier_to_dict(segment.marketing_carrier),
        'operating_carrier': carrier_to_dict(segment.operating_carrier),
        'marketing_carrier_flight_number': segment.flight_number,
        'aircraft': {'name': segment.aircraft} if segment.aircraft else None,
        'distance': segment.distance,
        'stops': [
            {
                'airport': place_to_dict(stop.airport),
                'duration': str(stop.duration),
                'arriving_at': format_timestamp(stop.arriving_at),
                'departing_at': format_timestamp(stop.departing_at),
            }
            for stop in segment.stops
        ],
    }


def slice_from_dict(data: dict) -> Slice:
    segments = tuple(segment_from_dict(s) for s in data['segments'])
    return Slice(
        id=data['id'],
        origin=place_from_dict(data['origin']) if data.get('origin') else segments[0].origin,
        destination=place_from_dict(data['destination']) if data.get('destination') else segments[-1].destination,
        segments=segments,
        duration=IsoDuration(data['duration']) if data.get('duration') else None,
        fare_brand_name=data.get('fare_brand_name'),
        conditions=SliceConditions.from_dict(data.get('conditions')),
    )


def slice_to_dict(itinerary_slice: Slice) -> dict:
    return {
        'id': itinerary_slice.id,
        'origin': place_to_dict(itinerary_slice.origin),
        'destination': place_to_dict(itinerary_slice.destination),
        'segments': [segment_to_dict(s) for s in itinerary_slice.segments],
        'duration': str(itinerary_slice.duration) if itinerary_slice.duration else None,
        'fare_brand_name': itinerary_slice.fare_brand_name,
        'conditions': itinerary_slice.conditions.to_dict(),
    }


# ===== Offers and quotes =====

_REFUND_DESTINATIONS = {
    'original_form_of_payment': RefundMethod.ORIGINAL_PAYMENT,
}


def refund_method_from(value: str) -> RefundMethod:
    return _REFUND_DESTINATIONS.get(value) or RefundMethod(value)


def offer_from_dict(data: dict) -> Offer:
    currency = data['total_currency']
    payment_requirements = data.get('payment_requirements') or {}
    return Offer(
        id=data['id'],
        base_amount=Money(data['base_amount'], data.get('base_currency') or currency),
        tax_amount=Money(data.get('tax_amount') or '0', data.get('tax_currency') or currency),
        total_amount=Money(data['total_amount'], currency),
        slices=tuple(slice_from_dict(s) for s in data.get('slices') or ()),
        conditions=Conditions.from_dict(data.get('conditions')),
        expires_at=parse_timestamp(data.get('expires_at')),
        requires_instant_payment=bool(payment_requirements.get('requires_instant_payment', False)),
    )


def change_quote_from_dict(data: dict) -> ExternalChangeQuote:
    return ExternalChangeQuote(
        id=data['id'],
        change_total=money_from(data, 'change_total_amount', 'change_total_currency'),
        new_total=money_from(data, 'new_total_amount', 'new_total_currency'),
        expires_at=parse_timestamp(data['expires_at']),
        penalty_total=money_from(data, 'penalty_total_amount', 'penalty_total_currency'),
    )


def cancellation_quote_from_dict(data: dict) -> ExternalCancellationQuote:
    return ExternalCancellationQuote(
        id=data['id'],
        refund_amount=money_from(data, 'refund_amount', 'refund_currency'),
        refund_method=refund_method_from(data['refund_to']),
        expires_at=parse_timestamp(data['expires_at']),
        confirmed_at=parse_timestamp(data.get('confirmed_at')),
    )
