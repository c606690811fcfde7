"""
Common Value Objects

Value objects used across the travel domains:
- Money: A decimal amount with an ISO 4217 currency code
- IsoDuration: An ISO-8601 duration such as ``PT8H30M``
"""

import re
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from shared.domain.base import ValueObject
from shared.domain.exceptions import CurrencyMismatchError

AmountLike = Union[str, int, Decimal]

# Currencies whose minor unit is not 2 digits
MINOR_UNITS = {
    'JPY': 0,
    'KRW': 0,
    'VND': 0,
    'BHD': 3,
    'KWD': 3,
    'OMR': 3,
}

CURRENCY_SYMBOLS = {
    'GBP': '£',
    'USD': '$',
    'EUR': '€',
}

_CURRENCY_RE = re.compile(r'^[A-Z]{3}$')


def to_decimal(value: AmountLike) -> Decimal:
    """
    Parse an amount without ever going through binary floating point

    Floats are rejected outright; amounts arrive as strings from the
    airline APIs and must stay that way until they are Decimals.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must be given as str, int or Decimal, not float")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid monetary amount: {value!r}")


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Amounts are quantized to the currency's minor unit on construction, so
    ``Money('35', 'GBP') == Money('35.00', 'GBP')``. Arithmetic between two
    currencies raises CurrencyMismatchError instead of silently summing
    incompatible units.
    """
    amount: Decimal
    currency: str

    def __post_init__(self):
        currency = (self.currency or '').upper()
        if not _CURRENCY_RE.match(currency):
            raise ValueError(f"Invalid ISO 4217 currency code: {self.currency!r}")
        amount = to_decimal(self.amount)
        if not amount.is_finite():
            raise ValueError(f"Invalid monetary amount: {self.amount!r}")
        if amount < 0:
            raise ValueError("Amount cannot be negative")
        exponent = Decimal(1).scaleb(-MINOR_UNITS.get(currency, 2))
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, 'currency', currency)
        object.__setattr__(self, 'amount', amount.quantize(exponent, rounding=ROUND_HALF_UP))

    @classmethod
    def zero(cls, currency: str) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money'):
        if not isinstance(other, Money):
            raise TypeError("Can only combine Money with Money")
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor: Union[int, Decimal]) -> 'Money':
        """Multiply money by a whole quantity or a Decimal factor"""
        if isinstance(factor, bool) or not isinstance(factor, (int, Decimal)):
            raise TypeError("Can only multiply Money by int or Decimal")
        return Money(self.amount * factor, self.currency)

    __rmul__ = __mul__

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount <= other.amount

    def minus_floor_zero(self, other: 'Money') -> 'Money':
        """Subtract, clamping at zero (refund = paid - penalty)"""
        self._check_currency(other)
        return Money(max(self.amount - other.amount, Decimal('0')), self.currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def symbol(self) -> str:
        return CURRENCY_SYMBOLS.get(self.currency, self.currency)

    def format(self) -> str:
        """Display form, e.g. ``£70.00`` or ``CHF 70.00``"""
        symbol = CURRENCY_SYMBOLS.get(self.currency)
        if symbol:
            return f"{symbol}{self.amount:,}"
        return f"{self.currency} {self.amount:,}"

    def to_string(self) -> str:
        """Wire form of the amount: a plain decimal string"""
        return format(self.amount, 'f')

    def __str__(self):
        return f"{self.to_string()} {self.currency}"

    def __repr__(self):
        return f"Money('{self.to_string()}', '{self.currency}')"


_DURATION_RE = re.compile(
    r'^P(?:(?P<days>\d+)D)?'
    r'(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$'
)


@dataclass(frozen=True)
class IsoDuration(ValueObject):
    """
    ISO-8601 duration as used for flight and stop durations

    Only the day/time designators airlines emit are accepted
    (``P1DT2H``, ``PT8H30M``, ``PT45M``); years, months and weeks have no
    fixed length and are rejected.
    """
    raw: str

    def __post_init__(self):
        match = _DURATION_RE.match(self.raw or '')
        if not match or self.raw in ('P', 'PT') or self.raw.endswith('T'):
            raise ValueError(f"Invalid ISO-8601 duration: {self.raw!r}")

    @property
    def timedelta(self) -> timedelta:
        parts = _DURATION_RE.match(self.raw).groupdict()
        return timedelta(
            days=int(parts['days'] or 0),
            hours=int(parts['hours'] or 0),
            minutes=int(parts['minutes'] or 0),
            seconds=float(parts['seconds'] or 0),
        )

    @property
    def total_minutes(self) -> int:
        return int(self.timedelta.total_seconds() // 60)

    def humanize(self) -> str:
        """``PT8H30M`` -> ``8h 30m``"""
        hours, minutes = divmod(self.total_minutes, 60)
        if hours and minutes:
            return f"{hours}h {minutes}m"
        if hours:
            return f"{hours}h"
        return f"{minutes}m"

    def __str__(self):
        return self.raw
