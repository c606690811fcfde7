"""Money and duration value objects."""

from __future__ import annotations

from decimal import Decimal

import pytest

from shared.domain.exceptions import CurrencyMismatchError
from shared.domain.value_objects import IsoDuration, Money


def test_fare_components_add_up_exactly() -> None:
    base = Money("248.50", "GBP")
    tax = Money("69.70", "GBP")

    assert base + tax == Money("318.20", "GBP")
    assert (base + tax).to_string() == "318.20"


def test_amounts_are_quantized_to_the_minor_unit() -> None:
    assert Money("35", "GBP") == Money("35.00", "GBP")
    assert Money("1500", "JPY").to_string() == "1500"
    assert Money("1.2345", "KWD").to_string() == "1.235"


def test_float_amounts_are_rejected() -> None:
    with pytest.raises(TypeError):
        Money(0.1, "GBP")


@pytest.mark.parametrize("amount", ["-1.00", "abc", "NaN"])
def test_invalid_amounts_are_rejected(amount: str) -> None:
    with pytest.raises(ValueError):
        Money(amount, "GBP")


def test_currency_code_is_normalised_and_validated() -> None:
    assert Money("1.00", "gbp").currency == "GBP"
    with pytest.raises(ValueError):
        Money("1.00", "POUND")


def test_mixing_currencies_raises() -> None:
    with pytest.raises(CurrencyMismatchError) as excinfo:
        Money("1.00", "GBP") + Money("1.00", "EUR")
    assert excinfo.value.code == "currency_mismatch"


def test_multiplication_by_quantity() -> None:
    assert Money("35.00", "GBP") * 2 == Money("70.00", "GBP")
    assert 3 * Money("0.10", "USD") == Money("0.30", "USD")
    with pytest.raises(TypeError):
        Money("35.00", "GBP") * 1.5


def test_minus_floor_zero_never_goes_negative() -> None:
    total = Money("50.00", "GBP")
    assert total.minus_floor_zero(Money("75.00", "GBP")).is_zero
    assert total.minus_floor_zero(Money("20.00", "GBP")) == Money("30.00", "GBP")


def test_display_formatting() -> None:
    assert Money("70", "GBP").format() == "£70.00"
    assert Money("1234.5", "USD").format() == "$1,234.50"
    assert Money("70", "CHF").format() == "CHF 70.00"
    assert str(Money("70", "GBP")) == "70.00 GBP"


def test_zero_and_positive_checks_use_decimals() -> None:
    assert Money("0.00", "GBP").is_zero
    assert Money("0.01", "GBP").is_positive
    assert Money.zero("GBP").amount == Decimal("0.00")


def test_iso_duration_parsing() -> None:
    duration = IsoDuration("PT8H30M")

    assert duration.total_minutes == 510
    assert duration.humanize() == "8h 30m"
    assert IsoDuration("P1DT2H").humanize() == "26h"
    assert IsoDuration("PT45M").humanize() == "45m"
    assert str(duration) == "PT8H30M"


@pytest.mark.parametrize("raw", ["", "P", "PT", "P1M", "8H30M"])
def test_invalid_iso_durations(raw: str) -> None:
    with pytest.raises(ValueError):
        IsoDuration(raw)
