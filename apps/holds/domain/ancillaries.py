"""
Baggage and other ancillary fees

Line items are unit price times quantity. Everything added to one order
must settle in one currency; the first line fixes it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from shared.domain.exceptions import CurrencyMismatchError
from shared.domain.value_objects import AmountLike, Money


class ServiceType(Enum):
    CHECKED = 'checked'
    CARRY_ON = 'carry_on'
    SEAT = 'seat'


_UNIT_NAMES = {
    ServiceType.CHECKED: ('bag', 'bags'),
    ServiceType.CARRY_ON: ('bag', 'bags'),
    ServiceType.SEAT: ('seat', 'seats'),
}


@dataclass(frozen=True)
class AncillaryLine:
    unit_price: Money
    quantity: int
    total: Money
    service_type: ServiceType = ServiceType.CHECKED

    @property
    def currency(self) -> str:
        return self.total.currency

    def describe(self) -> str:
        """``2 bags × £35.00 = £70.00``"""
        singular, plural = _UNIT_NAMES[self.service_type]
        unit = singular if self.quantity == 1 else plural
        return f"{self.quantity} {unit} × {self.unit_price.format()} = {self.total.format()}"


def sum_ancillary(
    unit_price: AmountLike,
    currency: str,
    quantity: int,
    service_type: ServiceType = ServiceType.CHECKED,
) -> AncillaryLine:
    """Price one ancillary selection: ``sum_ancillary("35.00", "GBP", 2)`` is £70.00"""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValueError(f"Quantity must be a non-negative integer, got {quantity!r}")
    unit = Money(unit_price, currency)
    return AncillaryLine(unit_price=unit, quantity=quantity, total=unit * quantity, service_type=service_type)


@dataclass(frozen=True)
class AncillaryService:
    """A purchasable service offered alongside a flight"""
    id: str
    service_type: ServiceType
    price: Money
    maximum_quantity: int
    passenger_ids: tuple = ()
    segment_ids: tuple = ()
    maximum_weight_kg: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'AncillaryService':
        metadata = data.get('metadata') or {}
        return cls(
            id=data['id'],
            service_type=ServiceType(metadata.get('type') or data.get('type')),
            price=Money(data['total_amount'], data['total_currency']),
            maximum_quantity=int(data.get('maximum_quantity', 1)),
            passenger_ids=tuple(data.get('passenger_ids') or ()),
            segment_ids=tuple(data.get('segment_ids') or ()),
            maximum_weight_kg=metadata.get('maximum_weight_kg'),
        )


@dataclass
class AncillaryBasket:
    """
    Ancillary selections for a single order

    ``settlement_currency`` is fixed either up front (the order currency) or
    by the first line added.
    """
    settlement_currency: Optional[str] = None
    _lines: Dict[str, AncillaryLine] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        if self.settlement_currency:
            self.settlement_currency = self.settlement_currency.upper()

    def select(self, service: AncillaryService, quantity: int) -> Optional[AncillaryLine]:
        """Set the quantity for ``service``; zero removes it"""
        if quantity > service.maximum_quantity:
            raise ValueError(
                f"At most {service.maximum_quantity} of service {service.id} can be selected"
            )
        if quantity == 0:
            self._lines.pop(service.id, None)
            return None
        line = sum_ancillary(service.price.amount, service.price.currency, quantity, service.service_type)
        self.add(service.id, line)
        return line

    def add(self, key: str, line: AncillaryLine):
        if self.settlement_currency is None:
            self.settlement_currency = line.currency
        elif line.currency != self.settlement_currency:
            raise CurrencyMismatchError(self.settlement_currency, line.currency)
        self._lines[key] = line

    @property
    def lines(self) -> List[AncillaryLine]:
        return list(self._lines.values())

    @property
    def quantity(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def total(self) -> Money:
        if self.settlement_currency is None:
            raise ValueError("Empty basket has no settlement currency")
        result = Money.zero(self.settlement_currency)
        for line in self._lines.values():
            result = result + line.total
        return result


def sum_ancillaries(lines: List[AncillaryLine], settlement_currency: Optional[str] = None) -> Money:
    """Total a list of lines, refusing to mix currencies"""
    basket = AncillaryBasket(settlement_currency=settlement_currency)
    for index, line in enumerate(lines):
        basket.add(str(index), line)
    return basket.total()
