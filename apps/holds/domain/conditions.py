"""
Fare Condition Evaluator

Turns airline fare rules into display classifications and penalty quotes.

A rule that is *absent* (the airline did not say) is modelled as ``None``
and is distinct from a rule that is present but disallowed; both end up
``NOT_AVAILABLE`` but with different labels. Amounts are ``Money`` and are
compared as Decimals, so a ``"0.00"`` penalty is exactly zero.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

from shared.domain.base import ValueObject
from shared.domain.value_objects import Money
from apps.holds.domain.deadlines import is_before
from apps.holds.domain.exceptions import QuoteExpiredError
from apps.holds.domain.policies import (
    CancellationPolicy,
    ChangePolicy,
    FreeCancellationScope,
    RefundMethod,
)

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from apps.holds.domain.entities import HoldOrder


class ConditionAction(Enum):
    CHANGE = 'change'
    REFUND = 'refund'


class Classification(Enum):
    INCLUDED = 'included'
    FEE_APPLIES = 'fee_applies'
    NOT_AVAILABLE = 'not_available'


@dataclass(frozen=True)
class FareCondition(ValueObject):
    """
    One airline rule: is the action allowed, and for what penalty

    A disallowed rule never carries a penalty; one passed in is dropped.
    """
    allowed: bool
    penalty: Optional[Money] = None

    def __post_init__(self):
        if not self.allowed and self.penalty is not None:
            object.__setattr__(self, 'penalty', None)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional['FareCondition']:
        """
        Build from the provider shape
        ``{"allowed": bool, "penalty_amount": "75.00", "penalty_currency": "GBP"}``

        ``None`` stays ``None`` (absent rule).
        """
        if data is None:
            return None
        allowed = bool(data.get('allowed'))
        amount = data.get('penalty_amount')
        currency = data.get('penalty_currency')
        penalty = None
        if allowed and amount not in (None, '') and currency:
            penalty = Money(amount, currency)
        return cls(allowed=allowed, penalty=penalty)

    def to_dict(self) -> dict:
        data = {'allowed': self.allowed}
        if self.penalty is not None:
            data['penalty_amount'] = self.penalty.to_string()
            data['penalty_currency'] = self.penalty.currency
        return data

    @property
    def has_fee(self) -> bool:
        return self.allowed and self.penalty is not None and self.penalty.is_positive


@dataclass(frozen=True)
class Conditions(ValueObject):
    """Order-level rules covering change and refund"""
    change_before_departure: Optional[FareCondition] = None
    refund_before_departure: Optional[FareCondition] = None
    refund_after_departure: Optional[FareCondition] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'Conditions':
        data = data or {}
        return cls(
            change_before_departure=FareCondition.from_dict(data.get('change_before_departure')),
            refund_before_departure=FareCondition.from_dict(data.get('refund_before_departure')),
            refund_after_departure=FareCondition.from_dict(data.get('refund_after_departure')),
        )

    def to_dict(self) -> dict:
        return {
            name: getattr(self, name).to_dict()
            for name in ('change_before_departure', 'refund_before_departure', 'refund_after_departure')
            if getattr(self, name) is not None
        }


@dataclass(frozen=True)
class SliceConditions(ValueObject):
    """Slice-level rules; airlines only publish change rules per slice"""
    change_before_departure: Optional[FareCondition] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'SliceConditions':
        data = data or {}
        return cls(change_before_departure=FareCondition.from_dict(data.get('change_before_departure')))

    def to_dict(self) -> dict:
        if self.change_before_departure is None:
            return {}
        return {'change_before_departure': self.change_before_departure.to_dict()}


@dataclass(frozen=True)
class ConditionStatus:
    """What the fare card shows for one rule"""
    classification: Classification
    label: str
    fee: Optional[Money] = None

    def to_dict(self) -> dict:
        return {
            'status': self.classification.value,
            'label': self.label,
            'fee_amount': self.fee.to_string() if self.fee else None,
            'fee_currency': self.fee.currency if self.fee else None,
        }


_LABELS = {
    ConditionAction.CHANGE: ('Changeable', 'Not changeable'),
    ConditionAction.REFUND: ('Refundable', 'Not refundable'),
}


def classify(
    condition: Optional[FareCondition],
    action: ConditionAction = ConditionAction.CHANGE,
) -> ConditionStatus:
    """
    Classify a rule for display

    - absent -> NOT_AVAILABLE, "Not available"
    - disallowed -> NOT_AVAILABLE, "Not changeable" / "Not refundable"
    - allowed with a penalty above zero -> FEE_APPLIES,
      "Changeable (GBP75.00 fee)"
    - allowed with no penalty, or a penalty of exactly zero -> INCLUDED,
      "Fully Changeable" / "Fully Refundable"
    """
    allowed_word, disallowed_label = _LABELS[action]
    if condition is None:
        return ConditionStatus(Classification.NOT_AVAILABLE, 'Not available')
    if not condition.allowed:
        return ConditionStatus(Classification.NOT_AVAILABLE, disallowed_label)
    if condition.has_fee:
        penalty = condition.penalty
        return ConditionStatus(
            Classification.FEE_APPLIES,
            f"{allowed_word} ({penalty.currency}{penalty.to_string()} fee)",
            fee=penalty,
        )
    return ConditionStatus(Classification.INCLUDED, f"Fully {allowed_word}")


# ===== Quotes =====

@dataclass(frozen=True)
class ExternalChangeQuote:
    """Change quote as returned by the provider's quote API"""
    id: str
    change_total: Money
    new_total: Money
    expires_at: datetime
    penalty_total: Optional[Money] = None


@dataclass(frozen=True)
class ExternalCancellationQuote:
    """Cancellation quote as returned by the provider's quote API"""
    id: str
    refund_amount: Money
    refund_method: RefundMethod
    expires_at: datetime
    confirmed_at: Optional[datetime] = None


def ensure_quote_valid(expires_at: Optional[datetime], now: datetime):
    """A quote is authoritative only up to its own expiry"""
    if expires_at is not None and now > expires_at:
        raise QuoteExpiredError(
            f"Quote expired at {expires_at.isoformat()}",
            expires_at=expires_at.isoformat(),
        )


@dataclass(frozen=True)
class ChangeQuote:
    slice_id: str
    permitted: bool
    status: ConditionStatus
    fee: Optional[Money] = None
    source: str = 'order'
    reason: str = ''
    external: Optional[ExternalChangeQuote] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        return self.external.expires_at if self.external else None


@dataclass(frozen=True)
class CancellationQuote:
    permitted: bool
    before_departure: bool
    penalty: Optional[Money] = None
    refund_amount: Optional[Money] = None
    refund_method: Optional[RefundMethod] = None
    free_cancellation: bool = False
    processing_time_days: Optional[int] = None
    reason: str = ''
    external: Optional[ExternalCancellationQuote] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        return self.external.expires_at if self.external else None


def _not_permitted_change(slice_id, status, source, reason) -> ChangeQuote:
    return ChangeQuote(slice_id=slice_id, permitted=False, status=status, source=source, reason=reason)


def compute_change_quote(
    order: 'HoldOrder',
    slice_id: str,
    *,
    now: Optional[datetime] = None,
    policy: ChangePolicy = ChangePolicy(),
    external: Optional[ExternalChangeQuote] = None,
) -> ChangeQuote:
    """
    Fee for changing one slice before departure

    The slice's own ``change_before_departure`` rule wins whenever it is
    present, even if the order-level rule is more permissive. When ``now``
    is given, changes at or after ``departure - cutoff`` are refused.
    """
    itinerary_slice = order.get_slice(slice_id)
    slice_rule = itinerary_slice.conditions.change_before_departure
    if slice_rule is not None:
        rule, source = slice_rule, 'slice'
    else:
        rule, source = order.conditions.change_before_departure, 'order'

    status = classify(rule, ConditionAction.CHANGE)

    if external is not None:
        if now is None:
            raise ValueError("now is required to evaluate an external quote")
        ensure_quote_valid(external.expires_at, now)

    if now is not None:
        cutoff = itinerary_slice.departing_at - timedelta(hours=policy.cutoff_hours_before_departure)
        if not is_before(now, cutoff):
            reason = 'departed' if not is_before(now, itinerary_slice.departing_at) else 'inside change cut-off'
            return _not_permitted_change(slice_id, status, source, reason)

    if status.classification is Classification.NOT_AVAILABLE:
        return _not_permitted_change(slice_id, status, source, status.label)

    fee = rule.penalty if rule.penalty is not None else Money.zero(order.currency)
    if external is not None and external.penalty_total is not None:
        fee = external.penalty_total
    return ChangeQuote(
        slice_id=slice_id,
        permitted=True,
        status=status,
        fee=fee,
        source=source,
        external=external,
    )


def compute_cancellation_quote(
    order: 'HoldOrder',
    now: datetime,
    departure_time: Optional[datetime] = None,
    *,
    policy: CancellationPolicy = CancellationPolicy(),
    external: Optional[ExternalCancellationQuote] = None,
) -> CancellationQuote:
    """
    Penalty and refund for cancelling a paid booking

    Uses ``refund_before_departure`` while ``now < departure_time`` and
    ``refund_after_departure`` afterwards. An external quote past its
    expiry is refused outright, whatever state the order is in.
    """
    if external is not None:
        ensure_quote_valid(external.expires_at, now)

    departure_time = departure_time or order.first_departure
    before_departure = is_before(now, departure_time)
    rule = (
        order.conditions.refund_before_departure
        if before_departure
        else order.conditions.refund_after_departure
    )
    refund_method = external.refund_method if external is not None else policy.refund_method

    free = before_departure and policy.within_free_window(order.created_at, now)
    if free and (
        policy.free_cancellation_scope is FreeCancellationScope.ALL_FARES
        or (rule is not None and rule.allowed)
    ):
        return CancellationQuote(
            permitted=True,
            before_departure=True,
            penalty=Money.zero(order.currency),
            refund_amount=external.refund_amount if external else order.total_amount,
            refund_method=refund_method,
            free_cancellation=True,
            processing_time_days=policy.processing_time_days,
            external=external,
        )

    if rule is None or not rule.allowed:
        return CancellationQuote(
            permitted=False,
            before_departure=before_departure,
            reason=classify(rule, ConditionAction.REFUND).label,
        )

    penalty = rule.penalty if rule.penalty is not None else Money.zero(order.currency)
    refund_amount = order.total_amount.minus_floor_zero(penalty)
    if external is not None:
        refund_amount = external.refund_amount
    return CancellationQuote(
        permitted=True,
        before_departure=before_departure,
        penalty=penalty,
        refund_amount=refund_amount,
        refund_method=refund_method,
        processing_time_days=policy.processing_time_days,
        external=external,
    )


# ===== Refund timelines (stays) =====

class RefundType(Enum):
    FULL = 'full'
    PARTIAL = 'partial'
    NONE = 'none'


@dataclass(frozen=True)
class RefundTimelineEntry:
    """Cancel before ``before`` to receive ``refund``"""
    before: datetime
    refund: Money


def classify_refund(refund: Optional[Money], total: Money) -> RefundType:
    if refund is None or refund.is_zero:
        return RefundType.NONE
    if refund == total:
        return RefundType.FULL
    return RefundType.PARTIAL


def refund_at(timeline: Sequence[RefundTimelineEntry], now: datetime) -> Optional[Money]:
    """Refund available at ``now``: the earliest deadline not yet passed, else none"""
    for entry in sorted(timeline, key=lambda e: e.before):
        if is_before(now, entry.before):
            return entry.refund
    return None
