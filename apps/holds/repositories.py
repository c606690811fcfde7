"""
Hold Order Repository

Maps HoldOrder aggregates to HoldOrderModel rows. Writes are a
compare-and-set on ``version``: an update that matches no row means
another writer got there first.
"""

from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import UUID
import logging

from django.core.exceptions import ValidationError  # type: ignore
from django.db import IntegrityError, transaction  # type: ignore
from django.db.models import F  # type: ignore

from shared.domain.value_objects import Money
from apps.holds.domain.conditions import Conditions
from apps.holds.domain.entities import HoldOrder, HoldState
from apps.holds.domain.exceptions import ConcurrentModificationError, HoldOrderNotFound
from apps.holds.infrastructure.mappers import (
    passenger_from_dict,
    passenger_to_dict,
    slice_from_dict,
    slice_to_dict,
)
from apps.holds.models import HoldOrderModel

logger = logging.getLogger(__name__)


def to_domain(row: HoldOrderModel) -> HoldOrder:
    currency = row.currency
    return HoldOrder(
        id=row.id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
        booking_reference=row.booking_reference,
        offer_id=row.offer_id,
        hold_expires_at=row.hold_expires_at,
        payment_required_by=row.payment_required_by,
        base_amount=Money(row.base_amount, currency),
        tax_amount=Money(row.tax_amount, currency),
        total_amount=Money(row.total_amount, currency),
        state=HoldState(row.state),
        passengers=[passenger_from_dict(data, index) for index, data in enumerate(row.passengers)],
        slices=[slice_from_dict(data) for data in row.slices],
        conditions=Conditions.from_dict(row.conditions),
        provider_order_id=row.provider_order_id or None,
        payment_reference=row.payment_reference or None,
        confirmed_booking_reference=row.confirmed_booking_reference or None,
        paid_at=row.paid_at,
        cancelled_at=row.cancelled_at,
        expired_at=row.expired_at,
    )


def to_row_values(order: HoldOrder) -> dict:
    return {
        "booking_reference": order.booking_reference,
        "offer_id": order.offer_id,
        "provider_order_id": order.provider_order_id or "",
        "state": order.state.value,
        "base_amount": order.base_amount.amount,
        "tax_amount": order.tax_amount.amount,
        "total_amount": order.total_amount.amount,
        "currency": order.currency,
        "hold_expires_at": order.hold_expires_at,
        "payment_required_by": order.payment_required_by,
        "passengers": [passenger_to_dict(p) for p in order.passengers],
        "slices": [slice_to_dict(s) for s in order.slices],
        "conditions": order.conditions.to_dict(),
        "payment_reference": order.payment_reference or "",
        "confirmed_booking_reference": order.confirmed_booking_reference or "",
        "paid_at": order.paid_at,
        "cancelled_at": order.cancelled_at,
        "expired_at": order.expired_at,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


class HoldOrderRepository:
    """Django ORM repository for HoldOrder aggregates"""

    def get_by_id(self, order_id: UUID, lock: bool = False) -> HoldOrder:
        """Load an order; ``lock=True`` takes a row lock until the transaction ends"""
        queryset = HoldOrderModel.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        try:
            row = queryset.get(pk=order_id)
        except (HoldOrderModel.DoesNotExist, ValidationError, ValueError):
            raise HoldOrderNotFound(f"Hold order {order_id} not found", hold_order_id=str(order_id))
        return to_domain(row)

    def save(self, order: HoldOrder):
        values = to_row_values(order)
        if order.version == 0:
            try:
                with transaction.atomic():
                    HoldOrderModel.objects.create(id=order.id, version=1, **values)
            except IntegrityError as exc:
                raise ConcurrentModificationError(
                    f"Hold order {order.id} already exists", hold_order_id=str(order.id)
                ) from exc
            order.version = 1
            logger.debug(f"Inserted hold order {order.booking_reference} (ID: {order.id})")
            return

        updated = HoldOrderModel.objects.filter(pk=order.id, version=order.version).update(
            version=F("version") + 1, **values
        )
        if updated == 0:
            raise ConcurrentModificationError(
                f"Hold order {order.booking_reference} was modified by another writer "
                f"(expected version {order.version})",
                hold_order_id=str(order.id),
            )
        order.version += 1
        logger.debug(f"Saved hold order {order.booking_reference} at version {order.version}")

    def find_overdue_ids(self, now: datetime, limit: int = 500) -> List[UUID]:
        """ACTIVE rows whose payment deadline has passed"""
        return list(
            HoldOrderModel.objects.filter(
                state=HoldOrderModel.State.ACTIVE,
                payment_required_by__lt=now,
            )
            .order_by("payment_required_by")
            .values_list("id", flat=True)[:limit]
        )

    def delete_terminal_before(self, cutoff: datetime) -> int:
        deleted, _ = HoldOrderModel.objects.filter(
            state__in=HoldOrderModel.TERMINAL_STATES,
            updated_at__lt=cutoff,
        ).delete()
        return deleted
