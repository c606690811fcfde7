"""Celery maintenance tasks."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.test import override_settings

from apps.holds.domain.clock import FixedClock
from apps.holds.models import HoldOrderModel
from apps.holds.repositories import HoldOrderRepository
from apps.holds.tasks import expire_stale_holds, purge_terminal_holds
from apps.holds.tests.factories import NOW, make_order

pytestmark = pytest.mark.django_db


@pytest.fixture
def clock():
    clock = FixedClock(NOW)
    with patch("apps.holds.conf.get_clock", return_value=clock):
        yield clock


def store(order):
    HoldOrderRepository().save(order)
    return order


def test_expire_stale_holds(clock) -> None:
    order = store(make_order())
    clock.set(NOW + timedelta(hours=24, seconds=1))

    result = expire_stale_holds()

    assert result == {"expired": 1}
    assert HoldOrderModel.objects.get(pk=order.id).state == HoldOrderModel.State.EXPIRED


@override_settings(HOLD_ORDERS={"AUTO_CANCEL_ON_EXPIRY": False})
def test_expiry_sweep_can_be_disabled(clock) -> None:
    order = store(make_order())
    clock.set(NOW + timedelta(days=2))

    assert expire_stale_holds() == {"expired": 0}
    assert HoldOrderModel.objects.get(pk=order.id).state == HoldOrderModel.State.ACTIVE


def test_purge_terminal_holds(clock) -> None:
    cancelled = make_order()
    cancelled.cancel(NOW)
    store(cancelled)
    store(make_order(booking_reference="QWERTY"))
    clock.advance(days=31)

    assert purge_terminal_holds() == {"deleted": 1}
    assert list(HoldOrderModel.objects.values_list("booking_reference", flat=True)) == ["QWERTY"]
