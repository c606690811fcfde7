"""Event publishing through the unit of work and message bus."""

from __future__ import annotations

import pytest

from shared.application.message_bus import MessageBus, message_bus
from shared.application.uow import DjangoUnitOfWork
from apps.holds.application import event_handlers
from apps.holds.domain.events import HoldOrderCancelled, HoldOrderCreated
from apps.holds.models import HoldOrderModel
from apps.holds.repositories import HoldOrderRepository
from apps.holds.tests.factories import NOW, make_order

pytestmark = pytest.mark.django_db


def test_app_handlers_are_subscribed() -> None:
    assert event_handlers.on_hold_created in message_bus.handlers_for(HoldOrderCreated)
    assert event_handlers.on_hold_released in message_bus.handlers_for(HoldOrderCancelled)


def test_events_are_published_after_commit(django_capture_on_commit_callbacks) -> None:
    bus = MessageBus()
    received = []
    bus.subscribe(HoldOrderCreated, HoldOrderCancelled)(received.append)
    order = make_order()
    order.cancel(NOW)

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        with DjangoUnitOfWork(holds=HoldOrderRepository(), bus=bus) as uow:
            uow.add(order)
        assert received == []

    assert len(callbacks) == 1
    assert [type(e) for e in received] == [HoldOrderCreated, HoldOrderCancelled]
    assert order.events == []


def test_failing_handler_does_not_stop_the_others() -> None:
    bus = MessageBus()
    received = []

    def broken(event):
        raise RuntimeError("notification channel down")

    bus.subscribe(HoldOrderCreated)(broken)
    bus.subscribe(HoldOrderCreated)(received.append)

    bus.publish_events(make_order().events)

    assert len(received) == 1


def test_rollback_discards_changes_and_events(django_capture_on_commit_callbacks) -> None:
    bus = MessageBus()
    received = []
    bus.subscribe(HoldOrderCreated)(received.append)

    with django_capture_on_commit_callbacks(execute=True):
        with pytest.raises(RuntimeError):
            with DjangoUnitOfWork(holds=HoldOrderRepository(), bus=bus) as uow:
                uow.add(make_order())
                raise RuntimeError("provider call failed")

    assert received == []
    assert HoldOrderModel.objects.count() == 0
