"""
Unit of Work Pattern

Wraps a use case in one database transaction. Aggregates registered with
``uow.add()`` are saved when the block exits cleanly and their domain
events are handed to the message bus only after the commit succeeds.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

from django.db import transaction

from shared.domain.base import Aggregate, DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    def __init__(self):
        self._seen: List[Aggregate] = []
        self._events: List[DomainEvent] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    def add(self, aggregate: Aggregate):
        """Track an aggregate so it is saved and its events collected on commit"""
        if aggregate not in self._seen:
            self._seen.append(aggregate)

    def collect_events(self, aggregate: Aggregate):
        new_events = aggregate.events
        if new_events:
            self._events.extend(new_events)
            aggregate.clear_events()
            logger.debug(
                f"Collected {len(new_events)} events from "
                f"{aggregate.__class__.__name__} (ID: {aggregate.id})"
            )

    @abstractmethod
    def save(self, aggregate: Aggregate):
        """Persist one aggregate"""

    @abstractmethod
    def commit(self):
        """Save tracked aggregates and schedule event publishing"""

    @abstractmethod
    def rollback(self):
        """Discard tracked aggregates and their events"""


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork(holds=HoldOrderRepository()) as uow:
            order = uow.holds.get_by_id(order_id, lock=True)
            order.cancel(now)
            uow.add(order)
            # saved and committed here
        # events are published after commit

    The repository's ``save`` is a compare-and-set on the aggregate
    version, so a lost race raises inside the block and rolls back.
    """

    def __init__(self, holds=None, bus=None):
        super().__init__()
        self.holds = holds
        self._bus = bus
        self._transaction = None

    def __enter__(self):
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        except BaseException as exc:
            # A failed save must still unwind the atomic block with the error
            self._transaction.__exit__(type(exc), exc, exc.__traceback__)
            self._transaction = None
            raise
        finally:
            if self._transaction is not None:
                self._transaction.__exit__(exc_type, exc_val, exc_tb)
        return False

    def save(self, aggregate: Aggregate):
        if self.holds is None:
            raise RuntimeError("No repository configured for this unit of work")
        self.holds.save(aggregate)

    def commit(self):
        """
        Save tracked aggregates and publish their events

        Events are published using Django's transaction.on_commit()
        so they're only sent after the database commit succeeds.
        """
        for aggregate in self._seen:
            self.save(aggregate)
            self.collect_events(aggregate)
        self._seen.clear()

        logger.debug(f"Committing transaction with {len(self._events)} events")
        events = self._events.copy()
        self._events.clear()
        if events:
            transaction.on_commit(lambda: self._publish_events(events))

    def rollback(self):
        discarded = len(self._events) + sum(len(a.events) for a in self._seen)
        if discarded:
            logger.warning(f"Rolling back transaction, discarding {discarded} events")
        self._seen.clear()
        self._events.clear()

    def _publish_events(self, events: List[DomainEvent]):
        bus = self._bus
        if bus is None:
            from shared.application.message_bus import message_bus as bus

        logger.info(f"Publishing {len(events)} domain events after commit")
        bus.publish_events(events)

