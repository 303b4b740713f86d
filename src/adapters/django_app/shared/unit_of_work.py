"""
Unit of Work - Django implementation.

Runs several repository writes in one database transaction and
publishes the collected domain events once it committed.

Responsibilities:
- Open/close the transaction
- Coordinated commit/rollback
- Journal events in the Event Store before commit
- Publish events after a successful commit

Guarantees:
- Atomicity: ticket update and history entry land together or not at all
- Consistency: journaled and published events reflect committed state
- Nested use (e.g. inside a test transaction) becomes a savepoint
"""

from typing import List, Optional
import logging

from django.db import transaction

from src.core.shared.interfaces import EventPublisher, EventStore, UnitOfWork
from src.core.shared.events import DomainEvent

logger = logging.getLogger(__name__)


class DjangoUnitOfWork(UnitOfWork):
    """
    Django implementation of the Unit of Work.

    Wraps `django.db.transaction.atomic`. Events are journaled inside
    the transaction and published only after it committed.

    Example:
        with DjangoUnitOfWork(event_publisher, event_store) as uow:
            ticket_repo.save(ticket, expected_version=3)
            history_repo.append(entry)
            uow.publish_event(TicketStatusChangedEvent(...))
        # committed, then events published

    Example with rollback:
        with DjangoUnitOfWork() as uow:
            ticket_repo.save(ticket, expected_version=3)
            raise GuardViolationError("location", "required")
        # rolled back, events discarded
    """

    def __init__(
        self,
        event_publisher: Optional[EventPublisher] = None,
        event_store: Optional[EventStore] = None,
        using: Optional[str] = None,
    ):
        """
        Args:
            event_publisher: Post-commit delivery (Celery, logging...)
            event_store: Journal written inside the transaction
            using: Database alias; the default database when omitted
        """
        super().__init__()
        self._event_publisher = event_publisher
        self._event_store = event_store
        self._using = using
        self._atomic = None
        self._committed = False
        self._rolled_back = False

    def _begin_transaction(self) -> None:
        self._committed = False
        self._rolled_back = False
        self._atomic = transaction.atomic(using=self._using)
        self._atomic.__enter__()
        logger.debug("Transaction started")

    def commit(self) -> None:
        """
        Persists every change and publishes the events.

        Order:
        1. Journal events in the Event Store
        2. Commit the transaction
        3. Publish events to the handlers

        Raises:
            Exception: Re-raised when the commit itself fails
        """
        if self._atomic is None:
            logger.warning("Commit called outside of a transaction")
            return

        try:
            if self._event_store and self._events:
                self._persist_events()
        except Exception:
            logger.error("Event journaling failed, rolling back", exc_info=True)
            self.rollback()
            raise

        atomic, self._atomic = self._atomic, None
        try:
            atomic.__exit__(None, None, None)
        except Exception:
            logger.error("Commit failed", exc_info=True)
            self._rolled_back = True
            self.clear_events()
            raise

        self._committed = True
        logger.debug("Transaction committed")

        if self._events:
            self._publish_events()

    def rollback(self) -> None:
        """Undoes every change and discards the events."""
        if self._atomic is None:
            self.clear_events()
            return

        atomic, self._atomic = self._atomic, None
        try:
            transaction.set_rollback(True, using=self._using)
            atomic.__exit__(None, None, None)
            logger.debug("Transaction rolled back")
        finally:
            self._rolled_back = True
            self.clear_events()

    def _persist_events(self) -> None:
        for event in self._events:
            self._event_store.append(event)

    def _publish_events(self) -> None:
        """
        Hands the events to the publisher.

        Publication failures are logged, the committed state stands.
        """
        events, self._events = list(self._events), []
        for event in events:
            logger.debug(f"Publishing {event.event_type} for aggregate {event.aggregate_id}")
            if self._event_publisher is None:
                continue
            try:
                self._event_publisher.publish(event)
            except Exception:
                logger.error(f"Failed to publish {event.event_type}", exc_info=True)

    @property
    def is_committed(self) -> bool:
        return self._committed

    @property
    def is_rolled_back(self) -> bool:
        return self._rolled_back


class InMemoryUnitOfWork(UnitOfWork):
    """
    Unit of Work for unit tests.

    Persists nothing and rolls nothing back: in-memory repositories
    write immediately. It only reproduces the event semantics
    (published on commit, discarded on rollback).

    Example:
        uow = InMemoryUnitOfWork()
        with uow:
            uow.publish_event(event)

        assert uow.committed
        assert len(uow.published_events) == 1
    """

    def __init__(self, event_publisher: Optional[EventPublisher] = None):
        super().__init__()
        self._event_publisher = event_publisher
        self._committed = False
        self._rolled_back = False
        self._published_events: List[DomainEvent] = []

    def _begin_transaction(self) -> None:
        self._committed = False
        self._rolled_back = False

    def commit(self) -> None:
        self._committed = True
        events = list(self._events)
        self.clear_events()
        self._published_events.extend(events)
        if self._event_publisher:
            self._event_publisher.publish_batch(events)

    def rollback(self) -> None:
        self._rolled_back = True
        self.clear_events()

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def rolled_back(self) -> bool:
        return self._rolled_back

    @property
    def published_events(self) -> List[DomainEvent]:
        return self._published_events

    def reset(self) -> None:
        self._committed = False
        self._rolled_back = False
        self._published_events.clear()
        self.clear_events()
