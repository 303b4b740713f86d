"""
Interfaces (Ports) - contracts between the core and the adapters.

Driven ports implemented by adapters:
- UnitOfWork: atomic commit of several repository writes
- EventPublisher: post-commit delivery of domain events
- EventStore: append-only journal of domain events

The core defines the interfaces; adapters implement them and the
dependency always points at the core.
"""

from abc import ABC, abstractmethod
from typing import List

from .events import DomainEvent


class UnitOfWork(ABC):
    """
    Unit of Work - coordinates an atomic transaction.

    Every write made inside the `with` block is committed together or
    not at all. Events queued with `publish_event` are delivered only
    after a successful commit and discarded on rollback.

    Pattern: Context Manager
        with uow:
            ticket_repo.save(ticket, expected_version=3)
            history_repo.append(entry)
            uow.publish_event(event)
        # commit on clean exit, rollback on exception
    """

    def __init__(self):
        self._events: List[DomainEvent] = []

    def __enter__(self) -> "UnitOfWork":
        self._begin_transaction()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()
        return False

    @abstractmethod
    def _begin_transaction(self) -> None:
        """Opens the underlying transaction."""
        raise NotImplementedError

    @abstractmethod
    def commit(self) -> None:
        """
        Persists every change, then publishes queued events.

        Note:
            Events are published only after the commit succeeded.
            A failed commit discards them.
        """
        raise NotImplementedError

    @abstractmethod
    def rollback(self) -> None:
        """Undoes every change and discards queued events."""
        raise NotImplementedError

    def publish_event(self, event: DomainEvent) -> None:
        """
        Queues an event for publication after commit.

        Args:
            event: Domain event to publish
        """
        self._events.append(event)

    def collect_events(self) -> List[DomainEvent]:
        """Pending events (for tests and debugging)."""
        return list(self._events)

    def clear_events(self) -> None:
        self._events.clear()


class EventPublisher(ABC):
    """
    Delivers domain events to their consumers.

    Publishing is fire-and-forget: implementations log delivery
    failures instead of raising them back into the committed operation.
    """

    @abstractmethod
    def publish(self, event: DomainEvent) -> None:
        """
        Publishes a single event.

        Args:
            event: Domain event to publish
        """
        raise NotImplementedError

    def publish_batch(self, events: List[DomainEvent]) -> None:
        """Publishes several events in order."""
        for event in events:
            self.publish(event)


class EventStore(ABC):
    """
    Append-only journal of domain events.

    Written inside the same transaction as the state change the event
    describes, so the journal never records a rolled back change.
    """

    @abstractmethod
    def append(self, event: DomainEvent, sequence: int = 0) -> None:
        """
        Appends an event to the journal.

        Args:
            event: Event to persist
            sequence: Position of the event within its aggregate
        """
        raise NotImplementedError

    @abstractmethod
    def get_events_for_aggregate(
        self,
        aggregate_id: str,
        since_sequence: int = 0,
    ) -> List[dict]:
        """
        Events recorded for an aggregate, ordered by sequence.

        Args:
            aggregate_id: Aggregate id
            since_sequence: First sequence to return
        """
        raise NotImplementedError
