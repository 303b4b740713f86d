"""
Event Publishers - delivery of domain events.

Hand committed domain events to their handlers.
Implementations:
- LoggingEventPublisher: logs, optionally runs the handlers in-process
- CeleryEventPublisher: queues the Celery router task (production)
- InMemoryEventPublisher: collects events for tests

Logs always go through `DomainEvent.to_log_dict`, so OTP codes never
reach a log line.
"""

from typing import List
import json
import logging

from src.core.shared.events import DomainEvent
from src.core.shared.interfaces import EventPublisher

logger = logging.getLogger(__name__)


class LoggingEventPublisher(EventPublisher):
    """
    Publisher that logs events.

    Used in development and in "sync" mode: with `run_handlers` the
    Celery router task runs in-process (`Task.apply`), so notifications
    work without a broker.
    """

    def __init__(self, log_level: int = logging.INFO, run_handlers: bool = False):
        """
        Args:
            log_level: Level of the event log line
            run_handlers: Execute the event handlers synchronously
        """
        self._log_level = log_level
        self._run_handlers = run_handlers

    def publish(self, event: DomainEvent) -> None:
        logger.log(
            self._log_level,
            f"[EVENT] {event.event_type} | "
            f"aggregate={event.aggregate_id} | "
            f"data={json.dumps(event.to_log_dict()['data'], default=str)}"
        )

        if self._run_handlers:
            self._run_router(event)

    def _run_router(self, event: DomainEvent) -> None:
        from src.adapters.django_app.events.handlers import dispatch_domain_event

        try:
            dispatch_domain_event.apply(args=(event.event_type, event.to_dict()))
        except Exception:
            logger.error(f"In-process handler failed for {event.event_type}", exc_info=True)


class CeleryEventPublisher(EventPublisher):
    """
    Publisher that queues events on Celery.

    Used in production for asynchronous processing. A broker failure
    is logged and never breaks the committed operation.
    """

    def __init__(self, also_log: bool = True):
        self._also_log = also_log

    def publish(self, event: DomainEvent) -> None:
        if self._also_log:
            logger.info(
                f"[EVENT->CELERY] {event.event_type} | "
                f"aggregate={event.aggregate_id}"
            )

        try:
            from src.adapters.django_app.events.handlers import dispatch_domain_event
            dispatch_domain_event.delay(event.event_type, event.to_dict())
        except Exception:
            logger.error(f"Failed to queue {event.event_type} on Celery", exc_info=True)


class InMemoryEventPublisher(EventPublisher):
    """
    Publisher for tests.

    Keeps the published events for assertions.
    """

    def __init__(self):
        self._published_events: List[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self._published_events.append(event)

    @property
    def published_events(self) -> List[DomainEvent]:
        return self._published_events.copy()

    def get_events_by_type(self, event_type: str) -> List[DomainEvent]:
        return [e for e in self._published_events if e.event_type == event_type]


def get_event_publisher(mode: str = "sync") -> EventPublisher:
    """
    Publisher for the configured EVENT_PUBLISHER_MODE.

    Args:
        mode: "celery" queues on the broker, "sync" runs handlers
            in-process, "log" only logs

    Raises:
        ValueError: If the mode is unknown
    """
    mode = (mode or "sync").strip().lower()
    if mode == "celery":
        return CeleryEventPublisher()
    if mode == "sync":
        return LoggingEventPublisher(run_handlers=True)
    if mode == "log":
        return LoggingEventPublisher()
    raise ValueError(f"Unknown event publisher mode: {mode}")
