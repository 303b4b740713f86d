"""
Event Handlers - processing of domain events.

Handlers run asynchronously on Celery once a domain event was
published after commit. The state machine core never calls a
transport directly; everything the outside world must hear about
goes through here.

Handler kinds:
- Notification: customer SMS, technician and dispatcher alerts
- Scheduled (beat): escalation sweep, cleanups

Pattern:
    @shared_task(bind=True, ...)
    def handle_<event>(self, event_data: dict) -> None:
        # process the event
"""

import logging
from datetime import timedelta
from typing import Any, Dict

from celery import shared_task

from src.core.shared.events import utc_now

logger = logging.getLogger(__name__)


# Notification sent when a ticket enters a status
STATUS_NOTIFICATIONS = {
    "assigned": "technician_assigned",
    "scheduled": "visit_scheduled",
    "on_route": "technician_on_route",
    "arrived": "technician_arrived",
    "waiting_parts": "waiting_for_parts",
    "pickup_device": "device_pickup",
    "ready_delivery": "device_ready",
    "completed": "repair_completed",
    "not_fixed": "ticket_not_fixed",
    "cancelled": "ticket_cancelled",
}


def _get_notifier():
    from src.config.container import get_container

    return get_container().notifier()


# =============================================================================
# Event Handlers - Tickets
# =============================================================================

@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    acks_late=True,
)
def handle_ticket_status_changed(self, event_data: Dict[str, Any]) -> None:
    """
    Handler for TicketStatusChangedEvent.

    Notifies the parties of the status entered. Overrides always
    produce a notification so staff see administrative corrections.
    """
    try:
        ticket_id = event_data.get("aggregate_id")
        data = event_data.get("data", {})
        to_status = data.get("to_status")

        logger.info(
            f"[HANDLER] TicketStatusChanged: {ticket_id} | "
            f"{data.get('from_status')} -> {to_status}"
        )

        if data.get("is_override"):
            event_kind = "status_overridden"
        else:
            event_kind = STATUS_NOTIFICATIONS.get(to_status)
        if event_kind is None:
            return

        _get_notifier().notify(
            ticket_id,
            event_kind,
            {
                "from_status": data.get("from_status"),
                "to_status": to_status,
                "actor_id": data.get("actor_id"),
                "actor_role": data.get("actor_role"),
                "notes": data.get("notes"),
            },
        )

    except Exception as e:
        logger.error(f"Error in TicketStatusChanged handler: {e}", exc_info=True)
        raise


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    acks_late=True,
)
def handle_completion_otp_issued(self, event_data: Dict[str, Any]) -> None:
    """
    Handler for CompletionOtpIssuedEvent.

    Sends the code to the customer's phone. The code is never logged.
    """
    try:
        ticket_id = event_data.get("aggregate_id")
        data = event_data.get("data", {})

        logger.info(f"[HANDLER] CompletionOtpIssued: {ticket_id}")

        _get_notifier().notify(
            ticket_id,
            "completion_otp",
            {
                "phone": data.get("customer_phone"),
                "code": data.get("code"),
                "expires_at": data.get("expires_at"),
            },
        )

    except Exception as e:
        logger.error(f"Error in CompletionOtpIssued handler: {e}", exc_info=True)
        raise


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    acks_late=True,
)
def handle_escalation_raised(self, event_data: Dict[str, Any]) -> None:
    """Handler for EscalationRaisedEvent: alerts the dispatch desk."""
    try:
        ticket_id = event_data.get("aggregate_id")
        data = event_data.get("data", {})

        logger.info(
            f"[HANDLER] EscalationRaised: {ticket_id} | "
            f"{data.get('level')}/{data.get('escalation_type')}"
        )

        _get_notifier().notify(ticket_id, "escalation_raised", dict(data))

    except Exception as e:
        logger.error(f"Error in EscalationRaised handler: {e}", exc_info=True)
        raise


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    acks_late=True,
)
def handle_escalation_resolved(self, event_data: Dict[str, Any]) -> None:
    try:
        ticket_id = event_data.get("aggregate_id")
        data = event_data.get("data", {})

        logger.info(
            f"[HANDLER] EscalationResolved: {ticket_id} | "
            f"{data.get('level')}/{data.get('escalation_type')}"
        )

        _get_notifier().notify(ticket_id, "escalation_resolved", dict(data))

    except Exception as e:
        logger.error(f"Error in EscalationResolved handler: {e}", exc_info=True)
        raise


# =============================================================================
# Event Dispatcher (Router)
# =============================================================================

EVENT_HANDLERS = {
    "TicketStatusChangedEvent": handle_ticket_status_changed,
    "CompletionOtpIssuedEvent": handle_completion_otp_issued,
    "EscalationRaisedEvent": handle_escalation_raised,
    "EscalationResolvedEvent": handle_escalation_resolved,
}


@shared_task(bind=True, max_retries=5, default_retry_delay=30)
def dispatch_domain_event(self, event_type: str, event_data: Dict[str, Any]) -> None:
    """
    Central router for domain events.

    Entry point of every published event. When the router itself runs
    eagerly (sync publisher mode) the handler runs in-process too.

    Args:
        event_type: Event class name (e.g. "TicketStatusChangedEvent")
        event_data: Serialized event (`DomainEvent.to_dict`)
    """
    handler = EVENT_HANDLERS.get(event_type)

    if handler is None:
        logger.warning(f"[DISPATCHER] No handler for {event_type}")
        return

    logger.info(f"[DISPATCHER] Routing {event_type}")
    if self.request.is_eager:
        handler.apply(args=(event_data,))
    else:
        handler.delay(event_data)


# =============================================================================
# Scheduled Tasks (Beat)
# =============================================================================

@shared_task(bind=True)
def run_escalation_sweep(self) -> Dict[str, Any]:
    """
    Evaluates every active ticket against the escalation rules.

    Runs every ESCALATION_SWEEP_INTERVAL_SECONDS on Celery Beat.

    Returns:
        The sweep report
    """
    logger.info("[SCHEDULED] Running escalation sweep...")

    try:
        from src.config.container import get_container

        container = get_container()
        report = container.services.run_escalation_sweep_service().execute()
        return report.to_dict()

    except Exception as e:
        logger.error(f"Escalation sweep failed: {e}", exc_info=True)
        return {}


@shared_task(bind=True)
def cleanup_resolved_escalations(self, days: int = 30) -> int:
    """
    Deletes escalations resolved more than `days` ago.

    Runs weekly on Celery Beat.

    Returns:
        Number of escalations removed
    """
    logger.info(f"[SCHEDULED] Removing escalations resolved more than {days} days ago...")

    try:
        from src.adapters.django_app.tickets.models import EscalationModel

        cutoff_date = utc_now() - timedelta(days=days)

        deleted, _ = EscalationModel.objects.filter(
            resolved=True,
            resolved_at__lt=cutoff_date,
        ).delete()

        logger.info(f"[SCHEDULED] {deleted} escalations removed")
        return deleted

    except Exception as e:
        logger.error(f"Error cleaning up escalations: {e}", exc_info=True)
        return 0


@shared_task(bind=True)
def cleanup_old_events(self, days: int = 90) -> int:
    """
    Deletes old entries of the event journal.

    Runs weekly on Celery Beat.

    Returns:
        Number of events removed
    """
    logger.info(f"[SCHEDULED] Removing events older than {days} days...")

    try:
        from src.adapters.django_app.tickets.models import DomainEventModel

        cutoff_date = utc_now() - timedelta(days=days)

        deleted, _ = DomainEventModel.objects.filter(
            occurred_at__lt=cutoff_date
        ).delete()

        logger.info(f"[SCHEDULED] {deleted} events removed")
        return deleted

    except Exception as e:
        logger.error(f"Error cleaning up events: {e}", exc_info=True)
        return 0
