"""
Domain events of the ticket domain.

Events:
- TicketStatusChangedEvent: a transition (or override) was committed
- CompletionOtpIssuedEvent: a completion code must reach the customer
- EscalationRaisedEvent: an anomaly was flagged
- EscalationResolvedEvent: a flagged anomaly cleared

Usage:
    Services queue events on the Unit of Work; they are published
    only after the commit succeeded.

    with uow:
        ticket_repo.save(ticket, expected_version)
        uow.publish_event(TicketStatusChangedEvent(...))
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Tuple

from src.core.shared.events import DomainEvent


@dataclass
class TicketStatusChangedEvent(DomainEvent):
    """
    A ticket entered a new status.

    Typical handlers:
    - Notify the customer (technician on the way, repair completed...)
    - Notify the dispatcher on NOT_FIXED / CANCELLED

    Attributes:
        from_status/to_status: Edge taken
        actor_id/actor_role: Who acted
        ticket_version: Version after the commit
        is_override: True for administrative corrections
    """

    from_status: str = ""
    to_status: str = ""
    actor_id: str = ""
    actor_role: str = ""
    ticket_version: int = 0
    is_override: bool = False
    notes: Optional[str] = None

    @property
    def aggregate_type(self) -> str:
        return "Ticket"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "ticket_version": self.ticket_version,
            "is_override": self.is_override,
            "notes": self.notes,
        }


@dataclass
class CompletionOtpIssuedEvent(DomainEvent):
    """
    A completion OTP was issued.

    Carries the code for the SMS collaborator only; publishers must
    never log `code`.
    """

    sensitive_fields: ClassVar[Tuple[str, ...]] = ("code",)

    code: str = field(default="", repr=False)
    customer_phone: str = ""
    expires_at: str = ""

    @property
    def aggregate_type(self) -> str:
        return "Ticket"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "customer_phone": self.customer_phone,
            "expires_at": self.expires_at,
        }


@dataclass
class EscalationRaisedEvent(DomainEvent):
    """An escalation was opened for the ticket."""

    escalation_id: str = ""
    level: str = ""
    escalation_type: str = ""
    reason: str = ""

    @property
    def aggregate_type(self) -> str:
        return "Ticket"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            "escalation_id": self.escalation_id,
            "level": self.level,
            "escalation_type": self.escalation_type,
            "reason": self.reason,
        }


@dataclass
class EscalationResolvedEvent(DomainEvent):
    """An open escalation was resolved automatically."""

    escalation_id: str = ""
    level: str = ""
    escalation_type: str = ""

    @property
    def aggregate_type(self) -> str:
        return "Ticket"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            "escalation_id": self.escalation_id,
            "level": self.level,
            "escalation_type": self.escalation_type,
        }

