"""
Data Transfer Objects (DTOs) of the ticket domain.

Plain structures that carry data between layers so entities never
leak out of the core.

Kinds:
- Input DTOs: requests coming from the API or from tasks
- Output DTOs: snapshots returned to callers, JSON friendly
- Filter DTOs: query parameters
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from .entities import (
    Escalation,
    EscalationLevel,
    EscalationType,
    StatusHistoryEntry,
    TicketEntity,
)


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# =============================================================================
# INPUT DTOs
# =============================================================================

@dataclass(frozen=True)
class RequestTransitionInputDTO:
    """
    Input for requesting a status transition.

    Attributes:
        ticket_id: Ticket to move
        actor_id: Who is acting
        actor_role: Role name (e.g. "technician")
        to_status: Target status name (e.g. "on_route")
        payload: Request data checked by the guards (location, photos,
            notes, confirmation, reasons...)
    """

    ticket_id: str
    actor_id: str
    actor_role: str
    to_status: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "ticket_id": self.ticket_id,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "to_status": self.to_status,
            "payload": dict(self.payload),
        }


@dataclass(frozen=True)
class OverrideStatusInputDTO:
    """
    Input for an administrative status correction.

    Attributes:
        reason: Mandatory justification recorded in the history
    """

    ticket_id: str
    actor_id: str
    actor_role: str
    to_status: str
    reason: str

    def to_dict(self) -> dict:
        return {
            "ticket_id": self.ticket_id,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "to_status": self.to_status,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class IssueCompletionOtpInputDTO:
    ticket_id: str
    actor_id: str
    actor_role: str


@dataclass(frozen=True)
class EscalationFilterDTO:
    """
    Filter for open escalation listings. Empty fields match anything.

    Attributes:
        ticket_id: Only this ticket
        level: Only this level ("l1", "l2", "l3")
        type: Only this type ("sla_breach", ...)
    """

    ticket_id: Optional[str] = None
    level: Optional[EscalationLevel] = None
    type: Optional[EscalationType] = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "EscalationFilterDTO":
        """
        Builds a filter from query string style parameters.

        Raises:
            ValueError: If level or type is unknown
        """
        level = params.get("level") or None
        escalation_type = params.get("type") or None
        return cls(
            ticket_id=params.get("ticket_id") or None,
            level=EscalationLevel.from_string(level) if level else None,
            type=EscalationType.from_string(escalation_type) if escalation_type else None,
        )

    def matches(self, escalation: Escalation) -> bool:
        if self.ticket_id and escalation.ticket_id != self.ticket_id:
            return False
        if self.level and escalation.level != self.level:
            return False
        if self.type and escalation.type != self.type:
            return False
        return True


# =============================================================================
# OUTPUT DTOs
# =============================================================================

@dataclass
class TicketOutputDTO:
    """
    Full snapshot of a ticket.

    Enum fields are exposed by value ("on_route") and dates as ISO
    strings in `to_dict`.
    """

    id: str
    ticket_number: str
    status: str
    priority: str
    device_type: str
    problem_description: str
    customer_name: str
    customer_phone: str
    customer_address: str
    technician_id: Optional[str]
    scheduled_date: Optional[date]
    scheduled_slot: Optional[str]
    diagnosis_notes: Optional[str]
    repair_notes: Optional[str]
    not_fixed_reasons: List[str]
    pickup_reason: Optional[str]
    cancellation_reason: Optional[str]
    confirmation_type: Optional[str]
    warranty_status: str
    warranty_expires_at: Optional[date]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]
    closed_at: Optional[datetime]
    version: int
    is_terminal: bool

    @classmethod
    def from_entity(cls, entity: TicketEntity) -> "TicketOutputDTO":
        return cls(
            id=entity.id,
            ticket_number=entity.ticket_number,
            status=entity.status.value,
            priority=entity.priority.value,
            device_type=entity.device_type.value,
            problem_description=entity.problem_description,
            customer_name=entity.customer_name,
            customer_phone=entity.customer_phone,
            customer_address=entity.customer_address,
            technician_id=entity.technician_id,
            scheduled_date=entity.scheduled_date,
            scheduled_slot=entity.scheduled_slot.value if entity.scheduled_slot else None,
            diagnosis_notes=entity.diagnosis_notes,
            repair_notes=entity.repair_notes,
            not_fixed_reasons=list(entity.not_fixed_reasons),
            pickup_reason=entity.pickup_reason,
            cancellation_reason=entity.cancellation_reason,
            confirmation_type=entity.confirmation_type.value if entity.confirmation_type else None,
            warranty_status=entity.warranty_status.value,
            warranty_expires_at=entity.warranty_expires_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            completed_at=entity.completed_at,
            closed_at=entity.closed_at,
            version=entity.version,
            is_terminal=entity.is_terminal,
        )

    def to_dict(self) -> dict:
        """JSON ready dictionary."""
        return {
            "id": self.id,
            "ticket_number": self.ticket_number,
            "status": self.status,
            "priority": self.priority,
            "device_type": self.device_type,
            "problem_description": self.problem_description,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "technician_id": self.technician_id,
            "scheduled_date": _iso(self.scheduled_date),
            "scheduled_slot": self.scheduled_slot,
            "diagnosis_notes": self.diagnosis_notes,
            "repair_notes": self.repair_notes,
            "not_fixed_reasons": list(self.not_fixed_reasons),
            "pickup_reason": self.pickup_reason,
            "cancellation_reason": self.cancellation_reason,
            "confirmation_type": self.confirmation_type,
            "warranty_status": self.warranty_status,
            "warranty_expires_at": _iso(self.warranty_expires_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "completed_at": _iso(self.completed_at),
            "closed_at": _iso(self.closed_at),
            "version": self.version,
            "is_terminal": self.is_terminal,
        }


@dataclass
class HistoryEntryDTO:
    id: str
    ticket_id: str
    from_status: Optional[str]
    to_status: str
    actor_id: str
    actor_role: str
    timestamp: datetime
    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_override: bool = False

    @classmethod
    def from_entry(cls, entry: StatusHistoryEntry) -> "HistoryEntryDTO":
        return cls(
            id=entry.id,
            ticket_id=entry.ticket_id,
            from_status=entry.from_status.value if entry.from_status else None,
            to_status=entry.to_status.value,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role.value,
            timestamp=entry.timestamp,
            notes=entry.notes,
            latitude=entry.latitude,
            longitude=entry.longitude,
            is_override=entry.is_override,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "timestamp": _iso(self.timestamp),
            "notes": self.notes,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "is_override": self.is_override,
        }


@dataclass
class TransitionResultDTO:
    """
    Successful outcome of a transition request.

    Attributes:
        ticket: Snapshot after the commit (new status and version)
        history_entry: The entry appended for this transition
    """

    ticket: TicketOutputDTO
    history_entry: HistoryEntryDTO

    @property
    def from_status(self) -> Optional[str]:
        return self.history_entry.from_status

    @property
    def to_status(self) -> str:
        return self.history_entry.to_status

    def to_dict(self) -> dict:
        return {
            "ticket": self.ticket.to_dict(),
            "history_entry": self.history_entry.to_dict(),
        }


@dataclass
class EscalationOutputDTO:
    id: str
    ticket_id: str
    level: str
    type: str
    reason: str
    created_at: datetime
    resolved: bool
    resolved_at: Optional[datetime]

    @classmethod
    def from_entity(cls, escalation: Escalation) -> "EscalationOutputDTO":
        return cls(
            id=escalation.id,
            ticket_id=escalation.ticket_id,
            level=escalation.level.value,
            type=escalation.type.value,
            reason=escalation.reason,
            created_at=escalation.created_at,
            resolved=escalation.resolved,
            resolved_at=escalation.resolved_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "level": self.level,
            "type": self.type,
            "reason": self.reason,
            "created_at": _iso(self.created_at),
            "resolved": self.resolved,
            "resolved_at": _iso(self.resolved_at),
        }


@dataclass
class AllowedTransitionDTO:
    """
    One entry of the "next allowed actions" list.

    Attributes:
        status: Reachable target status
        ready: True when the supplied payload already satisfies its guards
        field/reason: First failing guard when not ready
    """

    status: str
    ready: bool
    field: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "ready": self.ready,
            "field": self.field,
            "reason": self.reason,
        }


@dataclass
class OtpIssuedDTO:
    """Issuance receipt. The code itself travels only to the SMS collaborator."""

    ticket_id: str
    expires_at: datetime

    def to_dict(self) -> dict:
        return {"ticket_id": self.ticket_id, "expires_at": _iso(self.expires_at)}


@dataclass
class SweepReportDTO:
    """Counters of one escalation sweep."""

    ran_at: datetime
    evaluated: int = 0
    raised: int = 0
    resolved: int = 0
    failed: int = 0
    failed_ticket_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ran_at": _iso(self.ran_at),
            "evaluated": self.evaluated,
            "raised": self.raised,
            "resolved": self.resolved,
            "failed": self.failed,
            "failed_ticket_ids": list(self.failed_ticket_ids),
        }
