"""
Ticket domain - field service appliance repair lifecycle.

Contains the business logic of repair tickets:
- Entities (TicketEntity, TicketStatus, StatusHistoryEntry, Escalation)
- Lifecycle graph (TicketStateMachine) and guards (GuardEvaluator)
- Escalation Monitor (SLA and anomaly detection)
- Use Cases (RequestTransition, GetHistory, ListOpenEscalations, ...)
- Domain Events (TicketStatusChanged, EscalationRaised, ...)
- DTOs and Ports

Domain characteristics:
- Every status change goes through one graph and one guard table
- Optimistic locking on the ticket version
- History is append-only and drives the escalation timers
- Side effects leave the core as events, after commit
"""

from .entities import (
    ActorRole,
    Escalation,
    EscalationLevel,
    EscalationType,
    StatusHistoryEntry,
    TicketEntity,
    TicketPriority,
    TicketStatus,
)
from .events import (
    CompletionOtpIssuedEvent,
    EscalationRaisedEvent,
    EscalationResolvedEvent,
    TicketStatusChangedEvent,
)
from .dtos import (
    EscalationFilterDTO,
    OverrideStatusInputDTO,
    RequestTransitionInputDTO,
    TicketOutputDTO,
    TransitionResultDTO,
)
from .ports import TicketRepository, StatusHistoryRepository, EscalationRepository
from .state_machine import TicketStateMachine
from .guards import GuardEvaluator
from .history import StatusHistoryRecorder
from .escalation import EscalationMonitor, EscalationPolicy
from .use_cases import (
    RequestTransitionService,
    GetHistoryService,
    ListOpenEscalationsService,
    RunEscalationSweepService,
    GetAllowedTransitionsService,
    IssueCompletionOtpService,
    OverrideStatusService,
    GetTicketService,
)

__all__ = [
    # Entities
    "ActorRole",
    "Escalation",
    "EscalationLevel",
    "EscalationType",
    "StatusHistoryEntry",
    "TicketEntity",
    "TicketPriority",
    "TicketStatus",
    # Events
    "CompletionOtpIssuedEvent",
    "EscalationRaisedEvent",
    "EscalationResolvedEvent",
    "TicketStatusChangedEvent",
    # DTOs
    "EscalationFilterDTO",
    "OverrideStatusInputDTO",
    "RequestTransitionInputDTO",
    "TicketOutputDTO",
    "TransitionResultDTO",
    # Ports
    "TicketRepository",
    "StatusHistoryRepository",
    "EscalationRepository",
    # Components
    "TicketStateMachine",
    "GuardEvaluator",
    "StatusHistoryRecorder",
    "EscalationMonitor",
    "EscalationPolicy",
    # Use Cases
    "RequestTransitionService",
    "GetHistoryService",
    "ListOpenEscalationsService",
    "RunEscalationSweepService",
    "GetAllowedTransitionsService",
    "IssueCompletionOtpService",
    "OverrideStatusService",
    "GetTicketService",
]
