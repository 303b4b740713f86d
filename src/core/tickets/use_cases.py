"""
Use Cases (Application Services) of the ticket domain.

Orchestrate the domain components (state machine, guards, history,
escalation monitor) around repositories and the Unit of Work.

Use Cases:
- RequestTransitionService: moves a ticket along the lifecycle graph
- GetHistoryService: ordered transition log of a ticket
- ListOpenEscalationsService: unresolved escalations, filtered
- RunEscalationSweepService: periodic escalation evaluation
- GetAllowedTransitionsService: next actions offered to a role
- IssueCompletionOtpService: sends a completion code to the customer
- OverrideStatusService: administrative status correction
- GetTicketService: ticket detail

Principles:
- One Use Case = one business operation
- Injected dependencies, no infrastructure code
- Writes happen inside `with self.uow:`; events leave after commit
"""

from typing import Any, List, Mapping, Optional
from datetime import datetime
import logging

from src.core.shared.events import utc_now
from src.core.shared.exceptions import (
    BusinessRuleViolationError,
    DomainException,
    RoleNotPermittedError,
    ValidationError,
)
from src.core.shared.interfaces import UnitOfWork

from .dtos import (
    AllowedTransitionDTO,
    EscalationFilterDTO,
    EscalationOutputDTO,
    HistoryEntryDTO,
    IssueCompletionOtpInputDTO,
    OtpIssuedDTO,
    OverrideStatusInputDTO,
    RequestTransitionInputDTO,
    SweepReportDTO,
    TicketOutputDTO,
    TransitionResultDTO,
)
from .entities import ActorRole, Location, TicketEntity, TicketStatus
from .escalation import EscalationMonitor
from .events import CompletionOtpIssuedEvent, TicketStatusChangedEvent
from .guards import GuardEvaluator
from .history import StatusHistoryRecorder
from .ports import Clock, EscalationRepository, OtpService, TicketRepository
from .state_machine import TicketStateMachine

logger = logging.getLogger(__name__)


def _parse_status(value: str, field_name: str = "to_status") -> TicketStatus:
    try:
        return TicketStatus.from_string(value)
    except ValueError:
        raise ValidationError(f"Invalid status: {value}", field=field_name)


def _parse_role(value: str) -> ActorRole:
    try:
        return ActorRole.from_string(value)
    except ValueError:
        raise ValidationError(f"Invalid role: {value}", field="actor_role")


def _history_notes(payload: Mapping[str, Any]) -> Optional[str]:
    for key in ("notes", "reason", "diagnosis_notes", "repair_notes"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _reevaluate_escalations(
    monitor: Optional[EscalationMonitor],
    ticket: TicketEntity,
    now: datetime,
) -> None:
    """Post-commit escalation refresh. Never fails the caller."""
    if monitor is None:
        return
    try:
        monitor.evaluate(ticket, now)
    except Exception:
        logger.error(f"Escalation re-evaluation failed for ticket {ticket.id}", exc_info=True)


class RequestTransitionService:
    """
    Use Case: move a ticket to a new status.

    Flow:
    1. Load the ticket and remember its version
    2. Check the edge and the caller's role against the graph
    3. Run the target's guards, then OTP confirmation
    4. Apply the payload, save with optimistic lock, append history
    5. After commit: publish TicketStatusChangedEvent, refresh escalations

    Every failure raises exactly one typed error and leaves the ticket,
    its history and its escalations untouched.

    Example:
        service = RequestTransitionService(ticket_repo, recorder, guards, uow)
        result = service.execute(RequestTransitionInputDTO(
            ticket_id=ticket.id,
            actor_id="tech-7",
            actor_role="technician",
            to_status="on_route",
            payload={"location": {"latitude": 41.0, "longitude": 28.9}},
        ))
    """

    def __init__(
        self,
        ticket_repo: TicketRepository,
        history_recorder: StatusHistoryRecorder,
        guard_evaluator: GuardEvaluator,
        uow: UnitOfWork,
        escalation_monitor: Optional[EscalationMonitor] = None,
        state_machine: Optional[TicketStateMachine] = None,
        clock: Clock = utc_now,
    ):
        self.ticket_repo = ticket_repo
        self.history = history_recorder
        self.guards = guard_evaluator
        self.uow = uow
        self.escalation_monitor = escalation_monitor
        self.state_machine = state_machine or TicketStateMachine()
        self._clock = clock

    def execute(self, input_dto: RequestTransitionInputDTO) -> TransitionResultDTO:
        """
        Executes the transition in one atomic unit of work.

        Raises:
            ValidationError: Unknown status or role
            EntityNotFoundError: Ticket does not exist
            InvalidTransitionError: Edge not in the graph
            RoleNotPermittedError: Edge not allowed for the role
            GuardViolationError: A precondition of the target failed
            OtpMismatchOrExpiredError: OTP confirmation rejected
            ConcurrentModificationError: Ticket changed since it was loaded
            OperationTimeoutError: Persistence or OTP collaborator timed out
        """
        to_status = _parse_status(input_dto.to_status)
        actor_role = _parse_role(input_dto.actor_role)
        payload = dict(input_dto.payload or {})

        try:
            with self.uow:
                ticket = self.ticket_repo.load(input_dto.ticket_id)
                from_status = ticket.status
                expected_version = ticket.version

                self.state_machine.assert_transition(from_status, to_status, actor_role)
                self.guards.evaluate(ticket, to_status, payload)
                self.guards.confirm(ticket, to_status, payload)

                now = self._clock()
                ticket.enter_status(to_status, payload, now)
                saved = self.ticket_repo.save(ticket, expected_version)

                entry = self.history.record(
                    ticket_id=saved.id,
                    from_status=from_status,
                    to_status=to_status,
                    actor_id=input_dto.actor_id,
                    actor_role=actor_role,
                    notes=_history_notes(payload),
                    location=Location.from_payload(payload.get("location")),
                    at=now,
                )

                self.uow.publish_event(
                    TicketStatusChangedEvent(
                        aggregate_id=saved.id,
                        from_status=from_status.value,
                        to_status=to_status.value,
                        actor_id=input_dto.actor_id,
                        actor_role=actor_role.value,
                        ticket_version=saved.version,
                        notes=entry.notes,
                    )
                )
        except DomainException as e:
            logger.info(
                f"Transition rejected for ticket {input_dto.ticket_id} -> "
                f"{to_status.value} by {actor_role.value}: {e.code}"
            )
            raise

        logger.info(
            f"Ticket {saved.id} {from_status.value} -> {to_status.value} "
            f"by {actor_role.value} {input_dto.actor_id} (v{saved.version})"
        )
        _reevaluate_escalations(self.escalation_monitor, saved, now)

        return TransitionResultDTO(
            ticket=TicketOutputDTO.from_entity(saved),
            history_entry=HistoryEntryDTO.from_entry(entry),
        )


class GetHistoryService:
    """
    Use Case: transition log of a ticket, oldest first.

    Read only, no UoW.
    """

    def __init__(self, ticket_repo: TicketRepository, history_recorder: StatusHistoryRecorder):
        self.ticket_repo = ticket_repo
        self.history = history_recorder

    def execute(self, ticket_id: str) -> List[HistoryEntryDTO]:
        """
        Raises:
            EntityNotFoundError: If the ticket does not exist
        """
        self.ticket_repo.load(ticket_id)
        return [HistoryEntryDTO.from_entry(e) for e in self.history.get_history(ticket_id)]


class ListOpenEscalationsService:
    """Use Case: unresolved escalations, oldest first."""

    def __init__(self, escalation_repo: EscalationRepository):
        self.escalation_repo = escalation_repo

    def execute(self, filters: Optional[EscalationFilterDTO] = None) -> List[EscalationOutputDTO]:
        escalations = self.escalation_repo.list_open(filters or EscalationFilterDTO())
        return [EscalationOutputDTO.from_entity(e) for e in escalations]


class RunEscalationSweepService:
    """
    Use Case: evaluate every active ticket against the escalation rules.

    Triggered by Celery beat and by the sweep endpoint.
    """

    def __init__(self, escalation_monitor: EscalationMonitor, clock: Clock = utc_now):
        self.escalation_monitor = escalation_monitor
        self._clock = clock

    def execute(self, now: Optional[datetime] = None) -> SweepReportDTO:
        return self.escalation_monitor.run_sweep(now or self._clock())


class GetAllowedTransitionsService:
    """
    Use Case: next actions a role may take on a ticket.

    Reads the same graph the engine enforces. Guard readiness is
    computed speculatively against the optional draft payload.
    """

    def __init__(
        self,
        ticket_repo: TicketRepository,
        guard_evaluator: GuardEvaluator,
        state_machine: Optional[TicketStateMachine] = None,
    ):
        self.ticket_repo = ticket_repo
        self.guards = guard_evaluator
        self.state_machine = state_machine or TicketStateMachine()

    def execute(
        self,
        ticket_id: str,
        actor_role: str,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> List[AllowedTransitionDTO]:
        role = _parse_role(actor_role)
        ticket = self.ticket_repo.load(ticket_id)

        result = []
        for target in self.state_machine.allowed_targets(ticket.status, role):
            violation = self.guards.check(ticket, target, payload or {})
            result.append(AllowedTransitionDTO(
                status=target.value,
                ready=violation is None,
                field=violation.field if violation else None,
                reason=violation.reason if violation else None,
            ))
        return result


class IssueCompletionOtpService:
    """
    Use Case: issue a completion OTP for the customer.

    The code is handed to the SMS collaborator through
    CompletionOtpIssuedEvent; callers only get the expiry.
    """

    ISSUING_ROLES = frozenset({ActorRole.TECHNICIAN, ActorRole.ADMIN})
    COMPLETABLE_STATUSES = frozenset({TicketStatus.REPAIRING, TicketStatus.READY_DELIVERY})

    def __init__(self, ticket_repo: TicketRepository, otp_service: OtpService, uow: UnitOfWork):
        self.ticket_repo = ticket_repo
        self.otp_service = otp_service
        self.uow = uow

    def execute(self, input_dto: IssueCompletionOtpInputDTO) -> OtpIssuedDTO:
        """
        Raises:
            EntityNotFoundError: If the ticket does not exist
            RoleNotPermittedError: If the role may not complete tickets
            BusinessRuleViolationError: If the ticket cannot be completed yet
        """
        role = _parse_role(input_dto.actor_role)

        with self.uow:
            ticket = self.ticket_repo.load(input_dto.ticket_id)

            if role not in self.ISSUING_ROLES:
                raise RoleNotPermittedError(
                    ticket.status.value, TicketStatus.COMPLETED.value, role.value
                )
            if ticket.status not in self.COMPLETABLE_STATUSES:
                raise BusinessRuleViolationError(
                    f"Completion OTP cannot be issued in status {ticket.status.value}",
                    rule="otp_issuable_statuses",
                )

            code, expires_at = self.otp_service.issue_otp(ticket.id)

            self.uow.publish_event(
                CompletionOtpIssuedEvent(
                    aggregate_id=ticket.id,
                    code=code,
                    customer_phone=ticket.customer_phone,
                    expires_at=expires_at.isoformat(),
                )
            )

        logger.info(f"Completion OTP issued for ticket {ticket.id} by {input_dto.actor_id}")
        return OtpIssuedDTO(ticket_id=ticket.id, expires_at=expires_at)


class OverrideStatusService:
    """
    Use Case: administrative status correction.

    Bypasses the graph and the guards (e.g. reopening a NOT_FIXED
    ticket) but keeps optimistic locking and leaves an audit trail:
    the history entry is flagged `is_override` and carries the reason.
    """

    REASON_MIN_LENGTH = 10

    def __init__(
        self,
        ticket_repo: TicketRepository,
        history_recorder: StatusHistoryRecorder,
        uow: UnitOfWork,
        escalation_monitor: Optional[EscalationMonitor] = None,
        clock: Clock = utc_now,
    ):
        self.ticket_repo = ticket_repo
        self.history = history_recorder
        self.uow = uow
        self.escalation_monitor = escalation_monitor
        self._clock = clock

    def execute(self, input_dto: OverrideStatusInputDTO) -> TransitionResultDTO:
        """
        Raises:
            ValidationError: Unknown status, short reason or no-op target
            RoleNotPermittedError: Caller is not an administrator
            EntityNotFoundError: Ticket does not exist
            ConcurrentModificationError: Ticket changed since it was loaded
        """
        to_status = _parse_status(input_dto.to_status)
        role = _parse_role(input_dto.actor_role)
        reason = (input_dto.reason or "").strip()

        with self.uow:
            ticket = self.ticket_repo.load(input_dto.ticket_id)
            from_status = ticket.status
            expected_version = ticket.version

            if role != ActorRole.ADMIN:
                raise RoleNotPermittedError(from_status.value, to_status.value, role.value)
            if len(reason) < self.REASON_MIN_LENGTH:
                raise ValidationError(
                    f"Override reason must have at least {self.REASON_MIN_LENGTH} characters",
                    field="reason",
                )
            if to_status == from_status:
                raise ValidationError(
                    f"Ticket is already {to_status.value}", field="to_status"
                )

            now = self._clock()
            ticket.force_status(to_status, now)
            saved = self.ticket_repo.save(ticket, expected_version)

            entry = self.history.record(
                ticket_id=saved.id,
                from_status=from_status,
                to_status=to_status,
                actor_id=input_dto.actor_id,
                actor_role=role,
                notes=reason,
                is_override=True,
                at=now,
            )

            self.uow.publish_event(
                TicketStatusChangedEvent(
                    aggregate_id=saved.id,
                    from_status=from_status.value,
                    to_status=to_status.value,
                    actor_id=input_dto.actor_id,
                    actor_role=role.value,
                    ticket_version=saved.version,
                    is_override=True,
                    notes=reason,
                )
            )

        logger.warning(
            f"Ticket {saved.id} overridden {from_status.value} -> {to_status.value} "
            f"by {input_dto.actor_id}: {reason}"
        )
        _reevaluate_escalations(self.escalation_monitor, saved, now)

        return TransitionResultDTO(
            ticket=TicketOutputDTO.from_entity(saved),
            history_entry=HistoryEntryDTO.from_entry(entry),
        )


class GetTicketService:
    """Use Case: ticket detail."""

    def __init__(self, ticket_repo: TicketRepository):
        self.ticket_repo = ticket_repo

    def execute(self, ticket_id: str) -> TicketOutputDTO:
        """
        Raises:
            EntityNotFoundError: If the ticket does not exist
        """
        return TicketOutputDTO.from_entity(self.ticket_repo.load(ticket_id))
