"""
Escalation Monitor - SLA and anomaly detection.

Runs after every committed transition (to catch pattern based
anomalies right away) and as a periodic sweep (to catch pure elapsed
time while nothing else happens).

Classification, per ticket, from its status and ordered history:
    L1 assignment_delay  in ASSIGNED longer than the assignment delay
    L1 sla_breach        slot start + grace passed, not yet on route
    L2 repeat_failure    re-entered DIAGNOSED/REPAIRING after NOT_FIXED,
                         at least `repeat_failure_threshold` times
    L3 stuck_state       any non-terminal status held beyond the ceiling

The monitor keeps at most one unresolved escalation per
(ticket, type) and resolves escalations whose condition cleared.
Failures never reach the transition that triggered an evaluation,
and one ticket's failure never aborts a sweep.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo
import logging

from src.core.shared.events import DomainEvent, utc_now
from src.core.shared.interfaces import EventPublisher

from .dtos import SweepReportDTO
from .entities import Escalation, EscalationType, StatusHistoryEntry, TicketEntity, TicketStatus
from .events import EscalationRaisedEvent, EscalationResolvedEvent
from .history import StatusHistoryRecorder, time_in_current_state
from .ports import Clock, EscalationRepository, TicketRepository

logger = logging.getLogger(__name__)


# Statuses in which the technician has not arrived at the visit yet
PRE_ARRIVAL_STATUSES = frozenset(
    {TicketStatus.NEW, TicketStatus.ASSIGNED, TicketStatus.SCHEDULED, TicketStatus.ON_ROUTE}
)

REWORK_STATUSES = frozenset({TicketStatus.DIAGNOSED, TicketStatus.REPAIRING})


@dataclass(frozen=True)
class EscalationPolicy:
    """
    Thresholds of the classification rules.

    No defaults: the values are deployment configuration.

    Attributes:
        assignment_delay: Max time in ASSIGNED (T1)
        sla_grace: Tolerance after the scheduled slot start
        stuck_state: Max time in any single non-terminal status
        repeat_failure_threshold: NOT_FIXED rework episodes that escalate
        tz: Service area time zone used to place slot start times
    """

    assignment_delay: timedelta
    sla_grace: timedelta
    stuck_state: timedelta
    repeat_failure_threshold: int
    tz: tzinfo = timezone.utc

    def __post_init__(self):
        for name in ("assignment_delay", "sla_grace", "stuck_state"):
            if getattr(self, name) < timedelta(0):
                raise ValueError(f"{name} must not be negative")
        if self.repeat_failure_threshold < 1:
            raise ValueError("repeat_failure_threshold must be at least 1")

    @classmethod
    def from_settings(cls, settings) -> "EscalationPolicy":
        """
        Builds the policy from a settings object.

        Reads ESCALATION_ASSIGNMENT_DELAY_MINUTES, ESCALATION_SLA_GRACE_MINUTES,
        ESCALATION_STUCK_STATE_HOURS, ESCALATION_REPEAT_FAILURE_THRESHOLD
        and TIME_ZONE.
        """
        return cls(
            assignment_delay=timedelta(minutes=int(settings.ESCALATION_ASSIGNMENT_DELAY_MINUTES)),
            sla_grace=timedelta(minutes=int(settings.ESCALATION_SLA_GRACE_MINUTES)),
            stuck_state=timedelta(hours=float(settings.ESCALATION_STUCK_STATE_HOURS)),
            repeat_failure_threshold=int(settings.ESCALATION_REPEAT_FAILURE_THRESHOLD),
            tz=ZoneInfo(getattr(settings, "TIME_ZONE", "UTC") or "UTC"),
        )


def count_rework_episodes(history: List[StatusHistoryEntry]) -> int:
    """
    Times the ticket came back to DIAGNOSED/REPAIRING after a NOT_FIXED.

    Each NOT_FIXED counts at most once, on the first rework entry
    that follows it.
    """
    episodes = 0
    pending_failure = False
    for entry in history:
        if entry.to_status == TicketStatus.NOT_FIXED:
            pending_failure = True
        elif pending_failure and entry.to_status in REWORK_STATUSES:
            episodes += 1
            pending_failure = False
    return episodes


class EscalationClassifier:
    """Pure classification of one ticket against the policy."""

    def __init__(self, policy: EscalationPolicy):
        self.policy = policy

    def classify(
        self,
        ticket: TicketEntity,
        history: List[StatusHistoryEntry],
        now: datetime,
    ) -> Dict[EscalationType, str]:
        """
        Conditions currently met, mapped to a human readable reason.

        Terminal tickets meet no condition.
        """
        if ticket.is_terminal:
            return {}

        active: Dict[EscalationType, str] = {}
        in_state = time_in_current_state(ticket, history, now)

        if ticket.status == TicketStatus.ASSIGNED and in_state > self.policy.assignment_delay:
            active[EscalationType.ASSIGNMENT_DELAY] = (
                f"Assigned for {_minutes(in_state)} min without scheduling "
                f"(limit {_minutes(self.policy.assignment_delay)} min)"
            )

        slot_start = ticket.slot_start(self.policy.tz)
        if (
            ticket.status in PRE_ARRIVAL_STATUSES
            and slot_start is not None
            and now > slot_start + self.policy.sla_grace
        ):
            active[EscalationType.SLA_BREACH] = (
                f"Slot started at {slot_start.isoformat()} and the technician "
                f"has not arrived (grace {_minutes(self.policy.sla_grace)} min)"
            )

        episodes = count_rework_episodes(history)
        if episodes >= self.policy.repeat_failure_threshold:
            active[EscalationType.REPEAT_FAILURE] = (
                f"Reworked {episodes} times after NOT_FIXED"
            )

        if in_state > self.policy.stuck_state:
            active[EscalationType.STUCK_STATE] = (
                f"In {ticket.status.value} for {_minutes(in_state)} min "
                f"(ceiling {_minutes(self.policy.stuck_state)} min)"
            )

        return active


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


@dataclass
class EvaluationOutcome:
    raised: List[Escalation] = field(default_factory=list)
    resolved: List[Escalation] = field(default_factory=list)


class EscalationMonitor:
    """
    Maintains Escalation records from the classifier's verdicts.

    Example:
        monitor = EscalationMonitor(ticket_repo, recorder, escalation_repo, policy)
        report = monitor.run_sweep(now)
    """

    def __init__(
        self,
        ticket_repo: TicketRepository,
        history_recorder: StatusHistoryRecorder,
        escalation_repo: EscalationRepository,
        policy: EscalationPolicy,
        event_publisher: Optional[EventPublisher] = None,
        clock: Clock = utc_now,
    ):
        self._ticket_repo = ticket_repo
        self._history = history_recorder
        self._escalation_repo = escalation_repo
        self._classifier = EscalationClassifier(policy)
        self._publisher = event_publisher
        self._clock = clock

    def evaluate(self, ticket: TicketEntity, now: Optional[datetime] = None) -> EvaluationOutcome:
        """
        Opens and resolves the escalations of one ticket.

        Idempotent: calling it again with nothing changed does nothing.
        """
        now = now or self._clock()
        history = self._history.get_history(ticket.id)
        active = self._classifier.classify(ticket, history, now)
        outcome = EvaluationOutcome()

        for escalation_type in EscalationType:
            current = self._escalation_repo.get_open(ticket.id, escalation_type)

            if escalation_type in active and current is None:
                escalation = Escalation(
                    ticket_id=ticket.id,
                    type=escalation_type,
                    reason=active[escalation_type],
                    created_at=now,
                )
                # add() refuses a duplicate opened concurrently
                if self._escalation_repo.add(escalation):
                    outcome.raised.append(escalation)
                    logger.info(
                        f"Escalation {escalation.level.value}/{escalation_type.value} "
                        f"raised for ticket {ticket.id}: {escalation.reason}"
                    )
                    self._publish(EscalationRaisedEvent(
                        aggregate_id=ticket.id,
                        escalation_id=escalation.id,
                        level=escalation.level.value,
                        escalation_type=escalation_type.value,
                        reason=escalation.reason,
                    ))

            elif escalation_type not in active and current is not None:
                current.resolve(now)
                self._escalation_repo.resolve(current)
                outcome.resolved.append(current)
                logger.info(
                    f"Escalation {current.level.value}/{escalation_type.value} "
                    f"resolved for ticket {ticket.id}"
                )
                self._publish(EscalationResolvedEvent(
                    aggregate_id=ticket.id,
                    escalation_id=current.id,
                    level=current.level.value,
                    escalation_type=escalation_type.value,
                ))

        return outcome

    def evaluate_ticket(self, ticket_id: str, now: Optional[datetime] = None) -> EvaluationOutcome:
        """Loads the ticket and evaluates it."""
        return self.evaluate(self._ticket_repo.load(ticket_id), now)

    def run_sweep(self, now: Optional[datetime] = None) -> SweepReportDTO:
        """
        Evaluates every active ticket plus every ticket that still has
        an open escalation (so terminal tickets get theirs resolved).

        Per-ticket failures are logged and counted, never raised.
        """
        now = now or self._clock()
        report = SweepReportDTO(ran_at=now)

        tickets = {ticket.id: ticket for ticket in self._ticket_repo.list_active()}
        pending_ids = {
            escalation.ticket_id
            for escalation in self._escalation_repo.list_open()
            if escalation.ticket_id not in tickets
        }

        for ticket_id in sorted(pending_ids):
            try:
                tickets[ticket_id] = self._ticket_repo.load(ticket_id)
            except Exception:
                logger.error(f"Sweep could not load ticket {ticket_id}", exc_info=True)
                report.failed += 1
                report.failed_ticket_ids.append(ticket_id)

        for ticket in tickets.values():
            try:
                outcome = self.evaluate(ticket, now)
            except Exception:
                logger.error(f"Sweep failed for ticket {ticket.id}", exc_info=True)
                report.failed += 1
                report.failed_ticket_ids.append(ticket.id)
                continue
            report.evaluated += 1
            report.raised += len(outcome.raised)
            report.resolved += len(outcome.resolved)

        logger.info(
            f"Escalation sweep at {now.isoformat()}: evaluated={report.evaluated} "
            f"raised={report.raised} resolved={report.resolved} failed={report.failed}"
        )
        return report

    def _publish(self, event: DomainEvent) -> None:
        if self._publisher is None:
            return
        try:
            self._publisher.publish(event)
        except Exception:
            logger.error(f"Failed to publish {event.event_type}", exc_info=True)
