"""
Fixtures for the core ticket tests.

Everything runs on the in-memory adapters with a frozen clock.
"""

from datetime import timedelta

import pytest

from src.adapters.django_app.events.publishers import InMemoryEventPublisher
from src.adapters.django_app.shared.unit_of_work import InMemoryUnitOfWork
from src.core.tickets.dtos import RequestTransitionInputDTO
from src.core.tickets.entities import DeviceType, TicketEntity
from src.core.tickets.escalation import EscalationMonitor, EscalationPolicy
from src.core.tickets.guards import GuardEvaluator
from src.core.tickets.history import StatusHistoryRecorder
from src.core.tickets.ports import (
    InMemoryAttachmentCounter,
    InMemoryEscalationRepository,
    InMemoryOtpService,
    InMemoryStatusHistoryRepository,
    InMemoryTicketRepository,
)
from src.core.tickets.use_cases import RequestTransitionService


@pytest.fixture
def ticket_repo():
    return InMemoryTicketRepository()


@pytest.fixture
def history_repo():
    return InMemoryStatusHistoryRepository()


@pytest.fixture
def escalation_repo():
    return InMemoryEscalationRepository()


@pytest.fixture
def attachments():
    return InMemoryAttachmentCounter()


@pytest.fixture
def otp_service(clock):
    return InMemoryOtpService(clock=clock)


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def uow(publisher):
    return InMemoryUnitOfWork(event_publisher=publisher)


@pytest.fixture
def recorder(history_repo, clock):
    return StatusHistoryRecorder(history_repo, clock=clock)


@pytest.fixture
def guards(attachments, otp_service, clock):
    return GuardEvaluator(attachments, otp_service, clock=clock)


@pytest.fixture
def policy():
    return EscalationPolicy(
        assignment_delay=timedelta(minutes=60),
        sla_grace=timedelta(minutes=30),
        stuck_state=timedelta(hours=48),
        repeat_failure_threshold=2,
    )


@pytest.fixture
def monitor(ticket_repo, recorder, escalation_repo, policy, publisher, clock):
    return EscalationMonitor(
        ticket_repo,
        recorder,
        escalation_repo,
        policy,
        event_publisher=publisher,
        clock=clock,
    )


@pytest.fixture
def transition_service(ticket_repo, recorder, guards, uow, monitor, clock):
    return RequestTransitionService(
        ticket_repo,
        recorder,
        guards,
        uow,
        escalation_monitor=monitor,
        clock=clock,
    )


@pytest.fixture
def new_ticket(ticket_repo, clock):
    """A NEW ticket stored in the repository."""
    ticket = TicketEntity.create(
        customer_name="Maria Souza",
        customer_phone="+905551112233",
        customer_address="Bagdat Cd. 10, Istanbul",
        device_type=DeviceType.FRIDGE,
        problem_description="Not cooling",
        created_at=clock(),
    )
    return ticket_repo.add(ticket)


@pytest.fixture
def walk(transition_service, payload_for, default_role, clock):
    """
    Moves a ticket through `statuses` with valid payloads.

    Advances the clock one minute before each step so history
    timestamps are strictly increasing.
    """

    def run(ticket_id: str, statuses, **role_overrides):
        result = None
        for status in statuses:
            clock.advance(minutes=1)
            result = transition_service.execute(RequestTransitionInputDTO(
                ticket_id=ticket_id,
                actor_id=f"{default_role(status)}-1",
                actor_role=role_overrides.get(status, default_role(status)),
                to_status=status,
                payload=payload_for(status),
            ))
        return result

    return run
