"""
End-to-end tests over the production container.

Request → Use Case → Django repositories → sqlite, with the domain
events delivered in-process ("sync" publisher) to the Celery handlers.

Run with `pytest --run-integration`.
"""

import pytest
from dependency_injector import providers

from src.config.container import get_container
from src.core.shared.exceptions import GuardViolationError, OtpMismatchOrExpiredError
from src.core.tickets.dtos import (
    EscalationFilterDTO,
    IssueCompletionOtpInputDTO,
    OverrideStatusInputDTO,
    RequestTransitionInputDTO,
)
from src.core.tickets.entities import DeviceType, TicketEntity, TicketStatus
from src.core.tickets.ports import InMemoryNotifier
from src.core.tickets.state_machine import TicketStateMachine


pytestmark = [pytest.mark.integration, pytest.mark.django_db]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def container(clock):
    container = get_container()
    container.clock.override(providers.Object(clock))
    return container


@pytest.fixture
def notifier(container):
    notifier = InMemoryNotifier()
    container.notifier.override(providers.Object(notifier))
    return notifier


@pytest.fixture
def ticket(container, clock):
    return container.ticket_repository().add(TicketEntity.create(
        customer_name="Zeynep Kaya",
        customer_phone="+905554443322",
        customer_address="Halaskargazi Cd. 120, Istanbul",
        device_type=DeviceType.DISHWASHER,
        problem_description="Does not drain",
        created_at=clock(),
    ))


@pytest.fixture
def move(container, clock, payload_for, default_role):
    """Requests one transition through the production service."""

    def request(ticket_id, to_status, role=None, **payload):
        clock.advance(minutes=1)
        body = payload_for(to_status)
        body.update(payload)
        return container.services.request_transition_service().execute(
            RequestTransitionInputDTO(
                ticket_id=ticket_id,
                actor_id=f"{role or default_role(to_status)}-1",
                actor_role=role or default_role(to_status),
                to_status=to_status,
                payload=body,
            )
        )

    return request


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:

    def test_happy_path_with_signature(self, container, ticket, move, happy_path, notifier, clock):
        for status in happy_path:
            move(ticket.id, status)
        result = move(ticket.id, "completed")

        assert result.ticket.status == "completed"
        assert result.ticket.version == len(happy_path) + 1
        assert result.ticket.confirmation_type == "signature"
        assert result.ticket.completed_at == clock()

        history = container.services.get_history_service().execute(ticket.id)
        statuses = [TicketStatus.NEW] + [TicketStatus.from_string(h.to_status) for h in history]
        assert TicketStateMachine().is_valid_walk(statuses)
        assert [h.timestamp for h in history] == sorted(h.timestamp for h in history)

        kinds = [kind for _, kind, _ in notifier.sent]
        assert "technician_on_route" in kinds
        assert "repair_completed" in kinds

    def test_completion_with_otp(self, container, ticket, move, happy_path, notifier):
        for status in happy_path:
            move(ticket.id, status)

        issued = container.services.issue_completion_otp_service().execute(
            IssueCompletionOtpInputDTO(ticket_id=ticket.id, actor_id="tech-1", actor_role="technician")
        )
        sms = [payload for _, kind, payload in notifier.sent if kind == "completion_otp"]

        assert len(sms) == 1
        assert sms[0]["phone"] == "+905554443322"
        assert not hasattr(issued, "code")

        result = move(ticket.id, "completed", confirmation_type="otp", otp=sms[0]["code"], signature=None)

        assert result.ticket.status == "completed"
        assert result.ticket.confirmation_type == "otp"

    def test_wrong_otp_leaves_ticket_untouched(self, container, ticket, move, happy_path, notifier):
        for status in happy_path:
            move(ticket.id, status)
        container.services.issue_completion_otp_service().execute(
            IssueCompletionOtpInputDTO(ticket_id=ticket.id, actor_id="tech-1", actor_role="technician")
        )
        code = [p for _, k, p in notifier.sent if k == "completion_otp"][0]["code"]
        wrong = "0" * len(code) if code != "0" * len(code) else "1" * len(code)

        with pytest.raises(OtpMismatchOrExpiredError):
            move(ticket.id, "completed", confirmation_type="otp", otp=wrong, signature=None)

        current = container.services.get_ticket_service().execute(ticket.id)
        assert current.status == "repairing"
        assert current.version == len(happy_path)

    def test_guard_failure_is_not_recorded(self, container, ticket, move):
        move(ticket.id, "assigned")

        with pytest.raises(GuardViolationError):
            move(ticket.id, "scheduled", time_slot="midnight")

        assert len(container.services.get_history_service().execute(ticket.id)) == 1
        assert container.services.get_ticket_service().execute(ticket.id).status == "assigned"

    def test_allowed_transitions_follow_the_ticket(self, container, ticket, move):
        move(ticket.id, "assigned")

        allowed = container.services.get_allowed_transitions_service().execute(ticket.id, "dispatcher")

        assert {a.status for a in allowed} == {"scheduled", "cancelled"}

    def test_override_reopens_not_fixed(self, container, ticket, move, happy_path):
        for status in happy_path[:6]:
            move(ticket.id, status)
        move(ticket.id, "not_fixed")

        result = container.services.override_status_service().execute(OverrideStatusInputDTO(
            ticket_id=ticket.id,
            actor_id="admin-1",
            actor_role="admin",
            to_status="diagnosed",
            reason="Customer sourced the part themselves",
        ))

        assert result.ticket.status == "diagnosed"
        assert result.history_entry.is_override is True
        assert result.history_entry.notes == "Customer sourced the part themselves"


# =============================================================================
# Escalations
# =============================================================================

class TestEscalationSweep:

    def test_assignment_delay_is_raised_then_resolved(self, container, ticket, move, clock):
        move(ticket.id, "assigned")
        clock.advance(minutes=90)

        report = container.services.run_escalation_sweep_service().execute()

        assert report.raised == 1
        open_escalations = container.services.list_open_escalations_service().execute(
            EscalationFilterDTO(ticket_id=ticket.id)
        )
        assert [e.type for e in open_escalations] == ["assignment_delay"]
        assert open_escalations[0].level == "l1"

        # a second sweep does not duplicate it
        assert container.services.run_escalation_sweep_service().execute().raised == 0

        move(ticket.id, "scheduled")

        assert container.services.list_open_escalations_service().execute(
            EscalationFilterDTO(ticket_id=ticket.id)
        ) == []

    def test_beat_task_uses_the_container(self, container, ticket, move, clock):
        from src.adapters.django_app.events.handlers import run_escalation_sweep

        move(ticket.id, "assigned")
        clock.advance(hours=2)

        report = run_escalation_sweep.apply().get()

        assert report["raised"] == 1
        assert report["failed"] == 0
