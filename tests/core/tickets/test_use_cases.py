"""
Unit tests for the ticket use cases.

Test strategy:
- In-memory repositories and Unit of Work for isolation
- Frozen clock so timestamps are deterministic
- Published events checked through InMemoryEventPublisher
- Failure cases must leave ticket, history and escalations untouched

Coverage:
- RequestTransitionService
- GetHistoryService
- ListOpenEscalationsService
- RunEscalationSweepService
- GetAllowedTransitionsService
- IssueCompletionOtpService
- OverrideStatusService
- GetTicketService
"""

import threading
from datetime import timedelta
from unittest.mock import Mock

import pytest

from src.adapters.django_app.shared.unit_of_work import InMemoryUnitOfWork
from src.core.shared.exceptions import (
    BusinessRuleViolationError,
    ConcurrentModificationError,
    EntityNotFoundError,
    GuardViolationError,
    InvalidTransitionError,
    OtpMismatchOrExpiredError,
    RoleNotPermittedError,
    ValidationError,
)
from src.core.tickets.dtos import (
    EscalationFilterDTO,
    IssueCompletionOtpInputDTO,
    OverrideStatusInputDTO,
    RequestTransitionInputDTO,
)
from src.core.tickets.entities import AttachmentType, TicketStatus
from src.core.tickets.guards import GuardEvaluator
from src.core.tickets.state_machine import TicketStateMachine
from src.core.tickets.use_cases import (
    GetAllowedTransitionsService,
    GetHistoryService,
    GetTicketService,
    IssueCompletionOtpService,
    ListOpenEscalationsService,
    OverrideStatusService,
    RequestTransitionService,
    RunEscalationSweepService,
)


def request(ticket_id, to_status, role, payload=None, actor_id="actor-1"):
    return RequestTransitionInputDTO(
        ticket_id=ticket_id,
        actor_id=actor_id,
        actor_role=role,
        to_status=to_status,
        payload=payload or {},
    )


@pytest.fixture
def history_service(ticket_repo, recorder):
    return GetHistoryService(ticket_repo, recorder)


@pytest.fixture
def otp_issuer(ticket_repo, otp_service, uow):
    return IssueCompletionOtpService(ticket_repo, otp_service, uow)


@pytest.fixture
def override_service(ticket_repo, recorder, uow, monitor, clock):
    return OverrideStatusService(ticket_repo, recorder, uow, escalation_monitor=monitor, clock=clock)


@pytest.fixture
def repairing_ticket(new_ticket, walk, happy_path):
    walk(new_ticket.id, happy_path)
    return new_ticket


def issue_otp(otp_issuer, publisher, ticket_id):
    otp_issuer.execute(IssueCompletionOtpInputDTO(ticket_id, "tech-1", "technician"))
    return publisher.get_events_by_type("CompletionOtpIssuedEvent")[-1].code


# =============================================================================
# RequestTransitionService
# =============================================================================

class TestRequestTransitionService:

    def test_assign(self, transition_service, new_ticket, clock, uow, publisher):
        result = transition_service.execute(
            request(new_ticket.id, "assigned", "dispatcher", {"technician_id": "tech-7"})
        )

        assert result.from_status == "new"
        assert result.to_status == "assigned"
        assert result.ticket.technician_id == "tech-7"
        assert result.ticket.version == 1
        assert result.history_entry.timestamp == clock()
        assert uow.committed

        events = publisher.get_events_by_type("TicketStatusChangedEvent")
        assert len(events) == 1
        assert events[0].aggregate_id == new_ticket.id
        assert events[0].ticket_version == 1

    def test_assign_with_integer_technician_id(self, transition_service, new_ticket):
        result = transition_service.execute(
            request(new_ticket.id, "assigned", "dispatcher", {"technician_id": 7})
        )

        assert result.ticket.status == "assigned"
        assert result.ticket.technician_id == "7"

    def test_happy_path_history(self, repairing_ticket, history_service, happy_path, ticket_repo):
        entries = history_service.execute(repairing_ticket.id)

        assert [e.to_status for e in entries] == happy_path
        assert ticket_repo.load(repairing_ticket.id).version == len(happy_path)

        walk_statuses = [TicketStatus(entries[0].from_status)] + [TicketStatus(e.to_status) for e in entries]
        assert TicketStateMachine().is_valid_walk(walk_statuses)

        timestamps = [e.timestamp for e in entries]
        assert timestamps == sorted(timestamps)
        assert len(set(timestamps)) == len(timestamps)

    def test_history_keeps_location_and_notes(self, new_ticket, walk, history_service):
        walk(new_ticket.id, ["assigned", "scheduled", "on_route"])

        on_route = history_service.execute(new_ticket.id)[-1]

        assert on_route.latitude == pytest.approx(41.0082)
        assert on_route.actor_role == "technician"

    def test_complete_with_signature(self, repairing_ticket, walk, ticket_repo):
        result = walk(repairing_ticket.id, ["completed"])

        assert result.ticket.status == "completed"
        assert result.ticket.confirmation_type == "signature"
        assert result.ticket.is_terminal
        assert ticket_repo.list_active() == []

    def test_pickup_branch(self, new_ticket, walk):
        walk(new_ticket.id, ["assigned", "scheduled", "on_route", "arrived", "inspecting", "diagnosed"])

        result = walk(new_ticket.id, ["pickup_device", "in_workshop", "ready_delivery", "completed"])

        assert result.from_status == "ready_delivery"
        assert result.ticket.status == "completed"

    def test_unknown_status(self, transition_service, new_ticket):
        with pytest.raises(ValidationError) as exc_info:
            transition_service.execute(request(new_ticket.id, "teleported", "admin"))

        assert exc_info.value.field == "to_status"

    def test_unknown_role(self, transition_service, new_ticket):
        with pytest.raises(ValidationError) as exc_info:
            transition_service.execute(request(new_ticket.id, "assigned", "intern"))

        assert exc_info.value.field == "actor_role"

    def test_unknown_ticket(self, transition_service):
        with pytest.raises(EntityNotFoundError):
            transition_service.execute(request("missing", "assigned", "dispatcher", {"technician_id": "t"}))

    def test_skipping_a_stage_is_rejected(self, transition_service, new_ticket, ticket_repo, history_service, uow):
        with pytest.raises(InvalidTransitionError):
            transition_service.execute(request(new_ticket.id, "on_route", "technician"))

        assert ticket_repo.load(new_ticket.id).version == 0
        assert history_service.execute(new_ticket.id) == []
        assert uow.rolled_back

    def test_role_not_permitted(self, transition_service, new_ticket, walk, ticket_repo):
        walk(new_ticket.id, ["assigned", "scheduled", "on_route"])

        with pytest.raises(RoleNotPermittedError):
            transition_service.execute(
                request(new_ticket.id, "arrived", "dispatcher", {"location": {"latitude": 1.0, "longitude": 2.0}})
            )

        assert ticket_repo.load(new_ticket.id).status == TicketStatus.ON_ROUTE

    def test_guard_failure_changes_nothing(self, transition_service, new_ticket, ticket_repo, publisher):
        with pytest.raises(GuardViolationError) as exc_info:
            transition_service.execute(request(new_ticket.id, "assigned", "dispatcher", {}))

        assert exc_info.value.field == "technician_id"
        stored = ticket_repo.load(new_ticket.id)
        assert stored.status == TicketStatus.NEW
        assert stored.technician_id is None
        assert publisher.published_events == []

    def test_inspecting_needs_before_inspection_evidence(
        self, transition_service, new_ticket, walk, attachments, payload_for
    ):
        walk(new_ticket.id, ["assigned", "scheduled", "on_route", "arrived"])

        with pytest.raises(GuardViolationError) as exc_info:
            transition_service.execute(request(new_ticket.id, "inspecting", "technician", {}))
        assert exc_info.value.field == "attachments"

        attachments.add(new_ticket.id, AttachmentType.BEFORE_INSPECTION)
        result = transition_service.execute(
            request(new_ticket.id, "inspecting", "technician", payload_for("inspecting"))
        )
        assert result.to_status == "inspecting"

    def test_completion_needs_three_attachments(
        self, transition_service, repairing_ticket, attachments, payload_for, ticket_repo
    ):
        payload = payload_for("completed", photos=[])
        attachments.add(repairing_ticket.id, AttachmentType.AFTER_REPAIR, count=2)

        with pytest.raises(GuardViolationError) as exc_info:
            transition_service.execute(request(repairing_ticket.id, "completed", "technician", payload))
        assert exc_info.value.reason == "at least 3 attachments required, found 2"
        assert ticket_repo.load(repairing_ticket.id).status == TicketStatus.REPAIRING

        attachments.add(repairing_ticket.id, AttachmentType.SERIAL_PHOTO)
        result = transition_service.execute(request(repairing_ticket.id, "completed", "technician", payload))
        assert result.to_status == "completed"

    def test_not_fixed_needs_a_reason(self, transition_service, repairing_ticket):
        with pytest.raises(GuardViolationError) as exc_info:
            transition_service.execute(request(repairing_ticket.id, "not_fixed", "technician", {"reasons": []}))

        assert exc_info.value.field == "reasons"

    def test_otp_completion(self, transition_service, repairing_ticket, otp_issuer, publisher, payload_for):
        code = issue_otp(otp_issuer, publisher, repairing_ticket.id)
        payload = payload_for("completed", confirmation_type="otp", otp=code)

        result = transition_service.execute(request(repairing_ticket.id, "completed", "technician", payload))

        assert result.ticket.confirmation_type == "otp"

    def test_wrong_otp_leaves_version(
        self, transition_service, repairing_ticket, otp_issuer, publisher, payload_for, ticket_repo
    ):
        code = issue_otp(otp_issuer, publisher, repairing_ticket.id)
        wrong = "0" * len(code) if code != "0" * len(code) else "1" * len(code)
        version = ticket_repo.load(repairing_ticket.id).version

        with pytest.raises(OtpMismatchOrExpiredError):
            transition_service.execute(request(
                repairing_ticket.id, "completed", "technician",
                payload_for("completed", confirmation_type="otp", otp=wrong),
            ))

        assert ticket_repo.load(repairing_ticket.id).version == version

    def test_expired_otp_leaves_version(
        self, transition_service, repairing_ticket, otp_issuer, publisher, payload_for, ticket_repo, clock
    ):
        code = issue_otp(otp_issuer, publisher, repairing_ticket.id)
        clock.advance(minutes=6)

        with pytest.raises(OtpMismatchOrExpiredError):
            transition_service.execute(request(
                repairing_ticket.id, "completed", "technician",
                payload_for("completed", confirmation_type="otp", otp=code),
            ))

        stored = ticket_repo.load(repairing_ticket.id)
        assert stored.status == TicketStatus.REPAIRING
        assert stored.version == 7

    def test_stale_version_is_rejected(self, transition_service, new_ticket, ticket_repo):
        stale = ticket_repo.load(new_ticket.id)
        transition_service.execute(request(new_ticket.id, "assigned", "dispatcher", {"technician_id": "t"}))

        with pytest.raises(ConcurrentModificationError) as exc_info:
            ticket_repo.save(stale, expected_version=0)

        assert exc_info.value.to_dict()["actual_version"] == 1

    def test_escalation_failure_does_not_fail_transition(
        self, ticket_repo, recorder, guards, uow, new_ticket, clock
    ):
        monitor = Mock()
        monitor.evaluate.side_effect = RuntimeError("escalation store unavailable")
        service = RequestTransitionService(ticket_repo, recorder, guards, uow, escalation_monitor=monitor, clock=clock)

        result = service.execute(request(new_ticket.id, "assigned", "dispatcher", {"technician_id": "t"}))

        assert result.to_status == "assigned"
        monitor.evaluate.assert_called_once()


class TestConcurrentTransitions:

    def test_exactly_one_racer_wins(
        self, ticket_repo, recorder, attachments, otp_service, new_ticket, walk, clock, payload_for, history_service
    ):
        walk(new_ticket.id, ["assigned", "scheduled", "on_route"])
        barrier = threading.Barrier(2)

        class RacingRepository:
            """Both racers load before either saves."""

            def load(self, ticket_id):
                ticket = ticket_repo.load(ticket_id)
                barrier.wait(timeout=5)
                return ticket

            def save(self, ticket, expected_version):
                return ticket_repo.save(ticket, expected_version)

        results, errors = [], []

        def racer():
            service = RequestTransitionService(
                RacingRepository(),
                recorder,
                GuardEvaluator(attachments, otp_service, clock=clock),
                InMemoryUnitOfWork(),
                clock=clock,
            )
            try:
                results.append(service.execute(
                    request(new_ticket.id, "arrived", "technician", payload_for("arrived"))
                ))
            except ConcurrentModificationError as e:
                errors.append(e)

        threads = [threading.Thread(target=racer) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert len(results) == 1
        assert len(errors) == 1
        assert ticket_repo.load(new_ticket.id).version == 4
        arrivals = [e for e in history_service.execute(new_ticket.id) if e.to_status == "arrived"]
        assert len(arrivals) == 1


# =============================================================================
# Read side
# =============================================================================

class TestGetHistoryService:

    def test_empty_for_fresh_ticket(self, history_service, new_ticket):
        assert history_service.execute(new_ticket.id) == []

    def test_unknown_ticket(self, history_service):
        with pytest.raises(EntityNotFoundError):
            history_service.execute("missing")


class TestGetTicketService:

    def test_get(self, ticket_repo, new_ticket):
        dto = GetTicketService(ticket_repo).execute(new_ticket.id)

        assert dto.ticket_number == new_ticket.ticket_number
        assert dto.to_dict()["status"] == "new"
        assert dto.to_dict()["device_type"] == "fridge"

    def test_unknown_ticket(self, ticket_repo):
        with pytest.raises(EntityNotFoundError):
            GetTicketService(ticket_repo).execute("missing")


class TestGetAllowedTransitionsService:

    @pytest.fixture
    def service(self, ticket_repo, guards):
        return GetAllowedTransitionsService(ticket_repo, guards)

    def test_dispatcher_on_new_ticket(self, service, new_ticket):
        allowed = {a.status: a for a in service.execute(new_ticket.id, "dispatcher")}

        assert set(allowed) == {"assigned", "cancelled"}
        assert allowed["assigned"].ready is False
        assert allowed["assigned"].field == "technician_id"

    def test_draft_payload_marks_ready(self, service, new_ticket):
        allowed = {a.status: a for a in service.execute(new_ticket.id, "dispatcher", {"technician_id": "t"})}

        assert allowed["assigned"].ready is True
        assert allowed["assigned"].reason is None

    def test_technician_cannot_assign(self, service, new_ticket):
        assert service.execute(new_ticket.id, "technician") == []

    def test_unknown_role(self, service, new_ticket):
        with pytest.raises(ValidationError):
            service.execute(new_ticket.id, "intern")


class TestListOpenEscalationsService:

    def test_lists_open_escalations(self, escalation_repo, monitor, new_ticket, walk, clock):
        walk(new_ticket.id, ["assigned"])
        monitor.run_sweep(clock() + timedelta(minutes=61))
        service = ListOpenEscalationsService(escalation_repo)

        listed = service.execute()

        assert [e.type for e in listed] == ["assignment_delay"]
        assert listed[0].to_dict()["level"] == "l1"
        assert service.execute(EscalationFilterDTO(ticket_id="other")) == []


class TestRunEscalationSweepService:

    def test_defaults_to_clock(self, monitor, new_ticket, clock):
        service = RunEscalationSweepService(monitor, clock=clock)

        report = service.execute()

        assert report.ran_at == clock()
        assert report.evaluated == 1
        assert report.raised == 0

    def test_explicit_now(self, monitor, new_ticket, clock):
        service = RunEscalationSweepService(monitor, clock=clock)

        report = service.execute(clock() + timedelta(hours=49))

        assert report.raised == 1


# =============================================================================
# Write side helpers
# =============================================================================

class TestIssueCompletionOtpService:

    def test_issue(self, otp_issuer, repairing_ticket, publisher, clock):
        receipt = otp_issuer.execute(IssueCompletionOtpInputDTO(repairing_ticket.id, "tech-1", "technician"))

        assert receipt.expires_at == clock() + timedelta(minutes=5)
        event = publisher.get_events_by_type("CompletionOtpIssuedEvent")[0]
        assert event.customer_phone == "+905551112233"
        assert len(event.code) == 6
        assert event.to_log_dict()["data"]["code"] == "***"
        assert "code" not in receipt.to_dict()

    def test_not_before_repair(self, otp_issuer, new_ticket):
        with pytest.raises(BusinessRuleViolationError):
            otp_issuer.execute(IssueCompletionOtpInputDTO(new_ticket.id, "tech-1", "technician"))

    def test_dispatcher_cannot_issue(self, otp_issuer, repairing_ticket):
        with pytest.raises(RoleNotPermittedError):
            otp_issuer.execute(IssueCompletionOtpInputDTO(repairing_ticket.id, "disp-1", "dispatcher"))


class TestOverrideStatusService:

    def reopen(self, service, ticket_id, role="admin", reason="Customer called back, parts arrived", to="diagnosed"):
        return service.execute(OverrideStatusInputDTO(
            ticket_id=ticket_id, actor_id="admin-1", actor_role=role, to_status=to, reason=reason,
        ))

    def test_reopen_not_fixed(self, override_service, repairing_ticket, walk, history_service):
        walk(repairing_ticket.id, ["not_fixed"])

        result = self.reopen(override_service, repairing_ticket.id)

        assert result.ticket.status == "diagnosed"
        assert result.ticket.closed_at is None
        last = history_service.execute(repairing_ticket.id)[-1]
        assert last.is_override is True
        assert last.notes == "Customer called back, parts arrived"

    def test_only_admin(self, override_service, new_ticket):
        with pytest.raises(RoleNotPermittedError):
            self.reopen(override_service, new_ticket.id, role="dispatcher")

    def test_reason_required(self, override_service, new_ticket, ticket_repo):
        with pytest.raises(ValidationError) as exc_info:
            self.reopen(override_service, new_ticket.id, reason="oops")

        assert exc_info.value.field == "reason"
        assert ticket_repo.load(new_ticket.id).version == 0

    def test_same_status_rejected(self, override_service, new_ticket):
        with pytest.raises(ValidationError):
            self.reopen(override_service, new_ticket.id, to="new")

    def test_event_flags_override(self, override_service, new_ticket, publisher):
        self.reopen(override_service, new_ticket.id, to="cancelled")

        event = publisher.get_events_by_type("TicketStatusChangedEvent")[-1]
        assert event.is_override is True
        assert event.to_status == "cancelled"
