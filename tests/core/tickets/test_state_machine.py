"""
Unit tests for the lifecycle graph.
"""

import pytest

from src.core.shared.exceptions import InvalidTransitionError, RoleNotPermittedError
from src.core.tickets.entities import ActorRole, TicketStatus, TERMINAL_STATUSES
from src.core.tickets.state_machine import TRANSITIONS, TicketStateMachine


S = TicketStatus
R = ActorRole


@pytest.fixture
def machine():
    return TicketStateMachine()


class TestGraph:

    def test_every_status_has_a_row(self):
        assert set(TRANSITIONS) == set(TicketStatus)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_have_no_edges(self, machine, terminal):
        for role in ActorRole:
            assert machine.allowed_targets(terminal, role) == []

    @pytest.mark.parametrize("source,target", [
        (S.NEW, S.ASSIGNED),
        (S.ASSIGNED, S.SCHEDULED),
        (S.SCHEDULED, S.ON_ROUTE),
        (S.ON_ROUTE, S.ARRIVED),
        (S.ARRIVED, S.INSPECTING),
        (S.INSPECTING, S.DIAGNOSED),
        (S.DIAGNOSED, S.REPAIRING),
        (S.DIAGNOSED, S.WAITING_PARTS),
        (S.DIAGNOSED, S.PICKUP_DEVICE),
        (S.DIAGNOSED, S.NOT_FIXED),
        (S.WAITING_PARTS, S.REPAIRING),
        (S.WAITING_PARTS, S.NOT_FIXED),
        (S.REPAIRING, S.COMPLETED),
        (S.REPAIRING, S.WAITING_PARTS),
        (S.REPAIRING, S.NOT_FIXED),
        (S.PICKUP_DEVICE, S.IN_WORKSHOP),
        (S.IN_WORKSHOP, S.READY_DELIVERY),
        (S.READY_DELIVERY, S.COMPLETED),
    ])
    def test_edges_exist(self, machine, source, target):
        assert machine.is_edge(source, target)

    @pytest.mark.parametrize("source,target", [
        (S.NEW, S.SCHEDULED),
        (S.NEW, S.COMPLETED),
        (S.ASSIGNED, S.ON_ROUTE),
        (S.ARRIVED, S.DIAGNOSED),
        (S.INSPECTING, S.REPAIRING),
        (S.WAITING_PARTS, S.COMPLETED),
        (S.PICKUP_DEVICE, S.COMPLETED),
        (S.COMPLETED, S.REPAIRING),
        (S.NOT_FIXED, S.DIAGNOSED),
        (S.CANCELLED, S.NEW),
    ])
    def test_edges_missing(self, machine, source, target):
        assert not machine.is_edge(source, target)

    def test_admin_may_cancel_any_open_ticket(self, machine):
        for status in TicketStatus:
            if status.is_terminal:
                continue
            assert machine.can_transition(status, S.CANCELLED, R.ADMIN)

    def test_technician_cannot_cancel(self, machine):
        assert not machine.can_transition(S.NEW, S.CANCELLED, R.TECHNICIAN)


class TestAssertTransition:

    def test_legal_edge_passes(self, machine):
        machine.assert_transition(S.NEW, S.ASSIGNED, R.DISPATCHER)

    def test_missing_edge_raises_invalid_transition(self, machine):
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.assert_transition(S.NEW, S.COMPLETED, R.ADMIN)

        assert not isinstance(exc_info.value, RoleNotPermittedError)
        assert exc_info.value.from_status == "new"
        assert exc_info.value.to_status == "completed"

    def test_wrong_role_raises_role_not_permitted(self, machine):
        with pytest.raises(RoleNotPermittedError) as exc_info:
            machine.assert_transition(S.ON_ROUTE, S.ARRIVED, R.DISPATCHER)

        assert exc_info.value.actor_role == "dispatcher"
        assert exc_info.value.code == "ROLE_NOT_PERMITTED"

    def test_role_error_is_an_invalid_transition(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.assert_transition(S.PICKUP_DEVICE, S.IN_WORKSHOP, R.CUSTOMER)

    def test_terminal_source_rejected(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.assert_transition(S.COMPLETED, S.CANCELLED, R.ADMIN)


class TestAllowedTargets:

    def test_technician_after_diagnosis(self, machine):
        targets = machine.allowed_targets(S.DIAGNOSED, R.TECHNICIAN)

        assert targets == [S.REPAIRING, S.WAITING_PARTS, S.PICKUP_DEVICE, S.NOT_FIXED]

    def test_admin_sees_cancel(self, machine):
        assert S.CANCELLED in machine.allowed_targets(S.REPAIRING, R.ADMIN)

    def test_customer_has_no_actions(self, machine):
        for status in TicketStatus:
            assert machine.allowed_targets(status, R.CUSTOMER) == []

    def test_allowed_targets_agree_with_assert(self, machine):
        for status in TicketStatus:
            for role in ActorRole:
                for target in machine.allowed_targets(status, role):
                    machine.assert_transition(status, target, role)


class TestWalks:

    def test_valid_walk(self, machine):
        assert machine.is_valid_walk([S.NEW, S.ASSIGNED, S.SCHEDULED, S.ON_ROUTE])

    def test_invalid_walk(self, machine):
        assert not machine.is_valid_walk([S.NEW, S.ASSIGNED, S.ON_ROUTE])

    def test_single_status_is_a_walk(self, machine):
        assert machine.is_valid_walk([S.NEW])
