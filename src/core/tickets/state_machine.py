"""
Ticket lifecycle graph.

The single adjacency table of legal transitions, with the roles that
may take each edge. Both the server-side legality check and the
"next allowed actions" offered to clients read this table, so they
cannot diverge.
"""

from typing import Dict, FrozenSet, List

from src.core.shared.exceptions import InvalidTransitionError, RoleNotPermittedError

from .entities import ActorRole, TicketStatus, TERMINAL_STATUSES


S = TicketStatus

_DISPATCH = frozenset({ActorRole.DISPATCHER, ActorRole.ADMIN})
_FIELD = frozenset({ActorRole.TECHNICIAN})
_DEPARTURE = frozenset({ActorRole.TECHNICIAN, ActorRole.DISPATCHER, ActorRole.ADMIN})
_WORKSHOP = frozenset({ActorRole.WORKSHOP, ActorRole.ADMIN})
_ADMIN = frozenset({ActorRole.ADMIN})

TRANSITIONS: Dict[TicketStatus, Dict[TicketStatus, FrozenSet[ActorRole]]] = {
    S.NEW: {S.ASSIGNED: _DISPATCH, S.CANCELLED: _DISPATCH},
    S.ASSIGNED: {S.SCHEDULED: _DISPATCH, S.CANCELLED: _DISPATCH},
    S.SCHEDULED: {S.ON_ROUTE: _DEPARTURE, S.CANCELLED: _DISPATCH},
    S.ON_ROUTE: {S.ARRIVED: _FIELD},
    S.ARRIVED: {S.INSPECTING: _FIELD},
    S.INSPECTING: {S.DIAGNOSED: _FIELD},
    S.DIAGNOSED: {
        S.REPAIRING: _FIELD,
        S.WAITING_PARTS: _FIELD,
        S.PICKUP_DEVICE: _FIELD,
        S.NOT_FIXED: _FIELD,
    },
    S.WAITING_PARTS: {S.REPAIRING: _FIELD, S.NOT_FIXED: _FIELD},
    S.REPAIRING: {S.COMPLETED: _FIELD, S.WAITING_PARTS: _FIELD, S.NOT_FIXED: _FIELD},
    S.PICKUP_DEVICE: {S.IN_WORKSHOP: _WORKSHOP},
    S.IN_WORKSHOP: {S.READY_DELIVERY: _WORKSHOP},
    S.READY_DELIVERY: {S.COMPLETED: _FIELD},
    S.COMPLETED: {},
    S.NOT_FIXED: {},
    S.CANCELLED: {},
}

# Any non-terminal ticket may be cancelled by an administrator
for _source, _edges in TRANSITIONS.items():
    if _source not in TERMINAL_STATUSES:
        _edges[S.CANCELLED] = _edges.get(S.CANCELLED, frozenset()) | _ADMIN


class TicketStateMachine:
    """
    Authoritative legality check for ticket transitions.

    Example:
        machine = TicketStateMachine()
        machine.assert_transition(
            TicketStatus.NEW, TicketStatus.ASSIGNED, ActorRole.DISPATCHER
        )
        machine.allowed_targets(TicketStatus.DIAGNOSED, ActorRole.TECHNICIAN)
    """

    def __init__(self, transitions: Dict[TicketStatus, Dict[TicketStatus, FrozenSet[ActorRole]]] = None):
        self._transitions = transitions or TRANSITIONS

    def is_edge(self, from_status: TicketStatus, to_status: TicketStatus) -> bool:
        """True when the edge exists for at least one role."""
        return to_status in self._transitions.get(from_status, {})

    def can_transition(
        self,
        from_status: TicketStatus,
        to_status: TicketStatus,
        actor_role: ActorRole,
    ) -> bool:
        return actor_role in self._transitions.get(from_status, {}).get(to_status, frozenset())

    def assert_transition(
        self,
        from_status: TicketStatus,
        to_status: TicketStatus,
        actor_role: ActorRole,
    ) -> None:
        """
        Raises unless `actor_role` may move a ticket along the edge.

        Raises:
            InvalidTransitionError: Edge not in the graph
            RoleNotPermittedError: Edge exists for other roles only
        """
        if not self.is_edge(from_status, to_status):
            raise InvalidTransitionError(from_status.value, to_status.value)
        if not self.can_transition(from_status, to_status, actor_role):
            raise RoleNotPermittedError(from_status.value, to_status.value, actor_role.value)

    def allowed_targets(self, from_status: TicketStatus, actor_role: ActorRole) -> List[TicketStatus]:
        """
        Targets reachable from `from_status` by `actor_role`.

        Ordered as declared in the table.
        """
        return [
            target
            for target, roles in self._transitions.get(from_status, {}).items()
            if actor_role in roles
        ]

    def is_valid_walk(self, statuses: List[TicketStatus]) -> bool:
        """True when every consecutive pair is an edge of the graph."""
        return all(
            self.is_edge(source, target)
            for source, target in zip(statuses, statuses[1:])
        )
