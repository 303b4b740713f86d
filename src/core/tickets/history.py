"""
Status History Recorder.

Append-only log of every committed transition. The ordered history is
the only source for "time in current state" and repeat-failure
counts; nothing stores a duration redundantly.
"""

from datetime import datetime, timedelta
from typing import List, Optional
import logging

from src.core.shared.events import utc_now

from .entities import ActorRole, Location, StatusHistoryEntry, TicketEntity, TicketStatus
from .ports import Clock, StatusHistoryRepository

logger = logging.getLogger(__name__)


class StatusHistoryRecorder:
    """
    Writes and reads the transition log of tickets.

    Entries are immutable; the recorder exposes no update or delete.

    Example:
        recorder = StatusHistoryRecorder(history_repo)
        recorder.record(
            ticket_id, TicketStatus.NEW, TicketStatus.ASSIGNED,
            actor_id="disp-1", actor_role=ActorRole.DISPATCHER,
        )
        entries = recorder.get_history(ticket_id)
    """

    def __init__(self, history_repo: StatusHistoryRepository, clock: Clock = utc_now):
        self._history_repo = history_repo
        self._clock = clock

    def record(
        self,
        ticket_id: str,
        from_status: Optional[TicketStatus],
        to_status: TicketStatus,
        actor_id: str,
        actor_role: ActorRole,
        notes: Optional[str] = None,
        location: Optional[Location] = None,
        is_override: bool = False,
        at: Optional[datetime] = None,
    ) -> StatusHistoryEntry:
        """
        Appends one entry.

        Args:
            from_status: Status left (None for the intake entry)
            to_status: Status entered
            notes: Free text kept with the entry
            location: GPS snapshot sent with the request
            is_override: Marks administrative corrections
            at: Commit timestamp; the clock when omitted

        Returns:
            The stored entry
        """
        entry = StatusHistoryEntry(
            ticket_id=ticket_id,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            actor_role=actor_role,
            timestamp=at or self._clock(),
            notes=notes,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            is_override=is_override,
        )
        self._history_repo.append(entry)
        logger.debug(
            f"History recorded for {ticket_id}: "
            f"{from_status.value if from_status else '-'} -> {to_status.value}"
        )
        return entry

    def get_history(self, ticket_id: str) -> List[StatusHistoryEntry]:
        """Entries of the ticket, ascending by timestamp. A new list per call."""
        return list(self._history_repo.list_for_ticket(ticket_id))


def entered_current_state_at(ticket: TicketEntity, history: List[StatusHistoryEntry]) -> datetime:
    """
    When the ticket entered its current status.

    The latest history timestamp; tickets without history (fresh
    intake) fall back to their creation time.
    """
    if history:
        return history[-1].timestamp
    return ticket.created_at


def time_in_current_state(
    ticket: TicketEntity,
    history: List[StatusHistoryEntry],
    now: datetime,
) -> timedelta:
    return now - entered_current_state_at(ticket, history)
