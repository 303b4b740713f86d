"""
Ports (interfaces) of the ticket domain.

Contracts the infrastructure adapters implement:
- TicketRepository: optimistic-locked load/save of tickets
- StatusHistoryRepository: append-only transition log
- AttachmentCounter: evidence counts per attachment type
- OtpService: completion code issuance and verification
- EscalationRepository: open/resolved escalation records
- Notifier: fire-and-forget customer/staff notifications

Each port ships with an in-memory implementation used by the unit
tests and by the testing container.

Example:
    class DjangoTicketRepository:
        def save(self, ticket, expected_version):
            updated = TicketModel.objects.filter(
                id=ticket.id, version=expected_version
            ).update(...)
"""

from copy import deepcopy
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable
import secrets
import threading

from src.core.shared.events import utc_now
from src.core.shared.exceptions import ConcurrentModificationError, EntityNotFoundError

from .dtos import EscalationFilterDTO
from .entities import (
    AttachmentType,
    Escalation,
    EscalationType,
    StatusHistoryEntry,
    TicketEntity,
)


Clock = Callable[[], datetime]


@runtime_checkable
class TicketRepository(Protocol):
    """
    Persistence of tickets with optimistic locking.

    Implementations:
    - DjangoTicketRepository (ORM, conditional UPDATE on version)
    - InMemoryTicketRepository (tests)
    """

    def load(self, ticket_id: str) -> TicketEntity:
        """
        Loads a ticket.

        Raises:
            EntityNotFoundError: If the ticket does not exist
        """
        ...

    def save(self, ticket: TicketEntity, expected_version: int) -> TicketEntity:
        """
        Stores `ticket` if the stored version still equals `expected_version`.

        Returns:
            The stored ticket, with version `expected_version + 1`

        Raises:
            ConcurrentModificationError: If the stored version advanced
            EntityNotFoundError: If the ticket does not exist
            PersistenceTimeoutError: If the store did not answer in time
        """
        ...

    def add(self, ticket: TicketEntity) -> TicketEntity:
        """Stores a brand new ticket (intake)."""
        ...

    def list_active(self) -> List[TicketEntity]:
        """Every ticket whose status is not terminal."""
        ...


@runtime_checkable
class StatusHistoryRepository(Protocol):
    """Append-only storage of StatusHistoryEntry records."""

    def append(self, entry: StatusHistoryEntry) -> None:
        ...

    def list_for_ticket(self, ticket_id: str) -> List[StatusHistoryEntry]:
        """Entries ordered by ascending timestamp."""
        ...


@runtime_checkable
class AttachmentCounter(Protocol):
    """Evidence counts. The core never sees attachment bytes."""

    def count_attachments(self, ticket_id: str, attachment_type: Optional[AttachmentType] = None) -> int:
        """
        Number of persisted attachments for the ticket.

        Args:
            attachment_type: Restrict to one type; None counts every type
        """
        ...


# Completion codes never outlive this window
OTP_MAX_TTL = timedelta(minutes=5)


@runtime_checkable
class OtpService(Protocol):
    """Completion OTP collaborator."""

    def issue_otp(self, ticket_id: str) -> Tuple[str, datetime]:
        """Issues a fresh code, returning (code, expires_at)."""
        ...

    def verify_otp(self, ticket_id: str, code: str) -> bool:
        """
        True when `code` is the latest unexpired, unused code for the ticket.

        Raises:
            OtpVerificationTimeoutError: If the collaborator did not answer in time
        """
        ...


@runtime_checkable
class EscalationRepository(Protocol):
    """Storage of Escalation records."""

    def get_open(self, ticket_id: str, escalation_type: EscalationType) -> Optional[Escalation]:
        ...

    def add(self, escalation: Escalation) -> bool:
        """
        Stores a new unresolved escalation.

        Returns:
            False (and stores nothing) when an unresolved escalation of
            the same (ticket_id, type) already exists
        """
        ...

    def resolve(self, escalation: Escalation) -> None:
        """Persists the resolved flag and timestamp of `escalation`."""
        ...

    def list_open(self, filters: Optional[EscalationFilterDTO] = None) -> List[Escalation]:
        ...

    def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        ...


@runtime_checkable
class Notifier(Protocol):
    """Notification collaborator. Fire-and-forget, nothing is returned."""

    def notify(self, ticket_id: str, event_kind: str, payload: Mapping[str, Any]) -> None:
        ...


# =============================================================================
# In-memory implementations
# =============================================================================

class InMemoryTicketRepository:
    """
    Dict backed ticket repository for unit tests.

    Stores deep copies so callers never mutate stored state by
    accident; version checks run under a lock so racing savers see
    exactly one winner.
    """

    def __init__(self):
        self._tickets: Dict[str, TicketEntity] = {}
        self._lock = threading.Lock()

    def load(self, ticket_id: str) -> TicketEntity:
        with self._lock:
            ticket = self._tickets.get(ticket_id)
            if ticket is None:
                raise EntityNotFoundError(
                    f"Ticket {ticket_id} not found",
                    entity_type="Ticket",
                    entity_id=ticket_id,
                )
            return deepcopy(ticket)

    def save(self, ticket: TicketEntity, expected_version: int) -> TicketEntity:
        with self._lock:
            stored = self._tickets.get(ticket.id)
            if stored is None:
                raise EntityNotFoundError(
                    f"Ticket {ticket.id} not found",
                    entity_type="Ticket",
                    entity_id=ticket.id,
                )
            if stored.version != expected_version:
                raise ConcurrentModificationError(ticket.id, expected_version, stored.version)

            saved = deepcopy(ticket)
            saved.version = expected_version + 1
            self._tickets[ticket.id] = saved
            return deepcopy(saved)

    def add(self, ticket: TicketEntity) -> TicketEntity:
        with self._lock:
            self._tickets[ticket.id] = deepcopy(ticket)
            return deepcopy(ticket)

    def list_active(self) -> List[TicketEntity]:
        with self._lock:
            return [deepcopy(t) for t in self._tickets.values() if not t.is_terminal]

    def list_all(self) -> List[TicketEntity]:
        with self._lock:
            return [deepcopy(t) for t in self._tickets.values()]

    def clear(self) -> None:
        with self._lock:
            self._tickets.clear()


class InMemoryStatusHistoryRepository:
    """List backed history log for unit tests."""

    def __init__(self):
        self._entries: List[StatusHistoryEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: StatusHistoryEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def list_for_ticket(self, ticket_id: str) -> List[StatusHistoryEntry]:
        with self._lock:
            entries = [e for e in self._entries if e.ticket_id == ticket_id]
        # sorted() is stable: equal timestamps keep insertion order
        return sorted(entries, key=lambda e: e.timestamp)


class InMemoryAttachmentCounter:
    """Records attachment metadata so tests can set up evidence."""

    def __init__(self):
        self._attachments: List[Tuple[str, AttachmentType, datetime]] = []

    def add(self, ticket_id: str, attachment_type: AttachmentType, count: int = 1) -> None:
        for _ in range(count):
            self._attachments.append((ticket_id, attachment_type, utc_now()))

    def count_attachments(self, ticket_id: str, attachment_type: Optional[AttachmentType] = None) -> int:
        return sum(
            1
            for owner, kind, _ in self._attachments
            if owner == ticket_id and (attachment_type is None or kind == attachment_type)
        )


class InMemoryOtpService:
    """
    OTP collaborator for tests.

    Codes are 6 digits, valid for `ttl` (at most OTP_MAX_TTL) from
    issuance and single use.
    Issuing a new code invalidates the previous one.
    """

    def __init__(self, clock: Clock = utc_now, ttl: timedelta = timedelta(minutes=5), length: int = 6):
        self._clock = clock
        self._ttl = min(ttl, OTP_MAX_TTL)
        self._length = length
        self._codes: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def issue_otp(self, ticket_id: str) -> Tuple[str, datetime]:
        lower = 10 ** (self._length - 1)
        code = str(lower + secrets.randbelow(9 * lower))
        expires_at = self._clock() + self._ttl
        with self._lock:
            self._codes[ticket_id] = {"code": code, "expires_at": expires_at, "used": False}
        return code, expires_at

    def verify_otp(self, ticket_id: str, code: str) -> bool:
        with self._lock:
            record = self._codes.get(ticket_id)
            if record is None or record["used"]:
                return False
            if self._clock() > record["expires_at"]:
                return False
            if not secrets.compare_digest(record["code"], str(code)):
                return False
            record["used"] = True
            return True


class InMemoryEscalationRepository:
    """Escalation storage for unit tests."""

    def __init__(self):
        self._escalations: Dict[str, Escalation] = {}
        self._lock = threading.Lock()

    def get_open(self, ticket_id: str, escalation_type: EscalationType) -> Optional[Escalation]:
        with self._lock:
            for escalation in self._escalations.values():
                if (
                    escalation.ticket_id == ticket_id
                    and escalation.type == escalation_type
                    and not escalation.resolved
                ):
                    return deepcopy(escalation)
        return None

    def add(self, escalation: Escalation) -> bool:
        with self._lock:
            for existing in self._escalations.values():
                if (
                    existing.ticket_id == escalation.ticket_id
                    and existing.type == escalation.type
                    and not existing.resolved
                ):
                    return False
            self._escalations[escalation.id] = deepcopy(escalation)
            return True

    def resolve(self, escalation: Escalation) -> None:
        with self._lock:
            stored = self._escalations[escalation.id]
            stored.resolve(escalation.resolved_at)

    def list_open(self, filters: Optional[EscalationFilterDTO] = None) -> List[Escalation]:
        filters = filters or EscalationFilterDTO()
        with self._lock:
            result = [
                deepcopy(e)
                for e in self._escalations.values()
                if not e.resolved and filters.matches(e)
            ]
        return sorted(result, key=lambda e: e.created_at)

    def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        with self._lock:
            result = [deepcopy(e) for e in self._escalations.values() if e.ticket_id == ticket_id]
        return sorted(result, key=lambda e: e.created_at)


class InMemoryNotifier:
    """Collects notify() calls for assertions."""

    def __init__(self):
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []

    def notify(self, ticket_id: str, event_kind: str, payload: Mapping[str, Any]) -> None:
        self.sent.append((ticket_id, event_kind, dict(payload)))
