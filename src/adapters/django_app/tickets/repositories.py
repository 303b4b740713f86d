"""
Django repositories of the ticket domain.

Implement the Ports defined in src/core/tickets/ports.py.
DRIVEN ADAPTERS: called by the Core.

Responsibilities:
- Map entities to models and back (through the mappers)
- Run queries through the ORM
- Translate ORM failures to Core errors (not found, concurrent
  modification, timeouts)

Principles:
- No business logic
- Every write goes through the caller's transaction (Unit of Work)
"""

from copy import deepcopy
from typing import Any, Dict, List, Optional, Tuple
from datetime import timedelta
import hashlib
import logging
import secrets

from django.db import IntegrityError, OperationalError, transaction
from django.db.models import Max

from src.core.shared.events import DomainEvent, utc_now
from src.core.shared.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    OtpVerificationTimeoutError,
)
from src.core.shared.interfaces import EventStore
from src.core.tickets.dtos import EscalationFilterDTO
from src.core.tickets.entities import (
    AttachmentType,
    Escalation,
    EscalationType,
    StatusHistoryEntry,
    TERMINAL_STATUSES,
    TicketEntity,
)
from src.core.tickets.ports import OTP_MAX_TTL, Clock

from ..shared.database import is_timeout_error, translate_timeouts
from .mappers import DomainEventMapper, EscalationMapper, StatusHistoryMapper, TicketMapper
from .models import (
    AttachmentModel,
    DomainEventModel,
    EscalationModel,
    OtpCodeModel,
    TicketModel,
    TicketStatusHistoryModel,
)

logger = logging.getLogger(__name__)


class DjangoTicketRepository:
    """
    Django implementation of TicketRepository.

    Optimistic locking is a conditional UPDATE:
        UPDATE tickets SET ..., version = v + 1 WHERE id = ? AND version = v
    Zero rows updated means another writer got there first.

    Example:
        repo = DjangoTicketRepository()
        ticket = repo.load(ticket_id)
        repo.save(ticket, expected_version=ticket.version)
    """

    def __init__(self):
        self._mapper = TicketMapper()

    def load(self, ticket_id: str) -> TicketEntity:
        with translate_timeouts():
            try:
                model = TicketModel.objects.get(id=ticket_id)
            except TicketModel.DoesNotExist:
                raise EntityNotFoundError(
                    f"Ticket {ticket_id} not found",
                    entity_type="Ticket",
                    entity_id=ticket_id,
                )
        return self._mapper.to_entity(model)

    def save(self, ticket: TicketEntity, expected_version: int) -> TicketEntity:
        """
        Raises:
            ConcurrentModificationError: If the stored version advanced
            EntityNotFoundError: If the ticket does not exist
            PersistenceTimeoutError: If the statement timed out
        """
        logger.debug(f"Saving ticket {ticket.id} (expected v{expected_version})")

        with translate_timeouts():
            updated = (
                TicketModel.objects
                .filter(id=ticket.id, version=expected_version)
                .update(version=expected_version + 1, **self._mapper.to_fields(ticket))
            )

            if updated == 0:
                current = (
                    TicketModel.objects
                    .filter(id=ticket.id)
                    .values_list('version', flat=True)
                    .first()
                )
                if current is None:
                    raise EntityNotFoundError(
                        f"Ticket {ticket.id} not found",
                        entity_type="Ticket",
                        entity_id=ticket.id,
                    )
                raise ConcurrentModificationError(ticket.id, expected_version, current)

        saved = deepcopy(ticket)
        saved.version = expected_version + 1
        return saved

    def add(self, ticket: TicketEntity) -> TicketEntity:
        with translate_timeouts():
            self._mapper.to_model(ticket).save(force_insert=True)
        logger.info(f"Ticket created: {ticket.ticket_number} ({ticket.id})")
        return ticket

    def list_active(self) -> List[TicketEntity]:
        with translate_timeouts():
            models = list(
                TicketModel.objects
                .exclude(status__in=[s.value for s in TERMINAL_STATUSES])
                .order_by('created_at')
            )
        return self._mapper.to_entity_list(models)


class DjangoStatusHistoryRepository:
    """Append-only history storage."""

    def append(self, entry: StatusHistoryEntry) -> None:
        with translate_timeouts():
            StatusHistoryMapper.to_model(entry).save(force_insert=True)

    def list_for_ticket(self, ticket_id: str) -> List[StatusHistoryEntry]:
        with translate_timeouts():
            models = list(
                TicketStatusHistoryModel.objects
                .filter(ticket_id=ticket_id)
                .order_by('timestamp', 'id')
            )
        return [StatusHistoryMapper.to_entity(m) for m in models]


class DjangoEscalationRepository:
    """
    Escalation storage.

    `add` relies on the partial unique constraint: a concurrent
    duplicate fails the insert inside a savepoint and is reported as
    False instead of breaking the surrounding transaction.
    """

    def get_open(self, ticket_id: str, escalation_type: EscalationType) -> Optional[Escalation]:
        model = (
            EscalationModel.objects
            .filter(ticket_id=ticket_id, type=escalation_type.value, resolved=False)
            .first()
        )
        return EscalationMapper.to_entity(model) if model else None

    def add(self, escalation: Escalation) -> bool:
        try:
            with transaction.atomic():
                EscalationMapper.to_model(escalation).save(force_insert=True)
        except IntegrityError:
            logger.debug(
                f"Open {escalation.type.value} escalation already exists "
                f"for ticket {escalation.ticket_id}"
            )
            return False
        return True

    def resolve(self, escalation: Escalation) -> None:
        EscalationModel.objects.filter(id=escalation.id).update(
            resolved=True,
            resolved_at=escalation.resolved_at or utc_now(),
        )

    def list_open(self, filters: Optional[EscalationFilterDTO] = None) -> List[Escalation]:
        filters = filters or EscalationFilterDTO()
        qs = EscalationModel.objects.filter(resolved=False)
        if filters.ticket_id:
            qs = qs.filter(ticket_id=filters.ticket_id)
        if filters.level:
            qs = qs.filter(level=filters.level.value)
        if filters.type:
            qs = qs.filter(type=filters.type.value)
        return [EscalationMapper.to_entity(m) for m in qs.order_by('created_at')]

    def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        qs = EscalationModel.objects.filter(ticket_id=ticket_id).order_by('created_at')
        return [EscalationMapper.to_entity(m) for m in qs]


class DjangoAttachmentCounter:
    """Counts attachment rows; the files themselves live elsewhere."""

    def count_attachments(self, ticket_id: str, attachment_type: Optional[AttachmentType] = None) -> int:
        qs = AttachmentModel.objects.filter(ticket_id=ticket_id)
        if attachment_type is not None:
            qs = qs.filter(type=attachment_type.value)
        with translate_timeouts():
            return qs.count()


class DjangoOtpService:
    """
    Completion OTP backed by OtpCodeModel.

    - Only a SHA-256 of (ticket, code) is stored
    - Codes expire after `ttl_seconds`, capped at OTP_MAX_TTL
    - Issuing a code supersedes every unused code of the ticket
    - Verification consumes the code with a conditional UPDATE, so a
      code can succeed at most once even under concurrent attempts
    """

    def __init__(self, ttl_seconds: int = 300, length: int = 6, clock: Clock = utc_now):
        ttl = timedelta(seconds=ttl_seconds)
        if ttl > OTP_MAX_TTL:
            logger.warning(
                f"OTP TTL of {ttl_seconds}s exceeds the {int(OTP_MAX_TTL.total_seconds())}s limit; clamping"
            )
            ttl = OTP_MAX_TTL
        self._ttl = ttl
        self._length = length
        self._clock = clock

    @staticmethod
    def _hash(ticket_id: str, code: str) -> str:
        return hashlib.sha256(f"{ticket_id}:{code}".encode()).hexdigest()

    def issue_otp(self, ticket_id: str) -> Tuple[str, Any]:
        lower = 10 ** (self._length - 1)
        code = str(lower + secrets.randbelow(9 * lower))
        now = self._clock()
        expires_at = now + self._ttl

        with translate_timeouts():
            OtpCodeModel.objects.filter(ticket_id=ticket_id, used_at__isnull=True).update(used_at=now)
            OtpCodeModel.objects.create(
                ticket_id=ticket_id,
                code_hash=self._hash(ticket_id, code),
                expires_at=expires_at,
                created_at=now,
            )
        return code, expires_at

    def verify_otp(self, ticket_id: str, code: str) -> bool:
        """
        Raises:
            OtpVerificationTimeoutError: If the database did not answer in time
        """
        now = self._clock()
        try:
            record = (
                OtpCodeModel.objects
                .filter(ticket_id=ticket_id, used_at__isnull=True)
                .order_by('-created_at', '-id')
                .first()
            )
            if record is None or record.expires_at < now:
                return False
            if not secrets.compare_digest(record.code_hash, self._hash(ticket_id, str(code))):
                return False
            consumed = (
                OtpCodeModel.objects
                .filter(pk=record.pk, used_at__isnull=True)
                .update(used_at=now)
            )
            return consumed == 1
        except OperationalError as e:
            if is_timeout_error(e):
                raise OtpVerificationTimeoutError() from e
            raise


class DjangoEventStore(EventStore):
    """
    Event journal on the Django ORM.

    Appends run inside the Unit of Work's transaction. A sequence of
    0 means "next for this aggregate".
    """

    def append(self, event: DomainEvent, sequence: int = 0) -> None:
        if sequence <= 0:
            last = (
                DomainEventModel.objects
                .filter(aggregate_id=event.aggregate_id)
                .aggregate(last=Max('sequence'))['last']
            )
            sequence = (last or 0) + 1

        with translate_timeouts():
            DomainEventMapper.to_model(event, sequence=sequence).save(force_insert=True)

        logger.debug(f"Event stored: {event.event_type} #{sequence} for {event.aggregate_id}")

    def get_events_for_aggregate(
        self,
        aggregate_id: str,
        since_sequence: int = 0,
    ) -> List[Dict[str, Any]]:
        events = (
            DomainEventModel.objects
            .filter(aggregate_id=aggregate_id, sequence__gte=since_sequence)
            .order_by('sequence')
        )
        return [DomainEventMapper.to_dict(e) for e in events]
