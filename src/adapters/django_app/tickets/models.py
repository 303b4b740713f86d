"""
Django models of the ticket domain.

These models are ADAPTERS: they persist the domain entities defined
in src/core/tickets/entities.py.

IMPORTANT:
- Models contain NO business logic
- Business rules live in the Core
- Models are mapped to/from entities by the mappers

Tables:
- TicketModel: tickets, with the optimistic lock `version`
- TicketStatusHistoryModel: append-only transition log
- EscalationModel: escalations (one open per ticket and type)
- AttachmentModel: evidence metadata (files live in object storage)
- OtpCodeModel: completion OTP codes (hashed)
- DomainEventModel: event journal
"""

from django.db import models
from django.utils import timezone

from src.core.tickets.entities import (
    ActorRole,
    AttachmentType,
    ConfirmationType,
    DeviceType,
    EscalationLevel,
    EscalationType,
    TicketPriority,
    TicketStatus,
    TimeSlot,
    WarrantyStatus,
)


def _choices(enum_cls):
    """Django choices mirroring a Core enum."""
    return [(member.value, member.name.replace("_", " ").title()) for member in enum_cls]


class TicketModel(models.Model):
    """
    Django model persisting TicketEntity.

    `version` is bumped on every save through a conditional UPDATE
    (see DjangoTicketRepository.save).
    """

    # Primary Key - UUID generated by the entity
    id = models.CharField(
        max_length=36,
        primary_key=True,
        editable=False,
        help_text="Ticket UUID"
    )

    ticket_number = models.CharField(max_length=32, unique=True)

    status = models.CharField(
        max_length=20,
        choices=_choices(TicketStatus),
        default=TicketStatus.NEW.value,
        db_index=True,
    )

    priority = models.CharField(
        max_length=10,
        choices=_choices(TicketPriority),
        default=TicketPriority.NORMAL.value,
        db_index=True,
    )

    device_type = models.CharField(
        max_length=20,
        choices=_choices(DeviceType),
        default=DeviceType.OTHER.value,
    )

    problem_description = models.TextField(blank=True, default="")

    # Customer
    customer_name = models.CharField(max_length=200)
    customer_phone = models.CharField(max_length=32, db_index=True)
    customer_address = models.TextField(blank=True, default="")
    customer_latitude = models.FloatField(null=True, blank=True)
    customer_longitude = models.FloatField(null=True, blank=True)

    # Assignment and schedule
    technician_id = models.CharField(max_length=100, null=True, blank=True, db_index=True)
    scheduled_date = models.DateField(null=True, blank=True)
    scheduled_slot = models.CharField(
        max_length=10,
        choices=_choices(TimeSlot),
        null=True,
        blank=True,
    )

    # Field work
    diagnosis_notes = models.TextField(null=True, blank=True)
    repair_notes = models.TextField(null=True, blank=True)
    internal_notes = models.TextField(null=True, blank=True)
    not_fixed_reasons = models.JSONField(default=list, blank=True)
    pickup_reason = models.TextField(null=True, blank=True)
    cancellation_reason = models.TextField(null=True, blank=True)
    confirmation_type = models.CharField(
        max_length=10,
        choices=_choices(ConfirmationType),
        null=True,
        blank=True,
    )

    # Warranty
    warranty_status = models.CharField(
        max_length=20,
        choices=_choices(WarrantyStatus),
        default=WarrantyStatus.UNKNOWN.value,
    )
    warranty_expires_at = models.DateField(null=True, blank=True)

    # Stage timestamps
    scheduled_set_at = models.DateTimeField(null=True, blank=True)
    trip_started_at = models.DateTimeField(null=True, blank=True)
    arrived_at = models.DateTimeField(null=True, blank=True)
    inspection_started_at = models.DateTimeField(null=True, blank=True)
    diagnosed_at = models.DateTimeField(null=True, blank=True)
    repair_started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(default=timezone.now)

    # Optimistic lock
    version = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'tickets'
        verbose_name = 'Ticket'
        verbose_name_plural = 'Tickets'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='tickets_status_2f1b7c_idx'),
            models.Index(fields=['technician_id', 'status'], name='tickets_technic_8a41d2_idx'),
            models.Index(fields=['scheduled_date', 'scheduled_slot'], name='tickets_schedul_5c93e0_idx'),
        ]

    def __str__(self):
        return f"[{self.ticket_number}] {self.customer_name}"

    def __repr__(self):
        return f"<TicketModel id={self.id[:8]} status={self.status} v{self.version}>"


class TicketStatusHistoryModel(models.Model):
    """
    Append-only transition log.

    Ordered by (timestamp, pk) so entries sharing a timestamp keep
    their insertion order.
    """

    id = models.BigAutoField(primary_key=True)

    entry_id = models.CharField(max_length=36, unique=True, editable=False)

    ticket = models.ForeignKey(
        TicketModel,
        on_delete=models.CASCADE,
        related_name='status_history',
    )

    from_status = models.CharField(
        max_length=20,
        choices=_choices(TicketStatus),
        null=True,
        blank=True,
    )
    to_status = models.CharField(max_length=20, choices=_choices(TicketStatus))

    actor_id = models.CharField(max_length=100)
    actor_role = models.CharField(max_length=20, choices=_choices(ActorRole))

    timestamp = models.DateTimeField(db_index=True)
    notes = models.TextField(null=True, blank=True)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    is_override = models.BooleanField(default=False)

    class Meta:
        db_table = 'ticket_status_history'
        verbose_name = 'Status History Entry'
        verbose_name_plural = 'Status History'
        ordering = ['timestamp', 'id']
        indexes = [
            models.Index(fields=['ticket', 'timestamp'], name='ticket_stat_ticket__3e6f0a_idx'),
        ]

    def __str__(self):
        return f"{self.ticket_id[:8]}: {self.from_status or '-'} -> {self.to_status} @ {self.timestamp}"


class EscalationModel(models.Model):
    """
    Escalation record.

    The partial unique constraint keeps at most one unresolved
    escalation per (ticket, type), even when a sweep and a transition
    evaluate the same ticket concurrently.
    """

    id = models.CharField(max_length=36, primary_key=True, editable=False)

    ticket = models.ForeignKey(
        TicketModel,
        on_delete=models.CASCADE,
        related_name='escalations',
    )

    type = models.CharField(max_length=20, choices=_choices(EscalationType))
    level = models.CharField(max_length=2, choices=_choices(EscalationLevel), db_index=True)
    reason = models.TextField()

    created_at = models.DateTimeField(db_index=True)
    resolved = models.BooleanField(default=False, db_index=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'escalations'
        verbose_name = 'Escalation'
        verbose_name_plural = 'Escalations'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['ticket', 'type'],
                condition=models.Q(resolved=False),
                name='unique_open_escalation_per_type',
            ),
        ]

    def __str__(self):
        state = 'resolved' if self.resolved else 'open'
        return f"{self.level}/{self.type} {self.ticket_id[:8]} ({state})"


class AttachmentModel(models.Model):
    """Evidence metadata. Only counts reach the Core."""

    id = models.CharField(max_length=36, primary_key=True, editable=False)

    ticket = models.ForeignKey(
        TicketModel,
        on_delete=models.CASCADE,
        related_name='attachments',
    )

    type = models.CharField(max_length=20, choices=_choices(AttachmentType), db_index=True)
    file_url = models.CharField(max_length=500)
    uploaded_by = models.CharField(max_length=100, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'ticket_attachments'
        verbose_name = 'Attachment'
        verbose_name_plural = 'Attachments'
        ordering = ['created_at']

    def __str__(self):
        return f"{self.type} for {self.ticket_id[:8]}"


class OtpCodeModel(models.Model):
    """
    Completion OTP.

    Only a hash of the code is stored. `used_at` makes codes single use.
    """

    id = models.BigAutoField(primary_key=True)

    ticket = models.ForeignKey(
        TicketModel,
        on_delete=models.CASCADE,
        related_name='otp_codes',
    )

    code_hash = models.CharField(max_length=64)
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'ticket_otp_codes'
        verbose_name = 'OTP Code'
        verbose_name_plural = 'OTP Codes'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['ticket', 'created_at'], name='ticket_otp__ticket__9d0c4b_idx'),
        ]


class DomainEventModel(models.Model):
    """
    Journal of domain events.

    Written in the same transaction as the change each event
    describes. Used for auditing and replay.
    """

    event_id = models.CharField(
        max_length=36,
        primary_key=True,
        help_text="Event UUID"
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Event type (e.g. TicketStatusChangedEvent)"
    )

    aggregate_type = models.CharField(max_length=100, db_index=True)

    aggregate_id = models.CharField(max_length=36, db_index=True)

    event_data = models.JSONField(default=dict)

    version = models.IntegerField(
        default=1,
        help_text="Event schema version"
    )

    sequence = models.BigIntegerField(
        default=0,
        help_text="Position of the event within its aggregate"
    )

    occurred_at = models.DateTimeField()

    recorded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'domain_events'
        verbose_name = 'Domain Event'
        verbose_name_plural = 'Domain Events'
        ordering = ['recorded_at']
        indexes = [
            models.Index(fields=['aggregate_id', 'sequence'], name='domain_even_aggrega_7b2e51_idx'),
            models.Index(fields=['event_type', 'recorded_at'], name='domain_even_event_t_c4a8f3_idx'),
        ]

    def __str__(self):
        return f"{self.event_type} - {self.aggregate_id[:8]} @ {self.occurred_at}"
