"""
Mappers between Core entities and Django models.

Responsibilities:
- TicketEntity <-> TicketModel
- StatusHistoryEntry <-> TicketStatusHistoryModel
- Escalation <-> EscalationModel
- DomainEvent -> DomainEventModel (event journal)

Principles:
- Stateless
- No business logic, only data conversion
- The ORM never leaks into the Core
"""

from typing import Any, Dict, List

from src.core.shared.events import DomainEvent
from src.core.tickets.entities import (
    ActorRole,
    ConfirmationType,
    DeviceType,
    Escalation,
    EscalationLevel,
    EscalationType,
    StatusHistoryEntry,
    TicketEntity,
    TicketPriority,
    TicketStatus,
    TimeSlot,
    WarrantyStatus,
)

from .models import (
    DomainEventModel,
    EscalationModel,
    TicketModel,
    TicketStatusHistoryModel,
)


class TicketMapper:
    """
    TicketEntity <-> TicketModel.

    - to_fields(): Entity -> column values (used by conditional updates)
    - to_model(): Entity -> Model
    - to_entity(): Model -> Entity
    """

    @staticmethod
    def to_fields(entity: TicketEntity) -> Dict[str, Any]:
        """Every mutable column, without `id` and `version`."""
        return {
            'ticket_number': entity.ticket_number,
            'status': entity.status.value,
            'priority': entity.priority.value,
            'device_type': entity.device_type.value,
            'problem_description': entity.problem_description,
            'customer_name': entity.customer_name,
            'customer_phone': entity.customer_phone,
            'customer_address': entity.customer_address,
            'customer_latitude': entity.customer_latitude,
            'customer_longitude': entity.customer_longitude,
            'technician_id': entity.technician_id,
            'scheduled_date': entity.scheduled_date,
            'scheduled_slot': entity.scheduled_slot.value if entity.scheduled_slot else None,
            'diagnosis_notes': entity.diagnosis_notes,
            'repair_notes': entity.repair_notes,
            'internal_notes': entity.internal_notes,
            'not_fixed_reasons': list(entity.not_fixed_reasons),
            'pickup_reason': entity.pickup_reason,
            'cancellation_reason': entity.cancellation_reason,
            'confirmation_type': entity.confirmation_type.value if entity.confirmation_type else None,
            'warranty_status': entity.warranty_status.value,
            'warranty_expires_at': entity.warranty_expires_at,
            'scheduled_set_at': entity.scheduled_set_at,
            'trip_started_at': entity.trip_started_at,
            'arrived_at': entity.arrived_at,
            'inspection_started_at': entity.inspection_started_at,
            'diagnosed_at': entity.diagnosed_at,
            'repair_started_at': entity.repair_started_at,
            'completed_at': entity.completed_at,
            'closed_at': entity.closed_at,
            'created_at': entity.created_at,
            'updated_at': entity.updated_at,
        }

    @staticmethod
    def to_model(entity: TicketEntity) -> TicketModel:
        """
        Builds an unsaved model.

        Note:
            Does not call .save(); that is the repository's job
        """
        return TicketModel(id=entity.id, version=entity.version, **TicketMapper.to_fields(entity))

    @staticmethod
    def to_entity(model: TicketModel) -> TicketEntity:
        """
        Rebuilds the entity from a stored row.

        Note:
            Bypasses TicketEntity.create: stored data was validated
            at intake
        """
        return TicketEntity(
            id=model.id,
            ticket_number=model.ticket_number,
            status=TicketStatus(model.status),
            priority=TicketPriority(model.priority),
            device_type=DeviceType(model.device_type),
            problem_description=model.problem_description,
            customer_name=model.customer_name,
            customer_phone=model.customer_phone,
            customer_address=model.customer_address,
            customer_latitude=model.customer_latitude,
            customer_longitude=model.customer_longitude,
            technician_id=model.technician_id,
            scheduled_date=model.scheduled_date,
            scheduled_slot=TimeSlot(model.scheduled_slot) if model.scheduled_slot else None,
            diagnosis_notes=model.diagnosis_notes,
            repair_notes=model.repair_notes,
            internal_notes=model.internal_notes,
            not_fixed_reasons=list(model.not_fixed_reasons or []),
            pickup_reason=model.pickup_reason,
            cancellation_reason=model.cancellation_reason,
            confirmation_type=(
                ConfirmationType(model.confirmation_type) if model.confirmation_type else None
            ),
            warranty_status=WarrantyStatus(model.warranty_status),
            warranty_expires_at=model.warranty_expires_at,
            scheduled_set_at=model.scheduled_set_at,
            trip_started_at=model.trip_started_at,
            arrived_at=model.arrived_at,
            inspection_started_at=model.inspection_started_at,
            diagnosed_at=model.diagnosed_at,
            repair_started_at=model.repair_started_at,
            completed_at=model.completed_at,
            closed_at=model.closed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            version=model.version,
        )

    @staticmethod
    def to_entity_list(models: List[TicketModel]) -> List[TicketEntity]:
        return [TicketMapper.to_entity(model) for model in models]


class StatusHistoryMapper:
    """StatusHistoryEntry <-> TicketStatusHistoryModel."""

    @staticmethod
    def to_model(entry: StatusHistoryEntry) -> TicketStatusHistoryModel:
        return TicketStatusHistoryModel(
            entry_id=entry.id,
            ticket_id=entry.ticket_id,
            from_status=entry.from_status.value if entry.from_status else None,
            to_status=entry.to_status.value,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role.value,
            timestamp=entry.timestamp,
            notes=entry.notes,
            latitude=entry.latitude,
            longitude=entry.longitude,
            is_override=entry.is_override,
        )

    @staticmethod
    def to_entity(model: TicketStatusHistoryModel) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            id=model.entry_id,
            ticket_id=model.ticket_id,
            from_status=TicketStatus(model.from_status) if model.from_status else None,
            to_status=TicketStatus(model.to_status),
            actor_id=model.actor_id,
            actor_role=ActorRole(model.actor_role),
            timestamp=model.timestamp,
            notes=model.notes,
            latitude=model.latitude,
            longitude=model.longitude,
            is_override=model.is_override,
        )


class EscalationMapper:
    """Escalation <-> EscalationModel."""

    @staticmethod
    def to_model(escalation: Escalation) -> EscalationModel:
        return EscalationModel(
            id=escalation.id,
            ticket_id=escalation.ticket_id,
            type=escalation.type.value,
            level=escalation.level.value,
            reason=escalation.reason,
            created_at=escalation.created_at,
            resolved=escalation.resolved,
            resolved_at=escalation.resolved_at,
        )

    @staticmethod
    def to_entity(model: EscalationModel) -> Escalation:
        return Escalation(
            id=model.id,
            ticket_id=model.ticket_id,
            type=EscalationType(model.type),
            level=EscalationLevel(model.level),
            reason=model.reason,
            created_at=model.created_at,
            resolved=model.resolved,
            resolved_at=model.resolved_at,
        )


class DomainEventMapper:
    """
    DomainEvent -> DomainEventModel, for the event journal.

    Stores the masked data (`to_log_dict`): OTP codes never reach
    the journal.
    """

    @staticmethod
    def to_model(event: DomainEvent, sequence: int = 0) -> DomainEventModel:
        return DomainEventModel(
            event_id=event.event_id,
            event_type=event.event_type,
            aggregate_type=event.aggregate_type,
            aggregate_id=event.aggregate_id,
            event_data=event.to_log_dict()["data"],
            version=event.version,
            sequence=sequence,
            occurred_at=event.occurred_at,
        )

    @staticmethod
    def to_dict(model: DomainEventModel) -> Dict[str, Any]:
        return {
            'event_id': model.event_id,
            'event_type': model.event_type,
            'aggregate_type': model.aggregate_type,
            'aggregate_id': model.aggregate_id,
            'occurred_at': model.occurred_at.isoformat(),
            'version': model.version,
            'sequence': model.sequence,
            'data': model.event_data,
        }
