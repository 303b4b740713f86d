"""
Domain Events - decoupled communication out of the core.

A domain event records something that already happened. Events are
buffered by the Unit of Work and only published after a successful
commit, so consumers (notifications, journals) never observe state
that was rolled back.

Characteristics:
- Immutable facts, named in the past tense
- Auto generated id and UTC timestamp
- Serializable for the message broker and the event journal
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Tuple
import uuid


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class DomainEvent(ABC):
    """
    Abstract base class for domain events.

    Attributes:
        event_id: Unique event identifier
        aggregate_id: Id of the aggregate that produced the event
        occurred_at: When the event happened
        version: Event schema version

    Example:
        @dataclass
        class TicketStatusChangedEvent(DomainEvent):
            from_status: str = ""
            to_status: str = ""

            @property
            def aggregate_type(self) -> str:
                return "Ticket"
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    aggregate_id: str = ""
    occurred_at: datetime = field(default_factory=utc_now)
    version: int = 1

    # Fields masked by to_log_dict
    sensitive_fields: ClassVar[Tuple[str, ...]] = ()

    def __post_init__(self):
        if not self.aggregate_id:
            raise ValueError("aggregate_id is required")

    @property
    @abstractmethod
    def aggregate_type(self) -> str:
        """Name of the aggregate type (e.g. "Ticket")."""
        ...

    @property
    def event_type(self) -> str:
        """Event type name (the class name)."""
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """
        Serializes the event.

        Used for the broker payload and the event journal.
        """
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
            "occurred_at": self.occurred_at.isoformat(),
            "version": self.version,
            "data": self._get_event_data(),
        }

    def to_log_dict(self) -> Dict[str, Any]:
        """Like to_dict, with sensitive fields masked."""
        data = self.to_dict()
        data["data"] = {
            key: ("***" if key in self.sensitive_fields else value)
            for key, value in data["data"].items()
        }
        return data

    def _get_event_data(self) -> Dict[str, Any]:
        """
        Event specific fields.

        Defaults to every dataclass field that is not part of the base.
        """
        base_fields = {"event_id", "aggregate_id", "occurred_at", "version"}
        return {
            key: value
            for key, value in self.__dict__.items()
            if key not in base_fields and not key.startswith("_")
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DomainEvent":
        """Rebuilds an event serialized with `to_dict`."""
        event_data = data.get("data", {})
        return cls(
            event_id=data.get("event_id", str(uuid.uuid4())),
            aggregate_id=data["aggregate_id"],
            occurred_at=datetime.fromisoformat(data["occurred_at"]),
            version=data.get("version", 1),
            **event_data,
        )

    def __repr__(self) -> str:
        return (
            f"{self.event_type}("
            f"event_id={self.event_id[:8]}..., "
            f"aggregate_id={self.aggregate_id}, "
            f"occurred_at={self.occurred_at.isoformat()}"
            f")"
        )
