"""
Entities of the field service ticket domain.

Entities:
- TicketEntity: aggregate root, one appliance repair request
- StatusHistoryEntry: immutable record of one committed transition
- Escalation: flagged anomaly that needs human attention

Value types:
- TicketStatus, ActorRole, TicketPriority, DeviceType, TimeSlot
- AttachmentType, ConfirmationType, NotFixedReason, WarrantyStatus
- EscalationLevel, EscalationType, Location

Business rules encapsulated here:
- Intake validation when a ticket is created
- Per-stage timestamps and notes applied when a status is entered
- Terminal statuses
- Slot start time used by the SLA breach rule
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, List, Mapping, Optional
import uuid

from src.core.shared.events import utc_now
from src.core.shared.exceptions import ValidationError


class _LookupEnum(Enum):
    """Enum that accepts its name or its value, case insensitive."""

    @classmethod
    def from_string(cls, value: str):
        """
        Converts a string to the enum member.

        Args:
            value: Member name ("ON_ROUTE") or value ("on_route")

        Raises:
            ValueError: If the value matches no member
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid {cls.__name__}: {value!r}")

        try:
            return cls[value.strip().upper()]
        except KeyError:
            pass

        for member in cls:
            if member.value == value.strip().lower():
                return member

        raise ValueError(f"Invalid {cls.__name__}: {value}")


class TicketStatus(_LookupEnum):
    """
    Lifecycle statuses of a ticket.

    Main flow:
        NEW → ASSIGNED → SCHEDULED → ON_ROUTE → ARRIVED → INSPECTING
            → DIAGNOSED → REPAIRING → COMPLETED

    Side flows:
        DIAGNOSED/REPAIRING ⇄ WAITING_PARTS
        DIAGNOSED → PICKUP_DEVICE → IN_WORKSHOP → READY_DELIVERY → COMPLETED
        DIAGNOSED/REPAIRING/WAITING_PARTS → NOT_FIXED

    Terminal: COMPLETED, NOT_FIXED, CANCELLED
    """

    NEW = "new"
    ASSIGNED = "assigned"
    SCHEDULED = "scheduled"
    ON_ROUTE = "on_route"
    ARRIVED = "arrived"
    INSPECTING = "inspecting"
    DIAGNOSED = "diagnosed"
    REPAIRING = "repairing"
    WAITING_PARTS = "waiting_parts"
    PICKUP_DEVICE = "pickup_device"
    IN_WORKSHOP = "in_workshop"
    READY_DELIVERY = "ready_delivery"
    COMPLETED = "completed"
    NOT_FIXED = "not_fixed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {TicketStatus.COMPLETED, TicketStatus.NOT_FIXED, TicketStatus.CANCELLED}
)


class ActorRole(_LookupEnum):
    """Roles that may act on a ticket."""

    CUSTOMER = "customer"
    DISPATCHER = "dispatcher"
    TECHNICIAN = "technician"
    WORKSHOP = "workshop"
    ADMIN = "admin"


class TicketPriority(_LookupEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class DeviceType(_LookupEnum):
    AC = "ac"
    WASHER = "washer"
    FRIDGE = "fridge"
    OVEN = "oven"
    DISHWASHER = "dishwasher"
    OTHER = "other"


class TimeSlot(_LookupEnum):
    """
    Visit windows offered to customers.

    MORNING: 08:00-12:00
    NOON: 12:00-17:00
    EVENING: 17:00-23:00
    """

    MORNING = "morning"
    NOON = "noon"
    EVENING = "evening"

    @property
    def start_time(self) -> time:
        return {
            TimeSlot.MORNING: time(8, 0),
            TimeSlot.NOON: time(12, 0),
            TimeSlot.EVENING: time(17, 0),
        }[self]

    @property
    def end_time(self) -> time:
        return {
            TimeSlot.MORNING: time(12, 0),
            TimeSlot.NOON: time(17, 0),
            TimeSlot.EVENING: time(23, 0),
        }[self]


class AttachmentType(_LookupEnum):
    BEFORE_INSPECTION = "before_inspection"
    AFTER_REPAIR = "after_repair"
    SERIAL_PHOTO = "serial_photo"
    INVOICE_PHOTO = "invoice_photo"
    PARTS_PHOTO = "parts_photo"
    DEVICE_PHOTO = "device_photo"
    SIGNATURE = "signature"
    OTHER = "other"


class ConfirmationType(_LookupEnum):
    """How the customer confirms a completed repair."""

    SIGNATURE = "signature"
    OTP = "otp"


class NotFixedReason(_LookupEnum):
    """Closed set of reason codes for NOT_FIXED."""

    CUSTOMER_UNAVAILABLE = "customer_unavailable"
    CUSTOMER_REFUSED_COST = "customer_refused_cost"
    OUT_OF_SERVICE_AREA = "out_of_service_area"
    DEVICE_UNREPAIRABLE = "device_unrepairable"
    PARTS_UNAVAILABLE = "parts_unavailable"
    ELECTRICAL_ISSUE = "electrical_issue"
    CUSTOMER_CANCELLED = "customer_cancelled"
    ACCESS_DENIED = "access_denied"
    SAFETY_CONCERN = "safety_concern"
    OTHER = "other"

    @classmethod
    def codes(cls) -> frozenset:
        return frozenset(member.value for member in cls)


class WarrantyStatus(_LookupEnum):
    UNKNOWN = "unknown"
    IN_WARRANTY = "in_warranty"
    OUT_OF_WARRANTY = "out_of_warranty"


class EscalationLevel(_LookupEnum):
    L1 = "l1"
    L2 = "l2"
    L3 = "l3"


class EscalationType(_LookupEnum):
    ASSIGNMENT_DELAY = "assignment_delay"
    SLA_BREACH = "sla_breach"
    REPEAT_FAILURE = "repeat_failure"
    STUCK_STATE = "stuck_state"

    @property
    def level(self) -> EscalationLevel:
        return {
            EscalationType.ASSIGNMENT_DELAY: EscalationLevel.L1,
            EscalationType.SLA_BREACH: EscalationLevel.L1,
            EscalationType.REPEAT_FAILURE: EscalationLevel.L2,
            EscalationType.STUCK_STATE: EscalationLevel.L3,
        }[self]


@dataclass(frozen=True)
class Location:
    """A discrete GPS snapshot taken when a transition is requested."""

    latitude: float
    longitude: float

    @staticmethod
    def is_coordinate(value: Any) -> bool:
        # bool is an int subclass but never a coordinate
        return isinstance(value, (int, float)) and not isinstance(value, bool)

    @classmethod
    def from_payload(cls, value: Any) -> Optional["Location"]:
        """
        Builds a Location from a payload mapping.

        Returns:
            None unless both latitude and longitude are numeric
        """
        if not isinstance(value, Mapping):
            return None
        latitude = value.get("latitude")
        longitude = value.get("longitude")
        if not (cls.is_coordinate(latitude) and cls.is_coordinate(longitude)):
            return None
        return cls(latitude=float(latitude), longitude=float(longitude))


# Timestamp stamped on the ticket when a status is entered
STAGE_TIMESTAMPS = {
    TicketStatus.SCHEDULED: "scheduled_set_at",
    TicketStatus.ON_ROUTE: "trip_started_at",
    TicketStatus.ARRIVED: "arrived_at",
    TicketStatus.INSPECTING: "inspection_started_at",
    TicketStatus.DIAGNOSED: "diagnosed_at",
    TicketStatus.REPAIRING: "repair_started_at",
    TicketStatus.COMPLETED: "completed_at",
    TicketStatus.NOT_FIXED: "closed_at",
    TicketStatus.CANCELLED: "closed_at",
}


@dataclass
class TicketEntity:
    """
    Domain entity: Ticket.

    One appliance repair request tracked from intake to resolution.
    The current status is the single source of truth for where the
    ticket is; `version` is the optimistic locking counter bumped by
    the repository on every successful save.

    Invariants:
    - Customer name has at least 2 characters
    - Customer phone is present
    - A ticket is born in NEW and never hard deleted
    - Terminal tickets accept no ordinary transition

    Example:
        ticket = TicketEntity.create(
            customer_name="Maria Souza",
            customer_phone="+5511999990000",
            customer_address="Rua A, 10",
            device_type=DeviceType.WASHER,
        )
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ticket_number: str = ""

    status: TicketStatus = TicketStatus.NEW
    priority: TicketPriority = TicketPriority.NORMAL
    device_type: DeviceType = DeviceType.OTHER
    problem_description: str = ""

    # Customer
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    customer_latitude: Optional[float] = None
    customer_longitude: Optional[float] = None

    # Assignment and schedule
    technician_id: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_slot: Optional[TimeSlot] = None

    # Work notes
    diagnosis_notes: Optional[str] = None
    repair_notes: Optional[str] = None
    internal_notes: Optional[str] = None
    not_fixed_reasons: List[str] = field(default_factory=list)
    pickup_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    confirmation_type: Optional[ConfirmationType] = None

    # Warranty
    warranty_status: WarrantyStatus = WarrantyStatus.UNKNOWN
    warranty_expires_at: Optional[date] = None

    # Stage timestamps
    scheduled_set_at: Optional[datetime] = None
    trip_started_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    inspection_started_at: Optional[datetime] = None
    diagnosed_at: Optional[datetime] = None
    repair_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    version: int = 0

    CUSTOMER_NAME_MIN_LENGTH = 2

    @classmethod
    def create(
        cls,
        customer_name: str,
        customer_phone: str,
        customer_address: str,
        device_type: DeviceType = DeviceType.OTHER,
        priority: TicketPriority = TicketPriority.NORMAL,
        problem_description: str = "",
        ticket_number: str = None,
        customer_latitude: float = None,
        customer_longitude: float = None,
        warranty_status: WarrantyStatus = WarrantyStatus.UNKNOWN,
        warranty_expires_at: date = None,
        created_at: datetime = None,
    ) -> "TicketEntity":
        """
        Factory used by intake: validates and builds a NEW ticket.

        Raises:
            ValidationError: If customer data is missing or invalid
        """
        name = (customer_name or "").strip()
        if len(name) < cls.CUSTOMER_NAME_MIN_LENGTH:
            raise ValidationError(
                f"Customer name must have at least "
                f"{cls.CUSTOMER_NAME_MIN_LENGTH} characters",
                field="customer_name",
            )

        phone = (customer_phone or "").strip()
        if not phone:
            raise ValidationError("Customer phone is required", field="customer_phone")

        created_at = created_at or utc_now()
        ticket_id = str(uuid.uuid4())
        return cls(
            id=ticket_id,
            ticket_number=ticket_number or cls.generate_ticket_number(created_at, ticket_id),
            status=TicketStatus.NEW,
            priority=priority,
            device_type=device_type,
            problem_description=(problem_description or "").strip(),
            customer_name=name,
            customer_phone=phone,
            customer_address=(customer_address or "").strip(),
            customer_latitude=customer_latitude,
            customer_longitude=customer_longitude,
            warranty_status=warranty_status,
            warranty_expires_at=warranty_expires_at,
            created_at=created_at,
            updated_at=created_at,
        )

    @staticmethod
    def generate_ticket_number(created_at: datetime, ticket_id: str) -> str:
        """Human friendly number, e.g. FS-20260115-1A2B3C."""
        return f"FS-{created_at:%Y%m%d}-{ticket_id.replace('-', '')[:6].upper()}"

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def slot_start(self, tz) -> Optional[datetime]:
        """
        Start of the scheduled visit window as an aware datetime.

        Args:
            tz: tzinfo of the service area

        Returns:
            None when the ticket has no schedule yet
        """
        if self.scheduled_date is None or self.scheduled_slot is None:
            return None
        return datetime.combine(self.scheduled_date, self.scheduled_slot.start_time, tzinfo=tz)

    def enter_status(
        self,
        to_status: TicketStatus,
        payload: Mapping[str, Any],
        at: datetime,
    ) -> None:
        """
        Applies a validated transition to the entity.

        Sets the status, stamps the stage timestamp and copies the
        domain data carried by the payload. The caller is responsible
        for legality and guards; this method only records the result.

        Args:
            to_status: Status being entered
            payload: Transition payload (already guard checked)
            at: Commit timestamp
        """
        self.status = to_status
        self.updated_at = at

        stamp = STAGE_TIMESTAMPS.get(to_status)
        if stamp:
            setattr(self, stamp, at)

        if to_status == TicketStatus.ASSIGNED:
            self.technician_id = str(payload["technician_id"]).strip()
        elif to_status == TicketStatus.SCHEDULED:
            self.scheduled_date = _as_date(payload["scheduled_date"])
            self.scheduled_slot = TimeSlot.from_string(payload["time_slot"])
        elif to_status == TicketStatus.DIAGNOSED:
            self.diagnosis_notes = payload["diagnosis_notes"].strip()
        elif to_status in (TicketStatus.REPAIRING, TicketStatus.COMPLETED):
            if payload.get("repair_notes"):
                self.repair_notes = str(payload["repair_notes"]).strip()

        if to_status == TicketStatus.COMPLETED:
            self.confirmation_type = ConfirmationType.from_string(payload["confirmation_type"])
        elif to_status == TicketStatus.NOT_FIXED:
            self.not_fixed_reasons = [
                NotFixedReason.from_string(code).value for code in payload["reasons"]
            ]
            if payload.get("notes"):
                self.internal_notes = str(payload["notes"]).strip()
        elif to_status == TicketStatus.PICKUP_DEVICE:
            self.pickup_reason = payload["reason"].strip()
        elif to_status == TicketStatus.CANCELLED:
            self.cancellation_reason = payload["reason"].strip()

    def force_status(self, to_status: TicketStatus, at: datetime) -> None:
        """
        Sets the status without any payload (administrative override).

        Reopening clears the closing timestamp.
        """
        self.status = to_status
        self.updated_at = at
        if to_status.is_terminal:
            setattr(self, STAGE_TIMESTAMPS[to_status], at)
        else:
            self.closed_at = None
            self.completed_at = None

    def __eq__(self, other) -> bool:
        if not isinstance(other, TicketEntity):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        return f"Ticket({self.ticket_number or self.id[:8]}, {self.status.value})"


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@dataclass(frozen=True)
class StatusHistoryEntry:
    """
    One committed status change.

    Immutable once written. Ordering by timestamp defines the ticket's
    lifecycle and is the only source for "time in current state".

    Attributes:
        from_status: None for the intake entry
        is_override: True for administrative corrections
        latitude/longitude: Location snapshot sent with the request
    """

    ticket_id: str
    from_status: Optional[TicketStatus]
    to_status: TicketStatus
    actor_id: str
    actor_role: ActorRole
    timestamp: datetime
    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_override: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class Escalation:
    """
    A flagged anomaly for one ticket.

    At most one unresolved escalation per (ticket_id, type) exists at
    any time. Resolution happens automatically when the ticket leaves
    the offending condition.
    """

    ticket_id: str
    type: EscalationType
    reason: str
    created_at: datetime
    level: EscalationLevel = None
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if self.level is None:
            self.level = self.type.level

    def resolve(self, at: datetime) -> None:
        self.resolved = True
        self.resolved_at = at
