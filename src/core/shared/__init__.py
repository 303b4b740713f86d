"""
Shared domain components.

Used by every domain:
- Domain exceptions
- Interfaces (Ports)
- Base class for Domain Events
"""

from .exceptions import (
    DomainException,
    ValidationError,
    GuardViolationError,
    EntityNotFoundError,
    BusinessRuleViolationError,
    InvalidTransitionError,
    RoleNotPermittedError,
    OtpMismatchOrExpiredError,
    ConcurrentModificationError,
    OperationTimeoutError,
    PersistenceTimeoutError,
    OtpVerificationTimeoutError,
)
from .events import DomainEvent, utc_now
from .interfaces import UnitOfWork, EventPublisher, EventStore

__all__ = [
    "DomainException",
    "ValidationError",
    "GuardViolationError",
    "EntityNotFoundError",
    "BusinessRuleViolationError",
    "InvalidTransitionError",
    "RoleNotPermittedError",
    "OtpMismatchOrExpiredError",
    "ConcurrentModificationError",
    "OperationTimeoutError",
    "PersistenceTimeoutError",
    "OtpVerificationTimeoutError",
    "DomainEvent",
    "utc_now",
    "UnitOfWork",
    "EventPublisher",
    "EventStore",
]
