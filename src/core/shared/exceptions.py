"""
Domain exceptions for the field service core.

Typed errors let every layer tell a caller exactly why a request
failed, and whether retrying makes sense.

Hierarchy:
    DomainException (base)
    ├── ValidationError (bad input)
    │   └── GuardViolationError (transition precondition not met)
    ├── EntityNotFoundError (entity does not exist)
    ├── BusinessRuleViolationError (business rule broken)
    │   └── InvalidTransitionError (edge not in the lifecycle graph)
    │       └── RoleNotPermittedError (edge exists, role may not use it)
    ├── OtpMismatchOrExpiredError (completion code rejected)
    ├── ConcurrentModificationError (optimistic lock lost)
    └── OperationTimeoutError (collaborator did not answer in time)
        ├── PersistenceTimeoutError
        └── OtpVerificationTimeoutError
"""


class DomainException(Exception):
    """
    Base class for every domain error.

    Attributes:
        message: Human readable description
        code: Stable machine readable code
        retryable: True when the caller may retry the same request

    Example:
        try:
            service.execute(input_dto)
        except DomainException as e:
            logger.info(f"Request rejected: {e.code}")
    """

    retryable = False

    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict:
        """Serializes the exception (used by the API layer)."""
        return {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class ValidationError(DomainException):
    """
    Input data does not meet the minimum requirements.

    Example:
        if len(reason) < 5:
            raise ValidationError("Reason is too short", field="reason")
    """

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)

    def to_dict(self) -> dict:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class GuardViolationError(ValidationError):
    """
    Payload or persisted evidence is insufficient for the target status.

    Permanent for the attempt: the caller must send a corrected payload.

    Attributes:
        field: Payload field (or evidence kind) that failed
        reason: Short description of the failed condition
    """

    def __init__(self, field: str, reason: str):
        self.reason = reason
        super().__init__(f"{field}: {reason}", field=field)
        self.code = "GUARD_VIOLATION"

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["reason"] = self.reason
        return result


class EntityNotFoundError(DomainException):
    """
    Lookup by id returned nothing.

    Example:
        raise EntityNotFoundError(
            f"Ticket {ticket_id} not found",
            entity_type="Ticket",
            entity_id=ticket_id,
        )
    """

    def __init__(self, message: str, entity_type: str = None, entity_id: str = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message, "ENTITY_NOT_FOUND")

    def to_dict(self) -> dict:
        result = super().to_dict()
        if self.entity_type:
            result["entity_type"] = self.entity_type
        if self.entity_id:
            result["entity_id"] = self.entity_id
        return result


class BusinessRuleViolationError(DomainException):
    """
    The operation breaks an established business rule.

    Example:
        if ticket.is_terminal:
            raise BusinessRuleViolationError(
                "Closed tickets cannot receive a completion code",
                rule="OTP_REQUIRES_OPEN_TICKET",
            )
    """

    def __init__(self, message: str, rule: str = None, code: str = None):
        self.rule = rule
        super().__init__(message, code or "BUSINESS_RULE_VIOLATION")

    def to_dict(self) -> dict:
        result = super().to_dict()
        if self.rule:
            result["rule"] = self.rule
        return result


class InvalidTransitionError(BusinessRuleViolationError):
    """
    The requested edge is not part of the lifecycle graph.

    Permanent: surfaced verbatim and never retried automatically.
    """

    def __init__(self, from_status: str, to_status: str, message: str = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Transition {from_status} -> {to_status} is not allowed",
            rule="LIFECYCLE_GRAPH",
            code="INVALID_TRANSITION",
        )

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["from"] = self.from_status
        result["to"] = self.to_status
        return result


class RoleNotPermittedError(InvalidTransitionError):
    """The edge exists but the actor role may not take it."""

    def __init__(self, from_status: str, to_status: str, actor_role: str):
        self.actor_role = actor_role
        super().__init__(
            from_status,
            to_status,
            message=(
                f"Role {actor_role} may not move a ticket "
                f"from {from_status} to {to_status}"
            ),
        )
        self.code = "ROLE_NOT_PERMITTED"

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["actor_role"] = self.actor_role
        return result


class OtpMismatchOrExpiredError(DomainException):
    """
    The completion OTP did not verify.

    Permanent for the attempt; a new code may be issued.
    """

    def __init__(self, message: str = "OTP code is invalid or expired"):
        super().__init__(message, "OTP_MISMATCH_OR_EXPIRED")


class ConcurrentModificationError(DomainException):
    """
    The stored version advanced since the entity was loaded.

    Transient: the caller reloads current state and may retry.

    Example:
        if stored.version != expected_version:
            raise ConcurrentModificationError(ticket.id, expected_version, stored.version)
    """

    retryable = True

    def __init__(self, entity_id: str, expected_version: int, actual_version: int = None):
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Ticket {entity_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})",
            "CONCURRENT_MODIFICATION",
        )

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["expected_version"] = self.expected_version
        result["actual_version"] = self.actual_version
        return result


class OperationTimeoutError(DomainException):
    """A collaborator did not respond in time; nothing was applied."""

    retryable = True

    def __init__(self, message: str, code: str = "OPERATION_TIMEOUT"):
        super().__init__(message, code)


class PersistenceTimeoutError(OperationTimeoutError):
    """The underlying store did not respond in time."""

    def __init__(self, message: str = "Persistence operation timed out"):
        super().__init__(message, "PERSISTENCE_TIMEOUT")


class OtpVerificationTimeoutError(OperationTimeoutError):
    """The OTP collaborator did not answer in time."""

    def __init__(self, message: str = "OTP verification timed out"):
        super().__init__(message, "OTP_VERIFICATION_TIMEOUT")
