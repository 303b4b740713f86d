"""
Guard Evaluator - per-target-status preconditions.

Guards are one declarative table keyed by target status. A single
evaluator runs them, so no entry point can skip a guard meant for
another. Rules are evaluated in declaration order and evaluation
stops at the first failure, which is reported as
GuardViolationError(field, reason).

Rules only read the request payload and persisted evidence counts;
evaluating them has no side effects, so they can run speculatively
(e.g. to show which next actions are ready). The only check that
touches a collaborator with state, OTP verification, lives apart in
`GuardEvaluator.confirm` and runs only for real transitions.
"""

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import logging

from src.core.shared.events import utc_now
from src.core.shared.exceptions import (
    GuardViolationError,
    OtpMismatchOrExpiredError,
    OtpVerificationTimeoutError,
)

from .entities import (
    AttachmentType,
    ConfirmationType,
    Location,
    NotFixedReason,
    TicketEntity,
    TicketStatus,
    TimeSlot,
)
from .ports import AttachmentCounter, Clock, OtpService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardContext:
    """Everything a rule may look at."""

    ticket: TicketEntity
    to_status: TicketStatus
    payload: Mapping[str, Any]
    attachments: AttachmentCounter
    today: date

    @property
    def payload_photos(self) -> List[Any]:
        photos = self.payload.get("photos")
        return list(photos) if isinstance(photos, (list, tuple)) else []

    def count_attachments(self, attachment_type: Optional[AttachmentType] = None) -> int:
        return self.attachments.count_attachments(self.ticket.id, attachment_type)


# A check returns None when satisfied, otherwise the failure reason
Check = Callable[[GuardContext], Optional[str]]


@dataclass(frozen=True)
class GuardRule:
    name: str
    field: str
    check: Check

    def evaluate(self, ctx: GuardContext) -> Optional[GuardViolationError]:
        reason = self.check(ctx)
        if reason is None:
            return None
        return GuardViolationError(self.field, reason)


# =============================================================================
# Rule builders
# =============================================================================

def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def require_location() -> GuardRule:
    def check(ctx: GuardContext) -> Optional[str]:
        if Location.from_payload(ctx.payload.get("location")) is None:
            return "numeric latitude and longitude required"
        return None

    return GuardRule("location", "location", check)


def require_min_length(field_name: str, minimum: int) -> GuardRule:
    def check(ctx: GuardContext) -> Optional[str]:
        if len(_text(ctx.payload.get(field_name))) < minimum:
            return f"must have at least {minimum} characters"
        return None

    return GuardRule(f"{field_name}_min_length", field_name, check)


def _is_identifier(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, int) or bool(_text(value))


def require_present(field_name: str) -> GuardRule:
    """Non-blank string or integer id."""

    def check(ctx: GuardContext) -> Optional[str]:
        if not _is_identifier(ctx.payload.get(field_name)):
            return "required"
        return None

    return GuardRule(f"{field_name}_present", field_name, check)


def require_photos(minimum: int) -> GuardRule:
    def check(ctx: GuardContext) -> Optional[str]:
        if len(ctx.payload_photos) < minimum:
            return f"at least {minimum} required"
        return None

    return GuardRule("photos", "photos", check)


def require_typed_evidence(attachment_type: AttachmentType, minimum: int = 1) -> GuardRule:
    """Persisted attachments of one type plus photos sent with the request."""

    def check(ctx: GuardContext) -> Optional[str]:
        found = ctx.count_attachments(attachment_type) + len(ctx.payload_photos)
        if found < minimum:
            return f"at least {minimum} {attachment_type.value} attachment required"
        return None

    return GuardRule(f"{attachment_type.value}_evidence", "attachments", check)


def require_before_inspection_evidence(minimum: int = 1) -> GuardRule:
    return require_typed_evidence(AttachmentType.BEFORE_INSPECTION, minimum)


def require_parts() -> GuardRule:
    """At least one requested part, each with a name."""

    def check(ctx: GuardContext) -> Optional[str]:
        parts = ctx.payload.get("parts")
        if not isinstance(parts, (list, tuple)) or len(parts) < 1:
            return "at least 1 part required"
        for index, part in enumerate(parts):
            if not isinstance(part, Mapping) or not _text(part.get("name")):
                return f"part {index + 1}: name required"
        return None

    return GuardRule("parts", "parts", check)


def require_total_attachments(minimum: int) -> GuardRule:
    def check(ctx: GuardContext) -> Optional[str]:
        found = ctx.count_attachments() + len(ctx.payload_photos)
        if found < minimum:
            return f"at least {minimum} attachments required, found {found}"
        return None

    return GuardRule("total_attachments", "attachments", check)


def _confirmation_of(payload: Mapping[str, Any]) -> Optional[ConfirmationType]:
    try:
        return ConfirmationType.from_string(payload.get("confirmation_type"))
    except ValueError:
        return None


def _confirmation(ctx: GuardContext) -> Optional[ConfirmationType]:
    return _confirmation_of(ctx.payload)


def require_confirmation() -> GuardRule:
    def check(ctx: GuardContext) -> Optional[str]:
        if _confirmation(ctx) is None:
            allowed = ", ".join(c.value for c in ConfirmationType)
            return f"must be one of {allowed}"
        return None

    return GuardRule("confirmation_type", "confirmation_type", check)


def require_confirmation_proof() -> GuardRule:
    """Signature data or OTP code, depending on the confirmation type."""

    def check(ctx: GuardContext) -> Optional[str]:
        confirmation = _confirmation(ctx)
        if confirmation == ConfirmationType.SIGNATURE and not _text(ctx.payload.get("signature")):
            return "signature required"
        if confirmation == ConfirmationType.OTP and not _text(ctx.payload.get("otp")):
            return "otp code required"
        return None

    def field_for(ctx: GuardContext) -> str:
        return "otp" if _confirmation(ctx) == ConfirmationType.OTP else "signature"

    return _DynamicFieldRule("confirmation_proof", "signature", check, field_for)


@dataclass(frozen=True)
class _DynamicFieldRule(GuardRule):
    """Rule whose reported field depends on the payload."""

    field_for: Callable[[GuardContext], str] = None

    def evaluate(self, ctx: GuardContext) -> Optional[GuardViolationError]:
        reason = self.check(ctx)
        if reason is None:
            return None
        return GuardViolationError(self.field_for(ctx), reason)


def require_not_fixed_reasons() -> GuardRule:
    allowed = NotFixedReason.codes()

    def check(ctx: GuardContext) -> Optional[str]:
        reasons = ctx.payload.get("reasons")
        if not isinstance(reasons, (list, tuple)) or len(reasons) < 1:
            return "at least 1 required"
        unknown = [
            str(code) for code in reasons
            if not isinstance(code, str) or code not in allowed
        ]
        if unknown:
            return f"unknown reason codes: {', '.join(unknown)}"
        return None

    return GuardRule("not_fixed_reasons", "reasons", check)


def require_customer_acknowledgement() -> GuardRule:
    def check(ctx: GuardContext) -> Optional[str]:
        if ctx.payload.get("customer_acknowledged") is not True:
            return "customer acknowledgement required"
        return None

    return GuardRule("customer_acknowledged", "customer_acknowledged", check)


def require_schedule_date() -> GuardRule:
    def check(ctx: GuardContext) -> Optional[str]:
        raw = ctx.payload.get("scheduled_date")
        try:
            scheduled = raw if isinstance(raw, date) else date.fromisoformat(str(raw))
        except ValueError:
            return "valid ISO date required"
        if isinstance(scheduled, datetime):
            scheduled = scheduled.date()
        if scheduled < ctx.today:
            return "cannot be in the past"
        return None

    return GuardRule("scheduled_date", "scheduled_date", check)


def require_time_slot() -> GuardRule:
    def check(ctx: GuardContext) -> Optional[str]:
        try:
            TimeSlot.from_string(ctx.payload.get("time_slot"))
        except ValueError:
            allowed = ", ".join(s.value for s in TimeSlot)
            return f"must be one of {allowed}"
        return None

    return GuardRule("time_slot", "time_slot", check)


# =============================================================================
# Rule table
# =============================================================================

S = TicketStatus

GUARD_RULES: Dict[TicketStatus, Tuple[GuardRule, ...]] = {
    S.ASSIGNED: (require_present("technician_id"),),
    S.SCHEDULED: (require_schedule_date(), require_time_slot()),
    S.ON_ROUTE: (require_location(),),
    S.ARRIVED: (require_location(),),
    S.INSPECTING: (require_before_inspection_evidence(1), require_photos(1)),
    S.DIAGNOSED: (require_min_length("diagnosis_notes", 10),),
    S.WAITING_PARTS: (require_parts(), require_typed_evidence(AttachmentType.SERIAL_PHOTO, 1)),
    S.REPAIRING: (require_location(),),
    S.COMPLETED: (
        require_location(),
        require_total_attachments(3),
        require_confirmation(),
        require_confirmation_proof(),
    ),
    S.NOT_FIXED: (require_not_fixed_reasons(),),
    S.PICKUP_DEVICE: (require_customer_acknowledgement(), require_min_length("reason", 10)),
    S.CANCELLED: (require_min_length("reason", 5),),
}


class GuardEvaluator:
    """
    Runs the rule table for a target status.

    Example:
        evaluator = GuardEvaluator(attachment_counter, otp_service)
        evaluator.evaluate(ticket, TicketStatus.DIAGNOSED, {"diagnosis_notes": "..."})
    """

    def __init__(
        self,
        attachments: AttachmentCounter,
        otp_service: OtpService = None,
        clock: Clock = utc_now,
        tz: tzinfo = None,
        rules: Dict[TicketStatus, Tuple[GuardRule, ...]] = None,
    ):
        """
        Args:
            attachments: Evidence count collaborator
            otp_service: OTP collaborator, required to confirm OTP completions
            clock: Source of "now" (date checks)
            tz: Service area time zone used for "today"; UTC when omitted
            rules: Rule table override (tests)
        """
        self._attachments = attachments
        self._otp_service = otp_service
        self._clock = clock
        self._tz = tz
        self._rules = rules if rules is not None else GUARD_RULES

    def rules_for(self, to_status: TicketStatus) -> Tuple[GuardRule, ...]:
        return self._rules.get(to_status, ())

    def check(
        self,
        ticket: TicketEntity,
        to_status: TicketStatus,
        payload: Mapping[str, Any],
    ) -> Optional[GuardViolationError]:
        """
        First failing rule for the target, or None when all pass.

        Side-effect-free; safe for speculative use.
        """
        now = self._clock()
        today = now.astimezone(self._tz).date() if self._tz else now.date()
        ctx = GuardContext(
            ticket=ticket,
            to_status=to_status,
            payload=payload or {},
            attachments=self._attachments,
            today=today,
        )
        for rule in self.rules_for(to_status):
            violation = rule.evaluate(ctx)
            if violation is not None:
                return violation
        return None

    def evaluate(
        self,
        ticket: TicketEntity,
        to_status: TicketStatus,
        payload: Mapping[str, Any],
    ) -> None:
        """
        Raises the first violation.

        Raises:
            GuardViolationError: If any rule for the target fails
        """
        violation = self.check(ticket, to_status, payload)
        if violation is not None:
            logger.info(
                f"Guard failed for ticket {ticket.id} -> {to_status.value}: "
                f"{violation.field} ({violation.reason})"
            )
            raise violation

    def confirm(
        self,
        ticket: TicketEntity,
        to_status: TicketStatus,
        payload: Mapping[str, Any],
    ) -> None:
        """
        Verifies the OTP of an OTP-confirmed completion.

        Must run after `evaluate` passed; no-op for any other request.

        Raises:
            OtpMismatchOrExpiredError: Code wrong, used or older than its TTL
            OtpVerificationTimeoutError: Collaborator did not answer in time
        """
        if to_status != TicketStatus.COMPLETED:
            return
        if _confirmation_of(payload) != ConfirmationType.OTP:
            return
        if self._otp_service is None:
            raise OtpMismatchOrExpiredError("OTP verification is not available")

        try:
            verified = self._otp_service.verify_otp(ticket.id, _text(payload.get("otp")))
        except TimeoutError as e:
            raise OtpVerificationTimeoutError() from e

        if not verified:
            logger.info(f"OTP rejected for ticket {ticket.id}")
            raise OtpMismatchOrExpiredError()
