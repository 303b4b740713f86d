"""
JSON API views of the ticket domain.

Endpoints:
- GET /tickets/api/<id>/ - Ticket detail
- POST /tickets/api/<id>/transitions/ - Request a status transition
- GET /tickets/api/<id>/history/ - Transition history
- GET /tickets/api/<id>/allowed-transitions/?role= - Next allowed actions
- POST /tickets/api/<id>/override/ - Administrative status override
- POST /tickets/api/<id>/completion-otp/ - Issue a completion OTP
- GET /tickets/api/escalations/ - Open escalations
- POST /tickets/api/escalations/sweep/ - Run an escalation sweep

Format:
- Input: JSON
- Output: JSON shaped {success, data/error, meta}

Authentication is handled upstream; the acting user and role travel
in the request body (`actor_id`, `actor_role`).
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from django.http import HttpRequest, JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from src.core.shared.exceptions import (
    BusinessRuleViolationError,
    ConcurrentModificationError,
    DomainException,
    EntityNotFoundError,
    InvalidTransitionError,
    OperationTimeoutError,
    OtpMismatchOrExpiredError,
    ValidationError,
)
from src.core.tickets.dtos import (
    EscalationFilterDTO,
    IssueCompletionOtpInputDTO,
    OverrideStatusInputDTO,
    RequestTransitionInputDTO,
)
from src.config.container import get_container

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def json_response(success: bool, data: Any = None, error: str = None,
                  status: int = 200, meta: Dict = None) -> JsonResponse:
    """
    Standard JSON response.

    Args:
        success: Whether the operation succeeded
        data: Response payload
        error: Error message, if any
        status: HTTP status code
        meta: Extra metadata (error code, field, retryable...)
    """
    response = {'success': success}

    if data is not None:
        response['data'] = data

    if error is not None:
        response['error'] = error

    if meta is not None:
        response['meta'] = meta

    return JsonResponse(response, status=status, safe=False)


def parse_json_body(request: HttpRequest) -> Dict:
    """
    Parses the JSON body.

    Non-JSON requests (form posts, bare POSTs) yield their form fields,
    usually none.

    Raises:
        ValueError: If the body is not a JSON object
    """
    if request.content_type != "application/json":
        return request.POST.dict()
    if not request.body:
        return {}

    try:
        data = json.loads(request.body)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}")

    if not isinstance(data, dict):
        raise ValueError("JSON body must be an object")
    return data


def get_user_id(request: HttpRequest) -> str:
    """Id of the authenticated user, if any."""
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return str(user.id)
    return 'anonymous'


def parse_datetime_param(value: str) -> datetime:
    """
    ISO 8601 datetime; naive values are taken as UTC.

    Raises:
        ValidationError: If the value is not a datetime
    """
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid datetime: {value}", field='now')
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Base API View
# =============================================================================

@method_decorator(csrf_exempt, name='dispatch')
class BaseAPIView(View):
    """
    Base view for the JSON API.

    Provides:
    - JSON parsing
    - Access to the DI container
    - Uniform error mapping
    """

    def get_container(self):
        return get_container()

    def get_service(self, service_name: str):
        container = self.get_container()
        return getattr(container.services, service_name)()

    def parse_body(self, request: HttpRequest) -> Dict:
        return parse_json_body(request)

    def actor_id(self, request: HttpRequest, data: Dict) -> str:
        return str(data.get('actor_id') or get_user_id(request))

    def handle_exception(self, e: Exception) -> JsonResponse:
        """
        Maps an exception to an HTTP response.

        400 validation and guards, 404 not found, 409 illegal edge or
        lost optimistic lock, 422 business rule or OTP rejected,
        503 timeouts, 500 anything unexpected.
        """
        if isinstance(e, ValidationError):
            return json_response(success=False, error=str(e), status=400, meta=e.to_dict())

        if isinstance(e, EntityNotFoundError):
            return json_response(success=False, error=str(e), status=404, meta=e.to_dict())

        if isinstance(e, (InvalidTransitionError, ConcurrentModificationError)):
            return json_response(success=False, error=str(e), status=409, meta=e.to_dict())

        if isinstance(e, (OtpMismatchOrExpiredError, BusinessRuleViolationError)):
            return json_response(success=False, error=str(e), status=422, meta=e.to_dict())

        if isinstance(e, OperationTimeoutError):
            return json_response(success=False, error=str(e), status=503, meta=e.to_dict())

        if isinstance(e, DomainException):
            return json_response(success=False, error=str(e), status=400, meta=e.to_dict())

        if isinstance(e, ValueError):
            return json_response(success=False, error=str(e), status=400)

        logger.exception(f"Unexpected API error: {e}")
        return json_response(success=False, error="Internal server error", status=500)


# =============================================================================
# Ticket API Views
# =============================================================================

class TicketAPIDetailView(BaseAPIView):
    """GET /tickets/api/<id>/ - ticket detail."""

    def get(self, request: HttpRequest, pk: str) -> JsonResponse:
        try:
            ticket = self.get_service('get_ticket_service').execute(pk)
            return json_response(success=True, data=ticket.to_dict())

        except Exception as e:
            return self.handle_exception(e)


class TicketAPITransitionView(BaseAPIView):
    """
    POST /tickets/api/<id>/transitions/

    Body JSON:
    {
        "to_status": "on_route",
        "actor_id": "tech-7",
        "actor_role": "technician",
        "payload": {"location": {"latitude": 41.0, "longitude": 28.9}}
    }
    """

    def post(self, request: HttpRequest, pk: str) -> JsonResponse:
        try:
            data = self.parse_body(request)
            payload = data.get('payload') or {}
            if not isinstance(payload, dict):
                raise ValidationError("payload must be an object", field='payload')

            input_dto = RequestTransitionInputDTO(
                ticket_id=pk,
                actor_id=self.actor_id(request, data),
                actor_role=data.get('actor_role', ''),
                to_status=data.get('to_status', ''),
                payload=payload,
            )

            result = self.get_service('request_transition_service').execute(input_dto)

            logger.info(f"API: ticket {pk} moved to {result.to_status}")
            return json_response(success=True, data=result.to_dict())

        except Exception as e:
            return self.handle_exception(e)


class TicketAPIHistoryView(BaseAPIView):
    """GET /tickets/api/<id>/history/ - entries oldest first."""

    def get(self, request: HttpRequest, pk: str) -> JsonResponse:
        try:
            entries = self.get_service('get_history_service').execute(pk)
            return json_response(
                success=True,
                data=[e.to_dict() for e in entries],
                meta={'total': len(entries)},
            )

        except Exception as e:
            return self.handle_exception(e)


class TicketAPIAllowedTransitionsView(BaseAPIView):
    """
    GET /tickets/api/<id>/allowed-transitions/?role=technician

    Lists the targets the role may request, each with its guard
    readiness for an empty payload.
    """

    def get(self, request: HttpRequest, pk: str) -> JsonResponse:
        try:
            role = request.GET.get('role', '')
            allowed = self.get_service('get_allowed_transitions_service').execute(pk, role)
            return json_response(success=True, data=[a.to_dict() for a in allowed])

        except Exception as e:
            return self.handle_exception(e)


class TicketAPIOverrideView(BaseAPIView):
    """
    POST /tickets/api/<id>/override/

    Body JSON:
    {
        "to_status": "diagnosed",
        "actor_id": "admin-1",
        "actor_role": "admin",
        "reason": "Customer called back, reopening the visit"
    }
    """

    def post(self, request: HttpRequest, pk: str) -> JsonResponse:
        try:
            data = self.parse_body(request)

            input_dto = OverrideStatusInputDTO(
                ticket_id=pk,
                actor_id=self.actor_id(request, data),
                actor_role=data.get('actor_role', ''),
                to_status=data.get('to_status', ''),
                reason=data.get('reason', ''),
            )

            result = self.get_service('override_status_service').execute(input_dto)
            return json_response(success=True, data=result.to_dict())

        except Exception as e:
            return self.handle_exception(e)


class TicketAPICompletionOtpView(BaseAPIView):
    """POST /tickets/api/<id>/completion-otp/ - sends a code to the customer."""

    def post(self, request: HttpRequest, pk: str) -> JsonResponse:
        try:
            data = self.parse_body(request)

            input_dto = IssueCompletionOtpInputDTO(
                ticket_id=pk,
                actor_id=self.actor_id(request, data),
                actor_role=data.get('actor_role', ''),
            )

            issued = self.get_service('issue_completion_otp_service').execute(input_dto)
            return json_response(success=True, data=issued.to_dict(), status=201)

        except Exception as e:
            return self.handle_exception(e)


# =============================================================================
# Escalation API Views
# =============================================================================

class EscalationAPIListView(BaseAPIView):
    """
    GET /tickets/api/escalations/

    Query params:
    - ticket_id: only this ticket
    - level: l1, l2 or l3
    - type: assignment_delay, sla_breach, repeat_failure, stuck_state
    """

    def get(self, request: HttpRequest) -> JsonResponse:
        try:
            filters = EscalationFilterDTO.from_params(request.GET)
            escalations = self.get_service('list_open_escalations_service').execute(filters)
            return json_response(
                success=True,
                data=[e.to_dict() for e in escalations],
                meta={'total': len(escalations)},
            )

        except Exception as e:
            return self.handle_exception(e)


class EscalationAPISweepView(BaseAPIView):
    """
    POST /tickets/api/escalations/sweep/

    Body JSON (optional): {"now": "2026-01-15T10:00:00+00:00"}
    """

    def post(self, request: HttpRequest) -> JsonResponse:
        try:
            data = self.parse_body(request)
            now = parse_datetime_param(data['now']) if data.get('now') else None

            report = self.get_service('run_escalation_sweep_service').execute(now)
            return json_response(success=True, data=report.to_dict())

        except Exception as e:
            return self.handle_exception(e)
