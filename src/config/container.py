"""
Dependency Injection Container.

Wires every dependency of the application with dependency-injector.

Patterns:
- Singleton: one instance for the whole app (repositories, publisher)
- Factory: new instance per call (services, Unit of Work)
- Configuration: values read from Django settings

Layout:
- Container: Django/Celery adapters
- TestingContainer: in-memory adapters, same service graph
- ServicesContainer: the use cases, shared by both
"""

from datetime import timedelta
from importlib import import_module
from typing import Any, Callable, Dict, Optional

from dependency_injector import containers, providers

from src.core.shared.events import utc_now
from src.core.tickets.escalation import EscalationMonitor, EscalationPolicy
from src.core.tickets.guards import GuardEvaluator
from src.core.tickets.history import StatusHistoryRecorder
from src.core.tickets.state_machine import TicketStateMachine
from src.core.tickets.use_cases import (
    GetAllowedTransitionsService,
    GetHistoryService,
    GetTicketService,
    IssueCompletionOtpService,
    ListOpenEscalationsService,
    OverrideStatusService,
    RequestTransitionService,
    RunEscalationSweepService,
)


def _lazy(dotted_path: str) -> Callable[..., Any]:
    """
    Callable that imports `dotted_path` on first use.

    Adapter modules import Django models; deferring the import keeps
    the container importable before the app registry is ready.
    """
    module_name, _, attr = dotted_path.rpartition('.')

    def build(*args, **kwargs):
        return getattr(import_module(module_name), attr)(*args, **kwargs)

    build.__name__ = attr
    return build


DEFAULTS: Dict[str, Any] = {
    'event_publisher_mode': 'sync',
    'otp_ttl_seconds': 300,
    'otp_length': 6,
}


def policy_from_django_settings() -> EscalationPolicy:
    from django.conf import settings
    return EscalationPolicy.from_settings(settings)


# =============================================================================
# Use Cases
# =============================================================================

class ServicesContainer(containers.DeclarativeContainer):
    """
    Use cases (Factory - new instance per call).

    Receives its collaborators from the outer container.
    """

    clock = providers.Dependency()
    ticket_repository = providers.Dependency()
    escalation_repository = providers.Dependency()
    otp_service = providers.Dependency()
    unit_of_work = providers.Dependency()
    history_recorder = providers.Dependency()
    guard_evaluator = providers.Dependency()
    escalation_monitor = providers.Dependency()
    state_machine = providers.Dependency()

    request_transition_service = providers.Factory(
        RequestTransitionService,
        ticket_repo=ticket_repository,
        history_recorder=history_recorder,
        guard_evaluator=guard_evaluator,
        uow=unit_of_work,
        escalation_monitor=escalation_monitor,
        state_machine=state_machine,
        clock=clock,
    )

    override_status_service = providers.Factory(
        OverrideStatusService,
        ticket_repo=ticket_repository,
        history_recorder=history_recorder,
        uow=unit_of_work,
        escalation_monitor=escalation_monitor,
        clock=clock,
    )

    issue_completion_otp_service = providers.Factory(
        IssueCompletionOtpService,
        ticket_repo=ticket_repository,
        otp_service=otp_service,
        uow=unit_of_work,
    )

    # Reads (no UoW)
    get_ticket_service = providers.Factory(
        GetTicketService,
        ticket_repo=ticket_repository,
    )

    get_history_service = providers.Factory(
        GetHistoryService,
        ticket_repo=ticket_repository,
        history_recorder=history_recorder,
    )

    get_allowed_transitions_service = providers.Factory(
        GetAllowedTransitionsService,
        ticket_repo=ticket_repository,
        guard_evaluator=guard_evaluator,
        state_machine=state_machine,
    )

    list_open_escalations_service = providers.Factory(
        ListOpenEscalationsService,
        escalation_repo=escalation_repository,
    )

    run_escalation_sweep_service = providers.Factory(
        RunEscalationSweepService,
        escalation_monitor=escalation_monitor,
        clock=clock,
    )


# =============================================================================
# Application Container
# =============================================================================

class Container(containers.DeclarativeContainer):
    """
    Main Dependency Injection container.

    Example:
        container = get_container()
        service = container.services.request_transition_service()
        result = service.execute(input_dto)
    """

    config = providers.Configuration(default=DEFAULTS)

    clock = providers.Object(utc_now)

    escalation_policy = providers.Singleton(policy_from_django_settings)

    # =========================================================================
    # Infrastructure
    # =========================================================================

    event_publisher = providers.Singleton(
        _lazy('src.adapters.django_app.events.publishers.get_event_publisher'),
        mode=config.event_publisher_mode,
    )

    event_store = providers.Singleton(
        _lazy('src.adapters.django_app.tickets.repositories.DjangoEventStore'),
    )

    notifier = providers.Singleton(
        _lazy('src.adapters.django_app.events.notifiers.LoggingNotifier'),
    )

    # =========================================================================
    # Repositories (Singleton)
    # =========================================================================

    ticket_repository = providers.Singleton(
        _lazy('src.adapters.django_app.tickets.repositories.DjangoTicketRepository'),
    )

    history_repository = providers.Singleton(
        _lazy('src.adapters.django_app.tickets.repositories.DjangoStatusHistoryRepository'),
    )

    escalation_repository = providers.Singleton(
        _lazy('src.adapters.django_app.tickets.repositories.DjangoEscalationRepository'),
    )

    attachment_counter = providers.Singleton(
        _lazy('src.adapters.django_app.tickets.repositories.DjangoAttachmentCounter'),
    )

    otp_service = providers.Singleton(
        _lazy('src.adapters.django_app.tickets.repositories.DjangoOtpService'),
        ttl_seconds=config.otp_ttl_seconds.as_int(),
        length=config.otp_length.as_int(),
        clock=clock,
    )

    # =========================================================================
    # Unit of Work (Factory - new instance per operation)
    # =========================================================================

    unit_of_work = providers.Factory(
        _lazy('src.adapters.django_app.shared.unit_of_work.DjangoUnitOfWork'),
        event_publisher=event_publisher,
        event_store=event_store,
    )

    # =========================================================================
    # Domain components
    # =========================================================================

    state_machine = providers.Singleton(TicketStateMachine)

    history_recorder = providers.Singleton(
        StatusHistoryRecorder,
        history_repo=history_repository,
        clock=clock,
    )

    guard_evaluator = providers.Singleton(
        GuardEvaluator,
        attachments=attachment_counter,
        otp_service=otp_service,
        clock=clock,
        tz=escalation_policy.provided.tz,
    )

    escalation_monitor = providers.Singleton(
        EscalationMonitor,
        ticket_repo=ticket_repository,
        history_recorder=history_recorder,
        escalation_repo=escalation_repository,
        policy=escalation_policy,
        event_publisher=event_publisher,
        clock=clock,
    )

    services = providers.Container(
        ServicesContainer,
        clock=clock,
        ticket_repository=ticket_repository,
        escalation_repository=escalation_repository,
        otp_service=otp_service,
        unit_of_work=unit_of_work,
        history_recorder=history_recorder,
        guard_evaluator=guard_evaluator,
        escalation_monitor=escalation_monitor,
        state_machine=state_machine,
    )


def config_from_django_settings() -> Dict[str, Any]:
    """Container configuration read from Django settings."""
    from django.conf import settings

    return {
        'event_publisher_mode': getattr(settings, 'EVENT_PUBLISHER_MODE', DEFAULTS['event_publisher_mode']),
        'otp_ttl_seconds': getattr(settings, 'OTP_TTL_SECONDS', DEFAULTS['otp_ttl_seconds']),
        'otp_length': getattr(settings, 'OTP_LENGTH', DEFAULTS['otp_length']),
    }


# =============================================================================
# Global Container (Singleton)
# =============================================================================

_container: Optional[Container] = None


def get_container() -> Container:
    """
    Global container instance.

    Created on first use and configured from Django settings.
    """
    global _container

    if _container is None:
        _container = Container()
        _container.config.from_dict(config_from_django_settings())

    return _container


def reset_container() -> None:
    """
    Drops the global container (tests).

    The next get_container() builds a fresh one.
    """
    global _container
    _container = None


# =============================================================================
# Testing Container
# =============================================================================

class TestingContainer(containers.DeclarativeContainer):
    """
    Container for tests.

    Same service graph as Container over the in-memory adapters. The
    in-memory Unit of Work is not transactional.

    Example:
        container = TestingContainer()
        container.clock.override(providers.Object(lambda: fixed_now))
        service = container.services.request_transition_service()
    """

    config = providers.Configuration(default=DEFAULTS)

    clock = providers.Object(utc_now)

    escalation_policy = providers.Singleton(
        EscalationPolicy,
        assignment_delay=timedelta(minutes=60),
        sla_grace=timedelta(minutes=30),
        stuck_state=timedelta(hours=48),
        repeat_failure_threshold=2,
    )

    event_publisher = providers.Singleton(
        _lazy('src.adapters.django_app.events.publishers.InMemoryEventPublisher'),
    )

    notifier = providers.Singleton(_lazy('src.core.tickets.ports.InMemoryNotifier'))

    ticket_repository = providers.Singleton(_lazy('src.core.tickets.ports.InMemoryTicketRepository'))
    history_repository = providers.Singleton(_lazy('src.core.tickets.ports.InMemoryStatusHistoryRepository'))
    escalation_repository = providers.Singleton(_lazy('src.core.tickets.ports.InMemoryEscalationRepository'))
    attachment_counter = providers.Singleton(_lazy('src.core.tickets.ports.InMemoryAttachmentCounter'))

    otp_service = providers.Singleton(
        _lazy('src.core.tickets.ports.InMemoryOtpService'),
        clock=clock,
    )

    unit_of_work = providers.Factory(
        _lazy('src.adapters.django_app.shared.unit_of_work.InMemoryUnitOfWork'),
        event_publisher=event_publisher,
    )

    state_machine = providers.Singleton(TicketStateMachine)

    history_recorder = providers.Singleton(
        StatusHistoryRecorder,
        history_repo=history_repository,
        clock=clock,
    )

    guard_evaluator = providers.Singleton(
        GuardEvaluator,
        attachments=attachment_counter,
        otp_service=otp_service,
        clock=clock,
        tz=escalation_policy.provided.tz,
    )

    escalation_monitor = providers.Singleton(
        EscalationMonitor,
        ticket_repo=ticket_repository,
        history_recorder=history_recorder,
        escalation_repo=escalation_repository,
        policy=escalation_policy,
        event_publisher=event_publisher,
        clock=clock,
    )

    services = providers.Container(
        ServicesContainer,
        clock=clock,
        ticket_repository=ticket_repository,
        escalation_repository=escalation_repository,
        otp_service=otp_service,
        unit_of_work=unit_of_work,
        history_recorder=history_recorder,
        guard_evaluator=guard_evaluator,
        escalation_monitor=escalation_monitor,
        state_machine=state_machine,
    )
