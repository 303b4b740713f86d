"""
Fixtures for the Django adapter tests.

Django itself is configured by the root conftest (sqlite in memory);
pytest-django builds the test database from the migrations.
"""

import pytest


@pytest.fixture
def ticket_repo(db):
    from src.adapters.django_app.tickets.repositories import DjangoTicketRepository
    return DjangoTicketRepository()


@pytest.fixture
def history_repo(db):
    from src.adapters.django_app.tickets.repositories import DjangoStatusHistoryRepository
    return DjangoStatusHistoryRepository()


@pytest.fixture
def escalation_repo(db):
    from src.adapters.django_app.tickets.repositories import DjangoEscalationRepository
    return DjangoEscalationRepository()


@pytest.fixture
def event_store(db):
    from src.adapters.django_app.tickets.repositories import DjangoEventStore
    return DjangoEventStore()


@pytest.fixture
def sample_ticket_entity(clock):
    """A NEW ticket, not persisted."""
    from src.core.tickets.entities import DeviceType, TicketEntity, TicketPriority

    return TicketEntity.create(
        customer_name="Maria Souza",
        customer_phone="+905551112233",
        customer_address="Bagdat Cd. 10, Istanbul",
        device_type=DeviceType.WASHER,
        priority=TicketPriority.HIGH,
        problem_description="Drum does not spin",
        created_at=clock(),
    )


@pytest.fixture
def ticket_factory(ticket_repo, clock):
    """Persists NEW tickets through the repository."""
    from src.core.tickets.entities import TicketEntity

    def create_ticket(**kwargs):
        defaults = {
            "customer_name": "Ali Veli",
            "customer_phone": "+905550000000",
            "customer_address": "Moda Cd. 5, Istanbul",
            "created_at": clock(),
        }
        defaults.update(kwargs)
        return ticket_repo.add(TicketEntity.create(**defaults))

    return create_ticket


@pytest.fixture
def attachment_factory(db):
    """Stores attachment metadata rows for a ticket."""
    import uuid

    from src.adapters.django_app.tickets.models import AttachmentModel

    def create_attachments(ticket_id, attachment_type="after_repair", count=1):
        return [
            AttachmentModel.objects.create(
                id=str(uuid.uuid4()),
                ticket_id=ticket_id,
                type=attachment_type,
                file_url=f"https://files.example/{ticket_id}/{i}.jpg",
            )
            for i in range(count)
        ]

    return create_attachments
