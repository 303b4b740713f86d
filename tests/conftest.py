"""
Global pytest configuration.

- Configures Django (sqlite in memory) before collection
- Shared fixtures: fixed clock, valid transition payloads
- `--run-integration` option for the full-stack tests
"""

from datetime import datetime, timedelta, timezone

import pytest


LOCATION = {"latitude": 41.0082, "longitude": 28.9784}

# Role that normally takes the edge into each status
DEFAULT_ROLES = {
    "assigned": "dispatcher",
    "scheduled": "dispatcher",
    "on_route": "technician",
    "arrived": "technician",
    "inspecting": "technician",
    "diagnosed": "technician",
    "repairing": "technician",
    "waiting_parts": "technician",
    "pickup_device": "technician",
    "in_workshop": "workshop",
    "ready_delivery": "workshop",
    "completed": "technician",
    "not_fixed": "technician",
    "cancelled": "dispatcher",
}

HAPPY_PATH = [
    "assigned",
    "scheduled",
    "on_route",
    "arrived",
    "inspecting",
    "diagnosed",
    "repairing",
]


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def valid_payload(to_status: str, today=None) -> dict:
    """Payload that satisfies every guard of `to_status`."""
    today = today or datetime.now(timezone.utc).date()
    payloads = {
        "assigned": {"technician_id": "tech-7"},
        "scheduled": {"scheduled_date": (today + timedelta(days=1)).isoformat(), "time_slot": "morning"},
        "on_route": {"location": LOCATION},
        "arrived": {"location": LOCATION},
        "inspecting": {"photos": ["before-1.jpg"]},
        "diagnosed": {"diagnosis_notes": "Compressor start relay burnt out"},
        "repairing": {"location": LOCATION},
        "waiting_parts": {
            "parts": [{"name": "Start relay", "part_number": "RLY-220", "quantity": 1}],
            "photos": ["serial-plate.jpg"],
            "notes": "Relay ordered",
        },
        "pickup_device": {"customer_acknowledged": True, "reason": "Needs a bench pressure test"},
        "in_workshop": {},
        "ready_delivery": {},
        "completed": {
            "location": LOCATION,
            "photos": ["after-1.jpg", "after-2.jpg", "serial.jpg"],
            "confirmation_type": "signature",
            "signature": "data:image/png;base64,iVBORw0KGgo=",
            "repair_notes": "Relay replaced, cooling verified",
        },
        "not_fixed": {"reasons": ["parts_unavailable"], "notes": "Part discontinued"},
        "cancelled": {"reason": "Customer cancelled by phone"},
    }
    return dict(payloads[to_status])


# =============================================================================
# Django
# =============================================================================

def pytest_configure(config):
    """Configures Django before the tests are collected."""
    import django
    from django.conf import settings

    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )

    if not settings.configured:
        settings.configure(
            DEBUG=True,
            SECRET_KEY='tests-only-secret-key',
            DATABASES={
                'default': {
                    'ENGINE': 'django.db.backends.sqlite3',
                    'NAME': ':memory:',
                }
            },
            INSTALLED_APPS=[
                'django.contrib.admin',
                'django.contrib.contenttypes',
                'django.contrib.auth',
                'django.contrib.sessions',
                'django.contrib.messages',
                'src.adapters.django_app.tickets',
            ],
            ROOT_URLCONF='src.config.urls',
            DEFAULT_AUTO_FIELD='django.db.models.BigAutoField',
            USE_TZ=True,
            TIME_ZONE='UTC',
            ESCALATION_ASSIGNMENT_DELAY_MINUTES=60,
            ESCALATION_SLA_GRACE_MINUTES=30,
            ESCALATION_STUCK_STATE_HOURS=48,
            ESCALATION_REPEAT_FAILURE_THRESHOLD=2,
            ESCALATION_SWEEP_INTERVAL_SECONDS=300,
            OTP_TTL_SECONDS=300,
            OTP_LENGTH=6,
            EVENT_PUBLISHER_MODE='sync',
        )
        django.setup()


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="needs --run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# =============================================================================
# Shared fixtures
# =============================================================================

@pytest.fixture
def clock():
    """Clock frozen at 2026-01-15 09:00 UTC."""
    return FixedClock(datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture(autouse=True)
def reset_di_container():
    """Each test starts from a fresh global container."""
    from src.config.container import reset_container

    reset_container()
    yield
    reset_container()


@pytest.fixture
def payload_for(clock):
    """Builds a guard-satisfying payload relative to the frozen clock."""

    def build(to_status: str, **overrides) -> dict:
        payload = valid_payload(to_status, today=clock().date())
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def default_role():
    return DEFAULT_ROLES.get


@pytest.fixture
def happy_path():
    return list(HAPPY_PATH)
