"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures
shared by the payments and disputes tests: users, an in-memory payment
gateway, an in-memory Redis for the distributed locks, and bookings in
each escrow state.

App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django
import fakeredis
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # No Redis server in tests; locks get fakeredis through the fixture below
    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
    }


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full booking and dispute journeys)
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_settlement.py, test_locks.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_escrow_service.py",
        "test_workflow.py",
        "test_tasks.py",
        "test_webhooks.py",
        "test_handlers.py",
        "test_ledger.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_settlement.py",
        "test_review.py",
        "test_events.py",
        "test_adapters.py",
        "test_stripe_adapter.py",
        "test_locks.py",
        "test_config.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    """Back every DistributedLock with an in-memory Redis for the test."""
    client = fakeredis.FakeStrictRedis()
    monkeypatch.setattr(
        "payments.locks.get_redis_connection",
        lambda alias="default": client,
    )
    return client


@pytest.fixture
def api_client():
    """DRF test client; authenticate with force_authenticate(user)."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def gateway():
    """In-memory payment gateway recording every call."""
    from payments.tests.fakes import FakeGateway

    return FakeGateway()


@pytest.fixture
def escrow_config():
    from payments.config import EscrowConfig

    return EscrowConfig()


@pytest.fixture
def escrow_service(gateway, escrow_config):
    from payments.services import EscrowService

    return EscrowService(gateway=gateway, config=escrow_config)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def customer(db):
    from payments.tests.factories import UserFactory

    return UserFactory()


@pytest.fixture
def provider(db):
    from payments.tests.factories import UserFactory

    return UserFactory()


@pytest.fixture
def outsider(db):
    from payments.tests.factories import UserFactory

    return UserFactory()


@pytest.fixture
def staff_user(db):
    from payments.tests.factories import UserFactory

    return UserFactory(is_staff=True)


# =============================================================================
# Booking Fixtures
# =============================================================================


@pytest.fixture
def booking(db, customer, provider):
    """A PENDING booking for 100.00 USD."""
    from payments.tests.factories import BookingFactory

    return BookingFactory(customer=customer, provider=provider, amount_cents=10000)


@pytest.fixture
def authorized_escrow(booking, escrow_service):
    """Escrow authorized in manual capture mode, payment not yet confirmed."""
    return escrow_service.authorize(booking.id, booking.amount_cents, "acct_provider")


@pytest.fixture
def held_escrow(authorized_escrow, escrow_service):
    """Escrow whose payment the gateway confirmed: funds are held."""
    return escrow_service.confirm_capture(authorized_escrow.gateway_reference)
