"""
Pytest fixtures for payment tests.

Escrows in each state are built through EscrowService with the in-memory
gateway from the root conftest, so ledger rows always match the state.

Usage:
    def test_release(held_escrow, escrow_service):
        escrow = escrow_service.release(held_escrow.booking_id)
        assert escrow.state == EscrowState.RELEASED
"""

import pytest

from payments.tests.factories import ConnectedAccountFactory, WebhookEventFactory


# =============================================================================
# Escrow State Fixtures
# =============================================================================


@pytest.fixture
def automatic_escrow(booking, escrow_service):
    """Escrow authorized as a destination charge (pass-through)."""
    return escrow_service.authorize(
        booking.id, booking.amount_cents, "acct_provider", capture_mode="automatic"
    )


@pytest.fixture
def frozen_escrow(held_escrow, escrow_service):
    """Held escrow frozen by a dispute."""
    return escrow_service.freeze(held_escrow.booking_id)


@pytest.fixture
def released_escrow(held_escrow, escrow_service):
    return escrow_service.release(held_escrow.booking_id)


# =============================================================================
# Connected Account Fixtures
# =============================================================================


@pytest.fixture
def connected_account(db, provider):
    """Connected account that has finished onboarding."""
    return ConnectedAccountFactory(provider=provider)


@pytest.fixture
def onboarding_account(db, provider):
    """Connected account still onboarding."""
    return ConnectedAccountFactory(
        provider=provider,
        charges_enabled=False,
        payouts_enabled=False,
        details_submitted=False,
    )


# =============================================================================
# WebhookEvent Fixtures
# =============================================================================


@pytest.fixture
def pending_webhook(db):
    """Create a pending webhook event."""
    return WebhookEventFactory()


@pytest.fixture
def processed_webhook(db):
    """Create a processed webhook event."""
    webhook = WebhookEventFactory()
    webhook.mark_processing()
    webhook.mark_processed()
    webhook.save()
    return webhook


@pytest.fixture
def failed_webhook(db):
    """Create a failed webhook event."""
    webhook = WebhookEventFactory()
    webhook.mark_processing()
    webhook.mark_failed("Processing error: test failure")
    webhook.save()
    return webhook


# =============================================================================
# Mock Redis Fixture (for lock tests)
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for distributed lock tests.

    Returns a MagicMock configured for basic lock operations.
    """
    redis = mocker.MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    mocker.patch("payments.locks.get_redis_connection", return_value=redis)
    return redis
