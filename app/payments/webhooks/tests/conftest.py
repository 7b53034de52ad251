"""
Pytest fixtures for webhook tests.

Provides Stripe-shaped event payloads, stored WebhookEvent rows, signed
request headers, and a hook that makes the webhook task use the
in-memory gateway.
"""

import hashlib
import hmac
import json
import time
import uuid

import pytest

from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.tests.conftest import connected_account, onboarding_account  # noqa: F401

WEBHOOK_SECRET = "whsec_webhook_tests"


# =============================================================================
# Payload Builders
# =============================================================================


def stripe_event(event_type: str, obj: dict, event_id: str | None = None, **extra) -> dict:
    """Build a Stripe event envelope around a data.object."""
    event = {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }
    event.update(extra)
    return event


def payment_intent_event(event_type: str, payment_reference: str, amount: int = 10000, **obj):
    return stripe_event(
        event_type,
        {
            "id": payment_reference,
            "object": "payment_intent",
            "amount": amount,
            "amount_received": amount if event_type == "payment_intent.succeeded" else 0,
            "amount_capturable": amount,
            **obj,
        },
    )


def charge_refunded_event(payment_reference: str, refunds: list[tuple] | None = None):
    """
    Build a charge.refunded payload.

    refunds holds (id, amount) or (id, amount, status) tuples; None builds
    the payload of API versions from 2022-11-15, which embed no refund list.
    """
    charge = {
        "id": f"ch_{uuid.uuid4().hex[:16]}",
        "object": "charge",
        "payment_intent": payment_reference,
    }
    if refunds is not None:
        charge["refunds"] = {
            "object": "list",
            "data": [
                {"id": line[0], "amount": line[1], "status": line[2] if len(line) > 2 else "succeeded"}
                for line in refunds
            ],
        }
    return stripe_event("charge.refunded", charge)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_webhook(db):
    """Store a WebhookEvent for a payload, as the webhook view would."""

    def _create(payload: dict, status: str = WebhookEventStatus.PENDING) -> WebhookEvent:
        return WebhookEvent.objects.create(
            gateway_event_id=payload["id"],
            event_type=payload["type"],
            payload=payload,
            status=status,
        )

    return _create


@pytest.fixture
def webhook_secret(settings):
    settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    return WEBHOOK_SECRET


@pytest.fixture
def sign(webhook_secret):
    """Return (body, Stripe-Signature header) for an event dict."""

    def _sign(event: dict, secret: str | None = None) -> tuple[bytes, str]:
        body = json.dumps(event).encode()
        timestamp = int(time.time())
        signed = f"{timestamp}.{body.decode()}".encode()
        digest = hmac.new((secret or webhook_secret).encode(), signed, hashlib.sha256).hexdigest()
        return body, f"t={timestamp},v1={digest}"

    return _sign


@pytest.fixture
def task_uses_fake_gateway(mocker, escrow_service):
    """Make dispatch_webhook build its EscrowService on the in-memory gateway."""
    return mocker.patch("payments.services.EscrowService", return_value=escrow_service)
