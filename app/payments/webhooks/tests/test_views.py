"""
Tests for the Stripe webhook endpoint.

POST /api/v1/payments/webhooks/stripe/
"""

import pytest
from django.urls import reverse

from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.webhooks.tests.conftest import payment_intent_event

WEBHOOK_URL = reverse("payments:stripe_webhook")


@pytest.fixture
def mock_delay(mocker):
    return mocker.patch("payments.tasks.process_webhook_event.delay")


def post(client, body, signature):
    return client.post(
        WEBHOOK_URL,
        data=body,
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE=signature,
    )


@pytest.mark.django_db
class TestStripeWebhookView:
    """Tests for stripe_webhook."""

    def test_valid_event_is_stored_and_queued(self, client, sign, mock_delay):
        event = payment_intent_event("payment_intent.succeeded", "pi_1")
        body, signature = sign(event)

        response = post(client, body, signature)

        assert response.status_code == 200
        assert response.content == b"Accepted"
        webhook = WebhookEvent.objects.get(gateway_event_id=event["id"])
        assert webhook.status == WebhookEventStatus.PENDING
        assert webhook.event_type == "payment_intent.succeeded"
        assert webhook.payload == event
        mock_delay.assert_called_once_with(str(webhook.id))

    def test_bad_signature_rejected_and_not_stored(self, client, sign, mock_delay):
        event = payment_intent_event("payment_intent.succeeded", "pi_1")
        body, signature = sign(event, secret="whsec_attacker")

        response = post(client, body, signature)

        assert response.status_code == 400
        assert response.content == b"Invalid signature"
        assert not WebhookEvent.objects.exists()
        mock_delay.assert_not_called()

    def test_missing_signature_rejected(self, client, webhook_secret, mock_delay):
        response = client.post(WEBHOOK_URL, data=b"{}", content_type="application/json")

        assert response.status_code == 400
        assert not WebhookEvent.objects.exists()

    def test_event_without_type_rejected(self, client, sign, mock_delay):
        body, signature = sign({"id": "evt_1", "data": {"object": {}}})

        response = post(client, body, signature)

        assert response.status_code == 400
        assert response.content == b"Invalid event"
        mock_delay.assert_not_called()

    def test_redelivery_of_pending_event_is_queued_again(self, client, sign, mock_delay):
        event = payment_intent_event("payment_intent.succeeded", "pi_1")
        body, signature = sign(event)

        post(client, body, signature)
        post(client, body, signature)

        assert WebhookEvent.objects.filter(gateway_event_id=event["id"]).count() == 1
        assert mock_delay.call_count == 2

    def test_redelivery_of_processed_event_is_acknowledged(
        self, client, sign, mock_delay, make_webhook
    ):
        event = payment_intent_event("payment_intent.succeeded", "pi_1")
        make_webhook(event, status=WebhookEventStatus.PROCESSED)
        body, signature = sign(event)

        response = post(client, body, signature)

        assert response.status_code == 200
        assert response.content == b"Already processed"
        mock_delay.assert_not_called()

    def test_queue_failure_still_acknowledges(self, client, sign, mocker):
        mocker.patch(
            "payments.tasks.process_webhook_event.delay",
            side_effect=ConnectionError("broker down"),
        )
        event = payment_intent_event("payment_intent.succeeded", "pi_1")
        body, signature = sign(event)

        response = post(client, body, signature)

        # Row stays PENDING for cleanup_stuck_webhooks to requeue
        assert response.status_code == 200
        assert WebhookEvent.objects.get(gateway_event_id=event["id"]).status == (
            WebhookEventStatus.PENDING
        )

    def test_get_not_allowed(self, client):
        assert client.get(WEBHOOK_URL).status_code == 405
