"""
Webhook endpoint for the payment gateway.

The view:
1. Verifies the webhook signature
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Queues the event for async processing
4. Returns immediately

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import StripeGateway
from payments.exceptions import InvalidSignature
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus


logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Stripe webhook events.

    Security:
    - Events failing signature verification are rejected with 400 and
      never stored or processed
    - CSRF exemption required for external webhooks

    Idempotency:
    - WebhookEvent.gateway_event_id is unique
    - An already processed event returns 200 without being queued again

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Invalid signature or payload
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    try:
        event_data = StripeGateway().verify_webhook(payload, signature)
    except InvalidSignature as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message, "remote_addr": request.META.get("REMOTE_ADDR")},
        )
        return HttpResponse("Invalid signature", status=400)

    gateway_event_id = event_data.get("id") if isinstance(event_data, dict) else None
    event_type = event_data.get("type") if isinstance(event_data, dict) else None
    if not gateway_event_id or not event_type:
        logger.warning("Webhook missing id or type")
        return HttpResponse("Invalid event", status=400)

    webhook_event, created = WebhookEvent.objects.get_or_create(
        gateway_event_id=gateway_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"gateway_event_id": gateway_event_id},
        )
        return HttpResponse("Already processed", status=200)

    logger.info(
        "Received gateway webhook",
        extra={
            "gateway_event_id": gateway_event_id,
            "event_type": event_type,
            "is_new": created,
        },
    )

    try:
        from payments.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
    except Exception:
        # The PENDING row is re-queued by cleanup_stuck_webhooks
        logger.exception(
            "Failed to queue webhook",
            extra={"gateway_event_id": gateway_event_id},
        )

    return HttpResponse("Accepted", status=200)
