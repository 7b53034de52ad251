"""
Celery tasks for payment processing.

This module provides async tasks for:
- Processing gateway webhook events
- Retrying failed webhook events
- Resetting stuck webhook events

Usage:
    from payments.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.utils import timezone

from payments.exceptions import InvalidEventPayload
from payments.models import MAX_WEBHOOK_RETRIES, WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RETRY_BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    dont_autoretry_for=(InvalidEventPayload,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a gateway webhook event asynchronously.

    This task:
    1. Loads the WebhookEvent by ID
    2. Checks if already processed (idempotency)
    3. Marks as processing
    4. Dispatches to the handler for its typed event kind
    5. Marks as processed or failed

    The handler is not wrapped in a transaction here: escrow operations
    take the per-booking lock and open their own transactions.

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    from payments.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
    if webhook_event is None:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "gateway_event_id": webhook_event.gateway_event_id,
            },
        )
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save()

    log_extra = {
        "webhook_event_id": str(webhook_event_id),
        "gateway_event_id": webhook_event.gateway_event_id,
        "event_type": webhook_event.event_type,
        "retry_count": webhook_event.retry_count,
    }

    try:
        result = dispatch_webhook(webhook_event)
    except InvalidEventPayload as e:
        # Redelivering the same body cannot fix it; exhaust the retry budget
        webhook_event.mark_failed(e.message)
        webhook_event.retry_count = MAX_WEBHOOK_RETRIES
        webhook_event.save()
        logger.error("Webhook payload invalid", extra={**log_extra, "error": e.message})
        return {"status": "invalid_payload", "webhook_event_id": str(webhook_event_id)}
    except Exception as e:
        webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        webhook_event.save()
        logger.exception("Webhook processing failed with exception", extra=log_extra)
        raise

    if result.success:
        webhook_event.mark_processed()
        webhook_event.save()
        logger.info("Webhook processed successfully", extra=log_extra)
        return {
            "status": "processed",
            "webhook_event_id": str(webhook_event_id),
            "gateway_event_id": webhook_event.gateway_event_id,
        }

    error_msg = result.error or "Handler returned failure"
    webhook_event.mark_failed(error_msg)
    webhook_event.save()
    logger.warning(
        "Webhook handler failed",
        extra={**log_extra, "error": error_msg, "error_code": result.error_code},
    )
    return {
        "status": "handler_failed",
        "webhook_event_id": str(webhook_event_id),
        "error": error_msg,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Re-queues failed webhooks that are still under the retry budget.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:RETRY_BATCH_SIZE]

    queued_count = 0
    for webhook in failed_webhooks:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1

    if queued_count:
        logger.info(
            "Queued failed webhooks for retry",
            extra={"queued_count": queued_count},
        )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task for webhooks that never finished.

    Events stuck in PROCESSING (worker crashed) are reset to FAILED so
    retry_failed_webhooks picks them up; events still PENDING after the
    threshold (queueing failed in the view) are queued again.

    Returns:
        Dict with counts of webhooks reset and requeued
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    reset_count = 0
    for webhook in WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    ):
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "gateway_event_id": webhook.gateway_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    requeued_count = 0
    for webhook in WebhookEvent.objects.filter(
        status=WebhookEventStatus.PENDING,
        created_at__lt=threshold,
    )[:RETRY_BATCH_SIZE]:
        process_webhook_event.delay(str(webhook.id))
        requeued_count += 1

    if reset_count or requeued_count:
        logger.info(
            "Cleaned up stuck webhooks",
            extra={"reset_count": reset_count, "requeued_count": requeued_count},
        )
    return {"reset_count": reset_count, "requeued_count": requeued_count}
