"""
WebhookEvent model for gateway webhook event tracking.

Stores every verified webhook event for idempotent processing and audit
trails. The unique gateway_event_id constraint is the dedup contract:
redelivery of the same event never moves money twice.

Usage:
    from payments.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        gateway_event_id="evt_1234567890",
        defaults={
            "event_type": "payment_intent.succeeded",
            "payload": webhook_payload,
        },
    )
    if not created and event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import WebhookEventStatus

# Failed events are retried by the periodic task until this many attempts
MAX_WEBHOOK_RETRIES = 3


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks gateway webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, signature verified (rejected events are never stored)
        2. Insert/get WebhookEvent by gateway_event_id
        3. If exists and PROCESSED -> 200, nothing queued
        4. Otherwise queue process_webhook_event
        5. Task marks PROCESSING, parses, dispatches to a handler
        6. Task marks PROCESSED or FAILED
        7. FAILED events are retried by retry_failed_webhooks

    Fields:
        gateway_event_id: Unique gateway Event ID (evt_xxx)
        event_type: Gateway event type (payment_intent.succeeded, ...)
        payload: Full JSON payload
        status: Processing status
        processed_at: When event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    gateway_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Gateway event type (e.g., 'payment_intent.succeeded')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="payments_we_status_3b9f12_idx"),
            models.Index(fields=["status", "retry_count"], name="payments_we_status_8e4c70_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.gateway_event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        """Failed and still under the retry budget."""
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < MAX_WEBHOOK_RETRIES
        )

    # ==========================================================================
    # Helper Methods (do not save - caller must save)
    # ==========================================================================

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
