"""
Webhook ingress for payment gateway events.

Webhooks are verified, stored idempotently by gateway event id, parsed
into typed events and processed asynchronously via Celery tasks.

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from payments.webhooks.events import parse_event
from payments.webhooks.handlers import dispatch_webhook, register_handler

__all__ = [
    "dispatch_webhook",
    "parse_event",
    "register_handler",
]
