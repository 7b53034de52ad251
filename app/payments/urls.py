"""
URL configuration for the payments app.

Routes:
    - GET /bookings/{booking_id}/escrow/ - Escrow summary
    - POST /webhooks/stripe/ - Stripe webhook endpoint

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments.views import EscrowSummaryView
from payments.webhooks.views import stripe_webhook

app_name = "payments"

urlpatterns = [
    path(
        "bookings/<uuid:booking_id>/escrow/",
        EscrowSummaryView.as_view(),
        name="booking_escrow",
    ),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
