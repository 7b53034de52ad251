"""
Payments app configuration.

This app provides the escrow payment lifecycle:
- Bookings and their escrow accounts
- Append-only ledger of money movements
- Stripe gateway adapter and webhook ingress
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
