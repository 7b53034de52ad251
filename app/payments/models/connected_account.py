"""
ConnectedAccount model for provider payout destinations.

A provider's gateway account (Stripe Connect acct_xxx) receives the net
amount when an escrow is released. The account's capabilities are kept in
sync by account.updated webhooks.

Usage:
    from payments.models import ConnectedAccount

    account = ConnectedAccount.objects.get(provider=provider)
    if not account.is_ready_for_payouts:
        ...
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin


class ConnectedAccount(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A provider's account at the payment gateway.

    Fields:
        provider: The user who receives payouts
        gateway_account_id: Gateway account id (acct_xxx)
        charges_enabled: Gateway allows destination charges
        payouts_enabled: Gateway allows payouts to the provider's bank
        details_submitted: Provider finished onboarding
        metadata: Last known requirements and other gateway details
    """

    provider = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="connected_account",
        help_text="Provider this account pays out to",
    )

    gateway_account_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway account ID (acct_xxx)",
    )

    charges_enabled = models.BooleanField(default=False)
    payouts_enabled = models.BooleanField(default=False)
    details_submitted = models.BooleanField(default=False)

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Gateway requirements and other account details",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Connected Account"
        verbose_name_plural = "Connected Accounts"

    def __str__(self) -> str:
        return f"ConnectedAccount({self.gateway_account_id})"

    @property
    def is_ready_for_payouts(self) -> bool:
        return self.details_submitted and self.payouts_enabled
