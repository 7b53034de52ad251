"""
Ledger Transaction model.

Every money movement against an escrow (customer payment, refund,
provider payout, platform fee) is one immutable Transaction row. The
escrow's remaining balance is always derived from these rows, never
stored:

    remaining = amount - sum(PAYOUT, REFUND, FEE where status != FAILED)

Rows are append-only: updating or deleting one raises
AppendOnlyViolation, both on the instance and through querysets.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q

from payments.ledger.exceptions import AppendOnlyViolation
from payments.state_machines import TransactionStatus, TransactionType


class TransactionQuerySet(models.QuerySet):
    """QuerySet that refuses bulk mutation of ledger rows."""

    def update(self, **kwargs):
        raise AppendOnlyViolation("Ledger transactions cannot be updated")

    def delete(self):
        raise AppendOnlyViolation("Ledger transactions cannot be deleted")

    def for_booking(self, booking_id):
        return self.filter(booking_id=booking_id).order_by("created_at", "id")

    def balance_affecting(self):
        """Rows that draw down an escrow balance."""
        return self.filter(
            type__in=[
                TransactionType.PAYOUT,
                TransactionType.REFUND,
                TransactionType.FEE,
            ]
        ).exclude(status=TransactionStatus.FAILED)


class Transaction(models.Model):
    """
    An append-only ledger row.

    The primary key is an auto-increment integer so rows recorded in the
    same instant still sort in insertion order.

    Fields:
        booking: Booking the money belongs to
        escrow: Escrow the row draws on
        customer / provider: Parties of the booking
        type: PAYMENT, REFUND, PAYOUT or FEE
        status: Status at the moment the row was recorded
        amount_cents: Always positive
        gateway_reference: Gateway object id (pi_, tr_, re_)
        gateway_event_id: Webhook event that produced the row, if any
        idempotency_key: Unique; recording the same key twice is a no-op

    Constraints:
        - amount_cents must be positive
        - idempotency_key must be unique
    """

    id = models.BigAutoField(primary_key=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    booking = models.ForeignKey(
        "payments.Booking",
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    escrow = models.ForeignKey(
        "payments.EscrowAccount",
        on_delete=models.PROTECT,
        related_name="transactions",
        null=True,
        blank=True,
    )
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="customer_transactions",
    )
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="provider_transactions",
    )

    type = models.CharField(max_length=20, choices=TransactionType.choices)
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.COMPLETED,
    )
    amount_cents = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=3, default="usd")

    gateway_reference = models.CharField(max_length=255, blank=True, default="")
    gateway_event_id = models.CharField(max_length=255, blank=True, default="")
    idempotency_key = models.CharField(max_length=255, unique=True)

    description = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)

    objects = TransactionQuerySet.as_manager()

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["booking", "created_at"], name="payments_tr_booking_5e8a31_idx"),
            models.Index(fields=["escrow", "type"], name="payments_tr_escrow__c7d942_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount_cents__gt=0),
                name="ledger_transaction_amount_positive",
            )
        ]

    def __str__(self) -> str:
        return f"{self.get_type_display()} {self.amount_cents} ({self.status})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AppendOnlyViolation(
                "Ledger transactions cannot be updated",
                details={"transaction_id": self.pk},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AppendOnlyViolation(
            "Ledger transactions cannot be deleted",
            details={"transaction_id": self.pk},
        )
