"""
Booking model: a scheduled service engagement paid through escrow.

Bookings are created by the booking flow; their status is then owned by
the escrow lifecycle and only changes through the django-fsm transitions
below, always called by payments.services.EscrowService.

Usage:
    booking = Booking.objects.create(
        customer=customer,
        provider=provider,
        service_id="svc_42",
        scheduled_start=start,
        scheduled_end=end,
        amount_cents=10000,
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from payments.state_machines import BookingStatus


class Booking(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A customer's booking of a provider's service.

    State Flow:
        PENDING -> CONFIRMED -> COMPLETED
        PENDING -> CANCELLED (payment failed)
        CONFIRMED -> DISPUTED -> COMPLETED | REFUNDED
        PENDING/CONFIRMED -> REFUNDED

    Fields:
        customer: User paying for the service
        provider: User delivering the service
        service_id: Identifier of the booked service listing
        scheduled_start / scheduled_end: Service window
        amount_cents: Price in minor units
        currency: ISO 4217 code
        status: FSM-managed booking status
    """

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="customer_bookings",
    )
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="provider_bookings",
    )
    service_id = models.CharField(
        max_length=255,
        help_text="Identifier of the booked service listing",
    )
    scheduled_start = models.DateTimeField()
    scheduled_end = models.DateTimeField()

    amount_cents = models.PositiveBigIntegerField(
        help_text="Booking price in minor units (cents)",
    )
    currency = models.CharField(max_length=3, default="usd")

    status = FSMField(
        max_length=20,
        choices=BookingStatus.choices,
        default=BookingStatus.PENDING,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Booking"
        verbose_name_plural = "Bookings"
        indexes = [
            models.Index(fields=["customer", "status"], name="payments_bo_custome_4c1f0e_idx"),
            models.Index(fields=["provider", "status"], name="payments_bo_provide_9a2d7b_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="booking_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(scheduled_end__gte=models.F("scheduled_start")),
                name="booking_window_ordered",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.status}, {self.amount_cents} {self.currency})"

    def is_party(self, user) -> bool:
        """True if the user is this booking's customer or provider."""
        return user is not None and user.pk in (self.customer_id, self.provider_id)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=BookingStatus.PENDING, target=BookingStatus.CONFIRMED)
    def confirm(self):
        """Payment captured (or authorized for escrow); the booking is on."""

    @transition(
        field=status,
        source=[BookingStatus.CONFIRMED, BookingStatus.DISPUTED],
        target=BookingStatus.COMPLETED,
    )
    def complete(self):
        """Funds released to the provider."""

    @transition(field=status, source=BookingStatus.CONFIRMED, target=BookingStatus.DISPUTED)
    def dispute(self):
        """A party filed a dispute; escrow is frozen."""

    @transition(
        field=status,
        source=[BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.DISPUTED],
        target=BookingStatus.REFUNDED,
    )
    def refund(self):
        """All remaining funds returned to the customer."""

    @transition(field=status, source=BookingStatus.PENDING, target=BookingStatus.CANCELLED)
    def cancel(self):
        """Payment failed before the booking was confirmed."""
