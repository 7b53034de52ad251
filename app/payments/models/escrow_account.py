"""
EscrowAccount model: the financial state of one booking.

The fee split is computed once at authorization and never recalculated:
platform_fee_cents + net_amount_cents == amount_cents is enforced by a
database check constraint. Money actually moved is recorded as ledger
Transactions; the remaining balance is always derived from them.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from payments.state_machines import CaptureMode, EscrowState


class EscrowAccount(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Funds authorized for a booking and held until release, refund or dispute.

    State Flow:
        AUTHORIZED -> RELEASED | REFUNDED | DISPUTED | FAILED
        DISPUTED -> RELEASED | REFUNDED | SPLIT

    Fields:
        booking: The booking these funds pay for
        amount_cents: Authorized amount
        platform_fee_cents: Commission locked at authorization
        net_amount_cents: Provider share (amount - fee)
        commission_rate: Rate used for platform_fee_cents
        capture_mode: automatic (pass-through) or manual (held)
        provider_gateway_account_id: Destination for the provider share
        gateway_reference: Gateway payment reference (pi_xxx)
        confirmed_at: When the gateway confirmed the payment
        gateway_captured_at: When funds were captured from the customer
        settled_at: When the escrow reached a terminal state
        pending_operation: Release or refund whose gateway calls are in
            flight; freeze() is refused while it is set
        state: FSM-managed escrow state
    """

    booking = models.OneToOneField(
        "payments.Booking",
        on_delete=models.PROTECT,
        related_name="escrow",
    )

    # ==========================================================================
    # Amounts (immutable after authorization)
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField()
    platform_fee_cents = models.PositiveBigIntegerField()
    net_amount_cents = models.PositiveBigIntegerField()
    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        help_text="Commission rate locked at authorization (0.0800 = 8%)",
    )
    currency = models.CharField(max_length=3, default="usd")

    # ==========================================================================
    # Gateway
    # ==========================================================================

    capture_mode = models.CharField(
        max_length=20,
        choices=CaptureMode.choices,
        default=CaptureMode.MANUAL,
    )
    provider_gateway_account_id = models.CharField(max_length=255)
    gateway_reference = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway payment reference (PaymentIntent id)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    state = FSMField(
        max_length=20,
        choices=EscrowState.choices,
        default=EscrowState.AUTHORIZED,
        db_index=True,
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    gateway_captured_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")
    pending_operation = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Fund movement whose gateway calls are in flight",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Escrow Account"
        verbose_name_plural = "Escrow Accounts"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    amount_cents=models.F("platform_fee_cents") + models.F("net_amount_cents")
                ),
                name="escrow_fee_plus_net_equals_amount",
            ),
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="escrow_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"EscrowAccount({self.booking_id}, {self.state}, {self.amount_cents})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_held(self) -> bool:
        """Payment confirmed and funds not yet released, refunded or frozen."""
        return self.state == EscrowState.AUTHORIZED and self.confirmed_at is not None

    @property
    def is_captured(self) -> bool:
        return self.gateway_captured_at is not None

    @property
    def is_settled(self) -> bool:
        return self.state in (
            EscrowState.RELEASED,
            EscrowState.REFUNDED,
            EscrowState.SPLIT,
            EscrowState.FAILED,
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=state,
        source=[EscrowState.AUTHORIZED, EscrowState.DISPUTED],
        target=EscrowState.RELEASED,
    )
    def release(self):
        self.settled_at = timezone.now()

    @transition(
        field=state,
        source=[EscrowState.AUTHORIZED, EscrowState.DISPUTED],
        target=EscrowState.REFUNDED,
    )
    def refund(self):
        self.settled_at = timezone.now()

    @transition(field=state, source=EscrowState.DISPUTED, target=EscrowState.SPLIT)
    def split(self):
        self.settled_at = timezone.now()

    @transition(field=state, source=EscrowState.AUTHORIZED, target=EscrowState.DISPUTED)
    def freeze(self):
        """Dispute filed: only dispute settlement can move funds now."""

    @transition(field=state, source=EscrowState.AUTHORIZED, target=EscrowState.FAILED)
    def fail(self, reason: str = ""):
        self.failure_reason = reason
        self.settled_at = timezone.now()
