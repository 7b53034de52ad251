"""
Dispute models.

A Dispute freezes a booking's escrow while evidence is collected and the
case is reviewed. Its status only changes through the django-fsm
transitions below, called by disputes.services.DisputeWorkflow.

At most one unresolved dispute may exist per booking; this is enforced
by a conditional unique constraint as well as by the workflow.

Usage:
    from disputes.models import Dispute

    dispute = Dispute.objects.active().filter(booking_id=booking_id).first()
"""

from __future__ import annotations

from datetime import datetime, timedelta

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from disputes.state_machines import (
    DisputeReason,
    DisputeStatus,
    EvidenceType,
    PartyRole,
    ResolutionSource,
)
from payments.settlement import Outcome, OutcomeKind


class DisputeQuerySet(models.QuerySet):
    def active(self):
        """Disputes that still block their booking."""
        return self.exclude(status=DisputeStatus.RESOLVED)

    def unsettled(self):
        """Resolved disputes whose funds have not moved yet."""
        return self.filter(status=DisputeStatus.RESOLVED, resolution_settled=False)


class Dispute(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A customer's or provider's dispute over an escrowed booking.

    State Flow:
        INITIATED -> EVIDENCE_COLLECTION -> AUTOMATED_REVIEW -> RESOLVED
        AUTOMATED_REVIEW -> MANUAL_REVIEW -> RESOLVED

    Fields:
        booking: Disputed booking
        initiated_by / initiator_role: Who filed it, and on which side
        reason / description: Why
        amount_cents: Disputed amount (defaults to the remaining escrow)
        evidence_deadline: End of the evidence window
        review_started_at: When automated review began
        resolution_kind / resolution_refund_cents: Binding outcome
        resolution_source: automated or manual
        resolution_settled: Funds moved according to the outcome
        settlement_attempts / last_settlement_error: Settlement retries
    """

    booking = models.ForeignKey(
        "payments.Booking",
        on_delete=models.PROTECT,
        related_name="disputes",
    )
    initiated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="initiated_disputes",
    )
    initiator_role = models.CharField(max_length=20, choices=PartyRole.choices)

    reason = models.CharField(max_length=32, choices=DisputeReason.choices)
    description = models.TextField(blank=True, default="")
    amount_cents = models.PositiveBigIntegerField(
        help_text="Disputed amount in minor units (cents)",
    )

    status = FSMField(
        max_length=32,
        choices=DisputeStatus.choices,
        default=DisputeStatus.INITIATED,
        db_index=True,
    )
    evidence_deadline = models.DateTimeField(null=True, blank=True)
    review_started_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Resolution
    # ==========================================================================

    resolution_kind = models.CharField(
        max_length=20,
        choices=OutcomeKind.choices,
        blank=True,
        default="",
    )
    resolution_refund_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Customer share of the disputed amount for split outcomes",
    )
    resolution_source = models.CharField(
        max_length=20,
        choices=ResolutionSource.choices,
        blank=True,
        default="",
    )
    resolution_notes = models.TextField(blank=True, default="")
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="resolved_disputes",
        null=True,
        blank=True,
    )
    resolved_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Settlement
    # ==========================================================================

    resolution_settled = models.BooleanField(default=False)
    settled_at = models.DateTimeField(null=True, blank=True)
    settlement_attempts = models.PositiveSmallIntegerField(default=0)
    last_settlement_error = models.TextField(blank=True, default="")

    objects = DisputeQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Dispute"
        verbose_name_plural = "Disputes"
        indexes = [
            models.Index(fields=["status", "evidence_deadline"], name="disputes_di_status_6d1e4a_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=~Q(status=DisputeStatus.RESOLVED),
                name="dispute_one_active_per_booking",
            ),
            models.CheckConstraint(
                condition=Q(amount_cents__gt=0),
                name="dispute_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Dispute({self.id}, {self.status}, booking={self.booking_id})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_resolved(self) -> bool:
        return self.status == DisputeStatus.RESOLVED

    @property
    def outcome(self) -> Outcome | None:
        if not self.resolution_kind:
            return None
        return Outcome(kind=self.resolution_kind, refund_cents=self.resolution_refund_cents)

    def time_remaining(self, now: datetime | None = None) -> timedelta:
        """Time left to submit evidence; zero outside evidence collection."""
        if self.status != DisputeStatus.EVIDENCE_COLLECTION or self.evidence_deadline is None:
            return timedelta(0)
        now = now or timezone.now()
        return max(self.evidence_deadline - now, timedelta(0))

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=DisputeStatus.INITIATED,
        target=DisputeStatus.EVIDENCE_COLLECTION,
    )
    def open_evidence_collection(self, deadline: datetime):
        self.evidence_deadline = deadline

    @transition(
        field=status,
        source=DisputeStatus.EVIDENCE_COLLECTION,
        target=DisputeStatus.AUTOMATED_REVIEW,
    )
    def begin_automated_review(self):
        self.review_started_at = timezone.now()

    @transition(
        field=status,
        source=DisputeStatus.AUTOMATED_REVIEW,
        target=DisputeStatus.MANUAL_REVIEW,
    )
    def escalate(self, reason: str = ""):
        """Automated review could not decide; staff take over."""
        self.resolution_notes = reason

    @transition(
        field=status,
        source=[DisputeStatus.AUTOMATED_REVIEW, DisputeStatus.MANUAL_REVIEW],
        target=DisputeStatus.RESOLVED,
    )
    def resolve(self, outcome: Outcome, source: str, resolved_by=None, notes: str = ""):
        self.resolution_kind = outcome.kind
        self.resolution_refund_cents = outcome.refund_cents
        self.resolution_source = source
        self.resolved_by = resolved_by
        if notes:
            self.resolution_notes = notes
        self.resolved_at = timezone.now()
        self.resolution_settled = False


class DisputeEvidence(UUIDPrimaryKeyMixin, BaseModel):
    """
    One piece of evidence submitted by a party.

    Evidence is opaque to the workflow: only who submitted it matters for
    advancing the dispute; the decision function sees the rest.
    """

    dispute = models.ForeignKey(
        Dispute,
        on_delete=models.CASCADE,
        related_name="evidence",
    )
    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="dispute_evidence",
    )
    party_role = models.CharField(max_length=20, choices=PartyRole.choices)
    evidence_type = models.CharField(max_length=20, choices=EvidenceType.choices)
    description = models.TextField(blank=True, default="")
    file_url = models.URLField(max_length=500, blank=True, default="")

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Dispute Evidence"
        verbose_name_plural = "Dispute Evidence"

    def __str__(self) -> str:
        return f"DisputeEvidence({self.evidence_type} by {self.party_role})"
