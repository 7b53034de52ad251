"""
Choice enums for dispute models.

DisputeStatus is driven by django-fsm transitions on Dispute; the others
are plain choices.

State Flow:
    INITIATED -> EVIDENCE_COLLECTION -> AUTOMATED_REVIEW -> RESOLVED
    AUTOMATED_REVIEW -> MANUAL_REVIEW -> RESOLVED
"""

from django.db import models


class DisputeStatus(models.TextChoices):
    """
    Lifecycle of a dispute.

    INITIATED: Created, escrow being frozen
    EVIDENCE_COLLECTION: Both parties may submit evidence until the deadline
    AUTOMATED_REVIEW: The decision function is looking at the case
    MANUAL_REVIEW: Waiting for a staff decision
    RESOLVED: Outcome is binding; funds settled or being settled
    """

    INITIATED = "initiated", "Initiated"
    EVIDENCE_COLLECTION = "evidence_collection", "Evidence collection"
    AUTOMATED_REVIEW = "automated_review", "Automated review"
    MANUAL_REVIEW = "manual_review", "Manual review"
    RESOLVED = "resolved", "Resolved"


class DisputeReason(models.TextChoices):
    SERVICE_NOT_PROVIDED = "service_not_provided", "Service not provided"
    POOR_QUALITY = "poor_quality", "Poor quality"
    INCOMPLETE_SERVICE = "incomplete_service", "Incomplete service"
    OVERCHARGE = "overcharge", "Overcharge"
    NO_SHOW = "no_show", "No show"
    SAFETY = "safety", "Safety concern"
    OTHER = "other", "Other"


class PartyRole(models.TextChoices):
    """Which side of the booking a user is on."""

    CUSTOMER = "customer", "Customer"
    PROVIDER = "provider", "Provider"


class EvidenceType(models.TextChoices):
    PHOTO = "photo", "Photo"
    DOCUMENT = "document", "Document"
    MESSAGE = "message", "Message"
    RECEIPT = "receipt", "Receipt"
    OTHER = "other", "Other"


class ResolutionSource(models.TextChoices):
    """Who produced the binding outcome."""

    AUTOMATED = "automated", "Automated review"
    MANUAL = "manual", "Manual review"
