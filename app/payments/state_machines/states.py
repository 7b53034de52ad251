"""
State enums for payment models.

These are Django TextChoices for database storage and admin integration;
BookingStatus and EscrowState back django-fsm fields.

State Machines Overview:

Booking Status:
    pending → confirmed → completed
    pending → cancelled (payment failed)
    confirmed → disputed → completed | refunded
    pending/confirmed → refunded

Escrow State:
    authorized → released | refunded | disputed | failed
    disputed → released | refunded | split
"""

from django.db import models


class BookingStatus(models.TextChoices):
    """
    States for the Booking lifecycle as driven by its escrow.

    Terminal states: COMPLETED, CANCELLED, REFUNDED
    """

    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    DISPUTED = "disputed", "Disputed"
    REFUNDED = "refunded", "Refunded"


class EscrowState(models.TextChoices):
    """
    States for the EscrowAccount lifecycle.

    AUTHORIZED is the only "held" state: funds are authorized or captured
    but not yet moved to the provider or back to the customer.

    Terminal states: RELEASED, REFUNDED, SPLIT, FAILED
    DISPUTED is frozen: only the dispute workflow can settle it.
    """

    AUTHORIZED = "authorized", "Authorized"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"
    DISPUTED = "disputed", "Disputed"
    SPLIT = "split", "Split"
    FAILED = "failed", "Failed"


class CaptureMode(models.TextChoices):
    """
    How funds reach the provider.

    AUTOMATIC: destination charge, the provider is paid on capture
        (non-escrow pass-through)
    MANUAL: funds are held by the platform until an explicit release
    """

    AUTOMATIC = "automatic", "Automatic"
    MANUAL = "manual", "Manual"


class TransactionType(models.TextChoices):
    """Kind of money movement recorded by a ledger Transaction."""

    PAYMENT = "payment", "Payment"
    REFUND = "refund", "Refund"
    PAYOUT = "payout", "Payout"
    FEE = "fee", "Fee"


class TransactionStatus(models.TextChoices):
    """
    Status of a ledger Transaction at the moment it was recorded.

    Rows are append-only: a later status is a new row, never an update.
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for gateway webhook events.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED → PROCESSING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "BookingStatus",
    "CaptureMode",
    "EscrowState",
    "TransactionStatus",
    "TransactionType",
    "WebhookEventStatus",
]
