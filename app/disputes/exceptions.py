"""
Dispute-specific exceptions.

Exception Hierarchy:
    DisputeNotFoundError - Unknown dispute (inherits NotFoundError)
    BookingNotEligible - Escrow not held, cannot dispute (inherits ValidationError)
    DisputeNotInReview - Manual decision outside manual review (inherits ValidationError)
    DisputeAlreadyActive - Booking already has an open dispute (inherits ConflictError)
    EvidenceWindowClosed - Evidence arrived after collection ended (inherits ConflictError)

Usage:
    from disputes.exceptions import DisputeAlreadyActive

    try:
        workflow.initiate_dispute(booking_id, user, reason="no_show", description="")
    except DisputeAlreadyActive as e:
        return error_response(e)
"""

from __future__ import annotations

from core.exceptions import ConflictError, NotFoundError, ValidationError


class DisputeNotFoundError(NotFoundError):
    default_error_code: str = "DISPUTE_NOT_FOUND"


class BookingNotEligible(ValidationError):
    """
    Raised when a booking cannot be disputed.

    The escrow must be held: payment confirmed and funds neither
    released, refunded, frozen nor failed.
    """

    default_error_code: str = "BOOKING_NOT_ELIGIBLE"


class DisputeNotInReview(ValidationError):
    """Raised when a decision is submitted for a dispute that is not awaiting one."""

    default_error_code: str = "DISPUTE_NOT_IN_REVIEW"


class DisputeAlreadyActive(ConflictError):
    """Raised when a booking already has a dispute that is not resolved."""

    default_error_code: str = "DISPUTE_ALREADY_ACTIVE"


class EvidenceWindowClosed(ConflictError):
    """Evidence submitted outside evidence collection; used by the API layer."""

    default_error_code: str = "EVIDENCE_WINDOW_CLOSED"


__all__ = [
    "BookingNotEligible",
    "DisputeAlreadyActive",
    "DisputeNotFoundError",
    "DisputeNotInReview",
    "EvidenceWindowClosed",
]
