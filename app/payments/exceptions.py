"""
Payment-specific exceptions for escrow operations.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Booking/escrow lookup failures
    ├── PaymentValidationError - Payment validation failures
    │   ├── InvalidAmount - Amount below minimum or inconsistent with booking
    │   └── InvalidEventPayload - Webhook body missing required fields
    ├── InvalidSignature - Webhook signature verification failed
    └── PaymentProcessingError - Payment processing failures
        ├── PaymentFailedError - Gateway call failed after retries
        └── StripeError - Base for all Stripe errors
            ├── StripeCardDeclinedError - Card declined (permanent)
            ├── StripeInsufficientFundsError - Insufficient funds (permanent)
            ├── StripeInvalidAccountError - Invalid Stripe account (permanent)
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeRateLimitError - Rate limited (transient, retry)
            ├── StripeAPIUnavailableError - API unavailable (transient, retry)
            └── StripeTimeoutError - Request timeout (transient, retry)

    StaleRecordError - Optimistic locking conflict (inherits ConflictError)
    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)
        └── InvalidState - Escrow operation not valid in current state
    OverReleaseError - Ledger balance would be exceeded (inherits ConflictError)

Usage:
    from payments.exceptions import InvalidState, OverReleaseError

    try:
        escrow_service.refund(booking_id, amount_cents=12000)
    except OverReleaseError as e:
        logger.warning(f"Refund rejected: {e.details}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    Inherits from BaseApplicationError for consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """
    Raised when a payment entity cannot be found.

    Use for:
    - Booking lookup fails
    - EscrowAccount lookup fails (booking never authorized)
    - Payment reference from a webhook matches no escrow
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"
    http_status: int = 404


class PaymentValidationError(PaymentError):
    """
    Raised when payment validation fails.

    Use for:
    - Invalid payment amount
    - Invalid currency
    - Business rule violations
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class InvalidAmount(PaymentValidationError):
    """
    Raised when an amount cannot be charged, refunded or disputed.

    Example:
        if amount_cents < config.minimum_charge_cents:
            raise InvalidAmount(
                "Amount is below the minimum chargeable amount",
                details={"amount_cents": amount_cents, "minimum_cents": 50},
            )
    """

    default_error_code: str = "INVALID_AMOUNT"


class InvalidEventPayload(PaymentValidationError):
    """
    Raised when a verified webhook event lacks fields its kind requires.

    The event is marked failed; redelivering the same body will not help,
    so it is not worth retrying beyond the normal webhook retry budget.
    """

    default_error_code: str = "INVALID_EVENT_PAYLOAD"


class InvalidSignature(PaymentError):
    """
    Raised when an inbound webhook fails signature verification.

    Security error: the event is rejected outright, logged, and never
    recorded or processed.
    """

    default_error_code: str = "INVALID_SIGNATURE"


class PaymentProcessingError(PaymentError):
    """
    Raised when payment processing fails.

    Use for:
    - Stripe API errors
    - Payment gateway failures
    - Processing timeouts
    """

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"
    http_status: int = 502


class PaymentFailedError(PaymentProcessingError):
    """
    Raised when a gateway call failed permanently or exhausted its retries.

    The escrow and booking are left in their pre-transition state; the
    original gateway error is kept in details for inspection.

    Example:
        except StripeError as e:
            raise PaymentFailedError(
                "Transfer to provider failed",
                details={"booking_id": str(booking.id), "gateway_error": e.error_code},
            ) from e
    """

    default_error_code: str = "PAYMENT_FAILED"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    Base exception for all Stripe-related errors.

    Provides common attributes for Stripe error handling:
    - stripe_code: Stripe's internal error code
    - decline_code: Card decline code (if applicable)
    - is_retryable: Whether the operation can be retried

    Use is_retryable to determine retry behavior:
    - True: Transient error, safe to retry with backoff
    - False: Permanent error, do not retry
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    Permanent: do not retry with the same card. The decline_code
    attribute contains the specific reason.
    """

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInsufficientFundsError(StripeError):
    """Insufficient funds on the payment method. User action is required."""

    default_error_code: str = "INSUFFICIENT_FUNDS"
    is_retryable: bool = False


class StripeInvalidAccountError(StripeError):
    """
    Invalid Stripe Connect account.

    Raised when the provider's destination account is missing, disabled
    or not able to receive transfers. Requires manual intervention.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Possible causes:
    - Unknown payment intent ID
    - Refund larger than the captured amount
    - Capture of an intent that is not capturable

    Note:
        This usually indicates a bug in our code, not a user error.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by Stripe API. Retry with exponential backoff."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    Covers network connectivity issues and Stripe server errors (5xx).
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    IMPORTANT: The operation may have succeeded on Stripe's side.
    Retries reuse the same idempotency key so Stripe returns the
    original response instead of repeating the money movement.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Concurrency Control and Ledger Exceptions
# =============================================================================


class StaleRecordError(ConflictError):
    """
    Raised when optimistic locking detects concurrent modification.

    Attributes:
        details: Contains pk, expected_version, and current_version
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Another process holds the per-booking lock and did not release it
    within the timeout.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed in our standard error format.

    Attributes:
        details: Contains current_state and the attempted operation
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class InvalidState(InvalidStateTransitionError):
    """
    Raised when an escrow operation is not valid in the current state.

    Examples: releasing a refunded escrow, refunding a frozen escrow, or
    the losing side of a release racing a dispute freeze.
    """

    default_error_code: str = "INVALID_STATE"


class OverReleaseError(ConflictError):
    """
    Raised when money movement would exceed the escrow's remaining balance.

    Never clamped: the caller asked for more than is held.

    Attributes:
        details: Contains requested_cents and remaining_cents
    """

    default_error_code: str = "OVER_RELEASE"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "InvalidAmount",
    "InvalidEventPayload",
    "InvalidSignature",
    "PaymentProcessingError",
    "PaymentFailedError",
    # Stripe-specific
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    # Concurrency control and ledger
    "StaleRecordError",
    "LockAcquisitionError",
    "InvalidStateTransitionError",
    "InvalidState",
    "OverReleaseError",
]
