"""
Base exception classes for application-wide error handling.

Every domain error in the escrow and dispute apps derives from
BaseApplicationError so that views, Celery tasks and webhook handlers
can treat expected failures uniformly:

- Machine-readable error codes for API clients
- Structured details for logging and debugging
- A default HTTP status used by the API layer

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Caller mistakes and precondition failures (400)
    ├── NotFoundError - Resource not found (404)
    ├── PermissionDeniedError - Authorization failures (403)
    ├── ConflictError - State conflicts, races, ledger violations (409)
    └── ExternalServiceError - Payment gateway and other third parties (502)

Usage:
    from core.exceptions import ConflictError, ValidationError

    raise ValidationError(
        "Amount must be positive",
        error_code="INVALID_AMOUNT",
        details={"amount_cents": amount_cents},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, states)
        http_status: Status code the API layer responds with

    Example:
        try:
            EscrowService().release(booking_id)
        except BaseApplicationError as e:
            logger.warning(f"Release rejected: {e.error_code}")
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error, error_code, and (when present) details keys

        Example:
            {
                "error": "Escrow is not held",
                "error_code": "INVALID_STATE",
                "details": {"state": "released"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input or a business precondition is invalid.

    Use for:
    - Amounts outside the chargeable range
    - Operations on records that are not eligible (booking not escrowed)
    - Malformed inbound payloads

    Never retried automatically; surfaced to the caller as-is.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        escrow = EscrowAccount.objects.filter(booking_id=booking_id).first()
        if not escrow:
            raise NotFoundError(
                f"No escrow for booking {booking_id}",
                error_code="ESCROW_NOT_FOUND",
                details={"booking_id": str(booking_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when a user lacks permission for an operation.

    Use for:
    - Filing a dispute on a booking the user is not a party to
    - Submitting evidence as a non-party

    Note:
        For authentication failures (missing/invalid token), use DRF's
        AuthenticationFailed. Use this for authorization failures.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Invalid state transitions (release after refund)
    - Concurrent modification conflicts and lock contention
    - Ledger balance violations
    - A second active dispute on the same booking

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Use for:
    - Payment gateway failures (Stripe)
    - Network timeouts
    - Unexpected third-party responses

    Note:
        Log the original error for debugging but don't expose
        internal details to clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
