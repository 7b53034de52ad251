"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Pattern Comparison:
    - ServiceResult: Use for expected outcomes a caller may branch on
      (webhook for an unknown payment reference, ignored event kinds)
    - Exceptions: Use for failures that must propagate (invalid state
      transitions, ledger violations, gateway failures)

Usage:
    from core.services import BaseService, ServiceResult

    def handle_payment_succeeded(event, escrow_service) -> ServiceResult:
        try:
            escrow = escrow_service.confirm_capture(event.payment_reference)
        except PaymentNotFoundError as e:
            return ServiceResult.from_exception(e)
        return ServiceResult.success(escrow)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling

    Usage:
        result = dispatch_webhook(event)
        if not result.success:
            logger.warning(f"Webhook not applied: {result.error_code}")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling

        Returns:
            ServiceResult with success=False and error details
        """
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their own error code; anything else
        falls back to the exception class name.
        """
        code = error_code or getattr(exc, "error_code", None)
        return cls.failure(
            getattr(exc, "message", str(exc)),
            error_code=code or exc.__class__.__name__.upper(),
        )

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides a per-class logger so log lines can be filtered by service
    (payments.services.escrow_service.EscrowService, ...).

    Design Notes:
        - Collaborators (gateway, configuration) are injected through the
          constructor so tests can swap them without touching settings
        - Use ServiceResult for expected outcomes
        - Raise exceptions for failures that must reach the caller
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
