"""
Ledger-specific exceptions.

Exception Hierarchy:
    LedgerError (base)
    └── AppendOnlyViolation - Attempt to update or delete a ledger row

Balance violations are raised as payments.exceptions.OverReleaseError so
callers see one conflict type whether they went through the ledger or the
escrow service.
"""

from __future__ import annotations

from core.exceptions import BaseApplicationError


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    Example:
        try:
            LedgerService.record_transactions(entries)
        except LedgerError as e:
            logger.error("Ledger write failed", extra={"error_code": e.error_code})
    """

    default_error_code: str = "LEDGER_ERROR"


class AppendOnlyViolation(LedgerError):
    """
    Raised when code tries to modify or delete a recorded Transaction.

    Ledger rows are immutable; corrections are recorded as new rows.
    """

    default_error_code: str = "LEDGER_APPEND_ONLY"
    http_status: int = 500
