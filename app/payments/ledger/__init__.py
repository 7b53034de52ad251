"""
Ledger - append-only record of every money movement against an escrow.

Public API:
    Models (payments.ledger.models):
        Transaction - One immutable money movement

    Service (payments.ledger.services):
        LedgerService - record_transactions, remaining_balance,
            ensure_within_balance, transactions_for_booking

    Types:
        Money - Monetary amount in cents
        RecordTransactionParams - Parameters for appending a row

    Exceptions:
        LedgerError - Base exception for ledger operations
        AppendOnlyViolation - Update or delete of a recorded row

Models and services are imported from their modules directly; this
package is loaded while the app registry is still populating.

Usage:
    from payments.ledger.services import LedgerService

    remaining = LedgerService.remaining_balance(escrow)
"""

from .exceptions import AppendOnlyViolation, LedgerError
from .types import Money, RecordTransactionParams

__all__ = [
    "AppendOnlyViolation",
    "LedgerError",
    "Money",
    "RecordTransactionParams",
]
