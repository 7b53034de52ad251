"""
Ledger service: the only writer of Transaction rows.

Usage:
    from payments.ledger.services import LedgerService
    from payments.ledger.types import RecordTransactionParams

    LedgerService.ensure_within_balance(escrow, 9200)
    LedgerService.record_transactions([
        RecordTransactionParams(...),
    ])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import IntegrityError, models, transaction
from django.db.models import Sum, Value
from django.db.models.functions import Coalesce

from payments.exceptions import OverReleaseError
from payments.ledger.models import Transaction
from payments.ledger.types import Money, RecordTransactionParams
from payments.state_machines import TransactionStatus

if TYPE_CHECKING:
    import uuid

    from payments.models import EscrowAccount

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Service class for ledger operations.

    Key features:
    - Atomic multi-row writes
    - Idempotency via unique keys (safe to retry)
    - Balance derived from rows, checked before any draw-down

    All methods are static - no instance state is maintained.
    """

    @staticmethod
    def record_transactions(
        entries: list[RecordTransactionParams],
    ) -> list[Transaction]:
        """
        Append ledger rows atomically.

        Idempotent per row: an entry whose idempotency_key is already
        recorded returns the existing row unchanged.

        Args:
            entries: Rows to append, in order

        Returns:
            The created or existing Transactions, in the same order
        """
        if not entries:
            return []

        results: list[Transaction] = []

        with transaction.atomic():
            for params in entries:
                existing = Transaction.objects.filter(
                    idempotency_key=params.idempotency_key
                ).first()
                if existing is not None:
                    results.append(existing)
                    continue

                # Savepoint so a lost race does not poison the outer transaction
                try:
                    with transaction.atomic():
                        row = Transaction.objects.create(
                            booking_id=params.booking_id,
                            escrow_id=params.escrow_id,
                            customer_id=params.customer_id,
                            provider_id=params.provider_id,
                            type=params.transaction_type,
                            status=params.status,
                            amount_cents=params.amount_cents,
                            currency=params.currency,
                            gateway_reference=params.gateway_reference,
                            gateway_event_id=params.gateway_event_id,
                            idempotency_key=params.idempotency_key,
                            description=params.description,
                            metadata=params.metadata,
                        )
                except IntegrityError:
                    row = Transaction.objects.get(
                        idempotency_key=params.idempotency_key
                    )
                else:
                    logger.info(
                        "Ledger transaction recorded",
                        extra={
                            "booking_id": str(params.booking_id),
                            "transaction_type": params.transaction_type,
                            "status": params.status,
                            "amount_cents": params.amount_cents,
                            "idempotency_key": params.idempotency_key,
                        },
                    )
                results.append(row)

        return results

    @staticmethod
    def drawn_down(escrow: EscrowAccount) -> int:
        """Sum of non-failed PAYOUT, REFUND and FEE rows for an escrow."""
        result = Transaction.objects.filter(escrow=escrow).balance_affecting().aggregate(
            total=Coalesce(
                Sum("amount_cents"),
                Value(0),
                output_field=models.BigIntegerField(),
            )
        )
        return result["total"]

    @staticmethod
    def remaining_balance(escrow: EscrowAccount) -> int:
        """
        Funds still held for an escrow.

        Returns:
            amount_cents minus everything already paid out, refunded or
            collected as fee
        """
        return escrow.amount_cents - LedgerService.drawn_down(escrow)

    @staticmethod
    def remaining_money(escrow: EscrowAccount) -> Money:
        return Money(
            cents=LedgerService.remaining_balance(escrow),
            currency=escrow.currency,
        )

    @staticmethod
    def ensure_within_balance(escrow: EscrowAccount, amount_cents: int) -> int:
        """
        Check that amount_cents can still be drawn from the escrow.

        Returns:
            The remaining balance before the draw

        Raises:
            OverReleaseError: If amount_cents exceeds the remaining balance
        """
        remaining = LedgerService.remaining_balance(escrow)
        if amount_cents > remaining:
            logger.warning(
                "Over-release rejected",
                extra={
                    "escrow_id": str(escrow.id),
                    "booking_id": str(escrow.booking_id),
                    "requested_cents": amount_cents,
                    "remaining_cents": remaining,
                },
            )
            raise OverReleaseError(
                f"Requested {amount_cents} cents but only {remaining} remain",
                details={
                    "escrow_id": str(escrow.id),
                    "requested_cents": amount_cents,
                    "remaining_cents": remaining,
                },
            )
        return remaining

    @staticmethod
    def transactions_for_booking(booking_id: uuid.UUID) -> list[Transaction]:
        """All ledger rows for a booking in insertion order."""
        return list(Transaction.objects.for_booking(booking_id))

    @staticmethod
    def count_of_type(escrow: EscrowAccount, transaction_type: str) -> int:
        return Transaction.objects.filter(escrow=escrow, type=transaction_type).count()

    @staticmethod
    def recorded_amount(idempotency_key: str) -> int:
        """Amount of the non-failed row recorded under a key; 0 if none."""
        row = (
            Transaction.objects.filter(idempotency_key=idempotency_key)
            .exclude(status=TransactionStatus.FAILED)
            .first()
        )
        return row.amount_cents if row is not None else 0
