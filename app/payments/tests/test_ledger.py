"""
Tests for the append-only ledger.

Tests cover:
- Immutability of recorded rows (instance and queryset)
- Idempotent recording by key
- Balance derivation and over-release rejection
- Insertion ordering
"""

import pytest

from payments.exceptions import OverReleaseError
from payments.ledger import AppendOnlyViolation, Money, RecordTransactionParams
from payments.ledger.services import LedgerService
from payments.models import Transaction
from payments.state_machines import TransactionStatus, TransactionType


def params_for(escrow, transaction_type, amount_cents, key, **kwargs):
    booking = escrow.booking
    return RecordTransactionParams(
        booking_id=booking.id,
        escrow_id=escrow.id,
        customer_id=booking.customer_id,
        provider_id=booking.provider_id,
        transaction_type=transaction_type,
        amount_cents=amount_cents,
        idempotency_key=key,
        **kwargs,
    )


class TestRecordTransactionParams:
    def test_amount_must_be_positive(self):
        with pytest.raises(ValueError):
            RecordTransactionParams(
                booking_id=None,
                customer_id=1,
                provider_id=2,
                transaction_type=TransactionType.FEE,
                amount_cents=0,
                idempotency_key="fee:x",
            )

    def test_idempotency_key_required(self):
        with pytest.raises(ValueError):
            RecordTransactionParams(
                booking_id=None,
                customer_id=1,
                provider_id=2,
                transaction_type=TransactionType.FEE,
                amount_cents=10,
                idempotency_key="",
            )


class TestMoney:
    def test_str(self):
        assert str(Money(cents=920050)) == "$9200.50 USD"

    def test_arithmetic_requires_same_currency(self):
        assert Money(500) + Money(250) == Money(750)
        assert Money(500) - Money(250) == Money(250)
        with pytest.raises(ValueError):
            Money(500, "usd") + Money(500, "eur")


@pytest.mark.django_db
class TestAppendOnly:
    """Ledger rows can never change once recorded."""

    def test_instance_update_rejected(self, held_escrow):
        row = Transaction.objects.filter(escrow=held_escrow).first()
        row.amount_cents = 1

        with pytest.raises(AppendOnlyViolation):
            row.save()

    def test_instance_delete_rejected(self, held_escrow):
        row = Transaction.objects.filter(escrow=held_escrow).first()

        with pytest.raises(AppendOnlyViolation):
            row.delete()

    def test_queryset_update_rejected(self, held_escrow):
        with pytest.raises(AppendOnlyViolation):
            Transaction.objects.filter(escrow=held_escrow).update(amount_cents=1)

    def test_queryset_delete_rejected(self, held_escrow):
        with pytest.raises(AppendOnlyViolation):
            Transaction.objects.filter(escrow=held_escrow).delete()


@pytest.mark.django_db
class TestRecordTransactions:
    """Tests for LedgerService.record_transactions."""

    def test_records_rows_in_order(self, held_escrow):
        rows = LedgerService.record_transactions(
            [
                params_for(held_escrow, TransactionType.PAYOUT, 4600, "payout:test"),
                params_for(held_escrow, TransactionType.FEE, 400, "fee:test"),
            ]
        )

        assert [r.type for r in rows] == [TransactionType.PAYOUT, TransactionType.FEE]
        assert rows[0].id < rows[1].id
        assert rows[0].status == TransactionStatus.COMPLETED

    def test_same_key_is_recorded_once(self, held_escrow):
        entry = params_for(held_escrow, TransactionType.REFUND, 1000, "refund:once")

        first = LedgerService.record_transactions([entry])
        second = LedgerService.record_transactions([entry])

        assert first[0].pk == second[0].pk
        assert Transaction.objects.filter(idempotency_key="refund:once").count() == 1

    def test_empty_batch(self):
        assert LedgerService.record_transactions([]) == []

    def test_transactions_for_booking_in_insertion_order(self, held_escrow):
        LedgerService.record_transactions(
            [params_for(held_escrow, TransactionType.REFUND, 100, "refund:order")]
        )

        rows = LedgerService.transactions_for_booking(held_escrow.booking_id)

        assert [r.idempotency_key for r in rows][-1] == "refund:order"
        assert [r.id for r in rows] == sorted(r.id for r in rows)


@pytest.mark.django_db
class TestBalance:
    """Remaining balance is derived from rows, never stored."""

    def test_untouched_escrow_has_full_balance(self, held_escrow):
        assert LedgerService.remaining_balance(held_escrow) == 10000
        assert LedgerService.remaining_money(held_escrow) == Money(10000, "usd")

    def test_payment_rows_do_not_draw_down(self, held_escrow):
        # authorize + confirm recorded two PAYMENT rows
        assert Transaction.objects.filter(
            escrow=held_escrow, type=TransactionType.PAYMENT
        ).count() == 2
        assert LedgerService.drawn_down(held_escrow) == 0

    def test_failed_rows_do_not_draw_down(self, held_escrow):
        LedgerService.record_transactions(
            [
                params_for(
                    held_escrow,
                    TransactionType.REFUND,
                    3000,
                    "refund:failed",
                    status=TransactionStatus.FAILED,
                )
            ]
        )

        assert LedgerService.remaining_balance(held_escrow) == 10000

    def test_payout_refund_and_fee_draw_down(self, held_escrow):
        LedgerService.record_transactions(
            [
                params_for(held_escrow, TransactionType.REFUND, 3000, "refund:a"),
                params_for(held_escrow, TransactionType.PAYOUT, 2000, "payout:a"),
                params_for(held_escrow, TransactionType.FEE, 500, "fee:a"),
            ]
        )

        assert LedgerService.remaining_balance(held_escrow) == 4500

    def test_ensure_within_balance_returns_remaining(self, held_escrow):
        assert LedgerService.ensure_within_balance(held_escrow, 10000) == 10000

    def test_over_release_rejected(self, held_escrow):
        with pytest.raises(OverReleaseError) as exc_info:
            LedgerService.ensure_within_balance(held_escrow, 10001)

        assert exc_info.value.details["remaining_cents"] == 10000
        assert exc_info.value.details["requested_cents"] == 10001

    def test_count_of_type(self, held_escrow):
        assert LedgerService.count_of_type(held_escrow, TransactionType.PAYMENT) == 2
        assert LedgerService.count_of_type(held_escrow, TransactionType.REFUND) == 0

    def test_recorded_amount_ignores_failed_rows(self, held_escrow):
        LedgerService.record_transactions(
            [
                params_for(held_escrow, TransactionType.REFUND, 3000, "refund:x:dispute"),
                params_for(
                    held_escrow,
                    TransactionType.REFUND,
                    500,
                    "refund:x:failed",
                    status=TransactionStatus.FAILED,
                ),
            ]
        )

        assert LedgerService.recorded_amount("refund:x:dispute") == 3000
        assert LedgerService.recorded_amount("refund:x:failed") == 0
        assert LedgerService.recorded_amount("refund:x:missing") == 0
