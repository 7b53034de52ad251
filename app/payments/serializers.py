"""
DRF serializers for the payments app.

Read-only representations of an escrow and its ledger rows.

Usage:
    data = EscrowSummarySerializer(escrow, context={"remaining_cents": 9200}).data
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import EscrowAccount, Transaction


class TransactionSerializer(serializers.ModelSerializer):
    """One ledger row."""

    class Meta:
        model = Transaction
        fields = [
            "id",
            "type",
            "status",
            "amount_cents",
            "currency",
            "gateway_reference",
            "description",
            "created_at",
        ]
        read_only_fields = fields


class EscrowSummarySerializer(serializers.ModelSerializer):
    """
    Escrow summary for a booking.

    Fields:
        booking_id / booking_status: The booking and its status
        remaining_cents: Funds still held (from context)
        transactions: Ledger rows in insertion order
    """

    booking_id = serializers.UUIDField(read_only=True)
    booking_status = serializers.CharField(source="booking.status", read_only=True)
    remaining_cents = serializers.SerializerMethodField()
    transactions = serializers.SerializerMethodField()

    class Meta:
        model = EscrowAccount
        fields = [
            "id",
            "booking_id",
            "booking_status",
            "state",
            "capture_mode",
            "amount_cents",
            "platform_fee_cents",
            "net_amount_cents",
            "currency",
            "remaining_cents",
            "confirmed_at",
            "gateway_captured_at",
            "settled_at",
            "transactions",
        ]
        read_only_fields = fields

    def get_remaining_cents(self, obj: EscrowAccount) -> int:
        return self.context["remaining_cents"]

    @staticmethod
    def get_transactions(obj: EscrowAccount) -> list[dict]:
        rows = Transaction.objects.for_booking(obj.booking_id)
        return TransactionSerializer(rows, many=True).data
