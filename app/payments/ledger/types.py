"""
Data types for ledger operations.

Types:
    Money: A monetary amount in cents with currency
    RecordTransactionParams: Parameters for appending one Transaction

Usage:
    from payments.ledger.types import Money, RecordTransactionParams

    params = RecordTransactionParams(
        booking_id=booking.id,
        escrow_id=escrow.id,
        customer_id=booking.customer_id,
        provider_id=booking.provider_id,
        transaction_type=TransactionType.PAYOUT,
        amount_cents=9200,
        idempotency_key=f"payout:{booking.id}",
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from payments.state_machines import TransactionStatus


@dataclass(frozen=True)
class Money:
    """
    Represents a monetary amount.

    All amounts are stored in cents (smallest currency unit) to avoid
    floating-point precision issues.

    Example:
        amount = Money(cents=5000, currency="usd")
        print(amount)  # "$50.00 USD"
    """

    cents: int
    currency: str = "usd"

    def __str__(self) -> str:
        dollars = self.cents / 100
        return f"${dollars:.2f} {self.currency.upper()}"

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot add Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Money(cents=self.cents + other.cents, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot subtract Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Money(cents=self.cents - other.cents, currency=self.currency)


@dataclass
class RecordTransactionParams:
    """
    Parameters for appending a ledger Transaction.

    Required Attributes:
        booking_id: Booking the money movement belongs to
        customer_id: Paying user
        provider_id: Receiving user
        transaction_type: PAYMENT, REFUND, PAYOUT or FEE
        amount_cents: Amount in cents (must be positive)
        idempotency_key: Unique key; recording the same key twice is a no-op

    Optional Attributes:
        escrow_id: Escrow the row draws on (all but a failed authorization)
        status: Transaction status (default COMPLETED)
        currency: ISO 4217 code
        gateway_reference: Gateway object id (pi_, tr_, re_)
        gateway_event_id: Webhook event that caused this row
        description: Human-readable description
        metadata: Arbitrary JSON-serializable data
    """

    booking_id: uuid.UUID
    customer_id: Any
    provider_id: Any
    transaction_type: str
    amount_cents: int
    idempotency_key: str

    escrow_id: uuid.UUID | None = None
    status: str = TransactionStatus.COMPLETED
    currency: str = "usd"
    gateway_reference: str = ""
    gateway_event_id: str = ""
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
