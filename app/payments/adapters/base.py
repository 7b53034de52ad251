"""
Payment gateway contract consumed by the escrow lifecycle.

The escrow service talks to the payment processor only through this
protocol, so tests and alternative processors can be injected without
touching the state machine.

Every call carries an idempotency key derived from the booking id and the
operation (see IdempotencyKeyGenerator), so a retried call can never move
money twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

# Refund statuses under which no money reached the customer
VOID_REFUND_STATUSES = frozenset({"failed", "canceled"})


@dataclass(frozen=True)
class ChargeResult:
    """
    Result of authorizing or capturing a charge.

    Attributes:
        reference: Gateway payment reference (PaymentIntent id, pi_xxx)
        status: Gateway status string
        amount_cents: Charge amount
        currency: ISO 4217 code
        captured: Whether funds have been captured from the customer
        client_secret: Secret the client uses to confirm the payment
    """

    reference: str
    status: str
    amount_cents: int
    currency: str
    captured: bool = False
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TransferResult:
    """Result of moving funds to a provider's connected account."""

    reference: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundResult:
    """Result of returning funds to the customer."""

    reference: str
    amount_cents: int
    currency: str
    status: str
    payment_reference: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_void(self) -> bool:
        """Failed or canceled: no money went back to the customer."""
        return self.status in VOID_REFUND_STATUSES


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Operations the escrow lifecycle needs from a payment processor.

    Implementations raise payments.exceptions.StripeError subclasses
    (or other PaymentProcessingError subclasses) on failure, after any
    transient-error retries of their own.
    """

    def authorize_charge(
        self,
        amount_cents: int,
        currency: str,
        destination_account: str,
        capture_mode: str,
        metadata: dict[str, str],
        idempotency_key: str,
        application_fee_cents: int | None = None,
    ) -> ChargeResult: ...

    def capture_charge(self, reference: str, idempotency_key: str) -> ChargeResult: ...

    def transfer_funds(
        self,
        amount_cents: int,
        currency: str,
        destination_account: str,
        metadata: dict[str, str],
        idempotency_key: str,
        source_reference: str | None = None,
    ) -> TransferResult: ...

    def refund(
        self,
        reference: str,
        idempotency_key: str,
        amount_cents: int | None = None,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult: ...

    def list_refunds(self, reference: str) -> list[RefundResult]: ...

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]: ...
