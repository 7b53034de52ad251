"""
Payment gateway adapters.

PaymentGateway is the contract the escrow lifecycle depends on;
StripeGateway is the production implementation.
"""

from payments.adapters.base import (
    ChargeResult,
    PaymentGateway,
    RefundResult,
    TransferResult,
)
from payments.adapters.stripe_adapter import (
    IdempotencyKeyGenerator,
    StripeGateway,
    backoff_delay,
    is_retryable_stripe_error,
)

__all__ = [
    "ChargeResult",
    "IdempotencyKeyGenerator",
    "PaymentGateway",
    "RefundResult",
    "StripeGateway",
    "TransferResult",
    "backoff_delay",
    "is_retryable_stripe_error",
]
