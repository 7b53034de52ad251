"""
Payment domain models.

- Booking: Scheduled service engagement, status driven by its escrow
- EscrowAccount: Authorized funds and fee split for one booking
- Transaction: Append-only ledger row (defined in payments.ledger)
- ConnectedAccount: Provider payout destination at the gateway
- WebhookEvent: Gateway webhook event tracking for idempotent processing
"""

from payments.ledger.models import Transaction
from payments.models.booking import Booking
from payments.models.connected_account import ConnectedAccount
from payments.models.escrow_account import EscrowAccount
from payments.models.webhook_event import MAX_WEBHOOK_RETRIES, WebhookEvent

__all__ = [
    "Booking",
    "ConnectedAccount",
    "EscrowAccount",
    "MAX_WEBHOOK_RETRIES",
    "Transaction",
    "WebhookEvent",
]
