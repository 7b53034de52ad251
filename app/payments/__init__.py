"""
Payments app: escrow payment lifecycle for marketplace bookings.

This app handles:
- Payment authorization and capture confirmation
- Holding funds in escrow until release, refund or dispute settlement
- Append-only ledger of payments, payouts, fees and refunds
- Stripe webhook ingress

Related apps:
    - disputes: freezes and settles escrows through EscrowService

Usage:
    from payments.services import EscrowService

    escrow = EscrowService().authorize(booking.id, booking.amount_cents, "acct_123")
"""
