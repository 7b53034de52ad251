"""
Disputes app: dispute resolution for escrowed bookings.

This app handles:
- Filing a dispute against a booking whose funds are held in escrow
- Timed evidence collection from both parties
- Bounded automated review with an injected decision function
- Manual review by staff
- Feeding the binding resolution back into the escrow lifecycle

Related apps:
    - payments: escrow freeze/unfreeze primitives and the ledger

Usage:
    from disputes.services import DisputeWorkflow

    dispute = DisputeWorkflow().initiate_dispute(
        booking.id, request.user, reason="no_show", description="Provider never arrived"
    )
"""
