"""
Payment services.

- EscrowService: Authorization, capture confirmation, release, refund,
  freeze/unfreeze and external refund recording for booking escrows

Usage:
    from payments.services import EscrowService

    service = EscrowService()
    service.release(booking_id)
"""

from payments.services.escrow_service import EscrowService

__all__ = ["EscrowService"]
