"""
Signals sent by the dispute workflow.

dispute_status_changed is the push hook for notifications: it is sent
after every committed status change and once more when a resolution's
funds have been settled.

Signal arguments:
    sender: Dispute
    dispute: The Dispute instance
    previous_status: Status before the change (None when only settled)
    status: Current status
    resolution_settled: Whether the resolution's funds have moved

Usage:
    from django.dispatch import receiver
    from disputes.signals import dispute_status_changed

    @receiver(dispute_status_changed)
    def notify_parties(sender, dispute, status, **kwargs):
        ...
"""

from __future__ import annotations

import logging

from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

dispute_status_changed = Signal()


@receiver(dispute_status_changed)
def log_dispute_status_change(sender, dispute, previous_status, status, **kwargs):
    logger.info(
        "Dispute status changed",
        extra={
            "dispute_id": str(dispute.id),
            "booking_id": str(dispute.booking_id),
            "previous_status": previous_status,
            "status": status,
            "resolution_settled": kwargs.get("resolution_settled", False),
        },
    )
