"""
Celery tasks for the dispute workflow.

This module provides async tasks for:
- Closing evidence collection when the deadline passes (ETA task)
- Running automated review outside the request cycle
- Retrying settlement of resolved disputes
- A periodic scan that backs up all three

Usage:
    from disputes.tasks import advance_dispute_after_deadline

    advance_dispute_after_deadline.apply_async(
        args=[str(dispute.id)], eta=dispute.evidence_deadline
    )
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

from core.exceptions import BaseApplicationError
from payments.exceptions import LockAcquisitionError

from disputes.config import DisputeConfig
from disputes.models import Dispute
from disputes.state_machines import DisputeStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SCAN_BATCH_SIZE = 100


# =============================================================================
# Workflow Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(LockAcquisitionError,),
    retry_backoff=True,
    max_retries=5,
    acks_late=True,
)
def advance_dispute_after_deadline(self, dispute_id: str) -> dict:
    """
    Close evidence collection for a dispute whose deadline has passed.

    Early or stale deliveries are no-ops, so the ETA task and the
    periodic scan can both fire safely.
    """
    from disputes.services import DisputeWorkflow

    dispute = DisputeWorkflow().advance_after_deadline(dispute_id)
    return {"dispute_id": dispute_id, "status": dispute.status}


@shared_task(
    bind=True,
    autoretry_for=(LockAcquisitionError,),
    retry_backoff=True,
    max_retries=5,
    acks_late=True,
)
def run_automated_review(self, dispute_id: str) -> dict:
    """
    Run automated review for a dispute in AUTOMATED_REVIEW.

    A settlement failure after an automated resolution is already
    recorded on the dispute and rescheduled, so it is reported here
    rather than retried.
    """
    from disputes.services import DisputeWorkflow

    workflow = DisputeWorkflow()
    try:
        dispute = workflow.run_automated_review(dispute_id)
    except LockAcquisitionError:
        raise
    except BaseApplicationError as e:
        logger.warning(
            "Automated review resolved but settlement failed",
            extra={"dispute_id": dispute_id, "error_code": e.error_code},
        )
        return {"dispute_id": dispute_id, "status": "settlement_failed", "error": e.message}
    return {
        "dispute_id": dispute_id,
        "status": dispute.status,
        "resolution_settled": dispute.resolution_settled,
    }


@shared_task(bind=True, acks_late=True)
def settle_dispute_resolution(self, dispute_id: str) -> dict:
    """
    Retry fund movement for a resolved dispute.

    DisputeWorkflow schedules the next attempt itself while the retry
    budget lasts; this task only reports the outcome.
    """
    from disputes.services import DisputeWorkflow

    try:
        dispute = DisputeWorkflow().settle_resolution(dispute_id)
    except BaseApplicationError as e:
        logger.warning(
            "Dispute settlement attempt failed",
            extra={"dispute_id": dispute_id, "error_code": e.error_code},
        )
        return {"dispute_id": dispute_id, "status": "failed", "error": e.message}
    return {"dispute_id": dispute_id, "resolution_settled": dispute.resolution_settled}


# =============================================================================
# Periodic Tasks
# =============================================================================


@shared_task
def process_expired_evidence_windows() -> dict:
    """
    Periodic backstop for the dispute timers.

    Queues:
    - Disputes still collecting evidence after their deadline
    - Automated reviews older than the stuck threshold
    - Resolved disputes whose settlement has not succeeded, while the
      retry budget lasts

    Returns:
        Dict with counts of queued disputes per category
    """
    config = DisputeConfig.from_settings()
    now = timezone.now()
    stuck_before = now - timedelta(minutes=config.stuck_review_minutes)

    expired_ids = list(
        Dispute.objects.filter(
            status=DisputeStatus.EVIDENCE_COLLECTION,
            evidence_deadline__lte=now,
        )
        .order_by("evidence_deadline")
        .values_list("id", flat=True)[:SCAN_BATCH_SIZE]
    )
    for dispute_id in expired_ids:
        advance_dispute_after_deadline.delay(str(dispute_id))

    stuck_ids = list(
        Dispute.objects.filter(
            status=DisputeStatus.AUTOMATED_REVIEW,
            review_started_at__lt=stuck_before,
        ).values_list("id", flat=True)[:SCAN_BATCH_SIZE]
    )
    for dispute_id in stuck_ids:
        run_automated_review.delay(str(dispute_id))

    unsettled_ids = list(
        Dispute.objects.unsettled()
        .filter(
            settlement_attempts__lt=config.settlement_max_retries,
            updated_at__lt=stuck_before,
        )
        .values_list("id", flat=True)[:SCAN_BATCH_SIZE]
    )
    for dispute_id in unsettled_ids:
        settle_dispute_resolution.delay(str(dispute_id))

    counts = {
        "expired_queued": len(expired_ids),
        "stuck_reviews_queued": len(stuck_ids),
        "settlements_queued": len(unsettled_ids),
    }
    if any(counts.values()):
        logger.info("Queued dispute timers", extra=counts)
    return counts
