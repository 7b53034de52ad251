"""
Dispute workflow configuration.

Read once from settings and injected into DisputeWorkflow, the same way
payments.config.EscrowConfig is.

Usage:
    from disputes.config import DisputeConfig

    config = DisputeConfig.from_settings()
    short = DisputeConfig(evidence_window=timedelta(hours=1))
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from disputes.review import Decider


@dataclass(frozen=True)
class DisputeConfig:
    """
    Attributes:
        evidence_window: How long parties may submit evidence
        automated_review_timeout_seconds: Budget for one decide() call
        decider_path: Dotted path of the default decision function
        settlement_max_retries: Settlement attempts before giving up
        stuck_review_minutes: Age after which an automated review is re-queued
        lock_ttl_seconds / lock_timeout_seconds: Per-booking dispute lock
    """

    evidence_window: timedelta = timedelta(days=3)
    automated_review_timeout_seconds: float = 10.0
    decider_path: str = "disputes.review.escalate_all"
    settlement_max_retries: int = 5
    stuck_review_minutes: int = 30
    lock_ttl_seconds: int = 60
    lock_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.evidence_window <= timedelta(0):
            raise ValueError("evidence_window must be positive")
        if self.automated_review_timeout_seconds <= 0:
            raise ValueError("automated_review_timeout_seconds must be positive")

    @classmethod
    def from_settings(cls) -> DisputeConfig:
        return cls(
            evidence_window=timedelta(
                days=getattr(settings, "DISPUTE_EVIDENCE_WINDOW_DAYS", 3)
            ),
            automated_review_timeout_seconds=getattr(
                settings, "DISPUTE_AUTOMATED_REVIEW_TIMEOUT_SECONDS", 10.0
            ),
            decider_path=getattr(
                settings, "DISPUTE_REVIEW_DECIDER", "disputes.review.escalate_all"
            ),
            settlement_max_retries=getattr(settings, "DISPUTE_SETTLEMENT_MAX_RETRIES", 5),
            stuck_review_minutes=getattr(settings, "DISPUTE_STUCK_REVIEW_MINUTES", 30),
            lock_ttl_seconds=getattr(settings, "ESCROW_LOCK_TTL_SECONDS", 60),
            lock_timeout_seconds=getattr(settings, "ESCROW_LOCK_TIMEOUT_SECONDS", 10.0),
        )

    def load_decider(self) -> Decider:
        return import_string(self.decider_path)
