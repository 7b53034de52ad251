"""
Pytest fixtures for dispute tests.

Disputes are driven through DisputeWorkflow on top of the escrow
fixtures from the root conftest, so escrow, booking and ledger state
always match the dispute's status.

Usage:
    def test_manual_decision(manual_review_dispute, workflow, staff_user):
        workflow.submit_manual_decision(manual_review_dispute.id, Outcome.release(), staff_user)
"""

import pytest

from disputes.config import DisputeConfig
from disputes.review import escalate_all
from disputes.services import DisputeWorkflow
from disputes.signals import dispute_status_changed
from disputes.state_machines import EvidenceType


@pytest.fixture
def dispute_config():
    return DisputeConfig()


@pytest.fixture
def make_workflow(escrow_service, dispute_config):
    """Build a DisputeWorkflow on the in-memory gateway with a chosen decider."""

    def _create(decide=escalate_all, config=None):
        return DisputeWorkflow(
            escrow_service=escrow_service,
            decide=decide,
            config=config or dispute_config,
        )

    return _create


@pytest.fixture
def workflow(make_workflow):
    """Workflow whose automated review escalates everything."""
    return make_workflow()


# =============================================================================
# Dispute State Fixtures
# =============================================================================


@pytest.fixture
def dispute(held_escrow, workflow, customer):
    """Dispute filed by the customer, collecting evidence."""
    return workflow.initiate_dispute(
        held_escrow.booking_id,
        customer,
        reason="no_show",
        description="Provider never arrived",
    )


@pytest.fixture
def review_dispute(dispute, workflow, customer, provider):
    """Both parties submitted evidence: dispute is in automated review."""
    workflow.submit_evidence(dispute.id, customer, EvidenceType.PHOTO, "Empty venue")
    workflow.submit_evidence(dispute.id, provider, EvidenceType.MESSAGE, "Customer cancelled")
    dispute.refresh_from_db()
    return dispute


@pytest.fixture
def manual_review_dispute(review_dispute, workflow):
    """Automated review escalated: dispute awaits a staff decision."""
    return workflow.run_automated_review(review_dispute.id)


# =============================================================================
# Signal Capture
# =============================================================================


@pytest.fixture
def status_changes():
    """Record every dispute_status_changed as (previous_status, status, settled)."""
    received = []

    def receiver(sender, dispute, previous_status, status, **kwargs):
        received.append((previous_status, status, kwargs.get("resolution_settled")))

    dispute_status_changed.connect(receiver, weak=False)
    yield received
    dispute_status_changed.disconnect(receiver)
