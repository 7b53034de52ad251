"""
Tests for the automated review decision functions.
"""

from payments.settlement import Outcome
from disputes.review import (
    Escalate,
    EvidenceItem,
    Resolved,
    escalate_all,
    one_sided_evidence,
)
from disputes.state_machines import EvidenceType, PartyRole


def item(role, evidence_type=EvidenceType.PHOTO):
    return EvidenceItem(party_role=role, evidence_type=evidence_type, description="x")


class TestEscalateAll:
    def test_always_escalates(self):
        decision = escalate_all([item(PartyRole.CUSTOMER)], "no_show")

        assert isinstance(decision, Escalate)
        assert "manual review" in decision.reason


class TestOneSidedEvidence:
    def test_customer_only_refunds(self):
        decision = one_sided_evidence(
            [item(PartyRole.CUSTOMER), item(PartyRole.CUSTOMER, EvidenceType.RECEIPT)],
            "no_show",
        )

        assert decision == Resolved(
            Outcome.refund(), rationale="Only the customer submitted evidence"
        )

    def test_provider_only_releases(self):
        decision = one_sided_evidence([item(PartyRole.PROVIDER)], "poor_quality")

        assert isinstance(decision, Resolved)
        assert decision.outcome == Outcome.release()

    def test_both_parties_escalate(self):
        decision = one_sided_evidence(
            [item(PartyRole.CUSTOMER), item(PartyRole.PROVIDER)], "overcharge"
        )

        assert decision == Escalate("Both parties submitted evidence")

    def test_no_evidence_escalates(self):
        assert one_sided_evidence([], "other") == Escalate("No evidence submitted")
