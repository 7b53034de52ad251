"""
Automated review decision functions.

A decider looks at a dispute's evidence and reason and either resolves it
or escalates it to manual review:

    decide(evidence: Sequence[EvidenceItem], reason: str) -> Resolved | Escalate

Deciders run in a worker thread under a time budget, so they receive
plain snapshots of the evidence rather than model instances and must not
touch the database.

The active decider is chosen by DISPUTE_REVIEW_DECIDER (dotted path) or
injected into DisputeWorkflow directly.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Callable, Union

from disputes.state_machines import PartyRole
from payments.settlement import Outcome


@dataclass(frozen=True)
class EvidenceItem:
    """Snapshot of one DisputeEvidence row."""

    party_role: str
    evidence_type: str
    description: str = ""
    file_url: str = ""


@dataclass(frozen=True)
class Resolved:
    outcome: Outcome
    rationale: str = ""


@dataclass(frozen=True)
class Escalate:
    reason: str = ""


Decision = Union[Resolved, Escalate]
Decider = Callable[[Sequence[EvidenceItem], str], Decision]


def escalate_all(evidence: Sequence[EvidenceItem], reason: str) -> Decision:
    """Default decider: every case goes to a human."""
    return Escalate("Automated resolution disabled; manual review required")


def one_sided_evidence(evidence: Sequence[EvidenceItem], reason: str) -> Decision:
    """
    Resolve only when exactly one party backed its position.

    Customer evidence only -> full refund of the disputed amount.
    Provider evidence only -> release.
    Both or neither -> escalate.
    """
    roles = {str(item.party_role) for item in evidence}
    if roles == {PartyRole.CUSTOMER.value}:
        return Resolved(Outcome.refund(), rationale="Only the customer submitted evidence")
    if roles == {PartyRole.PROVIDER.value}:
        return Resolved(Outcome.release(), rationale="Only the provider submitted evidence")
    if not roles:
        return Escalate("No evidence submitted")
    return Escalate("Both parties submitted evidence")
