"""
End-to-end journeys across payments and disputes.

Each test drives a booking from payment to final settlement through the
same entry points production uses: EscrowService, the Celery tasks and
the REST API. The in-memory gateway stands in for Stripe.
"""

from datetime import timedelta

import pytest
from django.urls import reverse
from freezegun import freeze_time

from disputes.models import Dispute
from disputes.review import one_sided_evidence
from disputes.state_machines import DisputeStatus
from disputes.tasks import (
    advance_dispute_after_deadline,
    process_expired_evidence_windows,
    run_automated_review,
)
from payments.ledger.services import LedgerService
from payments.models import Booking, EscrowAccount, Transaction
from payments.state_machines import BookingStatus, EscrowState, TransactionType


def assert_balanced(escrow):
    """Everything paid in has left as payout, fee or refund."""
    rows = Transaction.objects.filter(escrow=escrow).balance_affecting()
    drawn = sum(row.amount_cents for row in rows)
    assert drawn == escrow.amount_cents
    assert LedgerService.remaining_balance(escrow) == 0


@pytest.fixture
def wire_workflow(mocker):
    """Point the API views and the tasks at one workflow."""

    def _wire(workflow):
        mocker.patch("disputes.views.DisputeWorkflow", return_value=workflow)
        mocker.patch("disputes.services.DisputeWorkflow", return_value=workflow)
        return workflow

    return _wire


@pytest.mark.django_db
class TestHappyPath:
    def test_pay_confirm_release(self, booking, escrow_service, gateway):
        escrow = escrow_service.authorize(booking.id, 10000, "acct_provider")
        escrow_service.confirm_capture(escrow.gateway_reference)

        escrow = escrow_service.release(booking.id)

        assert escrow.state == EscrowState.RELEASED
        assert Booking.objects.get(pk=booking.id).status == BookingStatus.COMPLETED
        assert gateway.calls_to("transfer_funds")[0]["amount_cents"] == 9200
        assert_balanced(escrow)


@pytest.mark.django_db
class TestDisputeThroughApi:
    def test_escalated_dispute_split_by_staff(
        self, api_client, held_escrow, workflow, wire_workflow, customer, provider, staff_user
    ):
        wire_workflow(workflow)

        api_client.force_authenticate(customer)
        response = api_client.post(
            reverse("disputes:dispute_create"),
            {
                "booking_id": str(held_escrow.booking_id),
                "reason": "incomplete_service",
                "description": "Left after an hour",
            },
            format="json",
        )
        assert response.status_code == 201
        dispute_id = response.json()["dispute_id"]
        evidence_url = reverse("disputes:dispute_evidence", kwargs={"dispute_id": dispute_id})

        api_client.post(evidence_url, {"evidence_type": "message"}, format="json")
        api_client.force_authenticate(provider)
        api_client.post(evidence_url, {"evidence_type": "document"}, format="json")

        result = run_automated_review(dispute_id)
        assert result["status"] == DisputeStatus.MANUAL_REVIEW

        api_client.force_authenticate(customer)
        status = api_client.get(
            reverse("disputes:dispute_detail", kwargs={"dispute_id": dispute_id})
        ).json()
        assert status["status"] == DisputeStatus.MANUAL_REVIEW
        assert status["evidence_count"] == 2

        api_client.force_authenticate(staff_user)
        response = api_client.post(
            reverse("disputes:dispute_decision", kwargs={"dispute_id": dispute_id}),
            {
                "kind": "split",
                "refund_cents": 2500,
                "expected_version": status["version"],
            },
            format="json",
        )

        assert response.status_code == 200
        escrow = EscrowAccount.objects.get(pk=held_escrow.pk)
        assert escrow.state == EscrowState.SPLIT
        assert_balanced(escrow)
        refunds = Transaction.objects.filter(escrow=escrow, type=TransactionType.REFUND)
        assert [row.amount_cents for row in refunds] == [2500]


@pytest.mark.django_db
class TestDisputeTimers:
    def test_silent_provider_loses_after_deadline(
        self, held_escrow, make_workflow, wire_workflow, customer, mocker
    ):
        workflow = wire_workflow(make_workflow(decide=one_sided_evidence))
        delay = mocker.patch("disputes.tasks.advance_dispute_after_deadline.delay")
        mocker.patch("disputes.tasks.run_automated_review.delay")

        dispute = workflow.initiate_dispute(held_escrow.booking_id, customer, "no_show", "")
        workflow.submit_evidence(dispute.id, customer, "photo", "Locked door")

        with freeze_time(dispute.evidence_deadline + timedelta(minutes=1)):
            counts = process_expired_evidence_windows()
            delay.assert_called_once_with(str(dispute.id))
            advance_dispute_after_deadline(str(dispute.id))

        run_automated_review(str(dispute.id))

        dispute = Dispute.objects.get(pk=dispute.pk)
        assert counts["expired_queued"] == 1
        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolution_settled is True
        escrow = EscrowAccount.objects.get(pk=held_escrow.pk)
        assert escrow.state == EscrowState.REFUNDED
        assert Booking.objects.get(pk=held_escrow.booking_id).status == BookingStatus.REFUNDED
        assert_balanced(escrow)

    def test_funds_stay_frozen_until_resolution(self, dispute, escrow_service):
        from payments.exceptions import InvalidState

        with pytest.raises(InvalidState):
            escrow_service.release(dispute.booking_id)
        with pytest.raises(InvalidState):
            escrow_service.refund(dispute.booking_id, 1000)

        assert LedgerService.remaining_balance(
            EscrowAccount.objects.get(booking_id=dispute.booking_id)
        ) == 10000
