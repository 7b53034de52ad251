"""
Dispute workflow: from filing to settled resolution.

DisputeWorkflow drives a Dispute through its states and feeds the binding
outcome back into the escrow lifecycle through EscrowService.freeze() and
EscrowService.unfreeze(). Mutations run under the per-booking dispute
lock plus a database transaction with select_for_update, like the escrow
service does.

Timers are durable: the evidence deadline is stored on the dispute,
scheduled as a Celery ETA task once the dispute commits, and backed by
the periodic scan in disputes.tasks.

Resolution is split in two so adjudication never runs twice:

    1. RESOLVED is committed with the outcome and resolution_settled=False
    2. unfreeze() moves the funds; on success resolution_settled=True

A failed step 2 is retried by settle_resolution() alone.

Usage:
    from disputes.services import DisputeWorkflow

    workflow = DisputeWorkflow()
    dispute = workflow.initiate_dispute(booking.id, customer, "no_show", "Never arrived")
    workflow.submit_evidence(dispute.id, provider, "photo", "Door camera", file_url)
    workflow.get_dispute_status(dispute.id, requested_by=customer)
"""

from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from functools import partial
from typing import TYPE_CHECKING, Any

from django.db import IntegrityError, transaction
from django.utils import timezone

from django_fsm import TransitionNotAllowed

from core.exceptions import (
    BaseApplicationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from core.services import BaseService

from disputes.config import DisputeConfig
from disputes.exceptions import (
    BookingNotEligible,
    DisputeAlreadyActive,
    DisputeNotFoundError,
    DisputeNotInReview,
)
from disputes.models import Dispute, DisputeEvidence
from disputes.review import Escalate, EvidenceItem, Resolved
from disputes.signals import dispute_status_changed
from disputes.state_machines import (
    DisputeReason,
    DisputeStatus,
    EvidenceType,
    PartyRole,
    ResolutionSource,
)
from payments.exceptions import InvalidAmount, InvalidState
from payments.ledger.services import LedgerService
from payments.locks import booking_lock, check_version
from payments.models import Booking, EscrowAccount

if TYPE_CHECKING:
    from payments.locks import DistributedLock
    from payments.services import EscrowService
    from payments.settlement import Outcome

    from disputes.review import Decider, Decision


class DisputeWorkflow(BaseService):
    """
    Dispute resolution workflow.

    Args:
        escrow_service: EscrowService used to freeze and settle funds
        decide: Decision function for automated review (defaults to
            the one named by config.decider_path)
        config: DisputeConfig (defaults to DisputeConfig.from_settings())
    """

    def __init__(
        self,
        escrow_service: EscrowService | None = None,
        decide: Decider | None = None,
        config: DisputeConfig | None = None,
    ) -> None:
        self.config = config or DisputeConfig.from_settings()
        if escrow_service is None:
            from payments.services import EscrowService

            escrow_service = EscrowService()
        self.escrow_service = escrow_service
        self.decide = decide or self.config.load_decider()

    # =========================================================================
    # Filing
    # =========================================================================

    def initiate_dispute(
        self,
        booking_id: uuid.UUID,
        initiated_by,
        reason: str,
        description: str,
        amount_cents: int | None = None,
    ) -> Dispute:
        """
        File a dispute and freeze the booking's escrow.

        Args:
            booking_id: Booking to dispute
            initiated_by: The customer or provider filing it
            reason: DisputeReason value
            description: Free text from the filer
            amount_cents: Disputed amount (defaults to the remaining balance)

        Returns:
            The dispute, in EVIDENCE_COLLECTION

        Raises:
            ValidationError: Unknown reason
            NotFoundError: Booking does not exist
            PermissionDeniedError: Caller is not a party to the booking
            DisputeAlreadyActive: Booking already has an unresolved dispute
            BookingNotEligible: Escrow is not held
            InvalidAmount: Amount not positive or above the remaining balance
        """
        if reason not in DisputeReason.values:
            raise ValidationError(
                f"Unknown dispute reason {reason!r}",
                error_code="INVALID_DISPUTE_REASON",
                details={"reason": reason},
            )

        booking = Booking.objects.filter(pk=booking_id).first()
        if booking is None:
            raise NotFoundError(
                f"Booking {booking_id} not found",
                error_code="BOOKING_NOT_FOUND",
                details={"booking_id": str(booking_id)},
            )
        role = self._party_role(booking, initiated_by)
        if role is None:
            raise PermissionDeniedError(
                "Only the booking's customer or provider can open a dispute",
                details={"booking_id": str(booking_id)},
            )

        with self._lock(booking_id):
            if Dispute.objects.active().filter(booking_id=booking_id).exists():
                raise DisputeAlreadyActive(
                    "Booking already has an open dispute",
                    details={"booking_id": str(booking_id)},
                )

            escrow = EscrowAccount.objects.filter(booking_id=booking_id).first()
            if escrow is None or not escrow.is_held:
                raise BookingNotEligible(
                    "Booking funds are not held in escrow",
                    details={
                        "booking_id": str(booking_id),
                        "escrow_state": escrow.state if escrow else None,
                        "confirmed": bool(escrow and escrow.confirmed_at),
                    },
                )

            remaining = LedgerService.remaining_balance(escrow)
            if amount_cents is None:
                amount_cents = remaining
            if amount_cents <= 0 or amount_cents > remaining:
                raise InvalidAmount(
                    "Disputed amount must be positive and within the held balance",
                    details={"amount_cents": amount_cents, "remaining_cents": remaining},
                )

            with transaction.atomic():
                try:
                    with transaction.atomic():
                        dispute = Dispute.objects.create(
                            booking=booking,
                            initiated_by=initiated_by,
                            initiator_role=role,
                            reason=reason,
                            description=description,
                            amount_cents=amount_cents,
                        )
                except IntegrityError as e:
                    raise DisputeAlreadyActive(
                        "Booking already has an open dispute",
                        details={"booking_id": str(booking_id)},
                    ) from e

                try:
                    self.escrow_service.freeze(booking_id)
                except InvalidState as e:
                    raise BookingNotEligible(
                        "Booking funds are not held in escrow",
                        details={"booking_id": str(booking_id), **e.details},
                    ) from e

                self._transition(
                    dispute,
                    "open_evidence_collection",
                    timezone.now() + self.config.evidence_window,
                )
                dispute.save()
                transaction.on_commit(partial(self._schedule_deadline, dispute))

        self.get_logger().info(
            "Dispute initiated",
            extra={
                "dispute_id": str(dispute.id),
                "booking_id": str(booking_id),
                "initiator_role": role,
                "reason": reason,
                "amount_cents": amount_cents,
                "evidence_deadline": dispute.evidence_deadline.isoformat(),
            },
        )
        self._notify(dispute, DisputeStatus.INITIATED)
        return dispute

    # =========================================================================
    # Evidence
    # =========================================================================

    def submit_evidence(
        self,
        dispute_id: uuid.UUID,
        submitted_by,
        evidence_type: str,
        description: str,
        file_url: str = "",
    ) -> DisputeEvidence | None:
        """
        Attach evidence from one of the parties.

        Returns:
            The stored evidence, or None when the dispute is no longer
            collecting evidence (late evidence is ignored, not an error)

        Raises:
            ValidationError: Unknown evidence type
            DisputeNotFoundError: Unknown dispute
            PermissionDeniedError: Caller is not a party to the booking
        """
        if evidence_type not in EvidenceType.values:
            raise ValidationError(
                f"Unknown evidence type {evidence_type!r}",
                error_code="INVALID_EVIDENCE_TYPE",
                details={"evidence_type": evidence_type},
            )

        dispute = self._get_dispute(dispute_id)
        role = self._party_role(dispute.booking, submitted_by)
        if role is None:
            raise PermissionDeniedError(
                "Only the booking's customer or provider can submit evidence",
                details={"dispute_id": str(dispute_id)},
            )

        advanced = False
        with self._lock(dispute.booking_id), transaction.atomic():
            dispute = Dispute.objects.select_for_update().get(pk=dispute_id)
            if (
                dispute.status != DisputeStatus.EVIDENCE_COLLECTION
                or timezone.now() >= dispute.evidence_deadline
            ):
                self.get_logger().info(
                    "Evidence ignored, dispute not collecting evidence",
                    extra={
                        "dispute_id": str(dispute_id),
                        "status": dispute.status,
                        "party_role": role,
                    },
                )
                return None

            evidence = DisputeEvidence.objects.create(
                dispute=dispute,
                submitted_by=submitted_by,
                party_role=role,
                evidence_type=evidence_type,
                description=description,
                file_url=file_url or "",
            )

            roles = set(dispute.evidence.values_list("party_role", flat=True).distinct())
            if roles >= {PartyRole.CUSTOMER.value, PartyRole.PROVIDER.value}:
                self._transition(dispute, "begin_automated_review")
                dispute.save()
                transaction.on_commit(partial(self._schedule_review, dispute.id))
                advanced = True

        self.get_logger().info(
            "Evidence submitted",
            extra={
                "dispute_id": str(dispute_id),
                "evidence_id": str(evidence.id),
                "party_role": role,
                "evidence_type": evidence_type,
                "advanced_to_review": advanced,
            },
        )
        if advanced:
            self._notify(dispute, DisputeStatus.EVIDENCE_COLLECTION)
        return evidence

    def advance_after_deadline(self, dispute_id: uuid.UUID) -> Dispute:
        """
        Deadline timer target: close evidence collection.

        Stale timers (dispute already advanced) and early timers are no-ops.
        """
        dispute = self._get_dispute(dispute_id)
        with self._lock(dispute.booking_id), transaction.atomic():
            dispute = Dispute.objects.select_for_update().get(pk=dispute_id)
            if dispute.status != DisputeStatus.EVIDENCE_COLLECTION:
                self.get_logger().info(
                    "Deadline timer is stale",
                    extra={"dispute_id": str(dispute_id), "status": dispute.status},
                )
                return dispute
            if timezone.now() < dispute.evidence_deadline:
                self.get_logger().info(
                    "Deadline timer fired early",
                    extra={
                        "dispute_id": str(dispute_id),
                        "evidence_deadline": dispute.evidence_deadline.isoformat(),
                    },
                )
                return dispute

            self._transition(dispute, "begin_automated_review")
            dispute.save()
            transaction.on_commit(partial(self._schedule_review, dispute.id))

        self._notify(dispute, DisputeStatus.EVIDENCE_COLLECTION)
        return dispute

    # =========================================================================
    # Review
    # =========================================================================

    def run_automated_review(self, dispute_id: uuid.UUID) -> Dispute:
        """
        Ask the decision function for a verdict within the time budget.

        Resolved -> RESOLVED (and settlement); Escalate, a timeout or an
        exception -> MANUAL_REVIEW. A no-op outside AUTOMATED_REVIEW.
        """
        dispute = self._get_dispute(dispute_id)
        if dispute.status != DisputeStatus.AUTOMATED_REVIEW:
            self.get_logger().info(
                "Automated review skipped",
                extra={"dispute_id": str(dispute_id), "status": dispute.status},
            )
            return dispute

        evidence = tuple(
            EvidenceItem(
                party_role=item.party_role,
                evidence_type=item.evidence_type,
                description=item.description,
                file_url=item.file_url,
            )
            for item in dispute.evidence.all()
        )
        decision = self._decide(dispute, evidence)

        if isinstance(decision, Resolved):
            try:
                decision.outcome.refund_amount(dispute.amount_cents)
            except ValueError as e:
                decision = Escalate(f"Decider returned an invalid outcome: {e}")

        if isinstance(decision, Resolved):
            self.get_logger().info(
                "Automated review resolved dispute",
                extra={
                    "dispute_id": str(dispute_id),
                    "outcome": decision.outcome.kind,
                    "rationale": decision.rationale,
                },
            )
            return self.resolve(
                dispute,
                decision.outcome,
                ResolutionSource.AUTOMATED,
                notes=decision.rationale,
            )
        return self._escalate(dispute_id, decision.reason)

    def submit_manual_decision(
        self,
        dispute_id: uuid.UUID,
        outcome: Outcome,
        decided_by=None,
        notes: str = "",
        expected_version: int | None = None,
    ) -> Dispute:
        """
        Record a staff decision for a dispute in manual review.

        Args:
            expected_version: Dispute version the reviewer saw; a stale
                version raises StaleRecordError

        Raises:
            DisputeNotInReview: Dispute is not in MANUAL_REVIEW
            InvalidAmount: Split refund exceeds the disputed amount
        """
        dispute = self._get_dispute(dispute_id)
        if dispute.is_resolved:
            self.get_logger().info(
                "Manual decision ignored, dispute already resolved",
                extra={"dispute_id": str(dispute_id)},
            )
            return dispute
        if dispute.status != DisputeStatus.MANUAL_REVIEW:
            raise DisputeNotInReview(
                f"Dispute is {dispute.status}, not awaiting a manual decision",
                details={"dispute_id": str(dispute_id), "status": dispute.status},
            )
        return self.resolve(
            dispute,
            outcome,
            ResolutionSource.MANUAL,
            decided_by=decided_by,
            notes=notes,
            expected_version=expected_version,
        )

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve(
        self,
        dispute: Dispute,
        outcome: Outcome,
        source: str,
        decided_by=None,
        notes: str = "",
        expected_version: int | None = None,
    ) -> Dispute:
        """
        Commit a binding outcome, then settle the escrow.

        Resolving an already RESOLVED dispute keeps the stored outcome and
        only retries the settlement if it has not succeeded yet.

        Raises:
            DisputeNotInReview: Dispute is not under review
            InvalidAmount: Split refund exceeds the disputed amount
            StaleRecordError: expected_version no longer matches
            BaseApplicationError: Settlement failed (a retry is scheduled)
        """
        previous_status = None
        with self._lock(dispute.booking_id), transaction.atomic():
            if expected_version is not None:
                dispute = check_version(Dispute, dispute.pk, expected_version)
            else:
                dispute = Dispute.objects.select_for_update().get(pk=dispute.pk)

            if not dispute.is_resolved:
                try:
                    outcome.refund_amount(dispute.amount_cents)
                except ValueError as e:
                    raise InvalidAmount(
                        str(e),
                        details={
                            "dispute_id": str(dispute.id),
                            "refund_cents": outcome.refund_cents,
                            "disputed_cents": dispute.amount_cents,
                        },
                    ) from e
                previous_status = dispute.status
                try:
                    dispute.resolve(outcome, source, decided_by, notes)
                except TransitionNotAllowed as e:
                    raise DisputeNotInReview(
                        f"Dispute is {dispute.status}, cannot be resolved",
                        details={"dispute_id": str(dispute.id), "status": dispute.status},
                    ) from e
                dispute.save()

        if previous_status is not None:
            self.get_logger().info(
                "Dispute resolved",
                extra={
                    "dispute_id": str(dispute.id),
                    "booking_id": str(dispute.booking_id),
                    "outcome": dispute.resolution_kind,
                    "refund_cents": dispute.resolution_refund_cents,
                    "source": source,
                },
            )
            self._notify(dispute, previous_status)

        if dispute.resolution_settled:
            return dispute
        return self._settle(dispute)

    def settle_resolution(self, dispute_id: uuid.UUID) -> Dispute:
        """
        Retry fund movement for a resolved dispute.

        Used by the settlement retry task and the periodic scan. Does not
        re-run review; a settled or unresolved dispute is returned as is.
        """
        dispute = self._get_dispute(dispute_id)
        if not dispute.is_resolved or dispute.resolution_settled:
            self.get_logger().info(
                "Nothing to settle",
                extra={
                    "dispute_id": str(dispute_id),
                    "status": dispute.status,
                    "resolution_settled": dispute.resolution_settled,
                },
            )
            return dispute
        return self._settle(dispute)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_dispute_status(
        self, dispute_id: uuid.UUID, requested_by=None
    ) -> dict[str, Any]:
        """
        Pull-based status of a dispute.

        Returns:
            Dict with status, time_remaining (seconds), evidence_deadline,
            resolution_outcome, resolution_settled and evidence_count

        Raises:
            DisputeNotFoundError: Unknown dispute
            PermissionDeniedError: Requester is neither a party nor staff
        """
        dispute = self._get_dispute(dispute_id)
        if requested_by is not None and not (
            requested_by.is_staff or dispute.booking.is_party(requested_by)
        ):
            raise PermissionDeniedError(
                "Only the booking's parties can view this dispute",
                details={"dispute_id": str(dispute_id)},
            )

        outcome = dispute.outcome
        return {
            "dispute_id": dispute.id,
            "booking_id": dispute.booking_id,
            "status": dispute.status,
            "reason": dispute.reason,
            "amount_cents": dispute.amount_cents,
            "initiator_role": dispute.initiator_role,
            "evidence_deadline": dispute.evidence_deadline,
            "time_remaining": int(dispute.time_remaining().total_seconds()),
            "evidence_count": dispute.evidence.count(),
            "resolution_outcome": outcome.to_dict() if outcome else None,
            "resolution_source": dispute.resolution_source or None,
            "resolution_settled": dispute.resolution_settled,
            "version": dispute.version,
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock(self, booking_id: Any) -> DistributedLock:
        return booking_lock(
            booking_id,
            ttl=self.config.lock_ttl_seconds,
            timeout=self.config.lock_timeout_seconds,
            namespace="dispute",
        )

    @staticmethod
    def _get_dispute(dispute_id: uuid.UUID) -> Dispute:
        dispute = Dispute.objects.select_related("booking").filter(pk=dispute_id).first()
        if dispute is None:
            raise DisputeNotFoundError(
                f"Dispute {dispute_id} not found",
                details={"dispute_id": str(dispute_id)},
            )
        return dispute

    @staticmethod
    def _party_role(booking: Booking, user) -> str | None:
        if user is None:
            return None
        if user.pk == booking.customer_id:
            return PartyRole.CUSTOMER
        if user.pk == booking.provider_id:
            return PartyRole.PROVIDER
        return None

    @staticmethod
    def _transition(dispute: Dispute, name: str, *args: Any) -> None:
        try:
            getattr(dispute, name)(*args)
        except TransitionNotAllowed as e:
            raise InvalidState(
                f"Dispute in state {dispute.status} cannot {name}",
                details={
                    "dispute_id": str(dispute.id),
                    "current_state": dispute.status,
                    "operation": name,
                },
            ) from e

    def _decide(self, dispute: Dispute, evidence: tuple[EvidenceItem, ...]) -> Decision:
        """Run the decider in a worker thread; never wait past the timeout."""
        timeout = self.config.automated_review_timeout_seconds
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dispute-review")
        future = executor.submit(self.decide, evidence, dispute.reason)
        try:
            decision = future.result(timeout=timeout)
        except FuturesTimeoutError:
            self.get_logger().warning(
                "Automated review timed out",
                extra={"dispute_id": str(dispute.id), "timeout_seconds": timeout},
            )
            return Escalate(f"Automated review timed out after {timeout}s")
        except Exception as e:
            self.get_logger().exception(
                "Automated review raised",
                extra={"dispute_id": str(dispute.id)},
            )
            return Escalate(f"Automated review failed: {type(e).__name__}")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if not isinstance(decision, (Resolved, Escalate)):
            self.get_logger().error(
                "Decider returned an unknown decision",
                extra={"dispute_id": str(dispute.id), "decision": repr(decision)},
            )
            return Escalate("Decider returned an unknown decision")
        return decision

    def _escalate(self, dispute_id: uuid.UUID, reason: str) -> Dispute:
        dispute = self._get_dispute(dispute_id)
        with self._lock(dispute.booking_id), transaction.atomic():
            dispute = Dispute.objects.select_for_update().get(pk=dispute_id)
            if dispute.status != DisputeStatus.AUTOMATED_REVIEW:
                return dispute
            self._transition(dispute, "escalate", reason)
            dispute.save()

        self.get_logger().info(
            "Dispute escalated to manual review",
            extra={"dispute_id": str(dispute_id), "reason": reason},
        )
        self._notify(dispute, DisputeStatus.AUTOMATED_REVIEW)
        return dispute

    def _settle(self, dispute: Dispute) -> Dispute:
        """Move funds for a RESOLVED dispute; outside any transaction."""
        try:
            self.escrow_service.unfreeze(
                dispute.booking_id,
                dispute.outcome,
                dispute.amount_cents,
            )
        except BaseApplicationError as e:
            with transaction.atomic():
                dispute = Dispute.objects.select_for_update().get(pk=dispute.pk)
                dispute.settlement_attempts += 1
                dispute.last_settlement_error = str(e)
                dispute.save()
            retry = dispute.settlement_attempts < self.config.settlement_max_retries
            self.get_logger().error(
                "Dispute settlement failed",
                extra={
                    "dispute_id": str(dispute.id),
                    "booking_id": str(dispute.booking_id),
                    "error_code": e.error_code,
                    "attempts": dispute.settlement_attempts,
                    "will_retry": retry,
                },
            )
            if retry:
                transaction.on_commit(
                    partial(self._schedule_settlement, dispute.id, dispute.settlement_attempts)
                )
            raise

        with transaction.atomic():
            dispute = Dispute.objects.select_for_update().get(pk=dispute.pk)
            if dispute.resolution_settled:
                return dispute
            dispute.resolution_settled = True
            dispute.settled_at = timezone.now()
            dispute.settlement_attempts += 1
            dispute.last_settlement_error = ""
            dispute.save()

        self.get_logger().info(
            "Dispute resolution settled",
            extra={
                "dispute_id": str(dispute.id),
                "booking_id": str(dispute.booking_id),
                "outcome": dispute.resolution_kind,
                "attempts": dispute.settlement_attempts,
            },
        )
        self._notify(dispute, None)
        return dispute

    @staticmethod
    def _notify(dispute: Dispute, previous_status: str | None) -> None:
        dispute_status_changed.send(
            sender=Dispute,
            dispute=dispute,
            previous_status=previous_status,
            status=dispute.status,
            resolution_settled=dispute.resolution_settled,
        )

    @staticmethod
    def _schedule_deadline(dispute: Dispute) -> None:
        from disputes.tasks import advance_dispute_after_deadline

        advance_dispute_after_deadline.apply_async(
            args=[str(dispute.id)],
            eta=dispute.evidence_deadline,
        )

    @staticmethod
    def _schedule_review(dispute_id: uuid.UUID) -> None:
        from disputes.tasks import run_automated_review

        run_automated_review.delay(str(dispute_id))

    @staticmethod
    def _schedule_settlement(dispute_id: uuid.UUID, attempts: int) -> None:
        from disputes.tasks import settle_dispute_resolution

        settle_dispute_resolution.apply_async(
            args=[str(dispute_id)],
            countdown=min(60 * 2 ** max(attempts - 1, 0), 3600),
        )
