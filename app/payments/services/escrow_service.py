"""
Escrow service: the financial lifecycle of a booking.

EscrowService owns every state change of an EscrowAccount and the
booking status that follows from it. Each mutation runs in three phases,
all under the per-booking distributed lock:

    1. Load and validate inside a transaction with select_for_update
    2. Call the payment gateway OUTSIDE any database transaction
    3. Re-read, append ledger rows and transition state atomically

A gateway failure in phase 2 raises PaymentFailedError before anything
is written, so escrow and booking keep their previous state. Every
gateway call carries a deterministic idempotency key, so a retried
operation never moves money twice.

Phase 1 of release() and refund() also marks the escrow with the
operation in flight (pending_operation). freeze() refuses a marked
escrow, so a dispute can never freeze funds that are already on their
way out. The lock TTL is renewed before each gateway call; a lock that
was lost in the meantime aborts the operation before money moves.
A dispute settlement records each gateway leg as soon as it succeeds,
so a retry only performs the legs that are still missing.

Usage:
    from payments.services import EscrowService

    service = EscrowService()
    escrow = service.authorize(booking.id, 10000, "acct_123")
    service.confirm_capture(escrow.gateway_reference)
    service.release(booking.id)
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, TypeVar

from django.db import transaction
from django.utils import timezone

from django_fsm import TransitionNotAllowed

from core.services import BaseService

from payments.adapters import IdempotencyKeyGenerator
from payments.config import EscrowConfig
from payments.exceptions import (
    InvalidAmount,
    InvalidState,
    LockAcquisitionError,
    PaymentFailedError,
    PaymentNotFoundError,
    PaymentValidationError,
    StripeError,
)
from payments.ledger.services import LedgerService
from payments.ledger.types import RecordTransactionParams
from payments.locks import booking_lock
from payments.models import Booking, EscrowAccount, Transaction
from payments.settlement import Outcome, allocate_settlement, calculate_platform_fee
from payments.state_machines import (
    BookingStatus,
    CaptureMode,
    EscrowState,
    TransactionStatus,
    TransactionType,
)

if TYPE_CHECKING:
    from payments.adapters import PaymentGateway
    from payments.locks import DistributedLock
    from payments.settlement import Settlement

R = TypeVar("R")


class EscrowService(BaseService):
    """
    Escrow payment lifecycle.

    State Flow:
        AUTHORIZED -> RELEASED | REFUNDED | DISPUTED | FAILED
        DISPUTED -> RELEASED | REFUNDED | SPLIT

    Args:
        gateway: PaymentGateway implementation (defaults to StripeGateway)
        config: EscrowConfig (defaults to EscrowConfig.from_settings())

    Invariant:
        The PAYOUT, REFUND and FEE rows of an escrow never add up to more
        than its authorized amount. Any request that would break this
        raises OverReleaseError; nothing is clamped.
    """

    def __init__(
        self,
        gateway: PaymentGateway | None = None,
        config: EscrowConfig | None = None,
    ) -> None:
        if gateway is None:
            from payments.adapters import StripeGateway

            gateway = StripeGateway()
        self.gateway = gateway
        self.config = config or EscrowConfig.from_settings()

    # =========================================================================
    # Authorization
    # =========================================================================

    def authorize(
        self,
        booking_id: uuid.UUID,
        amount_cents: int,
        provider_gateway_account_id: str,
        capture_mode: str | None = None,
    ) -> EscrowAccount:
        """
        Authorize the customer's payment and open the escrow.

        Idempotent per booking: when an escrow already exists it is
        returned and the gateway is not called again.

        Args:
            booking_id: Booking to pay for
            amount_cents: Must equal the booking amount
            provider_gateway_account_id: Provider's connected account
            capture_mode: "manual" or "automatic" (defaults to config)

        Returns:
            The AUTHORIZED EscrowAccount

        Raises:
            InvalidAmount: Below the minimum charge or not the booking amount
            PaymentNotFoundError: Booking does not exist
            InvalidState: Booking is no longer pending
            PaymentFailedError: Gateway rejected the authorization
        """
        capture_mode = capture_mode or self.config.default_capture_mode
        if capture_mode not in CaptureMode.values:
            raise PaymentValidationError(
                f"Unknown capture mode {capture_mode!r}",
                details={"capture_mode": capture_mode},
            )
        if amount_cents < self.config.minimum_charge_cents:
            raise InvalidAmount(
                "Amount is below the minimum chargeable amount",
                details={
                    "amount_cents": amount_cents,
                    "minimum_cents": self.config.minimum_charge_cents,
                },
            )

        with self._lock(booking_id) as lock:
            existing = EscrowAccount.objects.filter(booking_id=booking_id).first()
            if existing is not None:
                self.get_logger().info(
                    "Escrow already authorized, returning existing",
                    extra={"booking_id": str(booking_id), "escrow_id": str(existing.id)},
                )
                return existing

            booking = self._get_booking(booking_id)
            if booking.status != BookingStatus.PENDING:
                raise InvalidState(
                    f"Booking {booking_id} is {booking.status}, cannot authorize",
                    details={"booking_id": str(booking_id), "current_state": booking.status},
                )
            if amount_cents != booking.amount_cents:
                raise InvalidAmount(
                    "Amount does not match the booking amount",
                    details={
                        "amount_cents": amount_cents,
                        "booking_amount_cents": booking.amount_cents,
                    },
                )

            rate = self.config.commission_rate
            fee_cents = calculate_platform_fee(amount_cents, rate)
            automatic = capture_mode == CaptureMode.AUTOMATIC

            charge = self._gateway_call(
                "authorize",
                booking.id,
                lambda: self.gateway.authorize_charge(
                    amount_cents=amount_cents,
                    currency=booking.currency,
                    destination_account=provider_gateway_account_id,
                    capture_mode=capture_mode,
                    metadata=self._metadata(booking),
                    idempotency_key=IdempotencyKeyGenerator.generate("authorize", booking.id),
                    application_fee_cents=fee_cents if automatic else None,
                ),
                lock=lock,
            )

            with transaction.atomic():
                escrow = EscrowAccount.objects.create(
                    booking=booking,
                    amount_cents=amount_cents,
                    platform_fee_cents=fee_cents,
                    net_amount_cents=amount_cents - fee_cents,
                    commission_rate=rate,
                    currency=booking.currency,
                    capture_mode=capture_mode,
                    provider_gateway_account_id=provider_gateway_account_id,
                    gateway_reference=charge.reference,
                    gateway_captured_at=timezone.now() if charge.captured else None,
                )
                LedgerService.record_transactions(
                    [
                        self._params(
                            escrow,
                            TransactionType.PAYMENT,
                            amount_cents,
                            f"payment:{booking.id}:pending",
                            status=TransactionStatus.PENDING,
                            gateway_reference=charge.reference,
                            description="Payment authorized",
                        )
                    ]
                )

        self.get_logger().info(
            "Escrow authorized",
            extra={
                "booking_id": str(booking.id),
                "escrow_id": str(escrow.id),
                "amount_cents": amount_cents,
                "platform_fee_cents": fee_cents,
                "capture_mode": capture_mode,
                "payment_reference": charge.reference,
            },
        )
        return escrow

    def confirm_capture(
        self,
        payment_reference: str,
        captured: bool = True,
        gateway_event_id: str | None = None,
    ) -> EscrowAccount:
        """
        Apply the gateway's confirmation that the payment went through.

        Replays are a no-op (apart from stamping a capture that an
        earlier authorization-only confirmation had not seen yet).

        Args:
            payment_reference: Gateway payment reference of the escrow
            captured: False when the gateway only reports the funds as
                authorized and capturable (manual capture)
            gateway_event_id: Webhook event id, stored on the ledger row

        Raises:
            PaymentNotFoundError: No escrow has this payment reference
            InvalidState: Escrow failed or booking cannot be confirmed
        """
        escrow = self._get_escrow_by_reference(payment_reference)

        with self._lock(escrow.booking_id), transaction.atomic():
            booking, escrow = self._load_for_update(escrow.booking_id)
            now = timezone.now()

            if escrow.confirmed_at is not None:
                if captured and not escrow.is_captured:
                    escrow.gateway_captured_at = now
                    escrow.save()
                self.get_logger().info(
                    "Payment already confirmed, ignoring replay",
                    extra={"booking_id": str(booking.id), "payment_reference": payment_reference},
                )
                return escrow

            if escrow.state != EscrowState.AUTHORIZED:
                raise InvalidState(
                    f"Escrow is {escrow.state}, cannot confirm payment",
                    details={"booking_id": str(booking.id), "current_state": escrow.state},
                )

            self._transition(booking, "confirm")
            escrow.confirmed_at = now
            if captured:
                escrow.gateway_captured_at = now

            entries = [
                self._params(
                    escrow,
                    TransactionType.PAYMENT,
                    escrow.amount_cents,
                    f"payment:{booking.id}:completed",
                    gateway_reference=payment_reference,
                    gateway_event_id=gateway_event_id or "",
                    description="Payment confirmed",
                )
            ]

            if escrow.capture_mode == CaptureMode.AUTOMATIC:
                # Destination charge: the gateway already paid the provider
                entries.extend(
                    self._settlement_entries(
                        escrow,
                        payout_cents=escrow.net_amount_cents,
                        fee_cents=escrow.platform_fee_cents,
                        refund_cents=0,
                        suffix="capture",
                        gateway_reference=payment_reference,
                    )
                )
                LedgerService.ensure_within_balance(
                    escrow, escrow.net_amount_cents + escrow.platform_fee_cents
                )
                self._transition(escrow, "release")

            LedgerService.record_transactions(entries)
            booking.save()
            escrow.save()

        self.get_logger().info(
            "Payment confirmed",
            extra={
                "booking_id": str(booking.id),
                "escrow_id": str(escrow.id),
                "capture_mode": escrow.capture_mode,
                "captured": captured,
                "gateway_event_id": gateway_event_id,
            },
        )
        return escrow

    def fail_payment(self, payment_reference: str, reason: str = "") -> EscrowAccount:
        """
        Apply a gateway-reported payment failure.

        The escrow becomes FAILED and the booking CANCELLED. Idempotent.

        Raises:
            PaymentNotFoundError: No escrow has this payment reference
            InvalidState: The payment was already confirmed
        """
        escrow = self._get_escrow_by_reference(payment_reference)

        with self._lock(escrow.booking_id), transaction.atomic():
            booking, escrow = self._load_for_update(escrow.booking_id)

            if escrow.state == EscrowState.FAILED:
                return escrow
            if escrow.confirmed_at is not None:
                raise InvalidState(
                    "Payment already confirmed, cannot mark it failed",
                    details={"booking_id": str(booking.id), "current_state": escrow.state},
                )

            self._transition(escrow, "fail", reason)
            self._transition(booking, "cancel")
            LedgerService.record_transactions(
                [
                    self._params(
                        escrow,
                        TransactionType.PAYMENT,
                        escrow.amount_cents,
                        f"payment:{booking.id}:failed",
                        status=TransactionStatus.FAILED,
                        gateway_reference=payment_reference,
                        description=reason or "Payment failed",
                    )
                ]
            )
            booking.save()
            escrow.save()

        self.get_logger().warning(
            "Payment failed",
            extra={"booking_id": str(booking.id), "escrow_id": str(escrow.id), "reason": reason},
        )
        return escrow

    # =========================================================================
    # Release / Refund
    # =========================================================================

    def release(self, booking_id: uuid.UUID) -> EscrowAccount:
        """
        Pay the held funds out to the provider.

        Captures first when a manual authorization is still uncaptured,
        then transfers the provider share and records PAYOUT and FEE.

        Raises:
            InvalidState: Escrow is not held (unconfirmed, settled, frozen)
                or another fund movement is in flight
            PaymentFailedError: Capture or transfer failed; nothing changed
        """
        with self._lock(booking_id) as lock:
            with transaction.atomic():
                booking, escrow = self._load_for_update(booking_id)
                self._require_held(escrow, "release")
                self._begin_movement(escrow, "release")
                remaining = LedgerService.remaining_balance(escrow)
                settlement = self._allocate(escrow, remaining, refund_cents=0)

            with self._gateway_phase(booking_id, "release"):
                self._ensure_captured(escrow, lock)
                transfer_reference = self._transfer(
                    escrow, settlement.payout_cents, "transfer", lock
                )

            # Money has moved; pending_operation kept the escrow held meanwhile
            with transaction.atomic():
                booking, escrow = self._load_for_update(booking_id)
                LedgerService.ensure_within_balance(escrow, settlement.total_cents)
                LedgerService.record_transactions(
                    self._settlement_entries(
                        escrow,
                        payout_cents=settlement.payout_cents,
                        fee_cents=settlement.fee_cents,
                        refund_cents=0,
                        suffix="release",
                        gateway_reference=transfer_reference,
                    )
                )
                escrow.pending_operation = ""
                self._transition(escrow, "release")
                self._transition(booking, "complete")
                escrow.save()
                booking.save()

        self.get_logger().info(
            "Escrow released",
            extra={
                "booking_id": str(booking_id),
                "escrow_id": str(escrow.id),
                "payout_cents": settlement.payout_cents,
                "fee_cents": settlement.fee_cents,
            },
        )
        return escrow

    def refund(
        self,
        booking_id: uuid.UUID,
        amount_cents: int | None = None,
        reason: str = "",
    ) -> EscrowAccount:
        """
        Return held funds to the customer.

        Args:
            booking_id: Booking to refund
            amount_cents: Partial amount; defaults to the full remaining balance
            reason: Free text kept with the gateway refund

        A partial refund keeps the escrow held so the rest can still be
        released; refunding the last cent moves escrow and booking to
        REFUNDED.

        Raises:
            InvalidState: Escrow is not held or another fund movement is
                in flight
            InvalidAmount: amount_cents is not positive
            OverReleaseError: amount_cents exceeds the remaining balance
            PaymentFailedError: Gateway refund failed; nothing changed
        """
        with self._lock(booking_id) as lock:
            with transaction.atomic():
                booking, escrow = self._load_for_update(booking_id)
                self._require_held(escrow, "refund")
                remaining = LedgerService.remaining_balance(escrow)
                amount = remaining if amount_cents is None else amount_cents
                if amount <= 0:
                    raise InvalidAmount(
                        "Refund amount must be positive",
                        details={"amount_cents": amount, "remaining_cents": remaining},
                    )
                LedgerService.ensure_within_balance(escrow, amount)
                sequence = LedgerService.count_of_type(escrow, TransactionType.REFUND) + 1
                self._begin_movement(escrow, "refund")

            with self._gateway_phase(booking_id, "refund"):
                self._ensure_captured(escrow, lock)
                result = self._gateway_call(
                    "refund",
                    booking_id,
                    lambda: self.gateway.refund(
                        escrow.gateway_reference,
                        idempotency_key=IdempotencyKeyGenerator.generate(
                            "refund", booking_id, sequence
                        ),
                        amount_cents=amount,
                        reason=reason,
                        metadata=self._metadata(booking),
                    ),
                    lock=lock,
                )

            with transaction.atomic():
                booking, escrow = self._load_for_update(booking_id)
                remaining = LedgerService.ensure_within_balance(escrow, amount)
                LedgerService.record_transactions(
                    [
                        self._params(
                            escrow,
                            TransactionType.REFUND,
                            amount,
                            f"refund:{booking_id}:{sequence}",
                            gateway_reference=result.reference,
                            description=reason or "Refund to customer",
                        )
                    ]
                )
                escrow.pending_operation = ""
                if remaining - amount == 0:
                    self._transition(escrow, "refund")
                    self._transition(booking, "refund")
                    booking.save()
                escrow.save()

        self.get_logger().info(
            "Escrow refunded",
            extra={
                "booking_id": str(booking_id),
                "escrow_id": str(escrow.id),
                "amount_cents": amount,
                "remaining_cents": remaining - amount,
                "refund_reference": result.reference,
            },
        )
        return escrow

    def record_external_refund(
        self,
        payment_reference: str,
        refund_reference: str,
        amount_cents: int,
        gateway_event_id: str | None = None,
    ) -> EscrowAccount:
        """
        Record a refund made at the gateway outside this service.

        Refunds this service issued are recognised by their gateway
        reference and ignored.

        Raises:
            PaymentNotFoundError: No escrow has this payment reference
            OverReleaseError: The refund exceeds the remaining balance
        """
        escrow = self._get_escrow_by_reference(payment_reference)

        with self._lock(escrow.booking_id), transaction.atomic():
            booking, escrow = self._load_for_update(escrow.booking_id)

            if Transaction.objects.filter(
                escrow=escrow,
                type=TransactionType.REFUND,
                gateway_reference=refund_reference,
            ).exists():
                self.get_logger().info(
                    "Refund already recorded",
                    extra={"booking_id": str(booking.id), "refund_reference": refund_reference},
                )
                return escrow

            remaining = LedgerService.ensure_within_balance(escrow, amount_cents)
            LedgerService.record_transactions(
                [
                    self._params(
                        escrow,
                        TransactionType.REFUND,
                        amount_cents,
                        f"refund:external:{refund_reference}",
                        gateway_reference=refund_reference,
                        gateway_event_id=gateway_event_id or "",
                        description="Refund issued at the gateway",
                    )
                ]
            )
            if remaining - amount_cents == 0 and escrow.state in (
                EscrowState.AUTHORIZED,
                EscrowState.DISPUTED,
            ):
                self._transition(escrow, "refund")
                self._transition(booking, "refund")
                escrow.save()
                booking.save()

        self.get_logger().warning(
            "External refund recorded",
            extra={
                "booking_id": str(booking.id),
                "refund_reference": refund_reference,
                "amount_cents": amount_cents,
            },
        )
        return escrow

    def reconcile_gateway_refunds(
        self,
        payment_reference: str,
        gateway_event_id: str | None = None,
    ) -> EscrowAccount:
        """
        Record every refund the gateway holds for a payment.

        Used when a charge.refunded notification does not embed its refund
        list. Failed and canceled refunds are skipped; refunds already in
        the ledger are recognised by reference.

        Raises:
            PaymentNotFoundError: No escrow has this payment reference
            PaymentFailedError: The gateway could not list the refunds
        """
        escrow = self._get_escrow_by_reference(payment_reference)
        refunds = self._gateway_call(
            "list_refunds",
            escrow.booking_id,
            lambda: self.gateway.list_refunds(payment_reference),
        )
        for refund in refunds:
            if refund.is_void:
                continue
            escrow = self.record_external_refund(
                payment_reference,
                refund_reference=refund.reference,
                amount_cents=refund.amount_cents,
                gateway_event_id=gateway_event_id,
            )
        return escrow

    # =========================================================================
    # Dispute Primitives
    # =========================================================================

    def freeze(self, booking_id: uuid.UUID) -> EscrowAccount:
        """
        Freeze held funds for a dispute.

        After this, release() and refund() raise InvalidState; only
        unfreeze() can move the funds.

        Raises:
            InvalidState: Escrow is not held, or a release or refund has
                already started moving the funds
        """
        with self._lock(booking_id), transaction.atomic():
            booking, escrow = self._load_for_update(booking_id)
            self._require_held(escrow, "freeze")
            if escrow.pending_operation:
                raise InvalidState(
                    f"Cannot freeze escrow while a {escrow.pending_operation} is in progress",
                    details={
                        "booking_id": str(booking_id),
                        "current_state": escrow.state,
                        "operation": "freeze",
                        "pending_operation": escrow.pending_operation,
                    },
                )
            self._transition(escrow, "freeze")
            self._transition(booking, "dispute")
            escrow.save()
            booking.save()

        self.get_logger().info(
            "Escrow frozen",
            extra={"booking_id": str(booking_id), "escrow_id": str(escrow.id)},
        )
        return escrow

    def unfreeze(
        self,
        booking_id: uuid.UUID,
        outcome: Outcome,
        disputed_amount_cents: int,
    ) -> EscrowAccount:
        """
        Settle a frozen escrow according to a dispute resolution.

        The customer gets outcome.refund_amount(disputed_amount_cents);
        everything else still held goes to the provider, minus the fee
        given by the configured split fee policy.

        Resulting state:
            nothing paid out -> REFUNDED (booking REFUNDED)
            nothing refunded -> RELEASED (booking COMPLETED)
            both             -> SPLIT    (booking COMPLETED)

        Idempotent: an escrow already settled is returned unchanged. The
        customer refund is recorded as soon as the gateway accepts it, so
        when the transfer fails a retry only transfers; a charge.refunded
        notification arriving in between finds the refund already recorded.

        Raises:
            InvalidState: Escrow is not frozen
            InvalidAmount: Split refund exceeds the disputed amount
            OverReleaseError: Disputed amount exceeds the remaining balance
            PaymentFailedError: Gateway refund or transfer failed
        """
        refund_key = f"refund:{booking_id}:dispute"

        with self._lock(booking_id) as lock:
            with transaction.atomic():
                booking, escrow = self._load_for_update(booking_id)
                if escrow.state in (
                    EscrowState.RELEASED,
                    EscrowState.REFUNDED,
                    EscrowState.SPLIT,
                ):
                    self.get_logger().info(
                        "Escrow already settled, ignoring unfreeze",
                        extra={"booking_id": str(booking_id), "current_state": escrow.state},
                    )
                    return escrow
                if escrow.state != EscrowState.DISPUTED:
                    raise InvalidState(
                        f"Escrow is {escrow.state}, cannot unfreeze",
                        details={"booking_id": str(booking_id), "current_state": escrow.state},
                    )

                try:
                    refund_cents = outcome.refund_amount(disputed_amount_cents)
                except ValueError as e:
                    raise InvalidAmount(
                        str(e),
                        details={
                            "refund_cents": outcome.refund_cents,
                            "disputed_cents": disputed_amount_cents,
                        },
                    ) from e
                # Refund leg of an earlier attempt whose transfer failed
                refunded_cents = LedgerService.recorded_amount(refund_key)
                remaining = refunded_cents + LedgerService.ensure_within_balance(
                    escrow, disputed_amount_cents - refunded_cents
                )
                settlement = self._allocate(escrow, remaining, refund_cents)

            self._ensure_captured(escrow, lock)
            if settlement.refund_cents and not refunded_cents:
                result = self._gateway_call(
                    "dispute_refund",
                    booking_id,
                    lambda: self.gateway.refund(
                        escrow.gateway_reference,
                        idempotency_key=IdempotencyKeyGenerator.generate(
                            "dispute_refund", booking_id
                        ),
                        amount_cents=settlement.refund_cents,
                        reason=f"Dispute resolved: {outcome.kind}",
                        metadata=self._metadata(booking),
                    ),
                    lock=lock,
                )
                with transaction.atomic():
                    booking, escrow = self._load_for_update(booking_id)
                    LedgerService.record_transactions(
                        self._settlement_entries(
                            escrow,
                            payout_cents=0,
                            fee_cents=0,
                            refund_cents=settlement.refund_cents,
                            suffix="dispute",
                            refund_reference=result.reference,
                        )
                    )
            transfer_reference = self._transfer(
                escrow, settlement.payout_cents, "dispute_transfer", lock
            )

            with transaction.atomic():
                booking, escrow = self._load_for_update(booking_id)
                LedgerService.ensure_within_balance(
                    escrow, settlement.payout_cents + settlement.fee_cents
                )
                LedgerService.record_transactions(
                    self._settlement_entries(
                        escrow,
                        payout_cents=settlement.payout_cents,
                        fee_cents=settlement.fee_cents,
                        refund_cents=0,
                        suffix="dispute",
                        gateway_reference=transfer_reference,
                    )
                )
                if settlement.payout_cents == 0 and settlement.refund_cents > 0:
                    self._transition(escrow, "refund")
                    self._transition(booking, "refund")
                elif settlement.refund_cents == 0:
                    self._transition(escrow, "release")
                    self._transition(booking, "complete")
                else:
                    self._transition(escrow, "split")
                    self._transition(booking, "complete")
                escrow.save()
                booking.save()

        self.get_logger().info(
            "Escrow settled after dispute",
            extra={
                "booking_id": str(booking_id),
                "escrow_id": str(escrow.id),
                "outcome": outcome.kind,
                "payout_cents": settlement.payout_cents,
                "fee_cents": settlement.fee_cents,
                "refund_cents": settlement.refund_cents,
                "fee_policy": self.config.split_fee_policy,
            },
        )
        return escrow

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def get_escrow(booking_id: uuid.UUID) -> EscrowAccount:
        """
        Raises:
            PaymentNotFoundError: Booking has no escrow
        """
        escrow = (
            EscrowAccount.objects.select_related("booking")
            .filter(booking_id=booking_id)
            .first()
        )
        if escrow is None:
            raise PaymentNotFoundError(
                f"No escrow for booking {booking_id}",
                details={"booking_id": str(booking_id)},
            )
        return escrow

    def remaining_balance(self, booking_id: uuid.UUID) -> int:
        return LedgerService.remaining_balance(self.get_escrow(booking_id))

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock(self, booking_id: Any) -> DistributedLock:
        return booking_lock(
            booking_id,
            ttl=self.config.lock_ttl_seconds,
            timeout=self.config.lock_timeout_seconds,
            namespace="escrow",
        )

    @staticmethod
    def _get_booking(booking_id: uuid.UUID) -> Booking:
        booking = Booking.objects.filter(pk=booking_id).first()
        if booking is None:
            raise PaymentNotFoundError(
                f"Booking {booking_id} not found",
                details={"booking_id": str(booking_id)},
            )
        return booking

    @staticmethod
    def _get_escrow_by_reference(payment_reference: str) -> EscrowAccount:
        escrow = EscrowAccount.objects.filter(gateway_reference=payment_reference).first()
        if escrow is None:
            raise PaymentNotFoundError(
                f"No escrow for payment {payment_reference}",
                details={"payment_reference": payment_reference},
            )
        return escrow

    def _load_for_update(self, booking_id: uuid.UUID) -> tuple[Booking, EscrowAccount]:
        """Lock booking then escrow rows; always in this order."""
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            raise PaymentNotFoundError(
                f"Booking {booking_id} not found",
                details={"booking_id": str(booking_id)},
            )
        escrow = EscrowAccount.objects.select_for_update().filter(booking=booking).first()
        if escrow is None:
            raise PaymentNotFoundError(
                f"No escrow for booking {booking_id}",
                details={"booking_id": str(booking_id)},
            )
        escrow.booking = booking
        return booking, escrow

    @staticmethod
    def _require_held(escrow: EscrowAccount, operation: str) -> None:
        if not escrow.is_held:
            raise InvalidState(
                f"Cannot {operation} escrow in state {escrow.state}"
                + ("" if escrow.confirmed_at else " (payment not confirmed)"),
                details={
                    "booking_id": str(escrow.booking_id),
                    "current_state": escrow.state,
                    "operation": operation,
                    "confirmed": escrow.confirmed_at is not None,
                },
            )

    @staticmethod
    def _transition(instance: Any, name: str, *args: Any) -> None:
        """Run a django-fsm transition, reporting refusal as InvalidState."""
        try:
            getattr(instance, name)(*args)
        except TransitionNotAllowed as e:
            state = getattr(instance, "state", None) or getattr(instance, "status", None)
            raise InvalidState(
                f"{type(instance).__name__} in state {state} cannot {name}",
                details={
                    "model": type(instance).__name__,
                    "pk": str(instance.pk),
                    "current_state": state,
                    "operation": name,
                },
            ) from e

    def _allocate(
        self, escrow: EscrowAccount, remaining_cents: int, refund_cents: int
    ) -> Settlement:
        return allocate_settlement(
            remaining_cents=remaining_cents,
            refund_cents=refund_cents,
            amount_cents=escrow.amount_cents,
            platform_fee_cents=escrow.platform_fee_cents,
            commission_rate=escrow.commission_rate,
            policy=self.config.split_fee_policy,
        )

    def _begin_movement(self, escrow: EscrowAccount, operation: str) -> None:
        """
        Mark the escrow with the fund movement about to start.

        A marker left by a crashed attempt of the same operation is taken
        over; the gateway idempotency keys keep the replay from moving
        money twice.
        """
        if escrow.pending_operation and escrow.pending_operation != operation:
            raise InvalidState(
                f"Cannot {operation} while a {escrow.pending_operation} is in progress",
                details={
                    "booking_id": str(escrow.booking_id),
                    "current_state": escrow.state,
                    "operation": operation,
                    "pending_operation": escrow.pending_operation,
                },
            )
        escrow.pending_operation = operation
        escrow.save()

    @contextmanager
    def _gateway_phase(self, booking_id: uuid.UUID, operation: str) -> Iterator[None]:
        """Clear the movement marker if the gateway phase fails."""
        try:
            yield
        except Exception:
            with transaction.atomic():
                escrow = EscrowAccount.objects.select_for_update().get(booking_id=booking_id)
                if escrow.pending_operation == operation:
                    escrow.pending_operation = ""
                    escrow.save()
            raise

    def _gateway_call(
        self,
        operation: str,
        booking_id: uuid.UUID,
        func: Callable[[], R],
        lock: DistributedLock | None = None,
    ) -> R:
        """
        Run a gateway call, turning gateway errors into PaymentFailedError.

        When the caller's lock is given, its TTL is renewed first; a lock
        that already expired raises LockAcquisitionError and the call is
        not made.
        """
        if lock is not None and not lock.extend():
            self.get_logger().error(
                "Booking lock lost before gateway call",
                extra={"booking_id": str(booking_id), "operation": operation, "key": lock.key},
            )
            raise LockAcquisitionError(
                f"Lock '{lock.key}' expired before {operation}",
                details={"booking_id": str(booking_id), "operation": operation, "key": lock.key},
            )
        try:
            return func()
        except StripeError as e:
            self.get_logger().error(
                "Gateway call failed",
                extra={
                    "booking_id": str(booking_id),
                    "operation": operation,
                    "error_code": e.error_code,
                    "is_retryable": e.is_retryable,
                },
            )
            raise PaymentFailedError(
                f"Payment gateway {operation} failed: {e.message}",
                details={
                    "booking_id": str(booking_id),
                    "operation": operation,
                    "gateway_error": e.error_code,
                    "gateway_details": e.details,
                    "retryable": e.is_retryable,
                },
            ) from e

    def _ensure_captured(
        self, escrow: EscrowAccount, lock: DistributedLock | None = None
    ) -> None:
        """Capture a manual authorization before funds leave the platform."""
        if escrow.is_captured:
            return
        self._gateway_call(
            "capture",
            escrow.booking_id,
            lambda: self.gateway.capture_charge(
                escrow.gateway_reference,
                idempotency_key=IdempotencyKeyGenerator.generate("capture", escrow.booking_id),
            ),
            lock=lock,
        )
        with transaction.atomic():
            locked = EscrowAccount.objects.select_for_update().get(pk=escrow.pk)
            locked.gateway_captured_at = timezone.now()
            locked.save()
        escrow.gateway_captured_at = locked.gateway_captured_at
        escrow.version = locked.version

    def _transfer(
        self,
        escrow: EscrowAccount,
        amount_cents: int,
        operation: str,
        lock: DistributedLock | None = None,
    ) -> str:
        """Transfer the provider share; returns the gateway reference ("" if none)."""
        if amount_cents <= 0:
            return ""
        result = self._gateway_call(
            operation,
            escrow.booking_id,
            lambda: self.gateway.transfer_funds(
                amount_cents=amount_cents,
                currency=escrow.currency,
                destination_account=escrow.provider_gateway_account_id,
                metadata={"booking_id": str(escrow.booking_id)},
                idempotency_key=IdempotencyKeyGenerator.generate(operation, escrow.booking_id),
                source_reference=escrow.gateway_reference,
            ),
            lock=lock,
        )
        return result.reference

    def _settlement_entries(
        self,
        escrow: EscrowAccount,
        payout_cents: int,
        fee_cents: int,
        refund_cents: int,
        suffix: str,
        gateway_reference: str = "",
        refund_reference: str = "",
    ) -> list[RecordTransactionParams]:
        booking_id = escrow.booking_id
        entries = []
        if refund_cents:
            entries.append(
                self._params(
                    escrow,
                    TransactionType.REFUND,
                    refund_cents,
                    f"refund:{booking_id}:{suffix}",
                    gateway_reference=refund_reference,
                    description="Refund to customer",
                )
            )
        if payout_cents:
            entries.append(
                self._params(
                    escrow,
                    TransactionType.PAYOUT,
                    payout_cents,
                    f"payout:{booking_id}:{suffix}",
                    gateway_reference=gateway_reference,
                    description="Payout to provider",
                )
            )
        if fee_cents:
            entries.append(
                self._params(
                    escrow,
                    TransactionType.FEE,
                    fee_cents,
                    f"fee:{booking_id}:{suffix}",
                    description="Platform commission",
                    metadata={"commission_rate": str(escrow.commission_rate)},
                )
            )
        return entries

    @staticmethod
    def _params(
        escrow: EscrowAccount,
        transaction_type: str,
        amount_cents: int,
        idempotency_key: str,
        **kwargs: Any,
    ) -> RecordTransactionParams:
        booking = escrow.booking
        return RecordTransactionParams(
            booking_id=booking.id,
            escrow_id=escrow.id,
            customer_id=booking.customer_id,
            provider_id=booking.provider_id,
            transaction_type=transaction_type,
            amount_cents=amount_cents,
            idempotency_key=idempotency_key,
            currency=escrow.currency,
            **kwargs,
        )

    @staticmethod
    def _metadata(booking: Booking) -> dict[str, str]:
        return {
            "booking_id": str(booking.id),
            "customer_id": str(booking.customer_id),
            "provider_id": str(booking.provider_id),
        }
