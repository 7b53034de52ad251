"""
Webhook event handlers.

This module provides a handler registry keyed by typed event kind and
the handlers that feed gateway events into the escrow lifecycle.

Handlers return a ServiceResult for expected conditions (an event about
a payment this service never created) and let typed errors propagate,
so the Celery task marks the event failed and retries it.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(event, escrow_service) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from core.services import ServiceResult

from payments.exceptions import InvalidState, PaymentNotFoundError
from payments.models import ConnectedAccount, WebhookEvent
from payments.webhooks.events import (
    AccountUpdated,
    ChargeRefunded,
    PaymentFailed,
    PaymentSucceeded,
    PayoutEvent,
    parse_event,
)

if TYPE_CHECKING:
    from payments.services import EscrowService
    from payments.webhooks.events import GatewayEvent


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


Handler = Callable[["GatewayEvent", "EscrowService"], ServiceResult]

# Maps event kinds to handler functions
WEBHOOK_HANDLERS: dict[str, Handler] = {}


def register_handler(kind: str) -> Callable[[Handler], Handler]:
    """
    Decorator to register a webhook event handler.

    Args:
        kind: Typed event kind (e.g., "payment.succeeded")
    """

    def decorator(func: Handler) -> Handler:
        WEBHOOK_HANDLERS[kind] = func
        return func

    return decorator


def dispatch_webhook(
    webhook_event: WebhookEvent,
    escrow_service: EscrowService | None = None,
) -> ServiceResult:
    """
    Parse a stored webhook event and run its handler.

    Unknown kinds are logged and reported as success so they are not
    retried.

    Raises:
        InvalidEventPayload: The stored payload is malformed
    """
    event = parse_event(webhook_event.payload)
    if event is None:
        logger.info(
            "Ignoring unhandled webhook event type",
            extra={
                "gateway_event_id": webhook_event.gateway_event_id,
                "event_type": webhook_event.event_type,
            },
        )
        return ServiceResult.success(None)

    handler = WEBHOOK_HANDLERS.get(event.kind)
    if handler is None:
        logger.info(
            "No handler registered for event kind",
            extra={"gateway_event_id": webhook_event.gateway_event_id, "kind": event.kind},
        )
        return ServiceResult.success(None)

    if escrow_service is None:
        from payments.services import EscrowService

        escrow_service = EscrowService()

    logger.info(
        "Dispatching webhook event",
        extra={"gateway_event_id": webhook_event.gateway_event_id, "kind": event.kind},
    )
    return handler(event, escrow_service)


# =============================================================================
# Payment Handlers
# =============================================================================


@register_handler("payment.succeeded")
def handle_payment_succeeded(
    event: PaymentSucceeded, escrow_service: EscrowService
) -> ServiceResult:
    """Confirm the escrow whose payment the gateway reports as succeeded."""
    try:
        escrow = escrow_service.confirm_capture(
            event.payment_reference,
            captured=event.captured,
            gateway_event_id=event.event_id,
        )
    except PaymentNotFoundError as e:
        logger.warning(
            "Payment succeeded for unknown escrow",
            extra={"payment_reference": event.payment_reference, "gateway_event_id": event.event_id},
        )
        return ServiceResult.from_exception(e)
    return ServiceResult.success(escrow)


@register_handler("payment.failed")
def handle_payment_failed(event: PaymentFailed, escrow_service: EscrowService) -> ServiceResult:
    try:
        escrow = escrow_service.fail_payment(event.payment_reference, reason=event.reason)
    except (PaymentNotFoundError, InvalidState) as e:
        logger.warning(
            "Payment failure not applied",
            extra={
                "payment_reference": event.payment_reference,
                "gateway_event_id": event.event_id,
                "error_code": e.error_code,
            },
        )
        return ServiceResult.from_exception(e)
    return ServiceResult.success(escrow)


@register_handler("charge.refunded")
def handle_charge_refunded(event: ChargeRefunded, escrow_service: EscrowService) -> ServiceResult:
    """
    Record refunds issued at the gateway; our own refunds are skipped by reference.

    Payloads without an embedded refund list are reconciled against the
    refunds the gateway lists for the payment.
    """
    try:
        if not event.refunds:
            escrow = escrow_service.reconcile_gateway_refunds(
                event.payment_reference, gateway_event_id=event.event_id
            )
            return ServiceResult.success(escrow)
        escrow = None
        for line in event.refunds:
            if line.is_void:
                continue
            escrow = escrow_service.record_external_refund(
                event.payment_reference,
                refund_reference=line.refund_reference,
                amount_cents=line.amount_cents,
                gateway_event_id=event.event_id,
            )
    except PaymentNotFoundError as e:
        logger.warning(
            "Refund for unknown escrow",
            extra={"payment_reference": event.payment_reference, "charge_id": event.charge_id},
        )
        return ServiceResult.from_exception(e)
    return ServiceResult.success(escrow)


# =============================================================================
# Connected Account Handlers
# =============================================================================


@register_handler("account.updated")
def handle_account_updated(event: AccountUpdated, escrow_service: EscrowService) -> ServiceResult:
    """
    Sync a provider's connected account capabilities.

    Accounts that are not ours are ignored.
    """
    account = ConnectedAccount.objects.filter(gateway_account_id=event.account_id).first()
    if account is None:
        logger.info(
            "ConnectedAccount not found, may be external account",
            extra={"account_id": event.account_id, "gateway_event_id": event.event_id},
        )
        return ServiceResult.success(None)

    account.charges_enabled = event.charges_enabled
    account.payouts_enabled = event.payouts_enabled
    account.details_submitted = event.details_submitted
    account.save()

    logger.info(
        "ConnectedAccount updated",
        extra={
            "connected_account_id": str(account.id),
            "charges_enabled": account.charges_enabled,
            "payouts_enabled": account.payouts_enabled,
            "details_submitted": account.details_submitted,
        },
    )
    return ServiceResult.success(account)


def handle_payout(event: PayoutEvent, escrow_service: EscrowService) -> ServiceResult:
    """
    Log payouts from a connected account to the provider's bank.

    Bank payouts happen after our transfer and do not touch the escrow.
    """
    account = ConnectedAccount.objects.filter(gateway_account_id=event.account_id).first()
    extra = {
        "gateway_event_id": event.event_id,
        "payout_id": event.payout_id,
        "account_id": event.account_id,
        "connected_account_id": str(account.id) if account else None,
        "amount_cents": event.amount_cents,
        "status": event.status,
    }
    if event.kind == "payout.failed":
        logger.warning(
            "Provider payout failed",
            extra={**extra, "failure_message": event.failure_message},
        )
    else:
        logger.info(f"Provider {event.kind}", extra=extra)
    return ServiceResult.success(account)


for _kind in ("payout.created", "payout.paid", "payout.failed"):
    register_handler(_kind)(handle_payout)
