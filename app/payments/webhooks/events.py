"""
Typed webhook events.

Verified gateway payloads are parsed at the boundary into one of the
frozen dataclasses below, tagged by `kind`. Handlers only ever see these
types, never raw Stripe dictionaries.

Stripe event type -> kind:
    payment_intent.succeeded                 -> payment.succeeded (captured)
    payment_intent.amount_capturable_updated -> payment.succeeded (authorized)
    payment_intent.payment_failed            -> payment.failed
    account.updated                          -> account.updated
    charge.refunded                          -> charge.refunded
    payout.created / payout.paid / payout.failed -> same

charge.refunded only embeds the refund list for API versions before
2022-11-15; newer payloads parse with an empty `refunds` and the handler
lists the refunds from the gateway instead.

Usage:
    event = parse_event(webhook_event.payload)
    if event is None:
        ...  # kind we do not handle
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from payments.adapters.base import VOID_REFUND_STATUSES
from payments.exceptions import InvalidEventPayload


@dataclass(frozen=True)
class PaymentSucceeded:
    event_id: str
    payment_reference: str
    amount_cents: int
    captured: bool
    kind: str = "payment.succeeded"


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    payment_reference: str
    reason: str
    kind: str = "payment.failed"


@dataclass(frozen=True)
class AccountUpdated:
    event_id: str
    account_id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    kind: str = "account.updated"


@dataclass(frozen=True)
class RefundLine:
    refund_reference: str
    amount_cents: int
    status: str = "succeeded"

    @property
    def is_void(self) -> bool:
        return self.status in VOID_REFUND_STATUSES


@dataclass(frozen=True)
class ChargeRefunded:
    event_id: str
    charge_id: str
    payment_reference: str
    refunds: tuple[RefundLine, ...]
    kind: str = "charge.refunded"


@dataclass(frozen=True)
class PayoutEvent:
    """payout.created, payout.paid or payout.failed on a connected account."""

    event_id: str
    kind: str
    payout_id: str
    account_id: str
    amount_cents: int
    currency: str
    status: str
    failure_message: str = ""


GatewayEvent = Union[PaymentSucceeded, PaymentFailed, AccountUpdated, ChargeRefunded, PayoutEvent]


# =============================================================================
# Parsing
# =============================================================================


def _require(obj: dict[str, Any], key: str, event_type: str) -> Any:
    value = obj.get(key)
    if value is None or value == "":
        raise InvalidEventPayload(
            f"{event_type} event is missing '{key}'",
            details={"event_type": event_type, "field": key},
        )
    return value


def _payment_succeeded(event_id: str, event_type: str, obj: dict[str, Any]) -> PaymentSucceeded:
    captured = event_type == "payment_intent.succeeded"
    amount_key = "amount_received" if captured else "amount_capturable"
    return PaymentSucceeded(
        event_id=event_id,
        payment_reference=_require(obj, "id", event_type),
        amount_cents=int(obj.get(amount_key) or obj.get("amount") or 0),
        captured=captured,
    )


def _payment_failed(event_id: str, event_type: str, obj: dict[str, Any]) -> PaymentFailed:
    last_error = obj.get("last_payment_error") or {}
    return PaymentFailed(
        event_id=event_id,
        payment_reference=_require(obj, "id", event_type),
        reason=last_error.get("message") or last_error.get("code") or "Payment failed",
    )


def _account_updated(event_id: str, event_type: str, obj: dict[str, Any]) -> AccountUpdated:
    return AccountUpdated(
        event_id=event_id,
        account_id=_require(obj, "id", event_type),
        charges_enabled=bool(obj.get("charges_enabled", False)),
        payouts_enabled=bool(obj.get("payouts_enabled", False)),
        details_submitted=bool(obj.get("details_submitted", False)),
    )


def _charge_refunded(event_id: str, event_type: str, obj: dict[str, Any]) -> ChargeRefunded:
    refund_list = (obj.get("refunds") or {}).get("data") or []
    refunds = tuple(
        RefundLine(
            refund_reference=_require(item, "id", event_type),
            amount_cents=int(_require(item, "amount", event_type)),
            status=item.get("status") or "succeeded",
        )
        for item in refund_list
    )
    return ChargeRefunded(
        event_id=event_id,
        charge_id=_require(obj, "id", event_type),
        payment_reference=_require(obj, "payment_intent", event_type),
        refunds=refunds,
    )


def _payout(event_id: str, event_type: str, obj: dict[str, Any], account: str) -> PayoutEvent:
    return PayoutEvent(
        event_id=event_id,
        kind=event_type,
        payout_id=_require(obj, "id", event_type),
        account_id=account,
        amount_cents=int(obj.get("amount") or 0),
        currency=obj.get("currency") or "",
        status=obj.get("status") or "",
        failure_message=obj.get("failure_message") or "",
    )


_PARSERS = {
    "payment_intent.succeeded": _payment_succeeded,
    "payment_intent.amount_capturable_updated": _payment_succeeded,
    "payment_intent.payment_failed": _payment_failed,
    "account.updated": _account_updated,
    "charge.refunded": _charge_refunded,
}

_PAYOUT_TYPES = ("payout.created", "payout.paid", "payout.failed")


def parse_event(payload: dict[str, Any]) -> GatewayEvent | None:
    """
    Parse a verified webhook payload into a typed event.

    Returns:
        The typed event, or None for event types nothing handles

    Raises:
        InvalidEventPayload: The payload lacks fields its type requires
    """
    if not isinstance(payload, dict):
        raise InvalidEventPayload("Webhook payload is not an object")

    event_id = _require(payload, "id", "webhook")
    event_type = _require(payload, "type", "webhook")
    obj = (payload.get("data") or {}).get("object")
    if not isinstance(obj, dict):
        raise InvalidEventPayload(
            f"{event_type} event has no data.object",
            details={"event_type": event_type, "field": "data.object"},
        )

    if event_type in _PAYOUT_TYPES:
        return _payout(event_id, event_type, obj, payload.get("account") or "")

    parser = _PARSERS.get(event_type)
    if parser is None:
        return None
    return parser(event_id, event_type, obj)
