"""
Tests for parsing verified webhook payloads into typed events.
"""

import pytest

from payments.exceptions import InvalidEventPayload
from payments.webhooks.events import (
    AccountUpdated,
    ChargeRefunded,
    PaymentFailed,
    PaymentSucceeded,
    PayoutEvent,
    RefundLine,
    parse_event,
)
from payments.webhooks.tests.conftest import (
    charge_refunded_event,
    payment_intent_event,
    stripe_event,
)


class TestPaymentEvents:
    def test_succeeded_is_captured(self):
        payload = payment_intent_event("payment_intent.succeeded", "pi_1", amount=10000)

        event = parse_event(payload)

        assert event == PaymentSucceeded(
            event_id=payload["id"], payment_reference="pi_1", amount_cents=10000, captured=True
        )
        assert event.kind == "payment.succeeded"

    def test_amount_capturable_updated_is_authorization_only(self):
        payload = payment_intent_event("payment_intent.amount_capturable_updated", "pi_1")

        event = parse_event(payload)

        assert isinstance(event, PaymentSucceeded)
        assert event.captured is False
        assert event.amount_cents == 10000

    def test_failed_carries_gateway_message(self):
        payload = payment_intent_event(
            "payment_intent.payment_failed",
            "pi_1",
            last_payment_error={"code": "card_declined", "message": "Your card was declined."},
        )

        event = parse_event(payload)

        assert isinstance(event, PaymentFailed)
        assert event.reason == "Your card was declined."

    def test_failed_without_error_details(self):
        event = parse_event(payment_intent_event("payment_intent.payment_failed", "pi_1"))

        assert event.reason == "Payment failed"

    def test_payment_without_id_rejected(self):
        payload = stripe_event("payment_intent.succeeded", {"object": "payment_intent"})

        with pytest.raises(InvalidEventPayload) as exc_info:
            parse_event(payload)

        assert exc_info.value.details["field"] == "id"


class TestAccountUpdated:
    def test_capabilities(self):
        payload = stripe_event(
            "account.updated",
            {"id": "acct_1", "charges_enabled": True, "payouts_enabled": False},
        )

        event = parse_event(payload)

        assert event == AccountUpdated(
            event_id=payload["id"],
            account_id="acct_1",
            charges_enabled=True,
            payouts_enabled=False,
            details_submitted=False,
        )


class TestChargeRefunded:
    def test_refund_lines(self):
        payload = charge_refunded_event("pi_1", [("re_1", 2500), ("re_2", 500)])

        event = parse_event(payload)

        assert isinstance(event, ChargeRefunded)
        assert event.payment_reference == "pi_1"
        assert event.refunds == (RefundLine("re_1", 2500), RefundLine("re_2", 500))

    def test_payload_without_refund_list(self):
        # API versions from 2022-11-15 no longer embed charge.refunds
        event = parse_event(charge_refunded_event("pi_1"))

        assert isinstance(event, ChargeRefunded)
        assert event.refunds == ()

    def test_refund_status_kept(self):
        payload = charge_refunded_event("pi_1", [("re_1", 2500), ("re_2", 500, "failed")])

        refunds = parse_event(payload).refunds

        assert [line.is_void for line in refunds] == [False, True]

    def test_without_payment_intent_rejected(self):
        payload = charge_refunded_event("pi_1", [("re_1", 100)])
        del payload["data"]["object"]["payment_intent"]

        with pytest.raises(InvalidEventPayload):
            parse_event(payload)


class TestPayoutEvents:
    @pytest.mark.parametrize("event_type", ["payout.created", "payout.paid", "payout.failed"])
    def test_payout_kinds(self, event_type):
        payload = stripe_event(
            event_type,
            {"id": "po_1", "amount": 9200, "currency": "usd", "status": "paid"},
            account="acct_1",
        )

        event = parse_event(payload)

        assert isinstance(event, PayoutEvent)
        assert event.kind == event_type
        assert event.account_id == "acct_1"
        assert event.amount_cents == 9200


class TestEnvelope:
    def test_unhandled_type_returns_none(self):
        assert parse_event(stripe_event("customer.created", {"id": "cus_1"})) is None

    def test_missing_event_id_rejected(self):
        payload = stripe_event("payment_intent.succeeded", {"id": "pi_1"})
        payload["id"] = ""

        with pytest.raises(InvalidEventPayload):
            parse_event(payload)

    def test_missing_data_object_rejected(self):
        payload = {"id": "evt_1", "type": "payment_intent.succeeded", "data": {}}

        with pytest.raises(InvalidEventPayload, match="data.object"):
            parse_event(payload)

    def test_non_object_payload_rejected(self):
        with pytest.raises(InvalidEventPayload):
            parse_event(["not", "an", "event"])
