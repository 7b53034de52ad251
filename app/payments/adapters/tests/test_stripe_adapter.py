"""
Tests for Stripe adapter.

Tests cover:
- Idempotency key generation
- Request shape for both capture modes
- Error translation for each exception type
- Retries of transient failures with backoff
- Webhook signature verification
- Helper functions (is_retryable, backoff_delay)
"""

import uuid

import pytest

from payments.adapters import (
    ChargeResult,
    IdempotencyKeyGenerator,
    PaymentGateway,
    RefundResult,
    StripeGateway,
    TransferResult,
    backoff_delay,
    is_retryable_stripe_error,
)
from payments.adapters.tests.conftest import WEBHOOK_SECRET
from payments.exceptions import (
    InvalidSignature,
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


@pytest.fixture
def stripe_gateway():
    return StripeGateway(max_retries=3, webhook_secret=WEBHOOK_SECRET)


def authorize(gateway, capture_mode="manual", **kwargs):
    params = {
        "amount_cents": 10000,
        "currency": "usd",
        "destination_account": "acct_dest123",
        "capture_mode": capture_mode,
        "metadata": {"booking_id": "b1"},
        "idempotency_key": "authorize:b1:1:abcd1234",
    }
    params.update(kwargs)
    return gateway.authorize_charge(**params)


# =============================================================================
# IdempotencyKeyGenerator Tests
# =============================================================================


class TestIdempotencyKeyGenerator:
    """Tests for IdempotencyKeyGenerator."""

    def test_format(self, booking_id):
        key = IdempotencyKeyGenerator.generate("transfer", booking_id)
        operation, entity, attempt, digest = key.split(":")

        assert operation == "transfer"
        assert entity == str(booking_id)
        assert attempt == "1"
        assert len(digest) == 8

    def test_deterministic(self, booking_id):
        assert IdempotencyKeyGenerator.generate(
            "refund", booking_id, 2
        ) == IdempotencyKeyGenerator.generate("refund", booking_id, 2)

    def test_differs_by_operation_and_attempt(self, booking_id):
        keys = {
            IdempotencyKeyGenerator.generate("refund", booking_id, 1),
            IdempotencyKeyGenerator.generate("refund", booking_id, 2),
            IdempotencyKeyGenerator.generate("transfer", booking_id, 1),
            IdempotencyKeyGenerator.generate("refund", uuid.uuid4(), 1),
        }

        assert len(keys) == 4


# =============================================================================
# Successful Operations
# =============================================================================


class TestStripeGatewayOperations:
    """Request shape and result mapping of each operation."""

    def test_satisfies_gateway_protocol(self, stripe_gateway):
        assert isinstance(stripe_gateway, PaymentGateway)

    def test_manual_authorization(self, stripe_gateway, mock_stripe_payment_intent):
        result = authorize(stripe_gateway)

        kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert kwargs["capture_method"] == "manual"
        assert kwargs["amount"] == 10000
        assert kwargs["idempotency_key"] == "authorize:b1:1:abcd1234"
        assert "transfer_data" not in kwargs
        assert "application_fee_amount" not in kwargs

        assert isinstance(result, ChargeResult)
        assert result.reference == "pi_test123456"
        assert result.captured is False
        assert result.client_secret == "pi_test123456_secret_abc123"

    def test_automatic_authorization_is_destination_charge(
        self, stripe_gateway, mock_stripe_payment_intent
    ):
        authorize(stripe_gateway, capture_mode="automatic", application_fee_cents=800)

        kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert kwargs["capture_method"] == "automatic"
        assert kwargs["transfer_data"] == {"destination": "acct_dest123"}
        assert kwargs["application_fee_amount"] == 800

    def test_capture(self, stripe_gateway, mock_stripe_payment_intent):
        result = stripe_gateway.capture_charge("pi_test123456", idempotency_key="capture:b1")

        mock_stripe_payment_intent.capture.assert_called_once_with(
            "pi_test123456", idempotency_key="capture:b1"
        )
        assert result.captured is True

    def test_transfer_uses_source_as_transfer_group(self, stripe_gateway, mock_stripe_transfer):
        result = stripe_gateway.transfer_funds(
            amount_cents=9200,
            currency="usd",
            destination_account="acct_dest123",
            metadata={"booking_id": "b1"},
            idempotency_key="transfer:b1",
            source_reference="pi_test123456",
        )

        kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert kwargs["transfer_group"] == "pi_test123456"
        assert kwargs["destination"] == "acct_dest123"
        assert isinstance(result, TransferResult)
        assert result.reference == "tr_test123456"
        assert result.amount_cents == 9200

    def test_refund_keeps_free_text_reason_in_metadata(self, stripe_gateway, mock_stripe_refund):
        result = stripe_gateway.refund(
            "pi_test123456",
            idempotency_key="refund:b1:1",
            amount_cents=4000,
            reason="Provider no-show",
        )

        kwargs = mock_stripe_refund.create.call_args.kwargs
        assert kwargs["payment_intent"] == "pi_test123456"
        assert kwargs["amount"] == 4000
        assert kwargs["reason"] == "requested_by_customer"
        assert kwargs["metadata"]["reason"] == "Provider no-show"
        assert isinstance(result, RefundResult)
        assert result.payment_reference == "pi_test123456"

    def test_full_refund_omits_amount(self, stripe_gateway, mock_stripe_refund):
        stripe_gateway.refund("pi_test123456", idempotency_key="refund:b1:1")

        assert "amount" not in mock_stripe_refund.create.call_args.kwargs

    def test_list_refunds_follows_pagination(self, stripe_gateway, mock_stripe_refund, mock_refund):
        mock_stripe_refund.list.return_value.auto_paging_iter.return_value = iter(
            [mock_refund(id="re_1", amount=2000), mock_refund(id="re_2", status="failed")]
        )

        refunds = stripe_gateway.list_refunds("pi_test123456")

        assert mock_stripe_refund.list.call_args.kwargs["payment_intent"] == "pi_test123456"
        assert [(r.reference, r.amount_cents, r.is_void) for r in refunds] == [
            ("re_1", 2000, False),
            ("re_2", 10000, True),
        ]
        assert all(r.payment_reference == "pi_test123456" for r in refunds)


# =============================================================================
# Error Translation
# =============================================================================


class TestErrorTranslation:
    """Stripe SDK errors become domain exceptions."""

    @pytest.fixture
    def single_attempt(self):
        return StripeGateway(max_retries=1, webhook_secret=WEBHOOK_SECRET)

    def test_card_declined(self, single_attempt, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            authorize(single_attempt)

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_retryable is False

    def test_insufficient_funds(self, single_attempt, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error(
            decline_code="insufficient_funds"
        )

        with pytest.raises(StripeInsufficientFundsError):
            authorize(single_attempt)

    def test_invalid_request(self, single_attempt, mock_stripe_payment_intent, invalid_request_error):
        mock_stripe_payment_intent.capture.side_effect = invalid_request_error()

        with pytest.raises(StripeInvalidRequestError):
            single_attempt.capture_charge("pi_missing", idempotency_key="k")

    def test_invalid_account(self, single_attempt, mock_stripe_transfer, invalid_request_error):
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="No such account: 'acct_gone'", param="destination"
        )

        with pytest.raises(StripeInvalidAccountError):
            single_attempt.transfer_funds(
                amount_cents=100,
                currency="usd",
                destination_account="acct_gone",
                metadata={},
                idempotency_key="k",
            )

    def test_rate_limit(self, single_attempt, mock_stripe_refund, rate_limit_error):
        mock_stripe_refund.create.side_effect = rate_limit_error

        with pytest.raises(StripeRateLimitError) as exc_info:
            single_attempt.refund("pi_1", idempotency_key="k")

        assert exc_info.value.is_retryable is True

    def test_connection_error(self, single_attempt, mock_stripe_refund, api_connection_error):
        mock_stripe_refund.create.side_effect = api_connection_error

        with pytest.raises(StripeAPIUnavailableError):
            single_attempt.refund("pi_1", idempotency_key="k")

    def test_timeout(self, single_attempt, mock_stripe_refund):
        import stripe

        mock_stripe_refund.create.side_effect = stripe.APIConnectionError(
            message="Request timed out"
        )

        with pytest.raises(StripeTimeoutError):
            single_attempt.refund("pi_1", idempotency_key="k")

    def test_authentication_error_is_permanent(
        self, single_attempt, mock_stripe_refund, authentication_error
    ):
        mock_stripe_refund.create.side_effect = authentication_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            single_attempt.refund("pi_1", idempotency_key="k")

        assert exc_info.value.details["stripe_code"] == "authentication_error"

    def test_api_error(self, single_attempt, mock_stripe_refund, api_error):
        mock_stripe_refund.create.side_effect = api_error

        with pytest.raises(StripeAPIUnavailableError):
            single_attempt.refund("pi_1", idempotency_key="k")


# =============================================================================
# Retries
# =============================================================================


class TestRetries:
    """Transient failures are retried with the same idempotency key."""

    def test_transient_error_then_success(
        self,
        stripe_gateway,
        mock_stripe_payment_intent,
        mock_payment_intent,
        rate_limit_error,
        no_sleep,
    ):
        mock_stripe_payment_intent.create.side_effect = [rate_limit_error, mock_payment_intent()]

        result = authorize(stripe_gateway)

        assert result.reference == "pi_test123456"
        assert mock_stripe_payment_intent.create.call_count == 2
        keys = {c.kwargs["idempotency_key"] for c in mock_stripe_payment_intent.create.call_args_list}
        assert keys == {"authorize:b1:1:abcd1234"}
        no_sleep.assert_called_once()

    def test_gives_up_after_max_retries(
        self, stripe_gateway, mock_stripe_transfer, api_error, no_sleep
    ):
        mock_stripe_transfer.create.side_effect = api_error

        with pytest.raises(StripeAPIUnavailableError):
            stripe_gateway.transfer_funds(
                amount_cents=100,
                currency="usd",
                destination_account="acct_1",
                metadata={},
                idempotency_key="k",
            )

        assert mock_stripe_transfer.create.call_count == 3
        assert no_sleep.call_count == 2

    def test_permanent_error_is_not_retried(
        self, stripe_gateway, mock_stripe_payment_intent, card_error, no_sleep
    ):
        mock_stripe_payment_intent.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError):
            authorize(stripe_gateway)

        assert mock_stripe_payment_intent.create.call_count == 1
        no_sleep.assert_not_called()


# =============================================================================
# Webhook Verification
# =============================================================================


class TestVerifyWebhook:
    """Tests for StripeGateway.verify_webhook."""

    EVENT = {
        "id": "evt_test123",
        "object": "event",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_test123", "object": "payment_intent"}},
    }

    def test_valid_signature_returns_event(self, stripe_gateway, signed_payload):
        payload, header = signed_payload(self.EVENT)

        event = stripe_gateway.verify_webhook(payload, header)

        assert event == self.EVENT

    def test_wrong_secret(self, stripe_gateway, signed_payload):
        payload, header = signed_payload(self.EVENT, secret="whsec_other")

        with pytest.raises(InvalidSignature):
            stripe_gateway.verify_webhook(payload, header)

    def test_tampered_payload(self, stripe_gateway, signed_payload):
        payload, header = signed_payload(self.EVENT)

        with pytest.raises(InvalidSignature):
            stripe_gateway.verify_webhook(payload.replace(b"evt_test123", b"evt_forged"), header)

    def test_stale_timestamp(self, stripe_gateway, signed_payload):
        payload, header = signed_payload(self.EVENT, timestamp=1_000_000_000)

        with pytest.raises(InvalidSignature):
            stripe_gateway.verify_webhook(payload, header)

    def test_missing_signature(self, stripe_gateway):
        with pytest.raises(InvalidSignature, match="Missing"):
            stripe_gateway.verify_webhook(b"{}", "")


# =============================================================================
# Helper Function Tests
# =============================================================================


class TestHelpers:
    def test_is_retryable(self):
        assert is_retryable_stripe_error(StripeRateLimitError("slow down")) is True
        assert is_retryable_stripe_error(StripeTimeoutError("timeout")) is True
        assert is_retryable_stripe_error(StripeCardDeclinedError("declined")) is False
        assert is_retryable_stripe_error(ValueError("not stripe")) is False

    @pytest.mark.parametrize("attempt,low,high", [(0, 1.0, 1.25), (1, 2.0, 2.5), (2, 4.0, 5.0)])
    def test_backoff_delay_grows_with_jitter(self, attempt, low, high):
        for _ in range(20):
            assert low <= backoff_delay(attempt) <= high

    def test_backoff_delay_is_capped(self):
        assert backoff_delay(20, max_delay=60.0) <= 75.0
