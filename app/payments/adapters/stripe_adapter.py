"""
Stripe implementation of the payment gateway contract.

All Stripe calls made by the escrow lifecycle go through StripeGateway to
ensure consistent error handling, timeouts, idempotency, retries and
observability.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Transient failures retried with exponential backoff and jitter,
  reusing the same idempotency key
- Structured logging with timing metrics

Capture modes:
- manual: platform PaymentIntent with capture_method="manual"; funds are
  captured on release and moved to the provider with a Transfer
- automatic: destination charge (transfer_data + application_fee_amount);
  the provider is paid as soon as Stripe captures

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Attempts for transient failures (default: 3)
"""

from __future__ import annotations

import hashlib
import json
import logging
import random
import time
import uuid
from typing import TYPE_CHECKING

import stripe
from django.conf import settings

from payments.adapters.base import ChargeResult, RefundResult, TransferResult
from payments.exceptions import (
    InvalidSignature,
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)
from payments.state_machines import CaptureMode

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any, TypeVar

    R = TypeVar("R")


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for gateway calls.

    Format: "{operation}:{booking_id}:{attempt}:{hash}"

    The attempt component distinguishes operations that legitimately
    happen more than once per booking (the n-th partial refund); it is
    NOT incremented for transport retries, which must reuse the key.

    Example:
        key = IdempotencyKeyGenerator.generate("transfer", booking.id)
        # "transfer:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_stripe_error(error: Exception) -> bool:
    """
    Check if an error is a transient Stripe error that can be retried.

    Args:
        error: The exception to check

    Returns:
        True for rate limits, connection failures, 5xx and timeouts
    """
    if isinstance(error, StripeError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with jitter (0-25% of calculated delay)

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 1: 2.0 - 2.5 seconds
        # Attempt 2: 4.0 - 5.0 seconds
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Stripe Gateway
# =============================================================================


class StripeGateway:
    """
    PaymentGateway backed by Stripe Connect.

    Args:
        max_retries: Attempts for transient failures (defaults to
            STRIPE_MAX_RETRIES)
        webhook_secret: Signing secret (defaults to STRIPE_WEBHOOK_SECRET)

    Usage:
        gateway = StripeGateway()
        charge = gateway.authorize_charge(
            amount_cents=10000,
            currency="usd",
            destination_account="acct_123",
            capture_mode="manual",
            metadata={"booking_id": str(booking.id)},
            idempotency_key=IdempotencyKeyGenerator.generate("authorize", booking.id),
        )
    """

    def __init__(
        self,
        max_retries: int | None = None,
        webhook_secret: str | None = None,
    ) -> None:
        if max_retries is None:
            max_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)
        self.max_retries = max(1, max_retries)
        self.webhook_secret = (
            webhook_secret
            if webhook_secret is not None
            else settings.STRIPE_WEBHOOK_SECRET
        )

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def _call(
        self,
        log_context: dict[str, Any],
        func: Callable[[], R],
    ) -> R:
        """
        Run one Stripe operation with logging, error translation and retries.

        Transient errors are retried up to max_retries attempts with
        backoff_delay(); the idempotency key inside func stays the same
        across attempts. Permanent errors and the last transient error
        are raised to the caller.
        """
        self._configure_stripe()
        logger = self.get_logger()

        for attempt in range(self.max_retries):
            context = {**log_context, "attempt": attempt + 1}
            start_time = time.time()
            logger.info("Starting Stripe operation", extra=context)
            try:
                result = func()
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                try:
                    self._handle_stripe_error(e, context, duration_ms)
                except StripeError as translated:
                    if not translated.is_retryable or attempt + 1 >= self.max_retries:
                        raise
                    delay = backoff_delay(attempt)
                    logger.warning(
                        "Retrying Stripe operation",
                        extra={**context, "delay_seconds": delay},
                    )
                    time.sleep(delay)
                    continue
                raise

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={**context, "duration_ms": duration_ms},
            )
            return result

        # range() always runs at least once and every path returns or raises
        raise StripeAPIUnavailableError("Stripe retries exhausted")

    # =========================================================================
    # Core Operations
    # =========================================================================

    def authorize_charge(
        self,
        amount_cents: int,
        currency: str,
        destination_account: str,
        capture_mode: str,
        metadata: dict[str, str],
        idempotency_key: str,
        application_fee_cents: int | None = None,
    ) -> ChargeResult:
        """
        Create the PaymentIntent backing an escrow.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe unavailable after retries
        """
        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "metadata": metadata,
            "payment_method_types": ["card"],
            "idempotency_key": idempotency_key,
        }
        if capture_mode == CaptureMode.AUTOMATIC:
            params["capture_method"] = "automatic"
            params["transfer_data"] = {"destination": destination_account}
            if application_fee_cents:
                params["application_fee_amount"] = application_fee_cents
        else:
            params["capture_method"] = "manual"

        log_context = {
            "operation": "authorize_charge",
            "amount_cents": amount_cents,
            "currency": currency,
            "capture_mode": capture_mode,
            "idempotency_key": idempotency_key,
        }
        intent = self._call(log_context, lambda: stripe.PaymentIntent.create(**params))
        return self._charge_result(intent)

    def capture_charge(self, reference: str, idempotency_key: str) -> ChargeResult:
        """
        Capture a manual-capture PaymentIntent.

        Raises:
            StripeInvalidRequestError: PaymentIntent not capturable
        """
        log_context = {
            "operation": "capture_charge",
            "payment_intent_id": reference,
            "idempotency_key": idempotency_key,
        }
        intent = self._call(
            log_context,
            lambda: stripe.PaymentIntent.capture(
                reference,
                idempotency_key=idempotency_key,
            ),
        )
        return self._charge_result(intent)

    def transfer_funds(
        self,
        amount_cents: int,
        currency: str,
        destination_account: str,
        metadata: dict[str, str],
        idempotency_key: str,
        source_reference: str | None = None,
    ) -> TransferResult:
        """
        Transfer funds from the platform balance to a connected account.

        source_reference (the escrow PaymentIntent) becomes the transfer
        group so the payout can be traced back to the captured charge.

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
        """
        log_context = {
            "operation": "transfer_funds",
            "amount_cents": amount_cents,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }
        transfer = self._call(
            log_context,
            lambda: stripe.Transfer.create(
                amount=amount_cents,
                currency=currency,
                destination=destination_account,
                metadata=metadata,
                transfer_group=source_reference,
                idempotency_key=idempotency_key,
            ),
        )
        return TransferResult(
            reference=transfer.id,
            amount_cents=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(transfer.metadata or {}),
        )

    def refund(
        self,
        reference: str,
        idempotency_key: str,
        amount_cents: int | None = None,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund part or all of a captured PaymentIntent.

        Stripe only accepts its own reason codes, so the free-text reason
        travels in metadata.
        """
        refund_metadata = dict(metadata or {})
        if reason:
            refund_metadata["reason"] = reason[:500]

        params: dict[str, Any] = {
            "payment_intent": reference,
            "reason": "requested_by_customer",
            "metadata": refund_metadata,
            "idempotency_key": idempotency_key,
        }
        if amount_cents is not None:
            params["amount"] = amount_cents

        log_context = {
            "operation": "refund",
            "payment_intent_id": reference,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }
        refund = self._call(log_context, lambda: stripe.Refund.create(**params))
        return self._refund_result(refund, reference)

    def list_refunds(self, reference: str) -> list[RefundResult]:
        """
        List every refund of a PaymentIntent, following pagination.

        charge.refunded payloads only embed Charge.refunds on API versions
        before 2022-11-15, so the refunds are fetched here instead.
        """
        log_context = {"operation": "list_refunds", "payment_intent_id": reference}
        refunds = self._call(
            log_context,
            lambda: list(
                stripe.Refund.list(payment_intent=reference, limit=100).auto_paging_iter()
            ),
        )
        return [self._refund_result(refund, reference) for refund in refunds]

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify a Stripe webhook signature and return the parsed event.

        Args:
            payload: Raw webhook body, exactly as received
            signature: Stripe-Signature header value

        Returns:
            The event as a plain dict

        Raises:
            InvalidSignature: Signature missing, malformed, stale or wrong
        """
        if not signature:
            raise InvalidSignature("Missing webhook signature")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature(
                "Invalid webhook signature",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise InvalidSignature(
                "Webhook payload is not valid JSON",
                details={"error": str(e)},
            ) from e
        return json.loads(payload)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _charge_result(intent: Any) -> ChargeResult:
        return ChargeResult(
            reference=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
            currency=intent.currency,
            captured=intent.status == "succeeded",
            client_secret=intent.client_secret,
            metadata=dict(intent.metadata or {}),
        )

    @staticmethod
    def _refund_result(refund: Any, reference: str) -> RefundResult:
        return RefundResult(
            reference=refund.id,
            amount_cents=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_reference=reference,
            metadata=dict(refund.metadata or {}),
        )

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to domain exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds
            StripeInvalidAccountError: Invalid Connect account
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: API unavailable
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, StripeError):
            raise error

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                )
            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            )

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            if "account" in str(error).lower():
                raise StripeInvalidAccountError(str(error), stripe_code=error.code)
            raise StripeInvalidRequestError(str(error), stripe_code=error.code)

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            )

        if isinstance(error, stripe.APIConnectionError):
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                logger.warning("Stripe request timed out", extra=log_context)
                raise StripeTimeoutError(
                    "Stripe request timed out. Please retry.",
                    stripe_code="timeout",
                )
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            )

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            )

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            )

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise StripeAPIUnavailableError(
            f"Unexpected Stripe error: {error}",
            stripe_code="unknown_error",
        )
