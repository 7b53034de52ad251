"""
Factory Boy factories for payment test data.

This module provides factories for creating test instances of payment models.
Escrows are not built by a factory: tests open them through EscrowService
with the in-memory gateway, so the ledger always matches the escrow.

Usage:
    from payments.tests.factories import (
        BookingFactory,
        ConnectedAccountFactory,
        UserFactory,
        WebhookEventFactory,
    )

    # Create a pending booking for $100
    booking = BookingFactory()

    # Create with specific parties
    booking = BookingFactory(customer=customer, provider=provider)
"""

import uuid
from datetime import timedelta

import factory
from django.utils import timezone

from payments.models import Booking, ConnectedAccount, WebhookEvent
from payments.state_machines import BookingStatus, WebhookEventStatus


class UserFactory(factory.django.DjangoModelFactory):
    """Factory for creating User instances."""

    class Meta:
        model = "auth.User"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class BookingFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Booking instances.

    Default creates a PENDING booking for $100 USD starting tomorrow.

    Example:
        booking = BookingFactory(amount_cents=2500)
    """

    class Meta:
        model = Booking
        skip_postgeneration_save = True

    customer = factory.SubFactory(UserFactory)
    provider = factory.SubFactory(UserFactory)
    service_id = factory.Sequence(lambda n: f"svc_{n}")
    scheduled_start = factory.LazyFunction(lambda: timezone.now() + timedelta(days=1))
    scheduled_end = factory.LazyAttribute(lambda o: o.scheduled_start + timedelta(hours=2))
    amount_cents = 10000
    currency = "usd"
    status = BookingStatus.PENDING


class ConnectedAccountFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating ConnectedAccount instances.

    Default creates an account that has finished onboarding.
    """

    class Meta:
        model = ConnectedAccount
        skip_postgeneration_save = True

    provider = factory.SubFactory(UserFactory)
    gateway_account_id = factory.Sequence(
        lambda n: f"acct_test_{n}_{uuid.uuid4().hex[:8]}"
    )
    charges_enabled = True
    payouts_enabled = True
    details_submitted = True
    metadata = factory.LazyFunction(dict)


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating WebhookEvent instances.

    Default creates a PENDING payment_intent.succeeded event.

    Example:
        event = WebhookEventFactory(payload=build_event("charge.refunded", {...}))
    """

    class Meta:
        model = WebhookEvent
        skip_postgeneration_save = True

    gateway_event_id = factory.Sequence(lambda n: f"evt_test_{n}_{uuid.uuid4().hex[:8]}")
    event_type = "payment_intent.succeeded"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.gateway_event_id,
            "type": o.event_type,
            "data": {"object": {"id": "pi_unknown", "amount_received": 10000}},
        }
    )
    status = WebhookEventStatus.PENDING
    retry_count = 0
