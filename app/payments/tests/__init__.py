"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Booking, EscrowAccount, ConnectedAccount, WebhookEvent model tests
- test_escrow_service.py: EscrowService lifecycle tests
- test_ledger.py: Ledger recording and balance tests
- test_settlement.py: Fee and settlement allocation tests
- test_locks.py: Distributed lock and optimistic versioning tests
- test_views.py: API endpoint tests

Webhook and gateway adapter tests live beside their packages
(payments/webhooks/tests/, payments/adapters/tests/).

Usage:
    pytest payments/tests/
    pytest payments/tests/test_escrow_service.py
"""
