"""
Payment admin configuration.

Registers bookings, escrows, connected accounts and webhook events.
Ledger transactions are registered read-only in payments.ledger.admin.
State changes go through EscrowService, never through the admin.
"""

from django.contrib import admin

from payments.ledger.admin import TransactionAdmin
from payments.models import (
    Booking,
    ConnectedAccount,
    EscrowAccount,
    Transaction,
    WebhookEvent,
)

__all__ = [
    "BookingAdmin",
    "ConnectedAccountAdmin",
    "EscrowAccountAdmin",
    "TransactionAdmin",
    "WebhookEventAdmin",
]


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Bookings with their FSM status (read-only)."""

    list_display = [
        "id",
        "customer",
        "provider",
        "amount_display",
        "status",
        "scheduled_start",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "service_id", "customer__email", "provider__email"]
    readonly_fields = ["id", "status", "version", "created_at", "updated_at"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    @admin.display(description="Amount")
    def amount_display(self, obj: Booking) -> str:
        return f"${obj.amount_cents / 100:.2f} {obj.currency.upper()}"


class TransactionInline(admin.TabularInline):
    """Ledger rows of an escrow, shown read-only."""

    model = Transaction
    fk_name = "escrow"
    extra = 0
    can_delete = False
    fields = ["created_at", "type", "status", "amount_cents", "gateway_reference"]
    readonly_fields = fields
    ordering = ["created_at", "id"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(EscrowAccount)
class EscrowAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for EscrowAccount.

    Amounts are locked at authorization and the state is driven by the
    escrow service, so everything is read-only here.
    """

    list_display = [
        "id",
        "booking",
        "amount_display",
        "platform_fee_cents",
        "state",
        "capture_mode",
        "confirmed_at",
        "settled_at",
    ]
    list_filter = ["state", "capture_mode", "currency", "created_at"]
    search_fields = ["id", "booking__id", "gateway_reference", "provider_gateway_account_id"]
    readonly_fields = [
        "id",
        "booking",
        "amount_cents",
        "platform_fee_cents",
        "net_amount_cents",
        "commission_rate",
        "currency",
        "capture_mode",
        "provider_gateway_account_id",
        "gateway_reference",
        "state",
        "confirmed_at",
        "gateway_captured_at",
        "settled_at",
        "failure_reason",
        "version",
        "created_at",
        "updated_at",
    ]
    inlines = [TransactionInline]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "booking", "state"),
            },
        ),
        (
            "Amount",
            {
                "fields": (
                    "amount_cents",
                    "platform_fee_cents",
                    "net_amount_cents",
                    "commission_rate",
                    "currency",
                ),
            },
        ),
        (
            "Gateway",
            {
                "fields": (
                    "capture_mode",
                    "provider_gateway_account_id",
                    "gateway_reference",
                ),
            },
        ),
        (
            "State Timestamps",
            {
                "fields": ("confirmed_at", "gateway_captured_at", "settled_at"),
                "classes": ("collapse",),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("version", "created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: EscrowAccount) -> str:
        return f"${obj.amount_cents / 100:.2f} {obj.currency.upper()}"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for escrows (audit trail)."""
        return False


@admin.register(ConnectedAccount)
class ConnectedAccountAdmin(admin.ModelAdmin):
    """Provider gateway accounts and their capabilities."""

    list_display = [
        "id",
        "provider",
        "gateway_account_id",
        "charges_enabled",
        "payouts_enabled",
        "details_submitted",
        "created_at",
    ]
    list_filter = ["charges_enabled", "payouts_enabled", "details_submitted"]
    search_fields = ["id", "gateway_account_id", "provider__email"]
    readonly_fields = ["id", "created_at", "updated_at", "version"]
    ordering = ["-created_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Payload and event details are immutable; status can be changed to
    push an event back into the retry loop.
    """

    list_display = [
        "id",
        "gateway_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "gateway_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "gateway_event_id",
        "event_type",
        "payload",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        return False
