"""
Django admin configuration for the ledger.

Transactions are immutable: the admin is read-only and offers no add,
change or delete permission.
"""

from django.contrib import admin

from .models import Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Read-only view of ledger rows.

    Corrections are made by recording new rows through the escrow
    service, never by editing existing ones.
    """

    list_display = [
        "id",
        "created_at",
        "type",
        "status",
        "amount_display",
        "booking",
        "gateway_reference",
    ]
    list_filter = ["type", "status", "currency", "created_at"]
    search_fields = [
        "idempotency_key",
        "gateway_reference",
        "gateway_event_id",
        "booking__id",
        "description",
    ]
    readonly_fields = [
        "id",
        "created_at",
        "booking",
        "escrow",
        "customer",
        "provider",
        "type",
        "status",
        "amount_cents",
        "currency",
        "gateway_reference",
        "gateway_event_id",
        "idempotency_key",
        "description",
        "metadata",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at", "-id"]

    fieldsets = (
        (
            "Transaction",
            {
                "fields": ("id", "type", "status", "amount_cents", "currency", "created_at"),
            },
        ),
        (
            "Parties",
            {
                "fields": ("booking", "escrow", "customer", "provider"),
            },
        ),
        (
            "Gateway",
            {
                "fields": ("gateway_reference", "gateway_event_id", "idempotency_key"),
            },
        ),
        (
            "Additional Info",
            {
                "fields": ("description", "metadata"),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: Transaction) -> str:
        return f"${obj.amount_cents / 100:.2f} {obj.currency.upper()}"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False
