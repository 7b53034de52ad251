"""
Dispute admin configuration.

Disputes are read-only here: decisions go through the decision endpoint
so the escrow is settled along with the status change.
"""

from django.contrib import admin

from disputes.models import Dispute, DisputeEvidence


class DisputeEvidenceInline(admin.TabularInline):
    model = DisputeEvidence
    extra = 0
    can_delete = False
    fields = ["created_at", "party_role", "evidence_type", "description", "file_url"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "booking",
        "initiator_role",
        "reason",
        "amount_cents",
        "status",
        "evidence_deadline",
        "resolution_kind",
        "resolution_settled",
        "created_at",
    ]
    list_filter = ["status", "reason", "resolution_kind", "resolution_settled", "created_at"]
    search_fields = ["id", "booking__id", "initiated_by__email"]
    readonly_fields = [field.name for field in Dispute._meta.fields]
    inlines = [DisputeEvidenceInline]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "booking", "status", "version")}),
        (
            "Filing",
            {"fields": ("initiated_by", "initiator_role", "reason", "description", "amount_cents")},
        ),
        ("Evidence", {"fields": ("evidence_deadline", "review_started_at")}),
        (
            "Resolution",
            {
                "fields": (
                    "resolution_kind",
                    "resolution_refund_cents",
                    "resolution_source",
                    "resolution_notes",
                    "resolved_by",
                    "resolved_at",
                ),
            },
        ),
        (
            "Settlement",
            {
                "fields": (
                    "resolution_settled",
                    "settled_at",
                    "settlement_attempts",
                    "last_settlement_error",
                ),
                "classes": ("collapse",),
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
