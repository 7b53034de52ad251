"""
URL configuration for the disputes app.

Routes:
    - POST / - File a dispute
    - GET /{dispute_id}/ - Dispute status
    - POST /{dispute_id}/evidence/ - Submit evidence
    - POST /{dispute_id}/decision/ - Manual decision (staff)

All routes are prefixed with /api/v1/disputes/ when included in the main URLconf.
"""

from django.urls import path

from disputes.views import (
    DisputeCreateView,
    DisputeDecisionView,
    DisputeDetailView,
    DisputeEvidenceView,
)

app_name = "disputes"

urlpatterns = [
    path("", DisputeCreateView.as_view(), name="dispute_create"),
    path("<uuid:dispute_id>/", DisputeDetailView.as_view(), name="dispute_detail"),
    path(
        "<uuid:dispute_id>/evidence/",
        DisputeEvidenceView.as_view(),
        name="dispute_evidence",
    ),
    path(
        "<uuid:dispute_id>/decision/",
        DisputeDecisionView.as_view(),
        name="dispute_decision",
    ),
]
