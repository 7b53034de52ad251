"""
URL configuration for the escrow marketplace service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/payments/              - Payment endpoints
        webhooks/stripe/           - Stripe webhook endpoint (POST)
        bookings/{id}/escrow/      - Escrow summary and ledger (GET)
    /api/v1/disputes/              - Dispute endpoints
        (root)                     - File a dispute (POST)
        {id}/                      - Dispute status (GET)
        {id}/evidence/             - Submit evidence (POST)
        {id}/decision/             - Manual review decision (POST, staff)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("payments/", include("payments.urls")),
    path("disputes/", include("disputes.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Escrow Marketplace Admin"
admin.site.site_title = "Escrow Admin"
admin.site.index_title = "Payments and disputes"
