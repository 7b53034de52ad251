"""
DRF views for the payments app.

Endpoints:
    GET /api/v1/payments/bookings/{booking_id}/escrow/ - Escrow summary

The gateway webhook endpoint lives in payments.webhooks.views.

Security:
    - Only the booking's customer, its provider and staff may read an escrow
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError, PermissionDeniedError
from core.views import error_response

from payments.ledger.services import LedgerService
from payments.serializers import EscrowSummarySerializer
from payments.services import EscrowService

logger = logging.getLogger(__name__)


class EscrowSummaryView(APIView):
    """
    Escrow state, remaining balance and ledger rows for one booking.

    GET /api/v1/payments/bookings/{booking_id}/escrow/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_booking_escrow",
        summary="Get escrow summary",
        description=(
            "Returns the escrow of a booking with its remaining balance and "
            "its ledger transactions in the order they were recorded."
        ),
        responses={
            200: EscrowSummarySerializer,
            403: OpenApiResponse(description="Not a party to this booking"),
            404: OpenApiResponse(description="Booking has no escrow"),
        },
        tags=["Payments"],
    )
    def get(self, request, booking_id):
        try:
            escrow = EscrowService.get_escrow(booking_id)
            if not (request.user.is_staff or escrow.booking.is_party(request.user)):
                raise PermissionDeniedError(
                    "Only the booking's parties can view its escrow",
                    details={"booking_id": str(booking_id)},
                )
        except BaseApplicationError as e:
            return error_response(e)

        serializer = EscrowSummarySerializer(
            escrow,
            context={"remaining_cents": LedgerService.remaining_balance(escrow)},
        )
        return Response(serializer.data)
