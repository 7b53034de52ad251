"""
DRF views for the disputes app.

Endpoints:
    POST /api/v1/disputes/                      - File a dispute
    GET  /api/v1/disputes/{id}/                 - Dispute status
    POST /api/v1/disputes/{id}/evidence/        - Submit evidence
    POST /api/v1/disputes/{id}/decision/        - Manual decision (staff)

Security:
    - Filing, evidence and status are limited to the booking's parties
      (status is also visible to staff)
    - Decisions require a staff account
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.views import error_response

from disputes.exceptions import EvidenceWindowClosed
from disputes.serializers import (
    DisputeCreateSerializer,
    DisputeEvidenceSerializer,
    DisputeStatusSerializer,
    EvidenceCreateSerializer,
    ManualDecisionSerializer,
)
from disputes.services import DisputeWorkflow

logger = logging.getLogger(__name__)


def _status_response(workflow: DisputeWorkflow, dispute_id, user, http_status=status.HTTP_200_OK):
    data = workflow.get_dispute_status(dispute_id, requested_by=user)
    return Response(DisputeStatusSerializer(data).data, status=http_status)


class DisputeCreateView(APIView):
    """POST /api/v1/disputes/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_dispute",
        summary="File a dispute",
        description=(
            "Opens a dispute on a booking whose funds are held in escrow. "
            "The escrow is frozen and both parties may submit evidence until "
            "the returned evidence_deadline."
        ),
        request=DisputeCreateSerializer,
        responses={
            201: DisputeStatusSerializer,
            400: OpenApiResponse(description="Invalid input or booking not eligible"),
            403: OpenApiResponse(description="Not a party to this booking"),
            409: OpenApiResponse(description="Booking already has an open dispute"),
        },
        tags=["Disputes"],
    )
    def post(self, request):
        serializer = DisputeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        workflow = DisputeWorkflow()
        try:
            dispute = workflow.initiate_dispute(
                data["booking_id"],
                request.user,
                reason=data["reason"],
                description=data["description"],
                amount_cents=data.get("amount_cents"),
            )
            return _status_response(workflow, dispute.id, request.user, status.HTTP_201_CREATED)
        except BaseApplicationError as e:
            return error_response(e)


class DisputeDetailView(APIView):
    """GET /api/v1/disputes/{dispute_id}/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_dispute_status",
        summary="Get dispute status",
        responses={
            200: DisputeStatusSerializer,
            403: OpenApiResponse(description="Not a party to this booking"),
            404: OpenApiResponse(description="Dispute not found"),
        },
        tags=["Disputes"],
    )
    def get(self, request, dispute_id):
        try:
            return _status_response(DisputeWorkflow(), dispute_id, request.user)
        except BaseApplicationError as e:
            return error_response(e)


class DisputeEvidenceView(APIView):
    """POST /api/v1/disputes/{dispute_id}/evidence/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="submit_dispute_evidence",
        summary="Submit evidence",
        description=(
            "Attaches evidence while the dispute is collecting it. Evidence "
            "arriving after collection ended is not stored (409)."
        ),
        request=EvidenceCreateSerializer,
        responses={
            201: DisputeEvidenceSerializer,
            403: OpenApiResponse(description="Not a party to this booking"),
            404: OpenApiResponse(description="Dispute not found"),
            409: OpenApiResponse(description="Evidence window closed"),
        },
        tags=["Disputes"],
    )
    def post(self, request, dispute_id):
        serializer = EvidenceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            evidence = DisputeWorkflow().submit_evidence(
                dispute_id,
                request.user,
                evidence_type=data["evidence_type"],
                description=data["description"],
                file_url=data["file_url"],
            )
            if evidence is None:
                raise EvidenceWindowClosed(
                    "Dispute is no longer collecting evidence",
                    details={"dispute_id": str(dispute_id)},
                )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(DisputeEvidenceSerializer(evidence).data, status=status.HTTP_201_CREATED)


class DisputeDecisionView(APIView):
    """POST /api/v1/disputes/{dispute_id}/decision/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="submit_dispute_decision",
        summary="Submit manual decision",
        description=(
            "Resolves a dispute in manual review and settles the escrow. "
            "Send expected_version to reject decisions made on stale data."
        ),
        request=ManualDecisionSerializer,
        responses={
            200: DisputeStatusSerializer,
            400: OpenApiResponse(description="Dispute not in manual review"),
            409: OpenApiResponse(description="Stale version or settlement conflict"),
            502: OpenApiResponse(description="Gateway failed; settlement will be retried"),
        },
        tags=["Disputes"],
    )
    def post(self, request, dispute_id):
        serializer = ManualDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        workflow = DisputeWorkflow()
        try:
            workflow.submit_manual_decision(
                dispute_id,
                data["outcome"],
                decided_by=request.user,
                notes=data["notes"],
                expected_version=data.get("expected_version"),
            )
            return _status_response(workflow, dispute_id, request.user)
        except BaseApplicationError as e:
            logger.warning(
                "Manual decision rejected",
                extra={"dispute_id": str(dispute_id), "error_code": e.error_code},
            )
            return error_response(e)
