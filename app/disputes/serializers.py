"""
DRF serializers for the disputes app.

Input serializers validate request bodies; the workflow enforces every
business rule. DisputeStatusSerializer renders
DisputeWorkflow.get_dispute_status().
"""

from __future__ import annotations

from rest_framework import serializers

from disputes.models import DisputeEvidence
from disputes.state_machines import DisputeReason, EvidenceType
from payments.settlement import Outcome, OutcomeKind


class DisputeCreateSerializer(serializers.Serializer):
    booking_id = serializers.UUIDField()
    reason = serializers.ChoiceField(choices=DisputeReason.choices)
    description = serializers.CharField(allow_blank=True, default="", max_length=5000)
    amount_cents = serializers.IntegerField(
        required=False,
        min_value=1,
        help_text="Disputed amount; defaults to the funds still held",
    )


class EvidenceCreateSerializer(serializers.Serializer):
    evidence_type = serializers.ChoiceField(choices=EvidenceType.choices)
    description = serializers.CharField(allow_blank=True, default="", max_length=5000)
    file_url = serializers.URLField(required=False, allow_blank=True, default="", max_length=500)


class DisputeEvidenceSerializer(serializers.ModelSerializer):
    dispute_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = DisputeEvidence
        fields = [
            "id",
            "dispute_id",
            "party_role",
            "evidence_type",
            "description",
            "file_url",
            "created_at",
        ]
        read_only_fields = fields


class ManualDecisionSerializer(serializers.Serializer):
    """
    A staff decision.

    refund_cents is the customer's share of the disputed amount and only
    applies to split outcomes.
    """

    kind = serializers.ChoiceField(choices=OutcomeKind.choices)
    refund_cents = serializers.IntegerField(required=False, min_value=0, default=0)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    expected_version = serializers.IntegerField(required=False, min_value=1)

    def validate(self, attrs):
        try:
            attrs["outcome"] = Outcome(kind=attrs["kind"], refund_cents=attrs["refund_cents"])
        except ValueError as e:
            raise serializers.ValidationError({"refund_cents": [str(e)]}) from e
        return attrs


class OutcomeSerializer(serializers.Serializer):
    kind = serializers.CharField()
    refund_cents = serializers.IntegerField()


class DisputeStatusSerializer(serializers.Serializer):
    dispute_id = serializers.UUIDField()
    booking_id = serializers.UUIDField()
    status = serializers.CharField()
    reason = serializers.CharField()
    amount_cents = serializers.IntegerField()
    initiator_role = serializers.CharField()
    evidence_deadline = serializers.DateTimeField(allow_null=True)
    time_remaining = serializers.IntegerField(help_text="Seconds left to submit evidence")
    evidence_count = serializers.IntegerField()
    resolution_outcome = OutcomeSerializer(allow_null=True)
    resolution_source = serializers.CharField(allow_null=True)
    resolution_settled = serializers.BooleanField()
    version = serializers.IntegerField()
