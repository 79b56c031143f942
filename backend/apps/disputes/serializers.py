"""
Dispute serializers.
"""
from rest_framework import serializers
from apps.disputes.models import Dispute


class DisputeListSerializer(serializers.ModelSerializer):
    """Serializer for dispute list."""
    order_id = serializers.UUIDField(source='order.id', read_only=True)
    opened_by_email = serializers.EmailField(source='opened_by.email', read_only=True, default=None)

    class Meta:
        model = Dispute
        fields = [
            'id', 'order_id', 'opened_by_email', 'reason', 'status',
            'created_at', 'resolved_at'
        ]
        read_only_fields = fields


class DisputeDetailSerializer(serializers.ModelSerializer):
    """Serializer for dispute details."""
    order_id = serializers.UUIDField(source='order.id', read_only=True)
    order_status = serializers.CharField(source='order.status', read_only=True)
    opened_by_email = serializers.EmailField(source='opened_by.email', read_only=True, default=None)
    resolved_by_email = serializers.EmailField(source='resolved_by.email', read_only=True, default=None)

    class Meta:
        model = Dispute
        fields = [
            'id', 'order_id', 'order_status', 'opened_by_email', 'reason',
            'evidence', 'status', 'resolution', 'refund_buyer',
            'resolved_by_email', 'created_at', 'updated_at', 'resolved_at'
        ]
        read_only_fields = fields


class CreateDisputeSerializer(serializers.Serializer):
    """Serializer for opening a dispute."""
    reason = serializers.CharField(min_length=20, max_length=1000)
    evidence = serializers.CharField(max_length=2000, required=False, allow_blank=True)


class ResolveDisputeSerializer(serializers.Serializer):
    """Serializer for admin rulings."""
    decision = serializers.ChoiceField(choices=Dispute.TERMINAL_STATES)
    resolution = serializers.CharField(min_length=20, max_length=1000)
    refund_buyer = serializers.BooleanField(default=False)
