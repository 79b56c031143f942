"""
Order serializers.
Handles API input/output for order operations.
"""
from rest_framework import serializers
from apps.orders.models import Order, OrderStateLog, Escrow


class OrderStateLogSerializer(serializers.ModelSerializer):
    """Serializer for order state change logs."""
    changed_by_email = serializers.EmailField(source='changed_by.email', read_only=True, default=None)

    class Meta:
        model = OrderStateLog
        fields = [
            'id', 'from_state', 'to_state', 'changed_by_email',
            'reason', 'created_at'
        ]
        read_only_fields = fields


class EscrowSerializer(serializers.ModelSerializer):
    """Serializer for escrow details."""

    class Meta:
        model = Escrow
        fields = ['id', 'amount', 'currency', 'released', 'released_at', 'created_at']
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Serializer for order list view."""
    buyer_email = serializers.EmailField(source='buyer.email', read_only=True)
    seller_email = serializers.EmailField(source='seller.email', read_only=True)
    listing_title = serializers.CharField(source='listing.title', read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            'id', 'buyer_email', 'seller_email', 'listing_title', 'lane',
            'quantity', 'total_price', 'status', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class OrderDetailSerializer(serializers.ModelSerializer):
    """Serializer for detailed order view."""
    buyer_email = serializers.EmailField(source='buyer.email', read_only=True)
    seller_email = serializers.EmailField(source='seller.email', read_only=True)
    listing_id = serializers.UUIDField(source='listing.id', read_only=True, default=None)
    listing_title = serializers.CharField(source='listing.title', read_only=True, default=None)
    state_logs = OrderStateLogSerializer(many=True, read_only=True)
    escrow = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'buyer_email', 'seller_email', 'listing_id', 'listing_title',
            'lane', 'quantity', 'destination_url', 'tracking_url',
            'total_price', 'platform_fee', 'seller_payout', 'status',
            'created_at', 'updated_at', 'funded_at', 'completed_at',
            'state_logs', 'escrow'
        ]
        read_only_fields = fields

    def get_escrow(self, obj):
        escrow = obj.get_escrow()
        if escrow is None:
            return None
        return EscrowSerializer(escrow).data


class CreateOrderSerializer(serializers.Serializer):
    """Serializer for creating a new order."""
    listing_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    destination_url = serializers.URLField(max_length=500)


class UpdateOrderSerializer(serializers.Serializer):
    """Generic status update."""
    status = serializers.ChoiceField(choices=Order.STATE_CHOICES)
    tracking_url = serializers.URLField(max_length=500, required=False, allow_blank=True)


class ActivateOrderSerializer(serializers.Serializer):
    tracking_url = serializers.URLField(max_length=500, required=False, allow_blank=True)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)
