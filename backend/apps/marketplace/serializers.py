"""
Marketplace serializers.
"""
from decimal import Decimal
from rest_framework import serializers
from apps.marketplace.models import Listing
from apps.accounts.models import Lane, TrafficType


class ListingSerializer(serializers.ModelSerializer):
    """Listing output. Seller email is not exposed."""
    seller_display_name = serializers.CharField(source='seller.display_name', read_only=True)
    seller_user_id = serializers.IntegerField(source='seller.user_id', read_only=True)

    class Meta:
        model = Listing
        fields = [
            'id', 'seller_display_name', 'seller_user_id', 'title',
            'description', 'lane', 'traffic_type', 'price', 'min_order',
            'max_daily', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class CreateListingSerializer(serializers.Serializer):
    lane = serializers.ChoiceField(choices=Lane.choices)
    traffic_type = serializers.ChoiceField(choices=TrafficType.choices)
    title = serializers.CharField(min_length=10, max_length=100)
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    price = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal('0.01'),
        max_value=Decimal('10000')
    )
    min_order = serializers.IntegerField(min_value=100)
    max_daily = serializers.IntegerField(min_value=1000)

    def validate(self, attrs):
        if attrs['min_order'] > attrs['max_daily']:
            raise serializers.ValidationError(
                "Minimum order cannot exceed maximum daily limit"
            )
        return attrs


class UpdateListingSerializer(serializers.Serializer):
    """Partial update; min_order <= max_daily is checked by the service."""
    title = serializers.CharField(min_length=10, max_length=100, required=False)
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    price = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal('0.01'),
        max_value=Decimal('10000'),
        required=False
    )
    min_order = serializers.IntegerField(min_value=100, required=False)
    max_daily = serializers.IntegerField(min_value=1000, required=False)
    is_active = serializers.BooleanField(required=False)
