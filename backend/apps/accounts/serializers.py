from rest_framework import serializers
from .models import User, SellerProfile, Lane, TrafficType


# ============================
# User Serializer
# ============================

class UserSerializer(serializers.ModelSerializer):
    """Current user's account and marketplace standing."""
    has_seller_profile = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = (
            "id",
            "email",
            "role",
            "lane_access",
            "is_approved",
            "is_banned",
            "has_seller_profile",
            "date_joined",
        )
        read_only_fields = fields

    def get_has_seller_profile(self, obj):
        return SellerProfile.objects.filter(user=obj).exists()


# ============================
# Seller Profile Serializers
# ============================

class SellerProfileSerializer(serializers.ModelSerializer):

    class Meta:
        model = SellerProfile
        fields = (
            "id",
            "display_name",
            "bio",
            "traffic_types",
            "allowed_lanes",
            "compliance_agreed",
            "reputation_clean",
            "reputation_private",
            "created_at",
        )
        read_only_fields = fields


class CreateSellerProfileSerializer(serializers.Serializer):
    display_name = serializers.CharField(min_length=3, max_length=50)
    bio = serializers.CharField(max_length=500, required=False, allow_blank=True)
    traffic_types = serializers.ListField(
        child=serializers.ChoiceField(choices=TrafficType.choices),
        min_length=1
    )
    allowed_lanes = serializers.ListField(
        child=serializers.ChoiceField(choices=Lane.choices),
        min_length=1
    )
    compliance_agreed = serializers.BooleanField()

    def validate_compliance_agreed(self, value):
        if not value:
            raise serializers.ValidationError("You must agree to compliance terms")
        return value


# ============================
# Admin Serializers
# ============================

class ApproveSellerSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    approved = serializers.BooleanField()
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)


class BanUserSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)
