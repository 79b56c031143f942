from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from .serializers import (
    UserSerializer,
    SellerProfileSerializer,
    CreateSellerProfileSerializer,
    ApproveSellerSerializer,
    BanUserSerializer,
)
from .services.account_service import AccountService
from .services.seller_service import SellerService
from common.exceptions import MarketplaceError, error_response
from common.permissions import IsNotBanned, IsAdminRole
from common.services.logging_service import LoggingService


# ============================
# My Profile
# ============================

@api_view(["GET"])
@permission_classes([IsAuthenticated, IsNotBanned])
def me_view(request):
    """
    Get current user's account information.
    """
    serializer = UserSerializer(request.user)
    return Response(serializer.data)


# ============================
# Seller Profile
# ============================

@api_view(["POST"])
@permission_classes([IsAuthenticated, IsNotBanned])
def create_seller_profile(request):
    """
    Create the seller profile (SELLER/BOTH only).
    The seller then waits for admin approval.
    """
    serializer = CreateSellerProfileSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        profile = SellerService.create_profile(request.user, **serializer.validated_data)
    except MarketplaceError as e:
        return error_response(e)

    return Response(
        {
            "message": "Seller profile created successfully. Awaiting admin approval.",
            "seller_profile": SellerProfileSerializer(profile).data,
        },
        status=status.HTTP_201_CREATED
    )


# ============================
# Approve Seller (ADMIN ONLY)
# ============================

@api_view(["POST"])
@permission_classes([IsAdminRole, IsNotBanned])
def approve_seller(request):
    """
    Approve or revoke a seller (Admin only).
    """
    serializer = ApproveSellerSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    approved = serializer.validated_data["approved"]

    try:
        user = SellerService.approve_seller(
            request.user,
            serializer.validated_data["user_id"],
            approved,
            notes=serializer.validated_data.get("notes", ""),
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    message = (
        "Seller approved successfully. They can now create listings."
        if approved else
        "Seller approval revoked. Their listings have been deactivated."
    )
    return Response({"message": message, "user": UserSerializer(user).data})


# ============================
# Ban User (ADMIN ONLY)
# ============================

@api_view(["POST"])
@permission_classes([IsAdminRole, IsNotBanned])
def ban_user(request, user_id):
    """
    Ban a user account (Admin only).
    Prevents banning superusers and self-banning.
    """
    serializer = BanUserSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        user, changed = AccountService.ban_user(
            request.user,
            user_id,
            reason=serializer.validated_data.get("reason", ""),
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    if not changed:
        return Response({"message": "User is already banned"}, status=status.HTTP_200_OK)

    return Response({"message": "User banned successfully"}, status=status.HTTP_200_OK)


# ============================
# Unban User (ADMIN ONLY)
# ============================

@api_view(["POST"])
@permission_classes([IsAdminRole, IsNotBanned])
def unban_user(request, user_id):
    """
    Unban a user account (Admin only).
    """
    try:
        user, changed = AccountService.unban_user(
            request.user,
            user_id,
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    if not changed:
        return Response({"message": "User is not banned"}, status=status.HTTP_200_OK)

    return Response({"message": "User unbanned successfully"}, status=status.HTTP_200_OK)
