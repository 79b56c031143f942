"""
Dispute views and API endpoints.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from apps.disputes.serializers import (
    DisputeListSerializer,
    DisputeDetailSerializer,
    CreateDisputeSerializer,
    ResolveDisputeSerializer,
)
from apps.disputes.services.dispute_service import DisputeService
from common.exceptions import MarketplaceError, error_response
from common.permissions import IsNotBanned, IsAdminRole
from common.services.logging_service import LoggingService


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsNotBanned])
def dispute_list(request):
    """
    List disputes.
    Users see disputes on their orders, admins see all.
    """
    try:
        disputes = DisputeService.list_disputes(
            request.user,
            status=request.query_params.get('status')
        )
    except MarketplaceError as e:
        return error_response(e)

    return Response(DisputeListSerializer(disputes, many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def create_dispute(request, order_id):
    """
    Open a dispute on an ACTIVE order.
    Only order participants can open disputes.
    """
    serializer = CreateDisputeSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        dispute = DisputeService.open_dispute(
            order_id,
            request.user,
            reason=serializer.validated_data['reason'],
            evidence=serializer.validated_data.get('evidence', ''),
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    return Response(DisputeDetailSerializer(dispute).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsNotBanned])
def dispute_detail(request, pk):
    try:
        dispute = DisputeService.get_dispute(pk, request.user)
    except MarketplaceError as e:
        return error_response(e)

    return Response(DisputeDetailSerializer(dispute).data)


@api_view(['POST'])
@permission_classes([IsAdminRole, IsNotBanned])
def resolve_dispute(request, pk):
    """
    Admin ruling (Admin only).
    RESOLVED refunds the buyer or pays the seller; REJECTED resumes the order.
    """
    serializer = ResolveDisputeSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        dispute = DisputeService.resolve_dispute(
            pk,
            request.user,
            decision=serializer.validated_data['decision'],
            resolution=serializer.validated_data['resolution'],
            refund_buyer=serializer.validated_data['refund_buyer'],
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    return Response(DisputeDetailSerializer(dispute).data)
