"""
Order views and API endpoints.
Views only translate requests into OrderService/EscrowService calls and
MarketplaceError into responses.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from apps.orders.serializers import (
    OrderListSerializer,
    OrderDetailSerializer,
    CreateOrderSerializer,
    UpdateOrderSerializer,
    ActivateOrderSerializer,
    CancelOrderSerializer,
)
from apps.orders.services.order_service import OrderService, OrderTransitionResult
from apps.orders.services.escrow_service import EscrowService
from common.exceptions import MarketplaceError, error_response
from common.permissions import IsNotBanned, IsAdminRole
from common.services.logging_service import LoggingService


def _transition_response(result: OrderTransitionResult):
    data = OrderDetailSerializer(result.order).data
    data['message'] = result.message
    data['warnings'] = result.warnings
    return Response(data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def order_list_create(request):
    """
    GET: orders the user takes part in (optional ?status= filter).
    POST: purchase a listing; the order comes back funded (ACTIVE).
    """
    if request.method == 'GET':
        try:
            orders = OrderService.list_orders(
                request.user,
                status=request.query_params.get('status')
            )
        except MarketplaceError as e:
            return error_response(e)
        return Response(OrderListSerializer(orders, many=True).data)

    serializer = CreateOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = OrderService.create_order(
            buyer=request.user,
            listing_id=serializer.validated_data['listing_id'],
            quantity=serializer.validated_data['quantity'],
            destination_url=serializer.validated_data['destination_url'],
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    return Response(OrderDetailSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsNotBanned])
def order_detail(request, pk):
    """
    GET: order details for participants and admins.
    PATCH: generic status update ({"status", "tracking_url"}).
    """
    if request.method == 'GET':
        try:
            order = OrderService.get_order(pk, request.user)
        except MarketplaceError as e:
            return error_response(e)
        return Response(OrderDetailSerializer(order).data)

    serializer = UpdateOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = OrderService.update_order(
            pk,
            request.user,
            serializer.validated_data['status'],
            tracking_url=serializer.validated_data.get('tracking_url') or None,
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    return _transition_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def activate_order(request, pk):
    """
    Seller starts delivery.
    Transitions: PENDING/ACTIVE -> ACTIVE with a tracking URL
    """
    serializer = ActivateOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = OrderService.activate_order(
            pk,
            request.user,
            tracking_url=serializer.validated_data.get('tracking_url') or None,
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    return Response(OrderDetailSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def complete_order(request, pk):
    """
    Buyer confirms delivery.
    Transitions: ACTIVE -> COMPLETED, releases escrow to the seller.
    """
    try:
        result = OrderService.complete_order(
            pk,
            request.user,
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    return _transition_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def cancel_order(request, pk):
    """
    Cancel order and refund escrow if held.
    """
    serializer = CancelOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = OrderService.cancel_order(
            pk,
            request.user,
            reason=serializer.validated_data.get('reason', ''),
            ip_address=LoggingService.get_client_ip(request)
        )
    except MarketplaceError as e:
        return error_response(e)

    return Response(OrderDetailSerializer(order).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsNotBanned])
def escrow_status(request, pk):
    """Escrow summary for an order the user can view."""
    try:
        OrderService.get_order(pk, request.user)
        data = EscrowService.get_escrow_status(pk)
    except MarketplaceError as e:
        return error_response(e)

    return Response(data)


@api_view(['POST'])
@permission_classes([IsAdminRole, IsNotBanned])
def release_escrow(request, pk):
    """
    Admin force-release of escrow (Admin only).
    Blocked while a dispute is open.
    """
    try:
        EscrowService.release_escrow(
            pk,
            acting_admin=request.user,
            ip_address=LoggingService.get_client_ip(request)
        )
        order = OrderService.get_order(pk, request.user)
    except MarketplaceError as e:
        return error_response(e)

    return Response(OrderDetailSerializer(order).data)
