"""
Listing views and API endpoints.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from apps.marketplace.serializers import (
    ListingSerializer,
    CreateListingSerializer,
    UpdateListingSerializer,
)
from apps.marketplace.services.listing_service import ListingService
from common.exceptions import MarketplaceError, error_response
from common.permissions import IsNotBanned


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticatedOrReadOnly, IsNotBanned])
def listing_list_create(request):
    """
    GET: listings in lanes the viewer can access (public).
    POST: create a listing (approved sellers).
    """
    if request.method == 'GET':
        try:
            listings = ListingService.list_listings(request.user)
        except MarketplaceError as e:
            return error_response(e)
        return Response(ListingSerializer(listings, many=True).data)

    serializer = CreateListingSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        listing = ListingService.create_listing(request.user, **serializer.validated_data)
    except MarketplaceError as e:
        return error_response(e)

    return Response(ListingSerializer(listing).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticatedOrReadOnly, IsNotBanned])
def listing_detail(request, pk):
    """
    GET: listing details (PRIVATE lane needs access).
    PATCH: update (owner or admin).
    DELETE: delete unless open orders reference it.
    """
    if request.method == 'GET':
        try:
            listing = ListingService.get_listing(pk, request.user)
        except MarketplaceError as e:
            return error_response(e)
        return Response(ListingSerializer(listing).data)

    if request.method == 'DELETE':
        try:
            ListingService.delete_listing(pk, request.user)
        except MarketplaceError as e:
            return error_response(e)
        return Response(
            {'message': 'Listing deleted successfully'},
            status=status.HTTP_200_OK
        )

    serializer = UpdateListingSerializer(data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        listing = ListingService.update_listing(pk, request.user, **serializer.validated_data)
    except MarketplaceError as e:
        return error_response(e)

    return Response(ListingSerializer(listing).data)
