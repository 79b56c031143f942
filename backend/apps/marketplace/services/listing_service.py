"""
Listing directory service.
Handles listing lookup, creation, updates and deletion with lane and
ownership checks.
"""
import logging
from decimal import Decimal
from typing import Optional
from django.db import transaction
from django.db.models import Q
from apps.marketplace.models import Listing
from apps.accounts.models import User, Lane, TrafficType
from apps.orders.models import Order
from common import permissions
from common.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    clean_amount,
    clean_uuid,
    persistence_errors,
)

logger = logging.getLogger('orders')

MAX_PRICE = Decimal('10000')
MIN_ORDER_FLOOR = 100
MAX_DAILY_FLOOR = 1000

EDITABLE_FIELDS = ('title', 'description', 'price', 'min_order', 'max_daily', 'is_active')


def _clean_price(value) -> Decimal:
    price = clean_amount(value, "Price")
    if price <= 0:
        raise ValidationError("Price must be positive")
    if price > MAX_PRICE:
        raise ValidationError("Price cannot exceed $10,000")
    return price.quantize(Decimal('0.01'))


def _clean_int(value, field_name, floor) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer")
    if value < floor:
        raise ValidationError(f"{field_name} must be at least {floor}")
    return value


def _clean_title(value) -> str:
    value = (value or '').strip()
    if not 10 <= len(value) <= 100:
        raise ValidationError("Title must be between 10 and 100 characters")
    return value


def _clean_description(value) -> str:
    value = value or ''
    if len(value) > 1000:
        raise ValidationError("Description must be at most 1000 characters")
    return value


class ListingService:
    """
    Service for marketplace listings.
    Orders read listings through get_listing; they never own them.
    """

    @staticmethod
    @persistence_errors
    def get_listing(listing_id, user: Optional[User] = None) -> Listing:
        """
        Fetch a listing the viewer is allowed to see.
        PRIVATE listings need PRIVATE lane access; CLEAN ones are public.
        """
        listing_id = clean_uuid(listing_id, "Listing id")
        listing = (
            Listing.objects
            .select_related('seller__user')
            .filter(id=listing_id)
            .first()
        )
        if listing is None:
            raise NotFoundError("Listing not found")

        if listing.lane != Lane.CLEAN:
            if user is None or not user.is_authenticated or not permissions.can_access_lane(user, listing.lane):
                raise ForbiddenError("You do not have access to this listing")

        return listing

    @staticmethod
    @persistence_errors
    def list_listings(user: Optional[User] = None):
        """
        Listings visible to the viewer: lanes they can access, active
        listings plus the seller's own inactive ones.
        """
        authenticated = user is not None and user.is_authenticated

        lanes = [Lane.CLEAN]
        if authenticated and permissions.can_access_lane(user, Lane.PRIVATE):
            lanes.append(Lane.PRIVATE)

        queryset = Listing.objects.select_related('seller__user').filter(lane__in=lanes)

        if authenticated and user.is_admin and not user.is_banned:
            return queryset

        if authenticated:
            return queryset.filter(Q(is_active=True) | Q(seller__user=user))
        return queryset.filter(is_active=True)

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def create_listing(
        user: User,
        lane: str,
        traffic_type: str,
        title: str,
        price,
        min_order: int,
        max_daily: int,
        description: str = ""
    ) -> Listing:
        """
        Create a listing for an approved seller.

        Security:
        - Seller must be approved and have a profile
        - Lane must be in the profile's allowed lanes
        - Traffic type must be one the seller supports
        """
        if not permissions.can_create_listing(user):
            raise ForbiddenError("You must be an approved seller to create listings")

        if lane not in Lane.values:
            raise ValidationError(f"Unknown lane: {lane}")
        if traffic_type not in TrafficType.values:
            raise ValidationError(f"Unknown traffic type: {traffic_type}")

        title = _clean_title(title)
        description = _clean_description(description)
        price = _clean_price(price)
        min_order = _clean_int(min_order, "Minimum order", MIN_ORDER_FLOOR)
        max_daily = _clean_int(max_daily, "Maximum daily", MAX_DAILY_FLOOR)

        profile = getattr(user, 'seller_profile', None)
        if profile is None:
            raise NotFoundError("Seller profile not found")

        if not profile.allows_lane(lane):
            raise ForbiddenError(f"You don't have access to the {lane} lane")

        if not profile.supports_traffic_type(traffic_type):
            raise ForbiddenError(f"You don't support {traffic_type} traffic type")

        if min_order > max_daily:
            raise ValidationError("Minimum order cannot exceed maximum daily limit")

        listing = Listing.objects.create(
            seller=profile,
            lane=lane,
            traffic_type=traffic_type,
            title=title,
            description=description,
            price=price,
            min_order=min_order,
            max_daily=max_daily,
            is_active=True
        )

        logger.info(f"Listing {listing.id} created by {user.email}")

        return listing

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def update_listing(listing_id, user: User, **changes) -> Listing:
        """
        Update a listing (owner or admin).
        min_order <= max_daily is re-checked against the merged values.
        """
        listing_id = clean_uuid(listing_id, "Listing id")
        try:
            listing = Listing.objects.select_for_update().select_related('seller').get(id=listing_id)
        except Listing.DoesNotExist:
            raise NotFoundError("Listing not found")

        if not permissions.can_edit_listing(user, listing):
            raise ForbiddenError("You do not have permission to edit this listing")

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        if 'title' in changes:
            listing.title = _clean_title(changes['title'])
        if 'description' in changes:
            listing.description = _clean_description(changes['description'])
        if 'price' in changes:
            listing.price = _clean_price(changes['price'])
        if 'min_order' in changes:
            listing.min_order = _clean_int(changes['min_order'], "Minimum order", MIN_ORDER_FLOOR)
        if 'max_daily' in changes:
            listing.max_daily = _clean_int(changes['max_daily'], "Maximum daily", MAX_DAILY_FLOOR)
        if 'is_active' in changes:
            listing.is_active = bool(changes['is_active'])

        if listing.min_order > listing.max_daily:
            raise ValidationError("Minimum order cannot exceed maximum daily limit")

        listing.save()

        return listing

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def delete_listing(listing_id, user: User) -> None:
        """
        Delete a listing. Blocked while any PENDING, ACTIVE or DISPUTED
        order references it; finished orders keep their audit row with
        the listing reference cleared.
        """
        listing_id = clean_uuid(listing_id, "Listing id")
        try:
            listing = Listing.objects.select_for_update().select_related('seller').get(id=listing_id)
        except Listing.DoesNotExist:
            raise NotFoundError("Listing not found")

        if not permissions.can_edit_listing(user, listing):
            raise ForbiddenError("You do not have permission to delete this listing")

        if Order.objects.filter(listing=listing, status__in=Order.LIVE_STATES).exists():
            raise InvalidStateError(
                "Cannot delete listing with open orders. Please deactivate instead."
            )

        listing.delete()

        logger.info(f"Listing {listing_id} deleted by {user.email}")
