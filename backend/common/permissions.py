"""
Permission oracle for the marketplace.

Pure predicates over (actor, resource) snapshots: no writes, no side effects.
Every predicate denies banned actors first, then lets ADMIN through, except
CLEAN lane access which is open to every non-banned user.

The DRF permission classes at the bottom delegate to these predicates so
role checks are not re-implemented in views or services.
"""
from django.core.exceptions import ObjectDoesNotExist
from rest_framework.permissions import BasePermission

ADMIN = 'ADMIN'
SELLER_ROLES = ('SELLER', 'BOTH')
PURCHASE_ROLES = ('BUYER', 'BOTH', 'ADMIN')

CLEAN = 'CLEAN'
PRIVATE = 'PRIVATE'

ORDER_PENDING = 'PENDING'
ORDER_ACTIVE = 'ACTIVE'


def is_authenticated(user):
    return user is not None and user.is_authenticated


def _is_admin(user):
    return user.role == ADMIN


def _has_seller_profile(user):
    try:
        return user.seller_profile is not None
    except ObjectDoesNotExist:
        return False


def _is_participant(user, order):
    return order.buyer_id == user.id or order.seller_id == user.id


# ==================== Lanes & Listings ====================

def can_access_lane(user, lane):
    if user.is_banned:
        return False
    if lane == CLEAN:
        return True
    if _is_admin(user):
        return True
    if lane == PRIVATE:
        return user.lane_access == PRIVATE
    return False


def can_create_listing(user):
    if user.is_banned:
        return False
    if _is_admin(user):
        return True
    return (
        user.role in SELLER_ROLES and
        user.is_approved and
        _has_seller_profile(user)
    )


def can_edit_listing(user, listing):
    if user.is_banned:
        return False
    if _is_admin(user):
        return True
    return listing.seller.user_id == user.id


# ==================== Orders ====================

def can_purchase(user):
    if user.is_banned:
        return False
    return user.role in PURCHASE_ROLES


def can_manage_order(user, order):
    if user.is_banned:
        return False
    if _is_admin(user):
        return True
    return _is_participant(user, order)


def can_view_order(user, order):
    if user.is_banned:
        return False
    if _is_admin(user):
        return True
    return _is_participant(user, order)


def can_activate_order(user, order):
    # Seller only; no admin bypass.
    if user.is_banned:
        return False
    return order.seller_id == user.id


def can_complete_order(user, order):
    if user.is_banned:
        return False
    if _is_admin(user):
        return True
    return order.buyer_id == user.id


def can_cancel_order(user, order):
    """Buyer may cancel only while PENDING; seller may also cancel ACTIVE."""
    if user.is_banned:
        return False
    if _is_admin(user):
        return True
    if order.buyer_id == user.id:
        return order.status == ORDER_PENDING
    if order.seller_id == user.id:
        return order.status in (ORDER_PENDING, ORDER_ACTIVE)
    return False


# ==================== Disputes & Admin ====================

def can_open_dispute(user, order):
    if user.is_banned:
        return False
    if _is_admin(user):
        return True
    return _is_participant(user, order) and order.status == ORDER_ACTIVE


def can_resolve_dispute(user):
    return not user.is_banned and _is_admin(user)


def can_approve_seller(user):
    return not user.is_banned and _is_admin(user)


def can_access_admin_panel(user):
    return not user.is_banned and _is_admin(user)


# ==================== DRF permission classes ====================

class IsNotBanned(BasePermission):
    """
    Permission check to ensure user is not banned.
    This should be used on all authenticated endpoints.
    """
    message = "Your account has been banned. Please contact support."

    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return True  # Let authentication handle this

        return not request.user.is_banned


class IsAdminRole(BasePermission):
    """
    Permission check for marketplace administrators.
    """
    message = "Only administrators can access this resource."

    def has_permission(self, request, view):
        return (
            request.user.is_authenticated and
            request.user.is_active and
            can_access_admin_panel(request.user)
        )


class CanViewOrder(BasePermission):
    """
    Object permission: user must be the order's buyer, seller or an admin.
    """
    message = "You do not have permission to view this order."

    def has_object_permission(self, request, view, obj):
        return can_view_order(request.user, obj)
