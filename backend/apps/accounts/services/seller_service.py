"""
Seller onboarding and admin approval.
"""
import logging
from django.db import IntegrityError, transaction
from apps.accounts.models import User, SellerProfile, Lane, TrafficType
from common import permissions
from common.exceptions import (
    AlreadyExistsError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    persistence_errors,
)
from common.models import AdminActionLog
from common.services.logging_service import LoggingService

logger = logging.getLogger('security')


class SellerService:
    """Service for seller profiles and seller approval."""

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def create_profile(
        user: User,
        display_name: str,
        traffic_types,
        allowed_lanes,
        compliance_agreed: bool,
        bio: str = ""
    ) -> SellerProfile:
        """
        Create the seller profile for a SELLER/BOTH user.
        The profile starts unapproved; an admin must approve the seller
        before listings can be created.

        Raises:
            ForbiddenError: Wrong role, banned, or PRIVATE lane without access
            AlreadyExistsError: Profile already exists
            ValidationError: Bad display name, lanes or traffic types
        """
        if user.is_banned:
            raise ForbiddenError("Your account has been banned")

        if not user.is_seller_role:
            raise ForbiddenError(
                "Only users with SELLER or BOTH role can create seller profiles"
            )

        if SellerProfile.objects.filter(user=user).exists():
            raise AlreadyExistsError("Seller profile already exists")

        display_name = (display_name or '').strip()
        if not 3 <= len(display_name) <= 50:
            raise ValidationError("Display name must be between 3 and 50 characters")

        traffic_types = list(dict.fromkeys(traffic_types or []))
        if not traffic_types or not set(traffic_types) <= set(TrafficType.values):
            raise ValidationError("Select at least one valid traffic type")

        allowed_lanes = list(dict.fromkeys(allowed_lanes or []))
        if not allowed_lanes or not set(allowed_lanes) <= set(Lane.values):
            raise ValidationError("Select at least one valid lane")

        if not compliance_agreed:
            raise ValidationError("You must agree to compliance terms")

        if Lane.PRIVATE in allowed_lanes and user.lane_access != Lane.PRIVATE:
            raise ForbiddenError(
                "Your account does not have PRIVATE lane access. Please contact support."
            )

        try:
            with transaction.atomic():
                profile = SellerProfile.objects.create(
                    user=user,
                    display_name=display_name,
                    bio=(bio or '')[:500],
                    traffic_types=traffic_types,
                    allowed_lanes=allowed_lanes,
                    compliance_agreed=True
                )
        except IntegrityError:
            raise AlreadyExistsError("Seller profile already exists")

        logger.info(f"Seller profile created for {user.email}")

        return profile

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def approve_seller(
        admin: User,
        user_id,
        approved: bool,
        notes: str = "",
        ip_address=None
    ) -> User:
        """
        Grant or revoke a seller's right to list traffic.

        Revoking deactivates the seller's listings so no new orders can
        be placed against them.
        """
        if not permissions.can_approve_seller(admin):
            raise ForbiddenError("Only administrators can approve sellers")

        if notes and len(notes) > 500:
            raise ValidationError("Notes must be at most 500 characters")

        try:
            user = User.objects.select_for_update().get(id=user_id)
        except User.DoesNotExist:
            raise NotFoundError("User not found")
        except (TypeError, ValueError):
            raise ValidationError("User id must be an integer")

        if not user.is_seller_role:
            raise ValidationError("User is not a seller")

        profile = SellerProfile.objects.filter(user=user).first()
        if profile is None:
            raise NotFoundError(
                "Seller profile not found. User must create a seller profile first."
            )

        if not profile.compliance_agreed:
            raise ValidationError("Seller has not agreed to compliance terms")

        user.is_approved = approved
        user.save(update_fields=['is_approved', 'updated_at'])

        if not approved:
            profile.listings.filter(is_active=True).update(is_active=False)

        LoggingService.log_admin_action(
            admin_user=admin,
            action=(
                AdminActionLog.Action.APPROVE_SELLER if approved
                else AdminActionLog.Action.REVOKE_SELLER
            ),
            target_user=user,
            details={'notes': notes} if notes else {},
            ip_address=ip_address
        )

        return user
