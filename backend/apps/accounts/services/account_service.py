"""
Admin account moderation.
"""
import logging
from django.db import transaction
from apps.accounts.models import User
from common import permissions
from common.exceptions import ForbiddenError, NotFoundError, ValidationError, persistence_errors
from common.models import AdminActionLog
from common.services.logging_service import LoggingService

logger = logging.getLogger('security')


def _get_user(user_id):
    try:
        return User.objects.select_for_update().get(id=user_id)
    except User.DoesNotExist:
        raise NotFoundError("User not found")
    except (TypeError, ValueError):
        raise ValidationError("User id must be an integer")


class AccountService:

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def ban_user(admin: User, user_id, reason: str = "", ip_address=None):
        """
        Ban a user account.
        Prevents banning superusers and self-banning.

        Returns:
            (user, changed) - changed is False if the user was already banned
        """
        if not permissions.can_access_admin_panel(admin):
            raise ForbiddenError("Only administrators can ban users")

        user = _get_user(user_id)

        if user.is_superuser:
            logger.warning(f"Admin {admin.email} attempted to ban superuser {user.email}")
            raise ForbiddenError("Cannot ban superuser accounts")

        if user.id == admin.id:
            logger.warning(f"Admin {admin.email} attempted to ban themselves")
            raise ForbiddenError("Cannot ban yourself")

        if user.is_banned:
            return user, False

        reason = reason or "No reason provided"
        user.ban(reason=reason)

        LoggingService.log_admin_action(
            admin_user=admin,
            action=AdminActionLog.Action.BAN_USER,
            target_user=user,
            details={'reason': reason},
            ip_address=ip_address
        )

        return user, True

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def unban_user(admin: User, user_id, ip_address=None):
        """Lift a ban. Returns (user, changed)."""
        if not permissions.can_access_admin_panel(admin):
            raise ForbiddenError("Only administrators can unban users")

        user = _get_user(user_id)

        if not user.is_banned:
            return user, False

        user.unban()

        LoggingService.log_admin_action(
            admin_user=admin,
            action=AdminActionLog.Action.UNBAN_USER,
            target_user=user,
            ip_address=ip_address
        )

        return user, True
