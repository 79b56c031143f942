"""
Logging service for admin decisions and request metadata.
"""
from common.models import AdminActionLog
import logging

logger = logging.getLogger('security')


class LoggingService:
    """
    Centralized logging for security-relevant admin events.
    """

    @staticmethod
    def get_client_ip(request):
        """Extract client IP from request"""
        if request is None:
            return None
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0].strip()
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip

    @staticmethod
    def log_admin_action(admin_user, action, target_user=None, details=None, ip_address=None):
        """
        Log admin actions (seller approval, ban, dispute ruling, escrow override).

        Runs inside the caller's transaction, so the audit row commits or
        rolls back together with the decision it records.

        Args:
            admin_user: Admin user performing the action
            action: AdminActionLog.Action choice
            target_user: User affected by the action (optional)
            details: Additional details dict (optional)
            ip_address: Admin IP (optional)
        """
        log = AdminActionLog.objects.create(
            admin_user=admin_user,
            action=action,
            target_user=target_user,
            details=details or {},
            ip_address=ip_address
        )

        target_str = f"→ {target_user.email}" if target_user else ""
        logger.warning(f"[ADMIN ACTION] {admin_user.email} {action} {target_str}")

        return log
