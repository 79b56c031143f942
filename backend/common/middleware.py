"""
Custom middleware for security and logging.
"""
import logging
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger('security')


class BannedUserMiddleware(MiddlewareMixin):
    """
    Middleware to block banned users from accessing any authenticated endpoint.
    This provides a global ban enforcement layer on top of IsNotBanned.
    """

    def process_request(self, request):
        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated:
            return None

        if user.is_banned:
            logger.warning(
                f"Banned user attempted access: {user.email} "
                f"(User ID: {user.id}, Path: {request.path})"
            )

            return JsonResponse(
                {
                    'error': user.ban_reason or 'Your account has been banned. Please contact support.',
                    'code': 'banned',
                    'retryable': False,
                },
                status=403
            )

        return None
