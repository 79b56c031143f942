"""
Marketplace error taxonomy.
Every business-rule rejection raised by the service layer is one of these,
so the request layer can map it to an HTTP status without guessing.
"""
import functools
import logging
import uuid
from decimal import Decimal, InvalidOperation

from django.db import DatabaseError
from rest_framework.response import Response

logger = logging.getLogger('orders')


class MarketplaceError(Exception):
    """
    Base class for expected, caller-recoverable errors.

    Attributes:
        status_code: HTTP-equivalent status for the request layer
        code: Stable machine-readable reason (which precondition failed)
        retryable: Whether the caller may retry the same request as-is
    """
    status_code = 400
    default_code = 'error'
    default_detail = 'Request could not be processed'
    retryable = False

    def __init__(self, detail=None, code=None):
        self.detail = detail or self.default_detail
        self.code = code or self.default_code
        super().__init__(self.detail)

    def as_dict(self):
        return {
            'error': self.detail,
            'code': self.code,
            'retryable': self.retryable,
        }


class ValidationError(MarketplaceError):
    """Malformed or out-of-range input. Raised before any write."""
    status_code = 400
    default_code = 'validation_error'
    default_detail = 'Validation failed'


class AuthorizationError(MarketplaceError):
    status_code = 403
    default_code = 'forbidden'
    default_detail = 'You do not have permission to perform this action'


class UnauthorizedError(AuthorizationError):
    status_code = 401
    default_code = 'unauthorized'
    default_detail = 'Authentication required'


class ForbiddenError(AuthorizationError):
    pass


class NotFoundError(MarketplaceError):
    status_code = 404
    default_code = 'not_found'
    default_detail = 'Not found'


class ConflictError(MarketplaceError):
    """Current state already satisfies or precludes the request."""
    status_code = 409
    default_code = 'conflict'
    default_detail = 'Conflicting state'


class AlreadyExistsError(ConflictError):
    default_code = 'already_exists'
    default_detail = 'Resource already exists'


class AlreadyReleasedError(ConflictError):
    default_code = 'already_released'
    default_detail = 'Escrow already released'


class InvalidStateError(MarketplaceError):
    """Operation is not valid for the current lifecycle state."""
    status_code = 400
    default_code = 'invalid_state'
    default_detail = 'Operation not allowed in the current state'


class DisputeBlockingError(InvalidStateError):
    default_code = 'dispute_blocking'
    default_detail = 'Cannot proceed while a dispute is open'


class PersistenceError(MarketplaceError):
    """
    Unexpected storage failure (connection loss, timeout, lock timeout).
    Not a business-rule rejection; safe to retry.
    """
    status_code = 503
    default_code = 'persistence_error'
    default_detail = 'Storage temporarily unavailable, please retry'
    retryable = True


def persistence_errors(func):
    """
    Translate raw database failures into PersistenceError.
    Business errors raised inside pass through unchanged.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DatabaseError as e:
            logger.exception(f"Persistence failure in {func.__qualname__}: {e}")
            raise PersistenceError() from e
    return wrapper


def clean_uuid(value, field_name="id"):
    """Coerce an identifier to UUID, rejecting malformed input as ValidationError."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (AttributeError, TypeError, ValueError):
        raise ValidationError(f"{field_name} is not a valid identifier")


def clean_amount(value, field_name="Amount"):
    """Coerce a money amount to a finite Decimal."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return amount


def error_response(error):
    """Render a MarketplaceError for the request layer."""
    return Response(error.as_dict(), status=error.status_code)
