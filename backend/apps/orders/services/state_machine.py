"""
Order state machine service.
Every order status change goes through here: validated against the
transition table, applied under a row lock, recorded in OrderStateLog.
"""
import logging
from typing import Optional
from django.db import transaction
from django.utils import timezone
from apps.orders.models import Order, OrderStateLog
from apps.accounts.models import User
from common import permissions
from common.exceptions import ForbiddenError, InvalidStateError, NotFoundError

logger = logging.getLogger('orders')


class StateMachine:
    """
    Order state machine with strict transition rules.
    COMPLETED and CANCELLED are terminal; ACTIVE -> ACTIVE is the
    tracking-URL update and is logged like any other transition.
    """

    # Valid state transitions
    TRANSITIONS = {
        Order.PENDING: [Order.ACTIVE, Order.CANCELLED],
        Order.ACTIVE: [Order.ACTIVE, Order.COMPLETED, Order.DISPUTED, Order.CANCELLED],
        Order.DISPUTED: [Order.ACTIVE, Order.COMPLETED, Order.CANCELLED],
        Order.COMPLETED: [],  # Terminal state
        Order.CANCELLED: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_state: str, to_state: str) -> bool:
        """Check if transition is valid."""
        return to_state in cls.TRANSITIONS.get(from_state, [])

    @classmethod
    @transaction.atomic
    def transition(
        cls,
        order: Order,
        to_state: str,
        user: Optional[User] = None,
        reason: str = "",
        ip_address: Optional[str] = None,
        changes: Optional[dict] = None
    ) -> Order:
        """
        Transition order to new state with validation.

        Re-reads the order under select_for_update, so callers that already
        hold the lock in an outer transaction simply re-enter it.

        Args:
            order: Order instance (only its id is trusted)
            to_state: Target state
            user: User making the change (None for system)
            reason: Reason for transition
            ip_address: IP address of requester
            changes: Extra field values to persist with the new status

        Returns:
            Updated order

        Raises:
            NotFoundError: If the order no longer exists
            InvalidStateError: If transition is invalid
        """
        try:
            locked_order = Order.objects.select_for_update().get(id=order.id)
        except Order.DoesNotExist:
            raise NotFoundError("Order not found")

        if not cls.can_transition(locked_order.status, to_state):
            raise InvalidStateError(
                f"Cannot transition from {locked_order.status} to {to_state}"
            )

        old_state = locked_order.status
        locked_order.status = to_state

        for field, value in (changes or {}).items():
            setattr(locked_order, field, value)

        now = timezone.now()
        if to_state == Order.ACTIVE and locked_order.funded_at is None:
            locked_order.funded_at = now
        elif to_state in Order.TERMINAL_STATES:
            locked_order.completed_at = now

        locked_order.save()

        OrderStateLog.objects.create(
            order=locked_order,
            from_state=old_state,
            to_state=to_state,
            changed_by=user,
            reason=reason,
            ip_address=ip_address
        )

        logger.info(f"Order {locked_order.id}: {old_state} -> {to_state}")

        return locked_order

    @classmethod
    def validate_user_can_transition(
        cls,
        order: Order,
        user: User,
        to_state: str
    ) -> None:
        """
        Validate that user has permission to make this state transition.
        Role rules live in the permission oracle.

        Raises:
            ForbiddenError: If user cannot make this transition
        """
        checks = {
            Order.ACTIVE: permissions.can_activate_order,
            Order.COMPLETED: permissions.can_complete_order,
            Order.CANCELLED: permissions.can_cancel_order,
            Order.DISPUTED: permissions.can_open_dispute,
        }

        check = checks.get(to_state)
        if check is None or not check(user, order):
            raise ForbiddenError(
                f"You do not have permission to move this order to {to_state}"
            )
