"""
Escrow service - bookkeeping ledger for funds held against an order.
No money moves here: an Escrow row is the record that funds are held.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from apps.orders.models import Order, Escrow
from apps.orders.services.state_machine import StateMachine
from apps.accounts.models import User
from common import permissions
from common.exceptions import (
    AlreadyExistsError,
    AlreadyReleasedError,
    DisputeBlockingError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    clean_amount,
    clean_uuid,
    persistence_errors,
)
from common.models import AdminActionLog
from common.services.logging_service import LoggingService

logger = logging.getLogger('escrow')

CENT = Decimal('0.01')


def _lock_order(order_id) -> Order:
    order_id = clean_uuid(order_id, "Order id")
    try:
        return Order.objects.select_for_update().get(id=order_id)
    except Order.DoesNotExist:
        raise NotFoundError("Order not found")


def _get_escrow(order: Order) -> Escrow:
    escrow = order.get_escrow()
    if escrow is None:
        raise NotFoundError("No escrow exists for this order")
    return escrow


class EscrowService:
    """
    Manages the escrow record for orders.

    Every mutation locks the order row first and re-checks its
    preconditions under that lock, so two requests racing on the same
    order serialize and exactly one of release/refund can win.
    """

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def create_escrow(order_id, amount, currency: Optional[str] = None) -> Escrow:
        """
        Fund a PENDING order and move it to ACTIVE.

        Args:
            order_id: Order to fund
            amount: Amount held (Decimal, positive)
            currency: ISO currency code (default MARKETPLACE_DEFAULT_CURRENCY)

        Returns:
            Created escrow

        Raises:
            NotFoundError: Order does not exist
            AlreadyExistsError: An escrow was already created for the order
            InvalidStateError: Order is no longer PENDING
            ValidationError: Malformed order id, non-numeric or non-positive amount
        """
        amount = clean_amount(amount, "Escrow amount")
        if amount <= 0:
            raise ValidationError("Escrow amount must be positive")

        currency = currency or settings.MARKETPLACE_DEFAULT_CURRENCY

        order = _lock_order(order_id)

        if order.get_escrow() is not None:
            raise AlreadyExistsError("Escrow already exists for this order")

        if order.status != Order.PENDING:
            raise InvalidStateError(
                f"Cannot fund an order in {order.status} state"
            )

        # Unique order_id: a racing insert that slipped past the check lands here
        try:
            with transaction.atomic():
                escrow = Escrow.objects.create(
                    order=order,
                    amount=amount,
                    currency=currency
                )
        except IntegrityError:
            raise AlreadyExistsError("Escrow already exists for this order")

        StateMachine.transition(
            order,
            Order.ACTIVE,
            reason="Escrow funded"
        )

        logger.info(f"Escrow {escrow.id} created for order {order.id}: {amount} {currency}")

        return escrow

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def release_escrow(
        order_id,
        acting_admin: Optional[User] = None,
        user: Optional[User] = None,
        ip_address=None
    ) -> Escrow:
        """
        Release held funds to the seller and complete the order.

        Args:
            order_id: Order whose escrow is released
            acting_admin: Admin forcing the release (None for buyer/system)
            user: Non-admin actor recorded in the state log
            ip_address: Admin IP for the audit log

        Returns:
            Released escrow

        Raises:
            NotFoundError: No order or no escrow
            AlreadyReleasedError: Escrow already released
            DisputeBlockingError: An OPEN dispute exists on the order
        """
        if acting_admin is not None and not permissions.can_access_admin_panel(acting_admin):
            raise ForbiddenError("Only administrators can force an escrow release")

        order = _lock_order(order_id)
        escrow = _get_escrow(order)

        if escrow.released:
            raise AlreadyReleasedError()

        if order.has_open_dispute():
            raise DisputeBlockingError("Cannot release escrow while a dispute is open")

        now = timezone.now()
        updated = Escrow.objects.filter(id=escrow.id, released=False).update(
            released=True,
            released_at=now,
            released_by=acting_admin
        )
        if updated == 0:
            raise AlreadyReleasedError()

        StateMachine.transition(
            order,
            Order.COMPLETED,
            user=acting_admin or user,
            reason="Escrow released",
            ip_address=ip_address
        )

        if acting_admin is not None:
            LoggingService.log_admin_action(
                admin_user=acting_admin,
                action=AdminActionLog.Action.RELEASE_ESCROW,
                target_user=order.seller,
                details={'order_id': str(order.id), 'amount': str(escrow.amount)},
                ip_address=ip_address
            )

        logger.info(f"Escrow {escrow.id} released for order {order.id}")

        escrow.refresh_from_db()
        return escrow

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def refund_escrow(order_id, user: Optional[User] = None, ip_address=None) -> None:
        """
        Refund the buyer: delete the escrow record and cancel the order.

        Raises:
            NotFoundError: No order or no escrow
            AlreadyReleasedError: Escrow already released to the seller
            DisputeBlockingError: An OPEN dispute exists on the order
        """
        order = _lock_order(order_id)
        escrow = _get_escrow(order)

        if escrow.released:
            raise AlreadyReleasedError("Cannot refund a released escrow")

        if order.has_open_dispute():
            raise DisputeBlockingError("Cannot refund escrow while a dispute is open")

        deleted, _ = Escrow.objects.filter(id=escrow.id, released=False).delete()
        if deleted == 0:
            raise AlreadyReleasedError("Cannot refund a released escrow")

        StateMachine.transition(
            order,
            Order.CANCELLED,
            user=user,
            reason="Escrow refunded",
            ip_address=ip_address
        )

        logger.info(f"Escrow refunded for order {order.id}: {escrow.amount} {escrow.currency}")

    @staticmethod
    @persistence_errors
    def get_escrow_status(order_id) -> dict:
        """
        Read-only escrow summary. Status is NONE when the order was never
        funded or was refunded.
        """
        order_id = clean_uuid(order_id, "Order id")
        if not Order.objects.filter(id=order_id).exists():
            raise NotFoundError("Order not found")

        escrow = Escrow.objects.filter(order_id=order_id).first()
        if escrow is None:
            return {
                'order_id': str(order_id),
                'status': 'NONE',
                'amount': None,
                'currency': None,
                'released_at': None,
            }

        return {
            'order_id': str(order_id),
            'status': 'RELEASED' if escrow.released else 'HOLDING',
            'amount': str(escrow.amount),
            'currency': escrow.currency,
            'released_at': escrow.released_at,
        }

    @staticmethod
    def calculate_platform_fee(amount, fee_percent=None) -> Decimal:
        """Platform commission, rounded half-up to cents."""
        if fee_percent is None:
            fee_percent = settings.MARKETPLACE_PLATFORM_FEE_PERCENT
        amount = clean_amount(amount)
        fee = amount * Decimal(str(fee_percent)) / Decimal('100')
        return fee.quantize(CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    def calculate_seller_payout(amount, fee_percent=None) -> Decimal:
        """Amount minus platform fee; the two always sum to the amount."""
        amount = clean_amount(amount).quantize(CENT, rounding=ROUND_HALF_UP)
        return amount - EscrowService.calculate_platform_fee(amount, fee_percent)
