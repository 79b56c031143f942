"""
Order service - main business logic for order management.
Orchestrates the state machine, the escrow ledger and listing lookups.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator
from django.db import DatabaseError, transaction
from django.db.models import Q
from apps.orders.models import Order
from apps.orders.services.state_machine import StateMachine
from apps.orders.services.escrow_service import EscrowService
from apps.marketplace.models import Listing
from apps.accounts.models import User
from common import permissions
from common.exceptions import (
    AlreadyReleasedError,
    DisputeBlockingError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    clean_uuid,
    persistence_errors,
)

logger = logging.getLogger('orders')

validate_url = URLValidator(schemes=['http', 'https'])


@dataclass
class OrderTransitionResult:
    """Outcome of a status change; warnings carry tolerated bookkeeping errors."""
    order: Order
    message: str
    warnings: List[str] = field(default_factory=list)


def _check_url(value, field_name):
    if not value:
        raise ValidationError(f"{field_name} is required")
    try:
        validate_url(value)
    except DjangoValidationError:
        raise ValidationError(f"{field_name} must be a valid http(s) URL")


def _lock_order(order_id) -> Order:
    order_id = clean_uuid(order_id, "Order id")
    try:
        return Order.objects.select_for_update().get(id=order_id)
    except Order.DoesNotExist:
        raise NotFoundError("Order not found")


def _check_mutable(order: Order, actor: User) -> None:
    """Participant (or admin) and not terminal, in that order."""
    if not permissions.can_manage_order(actor, order):
        raise ForbiddenError("You do not have permission to modify this order")
    if order.is_terminal:
        raise InvalidStateError(f"Order is {order.status} and can no longer change")


class OrderService:
    """
    Main service for order operations.
    Every mutation runs under a row lock on the order and re-checks its
    preconditions there.
    """

    @classmethod
    @persistence_errors
    def create_order(
        cls,
        buyer: User,
        listing_id,
        quantity: int,
        destination_url: str,
        ip_address: Optional[str] = None
    ) -> Order:
        """
        Create an order against a listing and fund its escrow.

        Security:
        - Buyer must be allowed to purchase and to see the listing's lane
        - Prevents self-purchase
        - Quantity checked against the listing before anything is written

        The listing is row-locked while the order is written, then the
        order is funded. If funding fails the
        order is deleted again before the error propagates, so an order
        never survives without escrow. A failed delete leaves a PENDING
        order with no escrow for cleanup_unfunded_orders.

        Args:
            buyer: User placing the order
            listing_id: Listing being purchased
            quantity: Visitors to deliver
            destination_url: Where traffic is sent

        Returns:
            Funded order (ACTIVE)
        """
        if not permissions.is_authenticated(buyer):
            raise UnauthorizedError()

        if not permissions.can_purchase(buyer):
            raise ForbiddenError("Your account cannot place orders")

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Quantity must be a positive integer")

        _check_url(destination_url, "Destination URL")

        listing_id = clean_uuid(listing_id, "Listing id")

        # The listing row stays locked until the order row exists;
        # delete_listing checks for live orders under the same lock.
        with transaction.atomic():
            listing = (
                Listing.objects
                .select_for_update(of=('self',))
                .select_related('seller__user')
                .filter(id=listing_id)
                .first()
            )
            if listing is None:
                raise NotFoundError("Listing not found")

            if not listing.is_active:
                raise InvalidStateError("This listing is not available")

            seller = listing.seller.user
            if not seller.is_approved or seller.is_banned:
                raise ValidationError("The seller of this listing is not approved")

            if not permissions.can_access_lane(buyer, listing.lane):
                raise ForbiddenError("You do not have access to this lane")

            if seller.id == buyer.id:
                raise ValidationError("Cannot purchase your own listing")

            if not listing.accepts_quantity(quantity):
                raise ValidationError(
                    f"Invalid quantity. Min: {listing.min_order}, "
                    f"Max: {listing.max_daily}"
                )

            total_price = listing.calculate_total_price(quantity)
            platform_fee = EscrowService.calculate_platform_fee(total_price)

            order = Order.objects.create(
                buyer=buyer,
                seller=seller,
                listing=listing,
                lane=listing.lane,
                quantity=quantity,
                destination_url=destination_url,
                total_price=total_price,
                platform_fee=platform_fee,
                seller_payout=total_price - platform_fee,
                status=Order.PENDING
            )

        try:
            EscrowService.create_escrow(order.id, total_price)
        except Exception:
            cls._discard_unfunded_order(order)
            raise

        order.refresh_from_db()
        logger.info(
            f"Order {order.id} created by {buyer.email}: "
            f"{quantity} visitors for {total_price}"
        )
        return order

    @staticmethod
    def _discard_unfunded_order(order: Order) -> None:
        try:
            order.delete()
        except DatabaseError:
            logger.exception(
                f"Could not delete unfunded order {order.id}; left for cleanup sweep"
            )
        else:
            logger.warning(f"Escrow funding failed, order {order.id} deleted")

    @classmethod
    @persistence_errors
    @transaction.atomic
    def activate_order(
        cls,
        order_id,
        seller: User,
        tracking_url: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> Order:
        """
        Seller starts delivery: stores the tracking URL and marks the
        order ACTIVE.

        Raises:
            ForbiddenError: Not the seller
            InvalidStateError: Terminal order
            DisputeBlockingError: Open dispute on the order
            ValidationError: No tracking URL supplied or stored
        """
        order = _lock_order(order_id)
        _check_mutable(order, seller)

        StateMachine.validate_user_can_transition(order, seller, Order.ACTIVE)

        if order.status == Order.DISPUTED or order.has_open_dispute():
            raise DisputeBlockingError("Cannot activate an order with an open dispute")

        url = tracking_url or order.tracking_url
        _check_url(url, "Tracking URL")

        escrow = order.get_escrow()
        if escrow is None:
            raise NotFoundError("Order has no escrow")
        if escrow.released:
            raise AlreadyReleasedError()

        return StateMachine.transition(
            order=order,
            to_state=Order.ACTIVE,
            user=seller,
            reason="Seller activated order",
            ip_address=ip_address,
            changes={'tracking_url': url}
        )

    @classmethod
    @persistence_errors
    @transaction.atomic
    def complete_order(
        cls,
        order_id,
        actor: User,
        ip_address: Optional[str] = None
    ) -> OrderTransitionResult:
        """
        Buyer (or admin) confirms delivery; escrow is released to the seller.

        An escrow that is already released or missing does not fail the
        request: the order is still completed and the ledger error is
        returned as a warning.
        """
        order = _lock_order(order_id)
        _check_mutable(order, actor)

        StateMachine.validate_user_can_transition(order, actor, Order.COMPLETED)

        if order.status == Order.DISPUTED or order.has_open_dispute():
            raise DisputeBlockingError("Cannot complete an order with an open dispute")

        if order.status != Order.ACTIVE:
            raise InvalidStateError(f"Cannot complete an order in {order.status} state")

        warnings = []
        try:
            EscrowService.release_escrow(order.id, user=actor, ip_address=ip_address)
        except (NotFoundError, AlreadyReleasedError) as e:
            logger.warning(f"Order {order.id} completed with escrow warning: {e.detail}")
            warnings.append(e.detail)
            StateMachine.transition(
                order=order,
                to_state=Order.COMPLETED,
                user=actor,
                reason="Order completed",
                ip_address=ip_address
            )

        order.refresh_from_db()
        return OrderTransitionResult(order, "Order completed", warnings)

    @classmethod
    @persistence_errors
    @transaction.atomic
    def cancel_order(
        cls,
        order_id,
        actor: User,
        reason: str = "",
        ip_address: Optional[str] = None
    ) -> Order:
        """
        Cancel an order and refund the buyer if escrow is held.

        Buyers may cancel only PENDING orders; sellers and admins may
        also cancel ACTIVE ones. Disputed orders go through the dispute
        resolver instead.
        """
        order = _lock_order(order_id)
        _check_mutable(order, actor)

        if order.status == Order.DISPUTED or order.has_open_dispute():
            raise DisputeBlockingError("Cannot cancel an order with an open dispute")

        StateMachine.validate_user_can_transition(order, actor, Order.CANCELLED)

        reason = reason or "Order cancelled"

        if order.get_escrow() is not None:
            EscrowService.refund_escrow(order.id, user=actor, ip_address=ip_address)
        else:
            StateMachine.transition(
                order=order,
                to_state=Order.CANCELLED,
                user=actor,
                reason=reason,
                ip_address=ip_address
            )

        order.refresh_from_db()
        logger.info(f"Order {order.id} cancelled by {actor.email}")
        return order

    @classmethod
    def update_order(
        cls,
        order_id,
        actor: User,
        status: str,
        tracking_url: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> OrderTransitionResult:
        """
        Generic status update entrypoint used by the request layer.

        Rule order: participant check, terminal check, then the
        operation-specific rules of the target status.

        Admins get no bypass here while a dispute is OPEN: completing or
        cancelling a disputed order goes through DisputeService.resolve_dispute.
        """
        valid_states = dict(Order.STATE_CHOICES)
        if status not in valid_states:
            raise ValidationError(f"Unknown order status: {status}")

        order = cls.get_order(order_id, actor)
        _check_mutable(order, actor)

        if status == Order.ACTIVE:
            order = cls.activate_order(order_id, actor, tracking_url, ip_address)
            return OrderTransitionResult(order, "Order activated")

        if status == Order.COMPLETED:
            return cls.complete_order(order_id, actor, ip_address)

        if status == Order.CANCELLED:
            order = cls.cancel_order(order_id, actor, ip_address=ip_address)
            return OrderTransitionResult(order, "Order cancelled")

        if status == Order.DISPUTED:
            raise ValidationError("Open a dispute to move an order to DISPUTED")

        raise InvalidStateError(f"Cannot move an order back to {status}")

    @staticmethod
    @persistence_errors
    def get_order(order_id, actor: User) -> Order:
        if not permissions.is_authenticated(actor):
            raise UnauthorizedError()

        order_id = clean_uuid(order_id, "Order id")
        order = (
            Order.objects
            .select_related('buyer', 'seller', 'listing')
            .filter(id=order_id)
            .first()
        )
        if order is None:
            raise NotFoundError("Order not found")
        if not permissions.can_view_order(actor, order):
            raise ForbiddenError("You do not have permission to view this order")
        return order

    @staticmethod
    @persistence_errors
    def list_orders(actor: User, status: Optional[str] = None):
        """Orders the actor takes part in; admins see every order."""
        if not permissions.is_authenticated(actor):
            raise UnauthorizedError()

        if actor.is_banned:
            raise ForbiddenError("Your account has been banned")

        queryset = Order.objects.select_related('buyer', 'seller', 'listing')
        if not actor.is_admin:
            queryset = queryset.filter(Q(buyer=actor) | Q(seller=actor))

        if status:
            if status not in dict(Order.STATE_CHOICES):
                raise ValidationError(f"Unknown order status: {status}")
            queryset = queryset.filter(status=status)

        return queryset
