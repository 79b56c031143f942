"""
Dispute service - opens disputes against active orders and applies
admin rulings through the escrow ledger.
"""
import logging
from typing import Optional
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from apps.disputes.models import Dispute
from apps.orders.models import Order
from apps.orders.services.state_machine import StateMachine
from apps.orders.services.escrow_service import EscrowService
from apps.accounts.models import User
from common import permissions
from common.exceptions import (
    AlreadyExistsError,
    AlreadyReleasedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    clean_uuid,
    persistence_errors,
)
from common.models import AdminActionLog
from common.services.logging_service import LoggingService

logger = logging.getLogger('disputes')

MIN_TEXT_LENGTH = 20
MAX_TEXT_LENGTH = 1000
MAX_EVIDENCE_LENGTH = 2000


def _check_text(value, field_name):
    value = (value or '').strip()
    if len(value) < MIN_TEXT_LENGTH:
        raise ValidationError(
            f"{field_name} must be at least {MIN_TEXT_LENGTH} characters"
        )
    if len(value) > MAX_TEXT_LENGTH:
        raise ValidationError(
            f"{field_name} must be at most {MAX_TEXT_LENGTH} characters"
        )
    return value


class DisputeService:
    """
    Service for managing disputes.
    A dispute freezes the order's escrow until an admin rules on it.
    """

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def open_dispute(
        order_id,
        actor: User,
        reason: str,
        evidence: str = "",
        ip_address: Optional[str] = None
    ) -> Dispute:
        """
        Open a dispute on an ACTIVE order.

        Security:
        - Only order participants (or admins) can open disputes
        - One dispute per order, ever
        - Order row locked while the dispute is created and the order
          moves to DISPUTED

        Args:
            order_id: Order to dispute
            actor: User opening the dispute
            reason: Why the order is disputed (20-1000 characters)
            evidence: Optional supporting text
            ip_address: User IP

        Returns:
            Created Dispute (OPEN)
        """
        if not permissions.is_authenticated(actor):
            raise UnauthorizedError()

        reason = _check_text(reason, "Reason")
        evidence = (evidence or '').strip()
        if len(evidence) > MAX_EVIDENCE_LENGTH:
            raise ValidationError(
                f"Evidence must be at most {MAX_EVIDENCE_LENGTH} characters"
            )

        order_id = clean_uuid(order_id, "Order id")
        try:
            order = Order.objects.select_for_update().get(id=order_id)
        except Order.DoesNotExist:
            raise NotFoundError("Order not found")

        if not permissions.can_view_order(actor, order):
            raise ForbiddenError("Only order participants can open disputes")

        if order.is_terminal:
            raise InvalidStateError(f"Order is {order.status} and can no longer be disputed")

        if Dispute.objects.filter(order_id=order.id).exists():
            raise AlreadyExistsError("A dispute already exists for this order")

        if order.status != Order.ACTIVE:
            raise InvalidStateError("Only ACTIVE orders can be disputed")

        if not permissions.can_open_dispute(actor, order):
            raise ForbiddenError("You cannot open a dispute on this order")

        escrow = order.get_escrow()
        if escrow is None:
            raise NotFoundError("Order has no escrow to dispute")
        if escrow.released:
            raise AlreadyReleasedError("Escrow already released; nothing to dispute")

        try:
            with transaction.atomic():
                dispute = Dispute.objects.create(
                    order=order,
                    opened_by=actor,
                    reason=reason,
                    evidence=evidence,
                    status=Dispute.OPEN
                )
        except IntegrityError:
            raise AlreadyExistsError("A dispute already exists for this order")

        dispute.order = StateMachine.transition(
            order=order,
            to_state=Order.DISPUTED,
            user=actor,
            reason=f"Dispute opened: {reason[:100]}",
            ip_address=ip_address
        )

        logger.info(f"Dispute {dispute.id} opened on order {order.id} by {actor.email}")

        return dispute

    @staticmethod
    @persistence_errors
    @transaction.atomic
    def resolve_dispute(
        dispute_id,
        admin: User,
        decision: str,
        resolution: str,
        refund_buyer: bool = False,
        ip_address: Optional[str] = None
    ) -> Dispute:
        """
        Admin ruling on an OPEN dispute.

        - RESOLVED + refund_buyer: escrow refunded, order CANCELLED
        - RESOLVED: escrow released, order COMPLETED
        - REJECTED: escrow untouched, order back to ACTIVE

        The dispute is closed before the ledger is called so the ledger's
        open-dispute guard passes; everything commits or rolls back as one.

        Returns:
            Updated Dispute
        """
        if not permissions.can_resolve_dispute(admin):
            raise ForbiddenError("Only administrators can resolve disputes")

        if decision not in Dispute.TERMINAL_STATES:
            raise ValidationError(
                f"Decision must be one of: {', '.join(Dispute.TERMINAL_STATES)}"
            )

        resolution = _check_text(resolution, "Resolution")

        dispute_id = clean_uuid(dispute_id, "Dispute id")
        dispute = Dispute.objects.filter(id=dispute_id).first()
        if dispute is None:
            raise NotFoundError("Dispute not found")

        # Lock order first, then dispute: same order as open_dispute
        try:
            order = Order.objects.select_for_update().get(id=dispute.order_id)
        except Order.DoesNotExist:
            raise NotFoundError("Order not found")
        dispute = Dispute.objects.select_for_update().get(id=dispute.id)

        if dispute.status != Dispute.OPEN:
            raise InvalidStateError(f"Dispute is already {dispute.status}")

        escrow = order.get_escrow()
        if escrow is None:
            raise NotFoundError("Order has no escrow")
        if escrow.released:
            raise AlreadyReleasedError()

        updated = Dispute.objects.filter(id=dispute.id, status=Dispute.OPEN).update(
            status=decision,
            resolution=resolution,
            refund_buyer=refund_buyer if decision == Dispute.RESOLVED else None,
            resolved_by=admin,
            resolved_at=timezone.now(),
            updated_at=timezone.now()
        )
        if updated == 0:
            raise InvalidStateError("Dispute is no longer open")

        if decision == Dispute.REJECTED:
            StateMachine.transition(
                order=order,
                to_state=Order.ACTIVE,
                user=admin,
                reason="Dispute rejected",
                ip_address=ip_address
            )
            action = AdminActionLog.Action.REJECT_DISPUTE
        elif refund_buyer:
            EscrowService.refund_escrow(order.id, user=admin, ip_address=ip_address)
            action = AdminActionLog.Action.RESOLVE_DISPUTE
        else:
            EscrowService.release_escrow(order.id, user=admin, ip_address=ip_address)
            action = AdminActionLog.Action.RESOLVE_DISPUTE

        LoggingService.log_admin_action(
            admin_user=admin,
            action=action,
            target_user=dispute.opened_by,
            details={
                'dispute_id': str(dispute.id),
                'order_id': str(order.id),
                'decision': decision,
                'refund_buyer': refund_buyer,
            },
            ip_address=ip_address
        )

        logger.info(
            f"Dispute {dispute.id} {decision} by {admin.email} "
            f"(refund_buyer={refund_buyer})"
        )

        dispute.refresh_from_db()
        return dispute

    @staticmethod
    @persistence_errors
    def get_dispute(dispute_id, actor: User) -> Dispute:
        if not permissions.is_authenticated(actor):
            raise UnauthorizedError()

        dispute_id = clean_uuid(dispute_id, "Dispute id")
        dispute = (
            Dispute.objects
            .select_related('order', 'opened_by', 'resolved_by')
            .filter(id=dispute_id)
            .first()
        )
        if dispute is None:
            raise NotFoundError("Dispute not found")
        if not permissions.can_view_order(actor, dispute.order):
            raise ForbiddenError("You do not have permission to view this dispute")
        return dispute

    @staticmethod
    @persistence_errors
    def list_disputes(actor: User, status: Optional[str] = None):
        """Disputes on the actor's orders; admins see all."""
        if not permissions.is_authenticated(actor):
            raise UnauthorizedError()

        if actor.is_banned:
            raise ForbiddenError("Your account has been banned")

        queryset = Dispute.objects.select_related('order', 'opened_by')
        if not actor.is_admin:
            queryset = queryset.filter(Q(order__buyer=actor) | Q(order__seller=actor))

        if status:
            if status not in dict(Dispute.STATUS_CHOICES):
                raise ValidationError(f"Unknown dispute status: {status}")
            queryset = queryset.filter(status=status)

        return queryset
