"""
Tests for the Orders app.
Covers the escrow ledger, the state machine, the order service and the
order endpoints.
"""
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock
from django.contrib.auth.models import AnonymousUser
from django.core.management import call_command
from django.db import IntegrityError
from django.db.models.query import QuerySet
from django.utils import timezone
from rest_framework import status
from apps.disputes.models import Dispute
from apps.marketplace.models import Listing
from apps.orders.models import Order, OrderStateLog, Escrow
from apps.orders.services.escrow_service import EscrowService
from apps.orders.services.order_service import OrderService
from apps.orders.services.state_machine import StateMachine
from common.exceptions import (
    AlreadyExistsError,
    AlreadyReleasedError,
    DisputeBlockingError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    UnauthorizedError,
    ValidationError,
)
from common.models import AdminActionLog
from common.testing import MarketplaceTestCase, MarketplaceTransactionTestCase

DESTINATION = 'https://buyer.example.com/landing'
TRACKING = 'https://tracker.example.com/campaign/42'


class EscrowServiceTestCase(MarketplaceTestCase):
    """Escrow ledger: create, release, refund."""

    def open_dispute_on(self, order):
        Order.objects.filter(id=order.id).update(status=Order.DISPUTED)
        return Dispute.objects.create(
            order=order,
            opened_by=self.buyer,
            reason='Traffic never arrived at the landing page'
        )

    def test_create_escrow_funds_pending_order(self):
        order = self.create_order()

        escrow = EscrowService.create_escrow(order.id, Decimal('10.00'))

        order.refresh_from_db()
        self.assertEqual(order.status, Order.ACTIVE)
        self.assertIsNotNone(order.funded_at)
        self.assertEqual(escrow.amount, Decimal('10.00'))
        self.assertEqual(escrow.currency, 'USD')
        self.assertFalse(escrow.released)

    def test_create_escrow_twice_conflicts(self):
        order = self.create_order()
        EscrowService.create_escrow(order.id, Decimal('10.00'))

        with self.assertRaises(AlreadyExistsError):
            EscrowService.create_escrow(order.id, Decimal('10.00'))

        self.assertEqual(Escrow.objects.filter(order=order).count(), 1)

    def test_create_escrow_rejects_non_positive_amount(self):
        order = self.create_order()

        with self.assertRaises(ValidationError):
            EscrowService.create_escrow(order.id, Decimal('0'))

        self.assertFalse(Escrow.objects.filter(order=order).exists())

    def test_create_escrow_requires_pending_order(self):
        order = self.create_order(status=Order.CANCELLED)

        with self.assertRaises(InvalidStateError):
            EscrowService.create_escrow(order.id, Decimal('10.00'))

    def test_create_escrow_unknown_order(self):
        order = self.create_order()
        order_id = order.id
        order.delete()

        with self.assertRaises(NotFoundError):
            EscrowService.create_escrow(order_id, Decimal('10.00'))

    def test_release_completes_order(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)

        escrow = EscrowService.release_escrow(order.id, user=self.buyer)

        order.refresh_from_db()
        self.assertTrue(escrow.released)
        self.assertIsNotNone(escrow.released_at)
        self.assertIsNone(escrow.released_by)
        self.assertEqual(order.status, Order.COMPLETED)
        self.assertIsNotNone(order.completed_at)

    def test_double_release_conflicts(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)
        EscrowService.release_escrow(order.id, user=self.buyer)

        with self.assertRaises(AlreadyReleasedError):
            EscrowService.release_escrow(order.id, user=self.buyer)

        # Only one transition into COMPLETED was recorded
        self.assertEqual(
            OrderStateLog.objects.filter(order=order, to_state=Order.COMPLETED).count(),
            1
        )

    def test_release_without_escrow(self):
        order = self.create_order(status=Order.ACTIVE)

        with self.assertRaises(NotFoundError):
            EscrowService.release_escrow(order.id)

    def test_release_blocked_by_open_dispute(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)
        self.open_dispute_on(order)

        with self.assertRaises(DisputeBlockingError):
            EscrowService.release_escrow(order.id, acting_admin=self.admin)

        self.assertFalse(Escrow.objects.get(order=order).released)

    def test_forced_release_by_admin_is_audited(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)

        escrow = EscrowService.release_escrow(order.id, acting_admin=self.admin)

        self.assertEqual(escrow.released_by, self.admin)
        log = AdminActionLog.objects.get(action=AdminActionLog.Action.RELEASE_ESCROW)
        self.assertEqual(log.admin_user, self.admin)
        self.assertEqual(log.target_user, self.seller)
        self.assertEqual(log.details['order_id'], str(order.id))

    def test_forced_release_by_non_admin_forbidden(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)

        with self.assertRaises(ForbiddenError):
            EscrowService.release_escrow(order.id, acting_admin=self.buyer)

        self.assertFalse(Escrow.objects.get(order=order).released)

    def test_refund_deletes_escrow_and_cancels(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)

        EscrowService.refund_escrow(order.id, user=self.seller)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.CANCELLED)
        self.assertFalse(Escrow.objects.filter(order=order).exists())

    def test_refund_after_release_conflicts(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)
        EscrowService.release_escrow(order.id)

        with self.assertRaises(AlreadyReleasedError):
            EscrowService.refund_escrow(order.id)

        self.assertTrue(Escrow.objects.get(order=order).released)

    def test_refund_twice_not_found(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)
        EscrowService.refund_escrow(order.id)

        with self.assertRaises(NotFoundError):
            EscrowService.refund_escrow(order.id)

    def test_refund_blocked_by_open_dispute(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)
        self.open_dispute_on(order)

        with self.assertRaises(DisputeBlockingError):
            EscrowService.refund_escrow(order.id)

        self.assertTrue(Escrow.objects.filter(order=order).exists())

    def test_escrow_status(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)
        self.assertEqual(EscrowService.get_escrow_status(order.id)['status'], 'HOLDING')

        EscrowService.release_escrow(order.id)
        data = EscrowService.get_escrow_status(order.id)
        self.assertEqual(data['status'], 'RELEASED')
        self.assertEqual(data['amount'], '10.00')

        unfunded = self.create_order()
        self.assertEqual(EscrowService.get_escrow_status(unfunded.id)['status'], 'NONE')

    def test_malformed_input_rejected(self):
        order = self.create_order()

        for amount in ('abc', 'NaN', 'Infinity', None):
            with self.assertRaises(ValidationError):
                EscrowService.create_escrow(order.id, amount)

        with self.assertRaises(ValidationError):
            EscrowService.create_escrow('not-a-uuid', Decimal('10.00'))
        with self.assertRaises(ValidationError):
            EscrowService.release_escrow('not-a-uuid')
        with self.assertRaises(ValidationError):
            EscrowService.refund_escrow(12345)
        with self.assertRaises(ValidationError):
            EscrowService.get_escrow_status('not-a-uuid')

        self.assertFalse(Escrow.objects.exists())

    def test_release_loses_to_concurrent_release(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)

        # Conditional update matched nothing: released after this request read it
        with mock.patch.object(QuerySet, 'update', return_value=0):
            with self.assertRaises(AlreadyReleasedError):
                EscrowService.release_escrow(order.id, user=self.buyer)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.ACTIVE)
        self.assertFalse(OrderStateLog.objects.filter(order=order).exists())

    def test_refund_loses_to_concurrent_release(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)

        with mock.patch.object(QuerySet, 'delete', return_value=(0, {})):
            with self.assertRaises(AlreadyReleasedError):
                EscrowService.refund_escrow(order.id, user=self.seller)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.ACTIVE)
        self.assertTrue(Escrow.objects.filter(order=order).exists())

    def test_concurrent_escrow_insert_conflicts(self):
        # PENDING order whose escrow row appeared after the existence check
        order = self.create_order(funded=True)

        with mock.patch.object(Order, 'get_escrow', return_value=None):
            with self.assertRaises(AlreadyExistsError):
                EscrowService.create_escrow(order.id, Decimal('10.00'))

        order.refresh_from_db()
        self.assertEqual(order.status, Order.PENDING)
        self.assertEqual(Escrow.objects.filter(order=order).count(), 1)


class FeeCalculationTestCase(MarketplaceTestCase):

    def test_platform_fee_default_percent(self):
        self.assertEqual(EscrowService.calculate_platform_fee(Decimal('10.00')), Decimal('0.50'))

    def test_fee_rounds_half_up(self):
        # 5% of 0.10 is 0.005
        self.assertEqual(EscrowService.calculate_platform_fee(Decimal('0.10')), Decimal('0.01'))
        self.assertEqual(EscrowService.calculate_seller_payout(Decimal('0.10')), Decimal('0.09'))

    def test_fee_and_payout_sum_to_amount(self):
        for amount in ('0.01', '0.33', '10.00', '123.45', '9999.99'):
            amount = Decimal(amount)
            fee = EscrowService.calculate_platform_fee(amount)
            payout = EscrowService.calculate_seller_payout(amount)
            self.assertEqual(fee + payout, amount)

    def test_custom_fee_percent(self):
        self.assertEqual(
            EscrowService.calculate_platform_fee(Decimal('200.00'), fee_percent=10),
            Decimal('20.00')
        )


class StateMachineTestCase(MarketplaceTestCase):

    def test_transition_table(self):
        self.assertTrue(StateMachine.can_transition(Order.PENDING, Order.ACTIVE))
        self.assertTrue(StateMachine.can_transition(Order.ACTIVE, Order.ACTIVE))
        self.assertTrue(StateMachine.can_transition(Order.ACTIVE, Order.DISPUTED))
        self.assertTrue(StateMachine.can_transition(Order.DISPUTED, Order.ACTIVE))
        self.assertFalse(StateMachine.can_transition(Order.PENDING, Order.COMPLETED))
        self.assertFalse(StateMachine.can_transition(Order.PENDING, Order.DISPUTED))
        self.assertFalse(StateMachine.can_transition(Order.ACTIVE, Order.PENDING))

    def test_terminal_states_have_no_exits(self):
        for terminal in Order.TERMINAL_STATES:
            for target, _ in Order.STATE_CHOICES:
                self.assertFalse(StateMachine.can_transition(terminal, target))

    def test_transition_writes_state_log(self):
        order = self.create_order()

        StateMachine.transition(order, Order.CANCELLED, user=self.buyer, reason='Changed my mind')

        log = OrderStateLog.objects.get(order=order)
        self.assertEqual(log.from_state, Order.PENDING)
        self.assertEqual(log.to_state, Order.CANCELLED)
        self.assertEqual(log.changed_by, self.buyer)
        self.assertEqual(log.reason, 'Changed my mind')

    def test_invalid_transition_leaves_order_unchanged(self):
        order = self.create_order(status=Order.COMPLETED)

        with self.assertRaises(InvalidStateError):
            StateMachine.transition(order, Order.ACTIVE)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.COMPLETED)
        self.assertFalse(OrderStateLog.objects.filter(order=order).exists())

    def test_validate_user_can_transition(self):
        order = self.create_order(status=Order.ACTIVE, funded=True)

        StateMachine.validate_user_can_transition(order, self.seller, Order.ACTIVE)
        StateMachine.validate_user_can_transition(order, self.buyer, Order.COMPLETED)

        with self.assertRaises(ForbiddenError):
            StateMachine.validate_user_can_transition(order, self.buyer, Order.ACTIVE)
        with self.assertRaises(ForbiddenError):
            StateMachine.validate_user_can_transition(order, self.other_buyer, Order.COMPLETED)
        with self.assertRaises(ForbiddenError):
            StateMachine.validate_user_can_transition(order, self.admin, Order.PENDING)


class CreateOrderTestCase(MarketplaceTestCase):

    def test_create_order_funds_escrow(self):
        order = OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

        self.assertEqual(order.status, Order.ACTIVE)
        self.assertEqual(order.total_price, Decimal('10.00'))
        self.assertEqual(order.platform_fee, Decimal('0.50'))
        self.assertEqual(order.seller_payout, Decimal('9.50'))
        self.assertEqual(order.seller, self.seller)
        self.assertEqual(order.lane, self.listing.lane)

        escrow = Escrow.objects.get(order=order)
        self.assertEqual(escrow.amount, Decimal('10.00'))
        self.assertFalse(escrow.released)

        log = OrderStateLog.objects.get(order=order)
        self.assertEqual((log.from_state, log.to_state), (Order.PENDING, Order.ACTIVE))

    def test_quantity_below_minimum(self):
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.buyer, self.listing.id, 999, DESTINATION)

        self.assertFalse(Order.objects.exists())

    def test_quantity_above_daily_maximum(self):
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.buyer, self.listing.id, 10001, DESTINATION)

        self.assertFalse(Order.objects.exists())

    def test_quantity_must_be_integer(self):
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.buyer, self.listing.id, '5000', DESTINATION)

    def test_destination_url_validated(self):
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.buyer, self.listing.id, 5000, 'ftp://nope')

    def test_unknown_listing(self):
        listing_id = self.listing.id
        self.listing.delete()

        with self.assertRaises(NotFoundError):
            OrderService.create_order(self.buyer, listing_id, 5000, DESTINATION)

    def test_inactive_listing(self):
        self.listing.is_active = False
        self.listing.save()

        with self.assertRaises(InvalidStateError):
            OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

    def test_unapproved_seller(self):
        self.seller.is_approved = False
        self.seller.save()

        with self.assertRaises(ValidationError):
            OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

    def test_private_lane_requires_access(self):
        self.profile.allowed_lanes = ['CLEAN', 'PRIVATE']
        self.profile.save()
        private = self.create_listing(lane='PRIVATE', title='Private push traffic')

        with self.assertRaises(ForbiddenError):
            OrderService.create_order(self.buyer, private.id, 5000, DESTINATION)

        self.buyer.lane_access = 'PRIVATE'
        self.buyer.save()
        order = OrderService.create_order(self.buyer, private.id, 5000, DESTINATION)
        self.assertEqual(order.lane, 'PRIVATE')

    def test_seller_role_cannot_purchase(self):
        with self.assertRaises(ForbiddenError):
            OrderService.create_order(self.seller, self.listing.id, 5000, DESTINATION)

    def test_banned_buyer_cannot_purchase(self):
        self.buyer.ban('Chargebacks')

        with self.assertRaises(ForbiddenError):
            OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

    def test_anonymous_buyer(self):
        with self.assertRaises(UnauthorizedError):
            OrderService.create_order(AnonymousUser(), self.listing.id, 5000, DESTINATION)
        with self.assertRaises(UnauthorizedError):
            OrderService.create_order(None, self.listing.id, 5000, DESTINATION)

    def test_self_purchase_rejected(self):
        self.seller.role = 'BOTH'
        self.seller.save()

        with self.assertRaises(ValidationError):
            OrderService.create_order(self.seller, self.listing.id, 5000, DESTINATION)

    def test_failed_funding_removes_order(self):
        with mock.patch.object(EscrowService, 'create_escrow', side_effect=PersistenceError()):
            with self.assertRaises(PersistenceError):
                OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

        self.assertFalse(Order.objects.exists())
        self.assertFalse(Escrow.objects.exists())

    def test_malformed_listing_id(self):
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.buyer, 'not-a-uuid', 5000, DESTINATION)

        self.assertFalse(Order.objects.exists())

    def test_listing_locked_while_order_is_written(self):
        with mock.patch.object(
            QuerySet, 'select_for_update', autospec=True, side_effect=QuerySet.select_for_update
        ) as lock:
            OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

        locked_models = [call.args[0].model for call in lock.call_args_list]
        self.assertEqual(locked_models[0], Listing)
        self.assertIn(Order, locked_models)

    def test_integrity_error_from_order_insert_is_persistence_error(self):
        with mock.patch.object(Order.objects, 'create', side_effect=IntegrityError('boom')):
            with self.assertRaises(PersistenceError):
                OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

        self.assertFalse(Order.objects.exists())


class OrderLifecycleTestCase(MarketplaceTestCase):
    """Activate, complete, cancel and the generic update entrypoint."""

    def setUp(self):
        super().setUp()
        self.order = OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

    def test_seller_activates_with_tracking_url(self):
        order = OrderService.activate_order(self.order.id, self.seller, tracking_url=TRACKING)

        self.assertEqual(order.status, Order.ACTIVE)
        self.assertEqual(order.tracking_url, TRACKING)
        self.assertTrue(
            OrderStateLog.objects.filter(
                order=order, from_state=Order.ACTIVE, to_state=Order.ACTIVE
            ).exists()
        )

    def test_activate_requires_tracking_url(self):
        with self.assertRaises(ValidationError):
            OrderService.activate_order(self.order.id, self.seller)

    def test_activate_reuses_stored_tracking_url(self):
        Order.objects.filter(id=self.order.id).update(tracking_url=TRACKING)

        order = OrderService.activate_order(self.order.id, self.seller)
        self.assertEqual(order.tracking_url, TRACKING)

    def test_only_seller_activates(self):
        with self.assertRaises(ForbiddenError):
            OrderService.activate_order(self.order.id, self.buyer, tracking_url=TRACKING)
        with self.assertRaises(ForbiddenError):
            OrderService.activate_order(self.order.id, self.admin, tracking_url=TRACKING)
        with self.assertRaises(ForbiddenError):
            OrderService.activate_order(self.order.id, self.other_buyer, tracking_url=TRACKING)

    def test_activate_after_release_conflicts(self):
        Escrow.objects.filter(order=self.order).update(released=True)

        with self.assertRaises(AlreadyReleasedError):
            OrderService.activate_order(self.order.id, self.seller, tracking_url=TRACKING)

    def test_buyer_completes_order(self):
        result = OrderService.complete_order(self.order.id, self.buyer)

        self.assertEqual(result.order.status, Order.COMPLETED)
        self.assertEqual(result.warnings, [])
        self.assertTrue(Escrow.objects.get(order=self.order).released)

    def test_seller_cannot_complete(self):
        with self.assertRaises(ForbiddenError):
            OrderService.complete_order(self.order.id, self.seller)

    def test_complete_with_released_escrow_warns(self):
        Escrow.objects.filter(order=self.order).update(released=True, released_at=timezone.now())

        result = OrderService.complete_order(self.order.id, self.buyer)

        self.assertEqual(result.order.status, Order.COMPLETED)
        self.assertEqual(len(result.warnings), 1)

    def test_complete_without_escrow_warns(self):
        order = self.create_order(status=Order.ACTIVE)

        result = OrderService.complete_order(order.id, self.buyer)

        self.assertEqual(result.order.status, Order.COMPLETED)
        self.assertEqual(len(result.warnings), 1)

    def test_complete_pending_order_rejected(self):
        order = self.create_order()

        with self.assertRaises(InvalidStateError):
            OrderService.complete_order(order.id, self.buyer)

    def test_terminal_order_rejects_every_change(self):
        OrderService.complete_order(self.order.id, self.buyer)

        with self.assertRaises(InvalidStateError):
            OrderService.complete_order(self.order.id, self.buyer)
        with self.assertRaises(InvalidStateError):
            OrderService.activate_order(self.order.id, self.seller, tracking_url=TRACKING)
        with self.assertRaises(InvalidStateError):
            OrderService.cancel_order(self.order.id, self.seller)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.COMPLETED)

    def test_non_participant_checked_before_terminal_state(self):
        OrderService.complete_order(self.order.id, self.buyer)

        with self.assertRaises(ForbiddenError):
            OrderService.cancel_order(self.order.id, self.other_buyer)

    def test_seller_cancels_active_order_with_refund(self):
        order = OrderService.cancel_order(self.order.id, self.seller, reason='Out of inventory')

        self.assertEqual(order.status, Order.CANCELLED)
        self.assertFalse(Escrow.objects.filter(order=order).exists())

    def test_buyer_cannot_cancel_active_order(self):
        with self.assertRaises(ForbiddenError):
            OrderService.cancel_order(self.order.id, self.buyer)

    def test_buyer_cancels_pending_order(self):
        order = self.create_order()

        order = OrderService.cancel_order(order.id, self.buyer)

        self.assertEqual(order.status, Order.CANCELLED)

    def test_admin_cancels_active_order(self):
        order = OrderService.cancel_order(self.order.id, self.admin)
        self.assertEqual(order.status, Order.CANCELLED)

    def test_changes_blocked_while_disputed(self):
        Order.objects.filter(id=self.order.id).update(status=Order.DISPUTED)
        Dispute.objects.create(
            order=self.order,
            opened_by=self.buyer,
            reason='Traffic never arrived at the landing page'
        )

        with self.assertRaises(DisputeBlockingError):
            OrderService.complete_order(self.order.id, self.buyer)
        with self.assertRaises(DisputeBlockingError):
            OrderService.cancel_order(self.order.id, self.seller)
        with self.assertRaises(DisputeBlockingError):
            OrderService.activate_order(self.order.id, self.seller, tracking_url=TRACKING)

        # Admins settle disputed orders through the dispute resolver only
        with self.assertRaises(DisputeBlockingError):
            OrderService.update_order(self.order.id, self.admin, Order.COMPLETED)
        with self.assertRaises(DisputeBlockingError):
            OrderService.update_order(self.order.id, self.admin, Order.CANCELLED)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.DISPUTED)
        self.assertFalse(Escrow.objects.get(order=self.order).released)

    def test_update_order_dispatches(self):
        result = OrderService.update_order(self.order.id, self.seller, Order.ACTIVE, tracking_url=TRACKING)
        self.assertEqual(result.order.tracking_url, TRACKING)

        result = OrderService.update_order(self.order.id, self.buyer, Order.COMPLETED)
        self.assertEqual(result.order.status, Order.COMPLETED)

    def test_update_order_rejects_bad_status(self):
        with self.assertRaises(ValidationError):
            OrderService.update_order(self.order.id, self.buyer, 'SHIPPED')
        with self.assertRaises(ValidationError):
            OrderService.update_order(self.order.id, self.buyer, Order.DISPUTED)
        with self.assertRaises(InvalidStateError):
            OrderService.update_order(self.order.id, self.seller, Order.PENDING)

    def test_get_order_visibility(self):
        self.assertEqual(OrderService.get_order(self.order.id, self.buyer), self.order)
        self.assertEqual(OrderService.get_order(self.order.id, self.admin), self.order)

        with self.assertRaises(ForbiddenError):
            OrderService.get_order(self.order.id, self.other_buyer)
        with self.assertRaises(UnauthorizedError):
            OrderService.get_order(self.order.id, AnonymousUser())

    def test_malformed_order_id(self):
        calls = (
            lambda: OrderService.get_order('not-a-uuid', self.buyer),
            lambda: OrderService.activate_order('not-a-uuid', self.seller, tracking_url=TRACKING),
            lambda: OrderService.complete_order('not-a-uuid', self.buyer),
            lambda: OrderService.cancel_order('not-a-uuid', self.seller),
            lambda: OrderService.update_order('not-a-uuid', self.buyer, Order.COMPLETED),
        )
        for call in calls:
            with self.assertRaises(ValidationError):
                call()

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.ACTIVE)

    def test_list_orders_scoped_to_participant(self):
        other = OrderService.create_order(self.other_buyer, self.listing.id, 2000, DESTINATION)

        self.assertEqual(list(OrderService.list_orders(self.buyer)), [self.order])
        self.assertEqual(set(OrderService.list_orders(self.seller)), {self.order, other})
        self.assertEqual(set(OrderService.list_orders(self.admin)), {self.order, other})
        self.assertEqual(list(OrderService.list_orders(self.buyer, status=Order.COMPLETED)), [])

        with self.assertRaises(ValidationError):
            OrderService.list_orders(self.buyer, status='SHIPPED')


class OrderAPITestCase(MarketplaceTestCase):
    """Order endpoints."""

    def create_via_api(self, quantity=5000):
        return self.client.post('/api/orders/', {
            'listing_id': str(self.listing.id),
            'quantity': quantity,
            'destination_url': DESTINATION,
        }, format='json')

    def test_create_order(self):
        self.authenticate(self.buyer)

        response = self.create_via_api()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Order.ACTIVE)
        self.assertEqual(response.data['total_price'], '10.00')
        self.assertEqual(response.data['escrow']['amount'], '10.00')

    def test_create_order_error_shape(self):
        self.authenticate(self.buyer)

        response = self.create_via_api(quantity=50)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'validation_error')
        self.assertFalse(response.data['retryable'])

    def test_create_order_unauthenticated(self):
        response = self.create_via_api()
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_banned_user_blocked(self):
        self.buyer.ban('Fraud')
        self.authenticate(self.buyer)

        response = self.client.get('/api/orders/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_order_detail_permissions(self):
        order = OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

        self.authenticate(self.other_buyer)
        response = self.client.get(f'/api/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(self.seller)
        response = self.client.get(f'/api/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['state_logs']), 1)

    def test_complete_order_endpoint(self):
        order = OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)
        self.authenticate(self.buyer)

        response = self.client.post(f'/api/orders/{order.id}/complete/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Order.COMPLETED)
        self.assertEqual(response.data['warnings'], [])

    def test_patch_status(self):
        order = OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)
        self.authenticate(self.seller)

        response = self.client.patch(
            f'/api/orders/{order.id}/',
            {'status': Order.ACTIVE, 'tracking_url': TRACKING},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tracking_url'], TRACKING)

        response = self.client.patch(f'/api/orders/{order.id}/', {'status': 'SHIPPED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_endpoint(self):
        order = OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

        self.authenticate(self.buyer)
        response = self.client.post(f'/api/orders/{order.id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(self.seller)
        response = self.client.post(f'/api/orders/{order.id}/cancel/', {'reason': 'No stock'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Order.CANCELLED)
        self.assertIsNone(response.data['escrow'])

    def test_escrow_status_endpoint(self):
        order = OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)
        self.authenticate(self.buyer)

        response = self.client.get(f'/api/orders/{order.id}/escrow/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'HOLDING')

    def test_admin_release_endpoint(self):
        order = OrderService.create_order(self.buyer, self.listing.id, 5000, DESTINATION)

        self.authenticate(self.buyer)
        response = self.client.post(f'/api/orders/{order.id}/escrow/release/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(self.admin)
        response = self.client.post(f'/api/orders/{order.id}/escrow/release/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Order.COMPLETED)

        response = self.client.post(f'/api/orders/{order.id}/escrow/release/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'already_released')


class CleanupUnfundedOrdersTestCase(MarketplaceTestCase):

    def setUp(self):
        super().setUp()
        self.stale = self.create_order()
        self.fresh = self.create_order()
        self.funded = self.create_order(status=Order.ACTIVE, funded=True)

        an_hour_ago = timezone.now() - timedelta(hours=1)
        Order.objects.filter(id__in=[self.stale.id, self.funded.id]).update(created_at=an_hour_ago)

    def test_deletes_only_stale_unfunded_orders(self):
        out = StringIO()
        call_command('cleanup_unfunded_orders', stdout=out)

        self.assertFalse(Order.objects.filter(id=self.stale.id).exists())
        self.assertTrue(Order.objects.filter(id=self.fresh.id).exists())
        self.assertTrue(Order.objects.filter(id=self.funded.id).exists())
        self.assertIn('Successfully deleted 1', out.getvalue())

    def test_dry_run_keeps_orders(self):
        out = StringIO()
        call_command('cleanup_unfunded_orders', '--dry-run', stdout=out)

        self.assertTrue(Order.objects.filter(id=self.stale.id).exists())
        self.assertIn('Would delete 1', out.getvalue())

    def test_minutes_option(self):
        call_command('cleanup_unfunded_orders', '--minutes', '0', stdout=StringIO())

        self.assertFalse(Order.objects.filter(id=self.stale.id).exists())
        self.assertFalse(Order.objects.filter(id=self.fresh.id).exists())
        self.assertTrue(Order.objects.filter(id=self.funded.id).exists())


class EscrowRaceTestCase(MarketplaceTransactionTestCase):
    """Two releases of one escrow on separate connections."""

    def test_concurrent_releases_complete_once(self):
        for _ in range(10):
            order = self.create_order(status=Order.ACTIVE, funded=True)

            outcomes = self.run_concurrently(
                lambda: EscrowService.release_escrow(order.id, user=self.buyer),
                lambda: EscrowService.release_escrow(order.id, user=self.buyer),
            )

            self.assertNotIn(None, outcomes)
            failures = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
            self.assertGreaterEqual(len(failures), 1)
            for failure in failures:
                self.assertIsInstance(failure, (AlreadyReleasedError, PersistenceError))

            order.refresh_from_db()
            released = Escrow.objects.get(order=order).released
            completions = OrderStateLog.objects.filter(order=order, to_state=Order.COMPLETED).count()
            if len(failures) == 1:
                self.assertTrue(released)
                self.assertEqual(order.status, Order.COMPLETED)
                self.assertEqual(completions, 1)
            else:
                self.assertFalse(released)
                self.assertEqual(order.status, Order.ACTIVE)
                self.assertEqual(completions, 0)
