"""
Tests for the permission oracle and the error taxonomy.
"""
import uuid
from decimal import Decimal
from django.contrib.auth.models import AnonymousUser
from django.db import OperationalError
from django.test import SimpleTestCase
from common import permissions
from common.exceptions import (
    AlreadyReleasedError,
    ConflictError,
    DisputeBlockingError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    clean_amount,
    clean_uuid,
    persistence_errors,
)
from common.testing import MarketplaceTestCase
from apps.orders.models import Order


class PermissionOracleTestCase(MarketplaceTestCase):

    def setUp(self):
        super().setUp()
        self.order = self.create_order(status=Order.ACTIVE, funded=True)

    def test_authentication(self):
        self.assertTrue(permissions.is_authenticated(self.buyer))
        self.assertFalse(permissions.is_authenticated(AnonymousUser()))
        self.assertFalse(permissions.is_authenticated(None))

    def test_clean_lane_open_to_everyone_not_banned(self):
        self.assertTrue(permissions.can_access_lane(self.buyer, 'CLEAN'))
        self.buyer.is_banned = True
        self.assertFalse(permissions.can_access_lane(self.buyer, 'CLEAN'))

    def test_private_lane(self):
        self.assertFalse(permissions.can_access_lane(self.buyer, 'PRIVATE'))
        self.assertTrue(permissions.can_access_lane(self.admin, 'PRIVATE'))
        self.buyer.lane_access = 'PRIVATE'
        self.assertTrue(permissions.can_access_lane(self.buyer, 'PRIVATE'))
        self.assertFalse(permissions.can_access_lane(self.buyer, 'UNKNOWN'))

    def test_create_listing(self):
        self.assertTrue(permissions.can_create_listing(self.seller))
        self.assertTrue(permissions.can_create_listing(self.admin))
        self.assertFalse(permissions.can_create_listing(self.buyer))

        self.seller.is_approved = False
        self.assertFalse(permissions.can_create_listing(self.seller))

    def test_edit_listing(self):
        self.assertTrue(permissions.can_edit_listing(self.seller, self.listing))
        self.assertTrue(permissions.can_edit_listing(self.admin, self.listing))
        self.assertFalse(permissions.can_edit_listing(self.buyer, self.listing))

    def test_purchase(self):
        self.assertTrue(permissions.can_purchase(self.buyer))
        self.assertTrue(permissions.can_purchase(self.admin))
        self.assertFalse(permissions.can_purchase(self.seller))

    def test_order_participants(self):
        for check in (permissions.can_view_order, permissions.can_manage_order):
            self.assertTrue(check(self.buyer, self.order))
            self.assertTrue(check(self.seller, self.order))
            self.assertTrue(check(self.admin, self.order))
            self.assertFalse(check(self.other_buyer, self.order))

    def test_activate_is_seller_only(self):
        self.assertTrue(permissions.can_activate_order(self.seller, self.order))
        self.assertFalse(permissions.can_activate_order(self.buyer, self.order))
        self.assertFalse(permissions.can_activate_order(self.admin, self.order))

    def test_complete(self):
        self.assertTrue(permissions.can_complete_order(self.buyer, self.order))
        self.assertTrue(permissions.can_complete_order(self.admin, self.order))
        self.assertFalse(permissions.can_complete_order(self.seller, self.order))

    def test_cancel_depends_on_status(self):
        self.assertFalse(permissions.can_cancel_order(self.buyer, self.order))
        self.assertTrue(permissions.can_cancel_order(self.seller, self.order))

        self.order.status = Order.PENDING
        self.assertTrue(permissions.can_cancel_order(self.buyer, self.order))

        self.order.status = Order.DISPUTED
        self.assertFalse(permissions.can_cancel_order(self.seller, self.order))
        self.assertTrue(permissions.can_cancel_order(self.admin, self.order))

    def test_open_dispute_needs_active_order(self):
        self.assertTrue(permissions.can_open_dispute(self.buyer, self.order))
        self.assertFalse(permissions.can_open_dispute(self.other_buyer, self.order))

        self.order.status = Order.PENDING
        self.assertFalse(permissions.can_open_dispute(self.seller, self.order))

    def test_admin_only_predicates(self):
        for check in (
            permissions.can_resolve_dispute,
            permissions.can_approve_seller,
            permissions.can_access_admin_panel,
        ):
            self.assertTrue(check(self.admin))
            self.assertFalse(check(self.buyer))
            self.assertFalse(check(self.seller))

    def test_banned_admin_denied_everywhere(self):
        self.admin.is_banned = True

        self.assertFalse(permissions.can_view_order(self.admin, self.order))
        self.assertFalse(permissions.can_complete_order(self.admin, self.order))
        self.assertFalse(permissions.can_resolve_dispute(self.admin))
        self.assertFalse(permissions.can_access_lane(self.admin, 'PRIVATE'))


class ErrorTaxonomyTestCase(SimpleTestCase):

    def test_error_payload(self):
        error = AlreadyReleasedError()

        self.assertIsInstance(error, ConflictError)
        self.assertEqual(error.status_code, 409)
        self.assertEqual(
            error.as_dict(),
            {'error': 'Escrow already released', 'code': 'already_released', 'retryable': False}
        )

    def test_dispute_blocking_is_invalid_state(self):
        self.assertIsInstance(DisputeBlockingError(), InvalidStateError)
        self.assertEqual(DisputeBlockingError().status_code, 400)

    def test_persistence_errors_translates_database_errors(self):
        @persistence_errors
        def broken():
            raise OperationalError('database is locked')

        with self.assertRaises(PersistenceError) as ctx:
            broken()

        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(ctx.exception.status_code, 503)

    def test_persistence_errors_passes_business_errors(self):
        @persistence_errors
        def missing():
            raise NotFoundError("Order not found")

        with self.assertRaises(NotFoundError):
            missing()

    def test_clean_uuid(self):
        value = uuid.uuid4()

        self.assertEqual(clean_uuid(value), value)
        self.assertEqual(clean_uuid(str(value)), value)
        for bad in ('not-a-uuid', '', None, 42):
            with self.assertRaises(ValidationError):
                clean_uuid(bad, "Order id")

    def test_clean_amount(self):
        self.assertEqual(clean_amount('12.50'), Decimal('12.50'))
        self.assertEqual(clean_amount(3), Decimal('3'))
        for bad in ('abc', 'NaN', 'sNaN', '-Infinity', None):
            with self.assertRaises(ValidationError):
                clean_amount(bad)
