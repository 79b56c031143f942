"""
Tests for the Disputes app.
Tests dispute creation, admin rulings and their effect on the escrow ledger.
"""
from unittest import mock
from django.contrib.auth.models import AnonymousUser
from django.db.models.query import QuerySet
from rest_framework import status
from apps.disputes.models import Dispute
from apps.disputes.services.dispute_service import DisputeService
from apps.orders.models import Order, Escrow
from apps.orders.services.escrow_service import EscrowService
from apps.orders.services.order_service import OrderService
from common.exceptions import (
    AlreadyExistsError,
    AlreadyReleasedError,
    DisputeBlockingError,
    ForbiddenError,
    InvalidStateError,
    MarketplaceError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from common.models import AdminActionLog
from common.testing import MarketplaceTestCase, MarketplaceTransactionTestCase

REASON = 'Traffic never arrived at the landing page'
RESOLUTION = 'Seller could not show delivery logs for the campaign'


class DisputeTestCase(MarketplaceTestCase):

    def setUp(self):
        super().setUp()
        self.order = OrderService.create_order(
            self.buyer, self.listing.id, 5000, 'https://buyer.example.com/landing'
        )

    def assertDisputeInvariant(self, order):
        order.refresh_from_db()
        has_open = Dispute.objects.filter(order=order, status=Dispute.OPEN).exists()
        self.assertEqual(order.status == Order.DISPUTED, has_open)


class OpenDisputeTestCase(DisputeTestCase):

    def test_buyer_opens_dispute(self):
        dispute = DisputeService.open_dispute(self.order.id, self.buyer, REASON, evidence='Analytics show 0 hits')

        self.assertEqual(dispute.status, Dispute.OPEN)
        self.assertEqual(dispute.opened_by, self.buyer)
        self.assertEqual(dispute.evidence, 'Analytics show 0 hits')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.DISPUTED)
        self.assertDisputeInvariant(self.order)

    def test_seller_opens_dispute(self):
        dispute = DisputeService.open_dispute(self.order.id, self.seller, REASON)
        self.assertEqual(dispute.opened_by, self.seller)

    def test_dispute_blocks_completion(self):
        DisputeService.open_dispute(self.order.id, self.buyer, REASON)

        with self.assertRaises(DisputeBlockingError):
            OrderService.complete_order(self.order.id, self.buyer)

        self.assertFalse(Escrow.objects.get(order=self.order).released)

    def test_second_dispute_conflicts(self):
        DisputeService.open_dispute(self.order.id, self.buyer, REASON)

        with self.assertRaises(AlreadyExistsError):
            DisputeService.open_dispute(self.order.id, self.seller, REASON)

        self.assertEqual(Dispute.objects.filter(order=self.order).count(), 1)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.DISPUTED)

    def test_non_participant_forbidden(self):
        with self.assertRaises(ForbiddenError):
            DisputeService.open_dispute(self.order.id, self.other_buyer, REASON)

        self.assertFalse(Dispute.objects.exists())

    def test_anonymous_rejected(self):
        with self.assertRaises(UnauthorizedError):
            DisputeService.open_dispute(self.order.id, AnonymousUser(), REASON)

    def test_reason_length_validated(self):
        with self.assertRaises(ValidationError):
            DisputeService.open_dispute(self.order.id, self.buyer, 'Too short')
        with self.assertRaises(ValidationError):
            DisputeService.open_dispute(self.order.id, self.buyer, 'x' * 1001)
        with self.assertRaises(ValidationError):
            DisputeService.open_dispute(self.order.id, self.buyer, REASON, evidence='e' * 2001)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.ACTIVE)

    def test_pending_order_cannot_be_disputed(self):
        order = self.create_order()

        with self.assertRaises(InvalidStateError):
            DisputeService.open_dispute(order.id, self.buyer, REASON)

    def test_terminal_order_cannot_be_disputed(self):
        OrderService.complete_order(self.order.id, self.buyer)

        with self.assertRaises(InvalidStateError):
            DisputeService.open_dispute(self.order.id, self.buyer, REASON)

    def test_released_escrow_cannot_be_disputed(self):
        Escrow.objects.filter(order=self.order).update(released=True)

        with self.assertRaises(AlreadyReleasedError):
            DisputeService.open_dispute(self.order.id, self.buyer, REASON)

        self.assertDisputeInvariant(self.order)

    def test_unfunded_order_cannot_be_disputed(self):
        order = self.create_order(status=Order.ACTIVE)

        with self.assertRaises(NotFoundError):
            DisputeService.open_dispute(order.id, self.buyer, REASON)

    def test_malformed_order_id(self):
        with self.assertRaises(ValidationError):
            DisputeService.open_dispute('not-a-uuid', self.buyer, REASON)

        self.assertFalse(Dispute.objects.exists())

    def test_concurrent_dispute_insert_conflicts(self):
        # Dispute row committed by another request after the existence check
        Dispute.objects.create(
            order=self.order,
            opened_by=self.seller,
            reason=REASON,
            status=Dispute.REJECTED
        )

        with mock.patch.object(QuerySet, 'exists', return_value=False):
            with self.assertRaises(AlreadyExistsError):
                DisputeService.open_dispute(self.order.id, self.buyer, REASON)

        self.assertEqual(Dispute.objects.filter(order=self.order).count(), 1)
        self.assertDisputeInvariant(self.order)


class ResolveDisputeTestCase(DisputeTestCase):

    def setUp(self):
        super().setUp()
        self.dispute = DisputeService.open_dispute(self.order.id, self.buyer, REASON)

    def test_resolve_with_refund(self):
        dispute = DisputeService.resolve_dispute(
            self.dispute.id, self.admin, Dispute.RESOLVED, RESOLUTION, refund_buyer=True
        )

        self.assertEqual(dispute.status, Dispute.RESOLVED)
        self.assertTrue(dispute.refund_buyer)
        self.assertEqual(dispute.resolved_by, self.admin)
        self.assertIsNotNone(dispute.resolved_at)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.CANCELLED)
        self.assertFalse(Escrow.objects.filter(order=self.order).exists())
        self.assertDisputeInvariant(self.order)

    def test_resolve_in_sellers_favour(self):
        dispute = DisputeService.resolve_dispute(
            self.dispute.id, self.admin, Dispute.RESOLVED, RESOLUTION
        )

        self.assertFalse(dispute.refund_buyer)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.COMPLETED)
        self.assertTrue(Escrow.objects.get(order=self.order).released)
        self.assertDisputeInvariant(self.order)

    def test_reject_returns_order_to_active(self):
        dispute = DisputeService.resolve_dispute(
            self.dispute.id, self.admin, Dispute.REJECTED, RESOLUTION
        )

        self.assertEqual(dispute.status, Dispute.REJECTED)
        self.assertIsNone(dispute.refund_buyer)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.ACTIVE)
        escrow = Escrow.objects.get(order=self.order)
        self.assertFalse(escrow.released)
        self.assertDisputeInvariant(self.order)

    def test_rejected_dispute_cannot_be_reopened(self):
        DisputeService.resolve_dispute(self.dispute.id, self.admin, Dispute.REJECTED, RESOLUTION)

        with self.assertRaises(AlreadyExistsError):
            DisputeService.open_dispute(self.order.id, self.buyer, REASON)

        # Normal flow continues after a rejection
        result = OrderService.complete_order(self.order.id, self.buyer)
        self.assertEqual(result.order.status, Order.COMPLETED)

    def test_dispute_resolved_only_once(self):
        DisputeService.resolve_dispute(self.dispute.id, self.admin, Dispute.REJECTED, RESOLUTION)

        with self.assertRaises(InvalidStateError):
            DisputeService.resolve_dispute(
                self.dispute.id, self.admin, Dispute.RESOLVED, RESOLUTION, refund_buyer=True
            )

        self.dispute.refresh_from_db()
        self.assertEqual(self.dispute.status, Dispute.REJECTED)
        self.assertTrue(Escrow.objects.filter(order=self.order).exists())

    def test_only_admin_resolves(self):
        for user in (self.buyer, self.seller):
            with self.assertRaises(ForbiddenError):
                DisputeService.resolve_dispute(self.dispute.id, user, Dispute.RESOLVED, RESOLUTION)

        self.dispute.refresh_from_db()
        self.assertEqual(self.dispute.status, Dispute.OPEN)

    def test_invalid_decision(self):
        with self.assertRaises(ValidationError):
            DisputeService.resolve_dispute(self.dispute.id, self.admin, Dispute.OPEN, RESOLUTION)

    def test_resolution_length_validated(self):
        with self.assertRaises(ValidationError):
            DisputeService.resolve_dispute(self.dispute.id, self.admin, Dispute.RESOLVED, 'Refund')

    def test_ruling_is_audited(self):
        DisputeService.resolve_dispute(
            self.dispute.id, self.admin, Dispute.RESOLVED, RESOLUTION, refund_buyer=True
        )

        log = AdminActionLog.objects.get(action=AdminActionLog.Action.RESOLVE_DISPUTE)
        self.assertEqual(log.admin_user, self.admin)
        self.assertEqual(log.target_user, self.buyer)
        self.assertEqual(log.details['dispute_id'], str(self.dispute.id))
        self.assertTrue(log.details['refund_buyer'])

    def test_visibility(self):
        self.assertEqual(DisputeService.get_dispute(self.dispute.id, self.seller), self.dispute)
        with self.assertRaises(ForbiddenError):
            DisputeService.get_dispute(self.dispute.id, self.other_buyer)

        self.assertEqual(list(DisputeService.list_disputes(self.buyer)), [self.dispute])
        self.assertEqual(list(DisputeService.list_disputes(self.other_buyer)), [])
        self.assertEqual(list(DisputeService.list_disputes(self.admin, status=Dispute.OPEN)), [self.dispute])

    def test_concurrent_ruling_wins(self):
        # Conditional update matched nothing: another admin closed the dispute first
        with mock.patch.object(QuerySet, 'update', return_value=0):
            with self.assertRaises(InvalidStateError) as ctx:
                DisputeService.resolve_dispute(
                    self.dispute.id, self.admin, Dispute.RESOLVED, RESOLUTION, refund_buyer=True
                )

        self.assertEqual(ctx.exception.detail, "Dispute is no longer open")
        self.assertTrue(Escrow.objects.filter(order=self.order, released=False).exists())
        self.assertFalse(AdminActionLog.objects.exists())
        self.assertDisputeInvariant(self.order)

    def test_malformed_dispute_id(self):
        with self.assertRaises(ValidationError):
            DisputeService.resolve_dispute('not-a-uuid', self.admin, Dispute.RESOLVED, RESOLUTION)
        with self.assertRaises(ValidationError):
            DisputeService.get_dispute('not-a-uuid', self.buyer)


class DisputeAPITestCase(DisputeTestCase):
    """Dispute endpoints."""

    def test_open_dispute(self):
        self.authenticate(self.buyer)

        response = self.client.post(
            f'/api/disputes/orders/{self.order.id}/create/',
            {'reason': REASON},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Dispute.OPEN)
        self.assertEqual(response.data['order_status'], Order.DISPUTED)

        response = self.client.post(
            f'/api/disputes/orders/{self.order.id}/create/',
            {'reason': REASON},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'already_exists')

    def test_short_reason_rejected(self):
        self.authenticate(self.buyer)

        response = self.client.post(
            f'/api/disputes/orders/{self.order.id}/create/',
            {'reason': 'bad'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_resolve_requires_admin(self):
        dispute = DisputeService.open_dispute(self.order.id, self.buyer, REASON)
        payload = {'decision': Dispute.RESOLVED, 'resolution': RESOLUTION, 'refund_buyer': True}

        self.authenticate(self.buyer)
        response = self.client.post(f'/api/disputes/{dispute.id}/resolve/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(self.admin)
        response = self.client.post(f'/api/disputes/{dispute.id}/resolve/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Dispute.RESOLVED)
        self.assertEqual(response.data['order_status'], Order.CANCELLED)

    def test_list_and_detail(self):
        dispute = DisputeService.open_dispute(self.order.id, self.buyer, REASON)

        self.authenticate(self.other_buyer)
        response = self.client.get('/api/disputes/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, [])

        response = self.client.get(f'/api/disputes/{dispute.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(self.seller)
        response = self.client.get(f'/api/disputes/{dispute.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['reason'], REASON)


class DisputeReleaseRaceTestCase(MarketplaceTransactionTestCase):
    """Escrow release and dispute opening racing on one order."""

    def test_release_and_dispute_serialize(self):
        for _ in range(10):
            order = self.create_order(status=Order.ACTIVE, funded=True)

            released, disputed = self.run_concurrently(
                lambda: EscrowService.release_escrow(order.id, acting_admin=self.admin),
                lambda: DisputeService.open_dispute(order.id, self.buyer, REASON),
            )

            outcomes = (released, disputed)
            self.assertNotIn(None, outcomes)
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    self.assertIsInstance(outcome, MarketplaceError)
            winners = [outcome for outcome in outcomes if not isinstance(outcome, Exception)]
            self.assertLessEqual(len(winners), 1)

            order.refresh_from_db()
            escrow = Escrow.objects.get(order=order)
            dispute = Dispute.objects.filter(order=order).first()
            has_open = dispute is not None and dispute.status == Dispute.OPEN
            self.assertEqual(order.status == Order.DISPUTED, has_open)

            if escrow.released:
                self.assertEqual(order.status, Order.COMPLETED)
                self.assertIsNone(dispute)
            elif dispute is not None:
                self.assertEqual(order.status, Order.DISPUTED)
            else:
                self.assertEqual(order.status, Order.ACTIVE)
