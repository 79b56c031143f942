"""
Tests for the listing directory.
"""
from decimal import Decimal
from django.contrib.auth.models import AnonymousUser
from rest_framework import status
from apps.marketplace.models import Listing
from apps.marketplace.services.listing_service import ListingService
from apps.orders.models import Order
from apps.orders.services.order_service import OrderService
from common.exceptions import (
    ForbiddenError,
    InvalidStateError,
    MarketplaceError,
    NotFoundError,
    ValidationError,
)
from common.testing import MarketplaceTestCase, MarketplaceTransactionTestCase


class ListingServiceTestCase(MarketplaceTestCase):

    def create_via_service(self, user=None, **kwargs):
        fields = {
            'lane': 'CLEAN',
            'traffic_type': 'PUSH',
            'title': 'Push notification traffic',
            'price': Decimal('3.50'),
            'min_order': 500,
            'max_daily': 20000,
        }
        fields.update(kwargs)
        return ListingService.create_listing(user or self.seller, **fields)

    def test_approved_seller_creates_listing(self):
        listing = self.create_via_service(description='Opt-in subscribers')

        self.assertTrue(listing.is_active)
        self.assertEqual(listing.seller, self.profile)
        self.assertEqual(listing.price, Decimal('3.50'))

    def test_unapproved_seller_cannot_list(self):
        self.seller.is_approved = False
        self.seller.save()

        with self.assertRaises(ForbiddenError):
            self.create_via_service()

    def test_buyer_cannot_list(self):
        with self.assertRaises(ForbiddenError):
            self.create_via_service(user=self.buyer)

    def test_lane_must_be_allowed(self):
        with self.assertRaises(ForbiddenError):
            self.create_via_service(lane='PRIVATE')

    def test_traffic_type_must_be_supported(self):
        with self.assertRaises(ForbiddenError):
            self.create_via_service(traffic_type='SOCIAL')

    def test_field_bounds(self):
        with self.assertRaises(ValidationError):
            self.create_via_service(title='Short')
        with self.assertRaises(ValidationError):
            self.create_via_service(price=Decimal('10000.01'))
        with self.assertRaises(ValidationError):
            self.create_via_service(price=Decimal('0'))
        with self.assertRaises(ValidationError):
            self.create_via_service(price='NaN')
        with self.assertRaises(ValidationError):
            self.create_via_service(min_order=99)
        with self.assertRaises(ValidationError):
            self.create_via_service(max_daily=999)
        with self.assertRaises(ValidationError):
            self.create_via_service(min_order=5000, max_daily=4000)

        self.assertEqual(Listing.objects.count(), 1)

    def test_update_listing(self):
        listing = ListingService.update_listing(
            self.listing.id, self.seller, price=Decimal('2.25'), is_active=False
        )

        self.assertEqual(listing.price, Decimal('2.25'))
        self.assertFalse(listing.is_active)

    def test_update_checks_merged_bounds(self):
        with self.assertRaises(ValidationError):
            ListingService.update_listing(self.listing.id, self.seller, min_order=20000)

        self.listing.refresh_from_db()
        self.assertEqual(self.listing.min_order, 1000)

    def test_update_rejects_unknown_fields(self):
        with self.assertRaises(ValidationError):
            ListingService.update_listing(self.listing.id, self.seller, lane='PRIVATE')

    def test_only_owner_or_admin_updates(self):
        with self.assertRaises(ForbiddenError):
            ListingService.update_listing(self.listing.id, self.buyer, is_active=False)

        listing = ListingService.update_listing(self.listing.id, self.admin, is_active=False)
        self.assertFalse(listing.is_active)

    def test_delete_listing(self):
        ListingService.delete_listing(self.listing.id, self.seller)

        self.assertFalse(Listing.objects.filter(id=self.listing.id).exists())

    def test_delete_blocked_by_open_orders(self):
        self.create_order(status=Order.ACTIVE, funded=True)

        with self.assertRaises(InvalidStateError):
            ListingService.delete_listing(self.listing.id, self.seller)

        self.assertTrue(Listing.objects.filter(id=self.listing.id).exists())

    def test_delete_keeps_finished_orders(self):
        order = self.create_order(status=Order.CANCELLED)

        ListingService.delete_listing(self.listing.id, self.seller)

        order.refresh_from_db()
        self.assertIsNone(order.listing)
        self.assertEqual(order.lane, 'CLEAN')

    def test_private_listing_visibility(self):
        private = self.create_listing(lane='PRIVATE', title='Private lane traffic')

        with self.assertRaises(ForbiddenError):
            ListingService.get_listing(private.id, self.buyer)
        with self.assertRaises(ForbiddenError):
            ListingService.get_listing(private.id, AnonymousUser())

        self.assertEqual(ListingService.get_listing(private.id, self.admin), private)
        self.assertEqual(ListingService.get_listing(self.listing.id), self.listing)

        self.assertNotIn(private, ListingService.list_listings(self.buyer))
        self.assertIn(private, ListingService.list_listings(self.admin))

        self.buyer.lane_access = 'PRIVATE'
        self.buyer.save()
        self.assertIn(private, ListingService.list_listings(self.buyer))

    def test_inactive_listings_visible_to_owner_only(self):
        hidden = self.create_listing(title='Paused display traffic', is_active=False)

        self.assertNotIn(hidden, ListingService.list_listings(AnonymousUser()))
        self.assertNotIn(hidden, ListingService.list_listings(self.buyer))
        self.assertIn(hidden, ListingService.list_listings(self.seller))

    def test_unknown_listing(self):
        listing_id = self.listing.id
        self.listing.delete()

        with self.assertRaises(NotFoundError):
            ListingService.get_listing(listing_id)

    def test_malformed_listing_id(self):
        with self.assertRaises(ValidationError):
            ListingService.get_listing('not-a-uuid')
        with self.assertRaises(ValidationError):
            ListingService.update_listing('not-a-uuid', self.seller, is_active=False)
        with self.assertRaises(ValidationError):
            ListingService.delete_listing('not-a-uuid', self.seller)

        self.assertTrue(Listing.objects.filter(id=self.listing.id, is_active=True).exists())


class ListingAPITestCase(MarketplaceTestCase):

    def test_public_listing_directory(self):
        response = self.client.get('/api/marketplace/listings/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['price'], '2.00')
        self.assertNotIn('seller_email', response.data[0])

    def test_create_listing(self):
        self.authenticate(self.seller)

        response = self.client.post('/api/marketplace/listings/', {
            'lane': 'CLEAN',
            'traffic_type': 'EMAIL',
            'title': 'Newsletter traffic bundle',
            'price': '4.00',
            'min_order': 100,
            'max_daily': 5000,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['title'], 'Newsletter traffic bundle')

    def test_create_listing_requires_login(self):
        response = self.client.post('/api/marketplace/listings/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_buyer_cannot_create_listing(self):
        self.authenticate(self.buyer)

        response = self.client.post('/api/marketplace/listings/', {
            'lane': 'CLEAN',
            'traffic_type': 'EMAIL',
            'title': 'Newsletter traffic bundle',
            'price': '4.00',
            'min_order': 100,
            'max_daily': 5000,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'forbidden')

    def test_delete_blocked_returns_400(self):
        self.create_order(status=Order.ACTIVE, funded=True)
        self.authenticate(self.seller)

        response = self.client.delete(f'/api/marketplace/listings/{self.listing.id}/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_state')

    def test_patch_listing(self):
        self.authenticate(self.seller)

        response = self.client.patch(
            f'/api/marketplace/listings/{self.listing.id}/',
            {'max_daily': 50000},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['max_daily'], 50000)


class ListingDeletionRaceTestCase(MarketplaceTransactionTestCase):
    """Order placement racing the listing's deletion."""

    def test_live_orders_never_lose_their_listing(self):
        for attempt in range(10):
            listing = self.create_listing(title=f'Email traffic batch {attempt}')

            def place():
                return OrderService.create_order(
                    self.buyer, listing.id, 5000, 'https://buyer.example.com/landing'
                )

            def delete():
                ListingService.delete_listing(listing.id, self.seller)
                return listing.id

            placed, deleted = self.run_concurrently(place, delete)

            for outcome in (placed, deleted):
                self.assertIsNotNone(outcome)
                if isinstance(outcome, Exception):
                    self.assertIsInstance(outcome, MarketplaceError)

            self.assertFalse(
                Order.objects.filter(listing__isnull=True, status__in=Order.LIVE_STATES).exists()
            )
            if isinstance(placed, Order) and placed.status == Order.ACTIVE:
                self.assertTrue(Listing.objects.filter(id=listing.id).exists())
