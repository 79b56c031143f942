"""
Base test case and fixtures shared by the app test suites.
"""
import threading
from decimal import Decimal
from django.db import connection
from django.test import TestCase, TransactionTestCase
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from apps.accounts.models import SellerProfile, Lane, TrafficType
from apps.marketplace.models import Listing
from apps.orders.models import Order, Escrow

User = get_user_model()


class MarketplaceFixtures:
    """Admin, approved seller with a CLEAN listing, and a buyer."""

    def setUp(self):
        self.client = APIClient()

        self.admin = User.objects.create_user(
            email='admin@example.com',
            password='AdminPass123!',
            role=User.Role.ADMIN,
            is_staff=True
        )
        self.seller = User.objects.create_seller(
            email='seller@example.com',
            password='SellerPass123!',
            is_approved=True
        )
        self.profile = SellerProfile.objects.create(
            user=self.seller,
            display_name='Fast Traffic',
            traffic_types=[TrafficType.EMAIL, TrafficType.PUSH],
            allowed_lanes=[Lane.CLEAN],
            compliance_agreed=True
        )
        self.buyer = User.objects.create_user(
            email='buyer@example.com',
            password='BuyerPass123!'
        )
        self.other_buyer = User.objects.create_user(
            email='other@example.com',
            password='OtherPass123!'
        )
        self.listing = self.create_listing()

    def authenticate(self, user=None):
        self.client.force_authenticate(user=user or self.buyer)

    def create_listing(self, **kwargs):
        fields = {
            'seller': self.profile,
            'title': 'Targeted email traffic',
            'lane': Lane.CLEAN,
            'traffic_type': TrafficType.EMAIL,
            'price': Decimal('2.00'),
            'min_order': 1000,
            'max_daily': 10000,
        }
        fields.update(kwargs)
        return Listing.objects.create(**fields)

    def create_order(self, status=Order.PENDING, buyer=None, funded=False, **kwargs):
        """Order row written directly, bypassing the service layer."""
        fields = {
            'buyer': buyer or self.buyer,
            'seller': self.seller,
            'listing': self.listing,
            'lane': self.listing.lane,
            'quantity': 5000,
            'destination_url': 'https://buyer.example.com/landing',
            'total_price': Decimal('10.00'),
            'platform_fee': Decimal('0.50'),
            'seller_payout': Decimal('9.50'),
            'status': status,
        }
        fields.update(kwargs)
        order = Order.objects.create(**fields)
        if funded:
            Escrow.objects.create(order=order, amount=order.total_price)
        return order


class MarketplaceTestCase(MarketplaceFixtures, TestCase):
    pass


class MarketplaceTransactionTestCase(MarketplaceFixtures, TransactionTestCase):
    """Real commits, for tests that run service calls on several threads."""

    def run_concurrently(self, *calls):
        """
        Start every call on its own thread behind a barrier so they hit the
        database together. Returns each call's result, or the exception it
        raised, in call order.
        """
        barrier = threading.Barrier(len(calls))
        outcomes = [None] * len(calls)

        def worker(index, call):
            try:
                barrier.wait()
                outcomes[index] = call()
            except Exception as e:
                outcomes[index] = e
            finally:
                connection.close()

        threads = [
            threading.Thread(target=worker, args=(index, call))
            for index, call in enumerate(calls)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return outcomes
