"""
Tests for seller onboarding, seller approval and account bans.
"""
from django.contrib.auth import get_user_model
from rest_framework import status
from apps.accounts.models import SellerProfile
from apps.accounts.services.account_service import AccountService
from apps.accounts.services.seller_service import SellerService
from common.exceptions import (
    AlreadyExistsError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from common.models import AdminActionLog
from common.testing import MarketplaceTestCase

User = get_user_model()


class SellerProfileTestCase(MarketplaceTestCase):

    def setUp(self):
        super().setUp()
        self.new_seller = User.objects.create_seller(
            email='newseller@example.com',
            password='SellerPass123!'
        )

    def create_profile(self, user=None, **kwargs):
        fields = {
            'display_name': 'Native Ads Co',
            'traffic_types': ['NATIVE'],
            'allowed_lanes': ['CLEAN'],
            'compliance_agreed': True,
        }
        fields.update(kwargs)
        return SellerService.create_profile(user or self.new_seller, **fields)

    def test_create_profile(self):
        profile = self.create_profile(bio='Premium native placements')

        self.assertEqual(profile.user, self.new_seller)
        self.assertEqual(profile.traffic_types, ['NATIVE'])
        self.assertTrue(profile.compliance_agreed)
        self.new_seller.refresh_from_db()
        self.assertFalse(self.new_seller.is_approved)

    def test_profile_only_once(self):
        self.create_profile()

        with self.assertRaises(AlreadyExistsError):
            self.create_profile()

    def test_buyer_cannot_create_profile(self):
        with self.assertRaises(ForbiddenError):
            self.create_profile(user=self.buyer)

    def test_private_lane_needs_access(self):
        with self.assertRaises(ForbiddenError):
            self.create_profile(allowed_lanes=['CLEAN', 'PRIVATE'])

        self.new_seller.lane_access = 'PRIVATE'
        self.new_seller.save()
        profile = self.create_profile(allowed_lanes=['CLEAN', 'PRIVATE'])
        self.assertTrue(profile.allows_lane('PRIVATE'))

    def test_profile_validation(self):
        with self.assertRaises(ValidationError):
            self.create_profile(display_name='ab')
        with self.assertRaises(ValidationError):
            self.create_profile(traffic_types=[])
        with self.assertRaises(ValidationError):
            self.create_profile(traffic_types=['TELEPATHY'])
        with self.assertRaises(ValidationError):
            self.create_profile(allowed_lanes=['DARK'])
        with self.assertRaises(ValidationError):
            self.create_profile(compliance_agreed=False)

        self.assertFalse(SellerProfile.objects.filter(user=self.new_seller).exists())


class SellerApprovalTestCase(MarketplaceTestCase):

    def test_approve_seller(self):
        new_seller = User.objects.create_seller(email='pending@example.com', password='x')
        SellerProfile.objects.create(
            user=new_seller,
            display_name='Pending Seller',
            traffic_types=['EMAIL'],
            allowed_lanes=['CLEAN'],
            compliance_agreed=True
        )

        user = SellerService.approve_seller(self.admin, new_seller.id, True, notes='Docs checked')

        self.assertTrue(user.is_approved)
        log = AdminActionLog.objects.get(action=AdminActionLog.Action.APPROVE_SELLER)
        self.assertEqual(log.target_user, new_seller)
        self.assertEqual(log.details, {'notes': 'Docs checked'})

    def test_revoke_deactivates_listings(self):
        user = SellerService.approve_seller(self.admin, self.seller.id, False)

        self.assertFalse(user.is_approved)
        self.listing.refresh_from_db()
        self.assertFalse(self.listing.is_active)
        self.assertTrue(
            AdminActionLog.objects.filter(action=AdminActionLog.Action.REVOKE_SELLER).exists()
        )

    def test_only_admin_approves(self):
        with self.assertRaises(ForbiddenError):
            SellerService.approve_seller(self.seller, self.seller.id, True)

    def test_approve_requires_profile(self):
        new_seller = User.objects.create_seller(email='noprofile@example.com', password='x')

        with self.assertRaises(NotFoundError):
            SellerService.approve_seller(self.admin, new_seller.id, True)

    def test_approve_requires_seller_role(self):
        with self.assertRaises(ValidationError):
            SellerService.approve_seller(self.admin, self.buyer.id, True)

    def test_approve_unknown_user(self):
        with self.assertRaises(NotFoundError):
            SellerService.approve_seller(self.admin, 999999, True)

    def test_approve_malformed_user_id(self):
        with self.assertRaises(ValidationError):
            SellerService.approve_seller(self.admin, 'abc', True)


class BanTestCase(MarketplaceTestCase):

    def test_ban_and_unban(self):
        user, changed = AccountService.ban_user(self.admin, self.buyer.id, reason='Chargeback fraud')

        self.assertTrue(changed)
        self.assertTrue(user.is_banned)
        self.assertEqual(user.ban_reason, 'Chargeback fraud')
        self.assertIsNotNone(user.banned_at)

        user, changed = AccountService.ban_user(self.admin, self.buyer.id)
        self.assertFalse(changed)

        user, changed = AccountService.unban_user(self.admin, self.buyer.id)
        self.assertTrue(changed)
        self.assertFalse(user.is_banned)
        self.assertIsNone(user.ban_reason)

        self.assertEqual(
            list(
                AdminActionLog.objects
                .filter(target_user=self.buyer)
                .order_by('id')
                .values_list('action', flat=True)
            ),
            [AdminActionLog.Action.BAN_USER, AdminActionLog.Action.UNBAN_USER]
        )

    def test_cannot_ban_self_or_superuser(self):
        root = User.objects.create_superuser(email='root@example.com', password='x')

        with self.assertRaises(ForbiddenError):
            AccountService.ban_user(self.admin, self.admin.id)
        with self.assertRaises(ForbiddenError):
            AccountService.ban_user(self.admin, root.id)

    def test_malformed_user_id(self):
        with self.assertRaises(ValidationError):
            AccountService.ban_user(self.admin, 'abc')
        with self.assertRaises(ValidationError):
            AccountService.unban_user(self.admin, '1.5')

    def test_only_admin_bans(self):
        with self.assertRaises(ForbiddenError):
            AccountService.ban_user(self.seller, self.buyer.id)

    def test_banned_admin_loses_powers(self):
        self.admin.ban('Compromised account')

        with self.assertRaises(ForbiddenError):
            AccountService.unban_user(self.admin, self.buyer.id)


class AccountAPITestCase(MarketplaceTestCase):

    def test_me(self):
        self.authenticate(self.seller)

        response = self.client.get('/api/accounts/me/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'seller@example.com')
        self.assertTrue(response.data['has_seller_profile'])

    def test_me_requires_login(self):
        response = self.client.get('/api/accounts/me/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_seller_profile(self):
        user = User.objects.create_user(email='both@example.com', password='x', role='BOTH')
        self.authenticate(user)

        response = self.client.post('/api/accounts/seller-profile/', {
            'display_name': 'Both Ways',
            'traffic_types': ['SOCIAL'],
            'allowed_lanes': ['CLEAN'],
            'compliance_agreed': True,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['seller_profile']['display_name'], 'Both Ways')

        response = self.client.post('/api/accounts/seller-profile/', {
            'display_name': 'Both Ways',
            'traffic_types': ['SOCIAL'],
            'allowed_lanes': ['CLEAN'],
            'compliance_agreed': True,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_approve_endpoint(self):
        self.authenticate(self.buyer)
        response = self.client.post(
            '/api/accounts/sellers/approve/',
            {'user_id': self.seller.id, 'approved': False},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(self.admin)
        response = self.client.post(
            '/api/accounts/sellers/approve/',
            {'user_id': self.seller.id, 'approved': False},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['user']['is_approved'])

    def test_ban_endpoints(self):
        self.authenticate(self.admin)

        response = self.client.post(f'/api/accounts/ban/{self.buyer.id}/', {'reason': 'Spam'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'User banned successfully')

        self.buyer.refresh_from_db()
        self.authenticate(self.buyer)
        response = self.client.get('/api/accounts/me/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(self.admin)
        response = self.client.post(f'/api/accounts/unban/{self.buyer.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'User unbanned successfully')

    def test_ban_unknown_user(self):
        self.authenticate(self.admin)

        response = self.client.post('/api/accounts/ban/999999/', {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
