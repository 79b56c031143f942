"""
Marketplace models - traffic listings.
"""
import uuid
from decimal import Decimal, ROUND_HALF_UP
from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from apps.accounts.models import SellerProfile, Lane, TrafficType


class Listing(models.Model):
    """
    Seller listing: a lane + traffic type offered at a price per 1000 visitors.
    Referenced (not owned) by orders.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    seller = models.ForeignKey(
        SellerProfile,
        on_delete=models.CASCADE,
        related_name='listings'
    )

    title = models.CharField(max_length=100)
    description = models.TextField(max_length=1000, blank=True)

    lane = models.CharField(max_length=10, choices=Lane.choices, db_index=True)
    traffic_type = models.CharField(max_length=10, choices=TrafficType.choices, db_index=True)

    # Pricing
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01')), MaxValueValidator(Decimal('10000'))],
        help_text="Price per 1000 visitors"
    )
    min_order = models.PositiveIntegerField(
        validators=[MinValueValidator(100)],
        help_text="Minimum visitors per order"
    )
    max_daily = models.PositiveIntegerField(
        validators=[MinValueValidator(1000)],
        help_text="Maximum visitors deliverable per day"
    )

    is_active = models.BooleanField(default=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'Listing'
        verbose_name_plural = 'Listings'
        indexes = [
            models.Index(fields=['lane', 'is_active', '-created_at'], name='listing_lane_active_idx'),
            models.Index(fields=['seller', 'is_active'], name='listing_seller_active_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(min_order__lte=models.F('max_daily')),
                name='listing_min_order_lte_max_daily',
            ),
        ]

    def __str__(self):
        return f"{self.title} ({self.lane})"

    @property
    def seller_user_id(self):
        return self.seller.user_id

    def accepts_quantity(self, quantity):
        """Check quantity is within [min_order, max_daily]."""
        return self.min_order <= quantity <= self.max_daily

    def calculate_total_price(self, quantity):
        """Total for a quantity of visitors; price is per 1000."""
        return (self.price * quantity / 1000).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
