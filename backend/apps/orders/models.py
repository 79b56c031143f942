"""
Orders models - Order state machine, Escrow ledger record, state audit trail.
"""
import uuid
from decimal import Decimal
from django.db import models
from django.core.validators import MinValueValidator
from apps.accounts.models import User, Lane


class Order(models.Model):
    """
    Core order model with state machine.
    Retained after reaching a terminal state for audit.
    """
    # Order states
    PENDING = 'PENDING'
    ACTIVE = 'ACTIVE'
    COMPLETED = 'COMPLETED'
    DISPUTED = 'DISPUTED'
    CANCELLED = 'CANCELLED'

    STATE_CHOICES = [
        (PENDING, 'Pending'),
        (ACTIVE, 'Active'),
        (COMPLETED, 'Completed'),
        (DISPUTED, 'Disputed'),
        (CANCELLED, 'Cancelled'),
    ]

    TERMINAL_STATES = (COMPLETED, CANCELLED)
    LIVE_STATES = (PENDING, ACTIVE, DISPUTED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Relations
    buyer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,  # Don't delete users with orders
        related_name='purchases'
    )
    seller = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='sales'
    )
    listing = models.ForeignKey(
        'marketplace.Listing',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders'
    )

    # Snapshot of listing.lane at creation; never updated
    lane = models.CharField(max_length=10, choices=Lane.choices)

    # Order details
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    destination_url = models.URLField(max_length=500)
    tracking_url = models.URLField(max_length=500, blank=True, default='')

    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Total amount paid by buyer"
    )
    platform_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Platform commission"
    )
    seller_payout = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Amount seller receives after platform fee"
    )

    status = models.CharField(
        max_length=20,
        choices=STATE_CHOICES,
        default=PENDING,
        db_index=True
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    funded_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        indexes = [
            models.Index(fields=['buyer', 'status', '-created_at'], name='order_buyer_status_idx'),
            models.Index(fields=['seller', 'status', '-created_at'], name='order_seller_status_idx'),
            models.Index(fields=['status', '-created_at'], name='order_status_created_idx'),
        ]

    def __str__(self):
        return f"Order {self.id} - {self.status}"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATES

    def is_buyer(self, user):
        """Check if user is the buyer."""
        return self.buyer_id == user.id

    def is_seller(self, user):
        """Check if user is the seller."""
        return self.seller_id == user.id

    def is_participant(self, user):
        """Check if user is buyer or seller."""
        return self.is_buyer(user) or self.is_seller(user)

    def get_escrow(self):
        """Escrow record or None (deleted on refund, absent before funding)."""
        return Escrow.objects.filter(order_id=self.id).first()

    def has_open_dispute(self):
        from apps.disputes.models import Dispute
        return Dispute.objects.filter(order_id=self.id, status=Dispute.OPEN).exists()


class OrderStateLog(models.Model):
    """
    Audit trail for order state transitions.
    Logs every state change with reason and IP.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='state_logs'
    )
    from_state = models.CharField(max_length=20)
    to_state = models.CharField(max_length=20)
    changed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        help_text="User who triggered change (null for system)"
    )
    reason = models.TextField(blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'Order State Log'
        verbose_name_plural = 'Order State Logs'
        indexes = [
            models.Index(fields=['order', '-created_at'], name='orderlog_order_created_idx'),
        ]

    def __str__(self):
        return f"{self.order_id}: {self.from_state} → {self.to_state}"


class Escrow(models.Model):
    """
    Ledger record of funds held for one order.
    Created once when the order is funded. `released` only ever goes
    False -> True. A refund deletes the record instead of flagging it.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField(
        Order,
        on_delete=models.PROTECT,
        related_name='escrow'
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount held in escrow"
    )
    currency = models.CharField(max_length=3, default='USD')

    released = models.BooleanField(default=False, db_index=True)
    released_at = models.DateTimeField(null=True, blank=True)
    released_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text="Admin who forced the release (null for buyer/system release)"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Escrow'
        verbose_name_plural = 'Escrows'

    def __str__(self):
        state = 'RELEASED' if self.released else 'HOLDING'
        return f"Escrow for Order {self.order_id} - {state}"
