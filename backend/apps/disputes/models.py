"""
Disputes models - one dispute per order, resolved only by an admin.
"""
import uuid
from django.db import models
from apps.accounts.models import User
from apps.orders.models import Order


class Dispute(models.Model):
    """
    Dispute ticket linked 1:1 to an order.
    Opened by the buyer or seller of an ACTIVE order; OPEN -> RESOLVED|REJECTED exactly once.
    """
    # Dispute status
    OPEN = 'OPEN'
    RESOLVED = 'RESOLVED'
    REJECTED = 'REJECTED'

    STATUS_CHOICES = [
        (OPEN, 'Open'),
        (RESOLVED, 'Resolved'),
        (REJECTED, 'Rejected'),
    ]

    TERMINAL_STATES = (RESOLVED, REJECTED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField(
        Order,
        on_delete=models.PROTECT,
        related_name='dispute'
    )
    opened_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='disputes_opened'
    )

    reason = models.TextField(max_length=1000)
    evidence = models.TextField(max_length=2000, blank=True)

    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=OPEN,
        db_index=True
    )

    # Admin ruling
    resolution = models.TextField(max_length=1000, blank=True)
    refund_buyer = models.BooleanField(
        null=True,
        blank=True,
        help_text="For RESOLVED disputes: True refunded the buyer, False released to seller"
    )
    resolved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='disputes_resolved'
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'Dispute'
        verbose_name_plural = 'Disputes'
        indexes = [
            models.Index(fields=['status', '-created_at'], name='dispute_status_created_idx'),
        ]

    def __str__(self):
        return f"Dispute {self.id} - {self.order_id}"

    @property
    def is_open(self):
        return self.status == self.OPEN
