"""
Audit model for admin decisions (seller approval, bans, dispute rulings, escrow overrides).
"""
from django.db import models
from django.conf import settings


class AdminActionLog(models.Model):
    """Log all admin actions"""

    class Action(models.TextChoices):
        APPROVE_SELLER = 'APPROVE_SELLER', 'Approve Seller'
        REVOKE_SELLER = 'REVOKE_SELLER', 'Revoke Seller Approval'
        BAN_USER = 'BAN_USER', 'Ban User'
        UNBAN_USER = 'UNBAN_USER', 'Unban User'
        RESOLVE_DISPUTE = 'RESOLVE_DISPUTE', 'Resolve Dispute'
        REJECT_DISPUTE = 'REJECT_DISPUTE', 'Reject Dispute'
        RELEASE_ESCROW = 'RELEASE_ESCROW', 'Release Escrow'

    admin_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='admin_actions_performed',
        help_text="Admin who performed the action"
    )
    action = models.CharField(
        max_length=30,
        choices=Action.choices,
        db_index=True
    )
    target_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='admin_actions_received',
        help_text="User affected by the action (if applicable)"
    )
    details = models.JSONField(
        default=dict,
        help_text="Additional details about the action"
    )
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True
    )
    timestamp = models.DateTimeField(
        auto_now_add=True,
        db_index=True
    )

    class Meta:
        db_table = 'admin_action_log'
        verbose_name = 'Admin Action Log'
        verbose_name_plural = 'Admin Action Logs'
        indexes = [
            models.Index(fields=['admin_user', 'timestamp'], name='adminlog_admin_ts_idx'),
            models.Index(fields=['target_user', 'timestamp'], name='adminlog_target_ts_idx'),
            models.Index(fields=['action'], name='adminlog_action_idx'),
        ]
        ordering = ['-timestamp']

    def __str__(self):
        target = f"→ {self.target_user.email}" if self.target_user else ""
        return f"{self.admin_user.email} {self.get_action_display()} {target} @ {self.timestamp}"
