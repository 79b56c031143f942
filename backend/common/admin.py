"""
Admin panel configuration for the admin decision log.
"""
from django.contrib import admin
from django.utils.html import format_html
from common.models import AdminActionLog


@admin.register(AdminActionLog)
class AdminActionLogAdmin(admin.ModelAdmin):
    """Read-only view of admin decisions"""

    list_display = ['admin_email', 'action_display', 'target_email', 'ip_address', 'timestamp']
    list_filter = ['action', 'timestamp']
    search_fields = ['admin_user__email', 'target_user__email', 'ip_address']
    readonly_fields = ['admin_user', 'action', 'target_user', 'details', 'ip_address', 'timestamp']
    date_hierarchy = 'timestamp'

    fieldsets = (
        ('Decision', {
            'fields': ('admin_user', 'action', 'target_user')
        }),
        ('Details', {
            'fields': ('details', 'ip_address', 'timestamp')
        }),
    )

    @admin.display(description='Admin', ordering='admin_user__email')
    def admin_email(self, obj):
        return obj.admin_user.email

    @admin.display(description='Target User', ordering='target_user__email')
    def target_email(self, obj):
        return obj.target_user.email if obj.target_user else '-'

    @admin.display(description='Action', ordering='action')
    def action_display(self, obj):
        colors = {
            AdminActionLog.Action.BAN_USER: '#DC3545',
            AdminActionLog.Action.REVOKE_SELLER: '#DC3545',
            AdminActionLog.Action.UNBAN_USER: '#28A745',
            AdminActionLog.Action.APPROVE_SELLER: '#28A745',
            AdminActionLog.Action.RELEASE_ESCROW: '#FFC107',
        }
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            colors.get(obj.action, '#17A2B8'),
            obj.get_action_display()
        )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
