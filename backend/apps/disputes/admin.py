"""
Dispute admin configuration.
"""
from django.contrib import admin
from apps.disputes.models import Dispute


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'opened_by', 'status', 'resolved_by', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['id', 'order__id', 'reason']
    readonly_fields = [
        'id', 'order', 'opened_by', 'reason', 'evidence', 'status',
        'resolution', 'refund_buyer', 'resolved_by', 'created_at',
        'updated_at', 'resolved_at'
    ]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
