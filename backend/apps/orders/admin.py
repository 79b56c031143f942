"""
Order admin configuration.
Read-only: every change goes through the services so it is audited.
"""
from django.contrib import admin
from apps.orders.models import Order, OrderStateLog, Escrow


class OrderStateLogInline(admin.TabularInline):
    model = OrderStateLog
    extra = 0
    readonly_fields = ['from_state', 'to_state', 'changed_by', 'reason', 'ip_address', 'created_at']
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'buyer', 'seller', 'lane', 'status', 'total_price', 'created_at']
    list_filter = ['status', 'lane', 'created_at']
    search_fields = ['id', 'buyer__email', 'seller__email']
    readonly_fields = [
        'id', 'buyer', 'seller', 'listing', 'lane', 'quantity',
        'destination_url', 'tracking_url', 'total_price', 'platform_fee',
        'seller_payout', 'status', 'created_at', 'updated_at', 'funded_at',
        'completed_at'
    ]
    inlines = [OrderStateLogInline]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Escrow)
class EscrowAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'amount', 'currency', 'released', 'released_at']
    list_filter = ['released', 'currency']
    search_fields = ['order__id']
    readonly_fields = [
        'id', 'order', 'amount', 'currency', 'released', 'released_at',
        'released_by', 'created_at'
    ]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
