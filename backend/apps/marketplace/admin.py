"""
Marketplace admin configuration.
"""
from django.contrib import admin
from apps.marketplace.models import Listing


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = ['title', 'seller', 'lane', 'traffic_type', 'price', 'min_order', 'max_daily', 'is_active']
    list_filter = ['lane', 'traffic_type', 'is_active']
    search_fields = ['title', 'seller__display_name', 'seller__user__email']
    readonly_fields = ['id', 'created_at', 'updated_at']
