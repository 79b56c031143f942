"""
Marketplace URL patterns.
"""
from django.urls import path
from apps.marketplace import views

app_name = 'marketplace'

urlpatterns = [
    path('listings/', views.listing_list_create, name='listing-list-create'),
    path('listings/<uuid:pk>/', views.listing_detail, name='listing-detail'),
]
