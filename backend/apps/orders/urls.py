"""
Order URL patterns.
"""
from django.urls import path
from apps.orders import views

app_name = 'orders'

urlpatterns = [
    # Order CRUD
    path('', views.order_list_create, name='list-create'),
    path('<uuid:pk>/', views.order_detail, name='detail'),

    # State transitions
    path('<uuid:pk>/activate/', views.activate_order, name='activate'),
    path('<uuid:pk>/complete/', views.complete_order, name='complete'),
    path('<uuid:pk>/cancel/', views.cancel_order, name='cancel'),

    # Escrow
    path('<uuid:pk>/escrow/', views.escrow_status, name='escrow'),
    path('<uuid:pk>/escrow/release/', views.release_escrow, name='escrow-release'),
]
