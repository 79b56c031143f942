"""
Dispute URL patterns.
"""
from django.urls import path
from apps.disputes import views

app_name = 'disputes'

urlpatterns = [
    path('', views.dispute_list, name='list'),
    path('orders/<uuid:order_id>/create/', views.create_dispute, name='create'),
    path('<uuid:pk>/', views.dispute_detail, name='detail'),

    # Admin decisions
    path('<uuid:pk>/resolve/', views.resolve_dispute, name='resolve'),
]
