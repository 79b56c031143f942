from django.urls import path
from .views import (
    me_view,
    create_seller_profile,
    approve_seller,
    ban_user,
    unban_user,
)

app_name = "accounts"

urlpatterns = [
    # User profile
    path("me/", me_view, name="me"),

    # Seller onboarding
    path("seller-profile/", create_seller_profile, name="seller_profile"),

    # Admin actions
    path("sellers/approve/", approve_seller, name="approve_seller"),
    path("ban/<int:user_id>/", ban_user, name="ban_user"),
    path("unban/<int:user_id>/", unban_user, name="unban_user"),
]
