from django.db import models
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.utils import timezone
from .managers import UserManager


class Lane(models.TextChoices):
    """Traffic category. PRIVATE is restricted, CLEAN is open to everyone."""
    CLEAN = "CLEAN", "Clean Traffic"
    PRIVATE = "PRIVATE", "Private Traffic"


class TrafficType(models.TextChoices):
    EMAIL = "EMAIL", "Email"
    SOCIAL = "SOCIAL", "Social"
    NATIVE = "NATIVE", "Native"
    DISPLAY = "DISPLAY", "Display"
    PUSH = "PUSH", "Push"
    MIXED = "MIXED", "Mixed"


# ============================
# User Model
# ============================

class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom user model with email-based authentication.
    Carries marketplace role, lane access, seller approval and ban state.
    Role, approval and ban are only changed through admin actions.
    """

    class Role(models.TextChoices):
        BUYER = "BUYER", "Buyer"
        SELLER = "SELLER", "Seller"
        BOTH = "BOTH", "Buyer & Seller"
        ADMIN = "ADMIN", "Administrator"

    # Core fields
    email = models.EmailField(unique=True, db_index=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.BUYER, db_index=True)
    lane_access = models.CharField(max_length=10, choices=Lane.choices, default=Lane.CLEAN)

    # Account status
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    is_approved = models.BooleanField(
        default=False,
        help_text="Seller approved by an admin to list traffic"
    )

    # Ban system
    is_banned = models.BooleanField(default=False, db_index=True)
    ban_reason = models.TextField(blank=True, null=True)
    banned_at = models.DateTimeField(blank=True, null=True)

    # Timestamps
    date_joined = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    def __str__(self):
        return self.email

    @property
    def is_admin(self):
        return self.role == self.Role.ADMIN

    @property
    def is_seller_role(self):
        return self.role in (self.Role.SELLER, self.Role.BOTH)

    def ban(self, reason=""):
        """Ban this user with a reason."""
        self.is_banned = True
        self.ban_reason = reason
        self.banned_at = timezone.now()
        self.save(update_fields=['is_banned', 'ban_reason', 'banned_at', 'updated_at'])

    def unban(self):
        """Unban this user."""
        self.is_banned = False
        self.ban_reason = None
        self.banned_at = None
        self.save(update_fields=['is_banned', 'ban_reason', 'banned_at', 'updated_at'])


# ============================
# Seller Profile
# ============================

class SellerProfile(models.Model):
    """
    Seller-facing profile. One per user, created by the seller once.
    Allowed lanes and traffic types constrain which listings may be created.
    """

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="seller_profile")

    display_name = models.CharField(max_length=50)
    bio = models.TextField(blank=True, max_length=500)

    traffic_types = models.JSONField(
        default=list,
        help_text="Supported traffic types, e.g. [\"EMAIL\", \"PUSH\"]"
    )
    allowed_lanes = models.JSONField(
        default=list,
        help_text="Lanes this seller may list in"
    )
    compliance_agreed = models.BooleanField(default=False)

    # Reputation per lane
    reputation_clean = models.FloatField(default=0.0)
    reputation_private = models.FloatField(default=0.0)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.display_name

    def allows_lane(self, lane):
        return lane in self.allowed_lanes

    def supports_traffic_type(self, traffic_type):
        return traffic_type in self.traffic_types
