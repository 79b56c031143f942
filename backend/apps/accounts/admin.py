from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.forms import ReadOnlyPasswordHashField
from django import forms
from .models import User, SellerProfile


# ============================
# User Admin Forms
# ============================

class UserCreationForm(forms.ModelForm):
    """Form for creating new users in admin."""
    password1 = forms.CharField(label='Password', widget=forms.PasswordInput)
    password2 = forms.CharField(label='Password confirmation', widget=forms.PasswordInput)

    class Meta:
        model = User
        fields = ('email', 'role', 'lane_access')

    def clean_password2(self):
        password1 = self.cleaned_data.get("password1")
        password2 = self.cleaned_data.get("password2")
        if password1 and password2 and password1 != password2:
            raise forms.ValidationError("Passwords don't match")
        return password2

    def save(self, commit=True):
        user = super().save(commit=False)
        user.set_password(self.cleaned_data["password1"])
        if commit:
            user.save()
        return user


class UserChangeForm(forms.ModelForm):
    password = ReadOnlyPasswordHashField(label="Password")

    class Meta:
        model = User
        fields = '__all__'


# ============================
# User Admin
# ============================

@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin for User model.
    Approval and bans are read-only here; they go through the admin API
    so every decision lands in the admin action log.
    """
    form = UserChangeForm
    add_form = UserCreationForm

    list_display = ('email', 'role', 'lane_access', 'is_approved', 'is_banned', 'is_staff', 'date_joined')
    list_filter = ('role', 'lane_access', 'is_approved', 'is_banned', 'is_staff')
    search_fields = ('email',)
    ordering = ('-date_joined',)

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Marketplace', {'fields': ('role', 'lane_access', 'is_approved')}),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
        }),
        ('Ban info', {
            'fields': ('is_banned', 'ban_reason', 'banned_at'),
            'classes': ('collapse',),
        }),
        ('Important dates', {
            'fields': ('date_joined', 'updated_at', 'last_login'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'role', 'lane_access', 'password1', 'password2'),
        }),
    )

    readonly_fields = (
        'is_approved', 'is_banned', 'ban_reason', 'banned_at',
        'date_joined', 'updated_at', 'last_login'
    )


@admin.register(SellerProfile)
class SellerProfileAdmin(admin.ModelAdmin):
    list_display = ('display_name', 'user', 'compliance_agreed', 'reputation_clean', 'reputation_private', 'created_at')
    search_fields = ('display_name', 'user__email')
    list_filter = ('compliance_agreed', 'created_at')
    readonly_fields = ('reputation_clean', 'reputation_private', 'created_at', 'updated_at')
