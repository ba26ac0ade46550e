"""
Authentication Admin
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import Role, User, UserIdentity, UserSession


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'full_name', 'is_active', 'is_staff', 'is_verified', 'last_login']
    list_filter = ['is_active', 'is_staff', 'is_superuser', 'is_verified', 'roles']
    search_fields = ['email', 'first_name', 'last_name']
    ordering = ['email']
    filter_horizontal = ['roles', 'groups', 'user_permissions']

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Personal Info', {'fields': ('first_name', 'last_name', 'phone')}),
        ('Roles', {'fields': ('roles',)}),
        ('Permissions', {'fields': ('is_active', 'is_staff', 'is_superuser', 'is_verified', 'groups', 'user_permissions')}),
        ('Important dates', {'fields': ('last_login', 'last_login_ip', 'date_joined', 'deactivated_at')}),
    )
    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'first_name', 'last_name', 'password1', 'password2', 'is_staff'),
        }),
    )
    readonly_fields = ['last_login', 'last_login_ip', 'date_joined', 'deactivated_at']


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'level', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name']


@admin.register(UserSession)
class UserSessionAdmin(admin.ModelAdmin):
    list_display = ['user', 'device_type', 'ip_address', 'is_active', 'created_at', 'expires_at']
    list_filter = ['is_active', 'device_type']
    search_fields = ['user__email', 'ip_address']
    readonly_fields = ['token_jti', 'created_at', 'last_activity', 'revoked_at']


@admin.register(UserIdentity)
class UserIdentityAdmin(admin.ModelAdmin):
    list_display = ['user', 'fingerprint_hash', 'risk_level', 'is_blocked', 'last_seen', 'activity_count']
    list_filter = ['risk_level', 'is_blocked', 'is_verified']
    search_fields = ['user__email', 'fingerprint_hash']
