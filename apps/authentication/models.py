"""
Authentication Models - User, roles, sessions and device identities
"""

import uuid
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin, BaseUserManager
from django.db import models
from django.utils import timezone


class UserManager(BaseUserManager):
    """Custom user manager"""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_verified', True)

        return self.create_user(email, password, **extra_fields)


class Role(models.Model):
    """Named bundle of permission codes (e.g. ``hr_manager`` → ``leave.view_all``)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.SlugField(max_length=50, unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    permissions = models.JSONField(default=list, blank=True)
    level = models.PositiveSmallIntegerField(default=1, help_text="Hierarchy level, higher is more senior")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-level', 'name']

    def __str__(self):
        return self.name

    def has_permission(self, permission_code):
        if '*' in self.permissions:
            return True
        module = permission_code.split('.', 1)[0]
        return permission_code in self.permissions or f'{module}.*' in self.permissions


class User(AbstractBaseUser, PermissionsMixin):
    """Login identity. Employees link to a user one-to-one."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    email = models.EmailField(unique=True, db_index=True)
    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    phone = models.CharField(max_length=20, blank=True)

    roles = models.ManyToManyField(Role, blank=True, related_name='users')

    # Status flags
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    is_verified = models.BooleanField(default=False)
    deactivated_at = models.DateTimeField(null=True, blank=True)

    last_login_ip = models.GenericIPAddressField(null=True, blank=True)
    date_joined = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name']

    class Meta:
        ordering = ['email']

    def __str__(self):
        return self.email

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def _active_roles(self):
        return self.roles.filter(is_active=True)

    def role_codes(self):
        return list(self._active_roles().values_list('code', flat=True))

    def has_role(self, role_code):
        return self._active_roles().filter(code=role_code).exists()

    def has_permission_for(self, permission_code):
        if self.is_superuser:
            return True
        return any(role.has_permission(permission_code) for role in self._active_roles())

    def deactivate(self):
        """Soft delete: the row stays for audit and foreign keys."""
        self.is_active = False
        self.deactivated_at = timezone.now()
        self.save(update_fields=['is_active', 'deactivated_at', 'updated_at'])
        self.sessions.filter(is_active=True).update(is_active=False, revoked_at=self.deactivated_at)


class UserSession(models.Model):
    """A login session, keyed by the refresh token's jti."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='sessions')

    token_jti = models.CharField(max_length=255, unique=True)

    # Device info
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    device_type = models.CharField(max_length=20, default='desktop')
    device_info = models.JSONField(default=dict, blank=True)

    # Status
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    last_activity = models.DateTimeField(auto_now=True)
    expires_at = models.DateTimeField()
    revoked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-last_activity']
        indexes = [
            models.Index(fields=['user', 'is_active']),
        ]

    def __str__(self):
        return f"{self.user.email} - {self.device_type}"

    def is_expired(self):
        return timezone.now() > self.expires_at

    def revoke(self):
        self.is_active = False
        self.revoked_at = timezone.now()
        self.save(update_fields=['is_active', 'revoked_at'])


class UserIdentity(models.Model):
    """A device/browser fingerprint seen for a user."""

    RISK_LOW = 'low'
    RISK_MEDIUM = 'medium'
    RISK_HIGH = 'high'
    RISK_CRITICAL = 'critical'
    RISK_CHOICES = [
        (RISK_LOW, 'Low'),
        (RISK_MEDIUM, 'Medium'),
        (RISK_HIGH, 'High'),
        (RISK_CRITICAL, 'Critical'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='identities')
    session = models.ForeignKey(
        UserSession, on_delete=models.SET_NULL, null=True, blank=True, related_name='identities'
    )

    fingerprint_hash = models.CharField(max_length=64, db_index=True)
    device_fingerprint = models.JSONField(default=dict)
    location = models.JSONField(default=dict, blank=True)

    risk_score = models.PositiveSmallIntegerField(default=0, help_text="0-100, from the login pattern")
    risk_level = models.CharField(max_length=10, choices=RISK_CHOICES, default=RISK_LOW)
    risk_reasons = models.JSONField(default=list, blank=True)
    is_verified = models.BooleanField(default=False)
    is_blocked = models.BooleanField(default=False)
    blocked_reason = models.CharField(max_length=255, blank=True)
    blocked_at = models.DateTimeField(null=True, blank=True)

    first_seen = models.DateTimeField(default=timezone.now)
    last_seen = models.DateTimeField(default=timezone.now)
    activity_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['-last_seen']
        unique_together = ['user', 'fingerprint_hash']
        verbose_name_plural = 'User identities'

    def __str__(self):
        return f"{self.user.email} {self.fingerprint_hash[:12]}"

    @staticmethod
    def level_for_score(score):
        if score >= 80:
            return UserIdentity.RISK_CRITICAL
        if score >= 60:
            return UserIdentity.RISK_HIGH
        if score >= 30:
            return UserIdentity.RISK_MEDIUM
        return UserIdentity.RISK_LOW

    def update_risk_score(self, score, reasons=()):
        self.risk_score = max(0, min(100, int(score)))
        self.risk_level = self.level_for_score(self.risk_score)
        self.risk_reasons = list(reasons)

    def block(self, reason):
        self.is_blocked = True
        self.blocked_reason = reason
        self.blocked_at = timezone.now()
        self.save(update_fields=['is_blocked', 'blocked_reason', 'blocked_at'])

    def unblock(self):
        self.is_blocked = False
        self.blocked_reason = ''
        self.blocked_at = None
        self.save(update_fields=['is_blocked', 'blocked_reason', 'blocked_at'])
