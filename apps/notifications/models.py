"""Notification Models"""
from django.conf import settings
from django.db import models
from django.utils import timezone

from apps.core.models import EnterpriseModel

PRIORITY_CHOICES = [
    ('low', 'Low'),
    ('medium', 'Medium'),
    ('high', 'High'),
    ('urgent', 'Urgent'),
]

DELIVERY_IN_APP = 'in_app'
DELIVERY_EMAIL = 'email'
DELIVERY_METHOD_CHOICES = [
    (DELIVERY_IN_APP, 'In App'),
    (DELIVERY_EMAIL, 'Email'),
    ('sms', 'SMS'),
    ('push', 'Push'),
]


class NotificationTemplate(EnterpriseModel):
    """
    Stored override of a built-in notification template. ``title`` and
    ``message`` are Django template strings rendered with the event payload.
    """
    code = models.SlugField(max_length=50, unique=True)
    title = models.CharField(max_length=255)
    message = models.TextField()
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    delivery_method = models.CharField(max_length=10, choices=DELIVERY_METHOD_CHOICES, default=DELIVERY_IN_APP)

    class Meta:
        ordering = ['code']

    def __str__(self):
        return self.code


class Notification(EnterpriseModel):
    """Notification delivered to a user"""
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications'
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='sent_notifications'
    )
    notification_type = models.CharField(max_length=50, db_index=True)
    title = models.CharField(max_length=255)
    message = models.TextField()
    data = models.JSONField(default=dict, blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    delivery_method = models.CharField(max_length=10, choices=DELIVERY_METHOD_CHOICES, default=DELIVERY_IN_APP)

    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    is_sent = models.BooleanField(default=False)
    sent_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient', 'is_read']),
        ]

    def __str__(self):
        return f"{self.recipient_id} - {self.title[:50]}"

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at <= timezone.now()

    def mark_read(self):
        if self.is_read:
            return
        self.is_read = True
        self.read_at = timezone.now()
        self.save(update_fields=['is_read', 'read_at', 'updated_at'])

    def mark_sent(self):
        self.is_sent = True
        self.sent_at = timezone.now()
        self.save(update_fields=['is_sent', 'sent_at', 'updated_at'])
