"""
Core Models - Base classes for all HRMS models
"""

import uuid
from django.db import models
from django.conf import settings
from django.utils import timezone


class TimeStampedModel(models.Model):
    """Abstract base model with timestamps"""

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class SoftDeleteManager(models.Manager):
    """Manager that filters out soft-deleted objects"""

    def get_queryset(self):
        return super().get_queryset().filter(is_deleted=False)

    def all_with_deleted(self):
        return super().get_queryset()

    def deleted_only(self):
        return super().get_queryset().filter(is_deleted=True)


class SoftDeleteModel(models.Model):
    """Abstract model with soft delete capability"""

    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_deleted'
    )

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        abstract = True

    def delete(self, using=None, keep_parents=False, hard_delete=False, deleted_by=None):
        if hard_delete:
            return super().delete(using=using, keep_parents=keep_parents)
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.deleted_by = deleted_by
        fields = ['is_deleted', 'deleted_at', 'deleted_by']
        if hasattr(self, 'is_active'):
            self.is_active = False
            fields.append('is_active')
        self.save(update_fields=fields)

    def restore(self):
        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None
        fields = ['is_deleted', 'deleted_at', 'deleted_by']
        if hasattr(self, 'is_active'):
            self.is_active = True
            fields.append('is_active')
        self.save(update_fields=fields)


class AuditModel(models.Model):
    """Abstract model with audit fields"""

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_created'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_updated'
    )

    class Meta:
        abstract = True


class EnterpriseModel(TimeStampedModel, AuditModel):
    """
    Base for domain records: UUID PK, timestamps, audit fields and an
    ``is_active`` flag. Records built on this base are never soft-deleted;
    their lifecycle is carried by a status field.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        abstract = True


class SoftDeleteEnterpriseModel(EnterpriseModel, SoftDeleteModel):
    """Enterprise base for master data that supports soft delete."""

    class Meta:
        abstract = True


class AuditLog(models.Model):
    """Append-only audit trail of state changes."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    # Actor
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_entries',
    )
    actor_email = models.EmailField(null=True, blank=True)

    # Action info
    action = models.CharField(max_length=50, db_index=True)
    entity_type = models.CharField(max_length=100, db_index=True)
    record_id = models.CharField(max_length=100, db_index=True)

    # Change data
    old_values = models.JSONField(null=True, blank=True)
    new_values = models.JSONField(null=True, blank=True)
    changed_fields = models.JSONField(default=list, blank=True)

    # Request context
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(null=True, blank=True)
    request_id = models.CharField(max_length=100, null=True, blank=True)

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['actor', 'timestamp']),
            models.Index(fields=['entity_type', 'record_id']),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_type}:{self.record_id} by {self.actor_email or 'system'}"

    def delete(self, *args, **kwargs):
        raise RuntimeError("Audit log entries are append-only")
