from rest_framework import serializers

from .models import AuditLog


class AuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditLog
        fields = [
            'id', 'timestamp', 'actor', 'actor_email',
            'action', 'entity_type', 'record_id',
            'old_values', 'new_values', 'changed_fields',
            'ip_address', 'user_agent', 'request_id',
        ]
        read_only_fields = fields
