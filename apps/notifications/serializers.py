"""Notification Serializers"""

from rest_framework import serializers

from .models import Notification, NotificationTemplate


class NotificationTemplateSerializer(serializers.ModelSerializer):
    class Meta:
        model = NotificationTemplate
        fields = [
            'id', 'code', 'title', 'message', 'priority', 'delivery_method',
            'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class NotificationSerializer(serializers.ModelSerializer):
    sender_email = serializers.EmailField(source='sender.email', read_only=True, default=None)

    class Meta:
        model = Notification
        fields = [
            'id', 'recipient', 'sender', 'sender_email', 'notification_type',
            'title', 'message', 'data', 'priority', 'delivery_method',
            'is_read', 'read_at', 'is_sent', 'sent_at', 'expires_at', 'created_at',
        ]
        read_only_fields = fields
