"""Notifications Admin"""
from django.contrib import admin

from .models import Notification, NotificationTemplate


@admin.register(NotificationTemplate)
class NotificationTemplateAdmin(admin.ModelAdmin):
    list_display = ['code', 'title', 'priority', 'delivery_method', 'is_active']
    list_filter = ['delivery_method', 'is_active']
    search_fields = ['code', 'title']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['recipient', 'notification_type', 'title', 'priority', 'is_read', 'is_sent', 'created_at']
    list_filter = ['notification_type', 'priority', 'is_read', 'is_sent']
    search_fields = ['title', 'recipient__email']
    raw_id_fields = ['recipient', 'sender']
