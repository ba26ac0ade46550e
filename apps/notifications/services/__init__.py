"""Notification service layer"""
from .notification_service import NotificationService, notification_service
from .template_renderer import DEFAULT_TEMPLATES, RenderedNotification, TemplateRenderer

__all__ = [
    'DEFAULT_TEMPLATES',
    'NotificationService',
    'RenderedNotification',
    'TemplateRenderer',
    'notification_service',
]
