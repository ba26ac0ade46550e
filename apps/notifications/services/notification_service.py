"""Notification orchestration services"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.notifications.models import DELIVERY_EMAIL, Notification, NotificationTemplate
from apps.notifications.tasks import send_notification_email_task

from .template_renderer import DEFAULT_TEMPLATES, TemplateRenderer

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Renders a template for an event and stores an in-app notification.

    Delivery is best effort: any failure is logged at warning level and the
    caller carries on. Email delivery is handed to a Celery task when
    ``HRMS_NOTIFICATIONS["EMAIL_ENABLED"]`` is set.
    """

    def __init__(self, renderer: Optional[TemplateRenderer] = None):
        self.renderer = renderer or TemplateRenderer()

    def get_template(self, code: str) -> Optional[Dict[str, str]]:
        stored = NotificationTemplate.objects.filter(code=code, is_active=True).first()
        if stored is not None:
            return {
                'title': stored.title,
                'message': stored.message,
                'priority': stored.priority,
                'delivery_method': stored.delivery_method,
            }
        return DEFAULT_TEMPLATES.get(code)

    def notify(self, user, template: str, payload: Dict[str, Any] | None = None, *, sender=None) -> Optional[Notification]:
        payload = payload or {}
        try:
            definition = self.get_template(template)
            if definition is None:
                logger.warning("notification_template_missing template=%s", template)
                return None
            rendered = self.renderer.render(definition, payload)
            notification = Notification.objects.create(
                recipient=user,
                sender=sender,
                notification_type=template,
                title=rendered.title,
                message=rendered.message,
                data=payload,
                priority=rendered.priority,
                delivery_method=rendered.delivery_method,
            )
            if rendered.delivery_method == DELIVERY_EMAIL and self._email_enabled():
                send_notification_email_task.delay(str(notification.pk))
            else:
                notification.mark_sent()
            return notification
        except Exception:
            logger.warning(
                "notification_failed template=%s recipient=%s", template, getattr(user, 'pk', None), exc_info=True,
            )
            return None

    def notify_employees(self, template: str, employee_ids: Iterable, payload: Dict[str, Any] | None = None):
        """Notify the users linked to ``employee_ids`` once the current transaction commits."""
        employee_ids = [employee_id for employee_id in employee_ids if employee_id]
        if not employee_ids:
            return
        transaction.on_commit(lambda: self._deliver_to_employees(template, employee_ids, payload or {}))

    def _deliver_to_employees(self, template, employee_ids, payload):
        from apps.employees.models import Employee

        employees = Employee.objects.filter(pk__in=employee_ids, user__isnull=False).select_related('user')
        for employee in employees:
            if employee.user.is_active:
                self.notify(employee.user, template, payload)

    def mark_as_read(self, notification_id, user) -> bool:
        notification = Notification.objects.filter(pk=notification_id, recipient=user).first()
        if notification is None:
            return False
        notification.mark_read()
        return True

    def mark_all_as_read(self, user) -> int:
        return Notification.objects.filter(recipient=user, is_read=False).update(is_read=True, read_at=timezone.now())

    def unread_count(self, user) -> int:
        return Notification.objects.filter(recipient=user, is_read=False).count()

    @staticmethod
    def _email_enabled() -> bool:
        return bool(getattr(settings, 'HRMS_NOTIFICATIONS', {}).get('EMAIL_ENABLED', False))


notification_service = NotificationService()
