"""Celery task to deliver notifications by email"""
from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from apps.notifications.models import Notification

logger = logging.getLogger(__name__)


@shared_task(bind=True, name='notifications.send_email', max_retries=3, default_retry_delay=60)
def send_notification_email_task(self, notification_id: str):
    notification = Notification.objects.select_related('recipient').filter(id=notification_id).first()
    if notification is None or notification.is_sent:
        return
    if notification.is_expired:
        logger.info("notification_expired id=%s", notification_id)
        return

    try:
        send_mail(
            subject=notification.title,
            message=notification.message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[notification.recipient.email],
            fail_silently=False,
        )
    except OSError as exc:
        logger.warning("notification_email_failed id=%s attempt=%s", notification_id, self.request.retries)
        raise self.retry(exc=exc)
    notification.mark_sent()
