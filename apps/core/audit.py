"""Audit trail recording"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError, transaction

from .logging import get_correlation_id

logger = logging.getLogger(__name__)


def _jsonable(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if values is None:
        return None
    encoder = DjangoJSONEncoder()
    cleaned = {}
    for key, value in values.items():
        if value is None or isinstance(value, (str, int, float, bool, list, dict)):
            cleaned[key] = value
        elif isinstance(value, Decimal):
            cleaned[key] = str(value)
        else:
            try:
                cleaned[key] = encoder.default(value)
            except TypeError:
                cleaned[key] = str(value)
    return cleaned


class AuditService:
    """
    Writes ``AuditLog`` rows.

    Recording is fire-and-forget for callers: the insert runs in its own
    savepoint so a failure neither aborts the surrounding transaction nor
    propagates. Failures are logged with the payload so nothing is lost
    silently.
    """

    def record(
        self,
        *,
        actor,
        entity_type: str,
        record_id,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        action: str = 'update',
        request=None,
    ):
        from .models import AuditLog

        old_clean = _jsonable(old_values)
        new_clean = _jsonable(new_values)
        changed = sorted(
            key for key in set(old_clean or {}) | set(new_clean or {})
            if (old_clean or {}).get(key) != (new_clean or {}).get(key)
        )
        is_user = bool(actor is not None and getattr(actor, 'is_authenticated', False))
        try:
            with transaction.atomic():
                return AuditLog.objects.create(
                    actor=actor if is_user else None,
                    actor_email=getattr(actor, 'email', None) if is_user else None,
                    action=action,
                    entity_type=entity_type,
                    record_id=str(record_id),
                    old_values=old_clean,
                    new_values=new_clean,
                    changed_fields=changed,
                    ip_address=request.META.get('REMOTE_ADDR') if request else None,
                    user_agent=request.META.get('HTTP_USER_AGENT', '') if request else None,
                    request_id=get_correlation_id(),
                )
        except DatabaseError:
            logger.exception(
                "audit_write_failed action=%s entity=%s:%s old=%s new=%s",
                action, entity_type, record_id, old_clean, new_clean,
            )
            return None


audit_service = AuditService()
