"""
Periodic sweep that auto-approves steps whose deadline has passed.
"""

import logging

from celery import shared_task
from django.db import OperationalError
from django.utils import timezone

from apps.core.exceptions import HRMSError

logger = logging.getLogger(__name__)


def _approval_services():
    from apps.leave.services import build_leave_approval_service
    from apps.payroll.services import build_loan_approval_service

    return [build_leave_approval_service(), build_loan_approval_service()]


def sweep_overdue(services=None, now=None):
    """
    Offer every pending request to its service's ``auto_approve``; steps that
    are not yet due are left alone. Returns a count per entity type.
    """
    now = now or timezone.now()
    results = {}
    for service in services if services is not None else _approval_services():
        counts = {'approved': 0, 'failed': 0}
        for entity in service.repository.query_pending():
            try:
                if service.auto_approve(entity.pk, now=now) is not None:
                    counts['approved'] += 1
            except HRMSError as exc:
                counts['failed'] += 1
                logger.warning(
                    "auto_approve_failed entity=%s:%s error=%s", service.entity_type, entity.pk, exc,
                )
        results[service.entity_type] = counts
    return results


@shared_task(
    bind=True,
    name='workflows.auto_approve_overdue',
    autoretry_for=(OperationalError,),
    retry_kwargs={'max_retries': 3},
    retry_backoff=True,
)
def auto_approve_overdue(self):
    results = sweep_overdue()
    logger.info("auto_approve_sweep results=%s", results)
    return results
