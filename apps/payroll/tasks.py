"""
Payroll Background Tasks
"""

import logging

from celery import shared_task
from django.db import OperationalError

from .services import build_payroll_service, previous_pay_period

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name='payroll.generate_monthly',
    autoretry_for=(OperationalError,),
    retry_kwargs={'max_retries': 3},
    retry_backoff=True,
)
def generate_monthly_payroll(self, pay_period: str = None):
    """
    Draft payrolls for ``pay_period`` (default: the month that just ended).
    Already generated employees are skipped, so a retry is safe.
    """
    pay_period = pay_period or previous_pay_period()
    summary = build_payroll_service().generate_for_period(pay_period)
    logger.info(
        "payroll_monthly_task period=%s created=%s failed=%s",
        pay_period, len(summary['created']), len(summary['failed']),
    )
    return {
        'pay_period': pay_period,
        'created': len(summary['created']),
        'skipped': summary['skipped'],
        'failed': len(summary['failed']),
    }
