"""Remaining leave balance per type"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Dict

from apps.core.exceptions import DomainError

from .calculations import days_in_year, years_spanned

logger = logging.getLogger(__name__)


class LeaveBalanceService:
    """
    ``remaining = entitlement - (approved + pending days in the year)``.

    Leave types without an entitlement are unlimited and left out of the
    result. The remaining figure is never clamped at zero.
    """

    def __init__(self, repository, entitlement_provider):
        self.repository = repository
        self.entitlement_provider = entitlement_provider

    def compute_balance(self, employee_id, year: int, exclude_id=None) -> Dict[str, Decimal]:
        entitlements = self.entitlement_provider.entitlements(employee_id, year)
        used = {leave_type: Decimal(0) for leave_type in entitlements}
        leaves = self.repository.query_overlapping(
            employee_id, date(year, 1, 1), date(year, 12, 31), exclude_id=exclude_id
        )
        for leave in leaves:
            if leave.leave_type in used:
                used[leave.leave_type] += days_in_year(leave.start_date, leave.end_date, leave.is_half_day, year)
        return {
            leave_type: Decimal(entitlement) - used[leave_type]
            for leave_type, entitlement in entitlements.items()
        }

    def ensure_available(self, employee_id, leave_type, start_date, end_date, is_half_day=False, exclude_id=None):
        """Raise ``DomainError`` if the request needs more days than remain in any year it touches."""
        for year in years_spanned(start_date, end_date):
            remaining = self.compute_balance(employee_id, year, exclude_id=exclude_id).get(leave_type)
            if remaining is None:
                continue
            requested = days_in_year(start_date, end_date, is_half_day, year)
            if requested > remaining:
                logger.info(
                    "leave_balance_exceeded employee=%s type=%s year=%s requested=%s remaining=%s",
                    employee_id, leave_type, year, requested, remaining,
                )
                raise DomainError(
                    f"Insufficient {leave_type} leave balance for {year}: "
                    f"{remaining} day(s) remaining, {requested} requested",
                    details={
                        'leave_type': leave_type,
                        'year': year,
                        'remaining': str(remaining),
                        'requested': str(requested),
                    },
                )
