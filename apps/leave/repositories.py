"""Persistence for leave requests and entitlements"""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional, Protocol, Sequence

from django.conf import settings

from apps.employees.models import Employee
from apps.workflows.repositories import ApprovableRepository, DjangoApprovableRepository

from .models import LeaveApproval, LeaveEntitlement, LeaveRequest


class LeaveRepository(ApprovableRepository, Protocol):
    def lock_employee(self, employee_id) -> Optional[object]:
        raise NotImplementedError

    def query_overlapping(self, employee_id, start_date, end_date, exclude_id=None) -> Sequence[LeaveRequest]:
        """Pending or approved leaves of the employee intersecting [start_date, end_date]."""
        raise NotImplementedError

    def add(self, leave) -> None:
        raise NotImplementedError


class EntitlementProvider(Protocol):
    def entitlements(self, employee_id, year: int) -> Dict[str, Decimal]:
        raise NotImplementedError


class DjangoLeaveRepository(DjangoApprovableRepository):
    model = LeaveRequest
    decision_model = LeaveApproval
    decision_fk = 'leave'
    transition_fields = ('approved_by', 'rejection_reason', 'cancellation_reason', 'cancelled_at')
    related = ('employee',)

    def lock_employee(self, employee_id):
        return Employee.objects.select_for_update().filter(pk=employee_id).first()

    def query_overlapping(self, employee_id, start_date, end_date, exclude_id=None):
        queryset = LeaveRequest.objects.filter(
            employee_id=employee_id,
            status__in=LeaveRequest.ACTIVE_STATUSES,
            start_date__lte=end_date,
            end_date__gte=start_date,
        )
        if exclude_id is not None:
            queryset = queryset.exclude(pk=exclude_id)
        return list(queryset.order_by('start_date'))

    def add(self, leave):
        leave.save()


class SettingsEntitlementProvider:
    """
    Yearly days per leave type from ``HRMS_LEAVE_ENTITLEMENTS``, overridden
    per employee by ``LeaveEntitlement`` rows.
    """

    def entitlements(self, employee_id, year):
        values = {
            leave_type: Decimal(str(days))
            for leave_type, days in getattr(settings, 'HRMS_LEAVE_ENTITLEMENTS', {}).items()
        }
        overrides = LeaveEntitlement.objects.filter(employee_id=employee_id, year=year, is_active=True)
        for entitlement in overrides:
            values[entitlement.leave_type] = entitlement.days
        return values
