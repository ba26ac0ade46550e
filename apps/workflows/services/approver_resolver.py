"""Approver resolution logic for workflow steps"""
from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError

from apps.employees.models import Employee

if TYPE_CHECKING:  # pragma: no cover
    from apps.workflows.models import ApprovalStep

logger = logging.getLogger(__name__)


class ApproverResolver:
    """
    Determine the employee responsible for a workflow step.

    Every lookup returns an employee id or None. The requester is never
    returned as their own approver.
    """

    def approver_for_step(self, step: 'ApprovalStep', requester) -> Optional[object]:
        handler = {
            'specific_user': self._specific_user,
            'department_head': self._department_head,
            'position_based': self._position_based,
            'role_based': self._role_based,
            'any_manager': self._reporting_manager,
            'hr_manager': self._hr_manager,
            'finance_manager': self._finance_manager,
        }.get(step.approver_type)
        if handler is None:
            logger.warning("approver_type_unknown step=%s type=%s", step.pk, step.approver_type)
            return None
        employee = handler(step, requester)
        return self._exclude_requester(employee, requester)

    def manager_chain_approver(self, requester, level: int) -> Optional[object]:
        """Level 1 is the reporting manager, level 2 their manager, and so on."""
        current = requester
        for _ in range(level):
            current = getattr(current, 'reporting_manager', None)
            if current is None or not current.is_active:
                return None
        return self._exclude_requester(current, requester)

    @staticmethod
    def get_employee(employee_id):
        """The employee a step may be handed to, or None when the id is unknown."""
        try:
            return Employee.objects.select_related('user').filter(pk=employee_id).first()
        except (DjangoValidationError, ValueError):
            return None

    @staticmethod
    def is_available(employee) -> bool:
        user = getattr(employee, 'user', None)
        return bool(employee.is_active and (user is None or user.is_active))

    @staticmethod
    def _exclude_requester(employee, requester):
        if employee is None or employee.pk == getattr(requester, 'pk', None):
            return None
        return employee.pk

    @staticmethod
    def _active():
        return Employee.objects.filter(is_active=True, user__is_active=True)

    @staticmethod
    def _specific_user(step, requester):
        approver = step.approver
        return approver if approver and approver.is_active else None

    @staticmethod
    def _department_head(step, requester):
        department = step.department or getattr(requester, 'department', None)
        head = getattr(department, 'head', None) if department else None
        return head if head and head.is_active else None

    def _position_based(self, step, requester):
        if not step.position_id:
            return None
        queryset = self._active().filter(position_id=step.position_id).exclude(pk=requester.pk)
        department_id = step.department_id or requester.department_id
        if department_id:
            same_department = queryset.filter(department_id=department_id).order_by('employee_id').first()
            if same_department:
                return same_department
        return queryset.order_by('employee_id').first()

    def _employees_with_role(self, role_filter, requester):
        queryset = self._active().filter(**role_filter, user__roles__is_active=True).exclude(pk=requester.pk)
        if requester.department_id:
            same_department = queryset.filter(department_id=requester.department_id).order_by('employee_id').first()
            if same_department:
                return same_department
        return queryset.order_by('employee_id').first()

    def _role_based(self, step, requester):
        if not step.role_id:
            return None
        return self._employees_with_role({'user__roles': step.role_id}, requester)

    @staticmethod
    def _reporting_manager(step, requester):
        manager = requester.reporting_manager
        return manager if manager and manager.is_active else None

    def _hr_manager(self, step, requester):
        if requester.hr_manager and requester.hr_manager.is_active:
            return requester.hr_manager
        return self._employees_with_role({'user__roles__code': 'hr_manager'}, requester)

    def _finance_manager(self, step, requester):
        return self._employees_with_role({'user__roles__code': 'finance_manager'}, requester)
