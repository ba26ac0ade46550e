"""
Leave Services - submission, amendment and the leave approval chain
"""
from __future__ import annotations

import logging
from typing import Optional

from django.utils import timezone

from apps.core.audit import audit_service
from apps.core.exceptions import AuthorizationError, ConflictError, DomainError, NotFoundError, ValidationError
from apps.core.permissions import actor_employee_id
from apps.notifications.services import notification_service
from apps.workflows.repositories import DjangoWorkflowRepository
from apps.workflows.services import ApprovalStateMachine, ApproverResolver, WorkflowResolver

from ..models import LEAVE_TYPE_CHOICES, LeaveRequest
from ..repositories import DjangoLeaveRepository, SettingsEntitlementProvider
from .balance import LeaveBalanceService
from .calculations import compute_duration

logger = logging.getLogger(__name__)

LEAVE_TYPES = {code for code, _ in LEAVE_TYPE_CHOICES}

# Fields a requester may change while the leave is pending
EDITABLE_FIELDS = (
    'leave_type', 'start_date', 'end_date', 'is_half_day', 'half_day_type',
    'start_time', 'end_time', 'reason', 'attachments', 'emergency_contact', 'notes',
)

# Written when an amendment sends the leave back to its first approval step
RESTART_FIELDS = EDITABLE_FIELDS + (
    'total_days', 'submitted_at', 'approved_by',
) + LeaveRequest.APPROVAL_FIELDS


class LeaveApprovalService(ApprovalStateMachine):
    """Approval state machine for leave requests."""

    entity_type = 'leave'
    entity_label = 'Leave request'
    audit_fields = ('leave_type', 'start_date', 'end_date', 'total_days')

    def on_approved(self, entity, actor, now, payload):
        entity.approved_by_id = actor_employee_id(actor)

    def on_rejected(self, entity, actor, comments, now):
        entity.rejection_reason = comments

    def on_cancelled(self, entity, actor, comments, now):
        entity.cancellation_reason = comments
        entity.cancelled_at = now


class LeaveService:
    """
    Leave submission and amendment.

    Both run in one unit of work that locks the employee row first, so two
    concurrent requests for the same employee cannot both pass the overlap
    and balance checks.
    """

    def __init__(self, repository, balance_service, workflow_resolver, approval_service, audit, clock=timezone.now):
        self.repository = repository
        self.balance_service = balance_service
        self.workflow_resolver = workflow_resolver
        self.approval_service = approval_service
        self.audit = audit
        self.clock = clock

    def check_overlap(self, employee_id, start_date, end_date, exclude_id=None):
        return list(self.repository.query_overlapping(employee_id, start_date, end_date, exclude_id=exclude_id))

    def compute_balance(self, employee_id, year):
        return self.balance_service.compute_balance(employee_id, year)

    def submit_leave(
        self,
        employee,
        leave_type,
        start_date,
        end_date,
        reason,
        *,
        actor=None,
        is_half_day=False,
        half_day_type='',
        start_time=None,
        end_time=None,
        attachments=None,
        emergency_contact=None,
        notes='',
    ) -> LeaveRequest:
        self._validate(employee, leave_type, reason)
        self._ensure_not_in_past(start_date)
        total_days = compute_duration(start_date, end_date, is_half_day, half_day_type or None)

        with self.repository.unit_of_work():
            if self.repository.lock_employee(employee.pk) is None:
                raise NotFoundError('Employee', employee.pk)
            self._ensure_no_overlap(employee.pk, start_date, end_date)
            self.balance_service.ensure_available(employee.pk, leave_type, start_date, end_date, is_half_day)

            resolved = self.workflow_resolver.resolve(
                'leave',
                department_id=employee.department_id,
                position_id=employee.position_id,
                amount=total_days,
            )
            leave = LeaveRequest(
                employee=employee,
                leave_type=leave_type,
                start_date=start_date,
                end_date=end_date,
                is_half_day=is_half_day,
                half_day_type=half_day_type or '',
                start_time=start_time,
                end_time=end_time,
                total_days=total_days,
                reason=reason.strip(),
                attachments=attachments or [],
                emergency_contact=emergency_contact,
                notes=notes or '',
                created_by=actor if getattr(actor, 'pk', None) else None,
            )
            decisions = self.approval_service.start(leave, resolved, now=self.clock())
            self.repository.add(leave)
            self.approval_service.record_submission(leave, actor, decisions)

        logger.info(
            "leave_submitted leave=%s employee=%s type=%s days=%s workflow=%s levels=%s status=%s",
            leave.pk, employee.pk, leave_type, total_days, leave.workflow_id,
            leave.max_approval_level, leave.status,
        )
        return leave

    def update_leave(self, leave_id, actor, **changes) -> LeaveRequest:
        """
        Amend a pending leave nobody has approved yet. The workflow is resolved
        again for the new duration and the approval starts over at its first step.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot change {', '.join(sorted(unknown))}", details={'fields': sorted(unknown)})

        with self.repository.unit_of_work():
            leave = self.repository.get_for_update(leave_id)
            if leave is None:
                raise NotFoundError('Leave request', leave_id)
            if actor_employee_id(actor) != leave.employee_id:
                raise AuthorizationError("Only the requester can change a leave request")
            if leave.status != LeaveRequest.STATUS_PENDING:
                raise DomainError(f"Leave request is already {leave.status}", details={'status': leave.status})
            if self.repository.has_approvals(leave):
                raise DomainError(
                    "Leave request has already been approved at one step; cancel it and apply again",
                    details={'approval_level': leave.approval_level},
                )

            expected_version = leave.version
            previous_approver_id = leave.current_approver_id
            before = {name: getattr(leave, name) for name in EDITABLE_FIELDS + ('total_days',)}
            before['workflow_id'] = leave.workflow_id
            for name, value in changes.items():
                setattr(leave, name, value)
            if not leave.is_half_day:
                leave.half_day_type = ''
            self._validate(leave.employee, leave.leave_type, leave.reason)
            if 'start_date' in changes:
                self._ensure_not_in_past(leave.start_date)
            leave.total_days = compute_duration(
                leave.start_date, leave.end_date, leave.is_half_day, leave.half_day_type or None
            )

            self.repository.lock_employee(leave.employee_id)
            self._ensure_no_overlap(leave.employee_id, leave.start_date, leave.end_date, exclude_id=leave.pk)
            self.balance_service.ensure_available(
                leave.employee_id, leave.leave_type, leave.start_date, leave.end_date,
                leave.is_half_day, exclude_id=leave.pk,
            )

            resolved = self.workflow_resolver.resolve(
                'leave',
                department_id=leave.employee.department_id,
                position_id=leave.employee.position_id,
                amount=leave.total_days,
            )
            decisions = self.approval_service.start(leave, resolved, now=self.clock())
            self.repository.save(leave, expected_version=expected_version, fields=RESTART_FIELDS)
            self.approval_service.record_restart(leave, decisions, previous_approver_id)
            self.audit.record(
                actor=actor,
                entity_type='leave',
                record_id=leave.pk,
                action='update',
                old_values=before,
                new_values={name: getattr(leave, name) for name in before},
            )

        logger.info(
            "leave_updated leave=%s days=%s workflow=%s levels=%s status=%s",
            leave.pk, leave.total_days, leave.workflow_id, leave.max_approval_level, leave.status,
        )
        return leave

    # ------------------------------------------------------------------ internals
    @staticmethod
    def _validate(employee, leave_type, reason):
        if leave_type not in LEAVE_TYPES:
            raise ValidationError(f"Unknown leave type '{leave_type}'", field='leave_type')
        if not (reason or '').strip():
            raise ValidationError("A reason is required", field='reason')
        if employee is None or not employee.is_active:
            raise ValidationError("Employee is not active", field='employee')

    def _ensure_not_in_past(self, start_date):
        today = timezone.localdate(self.clock())
        if start_date < today:
            raise ValidationError("Leave cannot start in the past", field='start_date')

    def _ensure_no_overlap(self, employee_id, start_date, end_date, exclude_id=None):
        overlapping = self.check_overlap(employee_id, start_date, end_date, exclude_id=exclude_id)
        if overlapping:
            raise ConflictError(
                "Leave request overlaps an existing pending or approved leave",
                details={
                    'overlapping': [
                        {'id': str(leave.pk), 'start_date': str(leave.start_date), 'end_date': str(leave.end_date)}
                        for leave in overlapping
                    ]
                },
            )


def build_leave_approval_service(repository=None) -> LeaveApprovalService:
    return LeaveApprovalService(
        repository=repository or DjangoLeaveRepository(),
        workflow_repository=DjangoWorkflowRepository(),
        approver_resolver=ApproverResolver(),
        audit=audit_service,
        notifier=notification_service,
    )


def build_leave_service(repository: Optional[DjangoLeaveRepository] = None, clock=timezone.now) -> LeaveService:
    repository = repository or DjangoLeaveRepository()
    return LeaveService(
        repository=repository,
        balance_service=LeaveBalanceService(repository, SettingsEntitlementProvider()),
        workflow_resolver=WorkflowResolver(DjangoWorkflowRepository()),
        approval_service=build_leave_approval_service(repository),
        audit=audit_service,
        clock=clock,
    )
