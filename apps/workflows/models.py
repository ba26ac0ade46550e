"""Workflow Models - Multi-level Approval Workflow Engine"""
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from apps.core.models import EnterpriseModel


ENTITY_TYPE_CHOICES = [
    ('leave', 'Leave'),
    ('loan', 'Loan'),
    ('expense', 'Expense'),
    ('purchase', 'Purchase'),
    ('custom', 'Custom'),
]


def default_max_approval_level():
    return settings.HRMS_APPROVAL.get('DEFAULT_MAX_APPROVAL_LEVEL', 2)


class ApprovalWorkflow(EnterpriseModel):
    """
    Approval chain for one entity type, optionally scoped to a department,
    a position and an amount range. Several active workflows may match the
    same request; ``WorkflowResolver`` picks one.
    """

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    entity_type = models.CharField(max_length=20, choices=ENTITY_TYPE_CHOICES, db_index=True)

    department = models.ForeignKey(
        'employees.Department',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='approval_workflows'
    )
    position = models.ForeignKey(
        'employees.Position',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='approval_workflows'
    )
    min_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    max_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)

    settings = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['entity_type', 'name']
        indexes = [
            models.Index(fields=['entity_type', 'is_active']),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        if self.min_amount is not None and self.max_amount is not None and self.min_amount > self.max_amount:
            raise ValidationError({'min_amount': 'Minimum amount cannot exceed maximum amount'})


class ApprovalStep(models.Model):
    """One stage of a workflow, with the rule that selects its approver."""

    APPROVER_SPECIFIC_USER = 'specific_user'
    APPROVER_DEPARTMENT_HEAD = 'department_head'
    APPROVER_POSITION_BASED = 'position_based'
    APPROVER_ROLE_BASED = 'role_based'
    APPROVER_ANY_MANAGER = 'any_manager'
    APPROVER_HR_MANAGER = 'hr_manager'
    APPROVER_FINANCE_MANAGER = 'finance_manager'

    APPROVER_TYPE_CHOICES = [
        (APPROVER_SPECIFIC_USER, 'Specific User'),
        (APPROVER_DEPARTMENT_HEAD, 'Department Head'),
        (APPROVER_POSITION_BASED, 'Position Based'),
        (APPROVER_ROLE_BASED, 'Role Based'),
        (APPROVER_ANY_MANAGER, 'Reporting Manager'),
        (APPROVER_HR_MANAGER, 'HR Manager'),
        (APPROVER_FINANCE_MANAGER, 'Finance Manager'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    workflow = models.ForeignKey(ApprovalWorkflow, on_delete=models.CASCADE, related_name='steps')

    step_order = models.PositiveSmallIntegerField(validators=[MinValueValidator(1)])
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    approver_type = models.CharField(max_length=30, choices=APPROVER_TYPE_CHOICES)
    approver = models.ForeignKey(
        'employees.Employee', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    position = models.ForeignKey(
        'employees.Position', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    role = models.ForeignKey(
        'authentication.Role', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    department = models.ForeignKey(
        'employees.Department', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )

    is_required = models.BooleanField(default=True)
    can_delegate = models.BooleanField(default=False)
    can_skip = models.BooleanField(default=False)
    auto_approve = models.BooleanField(default=False)
    auto_approve_after_hours = models.PositiveIntegerField(null=True, blank=True)

    settings = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['workflow', 'step_order']
        unique_together = ['workflow', 'step_order']

    def __str__(self):
        return f"{self.workflow.name} - Step {self.step_order}: {self.name}"

    @property
    def is_optional(self):
        return not self.is_required or self.can_skip

    def clean(self):
        required_reference = {
            self.APPROVER_SPECIFIC_USER: ('approver', self.approver_id),
            self.APPROVER_POSITION_BASED: ('position', self.position_id),
            self.APPROVER_ROLE_BASED: ('role', self.role_id),
        }.get(self.approver_type)
        if required_reference and not required_reference[1]:
            field = required_reference[0]
            raise ValidationError({field: f'{field} is required for approver type {self.approver_type}'})
        if self.auto_approve and not self.auto_approve_after_hours:
            raise ValidationError({'auto_approve_after_hours': 'Required when auto approve is enabled'})


class ApprovableModel(EnterpriseModel):
    """
    Approval state shared by leave and loan requests.

    ``approval_level`` counts completed steps. It starts at 0 and the request
    is approved when it reaches ``max_approval_level``. ``version`` is bumped
    on every transition and checked on write.
    """

    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_CANCELLED = 'cancelled'

    current_approver = models.ForeignKey(
        'employees.Employee',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(app_label)s_%(class)s_to_approve'
    )
    approval_level = models.PositiveSmallIntegerField(default=0)
    max_approval_level = models.PositiveSmallIntegerField(default=default_max_approval_level)
    workflow = models.ForeignKey(
        ApprovalWorkflow,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(app_label)s_%(class)s_requests'
    )
    current_step_started_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)
    submitted_at = models.DateTimeField(null=True, blank=True)
    decided_at = models.DateTimeField(null=True, blank=True)

    # Fields written by a transition, in addition to the concrete model's own
    APPROVAL_FIELDS = (
        'status', 'current_approver', 'approval_level', 'max_approval_level',
        'workflow', 'current_step_started_at', 'decided_at',
    )

    class Meta:
        abstract = True

    @property
    def is_pending(self):
        return self.status == self.STATUS_PENDING
