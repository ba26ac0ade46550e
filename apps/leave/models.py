"""
Leave Models - Leave requests, per-step approvals and entitlements
"""

import uuid

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from apps.core.models import EnterpriseModel
from apps.workflows.models import ApprovableModel


LEAVE_TYPE_ANNUAL = 'annual'
LEAVE_TYPE_SICK = 'sick'
LEAVE_TYPE_UNPAID = 'unpaid'

LEAVE_TYPE_CHOICES = [
    (LEAVE_TYPE_ANNUAL, 'Annual'),
    (LEAVE_TYPE_SICK, 'Sick'),
    ('personal', 'Personal'),
    ('maternity', 'Maternity'),
    ('paternity', 'Paternity'),
    ('bereavement', 'Bereavement'),
    (LEAVE_TYPE_UNPAID, 'Unpaid'),
]


class LeaveRequest(ApprovableModel):
    """Leave application. Never deleted; cancellation is a status."""

    STATUS_CHOICES = [
        (ApprovableModel.STATUS_PENDING, 'Pending'),
        (ApprovableModel.STATUS_APPROVED, 'Approved'),
        (ApprovableModel.STATUS_REJECTED, 'Rejected'),
        (ApprovableModel.STATUS_CANCELLED, 'Cancelled'),
    ]
    # Statuses that still reserve days on the calendar
    ACTIVE_STATUSES = (ApprovableModel.STATUS_PENDING, ApprovableModel.STATUS_APPROVED)

    HALF_DAY_FIRST = 'first_half'
    HALF_DAY_SECOND = 'second_half'
    HALF_DAY_CHOICES = [
        (HALF_DAY_FIRST, 'First Half'),
        (HALF_DAY_SECOND, 'Second Half'),
    ]

    employee = models.ForeignKey(
        'employees.Employee',
        on_delete=models.PROTECT,
        related_name='leave_requests'
    )
    leave_type = models.CharField(max_length=20, choices=LEAVE_TYPE_CHOICES, db_index=True)

    start_date = models.DateField()
    end_date = models.DateField()
    is_half_day = models.BooleanField(default=False)
    half_day_type = models.CharField(max_length=20, choices=HALF_DAY_CHOICES, blank=True)
    start_time = models.TimeField(null=True, blank=True)
    end_time = models.TimeField(null=True, blank=True)
    total_days = models.DecimalField(max_digits=5, decimal_places=1)

    reason = models.TextField()
    attachments = models.JSONField(default=list, blank=True)
    emergency_contact = models.JSONField(null=True, blank=True)
    notes = models.TextField(blank=True)

    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=ApprovableModel.STATUS_PENDING, db_index=True
    )
    approved_by = models.ForeignKey(
        'employees.Employee',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    rejection_reason = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['employee', 'status']),
            models.Index(fields=['start_date', 'end_date']),
        ]

    def __str__(self):
        return f"{self.employee} - {self.get_leave_type_display()} ({self.start_date} to {self.end_date})"

    def clean(self):
        super().clean()
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError({'end_date': 'End date cannot be before start date'})
        if self.is_half_day:
            if self.start_date != self.end_date:
                raise ValidationError({'is_half_day': 'A half-day leave must start and end on the same date'})
            if self.half_day_type not in (self.HALF_DAY_FIRST, self.HALF_DAY_SECOND):
                raise ValidationError({'half_day_type': 'Choose first_half or second_half'})
        elif self.half_day_type:
            raise ValidationError({'half_day_type': 'Only allowed on half-day leave'})

    def overlaps(self, start_date, end_date):
        return (
            self.status in self.ACTIVE_STATUSES
            and self.start_date <= end_date
            and self.end_date >= start_date
        )


class LeaveApproval(models.Model):
    """One decision taken on one step of a leave request."""

    ACTION_APPROVED = 'approved'
    ACTION_REJECTED = 'rejected'
    ACTION_AUTO_APPROVED = 'auto_approved'
    ACTION_SKIPPED = 'skipped'
    ACTION_CHOICES = [
        (ACTION_APPROVED, 'Approved'),
        (ACTION_REJECTED, 'Rejected'),
        (ACTION_AUTO_APPROVED, 'Auto Approved'),
        (ACTION_SKIPPED, 'Skipped'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    leave = models.ForeignKey(LeaveRequest, on_delete=models.CASCADE, related_name='approvals')
    approver = models.ForeignKey(
        'employees.Employee',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='leave_decisions'
    )
    level = models.PositiveSmallIntegerField(validators=[MinValueValidator(1)])
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    comments = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['leave', 'level']
        unique_together = ['leave', 'level']

    def __str__(self):
        return f"{self.leave_id} L{self.level} {self.action}"


class LeaveEntitlement(EnterpriseModel):
    """Per-employee override of the yearly days allowed for a leave type."""

    employee = models.ForeignKey(
        'employees.Employee',
        on_delete=models.CASCADE,
        related_name='leave_entitlements'
    )
    leave_type = models.CharField(max_length=20, choices=LEAVE_TYPE_CHOICES)
    year = models.PositiveSmallIntegerField()
    days = models.DecimalField(max_digits=5, decimal_places=1, validators=[MinValueValidator(0)])
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-year', 'leave_type']
        unique_together = ['employee', 'leave_type', 'year']

    def __str__(self):
        return f"{self.employee} - {self.leave_type} {self.year}: {self.days}"
