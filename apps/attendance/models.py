"""
Attendance Models - Shifts, shift assignments and daily attendance
"""

from datetime import date

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator
from django.db import models

from apps.core.models import EnterpriseModel

from .calculations import compute_hours, shift_duration_hours


class Shift(EnterpriseModel):
    """Work shift definition. A shift whose end is not after its start wraps midnight."""

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)

    start_time = models.TimeField()
    end_time = models.TimeField()
    break_minutes = models.PositiveSmallIntegerField(default=60)
    grace_minutes = models.PositiveSmallIntegerField(default=15)

    total_hours = models.DecimalField(max_digits=4, decimal_places=2, default=0, editable=False)

    class Meta:
        ordering = ['start_time', 'name']

    def __str__(self):
        return f"{self.name} ({self.start_time} - {self.end_time})"

    @property
    def is_overnight(self):
        return self.end_time <= self.start_time

    def clean(self):
        if self.start_time is not None and self.end_time is not None and self.break_minutes is not None:
            if shift_duration_hours(self.start_time, self.end_time, self.break_minutes) <= 0:
                raise ValidationError({'break_minutes': 'Break must be shorter than the shift'})

    def save(self, *args, **kwargs):
        self.full_clean()
        self.total_hours = shift_duration_hours(self.start_time, self.end_time, self.break_minutes)
        super().save(*args, **kwargs)


class ShiftAssignment(EnterpriseModel):
    """Assign a shift to an employee from ``start_date``; a null ``end_date`` means ongoing."""

    employee = models.ForeignKey(
        'employees.Employee',
        on_delete=models.CASCADE,
        related_name='shift_assignments'
    )
    shift = models.ForeignKey(
        Shift,
        on_delete=models.PROTECT,
        related_name='assignments'
    )
    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)

    is_recurring = models.BooleanField(default=False)
    # Weekdays the shift applies to when recurring, Monday = 0
    recurring_days = models.JSONField(default=list, blank=True)

    assigned_by = models.ForeignKey(
        'employees.Employee',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-start_date']
        indexes = [
            models.Index(fields=['employee', 'start_date']),
        ]

    def __str__(self):
        return f"{self.employee_id} - {self.shift_id} (from {self.start_date})"

    def covers(self, on_date):
        if on_date < self.start_date or (self.end_date and on_date > self.end_date):
            return False
        if self.is_recurring and self.recurring_days:
            return on_date.weekday() in self.recurring_days
        return True

    def clean(self):
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError({'end_date': 'End date cannot be before start date'})
        if self.is_recurring:
            days = self.recurring_days or []
            if not isinstance(days, list) or any(not isinstance(day, int) or not 0 <= day <= 6 for day in days):
                raise ValidationError({'recurring_days': 'Recurring days must be weekday numbers 0-6'})

        if self.employee_id and self.start_date and self.is_active:
            window_end = self.end_date or date.max
            overlapping = ShiftAssignment.objects.filter(
                employee_id=self.employee_id,
                is_active=True,
                start_date__lte=window_end,
            ).filter(
                models.Q(end_date__isnull=True) | models.Q(end_date__gte=self.start_date)
            ).exclude(pk=self.pk)
            if overlapping.exists():
                raise ValidationError('Shift assignment overlaps with an existing assignment.')

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)


class AttendanceRecord(EnterpriseModel):
    """Daily attendance record. One per employee per date."""

    STATUS_PRESENT = 'present'
    STATUS_ABSENT = 'absent'
    STATUS_LATE = 'late'
    STATUS_EARLY_DEPARTURE = 'early_departure'
    STATUS_HALF_DAY = 'half_day'

    STATUS_CHOICES = [
        (STATUS_PRESENT, 'Present'),
        (STATUS_ABSENT, 'Absent'),
        (STATUS_LATE, 'Late'),
        (STATUS_EARLY_DEPARTURE, 'Early Departure'),
        (STATUS_HALF_DAY, 'Half Day'),
    ]

    TYPE_REGULAR = 'regular'
    RECORD_TYPE_CHOICES = [
        (TYPE_REGULAR, 'Regular'),
        ('overtime', 'Overtime'),
        ('holiday', 'Holiday'),
        ('weekend', 'Weekend'),
    ]

    employee = models.ForeignKey(
        'employees.Employee',
        on_delete=models.CASCADE,
        related_name='attendance_records'
    )
    shift = models.ForeignKey(
        Shift,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='attendance_records'
    )
    date = models.DateField(db_index=True)

    check_in = models.DateTimeField()
    check_out = models.DateTimeField(null=True, blank=True)

    location = models.JSONField(default=dict, blank=True)
    notes = models.TextField(blank=True)
    record_type = models.CharField(max_length=20, choices=RECORD_TYPE_CHOICES, default=TYPE_REGULAR)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PRESENT)

    # Calculated fields
    total_hours = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    overtime_hours = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    standard_hours = models.DecimalField(
        max_digits=4, decimal_places=2, default=8, validators=[MaxValueValidator(24)]
    )
    late_minutes = models.PositiveSmallIntegerField(default=0)

    class Meta:
        unique_together = ['employee', 'date']
        ordering = ['-date']
        indexes = [
            models.Index(fields=['date', 'status']),
        ]

    def __str__(self):
        return f"{self.employee_id} - {self.date}"

    def clean(self):
        if self.check_in and self.check_out and self.check_out <= self.check_in:
            raise ValidationError({'check_out': 'Check-out must be after check-in'})

    def save(self, *args, **kwargs):
        if self.check_in and self.check_out:
            self.total_hours, self.overtime_hours = compute_hours(self.check_in, self.check_out, self.standard_hours)
        return super().save(*args, **kwargs)
