"""
Attendance services: check-in, check-out and shift lookup.

One record per employee per date is guaranteed by the (employee, date)
unique constraint; a concurrent second check-in surfaces as ``ConflictError``.
"""
from __future__ import annotations

import logging
from calendar import monthrange
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from apps.core.audit import audit_service
from apps.core.exceptions import ConflictError, NotFoundError, ValidationError

from ..calculations import minutes_late, shift_window
from ..models import AttendanceRecord, Shift, ShiftAssignment

logger = logging.getLogger(__name__)


def default_standard_hours() -> Decimal:
    return Decimal(str(getattr(settings, 'HRMS_ATTENDANCE', {}).get('STANDARD_HOURS', '8')))


class ShiftService:
    """Shift lookup and assignment"""

    @staticmethod
    def active_shift_for(employee, on_date: Optional[date] = None) -> Optional[Shift]:
        """The shift an active assignment gives ``employee`` on ``on_date``, latest assignment first."""
        on_date = on_date or timezone.localdate()
        assignments = (
            ShiftAssignment.objects.filter(
                employee=employee,
                is_active=True,
                shift__is_active=True,
                start_date__lte=on_date,
            )
            .filter(Q(end_date__isnull=True) | Q(end_date__gte=on_date))
            .select_related('shift')
            .order_by('-start_date')
        )
        for assignment in assignments:
            if assignment.covers(on_date):
                return assignment.shift
        return None

    @staticmethod
    def assign(employee, shift, start_date, *, end_date=None, is_recurring=False, recurring_days=None,
               assigned_by=None, notes='', actor=None) -> ShiftAssignment:
        if not shift.is_active:
            raise ValidationError("Cannot assign an inactive shift", field='shift')
        assignment = ShiftAssignment(
            employee=employee,
            shift=shift,
            start_date=start_date,
            end_date=end_date,
            is_recurring=is_recurring,
            recurring_days=recurring_days or [],
            assigned_by=assigned_by,
            notes=notes or '',
            created_by=actor if getattr(actor, 'pk', None) else None,
        )
        assignment.save()
        logger.info(
            "shift_assigned employee=%s shift=%s from=%s to=%s",
            employee.pk, shift.pk, start_date, end_date,
        )
        return assignment


class AttendanceService:
    """Daily check-in and check-out"""

    def __init__(self, shift_service=None, audit=audit_service, clock=timezone.now):
        self.shift_service = shift_service or ShiftService()
        self.audit = audit
        self.clock = clock

    def check_in(self, employee, at=None, location=None, notes='', record_type=AttendanceRecord.TYPE_REGULAR):
        if employee is None or not employee.is_active:
            raise ValidationError("Employee is not active", field='employee')
        at = at or self.clock()
        on_date = timezone.localdate(at)

        shift = self.shift_service.active_shift_for(employee, on_date)
        status, late = AttendanceRecord.STATUS_PRESENT, 0
        if shift is not None:
            shift_start, _ = shift_window(shift, on_date, tzinfo=timezone.get_current_timezone())
            late = minutes_late(at, shift_start, shift.grace_minutes)
            if late:
                status = AttendanceRecord.STATUS_LATE

        if AttendanceRecord.objects.filter(employee=employee, date=on_date).exists():
            raise ConflictError(
                "Already checked in today", details={'employee': str(employee.pk), 'date': str(on_date)}
            )
        try:
            with transaction.atomic():
                record = AttendanceRecord.objects.create(
                    employee=employee,
                    shift=shift,
                    date=on_date,
                    check_in=at,
                    location=location or {},
                    notes=notes or '',
                    record_type=record_type,
                    status=status,
                    late_minutes=late,
                    standard_hours=shift.total_hours if shift is not None else default_standard_hours(),
                )
        except IntegrityError:
            raise ConflictError(
                "Already checked in today", details={'employee': str(employee.pk), 'date': str(on_date)}
            )

        logger.info(
            "attendance_check_in employee=%s date=%s status=%s late_minutes=%s",
            employee.pk, on_date, status, late,
        )
        return record

    def check_out(self, employee, at=None, location=None, notes=''):
        at = at or self.clock()
        on_date = timezone.localdate(at)

        with transaction.atomic():
            # Yesterday's open record covers overnight shifts
            records = list(
                AttendanceRecord.objects.select_for_update()
                .filter(employee=employee, date__in=(on_date, on_date - timedelta(days=1)))
                .order_by('-date')
            )
            record = next((item for item in records if item.check_out is None), None)
            if records and records[0].date == on_date and records[0].check_out is not None:
                raise ConflictError("Already checked out today")
            if record is None:
                raise NotFoundError('Open attendance record', getattr(employee, 'employee_id', employee.pk))
            if at <= record.check_in:
                raise ValidationError("Check-out must be after check-in", field='check_out')

            record.check_out = at
            if location:
                record.location = {**(record.location or {}), 'check_out': location}
            if notes:
                record.notes = f"{record.notes}\n{notes}".strip()
            record.status = self._status_at_check_out(record, at)
            record.save()

        logger.info(
            "attendance_check_out employee=%s date=%s total_hours=%s overtime=%s status=%s",
            employee.pk, record.date, record.total_hours, record.overtime_hours, record.status,
        )
        return record

    def correct(self, record_id, actor, **changes):
        """HR correction of a record; hours are re-derived on save."""
        allowed = {'check_in', 'check_out', 'status', 'record_type', 'notes'}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Cannot change {', '.join(sorted(unknown))}")
        with transaction.atomic():
            record = AttendanceRecord.objects.select_for_update().filter(pk=record_id).first()
            if record is None:
                raise NotFoundError('Attendance record', record_id)
            before = {name: str(getattr(record, name)) for name in changes}
            for name, value in changes.items():
                setattr(record, name, value)
            if record.check_out and record.check_out <= record.check_in:
                raise ValidationError("Check-out must be after check-in", field='check_out')
            if record.check_out is None:
                record.total_hours = record.overtime_hours = Decimal('0')
            record.updated_by = actor if getattr(actor, 'pk', None) else None
            record.save()
            self.audit.record(
                actor=actor,
                entity_type='attendance',
                record_id=record.pk,
                action='update',
                old_values=before,
                new_values={name: str(getattr(record, name)) for name in changes},
            )
        return record

    @staticmethod
    def _status_at_check_out(record, at):
        if record.status == AttendanceRecord.STATUS_LATE:
            return record.status
        worked = Decimal(str((at - record.check_in).total_seconds())) / Decimal('3600')
        if worked < Decimal(str(record.standard_hours)) / 2:
            return AttendanceRecord.STATUS_HALF_DAY
        if record.shift is not None:
            _, shift_end = shift_window(record.shift, record.date, tzinfo=timezone.get_current_timezone())
            if at < shift_end:
                return AttendanceRecord.STATUS_EARLY_DEPARTURE
        return record.status

    @staticmethod
    def monthly_summary(employee, year: int, month: int) -> Dict:
        """Attendance counts and hours for one month."""
        start = date(year, month, 1)
        end = date(year, month, monthrange(year, month)[1])
        aggregates = AttendanceRecord.objects.filter(employee=employee, date__range=(start, end)).aggregate(
            days=Count('id'),
            present_days=Count('id', filter=Q(status=AttendanceRecord.STATUS_PRESENT)),
            late_days=Count('id', filter=Q(status=AttendanceRecord.STATUS_LATE)),
            half_days=Count('id', filter=Q(status=AttendanceRecord.STATUS_HALF_DAY)),
            early_departures=Count('id', filter=Q(status=AttendanceRecord.STATUS_EARLY_DEPARTURE)),
            total_hours=Sum('total_hours'),
            overtime_hours=Sum('overtime_hours'),
        )
        return {
            'employee': str(employee.pk),
            'year': year,
            'month': month,
            'days': aggregates['days'] or 0,
            'present_days': aggregates['present_days'] or 0,
            'late_days': aggregates['late_days'] or 0,
            'half_days': aggregates['half_days'] or 0,
            'early_departures': aggregates['early_departures'] or 0,
            'total_hours': str((aggregates['total_hours'] or Decimal('0')).quantize(Decimal('0.01'))),
            'overtime_hours': str((aggregates['overtime_hours'] or Decimal('0')).quantize(Decimal('0.01'))),
        }
