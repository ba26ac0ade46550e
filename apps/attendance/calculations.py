"""Working-hour arithmetic for shifts and attendance records"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Tuple

from apps.core.exceptions import ValidationError

HOUR = Decimal('3600')
TWO_PLACES = Decimal('0.01')


def _hours(delta: timedelta) -> Decimal:
    return (Decimal(str(delta.total_seconds())) / HOUR).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_hours(check_in: datetime, check_out: datetime, standard_hours) -> Tuple[Decimal, Decimal]:
    """
    (total, overtime) hours between check-in and check-out. Overtime is the
    part beyond ``standard_hours``.
    """
    if check_in is None or check_out is None:
        raise ValidationError("Both check-in and check-out are required", field='check_out')
    if check_out <= check_in:
        raise ValidationError("Check-out must be after check-in", field='check_out')
    total = _hours(check_out - check_in)
    standard = Decimal(str(standard_hours))
    overtime = max(total - standard, Decimal('0.00')).quantize(TWO_PLACES)
    return total, overtime


def shift_duration_hours(start: time, end: time, break_minutes: int = 0) -> Decimal:
    """Paid hours of a shift; an end at or before the start is on the next day."""
    start_dt = datetime.combine(date.min, start)
    end_dt = datetime.combine(date.min, end)
    if end_dt <= start_dt:
        end_dt += timedelta(days=1)
    return _hours(end_dt - start_dt - timedelta(minutes=break_minutes or 0))


def shift_window(shift, on_date: date, tzinfo=None) -> Tuple[datetime, datetime]:
    """Start and end of ``shift`` worked on ``on_date``, wrapping midnight for overnight shifts."""
    start = datetime.combine(on_date, shift.start_time, tzinfo=tzinfo)
    end = datetime.combine(on_date, shift.end_time, tzinfo=tzinfo)
    if end <= start:
        end += timedelta(days=1)
    return start, end


def minutes_late(check_in: datetime, shift_start: datetime, grace_minutes: int) -> int:
    """Minutes after ``shift_start`` once the grace period is used up; 0 when on time."""
    deadline = shift_start + timedelta(minutes=grace_minutes or 0)
    if check_in <= deadline:
        return 0
    return int((check_in - shift_start).total_seconds() // 60)
