"""Leave duration and calendar arithmetic"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from apps.core.exceptions import ValidationError

HALF_DAY_TYPES = ('first_half', 'second_half')
HALF = Decimal('0.5')


def compute_duration(start_date: date, end_date: date, is_half_day: bool = False,
                     half_day_type: Optional[str] = None) -> Decimal:
    """
    Inclusive calendar days between ``start_date`` and ``end_date``.

    A half-day request must cover a single date and counts as 0.5.
    """
    if start_date is None or end_date is None:
        raise ValidationError("Start and end dates are required", field='start_date')
    if end_date < start_date:
        raise ValidationError("End date cannot be before start date", field='end_date')
    if is_half_day:
        if start_date != end_date:
            raise ValidationError("A half-day leave must start and end on the same date", field='is_half_day')
        if half_day_type not in HALF_DAY_TYPES:
            raise ValidationError(
                f"half_day_type must be one of {', '.join(HALF_DAY_TYPES)}", field='half_day_type'
            )
        return HALF
    if half_day_type:
        raise ValidationError("half_day_type is only allowed on half-day leave", field='half_day_type')
    return Decimal((end_date - start_date).days + 1)


def days_in_year(start_date: date, end_date: date, is_half_day: bool, year: int) -> Decimal:
    """Share of a leave that falls inside ``year``; leaves crossing New Year are split by day."""
    if is_half_day:
        return HALF if start_date.year == year else Decimal(0)
    first = max(start_date, date(year, 1, 1))
    last = min(end_date, date(year, 12, 31))
    if last < first:
        return Decimal(0)
    return Decimal((last - first).days + 1)


def years_spanned(start_date: date, end_date: date):
    return range(start_date.year, end_date.year + 1)
