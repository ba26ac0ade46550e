"""Auto-approval deadlines"""
from datetime import datetime, timedelta
from typing import Optional


def auto_approve_deadline(step, assigned_at: Optional[datetime]) -> Optional[datetime]:
    if step is None or assigned_at is None:
        return None
    if not getattr(step, 'auto_approve', False):
        return None
    hours = getattr(step, 'auto_approve_after_hours', None)
    if not hours:
        return None
    return assigned_at + timedelta(hours=hours)


def is_past_auto_approve_deadline(step, assigned_at: Optional[datetime], now: datetime) -> bool:
    """
    True when ``step`` auto-approves and ``now`` is at or past
    ``assigned_at + auto_approve_after_hours``.
    """
    deadline = auto_approve_deadline(step, assigned_at)
    return deadline is not None and now >= deadline
