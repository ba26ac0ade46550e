from .approvals import auto_approve_overdue, sweep_overdue

__all__ = ['auto_approve_overdue', 'sweep_overdue']
