"""Leave service layer"""
from .balance import LeaveBalanceService
from .calculations import compute_duration, days_in_year
from .leave_service import (
    LeaveApprovalService,
    LeaveService,
    build_leave_approval_service,
    build_leave_service,
)

__all__ = [
    'LeaveApprovalService',
    'LeaveBalanceService',
    'LeaveService',
    'build_leave_approval_service',
    'build_leave_service',
    'compute_duration',
    'days_in_year',
]
