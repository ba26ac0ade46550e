"""Attendance service package"""

from ..calculations import compute_hours, shift_duration_hours
from .attendance_service import AttendanceService, ShiftService, default_standard_hours

__all__ = [
    'AttendanceService',
    'ShiftService',
    'compute_hours',
    'default_standard_hours',
    'shift_duration_hours',
]
