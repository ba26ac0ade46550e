"""
Attendance Admin
"""

from django.contrib import admin

from .models import AttendanceRecord, Shift, ShiftAssignment


@admin.register(Shift)
class ShiftAdmin(admin.ModelAdmin):
    list_display = ['name', 'start_time', 'end_time', 'break_minutes', 'grace_minutes', 'total_hours', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name']
    readonly_fields = ['total_hours']
    ordering = ['name']


@admin.register(ShiftAssignment)
class ShiftAssignmentAdmin(admin.ModelAdmin):
    list_display = ['employee', 'shift', 'start_date', 'end_date', 'is_recurring', 'is_active']
    list_filter = ['shift', 'is_recurring', 'is_active']
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name']
    raw_id_fields = ['employee', 'assigned_by']


@admin.register(AttendanceRecord)
class AttendanceRecordAdmin(admin.ModelAdmin):
    list_display = ['employee', 'date', 'status', 'check_in', 'check_out', 'total_hours', 'overtime_hours']
    list_filter = ['status', 'record_type', 'date']
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name']
    raw_id_fields = ['employee', 'shift']
    readonly_fields = ['total_hours', 'overtime_hours', 'late_minutes']
    date_hierarchy = 'date'
