"""Leave Admin"""
from django.contrib import admin

from .models import LeaveApproval, LeaveEntitlement, LeaveRequest


class LeaveApprovalInline(admin.TabularInline):
    model = LeaveApproval
    extra = 0
    readonly_fields = ['level', 'approver', 'action', 'comments', 'created_at']
    can_delete = False


@admin.register(LeaveRequest)
class LeaveRequestAdmin(admin.ModelAdmin):
    list_display = [
        'employee', 'leave_type', 'start_date', 'end_date', 'total_days',
        'status', 'approval_level', 'max_approval_level', 'current_approver',
    ]
    list_filter = ['status', 'leave_type']
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name']
    raw_id_fields = ['employee', 'current_approver', 'approved_by', 'workflow']
    readonly_fields = ['version', 'submitted_at', 'decided_at']
    date_hierarchy = 'start_date'
    inlines = [LeaveApprovalInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(LeaveEntitlement)
class LeaveEntitlementAdmin(admin.ModelAdmin):
    list_display = ['employee', 'leave_type', 'year', 'days', 'is_active']
    list_filter = ['leave_type', 'year']
    raw_id_fields = ['employee']
