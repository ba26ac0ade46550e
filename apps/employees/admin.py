"""
Employee Admin
"""

from django.contrib import admin

from .models import Branch, Department, Employee, Position


@admin.register(Employee)
class EmployeeAdmin(admin.ModelAdmin):
    list_display = [
        'employee_id', 'full_name', 'email', 'department',
        'position', 'branch', 'employment_status', 'date_of_joining', 'is_active'
    ]
    list_filter = ['employment_status', 'employment_type', 'department', 'branch', 'is_active']
    search_fields = ['employee_id', 'first_name', 'last_name', 'email']
    raw_id_fields = ['user', 'reporting_manager', 'hr_manager']
    readonly_fields = ['created_at', 'updated_at', 'created_by', 'updated_by']

    def get_queryset(self, request):
        return Employee.all_objects.select_related('department', 'position', 'branch')


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'parent', 'head', 'branch', 'is_active']
    list_filter = ['is_active', 'branch']
    search_fields = ['name', 'code']
    raw_id_fields = ['head']


@admin.register(Position)
class PositionAdmin(admin.ModelAdmin):
    list_display = ['title', 'code', 'department', 'level', 'min_salary', 'max_salary', 'is_active']
    list_filter = ['is_active', 'department']
    search_fields = ['title', 'code']


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'city', 'country', 'manager', 'is_active']
    list_filter = ['is_active', 'country']
    search_fields = ['name', 'code', 'city']
    raw_id_fields = ['manager']
