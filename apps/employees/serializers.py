"""
Employee Serializers
"""

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from .models import Branch, Department, Employee, Position


class BranchSerializer(serializers.ModelSerializer):
    manager_name = serializers.CharField(source='manager.full_name', read_only=True)

    class Meta:
        model = Branch
        fields = [
            'id', 'name', 'code', 'address', 'city', 'country', 'phone', 'email',
            'manager', 'manager_name', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class DepartmentSerializer(serializers.ModelSerializer):
    employee_count = serializers.SerializerMethodField()
    parent_name = serializers.CharField(source='parent.name', read_only=True)
    head_name = serializers.CharField(source='head.full_name', read_only=True)

    class Meta:
        model = Department
        fields = [
            'id', 'name', 'code', 'description', 'parent', 'parent_name',
            'head', 'head_name', 'branch', 'employee_count', 'is_active',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'employee_count', 'created_at', 'updated_at']

    @extend_schema_field(OpenApiTypes.INT)
    def get_employee_count(self, obj):
        if hasattr(obj, "employee_count"):
            return obj.employee_count
        return obj.employees.filter(is_active=True).count()

    def validate(self, attrs):
        parent = attrs.get('parent')
        if parent is not None and self.instance is not None and parent.pk == self.instance.pk:
            raise serializers.ValidationError({'parent': 'A department cannot be its own parent.'})
        return attrs


class PositionSerializer(serializers.ModelSerializer):
    department_name = serializers.CharField(source='department.name', read_only=True)

    class Meta:
        model = Position
        fields = [
            'id', 'title', 'code', 'description', 'department', 'department_name',
            'level', 'min_salary', 'max_salary', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate(self, attrs):
        min_salary = attrs.get('min_salary', getattr(self.instance, 'min_salary', None))
        max_salary = attrs.get('max_salary', getattr(self.instance, 'max_salary', None))
        if min_salary is not None and max_salary is not None and min_salary > max_salary:
            raise serializers.ValidationError({'min_salary': 'Minimum salary cannot exceed maximum salary.'})
        return attrs


class EmployeeListSerializer(serializers.ModelSerializer):
    full_name = serializers.ReadOnlyField()
    department_name = serializers.CharField(source='department.name', read_only=True)
    position_title = serializers.CharField(source='position.title', read_only=True)
    branch_name = serializers.CharField(source='branch.name', read_only=True)
    manager_name = serializers.CharField(source='reporting_manager.full_name', read_only=True)

    class Meta:
        model = Employee
        fields = [
            'id', 'employee_id', 'full_name', 'first_name', 'last_name', 'email', 'phone',
            'department_name', 'position_title', 'branch_name',
            'manager_name', 'employment_type', 'employment_status',
            'date_of_joining', 'is_active'
        ]


class EmployeeDetailSerializer(serializers.ModelSerializer):
    full_name = serializers.ReadOnlyField()
    department_name = serializers.CharField(source='department.name', read_only=True)
    position_title = serializers.CharField(source='position.title', read_only=True)
    branch_name = serializers.CharField(source='branch.name', read_only=True)
    manager_name = serializers.CharField(source='reporting_manager.full_name', read_only=True)
    hr_manager_name = serializers.CharField(source='hr_manager.full_name', read_only=True)

    class Meta:
        model = Employee
        fields = [
            'id', 'user', 'employee_id', 'full_name', 'first_name', 'last_name', 'email', 'phone',
            'date_of_birth', 'gender', 'address', 'emergency_contact',
            'department', 'department_name',
            'position', 'position_title',
            'branch', 'branch_name',
            'reporting_manager', 'manager_name',
            'hr_manager', 'hr_manager_name',
            'employment_type', 'employment_status', 'date_of_joining', 'date_of_exit',
            'base_salary', 'hourly_rate', 'notes',
            'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'is_active', 'created_at', 'updated_at']

    def validate_employee_id(self, value):
        return value.upper()

    def validate(self, attrs):
        manager = attrs.get('reporting_manager')
        if manager is not None and self.instance is not None:
            if manager.pk == self.instance.pk:
                raise serializers.ValidationError({'reporting_manager': 'An employee cannot report to themselves.'})
            if self.instance in manager.get_org_hierarchy():
                raise serializers.ValidationError({'reporting_manager': 'This would create a reporting cycle.'})

        joined = attrs.get('date_of_joining', getattr(self.instance, 'date_of_joining', None))
        exited = attrs.get('date_of_exit', getattr(self.instance, 'date_of_exit', None))
        if joined and exited and exited < joined:
            raise serializers.ValidationError({'date_of_exit': 'Exit date cannot be before joining date.'})
        return attrs


class OrgChartSerializer(serializers.ModelSerializer):
    children = serializers.SerializerMethodField()
    name = serializers.ReadOnlyField(source='full_name')
    title = serializers.ReadOnlyField(source='position.title')

    class Meta:
        model = Employee
        fields = ['id', 'name', 'title', 'children']

    def get_children(self, obj) -> list:
        depth = self.context.get('depth', 0)
        if depth >= self.context.get('max_depth', 5):
            return []
        reports = obj.direct_reports.filter(is_active=True).select_related('position')
        context = {**self.context, 'depth': depth + 1}
        return OrgChartSerializer(reports, many=True, context=context).data
