"""
Employee Views
"""

import logging

from django.db import transaction
from django.db.models import Count, Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAuthenticated

from apps.core.audit import audit_service
from apps.core.exceptions import ValidationError
from apps.core.permissions import HasPermission, IsAdminOrReadOnly, check_permission
from apps.core.response import success_response

from .filters import BranchFilter, DepartmentFilter, EmployeeFilter, PositionFilter
from .models import Branch, Department, Employee, Position
from .serializers import (
    BranchSerializer,
    DepartmentSerializer,
    EmployeeDetailSerializer,
    EmployeeListSerializer,
    OrgChartSerializer,
    PositionSerializer,
)

logger = logging.getLogger(__name__)

AUDITED_FIELDS = (
    'department_id', 'position_id', 'branch_id', 'reporting_manager_id', 'hr_manager_id',
    'employment_status', 'employment_type', 'base_salary',
)


def _snapshot(employee):
    return {field: getattr(employee, field) for field in AUDITED_FIELDS}


class EmployeeViewSet(viewsets.ModelViewSet):
    """
    Employee Management API

    - GET /api/v1/employees/: List employees (filtered, paginated)
    - POST /api/v1/employees/: Create employee
    - GET /api/v1/employees/{id}/: Retrieve employee details
    - PUT /api/v1/employees/{id}/: Update employee
    - DELETE /api/v1/employees/{id}/: Soft delete employee

    Without ``employees.view`` a user only sees their own record.
    """

    permission_classes = [IsAuthenticated, HasPermission]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = EmployeeFilter
    search_fields = ['employee_id', 'first_name', 'last_name', 'email']
    ordering_fields = ['employee_id', 'first_name', 'date_of_joining', 'employment_status', 'created_at']
    ordering = ['employee_id']

    required_permissions = {
        'create': ['employees.create'],
        'update': ['employees.edit'],
        'partial_update': ['employees.edit'],
        'destroy': ['employees.delete'],
        'restore': ['employees.delete'],
        'terminate': ['employees.edit'],
        'org_chart': ['employees.view'],
    }

    def get_serializer_class(self):
        if self.action in ('list', 'team'):
            return EmployeeListSerializer
        return EmployeeDetailSerializer

    def get_queryset(self):
        queryset = Employee.objects.select_related(
            'department', 'position', 'branch', 'reporting_manager', 'hr_manager',
        )
        if self.action == 'restore':
            queryset = Employee.all_objects.select_related('department', 'position', 'branch')
        user = self.request.user
        if check_permission(user, 'employees.view'):
            return queryset
        return queryset.filter(Q(user=user) | Q(reporting_manager__user=user))

    def perform_create(self, serializer):
        employee = serializer.save(created_by=self.request.user, updated_by=self.request.user)
        audit_service.record(
            actor=self.request.user, entity_type='employee', record_id=employee.id,
            action='create', new_values=_snapshot(employee), request=self.request,
        )

    def perform_update(self, serializer):
        before = _snapshot(serializer.instance)
        employee = serializer.save(updated_by=self.request.user)
        audit_service.record(
            actor=self.request.user, entity_type='employee', record_id=employee.id,
            old_values=before, new_values=_snapshot(employee), request=self.request,
        )

    def perform_destroy(self, instance):
        with transaction.atomic():
            instance.delete(deleted_by=self.request.user)
            audit_service.record(
                actor=self.request.user, entity_type='employee', record_id=instance.id,
                action='delete', old_values={'is_active': True}, new_values={'is_active': False},
                request=self.request,
            )
        logger.info("employee_soft_deleted id=%s by=%s", instance.id, self.request.user.id)

    @action(detail=True, methods=['post'])
    def restore(self, request, pk=None):
        employee = self.get_object()
        if not employee.is_deleted:
            raise ValidationError("Employee is not deleted")
        employee.restore()
        return success_response(data=EmployeeDetailSerializer(employee).data, message='Employee restored.')

    @action(detail=True, methods=['get'])
    def team(self, request, pk=None):
        """Get direct reports"""
        employee = self.get_object()
        team = employee.direct_reports.filter(is_active=True)
        return success_response(data=EmployeeListSerializer(team, many=True).data)

    @action(detail=True, methods=['post'])
    def terminate(self, request, pk=None):
        """Terminate employee and disable the linked login"""
        employee = self.get_object()
        date_of_exit = request.data.get('date_of_exit')
        if not date_of_exit:
            raise ValidationError("date_of_exit is required", field='date_of_exit')

        with transaction.atomic():
            before = _snapshot(employee)
            employee.employment_status = Employee.STATUS_TERMINATED
            employee.date_of_exit = date_of_exit
            employee.is_active = False
            employee.updated_by = request.user
            employee.full_clean(exclude=['user'])
            employee.save()
            if employee.user_id:
                employee.user.deactivate()
            audit_service.record(
                actor=request.user, entity_type='employee', record_id=employee.id,
                action='terminate', old_values=before, new_values=_snapshot(employee), request=request,
            )
        return success_response(data=EmployeeDetailSerializer(employee).data, message='Employee terminated.')

    @action(detail=False, methods=['get'])
    def org_chart(self, request):
        roots = Employee.objects.filter(reporting_manager__isnull=True, is_active=True).select_related('position')
        return success_response(data=OrgChartSerializer(roots, many=True).data)

    @action(detail=False, methods=['get'])
    def me(self, request):
        employee = getattr(request.user, 'employee', None)
        if employee is None:
            raise ValidationError("No employee record is linked to this user")
        return success_response(data=EmployeeDetailSerializer(employee).data)


class DepartmentViewSet(viewsets.ModelViewSet):
    queryset = Department.objects.select_related('parent', 'head', 'branch').annotate(
        employee_count=Count('employees', filter=Q(employees__is_active=True, employees__is_deleted=False))
    )
    serializer_class = DepartmentSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'organization.manage'
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = DepartmentFilter
    search_fields = ['name', 'code']

    def perform_destroy(self, instance):
        instance.delete(deleted_by=self.request.user)


class PositionViewSet(viewsets.ModelViewSet):
    queryset = Position.objects.select_related('department')
    serializer_class = PositionSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'organization.manage'
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = PositionFilter
    search_fields = ['title', 'code']

    def perform_destroy(self, instance):
        instance.delete(deleted_by=self.request.user)


class BranchViewSet(viewsets.ModelViewSet):
    queryset = Branch.objects.select_related('manager')
    serializer_class = BranchSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'organization.manage'
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = BranchFilter
    search_fields = ['name', 'code', 'city']

    def perform_destroy(self, instance):
        instance.delete(deleted_by=self.request.user)
