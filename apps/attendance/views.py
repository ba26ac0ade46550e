"""
Attendance Views - check-in/out, shifts and shift assignments
"""

import logging

from django.db.models import Q
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAuthenticated

from apps.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from apps.core.permissions import HasPermission, IsAdminOrReadOnly, check_permission
from apps.core.response import created_response, success_response
from apps.employees.models import Employee

from .filters import AttendanceRecordFilter, ShiftAssignmentFilter, ShiftFilter
from .models import AttendanceRecord, Shift, ShiftAssignment
from .serializers import (
    AttendanceCorrectionSerializer,
    AttendanceRecordSerializer,
    CheckInSerializer,
    CheckOutSerializer,
    MonthlySummaryQuerySerializer,
    ShiftAssignmentSerializer,
    ShiftSerializer,
)
from .services import AttendanceService, ShiftService

logger = logging.getLogger(__name__)


def _employee_of(user):
    employee = getattr(user, 'employee', None)
    if employee is None:
        raise ValidationError("No employee profile is linked to this account")
    return employee


class ShiftViewSet(viewsets.ModelViewSet):
    """Shift management. Deleting a shift deactivates it."""

    queryset = Shift.objects.all()
    serializer_class = ShiftSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'attendance.manage'
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = ShiftFilter
    search_fields = ['name']
    ordering = ['start_time']

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    def perform_update(self, serializer):
        serializer.save(updated_by=self.request.user)

    def perform_destroy(self, instance):
        instance.is_active = False
        instance.save()


class ShiftAssignmentViewSet(viewsets.ModelViewSet):
    """Shift assignments. Overlapping active assignments are rejected."""

    serializer_class = ShiftAssignmentSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'attendance.manage'
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = ShiftAssignmentFilter
    ordering = ['-start_date']

    def get_queryset(self):
        queryset = ShiftAssignment.objects.select_related('employee', 'shift')
        if check_permission(self.request.user, 'attendance.view_all'):
            return queryset
        return queryset.filter(employee__user=self.request.user)

    def perform_create(self, serializer):
        data = serializer.validated_data
        assignment = ShiftService.assign(
            data['employee'],
            data['shift'],
            data['start_date'],
            end_date=data.get('end_date'),
            is_recurring=data.get('is_recurring', False),
            recurring_days=data.get('recurring_days'),
            assigned_by=getattr(self.request.user, 'employee', None),
            notes=data.get('notes', ''),
            actor=self.request.user,
        )
        serializer.instance = assignment

    def perform_update(self, serializer):
        serializer.save(updated_by=self.request.user)

    def perform_destroy(self, instance):
        instance.is_active = False
        instance.save()

    @action(detail=False, methods=['get'])
    def current(self, request):
        """The caller's shift for today"""
        shift = ShiftService.active_shift_for(_employee_of(request.user), timezone.localdate())
        return success_response(data=ShiftSerializer(shift).data if shift else None)


class AttendanceViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Attendance records.

    - POST .../check_in/ and .../check_out/ for the caller
    - GET .../today/, .../summary/?year=&month=&employee=
    - POST .../{id}/correct/ (attendance.manage)
    """

    serializer_class = AttendanceRecordSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = AttendanceRecordFilter
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name']
    ordering_fields = ['date', 'check_in', 'check_out', 'total_hours']
    ordering = ['-date']
    required_permissions = {
        'correct': ['attendance.manage'],
    }

    def get_queryset(self):
        queryset = AttendanceRecord.objects.select_related('employee', 'shift')
        user = self.request.user
        if check_permission(user, 'attendance.view_all'):
            return queryset
        employee = getattr(user, 'employee', None)
        if employee is None:
            return queryset.none()
        return queryset.filter(Q(employee=employee) | Q(employee__reporting_manager=employee))

    @extend_schema(request=CheckInSerializer, responses=AttendanceRecordSerializer)
    @action(detail=False, methods=['post'])
    def check_in(self, request):
        serializer = CheckInSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = AttendanceService().check_in(
            _employee_of(request.user),
            location=serializer.validated_data.get('location'),
            notes=serializer.validated_data.get('notes', ''),
            record_type=serializer.validated_data['record_type'],
        )
        return created_response(data=AttendanceRecordSerializer(record).data, message='Checked in.')

    @extend_schema(request=CheckOutSerializer, responses=AttendanceRecordSerializer)
    @action(detail=False, methods=['post'])
    def check_out(self, request):
        serializer = CheckOutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = AttendanceService().check_out(
            _employee_of(request.user),
            location=serializer.validated_data.get('location'),
            notes=serializer.validated_data.get('notes', ''),
        )
        return success_response(data=AttendanceRecordSerializer(record).data, message='Checked out.')

    @action(detail=False, methods=['get'])
    def today(self, request):
        record = AttendanceRecord.objects.filter(
            employee=_employee_of(request.user), date=timezone.localdate()
        ).select_related('employee', 'shift').first()
        return success_response(data=AttendanceRecordSerializer(record).data if record else None)

    @extend_schema(parameters=[MonthlySummaryQuerySerializer])
    @action(detail=False, methods=['get'])
    def summary(self, request):
        query = MonthlySummaryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        today = timezone.localdate()
        employee_id = query.validated_data.get('employee')
        if employee_id is None:
            employee = _employee_of(request.user)
        else:
            employee = Employee.objects.filter(pk=employee_id).first()
            if employee is None:
                raise NotFoundError('Employee', employee_id)
            own = getattr(request.user, 'employee', None)
            allowed = check_permission(request.user, 'attendance.view_all') or (
                own is not None and (own.pk == employee.pk or employee.reporting_manager_id == own.pk)
            )
            if not allowed:
                raise AuthorizationError("You cannot view this employee's attendance")
        data = AttendanceService.monthly_summary(
            employee,
            query.validated_data.get('year') or today.year,
            query.validated_data.get('month') or today.month,
        )
        return success_response(data=data)

    @extend_schema(request=AttendanceCorrectionSerializer, responses=AttendanceRecordSerializer)
    @action(detail=True, methods=['post'])
    def correct(self, request, pk=None):
        serializer = AttendanceCorrectionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = AttendanceService().correct(pk, request.user, **serializer.validated_data)
        return success_response(data=AttendanceRecordSerializer(record).data, message='Attendance corrected.')
