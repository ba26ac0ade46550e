"""
Leave Views - apply, amend, approve, reject, cancel and balances
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
from apps.core.permissions import IsAdminOrReadOnly, check_permission
from apps.core.response import created_response, success_response
from apps.employees.models import Employee
from apps.workflows.mixins import ApprovalActionsMixin

from .filters import LeaveEntitlementFilter, LeaveRequestFilter
from .models import LeaveEntitlement, LeaveRequest
from .serializers import (
    LeaveApplySerializer,
    LeaveBalanceQuerySerializer,
    LeaveCalculateSerializer,
    LeaveEntitlementSerializer,
    LeaveRequestDetailSerializer,
    LeaveRequestListSerializer,
    LeaveUpdateSerializer,
)
from .services import build_leave_approval_service, build_leave_service, compute_duration

logger = logging.getLogger(__name__)


def _employee_of(user):
    employee = getattr(user, 'employee', None)
    if employee is None:
        raise ValidationError("No employee profile is linked to this account")
    return employee


class LeaveRequestViewSet(
    ApprovalActionsMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Leave request management.

    - POST /api/v1/leave/requests/: apply (alias: POST .../apply/)
    - PATCH /api/v1/leave/requests/{id}/: amend a pending request (requester only)
    - POST .../{id}/approve|reject|cancel|delegate/
    - GET .../balance/?year=&employee=

    Leave requests are never deleted; cancel them instead.
    """

    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = LeaveRequestFilter
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name', 'reason']
    ordering_fields = ['start_date', 'end_date', 'status', 'created_at', 'submitted_at']
    ordering = ['-created_at']
    approval_messages = {
        'approve': 'Leave approved.',
        'reject': 'Leave rejected.',
        'cancel': 'Leave cancelled.',
    }

    def get_serializer_class(self):
        if self.action in ('list', 'pending_approvals'):
            return LeaveRequestListSerializer
        if self.action in ('create', 'apply'):
            return LeaveApplySerializer
        if self.action in ('update', 'partial_update'):
            return LeaveUpdateSerializer
        return LeaveRequestDetailSerializer

    def get_queryset(self):
        queryset = LeaveRequest.objects.select_related('employee', 'current_approver').prefetch_related(
            'approvals', 'approvals__approver'
        )
        user = self.request.user
        if check_permission(user, 'leave.view_all'):
            return queryset
        employee = getattr(user, 'employee', None)
        if employee is None:
            return queryset.none()
        return queryset.filter(
            Q(employee=employee) | Q(employee__reporting_manager=employee) | Q(current_approver=employee)
        )

    def get_approval_service(self):
        return build_leave_approval_service()

    def create(self, request, *args, **kwargs):
        return self.apply(request)

    @extend_schema(request=LeaveApplySerializer, responses=LeaveRequestDetailSerializer)
    @action(detail=False, methods=['post'])
    def apply(self, request):
        """Apply for leave"""
        serializer = LeaveApplySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        employee = _employee_of(request.user)

        leave = build_leave_service().submit_leave(
            employee,
            data['leave_type'],
            data['start_date'],
            data['end_date'],
            data['reason'],
            actor=request.user,
            is_half_day=data.get('is_half_day', False),
            half_day_type=data.get('half_day_type', ''),
            start_time=data.get('start_time'),
            end_time=data.get('end_time'),
            attachments=data.get('attachments'),
            emergency_contact=data.get('emergency_contact'),
            notes=data.get('notes', ''),
        )
        return created_response(
            data=LeaveRequestDetailSerializer(self._reload(leave)).data,
            message='Leave applied successfully.',
        )

    def update(self, request, *args, **kwargs):
        instance = self.get_object()
        serializer = LeaveUpdateSerializer(instance, data=request.data)
        serializer.is_valid(raise_exception=True)
        leave = build_leave_service().update_leave(instance.pk, request.user, **serializer.validated_data)
        return success_response(
            data=LeaveRequestDetailSerializer(self._reload(leave)).data,
            message='Leave updated.',
        )

    @extend_schema(parameters=[LeaveBalanceQuerySerializer])
    @action(detail=False, methods=['get'])
    def balance(self, request):
        """Remaining days per leave type for a year"""
        query = LeaveBalanceQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        year = query.validated_data.get('year') or timezone.now().year

        employee_id = query.validated_data.get('employee')
        if employee_id is None:
            employee = _employee_of(request.user)
        else:
            employee = Employee.objects.filter(pk=employee_id).first()
            if employee is None:
                raise NotFoundError('Employee', employee_id)
            if not self._can_view_balance(request.user, employee):
                raise AuthorizationError("You cannot view this employee's leave balance")

        balances = build_leave_service().compute_balance(employee.pk, year)
        return success_response(data={
            'employee': str(employee.pk),
            'year': year,
            'balances': {leave_type: str(remaining) for leave_type, remaining in sorted(balances.items())},
        })

    @extend_schema(request=LeaveCalculateSerializer)
    @action(detail=False, methods=['post'])
    def calculate(self, request):
        """Preview the number of days a request would take"""
        serializer = LeaveCalculateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        total_days = compute_duration(
            data['start_date'], data['end_date'], data['is_half_day'], data.get('half_day_type') or None
        )
        return success_response(data={'total_days': str(total_days)})

    @action(detail=False, methods=['get'])
    def my_requests(self, request):
        """Current user's leave requests"""
        employee = _employee_of(request.user)
        queryset = self.filter_queryset(self.get_queryset().filter(employee=employee))
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(LeaveRequestListSerializer(page, many=True).data)
        return success_response(data=LeaveRequestListSerializer(queryset, many=True).data)

    @staticmethod
    def _can_view_balance(user, employee):
        if check_permission(user, 'leave.view_all'):
            return True
        own = getattr(user, 'employee', None)
        return own is not None and (own.pk == employee.pk or employee.reporting_manager_id == own.pk)


class LeaveEntitlementViewSet(viewsets.ModelViewSet):
    """Per-employee yearly entitlement overrides"""
    serializer_class = LeaveEntitlementSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'leave.manage'
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = LeaveEntitlementFilter
    ordering = ['-year', 'leave_type']

    def get_queryset(self):
        queryset = LeaveEntitlement.objects.select_related('employee')
        if check_permission(self.request.user, 'leave.view_all'):
            return queryset
        return queryset.filter(employee__user=self.request.user)

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    def perform_update(self, serializer):
        serializer.save(updated_by=self.request.user)
