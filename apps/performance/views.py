"""
Performance Views
"""

from django.db.models import Q
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAuthenticated

from apps.core.permissions import HasPermission, check_permission
from apps.core.response import success_response

from .filters import PerformanceReviewFilter
from .models import PerformanceReview
from .serializers import (
    EmployeeCommentsSerializer,
    PerformanceReviewListSerializer,
    PerformanceReviewSerializer,
)
from .services import EDITABLE_FIELDS, PerformanceReviewService


class PerformanceReviewViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Performance reviews.

    - POST .../{id}/start|complete|approve/
    - POST .../{id}/comment/ for the reviewed employee
    - GET .../my_reviews/, .../to_review/

    Confidential reviews are hidden from the reviewed employee.
    """

    permission_classes = [IsAuthenticated, HasPermission]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = PerformanceReviewFilter
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name', 'review_period']
    ordering_fields = ['review_date', 'overall_rating', 'status']
    ordering = ['-review_date']
    required_permissions = {
        'approve': ['performance.approve'],
    }

    def get_serializer_class(self):
        if self.action in ('list', 'my_reviews', 'to_review'):
            return PerformanceReviewListSerializer
        return PerformanceReviewSerializer

    def get_queryset(self):
        queryset = PerformanceReview.objects.select_related('employee', 'reviewer', 'approved_by')
        user = self.request.user
        if check_permission(user, 'performance.view_all'):
            return queryset
        employee = getattr(user, 'employee', None)
        if employee is None:
            return queryset.none()
        return queryset.filter(
            Q(reviewer=employee) | Q(employee=employee, is_confidential=False)
        )

    def perform_create(self, serializer):
        data = dict(serializer.validated_data)
        review = PerformanceReviewService().create(
            data.pop('employee'),
            data.pop('reviewer'),
            data.pop('review_period'),
            data.pop('review_date'),
            actor=self.request.user,
            **{name: value for name, value in data.items() if name in EDITABLE_FIELDS},
        )
        serializer.instance = review

    def perform_update(self, serializer):
        changes = {
            name: value for name, value in serializer.validated_data.items() if name in EDITABLE_FIELDS
        }
        serializer.instance = PerformanceReviewService().update(serializer.instance.pk, self.request.user, **changes)

    def _transition(self, pk, action_name, message):
        review = PerformanceReviewService().transition(pk, action_name, self.request.user)
        return success_response(data=PerformanceReviewSerializer(review).data, message=message)

    @action(detail=True, methods=['post'])
    def start(self, request, pk=None):
        return self._transition(pk, 'start', 'Review started.')

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        return self._transition(pk, 'complete', 'Review completed.')

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        return self._transition(pk, 'approve', 'Review approved.')

    @extend_schema(request=EmployeeCommentsSerializer, responses=PerformanceReviewSerializer)
    @action(detail=True, methods=['post'])
    def comment(self, request, pk=None):
        serializer = EmployeeCommentsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = PerformanceReviewService().add_employee_comments(
            pk, request.user, serializer.validated_data['comments']
        )
        return success_response(data=PerformanceReviewSerializer(review).data, message='Comments saved.')

    @action(detail=False, methods=['get'])
    def my_reviews(self, request):
        queryset = self.filter_queryset(self.get_queryset().filter(employee__user=request.user))
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(PerformanceReviewListSerializer(page, many=True).data)
        return success_response(data=PerformanceReviewListSerializer(queryset, many=True).data)

    @action(detail=False, methods=['get'])
    def to_review(self, request):
        """Open reviews where the caller is the reviewer"""
        queryset = self.filter_queryset(
            self.get_queryset().filter(
                reviewer__user=request.user, status__in=PerformanceReview.EDITABLE_STATUSES
            )
        )
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(PerformanceReviewListSerializer(page, many=True).data)
        return success_response(data=PerformanceReviewListSerializer(queryset, many=True).data)
