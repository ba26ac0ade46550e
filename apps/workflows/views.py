"""
Workflow ViewSets
"""

from django.db.models import Prefetch
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import filters, viewsets
from rest_framework.decorators import action

from apps.core.permissions import IsAdminOrReadOnly
from apps.core.response import success_response

from .filters import ApprovalStepFilter, ApprovalWorkflowFilter
from .models import ApprovalStep, ApprovalWorkflow
from .repositories import DjangoWorkflowRepository
from .serializers import (
    ApprovalStepSerializer,
    ApprovalWorkflowSerializer,
    NestedApprovalStepSerializer,
    ResolveWorkflowQuerySerializer,
)
from .services import WorkflowResolver


class ApprovalWorkflowViewSet(viewsets.ModelViewSet):
    """
    Approval workflow configuration.

    Read access for authenticated users, write for holders of ``workflows.manage``.
    """
    serializer_class = ApprovalWorkflowSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'workflows.manage'
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = ApprovalWorkflowFilter
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'entity_type', 'is_active', 'created_at']
    ordering = ['entity_type', 'name']

    def get_queryset(self):
        return ApprovalWorkflow.objects.select_related('department', 'position').prefetch_related(
            Prefetch('steps', queryset=ApprovalStep.objects.select_related('approver', 'role').order_by('step_order'))
        )

    def perform_destroy(self, instance):
        # Requests keep their history; retire the workflow instead of deleting it
        instance.is_active = False
        instance.save(update_fields=['is_active', 'updated_at'])

    @extend_schema(parameters=[ResolveWorkflowQuerySerializer])
    @action(detail=False, methods=['get'])
    def resolve(self, request):
        """Return the workflow that would govern a request with the given attributes."""
        query = ResolveWorkflowQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        resolved = WorkflowResolver(DjangoWorkflowRepository()).resolve(
            params['entity_type'],
            department_id=params.get('department'),
            position_id=params.get('position'),
            amount=params.get('amount'),
        )
        if resolved is None:
            return success_response(data=None, message='No matching workflow.')

        data = ApprovalWorkflowSerializer(resolved.workflow, context=self.get_serializer_context()).data
        data['steps'] = NestedApprovalStepSerializer(resolved.steps, many=True).data
        data['max_approval_level'] = resolved.max_approval_level
        return success_response(data=data)

    @action(detail=True, methods=['get'])
    def steps(self, request, pk=None):
        workflow = self.get_object()
        return success_response(data=NestedApprovalStepSerializer(workflow.steps.all(), many=True).data)


class ApprovalStepViewSet(viewsets.ModelViewSet):
    """Workflow steps, ordered by ``step_order`` within their workflow."""
    queryset = ApprovalStep.objects.select_related('workflow', 'approver', 'position', 'role', 'department')
    serializer_class = ApprovalStepSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'workflows.manage'
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = ApprovalStepFilter
    search_fields = ['name', 'workflow__name']
    ordering_fields = ['step_order', 'created_at']
    ordering = ['workflow', 'step_order']
