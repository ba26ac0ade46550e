"""Approval endpoints shared by the leave and loan viewsets"""
from drf_spectacular.utils import extend_schema
from rest_framework.decorators import action

from apps.core.exceptions import ValidationError
from apps.core.response import success_response

from .serializers import ApprovalDecisionSerializer, DelegateSerializer


class ApprovalActionsMixin:
    """
    Adds ``approve``, ``reject``, ``cancel``, ``delegate`` and
    ``pending_approvals`` to a viewset over an ``ApprovableModel``.

    The viewset provides ``get_approval_service()``. Authorization is
    decided by the state machine, not by queryset visibility, so a current
    approver can act on a request they could not otherwise list.
    """

    decision_serializer_class = ApprovalDecisionSerializer
    approval_messages = {
        'approve': 'Request approved.',
        'reject': 'Request rejected.',
        'cancel': 'Request cancelled.',
    }

    def get_approval_service(self):
        raise NotImplementedError

    def get_decision_serializer(self, action_name, data):
        return self.decision_serializer_class(data=data)

    def _decide(self, request, pk, action_name):
        serializer = self.get_decision_serializer(action_name, request.data)
        serializer.is_valid(raise_exception=True)
        payload = dict(serializer.validated_data)
        comments = payload.pop('comments', '')
        entity = self.get_approval_service().transition(pk, action_name, request.user, comments=comments, **payload)
        return success_response(
            data=self.get_serializer(self._reload(entity)).data,
            message=self.approval_messages[action_name],
        )

    def _reload(self, entity):
        return type(entity).objects.select_related('employee', 'current_approver').get(pk=entity.pk)

    @extend_schema(request=ApprovalDecisionSerializer)
    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        return self._decide(request, pk, 'approve')

    @extend_schema(request=ApprovalDecisionSerializer)
    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        return self._decide(request, pk, 'reject')

    @extend_schema(request=ApprovalDecisionSerializer)
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        return self._decide(request, pk, 'cancel')

    @extend_schema(request=DelegateSerializer)
    @action(detail=True, methods=['post'])
    def delegate(self, request, pk=None):
        serializer = DelegateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entity = self.get_approval_service().delegate(
            pk,
            request.user,
            serializer.validated_data['delegate_to'],
            comments=serializer.validated_data['comments'],
        )
        return success_response(data=self.get_serializer(self._reload(entity)).data, message='Request delegated.')

    @action(detail=False, methods=['get'])
    def pending_approvals(self, request):
        """Pending requests waiting on the caller."""
        employee = getattr(request.user, 'employee', None)
        if employee is None:
            raise ValidationError("No employee profile is linked to this account")
        model = self.get_approval_service().repository.model
        queryset = (
            model.objects.filter(status=model.STATUS_PENDING, current_approver=employee)
            .select_related('employee', 'current_approver')
            .order_by('submitted_at')
        )
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return success_response(data=self.get_serializer(queryset, many=True).data)
