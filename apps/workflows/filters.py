"""Workflows app filters."""
import django_filters

from .models import ENTITY_TYPE_CHOICES, ApprovalStep, ApprovalWorkflow


class ApprovalWorkflowFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(lookup_expr='icontains')
    entity_type = django_filters.ChoiceFilter(choices=ENTITY_TYPE_CHOICES)
    department = django_filters.UUIDFilter()
    position = django_filters.UUIDFilter()
    is_active = django_filters.BooleanFilter()
    is_global = django_filters.BooleanFilter(method='filter_is_global')

    class Meta:
        model = ApprovalWorkflow
        fields = ['entity_type', 'department', 'position', 'is_active']

    def filter_is_global(self, queryset, name, value):
        if value:
            return queryset.filter(department__isnull=True, position__isnull=True)
        return queryset.exclude(department__isnull=True, position__isnull=True)


class ApprovalStepFilter(django_filters.FilterSet):
    workflow = django_filters.UUIDFilter()
    approver_type = django_filters.ChoiceFilter(choices=ApprovalStep.APPROVER_TYPE_CHOICES)
    is_required = django_filters.BooleanFilter()
    can_delegate = django_filters.BooleanFilter()

    class Meta:
        model = ApprovalStep
        fields = ['workflow', 'approver_type', 'is_required', 'can_delegate']
