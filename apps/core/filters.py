"""Core app filters."""
import django_filters

from .models import AuditLog


class AuditLogFilter(django_filters.FilterSet):
    action = django_filters.CharFilter()
    entity_type = django_filters.CharFilter()
    record_id = django_filters.CharFilter()
    actor = django_filters.UUIDFilter()
    actor_email = django_filters.CharFilter(lookup_expr='icontains')
    timestamp_after = django_filters.DateTimeFilter(field_name='timestamp', lookup_expr='gte')
    timestamp_before = django_filters.DateTimeFilter(field_name='timestamp', lookup_expr='lte')

    class Meta:
        model = AuditLog
        fields = ['action', 'entity_type', 'record_id', 'actor']
