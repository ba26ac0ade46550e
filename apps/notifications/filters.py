"""Notifications app filters."""
import django_filters

from .models import PRIORITY_CHOICES, Notification, NotificationTemplate


class NotificationFilter(django_filters.FilterSet):
    notification_type = django_filters.CharFilter()
    priority = django_filters.ChoiceFilter(choices=PRIORITY_CHOICES)
    is_read = django_filters.BooleanFilter()
    created_after = django_filters.DateTimeFilter(field_name='created_at', lookup_expr='gte')

    class Meta:
        model = Notification
        fields = ['notification_type', 'priority', 'is_read']


class NotificationTemplateFilter(django_filters.FilterSet):
    code = django_filters.CharFilter(lookup_expr='icontains')
    is_active = django_filters.BooleanFilter()

    class Meta:
        model = NotificationTemplate
        fields = ['delivery_method', 'is_active']
