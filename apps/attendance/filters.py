"""Attendance app filters."""
import django_filters
from django.db.models import Q

from .models import AttendanceRecord, Shift, ShiftAssignment


class ShiftFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(lookup_expr='icontains')
    is_active = django_filters.BooleanFilter()

    class Meta:
        model = Shift
        fields = ['is_active']


class ShiftAssignmentFilter(django_filters.FilterSet):
    employee = django_filters.UUIDFilter()
    shift = django_filters.UUIDFilter()
    is_active = django_filters.BooleanFilter()
    active_on = django_filters.DateFilter(method='filter_active_on')

    class Meta:
        model = ShiftAssignment
        fields = ['employee', 'shift', 'is_active', 'is_recurring']

    def filter_active_on(self, queryset, name, value):
        return queryset.filter(start_date__lte=value).filter(
            Q(end_date__isnull=True) | Q(end_date__gte=value)
        )


class AttendanceRecordFilter(django_filters.FilterSet):
    employee = django_filters.UUIDFilter()
    department = django_filters.UUIDFilter(field_name='employee__department')
    status = django_filters.ChoiceFilter(choices=AttendanceRecord.STATUS_CHOICES)
    record_type = django_filters.ChoiceFilter(choices=AttendanceRecord.RECORD_TYPE_CHOICES)
    date_from = django_filters.DateFilter(field_name='date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='date', lookup_expr='lte')
    open = django_filters.BooleanFilter(field_name='check_out', lookup_expr='isnull')

    class Meta:
        model = AttendanceRecord
        fields = ['employee', 'status', 'record_type']
