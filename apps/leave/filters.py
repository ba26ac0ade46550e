"""Leave app filters."""
import django_filters

from .models import LEAVE_TYPE_CHOICES, LeaveEntitlement, LeaveRequest


class LeaveRequestFilter(django_filters.FilterSet):
    employee = django_filters.UUIDFilter()
    leave_type = django_filters.ChoiceFilter(choices=LEAVE_TYPE_CHOICES)
    status = django_filters.ChoiceFilter(choices=LeaveRequest.STATUS_CHOICES)
    current_approver = django_filters.UUIDFilter()
    department = django_filters.UUIDFilter(field_name='employee__department')
    from_date = django_filters.DateFilter(field_name='end_date', lookup_expr='gte')
    to_date = django_filters.DateFilter(field_name='start_date', lookup_expr='lte')

    class Meta:
        model = LeaveRequest
        fields = ['employee', 'leave_type', 'status', 'current_approver', 'is_half_day']


class LeaveEntitlementFilter(django_filters.FilterSet):
    employee = django_filters.UUIDFilter()
    leave_type = django_filters.ChoiceFilter(choices=LEAVE_TYPE_CHOICES)
    year = django_filters.NumberFilter()

    class Meta:
        model = LeaveEntitlement
        fields = ['employee', 'leave_type', 'year', 'is_active']
