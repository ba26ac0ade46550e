"""Employee app filters."""
import django_filters

from .models import Branch, Department, Employee, Position


class EmployeeFilter(django_filters.FilterSet):
    employee_id = django_filters.CharFilter(lookup_expr='icontains')
    first_name = django_filters.CharFilter(lookup_expr='icontains')
    last_name = django_filters.CharFilter(lookup_expr='icontains')
    email = django_filters.CharFilter(lookup_expr='icontains')
    department = django_filters.UUIDFilter()
    position = django_filters.UUIDFilter()
    branch = django_filters.UUIDFilter()
    reporting_manager = django_filters.UUIDFilter()
    employment_type = django_filters.ChoiceFilter(choices=Employee.TYPE_CHOICES)
    employment_status = django_filters.ChoiceFilter(choices=Employee.STATUS_CHOICES)
    is_active = django_filters.BooleanFilter()
    joined_after = django_filters.DateFilter(field_name='date_of_joining', lookup_expr='gte')
    joined_before = django_filters.DateFilter(field_name='date_of_joining', lookup_expr='lte')

    class Meta:
        model = Employee
        fields = [
            'department', 'position', 'branch',
            'employment_type', 'employment_status', 'is_active',
        ]


class DepartmentFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(lookup_expr='icontains')
    branch = django_filters.UUIDFilter()
    parent = django_filters.UUIDFilter()
    is_active = django_filters.BooleanFilter()

    class Meta:
        model = Department
        fields = ['name', 'branch', 'parent', 'is_active']


class PositionFilter(django_filters.FilterSet):
    title = django_filters.CharFilter(lookup_expr='icontains')
    department = django_filters.UUIDFilter()
    level = django_filters.NumberFilter()
    is_active = django_filters.BooleanFilter()

    class Meta:
        model = Position
        fields = ['title', 'department', 'level', 'is_active']


class BranchFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(lookup_expr='icontains')
    city = django_filters.CharFilter(lookup_expr='icontains')
    country = django_filters.CharFilter(lookup_expr='icontains')
    is_active = django_filters.BooleanFilter()

    class Meta:
        model = Branch
        fields = ['name', 'city', 'country', 'is_active']
