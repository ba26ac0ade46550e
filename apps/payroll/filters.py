"""Payroll app filters."""
import django_filters

from .models import LOAN_TYPE_CHOICES, Loan, LoanRepayment, Payroll


class LoanFilter(django_filters.FilterSet):
    employee = django_filters.UUIDFilter()
    loan_type = django_filters.ChoiceFilter(choices=LOAN_TYPE_CHOICES)
    status = django_filters.ChoiceFilter(choices=Loan.STATUS_CHOICES)
    min_amount = django_filters.NumberFilter(field_name='amount', lookup_expr='gte')
    max_amount = django_filters.NumberFilter(field_name='amount', lookup_expr='lte')
    submitted_from = django_filters.DateFilter(field_name='submitted_at', lookup_expr='date__gte')
    submitted_to = django_filters.DateFilter(field_name='submitted_at', lookup_expr='date__lte')

    class Meta:
        model = Loan
        fields = ['employee', 'loan_type', 'status', 'current_approver']


class LoanRepaymentFilter(django_filters.FilterSet):
    loan = django_filters.UUIDFilter()
    payroll = django_filters.UUIDFilter()
    paid_from = django_filters.DateFilter(field_name='paid_on', lookup_expr='gte')
    paid_to = django_filters.DateFilter(field_name='paid_on', lookup_expr='lte')

    class Meta:
        model = LoanRepayment
        fields = ['loan', 'payroll']


class PayrollFilter(django_filters.FilterSet):
    employee = django_filters.UUIDFilter()
    department = django_filters.UUIDFilter(field_name='employee__department')
    pay_period = django_filters.CharFilter()
    status = django_filters.ChoiceFilter(choices=Payroll.STATUS_CHOICES)
    pay_date_from = django_filters.DateFilter(field_name='pay_date', lookup_expr='gte')
    pay_date_to = django_filters.DateFilter(field_name='pay_date', lookup_expr='lte')

    class Meta:
        model = Payroll
        fields = ['employee', 'pay_period', 'status']
