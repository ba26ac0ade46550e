"""
Payroll Views - loans, repayments and monthly payroll
"""

import logging

from django.db.models import Q
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAuthenticated

from apps.core.exceptions import ValidationError
from apps.core.permissions import HasPermission, check_permission
from apps.core.response import created_response, success_response
from apps.workflows.mixins import ApprovalActionsMixin

from .filters import LoanFilter, LoanRepaymentFilter, PayrollFilter
from .models import Loan, LoanRepayment, Payroll
from .serializers import (
    LoanApplySerializer,
    LoanCalculateSerializer,
    LoanDecisionSerializer,
    LoanDefaultSerializer,
    LoanDetailSerializer,
    LoanDisburseSerializer,
    LoanListSerializer,
    LoanRepaymentSerializer,
    LoanRepaySerializer,
    PayrollGenerateSerializer,
    PayrollListSerializer,
    PayrollPaySerializer,
    PayrollSerializer,
)
from .services import (
    LoanCalculationService,
    build_loan_approval_service,
    build_loan_service,
    build_payroll_service,
)

logger = logging.getLogger(__name__)


def _employee_of(user):
    employee = getattr(user, 'employee', None)
    if employee is None:
        raise ValidationError("No employee profile is linked to this account")
    return employee


class LoanViewSet(
    ApprovalActionsMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Employee loans.

    - POST /api/v1/payroll/loans/: apply
    - POST .../{id}/approve|reject|cancel|delegate/ (approve accepts approved_amount)
    - POST .../{id}/disburse|repay|default/ (loans.manage)
    - GET .../{id}/schedule/, POST .../calculate/
    """

    permission_classes = [IsAuthenticated, HasPermission]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = LoanFilter
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name', 'purpose']
    ordering_fields = ['amount', 'status', 'created_at', 'submitted_at']
    ordering = ['-created_at']
    decision_serializer_class = LoanDecisionSerializer
    approval_messages = {
        'approve': 'Loan approved.',
        'reject': 'Loan rejected.',
        'cancel': 'Loan cancelled.',
    }
    required_permissions = {
        'disburse': ['loans.manage'],
        'repay': ['loans.manage'],
        'mark_default': ['loans.manage'],
    }

    def get_serializer_class(self):
        if self.action in ('list', 'pending_approvals', 'my_loans'):
            return LoanListSerializer
        if self.action == 'create':
            return LoanApplySerializer
        return LoanDetailSerializer

    def get_queryset(self):
        queryset = Loan.objects.select_related('employee', 'current_approver').prefetch_related(
            'approvals', 'approvals__approver', 'repayments'
        )
        user = self.request.user
        if check_permission(user, 'loans.view_all'):
            return queryset
        employee = getattr(user, 'employee', None)
        if employee is None:
            return queryset.none()
        return queryset.filter(Q(employee=employee) | Q(current_approver=employee))

    def get_approval_service(self):
        return build_loan_approval_service()

    @extend_schema(request=LoanApplySerializer, responses=LoanDetailSerializer)
    def create(self, request, *args, **kwargs):
        """Apply for a loan"""
        serializer = LoanApplySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        loan = build_loan_service().submit_loan(
            _employee_of(request.user),
            data['loan_type'],
            data['amount'],
            data['purpose'],
            data['term_months'],
            actor=request.user,
            interest_rate=data.get('interest_rate'),
            guarantor_name=data.get('guarantor_name', ''),
            guarantor_contact=data.get('guarantor_contact', ''),
            notes=data.get('notes', ''),
        )
        return created_response(data=LoanDetailSerializer(self._reload(loan)).data, message='Loan applied successfully.')

    @extend_schema(request=LoanDisburseSerializer, responses=LoanDetailSerializer)
    @action(detail=True, methods=['post'])
    def disburse(self, request, pk=None):
        serializer = LoanDisburseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        loan = build_loan_service().disburse(
            pk,
            request.user,
            serializer.validated_data['disbursement_method'],
            start_date=serializer.validated_data.get('start_date'),
        )
        return success_response(data=LoanDetailSerializer(self._reload(loan)).data, message='Loan disbursed.')

    @extend_schema(request=LoanRepaySerializer, responses=LoanRepaymentSerializer)
    @action(detail=True, methods=['post'])
    def repay(self, request, pk=None):
        serializer = LoanRepaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        repayment = build_loan_service().record_repayment(
            pk,
            serializer.validated_data['amount'],
            actor=request.user,
            paid_on=serializer.validated_data.get('paid_on'),
            notes=serializer.validated_data.get('notes', ''),
        )
        return created_response(data=LoanRepaymentSerializer(repayment).data, message='Repayment recorded.')

    @extend_schema(request=LoanDefaultSerializer, responses=LoanDetailSerializer)
    @action(detail=True, methods=['post'], url_path='default')
    def mark_default(self, request, pk=None):
        serializer = LoanDefaultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        loan = build_loan_service().mark_defaulted(pk, request.user, serializer.validated_data['reason'])
        return success_response(data=LoanDetailSerializer(self._reload(loan)).data, message='Loan marked as defaulted.')

    @action(detail=True, methods=['get'])
    def schedule(self, request, pk=None):
        """Repayment schedule of the loan"""
        loan = self.get_object()
        rows = LoanCalculationService().schedule(loan.principal, loan.interest_rate, loan.term_months, loan.start_date)
        return success_response(data=[_schedule_row(row) for row in rows])

    @extend_schema(request=LoanCalculateSerializer)
    @action(detail=False, methods=['post'])
    def calculate(self, request):
        """Preview instalment, total and schedule for a prospective loan"""
        serializer = LoanCalculateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        calculator = LoanCalculationService()
        rate = data.get('interest_rate')
        if rate is None:
            rate = calculator.default_rate(data['loan_type'])
        monthly, total = calculator.amortize(data['amount'], rate, data['term_months'])
        rows = calculator.schedule(data['amount'], rate, data['term_months'], data.get('start_date'))
        return success_response(data={
            'interest_rate': str(rate),
            'monthly_payment': str(monthly),
            'total_amount': str(total),
            'total_interest': str(total - data['amount']),
            'max_amount': str(calculator.max_amount(data['loan_type'])),
            'schedule': [_schedule_row(row) for row in rows],
        })

    @action(detail=False, methods=['get'])
    def my_loans(self, request):
        employee = _employee_of(request.user)
        queryset = self.filter_queryset(self.get_queryset().filter(employee=employee))
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(LoanListSerializer(page, many=True).data)
        return success_response(data=LoanListSerializer(queryset, many=True).data)


def _schedule_row(row):
    return {
        'number': row['number'],
        'due_date': str(row['due_date']) if row['due_date'] else None,
        'payment': str(row['payment']),
        'principal': str(row['principal']),
        'interest': str(row['interest']),
        'balance': str(row['balance']),
    }


class LoanRepaymentViewSet(viewsets.ReadOnlyModelViewSet):
    """Recorded loan repayments"""
    serializer_class = LoanRepaymentSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = LoanRepaymentFilter
    ordering = ['-paid_on']

    def get_queryset(self):
        queryset = LoanRepayment.objects.select_related('loan', 'payroll')
        if check_permission(self.request.user, 'loans.view_all'):
            return queryset
        return queryset.filter(loan__employee__user=self.request.user)


class PayrollViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Monthly payroll.

    - POST .../generate/ drafts payrolls for a period
    - PATCH .../{id}/ edits allowances, bonuses and deductions of a draft
    - POST .../{id}/submit|approve|pay|cancel/

    Payrolls are never deleted; cancel them instead.
    """

    permission_classes = [IsAuthenticated, HasPermission]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = PayrollFilter
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name']
    ordering_fields = ['pay_period', 'net_pay', 'status']
    ordering = ['-pay_period']
    required_permissions = {
        'update': ['payroll.manage'],
        'partial_update': ['payroll.manage'],
        'generate': ['payroll.manage'],
        'submit': ['payroll.manage'],
        'approve': ['payroll.approve'],
        'pay': ['payroll.manage'],
        'cancel': ['payroll.manage'],
    }

    def get_serializer_class(self):
        if self.action in ('list', 'my_payslips'):
            return PayrollListSerializer
        return PayrollSerializer

    def get_queryset(self):
        queryset = Payroll.objects.select_related('employee')
        if check_permission(self.request.user, 'payroll.view_all'):
            return queryset
        return queryset.filter(employee__user=self.request.user)

    def perform_update(self, serializer):
        payroll = serializer.save(updated_by=self.request.user)
        logger.info("payroll_edited payroll=%s net=%s", payroll.pk, payroll.net_pay)

    @extend_schema(request=PayrollGenerateSerializer)
    @action(detail=False, methods=['post'])
    def generate(self, request):
        serializer = PayrollGenerateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        summary = build_payroll_service().generate_for_period(
            serializer.validated_data['pay_period'],
            pay_date=serializer.validated_data.get('pay_date'),
            actor=request.user,
        )
        return created_response(data=summary, message='Payroll generated.')

    def _transition(self, request, pk, action_name, message, **kwargs):
        payroll = build_payroll_service().transition(pk, action_name, request.user, **kwargs)
        return success_response(data=PayrollSerializer(payroll).data, message=message)

    @action(detail=True, methods=['post'])
    def submit(self, request, pk=None):
        return self._transition(request, pk, 'submit', 'Payroll submitted for approval.')

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        return self._transition(request, pk, 'approve', 'Payroll approved.')

    @extend_schema(request=PayrollPaySerializer)
    @action(detail=True, methods=['post'])
    def pay(self, request, pk=None):
        serializer = PayrollPaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._transition(
            request, pk, 'mark_paid', 'Payroll marked as paid.',
            payment_method=serializer.validated_data['payment_method'],
            reference_number=serializer.validated_data.get('reference_number', ''),
        )

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        return self._transition(request, pk, 'cancel', 'Payroll cancelled.')

    @action(detail=False, methods=['get'])
    def my_payslips(self, request):
        queryset = self.filter_queryset(Payroll.objects.filter(employee__user=request.user).select_related('employee'))
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(PayrollListSerializer(page, many=True).data)
        return success_response(data=PayrollListSerializer(queryset, many=True).data)
