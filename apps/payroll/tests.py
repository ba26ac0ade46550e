import datetime
from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.core.exceptions import DomainError, ValidationError
from apps.leave.models import LeaveRequest
from apps.payroll.calculations import add_months, amortize, calculate_payroll, months_between, period_bounds
from apps.payroll.models import Loan, LoanRepayment, Payroll
from apps.payroll.services import LoanCalculationService, build_loan_service, build_payroll_service, previous_pay_period
from apps.payroll.tasks import generate_monthly_payroll
from apps.workflows.models import ApprovalStep
from tests.factories import (
    ApprovalStepFactory,
    ApprovalWorkflowFactory,
    EmployeeFactory,
    LeaveRequestFactory,
    LoanFactory,
    RoleFactory,
    UserFactory,
)

D = datetime.date


def payslip(**overrides):
    values = dict(
        basic_salary='5000', allowances=[{'name': 'Housing', 'amount': '500'}], bonuses=[],
        deductions=[{'name': 'Canteen', 'amount': '100'}], overtime_hours='4', overtime_pay='150',
        tax_amount='565', insurance_amount='100', pension_amount='250', loan_deductions='106.62',
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class AmortizationTests(SimpleTestCase):

    def test_zero_rate_spreads_principal(self):
        self.assertEqual(amortize(Decimal('1200'), 0, 12), (Decimal('100.00'), Decimal('1200.00')))

    def test_fixed_instalment(self):
        monthly, total = amortize(Decimal('1200'), Decimal('0.12'), 12)
        self.assertEqual(monthly, Decimal('106.62'))
        self.assertEqual(total, Decimal('1279.44'))

    def test_bad_terms(self):
        for principal, rate, term in ((0, '0.1', 12), (1000, '0.1', 0), (1000, '0.1', 61), (1000, '-0.1', 12)):
            with self.subTest(principal=principal, rate=rate, term=term):
                with self.assertRaises(ValidationError):
                    amortize(principal, Decimal(rate), term)

    def test_schedule_repays_principal(self):
        rows = LoanCalculationService().schedule(Decimal('1200'), Decimal('0.12'), 12, D(2025, 1, 1))
        self.assertEqual(len(rows), 12)
        self.assertEqual(sum(row['principal'] for row in rows), Decimal('1200.00'))
        self.assertEqual(rows[-1]['balance'], Decimal('0.00'))
        self.assertEqual(rows[-1]['due_date'], D(2025, 12, 1))


class PayrollCalculationTests(SimpleTestCase):

    def test_gross_and_net(self):
        payroll = calculate_payroll(payslip())
        self.assertEqual(payroll.total_allowances, Decimal('500.00'))
        self.assertEqual(payroll.total_deductions, Decimal('100.00'))
        self.assertEqual(payroll.gross_pay, Decimal('5650.00'))
        self.assertEqual(payroll.net_pay, Decimal('4528.38'))

    def test_negative_component(self):
        with self.assertRaises(ValidationError):
            calculate_payroll(payslip(tax_amount='-1'))
        with self.assertRaises(ValidationError):
            calculate_payroll(payslip(bonuses=[{'name': 'Clawback', 'amount': '-50'}]))

    def test_withholdings_above_gross(self):
        with self.assertRaises(ValidationError):
            calculate_payroll(payslip(deductions=[{'name': 'Advance', 'amount': '6000'}]))

    def test_period_bounds(self):
        self.assertEqual(period_bounds('2024-02'), (D(2024, 2, 1), D(2024, 2, 29)))
        self.assertEqual(period_bounds('2025-12'), (D(2025, 12, 1), D(2025, 12, 31)))
        with self.assertRaises(ValidationError):
            period_bounds('2025-13')
        with self.assertRaises(ValidationError):
            period_bounds('March')

    def test_month_arithmetic(self):
        self.assertEqual(add_months(D(2025, 1, 31), 1), D(2025, 2, 28))
        self.assertEqual(add_months(D(2025, 11, 1), 3), D(2026, 2, 1))
        self.assertEqual(months_between(D(2025, 1, 15), D(2025, 7, 14)), 5)
        self.assertEqual(months_between(D(2025, 1, 15), D(2025, 7, 15)), 6)
        self.assertEqual(previous_pay_period(D(2025, 1, 10)), '2024-12')


class LoanServiceTests(TestCase):

    def setUp(self):
        self.finance = EmployeeFactory()
        self.employee = EmployeeFactory()
        workflow = ApprovalWorkflowFactory(entity_type='loan')
        ApprovalStepFactory(
            workflow=workflow, step_order=1, approver_type=ApprovalStep.APPROVER_SPECIFIC_USER, approver=self.finance
        )
        self.service = build_loan_service()
        self.approvals = self.service.approval_service

    def submit(self, amount='1200', **kwargs):
        return self.service.submit_loan(
            self.employee, 'personal', Decimal(amount), 'New roof for the house', 12,
            actor=self.employee.user, **kwargs
        )

    def test_submit_computes_schedule(self):
        loan = self.submit()
        self.assertEqual(loan.status, Loan.STATUS_PENDING)
        self.assertEqual(loan.interest_rate, Decimal('0.12'))
        self.assertEqual(loan.monthly_payment, Decimal('106.62'))
        self.assertEqual(loan.current_approver_id, self.finance.pk)

    def test_recent_joiner_is_not_eligible(self):
        self.employee.date_of_joining = timezone.localdate() - datetime.timedelta(days=60)
        self.employee.save()
        with self.assertRaises(DomainError):
            self.submit()

    def test_borrowing_limit_includes_pending_requests(self):
        self.employee.base_salary = Decimal('1000')
        self.employee.save()
        self.submit('8000')
        with self.assertRaises(DomainError):
            self.submit('5000')

    def test_amount_above_type_maximum(self):
        with self.assertRaises(ValidationError):
            self.submit('60000')

    def test_approver_can_lower_amount(self):
        loan = self.submit()
        loan = self.approvals.transition(loan.pk, 'approve', self.finance.user, approved_amount=Decimal('1000'))
        loan.refresh_from_db()
        self.assertEqual(loan.status, Loan.STATUS_APPROVED)
        self.assertEqual(loan.approved_amount, Decimal('1000.00'))
        self.assertEqual(loan.monthly_payment, amortize(Decimal('1000'), Decimal('0.12'), 12)[0])
        self.assertEqual(loan.approved_by_id, self.finance.pk)

    def test_approved_amount_cannot_exceed_request(self):
        loan = self.submit()
        with self.assertRaises(ValidationError):
            self.approvals.transition(loan.pk, 'approve', self.finance.user, approved_amount=Decimal('1500'))

    def test_disburse_repay_complete(self):
        loan = self.submit(interest_rate=Decimal('0'))
        self.approvals.transition(loan.pk, 'approve', self.finance.user)
        loan = self.service.disburse(loan.pk, self.finance.user, 'bank_transfer', start_date=D(2025, 1, 1))
        self.assertEqual(loan.status, Loan.STATUS_ACTIVE)
        self.assertEqual(loan.end_date, D(2025, 12, 1))

        self.service.record_repayment(loan.pk, Decimal('100'), actor=self.finance.user)
        with self.assertRaises(ValidationError):
            self.service.record_repayment(loan.pk, Decimal('2000'), actor=self.finance.user)
        self.service.record_repayment(loan.pk, Decimal('1100'), actor=self.finance.user)

        loan.refresh_from_db()
        self.assertEqual(loan.status, Loan.STATUS_COMPLETED)
        self.assertEqual(loan.outstanding_balance, Decimal('0.00'))
        self.assertEqual(loan.repayments.count(), 2)

    def test_pending_loan_cannot_be_disbursed(self):
        loan = self.submit()
        with self.assertRaises(DomainError):
            self.service.disburse(loan.pk, self.finance.user, 'cash')

    def test_only_active_loans_default(self):
        loan = self.submit()
        with self.assertRaises(DomainError):
            self.service.mark_defaulted(loan.pk, self.finance.user, 'Left the company')


class PayrollServiceTests(TestCase):

    def setUp(self):
        self.employee = EmployeeFactory(base_salary=Decimal('6000'))
        self.service = build_payroll_service()

    def test_unpaid_leave_is_deducted(self):
        LeaveRequestFactory(
            employee=self.employee, leave_type='unpaid', status=LeaveRequest.STATUS_APPROVED,
            start_date=D(2025, 1, 6), end_date=D(2025, 1, 7),
        )
        payroll = self.service.build_draft(self.employee, '2025-01', D(2025, 1, 31))
        self.assertEqual(payroll.leave_days, Decimal('2'))
        self.assertEqual(payroll.deductions, [{'name': 'Unpaid leave', 'amount': '545.46'}])
        self.assertEqual(payroll.gross_pay, Decimal('6000.00'))
        self.assertEqual(payroll.tax_amount, Decimal('600.00'))
        self.assertEqual(payroll.insurance_amount, Decimal('120.00'))
        self.assertEqual(payroll.pension_amount, Decimal('300.00'))
        self.assertEqual(payroll.net_pay, Decimal('4434.54'))

    def test_generation_skips_existing(self):
        other = EmployeeFactory()
        first = self.service.generate_for_period('2025-01')
        self.assertEqual(len(first['created']), 2)
        self.assertEqual(first['failed'], [])

        second = self.service.generate_for_period('2025-01')
        self.assertEqual(second['created'], [])
        self.assertEqual(second['skipped'], 2)
        self.assertTrue(Payroll.objects.filter(employee=other, pay_period='2025-01').exists())

    def test_future_joiner_is_left_out(self):
        EmployeeFactory(date_of_joining=D(2025, 3, 1))
        summary = self.service.generate_for_period('2025-01')
        self.assertEqual(len(summary['created']), 1)

    def test_paying_records_loan_instalment(self):
        loan = LoanFactory(employee=self.employee, status=Loan.STATUS_ACTIVE, start_date=D(2025, 1, 1))
        self.service.generate_for_period('2025-01')
        payroll = Payroll.objects.get(employee=self.employee, pay_period='2025-01')
        self.assertEqual(payroll.loan_deductions, Decimal('106.62'))

        actor = UserFactory(is_superuser=True)
        for action in ('submit', 'approve'):
            self.service.transition(payroll.pk, action, actor)
        payroll = self.service.transition(payroll.pk, 'mark_paid', actor, payment_method='bank_transfer')

        self.assertEqual(payroll.status, Payroll.STATUS_PAID)
        self.assertIsNotNone(payroll.paid_at)
        repayment = LoanRepayment.objects.get(loan=loan)
        self.assertEqual(repayment.amount, Decimal('106.62'))
        self.assertEqual(repayment.payroll_id, payroll.pk)
        loan.refresh_from_db()
        self.assertEqual(loan.amount_repaid, Decimal('106.62'))

    def test_illegal_transition(self):
        self.service.generate_for_period('2025-01')
        payroll = Payroll.objects.get(employee=self.employee)
        with self.assertRaises(DomainError):
            self.service.transition(payroll.pk, 'mark_paid', None)
        self.service.transition(payroll.pk, 'cancel', None)
        with self.assertRaises(DomainError):
            self.service.transition(payroll.pk, 'submit', None)

    def test_monthly_task(self):
        result = generate_monthly_payroll.apply(kwargs={'pay_period': '2025-01'}).get()
        self.assertEqual(result, {'pay_period': '2025-01', 'created': 1, 'skipped': 0, 'failed': 0})


class LoanAPITests(TestCase):

    def setUp(self):
        self.manager = EmployeeFactory()
        self.employee = EmployeeFactory(reporting_manager=self.manager)
        self.client = APIClient()

    def authenticate(self, user):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {RefreshToken.for_user(user).access_token}')

    def test_apply(self):
        self.authenticate(self.employee.user)
        response = self.client.post('/api/v1/payroll/loans/', {
            'loan_type': 'personal', 'amount': '1200.00', 'purpose': 'Home repairs after storm', 'term_months': 12,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['status'], 'pending')
        self.assertEqual(response.data['data']['monthly_payment'], '106.62')

    def test_disburse_requires_permission(self):
        loan = LoanFactory(employee=self.employee, status=Loan.STATUS_APPROVED)
        self.authenticate(self.manager.user)
        url = f'/api/v1/payroll/loans/{loan.pk}/disburse/'
        response = self.client.post(url, {'disbursement_method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.manager.user.roles.add(RoleFactory(code='finance_manager', permissions=['loans.*']))
        response = self.client.post(url, {'disbursement_method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'active')

    def test_calculate_preview(self):
        self.authenticate(self.employee.user)
        response = self.client.post('/api/v1/payroll/loans/calculate/', {
            'loan_type': 'personal', 'amount': '1200.00', 'term_months': 12,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['monthly_payment'], '106.62')
        self.assertEqual(len(response.data['data']['schedule']), 12)
