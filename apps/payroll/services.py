"""
Payroll Services - loan lifecycle, payroll calculation and monthly generation
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.db.models import Sum
from django.utils import timezone

from apps.attendance.models import AttendanceRecord
from apps.core.audit import audit_service
from apps.core.exceptions import DomainError, HRMSError, NotFoundError, ValidationError
from apps.core.permissions import actor_employee_id
from apps.employees.models import Employee
from apps.leave.models import LEAVE_TYPE_UNPAID, LeaveRequest
from apps.notifications.services import notification_service
from apps.workflows.repositories import DjangoWorkflowRepository
from apps.workflows.services import ApprovalStateMachine, ApproverResolver, WorkflowResolver

from .calculations import (
    DEFAULT_INTEREST_RATES,
    MAX_LOAN_AMOUNTS,
    ZERO,
    add_months,
    amortize,
    calculate_payroll,
    money,
    months_between,
    period_bounds,
    repayment_split,
)
from .models import LOAN_TYPE_CHOICES, Loan, LoanRepayment, Payroll
from .repositories import DjangoLoanRepository

logger = logging.getLogger(__name__)

LOAN_TYPES = {code for code, _ in LOAN_TYPE_CHOICES}
MIN_SERVICE_MONTHS = 6
SALARY_MULTIPLE_LIMIT = 12
MIN_PURPOSE_LENGTH = 10


def _payroll_setting(name, default):
    return Decimal(str(getattr(settings, 'HRMS_PAYROLL', {}).get(name, default)))


def _notify(template, employee_ids, payload):
    try:
        notification_service.notify_employees(template, employee_ids, payload)
    except Exception:
        logger.warning("notification_failed template=%s", template, exc_info=True)


# =============================================================================
# LOANS
# =============================================================================

class LoanCalculationService:
    """Amortization and repayment schedules"""

    @staticmethod
    def default_rate(loan_type) -> Decimal:
        return DEFAULT_INTEREST_RATES.get(loan_type, Decimal('0'))

    @staticmethod
    def max_amount(loan_type) -> Optional[Decimal]:
        return MAX_LOAN_AMOUNTS.get(loan_type)

    @staticmethod
    def amortize(principal, annual_rate, term_months):
        return amortize(principal, annual_rate, term_months)

    def schedule(self, principal, annual_rate, term_months, start_date: Optional[date] = None) -> List[Dict]:
        """Month-by-month split of the fixed instalment; the last row absorbs rounding."""
        monthly, _ = amortize(principal, annual_rate, term_months)
        balance = money(principal)
        rows = []
        for number in range(1, int(term_months) + 1):
            payment = monthly if number < term_months else None
            principal_part, interest = repayment_split(balance, annual_rate, monthly)
            if payment is None:
                principal_part = balance
                payment = principal_part + interest
            balance = max(balance - principal_part, ZERO)
            rows.append({
                'number': number,
                'due_date': add_months(start_date, number - 1) if start_date else None,
                'payment': payment,
                'principal': principal_part,
                'interest': interest,
                'balance': balance,
            })
        return rows


class LoanApprovalService(ApprovalStateMachine):
    """
    Approval state machine for loans. An approver may lower the amount by
    passing ``approved_amount``; the schedule is recomputed from it.
    """

    entity_type = 'loan'
    entity_label = 'Loan'
    audit_fields = ('loan_type', 'amount', 'approved_amount', 'term_months', 'monthly_payment')

    def validate_payload(self, entity, action, comments, payload):
        super().validate_payload(entity, action, comments, payload)
        approved_amount = payload.get('approved_amount')
        if approved_amount is None:
            return
        if action != 'approve':
            raise ValidationError("An approved amount can only be given when approving", field='approved_amount')
        approved_amount = money(approved_amount)
        if approved_amount <= 0 or approved_amount > entity.amount:
            raise ValidationError(
                "Approved amount must be positive and not exceed the requested amount",
                field='approved_amount',
                details={'requested': str(entity.amount)},
            )

    def on_step_approved(self, entity, actor, now, payload):
        approved_amount = payload.get('approved_amount')
        if approved_amount is not None:
            entity.approved_amount = money(approved_amount)
            entity.compute_schedule()

    def on_approved(self, entity, actor, now, payload):
        entity.approved_by_id = actor_employee_id(actor)

    def on_rejected(self, entity, actor, comments, now):
        entity.rejection_reason = comments


class LoanService:
    """Loan submission and the post-approval lifecycle"""

    LIFECYCLE_FIELDS = (
        'status', 'disbursement_method', 'disbursed_at', 'start_date', 'end_date', 'amount_repaid', 'notes',
    )

    def __init__(self, repository, calculator, workflow_resolver, approval_service, audit, clock=timezone.now):
        self.repository = repository
        self.calculator = calculator
        self.workflow_resolver = workflow_resolver
        self.approval_service = approval_service
        self.audit = audit
        self.clock = clock

    # ------------------------------------------------------------------ submission
    def validate_request(self, loan_type, amount, term_months, purpose, interest_rate=None):
        if loan_type not in LOAN_TYPES:
            raise ValidationError(f"Unknown loan type '{loan_type}'", field='loan_type')
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive", field='amount')
        limit = self.calculator.max_amount(loan_type)
        if limit is not None and amount > limit:
            raise ValidationError(
                f"Amount exceeds the maximum of {limit} for a {loan_type} loan",
                field='amount',
                details={'max_amount': str(limit)},
            )
        if len((purpose or '').strip()) < MIN_PURPOSE_LENGTH:
            raise ValidationError(
                f"Purpose must be at least {MIN_PURPOSE_LENGTH} characters", field='purpose'
            )
        rate = self.calculator.default_rate(loan_type) if interest_rate is None else Decimal(str(interest_rate))
        # Raises on a bad term or rate
        self.calculator.amortize(amount, rate, term_months)
        return amount, rate

    def check_eligibility(self, employee, amount, today=None):
        today = today or timezone.localdate()
        if employee.date_of_joining is None or months_between(employee.date_of_joining, today) < MIN_SERVICE_MONTHS:
            raise DomainError(
                f"At least {MIN_SERVICE_MONTHS} months of service are required for a loan",
                details={'date_of_joining': str(employee.date_of_joining)},
            )
        outstanding = self.repository.outstanding_for(employee.pk)
        limit = money(employee.base_salary) * SALARY_MULTIPLE_LIMIT
        if outstanding + money(amount) > limit:
            raise DomainError(
                "Outstanding loans plus this request exceed the borrowing limit",
                details={'outstanding': str(outstanding), 'requested': str(money(amount)), 'limit': str(limit)},
            )

    def submit_loan(
        self,
        employee,
        loan_type,
        amount,
        purpose,
        term_months,
        *,
        actor=None,
        interest_rate=None,
        guarantor_name='',
        guarantor_contact='',
        notes='',
    ) -> Loan:
        if employee is None or not employee.is_active:
            raise ValidationError("Employee is not active", field='employee')
        amount, rate = self.validate_request(loan_type, amount, term_months, purpose, interest_rate)

        with self.repository.unit_of_work():
            if self.repository.lock_employee(employee.pk) is None:
                raise NotFoundError('Employee', employee.pk)
            self.check_eligibility(employee, amount, today=timezone.localdate(self.clock()))

            resolved = self.workflow_resolver.resolve(
                'loan',
                department_id=employee.department_id,
                position_id=employee.position_id,
                amount=amount,
            )
            loan = Loan(
                employee=employee,
                loan_type=loan_type,
                amount=amount,
                purpose=purpose.strip(),
                interest_rate=rate,
                term_months=term_months,
                guarantor_name=guarantor_name or '',
                guarantor_contact=guarantor_contact or '',
                notes=notes or '',
                created_by=actor if getattr(actor, 'pk', None) else None,
            )
            decisions = self.approval_service.start(loan, resolved, now=self.clock())
            self.repository.add(loan)
            self.approval_service.record_submission(loan, actor, decisions)

        logger.info(
            "loan_submitted loan=%s employee=%s type=%s amount=%s workflow=%s levels=%s",
            loan.pk, employee.pk, loan_type, amount, loan.workflow_id, loan.max_approval_level,
        )
        return loan

    # ------------------------------------------------------------------ lifecycle
    def disburse(self, loan_id, actor, method, start_date: Optional[date] = None) -> Loan:
        if method not in dict(Loan.DISBURSEMENT_CHOICES):
            raise ValidationError(f"Unknown disbursement method '{method}'", field='disbursement_method')

        with self.repository.unit_of_work():
            loan = self._load(loan_id)
            self._require_status(loan, Loan.STATUS_APPROVED, 'disbursed')
            expected_version = loan.version
            before = self._lifecycle_snapshot(loan)

            now = self.clock()
            if start_date is None:
                start_date = add_months(timezone.localdate(now).replace(day=1), 1)
            loan.status = Loan.STATUS_ACTIVE
            loan.disbursement_method = method
            loan.disbursed_at = now
            loan.start_date = start_date
            loan.end_date = add_months(start_date, loan.term_months - 1)
            self.repository.save(loan, expected_version=expected_version, fields=self.LIFECYCLE_FIELDS)
            self._audit(actor, loan, 'disburse', before)
            transaction.on_commit(lambda: _notify(
                'loan_disbursed', [loan.employee_id], {'amount': str(loan.principal), 'entity_id': str(loan.pk)}
            ))

        logger.info("loan_disbursed loan=%s method=%s start=%s", loan.pk, method, loan.start_date)
        return loan

    def record_repayment(self, loan_id, amount, *, actor=None, paid_on=None, payroll=None, notes='') -> LoanRepayment:
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Repayment amount must be positive", field='amount')

        with self.repository.unit_of_work():
            loan = self._load(loan_id)
            self._require_status(loan, Loan.STATUS_ACTIVE, 'repaid')
            if amount > loan.outstanding_balance:
                raise ValidationError(
                    "Repayment exceeds the outstanding balance",
                    field='amount',
                    details={'outstanding_balance': str(loan.outstanding_balance)},
                )
            expected_version = loan.version
            before = self._lifecycle_snapshot(loan)

            repaid_principal = loan.repayments.aggregate(total=Sum('principal_component'))['total'] or ZERO
            principal_part, interest = repayment_split(loan.principal - repaid_principal, loan.interest_rate, amount)
            repayment = LoanRepayment.objects.create(
                loan=loan,
                payroll=payroll,
                amount=amount,
                principal_component=principal_part,
                interest_component=interest,
                paid_on=paid_on or timezone.localdate(self.clock()),
                notes=notes or '',
                created_by=actor if getattr(actor, 'pk', None) else None,
            )
            loan.amount_repaid = money(loan.amount_repaid) + amount
            if loan.outstanding_balance == ZERO:
                loan.status = Loan.STATUS_COMPLETED
            self.repository.save(loan, expected_version=expected_version, fields=self.LIFECYCLE_FIELDS)
            self._audit(actor, loan, 'repayment', before)

        logger.info(
            "loan_repayment loan=%s amount=%s outstanding=%s status=%s",
            loan.pk, amount, loan.outstanding_balance, loan.status,
        )
        return repayment

    def mark_defaulted(self, loan_id, actor, reason='') -> Loan:
        with self.repository.unit_of_work():
            loan = self._load(loan_id)
            self._require_status(loan, Loan.STATUS_ACTIVE, 'marked as defaulted')
            expected_version = loan.version
            before = self._lifecycle_snapshot(loan)
            loan.status = Loan.STATUS_DEFAULTED
            if reason:
                loan.notes = f"{loan.notes}\n{reason}".strip()
            self.repository.save(loan, expected_version=expected_version, fields=self.LIFECYCLE_FIELDS)
            self._audit(actor, loan, 'default', before)

        logger.warning("loan_defaulted loan=%s outstanding=%s", loan.pk, loan.outstanding_balance)
        return loan

    # ------------------------------------------------------------------ internals
    def _load(self, loan_id):
        loan = self.repository.get_for_update(loan_id)
        if loan is None:
            raise NotFoundError('Loan', loan_id)
        return loan

    @staticmethod
    def _require_status(loan, status, verb):
        if loan.status != status:
            raise DomainError(
                f"Only {status} loans can be {verb}; this loan is {loan.status}",
                details={'status': loan.status},
            )

    @staticmethod
    def _lifecycle_snapshot(loan):
        return {
            'status': loan.status,
            'amount_repaid': str(loan.amount_repaid),
            'start_date': str(loan.start_date) if loan.start_date else None,
        }

    def _audit(self, actor, loan, action, before):
        self.audit.record(
            actor=actor,
            entity_type='loan',
            record_id=loan.pk,
            action=action,
            old_values=before,
            new_values=self._lifecycle_snapshot(loan),
        )


def build_loan_approval_service(repository=None) -> LoanApprovalService:
    return LoanApprovalService(
        repository=repository or DjangoLoanRepository(),
        workflow_repository=DjangoWorkflowRepository(),
        approver_resolver=ApproverResolver(),
        audit=audit_service,
        notifier=notification_service,
    )


def build_loan_service(repository: Optional[DjangoLoanRepository] = None) -> LoanService:
    repository = repository or DjangoLoanRepository()
    return LoanService(
        repository=repository,
        calculator=LoanCalculationService(),
        workflow_resolver=WorkflowResolver(DjangoWorkflowRepository()),
        approval_service=build_loan_approval_service(repository),
        audit=audit_service,
    )


# =============================================================================
# PAYROLL
# =============================================================================

class PayrollCalculationService:
    """
    Core engine for payroll calculations: overtime, unpaid leave, statutory
    withholdings and the derived totals.
    """

    def __init__(self):
        self.working_days = int(_payroll_setting('WORKING_DAYS', 22))
        self.hours_per_day = _payroll_setting('HOURS_PER_DAY', 8)
        self.overtime_multiplier = _payroll_setting('OVERTIME_MULTIPLIER', '1.5')
        self.tax_rate = _payroll_setting('TAX_RATE', '0.10')
        self.insurance_rate = _payroll_setting('INSURANCE_RATE', '0.02')
        self.pension_rate = _payroll_setting('PENSION_RATE', '0.05')

    def calculate(self, payroll):
        return calculate_payroll(payroll)

    def daily_rate(self, basic_salary) -> Decimal:
        return money(Decimal(str(basic_salary)) / self.working_days)

    def hourly_rate(self, employee) -> Decimal:
        if employee.hourly_rate:
            return money(employee.hourly_rate)
        return money(Decimal(str(employee.base_salary)) / (self.working_days * self.hours_per_day))

    def overtime_pay(self, hours, hourly_rate) -> Decimal:
        return money(Decimal(str(hours)) * Decimal(str(hourly_rate)) * self.overtime_multiplier)

    def withholdings(self, gross_pay, basic_salary):
        """Tax on gross pay; insurance and pension on basic salary."""
        return (
            money(Decimal(str(gross_pay)) * self.tax_rate),
            money(Decimal(str(basic_salary)) * self.insurance_rate),
            money(Decimal(str(basic_salary)) * self.pension_rate),
        )


def _days_within(leave, start, end) -> Decimal:
    if leave.is_half_day:
        return Decimal('0.5') if start <= leave.start_date <= end else ZERO
    first = max(leave.start_date, start)
    last = min(leave.end_date, end)
    if last < first:
        return ZERO
    return Decimal((last - first).days + 1)


class PayrollService:
    """Monthly payroll generation and the payroll status transitions"""

    TRANSITIONS = {
        'submit': ((Payroll.STATUS_DRAFT,), Payroll.STATUS_PENDING),
        'approve': ((Payroll.STATUS_PENDING,), Payroll.STATUS_APPROVED),
        'mark_paid': ((Payroll.STATUS_APPROVED,), Payroll.STATUS_PAID),
        'cancel': ((Payroll.STATUS_DRAFT, Payroll.STATUS_PENDING), Payroll.STATUS_CANCELLED),
    }
    PAYABLE_EMPLOYMENT_STATUSES = (Employee.STATUS_ACTIVE, Employee.STATUS_ON_LEAVE)

    def __init__(self, calculator, loan_service, audit, clock=timezone.now):
        self.calculator = calculator
        self.loan_service = loan_service
        self.audit = audit
        self.clock = clock

    # ------------------------------------------------------------------ generation
    def generate_for_period(self, pay_period, pay_date: Optional[date] = None, actor=None) -> Dict:
        """
        Create draft payrolls for every payable employee without one for
        ``pay_period``. Each employee is generated in its own transaction;
        failures are logged and the run continues.
        """
        start, end = period_bounds(pay_period)
        pay_date = pay_date or end
        summary = {'pay_period': pay_period, 'created': [], 'skipped': 0, 'failed': []}

        existing = set(Payroll.objects.filter(pay_period=pay_period).values_list('employee_id', flat=True))
        employees = Employee.objects.filter(
            is_active=True,
            employment_status__in=self.PAYABLE_EMPLOYMENT_STATUSES,
            date_of_joining__lte=end,
        ).order_by('employee_id')

        for employee in employees:
            if employee.pk in existing:
                summary['skipped'] += 1
                continue
            try:
                with transaction.atomic():
                    payroll = self.build_draft(employee, pay_period, pay_date, actor=actor)
                    payroll.save()
            except (HRMSError, DjangoValidationError, DatabaseError) as exc:
                logger.warning(
                    "payroll_generation_failed employee=%s period=%s error=%s",
                    employee.pk, pay_period, exc,
                )
                summary['failed'].append({'employee': str(employee.pk), 'error': str(exc)})
                continue
            summary['created'].append(str(payroll.pk))

        logger.info(
            "payroll_generated period=%s created=%s skipped=%s failed=%s",
            pay_period, len(summary['created']), summary['skipped'], len(summary['failed']),
        )
        return summary

    def build_draft(self, employee, pay_period, pay_date, actor=None) -> Payroll:
        start, end = period_bounds(pay_period)
        calc = self.calculator
        basic = money(employee.base_salary)

        overtime_hours = (
            AttendanceRecord.objects.filter(employee=employee, date__range=(start, end))
            .aggregate(total=Sum('overtime_hours'))['total'] or ZERO
        )
        overtime_pay = calc.overtime_pay(overtime_hours, calc.hourly_rate(employee))

        leave_days, unpaid_days = ZERO, ZERO
        leaves = LeaveRequest.objects.filter(
            employee=employee,
            status=LeaveRequest.STATUS_APPROVED,
            start_date__lte=end,
            end_date__gte=start,
        )
        for leave in leaves:
            days = _days_within(leave, start, end)
            leave_days += days
            if leave.leave_type == LEAVE_TYPE_UNPAID:
                unpaid_days += days

        deductions = []
        if unpaid_days:
            deductions.append({
                'name': 'Unpaid leave',
                'amount': str(min(money(calc.daily_rate(basic) * unpaid_days), basic)),
            })

        instalments = []
        for loan in Loan.objects.filter(employee=employee, status=Loan.STATUS_ACTIVE, start_date__lte=end):
            amount = min(money(loan.monthly_payment), loan.outstanding_balance)
            if amount > 0:
                instalments.append({'loan': str(loan.pk), 'amount': str(amount)})

        payroll = Payroll(
            employee=employee,
            pay_period=pay_period,
            start_date=start,
            end_date=end,
            pay_date=pay_date,
            basic_salary=basic,
            deductions=deductions,
            overtime_hours=money(overtime_hours),
            overtime_pay=overtime_pay,
            loan_instalments=instalments,
            loan_deductions=sum((Decimal(item['amount']) for item in instalments), ZERO),
            working_days=calc.working_days,
            leave_days=leave_days,
            created_by=actor if getattr(actor, 'pk', None) else None,
        )
        calc.calculate(payroll)
        payroll.tax_amount, payroll.insurance_amount, payroll.pension_amount = calc.withholdings(
            payroll.gross_pay, basic
        )
        return calc.calculate(payroll)

    # ------------------------------------------------------------------ transitions
    def transition(self, payroll_id, action, actor, *, payment_method='', reference_number='') -> Payroll:
        if action not in self.TRANSITIONS:
            raise ValidationError(f"Unsupported action '{action}'", field='action')
        allowed_from, target = self.TRANSITIONS[action]

        with transaction.atomic():
            payroll = Payroll.objects.select_for_update(of=('self',)).select_related('employee').filter(
                pk=payroll_id
            ).first()
            if payroll is None:
                raise NotFoundError('Payroll', payroll_id)
            if payroll.status not in allowed_from:
                raise DomainError(
                    f"Cannot {action.replace('_', ' ')} a {payroll.status} payroll",
                    details={'status': payroll.status, 'allowed_from': list(allowed_from)},
                )
            before = {'status': payroll.status}
            payroll.status = target
            fields = ['status', 'updated_at', 'updated_by']
            if action == 'mark_paid':
                if payment_method and payment_method not in dict(Payroll.PAYMENT_METHOD_CHOICES):
                    raise ValidationError(f"Unknown payment method '{payment_method}'", field='payment_method')
                payroll.payment_method = payment_method or payroll.payment_method
                payroll.reference_number = reference_number or payroll.reference_number
                payroll.paid_at = self.clock()
                fields += ['payment_method', 'reference_number', 'paid_at']
                self._record_instalments(payroll, actor)
            payroll.updated_by = actor if getattr(actor, 'pk', None) else None
            payroll.save(update_fields=fields)

            self.audit.record(
                actor=actor,
                entity_type='payroll',
                record_id=payroll.pk,
                action=action,
                old_values=before,
                new_values={'status': payroll.status, 'net_pay': str(payroll.net_pay)},
            )
            if action == 'mark_paid':
                payload = {'pay_period': payroll.pay_period, 'status': payroll.status, 'net_pay': str(payroll.net_pay)}
                transaction.on_commit(lambda: _notify('payroll_processed', [payroll.employee_id], payload))

        logger.info("payroll_transition payroll=%s action=%s status=%s", payroll.pk, action, payroll.status)
        return payroll

    def _record_instalments(self, payroll, actor):
        for item in payroll.loan_instalments:
            loan = Loan.objects.filter(pk=item['loan']).first()
            if loan is None or loan.status != Loan.STATUS_ACTIVE:
                logger.warning(
                    "payroll_instalment_skipped payroll=%s loan=%s status=%s",
                    payroll.pk, item['loan'], getattr(loan, 'status', None),
                )
                continue
            amount = min(money(item['amount']), loan.outstanding_balance)
            if amount > 0:
                self.loan_service.record_repayment(
                    loan.pk, amount, actor=actor, paid_on=payroll.pay_date, payroll=payroll,
                    notes=f"Payroll {payroll.pay_period}",
                )


def build_payroll_service() -> PayrollService:
    return PayrollService(
        calculator=PayrollCalculationService(),
        loan_service=build_loan_service(),
        audit=audit_service,
    )


def previous_pay_period(today: Optional[date] = None) -> str:
    today = today or timezone.localdate()
    last_month = today.replace(day=1) - timedelta(days=1)
    return f"{last_month.year:04d}-{last_month.month:02d}"
