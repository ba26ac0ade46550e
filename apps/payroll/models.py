"""
Payroll Models - Loans, loan repayments and monthly payroll
"""

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models

from apps.core.models import EnterpriseModel
from apps.workflows.models import ApprovableModel

from .calculations import (
    DEFAULT_INTEREST_RATES,
    MAX_TERM_MONTHS,
    MIN_TERM_MONTHS,
    ZERO,
    amortize,
    calculate_payroll,
    money,
)


LOAN_TYPE_CHOICES = [
    ('personal', 'Personal'),
    ('emergency', 'Emergency'),
    ('education', 'Education'),
    ('medical', 'Medical'),
    ('housing', 'Housing'),
    ('vehicle', 'Vehicle'),
]


class Loan(ApprovableModel):
    """
    Employee loan. Goes through the approval chain, then is disbursed and
    repaid through payroll or manual repayments.
    """

    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_DEFAULTED = 'defaulted'

    STATUS_CHOICES = [
        (ApprovableModel.STATUS_PENDING, 'Pending'),
        (ApprovableModel.STATUS_APPROVED, 'Approved'),
        (ApprovableModel.STATUS_REJECTED, 'Rejected'),
        (ApprovableModel.STATUS_CANCELLED, 'Cancelled'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_DEFAULTED, 'Defaulted'),
    ]
    # Statuses whose money is owed or reserved
    OUTSTANDING_STATUSES = (ApprovableModel.STATUS_APPROVED, STATUS_ACTIVE)

    DISBURSEMENT_CHOICES = [
        ('bank_transfer', 'Bank Transfer'),
        ('check', 'Check'),
        ('cash', 'Cash'),
    ]

    employee = models.ForeignKey(
        'employees.Employee',
        on_delete=models.PROTECT,
        related_name='loans'
    )
    loan_type = models.CharField(max_length=20, choices=LOAN_TYPE_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    purpose = models.TextField(validators=[MinLengthValidator(10)])

    interest_rate = models.DecimalField(
        max_digits=5, decimal_places=4, validators=[MinValueValidator(0), MaxValueValidator(1)],
        help_text="Annual rate as a fraction, 0.12 = 12%"
    )
    term_months = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(MIN_TERM_MONTHS), MaxValueValidator(MAX_TERM_MONTHS)]
    )
    monthly_payment = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=ApprovableModel.STATUS_PENDING, db_index=True
    )
    approved_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    approved_by = models.ForeignKey(
        'employees.Employee', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    rejection_reason = models.TextField(blank=True)

    disbursement_method = models.CharField(max_length=20, choices=DISBURSEMENT_CHOICES, blank=True)
    disbursed_at = models.DateTimeField(null=True, blank=True)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    amount_repaid = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    guarantor_name = models.CharField(max_length=100, blank=True)
    guarantor_contact = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['employee', 'status']),
            models.Index(fields=['status', 'current_approver']),
        ]

    def __str__(self):
        return f"{self.employee} - {self.get_loan_type_display()} {self.amount}"

    @property
    def principal(self):
        return self.approved_amount if self.approved_amount is not None else self.amount

    @property
    def outstanding_balance(self):
        return max(money(self.total_amount) - money(self.amount_repaid), ZERO)

    def compute_schedule(self):
        if self.interest_rate is None:
            self.interest_rate = DEFAULT_INTEREST_RATES.get(self.loan_type, Decimal('0'))
        self.monthly_payment, self.total_amount = amortize(self.principal, self.interest_rate, self.term_months)

    def clean(self):
        if self.approved_amount is not None and self.approved_amount > self.amount:
            raise ValidationError({'approved_amount': 'Approved amount cannot exceed the requested amount'})

    def save(self, *args, **kwargs):
        if self.amount and self.term_months:
            self.compute_schedule()
        super().save(*args, **kwargs)


class LoanApproval(models.Model):
    """One decision in a loan's approval chain"""

    ACTION_CHOICES = [
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('auto_approved', 'Auto Approved'),
        ('skipped', 'Skipped'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    loan = models.ForeignKey(Loan, on_delete=models.CASCADE, related_name='approvals')
    approver = models.ForeignKey(
        'employees.Employee',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='loan_decisions'
    )
    level = models.PositiveSmallIntegerField()
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    comments = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['loan', 'level']
        unique_together = ['loan', 'level']

    def __str__(self):
        return f"{self.loan_id} L{self.level} {self.action}"


class LoanRepayment(EnterpriseModel):
    """A payment against a loan, either a payroll instalment or a manual payment."""

    loan = models.ForeignKey(Loan, on_delete=models.PROTECT, related_name='repayments')
    payroll = models.ForeignKey(
        'Payroll', on_delete=models.SET_NULL, null=True, blank=True, related_name='loan_repayments'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    principal_component = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    interest_component = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    paid_on = models.DateField()
    notes = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['-paid_on', '-created_at']

    def __str__(self):
        return f"{self.loan_id} {self.amount} on {self.paid_on}"


class Payroll(EnterpriseModel):
    """
    One employee's pay for one ``YYYY-MM`` period.

    Totals are derived on save by ``calculate_payroll``; every
    component is non-negative so ``net_pay <= gross_pay``. Never deleted;
    cancel instead.
    """

    STATUS_DRAFT = 'draft'
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_PAID = 'paid'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_PAID, 'Paid'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('bank_transfer', 'Bank Transfer'),
        ('check', 'Check'),
        ('cash', 'Cash'),
    ]

    employee = models.ForeignKey(
        'employees.Employee',
        on_delete=models.PROTECT,
        related_name='payrolls'
    )
    pay_period = models.CharField(max_length=7, db_index=True, help_text="YYYY-MM")
    start_date = models.DateField()
    end_date = models.DateField()
    pay_date = models.DateField()

    basic_salary = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    allowances = models.JSONField(default=list, blank=True)
    bonuses = models.JSONField(default=list, blank=True)
    deductions = models.JSONField(default=list, blank=True)
    total_allowances = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_bonuses = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_deductions = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    overtime_hours = models.DecimalField(max_digits=6, decimal_places=2, default=0)
    overtime_pay = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    insurance_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    pension_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    loan_deductions = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    # [{"loan": id, "amount": "..."}] withheld this period; repayments are recorded when paid
    loan_instalments = models.JSONField(default=list, blank=True)

    working_days = models.PositiveSmallIntegerField(default=0)
    leave_days = models.DecimalField(max_digits=5, decimal_places=1, default=0)

    gross_pay = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    net_pay = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, blank=True)
    reference_number = models.CharField(max_length=100, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-pay_period', 'employee']
        unique_together = ['employee', 'pay_period']
        indexes = [
            models.Index(fields=['pay_period', 'status']),
        ]

    def __str__(self):
        return f"{self.employee} - {self.pay_period}"

    def save(self, *args, **kwargs):
        calculate_payroll(self)
        super().save(*args, **kwargs)
