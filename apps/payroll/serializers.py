"""
Payroll Serializers
"""

from rest_framework import serializers

from apps.workflows.serializers import ApprovalDecisionSerializer

from .calculations import MAX_TERM_MONTHS, MIN_TERM_MONTHS
from .models import LOAN_TYPE_CHOICES, Loan, LoanApproval, LoanRepayment, Payroll


# ---------------------------------------------------------------------------
# Loans
# ---------------------------------------------------------------------------

class LoanApprovalSerializer(serializers.ModelSerializer):
    approver_name = serializers.CharField(source='approver.full_name', read_only=True, default=None)

    class Meta:
        model = LoanApproval
        fields = ['id', 'loan', 'approver', 'approver_name', 'level', 'action', 'comments', 'created_at']
        read_only_fields = fields


class LoanRepaymentSerializer(serializers.ModelSerializer):
    pay_period = serializers.CharField(source='payroll.pay_period', read_only=True, default=None)

    class Meta:
        model = LoanRepayment
        fields = [
            'id', 'loan', 'payroll', 'pay_period', 'amount', 'principal_component',
            'interest_component', 'paid_on', 'notes', 'created_at',
        ]
        read_only_fields = fields


class LoanListSerializer(serializers.ModelSerializer):
    employee_code = serializers.CharField(source='employee.employee_id', read_only=True)
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    outstanding_balance = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Loan
        fields = [
            'id', 'employee', 'employee_code', 'employee_name', 'loan_type', 'amount',
            'approved_amount', 'term_months', 'monthly_payment', 'status', 'approval_level',
            'max_approval_level', 'current_approver', 'outstanding_balance', 'submitted_at', 'created_at',
        ]


class LoanDetailSerializer(serializers.ModelSerializer):
    employee_code = serializers.CharField(source='employee.employee_id', read_only=True)
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    current_approver_name = serializers.CharField(source='current_approver.full_name', read_only=True, default=None)
    principal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    outstanding_balance = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    approvals = LoanApprovalSerializer(many=True, read_only=True)
    repayments = LoanRepaymentSerializer(many=True, read_only=True)

    class Meta:
        model = Loan
        fields = [
            'id', 'employee', 'employee_code', 'employee_name', 'loan_type', 'amount', 'purpose',
            'interest_rate', 'term_months', 'monthly_payment', 'total_amount', 'principal',
            'status', 'approved_amount', 'approved_by', 'rejection_reason',
            'workflow', 'approval_level', 'max_approval_level',
            'current_approver', 'current_approver_name', 'current_step_started_at',
            'disbursement_method', 'disbursed_at', 'start_date', 'end_date',
            'amount_repaid', 'outstanding_balance', 'guarantor_name', 'guarantor_contact', 'notes',
            'submitted_at', 'decided_at', 'version', 'approvals', 'repayments', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class LoanApplySerializer(serializers.Serializer):
    loan_type = serializers.ChoiceField(choices=LOAN_TYPE_CHOICES)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    purpose = serializers.CharField(min_length=10, max_length=2000)
    term_months = serializers.IntegerField(min_value=MIN_TERM_MONTHS, max_value=MAX_TERM_MONTHS)
    interest_rate = serializers.DecimalField(
        max_digits=5, decimal_places=4, min_value=0, max_value=1, required=False, allow_null=True
    )
    guarantor_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    guarantor_contact = serializers.CharField(max_length=100, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class LoanDecisionSerializer(ApprovalDecisionSerializer):
    """Approve / reject / cancel body; an approver may lower the amount."""
    approved_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)


class LoanCalculateSerializer(serializers.Serializer):
    loan_type = serializers.ChoiceField(choices=LOAN_TYPE_CHOICES)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    term_months = serializers.IntegerField(min_value=MIN_TERM_MONTHS, max_value=MAX_TERM_MONTHS)
    interest_rate = serializers.DecimalField(
        max_digits=5, decimal_places=4, min_value=0, max_value=1, required=False, allow_null=True
    )
    start_date = serializers.DateField(required=False, allow_null=True)


class LoanDisburseSerializer(serializers.Serializer):
    disbursement_method = serializers.ChoiceField(choices=Loan.DISBURSEMENT_CHOICES)
    start_date = serializers.DateField(required=False, allow_null=True)


class LoanRepaySerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    paid_on = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True)


class LoanDefaultSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000, allow_blank=True, default='')


# ---------------------------------------------------------------------------
# Payroll
# ---------------------------------------------------------------------------

class PayItemSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class PayrollListSerializer(serializers.ModelSerializer):
    employee_code = serializers.CharField(source='employee.employee_id', read_only=True)
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)

    class Meta:
        model = Payroll
        fields = [
            'id', 'employee', 'employee_code', 'employee_name', 'pay_period', 'pay_date',
            'gross_pay', 'net_pay', 'status', 'paid_at',
        ]


class PayrollSerializer(serializers.ModelSerializer):
    """
    Full payroll. ``allowances``, ``bonuses`` and ``deductions`` are editable
    while the payroll is a draft; totals, gross and net are always derived.
    """
    employee_code = serializers.CharField(source='employee.employee_id', read_only=True)
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    allowances = PayItemSerializer(many=True, required=False)
    bonuses = PayItemSerializer(many=True, required=False)
    deductions = PayItemSerializer(many=True, required=False)

    class Meta:
        model = Payroll
        fields = [
            'id', 'employee', 'employee_code', 'employee_name', 'pay_period',
            'start_date', 'end_date', 'pay_date', 'basic_salary',
            'allowances', 'bonuses', 'deductions',
            'total_allowances', 'total_bonuses', 'total_deductions',
            'overtime_hours', 'overtime_pay', 'tax_amount', 'insurance_amount', 'pension_amount',
            'loan_deductions', 'loan_instalments', 'working_days', 'leave_days',
            'gross_pay', 'net_pay', 'status', 'payment_method', 'reference_number', 'paid_at', 'notes',
            'created_at', 'updated_at',
        ]
        read_only_fields = [
            'id', 'employee', 'pay_period', 'start_date', 'end_date',
            'total_allowances', 'total_bonuses', 'total_deductions', 'overtime_hours',
            'loan_deductions', 'loan_instalments', 'working_days', 'leave_days',
            'gross_pay', 'net_pay', 'status', 'payment_method', 'reference_number', 'paid_at',
            'created_at', 'updated_at',
        ]

    def validate(self, attrs):
        if self.instance is not None and self.instance.status != Payroll.STATUS_DRAFT:
            raise serializers.ValidationError('Only draft payrolls can be edited')
        for name in ('allowances', 'bonuses', 'deductions'):
            if name in attrs:
                attrs[name] = [{'name': item['name'], 'amount': str(item['amount'])} for item in attrs[name]]
        return attrs


class PayrollGenerateSerializer(serializers.Serializer):
    pay_period = serializers.RegexField(r'^\d{4}-(0[1-9]|1[0-2])$')
    pay_date = serializers.DateField(required=False, allow_null=True)


class PayrollPaySerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=Payroll.PAYMENT_METHOD_CHOICES)
    reference_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
