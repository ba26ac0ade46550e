"""
Payroll Admin
"""

from django.contrib import admin

from .models import Loan, LoanApproval, LoanRepayment, Payroll


class LoanApprovalInline(admin.TabularInline):
    model = LoanApproval
    extra = 0
    readonly_fields = ['level', 'approver', 'action', 'comments', 'created_at']
    can_delete = False


class LoanRepaymentInline(admin.TabularInline):
    model = LoanRepayment
    fk_name = 'loan'
    extra = 0
    readonly_fields = ['amount', 'principal_component', 'interest_component', 'paid_on', 'payroll']
    can_delete = False


@admin.register(Loan)
class LoanAdmin(admin.ModelAdmin):
    list_display = [
        'employee', 'loan_type', 'amount', 'approved_amount', 'term_months',
        'monthly_payment', 'status', 'approval_level', 'max_approval_level',
    ]
    list_filter = ['status', 'loan_type']
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name']
    raw_id_fields = ['employee', 'current_approver', 'approved_by', 'workflow']
    readonly_fields = ['monthly_payment', 'total_amount', 'amount_repaid', 'version', 'submitted_at', 'decided_at']
    inlines = [LoanApprovalInline, LoanRepaymentInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Payroll)
class PayrollAdmin(admin.ModelAdmin):
    list_display = ['employee', 'pay_period', 'gross_pay', 'net_pay', 'status', 'pay_date']
    list_filter = ['status', 'pay_period']
    search_fields = ['employee__employee_id', 'employee__first_name', 'employee__last_name']
    raw_id_fields = ['employee']
    readonly_fields = [
        'total_allowances', 'total_bonuses', 'total_deductions',
        'gross_pay', 'net_pay', 'loan_instalments', 'paid_at',
    ]
    fieldsets = (
        ('Period', {
            'fields': ('employee', 'pay_period', 'start_date', 'end_date', 'pay_date', 'status')
        }),
        ('Earnings', {
            'fields': ('basic_salary', 'allowances', 'total_allowances', 'bonuses', 'total_bonuses',
                       'overtime_hours', 'overtime_pay')
        }),
        ('Deductions', {
            'fields': ('deductions', 'total_deductions', 'tax_amount', 'insurance_amount',
                       'pension_amount', 'loan_deductions', 'loan_instalments')
        }),
        ('Totals', {
            'fields': ('working_days', 'leave_days', 'gross_pay', 'net_pay')
        }),
        ('Payment', {
            'fields': ('payment_method', 'reference_number', 'paid_at', 'notes')
        }),
    )

    def has_delete_permission(self, request, obj=None):
        return False
