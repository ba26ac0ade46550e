"""Persistence for loans"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

from django.db.models import F, Sum

from apps.employees.models import Employee
from apps.workflows.repositories import ApprovableRepository, DjangoApprovableRepository

from .calculations import ZERO, money
from .models import Loan, LoanApproval


class LoanRepository(ApprovableRepository, Protocol):
    def lock_employee(self, employee_id) -> Optional[object]:
        raise NotImplementedError

    def outstanding_for(self, employee_id) -> Decimal:
        """Money the employee owes or has requested: open loan balances plus pending requests."""
        raise NotImplementedError

    def add(self, loan) -> None:
        raise NotImplementedError


class DjangoLoanRepository(DjangoApprovableRepository):
    model = Loan
    decision_model = LoanApproval
    decision_fk = 'loan'
    transition_fields = (
        'approved_by', 'approved_amount', 'monthly_payment', 'total_amount', 'rejection_reason',
    )
    related = ('employee',)

    def lock_employee(self, employee_id):
        return Employee.objects.select_for_update().filter(pk=employee_id).first()

    def outstanding_for(self, employee_id):
        open_balance = (
            Loan.objects.filter(employee_id=employee_id, status__in=Loan.OUTSTANDING_STATUSES)
            .aggregate(owed=Sum(F('total_amount') - F('amount_repaid')))['owed']
        )
        requested = (
            Loan.objects.filter(employee_id=employee_id, status=Loan.STATUS_PENDING)
            .aggregate(requested=Sum('amount'))['requested']
        )
        return money(open_balance or ZERO) + money(requested or ZERO)

    def add(self, loan):
        loan.save()
