"""
Money arithmetic shared by the loan and payroll models and services.

Everything here is pure: no database access, Decimal in and Decimal out.
"""
from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Tuple

from apps.core.exceptions import ValidationError

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

DEFAULT_INTEREST_RATES = {
    'personal': Decimal('0.12'),
    'emergency': Decimal('0.10'),
    'education': Decimal('0.06'),
    'medical': Decimal('0.10'),
    'housing': Decimal('0.08'),
    'vehicle': Decimal('0.09'),
}

MAX_LOAN_AMOUNTS = {
    'personal': Decimal('50000'),
    'emergency': Decimal('25000'),
    'education': Decimal('100000'),
    'medical': Decimal('75000'),
    'housing': Decimal('500000'),
    'vehicle': Decimal('200000'),
}

MIN_TERM_MONTHS = 1
MAX_TERM_MONTHS = 60


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def amortize(principal, annual_rate, term_months: int) -> Tuple[Decimal, Decimal]:
    """
    Fixed monthly instalment and total repayable.

    ``monthly = P*r*(1+r)^n / ((1+r)^n - 1)`` with ``r = annual_rate / 12``;
    a zero rate spreads the principal evenly.
    """
    principal = Decimal(str(principal))
    annual_rate = Decimal(str(annual_rate or 0))
    if principal <= 0:
        raise ValidationError("Principal must be positive", field='amount')
    if not MIN_TERM_MONTHS <= int(term_months) <= MAX_TERM_MONTHS:
        raise ValidationError(
            f"Term must be between {MIN_TERM_MONTHS} and {MAX_TERM_MONTHS} months", field='term_months'
        )
    if annual_rate < 0:
        raise ValidationError("Interest rate cannot be negative", field='interest_rate')

    n = int(term_months)
    if annual_rate == 0:
        monthly = principal / n
    else:
        r = annual_rate / 12
        factor = (1 + r) ** n
        monthly = principal * r * factor / (factor - 1)
    monthly = money(monthly)
    return monthly, money(monthly * n)


def repayment_split(outstanding_principal, annual_rate, payment) -> Tuple[Decimal, Decimal]:
    """Split a payment into (principal, interest) against the outstanding principal."""
    interest = money(Decimal(str(outstanding_principal)) * Decimal(str(annual_rate or 0)) / 12)
    payment = money(payment)
    interest = min(interest, payment)
    return payment - interest, interest


def sum_items(items: Iterable[dict], label: str) -> Decimal:
    """Total of a ``[{name, amount}]`` list; negative or malformed amounts are rejected."""
    total = ZERO
    for index, item in enumerate(items or []):
        if not isinstance(item, dict) or 'amount' not in item:
            raise ValidationError(f"Each {label} entry needs a name and an amount", field=label)
        amount = money(item['amount'])
        if amount < 0:
            raise ValidationError(f"{label} entry {index + 1} cannot be negative", field=label)
        total += amount
    return total


def months_between(start: date, end: date) -> int:
    """Whole months from ``start`` to ``end``."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return months


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    days_in_month = [31, 29 if _is_leap(year) else 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31][month - 1]
    return date(year, month, min(start.day, days_in_month))


def _is_leap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def period_bounds(pay_period: str) -> Tuple[date, date]:
    """First and last date of a ``YYYY-MM`` pay period."""
    try:
        year, month = (int(part) for part in pay_period.split('-'))
        first = date(year, month, 1)
    except (AttributeError, TypeError, ValueError):
        raise ValidationError("Pay period must look like YYYY-MM", field='pay_period')
    last = add_months(first, 1).replace(day=1)
    return first, date.fromordinal(last.toordinal() - 1)


MONEY_COMPONENTS = (
    'basic_salary', 'overtime_pay', 'tax_amount', 'insurance_amount', 'pension_amount', 'loan_deductions',
)


def calculate_payroll(payroll):
    """
    Derive the list totals, gross and net pay of a payroll in place.

    gross = basic + allowances + overtime + bonuses
    net   = gross - deductions - tax - insurance - pension - loan instalments
    """
    for name in MONEY_COMPONENTS:
        value = money(getattr(payroll, name) or 0)
        if value < 0:
            raise ValidationError(f"{name.replace('_', ' ').capitalize()} cannot be negative", field=name)
        setattr(payroll, name, value)
    if Decimal(str(payroll.overtime_hours or 0)) < 0:
        raise ValidationError("Overtime hours cannot be negative", field='overtime_hours')

    payroll.total_allowances = sum_items(payroll.allowances, 'allowances')
    payroll.total_bonuses = sum_items(payroll.bonuses, 'bonuses')
    payroll.total_deductions = sum_items(payroll.deductions, 'deductions')

    payroll.gross_pay = (
        payroll.basic_salary + payroll.total_allowances + payroll.overtime_pay + payroll.total_bonuses
    )
    withheld = (
        payroll.total_deductions + payroll.tax_amount + payroll.insurance_amount
        + payroll.pension_amount + payroll.loan_deductions
    )
    if withheld > payroll.gross_pay:
        raise ValidationError(
            "Deductions exceed gross pay",
            field='deductions',
            details={'gross_pay': str(payroll.gross_pay), 'withheld': str(withheld)},
        )
    payroll.net_pay = payroll.gross_pay - withheld
    return payroll
