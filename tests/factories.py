import datetime
from decimal import Decimal

import factory

from apps.attendance.models import Shift
from apps.authentication.models import Role, User
from apps.employees.models import Branch, Department, Employee, Position
from apps.leave.models import LeaveRequest
from apps.payroll.models import Loan
from apps.workflows.models import ApprovalStep, ApprovalWorkflow


class RoleFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Role
        django_get_or_create = ('code',)

    code = factory.Sequence(lambda n: f'role-{n}')
    name = factory.LazyAttribute(lambda role: role.code.replace('-', ' ').title())
    permissions = factory.LazyFunction(list)


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User

    email = factory.Sequence(lambda n: f'user{n}@example.com')
    first_name = factory.Faker('first_name')
    last_name = factory.Faker('last_name')
    password = factory.django.Password('testpass123')
    is_verified = True

    @factory.post_generation
    def roles(self, create, extracted, **kwargs):
        if create and extracted:
            self.roles.add(*extracted)


class BranchFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Branch

    name = factory.Sequence(lambda n: f'Branch {n}')
    code = factory.Sequence(lambda n: f'BR{n:03d}')


class DepartmentFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Department

    name = factory.Sequence(lambda n: f'Department {n}')
    code = factory.Sequence(lambda n: f'DEP{n:03d}')


class PositionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Position

    title = factory.Sequence(lambda n: f'Position {n}')
    code = factory.Sequence(lambda n: f'POS{n:03d}')


class EmployeeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Employee

    user = factory.SubFactory(UserFactory)
    employee_id = factory.Sequence(lambda n: f'EMP{n:05d}')
    first_name = factory.Faker('first_name')
    last_name = factory.Faker('last_name')
    email = factory.Sequence(lambda n: f'employee{n}@example.com')
    date_of_joining = datetime.date(2020, 1, 1)
    base_salary = Decimal('6000.00')


class ApprovalWorkflowFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ApprovalWorkflow

    name = factory.Sequence(lambda n: f'Workflow {n}')
    entity_type = 'leave'


class ApprovalStepFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ApprovalStep

    workflow = factory.SubFactory(ApprovalWorkflowFactory)
    step_order = factory.Sequence(lambda n: n + 1)
    name = factory.LazyAttribute(lambda step: f'Step {step.step_order}')
    approver_type = ApprovalStep.APPROVER_ANY_MANAGER


class LeaveRequestFactory(factory.django.DjangoModelFactory):
    """A pending leave inserted directly, without going through the service."""

    class Meta:
        model = LeaveRequest

    employee = factory.SubFactory(EmployeeFactory)
    leave_type = 'annual'
    start_date = datetime.date(2025, 3, 3)
    end_date = datetime.date(2025, 3, 5)
    total_days = factory.LazyAttribute(lambda leave: Decimal((leave.end_date - leave.start_date).days + 1))
    reason = 'Family trip'
    status = LeaveRequest.STATUS_PENDING


class LoanFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Loan

    employee = factory.SubFactory(EmployeeFactory)
    loan_type = 'personal'
    amount = Decimal('1200.00')
    purpose = 'Home repairs after storm damage'
    interest_rate = Decimal('0.1200')
    term_months = 12
    status = Loan.STATUS_PENDING


class ShiftFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Shift

    name = factory.Sequence(lambda n: f'Shift {n}')
    start_time = datetime.time(9, 0)
    end_time = datetime.time(17, 0)
    break_minutes = 60
    grace_minutes = 15
