import datetime
import uuid
from decimal import Decimal

from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.core.exceptions import AuthorizationError, ConflictError, DomainError, NotFoundError, ValidationError
from apps.leave.models import LeaveApproval, LeaveEntitlement, LeaveRequest
from apps.leave.services import build_leave_approval_service, build_leave_service, compute_duration, days_in_year
from apps.workflows.models import ApprovalStep
from tests.factories import ApprovalStepFactory, ApprovalWorkflowFactory, EmployeeFactory, LeaveRequestFactory

D = datetime.date

# Service tests run on 1 March 2025
TODAY = datetime.datetime(2025, 3, 1, 12, 0, tzinfo=datetime.timezone.utc)


class LeaveDurationTests(SimpleTestCase):

    def test_inclusive_calendar_days(self):
        self.assertEqual(compute_duration(D(2025, 3, 3), D(2025, 3, 5)), Decimal('3'))
        self.assertEqual(compute_duration(D(2025, 3, 3), D(2025, 3, 3)), Decimal('1'))

    def test_half_day(self):
        self.assertEqual(compute_duration(D(2025, 3, 3), D(2025, 3, 3), True, 'first_half'), Decimal('0.5'))

    def test_half_day_over_several_days_is_rejected(self):
        with self.assertRaises(ValidationError):
            compute_duration(D(2025, 3, 3), D(2025, 3, 4), True, 'first_half')

    def test_half_day_needs_a_half(self):
        with self.assertRaises(ValidationError):
            compute_duration(D(2025, 3, 3), D(2025, 3, 3), True, None)

    def test_end_before_start(self):
        with self.assertRaises(ValidationError):
            compute_duration(D(2025, 3, 5), D(2025, 3, 3))

    def test_leave_across_new_year_is_split(self):
        self.assertEqual(days_in_year(D(2024, 12, 30), D(2025, 1, 2), False, 2024), Decimal('2'))
        self.assertEqual(days_in_year(D(2024, 12, 30), D(2025, 1, 2), False, 2025), Decimal('2'))
        self.assertEqual(days_in_year(D(2024, 12, 30), D(2025, 1, 2), False, 2026), Decimal('0'))


class LeaveServiceTests(TestCase):

    def setUp(self):
        self.director = EmployeeFactory()
        self.manager = EmployeeFactory(reporting_manager=self.director)
        self.employee = EmployeeFactory(reporting_manager=self.manager)
        self.service = build_leave_service(clock=lambda: TODAY)
        self.approvals = build_leave_approval_service()

    def submit(self, leave_type='annual', start=D(2025, 3, 3), end=D(2025, 3, 5), **kwargs):
        return self.service.submit_leave(
            self.employee, leave_type, start, end, 'Family event', actor=self.employee.user, **kwargs
        )

    def test_submit_assigns_reporting_manager(self):
        leave = self.submit()
        self.assertEqual(leave.status, LeaveRequest.STATUS_PENDING)
        self.assertEqual(leave.total_days, Decimal('3'))
        self.assertEqual(leave.approval_level, 0)
        self.assertEqual(leave.max_approval_level, 2)
        self.assertEqual(leave.current_approver_id, self.manager.pk)

    def test_sick_balance_counts_pending_days(self):
        self.submit('sick')
        balance = self.service.compute_balance(self.employee.pk, 2025)
        self.assertEqual(balance['sick'], Decimal('7'))
        self.assertEqual(balance['annual'], Decimal('20'))
        self.assertNotIn('unpaid', balance)

    def test_entitlement_override(self):
        LeaveEntitlement.objects.create(employee=self.employee, leave_type='sick', year=2025, days=Decimal('2'))
        with self.assertRaises(DomainError):
            self.submit('sick')

    def test_default_entitlements(self):
        balance = self.service.compute_balance(self.employee.pk, 2025)
        self.assertEqual(balance['paternity'], Decimal('14'))
        self.assertEqual(balance['maternity'], Decimal('90'))

    def test_balance_exceeded(self):
        with self.assertRaises(DomainError):
            self.submit('personal', D(2025, 3, 3), D(2025, 3, 8))
        self.assertFalse(LeaveRequest.objects.filter(employee=self.employee).exists())

    def test_unpaid_leave_is_unlimited(self):
        leave = self.submit('unpaid', D(2025, 3, 1), D(2025, 5, 31))
        self.assertEqual(leave.total_days, Decimal('92'))

    def test_overlapping_leave_is_a_conflict(self):
        self.submit()
        with self.assertRaises(ConflictError):
            self.submit(start=D(2025, 3, 5), end=D(2025, 3, 6))

    def test_cancelled_leave_frees_the_dates(self):
        leave = self.submit()
        self.approvals.transition(leave.pk, 'cancel', self.employee.user)
        again = self.submit()
        self.assertEqual(again.status, LeaveRequest.STATUS_PENDING)

    def test_manager_chain_reaches_approved(self):
        leave = self.submit()
        leave = self.approvals.transition(leave.pk, 'approve', self.manager.user)
        self.assertEqual(leave.status, LeaveRequest.STATUS_PENDING)
        self.assertEqual(leave.current_approver_id, self.director.pk)

        leave = self.approvals.transition(leave.pk, 'approve', self.director.user)
        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.STATUS_APPROVED)
        self.assertEqual(leave.approval_level, 2)
        self.assertEqual(leave.approved_by_id, self.director.pk)
        self.assertIsNotNone(leave.decided_at)
        self.assertEqual(
            list(LeaveApproval.objects.filter(leave=leave).values_list('level', 'approver_id')),
            [(1, self.manager.pk), (2, self.director.pk)],
        )

    def test_requester_cannot_approve_own_leave(self):
        leave = self.submit()
        with self.assertRaises(AuthorizationError):
            self.approvals.transition(leave.pk, 'approve', self.employee.user)

    def test_rejection_records_reason(self):
        leave = self.submit()
        self.approvals.transition(leave.pk, 'reject', self.manager.user, comments='Project deadline')
        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.STATUS_REJECTED)
        self.assertEqual(leave.rejection_reason, 'Project deadline')
        with self.assertRaises(DomainError):
            self.approvals.transition(leave.pk, 'approve', self.manager.user)

    def test_workflow_step_picks_specific_approver(self):
        hr = EmployeeFactory()
        workflow = ApprovalWorkflowFactory(entity_type='leave')
        ApprovalStepFactory(
            workflow=workflow, step_order=1, approver_type=ApprovalStep.APPROVER_SPECIFIC_USER, approver=hr
        )
        leave = self.submit()
        self.assertEqual(leave.workflow_id, workflow.pk)
        self.assertEqual(leave.max_approval_level, 1)
        self.assertEqual(leave.current_approver_id, hr.pk)

        leave = self.approvals.transition(leave.pk, 'approve', hr.user)
        self.assertEqual(leave.status, LeaveRequest.STATUS_APPROVED)

    def test_update_by_requester_recomputes_days(self):
        leave = self.submit()
        leave = self.service.update_leave(leave.pk, self.employee.user, end_date=D(2025, 3, 7))
        leave.refresh_from_db()
        self.assertEqual(leave.total_days, Decimal('5'))
        self.assertEqual(leave.version, 1)

    def test_update_by_someone_else(self):
        leave = self.submit()
        with self.assertRaises(AuthorizationError):
            self.service.update_leave(leave.pk, self.manager.user, reason='Changed')

    def test_update_of_decided_leave(self):
        leave = LeaveRequestFactory(employee=self.employee, status=LeaveRequest.STATUS_APPROVED)
        with self.assertRaises(DomainError):
            self.service.update_leave(leave.pk, self.employee.user, reason='Changed')

    def test_unknown_leave_type(self):
        with self.assertRaises(ValidationError):
            self.submit('sabbatical')

    def test_leave_cannot_start_in_the_past(self):
        with self.assertRaises(ValidationError) as caught:
            self.submit(start=D(2025, 2, 28), end=D(2025, 3, 2))
        self.assertEqual(caught.exception.field, 'start_date')

        leave = self.submit(start=D(2025, 3, 1), end=D(2025, 3, 1))
        with self.assertRaises(ValidationError):
            self.service.update_leave(leave.pk, self.employee.user, start_date=D(2025, 2, 27))

    def test_update_after_first_approval_is_refused(self):
        leave = self.submit()
        self.approvals.transition(leave.pk, 'approve', self.manager.user)
        with self.assertRaises(DomainError):
            self.service.update_leave(leave.pk, self.employee.user, end_date=D(2025, 3, 14))

        leave.refresh_from_db()
        self.assertEqual(leave.total_days, Decimal('3'))
        self.assertEqual(leave.approval_level, 1)
        self.assertEqual(leave.current_approver_id, self.director.pk)

    def test_update_resolves_the_workflow_again(self):
        hr = EmployeeFactory()
        short = ApprovalWorkflowFactory(name='Short leave', max_amount=Decimal('5'), min_amount=Decimal('0'))
        ApprovalStepFactory(
            workflow=short, step_order=1, approver_type=ApprovalStep.APPROVER_SPECIFIC_USER, approver=hr
        )
        long = ApprovalWorkflowFactory(name='Long leave', min_amount=Decimal('6'))
        ApprovalStepFactory(workflow=long, step_order=1, approver_type=ApprovalStep.APPROVER_ANY_MANAGER)
        ApprovalStepFactory(
            workflow=long, step_order=2, approver_type=ApprovalStep.APPROVER_SPECIFIC_USER, approver=hr
        )

        leave = self.submit()
        self.assertEqual(leave.workflow_id, short.pk)
        self.assertEqual(leave.current_approver_id, hr.pk)

        leave = self.service.update_leave(leave.pk, self.employee.user, end_date=D(2025, 3, 14))
        leave.refresh_from_db()
        self.assertEqual(leave.total_days, Decimal('12'))
        self.assertEqual(leave.workflow_id, long.pk)
        self.assertEqual(leave.max_approval_level, 2)
        self.assertEqual(leave.approval_level, 0)
        self.assertEqual(leave.current_approver_id, self.manager.pk)
        self.assertFalse(LeaveApproval.objects.filter(leave=leave).exists())

    def test_balance_after_final_approval(self):
        LeaveEntitlement.objects.create(employee=self.employee, leave_type='annual', year=2025, days=Decimal('10'))
        leave = self.submit()
        self.approvals.transition(leave.pk, 'approve', self.manager.user)
        self.approvals.transition(leave.pk, 'approve', self.director.user)

        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.STATUS_APPROVED)
        self.assertEqual(leave.approval_level, 2)
        self.assertEqual(self.service.compute_balance(self.employee.pk, 2025)['annual'], Decimal('7'))

    def test_rejection_without_reason(self):
        leave = self.submit()
        self.approvals.transition(leave.pk, 'reject', self.manager.user)
        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.STATUS_REJECTED)
        self.assertEqual(leave.rejection_reason, '')

    def test_delegate_to_unknown_or_inactive_employee(self):
        workflow = ApprovalWorkflowFactory()
        ApprovalStepFactory(
            workflow=workflow, step_order=1, approver_type=ApprovalStep.APPROVER_ANY_MANAGER, can_delegate=True
        )
        leave = self.submit()
        with self.assertRaises(NotFoundError):
            self.approvals.delegate(leave.pk, self.manager.user, uuid.uuid4())

        retired = EmployeeFactory(is_active=False)
        with self.assertRaises(ValidationError):
            self.approvals.delegate(leave.pk, self.manager.user, retired.pk)

        leave.refresh_from_db()
        self.assertEqual(leave.current_approver_id, self.manager.pk)
        self.assertEqual(leave.version, 0)

        colleague = EmployeeFactory()
        leave = self.approvals.delegate(leave.pk, self.manager.user, colleague.pk)
        self.assertEqual(leave.current_approver_id, colleague.pk)


class LeaveAPITests(TestCase):

    def setUp(self):
        self.manager = EmployeeFactory()
        self.employee = EmployeeFactory(reporting_manager=self.manager)
        self.client = APIClient()
        # the API always runs on the real clock, so requests go into next year
        self.year = timezone.localdate().year + 1

    def authenticate(self, employee):
        token = RefreshToken.for_user(employee.user).access_token
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

    def apply(self, **overrides):
        body = {
            'leave_type': 'annual',
            'start_date': f'{self.year}-03-03',
            'end_date': f'{self.year}-03-05',
            'reason': 'Family trip',
        }
        body.update(overrides)
        return self.client.post('/api/v1/leave/requests/apply/', body, format='json')

    def test_apply_and_approve(self):
        self.authenticate(self.employee)
        response = self.apply()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        leave_id = response.data['data']['id']
        self.assertEqual(response.data['data']['status'], 'pending')
        self.assertEqual(response.data['data']['total_days'], '3.0')

        self.authenticate(self.manager)
        response = self.client.post(f'/api/v1/leave/requests/{leave_id}/approve/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['approval_level'], 1)

    def test_overlap_returns_conflict_envelope(self):
        self.authenticate(self.employee)
        self.apply()
        response = self.apply(start_date=f'{self.year}-03-04', end_date=f'{self.year}-03-10')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error']['type'], 'conflict')
        self.assertTrue(response.data['error']['retryable'])

    def test_reject_without_reason(self):
        self.authenticate(self.employee)
        leave_id = self.apply().data['data']['id']
        self.authenticate(self.manager)
        response = self.client.post(f'/api/v1/leave/requests/{leave_id}/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'rejected')

    def test_apply_for_a_past_date(self):
        self.authenticate(self.employee)
        yesterday = timezone.localdate() - datetime.timedelta(days=1)
        response = self.apply(start_date=str(yesterday), end_date=str(yesterday))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('start_date', response.data['error']['details'])

    def test_balance(self):
        self.authenticate(self.employee)
        self.apply(leave_type='sick')
        response = self.client.get('/api/v1/leave/requests/balance/', {'year': self.year})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['balances']['sick'], '7')

    def test_pending_approvals_for_manager(self):
        self.authenticate(self.employee)
        self.apply()
        self.authenticate(self.manager)
        response = self.client.get('/api/v1/leave/requests/pending_approvals/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_anonymous_rejected(self):
        response = self.apply()
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
