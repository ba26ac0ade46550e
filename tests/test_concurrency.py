"""
Optimistic locking on approvable records.

Two writers that read the same version cannot both commit: the second
write finds the version moved and fails with ConflictError.
"""
import datetime

from django.test import TestCase

from apps.core.exceptions import ConflictError
from apps.leave.models import LeaveApproval
from apps.leave.repositories import DjangoLeaveRepository
from apps.leave.services import build_leave_approval_service, build_leave_service
from tests.factories import EmployeeFactory

TODAY = datetime.datetime(2025, 6, 1, 9, 0, tzinfo=datetime.timezone.utc)


class StaleReadRepository(DjangoLeaveRepository):
    """Hands out a copy read before another writer committed."""

    def __init__(self, stale):
        self.stale = stale

    def get_for_update(self, entity_id):
        return self.stale


class OptimisticLockingTests(TestCase):

    def setUp(self):
        self.manager = EmployeeFactory()
        self.employee = EmployeeFactory(reporting_manager=self.manager)
        self.leave = build_leave_service(clock=lambda: TODAY).submit_leave(
            self.employee, 'annual', datetime.date(2025, 6, 2), datetime.date(2025, 6, 3),
            'Moving house', actor=self.employee.user,
        )

    def test_repository_rejects_stale_version(self):
        repository = DjangoLeaveRepository()
        first = repository.get_for_update(self.leave.pk)
        second = repository.get_for_update(self.leave.pk)

        first.approval_level = 1
        repository.save(first, expected_version=0)
        self.assertEqual(first.version, 1)

        second.approval_level = 1
        with self.assertRaises(ConflictError):
            repository.save(second, expected_version=0)

    def test_double_approve_loses_cleanly(self):
        stale = DjangoLeaveRepository().get_for_update(self.leave.pk)
        build_leave_approval_service().transition(self.leave.pk, 'approve', self.manager.user)

        late = build_leave_approval_service(StaleReadRepository(stale))
        with self.assertRaises(ConflictError):
            late.transition(self.leave.pk, 'approve', self.manager.user)

        self.leave.refresh_from_db()
        self.assertEqual(self.leave.approval_level, 1)
        self.assertEqual(self.leave.version, 1)
        self.assertEqual(LeaveApproval.objects.filter(leave=self.leave).count(), 1)

    def test_sequential_approvals_bump_version(self):
        service = build_leave_approval_service()
        leave = service.transition(self.leave.pk, 'approve', self.manager.user)
        self.assertEqual(leave.version, 1)
        leave.refresh_from_db()
        self.assertEqual(leave.version, 1)
