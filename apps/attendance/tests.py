import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.attendance.calculations import compute_hours, minutes_late, shift_duration_hours
from apps.attendance.models import AttendanceRecord
from apps.attendance.services import AttendanceService, ShiftService
from apps.core.exceptions import ConflictError, NotFoundError, ValidationError
from tests.factories import EmployeeFactory, ShiftFactory

UTC = datetime.timezone.utc


def at(day, hour, minute=0):
    return datetime.datetime(2025, 3, day, hour, minute, tzinfo=UTC)


class WorkingHoursTests(SimpleTestCase):

    def test_total_and_overtime(self):
        self.assertEqual(compute_hours(at(3, 9), at(3, 17, 30), 8), (Decimal('8.50'), Decimal('0.50')))
        self.assertEqual(compute_hours(at(3, 9), at(3, 12), 8), (Decimal('3.00'), Decimal('0.00')))

    def test_check_out_must_follow_check_in(self):
        with self.assertRaises(ValidationError):
            compute_hours(at(3, 9), at(3, 9), 8)

    def test_shift_duration(self):
        self.assertEqual(shift_duration_hours(datetime.time(9), datetime.time(17), 60), Decimal('7.00'))
        self.assertEqual(shift_duration_hours(datetime.time(22), datetime.time(6), 30), Decimal('7.50'))

    def test_grace_period(self):
        self.assertEqual(minutes_late(at(3, 9, 10), at(3, 9), 15), 0)
        self.assertEqual(minutes_late(at(3, 9, 15), at(3, 9), 15), 0)
        self.assertEqual(minutes_late(at(3, 9, 20), at(3, 9), 15), 20)


class AttendanceServiceTests(TestCase):

    def setUp(self):
        self.employee = EmployeeFactory()
        self.shift = ShiftFactory()
        ShiftService.assign(self.employee, self.shift, datetime.date(2025, 1, 1))
        self.service = AttendanceService()

    def test_late_check_in(self):
        record = self.service.check_in(self.employee, at=at(3, 9, 30))
        self.assertEqual(record.status, AttendanceRecord.STATUS_LATE)
        self.assertEqual(record.late_minutes, 30)
        self.assertEqual(record.shift, self.shift)
        self.assertEqual(record.standard_hours, Decimal('7.00'))

    def test_second_check_in_same_day(self):
        self.service.check_in(self.employee, at=at(3, 9))
        with self.assertRaises(ConflictError):
            self.service.check_in(self.employee, at=at(3, 13))

    def test_check_out_computes_overtime(self):
        self.service.check_in(self.employee, at=at(3, 9, 30))
        record = self.service.check_out(self.employee, at=at(3, 17, 30))
        self.assertEqual(record.total_hours, Decimal('8.00'))
        self.assertEqual(record.overtime_hours, Decimal('1.00'))
        self.assertEqual(record.status, AttendanceRecord.STATUS_LATE)

    def test_early_departure(self):
        self.service.check_in(self.employee, at=at(3, 9))
        record = self.service.check_out(self.employee, at=at(3, 16))
        self.assertEqual(record.status, AttendanceRecord.STATUS_EARLY_DEPARTURE)

    def test_short_day_without_shift_is_half_day(self):
        other = EmployeeFactory()
        self.service.check_in(other, at=at(3, 9))
        record = self.service.check_out(other, at=at(3, 11))
        self.assertEqual(record.standard_hours, Decimal('8'))
        self.assertEqual(record.status, AttendanceRecord.STATUS_HALF_DAY)

    def test_check_out_without_check_in(self):
        with self.assertRaises(NotFoundError):
            self.service.check_out(self.employee, at=at(3, 17))

    def test_double_check_out(self):
        self.service.check_in(self.employee, at=at(3, 9))
        self.service.check_out(self.employee, at=at(3, 17))
        with self.assertRaises(ConflictError):
            self.service.check_out(self.employee, at=at(3, 18))

    def test_check_out_before_check_in(self):
        self.service.check_in(self.employee, at=at(3, 9))
        with self.assertRaises(ValidationError):
            self.service.check_out(self.employee, at=at(3, 8))

    def test_overnight_shift_checks_out_next_day(self):
        night = ShiftFactory(start_time=datetime.time(22), end_time=datetime.time(6))
        worker = EmployeeFactory()
        ShiftService.assign(worker, night, datetime.date(2025, 1, 1))

        self.service.check_in(worker, at=at(3, 22))
        record = self.service.check_out(worker, at=at(4, 6, 5))
        self.assertEqual(record.date, datetime.date(2025, 3, 3))
        self.assertEqual(record.total_hours, Decimal('8.08'))
        self.assertEqual(record.overtime_hours, Decimal('1.08'))
        self.assertEqual(record.status, AttendanceRecord.STATUS_PRESENT)

    def test_overlapping_assignment_is_rejected(self):
        with self.assertRaises(DjangoValidationError):
            ShiftService.assign(self.employee, ShiftFactory(), datetime.date(2025, 6, 1))

    def test_inactive_shift_cannot_be_assigned(self):
        retired = ShiftFactory(is_active=False)
        with self.assertRaises(ValidationError):
            ShiftService.assign(EmployeeFactory(), retired, datetime.date(2025, 1, 1))

    def test_monthly_summary(self):
        self.service.check_in(self.employee, at=at(3, 9))
        self.service.check_out(self.employee, at=at(3, 18))
        self.service.check_in(self.employee, at=at(4, 9, 45))
        summary = AttendanceService.monthly_summary(self.employee, 2025, 3)
        self.assertEqual(summary['days'], 2)
        self.assertEqual(summary['present_days'], 1)
        self.assertEqual(summary['late_days'], 1)
        self.assertEqual(summary['total_hours'], '9.00')
        self.assertEqual(summary['overtime_hours'], '2.00')


class AttendanceAPITests(TestCase):

    def setUp(self):
        self.employee = EmployeeFactory()
        self.client = APIClient()
        token = RefreshToken.for_user(self.employee.user).access_token
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

    def test_check_in_then_out(self):
        response = self.client.post('/api/v1/attendance/records/check_in/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post('/api/v1/attendance/records/check_in/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_shift_management_needs_permission(self):
        response = self.client.post('/api/v1/attendance/shifts/', {
            'name': 'Morning', 'start_time': '06:00', 'end_time': '14:00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
