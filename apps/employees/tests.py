import datetime

from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.core.models import AuditLog
from apps.employees.models import Employee
from tests.factories import DepartmentFactory, EmployeeFactory, RoleFactory


class EmployeeModelTests(TestCase):

    def test_cannot_report_to_self(self):
        employee = EmployeeFactory()
        employee.reporting_manager = employee
        with self.assertRaises(DjangoValidationError):
            employee.full_clean(exclude=['user'])

    def test_exit_before_joining(self):
        employee = EmployeeFactory.build(date_of_exit=datetime.date(2019, 12, 31))
        with self.assertRaises(DjangoValidationError):
            employee.clean()

    def test_reporting_chain(self):
        ceo = EmployeeFactory()
        cto = EmployeeFactory(reporting_manager=ceo)
        engineer = EmployeeFactory(reporting_manager=cto)
        self.assertEqual(engineer.get_org_hierarchy(), [cto, ceo])
        self.assertEqual(list(ceo.get_team_members()), [cto])


class EmployeeAPITests(TestCase):

    def setUp(self):
        self.hr = EmployeeFactory()
        self.hr.user.roles.add(RoleFactory(code='hr_manager', permissions=['employees.*']))
        self.manager = EmployeeFactory()
        self.report = EmployeeFactory(reporting_manager=self.manager)
        self.outsider = EmployeeFactory()
        self.client = APIClient()

    def authenticate(self, employee):
        self.client.credentials(
            HTTP_AUTHORIZATION=f'Bearer {RefreshToken.for_user(employee.user).access_token}'
        )

    def test_manager_sees_self_and_reports(self):
        self.authenticate(self.manager)
        response = self.client.get('/api/v1/employees/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = {row['id'] for row in response.data['data']}
        self.assertEqual(ids, {str(self.manager.pk), str(self.report.pk)})

    def test_create_requires_permission(self):
        payload = {
            'employee_id': 'ENG0042',
            'first_name': 'Lena',
            'last_name': 'Park',
            'email': 'lena.park@example.com',
            'department': str(DepartmentFactory().pk),
            'date_of_joining': '2025-02-01',
            'base_salary': '5200.00',
        }
        self.authenticate(self.outsider)
        response = self.client.post('/api/v1/employees/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(self.hr)
        response = self.client.post('/api/v1/employees/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        employee = Employee.objects.get(employee_id='ENG0042')
        self.assertTrue(AuditLog.objects.filter(entity_type='employee', action='create', record_id=str(employee.pk)).exists())

    def test_reporting_cycle_is_rejected(self):
        self.authenticate(self.hr)
        response = self.client.patch(
            f'/api/v1/employees/{self.manager.pk}/', {'reporting_manager': str(self.report.pk)}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_terminate_disables_login(self):
        self.authenticate(self.hr)
        response = self.client.post(
            f'/api/v1/employees/{self.report.pk}/terminate/', {'date_of_exit': '2025-06-30'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.report.refresh_from_db()
        self.assertEqual(self.report.employment_status, Employee.STATUS_TERMINATED)
        self.assertFalse(self.report.user.is_active)

    def test_soft_delete_and_restore(self):
        self.authenticate(self.hr)
        response = self.client.delete(f'/api/v1/employees/{self.outsider.pk}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Employee.objects.filter(pk=self.outsider.pk).exists())
        self.assertTrue(Employee.all_objects.get(pk=self.outsider.pk).is_deleted)

        response = self.client.post(f'/api/v1/employees/{self.outsider.pk}/restore/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(Employee.objects.filter(pk=self.outsider.pk).exists())
