import json
from types import SimpleNamespace
from unittest import mock

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError
from django.http import Http404
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.response import Response

from apps.core.audit import audit_service
from apps.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
    custom_exception_handler,
)
from apps.core.models import AuditLog
from apps.core.permissions import check_permission
from apps.core.renderers import StandardJSONRenderer
from tests.factories import RoleFactory, UserFactory


class ExceptionHandlerTests(SimpleTestCase):

    def handle(self, exc):
        response = custom_exception_handler(exc, {})
        return response.status_code, response.data['error']

    def test_service_errors(self):
        cases = [
            (ValidationError('Bad dates', field='end_date'), 400, 'validation_error', False),
            (AuthorizationError(), 403, 'permission_denied', False),
            (NotFoundError('LeaveRequest', 'abc'), 404, 'not_found', False),
            (ConflictError('Overlapping leave'), 409, 'conflict', True),
            (DomainError('Insufficient balance'), 422, 'business_rule_violation', False),
        ]
        for exc, http_status, code, retryable in cases:
            with self.subTest(code=code):
                status_code, error = self.handle(exc)
                self.assertEqual(status_code, http_status)
                self.assertEqual(error['code'], http_status)
                self.assertEqual(error['type'], code)
                self.assertEqual(error['message'], exc.message)
                self.assertEqual(error['retryable'], retryable)

    def test_field_details(self):
        _, error = self.handle(ValidationError('Bad dates', field='end_date'))
        self.assertEqual(error['details'], {'end_date': ['Bad dates']})

    def test_model_validation(self):
        status_code, error = self.handle(DjangoValidationError({'overall_rating': ['Too high']}))
        self.assertEqual(status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(error['details'], {'overall_rating': ['Too high']})

    def test_integrity_error_is_retryable_conflict(self):
        status_code, error = self.handle(IntegrityError('UNIQUE constraint failed'))
        self.assertEqual(status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(error['retryable'])

    def test_database_error(self):
        with self.assertLogs('apps.core.exceptions', level='ERROR'):
            status_code, error = self.handle(DatabaseError('connection lost'))
        self.assertEqual(status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(error['type'], 'infrastructure_error')
        self.assertTrue(error['retryable'])

    def test_http_404(self):
        status_code, _ = self.handle(Http404('missing'))
        self.assertEqual(status_code, status.HTTP_404_NOT_FOUND)


@override_settings(HRMS_APPROVAL={'FALLBACK_APPROVER_ROLES': ['hr_manager']})
class CheckPermissionTests(SimpleTestCase):

    def actor(self, employee_id, roles=(), codes=(), **fields):
        defaults = {'is_active': True, 'is_superuser': False}
        defaults.update(fields)
        return SimpleNamespace(
            employee=SimpleNamespace(id=employee_id) if employee_id else None,
            has_role=lambda code: code in roles,
            has_permission_for=lambda code: code in codes,
            **defaults,
        )

    def request(self, requester=1, approver=2, status='pending'):
        return SimpleNamespace(employee_id=requester, current_approver_id=approver, status=status)

    def test_current_approver_decides(self):
        resource = self.request()
        self.assertTrue(check_permission(self.actor(2), 'approve', resource))
        self.assertTrue(check_permission(self.actor(2), 'reject', resource))
        self.assertFalse(check_permission(self.actor(3), 'approve', resource))
        self.assertFalse(check_permission(self.actor(3, is_superuser=True), 'approve', resource))

    def test_requester_never_decides(self):
        resource = self.request(approver=None)
        self.assertFalse(check_permission(self.actor(1, roles=['hr_manager']), 'approve', resource))

    def test_fallback_role_without_approver(self):
        resource = self.request(approver=None)
        self.assertTrue(check_permission(self.actor(5, roles=['hr_manager']), 'approve', resource))
        self.assertTrue(check_permission(self.actor(None, is_superuser=True), 'approve', resource))
        self.assertFalse(check_permission(self.actor(5, roles=['employee']), 'approve', resource))

    def test_cancel(self):
        self.assertTrue(check_permission(self.actor(1), 'cancel', self.request()))
        self.assertFalse(check_permission(self.actor(2), 'cancel', self.request()))
        self.assertFalse(check_permission(self.actor(1), 'cancel', self.request(status='approved')))

    def test_permission_codes(self):
        actor = self.actor(1, codes=['leave.view_all'])
        self.assertTrue(check_permission(actor, 'leave.view_all'))
        self.assertFalse(check_permission(actor, 'payroll.manage'))
        self.assertTrue(check_permission(self.actor(None, is_superuser=True), 'payroll.manage'))

    def test_inactive_or_missing_actor(self):
        self.assertFalse(check_permission(None, 'leave.view_all'))
        self.assertFalse(check_permission(self.actor(2, is_active=False), 'approve', self.request()))


class RolePermissionTests(TestCase):

    def test_wildcards(self):
        user = UserFactory()
        user.roles.add(RoleFactory(code='payroll_clerk', permissions=['payroll.*', 'leave.view_all']))
        self.assertTrue(user.has_permission_for('payroll.manage'))
        self.assertTrue(user.has_permission_for('leave.view_all'))
        self.assertFalse(user.has_permission_for('leave.manage'))

        user.roles.add(RoleFactory(code='admin', permissions=['*']))
        self.assertTrue(user.has_permission_for('leave.manage'))


class AuditServiceTests(TestCase):

    def test_record_changes(self):
        user = UserFactory()
        entry = audit_service.record(
            actor=user,
            entity_type='leave',
            record_id='42',
            old_values={'status': 'pending', 'approval_level': 0},
            new_values={'status': 'approved', 'approval_level': 0},
            action='approve',
        )
        entry.refresh_from_db()
        self.assertEqual(entry.actor, user)
        self.assertEqual(entry.actor_email, user.email)
        self.assertEqual(entry.changed_fields, ['status'])
        self.assertEqual(entry.new_values['status'], 'approved')

    def test_anonymous_actor(self):
        entry = audit_service.record(
            actor=SimpleNamespace(is_authenticated=False), entity_type='payroll', record_id='7', action='create',
        )
        self.assertIsNone(entry.actor)
        self.assertIsNone(entry.actor_email)

    def test_write_failure_is_logged(self):
        with mock.patch.object(AuditLog.objects, 'create', side_effect=DatabaseError('disk full')):
            with self.assertLogs('apps.core.audit', level='ERROR'):
                entry = audit_service.record(actor=None, entity_type='loan', record_id='1')
        self.assertIsNone(entry)
        self.assertFalse(AuditLog.objects.exists())


class RendererTests(SimpleTestCase):

    def render(self, data, http_status=200, method='GET'):
        context = {'response': Response(status=http_status), 'request': SimpleNamespace(method=method)}
        return json.loads(StandardJSONRenderer().render(data, renderer_context=context))

    def test_wraps_success(self):
        self.assertEqual(self.render({'id': 1}, 201, 'POST'), {
            'success': True, 'data': {'id': 1}, 'message': 'Created successfully.',
        })

    def test_wraps_errors(self):
        body = self.render({'detail': 'Method not allowed'}, 405)
        self.assertFalse(body['success'])
        self.assertEqual(body['error']['code'], 405)
        self.assertEqual(body['error']['message'], 'Method not allowed')

    def test_envelope_passes_through(self):
        body = {'success': True, 'data': [], 'pagination': {'count': 0}}
        self.assertEqual(self.render(body), body)


class HealthProbeTests(TestCase):

    def test_health(self):
        response = self.client.get('/api/v1/health/')
        self.assertEqual(response.status_code, 200)
        self.assertIn('X-Request-ID', response)

    def test_readiness(self):
        response = self.client.get('/api/v1/readiness/', HTTP_X_REQUEST_ID='probe-1')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ready')
        self.assertEqual(response['X-Request-ID'], 'probe-1')
