from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.workflows.models import ApprovalStep, ApprovalWorkflow
from apps.workflows.repositories import DjangoWorkflowRepository
from tests.factories import (
    ApprovalStepFactory,
    ApprovalWorkflowFactory,
    DepartmentFactory,
    EmployeeFactory,
    RoleFactory,
)


class WorkflowModelTests(TestCase):

    def test_amount_range_must_be_ordered(self):
        workflow = ApprovalWorkflowFactory.build(min_amount=Decimal('500'), max_amount=Decimal('100'))
        with self.assertRaises(DjangoValidationError):
            workflow.clean()

    def test_step_needs_its_approver_reference(self):
        step = ApprovalStepFactory.build(approver_type=ApprovalStep.APPROVER_SPECIFIC_USER)
        with self.assertRaises(DjangoValidationError):
            step.clean()

    def test_repository_returns_active_workflows_with_steps(self):
        workflow = ApprovalWorkflowFactory()
        ApprovalStepFactory(workflow=workflow, step_order=2)
        ApprovalStepFactory(workflow=workflow, step_order=1)
        ApprovalWorkflowFactory(is_active=False)
        ApprovalWorkflowFactory(entity_type='loan')

        workflows = list(DjangoWorkflowRepository().query_active_workflows('leave'))
        self.assertEqual([w.pk for w in workflows], [workflow.pk])
        self.assertEqual([s.step_order for s in workflows[0].steps.all()], [1, 2])


class WorkflowAPITests(TestCase):

    def setUp(self):
        self.department = DepartmentFactory()
        self.global_workflow = ApprovalWorkflowFactory(name='Leave default')
        ApprovalStepFactory(workflow=self.global_workflow, step_order=1)
        self.department_workflow = ApprovalWorkflowFactory(name='Engineering leave', department=self.department)
        ApprovalStepFactory(workflow=self.department_workflow, step_order=1)
        ApprovalStepFactory(workflow=self.department_workflow, step_order=2)

        self.admin = EmployeeFactory()
        self.admin.user.roles.add(RoleFactory(code='admin', permissions=['workflows.*']))
        self.client = APIClient()
        token = RefreshToken.for_user(self.admin.user).access_token
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

    def test_resolve_prefers_department_workflow(self):
        response = self.client.get('/api/v1/workflows/workflows/resolve/', {
            'entity_type': 'leave', 'department': str(self.department.pk),
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['name'], 'Engineering leave')
        self.assertEqual(response.data['data']['max_approval_level'], 2)

        response = self.client.get('/api/v1/workflows/workflows/resolve/', {'entity_type': 'leave'})
        self.assertEqual(response.data['data']['name'], 'Leave default')

    def test_resolve_without_match(self):
        response = self.client.get('/api/v1/workflows/workflows/resolve/', {'entity_type': 'purchase'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['data'])

    def test_step_validation(self):
        response = self.client.post('/api/v1/workflows/steps/', {
            'workflow': str(self.global_workflow.pk),
            'step_order': 2,
            'name': 'Named approver',
            'approver_type': ApprovalStep.APPROVER_SPECIFIC_USER,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('approver', response.data['error']['details'])

    def test_delete_retires_workflow(self):
        response = self.client.delete(f'/api/v1/workflows/workflows/{self.global_workflow.pk}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(ApprovalWorkflow.objects.get(pk=self.global_workflow.pk).is_active)

    def test_configuration_needs_permission(self):
        outsider = EmployeeFactory()
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {RefreshToken.for_user(outsider.user).access_token}')
        response = self.client.post('/api/v1/workflows/workflows/', {
            'name': 'Loans', 'entity_type': 'loan',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
