from django.core import mail
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.notifications.models import Notification, NotificationTemplate
from apps.notifications.services import DEFAULT_TEMPLATES, NotificationService, TemplateRenderer
from tests.factories import EmployeeFactory, UserFactory


class BrokenRenderer(TemplateRenderer):

    def render(self, template, context=None):
        raise RuntimeError('template engine unavailable')


class TemplateRendererTests(SimpleTestCase):

    def test_approval_required(self):
        rendered = TemplateRenderer().render(DEFAULT_TEMPLATES['approval_required'], {
            'entity_label': 'Leave request',
            'entity_type': 'leave',
            'approval_level': 0,
            'max_approval_level': 2,
        })
        self.assertEqual(rendered.title, 'Leave request awaiting your approval')
        self.assertEqual(rendered.message, 'A leave request needs your decision (step 1 of 2).')
        self.assertEqual(rendered.priority, 'high')
        self.assertEqual(rendered.delivery_method, 'in_app')

    def test_markup_is_not_escaped(self):
        rendered = TemplateRenderer().render({'title': '{{ name }}', 'message': ''}, {'name': 'R&D <ops>'})
        self.assertEqual(rendered.title, 'R&D <ops>')


class NotificationServiceTests(TestCase):

    def setUp(self):
        self.user = UserFactory()
        self.service = NotificationService()

    def test_notify_stores_and_marks_sent(self):
        notification = self.service.notify(self.user, 'approved', {'entity_label': 'Loan', 'entity_type': 'loan'})
        self.assertIsNotNone(notification)
        notification.refresh_from_db()
        self.assertEqual(notification.recipient, self.user)
        self.assertEqual(notification.notification_type, 'approved')
        self.assertEqual(notification.title, 'Loan approved')
        self.assertTrue(notification.is_sent)
        self.assertFalse(notification.is_read)

    def test_stored_template_takes_precedence(self):
        NotificationTemplate.objects.create(code='approved', title='Good news', message='{{ entity_label }} went through')
        notification = self.service.notify(self.user, 'approved', {'entity_label': 'Loan'})
        self.assertEqual(notification.title, 'Good news')
        self.assertEqual(notification.message, 'Loan went through')

    def test_unknown_template(self):
        self.assertIsNone(self.service.notify(self.user, 'no_such_event'))
        self.assertFalse(Notification.objects.exists())

    def test_failure_is_logged_not_raised(self):
        service = NotificationService(renderer=BrokenRenderer())
        with self.assertLogs('apps.notifications.services.notification_service', level='WARNING'):
            self.assertIsNone(service.notify(self.user, 'approved'))
        self.assertFalse(Notification.objects.exists())

    @override_settings(HRMS_NOTIFICATIONS={'EMAIL_ENABLED': True})
    def test_email_delivery(self):
        NotificationTemplate.objects.create(
            code='loan_disbursed', title='Loan paid out', message='{{ amount }} is on its way', delivery_method='email',
        )
        notification = self.service.notify(self.user, 'loan_disbursed', {'amount': '1200.00'})
        notification.refresh_from_db()
        self.assertTrue(notification.is_sent)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, 'Loan paid out')
        self.assertEqual(mail.outbox[0].to, [self.user.email])

    def test_notify_employees_after_commit(self):
        active = EmployeeFactory()
        inactive = EmployeeFactory(user=UserFactory(is_active=False))
        with self.captureOnCommitCallbacks(execute=True):
            self.service.notify_employees('submitted', [active.pk, inactive.pk, None], {'entity_label': 'Leave'})
            self.assertFalse(Notification.objects.exists())
        self.assertEqual(Notification.objects.filter(recipient=active.user).count(), 1)
        self.assertFalse(Notification.objects.filter(recipient=inactive.user).exists())

    def test_read_tracking(self):
        first = self.service.notify(self.user, 'approved', {'entity_label': 'Leave'})
        self.service.notify(self.user, 'rejected', {'entity_label': 'Loan'})
        self.assertEqual(self.service.unread_count(self.user), 2)

        self.assertTrue(self.service.mark_as_read(first.pk, self.user))
        self.assertFalse(self.service.mark_as_read(first.pk, UserFactory()))
        self.assertEqual(self.service.unread_count(self.user), 1)

        self.assertEqual(self.service.mark_all_as_read(self.user), 1)
        self.assertEqual(self.service.unread_count(self.user), 0)


class NotificationAPITests(TestCase):

    def setUp(self):
        self.user = UserFactory()
        self.other = UserFactory()
        self.service = NotificationService()
        self.client = APIClient()
        token = RefreshToken.for_user(self.user).access_token
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

    def test_unread_count_and_read(self):
        notification = self.service.notify(self.user, 'approved', {'entity_label': 'Leave'})
        self.service.notify(self.other, 'approved', {'entity_label': 'Leave'})

        response = self.client.get('/api/v1/notifications/notifications/unread-count/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['unread_count'], 1)

        response = self.client.post(f'/api/v1/notifications/notifications/{notification.pk}/read/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        notification.refresh_from_db()
        self.assertTrue(notification.is_read)

    def test_someone_elses_notification(self):
        foreign = self.service.notify(self.other, 'approved', {'entity_label': 'Leave'})
        response = self.client.post(f'/api/v1/notifications/notifications/{foreign.pk}/read/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_template_management_needs_permission(self):
        response = self.client.post('/api/v1/notifications/templates/', {
            'code': 'approved', 'title': 'x', 'message': 'y',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
