import datetime
from types import SimpleNamespace

from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.authentication.models import UserIdentity, UserSession
from apps.authentication.services.session_service import assess_risk
from apps.core.models import AuditLog
from tests.factories import RoleFactory, UserFactory

LOGIN_URL = '/api/v1/auth/login/'


class LoginTests(TestCase):

    def setUp(self):
        cache.clear()
        self.user = UserFactory(email='ana@example.com')
        self.client = APIClient()

    def login(self, password='testpass123', **headers):
        return self.client.post(LOGIN_URL, {'email': 'ana@example.com', 'password': password}, format='json', **headers)

    def test_login_starts_session(self):
        response = self.login(HTTP_USER_AGENT='Mozilla/5.0 (iPhone; Mobile)')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertIn('access', data)
        self.assertEqual(data['user']['email'], 'ana@example.com')

        session = UserSession.objects.get(user=self.user)
        self.assertEqual(str(session.id), data['session_id'])
        self.assertEqual(session.device_type, 'mobile')
        self.assertTrue(session.is_active)
        self.assertEqual(UserIdentity.objects.filter(user=self.user).count(), 1)

    def test_same_device_is_recognised(self):
        self.login()
        self.login()
        identity = UserIdentity.objects.get(user=self.user)
        self.assertEqual(identity.activity_count, 2)
        self.assertEqual(UserSession.objects.filter(user=self.user).count(), 2)

    def test_wrong_password(self):
        response = self.login(password='nope')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])
        self.assertFalse(UserSession.objects.exists())

    def test_logout_revokes_session(self):
        data = self.login().data['data']
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['access']}")
        response = self.client.post('/api/v1/auth/logout/', {'refresh': data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        session = UserSession.objects.get(pk=data['session_id'])
        self.assertFalse(session.is_active)
        self.assertIsNotNone(session.revoked_at)

        response = self.client.post('/api/v1/auth/token/refresh/', {'refresh': data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_new_device_elsewhere_scores_high_risk(self):
        self.login(HTTP_USER_AGENT='Mozilla/5.0 (iPhone; Mobile)')
        self.login(HTTP_USER_AGENT='Mozilla/5.0 (Windows NT 10.0)', REMOTE_ADDR='203.0.113.9')

        known, new = UserIdentity.objects.filter(user=self.user).order_by('risk_score')
        self.assertEqual((known.risk_score, known.risk_level), (0, UserIdentity.RISK_LOW))
        self.assertEqual(new.risk_score, 85)
        self.assertEqual(new.risk_level, UserIdentity.RISK_CRITICAL)
        self.assertIn('location_change', new.risk_reasons)
        self.assertIn('device_type_change', new.risk_reasons)

    def test_blocked_device_cannot_log_in(self):
        self.login()
        identity = UserIdentity.objects.get(user=self.user)
        identity.block('Reported stolen')

        response = self.login()
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['type'], 'permission_denied')
        self.assertEqual(UserSession.objects.filter(user=self.user).count(), 1)

        response = self.login(HTTP_USER_AGENT='Mozilla/5.0 (X11; Linux x86_64)')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        identity.unblock()
        self.assertEqual(self.login().status_code, status.HTTP_200_OK)

    def test_logout_with_someone_elses_token(self):
        data = self.login().data['data']
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['access']}")
        foreign = RefreshToken.for_user(UserFactory())
        response = self.client.post('/api/v1/auth/logout/', {'refresh': str(foreign)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class UserAdministrationTests(TestCase):

    def setUp(self):
        self.admin = UserFactory()
        self.admin.roles.add(RoleFactory(code='admin', permissions=['users.*']))
        self.client = APIClient()
        token = RefreshToken.for_user(self.admin).access_token
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

    def test_delete_deactivates(self):
        user = UserFactory()
        response = self.client.delete(f'/api/v1/auth/users/{user.pk}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        user.refresh_from_db()
        self.assertFalse(user.is_active)
        self.assertIsNotNone(user.deactivated_at)
        self.assertTrue(AuditLog.objects.filter(entity_type='user', action='deactivate', record_id=str(user.pk)).exists())

    def test_cannot_deactivate_self(self):
        response = self.client.delete(f'/api/v1/auth/users/{self.admin.pk}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_listing_needs_permission(self):
        plain = UserFactory()
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {RefreshToken.for_user(plain).access_token}')
        response = self.client.get('/api/v1/auth/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class RiskAssessmentTests(SimpleTestCase):

    def identity(self, user_agent='Mozilla/5.0 (Windows NT 10.0)', ip='198.51.100.1', hours_ago=48):
        return SimpleNamespace(
            device_fingerprint={'http_user_agent': user_agent},
            location={'ip_address': ip},
            last_seen=timezone.now() - datetime.timedelta(hours=hours_ago),
        )

    def fingerprint(self, user_agent='Mozilla/5.0 (Windows NT 10.0)', ip='198.51.100.1'):
        return {'http_user_agent': user_agent, 'http_accept_language': 'en', 'ip_address': ip}

    def test_first_device_is_not_scored(self):
        self.assertEqual(assess_risk(self.fingerprint(), [], timezone.now()), (0, []))

    def test_new_browser_language_on_known_network(self):
        score, reasons = assess_risk(self.fingerprint(), [self.identity()], timezone.now())
        self.assertEqual((score, reasons), (10, ['new_device']))

    def test_device_type_change(self):
        score, reasons = assess_risk(
            self.fingerprint(user_agent='Mozilla/5.0 (Linux; Android 14) Mobile'), [self.identity()], timezone.now(),
        )
        self.assertEqual(score, 30)
        self.assertEqual(UserIdentity.level_for_score(score), UserIdentity.RISK_MEDIUM)
        self.assertIn('device_type_change', reasons)

    def test_location_change_is_rapid_within_a_day(self):
        slow, _ = assess_risk(self.fingerprint(ip='203.0.113.9'), [self.identity()], timezone.now())
        fast, reasons = assess_risk(self.fingerprint(ip='203.0.113.9'), [self.identity(hours_ago=2)], timezone.now())
        self.assertEqual(slow, 40)
        self.assertEqual(fast, 65)
        self.assertIn('rapid_location_change', reasons)
        self.assertEqual(UserIdentity.level_for_score(fast), UserIdentity.RISK_HIGH)


class DeviceTests(TestCase):

    def setUp(self):
        self.user = UserFactory()
        self.identity = UserIdentity.objects.create(user=self.user, fingerprint_hash='a' * 64)
        self.client = APIClient()
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {RefreshToken.for_user(self.user).access_token}')

    def url(self, identity, name):
        return f'/api/v1/auth/devices/{identity.pk}/{name}/'

    def test_owner_blocks_own_device(self):
        response = self.client.post(self.url(self.identity, 'block'), {'reason': 'Lost phone'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.identity.refresh_from_db()
        self.assertTrue(self.identity.is_blocked)
        self.assertEqual(self.identity.blocked_reason, 'Lost phone')
        self.assertIsNotNone(self.identity.blocked_at)
        self.assertTrue(
            AuditLog.objects.filter(entity_type='user_identity', action='block', record_id=str(self.identity.pk)).exists()
        )

    def test_block_needs_a_reason(self):
        response = self.client.post(self.url(self.identity, 'block'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_users_devices_are_hidden(self):
        foreign = UserIdentity.objects.create(user=UserFactory(), fingerprint_hash='b' * 64)
        response = self.client.post(self.url(foreign, 'block'), {'reason': 'Not mine'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_unblock_needs_user_management(self):
        self.identity.block('Suspicious')
        response = self.client.post(self.url(self.identity, 'unblock'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        admin = UserFactory()
        admin.roles.add(RoleFactory(code='admin', permissions=['users.*']))
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {RefreshToken.for_user(admin).access_token}')
        response = self.client.post(self.url(self.identity, 'unblock'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.identity.refresh_from_db()
        self.assertFalse(self.identity.is_blocked)
