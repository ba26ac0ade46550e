"""Login session and device identity tracking"""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone as dt_timezone

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.authentication.models import User, UserIdentity, UserSession
from apps.core.exceptions import AuthorizationError

logger = logging.getLogger(__name__)

FINGERPRINT_HEADERS = ('HTTP_USER_AGENT', 'HTTP_ACCEPT_LANGUAGE')

# Risk points a first sign-in from a new device collects, per signal
RISK_WEIGHTS = {
    'new_device': 10,
    'location_change': 30,
    'device_type_change': 20,
    'browser_change': 15,
    'rapid_location_change': 25,
}
RECENT_IDENTITIES = 5
RAPID_CHANGE_WINDOW = timedelta(hours=24)


def client_ip(request):
    xff = request.META.get('HTTP_X_FORWARDED_FOR')
    if xff:
        return xff.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def detect_device_type(user_agent: str) -> str:
    ua = (user_agent or '').lower()
    if any(x in ua for x in ('tablet', 'ipad')):
        return 'tablet'
    if any(x in ua for x in ('mobile', 'android', 'iphone')):
        return 'mobile'
    return 'desktop'


def build_fingerprint(request) -> dict:
    fingerprint = {header.lower(): request.META.get(header, '') for header in FINGERPRINT_HEADERS}
    fingerprint['ip_address'] = client_ip(request) or ''
    return fingerprint


def fingerprint_hash(fingerprint: dict) -> str:
    payload = json.dumps(fingerprint, sort_keys=True).encode()
    return hashlib.sha256(payload).hexdigest()


def assess_risk(fingerprint: dict, previous, now):
    """
    Score a first sign-in against the user's other identities, most recently
    seen first. Returns ``(score, reasons)``; a user's very first device scores 0.
    """
    if not previous:
        return 0, []
    recent = previous[:RECENT_IDENTITIES]
    user_agent = fingerprint.get('http_user_agent', '')
    reasons = ['new_device']

    location_changed = all(
        (identity.location or {}).get('ip_address') != fingerprint.get('ip_address') for identity in recent
    )
    if location_changed:
        reasons.append('location_change')

    seen_agents = {identity.device_fingerprint.get('http_user_agent', '') for identity in previous}
    if detect_device_type(user_agent) not in {detect_device_type(agent) for agent in seen_agents}:
        reasons.append('device_type_change')
    if len(seen_agents | {user_agent}) > 2:
        reasons.append('browser_change')

    if location_changed and now - recent[0].last_seen < RAPID_CHANGE_WINDOW:
        reasons.append('rapid_location_change')

    return min(100, sum(RISK_WEIGHTS[reason] for reason in reasons)), reasons


class SessionService:
    """Creates and revokes ``UserSession`` rows around JWT issuance."""

    @classmethod
    @transaction.atomic
    def start(cls, *, user: User, request, refresh_token) -> UserSession:
        IdentityService.ensure_allowed(user=user, request=request)
        user_agent = request.META.get('HTTP_USER_AGENT', '')
        ip_address = client_ip(request)
        expires_at = datetime.fromtimestamp(refresh_token['exp'], tz=dt_timezone.utc)
        session = UserSession.objects.create(
            user=user,
            token_jti=refresh_token['jti'],
            ip_address=ip_address,
            user_agent=user_agent,
            device_type=detect_device_type(user_agent),
            device_info={'accept_language': request.META.get('HTTP_ACCEPT_LANGUAGE', '')},
            expires_at=expires_at,
        )
        User.objects.filter(pk=user.pk).update(last_login_ip=ip_address)
        IdentityService.observe(user=user, request=request, session=session)
        logger.info("session_started user=%s session=%s ip=%s", user.pk, session.pk, ip_address)
        return session

    @classmethod
    def revoke(cls, *, user: User, token_jti: str) -> int:
        revoked = UserSession.objects.filter(user=user, token_jti=token_jti, is_active=True).update(
            is_active=False, revoked_at=timezone.now()
        )
        logger.info("session_revoked user=%s count=%s", user.pk, revoked)
        return revoked


class IdentityService:
    """Remembers the devices a user signs in from and scores new ones."""

    @classmethod
    def ensure_allowed(cls, *, user: User, request) -> None:
        digest = fingerprint_hash(build_fingerprint(request))
        blocked = UserIdentity.objects.filter(user=user, fingerprint_hash=digest, is_blocked=True).first()
        if blocked is not None:
            logger.warning("login_from_blocked_device user=%s identity=%s", user.pk, blocked.pk)
            raise AuthorizationError(
                "Sign-in from this device has been blocked",
                details={'identity_id': str(blocked.pk)},
            )

    @classmethod
    def observe(cls, *, user: User, request, session=None) -> UserIdentity:
        fingerprint = build_fingerprint(request)
        digest = fingerprint_hash(fingerprint)
        now = timezone.now()
        previous = list(UserIdentity.objects.filter(user=user).exclude(fingerprint_hash=digest).order_by('-last_seen'))
        identity, created = UserIdentity.objects.get_or_create(
            user=user,
            fingerprint_hash=digest,
            defaults={
                'device_fingerprint': fingerprint,
                'session': session,
                'location': {'ip_address': client_ip(request)},
                'first_seen': now,
                'last_seen': now,
                'activity_count': 1,
            },
        )
        if not created:
            UserIdentity.objects.filter(pk=identity.pk).update(
                session=session,
                last_seen=now,
                activity_count=F('activity_count') + 1,
            )
            identity.refresh_from_db()
            return identity

        score, reasons = assess_risk(fingerprint, previous, now)
        if score:
            identity.update_risk_score(score, reasons)
            identity.save(update_fields=['risk_score', 'risk_level', 'risk_reasons'])
        if identity.risk_level in (UserIdentity.RISK_HIGH, UserIdentity.RISK_CRITICAL):
            logger.warning(
                "suspicious_login user=%s identity=%s score=%s reasons=%s",
                user.pk, identity.pk, identity.risk_score, ','.join(reasons),
            )
        elif previous:
            logger.info("new_device user=%s fingerprint=%s score=%s", user.pk, digest[:12], score)
        return identity
