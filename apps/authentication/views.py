"""
Authentication Views
"""

import logging

from django.db import transaction
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from apps.core.audit import audit_service
from apps.core.exceptions import AuthorizationError, ValidationError
from apps.core.permissions import HasPermission, IsAdminOrReadOnly, check_permission
from apps.core.response import success_response

from .models import Role, User, UserIdentity, UserSession
from .serializers import (
    BlockIdentitySerializer,
    LoginSerializer,
    LogoutSerializer,
    RoleSerializer,
    UserCreateSerializer,
    UserIdentitySerializer,
    UserSerializer,
    UserSessionSerializer,
)
from .services import SessionService
from .throttles import LoginRateThrottle

logger = logging.getLogger(__name__)


# =====================================================
# LOGIN / LOGOUT
# =====================================================

class LoginView(TokenObtainPairView):
    """Email/password login. Records a session and the device identity."""

    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [LoginRateThrottle]
    serializer_class = LoginSerializer

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        tokens = serializer.validated_data
        user = serializer.user

        refresh = RefreshToken(tokens['refresh'])
        session = SessionService.start(user=user, request=request, refresh_token=refresh)
        logger.info("login user_id=%s session_id=%s", user.id, session.id)

        return success_response(
            data={
                'access': tokens['access'],
                'refresh': tokens['refresh'],
                'session_id': str(session.id),
                'user': UserSerializer(user).data,
            },
            message='Login successful.',
        )


class LogoutView(APIView):
    permission_classes = [IsAuthenticated]
    serializer_class = LogoutSerializer

    def post(self, request):
        serializer = LogoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            refresh = RefreshToken(serializer.validated_data['refresh'])
        except TokenError as exc:
            raise ValidationError(str(exc), field='refresh')

        if str(refresh.get('user_id')) != str(request.user.id):
            raise AuthorizationError("Token does not belong to the current user")

        SessionService.revoke(user=request.user, token_jti=refresh['jti'])
        refresh.blacklist()
        return success_response(message='Logged out.')


class MeView(APIView):
    permission_classes = [IsAuthenticated]
    serializer_class = UserSerializer

    def get(self, request):
        return success_response(data=UserSerializer(request.user).data)


# =====================================================
# USER AND ROLE MANAGEMENT
# =====================================================

class UserViewSet(viewsets.ModelViewSet):
    """User administration. Deleting a user deactivates it."""

    queryset = User.objects.prefetch_related('roles').select_related('employee')
    permission_classes = [IsAuthenticated, HasPermission]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active', 'is_verified']
    search_fields = ['email', 'first_name', 'last_name']
    ordering_fields = ['email', 'date_joined', 'last_login']

    required_permissions = {
        'list': ['users.view'],
        'retrieve': ['users.view'],
        'create': ['users.manage'],
        'update': ['users.manage'],
        'partial_update': ['users.manage'],
        'destroy': ['users.manage'],
        'reactivate': ['users.manage'],
    }

    def get_serializer_class(self):
        if self.action == 'create':
            return UserCreateSerializer
        return UserSerializer

    def get_queryset(self):
        qs = super().get_queryset()
        if not self.request.user.is_superuser:
            qs = qs.filter(is_superuser=False)
        return qs

    def perform_create(self, serializer):
        user = serializer.save()
        audit_service.record(
            actor=self.request.user, entity_type='user', record_id=user.id, action='create',
            new_values={'email': user.email, 'roles': user.role_codes()}, request=self.request,
        )

    def perform_update(self, serializer):
        old_roles = serializer.instance.role_codes()
        user = serializer.save()
        audit_service.record(
            actor=self.request.user, entity_type='user', record_id=user.id,
            old_values={'roles': old_roles}, new_values={'roles': user.role_codes()},
            request=self.request,
        )

    def perform_destroy(self, instance):
        if instance == self.request.user:
            raise ValidationError("You cannot deactivate your own account")
        with transaction.atomic():
            instance.deactivate()
            audit_service.record(
                actor=self.request.user, entity_type='user', record_id=instance.id,
                action='deactivate', old_values={'is_active': True}, new_values={'is_active': False},
                request=self.request,
            )

    @action(detail=True, methods=['post'])
    def reactivate(self, request, pk=None):
        user = self.get_object()
        user.is_active = True
        user.deactivated_at = None
        user.save(update_fields=['is_active', 'deactivated_at', 'updated_at'])
        return success_response(data=UserSerializer(user).data, message='User reactivated.')


class RoleViewSet(viewsets.ModelViewSet):
    queryset = Role.objects.all()
    serializer_class = RoleSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'roles.manage'
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['is_active']
    search_fields = ['code', 'name']


# =====================================================
# SESSIONS AND DEVICES
# =====================================================

class UserSessionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """The caller's login sessions. DELETE revokes a session."""

    serializer_class = UserSessionSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['is_active', 'device_type']

    def get_queryset(self):
        return UserSession.objects.filter(user=self.request.user)

    def destroy(self, request, *args, **kwargs):
        session = self.get_object()
        session.revoke()
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=None, responses=None)
    @action(detail=False, methods=['post'], url_path='revoke-others')
    def revoke_others(self, request):
        current = request.data.get('session_id')
        qs = self.get_queryset().filter(is_active=True)
        if current:
            qs = qs.exclude(id=current)
        count = qs.count()
        for session in qs:
            session.revoke()
        return success_response(data={'revoked': count}, message='Sessions revoked.')


class UserIdentityViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Devices seen for the caller; holders of ``users.manage`` see every user's.

    A user may block one of their own devices. Unblocking needs ``users.manage``.
    """

    serializer_class = UserIdentitySerializer
    permission_classes = [IsAuthenticated, HasPermission]
    filterset_fields = ['risk_level', 'is_blocked', 'user']
    required_permissions = {
        'unblock': ['users.manage'],
    }

    def get_queryset(self):
        qs = UserIdentity.objects.select_related('user', 'session')
        if check_permission(self.request.user, 'users.manage'):
            return qs
        return qs.filter(user=self.request.user)

    @extend_schema(request=BlockIdentitySerializer, responses=UserIdentitySerializer)
    @action(detail=True, methods=['post'])
    def block(self, request, pk=None):
        identity = self.get_object()
        serializer = BlockIdentitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            identity.block(serializer.validated_data['reason'])
            if identity.session is not None and identity.session.is_active:
                identity.session.revoke()
            audit_service.record(
                actor=request.user, entity_type='user_identity', record_id=identity.id, action='block',
                old_values={'is_blocked': False}, new_values={'is_blocked': True, 'reason': identity.blocked_reason},
                request=request,
            )
        logger.info("identity_blocked identity=%s user=%s by=%s", identity.pk, identity.user_id, request.user.pk)
        return success_response(data=UserIdentitySerializer(identity).data, message='Device blocked.')

    @extend_schema(request=None, responses=UserIdentitySerializer)
    @action(detail=True, methods=['post'])
    def unblock(self, request, pk=None):
        identity = self.get_object()
        with transaction.atomic():
            identity.unblock()
            audit_service.record(
                actor=request.user, entity_type='user_identity', record_id=identity.id, action='unblock',
                old_values={'is_blocked': True}, new_values={'is_blocked': False}, request=request,
            )
        return success_response(data=UserIdentitySerializer(identity).data, message='Device unblocked.')
