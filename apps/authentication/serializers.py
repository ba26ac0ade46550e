"""
Authentication Serializers
"""

from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import Role, User, UserIdentity, UserSession


class LoginSerializer(TokenObtainPairSerializer):
    """Email/password login; adds identity claims to the token."""

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['full_name'] = user.full_name
        token['roles'] = user.role_codes()
        return token


class LogoutSerializer(serializers.Serializer):
    refresh = serializers.CharField()


class RoleSerializer(serializers.ModelSerializer):
    class Meta:
        model = Role
        fields = ['id', 'code', 'name', 'description', 'permissions', 'level', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_permissions(self, value):
        if not isinstance(value, list) or not all(isinstance(code, str) for code in value):
            raise serializers.ValidationError("Permissions must be a list of permission codes.")
        return value


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.ReadOnlyField()
    roles = serializers.SlugRelatedField(
        many=True, slug_field='code', queryset=Role.objects.filter(is_active=True), required=False
    )
    employee_id = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name', 'phone',
            'roles', 'employee_id', 'is_active', 'is_verified', 'is_superuser',
            'last_login', 'last_login_ip', 'date_joined',
        ]
        read_only_fields = ['id', 'is_active', 'is_superuser', 'last_login', 'last_login_ip', 'date_joined']

    def get_employee_id(self, obj) -> str | None:
        employee = getattr(obj, 'employee', None)
        return str(employee.id) if employee else None


class UserCreateSerializer(UserSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])

    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + ['password']

    def create(self, validated_data):
        roles = validated_data.pop('roles', [])
        password = validated_data.pop('password')
        user = User.objects.create_user(password=password, **validated_data)
        user.roles.set(roles)
        return user


class UserSessionSerializer(serializers.ModelSerializer):
    is_current = serializers.SerializerMethodField()

    class Meta:
        model = UserSession
        fields = [
            'id', 'ip_address', 'user_agent', 'device_type', 'device_info',
            'is_active', 'created_at', 'last_activity', 'expires_at', 'revoked_at', 'is_current',
        ]
        read_only_fields = fields

    def get_is_current(self, obj) -> bool:
        request = self.context.get('request')
        auth = getattr(request, 'auth', None) if request else None
        if auth is None or not hasattr(auth, 'get'):
            return False
        return auth.get('session_jti') == obj.token_jti


class UserIdentitySerializer(serializers.ModelSerializer):
    class Meta:
        model = UserIdentity
        fields = [
            'id', 'user', 'fingerprint_hash', 'device_fingerprint', 'location', 'risk_score', 'risk_level',
            'risk_reasons', 'is_verified', 'is_blocked', 'blocked_reason', 'blocked_at',
            'first_seen', 'last_seen', 'activity_count',
        ]
        read_only_fields = fields


class BlockIdentitySerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)
