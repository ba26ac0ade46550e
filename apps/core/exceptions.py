"""
Domain error taxonomy and the DRF exception handler.

Services raise the ``HRMSError`` subclasses below; the API layer renders every
error in the standard envelope:

    {"success": false, "error": {"code", "type", "message", "details", "retryable"}}
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed, NotAuthenticated, PermissionDenied, Throttled
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security.audit")


class HRMSError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = 'error'
    retryable = False

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(HRMSError):
    """Malformed or out-of-range input. Raised before any state is touched."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = 'validation_error'

    def __init__(self, message, field=None, details=None):
        if field and not details:
            details = {field: [message]}
        super().__init__(message, details)
        self.field = field


class AuthorizationError(HRMSError):
    status_code = status.HTTP_403_FORBIDDEN
    code = 'permission_denied'

    def __init__(self, message="You do not have permission to perform this action", details=None):
        super().__init__(message, details)


class NotFoundError(HRMSError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'not_found'

    def __init__(self, resource_type, resource_id=None):
        message = f"{resource_type} not found"
        if resource_id:
            message = f"{resource_type} with ID {resource_id} not found"
        super().__init__(message, {'resource_type': resource_type, 'resource_id': str(resource_id or '')})
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(HRMSError):
    """Overlap, duplicate key or a concurrent modification. Safe to retry after re-reading."""

    status_code = status.HTTP_409_CONFLICT
    code = 'conflict'
    retryable = True


class DomainError(HRMSError):
    """A business rule rejected the request (balance exceeded, illegal transition)."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = 'business_rule_violation'


class InfrastructureError(HRMSError):
    """Persistence or collaborator failure. Callers may retry with backoff."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 'infrastructure_error'
    retryable = True


def custom_exception_handler(exc, context):
    """
    Custom exception handler that provides consistent error responses.
    """
    if isinstance(exc, HRMSError):
        log = logger.error if exc.status_code >= 500 else logger.info
        log("service_error type=%s message=%s", exc.code, exc.message)
        if exc.status_code == status.HTTP_403_FORBIDDEN:
            _log_security_event(exc, context, exc.status_code)
        return _error(exc.status_code, exc.code, exc.message, exc.details, retryable=exc.retryable)

    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    if response is not None:
        _log_security_event(exc, context, response.status_code)
        response.data = {
            'success': False,
            'error': {
                'code': response.status_code,
                'type': getattr(exc, 'default_code', 'error'),
                'message': get_error_message(response.data),
                'details': response.data if isinstance(response.data, dict) else {'detail': response.data},
                'retryable': response.status_code == status.HTTP_429_TOO_MANY_REQUESTS,
            }
        }
        return response

    # Handle Django ValidationError
    if isinstance(exc, DjangoValidationError):
        logger.warning("Validation error: %s", exc)
        details = getattr(exc, 'message_dict', None) or {'validation_errors': exc.messages}
        return _error(status.HTTP_400_BAD_REQUEST, 'validation_error', 'Validation Error', details)

    if isinstance(exc, Http404):
        return _error(status.HTTP_404_NOT_FOUND, 'not_found', 'Not Found', {'detail': str(exc)})

    if isinstance(exc, IntegrityError):
        logger.warning("Integrity error: %s", exc)
        return _error(
            status.HTTP_409_CONFLICT, 'conflict', 'The record conflicts with existing data',
            retryable=True,
        )

    if isinstance(exc, DatabaseError):
        logger.exception("Database error: %s", exc)
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE, 'infrastructure_error',
            'The service is temporarily unavailable', retryable=True,
        )

    logger.exception("Unexpected error: %s", exc)
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR, 'server_error', 'Internal Server Error',
        {'detail': 'An unexpected error occurred.'},
    )


def _error(http_status, code, message, details=None, retryable=False):
    return Response(
        {
            'success': False,
            'error': {
                'code': http_status,
                'type': code,
                'message': message,
                'details': details or {},
                'retryable': retryable,
            }
        },
        status=http_status,
    )


def _log_security_event(exc, context, status_code):
    if status_code not in (401, 403, 429):
        return

    request = context.get("request")
    if request is None:
        return

    user = getattr(request, "user", None)
    user_id = getattr(user, "id", None) if user and getattr(user, "is_authenticated", False) else None
    if isinstance(exc, (AuthenticationFailed, NotAuthenticated)):
        event_type = "auth_failed"
    elif isinstance(exc, (PermissionDenied, AuthorizationError)):
        event_type = "permission_denied"
    elif isinstance(exc, Throttled):
        event_type = "throttled"
    else:
        event_type = "security_event"

    security_logger.warning(
        "api_security_event type=%s status=%s method=%s path=%s user_id=%s ip=%s error=%s",
        event_type,
        status_code,
        request.method,
        request.path,
        user_id,
        request.META.get("REMOTE_ADDR"),
        exc.__class__.__name__,
    )


def get_error_message(data):
    """Extract a user-friendly error message from response data"""
    if isinstance(data, dict):
        if 'detail' in data:
            return str(data['detail'])
        if 'non_field_errors' in data:
            return str(data['non_field_errors'][0])
        for key, value in data.items():
            if isinstance(value, list) and value:
                return f"{key}: {value[0]}"
            elif isinstance(value, str):
                return f"{key}: {value}"
    elif isinstance(data, list) and data:
        return str(data[0])
    return str(data)
