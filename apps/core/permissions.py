"""
Authorization - a single decision function plus the DRF adapters built on it.

``check_permission(actor, action, resource)`` answers allow/deny for:

    approve / reject   the resource's current approver; when no approver could
                       be resolved, a holder of a fallback approver role. Never
                       the requester of the resource.
    cancel             the requester, while the resource is pending.
    anything else      treated as a permission code ("leave.view_all") granted
                       by a role, or by superuser status.
"""

from django.conf import settings
from rest_framework.permissions import SAFE_METHODS, BasePermission

from .exceptions import AuthorizationError

APPROVER_ACTIONS = frozenset({'approve', 'reject'})
REQUESTER_ACTIONS = frozenset({'cancel'})


def actor_employee_id(actor):
    employee = getattr(actor, 'employee', None)
    return getattr(employee, 'id', None)


def _has_any_role(actor, role_codes):
    checker = getattr(actor, 'has_role', None)
    if not callable(checker):
        return False
    return any(checker(code) for code in role_codes)


def _fallback_roles():
    return getattr(settings, 'HRMS_APPROVAL', {}).get('FALLBACK_APPROVER_ROLES', [])


def _can_decide(actor, resource) -> bool:
    employee_id = actor_employee_id(actor)
    requester_id = getattr(resource, 'employee_id', None)
    if employee_id is not None and employee_id == requester_id:
        return False
    current_approver_id = getattr(resource, 'current_approver_id', None)
    if current_approver_id is not None:
        return employee_id is not None and employee_id == current_approver_id
    return bool(getattr(actor, 'is_superuser', False)) or _has_any_role(actor, _fallback_roles())


def _can_cancel(actor, resource) -> bool:
    if getattr(resource, 'status', None) != 'pending':
        return False
    employee_id = actor_employee_id(actor)
    return employee_id is not None and employee_id == getattr(resource, 'employee_id', None)


def _has_code(actor, action) -> bool:
    if getattr(actor, 'is_superuser', False):
        return True
    checker = getattr(actor, 'has_permission_for', None)
    return bool(callable(checker) and checker(action))


def check_permission(actor, action: str, resource=None) -> bool:
    """Return True when ``actor`` may perform ``action`` on ``resource``."""
    if actor is None or not getattr(actor, 'is_active', True):
        return False
    if action in APPROVER_ACTIONS:
        return resource is not None and _can_decide(actor, resource)
    if action in REQUESTER_ACTIONS:
        return resource is not None and _can_cancel(actor, resource)
    return _has_code(actor, action)


def require_permission(actor, action: str, resource=None, message=None):
    """Raise ``AuthorizationError`` unless ``check_permission`` allows the action."""
    if not check_permission(actor, action, resource):
        raise AuthorizationError(message or f"Not permitted to {action} this resource")


# =============================================================================
# DRF PERMISSION CLASSES
# =============================================================================

class HasPermission(BasePermission):
    """
    DRF permission class for checking specific permissions.

    Usage in ViewSet:
        permission_classes = [IsAuthenticated, HasPermission]
        required_permissions = {
            'list': ['employees.view'],
            'create': ['employees.manage'],
        }

    Actions missing from the map are allowed for any authenticated user.
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        required = getattr(view, 'required_permissions', {})
        action = getattr(view, 'action', None)
        return all(check_permission(request.user, code) for code in required.get(action, []))


class IsAdminOrReadOnly(BasePermission):
    """Read for authenticated users, write for holders of ``view.manage_permission``."""

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if request.method in SAFE_METHODS:
            return True
        code = getattr(view, 'manage_permission', None)
        return bool(code) and check_permission(user, code)
