"""Authentication service layer exports"""
from .session_service import IdentityService, SessionService

__all__ = [
    'IdentityService',
    'SessionService',
]
