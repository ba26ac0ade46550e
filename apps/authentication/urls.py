"""
Authentication URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView, TokenVerifyView

from .views import (
    LoginView, LogoutView, MeView,
    RoleViewSet, UserIdentityViewSet, UserSessionViewSet, UserViewSet,
)

router = DefaultRouter()
router.register('users', UserViewSet, basename='auth-users')
router.register('roles', RoleViewSet, basename='auth-roles')
router.register('sessions', UserSessionViewSet, basename='auth-sessions')
router.register('devices', UserIdentityViewSet, basename='auth-devices')

urlpatterns = [
    path('', include(router.urls)),
    # Token management
    path('login/', LoginView.as_view(), name='token_obtain_pair'),
    path('logout/', LogoutView.as_view(), name='logout'),
    path('token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('token/verify/', TokenVerifyView.as_view(), name='token_verify'),

    # Profile
    path('me/', MeView.as_view(), name='profile'),
]
