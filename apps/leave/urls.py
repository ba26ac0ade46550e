"""Leave URLs"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import LeaveEntitlementViewSet, LeaveRequestViewSet

router = DefaultRouter()
router.register(r'requests', LeaveRequestViewSet, basename='leave-request')
router.register(r'entitlements', LeaveEntitlementViewSet, basename='leave-entitlement')

urlpatterns = [
    path('', include(router.urls)),
]
