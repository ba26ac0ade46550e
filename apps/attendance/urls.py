"""
Attendance URLs
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import AttendanceViewSet, ShiftAssignmentViewSet, ShiftViewSet

router = DefaultRouter()
router.register(r'shifts', ShiftViewSet, basename='shift')
router.register(r'shift-assignments', ShiftAssignmentViewSet, basename='shift-assignment')
router.register(r'records', AttendanceViewSet, basename='attendance')

urlpatterns = [
    path('', include(router.urls)),
]
