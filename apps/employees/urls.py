"""
Employee URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import BranchViewSet, DepartmentViewSet, EmployeeViewSet, PositionViewSet

router = DefaultRouter()
router.register('departments', DepartmentViewSet, basename='department')
router.register('positions', PositionViewSet, basename='position')
router.register('branches', BranchViewSet, basename='branch')
router.register('', EmployeeViewSet, basename='employee')

urlpatterns = [
    path('', include(router.urls)),
]
