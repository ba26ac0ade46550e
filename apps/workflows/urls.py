"""Workflows URLs"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import ApprovalStepViewSet, ApprovalWorkflowViewSet

router = DefaultRouter()
router.register(r'workflows', ApprovalWorkflowViewSet, basename='approval-workflow')
router.register(r'steps', ApprovalStepViewSet, basename='approval-step')

urlpatterns = [
    path('', include(router.urls)),
]
