"""Performance URLs"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import PerformanceReviewViewSet

router = DefaultRouter()
router.register(r'reviews', PerformanceReviewViewSet, basename='performance-review')

urlpatterns = [
    path('', include(router.urls)),
]
