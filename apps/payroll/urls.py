"""
Payroll URLs
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import LoanRepaymentViewSet, LoanViewSet, PayrollViewSet

router = DefaultRouter()
router.register(r'loans', LoanViewSet, basename='loan')
router.register(r'repayments', LoanRepaymentViewSet, basename='loan-repayment')
router.register(r'payrolls', PayrollViewSet, basename='payroll')

urlpatterns = [
    path('', include(router.urls)),
]
