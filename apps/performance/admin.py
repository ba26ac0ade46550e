from django.contrib import admin

from .models import PerformanceReview


@admin.register(PerformanceReview)
class PerformanceReviewAdmin(admin.ModelAdmin):
    list_display = ['employee', 'reviewer', 'review_period', 'review_date', 'overall_rating', 'status']
    list_filter = ['status', 'is_confidential']
    search_fields = ['employee__employee_id', 'review_period']
    raw_id_fields = ['employee', 'reviewer', 'approved_by']
    readonly_fields = ['submitted_at', 'approved_at']
