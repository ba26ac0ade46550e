"""Performance app filters."""
import django_filters

from .models import PerformanceReview


class PerformanceReviewFilter(django_filters.FilterSet):
    employee = django_filters.UUIDFilter()
    reviewer = django_filters.UUIDFilter()
    status = django_filters.ChoiceFilter(choices=PerformanceReview.STATUS_CHOICES)
    review_period = django_filters.CharFilter(lookup_expr='iexact')
    review_date_from = django_filters.DateFilter(field_name='review_date', lookup_expr='gte')
    review_date_to = django_filters.DateFilter(field_name='review_date', lookup_expr='lte')
    min_rating = django_filters.NumberFilter(field_name='overall_rating', lookup_expr='gte')

    class Meta:
        model = PerformanceReview
        fields = ['employee', 'reviewer', 'status', 'review_period', 'is_confidential']
