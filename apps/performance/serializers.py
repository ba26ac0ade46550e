"""
Performance Serializers
"""

from rest_framework import serializers

from .models import PerformanceReview


class PerformanceReviewListSerializer(serializers.ModelSerializer):
    employee_code = serializers.CharField(source='employee.employee_id', read_only=True)
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    reviewer_name = serializers.CharField(source='reviewer.full_name', read_only=True)

    class Meta:
        model = PerformanceReview
        fields = [
            'id', 'employee', 'employee_code', 'employee_name', 'reviewer', 'reviewer_name',
            'review_period', 'review_date', 'status', 'overall_rating', 'performance_score',
        ]


class PerformanceReviewSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    reviewer_name = serializers.CharField(source='reviewer.full_name', read_only=True)
    approved_by_name = serializers.CharField(source='approved_by.full_name', read_only=True, default=None)
    overall_rating = serializers.DecimalField(
        max_digits=2, decimal_places=1, min_value=1, max_value=5, required=False, allow_null=True
    )
    performance_score = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False, allow_null=True
    )

    class Meta:
        model = PerformanceReview
        fields = [
            'id', 'employee', 'employee_name', 'reviewer', 'reviewer_name',
            'review_period', 'review_date', 'next_review_date', 'status',
            'overall_rating', 'performance_score', 'goals', 'achievements',
            'areas_of_improvement', 'strengths', 'weaknesses', 'recommendations',
            'employee_comments', 'reviewer_comments', 'hr_comments', 'is_confidential',
            'submitted_at', 'approved_at', 'approved_by', 'approved_by_name',
            'created_at', 'updated_at',
        ]
        read_only_fields = [
            'id', 'status', 'employee_comments', 'submitted_at', 'approved_at', 'approved_by',
            'created_at', 'updated_at',
        ]

    def validate(self, attrs):
        if self.instance is not None:
            for name in ('employee', 'reviewer', 'review_period'):
                if name in attrs and attrs[name] != getattr(self.instance, name):
                    raise serializers.ValidationError({name: 'Cannot be changed after creation'})
        employee = attrs.get('employee', getattr(self.instance, 'employee', None))
        reviewer = attrs.get('reviewer', getattr(self.instance, 'reviewer', None))
        if employee is not None and reviewer is not None and employee.pk == reviewer.pk:
            raise serializers.ValidationError({'reviewer': 'An employee cannot review themselves'})
        return attrs


class EmployeeCommentsSerializer(serializers.Serializer):
    comments = serializers.CharField(max_length=5000)
