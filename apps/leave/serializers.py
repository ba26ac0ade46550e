"""
Leave Serializers
"""

from django.utils import timezone
from rest_framework import serializers

from .models import LEAVE_TYPE_CHOICES, LeaveApproval, LeaveEntitlement, LeaveRequest


class LeaveApprovalSerializer(serializers.ModelSerializer):
    """Leave approval serializer"""
    approver_name = serializers.CharField(source='approver.full_name', read_only=True, default=None)

    class Meta:
        model = LeaveApproval
        fields = ['id', 'leave', 'approver', 'approver_name', 'level', 'action', 'comments', 'created_at']
        read_only_fields = fields


class LeaveRequestListSerializer(serializers.ModelSerializer):
    """Leave request list serializer"""
    employee_code = serializers.CharField(source='employee.employee_id', read_only=True)
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    leave_type_name = serializers.CharField(source='get_leave_type_display', read_only=True)

    class Meta:
        model = LeaveRequest
        fields = [
            'id', 'employee', 'employee_code', 'employee_name',
            'leave_type', 'leave_type_name', 'start_date', 'end_date', 'is_half_day',
            'total_days', 'status', 'approval_level', 'max_approval_level', 'current_approver',
            'submitted_at', 'created_at',
        ]


class LeaveRequestDetailSerializer(serializers.ModelSerializer):
    """Leave request detail serializer"""
    employee_code = serializers.CharField(source='employee.employee_id', read_only=True)
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    leave_type_name = serializers.CharField(source='get_leave_type_display', read_only=True)
    current_approver_name = serializers.CharField(source='current_approver.full_name', read_only=True, default=None)
    approvals = LeaveApprovalSerializer(many=True, read_only=True)

    class Meta:
        model = LeaveRequest
        fields = [
            'id', 'employee', 'employee_code', 'employee_name',
            'leave_type', 'leave_type_name', 'start_date', 'end_date',
            'is_half_day', 'half_day_type', 'start_time', 'end_time', 'total_days',
            'reason', 'attachments', 'emergency_contact', 'notes', 'status',
            'workflow', 'approval_level', 'max_approval_level',
            'current_approver', 'current_approver_name', 'current_step_started_at',
            'approved_by', 'rejection_reason', 'cancellation_reason', 'cancelled_at',
            'submitted_at', 'decided_at', 'version', 'approvals', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class LeaveApplySerializer(serializers.Serializer):
    """Apply leave serializer"""
    leave_type = serializers.ChoiceField(choices=LEAVE_TYPE_CHOICES)
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    is_half_day = serializers.BooleanField(default=False)
    half_day_type = serializers.ChoiceField(choices=LeaveRequest.HALF_DAY_CHOICES, required=False, allow_blank=True)
    start_time = serializers.TimeField(required=False, allow_null=True)
    end_time = serializers.TimeField(required=False, allow_null=True)
    reason = serializers.CharField(max_length=2000)
    attachments = serializers.ListField(child=serializers.CharField(max_length=500), required=False)
    emergency_contact = serializers.DictField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, data):
        if data['start_date'] > data['end_date']:
            raise serializers.ValidationError({'end_date': 'End date must not be before start date'})
        if data.get('is_half_day'):
            if data['start_date'] != data['end_date']:
                raise serializers.ValidationError({'is_half_day': 'A half-day leave covers a single date'})
            if not data.get('half_day_type'):
                raise serializers.ValidationError({'half_day_type': 'Required for half-day leave'})
        start_time, end_time = data.get('start_time'), data.get('end_time')
        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError({'end_time': 'End time must be after start time'})
        return data


class LeaveUpdateSerializer(LeaveApplySerializer):
    """Partial amendment of a pending leave"""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault('partial', True)
        super().__init__(*args, **kwargs)

    def validate(self, data):
        instance = self.instance
        merged = {
            'start_date': data.get('start_date', getattr(instance, 'start_date', None)),
            'end_date': data.get('end_date', getattr(instance, 'end_date', None)),
            'is_half_day': data.get('is_half_day', getattr(instance, 'is_half_day', False)),
            'half_day_type': data.get('half_day_type', getattr(instance, 'half_day_type', '')),
            'start_time': data.get('start_time', getattr(instance, 'start_time', None)),
            'end_time': data.get('end_time', getattr(instance, 'end_time', None)),
        }
        super().validate(merged)
        return data


class LeaveEntitlementSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)

    class Meta:
        model = LeaveEntitlement
        fields = ['id', 'employee', 'employee_name', 'leave_type', 'year', 'days', 'notes', 'is_active', 'created_at']
        read_only_fields = ['id', 'created_at']

    def validate_year(self, value):
        current = timezone.now().year
        if not current - 5 <= value <= current + 5:
            raise serializers.ValidationError('Year is out of range')
        return value


class LeaveBalanceQuerySerializer(serializers.Serializer):
    employee = serializers.UUIDField(required=False)
    year = serializers.IntegerField(required=False, min_value=2000, max_value=2100)


class LeaveCalculateSerializer(serializers.Serializer):
    """Preview the day count of a request"""
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    is_half_day = serializers.BooleanField(default=False)
    half_day_type = serializers.ChoiceField(choices=LeaveRequest.HALF_DAY_CHOICES, required=False, allow_blank=True)
