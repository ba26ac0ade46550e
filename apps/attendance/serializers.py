"""
Attendance Serializers
"""

from rest_framework import serializers

from .models import AttendanceRecord, Shift, ShiftAssignment


class ShiftSerializer(serializers.ModelSerializer):
    is_overnight = serializers.BooleanField(read_only=True)

    class Meta:
        model = Shift
        fields = [
            'id', 'name', 'description', 'start_time', 'end_time', 'break_minutes',
            'grace_minutes', 'total_hours', 'is_overnight', 'is_active', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'total_hours', 'created_at', 'updated_at']


class ShiftAssignmentSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    shift_name = serializers.CharField(source='shift.name', read_only=True)
    recurring_days = serializers.ListField(
        child=serializers.IntegerField(min_value=0, max_value=6), required=False
    )

    class Meta:
        model = ShiftAssignment
        fields = [
            'id', 'employee', 'employee_name', 'shift', 'shift_name', 'start_date', 'end_date',
            'is_recurring', 'recurring_days', 'assigned_by', 'notes', 'is_active', 'created_at',
        ]
        read_only_fields = ['id', 'assigned_by', 'created_at']

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date cannot be before start date'})
        shift = attrs.get('shift')
        if shift is not None and not shift.is_active:
            raise serializers.ValidationError({'shift': 'Cannot assign an inactive shift'})
        return attrs


class AttendanceRecordSerializer(serializers.ModelSerializer):
    employee_code = serializers.CharField(source='employee.employee_id', read_only=True)
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    shift_name = serializers.CharField(source='shift.name', read_only=True, default=None)

    class Meta:
        model = AttendanceRecord
        fields = [
            'id', 'employee', 'employee_code', 'employee_name', 'shift', 'shift_name', 'date',
            'check_in', 'check_out', 'location', 'notes', 'record_type', 'status',
            'total_hours', 'overtime_hours', 'standard_hours', 'late_minutes', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class CheckInSerializer(serializers.Serializer):
    location = serializers.DictField(required=False)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    record_type = serializers.ChoiceField(
        choices=AttendanceRecord.RECORD_TYPE_CHOICES, default=AttendanceRecord.TYPE_REGULAR
    )


class CheckOutSerializer(serializers.Serializer):
    location = serializers.DictField(required=False)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class AttendanceCorrectionSerializer(serializers.Serializer):
    check_in = serializers.DateTimeField(required=False)
    check_out = serializers.DateTimeField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=AttendanceRecord.STATUS_CHOICES, required=False)
    record_type = serializers.ChoiceField(choices=AttendanceRecord.RECORD_TYPE_CHOICES, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('Nothing to change')
        return attrs


class MonthlySummaryQuerySerializer(serializers.Serializer):
    employee = serializers.UUIDField(required=False)
    year = serializers.IntegerField(min_value=2000, max_value=2100, required=False)
    month = serializers.IntegerField(min_value=1, max_value=12, required=False)
