"""
Workflow Serializers
"""

from rest_framework import serializers

from .models import ENTITY_TYPE_CHOICES, ApprovalStep, ApprovalWorkflow


class ApprovalStepSerializer(serializers.ModelSerializer):
    approver_name = serializers.CharField(source='approver.full_name', read_only=True, default=None)
    role_code = serializers.CharField(source='role.code', read_only=True, default=None)

    class Meta:
        model = ApprovalStep
        fields = [
            'id', 'workflow', 'step_order', 'name', 'description',
            'approver_type', 'approver', 'approver_name', 'position', 'role', 'role_code', 'department',
            'is_required', 'can_delegate', 'can_skip', 'auto_approve', 'auto_approve_after_hours',
            'settings', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate(self, attrs):
        instance = ApprovalStep(**{**self._current_values(), **attrs})
        required = {
            ApprovalStep.APPROVER_SPECIFIC_USER: 'approver',
            ApprovalStep.APPROVER_POSITION_BASED: 'position',
            ApprovalStep.APPROVER_ROLE_BASED: 'role',
        }.get(instance.approver_type)
        if required and getattr(instance, f'{required}_id') is None:
            raise serializers.ValidationError({required: f'Required for approver type {instance.approver_type}.'})
        if instance.auto_approve and not instance.auto_approve_after_hours:
            raise serializers.ValidationError(
                {'auto_approve_after_hours': 'Required when auto approve is enabled.'}
            )
        return attrs

    def _current_values(self):
        if self.instance is None:
            return {}
        return {
            name: getattr(self.instance, name)
            for name in ('workflow', 'approver_type', 'approver', 'position', 'role', 'auto_approve',
                         'auto_approve_after_hours')
        }


class NestedApprovalStepSerializer(ApprovalStepSerializer):
    class Meta(ApprovalStepSerializer.Meta):
        read_only_fields = ApprovalStepSerializer.Meta.read_only_fields + ['workflow']


class ApprovalWorkflowSerializer(serializers.ModelSerializer):
    steps = NestedApprovalStepSerializer(many=True, read_only=True)
    step_count = serializers.SerializerMethodField()
    department_name = serializers.CharField(source='department.name', read_only=True, default=None)
    position_title = serializers.CharField(source='position.title', read_only=True, default=None)

    class Meta:
        model = ApprovalWorkflow
        fields = [
            'id', 'name', 'description', 'entity_type',
            'department', 'department_name', 'position', 'position_title',
            'min_amount', 'max_amount', 'settings',
            'steps', 'step_count', 'is_active', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_step_count(self, obj) -> int:
        return len(obj.steps.all())

    def validate(self, attrs):
        min_amount = attrs.get('min_amount', getattr(self.instance, 'min_amount', None))
        max_amount = attrs.get('max_amount', getattr(self.instance, 'max_amount', None))
        if min_amount is not None and max_amount is not None and min_amount > max_amount:
            raise serializers.ValidationError({'min_amount': 'Minimum amount cannot exceed maximum amount.'})
        return attrs


class ResolveWorkflowQuerySerializer(serializers.Serializer):
    """Query parameters for workflow resolution"""
    entity_type = serializers.ChoiceField(choices=ENTITY_TYPE_CHOICES)
    department = serializers.UUIDField(required=False, allow_null=True)
    position = serializers.UUIDField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, required=False, allow_null=True)


class ApprovalDecisionSerializer(serializers.Serializer):
    """Body of approve / reject / cancel. ``reason`` is accepted as an alias of ``comments``."""
    comments = serializers.CharField(max_length=1000, allow_blank=True, default='')
    reason = serializers.CharField(max_length=1000, required=False, allow_blank=True, write_only=True)

    def validate(self, attrs):
        reason = attrs.pop('reason', '')
        attrs['comments'] = (attrs.get('comments') or reason or '').strip()
        return attrs


class DelegateSerializer(serializers.Serializer):
    delegate_to = serializers.UUIDField()
    comments = serializers.CharField(max_length=1000, allow_blank=True, default='')
