"""Workflows Admin"""
from django.contrib import admin

from .models import ApprovalStep, ApprovalWorkflow


class ApprovalStepInline(admin.TabularInline):
    model = ApprovalStep
    extra = 0
    ordering = ['step_order']
    raw_id_fields = ['approver']
    fields = [
        'step_order', 'name', 'approver_type', 'approver', 'position', 'role', 'department',
        'is_required', 'can_delegate', 'can_skip', 'auto_approve', 'auto_approve_after_hours',
    ]


@admin.register(ApprovalWorkflow)
class ApprovalWorkflowAdmin(admin.ModelAdmin):
    list_display = ['name', 'entity_type', 'department', 'position', 'min_amount', 'max_amount', 'is_active']
    list_filter = ['entity_type', 'is_active']
    search_fields = ['name', 'description']
    inlines = [ApprovalStepInline]

    def save_model(self, request, obj, form, change):
        if not obj.created_by_id:
            obj.created_by = request.user
        obj.updated_by = request.user
        super().save_model(request, obj, form, change)


@admin.register(ApprovalStep)
class ApprovalStepAdmin(admin.ModelAdmin):
    list_display = ['workflow', 'step_order', 'name', 'approver_type', 'is_required', 'auto_approve']
    list_filter = ['approver_type', 'is_required', 'auto_approve']
    ordering = ['workflow', 'step_order']
    raw_id_fields = ['workflow', 'approver']
