"""Workflow service layer exports"""
from .approver_resolver import ApproverResolver
from .deadlines import auto_approve_deadline, is_past_auto_approve_deadline
from .state_machine import ACTIONS, ApprovalStateMachine
from .workflow_resolver import ResolvedWorkflow, WorkflowResolver

__all__ = [
    'ACTIONS',
    'ApprovalStateMachine',
    'ApproverResolver',
    'ResolvedWorkflow',
    'WorkflowResolver',
    'auto_approve_deadline',
    'is_past_auto_approve_deadline',
]
