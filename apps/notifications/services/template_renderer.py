"""Template rendering utilities for notifications"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from django.template import Context, Engine

# Built-in templates keyed by notification type. Rows in NotificationTemplate
# with the same code take precedence.
DEFAULT_TEMPLATES: Dict[str, Dict[str, str]] = {
    'approval_required': {
        'title': '{{ entity_label }} awaiting your approval',
        'message': 'A {{ entity_type }} request needs your decision '
                   '(step {{ approval_level|add:1 }} of {{ max_approval_level }}).',
        'priority': 'high',
    },
    'submitted': {
        'title': '{{ entity_label }} submitted',
        'message': 'Your {{ entity_type }} request was submitted and is {{ status }}.',
        'priority': 'low',
    },
    'approved': {
        'title': '{{ entity_label }} approved',
        'message': 'Your {{ entity_type }} request has been approved.',
        'priority': 'medium',
    },
    'rejected': {
        'title': '{{ entity_label }} rejected',
        'message': 'Your {{ entity_type }} request has been rejected.',
        'priority': 'medium',
    },
    'cancelled': {
        'title': '{{ entity_label }} cancelled',
        'message': 'A {{ entity_type }} request waiting on you was cancelled by the requester.',
        'priority': 'low',
    },
    'delegated': {
        'title': '{{ entity_label }} delegated to you',
        'message': 'A {{ entity_type }} request was delegated to you for a decision.',
        'priority': 'high',
    },
    'loan_disbursed': {
        'title': 'Loan disbursed',
        'message': 'Your loan of {{ amount }} has been disbursed.',
        'priority': 'medium',
    },
    'payroll_processed': {
        'title': 'Payslip for {{ pay_period }}',
        'message': 'Your payroll for {{ pay_period }} has been {{ status }}. Net pay: {{ net_pay }}.',
        'priority': 'medium',
    },
}


@dataclass
class RenderedNotification:
    """Structured result of template rendering."""
    title: str
    message: str
    priority: str = 'medium'
    delivery_method: str = 'in_app'


class TemplateRenderer:
    """Render notification templates with safe defaults."""

    def __init__(self) -> None:
        self.engine = Engine(autoescape=False)

    def render(self, template: Dict[str, str], context: Dict[str, Any] | None = None) -> RenderedNotification:
        context = context or {}
        title = self.engine.from_string(template['title']).render(Context(context)).strip()
        message = self.engine.from_string(template['message']).render(Context(context)).strip()
        return RenderedNotification(
            title=title,
            message=message,
            priority=template.get('priority', 'medium'),
            delivery_method=template.get('delivery_method', 'in_app'),
        )
