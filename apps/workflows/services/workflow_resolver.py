"""Selection of the approval workflow that governs a request"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional

from django.conf import settings

from apps.core.exceptions import ConflictError, ValidationError

logger = logging.getLogger(__name__)

SCOPES = ('department_position', 'department', 'position', 'global')
DEFAULT_PRECEDENCE = list(SCOPES)


@dataclass
class ResolvedWorkflow:
    workflow: Any
    steps: List[Any] = field(default_factory=list)

    @property
    def id(self):
        return self.workflow.id

    @property
    def max_approval_level(self) -> int:
        return len(self.steps)


def workflow_scope(workflow) -> str:
    has_department = getattr(workflow, 'department_id', None) is not None
    has_position = getattr(workflow, 'position_id', None) is not None
    if has_department and has_position:
        return 'department_position'
    if has_department:
        return 'department'
    if has_position:
        return 'position'
    return 'global'


def _same(left, right) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def matches(workflow, *, department_id=None, position_id=None, amount=None) -> bool:
    """True when every scope the workflow sets is satisfied by the request."""
    if workflow.department_id is not None and not _same(workflow.department_id, department_id):
        return False
    if workflow.position_id is not None and not _same(workflow.position_id, position_id):
        return False
    if workflow.min_amount is None and workflow.max_amount is None:
        return True
    if amount is None:
        return False
    if workflow.min_amount is not None and amount < workflow.min_amount:
        return False
    if workflow.max_amount is not None and amount > workflow.max_amount:
        return False
    return True


def range_width(workflow) -> Optional[Decimal]:
    """Width of a closed amount range; None for half-open or unbounded ranges."""
    if workflow.min_amount is None or workflow.max_amount is None:
        return None
    return Decimal(workflow.max_amount) - Decimal(workflow.min_amount)


class WorkflowResolver:
    """
    Picks the single best-matching active workflow.

    Ranking: scope specificity in ``HRMS_APPROVAL["MATCH_PRECEDENCE"]`` order,
    then the narrowest closed amount range (open ranges rank after any closed
    one). Remaining ties follow ``HRMS_APPROVAL["AMBIGUOUS_MATCH"]``:
    ``first_created`` keeps the oldest workflow, ``error`` raises.
    """

    def __init__(self, workflow_repository, precedence=None, ambiguous_match=None):
        approval_settings = getattr(settings, 'HRMS_APPROVAL', {})
        self.workflow_repository = workflow_repository
        self.precedence = list(precedence or approval_settings.get('MATCH_PRECEDENCE') or DEFAULT_PRECEDENCE)
        self.ambiguous_match = ambiguous_match or approval_settings.get('AMBIGUOUS_MATCH', 'first_created')

        unknown = set(self.precedence) - set(SCOPES)
        if unknown or len(set(self.precedence)) != len(SCOPES):
            raise ValidationError(
                f"MATCH_PRECEDENCE must order exactly {', '.join(SCOPES)}",
                details={'precedence': self.precedence},
            )

    def _rank(self, workflow):
        width = range_width(workflow)
        bounded = 0 if width is not None else 1
        return (self.precedence.index(workflow_scope(workflow)), bounded, width or Decimal(0))

    def resolve(self, entity_type, department_id=None, position_id=None, amount=None) -> Optional[ResolvedWorkflow]:
        if amount is not None:
            amount = Decimal(str(amount))
        candidates = [
            workflow
            for workflow in self.workflow_repository.query_active_workflows(entity_type)
            if matches(workflow, department_id=department_id, position_id=position_id, amount=amount)
        ]
        if not candidates:
            logger.info(
                "workflow_not_found entity_type=%s department=%s position=%s amount=%s",
                entity_type, department_id, position_id, amount,
            )
            return None

        best_rank = min(self._rank(workflow) for workflow in candidates)
        best = [workflow for workflow in candidates if self._rank(workflow) == best_rank]
        if len(best) > 1:
            names = [str(getattr(workflow, 'name', workflow.id)) for workflow in best]
            if self.ambiguous_match == 'error':
                raise ConflictError(
                    f"Ambiguous approval workflow for {entity_type}: {', '.join(names)}",
                    details={'workflows': names},
                )
            best.sort(key=lambda workflow: (workflow.created_at, str(workflow.id)))
            logger.warning(
                "workflow_ambiguous entity_type=%s candidates=%s chosen=%s",
                entity_type, names, getattr(best[0], 'name', best[0].id),
            )

        chosen = best[0]
        steps = sorted(self.workflow_repository.get_steps(chosen.id), key=lambda step: step.step_order)
        return ResolvedWorkflow(workflow=chosen, steps=steps)
