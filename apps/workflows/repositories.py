"""
Persistence seams for the approval engine.

The resolver and state machine only talk to these protocols; the Django
implementations below are the production wiring, and tests pass in-memory
fakes with the same methods.
"""
from __future__ import annotations

from typing import Any, ContextManager, Optional, Protocol, Sequence

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models, transaction
from django.utils import timezone

from apps.core.exceptions import ConflictError

from .models import ApprovalStep, ApprovalWorkflow


class WorkflowRepository(Protocol):
    def query_active_workflows(self, entity_type: str) -> Sequence[Any]:
        """Active workflows for ``entity_type``, oldest first."""
        raise NotImplementedError

    def get_steps(self, workflow_id) -> Sequence[Any]:
        raise NotImplementedError


class ApprovableRepository(Protocol):
    def unit_of_work(self) -> ContextManager:
        raise NotImplementedError

    def get_for_update(self, entity_id) -> Optional[Any]:
        raise NotImplementedError

    def save(self, entity, *, expected_version: int, fields=None) -> None:
        """Persist a transition (or the given fields); raise ``ConflictError`` if ``version`` moved."""
        raise NotImplementedError

    def record_decision(self, entity, *, level: int, approver_id, action: str, comments: str = '') -> None:
        raise NotImplementedError

    def has_approvals(self, entity) -> bool:
        """Whether any approver (or the auto-approve sweep) has already signed off a step."""
        raise NotImplementedError

    def clear_decisions(self, entity) -> None:
        raise NotImplementedError

    def query_pending(self) -> Sequence[Any]:
        raise NotImplementedError


class DjangoWorkflowRepository:

    def query_active_workflows(self, entity_type):
        return list(
            ApprovalWorkflow.objects.filter(entity_type=entity_type, is_active=True).order_by('created_at')
        )

    def get_steps(self, workflow_id):
        return list(
            ApprovalStep.objects.filter(workflow_id=workflow_id)
            .select_related('approver', 'position', 'role', 'department')
            .order_by('step_order')
        )


class DjangoApprovableRepository:
    """
    Row-locked, version-checked access to an ``ApprovableModel`` subclass.

    Subclasses set ``model``, ``decision_model`` (per-step history) and the
    extra ``transition_fields`` their state machine writes.
    """

    model: type[models.Model]
    decision_model: Optional[type[models.Model]] = None
    decision_fk = ''
    transition_fields: tuple = ()
    related = ('employee',)

    def unit_of_work(self):
        return transaction.atomic()

    def get_for_update(self, entity_id):
        try:
            return (
                self.model.objects.select_for_update(of=('self',))
                .select_related(*self.related)
                .get(pk=entity_id)
            )
        except (self.model.DoesNotExist, DjangoValidationError, ValueError):
            return None

    def save(self, entity, *, expected_version, fields=None):
        meta = self.model._meta
        names = tuple(fields or (tuple(self.model.APPROVAL_FIELDS) + tuple(self.transition_fields)))
        values = {meta.get_field(name).attname: getattr(entity, meta.get_field(name).attname) for name in names}
        values['version'] = expected_version + 1
        values['updated_at'] = timezone.now()
        updated = self.model.objects.filter(pk=entity.pk, version=expected_version).update(**values)
        if not updated:
            raise ConflictError(
                f"{meta.verbose_name.capitalize()} was modified concurrently; reload and retry",
                details={'id': str(entity.pk), 'expected_version': expected_version},
            )
        entity.version = expected_version + 1
        entity.updated_at = values['updated_at']

    def record_decision(self, entity, *, level, approver_id, action, comments=''):
        if self.decision_model is None:
            return
        self.decision_model.objects.create(
            **{self.decision_fk: entity},
            level=level,
            approver_id=approver_id,
            action=action,
            comments=comments or '',
        )

    def has_approvals(self, entity):
        if self.decision_model is None:
            return entity.approval_level > 0
        return (
            self.decision_model.objects.filter(**{self.decision_fk: entity})
            .exclude(action='skipped')
            .exists()
        )

    def clear_decisions(self, entity):
        if self.decision_model is not None:
            self.decision_model.objects.filter(**{self.decision_fk: entity}).delete()

    def query_pending(self):
        return self.model.objects.filter(status=self.model.STATUS_PENDING).select_related(*self.related)
