"""
Approval state machine shared by leave and loan requests.

    pending --approve--> pending (next step) | approved
    pending --reject---> rejected
    pending --cancel---> cancelled  (requester only)

Every transition runs inside the repository's unit of work: the entity row
is locked, the write is version-checked, one audit entry is recorded and
notifications go out once the transaction commits.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from django.conf import settings
from django.utils import timezone

from apps.core.exceptions import AuthorizationError, DomainError, NotFoundError, ValidationError
from apps.core.permissions import actor_employee_id, check_permission

from .deadlines import is_past_auto_approve_deadline

logger = logging.getLogger(__name__)

PENDING = 'pending'
APPROVED = 'approved'
REJECTED = 'rejected'
CANCELLED = 'cancelled'

ACTIONS = ('approve', 'reject', 'cancel')

# (level, approver employee id, decision, comments)
Decision = Tuple[int, Optional[object], str, str]


def _is_optional(step) -> bool:
    return step is not None and (not step.is_required or step.can_skip)


def _step_at(steps, level):
    for step in steps:
        if step.step_order == level:
            return step
    ordered = sorted(steps, key=lambda step: step.step_order)
    return ordered[level - 1] if 0 < level <= len(ordered) else None


class ApprovalStateMachine:
    """
    Subclasses name the entity and hook in their own fields through
    ``validate_payload``, ``on_step_approved``, ``on_approved``, ``on_rejected`` and ``on_cancelled``.
    """

    entity_type = 'request'
    entity_label = 'Request'
    audit_fields: Tuple[str, ...] = ()

    def __init__(
        self,
        repository,
        workflow_repository,
        approver_resolver,
        audit,
        notifier,
        permission_checker: Callable = check_permission,
        clock: Callable = timezone.now,
    ):
        self.repository = repository
        self.workflow_repository = workflow_repository
        self.approver_resolver = approver_resolver
        self.audit = audit
        self.notifier = notifier
        self.permission_checker = permission_checker
        self.clock = clock

    # ------------------------------------------------------------------ submission
    def start(self, entity, resolved_workflow, now=None) -> List[Decision]:
        """
        Initialise the approval fields of a new request and assign its first
        approver. Returns skipped-step decisions for the caller to record once
        the entity is persisted.
        """
        now = now or self.clock()
        entity.status = PENDING
        entity.approval_level = 0
        entity.submitted_at = now
        entity.current_approver_id = None
        entity.current_step_started_at = None

        if resolved_workflow is not None:
            entity.workflow_id = resolved_workflow.id
            entity.max_approval_level = resolved_workflow.max_approval_level
            steps = resolved_workflow.steps
        else:
            policy = settings.HRMS_APPROVAL.get('NO_WORKFLOW_POLICY', 'manual')
            if policy == 'reject':
                raise DomainError(
                    f"No approval workflow is configured for this {self.entity_label.lower()}",
                    details={'entity_type': self.entity_type},
                )
            entity.workflow_id = None
            if policy == 'auto_approve':
                entity.max_approval_level = 0
            else:
                entity.max_approval_level = settings.HRMS_APPROVAL.get('DEFAULT_MAX_APPROVAL_LEVEL', 2)
            steps = []

        decisions = self._assign_next(entity, now, steps)
        if entity.status == APPROVED:
            self.on_approved(entity, None, now, {})
        return decisions

    def record_submission(self, entity, actor, decisions: List[Decision]):
        """Persist skipped steps, audit and notify for a freshly saved request."""
        self._record_decisions(entity, decisions)
        self.audit.record(
            actor=actor,
            entity_type=self.entity_type,
            record_id=entity.pk,
            action='create',
            new_values=self._snapshot(entity),
        )
        self._notify_after(entity, event='submitted', previous_approver_id=None)

    def record_restart(self, entity, decisions: List[Decision], previous_approver_id=None):
        """
        Replace the step history of an amended request that went back through
        ``start`` and has been saved. Only requests nobody has approved yet may
        be restarted.
        """
        self.repository.clear_decisions(entity)
        self._record_decisions(entity, decisions)
        if entity.status != PENDING or entity.current_approver_id != previous_approver_id:
            self._notify_after(entity, event='restarted', previous_approver_id=None)
        logger.info(
            "approval_restarted entity=%s:%s workflow=%s level=%s/%s status=%s",
            self.entity_type, entity.pk, entity.workflow_id,
            entity.approval_level, entity.max_approval_level, entity.status,
        )

    # ------------------------------------------------------------------ transitions
    def transition(self, entity_id, action, actor, comments='', **payload):
        if action not in ACTIONS:
            raise ValidationError(f"Unsupported action '{action}'", field='action')
        comments = (comments or '').strip()

        with self.repository.unit_of_work():
            entity = self._load(entity_id)
            expected_version = entity.version
            before = self._snapshot(entity)
            previous_approver_id = entity.current_approver_id
            now = self.clock()

            self._authorize(entity, action, actor)
            self.validate_payload(entity, action, comments, payload)

            if action == 'approve':
                decisions = self._advance(
                    entity, actor_employee_id(actor), 'approved', comments, now, actor, payload
                )
            elif action == 'reject':
                decisions = [(entity.approval_level + 1, actor_employee_id(actor), 'rejected', comments)]
                self._finish(entity, REJECTED, now)
                self.on_rejected(entity, actor, comments, now)
            else:
                decisions = []
                self._finish(entity, CANCELLED, now)
                self.on_cancelled(entity, actor, comments, now)

            self.repository.save(entity, expected_version=expected_version)
            self._record_decisions(entity, decisions)
            self.audit.record(
                actor=actor,
                entity_type=self.entity_type,
                record_id=entity.pk,
                action=action,
                old_values=before,
                new_values=self._snapshot(entity),
            )
            self._notify_after(entity, event=action, previous_approver_id=previous_approver_id)

        logger.info(
            "approval_transition entity=%s:%s action=%s status=%s level=%s/%s",
            self.entity_type, entity.pk, action, entity.status,
            entity.approval_level, entity.max_approval_level,
        )
        return entity

    def delegate(self, entity_id, actor, delegate_to_id, comments=''):
        """Hand the current step to another employee when the step allows it."""
        with self.repository.unit_of_work():
            entity = self._load(entity_id)
            expected_version = entity.version
            before = self._snapshot(entity)

            self._authorize(entity, 'approve', actor)
            step = self._current_step(entity)
            if step is None or not step.can_delegate:
                raise DomainError("The current approval step cannot be delegated")
            if str(delegate_to_id) == str(entity.employee_id):
                raise ValidationError("A request cannot be delegated to its requester", field='delegate_to')
            if str(delegate_to_id) == str(entity.current_approver_id):
                raise ValidationError("The request is already assigned to this approver", field='delegate_to')
            target = self.approver_resolver.get_employee(delegate_to_id)
            if target is None:
                raise NotFoundError('Employee', delegate_to_id)
            if not self.approver_resolver.is_available(target):
                raise ValidationError("Cannot delegate to an inactive employee", field='delegate_to')

            entity.current_approver_id = target.pk
            entity.current_step_started_at = self.clock()
            self.repository.save(entity, expected_version=expected_version)
            self.audit.record(
                actor=actor,
                entity_type=self.entity_type,
                record_id=entity.pk,
                action='delegate',
                old_values=before,
                new_values={**self._snapshot(entity), 'comments': comments},
            )
            self._notify_after(entity, event='delegated', previous_approver_id=None)
        return entity

    def auto_approve(self, entity_id, now=None):
        """
        Approve the current step on behalf of the system once its
        auto-approve deadline has passed. Returns None when nothing was due.
        """
        now = now or self.clock()
        with self.repository.unit_of_work():
            entity = self._load(entity_id)
            if entity.status != PENDING:
                return None
            step = self._current_step(entity)
            if not is_past_auto_approve_deadline(step, entity.current_step_started_at, now):
                return None

            expected_version = entity.version
            before = self._snapshot(entity)
            previous_approver_id = entity.current_approver_id
            decisions = self._advance(entity, None, 'auto_approved', 'Approved automatically after deadline', now, None, {})
            self.repository.save(entity, expected_version=expected_version)
            self._record_decisions(entity, decisions)
            self.audit.record(
                actor=None,
                entity_type=self.entity_type,
                record_id=entity.pk,
                action='auto_approve',
                old_values=before,
                new_values=self._snapshot(entity),
            )
            self._notify_after(entity, event='approve', previous_approver_id=previous_approver_id)

        logger.info(
            "approval_auto_approved entity=%s:%s level=%s/%s status=%s",
            self.entity_type, entity.pk, entity.approval_level, entity.max_approval_level, entity.status,
        )
        return entity

    # ------------------------------------------------------------------ hooks
    def validate_payload(self, entity, action, comments, payload):
        """Check action-specific input before the transition is applied."""

    def on_step_approved(self, entity, actor, now, payload):
        """A step was approved, final or not."""

    def on_approved(self, entity, actor, now, payload):
        """Final approval reached."""

    def on_rejected(self, entity, actor, comments, now):
        """Request rejected."""

    def on_cancelled(self, entity, actor, comments, now):
        """Request cancelled by its requester."""

    # ------------------------------------------------------------------ internals
    def _load(self, entity_id):
        entity = self.repository.get_for_update(entity_id)
        if entity is None:
            raise NotFoundError(self.entity_label, entity_id)
        return entity

    def _authorize(self, entity, action, actor):
        if action == 'cancel':
            if not self.permission_checker(actor, 'cancel', entity):
                raise AuthorizationError(
                    f"Only the requester can cancel a {self.entity_label.lower()} while it is pending"
                )
            return
        if entity.status != PENDING:
            raise DomainError(
                f"{self.entity_label} is already {entity.status}",
                details={'status': entity.status},
            )
        if not self.permission_checker(actor, action, entity):
            raise AuthorizationError(f"You are not the current approver of this {self.entity_label.lower()}")

    def _steps(self, entity):
        if not entity.workflow_id:
            return []
        return list(self.workflow_repository.get_steps(entity.workflow_id))

    def _current_step(self, entity):
        if not entity.workflow_id:
            return None
        return _step_at(self._steps(entity), entity.approval_level + 1)

    def _approver_for(self, entity, level, step):
        requester = entity.employee
        if entity.workflow_id:
            if step is None:
                return None
            return self.approver_resolver.approver_for_step(step, requester)
        return self.approver_resolver.manager_chain_approver(requester, level)

    def _assign_next(self, entity, now, steps) -> List[Decision]:
        """Move ``current_approver`` to the next step, skipping optional steps nobody can take."""
        skipped: List[Decision] = []
        while entity.approval_level < entity.max_approval_level:
            level = entity.approval_level + 1
            step = _step_at(steps, level) if entity.workflow_id else None
            approver_id = self._approver_for(entity, level, step)
            if approver_id is None and _is_optional(step):
                entity.approval_level = level
                skipped.append((level, None, 'skipped', 'No approver available'))
                continue
            if approver_id is None:
                logger.warning(
                    "approver_unresolved entity=%s:%s level=%s; fallback roles may act",
                    self.entity_type, getattr(entity, 'pk', None), level,
                )
            entity.current_approver_id = approver_id
            entity.current_step_started_at = now
            return skipped

        self._finish(entity, APPROVED, now)
        return skipped

    def _advance(self, entity, approver_id, decision, comments, now, actor, payload) -> List[Decision]:
        level = entity.approval_level + 1
        decisions: List[Decision] = [(level, approver_id, decision, comments)]
        entity.approval_level = level
        self.on_step_approved(entity, actor, now, payload)
        decisions.extend(self._assign_next(entity, now, self._steps(entity)))
        if entity.status == APPROVED:
            self.on_approved(entity, actor, now, payload)
        return decisions

    @staticmethod
    def _finish(entity, status, now):
        entity.status = status
        entity.current_approver_id = None
        entity.decided_at = now

    def _record_decisions(self, entity, decisions):
        for level, approver_id, decision, comments in decisions:
            self.repository.record_decision(
                entity, level=level, approver_id=approver_id, action=decision, comments=comments,
            )

    def _snapshot(self, entity):
        values = {
            'status': entity.status,
            'approval_level': entity.approval_level,
            'max_approval_level': entity.max_approval_level,
            'current_approver_id': str(entity.current_approver_id) if entity.current_approver_id else None,
        }
        for name in self.audit_fields:
            values[name] = getattr(entity, name, None)
        return values

    def _notify_after(self, entity, *, event, previous_approver_id):
        payload = {
            'entity_type': self.entity_type,
            'entity_label': self.entity_label,
            'entity_id': str(entity.pk),
            'status': entity.status,
            'approval_level': entity.approval_level,
            'max_approval_level': entity.max_approval_level,
        }
        messages = []
        if entity.status == PENDING and entity.current_approver_id:
            messages.append(('approval_required', [entity.current_approver_id]))
        if event == 'submitted':
            messages.append(('submitted', [entity.employee_id]))
        if entity.status in (APPROVED, REJECTED):
            messages.append((entity.status, [entity.employee_id]))
        if entity.status == CANCELLED and previous_approver_id:
            messages.append(('cancelled', [previous_approver_id]))

        for template, recipients in messages:
            try:
                self.notifier.notify_employees(template, recipients, payload)
            except Exception:
                logger.warning(
                    "notification_failed template=%s entity=%s:%s",
                    template, self.entity_type, entity.pk, exc_info=True,
                )
