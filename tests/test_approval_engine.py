"""
Workflow resolution and the approval state machine, exercised against
in-memory repositories.
"""
import contextlib
import copy
import datetime
from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase, override_settings

from apps.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)
from apps.workflows.services import (
    ApprovalStateMachine,
    ResolvedWorkflow,
    WorkflowResolver,
    auto_approve_deadline,
    is_past_auto_approve_deadline,
)
from apps.workflows.tasks import sweep_overdue

NOW = datetime.datetime(2025, 3, 3, 9, 0, tzinfo=datetime.timezone.utc)

APPROVAL_SETTINGS = {
    "DEFAULT_MAX_APPROVAL_LEVEL": 2,
    "NO_WORKFLOW_POLICY": "manual",
    "MATCH_PRECEDENCE": ["department_position", "department", "position", "global"],
    "AMBIGUOUS_MATCH": "first_created",
    "FALLBACK_APPROVER_ROLES": ["hr_manager"],
}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

def workflow(id, *, department_id=None, position_id=None, min_amount=None, max_amount=None, created=0):
    return SimpleNamespace(
        id=id,
        name=f'wf-{id}',
        department_id=department_id,
        position_id=position_id,
        min_amount=None if min_amount is None else Decimal(min_amount),
        max_amount=None if max_amount is None else Decimal(max_amount),
        created_at=NOW + datetime.timedelta(minutes=created),
    )


def step(order, approver_id=None, **options):
    defaults = dict(
        pk=f'step-{order}',
        step_order=order,
        approver_id=approver_id,
        is_required=True,
        can_skip=False,
        can_delegate=False,
        auto_approve=False,
        auto_approve_after_hours=None,
    )
    defaults.update(options)
    return SimpleNamespace(**defaults)


class FakeWorkflowRepository:
    def __init__(self, workflows=(), steps=None):
        self.workflows = list(workflows)
        self.steps = steps or {}

    def query_active_workflows(self, entity_type):
        return list(self.workflows)

    def get_steps(self, workflow_id):
        return list(self.steps.get(workflow_id, []))


class FakeEntityRepository:
    """Stores copies, so a loaded entity behaves like a row read from the database."""

    def __init__(self):
        self.rows = {}
        self.decisions = []

    def add(self, entity):
        self.rows[entity.pk] = copy.copy(entity)

    def unit_of_work(self):
        return contextlib.nullcontext()

    def get_for_update(self, entity_id):
        row = self.rows.get(entity_id)
        return copy.copy(row) if row is not None else None

    def save(self, entity, *, expected_version, fields=None):
        stored = self.rows[entity.pk]
        if stored.version != expected_version:
            raise ConflictError("modified concurrently")
        entity.version = expected_version + 1
        self.rows[entity.pk] = copy.copy(entity)

    def record_decision(self, entity, *, level, approver_id, action, comments=''):
        self.decisions.append((entity.pk, level, approver_id, action, comments))

    def has_approvals(self, entity):
        return any(d[0] == entity.pk and d[3] != 'skipped' for d in self.decisions)

    def clear_decisions(self, entity):
        self.decisions = [d for d in self.decisions if d[0] != entity.pk]

    def query_pending(self):
        return [row for row in self.rows.values() if row.status == 'pending']


class FakeApproverResolver:
    def __init__(self, manager_chain=None, inactive=()):
        self.manager_chain = manager_chain or {}
        self.inactive = set(inactive)

    def approver_for_step(self, step, requester):
        if step.approver_id == requester.pk:
            return None
        return step.approver_id

    def manager_chain_approver(self, requester, level):
        return self.manager_chain.get(level)

    def get_employee(self, employee_id):
        if not str(employee_id).startswith('emp-'):
            return None
        return SimpleNamespace(pk=employee_id, is_active=employee_id not in self.inactive)

    def is_available(self, employee):
        return employee.is_active


class FakeAudit:
    def __init__(self):
        self.entries = []

    def record(self, **kwargs):
        self.entries.append(kwargs)


class FakeNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def notify_employees(self, template, employee_ids, payload):
        if self.fail:
            raise RuntimeError("mail server down")
        self.sent.append((template, list(employee_ids)))


def actor(employee_id, *, roles=(), superuser=False):
    return SimpleNamespace(
        is_active=True,
        is_superuser=superuser,
        is_authenticated=True,
        employee=SimpleNamespace(id=employee_id) if employee_id else None,
        has_role=lambda code: code in roles,
    )


def new_request(pk='req-1', requester='emp-requester'):
    return SimpleNamespace(
        pk=pk,
        employee_id=requester,
        employee=SimpleNamespace(pk=requester),
        status=None,
        approval_level=0,
        max_approval_level=0,
        workflow_id=None,
        current_approver_id=None,
        current_step_started_at=None,
        version=0,
        submitted_at=None,
        decided_at=None,
    )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

@override_settings(HRMS_APPROVAL=APPROVAL_SETTINGS)
class WorkflowResolverTests(SimpleTestCase):

    def resolver(self, workflows, steps=None, **kwargs):
        return WorkflowResolver(FakeWorkflowRepository(workflows, steps), **kwargs)

    def test_department_scoped_workflow_beats_global(self):
        resolver = self.resolver([workflow('global'), workflow('dept', department_id='d1', created=5)])
        resolved = resolver.resolve('leave', department_id='d1')
        self.assertEqual(resolved.id, 'dept')

    def test_department_scope_beats_position_scope_by_default(self):
        resolver = self.resolver([workflow('pos', position_id='p1'), workflow('dept', department_id='d1')])
        self.assertEqual(resolver.resolve('leave', department_id='d1', position_id='p1').id, 'dept')

    def test_precedence_can_favour_position(self):
        resolver = self.resolver(
            [workflow('pos', position_id='p1'), workflow('dept', department_id='d1')],
            precedence=['department_position', 'position', 'department', 'global'],
        )
        self.assertEqual(resolver.resolve('leave', department_id='d1', position_id='p1').id, 'pos')

    def test_other_department_does_not_match(self):
        resolver = self.resolver([workflow('dept', department_id='d1')])
        self.assertIsNone(resolver.resolve('leave', department_id='d2'))

    def test_narrowest_amount_range_wins(self):
        resolver = self.resolver([
            workflow('wide', min_amount='0', max_amount='100000'),
            workflow('narrow', min_amount='1000', max_amount='5000'),
            workflow('open', min_amount='1000'),
        ])
        self.assertEqual(resolver.resolve('loan', amount=2000).id, 'narrow')
        self.assertEqual(resolver.resolve('loan', amount=200000).id, 'open')

    def test_amount_bounded_workflow_needs_an_amount(self):
        resolver = self.resolver([workflow('bounded', min_amount='1')])
        self.assertIsNone(resolver.resolve('loan'))

    def test_ambiguous_match_keeps_oldest(self):
        resolver = self.resolver([workflow('newer', created=10), workflow('older', created=1)])
        self.assertEqual(resolver.resolve('leave').id, 'older')

    def test_ambiguous_match_can_raise(self):
        resolver = self.resolver([workflow('a'), workflow('b', created=1)], ambiguous_match='error')
        with self.assertRaises(ConflictError):
            resolver.resolve('leave')

    def test_steps_are_returned_in_order(self):
        resolver = self.resolver([workflow('wf')], {'wf': [step(2), step(1), step(3)]})
        resolved = resolver.resolve('leave')
        self.assertEqual([item.step_order for item in resolved.steps], [1, 2, 3])
        self.assertEqual(resolved.max_approval_level, 3)

    def test_invalid_precedence_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.resolver([], precedence=['global', 'department'])


# ---------------------------------------------------------------------------
# Deadlines
# ---------------------------------------------------------------------------

class AutoApproveDeadlineTests(SimpleTestCase):

    def test_deadline_is_assignment_plus_hours(self):
        timed = step(1, auto_approve=True, auto_approve_after_hours=24)
        self.assertEqual(auto_approve_deadline(timed, NOW), NOW + datetime.timedelta(hours=24))

    def test_past_deadline_inclusive(self):
        timed = step(1, auto_approve=True, auto_approve_after_hours=2)
        self.assertFalse(is_past_auto_approve_deadline(timed, NOW, NOW + datetime.timedelta(hours=1)))
        self.assertTrue(is_past_auto_approve_deadline(timed, NOW, NOW + datetime.timedelta(hours=2)))

    def test_steps_without_auto_approve_never_expire(self):
        self.assertFalse(is_past_auto_approve_deadline(step(1), NOW, NOW + datetime.timedelta(days=365)))
        self.assertFalse(is_past_auto_approve_deadline(None, NOW, NOW))
        self.assertFalse(
            is_past_auto_approve_deadline(step(1, auto_approve=True, auto_approve_after_hours=1), None, NOW)
        )


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@override_settings(HRMS_APPROVAL=APPROVAL_SETTINGS)
class ApprovalStateMachineTests(SimpleTestCase):

    def build(self, steps=None, manager_chain=None, notifier=None, inactive=()):
        self.repository = FakeEntityRepository()
        self.audit = FakeAudit()
        self.notifier = notifier or FakeNotifier()
        workflow_steps = {'wf': steps} if steps is not None else {}
        self.machine = ApprovalStateMachine(
            repository=self.repository,
            workflow_repository=FakeWorkflowRepository(steps=workflow_steps),
            approver_resolver=FakeApproverResolver(manager_chain, inactive),
            audit=self.audit,
            notifier=self.notifier,
            clock=lambda: NOW,
        )

    def submit(self, steps=None, pk='req-1'):
        entity = new_request(pk)
        resolved = ResolvedWorkflow(SimpleNamespace(id='wf'), steps) if steps is not None else None
        decisions = self.machine.start(entity, resolved, now=NOW)
        self.repository.add(entity)
        self.machine.record_submission(entity, actor('emp-requester'), decisions)
        return entity

    def test_two_step_chain_reaches_approved(self):
        steps = [step(1, 'emp-a'), step(2, 'emp-b')]
        self.build(steps)
        entity = self.submit(steps)
        self.assertEqual((entity.status, entity.approval_level, entity.current_approver_id), ('pending', 0, 'emp-a'))

        first = self.machine.transition('req-1', 'approve', actor('emp-a'))
        self.assertEqual((first.status, first.approval_level, first.current_approver_id), ('pending', 1, 'emp-b'))

        final = self.machine.transition('req-1', 'approve', actor('emp-b'))
        self.assertEqual(final.status, 'approved')
        self.assertEqual(final.approval_level, final.max_approval_level)
        self.assertIsNone(final.current_approver_id)
        self.assertEqual(final.decided_at, NOW)
        self.assertEqual([d[1] for d in self.repository.decisions], [1, 2])
        self.assertEqual(final.version, 2)

    def test_only_current_approver_may_approve(self):
        steps = [step(1, 'emp-a'), step(2, 'emp-b')]
        self.build(steps)
        self.submit(steps)
        with self.assertRaises(AuthorizationError):
            self.machine.transition('req-1', 'approve', actor('emp-b'))
        with self.assertRaises(AuthorizationError):
            self.machine.transition('req-1', 'approve', actor('emp-requester'))
        self.assertEqual(self.repository.rows['req-1'].approval_level, 0)

    def test_reject_is_terminal_with_or_without_reason(self):
        steps = [step(1, 'emp-a'), step(2, 'emp-b')]
        self.build(steps)
        self.submit(steps)
        rejected = self.machine.transition('req-1', 'reject', actor('emp-a'))
        self.assertEqual(rejected.status, 'rejected')
        self.assertIsNone(rejected.current_approver_id)
        self.assertEqual(self.repository.decisions[-1][1:], (1, 'emp-a', 'rejected', ''))
        with self.assertRaises(DomainError):
            self.machine.transition('req-1', 'approve', actor('emp-a'))

        self.submit(steps, pk='req-2')
        rejected = self.machine.transition('req-2', 'reject', actor('emp-a'), comments='Short staffed')
        self.assertEqual(rejected.status, 'rejected')
        self.assertEqual(self.repository.decisions[-1][4], 'Short staffed')

    def test_cancel_only_by_requester_while_pending(self):
        steps = [step(1, 'emp-a')]
        self.build(steps)
        self.submit(steps)
        with self.assertRaises(AuthorizationError):
            self.machine.transition('req-1', 'cancel', actor('emp-a'))

        cancelled = self.machine.transition('req-1', 'cancel', actor('emp-requester'))
        self.assertEqual(cancelled.status, 'cancelled')
        self.assertIn(('cancelled', ['emp-a']), self.notifier.sent)
        with self.assertRaises(AuthorizationError):
            self.machine.transition('req-1', 'cancel', actor('emp-requester'))

    def test_unknown_entity(self):
        self.build([])
        with self.assertRaises(NotFoundError):
            self.machine.transition('missing', 'approve', actor('emp-a'))

    def test_optional_step_without_approver_is_skipped(self):
        steps = [step(1, None, is_required=False), step(2, 'emp-b')]
        self.build(steps)
        entity = self.submit(steps)
        self.assertEqual(entity.approval_level, 1)
        self.assertEqual(entity.current_approver_id, 'emp-b')
        self.assertEqual(self.repository.decisions, [('req-1', 1, None, 'skipped', 'No approver available')])

    def test_without_workflow_follows_manager_chain(self):
        self.build(manager_chain={1: 'emp-manager', 2: 'emp-director'})
        entity = self.submit()
        self.assertEqual(entity.max_approval_level, 2)
        self.assertEqual(entity.current_approver_id, 'emp-manager')
        second = self.machine.transition('req-1', 'approve', actor('emp-manager'))
        self.assertEqual(second.current_approver_id, 'emp-director')

    def test_fallback_role_acts_when_no_approver_resolved(self):
        self.build(manager_chain={})
        self.submit()
        with self.assertRaises(AuthorizationError):
            self.machine.transition('req-1', 'approve', actor('emp-x'))
        approved = self.machine.transition('req-1', 'approve', actor('emp-hr', roles=('hr_manager',)))
        self.assertEqual(approved.approval_level, 1)

    @override_settings(HRMS_APPROVAL={**APPROVAL_SETTINGS, "NO_WORKFLOW_POLICY": "auto_approve"})
    def test_auto_approve_policy_without_workflow(self):
        self.build()
        entity = self.submit()
        self.assertEqual(entity.status, 'approved')
        self.assertIn(('approved', ['emp-requester']), self.notifier.sent)

    @override_settings(HRMS_APPROVAL={**APPROVAL_SETTINGS, "NO_WORKFLOW_POLICY": "reject"})
    def test_reject_policy_without_workflow(self):
        self.build()
        with self.assertRaises(DomainError):
            self.machine.start(new_request(), None, now=NOW)

    def test_stale_write_is_a_conflict(self):
        steps = [step(1, 'emp-a'), step(2, 'emp-b')]
        self.build(steps)
        self.submit(steps)
        repository = self.repository
        original_load = repository.get_for_update

        def load_then_lose_race(entity_id):
            loaded = original_load(entity_id)
            # another writer commits between our read and our write
            repository.rows[entity_id].version += 1
            return loaded

        repository.get_for_update = load_then_lose_race
        with self.assertRaises(ConflictError):
            self.machine.transition('req-1', 'approve', actor('emp-a'))
        self.assertEqual(repository.rows['req-1'].approval_level, 0)

    def test_notification_failure_does_not_block_transition(self):
        steps = [step(1, 'emp-a')]
        self.build(steps, notifier=FakeNotifier(fail=True))
        self.submit(steps)
        approved = self.machine.transition('req-1', 'approve', actor('emp-a'))
        self.assertEqual(approved.status, 'approved')

    def test_every_transition_is_audited(self):
        steps = [step(1, 'emp-a')]
        self.build(steps)
        self.submit(steps)
        self.machine.transition('req-1', 'approve', actor('emp-a'))
        self.assertEqual([entry['action'] for entry in self.audit.entries], ['create', 'approve'])
        self.assertEqual(self.audit.entries[1]['old_values']['status'], 'pending')
        self.assertEqual(self.audit.entries[1]['new_values']['status'], 'approved')

    def test_delegate_rules(self):
        steps = [step(1, 'emp-a', can_delegate=True), step(2, 'emp-b')]
        self.build(steps, inactive=['emp-retired'])
        self.submit(steps)
        with self.assertRaises(ValidationError):
            self.machine.delegate('req-1', actor('emp-a'), 'emp-requester')
        with self.assertRaises(ValidationError):
            self.machine.delegate('req-1', actor('emp-a'), 'emp-a')
        with self.assertRaises(NotFoundError):
            self.machine.delegate('req-1', actor('emp-a'), 'ghost')
        with self.assertRaises(ValidationError):
            self.machine.delegate('req-1', actor('emp-a'), 'emp-retired')
        self.assertEqual(self.repository.rows['req-1'].current_approver_id, 'emp-a')

        delegated = self.machine.delegate('req-1', actor('emp-a'), 'emp-c')
        self.assertEqual(delegated.current_approver_id, 'emp-c')
        self.assertEqual(self.machine.transition('req-1', 'approve', actor('emp-c')).current_approver_id, 'emp-b')
        with self.assertRaises(DomainError):
            self.machine.delegate('req-1', actor('emp-b'), 'emp-c')

    def test_restart_replaces_step_history(self):
        steps = [step(1, None, is_required=False), step(2, 'emp-b')]
        self.build(steps)
        entity = self.submit(steps)
        self.assertEqual(entity.approval_level, 1)
        self.assertFalse(self.repository.has_approvals(entity))

        amended = self.repository.get_for_update('req-1')
        resolved = ResolvedWorkflow(SimpleNamespace(id='wf'), [step(1, 'emp-a'), step(2, 'emp-b')])
        decisions = self.machine.start(amended, resolved, now=NOW)
        self.repository.save(amended, expected_version=amended.version)
        self.machine.record_restart(amended, decisions, previous_approver_id='emp-b')

        self.assertEqual((amended.approval_level, amended.current_approver_id), (0, 'emp-a'))
        self.assertEqual(self.repository.decisions, [])
        self.assertIn(('approval_required', ['emp-a']), self.notifier.sent)

    def test_auto_approve_after_deadline(self):
        steps = [step(1, 'emp-a', auto_approve=True, auto_approve_after_hours=24), step(2, 'emp-b')]
        self.build(steps)
        self.submit(steps)
        self.assertIsNone(self.machine.auto_approve('req-1', now=NOW + datetime.timedelta(hours=23)))

        advanced = self.machine.auto_approve('req-1', now=NOW + datetime.timedelta(hours=24))
        self.assertEqual(advanced.approval_level, 1)
        self.assertEqual(advanced.current_approver_id, 'emp-b')
        self.assertEqual(self.repository.decisions[-1][1:4], (1, None, 'auto_approved'))
        # the second step has no deadline
        self.assertIsNone(self.machine.auto_approve('req-1', now=NOW + datetime.timedelta(days=30)))


class FakeSweepService:

    def __init__(self, entity_type, outcomes):
        self.entity_type = entity_type
        self.outcomes = outcomes
        self.repository = SimpleNamespace(
            query_pending=lambda: [SimpleNamespace(pk=pk) for pk in outcomes],
        )
        self.seen = []

    def auto_approve(self, entity_id, now=None):
        self.seen.append((entity_id, now))
        outcome = self.outcomes[entity_id]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class AutoApproveSweepTests(SimpleTestCase):

    def test_counts_per_entity_type(self):
        leave = FakeSweepService('leave', {1: object(), 2: None, 3: ConflictError('moved')})
        loan = FakeSweepService('loan', {7: object()})

        with self.assertLogs('apps.workflows.tasks.approvals', level='WARNING'):
            results = sweep_overdue([leave, loan], now=NOW)

        self.assertEqual(results, {
            'leave': {'approved': 1, 'failed': 1},
            'loan': {'approved': 1, 'failed': 0},
        })
        self.assertEqual([entity_id for entity_id, _ in leave.seen], [1, 2, 3])
        self.assertTrue(all(now == NOW for _, now in leave.seen))
