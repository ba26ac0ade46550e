"""
Performance review lifecycle.

    draft --start--> in_progress --complete--> completed --approve--> approved

The reviewer (or a holder of ``performance.manage``) edits and moves a review
forward until it is completed; approval needs ``performance.approve``.
"""
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.audit import audit_service
from apps.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)
from apps.core.permissions import actor_employee_id, check_permission, require_permission

from .models import PerformanceReview

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({
    'review_date', 'next_review_date', 'overall_rating', 'performance_score',
    'goals', 'achievements', 'areas_of_improvement', 'strengths', 'weaknesses',
    'recommendations', 'reviewer_comments', 'hr_comments', 'is_confidential',
})


def _audit_value(value):
    return value if isinstance(value, (list, dict, bool)) or value is None else str(value)


class PerformanceReviewService:
    TRANSITIONS = {
        'start': ((PerformanceReview.STATUS_DRAFT,), PerformanceReview.STATUS_IN_PROGRESS),
        'complete': ((PerformanceReview.STATUS_IN_PROGRESS,), PerformanceReview.STATUS_COMPLETED),
        'approve': ((PerformanceReview.STATUS_COMPLETED,), PerformanceReview.STATUS_APPROVED),
    }

    def __init__(self, audit=audit_service, clock=timezone.now):
        self.audit = audit
        self.clock = clock

    def create(self, employee, reviewer, review_period, review_date, *, actor, **fields):
        if not (check_permission(actor, 'performance.manage') or actor_employee_id(actor) == reviewer.pk):
            raise AuthorizationError("Only HR or the reviewer can create a review")
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot set {', '.join(sorted(unknown))}")
        duplicate = ConflictError(
            "A review for this period already exists",
            details={'employee': str(employee.pk), 'review_period': review_period},
        )
        if PerformanceReview.objects.filter(employee=employee, review_period=review_period).exists():
            raise duplicate
        review = PerformanceReview(
            employee=employee,
            reviewer=reviewer,
            review_period=review_period,
            review_date=review_date,
            created_by=actor if getattr(actor, 'pk', None) else None,
            **fields,
        )
        review.full_clean()
        try:
            with transaction.atomic():
                review.save()
        except IntegrityError:
            raise duplicate
        self.audit.record(
            actor=actor,
            entity_type='performance_review',
            record_id=review.pk,
            action='create',
            new_values={'employee': str(employee.pk), 'reviewer': str(reviewer.pk), 'review_period': review_period},
        )
        logger.info("review_created review=%s employee=%s period=%s", review.pk, employee.pk, review_period)
        return review

    def update(self, review_id, actor, **changes):
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot change {', '.join(sorted(unknown))}")
        with transaction.atomic():
            review = self._locked(review_id)
            self._require_reviewer_or_hr(actor, review)
            if review.status not in PerformanceReview.EDITABLE_STATUSES:
                raise DomainError(
                    f"Cannot edit a {review.status} review",
                    details={'status': review.status},
                )
            before = {name: _audit_value(getattr(review, name)) for name in changes}
            for name, value in changes.items():
                setattr(review, name, value)
            review.updated_by = actor if getattr(actor, 'pk', None) else None
            review.full_clean()
            review.save()
            self.audit.record(
                actor=actor,
                entity_type='performance_review',
                record_id=review.pk,
                action='update',
                old_values=before,
                new_values={name: _audit_value(getattr(review, name)) for name in changes},
            )
        return review

    def transition(self, review_id, action, actor):
        if action not in self.TRANSITIONS:
            raise ValidationError(f"Unsupported action '{action}'", field='action')
        allowed_from, target = self.TRANSITIONS[action]

        with transaction.atomic():
            review = self._locked(review_id)
            if action == 'approve':
                require_permission(actor, 'performance.approve', message="Not permitted to approve reviews")
                if actor_employee_id(actor) == review.employee_id:
                    raise AuthorizationError("You cannot approve your own review")
            else:
                self._require_reviewer_or_hr(actor, review)
            if review.status not in allowed_from:
                raise DomainError(
                    f"Cannot {action} a {review.status} review",
                    details={'status': review.status, 'allowed_from': list(allowed_from)},
                )
            if action == 'complete' and review.overall_rating is None:
                raise ValidationError("An overall rating is required to complete a review", field='overall_rating')

            before = {'status': review.status}
            review.status = target
            fields = ['status', 'updated_at', 'updated_by']
            if action == 'complete':
                review.submitted_at = self.clock()
                fields.append('submitted_at')
            elif action == 'approve':
                review.approved_at = self.clock()
                review.approved_by = getattr(actor, 'employee', None)
                fields += ['approved_at', 'approved_by']
            review.updated_by = actor if getattr(actor, 'pk', None) else None
            review.save(update_fields=fields)
            self.audit.record(
                actor=actor,
                entity_type='performance_review',
                record_id=review.pk,
                action=action,
                old_values=before,
                new_values={'status': review.status},
            )

        logger.info("review_transition review=%s action=%s status=%s", review.pk, action, review.status)
        return review

    def add_employee_comments(self, review_id, actor, comments):
        """The reviewed employee responds once the review is completed."""
        with transaction.atomic():
            review = self._locked(review_id)
            if actor_employee_id(actor) != review.employee_id:
                raise AuthorizationError("Only the reviewed employee can comment")
            if review.status not in (PerformanceReview.STATUS_COMPLETED, PerformanceReview.STATUS_APPROVED):
                raise DomainError("Comments can be added once the review is completed")
            review.employee_comments = comments
            review.save(update_fields=['employee_comments', 'updated_at'])
        return review

    @staticmethod
    def _locked(review_id):
        review = PerformanceReview.objects.select_for_update().filter(pk=review_id).first()
        if review is None:
            raise NotFoundError('Performance review', review_id)
        return review

    @staticmethod
    def _require_reviewer_or_hr(actor, review):
        if check_permission(actor, 'performance.manage'):
            return
        if actor_employee_id(actor) != review.reviewer_id:
            raise AuthorizationError("Only the reviewer or HR can change this review")
