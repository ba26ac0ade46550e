import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.core.exceptions import AuthorizationError, ConflictError, DomainError, ValidationError
from apps.performance.models import PerformanceReview
from apps.performance.services import PerformanceReviewService
from tests.factories import EmployeeFactory, RoleFactory

REVIEW_DATE = datetime.date(2025, 6, 30)


class PerformanceReviewServiceTests(TestCase):

    def setUp(self):
        self.reviewer = EmployeeFactory()
        self.employee = EmployeeFactory(reporting_manager=self.reviewer)
        self.hr = EmployeeFactory()
        self.hr.user.roles.add(RoleFactory(code='hr_manager', permissions=['performance.*']))
        self.service = PerformanceReviewService()

    def create(self, **fields):
        return self.service.create(
            self.employee, self.reviewer, '2025-H1', REVIEW_DATE, actor=self.reviewer.user, **fields
        )

    def test_full_lifecycle(self):
        review = self.create(goals=['Ship billing v2'])
        self.assertEqual(review.status, PerformanceReview.STATUS_DRAFT)

        self.service.transition(review.pk, 'start', self.reviewer.user)
        self.service.update(review.pk, self.reviewer.user, overall_rating=Decimal('4.5'), strengths=['Mentoring'])
        review = self.service.transition(review.pk, 'complete', self.reviewer.user)
        self.assertEqual(review.status, PerformanceReview.STATUS_COMPLETED)
        self.assertIsNotNone(review.submitted_at)

        review = self.service.transition(review.pk, 'approve', self.hr.user)
        self.assertEqual(review.status, PerformanceReview.STATUS_APPROVED)
        self.assertEqual(review.approved_by_id, self.hr.pk)
        self.assertIsNotNone(review.approved_at)

    def test_complete_needs_a_rating(self):
        review = self.create()
        self.service.transition(review.pk, 'start', self.reviewer.user)
        with self.assertRaises(ValidationError):
            self.service.transition(review.pk, 'complete', self.reviewer.user)

    def test_steps_cannot_be_skipped(self):
        review = self.create(overall_rating=Decimal('3'))
        with self.assertRaises(DomainError):
            self.service.transition(review.pk, 'complete', self.reviewer.user)
        with self.assertRaises(DomainError):
            self.service.transition(review.pk, 'approve', self.hr.user)

    def test_reviewer_cannot_approve(self):
        review = self.create(overall_rating=Decimal('3'))
        self.service.transition(review.pk, 'start', self.reviewer.user)
        self.service.transition(review.pk, 'complete', self.reviewer.user)
        with self.assertRaises(AuthorizationError):
            self.service.transition(review.pk, 'approve', self.reviewer.user)

    def test_hr_cannot_approve_own_review(self):
        own = self.service.create(
            self.hr, self.reviewer, '2025-H1', REVIEW_DATE, actor=self.reviewer.user, overall_rating=Decimal('4')
        )
        self.service.transition(own.pk, 'start', self.reviewer.user)
        self.service.transition(own.pk, 'complete', self.reviewer.user)
        with self.assertRaises(AuthorizationError):
            self.service.transition(own.pk, 'approve', self.hr.user)

    def test_only_reviewer_or_hr_creates(self):
        with self.assertRaises(AuthorizationError):
            self.service.create(self.employee, self.reviewer, '2025-H1', REVIEW_DATE, actor=self.employee.user)

    def test_one_review_per_period(self):
        self.create()
        with self.assertRaises(ConflictError):
            self.create()

    def test_self_review_is_invalid(self):
        with self.assertRaises(DjangoValidationError):
            self.service.create(self.hr, self.hr, '2025-H1', REVIEW_DATE, actor=self.hr.user)

    def test_rating_bounds(self):
        with self.assertRaises(DjangoValidationError):
            self.create(overall_rating=Decimal('6'))

    def test_completed_review_is_read_only(self):
        review = self.create(overall_rating=Decimal('3'))
        self.service.transition(review.pk, 'start', self.reviewer.user)
        self.service.transition(review.pk, 'complete', self.reviewer.user)
        with self.assertRaises(DomainError):
            self.service.update(review.pk, self.reviewer.user, overall_rating=Decimal('5'))

    def test_employee_comments_after_completion(self):
        review = self.create(overall_rating=Decimal('3'))
        with self.assertRaises(DomainError):
            self.service.add_employee_comments(review.pk, self.employee.user, 'Thanks')
        self.service.transition(review.pk, 'start', self.reviewer.user)
        self.service.transition(review.pk, 'complete', self.reviewer.user)
        with self.assertRaises(AuthorizationError):
            self.service.add_employee_comments(review.pk, self.reviewer.user, 'Thanks')
        review = self.service.add_employee_comments(review.pk, self.employee.user, 'Thanks for the feedback')
        self.assertEqual(review.employee_comments, 'Thanks for the feedback')


class PerformanceReviewAPITests(TestCase):

    def setUp(self):
        self.reviewer = EmployeeFactory()
        self.employee = EmployeeFactory()
        self.client = APIClient()

    def authenticate(self, employee):
        self.client.credentials(
            HTTP_AUTHORIZATION=f'Bearer {RefreshToken.for_user(employee.user).access_token}'
        )

    def test_create_and_list(self):
        self.authenticate(self.reviewer)
        response = self.client.post('/api/v1/performance/reviews/', {
            'employee': str(self.employee.pk),
            'reviewer': str(self.reviewer.pk),
            'review_period': '2025-H1',
            'review_date': '2025-06-30',
            'is_confidential': True,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get('/api/v1/performance/reviews/to_review/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['pagination']['count'], 1)

        self.authenticate(self.employee)
        response = self.client.get('/api/v1/performance/reviews/my_reviews/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        # confidential reviews stay hidden from the reviewed employee
        self.assertEqual(response.data['pagination']['count'], 0)

    def test_rating_out_of_range(self):
        self.authenticate(self.reviewer)
        response = self.client.post('/api/v1/performance/reviews/', {
            'employee': str(self.employee.pk),
            'reviewer': str(self.reviewer.pk),
            'review_period': '2025-H1',
            'review_date': '2025-06-30',
            'overall_rating': '7.0',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
