"""
Performance Models - Periodic performance reviews
"""

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from apps.core.models import EnterpriseModel


class PerformanceReview(EnterpriseModel):
    """
    One review of an employee for a period.

    draft -> in_progress -> completed -> approved
    """

    STATUS_DRAFT = 'draft'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_APPROVED = 'approved'

    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_APPROVED, 'Approved'),
    ]
    # Statuses in which the reviewer may still change the assessment
    EDITABLE_STATUSES = (STATUS_DRAFT, STATUS_IN_PROGRESS)

    employee = models.ForeignKey(
        'employees.Employee',
        on_delete=models.PROTECT,
        related_name='performance_reviews'
    )
    reviewer = models.ForeignKey(
        'employees.Employee',
        on_delete=models.PROTECT,
        related_name='reviews_given'
    )
    review_period = models.CharField(max_length=50, help_text="e.g. 2024-H1 or 2024-Q3")
    review_date = models.DateField()
    next_review_date = models.DateField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)

    overall_rating = models.DecimalField(
        max_digits=2, decimal_places=1, null=True, blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    performance_score = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )

    goals = models.JSONField(default=list, blank=True)
    achievements = models.JSONField(default=list, blank=True)
    areas_of_improvement = models.JSONField(default=list, blank=True)
    strengths = models.JSONField(default=list, blank=True)
    weaknesses = models.JSONField(default=list, blank=True)
    recommendations = models.TextField(blank=True)

    employee_comments = models.TextField(blank=True)
    reviewer_comments = models.TextField(blank=True)
    hr_comments = models.TextField(blank=True)

    is_confidential = models.BooleanField(default=False)
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        'employees.Employee',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    class Meta:
        ordering = ['-review_date']
        unique_together = ['employee', 'review_period']
        indexes = [
            models.Index(fields=['reviewer', 'status']),
        ]

    def __str__(self):
        return f"{self.employee_id} - {self.review_period}"

    def clean(self):
        if self.employee_id and self.employee_id == self.reviewer_id:
            raise ValidationError({'reviewer': 'An employee cannot review themselves'})
        if self.next_review_date and self.review_date and self.next_review_date <= self.review_date:
            raise ValidationError({'next_review_date': 'Next review must be after the review date'})
