"""
Employee Models - Organization structure and the employee master record
"""

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models

from apps.core.models import SoftDeleteEnterpriseModel

employee_id_validator = RegexValidator(
    regex=r'^[A-Z0-9]{6,10}$',
    message='Employee ID must be 6-10 uppercase letters or digits.',
)


class Branch(SoftDeleteEnterpriseModel):
    """Physical office/location"""

    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20, unique=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    country = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    manager = models.ForeignKey(
        'Employee',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='managed_branches'
    )

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'Branches'

    def __str__(self):
        return self.name


class Department(SoftDeleteEnterpriseModel):
    """Department/Business Unit"""

    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True)
    branch = models.ForeignKey(
        Branch,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='departments',
        help_text="Branch this department belongs to (null = company-wide)"
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sub_departments'
    )
    head = models.ForeignKey(
        'Employee',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='headed_departments'
    )

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def clean(self):
        if self.parent_id and self.parent_id == self.id:
            raise ValidationError({'parent': 'A department cannot be its own parent'})


class Position(SoftDeleteEnterpriseModel):
    """Job title within a department"""

    title = models.CharField(max_length=100)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True)
    department = models.ForeignKey(
        Department,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='positions'
    )
    level = models.PositiveSmallIntegerField(default=1)
    min_salary = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_salary = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    class Meta:
        ordering = ['level', 'title']

    def __str__(self):
        return self.title

    def clean(self):
        if self.min_salary is not None and self.max_salary is not None and self.min_salary > self.max_salary:
            raise ValidationError({'min_salary': 'Minimum salary cannot exceed maximum salary'})


class Employee(SoftDeleteEnterpriseModel):
    """
    Employee master record.
    Optionally linked to a User for authentication.
    """

    # Employment Status
    STATUS_ACTIVE = 'active'
    STATUS_ON_LEAVE = 'on_leave'
    STATUS_INACTIVE = 'inactive'
    STATUS_TERMINATED = 'terminated'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_ON_LEAVE, 'On Leave'),
        (STATUS_INACTIVE, 'Inactive'),
        (STATUS_TERMINATED, 'Terminated'),
    ]

    # Employment Type
    TYPE_FULL_TIME = 'full_time'
    TYPE_PART_TIME = 'part_time'
    TYPE_CONTRACT = 'contract'
    TYPE_INTERN = 'intern'

    TYPE_CHOICES = [
        (TYPE_FULL_TIME, 'Full Time'),
        (TYPE_PART_TIME, 'Part Time'),
        (TYPE_CONTRACT, 'Contract'),
        (TYPE_INTERN, 'Intern'),
    ]

    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
    ]

    # Link to User
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='employee'
    )

    employee_id = models.CharField(max_length=10, unique=True, validators=[employee_id_validator])

    # Personal Information
    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=20, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    address = models.JSONField(default=dict, blank=True)
    emergency_contact = models.JSONField(default=dict, blank=True)

    # Organization
    department = models.ForeignKey(
        Department,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='employees'
    )
    position = models.ForeignKey(
        Position,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='employees'
    )
    branch = models.ForeignKey(
        Branch,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='employees'
    )

    # Reporting
    reporting_manager = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='direct_reports'
    )
    hr_manager = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='hr_reports'
    )

    # Employment Details
    employment_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_FULL_TIME)
    employment_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    date_of_joining = models.DateField()
    date_of_exit = models.DateField(null=True, blank=True)
    base_salary = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    hourly_rate = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)

    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['employee_id']
        indexes = [
            models.Index(fields=['department', 'employment_status']),
            models.Index(fields=['reporting_manager']),
        ]

    def __str__(self):
        return f"{self.employee_id} - {self.full_name}"

    def clean(self):
        super().clean()
        if self.reporting_manager_id and self.reporting_manager_id == self.id:
            raise ValidationError({'reporting_manager': 'An employee cannot report to themselves'})
        if self.date_of_exit and self.date_of_joining and self.date_of_exit < self.date_of_joining:
            raise ValidationError({'date_of_exit': 'Exit date cannot be before joining date'})

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def get_team_members(self):
        """Get all direct reports"""
        return Employee.objects.filter(reporting_manager=self, is_active=True)

    def get_org_hierarchy(self):
        """Get reporting chain up to top"""
        hierarchy = []
        seen = {self.pk}
        current = self.reporting_manager
        while current and current.pk not in seen:
            hierarchy.append(current)
            seen.add(current.pk)
            current = current.reporting_manager
        return hierarchy
