from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Student(models.Model):
    """
    Represents a student registered with the institution.
    """
    class Status(models.TextChoices):
        ACTIVE = 'active', _('Active')
        GRADUATED = 'graduated', _('Graduated')
        WITHDRAWN = 'withdrawn', _('Withdrawn')
        SUSPENDED = 'suspended', _('Suspended')

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    student_code = models.CharField(
        max_length=50,
        unique=True,
        help_text="Unique student ID"
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE
    )

    # Metadata
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['last_name', 'first_name']
        verbose_name = "Student"
        verbose_name_plural = "Students"

    def __str__(self):
        return f"{self.full_name} ({self.student_code})"

    @property
    def full_name(self):
        """Return full name of student."""
        return f"{self.first_name} {self.last_name}"

    def get_progress_history(self):
        """Return all level progress records, oldest level first."""
        return self.level_progress.with_superseded().select_related(
            'level', 'class_assigned'
        ).order_by('level__order', 'attempt')


class StudentLevelProgressQuerySet(models.QuerySet):

    def seated(self):
        """Records that occupy a seat in their class."""
        return self.filter(
            status__in=StudentLevelProgress.SEATED_STATUSES,
            promoted_to__isnull=True
        )

    def with_superseded(self):
        return self.annotate(
            superseded=models.Exists(
                StudentLevelProgress.objects.filter(promoted_from=models.OuterRef('pk'))
            )
        )


class StudentLevelProgress(models.Model):
    """
    One attempt of a student at a level.

    History is append-only: a record that has been acted on keeps its status
    and is superseded by the record that names it in ``promoted_from``.
    """
    class Status(models.TextChoices):
        IN_PROGRESS = 'in_progress', _('In progress')
        AWAITING_TRANSITION = 'awaiting_transition', _('Awaiting transition')
        AWAITING_RENEWAL = 'awaiting_renewal', _('Awaiting renewal')
        RECOVERY = 'recovery', _('Recovery')
        PASSED = 'passed', _('Passed')
        FAILED = 'failed', _('Failed')
        WITHDRAWN = 'withdrawn', _('Withdrawn')

    TERMINAL_STATUSES = (Status.PASSED, Status.FAILED, Status.WITHDRAWN)

    # An open attempt holds a seat in its class until it is closed or superseded
    SEATED_STATUSES = (
        Status.IN_PROGRESS, Status.AWAITING_TRANSITION, Status.AWAITING_RENEWAL,
        Status.RECOVERY,
    )

    student = models.ForeignKey(
        Student,
        on_delete=models.PROTECT,
        related_name='level_progress'
    )
    level = models.ForeignKey(
        'academics.Level',
        on_delete=models.PROTECT,
        related_name='progress_records'
    )
    class_assigned = models.ForeignKey(
        'academics.Class',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='progress_records'
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.IN_PROGRESS
    )
    final_grade = models.DecimalField(
        max_digits=4,
        decimal_places=2,
        null=True,
        blank=True
    )
    attempt = models.PositiveSmallIntegerField(default=1)
    start_date = models.DateField(default=timezone.localdate)
    end_date = models.DateField(null=True, blank=True)

    pending_registration = models.ForeignKey(
        'PendingRegistration',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='source_progress',
        help_text="Open renewal request towards the next level"
    )

    # Track progression source
    promoted_from = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='promoted_to',
        help_text="The record this one supersedes"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = StudentLevelProgressQuerySet.as_manager()

    class Meta:
        ordering = ['level__order', 'student__last_name', 'student__first_name', 'attempt']
        verbose_name = "Student Level Progress"
        verbose_name_plural = "Student Level Progress"
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'level', 'attempt'],
                name='unique_progress_attempt'
            ),
            models.CheckConstraint(
                condition=Q(attempt__gte=1),
                name='progress_attempt_positive'
            ),
        ]
        indexes = [
            models.Index(fields=['level', 'status'], name='progress_level_status_idx'),
        ]

    def __str__(self):
        return f"{self.student.full_name} - {self.level} (attempt {self.attempt}, {self.get_status_display()})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def is_superseded(self):
        return self.promoted_to.exists()


class PendingRegistration(models.Model):
    """
    An unconfirmed renewal request into the next level.

    At most one unconfirmed request may exist per student and target level.
    """
    class PaymentStatus(models.TextChoices):
        PAID = 'paid', _('Paid')
        PENDING = 'pending', _('Pending')

    student = models.ForeignKey(
        Student,
        on_delete=models.PROTECT,
        related_name='pending_registrations'
    )
    target_level = models.ForeignKey(
        'academics.Level',
        on_delete=models.PROTECT,
        related_name='pending_registrations'
    )
    period = models.CharField(
        max_length=20,
        help_text="e.g., 2026/1"
    )
    enrollment_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    monthly_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    enrollment_number = models.CharField(max_length=30, unique=True)

    confirmed = models.BooleanField(default=False)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        blank=True
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = "Pending Registration"
        verbose_name_plural = "Pending Registrations"
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'target_level'],
                condition=Q(confirmed=False),
                name='unique_open_renewal'
            ),
        ]

    def __str__(self):
        return f"{self.enrollment_number} - {self.student.full_name} ({self.period})"
