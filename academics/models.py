from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Count, Q


class Course(models.Model):
    """
    A course offered by the institution (e.g., English, French).
    Multi-level courses are split into ordered Levels.
    """
    name = models.CharField(
        max_length=100,
        help_text="e.g., English, Spanish for Beginners"
    )
    code = models.CharField(
        max_length=10,
        unique=True,
        help_text="e.g., ENG, SPA"
    )
    has_levels = models.BooleanField(
        default=True,
        help_text="Whether students progress through ordered levels"
    )
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        verbose_name = "Course"
        verbose_name_plural = "Courses"

    def __str__(self):
        return self.name


class Level(models.Model):
    """
    An ordered stage within a course (Beginner -> Intermediate -> Advanced).

    Structural fields cannot change once a student has a progress record at
    the level.
    """
    STRUCTURAL_FIELDS = (
        'course_id', 'level_number', 'order', 'prerequisite_level_id', 'duration_months',
    )

    course = models.ForeignKey(
        Course,
        on_delete=models.PROTECT,
        related_name='levels'
    )
    level_number = models.PositiveSmallIntegerField(
        help_text="1, 2, 3, etc."
    )
    name = models.CharField(
        max_length=100,
        help_text="e.g., Beginner, Intermediate"
    )
    order = models.PositiveSmallIntegerField(
        help_text="Position of the level within the course"
    )
    prerequisite_level = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='unlocks',
        help_text="The level a student must complete before this one"
    )
    duration_months = models.PositiveSmallIntegerField(default=6)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['course', 'order']
        verbose_name = "Level"
        verbose_name_plural = "Levels"
        unique_together = ['course', 'level_number']

    def __str__(self):
        return f"{self.course.name} - {self.name}"

    def clean(self):
        if self.prerequisite_level_id and self.prerequisite_level_id == self.pk:
            raise ValidationError({'prerequisite_level': 'A level cannot be its own prerequisite.'})
        if self.prerequisite_level and self.prerequisite_level.course_id != self.course_id:
            raise ValidationError({'prerequisite_level': 'Prerequisite must belong to the same course.'})

    def save(self, *args, **kwargs):
        if self.pk and self.progress_records.exists():
            stored = Level.objects.filter(pk=self.pk).values(*self.STRUCTURAL_FIELDS).first()
            changed = [
                field for field in self.STRUCTURAL_FIELDS
                if stored and stored[field] != getattr(self, field)
            ]
            if changed:
                raise ValidationError(
                    f"Level '{self.name}' already has students enrolled; "
                    f"cannot change {', '.join(changed)}."
                )
        self.full_clean()
        super().save(*args, **kwargs)

    def get_next_level(self):
        """
        Return the level that follows this one, or None for the last level.

        An explicit prerequisite link wins; otherwise the next level by order
        within the same course.
        """
        next_level = Level.objects.filter(prerequisite_level=self).order_by('order').first()
        if next_level:
            return next_level
        return Level.objects.filter(
            course_id=self.course_id,
            order__gt=self.order
        ).order_by('order').first()

    @property
    def is_last(self):
        return self.get_next_level() is None


class ClassQuerySet(models.QuerySet):

    def with_occupancy(self):
        """Annotate each class with the number of seats taken."""
        from students.models import StudentLevelProgress
        return self.annotate(
            occupied=Count(
                'progress_records',
                filter=Q(
                    progress_records__status__in=StudentLevelProgress.SEATED_STATUSES,
                    progress_records__promoted_to__isnull=True
                ),
                distinct=True
            )
        )


class Class(models.Model):
    """
    A group of students taking a level together.

    Name format: <course code><level number>-<section>, e.g. ENG1-A, SPA3-B
    """
    level = models.ForeignKey(
        Level,
        on_delete=models.PROTECT,
        related_name='classes'
    )
    section = models.CharField(
        max_length=5,
        help_text="A, B, C, etc."
    )

    # Auto-generated class name
    name = models.CharField(
        max_length=20,
        editable=False,
        help_text="Auto-generated: ENG1-A, SPA3-B"
    )

    capacity = models.PositiveIntegerField(
        default=30,
        help_text="Maximum number of students"
    )

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ClassQuerySet.as_manager()

    class Meta:
        ordering = ['level', 'section']
        verbose_name = "Class"
        verbose_name_plural = "Classes"
        unique_together = ['level', 'section']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.name = self.generate_name()
        super().save(*args, **kwargs)

    def generate_name(self):
        """Generate class name from course code, level number and section."""
        return f"{self.level.course.code}{self.level.level_number}-{self.section}"

    def occupied_count(self):
        """Seats taken by open, current attempts."""
        return self.progress_records.seated().count()

    @property
    def available_seats(self):
        return max(self.capacity - self.occupied_count(), 0)

    @property
    def is_full(self):
        return self.occupied_count() >= self.capacity
