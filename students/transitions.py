"""
Level progression and renewal engine.

Every command runs in a single transaction and locks the rows it mutates, so
it either commits all of its effects or none of them. The commands are:

- renew: open a pending registration into the next level (idempotent)
- confirm_renewal: confirm a pending registration into a destination class
- promote: move a student out of recovery straight into the next level
- fail: close an attempt as failed
- repeat: start a new attempt at the same level
- withdraw: close an open attempt as withdrawn

Destination classes are locked before their occupancy is counted, so two
requests racing for the last seat cannot both succeed.
"""
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, NamedTuple, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from academics.models import Class, Level
from . import config
from .exceptions import (
    CapacityExceeded, Conflict, NotFound, PreconditionFailed, ValidationError,
)
from .models import PendingRegistration, Student, StudentLevelProgress
from .sequences import get_enrollment_number_generator

logger = logging.getLogger(__name__)

Status = StudentLevelProgress.Status

# Statuses that wait for an operator decision
AWAITING_STATUSES = (Status.AWAITING_RENEWAL, Status.RECOVERY)


class RenewalResult(NamedTuple):
    """Outcome of ``renew``: either a new registration or the open one."""
    enrollment_number: str
    already_exists: bool

    @property
    def outcome(self):
        return 'already_exists' if self.already_exists else 'created'


class TransitionResult(NamedTuple):
    message: str
    progress: Optional[StudentLevelProgress]
    course_completed: bool = False


class ClassOccupancy(NamedTuple):
    class_id: int
    level_id: int
    name: str
    capacity_max: int
    occupied_count: int

    @property
    def available_seats(self):
        return max(self.capacity_max - self.occupied_count, 0)

    def to_dict(self):
        return {
            'class_id': self.class_id,
            'level_id': self.level_id,
            'name': self.name,
            'capacity_max': self.capacity_max,
            'occupied_count': self.occupied_count,
            'available_seats': self.available_seats,
        }


class AwaitingTransitions(NamedTuple):
    level: Level
    next_level: Optional[Level]
    records: List[StudentLevelProgress]
    next_level_classes: List[ClassOccupancy]


# =============================================================================
# PREDICATES
# =============================================================================

def is_eligible_for_renewal(progress):
    return progress.status == Status.AWAITING_RENEWAL and progress.pending_registration_id is None


def is_pending_confirmation(progress):
    return progress.status == Status.AWAITING_RENEWAL and progress.pending_registration_id is not None


def is_in_recovery(progress):
    return progress.status == Status.RECOVERY


def partition_awaiting(records):
    """Split awaiting records into the buckets an operator works through."""
    return {
        'eligible': [p for p in records if is_eligible_for_renewal(p)],
        'pending': [p for p in records if is_pending_confirmation(p)],
        'recovery': [p for p in records if is_in_recovery(p)],
    }


def default_period(today=None):
    """Return the enrollment period for a date: 2026/1 up to June, 2026/2 after."""
    today = today or date.today()
    half = 1 if today.month <= 6 else 2
    return f"{today.year}/{half}"


def grade_outcome(grade, level):
    """Map a final grade to the status an in-progress record moves to."""
    if grade >= config.PASS_GRADE:
        return Status.PASSED if level.is_last else Status.AWAITING_RENEWAL
    if grade >= config.RECOVERY_GRADE:
        return Status.RECOVERY
    return Status.FAILED


# =============================================================================
# HELPERS
# =============================================================================

def _get_level(level_id):
    try:
        return Level.objects.select_related('course').get(pk=level_id)
    except Level.DoesNotExist:
        raise NotFound(f"Level {level_id} not found.")


def _get_student(student_id):
    try:
        return Student.objects.get(pk=student_id)
    except Student.DoesNotExist:
        raise NotFound(f"Student {student_id} not found.")


def _require_next_level(level):
    next_level = level.get_next_level()
    if next_level is None:
        raise PreconditionFailed(f"{level} is the last level of the course.")
    return next_level


def _lock_latest_progress(student, level):
    """Lock and return the most recent attempt of a student at a level."""
    progress = StudentLevelProgress.objects.select_for_update().filter(
        student=student,
        level=level
    ).order_by('-attempt').first()
    if progress is None:
        raise NotFound(f"{student.full_name} has no record at {level}.")
    return progress


def _check_actionable(progress, allowed, action):
    if progress.status not in allowed:
        raise PreconditionFailed(
            f"Cannot {action} {progress.student.full_name}: "
            f"status is {progress.get_status_display().lower()}."
        )
    if progress.is_superseded:
        raise PreconditionFailed(
            f"Cannot {action} {progress.student.full_name}: "
            f"attempt {progress.attempt} has already been acted on."
        )


def _reserve_seat(class_id, level, releasing=None):
    """
    Lock the destination class and check it has a free seat.

    ``releasing`` is a record the same transaction closes; its seat is counted
    as free. Must be called inside the transaction that assigns the seat; the
    lock is held until that transaction ends.
    """
    try:
        destination = Class.objects.select_for_update().get(pk=class_id)
    except Class.DoesNotExist:
        raise NotFound(f"Class {class_id} not found.")

    if destination.level_id != level.pk:
        raise ValidationError(f"Class {destination.name} does not belong to {level}.")

    occupied = destination.occupied_count()
    if releasing is not None and releasing.class_assigned_id == destination.pk:
        occupied -= 1
    if occupied >= destination.capacity:
        logger.info(f"Class {destination.name} is full ({occupied}/{destination.capacity})")
        raise CapacityExceeded(
            f"Class {destination.name} is full ({occupied}/{destination.capacity})."
        )
    return destination


def _open_progress(**fields):
    """Create a new in-progress record, translating a lost race into Conflict."""
    try:
        with transaction.atomic():
            return StudentLevelProgress.objects.create(status=Status.IN_PROGRESS, **fields)
    except IntegrityError:
        raise Conflict("The student's records changed while saving. Reload and try again.")


def _find_open_registration(student, target_level):
    return PendingRegistration.objects.filter(
        student=student,
        target_level=target_level,
        confirmed=False
    ).first()


def _parse_amount(value, field):
    if value is None or value == '':
        raise ValidationError(f"{field} is required.")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number.")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number.")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative.")
    return amount


# =============================================================================
# QUERIES
# =============================================================================

def get_awaiting(level_id):
    """
    Return the records at a level that need an operator decision, together
    with the classes of the next level and their current occupancy.
    """
    level = _get_level(level_id)

    records = list(
        StudentLevelProgress.objects.filter(
            level=level,
            status__in=AWAITING_STATUSES,
            promoted_to__isnull=True
        ).select_related(
            'student', 'pending_registration', 'class_assigned'
        ).order_by('student__last_name', 'student__first_name', 'attempt')
    )

    next_level = level.get_next_level()
    next_level_classes = []
    if next_level is not None:
        classes = Class.objects.filter(
            level=next_level,
            is_active=True
        ).with_occupancy().order_by('section')
        next_level_classes = [
            ClassOccupancy(
                class_id=c.pk,
                level_id=c.level_id,
                name=c.name,
                capacity_max=c.capacity,
                occupied_count=c.occupied,
            )
            for c in classes
        ]

    return AwaitingTransitions(level, next_level, records, next_level_classes)


def get_student_history(student_id):
    """Every level and attempt of a student, oldest level first."""
    student = _get_student(student_id)
    return list(student.get_progress_history())


# =============================================================================
# COMMANDS
# =============================================================================

def renew(student_id, level_id, *, period, enrollment_fee, monthly_fee):
    """
    Open a pending registration into the level after ``level_id``.

    Calling it again while that registration is still unconfirmed returns the
    same enrollment number with ``already_exists=True`` and writes nothing.
    """
    period = (period or '').strip()
    if not period:
        raise ValidationError("period is required.")
    enrollment_fee = _parse_amount(enrollment_fee, 'enrollment_fee')
    monthly_fee = _parse_amount(monthly_fee, 'monthly_fee')

    student = _get_student(student_id)
    level = _get_level(level_id)
    next_level = _require_next_level(level)

    with transaction.atomic():
        source = _lock_latest_progress(student, level)
        _check_actionable(source, (Status.AWAITING_RENEWAL,), 'renew')

        existing = _find_open_registration(student, next_level)
        if existing is not None:
            logger.info(
                f"Renewal {existing.enrollment_number} already pending for {student.full_name}"
            )
            return RenewalResult(existing.enrollment_number, already_exists=True)

        generate_number = get_enrollment_number_generator()
        try:
            with transaction.atomic():
                registration = PendingRegistration.objects.create(
                    student=student,
                    target_level=next_level,
                    period=period,
                    enrollment_fee=enrollment_fee,
                    monthly_fee=monthly_fee,
                    enrollment_number=generate_number(),
                )
        except IntegrityError:
            # Another request opened the registration first
            existing = _find_open_registration(student, next_level)
            if existing is None:
                raise Conflict("Could not open the renewal. Reload and try again.")
            logger.warning(
                f"Concurrent renewal for {student.full_name} resolved to {existing.enrollment_number}"
            )
            return RenewalResult(existing.enrollment_number, already_exists=True)

        source.pending_registration = registration
        source.save(update_fields=['pending_registration', 'updated_at'])

    logger.info(
        f"Renewal {registration.enrollment_number} opened for {student.full_name} "
        f"into {next_level} ({period})"
    )
    return RenewalResult(registration.enrollment_number, already_exists=False)


def confirm_renewal(pending_registration_id, destination_class_id, *, payment_status):
    """
    Confirm a pending registration and enroll the student in a class of the
    target level.
    """
    if destination_class_id in (None, ''):
        raise ValidationError("destination_class_id is required.")
    if not payment_status:
        raise ValidationError("payment_status is required.")

    with transaction.atomic():
        # Source record first, then the registration: same lock order as fail()
        source = StudentLevelProgress.objects.select_for_update().filter(
            pending_registration_id=pending_registration_id
        ).order_by('-attempt').first()
        try:
            registration = PendingRegistration.objects.select_for_update().get(
                pk=pending_registration_id
            )
        except PendingRegistration.DoesNotExist:
            raise NotFound(f"Pending registration {pending_registration_id} not found.")
        if registration.confirmed:
            raise PreconditionFailed(
                f"Renewal {registration.enrollment_number} is already confirmed."
            )
        if source is None or source.status != Status.AWAITING_RENEWAL:
            raise PreconditionFailed(
                f"Renewal {registration.enrollment_number} is no longer pending."
            )

        target_level = registration.target_level
        destination = _reserve_seat(destination_class_id, target_level)

        registration.confirmed = True
        registration.confirmed_at = timezone.now()
        registration.payment_status = payment_status
        registration.save(update_fields=['confirmed', 'confirmed_at', 'payment_status', 'updated_at'])

        progress = _open_progress(
            student_id=registration.student_id,
            level=target_level,
            class_assigned=destination,
            attempt=1,
            promoted_from=source,
        )

        source.pending_registration = None
        source.save(update_fields=['pending_registration', 'updated_at'])

    student = registration.student
    logger.info(
        f"Renewal {registration.enrollment_number} confirmed: {student.full_name} "
        f"enrolled in {destination.name}"
    )
    return TransitionResult(
        f"{student.full_name} enrolled in {destination.name} ({target_level.name}).",
        progress,
    )


def promote(student_id, level_id, destination_class_id=None):
    """
    Pass a student in recovery and start them at the next level.

    Without a destination class the new record has no class assigned. At the
    last level of the course the student only passes and the result reports
    ``course_completed``.
    """
    student = _get_student(student_id)
    level = _get_level(level_id)
    next_level = level.get_next_level()
    if next_level is None and destination_class_id is not None:
        raise ValidationError(f"{level} is the last level; there is no class to join.")

    with transaction.atomic():
        source = _lock_latest_progress(student, level)
        _check_actionable(source, (Status.RECOVERY,), 'promote')

        destination = None
        if destination_class_id is not None:
            destination = _reserve_seat(destination_class_id, next_level)

        source.status = Status.PASSED
        source.end_date = source.end_date or timezone.localdate()
        source.save(update_fields=['status', 'end_date', 'updated_at'])

        if next_level is None:
            logger.info(f"{student.full_name} completed {level.course}")
            return TransitionResult(
                f"{student.full_name} passed {level.name} and completed {level.course.name}.",
                None,
                course_completed=True,
            )

        progress = _open_progress(
            student=student,
            level=next_level,
            class_assigned=destination,
            attempt=1,
            promoted_from=source,
        )

    logger.info(f"{student.full_name} promoted from {level} to {next_level}")
    if destination is not None:
        message = f"{student.full_name} promoted to {next_level.name} in {destination.name}."
    else:
        message = f"{student.full_name} promoted to {next_level.name}."
    return TransitionResult(message, progress)


def fail(student_id, level_id):
    """
    Close the current attempt as failed.

    An unconfirmed renewal attached to the record is withdrawn.
    """
    student = _get_student(student_id)
    level = _get_level(level_id)

    with transaction.atomic():
        source = _lock_latest_progress(student, level)
        _check_actionable(source, (Status.AWAITING_RENEWAL, Status.RECOVERY), 'fail')

        registration = source.pending_registration
        source.status = Status.FAILED
        source.end_date = source.end_date or timezone.localdate()
        source.pending_registration = None
        source.save(update_fields=['status', 'end_date', 'pending_registration', 'updated_at'])

        if registration is not None and not registration.confirmed:
            logger.info(f"Withdrawing renewal {registration.enrollment_number}")
            registration.delete()

    logger.info(f"{student.full_name} failed {level} (attempt {source.attempt})")


def repeat(student_id, level_id, destination_class_id=None):
    """
    Start a new attempt at the same level for a student in recovery.

    The previous attempt is kept unchanged as history.
    """
    student = _get_student(student_id)
    level = _get_level(level_id)

    with transaction.atomic():
        latest = _lock_latest_progress(student, level)
        _check_actionable(latest, (Status.RECOVERY,), 'repeat')

        destination = None
        if destination_class_id is not None:
            destination = _reserve_seat(destination_class_id, level, releasing=latest)

        progress = _open_progress(
            student=student,
            level=level,
            class_assigned=destination,
            attempt=latest.attempt + 1,
            promoted_from=latest,
        )

    logger.info(f"{student.full_name} repeating {level} (attempt {progress.attempt})")
    return TransitionResult(
        f"{student.full_name} enrolled for attempt #{progress.attempt}.",
        progress,
    )


def withdraw(student_id, level_id):
    """
    Close the current attempt as withdrawn and free its seat.

    Any open attempt can be withdrawn, including one still in progress. An
    unconfirmed renewal attached to the record is withdrawn with it.
    """
    student = _get_student(student_id)
    level = _get_level(level_id)

    with transaction.atomic():
        source = _lock_latest_progress(student, level)
        _check_actionable(source, StudentLevelProgress.SEATED_STATUSES, 'withdraw')

        registration = source.pending_registration
        source.status = Status.WITHDRAWN
        source.end_date = source.end_date or timezone.localdate()
        source.pending_registration = None
        source.save(update_fields=['status', 'end_date', 'pending_registration', 'updated_at'])

        if registration is not None and not registration.confirmed:
            logger.info(f"Withdrawing renewal {registration.enrollment_number}")
            registration.delete()

    logger.info(f"{student.full_name} withdrawn from {level} (attempt {source.attempt})")


def enroll(student_id, level_id, class_id=None):
    """First enrollment of a student at a level."""
    student = _get_student(student_id)
    level = _get_level(level_id)

    with transaction.atomic():
        if StudentLevelProgress.objects.filter(student=student, level=level).exists():
            raise PreconditionFailed(
                f"{student.full_name} is already enrolled at {level}."
            )

        destination = None
        if class_id is not None:
            destination = _reserve_seat(class_id, level)

        progress = _open_progress(
            student=student,
            level=level,
            class_assigned=destination,
            attempt=1,
        )

    logger.info(f"{student.full_name} enrolled at {level}")
    return progress


def record_grade(progress_id, final_grade):
    """Close an in-progress attempt with its final grade."""
    if final_grade is None or final_grade == '':
        raise ValidationError("final_grade is required.")
    try:
        grade = Decimal(str(final_grade))
    except InvalidOperation:
        raise ValidationError("final_grade must be a number.")
    if not grade.is_finite():
        raise ValidationError("final_grade must be a number.")
    if grade < 0 or grade > config.MAX_GRADE:
        raise ValidationError(f"final_grade must be between 0 and {config.MAX_GRADE}.")

    with transaction.atomic():
        try:
            progress = StudentLevelProgress.objects.select_for_update().get(pk=progress_id)
        except StudentLevelProgress.DoesNotExist:
            raise NotFound(f"Progress record {progress_id} not found.")

        if progress.status != Status.IN_PROGRESS:
            raise PreconditionFailed(
                f"Attempt {progress.attempt} has already been graded."
            )

        progress.final_grade = grade
        progress.end_date = timezone.localdate()
        progress.status = grade_outcome(grade, progress.level)
        progress.save(update_fields=['final_grade', 'end_date', 'status', 'updated_at'])

    logger.info(f"Progress {progress.pk} graded {grade}: {progress.status}")
    return progress
