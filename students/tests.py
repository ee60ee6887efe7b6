"""
Tests for the students app.

Focuses on:
- Renewal idempotency (including a lost insert race)
- Capacity of destination classes
- Promotion, failure, repeat and withdrawal
- Student history
- The eligibility query and its buckets
- Grading thresholds
- JSON endpoints
- Concurrent writers on the last seat and on renew
"""
import threading
from datetime import date
from decimal import Decimal
from unittest import mock

from django.db import IntegrityError, connection, transaction
from django.test import (
    Client, TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature,
)
from django.urls import reverse

from academics.models import Class, Course, Level
from students import transitions
from students.exceptions import (
    CapacityExceeded, NotFound, PreconditionFailed, TransitionError, ValidationError,
)
from students.models import PendingRegistration, Student, StudentLevelProgress

Status = StudentLevelProgress.Status

RENEWAL = {'period': '2026/1', 'enrollment_fee': 500, 'monthly_fee': 300}


def fixed_enrollment_number():
    return 'R-100'


# =============================================================================
# BASE TEST CASE
# =============================================================================

class ProgressionFixtures:
    """A three-level course, its classes and a few students."""

    def setUp(self):
        self.course = Course.objects.create(name='English', code='ENG')
        self.level1 = Level.objects.create(
            course=self.course, level_number=1, name='Beginner', order=1
        )
        self.level2 = Level.objects.create(
            course=self.course, level_number=2, name='Intermediate', order=2,
            prerequisite_level=self.level1
        )
        self.level3 = Level.objects.create(
            course=self.course, level_number=3, name='Advanced', order=3,
            prerequisite_level=self.level2
        )

        self.class_c = Class.objects.create(level=self.level2, section='A', capacity=30)
        self.class_l3 = Class.objects.create(level=self.level3, section='A', capacity=2)

        self.student_x = self.create_student('Ama', 'Owusu', 'X-001')
        self.student_y = self.create_student('Kofi', 'Boateng', 'Y-001')
        self.student_z = self.create_student('Esi', 'Mensah', 'Z-001')

    def create_student(self, first_name, last_name, code):
        return Student.objects.create(
            first_name=first_name,
            last_name=last_name,
            email=f'{code.lower()}@school.com',
            student_code=code,
        )

    def create_progress(self, student, level, status, attempt=1, grade=None, class_assigned=None):
        if status != Status.IN_PROGRESS and grade is None:
            grade = Decimal('6.00')
        return StudentLevelProgress.objects.create(
            student=student,
            level=level,
            status=status,
            attempt=attempt,
            final_grade=grade,
            class_assigned=class_assigned,
        )

    def fill_class(self, cls, count):
        """Seat ``count`` extra students in a class."""
        for i in range(count):
            student = self.create_student('Filler', f'{i:03d}', f'FILL-{cls.pk}-{i}')
            self.create_progress(student, cls.level, Status.IN_PROGRESS, class_assigned=cls)


class ProgressionTestCase(ProgressionFixtures, TestCase):
    """Base test case with a three-level course and a few students."""


# =============================================================================
# RENEW
# =============================================================================

class RenewTests(ProgressionTestCase):

    def setUp(self):
        super().setUp()
        self.source = self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)

    def test_opens_pending_registration(self):
        result = transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)

        self.assertEqual(result.enrollment_number, 'E0001')
        self.assertFalse(result.already_exists)
        self.assertEqual(result.outcome, 'created')

        self.source.refresh_from_db()
        registration = PendingRegistration.objects.get()
        self.assertEqual(self.source.pending_registration, registration)
        self.assertEqual(self.source.status, Status.AWAITING_RENEWAL)
        self.assertEqual(registration.target_level, self.level2)
        self.assertEqual(registration.period, '2026/1')
        self.assertEqual(registration.enrollment_fee, Decimal('500'))
        self.assertEqual(registration.monthly_fee, Decimal('300'))
        self.assertFalse(registration.confirmed)

    def test_second_call_returns_same_number(self):
        first = transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)
        second = transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)

        self.assertEqual(second.enrollment_number, first.enrollment_number)
        self.assertTrue(second.already_exists)
        self.assertEqual(second.outcome, 'already_exists')
        self.assertEqual(PendingRegistration.objects.count(), 1)

    def test_lost_race_resolves_to_existing_registration(self):
        """A concurrent insert that wins is reported as already_exists."""
        winner = PendingRegistration.objects.create(
            student=self.student_x,
            target_level=self.level2,
            period='2026/1',
            enrollment_number='E0042',
        )
        with mock.patch(
            'students.transitions._find_open_registration',
            side_effect=[None, winner]
        ):
            result = transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)

        self.assertEqual(result.enrollment_number, 'E0042')
        self.assertTrue(result.already_exists)
        self.assertEqual(PendingRegistration.objects.count(), 1)
        self.source.refresh_from_db()
        self.assertIsNone(self.source.pending_registration)

    def test_database_rejects_second_open_registration(self):
        PendingRegistration.objects.create(
            student=self.student_x, target_level=self.level2,
            period='2026/1', enrollment_number='E0100',
        )
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                PendingRegistration.objects.create(
                    student=self.student_x, target_level=self.level2,
                    period='2026/1', enrollment_number='E0101',
                )

    @override_settings(
        PROGRESSION_ENROLLMENT_NUMBER_GENERATOR='students.tests.fixed_enrollment_number'
    )
    def test_uses_configured_generator(self):
        result = transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)
        self.assertEqual(result.enrollment_number, 'R-100')

    def test_requires_awaiting_renewal(self):
        self.create_progress(self.student_y, self.level1, Status.RECOVERY)
        with self.assertRaises(PreconditionFailed):
            transitions.renew(self.student_y.pk, self.level1.pk, **RENEWAL)
        self.assertFalse(PendingRegistration.objects.exists())

    def test_missing_period(self):
        with self.assertRaises(ValidationError):
            transitions.renew(
                self.student_x.pk, self.level1.pk,
                period='  ', enrollment_fee=500, monthly_fee=300
            )

    def test_invalid_fees(self):
        with self.assertRaises(ValidationError):
            transitions.renew(
                self.student_x.pk, self.level1.pk,
                period='2026/1', enrollment_fee=-1, monthly_fee=300
            )
        with self.assertRaises(ValidationError):
            transitions.renew(
                self.student_x.pk, self.level1.pk,
                period='2026/1', enrollment_fee='abc', monthly_fee=300
            )

    def test_unknown_student_or_level(self):
        with self.assertRaises(NotFound):
            transitions.renew(999999, self.level1.pk, **RENEWAL)
        with self.assertRaises(NotFound):
            transitions.renew(self.student_x.pk, 999999, **RENEWAL)

    def test_student_without_record_at_level(self):
        with self.assertRaises(NotFound):
            transitions.renew(self.student_z.pk, self.level1.pk, **RENEWAL)

    def test_last_level_cannot_be_renewed(self):
        self.create_progress(self.student_z, self.level3, Status.AWAITING_RENEWAL)
        with self.assertRaises(PreconditionFailed):
            transitions.renew(self.student_z.pk, self.level3.pk, **RENEWAL)


# =============================================================================
# CONFIRM RENEWAL
# =============================================================================

class ConfirmRenewalTests(ProgressionTestCase):

    def setUp(self):
        super().setUp()
        self.source_x = self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)
        self.source_y = self.create_progress(self.student_y, self.level1, Status.AWAITING_RENEWAL)
        transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)
        transitions.renew(self.student_y.pk, self.level1.pk, **RENEWAL)
        self.source_x.refresh_from_db()
        self.source_y.refresh_from_db()

    def test_confirm_fills_last_seat(self):
        self.fill_class(self.class_c, 29)

        result = transitions.confirm_renewal(
            self.source_x.pending_registration_id, self.class_c.pk,
            payment_status='pending'
        )

        self.assertIn('ENG2-A', result.message)
        self.assertEqual(self.class_c.occupied_count(), 30)

        new_record = result.progress
        self.assertEqual(new_record.student, self.student_x)
        self.assertEqual(new_record.level, self.level2)
        self.assertEqual(new_record.status, Status.IN_PROGRESS)
        self.assertEqual(new_record.attempt, 1)
        self.assertEqual(new_record.class_assigned, self.class_c)
        self.assertEqual(new_record.promoted_from, self.source_x)

        registration = PendingRegistration.objects.get(student=self.student_x)
        self.assertTrue(registration.confirmed)
        self.assertIsNotNone(registration.confirmed_at)
        self.assertEqual(registration.payment_status, 'pending')

        self.source_x.refresh_from_db()
        self.assertIsNone(self.source_x.pending_registration)
        self.assertEqual(self.source_x.status, Status.AWAITING_RENEWAL)
        self.assertTrue(self.source_x.is_superseded)

    def test_full_class_leaves_state_unchanged(self):
        self.fill_class(self.class_c, 29)
        transitions.confirm_renewal(
            self.source_x.pending_registration_id, self.class_c.pk,
            payment_status='pending'
        )

        with self.assertRaises(CapacityExceeded):
            transitions.confirm_renewal(
                self.source_y.pending_registration_id, self.class_c.pk,
                payment_status='paid'
            )

        self.assertEqual(self.class_c.occupied_count(), 30)
        registration = PendingRegistration.objects.get(student=self.student_y)
        self.assertFalse(registration.confirmed)
        self.assertEqual(registration.payment_status, '')
        self.source_y.refresh_from_db()
        self.assertEqual(self.source_y.pending_registration, registration)
        self.assertFalse(
            StudentLevelProgress.objects.filter(student=self.student_y, level=self.level2).exists()
        )

    def test_class_of_another_level_is_rejected(self):
        with self.assertRaises(ValidationError):
            transitions.confirm_renewal(
                self.source_x.pending_registration_id, self.class_l3.pk,
                payment_status='paid'
            )

    def test_missing_destination_class(self):
        with self.assertRaises(ValidationError):
            transitions.confirm_renewal(
                self.source_x.pending_registration_id, None, payment_status='paid'
            )

    def test_unknown_registration_or_class(self):
        with self.assertRaises(NotFound):
            transitions.confirm_renewal(999999, self.class_c.pk, payment_status='paid')
        with self.assertRaises(NotFound):
            transitions.confirm_renewal(
                self.source_x.pending_registration_id, 999999, payment_status='paid'
            )

    def test_confirm_twice_is_rejected(self):
        registration_id = self.source_x.pending_registration_id
        transitions.confirm_renewal(registration_id, self.class_c.pk, payment_status='paid')

        with self.assertRaises(PreconditionFailed):
            transitions.confirm_renewal(registration_id, self.class_c.pk, payment_status='paid')
        self.assertEqual(
            StudentLevelProgress.objects.filter(student=self.student_x, level=self.level2).count(), 1
        )

    def test_renew_after_confirm_is_rejected(self):
        transitions.confirm_renewal(
            self.source_x.pending_registration_id, self.class_c.pk, payment_status='paid'
        )
        with self.assertRaises(PreconditionFailed):
            transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)

    def test_confirm_after_renewal_was_withdrawn(self):
        registration_id = self.source_x.pending_registration_id
        transitions.fail(self.student_x.pk, self.level1.pk)

        with self.assertRaises(NotFound):
            transitions.confirm_renewal(registration_id, self.class_c.pk, payment_status='paid')
        self.assertFalse(
            StudentLevelProgress.objects.filter(student=self.student_x, level=self.level2).exists()
        )

    def test_confirmed_source_frees_its_seat(self):
        """A superseded record no longer holds a seat in its old class."""
        class_l1 = Class.objects.create(level=self.level1, section='A', capacity=5)
        self.source_x.class_assigned = class_l1
        self.source_x.save()
        self.assertEqual(class_l1.occupied_count(), 1)

        transitions.confirm_renewal(
            self.source_x.pending_registration_id, self.class_c.pk, payment_status='paid'
        )

        self.assertEqual(class_l1.occupied_count(), 0)


# =============================================================================
# PROMOTE
# =============================================================================

class PromoteTests(ProgressionTestCase):

    def setUp(self):
        super().setUp()
        self.source = self.create_progress(self.student_z, self.level2, Status.RECOVERY)

    def test_promote_without_class(self):
        result = transitions.promote(self.student_z.pk, self.level2.pk)

        self.source.refresh_from_db()
        self.assertEqual(self.source.status, Status.PASSED)
        self.assertIsNotNone(self.source.end_date)

        new_record = result.progress
        self.assertEqual(new_record.level, self.level3)
        self.assertEqual(new_record.status, Status.IN_PROGRESS)
        self.assertEqual(new_record.attempt, 1)
        self.assertIsNone(new_record.class_assigned)
        self.assertIn('Advanced', result.message)

    def test_promote_into_class(self):
        result = transitions.promote(self.student_z.pk, self.level2.pk, self.class_l3.pk)
        self.assertEqual(result.progress.class_assigned, self.class_l3)
        self.assertEqual(self.class_l3.occupied_count(), 1)

    def test_promote_into_full_class(self):
        self.fill_class(self.class_l3, 2)

        with self.assertRaises(CapacityExceeded):
            transitions.promote(self.student_z.pk, self.level2.pk, self.class_l3.pk)

        self.source.refresh_from_db()
        self.assertEqual(self.source.status, Status.RECOVERY)
        self.assertFalse(
            StudentLevelProgress.objects.filter(student=self.student_z, level=self.level3).exists()
        )

    def test_promote_twice_is_rejected(self):
        transitions.promote(self.student_z.pk, self.level2.pk)
        with self.assertRaises(PreconditionFailed):
            transitions.promote(self.student_z.pk, self.level2.pk)

    def test_requires_recovery(self):
        self.create_progress(self.student_x, self.level2, Status.AWAITING_RENEWAL)
        with self.assertRaises(PreconditionFailed):
            transitions.promote(self.student_x.pk, self.level2.pk)

    def test_promote_at_last_level_completes_course(self):
        last = self.create_progress(self.student_x, self.level3, Status.RECOVERY)

        result = transitions.promote(self.student_x.pk, self.level3.pk)

        self.assertTrue(result.course_completed)
        self.assertIsNone(result.progress)
        self.assertIn('English', result.message)
        last.refresh_from_db()
        self.assertEqual(last.status, Status.PASSED)
        self.assertEqual(
            StudentLevelProgress.objects.filter(student=self.student_x).count(), 1
        )

    def test_last_level_has_no_destination_class(self):
        last = self.create_progress(self.student_x, self.level3, Status.RECOVERY)

        with self.assertRaises(ValidationError):
            transitions.promote(self.student_x.pk, self.level3.pk, self.class_l3.pk)

        last.refresh_from_db()
        self.assertEqual(last.status, Status.RECOVERY)

    def test_promote_into_next_level_is_not_course_completion(self):
        result = transitions.promote(self.student_z.pk, self.level2.pk)
        self.assertFalse(result.course_completed)


# =============================================================================
# FAIL
# =============================================================================

class FailTests(ProgressionTestCase):

    def test_fail_from_recovery_then_repeat_is_rejected(self):
        source = self.create_progress(self.student_y, self.level2, Status.RECOVERY)

        transitions.fail(self.student_y.pk, self.level2.pk)
        source.refresh_from_db()
        self.assertEqual(source.status, Status.FAILED)
        self.assertIsNotNone(source.end_date)

        with self.assertRaises(PreconditionFailed):
            transitions.repeat(self.student_y.pk, self.level2.pk)
        self.assertEqual(
            StudentLevelProgress.objects.filter(student=self.student_y).count(), 1
        )

    def test_fail_withdraws_open_renewal(self):
        source = self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)
        transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)

        transitions.fail(self.student_x.pk, self.level1.pk)

        source.refresh_from_db()
        self.assertEqual(source.status, Status.FAILED)
        self.assertIsNone(source.pending_registration)
        self.assertFalse(PendingRegistration.objects.exists())

    def test_failed_record_is_never_mutated_again(self):
        source = self.create_progress(self.student_y, self.level2, Status.RECOVERY)
        transitions.fail(self.student_y.pk, self.level2.pk)

        for command in (transitions.fail, transitions.promote, transitions.repeat):
            with self.assertRaises(PreconditionFailed):
                command(self.student_y.pk, self.level2.pk)

        source.refresh_from_db()
        self.assertEqual(source.status, Status.FAILED)

    def test_in_progress_cannot_fail(self):
        self.create_progress(self.student_y, self.level2, Status.IN_PROGRESS)
        with self.assertRaises(PreconditionFailed):
            transitions.fail(self.student_y.pk, self.level2.pk)


# =============================================================================
# REPEAT
# =============================================================================

class RepeatTests(ProgressionTestCase):

    def test_repeat_creates_next_attempt(self):
        previous = self.create_progress(self.student_y, self.level2, Status.RECOVERY)

        result = transitions.repeat(self.student_y.pk, self.level2.pk)

        self.assertEqual(result.progress.attempt, 2)
        self.assertEqual(result.progress.level, self.level2)
        self.assertEqual(result.progress.status, Status.IN_PROGRESS)
        self.assertIn('#2', result.message)

        previous.refresh_from_db()
        self.assertEqual(previous.status, Status.RECOVERY)
        self.assertEqual(previous.final_grade, Decimal('6.00'))

    def test_attempts_increase_by_one(self):
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)

        second = transitions.repeat(self.student_y.pk, self.level2.pk).progress
        transitions.record_grade(second.pk, '5.5')
        third = transitions.repeat(self.student_y.pk, self.level2.pk).progress

        self.assertEqual(second.attempt, 2)
        self.assertEqual(third.attempt, 3)

    def test_repeat_twice_is_rejected(self):
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)
        transitions.repeat(self.student_y.pk, self.level2.pk)
        with self.assertRaises(PreconditionFailed):
            transitions.repeat(self.student_y.pk, self.level2.pk)

    def test_repeat_into_full_class(self):
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)
        self.class_c.capacity = 0
        self.class_c.save()
        with self.assertRaises(CapacityExceeded):
            transitions.repeat(self.student_y.pk, self.level2.pk, self.class_c.pk)

    def test_repeat_in_own_class_keeps_one_seat(self):
        self.class_c.capacity = 1
        self.class_c.save()
        self.create_progress(self.student_y, self.level2, Status.RECOVERY, class_assigned=self.class_c)

        result = transitions.repeat(self.student_y.pk, self.level2.pk, self.class_c.pk)

        self.assertEqual(result.progress.class_assigned, self.class_c)
        self.assertEqual(self.class_c.occupied_count(), 1)

    def test_repeat_in_own_class_still_respects_other_students(self):
        self.class_c.capacity = 1
        self.class_c.save()
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)
        self.fill_class(self.class_c, 1)

        with self.assertRaises(CapacityExceeded):
            transitions.repeat(self.student_y.pk, self.level2.pk, self.class_c.pk)


# =============================================================================
# WITHDRAW
# =============================================================================

class WithdrawTests(ProgressionTestCase):

    def test_withdraw_in_progress_frees_seat(self):
        progress = self.create_progress(
            self.student_x, self.level2, Status.IN_PROGRESS, class_assigned=self.class_c
        )
        self.assertEqual(self.class_c.occupied_count(), 1)

        transitions.withdraw(self.student_x.pk, self.level2.pk)

        progress.refresh_from_db()
        self.assertEqual(progress.status, Status.WITHDRAWN)
        self.assertIsNotNone(progress.end_date)
        self.assertTrue(progress.is_terminal)
        self.assertEqual(self.class_c.occupied_count(), 0)

    def test_withdraw_drops_open_renewal(self):
        source = self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)
        transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)

        transitions.withdraw(self.student_x.pk, self.level1.pk)

        source.refresh_from_db()
        self.assertEqual(source.status, Status.WITHDRAWN)
        self.assertIsNone(source.pending_registration)
        self.assertFalse(PendingRegistration.objects.exists())

    def test_closed_records_cannot_be_withdrawn(self):
        self.create_progress(self.student_y, self.level2, Status.FAILED)
        with self.assertRaises(PreconditionFailed):
            transitions.withdraw(self.student_y.pk, self.level2.pk)

    def test_withdraw_twice_is_rejected(self):
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)
        transitions.withdraw(self.student_y.pk, self.level2.pk)
        with self.assertRaises(PreconditionFailed):
            transitions.withdraw(self.student_y.pk, self.level2.pk)

    def test_superseded_record_cannot_be_withdrawn(self):
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)
        transitions.promote(self.student_y.pk, self.level2.pk)

        with self.assertRaises(PreconditionFailed):
            transitions.withdraw(self.student_y.pk, self.level2.pk)


# =============================================================================
# HISTORY
# =============================================================================

class StudentHistoryTests(ProgressionTestCase):

    def test_lists_every_level_and_attempt(self):
        self.create_progress(self.student_z, self.level1, Status.PASSED, grade=Decimal('8'))
        self.create_progress(self.student_z, self.level2, Status.RECOVERY)
        transitions.repeat(self.student_z.pk, self.level2.pk)

        history = transitions.get_student_history(self.student_z.pk)

        self.assertEqual(
            [(p.level_id, p.attempt) for p in history],
            [(self.level1.pk, 1), (self.level2.pk, 1), (self.level2.pk, 2)]
        )
        self.assertEqual([p.superseded for p in history], [False, True, False])
        self.assertEqual([p.is_terminal for p in history], [True, False, False])

    def test_student_without_records(self):
        self.assertEqual(transitions.get_student_history(self.student_x.pk), [])

    def test_unknown_student(self):
        with self.assertRaises(NotFound):
            transitions.get_student_history(999999)


# =============================================================================
# ELIGIBILITY QUERY
# =============================================================================

class GetAwaitingTests(ProgressionTestCase):

    def test_groups_students_by_required_action(self):
        eligible = self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)
        pending = self.create_progress(self.student_y, self.level1, Status.AWAITING_RENEWAL)
        recovery = self.create_progress(self.student_z, self.level1, Status.RECOVERY)
        transitions.renew(self.student_y.pk, self.level1.pk, **RENEWAL)

        other = self.create_student('Yaw', 'Asante', 'W-001')
        self.create_progress(other, self.level1, Status.IN_PROGRESS)

        result = transitions.get_awaiting(self.level1.pk)
        buckets = transitions.partition_awaiting(result.records)

        self.assertEqual(result.next_level, self.level2)
        self.assertEqual(len(result.records), 3)
        self.assertEqual(buckets['eligible'], [eligible])
        self.assertEqual(buckets['pending'], [pending])
        self.assertEqual(buckets['recovery'], [recovery])

    def test_excludes_superseded_records(self):
        self.create_progress(self.student_z, self.level1, Status.RECOVERY)
        transitions.repeat(self.student_z.pk, self.level1.pk)

        result = transitions.get_awaiting(self.level1.pk)
        self.assertEqual(result.records, [])

    def test_next_level_occupancy(self):
        self.fill_class(self.class_c, 3)
        Class.objects.create(level=self.level2, section='B', capacity=25)

        result = transitions.get_awaiting(self.level1.pk)
        occupancy = {c.name: c for c in result.next_level_classes}

        self.assertEqual(occupancy['ENG2-A'].occupied_count, 3)
        self.assertEqual(occupancy['ENG2-A'].capacity_max, 30)
        self.assertEqual(occupancy['ENG2-A'].available_seats, 27)
        self.assertEqual(occupancy['ENG2-B'].occupied_count, 0)

    def test_last_level_has_no_next_classes(self):
        result = transitions.get_awaiting(self.level3.pk)
        self.assertIsNone(result.next_level)
        self.assertEqual(result.next_level_classes, [])

    def test_unknown_level(self):
        with self.assertRaises(NotFound):
            transitions.get_awaiting(999999)


# =============================================================================
# GRADING AND ENROLLMENT
# =============================================================================

class RecordGradeTests(ProgressionTestCase):

    def grade(self, level, value):
        progress = self.create_progress(self.student_x, level, Status.IN_PROGRESS)
        return transitions.record_grade(progress.pk, value)

    def test_passing_grade_awaits_renewal(self):
        progress = self.grade(self.level1, '8')
        self.assertEqual(progress.status, Status.AWAITING_RENEWAL)
        self.assertEqual(progress.final_grade, Decimal('8'))
        self.assertIsNotNone(progress.end_date)

    def test_passing_grade_at_last_level(self):
        progress = self.grade(self.level3, 9)
        self.assertEqual(progress.status, Status.PASSED)

    def test_borderline_grade_goes_to_recovery(self):
        progress = self.grade(self.level1, '6.5')
        self.assertEqual(progress.status, Status.RECOVERY)

    def test_low_grade_fails(self):
        progress = self.grade(self.level1, '3')
        self.assertEqual(progress.status, Status.FAILED)

    @override_settings(PROGRESSION_PASS_GRADE=Decimal('6'))
    def test_pass_grade_is_configurable(self):
        progress = self.grade(self.level1, '6')
        self.assertEqual(progress.status, Status.AWAITING_RENEWAL)

    def test_grade_out_of_range(self):
        progress = self.create_progress(self.student_x, self.level1, Status.IN_PROGRESS)
        with self.assertRaises(ValidationError):
            transitions.record_grade(progress.pk, '11')
        with self.assertRaises(ValidationError):
            transitions.record_grade(progress.pk, None)

    def test_graded_record_cannot_be_graded_again(self):
        progress = self.grade(self.level1, '8')
        with self.assertRaises(PreconditionFailed):
            transitions.record_grade(progress.pk, '9')


class EnrollTests(ProgressionTestCase):

    def test_first_enrollment(self):
        progress = transitions.enroll(self.student_x.pk, self.level2.pk, self.class_c.pk)
        self.assertEqual(progress.attempt, 1)
        self.assertEqual(progress.status, Status.IN_PROGRESS)
        self.assertEqual(progress.class_assigned, self.class_c)

    def test_second_enrollment_is_rejected(self):
        transitions.enroll(self.student_x.pk, self.level1.pk)
        with self.assertRaises(PreconditionFailed):
            transitions.enroll(self.student_x.pk, self.level1.pk)

    def test_enroll_into_full_class(self):
        self.fill_class(self.class_l3, 2)
        with self.assertRaises(CapacityExceeded):
            transitions.enroll(self.student_x.pk, self.level3.pk, self.class_l3.pk)


class DefaultPeriodTests(TestCase):

    def test_first_half(self):
        self.assertEqual(transitions.default_period(date(2026, 3, 15)), '2026/1')
        self.assertEqual(transitions.default_period(date(2026, 6, 30)), '2026/1')

    def test_second_half(self):
        self.assertEqual(transitions.default_period(date(2026, 7, 1)), '2026/2')


# =============================================================================
# JSON ENDPOINTS
# =============================================================================

class TransitionViewTests(ProgressionTestCase):

    def post(self, name, data):
        return self.client.post(
            reverse(f'students:{name}'), data, content_type='application/json'
        )

    def test_awaiting(self):
        self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)

        response = self.client.get(reverse('students:awaiting', args=[self.level1.pk]))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['next_level_id'], self.level2.pk)
        self.assertEqual(len(body['data']), 1)
        self.assertEqual(body['data'][0]['student_name'], 'Ama Owusu')
        self.assertIsNone(body['data'][0]['pending_registration_id'])
        self.assertEqual(body['next_level_classes'][0]['name'], 'ENG2-A')

    def test_awaiting_unknown_level(self):
        response = self.client.get(reverse('students:awaiting', args=[999999]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'not_found')

    def test_renew_is_idempotent(self):
        self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)
        data = dict(RENEWAL, student_id=self.student_x.pk, level_id=self.level1.pk)

        first = self.post('renew', data)
        second = self.post('renew', data)

        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.json(), {'enrollment_number': 'E0001', 'already_exists': False})
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.json(), {'enrollment_number': 'E0001', 'already_exists': True})

    def test_renew_missing_student(self):
        response = self.post('renew', dict(RENEWAL, level_id=self.level1.pk))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'validation_error')

    def test_renew_requires_post(self):
        response = self.client.get(reverse('students:renew'))
        self.assertEqual(response.status_code, 405)

    def test_confirm_into_full_class(self):
        source = self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)
        transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)
        source.refresh_from_db()
        self.class_c.capacity = 0
        self.class_c.save()

        response = self.post('confirm_renewal', {
            'pending_registration_id': source.pending_registration_id,
            'destination_class_id': self.class_c.pk,
            'payment_status': 'paid',
        })

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'capacity_exceeded')

    def test_promote_fail_and_repeat(self):
        self.create_progress(self.student_z, self.level2, Status.RECOVERY)
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)
        self.create_progress(self.student_x, self.level2, Status.RECOVERY)

        promoted = self.post('promote', {'student_id': self.student_z.pk, 'level_id': self.level2.pk})
        failed = self.post('fail', {'student_id': self.student_y.pk, 'level_id': self.level2.pk})
        repeated = self.post('repeat', {'student_id': self.student_x.pk, 'level_id': self.level2.pk})

        self.assertEqual(promoted.status_code, 200)
        self.assertIn('message', promoted.json())
        self.assertEqual(failed.json(), {})
        self.assertEqual(repeated.json(), {'attempt': 2})

    def test_repeat_after_fail_conflicts(self):
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)
        self.post('fail', {'student_id': self.student_y.pk, 'level_id': self.level2.pk})

        response = self.post('repeat', {'student_id': self.student_y.pk, 'level_id': self.level2.pk})

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'precondition_failed')

    def test_commands_work_without_csrf_token(self):
        """API callers have no session cookie or CSRF token."""
        client = Client(enforce_csrf_checks=True)
        self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)

        renewed = client.post(
            reverse('students:renew'),
            dict(RENEWAL, student_id=self.student_x.pk, level_id=self.level1.pk),
            content_type='application/json'
        )
        failed = client.post(
            reverse('students:fail'),
            {'student_id': self.student_y.pk, 'level_id': self.level2.pk},
            content_type='application/json'
        )

        self.assertEqual(renewed.status_code, 201)
        self.assertEqual(failed.status_code, 200)

    def test_promote_last_level_reports_course_completed(self):
        self.create_progress(self.student_x, self.level3, Status.RECOVERY)

        response = self.post('promote', {'student_id': self.student_x.pk, 'level_id': self.level3.pk})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['course_completed'])
        self.assertIsNone(body['next_level'])

    def test_withdraw(self):
        self.create_progress(self.student_x, self.level2, Status.IN_PROGRESS)

        response = self.post('withdraw', {'student_id': self.student_x.pk, 'level_id': self.level2.pk})
        again = self.post('withdraw', {'student_id': self.student_x.pk, 'level_id': self.level2.pk})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {})
        self.assertEqual(again.status_code, 409)

    def test_history(self):
        self.create_progress(self.student_y, self.level2, Status.RECOVERY, class_assigned=self.class_c)
        transitions.repeat(self.student_y.pk, self.level2.pk)

        response = self.client.get(reverse('students:history', args=[self.student_y.pk]))

        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual([entry['attempt'] for entry in data], [1, 2])
        self.assertEqual(data[0]['class_name'], 'ENG2-A')
        self.assertTrue(data[0]['superseded'])
        self.assertFalse(data[1]['superseded'])
        self.assertEqual(data[1]['level_name'], 'Intermediate')

    def test_history_unknown_student(self):
        response = self.client.get(reverse('students:history', args=[999999]))
        self.assertEqual(response.status_code, 404)


# =============================================================================
# CONCURRENT WRITERS
# =============================================================================

@skipUnlessDBFeature('has_select_for_update')
class ConcurrentTransitionTests(ProgressionFixtures, TransactionTestCase):
    """Two operators acting at the same moment, each on its own connection."""

    def run_together(self, *calls):
        barrier = threading.Barrier(len(calls))
        outcomes = [None] * len(calls)

        def worker(index, call):
            try:
                barrier.wait()
                outcomes[index] = call()
            except TransitionError as e:
                outcomes[index] = e
            finally:
                connection.close()

        threads = [
            threading.Thread(target=worker, args=(i, call))
            for i, call in enumerate(calls)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return outcomes

    def test_last_seat_goes_to_one_promotion(self):
        self.fill_class(self.class_l3, 1)
        self.create_progress(self.student_y, self.level2, Status.RECOVERY)
        self.create_progress(self.student_z, self.level2, Status.RECOVERY)

        outcomes = self.run_together(
            lambda: transitions.promote(self.student_y.pk, self.level2.pk, self.class_l3.pk),
            lambda: transitions.promote(self.student_z.pk, self.level2.pk, self.class_l3.pk),
        )

        refused = [o for o in outcomes if isinstance(o, CapacityExceeded)]
        promoted = [o for o in outcomes if isinstance(o, transitions.TransitionResult)]
        self.assertEqual(len(promoted), 1)
        self.assertEqual(len(refused), 1)
        self.assertEqual(self.class_l3.occupied_count(), 2)

    def test_last_seat_between_confirm_and_promote(self):
        self.class_c.capacity = 1
        self.class_c.save()
        source = self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)
        transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL)
        source.refresh_from_db()
        self.create_progress(self.student_y, self.level1, Status.RECOVERY)

        outcomes = self.run_together(
            lambda: transitions.confirm_renewal(
                source.pending_registration_id, self.class_c.pk, payment_status='paid'
            ),
            lambda: transitions.promote(self.student_y.pk, self.level1.pk, self.class_c.pk),
        )

        self.assertEqual(
            sum(isinstance(o, CapacityExceeded) for o in outcomes), 1
        )
        self.assertEqual(self.class_c.occupied_count(), 1)

    def test_double_submitted_renewal(self):
        self.create_progress(self.student_x, self.level1, Status.AWAITING_RENEWAL)

        outcomes = self.run_together(
            lambda: transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL),
            lambda: transitions.renew(self.student_x.pk, self.level1.pk, **RENEWAL),
        )

        self.assertTrue(all(isinstance(o, transitions.RenewalResult) for o in outcomes))
        self.assertEqual(outcomes[0].enrollment_number, outcomes[1].enrollment_number)
        self.assertEqual(sorted(o.already_exists for o in outcomes), [False, True])
        self.assertEqual(PendingRegistration.objects.count(), 1)
