"""
Tests for the academics app.

Focuses on:
- Level ordering and next-level lookup
- Level immutability once students are enrolled
- Class naming and occupancy
"""
from django.core.exceptions import ValidationError
from django.test import TestCase

from academics.models import Class, Course, Level
from students.models import Student, StudentLevelProgress


class AcademicsTestCase(TestCase):
    """Base test case with a course of three levels."""

    def setUp(self):
        self.course = Course.objects.create(name='Spanish', code='SPA')
        self.beginner = Level.objects.create(
            course=self.course, level_number=1, name='Beginner', order=1
        )
        self.intermediate = Level.objects.create(
            course=self.course, level_number=2, name='Intermediate', order=2
        )
        self.advanced = Level.objects.create(
            course=self.course, level_number=3, name='Advanced', order=3
        )
        self.student = Student.objects.create(
            first_name='Abena', last_name='Darko', student_code='S-001'
        )


class LevelModelTests(AcademicsTestCase):

    def test_str(self):
        self.assertEqual(str(self.beginner), 'Spanish - Beginner')

    def test_next_level_by_order(self):
        self.assertEqual(self.beginner.get_next_level(), self.intermediate)
        self.assertEqual(self.intermediate.get_next_level(), self.advanced)

    def test_last_level(self):
        self.assertIsNone(self.advanced.get_next_level())
        self.assertTrue(self.advanced.is_last)
        self.assertFalse(self.beginner.is_last)

    def test_prerequisite_link_wins_over_order(self):
        """An explicit prerequisite defines the path even against order."""
        self.advanced.prerequisite_level = self.beginner
        self.advanced.save()
        self.assertEqual(self.beginner.get_next_level(), self.advanced)

    def test_levels_of_other_courses_are_ignored(self):
        other = Course.objects.create(name='French', code='FRE')
        Level.objects.create(course=other, level_number=9, name='Other', order=4)
        self.assertIsNone(self.advanced.get_next_level())

    def test_prerequisite_must_share_course(self):
        other = Course.objects.create(name='French', code='FRE')
        with self.assertRaises(ValidationError):
            Level.objects.create(
                course=other, level_number=1, name='Debutant', order=1,
                prerequisite_level=self.beginner
            )

    def test_structure_frozen_once_students_enrolled(self):
        StudentLevelProgress.objects.create(student=self.student, level=self.beginner)

        self.beginner.order = 5
        with self.assertRaises(ValidationError):
            self.beginner.save()

    def test_rename_allowed_once_students_enrolled(self):
        StudentLevelProgress.objects.create(student=self.student, level=self.beginner)

        self.beginner.name = 'Starter'
        self.beginner.save()
        self.beginner.refresh_from_db()
        self.assertEqual(self.beginner.name, 'Starter')

    def test_structure_editable_without_students(self):
        self.beginner.duration_months = 4
        self.beginner.save()
        self.beginner.refresh_from_db()
        self.assertEqual(self.beginner.duration_months, 4)


class ClassModelTests(AcademicsTestCase):

    def setUp(self):
        super().setUp()
        self.class_a = Class.objects.create(level=self.intermediate, section='A', capacity=2)

    def test_generated_name(self):
        self.assertEqual(self.class_a.name, 'SPA2-A')
        self.assertEqual(str(self.class_a), 'SPA2-A')

    def test_occupancy_ignores_withdrawn(self):
        StudentLevelProgress.objects.create(
            student=self.student, level=self.intermediate, class_assigned=self.class_a
        )
        other = Student.objects.create(first_name='Kojo', last_name='Ansah', student_code='S-002')
        StudentLevelProgress.objects.create(
            student=other, level=self.intermediate, class_assigned=self.class_a,
            status=StudentLevelProgress.Status.WITHDRAWN
        )

        self.assertEqual(self.class_a.occupied_count(), 1)
        self.assertEqual(self.class_a.available_seats, 1)
        self.assertFalse(self.class_a.is_full)

        annotated = Class.objects.with_occupancy().get(pk=self.class_a.pk)
        self.assertEqual(annotated.occupied, 1)

    def test_full_class(self):
        for i, code in enumerate(['S-010', 'S-011']):
            student = Student.objects.create(first_name='S', last_name=str(i), student_code=code)
            StudentLevelProgress.objects.create(
                student=student, level=self.intermediate, class_assigned=self.class_a
            )
        self.assertTrue(self.class_a.is_full)
        self.assertEqual(self.class_a.available_seats, 0)

    def test_closed_attempts_free_their_seat(self):
        Status = StudentLevelProgress.Status
        for i, status in enumerate([Status.PASSED, Status.FAILED, Status.RECOVERY]):
            student = Student.objects.create(first_name='S', last_name=str(i), student_code=f'S-02{i}')
            StudentLevelProgress.objects.create(
                student=student, level=self.intermediate, class_assigned=self.class_a,
                status=status
            )

        self.assertEqual(self.class_a.occupied_count(), 1)
        annotated = Class.objects.with_occupancy().get(pk=self.class_a.pk)
        self.assertEqual(annotated.occupied, 1)

    def test_superseded_attempt_frees_its_seat(self):
        first = StudentLevelProgress.objects.create(
            student=self.student, level=self.intermediate, class_assigned=self.class_a,
            status=StudentLevelProgress.Status.RECOVERY
        )
        StudentLevelProgress.objects.create(
            student=self.student, level=self.intermediate, class_assigned=self.class_a,
            attempt=2, promoted_from=first
        )

        self.assertEqual(self.class_a.occupied_count(), 1)
        annotated = Class.objects.with_occupancy().get(pk=self.class_a.pk)
        self.assertEqual(annotated.occupied, 1)

    def test_empty_class_occupancy(self):
        annotated = Class.objects.with_occupancy().get(pk=self.class_a.pk)
        self.assertEqual(annotated.occupied, 0)
