import os
import unittest

from django.conf import settings
from django.test import TestCase

from core.models import Sequence


class SequenceModelTests(TestCase):
    """Tests for the Sequence counter."""

    def test_first_value_is_one(self):
        self.assertEqual(Sequence.next_value('enrollment_number'), 1)

    def test_values_increase(self):
        values = [Sequence.next_value('enrollment_number') for _ in range(3)]
        self.assertEqual(values, [1, 2, 3])
        self.assertEqual(Sequence.objects.get(name='enrollment_number').last_value, 3)

    def test_sequences_are_independent(self):
        Sequence.next_value('a')
        Sequence.next_value('a')
        self.assertEqual(Sequence.next_value('b'), 1)

    def test_str(self):
        Sequence.next_value('enrollment_number')
        self.assertEqual(str(Sequence.objects.get()), 'enrollment_number (1)')


class SettingsTests(TestCase):

    @unittest.skipIf('ALLOWED_HOSTS' in os.environ, "ALLOWED_HOSTS set in the environment")
    def test_default_hosts_are_local(self):
        self.assertNotIn('*', settings.ALLOWED_HOSTS)
        self.assertIn('localhost', settings.ALLOWED_HOSTS)

    def test_no_template_engine(self):
        self.assertEqual(settings.TEMPLATES, [])
