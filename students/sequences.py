"""Enrollment number generation."""
from django.utils.module_loading import import_string

from core.models import Sequence
from . import config

ENROLLMENT_SEQUENCE = 'enrollment_number'


def next_enrollment_number():
    """Return the next enrollment number, e.g. E0001."""
    value = Sequence.next_value(ENROLLMENT_SEQUENCE)
    return f"{config.ENROLLMENT_NUMBER_PREFIX}{value:04d}"


def get_enrollment_number_generator():
    """Return the configured generator callable."""
    return import_string(config.ENROLLMENT_NUMBER_GENERATOR)
