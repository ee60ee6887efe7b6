"""
Configuration settings for level progression.

These values can be overridden in Django settings by prefixing with PROGRESSION_.
For example, to raise the pass mark:
    PROGRESSION_PASS_GRADE = 7.5

All configuration values are lazily loaded to avoid Django setup issues.
"""
from decimal import Decimal


def _get_setting(name, default):
    """Get a progression setting from Django settings or use default."""
    from django.conf import settings
    return getattr(settings, f'PROGRESSION_{name}', default)


_DEFAULTS = {
    # Grading thresholds (0-10 scale)
    'PASS_GRADE': Decimal('7'),
    'RECOVERY_GRADE': Decimal('5'),
    'MAX_GRADE': Decimal('10'),

    # Enrollment numbers
    'ENROLLMENT_NUMBER_PREFIX': 'E',
    'ENROLLMENT_NUMBER_GENERATOR': 'students.sequences.next_enrollment_number',
}


class _ConfigProxy:
    """
    Lazy configuration proxy that loads settings only when accessed.
    """

    def __getattr__(self, name):
        if name in _DEFAULTS:
            return _get_setting(name, _DEFAULTS[name])
        raise AttributeError(f"Unknown config setting: {name}")


_config = _ConfigProxy()


def __getattr__(name):
    """Enable module-level attribute access via the config proxy."""
    return getattr(_config, name)
