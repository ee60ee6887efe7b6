# Level transition views
from .transitions import (
    awaiting,
    renew,
    confirm_renewal,
    promote,
    fail,
    repeat,
    withdraw,
    student_history,
)

__all__ = [
    'awaiting',
    'renew',
    'confirm_renewal',
    'promote',
    'fail',
    'repeat',
    'withdraw',
    'student_history',
]
