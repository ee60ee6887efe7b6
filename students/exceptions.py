"""
Errors raised by the level transition engine.

Each error carries a stable ``code`` and the HTTP status the JSON views
answer with. A duplicate renewal is not an error: ``renew`` reports it
through ``RenewalResult.already_exists``.
"""


class TransitionError(Exception):
    """Base class for every refused transition."""
    code = 'transition_error'
    status_code = 400

    def __init__(self, message=''):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.code, 'message': self.message}


class ValidationError(TransitionError):
    """A required input is missing or malformed."""
    code = 'validation_error'
    status_code = 400


class NotFound(TransitionError):
    """An unknown student, level, class or pending registration."""
    code = 'not_found'
    status_code = 404


class PreconditionFailed(TransitionError):
    """The record is not in the status the command requires."""
    code = 'precondition_failed'
    status_code = 409


class CapacityExceeded(TransitionError):
    """The destination class has no free seat."""
    code = 'capacity_exceeded'
    status_code = 409


class Conflict(TransitionError):
    """A concurrent writer got there first; reload and retry."""
    code = 'conflict'
    status_code = 409
