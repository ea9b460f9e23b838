"""
Errors raised by the access engine.

Gating failures (subclasses of AttemptDenied) are expected outcomes that the
API returns as a structured denial with a message the UI shows as is. Only
ConflictingUpdate is retried by the engine itself.
"""
from rest_framework import status


class AccessControlError(Exception):
    kind = 'error'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Request could not be completed'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_payload(self):
        payload = {
            'success': False,
            'error': self.kind,
            'message': self.message,
        }
        if self.context:
            payload['details'] = self.context
        return payload


class NotFound(AccessControlError):
    kind = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found'


class Forbidden(AccessControlError):
    kind = 'forbidden'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You do not have authority for this action'


class ConflictingUpdate(AccessControlError):
    kind = 'conflicting_update'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'The record was changed by another request. Please retry.'


class InvalidTransition(AccessControlError):
    kind = 'invalid_transition'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'This request has already been resolved'


class AttemptDenied(AccessControlError):
    """Base class for quiz gating outcomes."""
    kind = 'denied'
    status_code = status.HTTP_403_FORBIDDEN

    def as_payload(self):
        payload = super().as_payload()
        payload['denied'] = True
        return payload


class UnitNotUnlocked(AttemptDenied):
    kind = 'unit_locked'
    default_message = 'Locked: complete the previous unit to unlock this one.'


class QuizLocked(AttemptDenied):
    kind = 'quiz_locked'
    default_message = 'Locked: attempt limit exceeded. Contact your teacher to unlock this quiz.'


class SecurityLocked(AttemptDenied):
    kind = 'security_locked'
    default_message = 'Locked: too many security violations. Contact your teacher to unlock this quiz.'


class DeadlineExpired(AttemptDenied):
    kind = 'deadline_expired'
    default_message = 'The deadline for this unit has passed. Quiz attempts are closed.'


class AttemptLimitReached(AttemptDenied):
    kind = 'attempt_limit_reached'
    default_message = 'No attempts remaining. Contact your teacher to request another attempt.'


class QuizAlreadyPassed(AttemptDenied):
    kind = 'already_passed'
    default_message = 'You have already passed this quiz.'
