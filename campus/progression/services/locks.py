"""
Quiz Lock Manager and Security Lock Manager

Both keep one lock row per (student, unit), created the first time it is
needed and never deleted. Locking is driven by the attempt ledger (attempt
limit) and by violation reports; clearing goes through the unlock workflow,
which calls ``clear`` on each row it resolves.

Every unlock appends an UnlockEntry, including unlocks of a lock that was
already open; in that case the result carries the ALREADY_UNLOCKED notice.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import logging

from django.db import transaction

from hierarchy.roles import UNLOCK_TIERS
from ..models import QuizLock, SecurityLock, SecurityViolation, UnlockEntry
from .concurrency import versioned_update, retry_on_conflict
from .lookups import get_student, get_unit, get_course

logger = logging.getLogger(__name__)

ALREADY_LOCKED = 'already_locked'
ALREADY_UNLOCKED = 'already_unlocked'


class LockState(str, Enum):
    UNLOCKED = 'unlocked'
    LOCKED = 'locked'


@dataclass
class LockStatus:
    kind: str
    state: LockState
    lock_id: Optional[str] = None
    reason: str = ''
    locked_at: Optional[object] = None
    violation_count: int = 0
    course_wide: bool = False
    extra: dict = field(default_factory=dict)

    @property
    def is_locked(self):
        return self.state == LockState.LOCKED

    def as_dict(self):
        data = {
            'kind': self.kind,
            'state': self.state.value,
            'is_locked': self.is_locked,
            'lock_id': self.lock_id,
            'reason': self.reason if self.is_locked else '',
            'locked_at': self.locked_at.isoformat() if self.locked_at else None,
        }
        if self.kind == SecurityLock.KIND:
            data['violation_count'] = self.violation_count
            data['course_wide'] = self.course_wide
        data.update(self.extra)
        return data


@dataclass
class LockChange:
    """Outcome of a lock or unlock call on one row."""
    lock: object
    notice: Optional[str] = None
    entry: Optional[UnlockEntry] = None


def _status_of(lock, kind):
    if lock is None:
        return LockStatus(kind=kind, state=LockState.UNLOCKED)
    return LockStatus(
        kind=kind,
        state=LockState.LOCKED if lock.is_locked else LockState.UNLOCKED,
        lock_id=str(lock.id),
        reason=lock.reason,
        locked_at=lock.locked_at,
        violation_count=getattr(lock, 'violation_count', 0),
        course_wide=getattr(lock, 'is_course_wide', False),
    )


class BaseLockManager:
    model = None

    def __init__(self, clock, settings):
        self.clock = clock
        self.settings = settings

    @property
    def kind(self):
        return self.model.KIND

    def find(self, student, unit):
        return self.model.objects.filter(student=student, unit=unit).first()

    def get_or_create(self, student, unit):
        lock, created = self.model.objects.get_or_create(
            student=student, unit=unit, defaults={'course': unit.course}
        )
        if created:
            logger.debug(f"Created {self.kind} lock row for student {student.id} unit {unit.id}")
        return lock

    def status(self, student_id, unit_id):
        student = get_student(student_id)
        unit = get_unit(unit_id)
        return _status_of(self.find(student, unit), self.kind)

    @retry_on_conflict
    def lock(self, student_id, unit_id, reason):
        student = get_student(student_id)
        unit = get_unit(unit_id)
        with transaction.atomic():
            lock = self.get_or_create(student, unit)
            return self._set_locked(lock, reason)

    @retry_on_conflict
    def unlock(self, student_id, unit_id, actor, actor_role, note='', reason=''):
        student = get_student(student_id)
        unit = get_unit(unit_id)
        with transaction.atomic():
            lock = self.get_or_create(student, unit)
            return self.clear(lock, actor, actor_role, reason=reason, note=note)

    def _set_locked(self, lock, reason, **extra):
        if lock.is_locked:
            logger.info(f"{self.kind} lock {lock.id} already locked ({lock.reason})")
            return LockChange(lock=lock, notice=ALREADY_LOCKED)
        versioned_update(lock, is_locked=True, reason=reason, locked_at=self.clock(), **extra)
        logger.info(f"Locked {self.kind} lock {lock.id} for student {lock.student_id}: {reason}")
        return LockChange(lock=lock)

    def clear(self, lock, actor, actor_role, reason='', note=''):
        """
        Open ``lock`` and append its audit entry. Must run inside the caller's
        transaction; raises ConflictingUpdate if the row moved since it was read.
        """
        was_locked = lock.is_locked
        changes = {'is_locked': False}
        changes.update(self._unlock_changes(lock, actor_role, was_locked))
        sequence = versioned_update(lock, **changes)
        entry = UnlockEntry.objects.create(
            lock_kind=self.kind,
            lock_id=lock.id,
            sequence=sequence,
            student_id=lock.student_id,
            unit_id=lock.unit_id,
            actor=actor,
            actor_role=actor_role,
            reason=reason or '',
            note=note or '',
            was_locked=was_locked,
            created_at=self.clock(),
        )
        if was_locked:
            logger.info(f"{self.kind} lock {lock.id} cleared by {actor.id} ({actor_role})")
            return LockChange(lock=lock, entry=entry)
        logger.info(f"{self.kind} lock {lock.id} was already unlocked; recorded unlock by {actor.id}")
        return LockChange(lock=lock, notice=ALREADY_UNLOCKED, entry=entry)

    def _unlock_changes(self, lock, actor_role, was_locked):
        return {}


class QuizLockManager(BaseLockManager):
    """Attempt-limit locks. Tracks per-tier unlock counts and granted attempts."""
    model = QuizLock

    def required_tier(self, lock):
        if lock is None:
            return UNLOCK_TIERS[0]
        return lock.required_tier(self.settings.tier_unlock_limit)

    def status(self, student_id, unit_id):
        student = get_student(student_id)
        unit = get_unit(unit_id)
        lock = self.find(student, unit)
        status = _status_of(lock, self.kind)
        status.extra = {
            'granted_attempts': lock.granted_attempts if lock else 0,
            'required_tier': self.required_tier(lock).value,
        }
        return status

    def _unlock_changes(self, lock, actor_role, was_locked):
        if not was_locked:
            return {}
        counter = QuizLock.counter_field(actor_role)
        changes = {counter: lock.unlock_count(actor_role) + 1}
        if lock.reason == QuizLock.REASON_ATTEMPT_LIMIT:
            # Reopening an exhausted quiz grants one more attempt.
            changes['granted_attempts'] = lock.granted_attempts + 1
        return changes


# Severity per violation type as reported by the proctored quiz client.
VIOLATION_SEVERITY = {
    'FULLSCREEN_EXIT': 'medium',
    'KEYBOARD_SHORTCUT': 'medium',
    'DEVELOPER_TOOLS': 'high',
    'COPY_PASTE_ATTEMPT': 'high',
    'CONTEXT_MENU': 'low',
    'RIGHT_CLICK': 'low',
    'TIME_MANIPULATION': 'critical',
}


def violation_severity(violation_type, tab_switches=0):
    if violation_type == 'TAB_SWITCH':
        if tab_switches > 5:
            return 'high'
        return 'medium' if tab_switches > 3 else 'low'
    return VIOLATION_SEVERITY.get(violation_type, 'medium')


@dataclass
class ViolationResult:
    lock: SecurityLock
    violation: SecurityViolation
    auto_locked: bool

    def as_dict(self):
        return {
            'violation_id': str(self.violation.id),
            'violation_type': self.violation.violation_type,
            'severity': self.violation.severity,
            'violation_count': self.lock.violation_count,
            'is_locked': self.lock.is_locked,
            'auto_locked': self.auto_locked,
        }


class SecurityLockManager(BaseLockManager):
    """Violation-triggered locks, per unit or course-wide."""
    model = SecurityLock

    def find_course_lock(self, student, course):
        return SecurityLock.objects.filter(student=student, course=course, unit__isnull=True).first()

    def get_or_create_course_lock(self, student, course):
        lock, _ = SecurityLock.objects.get_or_create(student=student, course=course, unit=None)
        return lock

    def status(self, student_id, unit_id):
        """Effective state for the unit: a locked course-wide lock wins."""
        student = get_student(student_id)
        unit = get_unit(unit_id)
        course_lock = self.find_course_lock(student, unit.course)
        if course_lock is not None and course_lock.is_locked:
            return _status_of(course_lock, self.kind)
        return _status_of(self.find(student, unit), self.kind)

    @retry_on_conflict
    def lock_course(self, student_id, course_id, reason):
        student = get_student(student_id)
        course = get_course(course_id)
        with transaction.atomic():
            lock = self.get_or_create_course_lock(student, course)
            return self._set_locked(lock, reason)

    @retry_on_conflict
    def record_violation(self, student_id, unit_id, violation_type, details=None):
        """
        Store one violation, bump the counter and lock once the configured
        threshold is reached. Violations on an already locked row still count.
        """
        student = get_student(student_id)
        unit = get_unit(unit_id)
        threshold = self.settings.security_violation_threshold
        with transaction.atomic():
            lock = self.get_or_create(student, unit)
            count = lock.violation_count + 1
            changes = {'violation_count': count}
            auto_locked = not lock.is_locked and count >= threshold
            if auto_locked:
                changes.update(
                    is_locked=True,
                    reason=f"Auto-locked after {count} security violations",
                    locked_at=self.clock(),
                )
            versioned_update(lock, **changes)

            tab_switches = 0
            if violation_type == 'TAB_SWITCH':
                tab_switches = lock.violations.filter(violation_type='TAB_SWITCH').count() + 1
            violation = SecurityViolation.objects.create(
                security_lock=lock,
                violation_type=violation_type,
                severity=violation_severity(violation_type, tab_switches),
                details=details or {},
                recorded_at=self.clock(),
            )

        if auto_locked:
            logger.warning(f"Security lock {lock.id} engaged for student {student.id} unit {unit.id} after {count} violations")
        else:
            logger.info(f"Recorded {violation_type} violation {count}/{threshold} for student {student.id} unit {unit.id}")
        return ViolationResult(lock=lock, violation=violation, auto_locked=auto_locked)

    def _unlock_changes(self, lock, actor_role, was_locked):
        return {'violation_count': 0}
