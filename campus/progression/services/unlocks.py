"""
Unlock Workflow
The only path that opens locks. A direct unlock and an approved request both
clear the quiz lock and the security locks of a (student, unit) together, in
one transaction, and write an audit entry per lock.

Requests move pending -> approved | rejected | cancelled exactly once.
"""
from dataclasses import dataclass, field
import logging

from django.db import transaction, IntegrityError
from django.db.models import Q

from hierarchy.roles import Role, UNLOCK_TIERS, tier_rank
from ..models import QuizLock, SecurityLock, UnlockEntry, UnlockRequest
from ..exceptions import AccessControlError, NotFound, Forbidden, InvalidTransition
from .concurrency import retry_on_conflict
from .lookups import get_student, get_unit, get_user

logger = logging.getLogger(__name__)

APPROVE = 'approve'
REJECT = 'reject'


@dataclass
class UnlockResult:
    student_id: str
    unit_id: str
    actor_id: str
    actor_role: str
    changes: list = field(default_factory=list)

    def as_dict(self):
        return {
            'student_id': self.student_id,
            'unit_id': self.unit_id,
            'actor_id': self.actor_id,
            'actor_role': self.actor_role,
            'cleared': [
                {
                    'kind': change.lock.KIND,
                    'lock_id': str(change.lock.id),
                    'was_locked': change.entry.was_locked,
                    'notice': change.notice,
                    'sequence': change.entry.sequence,
                }
                for change in self.changes
            ],
            'quiz_locked': any(c.lock.is_locked for c in self.changes if c.lock.KIND == QuizLock.KIND),
            'security_locked': any(c.lock.is_locked for c in self.changes if c.lock.KIND == SecurityLock.KIND),
        }


def entry_as_dict(entry):
    return {
        'lock_kind': entry.lock_kind,
        'lock_id': str(entry.lock_id),
        'sequence': entry.sequence,
        'actor_id': str(entry.actor_id),
        'actor_role': entry.actor_role,
        'reason': entry.reason,
        'note': entry.note,
        'was_locked': entry.was_locked,
        'timestamp': entry.created_at.isoformat(),
    }


def request_as_dict(request):
    return {
        'id': str(request.id),
        'student_id': str(request.student_id),
        'student_name': request.student.full_name,
        'course_id': str(request.course_id),
        'unit_id': str(request.unit_id),
        'unit_title': request.unit.title,
        'requested_by': str(request.requested_by_id),
        'requested_by_name': request.requested_by.full_name,
        'required_tier': request.required_tier,
        'reason': request.reason,
        'request_note': request.request_note,
        'status': request.status,
        'created_at': request.created_at.isoformat(),
    }


class UnlockWorkflow:

    def __init__(self, quiz_locks, security_locks, authority, clock, settings):
        self.quiz_locks = quiz_locks
        self.security_locks = security_locks
        self.authority = authority
        self.clock = clock
        self.settings = settings

    # Direct unlocks

    def unlock(self, actor_id, lock_id, reason='', note=''):
        """Unlock by the id of either a quiz lock or a security lock."""
        lock = QuizLock.objects.filter(pk=lock_id).first() or SecurityLock.objects.filter(pk=lock_id).first()
        if lock is None:
            raise NotFound('Lock not found', lock_id=str(lock_id))
        if lock.unit_id is None:
            return self.unlock_course(actor_id, lock.student_id, lock.course_id, reason=reason, note=note)
        return self.unlock_student_unit(actor_id, lock.student_id, lock.unit_id, reason=reason, note=note)

    @retry_on_conflict
    def unlock_student_unit(self, actor_id, student_id, unit_id, reason='', note=''):
        actor = get_user(actor_id)
        student = get_student(student_id)
        unit = get_unit(unit_id)
        self.authority.check_scope(actor, student, unit.course)
        with transaction.atomic():
            result = self._clear_unit(actor, student, unit, reason, note)
        logger.info(f"{actor.role} {actor.id} unlocked student {student.id} unit {unit.id}")
        return result

    @retry_on_conflict
    def unlock_course(self, actor_id, student_id, course_id, reason='', note=''):
        """Clear a course-wide security lock and every lock it is holding back."""
        actor = get_user(actor_id)
        student = get_student(student_id)
        course_lock = SecurityLock.objects.select_related('course').filter(
            student=student, course_id=course_id, unit__isnull=True
        ).first()
        if course_lock is None:
            raise NotFound('Lock not found', course_id=str(course_id))
        course = course_lock.course
        self.authority.check_scope(actor, student, course)

        result = UnlockResult(
            student_id=str(student.id), unit_id='', actor_id=str(actor.id), actor_role=actor.role,
        )
        with transaction.atomic():
            for unit in course.units.filter(
                Q(quiz_locks__student=student, quiz_locks__is_locked=True)
                | Q(security_locks__student=student, security_locks__is_locked=True)
            ).distinct():
                result.changes.extend(self._clear_unit(actor, student, unit, reason, note).changes)
            course_lock.refresh_from_db()
            if not any(change.lock.pk == course_lock.pk for change in result.changes):
                result.changes.append(self.security_locks.clear(course_lock, actor, actor.role, reason, note))
        return result

    def _clear_unit(self, actor, student, unit, reason, note):
        """Clear quiz lock, unit security lock and a locked course-wide lock. Caller holds the transaction."""
        result = UnlockResult(
            student_id=str(student.id), unit_id=str(unit.id), actor_id=str(actor.id), actor_role=actor.role,
        )
        quiz_lock = self.quiz_locks.get_or_create(student, unit)
        if quiz_lock.is_locked:
            self.authority.check_tier(actor, self.quiz_locks.required_tier(quiz_lock))
        result.changes.append(self.quiz_locks.clear(quiz_lock, actor, actor.role, reason, note))

        security_lock = self.security_locks.get_or_create(student, unit)
        result.changes.append(self.security_locks.clear(security_lock, actor, actor.role, reason, note))

        course_lock = self.security_locks.find_course_lock(student, unit.course)
        if course_lock is not None and course_lock.is_locked:
            result.changes.append(self.security_locks.clear(course_lock, actor, actor.role, reason, note))
        return result

    # Request / review

    def required_tier_for(self, student, unit):
        """Tier a request needs: at least HOD, higher once the quiz lock has escalated."""
        quiz_lock = self.quiz_locks.find(student, unit)
        required = self.quiz_locks.required_tier(quiz_lock)
        return required if tier_rank(required) > tier_rank(Role.HOD) else Role.HOD

    def request_unlock(self, actor_id, student_id, unit_id, reason='', note=''):
        actor = get_user(actor_id)
        student = get_student(student_id)
        unit = get_unit(unit_id)
        self.authority.check_scope(actor, student, unit.course)

        quiz_locked = self.quiz_locks.status(student.id, unit.id).is_locked
        security_locked = self.security_locks.status(student.id, unit.id).is_locked
        if not (quiz_locked or security_locked):
            raise NotFound('There is no active lock for this student and unit')

        try:
            with transaction.atomic():
                request = UnlockRequest.objects.create(
                    student=student,
                    course=unit.course,
                    unit=unit,
                    requested_by=actor,
                    required_tier=self.required_tier_for(student, unit),
                    reason=reason or '',
                    request_note=note or '',
                    created_at=self.clock(),
                )
        except IntegrityError:
            raise InvalidTransition('An unlock request is already pending for this student and unit')
        logger.info(f"Unlock request {request.id} filed by {actor.id} for student {student.id} unit {unit.id}")
        return request

    @retry_on_conflict
    def review_request(self, request_id, reviewer_id, action, note=''):
        if action not in (APPROVE, REJECT):
            raise AccessControlError(f"Unknown review action '{action}'")
        reviewer = get_user(reviewer_id)
        request = UnlockRequest.objects.select_related('student', 'unit', 'unit__course', 'course').filter(pk=request_id).first()
        if request is None:
            raise NotFound('Unlock request not found', request_id=str(request_id))
        self._check_reviewer(reviewer)
        self.authority.check_scope(reviewer, request.student, request.course)
        if request.is_terminal:
            raise InvalidTransition(f"Unlock request has already been {request.status}", status=request.status)

        result = None
        new_status = UnlockRequest.STATUS_APPROVED if action == APPROVE else UnlockRequest.STATUS_REJECTED
        with transaction.atomic():
            moved = UnlockRequest.objects.filter(pk=request.pk, status=UnlockRequest.STATUS_PENDING).update(
                status=new_status,
                reviewed_by=reviewer,
                reviewed_at=self.clock(),
                note=note or '',
            )
            if not moved:
                current = UnlockRequest.objects.get(pk=request.pk)
                raise InvalidTransition(f"Unlock request has already been {current.status}", status=current.status)
            if new_status == UnlockRequest.STATUS_APPROVED:
                result = self._clear_unit(
                    reviewer, request.student, request.unit,
                    reason=request.reason or 'Unlock request approved', note=note,
                )

        request.refresh_from_db()
        logger.info(f"Unlock request {request.id} {request.status} by {reviewer.role} {reviewer.id}")
        return request, result

    def _check_reviewer(self, actor):
        if tier_rank(actor.role) is None or tier_rank(actor.role) < tier_rank(Role.HOD):
            raise Forbidden('Only an HOD, dean or admin can review unlock requests')

    def cancel_request(self, request_id, actor_id):
        """Withdraw a pending request. Only the staff member who filed it may do this."""
        actor = get_user(actor_id)
        request = UnlockRequest.objects.filter(pk=request_id).first()
        if request is None:
            raise NotFound('Unlock request not found', request_id=str(request_id))
        if request.requested_by_id != actor.id:
            raise Forbidden('Only the staff member who filed an unlock request can cancel it')

        moved = UnlockRequest.objects.filter(pk=request.pk, status=UnlockRequest.STATUS_PENDING).update(
            status=UnlockRequest.STATUS_CANCELLED,
            cancelled_at=self.clock(),
        )
        request.refresh_from_db()
        if not moved:
            raise InvalidTransition(f"Unlock request has already been {request.status}", status=request.status)
        logger.info(f"Unlock request {request.id} cancelled by {actor.id}")
        return request

    # Queues and history

    def pending_requests(self, actor_id):
        """Pending requests a reviewer can see, oldest first, flagged with whether their tier may approve."""
        actor = get_user(actor_id)
        self._check_reviewer(actor)
        queue = []
        pending = UnlockRequest.objects.filter(status=UnlockRequest.STATUS_PENDING).select_related(
            'student', 'unit', 'course', 'requested_by'
        ).order_by('created_at')
        for request in pending:
            if not self.authority.in_scope(actor, request.student, request.course):
                continue
            data = request_as_dict(request)
            data['can_review'] = tier_rank(actor.role) >= tier_rank(request.required_tier)
            queue.append(data)
        return queue

    def requests_filed_by(self, actor_id, status=None):
        """Requests filed by one staff member, newest first."""
        actor = get_user(actor_id)
        requests = UnlockRequest.objects.filter(requested_by=actor).select_related('student', 'unit', 'course', 'requested_by')
        if status:
            requests = requests.filter(status=status)
        return [request_as_dict(request) for request in requests.order_by('-created_at')]

    def locked_students(self, actor_id):
        """
        Locked (student, unit) pairs inside the actor's scope, with whether the
        actor's tier is enough to clear them now.
        """
        actor = get_user(actor_id)
        if self.authority.scope_of(actor) is None:
            raise Forbidden(f"Role '{actor.role}' cannot unlock quizzes")

        rows = {}
        for lock in QuizLock.objects.filter(is_locked=True).select_related('student', 'unit', 'course'):
            rows.setdefault((lock.student_id, lock.unit_id), {'student': lock.student, 'unit': lock.unit, 'course': lock.course})['quiz_lock'] = lock
        for lock in SecurityLock.objects.filter(is_locked=True).select_related('student', 'unit', 'course'):
            rows.setdefault((lock.student_id, lock.unit_id), {'student': lock.student, 'unit': lock.unit, 'course': lock.course})['security_lock'] = lock

        queue = []
        for row in rows.values():
            if not self.authority.in_scope(actor, row['student'], row['course']):
                continue
            quiz_lock = row.get('quiz_lock')
            security_lock = row.get('security_lock')
            required = self.quiz_locks.required_tier(quiz_lock) if quiz_lock else UNLOCK_TIERS[0]
            queue.append({
                'student_id': str(row['student'].id),
                'student_name': row['student'].full_name,
                'course_id': str(row['course'].id),
                'unit_id': str(row['unit'].id) if row['unit'] else None,
                'unit_title': row['unit'].title if row['unit'] else None,
                'quiz_lock': {
                    'lock_id': str(quiz_lock.id),
                    'reason': quiz_lock.reason,
                    'locked_at': quiz_lock.locked_at.isoformat() if quiz_lock.locked_at else None,
                } if quiz_lock else None,
                'security_lock': {
                    'lock_id': str(security_lock.id),
                    'reason': security_lock.reason,
                    'violation_count': security_lock.violation_count,
                    'course_wide': security_lock.is_course_wide,
                } if security_lock else None,
                'required_tier': required.value,
                'can_unlock': tier_rank(actor.role) >= tier_rank(required),
            })
        queue.sort(key=lambda item: (item['course_id'], item['student_id'], item['unit_id'] or ''))
        return queue

    def unlock_history(self, student_id, unit_id):
        """Audit entries of the unit's locks and the course-wide lock, oldest first."""
        student = get_student(student_id)
        unit = get_unit(unit_id)
        course_lock_ids = SecurityLock.objects.filter(
            student=student, course=unit.course, unit__isnull=True
        ).values_list('id', flat=True)
        entries = UnlockEntry.objects.filter(student=student).filter(
            Q(unit=unit) | Q(unit__isnull=True, lock_id__in=list(course_lock_ids))
        ).order_by('created_at', 'lock_kind', 'sequence')
        return [entry_as_dict(entry) for entry in entries]
