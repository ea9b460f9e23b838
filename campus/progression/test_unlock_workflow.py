"""
Unlock workflow tests - authority scope, tier escalation, dual clearing and
unlock request review
"""
from django.test import TestCase

from hierarchy.roles import Role
from .exceptions import Forbidden, InvalidTransition, NotFound
from .factories import FixedClock, make_department, make_user, make_section, make_course, make_unit, make_quiz
from .models import QuizLock, SecurityLock, UnlockEntry, UnlockRequest
from .services.engine import AccessEngine
from .services.unlocks import APPROVE, REJECT


class UnlockWorkflowTestMixin:

    def build(self):
        self.clock = FixedClock()
        self.engine = AccessEngine(clock=self.clock)
        self.department = make_department('Computer Science')
        self.other_department = make_department('Mechanical')

        self.student = make_user(Role.STUDENT, self.department)
        self.teacher = make_user(Role.TEACHER, self.department)
        self.outside_teacher = make_user(Role.TEACHER, self.department)
        self.hod = make_user(Role.HOD, self.department)
        self.other_hod = make_user(Role.HOD, self.other_department)
        self.dean = make_user(Role.DEAN)
        self.admin = make_user(Role.ADMIN)

        self.course = make_course(self.department, attempt_limit=1)
        self.unit = make_unit(self.course, 1)
        self.unit2 = make_unit(self.course, 2)
        make_quiz(self.unit, self.teacher)
        make_quiz(self.unit2, self.teacher)
        make_section(self.department, teachers=[self.teacher], students=[self.student], courses=[self.course])
        make_section(self.department, teachers=[self.outside_teacher], courses=[self.course])

    def lock_both(self, unit=None):
        unit = unit or self.unit
        self.engine.quiz_locks.lock(self.student.id, unit.id, QuizLock.REASON_ATTEMPT_LIMIT)
        for _ in range(3):
            self.engine.security_locks.record_violation(self.student.id, unit.id, 'TAB_SWITCH')

    def quiz_lock(self, unit=None):
        return QuizLock.objects.get(student=self.student, unit=unit or self.unit)

    def security_lock(self, unit=None):
        return SecurityLock.objects.get(student=self.student, unit=unit or self.unit)


class DirectUnlockTests(UnlockWorkflowTestMixin, TestCase):
    """Direct unlocks by staff"""

    def setUp(self):
        self.build()

    def test_unlock_clears_quiz_and_security_locks(self):
        """Test that one unlock opens both locks of the student and unit"""
        self.lock_both()
        result = self.engine.unlocks.unlock_student_unit(self.teacher.id, self.student.id, self.unit.id, reason='Reviewed')

        self.assertFalse(self.quiz_lock().is_locked)
        self.assertFalse(self.security_lock().is_locked)
        data = result.as_dict()
        self.assertFalse(data['quiz_locked'])
        self.assertFalse(data['security_locked'])
        self.assertEqual({c['kind'] for c in data['cleared']}, {'quiz', 'security'})
        self.assertTrue(all(c['was_locked'] for c in data['cleared']))
        self.assertEqual(UnlockEntry.objects.filter(student=self.student, actor=self.teacher).count(), 2)

    def test_unlock_by_security_lock_id_also_clears_quiz_lock(self):
        self.lock_both()
        self.engine.unlocks.unlock(self.hod.id, self.security_lock().id)
        self.assertFalse(self.quiz_lock().is_locked)
        self.assertFalse(self.security_lock().is_locked)

    def test_unknown_lock_id(self):
        with self.assertRaises(NotFound):
            self.engine.unlocks.unlock(self.teacher.id, self.unit.id)

    def test_teacher_outside_section_is_refused(self):
        """Test that a teacher who does not teach the student cannot unlock"""
        self.lock_both()
        with self.assertRaises(Forbidden):
            self.engine.unlocks.unlock_student_unit(self.outside_teacher.id, self.student.id, self.unit.id)
        self.assertTrue(self.quiz_lock().is_locked)
        self.assertTrue(self.security_lock().is_locked)
        self.assertFalse(UnlockEntry.objects.exists())

    def test_hod_scope_is_department(self):
        self.lock_both()
        with self.assertRaises(Forbidden):
            self.engine.unlocks.unlock_student_unit(self.other_hod.id, self.student.id, self.unit.id)
        self.engine.unlocks.unlock_student_unit(self.hod.id, self.student.id, self.unit.id)
        self.assertFalse(self.quiz_lock().is_locked)
        self.assertEqual(self.quiz_lock().hod_unlock_count, 1)

    def test_dean_and_admin_are_unrestricted(self):
        self.lock_both()
        self.engine.unlocks.unlock_student_unit(self.dean.id, self.student.id, self.unit.id)
        self.lock_both()
        self.engine.unlocks.unlock_student_unit(self.admin.id, self.student.id, self.unit.id)
        lock = self.quiz_lock()
        self.assertEqual(lock.dean_unlock_count, 1)
        self.assertEqual(lock.admin_unlock_count, 1)

    def test_student_cannot_unlock(self):
        self.lock_both()
        with self.assertRaises(Forbidden):
            self.engine.unlocks.unlock_student_unit(self.student.id, self.student.id, self.unit.id)

    def test_teacher_tier_escalates_after_three_unlocks(self):
        """Test that the fourth teacher unlock needs an HOD"""
        for _ in range(3):
            self.engine.quiz_locks.lock(self.student.id, self.unit.id, QuizLock.REASON_ATTEMPT_LIMIT)
            self.engine.unlocks.unlock_student_unit(self.teacher.id, self.student.id, self.unit.id)
        self.assertEqual(self.quiz_lock().teacher_unlock_count, 3)

        self.engine.quiz_locks.lock(self.student.id, self.unit.id, QuizLock.REASON_ATTEMPT_LIMIT)
        with self.assertRaises(Forbidden) as ctx:
            self.engine.unlocks.unlock_student_unit(self.teacher.id, self.student.id, self.unit.id)
        self.assertEqual(ctx.exception.context['required_tier'], 'hod')
        self.assertTrue(self.quiz_lock().is_locked)

        self.engine.unlocks.unlock_student_unit(self.hod.id, self.student.id, self.unit.id)
        lock = self.quiz_lock()
        self.assertFalse(lock.is_locked)
        self.assertEqual(lock.hod_unlock_count, 1)
        self.assertEqual(lock.granted_attempts, 4)

    def test_unlock_clears_course_wide_security_lock(self):
        self.engine.security_locks.lock_course(self.student.id, self.course.id, 'Flagged by proctor')
        self.engine.unlocks.unlock_student_unit(self.teacher.id, self.student.id, self.unit.id)
        course_lock = SecurityLock.objects.get(student=self.student, course=self.course, unit__isnull=True)
        self.assertFalse(course_lock.is_locked)

    def test_unlock_course_wide_lock_by_id(self):
        """Test that clearing a course-wide lock also clears the unit locks it was holding"""
        self.lock_both(self.unit)
        self.lock_both(self.unit2)
        course_lock = self.engine.security_locks.lock_course(self.student.id, self.course.id, 'Flagged').lock

        result = self.engine.unlocks.unlock(self.hod.id, course_lock.id, reason='Cleared by review')
        self.assertFalse(SecurityLock.objects.get(pk=course_lock.pk).is_locked)
        for unit in (self.unit, self.unit2):
            self.assertFalse(self.quiz_lock(unit).is_locked)
            self.assertFalse(self.security_lock(unit).is_locked)
        cleared_ids = [c['lock_id'] for c in result.as_dict()['cleared']]
        self.assertEqual(cleared_ids.count(str(course_lock.id)), 1)

    def test_locked_students_queue(self):
        self.lock_both()
        queue = self.engine.unlocks.locked_students(self.teacher.id)
        self.assertEqual(len(queue), 1)
        self.assertEqual(queue[0]['student_id'], str(self.student.id))
        self.assertEqual(queue[0]['unit_id'], str(self.unit.id))
        self.assertTrue(queue[0]['can_unlock'])
        self.assertEqual(queue[0]['security_lock']['violation_count'], 3)

        self.assertEqual(self.engine.unlocks.locked_students(self.outside_teacher.id), [])
        self.assertEqual(self.engine.unlocks.locked_students(self.other_hod.id), [])
        self.assertEqual(len(self.engine.unlocks.locked_students(self.dean.id)), 1)
        with self.assertRaises(Forbidden):
            self.engine.unlocks.locked_students(self.student.id)

    def test_unlock_history_in_order(self):
        self.lock_both()
        self.engine.unlocks.unlock_student_unit(self.teacher.id, self.student.id, self.unit.id, note='first')
        self.clock.advance(minutes=1)
        self.engine.unlocks.unlock_student_unit(self.hod.id, self.student.id, self.unit.id, note='second')

        history = self.engine.unlocks.unlock_history(self.student.id, self.unit.id)
        self.assertEqual(len(history), 4)
        self.assertEqual([h['note'] for h in history], ['first', 'first', 'second', 'second'])
        self.assertEqual([h['actor_role'] for h in history], ['teacher', 'teacher', 'hod', 'hod'])
        self.assertEqual([h['was_locked'] for h in history], [True, True, False, False])


class UnlockRequestTests(UnlockWorkflowTestMixin, TestCase):
    """Request filing and one-shot review"""

    def setUp(self):
        self.build()
        self.lock_both()

    def file_request(self):
        return self.engine.unlocks.request_unlock(
            self.teacher.id, self.student.id, self.unit.id, reason='Network outage', note='Please review'
        )

    def test_request_is_pending_for_hod(self):
        request = self.file_request()
        self.assertEqual(request.status, UnlockRequest.STATUS_PENDING)
        self.assertEqual(request.required_tier, Role.HOD)
        self.assertEqual(request.requested_by, self.teacher)

    def test_second_pending_request_refused(self):
        self.file_request()
        with self.assertRaises(InvalidTransition):
            self.file_request()

    def test_request_without_lock(self):
        with self.assertRaises(NotFound):
            self.engine.unlocks.request_unlock(self.teacher.id, self.student.id, self.unit2.id)

    def test_request_outside_scope(self):
        with self.assertRaises(Forbidden):
            self.engine.unlocks.request_unlock(self.outside_teacher.id, self.student.id, self.unit.id)

    def test_approve_clears_locks(self):
        """Test that approval clears both locks as the reviewer"""
        request = self.file_request()
        request, result = self.engine.unlocks.review_request(request.id, self.hod.id, APPROVE, note='Approved')

        self.assertEqual(request.status, UnlockRequest.STATUS_APPROVED)
        self.assertEqual(request.reviewed_by, self.hod)
        self.assertEqual(request.note, 'Approved')
        self.assertFalse(self.quiz_lock().is_locked)
        self.assertFalse(self.security_lock().is_locked)
        self.assertEqual(len(result.changes), 2)
        entries = UnlockEntry.objects.filter(student=self.student)
        self.assertEqual({e.actor_id for e in entries}, {self.hod.id})
        self.assertEqual({e.reason for e in entries}, {'Network outage'})

    def test_reject_leaves_locks(self):
        request = self.file_request()
        request, result = self.engine.unlocks.review_request(request.id, self.hod.id, REJECT, note='Not eligible')
        self.assertEqual(request.status, UnlockRequest.STATUS_REJECTED)
        self.assertIsNone(result)
        self.assertTrue(self.quiz_lock().is_locked)
        self.assertTrue(self.security_lock().is_locked)

    def test_request_resolves_once(self):
        """Test that a reviewed request cannot be reviewed again"""
        request = self.file_request()
        self.engine.unlocks.review_request(request.id, self.hod.id, APPROVE)
        entries_before = UnlockEntry.objects.count()

        with self.assertRaises(InvalidTransition):
            self.engine.unlocks.review_request(request.id, self.dean.id, REJECT, note='Too late')

        request.refresh_from_db()
        self.assertEqual(request.status, UnlockRequest.STATUS_APPROVED)
        self.assertEqual(request.reviewed_by, self.hod)
        self.assertFalse(self.quiz_lock().is_locked)
        self.assertEqual(UnlockEntry.objects.count(), entries_before)

    def test_teacher_cannot_review(self):
        request = self.file_request()
        with self.assertRaises(Forbidden):
            self.engine.unlocks.review_request(request.id, self.teacher.id, APPROVE)
        request.refresh_from_db()
        self.assertEqual(request.status, UnlockRequest.STATUS_PENDING)

    def test_reviewer_outside_department(self):
        request = self.file_request()
        with self.assertRaises(Forbidden):
            self.engine.unlocks.review_request(request.id, self.other_hod.id, APPROVE)

    def test_new_request_after_resolution(self):
        request = self.file_request()
        self.engine.unlocks.review_request(request.id, self.hod.id, REJECT)
        again = self.file_request()
        self.assertEqual(again.status, UnlockRequest.STATUS_PENDING)

    def test_escalated_lock_raises_request_tier(self):
        lock = self.quiz_lock()
        QuizLock.objects.filter(pk=lock.pk).update(teacher_unlock_count=3, hod_unlock_count=3)
        request = self.file_request()
        self.assertEqual(request.required_tier, Role.DEAN)

    def test_review_of_resolved_request_checks_authority_first(self):
        """Test that an actor without review authority is refused before the request state is reported"""
        request = self.file_request()
        self.engine.unlocks.review_request(request.id, self.hod.id, APPROVE)

        with self.assertRaises(Forbidden):
            self.engine.unlocks.review_request(request.id, self.teacher.id, REJECT)
        with self.assertRaises(Forbidden):
            self.engine.unlocks.review_request(request.id, self.other_hod.id, REJECT)

    def test_pending_queue_for_reviewers(self):
        """Test that pending requests are listed to reviewers in scope only"""
        request = self.file_request()

        queue = self.engine.unlocks.pending_requests(self.hod.id)
        self.assertEqual([item['id'] for item in queue], [str(request.id)])
        self.assertEqual(queue[0]['requested_by'], str(self.teacher.id))
        self.assertEqual(queue[0]['reason'], 'Network outage')
        self.assertTrue(queue[0]['can_review'])

        self.assertEqual(self.engine.unlocks.pending_requests(self.other_hod.id), [])
        self.assertEqual(len(self.engine.unlocks.pending_requests(self.dean.id)), 1)
        with self.assertRaises(Forbidden):
            self.engine.unlocks.pending_requests(self.teacher.id)

        self.engine.unlocks.review_request(request.id, self.hod.id, REJECT)
        self.assertEqual(self.engine.unlocks.pending_requests(self.hod.id), [])

    def test_pending_queue_flags_tier_shortfall(self):
        lock = self.quiz_lock()
        QuizLock.objects.filter(pk=lock.pk).update(teacher_unlock_count=3, hod_unlock_count=3)
        self.file_request()
        self.assertFalse(self.engine.unlocks.pending_requests(self.hod.id)[0]['can_review'])
        self.assertTrue(self.engine.unlocks.pending_requests(self.dean.id)[0]['can_review'])

    def test_requests_filed_by_teacher(self):
        request = self.file_request()
        self.engine.unlocks.review_request(request.id, self.hod.id, REJECT)
        again = self.file_request()

        filed = self.engine.unlocks.requests_filed_by(self.teacher.id)
        self.assertEqual({item['id'] for item in filed}, {str(request.id), str(again.id)})
        pending = self.engine.unlocks.requests_filed_by(self.teacher.id, status=UnlockRequest.STATUS_PENDING)
        self.assertEqual([item['id'] for item in pending], [str(again.id)])
        self.assertEqual(self.engine.unlocks.requests_filed_by(self.outside_teacher.id), [])

    def test_cancel_pending_request(self):
        """Test that the filing teacher can withdraw a pending request once"""
        request = self.file_request()
        request = self.engine.unlocks.cancel_request(request.id, self.teacher.id)

        self.assertEqual(request.status, UnlockRequest.STATUS_CANCELLED)
        self.assertEqual(request.cancelled_at, self.clock.now)
        self.assertTrue(request.is_terminal)
        self.assertTrue(self.quiz_lock().is_locked)
        self.assertEqual(self.engine.unlocks.pending_requests(self.hod.id), [])

        with self.assertRaises(InvalidTransition):
            self.engine.unlocks.cancel_request(request.id, self.teacher.id)
        with self.assertRaises(InvalidTransition):
            self.engine.unlocks.review_request(request.id, self.hod.id, APPROVE)

        again = self.file_request()
        self.assertEqual(again.status, UnlockRequest.STATUS_PENDING)

    def test_only_filer_can_cancel(self):
        request = self.file_request()
        with self.assertRaises(Forbidden):
            self.engine.unlocks.cancel_request(request.id, self.hod.id)
        request.refresh_from_db()
        self.assertEqual(request.status, UnlockRequest.STATUS_PENDING)

    def test_cancel_reviewed_request(self):
        request = self.file_request()
        self.engine.unlocks.review_request(request.id, self.hod.id, APPROVE)
        with self.assertRaises(InvalidTransition):
            self.engine.unlocks.cancel_request(request.id, self.teacher.id)
        request.refresh_from_db()
        self.assertEqual(request.status, UnlockRequest.STATUS_APPROVED)
