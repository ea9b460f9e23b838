"""
Unit progression tests - sequential unlock, completion rules and deadline lock-out
"""
from datetime import timedelta

from django.test import TestCase

from hierarchy.roles import Role
from courses.models import Course
from .exceptions import NotFound, UnitNotUnlocked
from .factories import FixedClock, make_department, make_user, make_course, make_unit, make_quiz, answers_for
from .services.engine import AccessEngine
from .services.unit_progression import UnitState, first_unit_always_unlocked


class UnitProgressionTests(TestCase):
    """Resolver output for one student in a three unit course"""

    def setUp(self):
        self.clock = FixedClock()
        self.engine = AccessEngine(clock=self.clock)
        self.department = make_department()
        self.student = make_user(Role.STUDENT, self.department)
        self.course = make_course(self.department, attempt_limit=3)
        self.unit1 = make_unit(self.course, 1, videos=1)
        self.quiz1 = make_quiz(self.unit1)
        self.unit2 = make_unit(self.course, 2, videos=1)
        self.unit3 = make_unit(self.course, 3, videos=1)

    def watch_all(self, unit):
        for video in unit.videos.all():
            self.engine.progress.record_video_watch(self.student.id, unit.id, video.id, time_spent=300, completed=True)

    def pass_quiz(self, unit):
        draw = self.engine.ledger.start_attempt(self.student.id, unit.id)
        questions = self.engine.selector.questions_for(draw)
        return self.engine.ledger.record_attempt(self.student.id, unit.id, answers_for(questions, len(questions)))

    def states(self):
        return [view.state for view in self.engine.resolver.resolve_units(self.student.id, self.course.id)]

    def test_first_unit_rule(self):
        self.assertTrue(first_unit_always_unlocked(0))
        self.assertFalse(first_unit_always_unlocked(1))

    def test_new_student_sees_only_first_unit(self):
        """Test that a student with no progress can only open unit 1"""
        views = self.engine.resolver.resolve_units(self.student.id, self.course.id)
        self.assertEqual([v.unit_number for v in views], [1, 2, 3])
        self.assertEqual(views[0].state, UnitState.UNLOCKED)
        self.assertTrue(views[0].unlocked)
        self.assertEqual(views[1].state, UnitState.LOCKED)
        self.assertFalse(views[1].unlocked)
        self.assertEqual(views[2].state, UnitState.LOCKED)
        self.assertEqual(views[0].completion_percent, 0)

    def test_videos_alone_do_not_complete_a_quiz_unit(self):
        self.watch_all(self.unit1)
        views = self.engine.resolver.resolve_units(self.student.id, self.course.id)
        self.assertEqual(views[0].videos_watched, 1)
        self.assertFalse(views[0].completed)
        self.assertEqual(views[0].completion_percent, 50)
        self.assertFalse(views[1].unlocked)

    def test_completing_unit_unlocks_next(self):
        """Test that watching every video and passing the quiz opens unit 2"""
        self.watch_all(self.unit1)
        self.pass_quiz(self.unit1)

        views = self.engine.resolver.resolve_units(self.student.id, self.course.id)
        self.assertEqual(views[0].state, UnitState.COMPLETED)
        self.assertEqual(views[0].completion_percent, 100)
        self.assertEqual(views[1].state, UnitState.UNLOCKED)
        self.assertEqual(views[2].state, UnitState.LOCKED)

    def test_videos_only_rule(self):
        self.course.completion_rule = Course.COMPLETION_VIDEOS
        self.course.save()
        self.watch_all(self.unit1)
        self.assertEqual(self.states()[:2], [UnitState.COMPLETED, UnitState.UNLOCKED])

    def test_unit_without_quiz_completes_on_videos(self):
        """Test that a missing quiz counts as satisfied"""
        self.watch_all(self.unit1)
        self.pass_quiz(self.unit1)
        self.watch_all(self.unit2)
        views = self.engine.resolver.resolve_units(self.student.id, self.course.id)
        self.assertFalse(views[1].has_quiz)
        self.assertEqual(views[1].state, UnitState.COMPLETED)
        self.assertEqual(views[2].state, UnitState.UNLOCKED)

    def test_quiz_rule_ignores_videos(self):
        self.course.completion_rule = Course.COMPLETION_QUIZ
        self.course.save()
        self.pass_quiz(self.unit1)
        self.assertEqual(self.states()[:2], [UnitState.COMPLETED, UnitState.COMPLETED])

    def test_strict_deadline_locks_out_unit(self):
        """Test that a strict deadline in the past locks out an incomplete unit"""
        self.unit1.has_deadline = True
        self.unit1.deadline = self.clock.now - timedelta(hours=1)
        self.unit1.save()

        view = self.engine.resolver.resolve_unit(self.student.id, self.unit1.id)
        self.assertEqual(view.state, UnitState.LOCKED_OUT)
        self.assertTrue(view.unlocked)
        self.assertFalse(view.actionable)
        self.assertTrue(view.deadline.is_expired)

    def test_soft_deadline_keeps_unit_open(self):
        self.unit1.has_deadline = True
        self.unit1.strict_deadline = False
        self.unit1.deadline = self.clock.now - timedelta(hours=1)
        self.unit1.save()

        view = self.engine.resolver.resolve_unit(self.student.id, self.unit1.id)
        self.assertEqual(view.state, UnitState.UNLOCKED)
        self.assertTrue(view.actionable)

    def test_lock_out_keeps_earned_progress(self):
        """Test that progress recorded before the deadline survives the lock-out"""
        self.unit1.has_deadline = True
        self.unit1.deadline = self.clock.now + timedelta(hours=1)
        self.unit1.save()
        self.watch_all(self.unit1)

        self.clock.advance(hours=2)
        view = self.engine.resolver.resolve_unit(self.student.id, self.unit1.id)
        self.assertEqual(view.state, UnitState.LOCKED_OUT)
        self.assertEqual(view.videos_watched, 1)
        self.assertEqual(view.completion_percent, 50)

    def test_completed_unit_is_never_locked_out(self):
        self.unit1.has_deadline = True
        self.unit1.deadline = self.clock.now + timedelta(hours=1)
        self.unit1.save()
        self.watch_all(self.unit1)
        self.pass_quiz(self.unit1)

        self.clock.advance(days=2)
        self.assertEqual(self.states()[:2], [UnitState.COMPLETED, UnitState.UNLOCKED])

    def test_video_after_strict_deadline_is_not_counted(self):
        self.unit1.has_deadline = True
        self.unit1.deadline = self.clock.now - timedelta(minutes=5)
        self.unit1.save()
        video = self.unit1.videos.first()

        result = self.engine.progress.record_video_watch(self.student.id, self.unit1.id, video.id, completed=True)
        self.assertFalse(result['counted'])
        self.assertTrue(result['after_deadline'])
        self.assertFalse(result['completed'])
        view = self.engine.resolver.resolve_unit(self.student.id, self.unit1.id)
        self.assertEqual(view.videos_watched, 0)

    def test_deadline_warning_in_unit_payload(self):
        self.unit1.has_deadline = True
        self.unit1.deadline = self.clock.now + timedelta(days=1, hours=1)
        self.unit1.save()

        data = self.engine.resolver.resolve_unit(self.student.id, self.unit1.id).as_dict()
        self.assertEqual(data['state'], 'unlocked')
        self.assertEqual(data['deadline_warning']['message'], 'Deadline is tomorrow')

        reminders = self.engine.progress.approaching_deadlines(self.student.id, self.course.id)
        self.assertEqual(len(reminders), 1)
        self.assertFalse(reminders[0]['warning_shown'])
        self.engine.progress.mark_deadline_warning_shown(self.student.id, self.unit1.id)
        reminders = self.engine.progress.approaching_deadlines(self.student.id, self.course.id)
        self.assertTrue(reminders[0]['warning_shown'])

    def test_watching_locked_unit_is_refused(self):
        video = self.unit2.videos.first()
        with self.assertRaises(UnitNotUnlocked):
            self.engine.progress.record_video_watch(self.student.id, self.unit2.id, video.id, completed=True)

    def test_unknown_course(self):
        with self.assertRaises(NotFound):
            self.engine.resolver.resolve_units(self.student.id, self.unit1.id)

    def test_non_student_is_not_found(self):
        teacher = make_user(Role.TEACHER, self.department)
        with self.assertRaises(NotFound):
            self.engine.resolver.resolve_units(teacher.id, self.course.id)

    def test_vacuous_unit_behind_a_locked_one_stays_locked(self):
        """Test that a locked unit without a quiz does not open the unit after it"""
        self.course.completion_rule = Course.COMPLETION_QUIZ
        self.course.save()
        make_quiz(self.unit3)

        views = self.engine.resolver.resolve_units(self.student.id, self.course.id)
        self.assertEqual([v.state for v in views], [UnitState.UNLOCKED, UnitState.LOCKED, UnitState.LOCKED])
        self.assertFalse(views[1].completed)
        self.assertFalse(views[2].unlocked)

        with self.assertRaises(UnitNotUnlocked):
            self.engine.ledger.start_attempt(self.student.id, self.unit3.id)

    def test_unit_without_videos_waits_for_previous_unit(self):
        self.course.completion_rule = Course.COMPLETION_VIDEOS
        self.course.save()
        unit4 = make_unit(self.course, 4)
        make_unit(self.course, 5, videos=1)

        views = self.engine.resolver.resolve_units(self.student.id, self.course.id)
        self.assertEqual(views[3].unit_id, str(unit4.id))
        self.assertEqual(views[3].state, UnitState.LOCKED)
        self.assertFalse(views[4].unlocked)

        self.watch_all(self.unit1)
        self.watch_all(self.unit2)
        self.watch_all(self.unit3)
        states = self.states()
        self.assertEqual(states[3], UnitState.COMPLETED)
        self.assertEqual(states[4], UnitState.UNLOCKED)
