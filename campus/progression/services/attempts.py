"""
Attempt Ledger
Gates quiz starts and submissions, scores answers and owns the per-unit
attempt counters.

Gating order for a submission, first failure wins:
    1. unit unlocked by sequential progression
    2. no quiz lock and no security lock (unit or course-wide)
    3. strict deadline not expired
    4. attempts taken below the effective limit
The counter is then claimed with one conditional UPDATE, so two concurrent
submissions on the last attempt cannot both get through.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from django.db import transaction
from django.db.models import F

from ..models import AttemptCounter, QuestionDraw, QuizAttempt, QuizLock
from ..exceptions import (
    NotFound, AttemptDenied, UnitNotUnlocked, QuizLocked, SecurityLocked,
    DeadlineExpired, AttemptLimitReached, QuizAlreadyPassed,
)
from .concurrency import retry_on_conflict
from .lookups import get_student, get_unit

logger = logging.getLogger(__name__)


def score_answers(questions, answers):
    """
    Grade ``answers`` (question id -> selected option index) against
    ``questions``. Unanswered questions score zero.
    Returns (graded answers, score, max score).
    """
    answers = {str(k): v for k, v in (answers or {}).items()}
    graded = []
    score = 0
    max_score = 0
    for question in questions:
        selected = answers.get(str(question.id))
        try:
            selected = int(selected) if selected is not None else None
        except (TypeError, ValueError):
            selected = None
        correct = selected is not None and selected == question.correct_option
        awarded = question.points if correct else 0
        score += awarded
        max_score += question.points
        graded.append({
            'question_id': str(question.id),
            'selected': selected,
            'correct': correct,
            'points_awarded': awarded,
            'points': question.points,
        })
    return graded, score, max_score


def quiz_lock_message(reason):
    if not reason or reason == QuizLock.REASON_ATTEMPT_LIMIT:
        return QuizLocked.default_message
    return f"Locked: {reason}. Contact your teacher to unlock this quiz."


@dataclass
class Gate:
    view: object
    quiz_lock: Optional[QuizLock]
    attempt_limit: int
    attempts_taken: int


@dataclass
class Availability:
    available: bool
    is_locked: bool
    lock_reason: str
    attempts_taken: int
    attempt_limit: int
    quiz_passed: bool
    has_quiz: bool
    deadline: object
    denial: Optional[AttemptDenied] = None

    @property
    def remaining_attempts(self):
        return max(0, self.attempt_limit - self.attempts_taken)

    def as_dict(self):
        data = {
            'available': self.available,
            'is_locked': self.is_locked,
            'lock_reason': self.lock_reason,
            'attempts_taken': self.attempts_taken,
            'remaining_attempts': self.remaining_attempts,
            'attempt_limit': self.attempt_limit,
            'quiz_passed': self.quiz_passed,
            'has_quiz': self.has_quiz,
            'deadline': self.deadline.as_dict(),
        }
        if self.denial is not None:
            data['denial'] = {'reason': self.denial.kind, 'message': self.denial.message}
        return data


class AttemptLedger:

    def __init__(self, resolver, quiz_locks, security_locks, selector, progress, clock, settings):
        self.resolver = resolver
        self.quiz_locks = quiz_locks
        self.security_locks = security_locks
        self.selector = selector
        self.progress = progress
        self.clock = clock
        self.settings = settings

    def effective_limit(self, course, quiz_lock):
        granted = quiz_lock.granted_attempts if quiz_lock is not None else 0
        return course.attempt_limit + granted

    def pass_threshold(self, course):
        if course.pass_threshold is None:
            return self.settings.default_pass_threshold
        return course.pass_threshold

    def attempts_taken(self, student, unit):
        taken = AttemptCounter.objects.filter(student=student, unit=unit).values_list('attempts_taken', flat=True).first()
        return taken or 0

    def _gate(self, student, unit):
        view = self.resolver.resolve_unit(student.id, unit.id)
        quiz_lock = self.quiz_locks.find(student, unit)
        gate = Gate(
            view=view,
            quiz_lock=quiz_lock,
            attempt_limit=self.effective_limit(unit.course, quiz_lock),
            attempts_taken=self.attempts_taken(student, unit),
        )
        if not view.has_quiz:
            raise NotFound('This unit has no quiz', unit_id=str(unit.id))

        if not view.unlocked:
            raise UnitNotUnlocked()
        if quiz_lock is not None and quiz_lock.is_locked:
            raise QuizLocked(quiz_lock_message(quiz_lock.reason))
        if self.security_locks.status(student.id, unit.id).is_locked:
            raise SecurityLocked()
        if view.deadline.blocks_activity:
            raise DeadlineExpired()
        if gate.attempts_taken >= gate.attempt_limit:
            raise AttemptLimitReached()
        if view.quiz_passed:
            raise QuizAlreadyPassed()
        return gate

    def availability(self, student_id, unit_id):
        student = get_student(student_id)
        unit = get_unit(unit_id)
        view = self.resolver.resolve_unit(student.id, unit.id)
        quiz_lock = self.quiz_locks.find(student, unit)
        security = self.security_locks.status(student.id, unit.id)

        denial = None
        try:
            self._gate(student, unit)
        except AttemptDenied as e:
            denial = e
        except NotFound:
            if view.has_quiz:
                raise

        quiz_locked = quiz_lock is not None and quiz_lock.is_locked
        lock_reason = ''
        if quiz_locked:
            lock_reason = quiz_lock.reason
        elif security.is_locked:
            lock_reason = security.reason

        return Availability(
            available=denial is None and view.has_quiz,
            is_locked=quiz_locked or security.is_locked,
            lock_reason=lock_reason,
            attempts_taken=self.attempts_taken(student, unit),
            attempt_limit=self.effective_limit(unit.course, quiz_lock),
            quiz_passed=view.quiz_passed,
            has_quiz=view.has_quiz,
            deadline=view.deadline,
            denial=denial,
        )

    def start_attempt(self, student_id, unit_id):
        """Gate the student, then issue (or re-issue) the draw for their next attempt."""
        student = get_student(student_id)
        unit = get_unit(unit_id)
        gate = self._gate(student, unit)
        return self.selector.draw_for_unit(student, unit, attempt_number=gate.attempts_taken + 1)

    def _open_draw(self, student, unit):
        draw = (
            QuestionDraw.objects.filter(student=student, unit=unit, consumed_at__isnull=True)
            .order_by('-attempt_number')
            .first()
        )
        if draw is None:
            raise NotFound('No open quiz attempt. Start the quiz before submitting answers.')
        return draw

    def _claim_slot(self, student, unit, limit):
        """Increment the counter iff it is still below ``limit``; returns the attempt number."""
        counter, _ = AttemptCounter.objects.get_or_create(student=student, unit=unit)
        claimed = AttemptCounter.objects.filter(pk=counter.pk, attempts_taken__lt=limit).update(
            attempts_taken=F('attempts_taken') + 1,
            version=F('version') + 1,
        )
        if not claimed:
            logger.warning(f"Attempt slot refused for student {student.id} unit {unit.id}: limit {limit} reached")
            raise AttemptLimitReached()
        counter.refresh_from_db(fields=['attempts_taken', 'version'])
        return counter.attempts_taken

    @retry_on_conflict
    def record_attempt(self, student_id, unit_id, answers):
        student = get_student(student_id)
        unit = get_unit(unit_id)
        course = unit.course

        with transaction.atomic():
            gate = self._gate(student, unit)
            draw = self._open_draw(student, unit)
            questions = self.selector.questions_for(draw)
            graded, score, max_score = score_answers(questions, answers)
            percentage = round(score / max_score * 100, 2) if max_score else 0.0
            passed = max_score > 0 and score / max_score >= self.pass_threshold(course)

            attempt_number = self._claim_slot(student, unit, gate.attempt_limit)
            now = self.clock()
            consumed = QuestionDraw.objects.filter(pk=draw.pk, consumed_at__isnull=True).update(consumed_at=now)
            if not consumed:
                raise AttemptLimitReached('This attempt has already been submitted.')

            attempt = QuizAttempt.objects.create(
                student=student,
                course=course,
                unit=unit,
                quiz_pool=draw.quiz_pool,
                quiz=draw.quiz,
                draw=draw,
                attempt_number=attempt_number,
                questions=[
                    {'question_id': str(q.id), 'quiz_id': str(q.quiz_id), 'points': q.points}
                    for q in questions
                ],
                answers=graded,
                score=score,
                max_score=max_score,
                percentage=percentage,
                passed=passed,
                submitted_after_deadline=gate.view.deadline.is_expired,
                submitted_at=now,
            )

            if passed:
                self.progress.mark_quiz_passed(student, unit, percentage, gate.view.deadline.is_expired)
            elif attempt_number >= gate.attempt_limit:
                self.quiz_locks.lock(student.id, unit.id, QuizLock.REASON_ATTEMPT_LIMIT)

        logger.info(
            f"Attempt {attempt_number}/{gate.attempt_limit} by student {student.id} on unit {unit.id}: "
            f"{score}/{max_score} ({'passed' if passed else 'failed'})"
        )
        return attempt
