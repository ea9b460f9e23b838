"""
Unit Progression Resolver
Decides which units of a course a student may work on, from the student's
recorded progress and each unit's deadline. Read-only.
"""
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
import logging

from django.db.models import Count, Q

from courses.models import QuizPool
from ..models import UnitProgress, VideoWatch
from .deadlines import evaluate_deadline, DeadlineStatus
from .lookups import get_student, get_course, get_unit
from ..exceptions import NotFound

logger = logging.getLogger(__name__)


class UnitState(str, Enum):
    LOCKED = 'locked'
    UNLOCKED = 'unlocked'
    COMPLETED = 'completed'
    LOCKED_OUT = 'locked_out'


def first_unit_always_unlocked(position):
    """
    The first unit of a course is open to every enrolled student, otherwise a
    student with no progress could never start.
    """
    return position == 0


@dataclass
class UnitView:
    unit_id: str
    unit_number: int
    title: str
    state: UnitState
    unlocked: bool
    completed: bool
    completion_percent: int
    videos_total: int
    videos_watched: int
    has_quiz: bool
    quiz_passed: bool
    deadline: DeadlineStatus

    @property
    def locked_out(self):
        return self.state == UnitState.LOCKED_OUT

    @property
    def actionable(self):
        """Quiz start is allowed only on an unlocked unit that is not locked out."""
        return self.unlocked and not self.locked_out

    def as_dict(self):
        return {
            'unit_id': self.unit_id,
            'unit_number': self.unit_number,
            'title': self.title,
            'state': self.state.value,
            'unlocked': self.unlocked,
            'completed': self.completed,
            'completion_percent': self.completion_percent,
            'videos_total': self.videos_total,
            'videos_watched': self.videos_watched,
            'has_quiz': self.has_quiz,
            'quiz_passed': self.quiz_passed,
            'deadline': self.deadline.as_dict(),
            'deadline_warning': self.deadline.warning(),
        }


def unit_completed(course, videos_total, videos_watched, has_quiz, quiz_passed):
    """
    Completion predicate for a unit under the course's completion rule.
    A unit with no videos, or no quiz, satisfies that part trivially.
    """
    videos_done = videos_watched >= videos_total
    quiz_done = quiz_passed or not has_quiz
    if course.completion_rule == course.COMPLETION_VIDEOS:
        return videos_done
    if course.completion_rule == course.COMPLETION_QUIZ:
        return quiz_done
    return videos_done and quiz_done


def completion_percent(course, videos_total, videos_watched, has_quiz, quiz_passed, completed):
    required = 0
    done = 0
    if course.requires_videos:
        required += videos_total
        done += min(videos_watched, videos_total)
    if course.requires_quiz and has_quiz:
        required += 1
        done += 1 if quiz_passed else 0
    if required == 0:
        return 100 if completed else 0
    return int(round(100 * done / required))


class UnitProgressionResolver:
    """Sequential unlock: unit k opens once unit k-1 is complete."""

    def __init__(self, clock):
        self.clock = clock

    def resolve_units(self, student_id, course_id):
        student = get_student(student_id)
        course = get_course(course_id)
        return self._resolve(student, course)

    def resolve_unit(self, student_id, unit_id):
        unit = get_unit(unit_id)
        student = get_student(student_id)
        for view in self._resolve(student, unit.course):
            if view.unit_id == str(unit.id):
                return view
        raise NotFound('Unit not found', id=str(unit_id))

    def _resolve(self, student, course):
        now = self.clock()
        units = list(
            course.units.order_by('unit_number').annotate(
                video_total=Count('videos', distinct=True),
                direct_quiz_count=Count('quizzes', filter=Q(quizzes__is_active=True), distinct=True),
            )
        )
        pooled_units = set(QuizPool.objects.filter(unit__course=course).values_list('unit_id', flat=True))

        progress_rows = {
            row.unit_id: row
            for row in UnitProgress.objects.filter(progress__student=student, progress__course=course)
        }
        watched = defaultdict(set)
        watched_rows = VideoWatch.objects.filter(
            unit_progress__progress__student=student,
            unit_progress__progress__course=course,
            completed=True,
        ).values_list('unit_progress__unit_id', 'video_id')
        for unit_id, video_id in watched_rows:
            watched[unit_id].add(video_id)

        views = []
        previous_completed = False
        for position, unit in enumerate(units):
            row = progress_rows.get(unit.id)
            has_quiz = unit.id in pooled_units or unit.direct_quiz_count > 0
            quiz_passed = bool(row and row.quiz_passed)
            videos_watched = len(watched[unit.id])
            unlocked = first_unit_always_unlocked(position) or previous_completed
            # A unit never reached cannot satisfy its rule vacuously and open the next one.
            completed = unlocked and unit_completed(course, unit.video_total, videos_watched, has_quiz, quiz_passed)
            deadline = evaluate_deadline(unit, now)

            if completed:
                state = UnitState.COMPLETED
            elif deadline.blocks_activity:
                state = UnitState.LOCKED_OUT
            elif unlocked:
                state = UnitState.UNLOCKED
            else:
                state = UnitState.LOCKED

            views.append(UnitView(
                unit_id=str(unit.id),
                unit_number=unit.unit_number,
                title=unit.title,
                state=state,
                unlocked=unlocked,
                completed=completed,
                completion_percent=completion_percent(
                    course, unit.video_total, videos_watched, has_quiz, quiz_passed, completed
                ),
                videos_total=unit.video_total,
                videos_watched=videos_watched,
                has_quiz=has_quiz,
                quiz_passed=quiz_passed,
                deadline=deadline,
            ))
            previous_completed = completed

        logger.debug(f"Resolved {len(views)} units for student {student.id} in course {course.id}")
        return views
