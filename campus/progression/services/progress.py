"""
Progress Recorder
Persists video-watch and quiz-pass markers into StudentProgress, applying
deadline compliance, and serves deadline reminders.
"""
import logging

from django.db import transaction

from courses.models import Video
from ..models import StudentProgress, UnitProgress, VideoWatch
from ..exceptions import NotFound, UnitNotUnlocked
from .concurrency import versioned_update, retry_on_conflict
from .deadlines import activity_compliance
from .lookups import get_student, get_unit

logger = logging.getLogger(__name__)


class ProgressRecorder:

    def __init__(self, resolver, clock, settings):
        self.resolver = resolver
        self.clock = clock
        self.settings = settings

    def _unit_progress(self, student, unit):
        """
        Get-or-create the progress rows and claim the StudentProgress version,
        so concurrent writers for one (student, course) serialize.
        """
        progress, _ = StudentProgress.objects.get_or_create(student=student, course=unit.course)
        versioned_update(progress)
        unit_progress, _ = UnitProgress.objects.get_or_create(progress=progress, unit=unit)
        return unit_progress

    @retry_on_conflict
    def record_video_watch(self, student_id, unit_id, video_id, time_spent=0, completed=False):
        student = get_student(student_id)
        unit = get_unit(unit_id)
        try:
            video = unit.videos.get(pk=video_id)
        except Video.DoesNotExist:
            raise NotFound('Video not found in this unit', video_id=str(video_id))

        view = self.resolver.resolve_unit(student.id, unit.id)
        if not view.unlocked:
            raise UnitNotUnlocked()

        now = self.clock()
        counts, after_deadline = activity_compliance(unit, now)

        with transaction.atomic():
            unit_progress = self._unit_progress(student, unit)
            watch, _ = VideoWatch.objects.get_or_create(unit_progress=unit_progress, video=video)
            watch.time_spent += max(0, int(time_spent or 0))
            watch.last_watched = now
            if after_deadline:
                watch.watched_after_deadline = True
            if completed and counts:
                watch.completed = True
            watch.save()
            newly_completed = self._mark_completed_if_done(student, unit, unit_progress, after_deadline, now)

        if completed and not counts:
            logger.info(f"Video {video.id} watched after strict deadline by {student.id}; not counted")
        return {
            'video_id': str(video.id),
            'completed': watch.completed,
            'counted': counts,
            'after_deadline': after_deadline,
            'time_spent': watch.time_spent,
            'unit_completed': newly_completed or unit_progress.completed_at is not None,
        }

    def mark_quiz_passed(self, student, unit, percentage, after_deadline=False):
        """Called by the attempt ledger inside its transaction."""
        now = self.clock()
        unit_progress = self._unit_progress(student, unit)
        changes = {'best_percentage': max(unit_progress.best_percentage, percentage)}
        if not unit_progress.quiz_passed:
            changes.update(quiz_passed=True, quiz_passed_at=now)
        UnitProgress.objects.filter(pk=unit_progress.pk).update(**changes)
        for name, value in changes.items():
            setattr(unit_progress, name, value)
        self._mark_completed_if_done(student, unit, unit_progress, after_deadline, now)
        return unit_progress

    def _mark_completed_if_done(self, student, unit, unit_progress, after_deadline, now):
        if unit_progress.completed_at is not None:
            return False
        if not self.resolver.resolve_unit(student.id, unit.id).completed:
            return False
        UnitProgress.objects.filter(pk=unit_progress.pk, completed_at__isnull=True).update(
            completed_at=now, completed_after_deadline=after_deadline
        )
        unit_progress.completed_at = now
        unit_progress.completed_after_deadline = after_deadline
        logger.info(f"Student {student.id} completed unit {unit.id}")
        return True

    def approaching_deadlines(self, student_id, course_id):
        """Incomplete units whose deadline is inside the warning window."""
        views = self.resolver.resolve_units(student_id, course_id)
        shown = {
            str(unit_id) for unit_id in UnitProgress.objects.filter(
                progress__student_id=student_id, progress__course_id=course_id, deadline_warning_shown=True
            ).values_list('unit_id', flat=True)
        }
        reminders = []
        for view in views:
            if view.completed or not view.deadline.in_warning_window:
                continue
            reminder = view.deadline.warning()
            reminder.update(unit_id=view.unit_id, title=view.title, warning_shown=view.unit_id in shown)
            reminders.append(reminder)
        return reminders

    @retry_on_conflict
    def mark_deadline_warning_shown(self, student_id, unit_id):
        student = get_student(student_id)
        unit = get_unit(unit_id)
        with transaction.atomic():
            unit_progress = self._unit_progress(student, unit)
            UnitProgress.objects.filter(pk=unit_progress.pk).update(deadline_warning_shown=True)
