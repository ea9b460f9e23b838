"""
Progression models - student progress, attempt counters, question draws,
quiz attempts, quiz/security locks, unlock audit entries and unlock requests.

Rows that gate access carry a ``version`` column; every read-then-write goes
through a conditional UPDATE on it (see progression.services.concurrency).
"""
from django.db import models
from django.db.models import Q
from django.utils import timezone
import uuid

from hierarchy.models import UserProfile
from hierarchy.roles import Role, UNLOCK_TIERS
from courses.models import Course, Unit, Video, Quiz, QuizPool


class StudentProgress(models.Model):
    """Progress of one student through one course"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='progress_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='course_progress', db_column='student_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='student_progress', db_column='course_id')
    version = models.PositiveIntegerField(default=0, db_column='version')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'student_progress'
        managed = True
        unique_together = ['student', 'course']

    def __str__(self):
        return f"{self.student} in {self.course}"


class UnitProgress(models.Model):
    """Completion markers for one unit inside a StudentProgress"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='unit_progress_id')
    progress = models.ForeignKey(StudentProgress, on_delete=models.CASCADE, related_name='units', db_column='progress_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='student_progress', db_column='unit_id')
    quiz_passed = models.BooleanField(default=False, db_column='quiz_passed')
    quiz_passed_at = models.DateTimeField(blank=True, null=True, db_column='quiz_passed_at')
    best_percentage = models.FloatField(default=0, db_column='best_percentage')
    completed_at = models.DateTimeField(blank=True, null=True, db_column='completed_at')
    completed_after_deadline = models.BooleanField(default=False, db_column='completed_after_deadline')
    deadline_warning_shown = models.BooleanField(default=False, db_column='deadline_warning_shown')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'unit_progress'
        managed = True
        unique_together = ['progress', 'unit']


class VideoWatch(models.Model):
    """Watch record of one video"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='watch_id')
    unit_progress = models.ForeignKey(UnitProgress, on_delete=models.CASCADE, related_name='videos', db_column='unit_progress_id')
    video = models.ForeignKey(Video, on_delete=models.CASCADE, related_name='watches', db_column='video_id')
    completed = models.BooleanField(default=False, db_column='completed')
    time_spent = models.PositiveIntegerField(default=0, db_column='time_spent_seconds')
    watched_after_deadline = models.BooleanField(default=False, db_column='watched_after_deadline')
    last_watched = models.DateTimeField(default=timezone.now, db_column='last_watched')

    class Meta:
        db_table = 'video_watches'
        managed = True
        unique_together = ['unit_progress', 'video']


class AttemptCounter(models.Model):
    """Attempts taken per (student, unit). Only the attempt ledger writes it."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='counter_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='attempt_counters', db_column='student_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='attempt_counters', db_column='unit_id')
    attempts_taken = models.PositiveIntegerField(default=0, db_column='attempts_taken')
    version = models.PositiveIntegerField(default=0, db_column='version')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'attempt_counters'
        managed = True
        unique_together = ['student', 'unit']


class QuestionDraw(models.Model):
    """Question set issued for one attempt number; consumed on submission"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='draw_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='question_draws', db_column='student_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='question_draws', db_column='unit_id')
    quiz_pool = models.ForeignKey(QuizPool, on_delete=models.SET_NULL, null=True, blank=True, related_name='draws', db_column='pool_id')
    quiz = models.ForeignKey(Quiz, on_delete=models.SET_NULL, null=True, blank=True, related_name='draws', db_column='quiz_id')
    attempt_number = models.PositiveIntegerField(db_column='attempt_number')
    question_ids = models.JSONField(default=list, db_column='question_ids')
    drawn_at = models.DateTimeField(default=timezone.now, db_column='drawn_at')
    consumed_at = models.DateTimeField(blank=True, null=True, db_column='consumed_at')

    class Meta:
        db_table = 'question_draws'
        managed = True
        unique_together = ['student', 'unit', 'attempt_number']

    @property
    def is_open(self):
        return self.consumed_at is None


class QuizAttempt(models.Model):
    """Submitted quiz attempt. Written once by the attempt ledger, never updated."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='attempt_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='quiz_attempts', db_column='student_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='quiz_attempts', db_column='course_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='quiz_attempts', db_column='unit_id')
    quiz_pool = models.ForeignKey(QuizPool, on_delete=models.SET_NULL, null=True, blank=True, related_name='attempts', db_column='pool_id')
    quiz = models.ForeignKey(Quiz, on_delete=models.SET_NULL, null=True, blank=True, related_name='attempts', db_column='quiz_id')
    draw = models.OneToOneField(QuestionDraw, on_delete=models.SET_NULL, null=True, blank=True, related_name='attempt', db_column='draw_id')
    attempt_number = models.PositiveIntegerField(db_column='attempt_number')
    questions = models.JSONField(default=list, db_column='questions')
    answers = models.JSONField(default=list, db_column='answers')
    score = models.PositiveIntegerField(default=0, db_column='score')
    max_score = models.PositiveIntegerField(default=0, db_column='max_score')
    percentage = models.FloatField(default=0, db_column='percentage')
    passed = models.BooleanField(default=False, db_column='passed')
    submitted_after_deadline = models.BooleanField(default=False, db_column='submitted_after_deadline')
    submitted_at = models.DateTimeField(default=timezone.now, db_column='submitted_at')

    class Meta:
        db_table = 'quiz_attempts'
        managed = True
        ordering = ['student', 'unit', 'attempt_number']
        unique_together = ['student', 'unit', 'attempt_number']

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Quiz attempts are immutable once submitted")
        super().save(*args, **kwargs)


class QuizLock(models.Model):
    """
    Attempt-limit lock per (student, unit). Created on first lock, never deleted.
    An unlock of a pair that was never locked also creates the row (unlocked),
    since the UnlockEntry it appends needs a lock id.
    """

    REASON_ATTEMPT_LIMIT = 'attempt limit exceeded'
    REASON_MANUAL = 'locked by staff'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='lock_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='quiz_locks', db_column='student_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='quiz_locks', db_column='course_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='quiz_locks', db_column='unit_id')
    is_locked = models.BooleanField(default=False, db_column='is_locked')
    reason = models.CharField(max_length=255, blank=True, default='', db_column='lock_reason')
    locked_at = models.DateTimeField(blank=True, null=True, db_column='locked_at')
    granted_attempts = models.PositiveIntegerField(default=0, db_column='granted_attempts')
    teacher_unlock_count = models.PositiveIntegerField(default=0, db_column='teacher_unlock_count')
    hod_unlock_count = models.PositiveIntegerField(default=0, db_column='hod_unlock_count')
    dean_unlock_count = models.PositiveIntegerField(default=0, db_column='dean_unlock_count')
    admin_unlock_count = models.PositiveIntegerField(default=0, db_column='admin_unlock_count')
    version = models.PositiveIntegerField(default=0, db_column='version')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'quiz_locks'
        managed = True
        unique_together = ['student', 'unit']

    KIND = 'quiz'

    @staticmethod
    def counter_field(role):
        return f"{Role(role).value}_unlock_count"

    def unlock_count(self, role):
        return getattr(self, self.counter_field(role))

    def required_tier(self, per_tier_limit):
        """
        Lowest tier still allowed to clear this lock directly. Each tier may
        clear it ``per_tier_limit`` times before the next tier is needed;
        admin is unlimited.
        """
        for role in UNLOCK_TIERS[:-1]:
            if self.unlock_count(role) < per_tier_limit:
                return role
        return UNLOCK_TIERS[-1]

    @property
    def unlock_history(self):
        return UnlockEntry.objects.filter(lock_kind=self.KIND, lock_id=self.id).order_by('sequence')

    def __str__(self):
        state = 'locked' if self.is_locked else 'unlocked'
        return f"Quiz lock {self.student_id}/{self.unit_id} ({state})"


class SecurityLock(models.Model):
    """
    Violation-triggered lock per (student, unit), or course-wide when unit is empty.
    Like QuizLock, the row may be created unlocked by an unlock so the audit entry has a lock id.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='lock_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='security_locks', db_column='student_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='security_locks', db_column='course_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, null=True, blank=True, related_name='security_locks', db_column='unit_id')
    is_locked = models.BooleanField(default=False, db_column='is_locked')
    violation_count = models.PositiveIntegerField(default=0, db_column='violation_count')
    reason = models.CharField(max_length=255, blank=True, default='', db_column='lock_reason')
    locked_at = models.DateTimeField(blank=True, null=True, db_column='locked_at')
    version = models.PositiveIntegerField(default=0, db_column='version')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'security_locks'
        managed = True
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'unit'],
                condition=Q(unit__isnull=False),
                name='uniq_security_lock_per_unit',
            ),
            models.UniqueConstraint(
                fields=['student', 'course'],
                condition=Q(unit__isnull=True),
                name='uniq_security_lock_per_course',
            ),
        ]

    KIND = 'security'

    @property
    def is_course_wide(self):
        return self.unit_id is None

    @property
    def unlock_history(self):
        return UnlockEntry.objects.filter(lock_kind=self.KIND, lock_id=self.id).order_by('sequence')

    def __str__(self):
        scope = 'course' if self.is_course_wide else f"unit {self.unit_id}"
        state = 'locked' if self.is_locked else 'unlocked'
        return f"Security lock {self.student_id}/{scope} ({state})"


class SecurityViolation(models.Model):
    """Single proctoring/integrity event reported by the quiz client"""

    VIOLATION_TYPES = [
        ('TAB_SWITCH', 'Tab switch'),
        ('FULLSCREEN_EXIT', 'Fullscreen exit'),
        ('KEYBOARD_SHORTCUT', 'Keyboard shortcut'),
        ('DEVELOPER_TOOLS', 'Developer tools'),
        ('COPY_PASTE_ATTEMPT', 'Copy/paste attempt'),
        ('CONTEXT_MENU', 'Context menu'),
        ('RIGHT_CLICK', 'Right click'),
        ('TIME_MANIPULATION', 'Time manipulation'),
        ('OTHER', 'Other'),
    ]
    SEVERITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('critical', 'Critical'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='violation_id')
    security_lock = models.ForeignKey(SecurityLock, on_delete=models.CASCADE, related_name='violations', db_column='lock_id')
    violation_type = models.CharField(max_length=30, choices=VIOLATION_TYPES, db_column='violation_type')
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES, default='medium', db_column='severity')
    details = models.JSONField(default=dict, blank=True, db_column='details')
    recorded_at = models.DateTimeField(default=timezone.now, db_column='recorded_at')

    class Meta:
        db_table = 'security_violations'
        managed = True
        ordering = ['recorded_at']


class UnlockEntry(models.Model):
    """
    Append-only audit row for one unlock action on a quiz or security lock.
    ``sequence`` is the lock's version after the unlock, so entries of one
    lock are strictly ordered even when actors race.
    """
    KIND_CHOICES = [
        (QuizLock.KIND, 'Quiz lock'),
        (SecurityLock.KIND, 'Security lock'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='entry_id')
    lock_kind = models.CharField(max_length=10, choices=KIND_CHOICES, db_column='lock_kind')
    lock_id = models.UUIDField(db_column='lock_id')
    sequence = models.PositiveIntegerField(db_column='sequence')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='unlock_entries', db_column='student_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, null=True, blank=True, related_name='unlock_entries', db_column='unit_id')
    actor = models.ForeignKey(UserProfile, on_delete=models.PROTECT, related_name='unlocks_performed', db_column='actor_id')
    actor_role = models.CharField(max_length=20, choices=Role.choices, db_column='actor_role')
    reason = models.CharField(max_length=500, blank=True, default='', db_column='reason')
    note = models.TextField(blank=True, default='', db_column='note')
    was_locked = models.BooleanField(db_column='was_locked')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'unlock_entries'
        managed = True
        ordering = ['created_at', 'sequence']
        unique_together = ['lock_kind', 'lock_id', 'sequence']

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Unlock audit entries are append-only")
        super().save(*args, **kwargs)


class UnlockRequest(models.Model):
    """Teacher-filed request for a higher tier to clear a student's locks"""

    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='request_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='unlock_requests', db_column='student_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='unlock_requests', db_column='course_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='unlock_requests', db_column='unit_id')
    requested_by = models.ForeignKey(UserProfile, on_delete=models.PROTECT, related_name='unlock_requests_filed', db_column='requested_by')
    required_tier = models.CharField(max_length=20, choices=Role.choices, default=Role.HOD, db_column='required_tier')
    reason = models.CharField(max_length=500, blank=True, default='', db_column='reason')
    request_note = models.TextField(blank=True, default='', db_column='request_note')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_column='status')
    reviewed_by = models.ForeignKey(UserProfile, on_delete=models.PROTECT, null=True, blank=True, related_name='unlock_requests_reviewed', db_column='reviewed_by')
    reviewed_at = models.DateTimeField(blank=True, null=True, db_column='reviewed_at')
    note = models.TextField(blank=True, default='', db_column='review_note')
    cancelled_at = models.DateTimeField(blank=True, null=True, db_column='cancelled_at')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'unlock_requests'
        managed = True
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'unit'],
                condition=Q(status='pending'),
                name='uniq_pending_unlock_request',
            ),
        ]

    @property
    def is_terminal(self):
        return self.status != self.STATUS_PENDING

    def __str__(self):
        return f"Unlock request {self.id} ({self.status})"
