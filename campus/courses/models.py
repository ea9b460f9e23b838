"""
Course structure models - courses, ordered units, videos, teacher quizzes and quiz pools
"""
from django.db import models
from django.utils import timezone
import uuid

from hierarchy.models import Department, UserProfile


class Course(models.Model):
    """A course owned by a department; carries the progression policy for its units"""

    COMPLETION_VIDEOS = 'videos'
    COMPLETION_QUIZ = 'quiz'
    COMPLETION_BOTH = 'videos_and_quiz'
    COMPLETION_RULE_CHOICES = [
        (COMPLETION_VIDEOS, 'All videos watched'),
        (COMPLETION_QUIZ, 'Quiz passed'),
        (COMPLETION_BOTH, 'All videos watched and quiz passed'),
    ]

    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('published', 'Published'),
        ('archived', 'Archived'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='course_id')
    title = models.CharField(max_length=500, db_column='title')
    code = models.CharField(max_length=50, blank=True, db_column='course_code')
    description = models.TextField(blank=True, null=True, db_column='description')
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name='courses', db_column='department_id')
    completion_rule = models.CharField(
        max_length=30,
        default=COMPLETION_BOTH,
        choices=COMPLETION_RULE_CHOICES,
        db_column='completion_rule'
    )
    attempt_limit = models.PositiveIntegerField(default=1, db_column='attempt_limit')
    # Ratio of points needed to pass; empty means the engine default
    pass_threshold = models.FloatField(blank=True, null=True, db_column='pass_threshold')
    status = models.CharField(
        max_length=20,
        default='published',
        choices=STATUS_CHOICES,
        db_column='status'
    )

    created_by = models.ForeignKey(UserProfile, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_courses', db_column='created_by')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'courses'
        managed = True
        ordering = ['-created_at']

    @property
    def requires_videos(self):
        return self.completion_rule in (self.COMPLETION_VIDEOS, self.COMPLETION_BOTH)

    @property
    def requires_quiz(self):
        return self.completion_rule in (self.COMPLETION_QUIZ, self.COMPLETION_BOTH)

    def __str__(self):
        return self.title


class Unit(models.Model):
    """Ordered subdivision of a course, with optional deadline configuration"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='unit_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='units', db_column='course_id')
    unit_number = models.PositiveIntegerField(db_column='unit_number')
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)

    # Deadline fields are ignored unless has_deadline is set
    has_deadline = models.BooleanField(default=False, db_column='has_deadline')
    deadline = models.DateTimeField(blank=True, null=True, db_column='deadline')
    deadline_description = models.CharField(max_length=500, blank=True, default='', db_column='deadline_description')
    strict_deadline = models.BooleanField(default=True, db_column='strict_deadline')
    warning_days = models.PositiveIntegerField(default=3, db_column='warning_days')

    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'units'
        managed = True
        ordering = ['course', 'unit_number']
        unique_together = ['course', 'unit_number']

    def quiz_source(self):
        """
        Where this unit's quiz questions come from.
        Returns the QuizPool if one is configured, otherwise the first active
        direct Quiz, otherwise None.
        """
        pool = QuizPool.objects.filter(unit=self).first()
        if pool is not None:
            return pool
        return self.quizzes.filter(is_active=True).order_by('created_at').first()

    def __str__(self):
        return f"{self.course.title} - Unit {self.unit_number}: {self.title}"


class Video(models.Model):
    """Video belonging to a unit"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='video_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='videos', db_column='unit_id')
    title = models.CharField(max_length=255)
    url = models.URLField(max_length=1000, blank=True, db_column='video_url')
    duration_seconds = models.PositiveIntegerField(default=0, db_column='duration_seconds')
    order = models.IntegerField(default=0, db_column='order')

    class Meta:
        db_table = 'videos'
        managed = True
        ordering = ['unit', 'order']

    def __str__(self):
        return self.title


class Quiz(models.Model):
    """Quiz contributed by a teacher for a unit"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='quiz_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='quizzes', db_column='unit_id')
    title = models.CharField(max_length=255)
    created_by = models.ForeignKey(UserProfile, on_delete=models.SET_NULL, null=True, blank=True, related_name='contributed_quizzes', db_column='created_by')
    is_active = models.BooleanField(default=True, db_column='is_active')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'quizzes'
        managed = True

    @property
    def max_score(self):
        return sum(q.points for q in self.questions.all())

    def __str__(self):
        return self.title


class Question(models.Model):
    """Multiple choice question; correct_option indexes into options"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='question_id')
    quiz = models.ForeignKey(Quiz, on_delete=models.CASCADE, related_name='questions', db_column='quiz_id')
    text = models.TextField(db_column='text')
    options = models.JSONField(default=list, db_column='options')
    correct_option = models.IntegerField(db_column='correct_option')
    points = models.PositiveIntegerField(default=1, db_column='points')
    order = models.IntegerField(default=0, db_column='order')

    class Meta:
        db_table = 'questions'
        managed = True
        ordering = ['quiz', 'order']

    def __str__(self):
        return self.text[:80]


class QuizPool(models.Model):
    """Shared bank for a unit built from several teachers' quizzes"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='pool_id')
    unit = models.OneToOneField(Unit, on_delete=models.CASCADE, related_name='quiz_pool', db_column='unit_id')
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default='')
    questions_per_attempt = models.PositiveIntegerField(default=10, db_column='questions_per_attempt')
    quizzes = models.ManyToManyField(Quiz, blank=True, related_name='pools', db_table='quiz_pool_quizzes')
    created_by = models.ForeignKey(UserProfile, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_pools', db_column='created_by')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'quiz_pools'
        managed = True

    def questions(self):
        return Question.objects.filter(quiz__pools=self, quiz__is_active=True).order_by('id')

    @property
    def contributors(self):
        return UserProfile.objects.filter(contributed_quizzes__pools=self).distinct()

    def __str__(self):
        return self.title
