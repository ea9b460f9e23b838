"""
Builders for progression test data
"""
from datetime import timedelta
import itertools

from django.utils import timezone

from hierarchy.models import Department, UserProfile, Section, SectionMember, SectionCourse
from hierarchy.roles import Role
from courses.models import Course, Unit, Video, Quiz, Question, QuizPool

_sequence = itertools.count(1)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now=None):
        self.now = now or timezone.now().replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_department(name=None):
    n = next(_sequence)
    return Department.objects.create(name=name or f"Department {n}", code=f"D{n}")


def make_user(role=Role.STUDENT, department=None, first_name=None, last_name='User'):
    n = next(_sequence)
    return UserProfile.objects.create(
        first_name=first_name or Role(role).label,
        last_name=f"{last_name} {n}",
        email=f"{Role(role).value}{n}@campus.test",
        role=role,
        department=department,
    )


def make_section(department, teachers=(), students=(), courses=()):
    section = Section.objects.create(name=f"Section {next(_sequence)}", department=department)
    for teacher in teachers:
        SectionMember.objects.create(section=section, user=teacher, member_role='teacher')
    for student in students:
        SectionMember.objects.create(section=section, user=student, member_role='student')
    for course in courses:
        SectionCourse.objects.create(section=section, course=course)
    return section


def make_course(department, **kwargs):
    kwargs.setdefault('title', f"Course {next(_sequence)}")
    return Course.objects.create(department=department, **kwargs)


def make_unit(course, unit_number, videos=0, **kwargs):
    kwargs.setdefault('title', f"Unit {unit_number}")
    unit = Unit.objects.create(course=course, unit_number=unit_number, **kwargs)
    for order in range(videos):
        Video.objects.create(unit=unit, title=f"Video {order + 1}", order=order, duration_seconds=300)
    return unit


def make_quiz(unit, teacher=None, questions=4, points=1, title=None):
    quiz = Quiz.objects.create(unit=unit, title=title or f"Quiz for {unit.title}", created_by=teacher)
    for order in range(questions):
        Question.objects.create(
            quiz=quiz,
            text=f"{quiz.title} question {order + 1}",
            options=['A', 'B', 'C', 'D'],
            correct_option=order % 4,
            points=points,
            order=order,
        )
    return quiz


def make_pool(unit, quizzes, questions_per_attempt=5, created_by=None):
    pool = QuizPool.objects.create(
        unit=unit,
        title=f"Pool for {unit.title}",
        questions_per_attempt=questions_per_attempt,
        created_by=created_by,
    )
    pool.quizzes.set(quizzes)
    return pool


def answers_for(questions, correct):
    """Answer the first ``correct`` questions right and the rest wrong."""
    answers = {}
    for index, question in enumerate(questions):
        if index < correct:
            answers[str(question.id)] = question.correct_option
        else:
            answers[str(question.id)] = (question.correct_option + 1) % len(question.options)
    return answers
