"""
Fetch helpers that turn missing rows into NotFound.
"""
from django.core.exceptions import ValidationError

from hierarchy.models import UserProfile
from hierarchy.roles import Role
from courses.models import Course, Unit, QuizPool
from ..exceptions import NotFound


def _get(queryset, label, pk):
    try:
        return queryset.get(pk=pk)
    except (queryset.model.DoesNotExist, ValidationError, ValueError):
        raise NotFound(f"{label} not found", id=str(pk))


def get_student(student_id):
    student = _get(UserProfile.objects.all(), 'Student', student_id)
    if student.role != Role.STUDENT:
        raise NotFound('Student not found', id=str(student_id))
    return student


def get_user(user_id):
    return _get(UserProfile.objects.select_related('department'), 'User', user_id)


def get_course(course_id):
    return _get(Course.objects.select_related('department'), 'Course', course_id)


def get_unit(unit_id):
    return _get(Unit.objects.select_related('course', 'course__department'), 'Unit', unit_id)


def get_pool(pool_id):
    return _get(QuizPool.objects.select_related('unit', 'unit__course'), 'Quiz pool', pool_id)
