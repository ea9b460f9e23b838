"""
Role model for the access hierarchy.

Each role maps to the scope inside which it may clear locks. The table is
consulted once, at the unlock workflow boundary.
"""
from enum import Enum

from django.db import models


class Role(models.TextChoices):
    STUDENT = 'student', 'Student'
    TEACHER = 'teacher', 'Teacher'
    HOD = 'hod', 'Head of Department'
    DEAN = 'dean', 'Dean'
    ADMIN = 'admin', 'Admin'


class Scope(Enum):
    SECTION = 'section'
    DEPARTMENT = 'department'
    UNRESTRICTED = 'unrestricted'


UNLOCK_SCOPE = {
    Role.TEACHER: Scope.SECTION,
    Role.HOD: Scope.DEPARTMENT,
    Role.DEAN: Scope.UNRESTRICTED,
    Role.ADMIN: Scope.UNRESTRICTED,
}

# Lowest to highest authority.
UNLOCK_TIERS = [Role.TEACHER, Role.HOD, Role.DEAN, Role.ADMIN]


def tier_rank(role):
    """Position of ``role`` in the unlock hierarchy, or None for students."""
    try:
        return UNLOCK_TIERS.index(Role(role))
    except ValueError:
        return None


def outranks_or_equals(role, required):
    rank = tier_rank(role)
    return rank is not None and rank >= tier_rank(required)
