"""
Unlock authority: who may clear which student's locks.

Scope comes from the role table in hierarchy.roles; tier escalation comes from
the per-tier unlock counters on the quiz lock.
"""
import logging

from hierarchy.models import Section
from hierarchy.roles import Role, Scope, UNLOCK_SCOPE, outranks_or_equals
from ..exceptions import Forbidden

logger = logging.getLogger(__name__)


class UnlockAuthority:

    def __init__(self, settings):
        self.settings = settings

    def scope_of(self, actor):
        try:
            return UNLOCK_SCOPE.get(Role(actor.role))
        except ValueError:
            return None

    def teaches(self, teacher, student, course):
        """True when one section has the teacher, the student and the course."""
        return (
            Section.objects
            .filter(memberships__user=teacher, memberships__member_role='teacher')
            .filter(memberships__user=student, memberships__member_role='student')
            .filter(course_assignments__course=course)
            .exists()
        )

    def in_scope(self, actor, student, course):
        scope = self.scope_of(actor)
        if scope is None:
            return False
        if scope == Scope.UNRESTRICTED:
            return True
        if scope == Scope.DEPARTMENT:
            return actor.department_id is not None and actor.department_id == course.department_id
        return self.teaches(actor, student, course)

    def check_scope(self, actor, student, course):
        scope = self.scope_of(actor)
        if scope is None:
            raise Forbidden(f"Role '{actor.role}' cannot unlock quizzes")
        if not self.in_scope(actor, student, course):
            logger.warning(f"{actor.role} {actor.id} refused: student {student.id} / course {course.id} outside {scope.value} scope")
            raise Forbidden(
                f"Student is outside your {scope.value}",
                scope=scope.value,
            )

    def check_tier(self, actor, required):
        if outranks_or_equals(actor.role, required):
            return
        limit = self.settings.tier_unlock_limit
        raise Forbidden(
            f"This quiz has reached its unlock limit for your role ({limit}). "
            f"{Role(required).label} approval is required.",
            required_tier=Role(required).value,
        )
