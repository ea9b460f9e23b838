from django.test import SimpleTestCase

from .roles import Role, Scope, UNLOCK_SCOPE, tier_rank, outranks_or_equals


class RoleTests(SimpleTestCase):
    """Tier ordering and unlock scope per role"""

    def test_tier_order(self):
        self.assertEqual(tier_rank(Role.TEACHER), 0)
        self.assertEqual(tier_rank('hod'), 1)
        self.assertEqual(tier_rank(Role.DEAN), 2)
        self.assertEqual(tier_rank(Role.ADMIN), 3)

    def test_students_and_unknown_roles_have_no_tier(self):
        self.assertIsNone(tier_rank(Role.STUDENT))
        self.assertIsNone(tier_rank('janitor'))
        self.assertFalse(outranks_or_equals(Role.STUDENT, Role.TEACHER))

    def test_outranks_or_equals(self):
        self.assertTrue(outranks_or_equals(Role.HOD, Role.HOD))
        self.assertTrue(outranks_or_equals(Role.ADMIN, Role.DEAN))
        self.assertFalse(outranks_or_equals(Role.TEACHER, Role.HOD))

    def test_scope_table(self):
        self.assertEqual(UNLOCK_SCOPE[Role.TEACHER], Scope.SECTION)
        self.assertEqual(UNLOCK_SCOPE[Role.HOD], Scope.DEPARTMENT)
        self.assertEqual(UNLOCK_SCOPE[Role.DEAN], Scope.UNRESTRICTED)
        self.assertNotIn(Role.STUDENT, UNLOCK_SCOPE)
