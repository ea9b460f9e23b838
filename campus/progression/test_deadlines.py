"""
Deadline evaluation tests
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from types import SimpleNamespace

from django.test import SimpleTestCase

from .services.deadlines import evaluate_deadline, activity_compliance, NO_DEADLINE

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=dt_timezone.utc)


def unit(deadline=None, has_deadline=True, strict=True, warning_days=3, description=''):
    return SimpleNamespace(
        has_deadline=has_deadline,
        deadline=deadline,
        strict_deadline=strict,
        warning_days=warning_days,
        deadline_description=description,
    )


class EvaluateDeadlineTests(SimpleTestCase):
    """Deadline status computed from unit configuration and a clock reading"""

    def test_unit_without_deadline(self):
        """Deadline fields are ignored when has_deadline is off"""
        status = evaluate_deadline(unit(deadline=NOW - timedelta(days=5), has_deadline=False), NOW)
        self.assertEqual(status, NO_DEADLINE)
        self.assertFalse(status.is_expired)
        self.assertIsNone(status.days_remaining)

    def test_missing_timestamp_means_no_deadline(self):
        status = evaluate_deadline(unit(deadline=None), NOW)
        self.assertFalse(status.has_deadline)
        self.assertFalse(status.blocks_activity)

    def test_days_remaining_is_floored(self):
        status = evaluate_deadline(unit(deadline=NOW + timedelta(days=2, hours=23)), NOW)
        self.assertEqual(status.days_remaining, 2)
        self.assertTrue(status.in_warning_window)
        self.assertFalse(status.is_expired)

    def test_outside_warning_window(self):
        status = evaluate_deadline(unit(deadline=NOW + timedelta(days=5)), NOW)
        self.assertEqual(status.days_remaining, 5)
        self.assertFalse(status.in_warning_window)
        self.assertIsNone(status.warning())

    def test_deadline_at_now_is_not_expired(self):
        """Expiry is strictly after the deadline"""
        status = evaluate_deadline(unit(deadline=NOW), NOW)
        self.assertFalse(status.is_expired)
        self.assertEqual(status.days_remaining, 0)
        self.assertTrue(status.in_warning_window)
        self.assertEqual(status.warning()['message'], 'Deadline is today')

    def test_one_second_past_strict_deadline(self):
        status = evaluate_deadline(unit(deadline=NOW - timedelta(seconds=1)), NOW)
        self.assertTrue(status.is_expired)
        self.assertEqual(status.days_remaining, -1)
        self.assertFalse(status.in_warning_window)
        self.assertTrue(status.blocks_activity)

    def test_soft_deadline_reports_expiry_without_blocking(self):
        status = evaluate_deadline(unit(deadline=NOW - timedelta(seconds=1), strict=False), NOW)
        self.assertTrue(status.is_expired)
        self.assertFalse(status.blocks_activity)

    def test_warning_payload(self):
        status = evaluate_deadline(unit(deadline=NOW + timedelta(days=1, hours=2), description='Lab report'), NOW)
        warning = status.warning()
        self.assertEqual(warning['message'], 'Deadline is tomorrow')
        self.assertEqual(warning['days_remaining'], 1)
        self.assertEqual(warning['description'], 'Lab report')
        self.assertTrue(warning['strict'])

    def test_custom_warning_days(self):
        status = evaluate_deadline(unit(deadline=NOW + timedelta(days=6), warning_days=7), NOW)
        self.assertTrue(status.in_warning_window)
        self.assertEqual(status.warning()['message'], 'Deadline in 6 days')


class ActivityComplianceTests(SimpleTestCase):
    """Whether an activity counts toward completion at a given time"""

    def test_before_deadline(self):
        self.assertEqual(activity_compliance(unit(deadline=NOW + timedelta(hours=1)), NOW), (True, False))

    def test_after_strict_deadline(self):
        self.assertEqual(activity_compliance(unit(deadline=NOW - timedelta(hours=1)), NOW), (False, True))

    def test_after_soft_deadline(self):
        self.assertEqual(activity_compliance(unit(deadline=NOW - timedelta(hours=1), strict=False), NOW), (True, True))

    def test_no_deadline(self):
        self.assertEqual(activity_compliance(unit(has_deadline=False), NOW), (True, False))
