"""
Deadline evaluation for units.

Pure functions over a unit's deadline configuration and a point in time;
nothing here touches the database.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class DeadlineStatus:
    has_deadline: bool
    is_expired: bool = False
    days_remaining: Optional[int] = None
    in_warning_window: bool = False
    strict: bool = False
    deadline: Optional[datetime] = None
    description: str = ''

    @property
    def blocks_activity(self):
        """Strict deadlines hard-block once expired; soft ones only warn."""
        return self.has_deadline and self.strict and self.is_expired

    def warning(self):
        if not self.in_warning_window:
            return None
        if self.days_remaining == 0:
            message = 'Deadline is today'
        elif self.days_remaining == 1:
            message = 'Deadline is tomorrow'
        else:
            message = f"Deadline in {self.days_remaining} days"
        return {
            'message': message,
            'days_remaining': self.days_remaining,
            'deadline': self.deadline.isoformat(),
            'strict': self.strict,
            'description': self.description,
        }

    def as_dict(self):
        return {
            'has_deadline': self.has_deadline,
            'deadline': self.deadline.isoformat() if self.deadline else None,
            'is_expired': self.is_expired,
            'days_remaining': self.days_remaining,
            'in_warning_window': self.in_warning_window,
            'strict': self.strict,
            'description': self.description,
        }


NO_DEADLINE = DeadlineStatus(has_deadline=False)


def evaluate_deadline(unit, now):
    """
    Deadline state of ``unit`` at ``now``.

    days_remaining is floor((deadline - now) / 1 day), so it turns negative
    the moment the deadline passes. A unit without ``has_deadline``, or with
    the flag set but no timestamp, has no deadline.
    """
    deadline = getattr(unit, 'deadline', None)
    if not getattr(unit, 'has_deadline', False) or not isinstance(deadline, datetime):
        return NO_DEADLINE

    days_remaining = math.floor((deadline - now) / ONE_DAY)
    return DeadlineStatus(
        has_deadline=True,
        is_expired=now > deadline,
        days_remaining=days_remaining,
        in_warning_window=0 <= days_remaining <= unit.warning_days,
        strict=bool(unit.strict_deadline),
        deadline=deadline,
        description=unit.deadline_description or '',
    )


def activity_compliance(unit, when):
    """
    Whether an activity (video watch, quiz submission) at ``when`` counts.
    Returns (counts, after_deadline): after a strict deadline the activity
    does not count; after a soft one it counts but is flagged.
    """
    status = evaluate_deadline(unit, when)
    if not status.is_expired:
        return True, False
    return not status.strict, True
