"""
Access engine: one object holding every progression component, wired once
and handed to the views. Tests build their own with a fixed clock.
"""
from django.utils import timezone

from ..conf import load_settings
from .attempts import AttemptLedger
from .authority import UnlockAuthority
from .locks import QuizLockManager, SecurityLockManager
from .progress import ProgressRecorder
from .quiz_pool import QuizPoolSelector
from .unit_progression import UnitProgressionResolver
from .unlocks import UnlockWorkflow


class AccessEngine:

    def __init__(self, clock=None, settings=None):
        self.clock = clock or timezone.now
        self.settings = settings or load_settings()

        self.resolver = UnitProgressionResolver(self.clock)
        self.quiz_locks = QuizLockManager(self.clock, self.settings)
        self.security_locks = SecurityLockManager(self.clock, self.settings)
        self.selector = QuizPoolSelector(self.clock)
        self.progress = ProgressRecorder(self.resolver, self.clock, self.settings)
        self.ledger = AttemptLedger(
            resolver=self.resolver,
            quiz_locks=self.quiz_locks,
            security_locks=self.security_locks,
            selector=self.selector,
            progress=self.progress,
            clock=self.clock,
            settings=self.settings,
        )
        self.authority = UnlockAuthority(self.settings)
        self.unlocks = UnlockWorkflow(
            quiz_locks=self.quiz_locks,
            security_locks=self.security_locks,
            authority=self.authority,
            clock=self.clock,
            settings=self.settings,
        )

    def describe(self):
        return {
            'security_violation_threshold': self.settings.security_violation_threshold,
            'tier_unlock_limit': self.settings.tier_unlock_limit,
            'conflict_retries': self.settings.conflict_retries,
        }
