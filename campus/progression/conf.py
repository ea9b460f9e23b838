"""
Engine settings, read from ``settings.COURSE_ACCESS`` with defaults.
"""
from dataclasses import dataclass

from django.conf import settings


@dataclass(frozen=True)
class AccessSettings:
    security_violation_threshold: int = 3
    tier_unlock_limit: int = 3
    conflict_retries: int = 3
    default_pass_threshold: float = 0.5


def load_settings(overrides=None):
    configured = dict(getattr(settings, 'COURSE_ACCESS', {}))
    configured.update(overrides or {})
    defaults = AccessSettings()
    return AccessSettings(
        security_violation_threshold=int(configured.get('SECURITY_VIOLATION_THRESHOLD', defaults.security_violation_threshold)),
        tier_unlock_limit=int(configured.get('TIER_UNLOCK_LIMIT', defaults.tier_unlock_limit)),
        conflict_retries=int(configured.get('CONFLICT_RETRIES', defaults.conflict_retries)),
        default_pass_threshold=float(configured.get('DEFAULT_PASS_THRESHOLD', defaults.default_pass_threshold)),
    )
