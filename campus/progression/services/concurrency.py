"""
Optimistic concurrency helpers.

Rows guarded here carry a ``version`` column. A write only lands when the
version it read is still current; otherwise ConflictingUpdate is raised and
the whole operation is retried by ``retry_on_conflict``.
"""
import functools
import logging

from django.db.models import F

from ..exceptions import ConflictingUpdate

logger = logging.getLogger(__name__)


def versioned_update(instance, **changes):
    """
    UPDATE instance's row with ``changes`` iff its version is unchanged.
    On success the in-memory instance reflects the write and the new version
    is returned.
    """
    model = type(instance)
    updated = model.objects.filter(pk=instance.pk, version=instance.version).update(
        version=F('version') + 1, **changes
    )
    if not updated:
        logger.info(f"Version conflict on {model.__name__} {instance.pk} at version {instance.version}")
        raise ConflictingUpdate(model=model.__name__, id=str(instance.pk))

    for field, value in changes.items():
        setattr(instance, field, value)
    instance.version += 1
    return instance.version


def retry_on_conflict(method):
    """
    Re-run an engine method when it raises ConflictingUpdate, up to the
    owner's ``settings.conflict_retries`` attempts in total.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        attempts = max(1, self.settings.conflict_retries)
        for attempt in range(1, attempts + 1):
            try:
                return method(self, *args, **kwargs)
            except ConflictingUpdate:
                if attempt == attempts:
                    logger.warning(f"{method.__qualname__} gave up after {attempts} conflicting updates")
                    raise
                logger.info(f"{method.__qualname__} retrying after conflict ({attempt}/{attempts})")
    return wrapper
