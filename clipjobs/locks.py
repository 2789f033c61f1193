import logging
from contextlib import contextmanager
from uuid import uuid4

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)


def _join_key(job_id) -> str:
    return f"clip-jobs:join:{job_id}"


@contextmanager
def join_guard(job_id, timeout: int | None = None):
    """
    Per-job exclusion around submission to the transcoder.

    Yields True when this caller holds the guard, False when someone else
    does. cache.add() is atomic, and with the Redis cache it holds across
    worker processes. The timeout only matters if the holder dies.
    """
    key = _join_key(job_id)
    token = uuid4().hex
    acquired = cache.add(key, token, timeout or settings.CLIP_JOBS_JOIN_GUARD_SECONDS)
    if not acquired:
        logger.debug("Join for job %s already in progress", job_id)
    try:
        yield acquired
    finally:
        if acquired and cache.get(key) == token:
            cache.delete(key)
