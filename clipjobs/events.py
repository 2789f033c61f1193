"""
Progress events for clip jobs.

Every committed job mutation publishes ``{"eventType": ..., "job": ...}`` on
the CLIP_JOB_EVENTS_CHANNEL Redis channel, where the browser fan-out picks it
up. Payloads are rendered when the mutation happens and published after the
surrounding transaction commits, so a job's events leave in commit order.
"""
import json
import logging

import redis
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from .serializers import JobSerializer

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"

_client = None


def get_redis():
    global _client
    if _client is None:
        _client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def render(event_type: str, job) -> str:
    return json.dumps({"eventType": event_type, "job": JobSerializer(job).data}, cls=DjangoJSONEncoder)


def publish(payload: str, channel: str | None = None):
    channel = channel or settings.CLIP_JOB_EVENTS_CHANNEL
    try:
        get_redis().publish(channel, payload)
    except redis.RedisError:
        # Losing a progress event never rolls back the job; the next mutation resends state.
        logger.exception("Could not publish clip job event on %s", channel)


def emit(event_type: str, job):
    payload = render(event_type, job)
    transaction.on_commit(lambda: publish(payload))
