"""
Clip availability: asking gateways to upload clips and hearing back when
they land in cloud storage.

Gateways are asked over HTTP. Arrivals are published on the
CLIP_EVENTS_CHANNEL Redis channel as ``{"clipID": ..., "availableCloud": ...}``
by whoever flips ``Clip.available_cloud`` (see mark_clip_available_cloud).
"""
import json
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional

import redis
import requests
from django.conf import settings
from django.db import transaction

from . import events
from .errors import ClipRequestError
from .models import Clip, Gateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClipAvailabilityEvent:
    clip_id: str
    available_cloud: bool


def request_upload(gateway_id: str, clip_ids: list[str]) -> dict:
    """
    Ask a gateway to upload ``clip_ids`` and mark them requested.
    Returns ``{"total_updated": <clips marked requested>}``.
    """
    try:
        gateway = Gateway.objects.get(pk=gateway_id)
    except Gateway.DoesNotExist:
        raise ClipRequestError(f"Cannot find gateway for ID {gateway_id}")

    headers = {}
    if gateway.connection_token:
        headers["Authorization"] = f"Bearer {gateway.connection_token}"

    try:
        resp = requests.post(
            f"{gateway.connection_url.rstrip('/')}/api/clips/upload",
            json={"clips": clip_ids},
            headers=headers,
            timeout=settings.CLIP_JOBS_GATEWAY_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        success = bool(resp.json().get("success"))
    except (requests.RequestException, ValueError) as e:
        raise ClipRequestError(f"Could not request clips from gateway {gateway_id}: {e}") from e

    if not success:
        logger.warning("Gateway %s refused to upload %d clips", gateway_id, len(clip_ids))
        return {"total_updated": 0}

    total = Clip.objects.filter(pk__in=clip_ids).update(requested=True)
    return {"total_updated": total}


def publish_clip_event(clip_id: str, available_cloud: bool, client=None):
    payload = json.dumps({"clipID": clip_id, "availableCloud": available_cloud})
    (client or events.get_redis()).publish(settings.CLIP_EVENTS_CHANNEL, payload)


def mark_clip_available_cloud(clip_id: str) -> Clip:
    """Record that a clip reached cloud storage and announce it to waiting jobs."""
    with transaction.atomic():
        clip = Clip.objects.select_for_update().get(pk=clip_id)
        changed = not clip.available_cloud
        if changed:
            clip.available_cloud = True
            clip.save(update_fields=["available_cloud"])
            transaction.on_commit(lambda: publish_clip_event(clip_id, True))
    if changed:
        logger.info("Clip %s is now available in the cloud", clip_id)
    return clip


def cloud_available_ids(clip_ids: Iterable[str]) -> set[str]:
    return set(Clip.objects.filter(pk__in=list(clip_ids), available_cloud=True).values_list("pk", flat=True))


class ClipEventStream:
    """
    Blocking subscription to clip availability events.

    Use as a context manager so the subscription is open before uploads are
    requested; iterate to receive events. Iteration yields None whenever
    ``poll_seconds`` pass without a message, so a waiter can re-check its job.
    """

    def __init__(self, client=None, channel: str | None = None, poll_seconds: float | None = None):
        self._client = client
        self._channel = channel or settings.CLIP_EVENTS_CHANNEL
        self._poll_seconds = poll_seconds if poll_seconds is not None else settings.CLIP_JOBS_EVENT_POLL_SECONDS
        self._pubsub = None

    def __enter__(self):
        client = self._client or events.get_redis()
        self._pubsub = client.pubsub(ignore_subscribe_messages=True)
        self._pubsub.subscribe(self._channel)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None

    def __iter__(self) -> Iterator[Optional[ClipAvailabilityEvent]]:
        while self._pubsub is not None:
            message = self._pubsub.get_message(timeout=self._poll_seconds)
            if message is None:
                yield None
                continue
            if message.get("type") != "message":
                continue
            try:
                data = json.loads(message["data"])
                yield ClipAvailabilityEvent(str(data["clipID"]), bool(data.get("availableCloud")))
            except (ValueError, KeyError, TypeError):
                logger.warning("Ignoring malformed clip event: %r", message.get("data"))


def wait_for_cloud_clips(
    stream: Iterable[Optional[ClipAvailabilityEvent]],
    clip_ids: Iterable[str],
    on_arrival: Callable[[list[str]], None] = lambda arrived: None,
    already_arrived: Iterable[str] = (),
    should_stop: Optional[Callable[[], bool]] = None,
) -> list[str]:
    """
    Block until every clip in ``clip_ids`` has been reported in the cloud.

    ``on_arrival`` gets the ids arrived so far after each new arrival. There
    is no timeout; the stall sweep is what gives up on a job. ``should_stop``
    is checked on every message and idle tick (a None from the stream), and
    ends the wait early when it returns True.
    """
    wanted = set(clip_ids)
    arrived = [c for c in already_arrived if c in wanted]
    if arrived:
        on_arrival(list(arrived))
    if wanted.issubset(arrived):
        return arrived

    logger.debug("Waiting for %d clips to upload", len(wanted) - len(arrived))
    for event in stream:
        if should_stop is not None and should_stop():
            logger.info("Stopped waiting with %d/%d clips in cloud", len(arrived), len(wanted))
            break
        if event is None or not event.available_cloud or event.clip_id not in wanted or event.clip_id in arrived:
            continue
        arrived.append(event.clip_id)
        logger.debug("Clip %s in cloud (%d/%d)", event.clip_id, len(arrived), len(wanted))
        on_arrival(list(arrived))
        if len(arrived) >= len(wanted):
            break
    return arrived
