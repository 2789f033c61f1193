import json
from datetime import timedelta
from itertools import count

import pytest
from django.utils import timezone

from clipjobs import availability, events, store, tasks, transcoder
from clipjobs.models import Camera, Clip, Gateway, Job
from clipjobs.utils import compute_clip_hash

from .helpers import FakeTranscoder


@pytest.fixture
def fake_transcoder(monkeypatch):
    fake = FakeTranscoder()
    monkeypatch.setattr(transcoder, "submit_combine_job", fake.submit_combine_job)
    monkeypatch.setattr(transcoder, "get_status", fake.get_status)
    monkeypatch.setattr(transcoder, "get_file_details", fake.get_file_details)
    return fake


@pytest.fixture
def upload_requests(monkeypatch):
    """Records gateway upload requests instead of calling gateways."""
    calls = []

    def request_upload(gateway_id, clip_ids):
        calls.append((gateway_id, list(clip_ids)))
        Clip.objects.filter(pk__in=clip_ids).update(requested=True)
        return {"total_updated": len(clip_ids)}

    monkeypatch.setattr(availability, "request_upload", request_upload)
    return calls


@pytest.fixture
def published(monkeypatch):
    """Progress events that would have gone out on Redis, decoded."""
    payloads = []
    monkeypatch.setattr(events, "publish", lambda payload, channel=None: payloads.append(json.loads(payload)))
    return payloads


@pytest.fixture
def enqueued(monkeypatch):
    """Celery tasks that would have been sent to the broker."""
    sent = []
    monkeypatch.setattr(
        tasks.start_clip_job,
        "apply_async",
        lambda args=None, kwargs=None, **options: sent.append(("start", args[0], options.get("task_id"))),
    )
    monkeypatch.setattr(tasks.update_clip_job, "delay", lambda job_id: sent.append(("update", job_id, None)))
    return sent


@pytest.fixture
def gateway(db):
    return Gateway.objects.create(
        id="gw-1",
        name="Yard",
        s3_bucket="yard-bucket",
        connection_url="http://gw-1.local:8080",
        connection_token="secret-token",
    )


@pytest.fixture
def camera(gateway):
    return Camera.objects.create(id="cam-1", name="Gate", gateway=gateway)


@pytest.fixture
def make_clip(camera):
    seq = count(1)
    base = timezone.now() - timedelta(hours=1)

    def _make(clip_id=None, *, cloud=True, local=True):
        n = next(seq)
        start = base + timedelta(minutes=n)
        return Clip.objects.create(
            id=clip_id or f"clip-{n}",
            camera=camera,
            gateway=camera.gateway,
            file_name=f"{camera.id}-2024-5-17_10-{n}-0.mp4",
            start=start,
            end=start + timedelta(seconds=59),
            available_cloud=cloud,
            available_locally=local,
        )

    return _make


@pytest.fixture
def make_job(make_clip):
    """A persisted CREATED job over freshly made clips (no start task queued)."""
    def _make(clips=None, file_path="yard-bucket/2024-5-17/cam-1/concatenated/out"):
        clips = clips if clips is not None else [make_clip(), make_clip()]
        ids = [c.id for c in clips]
        return store.create_job(Job.Type.CONCAT, file_path, compute_clip_hash(ids), ids)

    return _make

