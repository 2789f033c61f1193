from datetime import timedelta

import pytest
from django.utils import timezone

from clipjobs import orchestrator, store
from clipjobs.models import Clip, Job
from clipjobs.transcoder import OutputDetails, TranscodeStatus

from .helpers import FakeClipEvents, reload, set_job

State = Job.State


@pytest.fixture
def submitted_job(make_clip, make_job):
    job = make_job([make_clip(), make_clip(), make_clip()])
    return set_job(job, state=State.PROCESSING, service_id="svc-1")


@pytest.mark.django_db
def test_progress_is_mirrored(submitted_job, fake_transcoder):
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(percent=35, status="PROGRESSING")

    orchestrator.update_job(submitted_job.id)

    job = reload(submitted_job)
    assert job.generation_progress == 35
    assert job.state == State.PROCESSING


@pytest.mark.django_db
def test_full_percent_completes_even_while_status_is_progressing(submitted_job, fake_transcoder):
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(percent=100, status="PROGRESSING")

    orchestrator.update_job(submitted_job.id)

    job = reload(submitted_job)
    assert job.state == State.COMPLETE
    assert job.finished_at is not None
    # No output details yet, so the generated clip comes on a later poll.
    assert not Clip.objects.filter(type=Clip.Type.GENERATED).exists()
    assert submitted_job.id in store.transcoding_job_ids()


@pytest.mark.django_db
def test_complete_status_completes_with_stale_percent(submitted_job, fake_transcoder):
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(percent=0, status="COMPLETE")

    orchestrator.update_job(submitted_job.id)

    job = reload(submitted_job)
    assert job.state == State.COMPLETE
    assert job.generation_progress == 100


@pytest.mark.django_db
def test_completion_materializes_generated_clip(submitted_job, fake_transcoder):
    members = submitted_job.ordered_clips()
    fake_transcoder.byte_size = 123456
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(
        percent=100,
        status="COMPLETE",
        output_details=OutputDetails(width=1920, height=1080, duration_ms=180500),
    )

    orchestrator.update_job(submitted_job.id)

    job = reload(submitted_job)
    clip = job.generated_clip
    assert clip.type == Clip.Type.GENERATED
    assert (clip.width, clip.height) == (1920, 1080)
    assert clip.duration == pytest.approx(180.5)
    assert clip.file_size == 123456
    assert clip.format == "h265"
    assert clip.available_cloud and not clip.available_locally
    assert clip.start == members[0].start
    assert clip.end == members[-1].end
    assert clip.camera_id == members[0].camera_id
    assert clip.file_name == "out"

    # Linked, so polling stops.
    assert job.id not in store.transcoding_job_ids()


@pytest.mark.django_db
def test_complete_job_without_clip_gets_one_on_next_poll(submitted_job, fake_transcoder):
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(percent=100, status="PROGRESSING")
    orchestrator.update_job(submitted_job.id)

    fake_transcoder.statuses["svc-1"] = TranscodeStatus(
        percent=100, status="COMPLETE", output_details=OutputDetails(width=1280, height=720, duration_ms=60000)
    )
    orchestrator.update_job(submitted_job.id)
    orchestrator.update_job(submitted_job.id)

    assert Clip.objects.filter(type=Clip.Type.GENERATED).count() == 1


@pytest.mark.django_db
def test_remote_error_is_recorded(submitted_job, fake_transcoder):
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(
        percent=20, status="ERROR", error="Unable to open input file"
    )

    orchestrator.update_job(submitted_job.id)

    job = reload(submitted_job)
    assert job.state == State.ERROR
    assert job.error_message == "Unable to open input file"
    assert job.id not in store.transcoding_job_ids()


@pytest.mark.django_db
def test_canceled_remote_job_is_an_error(submitted_job, fake_transcoder):
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(percent=10, status="CANCELED")

    orchestrator.update_job(submitted_job.id)

    job = reload(submitted_job)
    assert job.state == State.ERROR
    assert "canceled" in job.error_message


@pytest.mark.django_db
def test_progress_never_goes_backwards(submitted_job, fake_transcoder):
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(percent=60, status="PROGRESSING")
    orchestrator.update_job(submitted_job.id)
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(percent=45, status="PROGRESSING")
    orchestrator.update_job(submitted_job.id)

    assert reload(submitted_job).generation_progress == 60


@pytest.mark.django_db
def test_transcoder_outage_leaves_job_alone(submitted_job, fake_transcoder):
    fake_transcoder.fail_status = True

    orchestrator.update_job(submitted_job.id)

    job = reload(submitted_job)
    assert job.state == State.PROCESSING
    assert job.service_id == "svc-1"


@pytest.mark.django_db
def test_unsubmitted_job_recovers_once_uploads_finish(make_clip, make_job, fake_transcoder, upload_requests):
    c1, c2 = make_clip(), make_clip(cloud=False)
    # The worker that was waiting on c2 died mid-upload.
    job = set_job(make_job([c1, c2]), state=State.UPLOADING, items_uploaded=1)

    orchestrator.update_job(job.id)
    assert fake_transcoder.submissions == []
    job = reload(job)
    assert job.upload_progress == 50
    assert job.items_uploaded == 1

    Clip.objects.filter(pk=c2.pk).update(available_cloud=True)
    orchestrator.update_job(job.id)

    job = reload(job)
    assert job.items_uploaded == 2
    assert job.state == State.PROCESSING
    assert job.service_id == "svc-1"


@pytest.mark.django_db
def test_unchanged_upload_progress_emits_nothing(
    make_clip, make_job, fake_transcoder, upload_requests, published, django_capture_on_commit_callbacks
):
    job = set_job(make_job([make_clip(), make_clip(cloud=False)]), state=State.UPLOADING)
    orchestrator.update_job(job.id)

    with django_capture_on_commit_callbacks(execute=True):
        orchestrator.update_job(job.id)

    assert published == []


@pytest.mark.django_db
def test_error_job_is_not_polled(submitted_job, fake_transcoder):
    job = set_job(submitted_job, state=State.ERROR)

    orchestrator.update_job(job.id)  # would KeyError if it asked the transcoder

    assert reload(job).state == State.ERROR


@pytest.mark.django_db
def test_failed_upload_request_is_retried_by_update(make_clip, make_job, fake_transcoder, monkeypatch):
    from clipjobs import availability
    from clipjobs.errors import ClipRequestError

    c1 = make_clip(cloud=False)
    job = make_job([make_clip(), c1])
    requests_made = []

    def gateway_down(gateway_id, clip_ids):
        raise ClipRequestError("gateway offline")

    def gateway_up(gateway_id, clip_ids):
        requests_made.append(list(clip_ids))
        Clip.objects.filter(pk__in=clip_ids).update(requested=True)
        return {"total_updated": len(clip_ids)}

    monkeypatch.setattr(availability, "request_upload", gateway_down)
    orchestrator.start_job(job.id, clip_events=FakeClipEvents())
    assert reload(job).state == State.REQUESTING

    monkeypatch.setattr(availability, "request_upload", gateway_up)
    for _ in range(3):
        orchestrator.update_job(job.id)

    # Asked once more; the clip is marked requested after that.
    assert requests_made == [[c1.id]]
    assert reload(job).state == State.UPLOADING

    Clip.objects.filter(pk=c1.pk).update(available_cloud=True)
    orchestrator.update_job(job.id)
    assert reload(job).service_id == "svc-1"


@pytest.mark.django_db
def test_created_job_with_failed_retry_stays_put(make_clip, make_job, fake_transcoder, monkeypatch):
    from clipjobs import availability
    from clipjobs.errors import ClipRequestError

    def gateway_down(gateway_id, clip_ids):
        raise ClipRequestError("gateway offline")

    monkeypatch.setattr(availability, "request_upload", gateway_down)
    job = make_job([make_clip(cloud=False)])

    orchestrator.update_job(job.id)

    assert reload(job).state == State.REQUESTING
    assert fake_transcoder.submissions == []


@pytest.mark.django_db
def test_each_answered_poll_keeps_a_quiet_job_alive(submitted_job, fake_transcoder):
    long_ago = timezone.now() - timedelta(minutes=10)
    job = set_job(submitted_job, last_updated=long_ago)
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(percent=0, status="SUBMITTED")

    orchestrator.update_job(job.id)

    job = reload(job)
    assert job.last_updated > long_ago
    assert job.generation_progress == 0
    assert orchestrator.find_stalled_jobs() == []


@pytest.mark.django_db
def test_overlapping_polls_create_one_generated_clip(submitted_job, fake_transcoder):
    fake_transcoder.statuses["svc-1"] = TranscodeStatus(
        percent=100, status="COMPLETE", output_details=OutputDetails(width=1280, height=720, duration_ms=60000)
    )
    job = set_job(submitted_job, state=State.COMPLETE, generation_progress=100)
    # This poll has already looked and found no generated clip.
    assert getattr(job, "generated_clip", None) is None

    orchestrator.update_job(job.id)
    orchestrator._reconcile_transcoder(job)

    assert Clip.objects.filter(type=Clip.Type.GENERATED).count() == 1


@pytest.mark.django_db
def test_generated_clip_is_created_once_per_job(submitted_job, camera):
    now = timezone.now()
    fields = dict(
        type=Clip.Type.GENERATED, camera=camera, gateway=camera.gateway, file_name="out", start=now, end=now
    )

    first = store.create_generated_clip(submitted_job.id, id="gen-1", **fields)
    second = store.create_generated_clip(submitted_job.id, id="gen-2", **fields)

    assert first is not None and second is None
    assert reload(submitted_job).generated_clip.id == "gen-1"
