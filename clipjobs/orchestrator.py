"""
Clip job orchestration: combine recorded clips into one video.

    create_job   validate, dedupe on the clip hash, persist, queue ``start``
    start_job    ask gateways for missing clips and wait for them to land
    join_clips   submit the gathered clips to the transcoder, at most once
    update_job   periodic: mirror transcoder progress, or re-check uploads
    find_stalled_jobs
                 periodic: give up on jobs that stopped moving

``start_job`` and ``update_job`` both finish the upload phase through
``join_clips``; if the worker waiting on uploads dies, the update sweep
still gets the job submitted.
"""
import logging
from collections import OrderedDict
from datetime import timedelta
from typing import Optional
from uuid import uuid4

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import availability, events, store, transcoder
from .errors import ClipJobValidationError, ClipRequestError, InvalidJobType, TranscoderError
from .locks import join_guard
from .models import Camera, Clip, Job
from .serializers import ALLOWED_JOB_TYPES
from .states import PRE_PROCESSING_STATES, UPLOAD_STATES, is_terminal
from .utils import clip_object_path, compute_clip_hash, concatenated_output_path

logger = logging.getLogger(__name__)

State = Job.State


# -----------------------------------------------------
# Creation
# -----------------------------------------------------
def create_job(job_type: str, file_path: str, clip_ids: list[str]) -> Job:
    """
    Create a job combining ``clip_ids`` (in timeline order) into ``file_path``.

    A live job (not ERROR/STALLED) of the same type over the same clip set is
    returned as-is instead of creating a second one.
    """
    if job_type == Job.Type.TIMELAPSE:
        raise InvalidJobType(job_type)
    if job_type not in ALLOWED_JOB_TYPES:
        raise ClipJobValidationError(f"Unknown job type: {job_type}")

    # Hashed as given, repeats included; memberships hold each clip once.
    clip_hash = compute_clip_hash(clip_ids)
    clip_ids = list(OrderedDict.fromkeys(clip_ids))
    if not clip_ids:
        raise ClipJobValidationError("A job needs at least one clip")

    known = set(Clip.objects.filter(pk__in=clip_ids).values_list("pk", flat=True))
    missing = [c for c in clip_ids if c not in known]
    if missing:
        raise ClipJobValidationError(f"Unknown clips: {missing}")

    existing = store.find_duplicate(job_type, clip_hash)
    if existing is not None:
        logger.info("Job(%s) already covers clips %s; not creating another", existing.id, clip_hash)
        return existing

    job = store.create_job(job_type, file_path, clip_hash, clip_ids)
    logger.info("Created %s job %s with %d clips -> %s", job_type, job.id, len(clip_ids), file_path)

    from .tasks import start_clip_job

    job_id = str(job.id)
    transaction.on_commit(lambda: start_clip_job.apply_async(args=[job_id], task_id=f"{job_id}-start"))
    events.emit(events.CREATED, job)
    return job


def join_camera_clips(clip_ids: list[str], camera_id: str) -> Job:
    """Concatenate a camera's clips into its bucket's ``concatenated`` folder."""
    camera = Camera.objects.select_related("gateway").filter(pk=camera_id).first()
    if camera is None:
        raise ClipJobValidationError("Invalid camera")
    if not camera.gateway.s3_bucket:
        raise ClipJobValidationError(f"Gateway {camera.gateway_id} has no storage bucket")

    file_path = concatenated_output_path(camera.gateway.s3_bucket, camera.id)
    return create_job(Job.Type.CONCAT, file_path, clip_ids)


# -----------------------------------------------------
# Upload coordination
# -----------------------------------------------------
def _request_clips(job_id, clips: list[Clip]) -> int:
    """Ask each owning gateway for its clips; returns how many were marked requested."""
    by_gateway = OrderedDict()
    for clip in clips:
        by_gateway.setdefault(clip.gateway_id, []).append(clip.id)

    total = 0
    for gateway_id, ids in by_gateway.items():
        result = availability.request_upload(gateway_id, ids)
        logger.debug("Job(%s) requested %d clips from %s, %d updated", job_id, len(ids), gateway_id, result["total_updated"])
        total += result["total_updated"]
    return total


def start_job(job_id, clip_events=None):
    """
    Gather a job's inputs in the cloud, then join them.

    Blocks on ``clip_events`` (a ClipEventStream by default) while gateways
    upload. There is no timeout of its own; the wait ends early once the job
    turns terminal, e.g. when the stall sweep flags it.
    """
    job = store.get_job(job_id)
    if job is None:
        logger.warning("Job(%s) not found; nothing to start", job_id)
        return
    if is_terminal(job.state):
        logger.info("Job(%s) is %s; not starting", job_id, job.state)
        return

    clips = store.usable_clips(job)
    to_request = [c for c in clips if not c.available_cloud]
    available = [c for c in clips if c.available_cloud]

    logger.debug("Job(%s) already has %d clips uploaded", job_id, len(available))
    store.set_items_uploaded(job_id, len(available))

    if to_request:
        logger.info("Job(%s) requesting %d clips", job_id, len(to_request))
        stream = clip_events if clip_events is not None else availability.ClipEventStream()
        with stream:
            store.transition(job_id, State.REQUESTING)
            try:
                _request_clips(job_id, to_request)
            except ClipRequestError as e:
                # The update sweep asks again for clips no gateway accepted.
                logger.warning("Job(%s) could not request clips: %s", job_id, e)
                return
            store.transition(job_id, State.UPLOADING)

            requested_ids = [c.id for c in to_request]
            base = len(available)
            availability.wait_for_cloud_clips(
                stream,
                requested_ids,
                on_arrival=lambda arrived: store.set_items_uploaded(job_id, base + len(arrived)),
                already_arrived=availability.cloud_available_ids(requested_ids),
                should_stop=lambda: store.is_job_terminal(job_id),
            )

    join_clips(job_id)


# -----------------------------------------------------
# Submission
# -----------------------------------------------------
def join_clips(job_id) -> bool:
    """
    Submit a job's clips to the transcoder. Returns True if this call submitted.

    Duplicate triggers are no-ops: a concurrent join holds the guard, or the
    job already carries a service id, in which case it is only moved to
    PROCESSING.
    """
    with join_guard(job_id) as acquired:
        if not acquired:
            return False

        # Re-read under the guard: a previous holder may have just submitted.
        job = store.get_job(job_id)
        if job is None or is_terminal(job.state):
            return False

        if job.service_id:
            if job.state != State.PROCESSING:
                store.transition(job_id, State.PROCESSING)
            return False

        clips = store.usable_clips(job)
        if not clips:
            logger.warning("Job(%s) has no usable clips; not submitting", job_id)
            return False

        inputs = [clip_object_path(c) for c in clips]
        try:
            service_id = transcoder.submit_combine_job(
                inputs,
                job.file_path,
                metadata={"hash": job.hash, "jobID": str(job.id)},
            )
        except TranscoderError as e:
            logger.warning("Job(%s) submission failed, will retry on next sweep: %s", job_id, e)
            return False

        store.record_submission(job_id, service_id)
        return True


# -----------------------------------------------------
# Polling
# -----------------------------------------------------
def _create_generated_clip(job: Job, details: transcoder.OutputDetails) -> Optional[Clip]:
    members = job.ordered_clips()
    first, last = members[0], members[-1]
    file_details = transcoder.get_file_details(job.file_path)

    return store.create_generated_clip(
        job.id,
        id=str(uuid4()),
        type=Clip.Type.GENERATED,
        camera_id=first.camera_id,
        gateway_id=first.gateway_id,
        file_name=job.file_path.rsplit("/", 1)[-1],
        start=first.start,
        end=last.end,
        width=details.width,
        height=details.height,
        duration=(details.duration_ms or 0) / 1000,
        format="h265",
        file_size=file_details["byte_size"],
        available_cloud=True,
        available_locally=False,
    )


def _reconcile_transcoder(job: Job):
    polled_at = timezone.now()
    status = transcoder.get_status(job.service_id)

    if status.error and status.error != job.error_message:
        job = store.set_error_message(job.id, status.error)
    elif status.status == transcoder.CANCELED and not job.error_message:
        job = store.set_error_message(job.id, "Transcoding job was canceled")

    if status.percent > job.generation_progress:
        job = store.set_generation_progress(job.id, status.percent)

    # Percent and status are not always consistent; either one may signal completion.
    if status.is_failed:
        job = store.transition(job.id, State.ERROR) or job
    elif status.percent >= 100 or status.is_complete:
        job = store.transition(job.id, State.COMPLETE) or job
        if status.is_complete and job.generation_progress < 100:
            job = store.set_generation_progress(job.id, 100)
    elif job.state in PRE_PROCESSING_STATES:
        job = store.transition(job.id, State.PROCESSING) or job

    # The transcoder answered, so the job is alive even if nothing changed
    # (e.g. still SUBMITTED with no percent yet).
    if job.state == State.PROCESSING and job.last_updated < polled_at:
        job = store.touch(job.id)

    if (
        job.state == State.COMPLETE
        and status.is_complete
        and status.output_details is not None
        and getattr(job, "generated_clip", None) is None
    ):
        logger.info("Job(%s) creating clip for generated output", job.id)
        if _create_generated_clip(job, status.output_details) is None:
            logger.info("Job(%s) generated clip was created by another poll", job.id)


def _rerequest_clips(job: Job, clips: list[Clip]):
    """Ask again for clips no gateway has accepted yet, e.g. after a failed request."""
    unrequested = [c for c in clips if not c.available_cloud and not c.requested]
    if not unrequested:
        return

    logger.info("Job(%s) re-requesting %d clips", job.id, len(unrequested))
    store.transition(job.id, State.REQUESTING)
    try:
        _request_clips(job.id, unrequested)
    except ClipRequestError as e:
        logger.warning("Job(%s) could not request clips: %s", job.id, e)
        return
    store.transition(job.id, State.UPLOADING)


def _recheck_uploads(job: Job):
    clips = store.usable_clips(job)
    waiting = [c.id for c in clips if not c.available_cloud]

    if not waiting:
        if job.items_uploaded != len(clips):
            store.set_items_uploaded(job.id, len(clips))
        join_clips(job.id)
        return

    _rerequest_clips(job, clips)

    logger.debug("Job(%s) still waiting on %d to upload: %s", job.id, len(waiting), ",".join(waiting))
    uploaded = len(clips) - len(waiting)
    upload_progress = int(100 * uploaded / len(clips))
    if job.items_uploaded != uploaded:
        store.set_items_uploaded(job.id, uploaded)
    if job.upload_progress != upload_progress:
        store.set_upload_progress(job.id, upload_progress)


def update_job(job_id):
    job = store.get_job(job_id)
    if job is None:
        return

    if job.service_id:
        if is_terminal(job.state) and not (
            job.state == State.COMPLETE and getattr(job, "generated_clip", None) is None
        ):
            return
        try:
            _reconcile_transcoder(job)
        except TranscoderError as e:
            logger.warning("Job(%s) transcoder poll failed: %s", job_id, e)
        return

    if is_terminal(job.state):
        return
    _recheck_uploads(job)


# -----------------------------------------------------
# Stall detection
# -----------------------------------------------------
def stall_threshold(state: str) -> timedelta:
    if state in UPLOAD_STATES:
        return timedelta(seconds=settings.CLIP_JOBS_UPLOAD_STALL_SECONDS)
    return timedelta(seconds=settings.CLIP_JOBS_STALL_SECONDS)


def find_stalled_jobs(now=None) -> list:
    """Mark open jobs whose ``last_updated`` is older than their state allows as STALLED."""
    now = now or timezone.now()
    stalled = []
    for job in store.open_jobs().only("id", "state", "last_updated"):
        if now - job.last_updated < stall_threshold(job.state):
            continue
        if store.transition(job.id, State.STALLED, last_updated=job.last_updated) is not None:
            logger.warning("Job(%s) stalled in %s since %s", job.id, job.state, job.last_updated)
            stalled.append(job.id)
    return stalled
