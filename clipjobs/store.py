"""
Job store: every job mutation is a read-modify-write against the database row.

Tasks for one job run on different workers at different times, so nothing
here trusts a Job instance loaded earlier; writes are conditional UPDATEs and
callers get back a freshly loaded row. Each successful write bumps
``last_updated`` and emits an "updated" event.
"""
import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from . import events
from .models import Clip, Job, JobClip
from .states import TERMINAL_STATES, can_transition, sources_for

logger = logging.getLogger(__name__)

State = Job.State


def get_job(job_id) -> Optional[Job]:
    return Job.objects.filter(pk=job_id).first()


def usable_clips(job: Job) -> list[Clip]:
    """Member clips, in timeline order, that exist somewhere; the rest are skipped."""
    return [c for c in job.ordered_clips() if c.available_cloud or c.available_locally]


def _reload_and_emit(job_id) -> Job:
    job = Job.objects.get(pk=job_id)
    events.emit(events.UPDATED, job)
    return job


def update_fields(job_id, **fields) -> Job:
    fields["last_updated"] = timezone.now()
    Job.objects.filter(pk=job_id).update(**fields)
    return _reload_and_emit(job_id)


def transition(job_id, to_state: str, **conditions) -> Optional[Job]:
    """
    Move a job to ``to_state`` if the transition graph allows it from the
    state currently stored and the row still matches ``conditions``.
    Returns the updated job, or None if nothing changed.
    """
    now = timezone.now()
    fields = {"state": to_state, "last_updated": now}
    if to_state == State.COMPLETE:
        fields["finished_at"] = now

    updated = Job.objects.filter(pk=job_id, state__in=sources_for(to_state), **conditions).update(**fields)
    if not updated:
        return None

    logger.info("Job(%s) state is now %s", job_id, to_state)
    return _reload_and_emit(job_id)


def set_items_uploaded(job_id, items_uploaded: int) -> Job:
    return update_fields(job_id, items_uploaded=items_uploaded)


def set_upload_progress(job_id, percent: int) -> Job:
    return update_fields(job_id, upload_progress=max(0, min(100, int(percent))))


def set_generation_progress(job_id, percent: int) -> Job:
    return update_fields(job_id, generation_progress=max(0, min(100, int(percent))))


def set_error_message(job_id, message: str) -> Job:
    return update_fields(job_id, error_message=message[:4000])


def record_submission(job_id, service_id: str) -> Optional[Job]:
    """
    Persist the transcoder's job id and PROCESSING together.

    The id is written only if none is stored yet. It is kept even when the job
    can no longer move to PROCESSING (e.g. it stalled mid-submission) so it is
    never submitted a second time. Returns None if an id was already stored.
    """
    with transaction.atomic():
        job = Job.objects.select_for_update().get(pk=job_id)
        if job.service_id:
            logger.warning(
                "Job(%s) already has service id %s; dropping %s", job_id, job.service_id, service_id
            )
            return None

        job.service_id = service_id
        job.last_updated = timezone.now()
        update = ["service_id", "last_updated"]
        if can_transition(job.state, State.PROCESSING):
            job.state = State.PROCESSING
            update.append("state")
        job.save(update_fields=update)

    logger.info("Job(%s) submitted as %s, state %s", job_id, service_id, job.state)
    events.emit(events.UPDATED, job)
    return job


def touch(job_id) -> Job:
    """Bump ``last_updated`` only; nothing observable changed, so no event."""
    Job.objects.filter(pk=job_id).update(last_updated=timezone.now())
    return Job.objects.get(pk=job_id)


def is_job_terminal(job_id) -> bool:
    """True if the job is terminal or gone."""
    return not Job.objects.filter(pk=job_id).exclude(state__in=TERMINAL_STATES).exists()


def create_generated_clip(job_id, **fields) -> Optional[Clip]:
    """
    Create the clip for a job's output unless it already has one.

    The job row is locked so overlapping polls create a single clip. Returns
    None if another poll got there first.
    """
    try:
        with transaction.atomic():
            Job.objects.select_for_update().filter(pk=job_id).first()
            if Clip.objects.filter(generate_job_id=job_id).exists():
                return None
            clip = Clip.objects.create(generate_job_id=job_id, **fields)
    except IntegrityError:
        # Backends without row locks (SQLite) fall back on the one-to-one constraint.
        return None

    update_fields(job_id)
    return clip


def create_job(job_type: str, file_path: str, clip_hash: str, clip_ids: list[str]) -> Job:
    """Persist a CREATED job and its memberships in ``clip_ids`` order."""
    with transaction.atomic():
        job = Job.objects.create(type=job_type, file_path=file_path, hash=clip_hash)
        JobClip.objects.bulk_create(
            [JobClip(job=job, clip_id=clip_id, position=i) for i, clip_id in enumerate(clip_ids)]
        )
    return job


def find_duplicate(job_type: str, clip_hash: str) -> Optional[Job]:
    """An existing job for the same clip set that has not failed or stalled."""
    return (
        Job.objects.filter(type=job_type, hash=clip_hash)
        .exclude(state__in=[State.ERROR, State.STALLED])
        .order_by("-created_at")
        .first()
    )


# -----------------------------------------------------
# Sweep queries
# -----------------------------------------------------
def open_jobs():
    return Job.objects.exclude(state__in=TERMINAL_STATES)


def transcoding_job_ids() -> list:
    """Submitted jobs still running, or complete without their generated clip."""
    return list(
        Job.objects.filter(service_id__isnull=False)
        .exclude(service_id="")
        .filter(~Q(state__in=TERMINAL_STATES) | Q(state=State.COMPLETE, generated_clip__isnull=True))
        .values_list("pk", flat=True)
    )


def uploading_job_ids() -> list:
    """Open jobs not yet submitted to the transcoder."""
    return list(
        open_jobs()
        .filter(Q(service_id__isnull=True) | Q(service_id=""))
        .values_list("pk", flat=True)
    )


def list_jobs(job_type=None, state=None, file_path=None):
    qs = Job.objects.select_related("generated_clip")
    if job_type:
        qs = qs.filter(type=job_type)
    if state:
        qs = qs.filter(state=state)
    if file_path:
        qs = qs.filter(file_path__icontains=file_path)
    return qs
