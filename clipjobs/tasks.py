from celery import shared_task
from celery.utils.log import get_task_logger

from . import orchestrator, store

logger = get_task_logger(__name__)


@shared_task(bind=True, acks_late=True)
def start_clip_job(self, job_id: str):
    logger.info("Starting clip job %s", job_id)
    orchestrator.start_job(job_id)


@shared_task(ignore_result=True)
def update_clip_job(job_id: str):
    orchestrator.update_job(job_id)


def _enqueue_updates(job_ids) -> int:
    for job_id in job_ids:
        update_clip_job.delay(str(job_id))
    return len(job_ids)


@shared_task(ignore_result=True)
def sweep_transcoding_jobs() -> int:
    """Queue a poll of the transcoder for every submitted job still in flight."""
    return _enqueue_updates(store.transcoding_job_ids())


@shared_task(ignore_result=True)
def sweep_uploading_jobs() -> int:
    """Queue an upload re-check for every job not yet submitted."""
    return _enqueue_updates(store.uploading_job_ids())


@shared_task(ignore_result=True)
def sweep_stalled_jobs() -> int:
    stalled = orchestrator.find_stalled_jobs()
    if stalled:
        logger.warning("Marked %d clip jobs as stalled", len(stalled))
    return len(stalled)
