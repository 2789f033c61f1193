import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "fleet_backend.settings")

celery_app = Celery("fleet_backend")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()


@celery_app.on_after_finalize.connect
def setup_periodic_tasks(sender, **kwargs):
    from django.conf import settings

    sender.add_periodic_task(
        float(settings.CLIP_JOBS_TRANSCODER_POLL_SECONDS),
        sender.signature("clipjobs.tasks.sweep_transcoding_jobs"),
        name="clip jobs: poll transcoder",
    )
    sender.add_periodic_task(
        float(settings.CLIP_JOBS_UPLOAD_POLL_SECONDS),
        sender.signature("clipjobs.tasks.sweep_uploading_jobs"),
        name="clip jobs: re-check uploads",
    )
    sender.add_periodic_task(
        float(settings.CLIP_JOBS_STALL_SWEEP_SECONDS),
        sender.signature("clipjobs.tasks.sweep_stalled_jobs"),
        name="clip jobs: flag stalled",
    )
