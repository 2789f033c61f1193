import uuid
from django.db import models
from django.utils import timezone


class Gateway(models.Model):
    """Edge recording appliance; owns the bucket its clips are uploaded to."""

    id = models.CharField(primary_key=True, max_length=64)
    name = models.CharField(max_length=128, blank=True, default="")
    s3_bucket = models.CharField(max_length=128)
    connection_url = models.CharField(max_length=512, blank=True, default="")
    connection_token = models.CharField(max_length=512, blank=True, default="")

    def __str__(self):
        return self.name or self.id


class Camera(models.Model):
    id = models.CharField(primary_key=True, max_length=64)
    name = models.CharField(max_length=128, blank=True, default="")
    gateway = models.ForeignKey(Gateway, on_delete=models.CASCADE, related_name="cameras")

    def __str__(self):
        return self.name or self.id


class Clip(models.Model):
    class Type(models.TextChoices):
        RECORDED = "recorded"
        GENERATED = "generated"

    id = models.CharField(primary_key=True, max_length=64)
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.RECORDED)
    camera = models.ForeignKey(Camera, on_delete=models.CASCADE, related_name="clips")
    gateway = models.ForeignKey(Gateway, on_delete=models.CASCADE, related_name="clips")
    file_name = models.CharField(max_length=256)    # <camera>-<Y-M-D>_<H-M-S>.mp4
    start = models.DateTimeField()
    end = models.DateTimeField()

    available_locally = models.BooleanField(default=False)
    available_cloud = models.BooleanField(default=False)
    requested = models.BooleanField(default=False)  # upload asked of the gateway

    width = models.PositiveIntegerField(null=True, blank=True)
    height = models.PositiveIntegerField(null=True, blank=True)
    duration = models.FloatField(null=True, blank=True)        # seconds
    format = models.CharField(max_length=16, blank=True, default="")
    file_size = models.BigIntegerField(default=0)               # bytes

    # Set only on generated clips: the job whose output this clip is.
    generate_job = models.OneToOneField(
        "Job",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="generated_clip",
    )

    class Meta:
        ordering = ["start"]

    def __str__(self):
        return self.id


class Job(models.Model):
    class Type(models.TextChoices):
        CONCAT = "CONCAT"
        TIMELAPSE = "TIMELAPSE"
        GENERATED = "GENERATED"

    class State(models.TextChoices):
        CREATED = "CREATED"
        REQUESTING = "REQUESTING"
        UPLOADING = "UPLOADING"
        PROCESSING = "PROCESSING"
        COMPLETE = "COMPLETE"
        ERROR = "ERROR"
        STALLED = "STALLED"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    type = models.CharField(max_length=16, choices=Type.choices)
    hash = models.CharField(max_length=32, db_index=True)     # md5 of sorted clip ids
    file_path = models.CharField(max_length=512)              # <bucket>/<key> of the output
    state = models.CharField(max_length=16, choices=State.choices, default=State.CREATED, db_index=True)
    service_id = models.CharField(max_length=128, null=True, blank=True, default=None)

    items_uploaded = models.PositiveIntegerField(default=0)
    upload_progress = models.PositiveSmallIntegerField(default=0)      # 0..100
    generation_progress = models.PositiveSmallIntegerField(default=0)  # 0..100
    error_message = models.TextField(blank=True, default="")

    clips = models.ManyToManyField(Clip, through="JobClip", related_name="jobs")

    created_at = models.DateTimeField(auto_now_add=True)
    last_updated = models.DateTimeField(default=timezone.now)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Job({self.id}, {self.state})"

    def ordered_clips(self):
        """Member clips in the order they were given at creation."""
        return [m.clip for m in self.memberships.select_related("clip", "clip__gateway").order_by("position")]


class JobClip(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name="memberships")
    clip = models.ForeignKey(Clip, on_delete=models.CASCADE, related_name="memberships")
    position = models.PositiveIntegerField()

    class Meta:
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(fields=["job", "clip"], name="unique_job_clip"),
        ]
