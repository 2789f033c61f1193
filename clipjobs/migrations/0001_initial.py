import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Gateway",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(blank=True, default="", max_length=128)),
                ("s3_bucket", models.CharField(max_length=128)),
                ("connection_url", models.CharField(blank=True, default="", max_length=512)),
                ("connection_token", models.CharField(blank=True, default="", max_length=512)),
            ],
        ),
        migrations.CreateModel(
            name="Camera",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(blank=True, default="", max_length=128)),
                (
                    "gateway",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="cameras",
                        to="clipjobs.gateway",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="Job",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "type",
                    models.CharField(
                        choices=[("CONCAT", "Concat"), ("TIMELAPSE", "Timelapse"), ("GENERATED", "Generated")],
                        max_length=16,
                    ),
                ),
                ("hash", models.CharField(db_index=True, max_length=32)),
                ("file_path", models.CharField(max_length=512)),
                (
                    "state",
                    models.CharField(
                        choices=[
                            ("CREATED", "Created"),
                            ("REQUESTING", "Requesting"),
                            ("UPLOADING", "Uploading"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETE", "Complete"),
                            ("ERROR", "Error"),
                            ("STALLED", "Stalled"),
                        ],
                        db_index=True,
                        default="CREATED",
                        max_length=16,
                    ),
                ),
                ("service_id", models.CharField(blank=True, default=None, max_length=128, null=True)),
                ("items_uploaded", models.PositiveIntegerField(default=0)),
                ("upload_progress", models.PositiveSmallIntegerField(default=0)),
                ("generation_progress", models.PositiveSmallIntegerField(default=0)),
                ("error_message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("last_updated", models.DateTimeField(default=django.utils.timezone.now)),
                ("finished_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="Clip",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                (
                    "type",
                    models.CharField(
                        choices=[("recorded", "Recorded"), ("generated", "Generated")],
                        default="recorded",
                        max_length=16,
                    ),
                ),
                ("file_name", models.CharField(max_length=256)),
                ("start", models.DateTimeField()),
                ("end", models.DateTimeField()),
                ("available_locally", models.BooleanField(default=False)),
                ("available_cloud", models.BooleanField(default=False)),
                ("requested", models.BooleanField(default=False)),
                ("width", models.PositiveIntegerField(blank=True, null=True)),
                ("height", models.PositiveIntegerField(blank=True, null=True)),
                ("duration", models.FloatField(blank=True, null=True)),
                ("format", models.CharField(blank=True, default="", max_length=16)),
                ("file_size", models.BigIntegerField(default=0)),
                (
                    "camera",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="clips",
                        to="clipjobs.camera",
                    ),
                ),
                (
                    "gateway",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="clips",
                        to="clipjobs.gateway",
                    ),
                ),
                (
                    "generate_job",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="generated_clip",
                        to="clipjobs.job",
                    ),
                ),
            ],
            options={"ordering": ["start"]},
        ),
        migrations.CreateModel(
            name="JobClip",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.PositiveIntegerField()),
                (
                    "clip",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="clipjobs.clip",
                    ),
                ),
                (
                    "job",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="clipjobs.job",
                    ),
                ),
            ],
            options={"ordering": ["position"]},
        ),
        migrations.AddField(
            model_name="job",
            name="clips",
            field=models.ManyToManyField(related_name="jobs", through="clipjobs.JobClip", to="clipjobs.clip"),
        ),
        migrations.AddConstraint(
            model_name="jobclip",
            constraint=models.UniqueConstraint(fields=("job", "clip"), name="unique_job_clip"),
        ),
    ]
