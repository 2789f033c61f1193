from django.apps import AppConfig


class ClipJobsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "clipjobs"
    verbose_name = "Clip jobs"
