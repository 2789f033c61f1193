from django.urls import path
from .views import ClipUploadedView, ConcatJobView, JobDetailView, JobListCreateView

urlpatterns = [
    path("jobs/", JobListCreateView.as_view(), name="jobs"),
    path("jobs/concat/", ConcatJobView.as_view(), name="jobs_concat"),
    path("jobs/<uuid:job_id>/", JobDetailView.as_view(), name="job_detail"),
    path("clips/<str:clip_id>/uploaded/", ClipUploadedView.as_view(), name="clip_uploaded"),
]
