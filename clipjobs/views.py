from rest_framework import serializers, status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import availability, orchestrator, store
from .errors import ClipJobValidationError
from .models import Clip, Job
from .serializers import (
    ConcatJobRequestSerializer,
    JobCreateRequestSerializer,
    JobListQuerySerializer,
    JobSerializer,
)


def _created(job):
    return Response(JobSerializer(job).data, status=status.HTTP_202_ACCEPTED)


class JobListCreateView(views.APIView):
    """
    GET lists jobs (filters: type, state, file_path).
    POST creates a job from explicit clip ids and an output path.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        query = JobListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data
        jobs = store.list_jobs(
            job_type=params.get("type"),
            state=params.get("state"),
            file_path=params.get("file_path"),
        )
        return Response(JobSerializer(jobs, many=True).data)

    def post(self, request):
        ser = JobCreateRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        try:
            job = orchestrator.create_job(data["type"], data["file_path"], data["clips"])
        except ClipJobValidationError as e:
            raise serializers.ValidationError({"detail": str(e)})
        return _created(job)


class ConcatJobView(views.APIView):
    """Concatenate a camera's clips; the output path is derived from the camera."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = ConcatJobRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            job = orchestrator.join_camera_clips(ser.validated_data["clip_ids"], ser.validated_data["camera_id"])
        except ClipJobValidationError as e:
            raise serializers.ValidationError({"detail": str(e)})
        return _created(job)


class JobDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, job_id):
        try:
            job = Job.objects.get(pk=job_id)
        except Job.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)

        data = JobSerializer(job).data
        data["clips"] = [c.id for c in job.ordered_clips()]
        return Response(data)


class ClipUploadedView(views.APIView):
    """Called when a gateway has finished uploading a clip to cloud storage."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, clip_id):
        try:
            clip = availability.mark_clip_available_cloud(clip_id)
        except Clip.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)
        return Response({"id": clip.id, "available_cloud": clip.available_cloud})
