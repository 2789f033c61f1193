from rest_framework import serializers
from .models import Job

# Job types that combine existing clips; TIMELAPSE is built elsewhere.
ALLOWED_JOB_TYPES = {Job.Type.CONCAT, Job.Type.GENERATED}


class JobSerializer(serializers.ModelSerializer):
    generated_clip_id = serializers.SerializerMethodField()

    class Meta:
        model = Job
        fields = [
            "id",
            "type",
            "hash",
            "file_path",
            "state",
            "service_id",
            "items_uploaded",
            "upload_progress",
            "generation_progress",
            "error_message",
            "generated_clip_id",
            "created_at",
            "last_updated",
            "finished_at",
        ]

    def get_generated_clip_id(self, job):
        clip = getattr(job, "generated_clip", None)
        return clip.id if clip else None


class JobCreateRequestSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=Job.Type.choices)
    file_path = serializers.CharField(max_length=512)
    clips = serializers.ListField(child=serializers.CharField(max_length=64), allow_empty=False)

    def validate_type(self, value):
        if value not in ALLOWED_JOB_TYPES:
            raise serializers.ValidationError(f"Cannot create {value.lower()} job from clips")
        return value


class ConcatJobRequestSerializer(serializers.Serializer):
    camera_id = serializers.CharField(max_length=64)
    clip_ids = serializers.ListField(child=serializers.CharField(max_length=64), allow_empty=False)


class JobListQuerySerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=Job.Type.choices, required=False)
    state = serializers.ChoiceField(choices=Job.State.choices, required=False)
    file_path = serializers.CharField(required=False, allow_blank=True)
