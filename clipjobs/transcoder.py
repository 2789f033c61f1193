"""
Adapter over AWS Elemental MediaConvert (combine jobs) and S3 (output details).

Every boto error is re-raised as TranscoderError so callers can leave the job
where it is and let the next update sweep retry.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import TranscoderError
from .utils import split_object_path

logger = logging.getLogger(__name__)

# MediaConvert job statuses
SUBMITTED = "SUBMITTED"
PROGRESSING = "PROGRESSING"
COMPLETE = "COMPLETE"
CANCELED = "CANCELED"
ERROR = "ERROR"


@dataclass
class OutputDetails:
    width: Optional[int] = None
    height: Optional[int] = None
    duration_ms: Optional[int] = None


@dataclass
class TranscodeStatus:
    percent: int = 0
    status: str = SUBMITTED
    error: Optional[str] = None
    output_details: Optional[OutputDetails] = field(default=None)

    @property
    def is_complete(self) -> bool:
        return self.status == COMPLETE

    @property
    def is_failed(self) -> bool:
        return self.status in (ERROR, CANCELED)


def _session():
    return boto3.session.Session(
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        region_name=settings.AWS_REGION,
    )


def get_s3_client():
    """
    SDK client for object metadata lookups.
    """
    return _session().client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,
        config=BotoConfig(signature_version="s3v4"),
    )


def get_mediaconvert_client():
    """
    MediaConvert client. Uses the account endpoint when configured.
    """
    return _session().client(
        "mediaconvert",
        endpoint_url=settings.MEDIACONVERT_ENDPOINT_URL,
        config=BotoConfig(retries={"max_attempts": 3, "mode": "standard"}),
    )


def _combine_settings(inputs: list[str], output: str) -> dict:
    """H.265 MP4 file-group job that concatenates ``inputs`` in order."""
    return {
        "Inputs": [
            {
                "TimecodeSource": "ZEROBASED",
                "VideoSelector": {},
                "AudioSelectors": {},
                "FileInput": f"s3://{path}",
            }
            for path in inputs
        ],
        "OutputGroups": [
            {
                "Name": "File Group",
                "OutputGroupSettings": {
                    "Type": "FILE_GROUP_SETTINGS",
                    "FileGroupSettings": {
                        # MediaConvert appends the container extension itself.
                        "Destination": f"s3://{output.removesuffix('.mp4')}",
                    },
                },
                "Outputs": [
                    {
                        "VideoDescription": {
                            "CodecSettings": {
                                "Codec": "H_265",
                                "H265Settings": {
                                    "CodecProfile": "MAIN_MAIN",
                                    "MaxBitrate": 5000000,
                                    "RateControlMode": "QVBR",
                                    "WriteMp4PackagingType": "HVC1",
                                    "QualityTuningLevel": "SINGLE_PASS_HQ",
                                    "QvbrSettings": {"QvbrQualityLevel": 8},
                                },
                            },
                        },
                        "ContainerSettings": {
                            "Container": "MP4",
                            "Mp4Settings": {"MoovPlacement": "PROGRESSIVE_DOWNLOAD"},
                        },
                    }
                ],
            }
        ],
        "TimecodeConfig": {"Source": "ZEROBASED"},
        "FollowSource": 1,
    }


def submit_combine_job(inputs: list[str], output: str, metadata: dict | None = None, client=None) -> str:
    """
    Submit a job combining ``inputs`` (``bucket/key`` paths, in order) into ``output``.
    Returns the MediaConvert job id.
    """
    client = client or get_mediaconvert_client()
    try:
        resp = client.create_job(
            Role=settings.MEDIACONVERT_ROLE_ARN,
            AccelerationSettings={
                "Mode": "PREFERRED" if settings.MEDIACONVERT_ACCELERATION else "DISABLED",
            },
            Settings=_combine_settings(inputs, output),
            UserMetadata={k: str(v) for k, v in (metadata or {}).items()},
        )
    except (BotoCoreError, ClientError) as e:
        raise TranscoderError(f"Could not submit combine job for {output}: {e}") from e

    service_id = resp["Job"]["Id"]
    logger.info("Submitted combine job %s (%d inputs) -> %s", service_id, len(inputs), output)
    return service_id


def _output_details(job: dict) -> Optional[OutputDetails]:
    groups = job.get("OutputGroupDetails") or []
    if not groups or not groups[0].get("OutputDetails"):
        return None
    detail = groups[0]["OutputDetails"][0]
    video = detail.get("VideoDetails") or {}
    return OutputDetails(
        width=video.get("WidthInPx"),
        height=video.get("HeightInPx"),
        duration_ms=detail.get("DurationInMs"),
    )


def get_status(service_id: str, client=None) -> TranscodeStatus:
    client = client or get_mediaconvert_client()
    try:
        job = client.get_job(Id=service_id)["Job"]
    except (BotoCoreError, ClientError) as e:
        raise TranscoderError(f"Could not get status of {service_id}: {e}") from e

    return TranscodeStatus(
        percent=int(job.get("JobPercentComplete") or 0),
        status=job.get("Status", SUBMITTED),
        error=job.get("ErrorMessage") or None,
        output_details=_output_details(job),
    )


def get_file_details(path: str, client=None) -> dict:
    """
    Size of an object given as ``bucket/key``. MediaConvert outputs carry an
    .mp4 extension the job's destination does not.
    """
    bucket, key = split_object_path(path)
    if not key.endswith(".mp4"):
        key = f"{key}.mp4"

    client = client or get_s3_client()
    try:
        head = client.head_object(Bucket=bucket, Key=key)
    except (BotoCoreError, ClientError) as e:
        raise TranscoderError(f"Could not read details of s3://{bucket}/{key}: {e}") from e
    return {"byte_size": int(head.get("ContentLength") or 0)}
