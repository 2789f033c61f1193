import hashlib
import posixpath
from datetime import datetime
from typing import Iterable

from django.utils import timezone


def compute_clip_hash(clip_ids: Iterable[str]) -> str:
    """md5 of the sorted, ';'-joined clip ids. Independent of input order."""
    content = ";".join(sorted(clip_ids))
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def bucket_directory(file_name: str, camera_id: str, suffix: str = ".mp4") -> str:
    """
    Directory a gateway uploads a file into: <Y-M-D>/<camera>/<clips|snapshots>.

    File names look like "<camera>-<Y-M-D>_<H-M-S><suffix>".
    """
    stamp = file_name.replace(f"{camera_id}-", "", 1).replace(suffix, "")
    year_month_day = stamp.split("_")[0]
    kind = "clips" if suffix == ".mp4" else "snapshots"
    return posixpath.join(year_month_day, camera_id, kind)


def clip_file_key(file_name: str, camera_id: str, suffix: str = ".mp4") -> str:
    return posixpath.join(bucket_directory(file_name, camera_id, suffix), file_name)


def clip_object_path(clip) -> str:
    """<bucket>/<key> of a recorded clip in cloud storage."""
    return f"{clip.gateway.s3_bucket}/{clip_file_key(clip.file_name, clip.camera_id)}"


def concatenated_output_path(bucket: str, camera_id: str, now: datetime | None = None) -> str:
    """Destination <bucket>/<key> (no extension) for a concatenation of a camera's clips."""
    now = timezone.localtime(now or timezone.now())
    day = f"{now.year}-{now.month}-{now.day}"
    file_name = f"{camera_id}-{day}_{now.hour}-{now.minute}-{now.second}"
    return posixpath.join(bucket, day, camera_id, "concatenated", file_name)


def split_object_path(path: str) -> tuple[str, str]:
    """'bucket/some/key' -> ('bucket', 'some/key')."""
    path = path.removeprefix("s3://")
    bucket, _, key = path.partition("/")
    return bucket, key
