"""Object storage uploads for local images, and report persistence."""

import asyncio
import json
import logging
import mimetypes
import random
import string
import time
from pathlib import Path
from typing import Any, NamedTuple, Optional

import boto3

from .exceptions import VideoctlError
from .models import BatchReport
from .settings import Settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "grok-video"


class UploadResult(NamedTuple):
    url: str
    key: str


def _unique_key(file_path: Path) -> str:
    timestamp = int(time.time() * 1000)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{KEY_PREFIX}/{timestamp}-{suffix}-{file_path.stem}{file_path.suffix}"


class R2Uploader:
    """Uploads local files to a Cloudflare R2 bucket so the API can fetch them."""

    def __init__(self, client: Any, bucket_name: str, public_url: str):
        self.client = client
        self.bucket_name = bucket_name
        self.public_url = public_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "R2Uploader":
        missing = settings.missing_r2_vars()
        if missing:
            raise VideoctlError(
                f"R2 is not configured. Missing environment variables: {', '.join(missing)}"
            )
        client = boto3.client(
            "s3",
            region_name="auto",
            endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=settings.r2_access_key_id,
            aws_secret_access_key=settings.r2_secret_access_key,
        )
        return cls(client, settings.r2_bucket_name, settings.r2_public_url)

    def upload_file(self, file_path: str) -> UploadResult:
        """Upload a file and return its public URL."""
        path = Path(file_path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        key = _unique_key(path)
        body = path.read_bytes()

        logger.debug("Uploading %s to R2 as %s (%s, %d bytes)", path, key, content_type, len(body))
        self.client.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=body,
            ContentType=content_type,
        )

        url = f"{self.public_url}/{key}"
        logger.debug("R2 upload complete: %s", url)
        return UploadResult(url=url, key=key)

    async def upload(self, file_path: str) -> UploadResult:
        return await asyncio.to_thread(self.upload_file, file_path)


def write_report(report: BatchReport, file_path: str, indent: Optional[int] = 2) -> None:
    """Write a batch report to a JSON file atomically."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = path.with_suffix(path.suffix + ".tmp")
    with open(temp_file, "w") as f:
        json.dump(report.model_dump(mode="json"), f, indent=indent)
    temp_file.replace(path)
