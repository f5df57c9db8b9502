"""
Profile media: stage uploaded images on local disk, then push them to S3-compatible storage.
The staged file is always removed after an upload attempt.
"""

import asyncio
import logging
import mimetypes
import os
import uuid
from pathlib import Path

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile

from account_service.config import Settings
from account_service.core.errors import BadRequestError

logger = logging.getLogger(__name__)

_IMAGE_SUFFIXES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def _validate_image(file: UploadFile, image_bytes: bytes, max_bytes: int) -> None:
    if not file.content_type or not file.content_type.startswith("image/"):
        raise BadRequestError("File must be an image")
    if len(image_bytes) == 0:
        raise BadRequestError("File is empty or invalid.")
    if len(image_bytes) > max_bytes:
        raise BadRequestError(f"Image too large (max {max_bytes // (1024 * 1024)}MB)")
    magic = image_bytes[:12]
    if not (
        magic.startswith(b"\xff\xd8\xff")
        or magic.startswith(b"\x89PNG\r\n\x1a\n")
        or magic.startswith(b"GIF87a")
        or magic.startswith(b"GIF89a")
        or (magic[:4] == b"RIFF" and magic[8:12] == b"WEBP")
    ):
        raise BadRequestError("File must be a valid image (JPEG, PNG, GIF or WebP).")


class ObjectStore:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.bucket = settings.s3_bucket
        self.tmp_dir = Path(settings.upload_tmp_dir)
        self._client = None
        self._bucket_ready = False

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.settings.s3_endpoint_url,
                aws_access_key_id=self.settings.s3_access_key,
                aws_secret_access_key=self.settings.s3_secret_key,
                region_name=self.settings.s3_region,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    async def ensure_bucket_exists(self) -> None:
        if self._bucket_ready:
            return
        client = self._get_client()

        def _create_if_missing() -> None:
            try:
                client.head_bucket(Bucket=self.bucket)
            except ClientError:
                client.create_bucket(Bucket=self.bucket)

        await asyncio.to_thread(_create_if_missing)
        self._bucket_ready = True

    async def stage_upload(self, file: UploadFile) -> Path:
        """Validate an uploaded image and write it to the local staging directory."""
        image_bytes = await file.read()
        _validate_image(file, image_bytes, self.settings.max_upload_size_mb * 1024 * 1024)
        suffix = _IMAGE_SUFFIXES.get(file.content_type or "", Path(file.filename or "").suffix.lower())
        path = self.tmp_dir / f"{uuid.uuid4().hex}{suffix}"

        def _write() -> None:
            self.tmp_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(image_bytes)

        await asyncio.to_thread(_write)
        return path

    async def upload_file(self, local_path: str | os.PathLike | None, folder: str = "media") -> str | None:
        """Upload a staged local file; return its public URL, or None on failure."""
        if not local_path:
            return None
        path = Path(local_path)
        key = f"{folder}/{uuid.uuid4().hex}{path.suffix.lower()}"
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        try:
            await self.ensure_bucket_exists()
            client = self._get_client()
            await asyncio.to_thread(
                client.upload_file,
                str(path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError, S3UploadFailedError, OSError) as e:
            logger.warning("Object store upload failed for %s: %s", path.name, e)
            return None
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove staged upload %s: %s", path, e)
        return f"{self.settings.media_base_url}/{key}"
