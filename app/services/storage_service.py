"""
Screenshot object storage on an S3-compatible endpoint (Cloudflare R2).

Key format: users/{user_id}/{YYYY-MM-DD}/{epoch_ms}-{random}.jpg

Originals and blurred copies live in separate buckets
(``settings.r2_bucket_original`` / ``settings.r2_bucket_blurred``).
"""
import secrets
import uuid
from datetime import datetime
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.exceptions import StorageError
from app.core.logging_config import log_error, log_info
from app.core.time_utils import ensure_utc, to_epoch_ms

JPEG_CONTENT_TYPE = "image/jpeg"
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000"


def generate_screenshot_key(user_id: uuid.UUID | str, when: datetime) -> str:
    when = ensure_utc(when)
    filename = f"{to_epoch_ms(when)}-{secrets.token_hex(5)}.jpg"
    return f"users/{user_id}/{when.date().isoformat()}/{filename}"


def blurred_key_for(storage_key: str) -> str:
    """Key of the blurred copy stored next to ``storage_key``."""
    if storage_key.endswith(".jpg"):
        return f"{storage_key[:-len('.jpg')]}_blurred.jpg"
    return f"{storage_key}_blurred.jpg"


class StorageService:
    """Thin wrapper over a boto3 S3 client."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not settings.storage_configured:
                raise StorageError("Object storage is not configured")
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.effective_r2_endpoint_url,
                aws_access_key_id=settings.r2_access_key_id,
                aws_secret_access_key=settings.r2_secret_access_key,
                region_name="auto",
                config=BotoConfig(signature_version="s3v4", retries={"max_attempts": 2}),
            )
        return self._client

    def upload(self, bucket: str, key: str, data: bytes) -> str:
        """Upload a JPEG and return its public URL."""
        try:
            self.client.put_object(
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=JPEG_CONTENT_TYPE,
                CacheControl=IMMUTABLE_CACHE_CONTROL,
            )
        except (BotoCoreError, ClientError) as exc:
            log_error(exc, bucket=bucket, key=key)
            raise StorageError(f"Failed to upload {key}: {exc}") from exc

        log_info("Uploaded object", bucket=bucket, key=key, size=len(data))
        return f"{settings.r2_public_url}/{key}"

    def get_signed_url(self, bucket: str, key: str, expires_in: Optional[int] = None) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in or settings.signed_url_expires_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            log_error(exc, bucket=bucket, key=key)
            raise StorageError(f"Failed to sign URL for {key}: {exc}") from exc

    def delete(self, bucket: str, key: str) -> None:
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
        log_info("Deleted object", bucket=bucket, key=key)
